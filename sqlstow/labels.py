"""
Storage type labels — the closed set of column types sqlstow writes.

Each label is created with a declared SQLite type whose affinity stores the
value as intended, and maps back from declared types found in existing
tables (exact name first, SQLite affinity rules second).
"""

INT32 = 'Int32'
INT64 = 'Int64'
DOUBLE = 'Double'
BOOL = 'Bool'
DATETIME = 'DateTime'
STRING = 'String'
BLOB = 'Blob'

LABELS = (INT32, INT64, DOUBLE, BOOL, DATETIME, STRING, BLOB)

# Label -> column definition used in CREATE TABLE
DECLARED_TYPES = {
    INT32: 'INT32',
    INT64: 'INT64',
    DOUBLE: 'DOUBLE',
    BOOL: 'BOOL',
    DATETIME: 'DATETIME',
    STRING: 'TEXT COLLATE NOCASE',
    BLOB: 'BLOB',
}

_EXACT = {
    'INT32': INT32,
    'INT64': INT64,
    'DOUBLE': DOUBLE,
    'BOOL': BOOL,
    'BOOLEAN': BOOL,
    'DATETIME': DATETIME,
    'TEXT': STRING,
    'BLOB': BLOB,
}

# Int32 and Int64 share storage; a column of either accepts both
_FAMILIES = {INT32: 'integer', INT64: 'integer'}


def label_for_declared(declared: str) -> str:
    """Map a declared column type (PRAGMA table_info) to a label."""
    decl = (declared or '').strip().upper()
    if decl in _EXACT:
        return _EXACT[decl]
    if 'INT' in decl:
        return INT64
    if any(k in decl for k in ('CHAR', 'CLOB', 'TEXT')):
        return STRING
    if 'BLOB' in decl:
        return BLOB
    if any(k in decl for k in ('REAL', 'FLOA', 'DOUB')):
        return DOUBLE
    if 'BOOL' in decl:
        return BOOL
    if 'DATE' in decl or 'TIME' in decl:
        return DATETIME
    return STRING


def storage_family(label: str) -> str:
    return _FAMILIES.get(label, label)


def same_storage(a: str, b: str) -> bool:
    """True when two labels store identically (Int32 vs Int64 is not a conflict)."""
    return storage_family(a) == storage_family(b)


def quote_ident(name: str) -> str:
    """Quote a table/column/index name for SQL text."""
    return '"' + str(name).replace('"', '""') + '"'
