"""
sqlstow — store arbitrary Python records in SQLite without writing a schema.

Hand it records (dicts, dataclasses, named tuples, plain objects); it infers
column types from the first one, creates or reconciles the table and writes
the stream in chunked transactions.

Modules:
  core.py       Database: connection, SQL, pragmas, backup
  catalog.py    Table / Field / Index handles over sqlite_master
  infer.py      record -> ColumnSpecs
  reconcile.py  ColumnSpecs vs existing table -> insert plan
  writer.py     chunked INSERT transactions, value coercion
  ingest.py     import_records() entry point
  indexes.py    add_index / drop_index
  cli.py        `sqlstow` command
"""

from sqlstow.catalog import Field, Index, Table
from sqlstow.core import MEMORY, Database, PerformanceSettings
from sqlstow.errors import (
    DuplicateIndexError,
    NoMatchingFieldsError,
    QueryTimeoutError,
    SchemaMismatchError,
    SqlstowError,
    StoreConnectionError,
    UniqueConstraintError,
    ValidationError,
)
from sqlstow.indexes import add_index, drop_index
from sqlstow.infer import ColumnSpec, infer_columns
from sqlstow.ingest import ImportOptions, ImportResult, import_records

__version__ = "0.1.0"

__all__ = [
    "MEMORY", "Database", "PerformanceSettings",
    "Table", "Field", "Index",
    "ColumnSpec", "infer_columns",
    "ImportOptions", "ImportResult", "import_records",
    "add_index", "drop_index",
    "SqlstowError", "StoreConnectionError", "ValidationError", "QueryTimeoutError",
    "SchemaMismatchError", "NoMatchingFieldsError",
    "DuplicateIndexError", "UniqueConstraintError",
]
