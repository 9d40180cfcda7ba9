"""
sqlstow Catalog — read-only views over sqlite_master and table pragmas.

Nothing is cached: every call re-queries the store, so handles never go
stale but two calls are not atomic with each other.

    list_tables(db)        -> {name: Table}   catalog order
    get_table(db, name)    -> Table | None    case-insensitive
    Table.fields()         -> {name: Field}   column order
    Table.indexes()        -> [Index]

Handles point upward only (Field -> Table -> Database); a Database never
holds its Tables.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from sqlstow.labels import label_for_declared, quote_ident

if TYPE_CHECKING:
    from sqlstow.core import Database


@dataclass(frozen=True)
class Table:
    """One table of a Database. Cheap handle; re-queries on every call."""
    name: str
    database: 'Database' = field(repr=False)
    sql: Optional[str] = None

    def fields(self) -> dict:
        return list_fields(self)

    def field(self, name: str) -> Optional['Field']:
        """Case-insensitive column lookup."""
        wanted = name.lower()
        for fname, f in self.fields().items():
            if fname.lower() == wanted:
                return f
        return None

    def indexes(self) -> list:
        return list_indexes(self)

    def row_count_estimate(self) -> int:
        """Approximate row count: MAX(rowid).

        Cheap on any table size but overstates the count after deletes.
        Use count() when the exact number matters.
        """
        try:
            row = self.database.execute(
                f"SELECT MAX(rowid) FROM {quote_ident(self.name)}"
            ).fetchone()
        except sqlite3.OperationalError:
            return self.count()  # WITHOUT ROWID table
        return row[0] or 0

    def count(self) -> int:
        """Exact row count (full scan)."""
        row = self.database.execute(
            f"SELECT COUNT(*) FROM {quote_ident(self.name)}"
        ).fetchone()
        return row[0]

    def records(self, limit: int = None) -> list[dict]:
        """Read rows back as dicts."""
        query = f"SELECT * FROM {quote_ident(self.name)}"
        if limit is not None:
            return self.database.run_sql(query + " LIMIT ?", (int(limit),))
        return self.database.run_sql(query)

    def drop(self):
        self.database.execute(f"DROP TABLE IF EXISTS {quote_ident(self.name)}")

    def add_index(self, column: str, unique: bool = False, name: str = None,
                  quiet: bool = False) -> list[str]:
        from sqlstow.indexes import add_index
        return add_index(self.database, self.name, column, unique=unique,
                         name=name, quiet=quiet)


@dataclass(frozen=True)
class Field:
    """One column, as PRAGMA table_info reports it."""
    name: str
    declared_type: str
    not_null: bool
    default: Optional[str]
    position: int
    primary_key: bool
    table: Table = field(repr=False)

    @property
    def type(self) -> str:
        """Storage label (Int64, String, ...) for the declared type."""
        return label_for_declared(self.declared_type)

    def indexes(self) -> list:
        """Indexes that include this column."""
        wanted = self.name.lower()
        return [ix for ix in self.table.indexes()
                if any(f.name.lower() == wanted for f in ix.fields)]

    def add_index(self, unique: bool = False, name: str = None,
                  quiet: bool = False) -> list[str]:
        return self.table.add_index(self.name, unique=unique, name=name, quiet=quiet)

    def drop_index(self) -> list[str]:
        from sqlstow.indexes import drop_index
        return drop_index(self)


@dataclass(frozen=True)
class Index:
    name: str
    unique: bool
    origin: str  # 'c' = CREATE INDEX, 'u' = UNIQUE constraint, 'pk' = primary key
    fields: tuple
    table: Table = field(repr=False)

    @property
    def multi_column(self) -> bool:
        return len(self.fields) > 1

    @property
    def droppable(self) -> bool:
        """Constraint-backed indexes can only go with their table."""
        return self.origin == 'c'

    def drop(self):
        if self.droppable:
            self.table.database.execute(f"DROP INDEX IF EXISTS {quote_ident(self.name)}")


# =============================================================================
# Queries
# =============================================================================

def list_tables(db: 'Database') -> dict:
    """Discover user tables from sqlite_master, name -> Table."""
    rows = db.execute(
        "SELECT name, sql FROM sqlite_master "
        "WHERE type='table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\'"
    ).fetchall()
    return {r['name']: Table(r['name'], db, r['sql']) for r in rows}


def get_table(db: 'Database', name: str) -> Optional[Table]:
    row = db.execute(
        "SELECT name, sql FROM sqlite_master "
        "WHERE type='table' AND name = ? COLLATE NOCASE",
        (name,)
    ).fetchone()
    return Table(row['name'], db, row['sql']) if row else None


def list_fields(table: Table) -> dict:
    rows = table.database.execute(
        f"PRAGMA table_info({quote_ident(table.name)})"
    ).fetchall()
    fields = {}
    for r in rows:
        fields[r['name']] = Field(
            name=r['name'],
            declared_type=r['type'] or '',
            not_null=bool(r['notnull']),
            default=r['dflt_value'],
            position=r['cid'],
            primary_key=bool(r['pk']),
            table=table,
        )
    return fields


def list_indexes(table: Table) -> list:
    db = table.database
    by_name = {name.lower(): f for name, f in list_fields(table).items()}
    indexes = []
    for ix in db.execute(f"PRAGMA index_list({quote_ident(table.name)})").fetchall():
        cols = db.execute(f"PRAGMA index_info({quote_ident(ix['name'])})").fetchall()
        # Expression columns come back with name NULL; not a Field
        fields = tuple(by_name[c['name'].lower()] for c in cols
                       if c['name'] is not None and c['name'].lower() in by_name)
        indexes.append(Index(
            name=ix['name'],
            unique=bool(ix['unique']),
            origin=ix['origin'],
            fields=fields,
            table=table,
        ))
    return indexes
