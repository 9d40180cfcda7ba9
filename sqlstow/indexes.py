"""
sqlstow Indexes — single-column index creation and removal.

One index per column: add_index refuses a column that is already indexed
(including indexes backing UNIQUE / PRIMARY KEY constraints). Large tables
get a warning before the build starts, since CREATE INDEX scans every row.
"""

import sqlite3
from typing import TYPE_CHECKING

from sqlstow.catalog import Field, get_table
from sqlstow.core import warn
from sqlstow.errors import DuplicateIndexError, UniqueConstraintError, ValidationError
from sqlstow.labels import quote_ident

if TYPE_CHECKING:
    from sqlstow.core import Database

# Approximate row count above which index builds are announced
LARGE_TABLE_ROWS = 100_000


def index_name(table_name: str, column: str) -> str:
    return f"idx_{table_name}_{column}"


def add_index(db: 'Database', table_name: str, column: str, unique: bool = False,
              name: str = None, quiet: bool = False) -> list[str]:
    """Create an index on table_name(column). Returns warnings.

    Raises:
        ValidationError: no such table or column.
        DuplicateIndexError: the column is already indexed, or the name is taken.
        UniqueConstraintError: unique requested but the column has duplicates.
    """
    table = get_table(db, table_name)
    if table is None:
        raise ValidationError(f"Table '{table_name}' does not exist")
    f = table.field(column)
    if f is None:
        raise ValidationError(f"Column '{column}' does not exist in table '{table.name}'")

    existing = f.indexes()
    if existing:
        raise DuplicateIndexError(
            f"Column '{f.name}' of table '{table.name}' is already indexed "
            f"by '{existing[0].name}'"
        )

    warnings = []
    rows = table.row_count_estimate()
    if rows > LARGE_TABLE_ROWS:
        msg = (f"Table '{table.name}' holds about {rows:,} rows; "
               f"building the index on '{f.name}' may take a while")
        warnings.append(msg)
        warn("index", msg, quiet)

    name = name or index_name(table.name, f.name)
    kind = "UNIQUE INDEX" if unique else "INDEX"
    sql = (f"CREATE {kind} {quote_ident(name)} "
           f"ON {quote_ident(table.name)} ({quote_ident(f.name)})")
    try:
        db.execute(sql)
    except sqlite3.IntegrityError as e:
        raise UniqueConstraintError(
            f"Cannot create unique index '{name}': column '{f.name}' of table "
            f"'{table.name}' contains duplicate values"
        ) from e
    except sqlite3.OperationalError as e:
        if 'already exists' in str(e):
            raise DuplicateIndexError(f"An index named '{name}' already exists") from e
        raise
    return warnings


def drop_index(field: Field) -> list[str]:
    """Drop every droppable index on field's column. Returns the names dropped.

    A column without indexes is not an error.
    """
    dropped = []
    for ix in field.indexes():
        if ix.droppable:
            ix.drop()
            dropped.append(ix.name)
    return dropped
