"""
sqlstow Ingest — the import entry point.

    first record -> infer.infer_columns -> reconcile.reconcile (table ready)
    all records  -> writer.BatchWriter inside Database.performance()

Usage:
    from sqlstow import Database, import_records

    db = Database("inventory.db")
    result = import_records(db, rows, "items", transaction_set=5000, passthru=True)
    result.table.count()

Schema problems surface on the first record, before any transaction opens.
"""

import itertools
import os
import time
from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Callable, Optional

from sqlstow.catalog import Table, get_table
from sqlstow.core import warn
from sqlstow.errors import ValidationError
from sqlstow.infer import infer_columns
from sqlstow.reconcile import reconcile
from sqlstow.writer import BatchWriter, ChunkReport

if TYPE_CHECKING:
    from sqlstow.core import Database

DEFAULT_TRANSACTION_SET = int(os.environ.get("SQLSTOW_TRANSACTION_SET", 10000))

# Applied before the first write; SQLite ignores it once the store has pages
PAGE_SIZE = 65536

_END = object()


@dataclass
class ImportOptions:
    """How import_records treats the stream and the store.

    transaction_set:       records per committed transaction (0 = one transaction)
    unsafe:                in-memory journal, no fsync, for this call only
    lock:                  exclusive database lock for this call only
    define_table_only:     create/validate the table from the first record, write nothing
    allow_type_conversion: store mismatched fields in the existing column's type
    passthru:              return the table handle in ImportResult.table
    """
    transaction_set: int = DEFAULT_TRANSACTION_SET
    unsafe: bool = False
    lock: bool = False
    define_table_only: bool = False
    allow_type_conversion: bool = False
    passthru: bool = False


@dataclass
class ImportResult:
    table_name: str
    columns: list[str] = field(default_factory=list)
    created: bool = False
    records: int = 0
    commits: int = 0
    elapsed: float = 0.0
    warnings: list[str] = field(default_factory=list)
    table: Optional[Table] = None


def format_size(n: int) -> str:
    for unit in ('B', 'KB', 'MB', 'GB'):
        if n < 1024 or unit == 'GB':
            return f"{n:.0f} {unit}" if unit == 'B' else f"{n:.1f} {unit}"
        n /= 1024


def print_progress(report: ChunkReport):
    """Default chunk progress: one [import] line on stderr."""
    warn("import",
         f"{report.records:,} records · chunk {report.chunk_seconds:.1f}s · "
         f"total {report.total_seconds:.1f}s · {format_size(report.store_size)} · "
         f"{report.location}")


def import_records(db: 'Database', records, table_name: str,
                   options: ImportOptions = None,
                   progress_cb: Callable[[ChunkReport], None] = None,
                   quiet: bool = False, **kwargs) -> ImportResult:
    """Store an iterable of records in table_name, creating the table if needed.

    Options come from `options` or keyword arguments named like the
    ImportOptions fields (keywords override `options`).

    Raises:
        ValidationError: bad option values, nameless or case-colliding fields.
        SchemaMismatchError: a field's type conflicts with its existing column.
        NoMatchingFieldsError: no field exists in the existing table.
        sqlite3.Error: a later record violates a constraint (its chunk is lost).
    """
    options = replace(options or ImportOptions(), **kwargs)
    if options.transaction_set < 0:
        raise ValidationError(
            f"transaction_set must be >= 0, got {options.transaction_set}"
        )

    t0 = time.monotonic()
    result = ImportResult(table_name=table_name)

    stream = iter(records)
    first = next(stream, _END)
    if first is _END:
        msg = f"No records to import into '{table_name}'"
        result.warnings.append(msg)
        warn("import", msg, quiet)
        if options.passthru:
            result.table = get_table(db, table_name)
        return result

    db.set_page_size(PAGE_SIZE)
    target = reconcile(db, table_name, infer_columns(first),
                       allow_type_conversion=options.allow_type_conversion)
    result.table_name = target.table.name
    result.columns = list(target.columns)
    result.created = target.created
    result.warnings.extend(target.warnings)
    for w in target.warnings:
        warn("import", w, quiet)

    if not options.define_table_only:
        if progress_cb is None and not quiet:
            progress_cb = print_progress
        writer = BatchWriter(db, target, options.transaction_set, progress_cb)
        with db.performance(unsafe=options.unsafe, lock=options.lock):
            stats = writer.write(itertools.chain([first], stream))
        result.records = stats.records
        result.commits = stats.commits

    result.elapsed = time.monotonic() - t0
    if options.passthru:
        result.table = get_table(db, target.table.name)
    return result
