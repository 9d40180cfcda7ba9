"""
sqlstow Writer — record stream -> chunked INSERT transactions.

One INSERT text for the whole stream (sqlite3 keeps it prepared in its
statement cache), one transaction per chunk of transaction_set records.
A full chunk commits, reports progress and opens the next transaction; the
last partial chunk commits at stream end. Any error rolls back the chunk in
flight and propagates: earlier chunks stay committed, that one is lost.

Value coercion per column label:
    arrays          -> ','-joined text of their items
    DateTime        -> datetime, ISO text, DMTF stamp -> 'YYYY-MM-DD HH:MM:SS'
                       unparseable -> NULL (the row is still written)
    Int32 / Int64   -> int(value), floats truncate; unconvertible -> NULL
    Double          -> float(value); unconvertible -> NULL
    Bool            -> bool of numbers, true/false/yes/no/1/0 text; else NULL
    String          -> str(value) for non-strings
    numpy scalars   -> Python scalars
    everything else -> bound as is
"""

import re
import time
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from datetime import time as dtime
from typing import TYPE_CHECKING, Callable, Optional

import numpy as np

from sqlstow.labels import BOOL, DATETIME, DOUBLE, INT32, INT64, STRING, quote_ident

if TYPE_CHECKING:
    from sqlstow.core import Database
    from sqlstow.reconcile import ReconcileResult

ARRAY_DELIMITER = ','

# CIM/WMI DMTF datetime: yyyymmddHHMMSS.ffffff followed by +/- UTC offset in minutes
_DMTF = re.compile(r'^(\d{14})\.(\d{6})([+-])(\d{3})$')

_ARRAY_TYPES = (list, tuple, set, frozenset, np.ndarray)
_BINDABLE = (int, float, str, bytes, bytearray, memoryview)


@dataclass
class ChunkReport:
    """Progress after one committed chunk."""
    records: int          # processed so far, all chunks
    chunk_seconds: float
    total_seconds: float
    store_size: int       # bytes
    location: str


@dataclass
class WriteStats:
    records: int = 0
    commits: int = 0
    elapsed: float = 0.0


# =============================================================================
# Coercion
# =============================================================================

def parse_dmtf(text: str) -> Optional[datetime]:
    """Parse '20240131235959.123456+060' style stamps. None if not one."""
    m = _DMTF.match(text.strip())
    if not m:
        return None
    stamp, micro, sign, offset = m.groups()
    try:
        base = datetime.strptime(stamp, '%Y%m%d%H%M%S')
    except ValueError:
        return None
    minutes = int(offset) if sign == '+' else -int(offset)
    return base.replace(microsecond=int(micro),
                        tzinfo=timezone(timedelta(minutes=minutes)))


def to_datetime(value) -> Optional[datetime]:
    """Best-effort datetime for a DateTime column; None when nothing fits."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, dtime())
    if isinstance(value, np.datetime64):
        if np.isnat(value):
            return None
        converted = value.astype('datetime64[us]').item()
        return converted if isinstance(converted, datetime) else None
    if isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return parse_dmtf(text)
    return None


def format_datetime(value: datetime) -> str:
    return value.replace(microsecond=0).isoformat(sep=' ')


def _plain(value):
    return value.item() if isinstance(value, np.generic) else value


def flatten(value) -> str:
    """Join an array's items into one delimited string."""
    items = value.ravel().tolist() if isinstance(value, np.ndarray) else value
    return ARRAY_DELIMITER.join('' if v is None else str(_plain(v)) for v in items)


_TRUE = frozenset(('1', 'true', 't', 'yes', 'y', 'on'))
_FALSE = frozenset(('0', 'false', 'f', 'no', 'n', 'off'))


def to_int(value) -> Optional[int]:
    """Integer for an Int32/Int64 column; floats truncate, None when nothing fits."""
    try:
        if isinstance(value, str):
            text = value.strip()
            try:
                return int(text)
            except ValueError:
                return int(float(text))
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return None


def to_float(value) -> Optional[float]:
    try:
        return float(value.strip() if isinstance(value, str) else value)
    except (TypeError, ValueError, OverflowError):
        return None


def to_bool(value) -> Optional[bool]:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
        return None
    if isinstance(value, (bool, int, float)):
        return bool(value)
    return None


_CONVERTERS = {
    INT32: to_int,
    INT64: to_int,
    DOUBLE: to_float,
    BOOL: to_bool,
}


def coerce(value, label: str):
    """Turn a raw property value into something sqlite3 binds for label.

    Values that cannot become the column's type are stored as NULL.
    """
    if value is None:
        return None
    if isinstance(value, _ARRAY_TYPES):
        value = flatten(value)
    if label == DATETIME:
        dt = to_datetime(value)
        return format_datetime(dt) if dt is not None else None
    value = _plain(value)
    if label in _CONVERTERS:
        return _CONVERTERS[label](value)
    if label == STRING and not isinstance(value, str):
        return str(value)
    if value is None or isinstance(value, _BINDABLE):
        return value
    return str(value)  # sqlite3 cannot bind it: store its text


def read_property(record, name: str):
    """Property value of a record, None when this record lacks it or its getter raises.

    Mapping keys are matched like column names: as text, case-insensitively.
    """
    if isinstance(record, Mapping):
        if name in record:
            return record[name]
        wanted = name.lower()
        for key, value in record.items():
            if str(key).lower() == wanted:
                return value
        return None
    try:
        return getattr(record, name, None)
    except Exception:
        return None  # computed property that fails for this record


def insert_sql(table_name: str, columns: list[str]) -> str:
    cols = ", ".join(quote_ident(c) for c in columns)
    marks = ", ".join("?" for _ in columns)
    return f"INSERT INTO {quote_ident(table_name)} ({cols}) VALUES ({marks})"


# =============================================================================
# Writer
# =============================================================================

class BatchWriter:
    """Writes records into a reconciled table in chunked transactions."""

    def __init__(self, db: 'Database', target: 'ReconcileResult',
                 transaction_set: int,
                 progress_cb: Callable[[ChunkReport], None] = None):
        self.db = db
        self.columns = list(target.columns)
        self.types = dict(target.types)
        self.properties = dict(target.properties)
        self.transaction_set = transaction_set
        self.progress_cb = progress_cb
        self.sql = insert_sql(target.table.name, self.columns)

    def row(self, record) -> tuple:
        return tuple(
            coerce(read_property(record, self.properties[c]), self.types[c])
            for c in self.columns
        )

    def write(self, records) -> WriteStats:
        """Insert every record. transaction_set=0 means one transaction."""
        db = self.db
        stats = WriteStats()
        t0 = chunk_t0 = time.monotonic()
        pending = 0

        db.begin()
        try:
            for record in records:
                db.execute(self.sql, self.row(record))
                pending += 1
                stats.records += 1

                if self.transaction_set and pending >= self.transaction_set:
                    db.commit()
                    stats.commits += 1
                    now = time.monotonic()
                    if self.progress_cb:
                        self.progress_cb(ChunkReport(
                            records=stats.records,
                            chunk_seconds=now - chunk_t0,
                            total_seconds=now - t0,
                            store_size=db.file_size(),
                            location=db.location,
                        ))
                    chunk_t0 = now
                    pending = 0
                    db.begin()

            if pending:
                db.commit()
                stats.commits += 1
            else:
                db.rollback()  # empty trailing transaction
        except BaseException:
            db.rollback()
            raise

        stats.elapsed = time.monotonic() - t0
        return stats
