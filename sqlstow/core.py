"""
sqlstow Core — store location, connection, SQL execution, settings.

Infrastructure plumbing. Every other module talks to SQLite through a
Database. No schema logic here.

Database:
- open() / close()        -> lazy, idempotent connection; close() wipes :memory:
- run_sql() / execute()   -> SQL with the per-call query timeout
- run_sql_nocase()        -> same, COLLATE NOCASE appended for the caller
- begin/commit/rollback   -> explicit transactions (connection is in autocommit)
- performance()           -> unsafe/lock pragmas applied, then restored
- file_size() / backup()  -> store size and point-in-time copy

Catalog access (tables(), table()) lives in catalog.py.
"""

import os
import re
import sqlite3
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional

from sqlstow.catalog import get_table, list_tables
from sqlstow.errors import QueryTimeoutError, StoreConnectionError, ValidationError

MEMORY = ":memory:"

# Seconds a single call may block (busy wait on locks + statement runtime)
DEFAULT_TIMEOUT = float(os.environ.get("SQLSTOW_TIMEOUT", 600))

STORE_EXTENSIONS = ('.db', '.sqlite', '.sqlite3', '.db3')

# Progress handler granularity (VM opcodes between deadline checks)
_CHECK_EVERY = 10000

_TRAILING_CLAUSE = re.compile(r'\s+(ORDER\s+BY|GROUP\s+BY|LIMIT)\b', re.IGNORECASE)
_HAS_NOCASE = re.compile(r'\bCOLLATE\s+NOCASE\b', re.IGNORECASE)
# Comparison operator + one operand (quoted literal, name, number or parameter) at the very end
_TRAILING_COMPARISON = re.compile(
    r"(?:[=<>]|\bLIKE|\bGLOB)\s*(?:'(?:[^']|'')*'|\"(?:[^\"]|\"\")*\"|[\w.:@$?]+)$",
    re.IGNORECASE,
)


def warn(tag: str, message: str, quiet: bool = False):
    """Report a non-fatal condition on stderr as '[tag] message'."""
    if not quiet:
        print(f"[{tag}] {message}", file=sys.stderr)


# ============================================================
# Type converters (declared column type -> Python value)
# ============================================================

def _convert_datetime(raw: bytes):
    text = raw.decode()
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return text  # foreign data in a DATETIME column stays readable


def _convert_bool(raw: bytes):
    try:
        return bool(int(raw))
    except ValueError:
        return raw.decode()


sqlite3.register_converter("DATETIME", _convert_datetime)
sqlite3.register_converter("BOOL", _convert_bool)


# ============================================================
# Settings
# ============================================================

@dataclass(frozen=True)
class PerformanceSettings:
    """Pragma modes a Database applies when it opens.

    unsafe: journal in memory, no fsync. Fast, not crash-safe.
    lock:   exclusive locking mode. Blocks every other reader and writer.
    """
    unsafe: bool = False
    lock: bool = False


def validate_location(location) -> str:
    """Normalize a store location. Returns ':memory:' or an absolute path."""
    if location is None or not str(location).strip():
        raise ValidationError("Database location is empty")
    loc = str(location)
    if loc == MEMORY:
        return loc
    if '\x00' in loc:
        raise ValidationError(f"Database path contains a NUL byte: {loc!r}")

    path = Path(loc).expanduser().resolve()
    if path.is_dir():
        raise ValidationError(f"'{path}' is a directory, not a database file")
    if path.suffix.lower() not in STORE_EXTENSIONS:
        warn("sqlstow", f"'{path.name}' has no standard database extension "
                        f"({', '.join(STORE_EXTENSIONS)}); using it anyway")
    return str(path)


def nocase_query(query: str) -> str:
    """Make a query's last comparison case-insensitive.

    COLLATE NOCASE goes after the comparison that ends the filter, i.e. right
    before a trailing ORDER BY / GROUP BY / LIMIT clause or at the end.
    Queries without such a comparison, and queries that already say
    COLLATE NOCASE, pass through unchanged.
    """
    q = query.strip().rstrip(';').rstrip()
    if _HAS_NOCASE.search(q):
        return q
    m = _TRAILING_CLAUSE.search(q)
    head, tail = (q[:m.start()], q[m.start():]) if m else (q, "")
    if not _TRAILING_COMPARISON.search(head):
        return q
    return head + " COLLATE NOCASE" + tail


# ============================================================
# Database
# ============================================================

class Database:
    """
    One SQLite store (file or in-memory) and its single connection.

    Usage:
        db = Database("data.db")
        db.import_records(records, "events")
        db.run_sql("SELECT * FROM events")
        db.close()

    The connection opens on first use. Not thread-safe: use one Database per
    thread or process and let SQLite's file locking arbitrate.
    """

    def __init__(self, location=MEMORY, timeout: float = None,
                 settings: PerformanceSettings = None):
        self.location = validate_location(location)
        self.timeout = DEFAULT_TIMEOUT if timeout is None else float(timeout)
        self.settings = settings or PerformanceSettings()
        self._conn: Optional[sqlite3.Connection] = None
        self._deadline_at: Optional[float] = None

    def __repr__(self):
        state = "open" if self.is_open else "closed"
        return f"Database({self.location!r}, {state})"

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # ─────────────────────────────────────────────────────────────────────
    # Connection lifecycle
    # ─────────────────────────────────────────────────────────────────────

    @property
    def is_memory(self) -> bool:
        return self.location == MEMORY

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def in_transaction(self) -> bool:
        return self._conn is not None and self._conn.in_transaction

    @property
    def connection(self) -> sqlite3.Connection:
        """The live connection, opened on demand."""
        return self.open()

    def open(self) -> sqlite3.Connection:
        """Open the connection. No-op when already open."""
        if self._conn is not None:
            return self._conn

        if not self.is_memory:
            try:
                Path(self.location).parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreConnectionError(self.location, e) from e

        conn = None
        try:
            conn = sqlite3.connect(
                self.location,
                timeout=self.timeout,
                isolation_level=None,
                detect_types=sqlite3.PARSE_DECLTYPES,
            )
            conn.row_factory = sqlite3.Row
            conn.set_progress_handler(self._check_deadline, _CHECK_EVERY)
            # Touch the file now: corrupt, locked or unwritable stores fail here
            conn.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()
        except sqlite3.Error as e:
            if conn is not None:
                conn.close()
            raise StoreConnectionError(self.location, e) from e

        self._conn = conn
        self._apply(self.settings)
        return conn

    def close(self):
        """Close the connection. For :memory: stores every table is gone."""
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None

    # ─────────────────────────────────────────────────────────────────────
    # SQL
    # ─────────────────────────────────────────────────────────────────────

    def _check_deadline(self) -> int:
        if self._deadline_at is not None and time.monotonic() > self._deadline_at:
            return 1  # non-zero = interrupt
        return 0

    @contextmanager
    def _deadline(self, query: str):
        self._deadline_at = time.monotonic() + self.timeout
        try:
            yield
        except sqlite3.OperationalError as e:
            if 'interrupt' in str(e).lower():
                raise QueryTimeoutError(
                    f"Query timed out after {self.timeout:g}s: {query.strip()[:120]}"
                ) from e
            raise
        finally:
            self._deadline_at = None

    def execute(self, query: str, params=()) -> sqlite3.Cursor:
        """Execute one statement under the query timeout. Returns the cursor."""
        conn = self.connection
        with self._deadline(query):
            return conn.execute(query, params)

    def run_sql(self, query: str, params=()) -> list[dict]:
        """Execute SQL, return list of dicts."""
        conn = self.connection
        with self._deadline(query):
            rows = conn.execute(query, params).fetchall()
        return [dict(r) for r in rows]

    def run_sql_nocase(self, query: str, params=()) -> list[dict]:
        """run_sql() with the final comparison made case-insensitive."""
        return self.run_sql(nocase_query(query), params)

    def execute_script(self, script: str):
        """Run several statements. Commits any pending transaction first."""
        conn = self.connection
        with self._deadline(script):
            conn.executescript(script)

    def begin(self):
        self.execute("BEGIN")

    def commit(self):
        if self.in_transaction:
            self.execute("COMMIT")

    def rollback(self):
        if self.in_transaction:
            self._conn.execute("ROLLBACK")

    # ─────────────────────────────────────────────────────────────────────
    # Pragmas
    # ─────────────────────────────────────────────────────────────────────

    def pragma(self, name: str):
        """Read a single pragma value."""
        row = self.execute(f"PRAGMA {name}").fetchone()
        return row[0] if row else None

    def _snapshot(self) -> dict:
        return {
            'journal_mode': self.pragma('journal_mode'),
            'synchronous': self.pragma('synchronous'),
            'locking_mode': self.pragma('locking_mode'),
        }

    def _apply(self, settings: PerformanceSettings):
        if settings.unsafe:
            self.execute("PRAGMA journal_mode=MEMORY")
            self.execute("PRAGMA synchronous=OFF")
        if settings.lock:
            self.execute("PRAGMA locking_mode=EXCLUSIVE")

    def _restore(self, snapshot: dict):
        self.execute(f"PRAGMA journal_mode={snapshot['journal_mode']}")
        self.execute(f"PRAGMA synchronous={int(snapshot['synchronous'])}")
        was_exclusive = self.pragma('locking_mode') == 'exclusive'
        self.execute(f"PRAGMA locking_mode={snapshot['locking_mode']}")
        if was_exclusive and snapshot['locking_mode'] != 'exclusive':
            # Exclusive locks are released on the next access, not on the pragma
            self.execute("SELECT COUNT(*) FROM sqlite_master").fetchone()

    @contextmanager
    def performance(self, unsafe: bool = False, lock: bool = False):
        """Apply unsafe/lock modes for the duration of the block.

        The prior journal_mode, synchronous and locking_mode values are
        restored on exit, whether the block succeeded or not. Must not be
        exited inside an open transaction.
        """
        snapshot = self._snapshot()
        self._apply(PerformanceSettings(unsafe=unsafe, lock=lock))
        try:
            yield snapshot
        finally:
            self._restore(snapshot)

    def set_page_size(self, size: int):
        """Request a page size. Only takes effect on an empty store."""
        self.execute(f"PRAGMA page_size={int(size)}")

    # ─────────────────────────────────────────────────────────────────────
    # Store
    # ─────────────────────────────────────────────────────────────────────

    def file_size(self) -> int:
        """Current store size in bytes. Computed from pages for :memory:."""
        if self.is_memory:
            if self._conn is None:
                return 0
            return self.pragma('page_count') * self.pragma('page_size')
        path = Path(self.location)
        return path.stat().st_size if path.exists() else 0

    def backup(self, target) -> Path:
        """Copy the live store (file or :memory:) to target in one atomic pass."""
        dest_path = Path(target).expanduser().resolve()
        if not self.is_memory and dest_path == Path(self.location):
            raise ValidationError(f"Backup target is the database itself: {dest_path}")
        if dest_path.is_dir():
            raise ValidationError(f"Backup target '{dest_path}' is a directory")
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        src = self.connection
        dest = sqlite3.connect(str(dest_path))
        try:
            src.backup(dest)
        finally:
            dest.close()
        return dest_path

    # ─────────────────────────────────────────────────────────────────────
    # Catalog + ingestion shortcuts
    # ─────────────────────────────────────────────────────────────────────

    def tables(self) -> dict:
        """All tables, name -> Table, in catalog order."""
        return list_tables(self)

    def table(self, name: str):
        """Case-insensitive table lookup. None when absent."""
        return get_table(self, name)

    def import_records(self, records, table_name: str, options=None,
                       progress_cb=None, quiet: bool = False, **kwargs):
        """Store records in table_name. See ingest.import_records."""
        from sqlstow.ingest import import_records
        return import_records(self, records, table_name, options=options,
                              progress_cb=progress_cb, quiet=quiet, **kwargs)
