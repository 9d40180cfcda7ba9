"""
sqlstow Test Fixtures

In-memory and file-backed stores, plus a small pre-built schema for
catalog, reconcile and index tests.

Run with: pytest tests/ -v
"""
import sqlite3

import pytest

from sqlstow.core import Database


# =============================================================================
# SCHEMA DDL: a hand-written store, as another tool would leave it
# =============================================================================

PEOPLE_DDL = """
CREATE TABLE people (
    id INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    email VARCHAR(200) UNIQUE,
    age INT,
    score REAL DEFAULT 0.0,
    active BOOLEAN,
    joined DATETIME,
    photo BLOB,
    notes
);
CREATE INDEX idx_people_name ON people(name);
CREATE INDEX idx_people_age_score ON people(age, score);

CREATE TABLE Orders (
    order_id INTEGER PRIMARY KEY,
    person_id INTEGER,
    total REAL
);
"""

PEOPLE_ROWS = [
    (1, 'Alice', 'alice@example.com', 34, 9.5, 1, '2023-04-01 09:30:00'),
    (2, 'bob', 'bob@example.com', 27, 7.0, 0, '2022-11-15 17:05:00'),
    (3, 'Carol', None, 41, 8.25, 1, None),
]


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def db():
    """Empty in-memory Database."""
    d = Database(':memory:')
    yield d
    d.close()


@pytest.fixture
def file_db(tmp_path):
    """Empty file-backed Database in tmp_path."""
    d = Database(tmp_path / "store.db")
    yield d
    d.close()


@pytest.fixture
def people_db(db):
    """In-memory Database with the people/Orders schema and three people."""
    db.execute_script(PEOPLE_DDL)
    db.begin()
    for row in PEOPLE_ROWS:
        db.execute(
            "INSERT INTO people (id, name, email, age, score, active, joined) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)", row
        )
    db.commit()
    return db


@pytest.fixture
def raw(tmp_path):
    """Open a plain sqlite3 connection on a file path (bypasses sqlstow)."""
    opened = []

    def _open(path):
        conn = sqlite3.connect(str(path))
        opened.append(conn)
        return conn

    yield _open
    for conn in opened:
        conn.close()
