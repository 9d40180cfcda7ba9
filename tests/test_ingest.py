"""
Tests for sqlstow.ingest — import_records end to end.

Run with: pytest tests/test_ingest.py -v
"""
import sqlite3
from dataclasses import dataclass
from datetime import datetime

import pytest

from sqlstow import Database, ImportOptions, import_records
from sqlstow.errors import NoMatchingFieldsError, SchemaMismatchError, ValidationError
from sqlstow.ingest import PAGE_SIZE
from sqlstow.labels import DATETIME, INT64, STRING

pytestmark = pytest.mark.integration


@dataclass
class Item:
    Name: str
    Count: int
    When: datetime


ITEM = Item("a", 1, datetime(2024, 1, 1, 12, 0, 0, 500000))


class TestRoundTrip:

    def test_creates_table_and_reads_back(self, db):
        result = import_records(db, [ITEM], 'T', quiet=True)
        assert result.created
        assert result.records == 1
        assert result.columns == ['Name', 'Count', 'When']
        rows = db.run_sql('SELECT * FROM T')
        assert rows == [{'Name': 'a', 'Count': 1, 'When': datetime(2024, 1, 1, 12, 0, 0)}]

    def test_column_labels(self, db):
        import_records(db, [ITEM], 'T', quiet=True)
        fields = db.table('T').fields()
        assert [f.type for f in fields.values()] == [STRING, INT64, DATETIME]

    def test_database_shortcut(self, db):
        result = db.import_records([{'x': 1}, {'x': 2}], 'xs', quiet=True)
        assert result.records == 2
        assert db.table('xs').count() == 2

    def test_generator_input(self, db):
        result = import_records(db, ({'i': i} for i in range(25)), 'gen',
                                transaction_set=10, quiet=True)
        assert result.records == 25
        assert result.commits == 3

    def test_second_import_appends(self, db):
        import_records(db, [ITEM], 'T', quiet=True)
        result = import_records(db, [ITEM], 't', quiet=True)
        assert not result.created
        assert result.table_name == 'T'
        assert db.table('T').count() == 2


class TestTransactionSets:

    def test_five_records_in_twos(self, db):
        reports = []
        result = import_records(db, [{'n': i} for i in range(5)], 'T',
                                transaction_set=2, progress_cb=reports.append)
        assert result.commits == 3
        assert len(reports) == 2
        assert db.table('T').count() == 5

    def test_four_records_in_twos(self, db):
        result = import_records(db, [{'n': i} for i in range(4)], 'T',
                                transaction_set=2, quiet=True)
        assert result.commits == 2

    def test_zero_is_one_transaction(self, db):
        result = import_records(db, [{'n': i} for i in range(50)], 'T',
                                transaction_set=0, quiet=True)
        assert result.commits == 1

    def test_negative_rejected(self, db):
        with pytest.raises(ValidationError):
            import_records(db, [{'n': 1}], 'T', transaction_set=-1, quiet=True)
        assert db.table('T') is None

    def test_default_progress_goes_to_stderr(self, db, capsys):
        import_records(db, [{'n': i} for i in range(3)], 'T', transaction_set=1)
        err = capsys.readouterr().err
        assert err.count("[import]") == 3

    def test_quiet_silences_progress(self, db, capsys):
        import_records(db, [{'n': i} for i in range(3)], 'T', transaction_set=1, quiet=True)
        assert capsys.readouterr().err == ""


class TestShapes:

    def test_type_collapse(self, db):
        result = import_records(db, [{'Id': 7, 'Tags': ['x', 'y'], 'Meta': {'k': 1}}],
                                'T', quiet=True)
        assert result.created
        fields = db.table('T').fields()
        assert fields['Id'].type == INT64
        assert fields['Tags'].type == STRING
        assert fields['Meta'].type == STRING
        row = db.run_sql('SELECT * FROM T')[0]
        assert row['Tags'] == 'x,y'
        assert row['Meta'] == "{'k': 1}"

    def test_later_records_follow_first_records_schema(self, db):
        import_records(db, [{'a': 1}, {'a': 2, 'b': 'ignored'}], 'T', quiet=True)
        assert list(db.table('T').fields()) == ['a']
        assert db.table('T').count() == 2


class TestSchemaConflicts:

    def test_mismatch_raises_before_writing(self, db):
        db.run_sql("CREATE TABLE T (X INT64)")
        with pytest.raises(SchemaMismatchError):
            import_records(db, [{'X': 'five'}], 'T', quiet=True)
        assert db.table('T').count() == 0

    def test_null_in_first_record_fits_existing_column(self, db):
        import_records(db, [{'name': 'a', 'n': 3}], 'T', quiet=True)
        result = import_records(db, [{'name': 'b', 'n': None}, {'name': 'c', 'n': 5}],
                                'T', quiet=True)
        assert result.warnings == []
        assert list(db.table('T').fields()) == ['name', 'n']
        assert db.table('T').field('n').type == INT64
        rows = db.run_sql("SELECT name, n FROM T ORDER BY rowid")
        assert rows == [{'name': 'a', 'n': 3}, {'name': 'b', 'n': None},
                        {'name': 'c', 'n': 5}]

    def test_null_in_first_record_creates_string_column(self, db):
        import_records(db, [{'n': None}, {'n': 'x'}], 'T', quiet=True)
        assert db.table('T').field('n').type == STRING

    def test_numeric_into_text_column(self, db):
        db.run_sql("CREATE TABLE T (X TEXT)")
        with pytest.raises(SchemaMismatchError):
            import_records(db, [{'X': 5}], 'T', quiet=True)
        assert db.table('T').count() == 0

    def test_conversion_stores_in_existing_type(self, db):
        db.run_sql("CREATE TABLE T (X TEXT)")
        result = import_records(db, [{'X': 5}], 'T', allow_type_conversion=True, quiet=True)
        assert len(result.warnings) == 1
        row = db.run_sql("SELECT X, typeof(X) AS t FROM T")[0]
        assert row == {'X': '5', 't': 'text'}

    def test_conversion_into_numeric_column(self, db):
        db.run_sql("CREATE TABLE T (n INT64, ok BOOL)")
        result = import_records(db, [{'n': 3.7, 'ok': 'yes'}, {'n': 'abc', 'ok': 'maybe'}],
                                'T', allow_type_conversion=True, quiet=True)
        assert result.records == 2
        rows = db.run_sql("SELECT n, typeof(n) AS t, ok FROM T ORDER BY rowid")
        assert rows == [{'n': 3, 't': 'integer', 'ok': True},
                        {'n': None, 't': 'null', 'ok': None}]

    def test_no_overlap(self, db):
        db.run_sql("CREATE TABLE T (X INT64)")
        with pytest.raises(NoMatchingFieldsError):
            import_records(db, [{'Y': 1}], 'T', quiet=True)

    def test_partial_overlap_warns(self, db, capsys):
        db.run_sql("CREATE TABLE T (X INT64)")
        result = import_records(db, [{'X': 1, 'Y': 2}], 'T')
        assert result.records == 1
        assert any("'Y'" in w for w in result.warnings)
        assert "[import]" in capsys.readouterr().err


class TestOptions:

    def test_define_table_only(self, db):
        result = import_records(db, [ITEM, ITEM], 'T', define_table_only=True, quiet=True)
        assert result.created
        assert result.records == 0
        assert db.table('T').count() == 0

    def test_passthru(self, db):
        result = import_records(db, [ITEM], 'T', passthru=True, quiet=True)
        assert result.table is not None
        assert result.table.name == 'T'
        assert result.table.count() == 1

    def test_no_passthru(self, db):
        assert import_records(db, [ITEM], 'T', quiet=True).table is None

    def test_options_object_and_keywords(self, db):
        opts = ImportOptions(transaction_set=1, passthru=True)
        result = import_records(db, [{'n': 1}, {'n': 2}], 'T', options=opts,
                                transaction_set=0, quiet=True)
        assert result.commits == 1
        assert result.table is not None
        assert opts.transaction_set == 1

    def test_empty_stream(self, db, capsys):
        result = import_records(db, [], 'T')
        assert result.records == 0
        assert result.warnings
        assert db.table('T') is None
        assert "[import]" in capsys.readouterr().err


class TestFileStore:

    def test_new_store_uses_large_pages(self, file_db):
        import_records(file_db, [{'n': 1}], 'T', quiet=True)
        assert file_db.pragma('page_size') == PAGE_SIZE

    def test_unsafe_and_lock_are_restored(self, file_db):
        import_records(file_db, [{'n': i} for i in range(5)], 'T',
                       transaction_set=2, unsafe=True, lock=True, quiet=True)
        assert file_db.pragma('journal_mode') == 'delete'
        assert file_db.pragma('locking_mode') == 'normal'
        assert file_db.pragma('synchronous') == 2

    def test_mid_stream_failure(self, file_db):
        file_db.run_sql("CREATE TABLE T (n INT64 UNIQUE)")
        rows = [{'n': 1}, {'n': 2}, {'n': 3}, {'n': 1}]
        with pytest.raises(sqlite3.IntegrityError):
            import_records(file_db, rows, 'T', transaction_set=2,
                           unsafe=True, lock=True, quiet=True)
        assert file_db.table('T').count() == 2
        assert file_db.pragma('journal_mode') == 'delete'
        assert file_db.pragma('locking_mode') == 'normal'

    def test_other_connection_can_read_after_lock(self, file_db, raw):
        import_records(file_db, [{'n': 1}], 'T', lock=True, quiet=True)
        conn = raw(file_db.location)
        assert conn.execute("SELECT COUNT(*) FROM T").fetchone()[0] == 1

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "keep.db"
        with Database(path) as db:
            import_records(db, [ITEM], 'T', quiet=True)
        with Database(path) as db:
            assert db.table('T').count() == 1
