"""
sqlstow errors — one exception per failure kind.

Recoverable per-field problems are not errors: they come back as warning
strings (ReconcileResult.warnings, ImportResult.warnings). Everything here
aborts the operation that raised it.
"""


class SqlstowError(Exception):
    """Base for every error raised by sqlstow."""


class StoreConnectionError(SqlstowError):
    """The store could not be opened (permissions, disk space, lock contention)."""

    def __init__(self, location: str, cause: Exception):
        self.location = location
        self.cause = cause
        super().__init__(
            f"Cannot open database '{location}': {cause}. "
            f"Check that the path is writable, the disk is not full and no other "
            f"process holds an exclusive lock."
        )


class ValidationError(SqlstowError):
    """Invalid caller input: store path, table name, option value."""


class QueryTimeoutError(SqlstowError):
    """A statement ran longer than Database.timeout."""


class SchemaMismatchError(SqlstowError):
    """Existing column type conflicts with the inferred type."""

    def __init__(self, table: str, field: str, existing: str, inferred: str):
        self.table = table
        self.field = field
        self.existing = existing
        self.inferred = inferred
        super().__init__(
            f"Field '{field}' in table '{table}' is {existing}, "
            f"but the record provides {inferred}. "
            f"Use allow_type_conversion to store it as {existing}."
        )


class NoMatchingFieldsError(SqlstowError):
    """None of the record's fields exist in the target table."""

    def __init__(self, table: str, inferred: list, existing: list):
        self.table = table
        self.inferred = list(inferred)
        self.existing = list(existing)
        super().__init__(
            f"No record field matches a column of table '{table}'. "
            f"Record fields: {', '.join(self.inferred) or '(none)'}; "
            f"table columns: {', '.join(self.existing) or '(none)'}"
        )


class DuplicateIndexError(SqlstowError):
    """The column already carries an index."""


class UniqueConstraintError(SqlstowError):
    """A unique index cannot be built because the column holds duplicates."""
