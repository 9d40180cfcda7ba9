"""
sqlstow Reconcile — decide how inferred columns land in a table.

    no table        -> CREATE TABLE from the specs, every column matched
    table exists    -> match specs to columns by name (case-insensitive)
        same type           matched
        unknown type        matched (untyped None fits any column)
        other type          SchemaMismatchError, or with allow_type_conversion
                            a warning and the column's own type for coercion
        no such column      warning; the property is not written
        nothing matched     NoMatchingFieldsError

Never alters an existing table.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from sqlstow.catalog import Table, get_table
from sqlstow.errors import NoMatchingFieldsError, SchemaMismatchError, ValidationError
from sqlstow.infer import ColumnSpec
from sqlstow.labels import quote_ident, same_storage

if TYPE_CHECKING:
    from sqlstow.core import Database


@dataclass
class ReconcileResult:
    """Outcome of reconciling one record shape against one table."""
    table: Table
    columns: list[str]
    types: dict[str, str]
    properties: dict[str, str]  # column -> record property it is read from
    created: bool = False
    missing: list[str] = field(default_factory=list)
    converted: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def all_matched(self) -> bool:
        return not self.missing


def create_table_sql(table_name: str, specs: list[ColumnSpec]) -> str:
    cols = ",\n    ".join(s.definition for s in specs)
    return f"CREATE TABLE {quote_ident(table_name)} (\n    {cols}\n)"


def _check_specs(table_name: str, specs: list[ColumnSpec]):
    if not table_name or not str(table_name).strip():
        raise ValidationError("Table name is empty")
    if not specs:
        raise ValidationError(
            f"Record for table '{table_name}' has no readable properties"
        )
    seen = {}
    for s in specs:
        if not s.name:
            raise ValidationError(f"Record for table '{table_name}' has an unnamed property")
        key = s.name.lower()
        if key in seen:
            raise ValidationError(
                f"Properties '{seen[key]}' and '{s.name}' differ only by case; "
                f"SQLite column names are case-insensitive"
            )
        seen[key] = s.name


def reconcile(db: 'Database', table_name: str, specs: list[ColumnSpec],
              allow_type_conversion: bool = False) -> ReconcileResult:
    """Create table_name from specs, or match specs against its columns.

    Raises SchemaMismatchError / NoMatchingFieldsError before anything is
    written. Per-field problems come back in ReconcileResult.warnings.
    """
    _check_specs(table_name, specs)

    table = get_table(db, table_name)
    if table is None:
        db.execute(create_table_sql(table_name, specs))
        table = get_table(db, table_name)
        return ReconcileResult(
            table=table,
            columns=[s.name for s in specs],
            types={s.name: s.storage_type for s in specs},
            properties={s.name: s.name for s in specs},
            created=True,
        )

    existing = {name.lower(): f for name, f in table.fields().items()}
    result = ReconcileResult(table=table, columns=[], types={}, properties={})

    for spec in specs:
        f = existing.get(spec.name.lower())
        if f is None:
            result.missing.append(spec.name)
            result.warnings.append(
                f"Field '{spec.name}' ({spec.storage_type}) does not exist in table "
                f"'{table.name}'; its values are not imported"
            )
            continue

        if spec.type is not None and not same_storage(f.type, spec.type):
            if not allow_type_conversion:
                raise SchemaMismatchError(table.name, f.name, f.type, spec.type)
            result.converted.append(f.name)
            result.warnings.append(
                f"Field '{f.name}' is {f.type} in table '{table.name}' but the "
                f"record provides {spec.type}; values are converted to {f.type}"
            )

        result.columns.append(f.name)
        result.types[f.name] = f.type
        result.properties[f.name] = spec.name

    if not result.columns:
        raise NoMatchingFieldsError(
            table.name, [s.name for s in specs], list(table.fields())
        )
    return result
