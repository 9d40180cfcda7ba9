#!/usr/bin/env python3
"""
sqlstow CLI — import files into SQLite, inspect and index the result.

sqlstow import events.jsonl --db app.db --table events
sqlstow tables --db app.db
sqlstow fields events --db app.db
sqlstow query "SELECT * FROM events WHERE kind = 'LOGIN'" --db app.db --nocase
sqlstow index add events user_id --db app.db [--unique]
sqlstow index drop events user_id --db app.db
sqlstow backup snapshot.db --db app.db
"""

import argparse
import json
import sqlite3
import sys

from sqlstow.core import MEMORY, Database
from sqlstow.errors import SqlstowError
from sqlstow.ingest import DEFAULT_TRANSACTION_SET, ImportOptions, format_size
from sqlstow.sources import FORMATS, read_records


def _console():
    from rich.console import Console
    return Console()


def _esc(text) -> str:
    from rich.markup import escape
    return escape(str(text))


def _open(args) -> Database:
    return Database(args.db, timeout=args.timeout)


# ============================================================
# sqlstow import
# ============================================================

def cmd_import(args) -> int:
    """Stream a file into a table, chunk progress on a spinner."""
    from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

    console = _console()
    options = ImportOptions(
        transaction_set=args.transaction_set,
        unsafe=args.unsafe,
        lock=args.lock,
        define_table_only=args.define_only,
        allow_type_conversion=args.allow_conversion,
        passthru=True,
    )
    records = read_records(args.source, args.format)

    with _open(args) as db:
        with Progress(
            SpinnerColumn(spinner_name="dots", finished_text="[green]✓[/green]"),
            TextColumn("  [dim]{task.description:<12}[/dim]"),
            TextColumn("[dim]{task.fields[info]}[/dim]"),
            TimeElapsedColumn(),
            console=console,
            transient=args.quiet,
            disable=args.quiet,
        ) as progress:
            task = progress.add_task("Importing", total=None, info="")

            def _progress(report):
                progress.update(
                    task,
                    info=f"{report.records:,} records · {format_size(report.store_size)}",
                )

            result = db.import_records(records, args.table, options=options,
                                       progress_cb=_progress, quiet=True)
            progress.update(task, total=1, completed=1,
                            info=f"{result.records:,} records")

        for w in result.warnings:
            console.print(f"  [yellow]{_esc(w)}[/yellow]")

        if not args.quiet:
            verb = "created" if result.created else "existing"
            console.print(
                f"  [bold]{result.records:,}[/bold] records → "
                f"[bold]{_esc(result.table_name)}[/bold] ({verb}, "
                f"{len(result.columns)} columns, {result.commits} commits, "
                f"{result.elapsed:.1f}s)"
            )
    return 0


# ============================================================
# sqlstow tables / fields / query
# ============================================================

def cmd_tables(args) -> int:
    from rich.table import Table as RichTable

    with _open(args) as db:
        grid = RichTable(title=_esc(db.location))
        grid.add_column("table")
        grid.add_column("rows (approx)", justify="right")
        grid.add_column("columns", justify="right")
        for name, table in db.tables().items():
            grid.add_row(_esc(name), f"{table.row_count_estimate():,}",
                         str(len(table.fields())))
        _console().print(grid)
    return 0


def cmd_fields(args) -> int:
    from rich.table import Table as RichTable

    console = _console()
    with _open(args) as db:
        table = db.table(args.table)
        if table is None:
            console.print(f"[red]No table named '{_esc(args.table)}'[/red]")
            return 1
        grid = RichTable(title=_esc(table.name))
        for col in ("#", "field", "type", "declared", "not null", "indexes"):
            grid.add_column(col)
        for f in table.fields().values():
            grid.add_row(
                str(f.position), _esc(f.name), f.type, _esc(f.declared_type),
                "yes" if f.not_null else "",
                _esc(", ".join(ix.name for ix in f.indexes())),
            )
        console.print(grid)
    return 0


def cmd_query(args) -> int:
    from rich.table import Table as RichTable

    with _open(args) as db:
        run = db.run_sql_nocase if args.nocase else db.run_sql
        rows = run(args.sql)

    if args.json:
        print(json.dumps(rows, indent=2, default=str))
        return 0

    console = _console()
    if not rows:
        console.print("[dim](no rows)[/dim]")
        return 0
    grid = RichTable()
    for col in rows[0]:
        grid.add_column(_esc(col))
    for row in rows:
        grid.add_row(*("" if v is None else _esc(v) for v in row.values()))
    console.print(grid)
    return 0


# ============================================================
# sqlstow index / backup
# ============================================================

def cmd_index(args) -> int:
    console = _console()
    with _open(args) as db:
        table = db.table(args.table)
        if table is None:
            console.print(f"[red]No table named '{_esc(args.table)}'[/red]")
            return 1

        if args.action == "add":
            for w in table.add_index(args.column, unique=args.unique,
                                     name=args.name, quiet=True):
                console.print(f"  [yellow]{_esc(w)}[/yellow]")
            console.print(f"  [green]indexed[/green] {_esc(table.name)}.{_esc(args.column)}")
            return 0

        field = table.field(args.column)
        if field is None:
            console.print(f"[red]No column '{_esc(args.column)}' in '{_esc(table.name)}'[/red]")
            return 1
        dropped = field.drop_index()
        if dropped:
            console.print(f"  [green]dropped[/green] {_esc(', '.join(dropped))}")
        else:
            console.print(f"  [dim]no index on {_esc(table.name)}.{_esc(field.name)}[/dim]")
    return 0


def cmd_backup(args) -> int:
    with _open(args) as db:
        target = db.backup(args.target)
    _console().print(f"  [green]backup[/green] {_esc(target)}")
    return 0


# ============================================================
# Main
# ============================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlstow",
        description="Store records in SQLite without writing a schema.",
    )
    timeout = argparse.ArgumentParser(add_help=False)
    timeout.add_argument("--timeout", type=float, default=None,
                         help="Query timeout in seconds")
    common = argparse.ArgumentParser(add_help=False, parents=[timeout])
    common.add_argument("--db", default=MEMORY,
                        help="Database file (default: in-memory, discarded on exit)")

    sub = parser.add_subparsers(dest="command")

    # import always targets a file store
    imp = sub.add_parser("import", parents=[timeout], help="Import a JSON/JSONL/CSV file")
    imp.add_argument("--db", required=True, help="Database file to import into")
    imp.add_argument("source", help="Record file")
    imp.add_argument("--table", required=True, help="Target table")
    imp.add_argument("--format", choices=FORMATS, help="Override format detection")
    imp.add_argument("--transaction-set", type=int, default=DEFAULT_TRANSACTION_SET,
                     help=f"Records per transaction, 0 = one transaction "
                          f"(default: {DEFAULT_TRANSACTION_SET})")
    imp.add_argument("--unsafe", action="store_true",
                     help="In-memory journal and no fsync while importing")
    imp.add_argument("--lock", action="store_true",
                     help="Hold an exclusive database lock while importing")
    imp.add_argument("--define-only", action="store_true",
                     help="Create/validate the table from the first record only")
    imp.add_argument("--allow-conversion", action="store_true",
                     help="Convert values whose type conflicts with an existing column")
    imp.add_argument("--quiet", action="store_true", help="No progress output")

    sub.add_parser("tables", parents=[common], help="List tables")

    fld = sub.add_parser("fields", parents=[common], help="List a table's fields")
    fld.add_argument("table")

    qry = sub.add_parser("query", parents=[common], help="Run SQL")
    qry.add_argument("sql")
    qry.add_argument("--nocase", action="store_true", help="Compare case-insensitively")
    qry.add_argument("--json", action="store_true", help="Output raw JSON")

    idx = sub.add_parser("index", parents=[common], help="Add or drop a column index")
    idx.add_argument("action", choices=["add", "drop"])
    idx.add_argument("table")
    idx.add_argument("column")
    idx.add_argument("--unique", action="store_true")
    idx.add_argument("--name", help="Index name (default: idx_<table>_<column>)")

    bak = sub.add_parser("backup", parents=[common], help="Copy the database to a file")
    bak.add_argument("target")

    return parser


_COMMANDS = {
    "import": cmd_import,
    "tables": cmd_tables,
    "fields": cmd_fields,
    "query": cmd_query,
    "index": cmd_index,
    "backup": cmd_backup,
}


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    handler = _COMMANDS.get(args.command)
    if handler is None:
        parser.print_help()
        return 0
    try:
        return handler(args)
    except (SqlstowError, sqlite3.Error) as e:
        _console().print(f"[red]{type(e).__name__}: {_esc(e)}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
