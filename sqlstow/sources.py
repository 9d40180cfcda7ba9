"""
Record sources for the CLI — files in, dicts out, lazily.

    .jsonl / .ndjson   one JSON value per line
    .json              one object, or an array of them
    .csv               header row + rows (every value is text)

Non-object JSON values are wrapped as {"value": ...} so every record has
named properties.
"""

import csv
import json
from pathlib import Path
from typing import Iterator

from sqlstow.errors import ValidationError

FORMATS = ('jsonl', 'json', 'csv')

_SUFFIXES = {
    '.jsonl': 'jsonl',
    '.ndjson': 'jsonl',
    '.json': 'json',
    '.csv': 'csv',
}


def detect_format(path: Path) -> str:
    fmt = _SUFFIXES.get(Path(path).suffix.lower())
    if fmt is None:
        raise ValidationError(
            f"Cannot tell the format of '{path}'; pass one of {', '.join(FORMATS)}"
        )
    return fmt


def _as_record(value) -> dict:
    return value if isinstance(value, dict) else {'value': value}


def iter_jsonl(path: Path) -> Iterator[dict]:
    with open(path, 'r', encoding='utf-8') as f:
        for lineno, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                yield _as_record(json.loads(line))
            except json.JSONDecodeError as e:
                raise ValidationError(f"{path}:{lineno}: invalid JSON ({e.msg})") from e


def iter_json(path: Path) -> Iterator[dict]:
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ValidationError(f"{path}: invalid JSON ({e.msg})") from e
    if isinstance(data, list):
        for item in data:
            yield _as_record(item)
    else:
        yield _as_record(data)


def iter_csv(path: Path) -> Iterator[dict]:
    with open(path, 'r', encoding='utf-8', newline='') as f:
        yield from csv.DictReader(f)


_READERS = {'jsonl': iter_jsonl, 'json': iter_json, 'csv': iter_csv}


def read_records(path, fmt: str = None) -> Iterator[dict]:
    """Lazily read records from path. Format from fmt, else from the suffix."""
    path = Path(path)
    if not path.is_file():
        raise ValidationError(f"Source file not found: {path}")
    return _READERS[fmt or detect_format(path)](path)
