"""
sqlstow Infer — one record in, ordered column specs out.

Records are described as (name, declared_type, value) triples:

    dict / Mapping     keys in order, no declared types
    dataclass          fields (annotations) then public properties
    NamedTuple         _fields (annotations when present)
    any other object   public instance attributes then public properties

Each triple becomes a ColumnSpec. The declared type wins when it names one
concrete class; otherwise the runtime type of the value decides. Type names
are qualified ("builtins.int", "numpy.float32", "myapp.Point"); a scalar
namespace prefix is stripped, anything still dotted is a nested object and
is stored as String. An untyped property holding None has no label at all:
an existing column of any type takes it, a new column becomes String.
"""

import dataclasses
import functools
import types
import typing
from collections.abc import Mapping
from typing import Optional

import numpy as np

from sqlstow.labels import (
    BLOB, BOOL, DATETIME, DECLARED_TYPES, DOUBLE, INT32, INT64, STRING,
    quote_ident,
)

SCALAR_NAMESPACES = ('builtins.', 'datetime.', 'numpy.')

# Bare type name (after namespace strip) -> storage label
TYPE_LABELS = {
    'int': INT64,
    'int8': INT32, 'int16': INT32, 'int32': INT32,
    'uint8': INT32, 'uint16': INT32,
    'byte': INT32, 'ubyte': INT32, 'short': INT32, 'ushort': INT32, 'intc': INT32,
    'int64': INT64, 'uint32': INT64, 'uint64': INT64,
    'long': INT64, 'ulong': INT64, 'longlong': INT64, 'ulonglong': INT64,
    'uintc': INT64, 'intp': INT64, 'uintp': INT64,
    'float': DOUBLE, 'float16': DOUBLE, 'float32': DOUBLE, 'float64': DOUBLE,
    'half': DOUBLE, 'single': DOUBLE, 'double': DOUBLE, 'longdouble': DOUBLE,
    'bool': BOOL, 'bool_': BOOL, 'boolean': BOOL,
    'datetime': DATETIME, 'date': DATETIME, 'datetime64': DATETIME,
    'str': STRING, 'str_': STRING,
    'bytes': BLOB, 'bytearray': BLOB, 'memoryview': BLOB, 'bytes_': BLOB,
}

# Declared types that say nothing about the stored value
_OPAQUE = (typing.Any, object, np.generic, np.number)


@dataclasses.dataclass(frozen=True)
class ColumnSpec:
    """Proposed column: name + storage label (None = unknown, value was None)."""
    name: str
    type: Optional[str]

    @property
    def storage_type(self) -> str:
        """Label used when the column is created. Unknown becomes String."""
        return self.type or STRING

    @property
    def definition(self) -> str:
        """Column definition for CREATE TABLE."""
        return f"{quote_ident(self.name)} {DECLARED_TYPES[self.storage_type]}"


# =============================================================================
# Record description
# =============================================================================

def _type_hints(obj) -> dict:
    try:
        return typing.get_type_hints(obj)
    except Exception:
        # Unresolvable forward refs: keep the raw annotations (strings)
        return dict(getattr(obj, '__annotations__', None) or {})


def _properties(cls) -> list:
    """Public properties of cls in definition order, base classes first."""
    found = {}
    for klass in reversed(cls.__mro__):
        for name, attr in vars(klass).items():
            if name.startswith('_'):
                continue
            if isinstance(attr, (property, functools.cached_property)):
                found[name] = attr
    return list(found.items())


def _return_hint(prop):
    getter = prop.fget if isinstance(prop, property) else prop.func
    if getter is None:
        return None
    return _type_hints(getter).get('return')


def describe_record(record) -> list[tuple]:
    """Enumerate readable properties as (name, declared_type, value) triples."""
    if isinstance(record, Mapping):
        return [(str(k), None, v) for k, v in record.items()]

    cls = type(record)
    hints = _type_hints(cls)
    if dataclasses.is_dataclass(record) and not isinstance(record, type):
        names = [f.name for f in dataclasses.fields(record)]
    elif isinstance(record, tuple) and hasattr(record, '_fields'):
        names = list(record._fields)
    else:
        names = [n for n in getattr(record, '__dict__', {}) if not n.startswith('_')]

    triples = [(n, hints.get(n), getattr(record, n)) for n in names]
    seen = set(names)
    for name, prop in _properties(cls):
        if name in seen:
            continue
        try:
            value = getattr(record, name)
        except Exception:
            continue  # getter raised: not a readable property
        triples.append((name, _return_hint(prop), value))
    return triples


# =============================================================================
# Type inference
# =============================================================================

def qualified_name(tp) -> str:
    return f"{tp.__module__}.{tp.__qualname__}"


def _resolve_declared(hint):
    """Reduce a type hint to one class (or a bare name string), else None."""
    if hint is None or any(hint is o for o in _OPAQUE):
        return None
    if isinstance(hint, str):
        # Unresolved annotation: usable only when it is a plain (dotted) name
        return hint if hint.replace('.', '').replace('_', '').isalnum() else None

    origin = typing.get_origin(hint)
    if origin is typing.Annotated:
        return _resolve_declared(typing.get_args(hint)[0])
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(hint) if a is not type(None)]
        return _resolve_declared(args[0]) if len(args) == 1 else None
    if origin is not None:
        return origin if isinstance(origin, type) else None
    return hint if isinstance(hint, type) else None


def type_name(hint, value) -> Optional[str]:
    """Qualified type name for one property: declared first, runtime second."""
    declared = _resolve_declared(hint)
    if isinstance(declared, str):
        return declared
    if declared is not None:
        return qualified_name(declared)
    if value is not None:
        return qualified_name(type(value))
    return None


def label_for_type_name(name: Optional[str]) -> Optional[str]:
    """Storage label for a qualified type name. None when nothing is known."""
    if name is None:
        return None  # untyped None: any existing column accepts it
    for prefix in SCALAR_NAMESPACES:
        if name.startswith(prefix):
            name = name[len(prefix):]
            break
    if '.' in name:
        return STRING  # nested/complex type: stored as text
    return TYPE_LABELS.get(name, STRING)


def infer_label(hint, value) -> Optional[str]:
    return label_for_type_name(type_name(hint, value))


def infer_columns(record) -> list[ColumnSpec]:
    """Ordered ColumnSpecs for one record. Same shape in, same specs out."""
    return [ColumnSpec(name, infer_label(hint, value))
            for name, hint, value in describe_record(record)]
