"""Conversion rules shared by the deep converter and the proxy bridge."""

from __future__ import annotations

import math
import struct
from typing import Any

from typed_bridge.engine import Table, is_number, type_name
from typed_bridge.errors import (
    ConversionError,
    ShapeMismatchError,
    UnsupportedKindError,
)
from typed_bridge.types import (
    FixedArrayTypeDefinition,
    InterfaceTypeDefinition,
    Kind,
    PrimitiveType,
    PrimitiveTypeDefinition,
    RecordTypeDefinition,
    TypeDefinition,
)


def _to_float32(value: float) -> float:
    if math.isnan(value) or math.isinf(value):
        return value
    try:
        return struct.unpack("<f", struct.pack("<f", value))[0]
    except OverflowError:
        return math.copysign(math.inf, value)


def narrow_number(value: int | float, primitive: PrimitiveType) -> int | float:
    """Convert a number to the width of a numeric primitive.

    Integers truncate toward zero and wrap around the destination width;
    there is no range check. NaN and infinities cannot become integers.
    """
    kind = primitive.kind
    if kind is Kind.FLOAT:
        f = float(value)
        if primitive is PrimitiveType.FLOAT32:
            return _to_float32(f)
        return f
    if kind not in (Kind.INT, Kind.UINT):
        raise UnsupportedKindError(primitive.value)

    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ConversionError(f"cannot convert {value} to {primitive.value}")
        value = int(value)

    bits = primitive.bits
    value &= (1 << bits) - 1
    if kind is Kind.INT and value >= 1 << (bits - 1):
        value -= 1 << bits
    return value


def is_sequence(table: Table) -> bool:
    """Check if a table has a non-empty sequence part."""
    return table.max_n() > 0


def construct(type_def: TypeDefinition, value: Any) -> Any:
    """Turn a base value into a value of the named type's host class."""
    cls = type_def.python_class
    if cls is None or isinstance(type_def.resolve_base_type(), RecordTypeDefinition):
        return value
    if isinstance(value, cls):
        return value
    try:
        return cls(value)
    except (TypeError, ValueError) as e:
        raise ConversionError(f"cannot convert {value!r} to {type_def.name}: {e}") from e


def build_record(type_def: TypeDefinition, values: dict[str, Any]) -> Any:
    """Instantiate a record from field values keyed by field name.

    Fields missing from values take their declared default, or the zero
    value of their type when they have none.
    """
    record = type_def.resolve_base_type()
    assert isinstance(record, RecordTypeDefinition)
    cls = type_def.python_class or record.python_class
    if cls is None:
        raise ConversionError(f"type {type_def.name} has no host class to construct")

    kwargs: dict[str, Any] = {}
    for f in record.fields:
        if f.name in values:
            kwargs[f.name] = values[f.name]
        elif not f.has_default:
            kwargs[f.name] = zero_value(f.type_def)
    try:
        return cls(**kwargs)
    except TypeError as e:
        raise ConversionError(f"cannot construct {type_def.name}: {e}") from e


def zero_value(type_def: TypeDefinition) -> Any:
    """Return the value a field of this type holds when nothing was assigned."""
    base = type_def.resolve_base_type()
    kind = base.kind

    if kind is Kind.BOOL:
        value: Any = False
    elif kind in (Kind.INT, Kind.UINT):
        value = 0
    elif kind is Kind.FLOAT:
        value = 0.0
    elif kind is Kind.COMPLEX:
        value = 0j
    elif kind is Kind.STRING:
        value = ""
    elif isinstance(base, FixedArrayTypeDefinition):
        value = tuple(zero_value(base.element_type) for _ in range(base.length))
    elif kind is Kind.SEQUENCE:
        value = []
    elif kind is Kind.MAPPING:
        value = {}
    elif kind is Kind.RECORD:
        return build_record(type_def, {})
    else:
        # references, interfaces and functions
        return None
    return construct(type_def, value)


def encode_scalar(value: Any, type_def: TypeDefinition) -> Any:
    """Copy a bool, numeric or string host value into a script value."""
    kind = type_def.kind
    if kind is Kind.BOOL:
        if not isinstance(value, bool):
            raise ShapeMismatchError(type(value).__name__, type_def.name)
        return value
    if kind is Kind.STRING:
        if not isinstance(value, str):
            raise ShapeMismatchError(type(value).__name__, type_def.name)
        return str(value)
    if kind.is_numeric:
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            raise ShapeMismatchError(type(value).__name__, type_def.name)
        return float(value)
    if kind is Kind.COMPLEX:
        raise UnsupportedKindError(type_def.name)
    raise ShapeMismatchError(type(value).__name__, type_def.name)


def decode_scalar(value: Any, type_def: TypeDefinition) -> Any:
    """Convert a script boolean, number or string to a scalar host type."""
    base = type_def.resolve_base_type()
    kind = base.kind

    if kind is Kind.BOOL:
        if not isinstance(value, bool):
            raise ShapeMismatchError(type_name(value), type_def.name)
        return construct(type_def, value)
    if kind is Kind.STRING:
        if not isinstance(value, str):
            raise ShapeMismatchError(type_name(value), type_def.name)
        return construct(type_def, value)
    if kind.is_numeric:
        if not is_number(value):
            raise ShapeMismatchError(type_name(value), type_def.name)
        assert isinstance(base, PrimitiveTypeDefinition)
        return construct(type_def, narrow_number(value, base.primitive))
    if kind is Kind.COMPLEX:
        raise UnsupportedKindError(type_def.name)
    raise ShapeMismatchError(type_name(value), type_def.name)


def is_convertible(src: TypeDefinition, dest: TypeDefinition) -> bool:
    """Check whether a host value of type src may be converted to dest."""
    if src is dest:
        return True
    src_base = src.resolve_base_type()
    dest_base = dest.resolve_base_type()
    if src_base is dest_base:
        return True
    if src_base.kind.is_numeric and dest_base.kind.is_numeric:
        return True
    if isinstance(dest_base, InterfaceTypeDefinition):
        return dest_base.satisfied_by(src)
    return False


def convert_value(value: Any, src: TypeDefinition, dest: TypeDefinition) -> Any:
    """Convert a host value between two convertible types."""
    if src is dest:
        return value
    dest_base = dest.resolve_base_type()
    if isinstance(dest_base, InterfaceTypeDefinition):
        return value
    if isinstance(dest_base, PrimitiveTypeDefinition) and dest_base.kind.is_numeric:
        value = narrow_number(value, dest_base.primitive)
    return construct(dest, value)
