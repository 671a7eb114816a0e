"""Tests for the shared conversion primitives."""

import math
from dataclasses import dataclass, field

import pytest

from typed_bridge.engine import Table
from typed_bridge.errors import ConversionError, ShapeMismatchError, UnsupportedKindError
from typed_bridge.primitives import (
    build_record,
    construct,
    convert_value,
    decode_scalar,
    encode_scalar,
    is_convertible,
    is_sequence,
    narrow_number,
    zero_value,
)
from typed_bridge.types import AliasTypeDefinition, PrimitiveType, TypeRegistry


class Name(str):
    pass


@dataclass
class Point:
    x: float
    y: float = 1.0
    tags: list[str] = field(default_factory=list)


class TestNarrowNumber:
    """Tests for narrow_number."""

    def test_truncates_toward_zero(self):
        """Test that floats truncate when narrowed to integers."""
        assert narrow_number(3.9, PrimitiveType.INT32) == 3
        assert narrow_number(-3.9, PrimitiveType.INT32) == -3

    def test_wraps_to_width(self):
        """Test that out-of-range integers wrap around."""
        assert narrow_number(256, PrimitiveType.UINT8) == 0
        assert narrow_number(300.0, PrimitiveType.UINT8) == 44
        assert narrow_number(128, PrimitiveType.INT8) == -128
        assert narrow_number(-1, PrimitiveType.UINT16) == 65535

    def test_float_widths(self):
        """Test float32 rounding and float64 pass-through."""
        assert narrow_number(0.1, PrimitiveType.FLOAT64) == 0.1
        assert narrow_number(0.1, PrimitiveType.FLOAT32) != 0.1
        assert narrow_number(0.5, PrimitiveType.FLOAT32) == 0.5
        assert narrow_number(1e300, PrimitiveType.FLOAT32) == math.inf
        assert isinstance(narrow_number(3, PrimitiveType.FLOAT64), float)

    def test_nan_to_integer_fails(self):
        """Test that NaN and infinity cannot become integers."""
        with pytest.raises(ConversionError):
            narrow_number(math.nan, PrimitiveType.INT64)
        with pytest.raises(ConversionError):
            narrow_number(math.inf, PrimitiveType.UINT8)


class TestScalars:
    """Tests for scalar encode and decode."""

    def test_encode(self):
        """Test copying host scalars to script values."""
        registry = TypeRegistry()

        assert encode_scalar(True, registry.get_or_raise("bool")) is True
        assert encode_scalar(3, registry.get_or_raise("uint64")) == 3.0
        assert encode_scalar("x", registry.get_or_raise("string")) == "x"

    def test_encode_shape_mismatch(self):
        """Test that a value of the wrong shape is rejected."""
        registry = TypeRegistry()

        with pytest.raises(ShapeMismatchError):
            encode_scalar("3", registry.get_or_raise("int64"))
        with pytest.raises(ShapeMismatchError):
            encode_scalar(True, registry.get_or_raise("int64"))

    def test_decode(self):
        """Test converting script scalars to host types."""
        registry = TypeRegistry()

        assert decode_scalar(3.0, registry.get_or_raise("uint64")) == 3
        assert isinstance(decode_scalar(3.0, registry.get_or_raise("uint64")), int)
        assert decode_scalar(False, registry.get_or_raise("bool")) is False
        assert decode_scalar("x", registry.get_or_raise("string")) == "x"

    def test_decode_shape_mismatch(self):
        """Test that scalars of the wrong kind are rejected."""
        registry = TypeRegistry()

        with pytest.raises(ShapeMismatchError):
            decode_scalar("3", registry.get_or_raise("int64"))
        with pytest.raises(ShapeMismatchError):
            decode_scalar(1.0, registry.get_or_raise("bool"))
        with pytest.raises(ShapeMismatchError):
            decode_scalar(Table(), registry.get_or_raise("string"))

    def test_decode_complex_unsupported(self):
        """Test that complex destinations are unsupported."""
        registry = TypeRegistry()

        with pytest.raises(UnsupportedKindError):
            decode_scalar(1.0, registry.get_or_raise("complex128"))

    def test_decode_named_string(self):
        """Test that named types are built through their class."""
        registry = TypeRegistry()
        alias = AliasTypeDefinition(
            name="Name", base_type=registry.get_or_raise("string"), python_class=Name
        )

        value = decode_scalar("bryn", alias)
        assert type(value) is Name
        assert value == "bryn"


class TestConstruct:
    """Tests for construct, zero_value and build_record."""

    def test_construct_failure(self):
        """Test that a failing constructor is a conversion error."""
        registry = TypeRegistry()

        class Positive(int):
            def __new__(cls, value):
                if value < 0:
                    raise ValueError("negative")
                return super().__new__(cls, value)

        alias = AliasTypeDefinition(
            name="Positive", base_type=registry.get_or_raise("int64"), python_class=Positive
        )

        assert construct(alias, 3) == 3
        with pytest.raises(ConversionError):
            construct(alias, -3)

    def test_zero_values(self):
        """Test the zero value of each kind."""
        registry = TypeRegistry()
        string = registry.get_or_raise("string")

        assert zero_value(registry.get_or_raise("bool")) is False
        assert zero_value(registry.get_or_raise("uint8")) == 0
        assert zero_value(registry.get_or_raise("float32")) == 0.0
        assert zero_value(string) == ""
        assert zero_value(registry.get_array_type(string)) == []
        assert zero_value(registry.get_fixed_array_type(string, 2)) == ("", "")
        assert zero_value(registry.get_mapping_type(string, string)) == {}
        assert zero_value(registry.get_reference_type(string)) is None
        assert zero_value(registry.any_type) is None

    def test_build_record_defaults(self):
        """Test that missing fields take defaults or zero values."""
        registry = TypeRegistry()
        point_type = registry.type_for(Point)

        point = build_record(point_type, {})
        assert point == Point(x=0.0, y=1.0, tags=[])

        point = build_record(point_type, {"x": 2.0})
        assert point.x == 2.0

    def test_record_zero_value(self):
        """Test that a record's zero value is built from its class."""
        registry = TypeRegistry()

        assert zero_value(registry.type_for(Point)) == Point(x=0.0)


class TestConvertibility:
    """Tests for is_convertible and convert_value."""

    def test_same_base(self):
        """Test that a named type converts to its base and back."""
        registry = TypeRegistry()
        string = registry.get_or_raise("string")
        alias = AliasTypeDefinition(name="Name", base_type=string, python_class=Name)

        assert is_convertible(alias, string)
        assert is_convertible(string, alias)
        assert type(convert_value("bryn", string, alias)) is Name

    def test_numeric(self):
        """Test that numbers convert between widths."""
        registry = TypeRegistry()
        int64 = registry.get_or_raise("int64")
        uint8 = registry.get_or_raise("uint8")

        assert is_convertible(int64, uint8)
        assert convert_value(257, int64, uint8) == 1

    def test_unrelated(self):
        """Test that unrelated types do not convert."""
        registry = TypeRegistry()

        assert not is_convertible(registry.get_or_raise("string"), registry.get_or_raise("int64"))

    def test_interface(self):
        """Test that everything converts to the empty interface."""
        registry = TypeRegistry()

        assert is_convertible(registry.get_or_raise("string"), registry.any_type)


class TestTableShape:
    """Tests for table shape inspection."""

    def test_is_sequence(self):
        """Test the sequence test on tables."""
        assert is_sequence(Table.from_list(["a"]))
        assert not is_sequence(Table.from_dict({"a": 1}))
        assert not is_sequence(Table())
