"""Tests for deep conversion."""

from dataclasses import dataclass, field
from typing import Annotated

import pytest

from typed_bridge.config import BridgeOptions
from typed_bridge.convert import DeepConverter
from typed_bridge.engine import Function, Table
from typed_bridge.errors import (
    ConversionError,
    FieldNotFoundError,
    IncompatibleHandleError,
    NonStringKeyError,
    ShapeMismatchError,
    SizeMismatchError,
    UnsupportedKindError,
)
from typed_bridge.instance import TypedValue
from typed_bridge.proxy import ProxyBridge
from typed_bridge.types import TypeRegistry


@dataclass
class Blah:
    name: str = field(default="", metadata={"lua": "name"})
    color: Annotated[int, "uint64"] = field(default=0, metadata={"lua": "color"})


@dataclass
class Team:
    title: str = field(default="", metadata={"lua": "title,omitempty"})
    members: list[Blah] = field(default_factory=list, metadata={"lua": "members"})
    scores: dict[str, float] = field(default_factory=dict, metadata={"lua": "scores"})


class StringSlice(list[str]):
    pass


class TestPrimitiveRoundTrip:
    """Tests for encoding and decoding every primitive."""

    @pytest.mark.parametrize(
        "dsl, value",
        [
            ("bool", True),
            ("bool", False),
            ("int8", -128),
            ("uint8", 200),
            ("int16", -30000),
            ("uint16", 65535),
            ("int32", -(2**31)),
            ("uint32", 2**32 - 1),
            ("int64", -(2**53)),
            ("uint64", 2**53),
            ("float32", 0.5),
            ("float64", 1.25),
            ("string", "héllo"),
        ],
    )
    def test_round_trip(self, dsl, value):
        """Test that decode(encode(v)) gives v back."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        type_def = registry.parse_type(dsl)

        script_value = converter.native_to_script(value, type_def)
        assert converter.script_to_native(script_value, type_def) == value

    def test_numbers_become_floats(self):
        """Test that every integer width encodes to a float."""
        converter = DeepConverter(TypeRegistry())

        assert converter.native_to_script(7) == 7.0
        assert isinstance(converter.native_to_script(7), float)

    def test_typed_value(self):
        """Test that a TypedValue carries its own type."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        assert converter.native_to_script(TypedValue(3, registry.parse_type("uint8"))) == 3.0


class TestEncode:
    """Tests for native_to_script."""

    def test_record_with_tags(self):
        """Test that a record encodes to a table keyed by tag."""
        converter = DeepConverter(TypeRegistry())

        table = converter.native_to_script(Blah(name="bryn", color=3), tag_name="lua")
        assert table.to_dict() == {"name": "bryn", "color": 3.0}

    def test_record_round_trip(self):
        """Test that a record decodes back to an equal record."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        blah = Blah(name="bryn", color=3)

        table = converter.native_to_script(blah, tag_name="lua")
        assert converter.script_to_native(table, registry.type_for(Blah), "lua") == blah

    def test_default_tag(self):
        """Test that the configured default tag name applies."""
        converter = DeepConverter(TypeRegistry(), options=BridgeOptions(default_tag="lua"))

        table = converter.native_to_script(Team())
        assert set(table.to_dict()) == {"members", "scores"}
        assert table["members"].entry_count() == 0

    def test_nested_record(self):
        """Test that nested records, sequences and mappings encode recursively."""
        converter = DeepConverter(TypeRegistry())
        team = Team(title="t", members=[Blah(name="a", color=1)], scores={"a": 2.5})

        table = converter.native_to_script(team, tag_name="lua")
        assert table["title"] == "t"
        assert table["members"][1]["name"] == "a"
        assert table["members"][1]["color"] == 1.0
        assert table["scores"]["a"] == 2.5

    def test_omitempty(self):
        """Test that omitempty zero values are skipped."""
        converter = DeepConverter(TypeRegistry())

        table = converter.native_to_script(Team(), tag_name="lua")
        assert "title" not in table

    def test_sequence(self):
        """Test that lists and tuples encode to 1-based tables."""
        converter = DeepConverter(TypeRegistry())

        assert converter.native_to_script(["foo", "bar"]).to_list() == ["foo", "bar"]
        assert converter.native_to_script(("foo",)).to_list() == ["foo"]
        assert converter.native_to_script(StringSlice(["x"])).to_list() == ["x"]

    def test_mapping(self):
        """Test that dicts encode key by key."""
        converter = DeepConverter(TypeRegistry())

        table = converter.native_to_script({"a": 1, 2: "b"})
        assert table["a"] == 1.0
        assert table[2] == "b"

    def test_nil_key(self):
        """Test that a key encoding to nil fails."""
        converter = DeepConverter(TypeRegistry())

        with pytest.raises(ShapeMismatchError):
            converter.native_to_script({None: 1})

    def test_none(self):
        """Test that None encodes to nil."""
        converter = DeepConverter(TypeRegistry())

        assert converter.native_to_script(None) is None

    def test_unsupported(self):
        """Test that complex numbers and functions cannot be copied."""
        converter = DeepConverter(TypeRegistry())

        with pytest.raises(UnsupportedKindError):
            converter.native_to_script(1j)
        with pytest.raises(UnsupportedKindError):
            converter.native_to_script(lambda: 1)
        with pytest.raises(UnsupportedKindError):
            converter.native_to_script({"a": 1j})

    def test_declared_type_mismatch(self):
        """Test that a value not matching its declared type fails."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        with pytest.raises(ShapeMismatchError):
            converter.native_to_script("x", registry.parse_type("int64"))
        with pytest.raises(ShapeMismatchError):
            converter.native_to_script(3, registry.parse_type("string[]"))


class TestDecode:
    """Tests for script_to_native."""

    def test_sequence(self):
        """Test that a table decodes to a dynamically sized sequence."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        table = Table.from_dict({1: "foo", 2: "bar"})

        assert converter.script_to_native(table, registry.parse_type("string[]")) == ["foo", "bar"]

    def test_fixed_array(self):
        """Test that a table decodes to a fixed-size array."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        table = Table.from_dict({1: "foo", 2: "bar"})

        assert converter.script_to_native(table, registry.parse_type("string[2]")) == ("foo", "bar")

    def test_fixed_array_strict(self):
        """Test that the strict policy rejects a table of the wrong length."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        with pytest.raises(SizeMismatchError):
            converter.script_to_native(Table.from_list(["a"]), registry.parse_type("string[2]"))
        with pytest.raises(SizeMismatchError):
            converter.script_to_native(
                Table.from_list(["a", "b", "c"]), registry.parse_type("string[2]")
            )

    def test_fixed_array_lenient(self):
        """Test that the lenient policy truncates and pads."""
        registry = TypeRegistry()
        converter = DeepConverter(registry, options=BridgeOptions(fixed_array="lenient"))
        dest = registry.parse_type("string[2]")

        assert converter.script_to_native(Table.from_list(["a"]), dest) == ("a", "")
        assert converter.script_to_native(Table.from_list(["a", "b", "c"]), dest) == ("a", "b")

    def test_generic_mapping(self):
        """Test that numbers decode to floats under a generic value type."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        table = Table.from_dict({"name": "bryn", "color": 123})

        result = converter.script_to_native(table, registry.parse_type("{string: any}"))
        assert result == {"name": "bryn", "color": 123.0}
        assert isinstance(result["color"], float)

    def test_mapping_reads_every_entry(self):
        """Test that mappings include the sequence part and the hash part."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        table = Table.from_dict({1: "a", "k": "b"})

        result = converter.script_to_native(table, registry.parse_type("{any: string}"))
        assert result == {1.0: "a", "k": "b"}

    def test_numeric_destination(self):
        """Test that a number decodes into any numeric width."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        assert converter.script_to_native(3.7, registry.parse_type("uint8")) == 3
        assert converter.script_to_native(300.0, registry.parse_type("uint8")) == 44

    def test_nan_to_integer(self):
        """Test that NaN cannot be decoded to an integer."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        with pytest.raises(ConversionError):
            converter.script_to_native(float("nan"), registry.parse_type("int32"))

    def test_named_sequence(self):
        """Test that named types are built through their class."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        result = converter.script_to_native(Table.from_list(["a"]), registry.type_for(StringSlice))
        assert type(result) is StringSlice
        assert result == ["a"]

    def test_nested_record(self):
        """Test that nested tables decode to nested records."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        table = Table.from_dict(
            {
                "title": "t",
                "members": Table.from_list([Table.from_dict({"name": "a", "color": 1})]),
                "scores": Table.from_dict({"a": 2}),
            }
        )

        team = converter.script_to_native(table, registry.type_for(Team), "lua")
        assert team == Team(title="t", members=[Blah(name="a", color=1)], scores={"a": 2.0})

    def test_missing_fields_take_defaults(self):
        """Test that fields absent from the table keep their defaults."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        blah = converter.script_to_native(Table.from_dict({"name": "x"}), registry.type_for(Blah), "lua")
        assert blah == Blah(name="x", color=0)

    def test_record_errors(self):
        """Test record decoding failures."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)
        blah = registry.type_for(Blah)

        with pytest.raises(NonStringKeyError):
            converter.script_to_native(Table.from_list(["x"]), blah, "lua")
        with pytest.raises(FieldNotFoundError):
            converter.script_to_native(Table.from_dict({"nope": 1}), blah, "lua")
        with pytest.raises(ShapeMismatchError):
            converter.script_to_native("bryn", blah, "lua")
        with pytest.raises(ShapeMismatchError):
            converter.script_to_native(Table.from_dict({"color": "red"}), blah, "lua")

    def test_nil(self):
        """Test nil against nullable and non-nullable destinations."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        assert converter.script_to_native(None, registry.parse_type("*int64")) is None
        assert converter.script_to_native(None, registry.any_type) is None
        assert converter.script_to_native(None, registry.parse_type("fn()")) is None
        with pytest.raises(ShapeMismatchError):
            converter.script_to_native(None, registry.parse_type("string"))

    def test_reference(self):
        """Test that a reference destination decodes its target."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        assert converter.script_to_native(3.0, registry.parse_type("*int64")) == 3

    def test_complex_unsupported(self):
        """Test that complex destinations are unsupported."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        with pytest.raises(UnsupportedKindError):
            converter.script_to_native(1.0, registry.parse_type("complex64"))


class TestInterfaceInference:
    """Tests for decoding to the empty interface."""

    def test_scalars(self):
        """Test that scalars keep their natural type."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        assert converter.script_to_native("s", registry.any_type) == "s"
        assert converter.script_to_native(True, registry.any_type) is True
        result = converter.script_to_native(2, registry.any_type)
        assert result == 2.0 and isinstance(result, float)

    def test_sequence_table(self):
        """Test that a table with a sequence part becomes a list."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        table = Table.from_list(["a", Table.from_dict({"k": 1})])
        assert converter.script_to_native(table, registry.any_type) == ["a", {"k": 1.0}]

    def test_mapping_table(self):
        """Test that a table without a sequence part becomes a dict."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        assert converter.script_to_native(Table.from_dict({"k": "v"}), registry.any_type) == {"k": "v"}

    def test_empty_table_policy(self):
        """Test that the empty-table policy picks dict or list."""
        registry = TypeRegistry()

        assert DeepConverter(registry).script_to_native(Table(), registry.any_type) == {}
        sequence = DeepConverter(registry, options=BridgeOptions(empty_table="sequence"))
        assert sequence.script_to_native(Table(), registry.any_type) == []

    def test_function(self):
        """Test that a wrapped function decodes to its host callable."""
        registry = TypeRegistry()
        converter = DeepConverter(registry)

        def host():
            return None

        assert converter.script_to_native(Function("f", host, host=host), registry.any_type) is host
        assert converter.script_to_native(Function("f", host, host=host), registry.parse_type("fn()")) is host
        with pytest.raises(UnsupportedKindError):
            converter.script_to_native(Function("f", host), registry.parse_type("fn()"))


class TestHandles:
    """Tests for decoding userdata handles."""

    def test_exact_record_is_copied(self):
        """Test that a record destination gets its own copy."""
        registry = TypeRegistry()
        proxy = ProxyBridge(registry)
        blah = Blah(name="bryn")

        result = proxy.converter.script_to_native(proxy.wrap(blah), registry.type_for(Blah))
        assert result == blah
        assert result is not blah

    def test_reference_is_identical(self):
        """Test that a reference destination gets the bound object itself."""
        registry = TypeRegistry()
        proxy = ProxyBridge(registry)
        blah = Blah(name="bryn")
        dest = registry.get_reference_type(registry.type_for(Blah))

        assert proxy.converter.script_to_native(proxy.wrap(blah), dest) is blah

    def test_sequence_aliases(self):
        """Test that a sequence destination gets the bound list."""
        registry = TypeRegistry()
        proxy = ProxyBridge(registry)
        items = ["a"]

        assert proxy.converter.script_to_native(proxy.wrap(items), registry.parse_type("any[]")) is items

    def test_interface(self):
        """Test that an interface destination gets the bound value."""
        registry = TypeRegistry()
        proxy = ProxyBridge(registry)
        blah = Blah()

        assert proxy.converter.script_to_native(proxy.wrap(blah), registry.any_type) is blah

    def test_incompatible(self):
        """Test that an unrelated destination fails."""
        registry = TypeRegistry()
        proxy = ProxyBridge(registry)

        with pytest.raises(IncompatibleHandleError) as exc_info:
            proxy.converter.script_to_native(proxy.wrap(Blah()), registry.parse_type("string"))
        assert isinstance(exc_info.value, ConversionError)

    def test_unaddressable_reference(self):
        """Test that a tuple cannot be taken by reference."""
        registry = TypeRegistry()
        proxy = ProxyBridge(registry)
        handle = proxy.wrap(("a", "b"))

        with pytest.raises(IncompatibleHandleError):
            proxy.converter.script_to_native(handle, registry.parse_type("*any[2]"))

    def test_handle_inside_table(self):
        """Test that handles nested in tables decode too."""
        registry = TypeRegistry()
        proxy = ProxyBridge(registry)
        blah = Blah(name="x")

        table = Table.from_list([proxy.wrap(blah)])
        result = proxy.converter.script_to_native(table, registry.type_for(list[Blah]))
        assert result == [blah]
