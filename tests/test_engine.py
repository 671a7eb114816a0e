"""Tests for the script engine value model."""

import math

import pytest

from typed_bridge.engine import (
    Function,
    Metatable,
    ScriptError,
    State,
    Table,
    UserData,
    is_number,
    type_name,
)
from typed_bridge.errors import FieldNotFoundError


class TestTable:
    """Tests for Table."""

    def test_sequence_part(self):
        """Test that positions 1..n form the sequence part."""
        table = Table.from_list(["foo", "bar"])

        assert table[1] == "foo"
        assert table[2] == "bar"
        assert table.max_n() == 2
        assert len(table) == 2
        assert table.to_list() == ["foo", "bar"]

    def test_integer_and_float_keys_match(self):
        """Test that 1 and 1.0 are the same key."""
        table = Table()
        table[1] = "one"

        assert table[1.0] == "one"
        assert 1.0 in table

    def test_bool_keys_are_not_numbers(self):
        """Test that true and 1 are different keys."""
        table = Table()
        table[True] = "yes"
        table[1] = "one"

        assert table[True] == "yes"
        assert table[1] == "one"
        assert table.entry_count() == 2
        assert list(table.items()) == [(True, "yes"), (1.0, "one")]

    def test_numbers_are_floats(self):
        """Test that stored integers come back as floats."""
        table = Table.from_dict({"color": 123})

        assert table["color"] == 123.0
        assert isinstance(table["color"], float)

    def test_nil_assignment_deletes(self):
        """Test that assigning nil removes the key."""
        table = Table.from_dict({"name": "bryn"})
        table["name"] = None

        assert "name" not in table
        assert table.entry_count() == 0

    def test_hole_ends_sequence(self):
        """Test that max_n stops at the first missing position."""
        table = Table.from_list(["a", "b", "c"])
        table[2] = None

        assert table.max_n() == 1

    def test_border_follows_writes(self):
        """Test that the sequence length tracks out-of-order writes and deletes."""
        table = Table()
        table[2] = "b"
        table[3] = "c"
        assert table.max_n() == 0

        table[1] = "a"
        assert table.max_n() == 3

        table[3] = None
        assert table.max_n() == 2
        table[1] = None
        assert table.max_n() == 0
        table[1] = "z"
        assert table.max_n() == 2
        table.append("y")
        assert table.to_list() == ["z", "b", "y"]

    def test_non_sequence_keys_leave_border(self):
        """Test that string, fractional and negative keys do not move the border."""
        table = Table.from_list(["a"])
        table["x"] = 1
        table[1.5] = 2
        table[-1] = 3
        table[0] = 4
        table[1.5] = None

        assert table.max_n() == 1

    def test_large_sequence(self):
        """Test building and reading back a long sequence."""
        values = list(range(20000))
        table = Table()
        for v in values:
            table.append(v)

        assert len(table) == 20000
        assert table.to_list() == [float(v) for v in values]

    def test_missing_and_nil_keys_read_nil(self):
        """Test that reading a missing or nil key gives nil."""
        table = Table()

        assert table["nope"] is None
        assert table[None] is None

    def test_invalid_keys(self):
        """Test that nil and NaN keys cannot be assigned."""
        table = Table()

        with pytest.raises(ScriptError):
            table[None] = 1
        with pytest.raises(ScriptError):
            table[math.nan] = 1

    def test_append(self):
        """Test appending to the sequence part."""
        table = Table()
        table.append("a")
        table.append("b")

        assert table.to_list() == ["a", "b"]


class TestValues:
    """Tests for value helpers."""

    def test_type_names(self):
        """Test the engine's type names."""
        assert type_name(None) == "nil"
        assert type_name(False) == "boolean"
        assert type_name(1.5) == "number"
        assert type_name("s") == "string"
        assert type_name(Table()) == "table"
        assert type_name(Function("f", lambda: None)) == "function"
        assert type_name(UserData(object())) == "userdata"

    def test_is_number(self):
        """Test that bools are not numbers."""
        assert is_number(3)
        assert is_number(3.5)
        assert not is_number(True)
        assert not is_number("3")

    def test_function_results_are_tuples(self):
        """Test that calling a function always gives a tuple."""
        assert Function("none", lambda: None)() == ()
        assert Function("pair", lambda a: (a, a))(1) == (1, 1)


class TestState:
    """Tests for State."""

    def test_globals(self):
        """Test reading and writing globals."""
        state = State()
        state.set_global("x", 3)

        assert state.get_global("x") == 3.0

    def test_table_operations(self):
        """Test indexing and length on plain tables."""
        state = State()
        table = Table.from_list(["a"])
        state.set_index(table, 2, "b")

        assert state.index(table, 2) == "b"
        assert state.length(table) == 2
        assert state.length("héllo") == 6

    def test_tostring(self):
        """Test tostring on scalars."""
        state = State()

        assert state.tostring(None) == "nil"
        assert state.tostring(True) == "true"
        assert state.tostring(3.0) == "3"
        assert state.tostring(0.5) == "0.5"
        assert state.tostring("x") == "x"

    def test_index_scalar_fails(self):
        """Test that indexing a number is a script error."""
        state = State()

        with pytest.raises(ScriptError):
            state.index(3.0, "x")

    def test_call_non_function_fails(self):
        """Test that calling a non-function is a script error."""
        state = State()

        with pytest.raises(ScriptError):
            state.call("nope")

    def test_userdata_dispatch(self):
        """Test that userdata operations go through the metatable."""
        state = State()
        seen = {}
        metatable = Metatable(
            operations={
                "__index": lambda ud, key: f"got {key}",
                "__newindex": lambda ud, key, value: seen.update({key: value}),
                "__len": lambda ud: 7,
                "__tostring": lambda ud: "custom",
            }
        )
        ud = UserData(object(), metatable)

        assert state.index(ud, "a") == "got a"
        state.set_index(ud, "b", 2.0)
        assert seen == {"b": 2.0}
        assert state.length(ud) == 7
        assert state.tostring(ud) == "custom"

    def test_missing_operation(self):
        """Test that a userdata without the operation is a script error."""
        state = State()

        with pytest.raises(ScriptError):
            state.length(UserData(object(), Metatable()))

    def test_bridge_errors_become_script_errors(self):
        """Test that handler errors abort the script call."""
        state = State()

        def index(ud, key):
            raise FieldNotFoundError("Blah", key)

        ud = UserData(object(), Metatable(operations={"__index": index}))

        with pytest.raises(ScriptError) as exc_info:
            state.index(ud, "nope")
        assert isinstance(exc_info.value.__cause__, FieldNotFoundError)
        assert "nope" in str(exc_info.value)

    def test_call_method(self):
        """Test calling a method looked up through a table."""
        state = State()
        table = Table.from_dict({"double": Function("double", lambda x: (x * 2,), arity=1)})

        assert state.call_method(table, "double", 2.0) == (4.0,)
