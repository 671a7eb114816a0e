"""Value model and call convention of the embedded script engine.

Script values are ``None`` (nil), ``bool``, ``float`` (the single number
representation), ``str``, :class:`Table`, :class:`Function` and
:class:`UserData`. Python ints are accepted wherever a number is expected
and are stored as floats.

:class:`State` performs the operations a running script applies to values:
indexing, assignment, length, ``tostring`` and calls. Operations on userdata
are dispatched through the handle's :class:`Metatable`. Any bridge error
raised by a handler surfaces as a :class:`ScriptError`, which aborts the
current script call.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, Mapping, NamedTuple

from typed_bridge.errors import BridgeError


class ScriptError(Exception):
    """A runtime error raised inside the script engine."""


def is_number(value: Any) -> bool:
    """Check if a value is a script number."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def type_name(value: Any) -> str:
    """Return the engine's name for the type of a script value."""
    if value is None:
        return "nil"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, Table):
        return "table"
    if isinstance(value, Function):
        return "function"
    if isinstance(value, UserData):
        return "userdata"
    return type(value).__name__


class _BoolKey(NamedTuple):
    # Keeps true/false distinct from the numbers 1 and 0 inside a dict.
    value: bool


def _store_key(key: Any) -> Any:
    if isinstance(key, bool):
        return _BoolKey(key)
    if isinstance(key, int):
        return float(key)
    return key


def _load_key(key: Any) -> Any:
    if isinstance(key, _BoolKey):
        return key.value
    return key


def _normalize(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    return value


class Table:
    """A script table: an ordered sequence and an associative map at once.

    Positions 1..n of the sequence part are ordinary numeric keys. Assigning
    nil removes a key, so a table never holds nil values. The border n is
    kept up to date on every write, so sequence length is O(1).
    """

    def __init__(self) -> None:
        self._entries: dict[Any, Any] = {}
        self._border = 0

    @classmethod
    def from_list(cls, values: list[Any]) -> Table:
        """Create a table from a Python list (1-indexed)."""
        table = cls()
        for i, value in enumerate(values):
            table[i + 1] = value
        return table

    @classmethod
    def from_dict(cls, d: Mapping[Any, Any]) -> Table:
        """Create a table from a Python mapping."""
        table = cls()
        for key, value in d.items():
            table[key] = value
        return table

    def __getitem__(self, key: Any) -> Any:
        if key is None:
            return None
        return self._entries.get(_store_key(key))

    def __setitem__(self, key: Any, value: Any) -> None:
        if key is None:
            raise ScriptError("table index is nil")
        if isinstance(key, float) and math.isnan(key):
            raise ScriptError("table index is NaN")
        stored = _store_key(key)
        if value is None:
            self._entries.pop(stored, None)
            if isinstance(stored, float) and stored.is_integer() and 1 <= stored <= self._border:
                self._border = int(stored) - 1
        else:
            self._entries[stored] = _normalize(value)
            if stored == self._border + 1:
                self._extend_border()

    def __contains__(self, key: Any) -> bool:
        return key is not None and _store_key(key) in self._entries

    def _extend_border(self) -> None:
        n = self._border
        while float(n + 1) in self._entries:
            n += 1
        self._border = n

    def max_n(self) -> int:
        """Return the largest n such that keys 1..n are all present."""
        return self._border

    def __len__(self) -> int:
        return self.max_n()

    def entry_count(self) -> int:
        """Return the number of key/value pairs, sequence part included."""
        return len(self._entries)

    def items(self) -> Iterator[tuple[Any, Any]]:
        """Iterate over every key/value pair in insertion order."""
        for key, value in self._entries.items():
            yield _load_key(key), value

    def append(self, value: Any) -> None:
        self[self.max_n() + 1] = value

    def to_list(self) -> list[Any]:
        """Return the sequence part as a Python list."""
        return [self._entries[float(i)] for i in range(1, self.max_n() + 1)]

    def to_dict(self) -> dict[Any, Any]:
        """Return every entry as a Python dict."""
        return dict(self.items())

    def __repr__(self) -> str:
        return f"Table({self.to_dict()!r})"


class Function:
    """A callable script value.

    ``fn`` receives the call arguments and returns its results as a tuple.
    ``host`` is the host callable the function proxies, if there is one.
    """

    def __init__(
        self,
        name: str,
        fn: Callable[..., tuple[Any, ...] | None],
        arity: int | None = None,
        host: Any = None,
    ) -> None:
        self.name = name
        self.fn = fn
        self.arity = arity
        self.host = host

    def __call__(self, *args: Any) -> tuple[Any, ...]:
        results = self.fn(*args)
        if results is None:
            return ()
        return tuple(results)

    def __repr__(self) -> str:
        return f"Function({self.name!r}, arity={self.arity})"


@dataclass
class Metatable:
    """Operations and methods attached to a userdata value."""

    operations: dict[str, Callable[..., Any]] = field(default_factory=dict)
    methods: Mapping[str, Any] = field(default_factory=dict)

    def get(self, name: str) -> Callable[..., Any] | None:
        return self.operations.get(name)


@dataclass(eq=False)
class UserData:
    """An opaque handle to a host value."""

    value: Any
    metatable: Metatable | None = None

    def __repr__(self) -> str:
        return f"UserData({self.value!r})"


class State:
    """A script execution context."""

    def __init__(self) -> None:
        self.globals = Table()

    def set_global(self, name: str, value: Any) -> None:
        self.globals[name] = value

    def get_global(self, name: str) -> Any:
        return self.globals[name]

    def index(self, obj: Any, key: Any) -> Any:
        """Evaluate ``obj[key]``."""
        if isinstance(obj, Table):
            return obj[key]
        if isinstance(obj, UserData):
            return self._dispatch(obj, "__index", key)
        raise ScriptError(f"attempt to index a {type_name(obj)} value")

    def set_index(self, obj: Any, key: Any, value: Any) -> None:
        """Evaluate ``obj[key] = value``."""
        if isinstance(obj, Table):
            obj[key] = value
            return
        if isinstance(obj, UserData):
            self._dispatch(obj, "__newindex", key, value)
            return
        raise ScriptError(f"attempt to index a {type_name(obj)} value")

    def length(self, obj: Any) -> int:
        """Evaluate ``#obj``."""
        if isinstance(obj, str):
            return len(obj.encode("utf-8"))
        if isinstance(obj, Table):
            return len(obj)
        if isinstance(obj, UserData):
            return int(self._dispatch(obj, "__len"))
        raise ScriptError(f"attempt to get length of a {type_name(obj)} value")

    def tostring(self, obj: Any) -> str:
        """Evaluate ``tostring(obj)``."""
        if obj is None:
            return "nil"
        if isinstance(obj, bool):
            return "true" if obj else "false"
        if is_number(obj):
            return f"{obj:.14g}"
        if isinstance(obj, str):
            return obj
        if isinstance(obj, UserData) and obj.metatable is not None:
            if obj.metatable.get("__tostring") is not None:
                return self._dispatch(obj, "__tostring")
        return f"{type_name(obj)}: 0x{id(obj):08x}"

    def call(self, fn: Any, *args: Any) -> tuple[Any, ...]:
        """Call a function value and return its results."""
        if not isinstance(fn, Function):
            raise ScriptError(f"attempt to call a {type_name(fn)} value")
        return self._guard(fn, *args)

    def call_method(self, obj: Any, name: str, *args: Any) -> tuple[Any, ...]:
        """Evaluate ``obj:name(args...)``."""
        return self.call(self.index(obj, name), *args)

    def _dispatch(self, ud: UserData, event: str, *args: Any) -> Any:
        handler = ud.metatable.get(event) if ud.metatable is not None else None
        if handler is None:
            raise ScriptError(f"userdata has no '{event}' operation")
        return self._guard(handler, ud, *args)

    @staticmethod
    def _guard(fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return fn(*args)
        except BridgeError as e:
            raise ScriptError(str(e)) from e
