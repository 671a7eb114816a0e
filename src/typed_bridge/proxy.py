"""Live proxies: wrap host composites as userdata handles that alias them.

Scalars are copied exactly as deep conversion copies them. Records,
sequences, fixed arrays and mappings become userdata bound to the host
value by reference, so a script assigning ``handle[1] = "bar"`` changes the
host list. Callables become script functions with a fixed arity.
"""

from __future__ import annotations

import dataclasses
import math
from typing import Any, Callable, Sequence

from typed_bridge.convert import DeepConverter
from typed_bridge.engine import Function, Metatable, Table, UserData, is_number, type_name
from typed_bridge.errors import (
    ArityMismatchError,
    ConversionError,
    FieldNotFoundError,
    IndexOutOfRangeError,
    NonStringKeyError,
    ShapeMismatchError,
    UnsupportedKindError,
)
from typed_bridge.instance import TypedValue
from typed_bridge.methodset import MethodSetCache, MethodThunk
from typed_bridge.primitives import construct, encode_scalar
from typed_bridge.types import (
    ArrayTypeDefinition,
    FieldDefinition,
    FunctionTypeDefinition,
    InterfaceTypeDefinition,
    MappingTypeDefinition,
    RecordTypeDefinition,
    ReferenceTypeDefinition,
    TypeDefinition,
    TypeRegistry,
)


class ProxyBridge:
    """Reference-semantics conversion and the handlers installed on handles."""

    def __init__(
        self,
        registry: TypeRegistry,
        converter: DeepConverter | None = None,
        method_sets: MethodSetCache | None = None,
    ) -> None:
        self.registry = registry
        self.converter = converter if converter is not None else DeepConverter(registry)
        if method_sets is None:
            method_sets = MethodSetCache()
        if method_sets.proxy is None:
            method_sets.proxy = self
        self.method_sets = method_sets
        self._operations: dict[str, Callable[..., Any]] = {
            "__index": self.index,
            "__newindex": self.set_index,
            "__len": self.length,
            "__tostring": self.to_string,
        }

    def wrap(self, value: Any, type_def: TypeDefinition | None = None) -> Any:
        """Turn a host value into a script value, proxying composites."""
        if isinstance(value, TypedValue):
            value, type_def = value.value, type_def or value.type_def
        if value is None:
            return None
        if type_def is None:
            type_def = self.registry.type_of(value)
            assert type_def is not None

        base = type_def.resolve_base_type()
        if isinstance(base, InterfaceTypeDefinition):
            runtime = self.registry.type_of(value)
            if runtime is None or runtime.is_interface:
                raise UnsupportedKindError(type(value).__name__, "wrap")
            return self.wrap(value, runtime)
        if isinstance(base, ReferenceTypeDefinition):
            return self.wrap(value, base.target)

        kind = base.kind
        if kind.is_scalar:
            return encode_scalar(value, base)
        if isinstance(base, FunctionTypeDefinition):
            return self.wrap_function(value, type_def)
        if kind.is_composite:
            return self._new_handle(value, type_def)
        raise UnsupportedKindError(type_def.name, "wrap")

    def _new_handle(self, value: Any, type_def: TypeDefinition) -> UserData:
        metatable = Metatable(operations=self._operations, methods=self.method_sets.load(type_def))
        return UserData(TypedValue.bind(value, type_def), metatable)

    def wrap_function(self, fn: Callable[..., Any], type_def: TypeDefinition | None = None) -> Function:
        """Expose a host callable as a script function with a fixed arity."""
        if type_def is None:
            type_def = self.registry.type_of(fn)
        base = type_def.resolve_base_type() if type_def is not None else None
        if not isinstance(base, FunctionTypeDefinition) or not callable(fn):
            raise ShapeMismatchError(type(fn).__name__, "function")

        name = getattr(fn, "__qualname__", type_def.name)  # type: ignore[union-attr]

        def call(*args: Any) -> tuple[Any, ...]:
            if len(args) != base.arity:
                raise ArityMismatchError(name, base.arity, len(args))
            native_args = [
                self.converter.script_to_native(arg, param) for arg, param in zip(args, base.params)
            ]
            return self.wrap_results(name, base.results, fn(*native_args))

        return Function(name, call, arity=base.arity, host=fn)

    def wrap_results(
        self, name: str, result_types: Sequence[TypeDefinition], result: Any
    ) -> tuple[Any, ...]:
        """Wrap the return value of a host call according to its declared results."""
        if not result_types:
            if result is not None:
                raise ArityMismatchError(name, 0, 1, "results")
            return ()
        if len(result_types) == 1:
            values: tuple[Any, ...] = (result,)
        else:
            if not isinstance(result, (tuple, list)) or len(result) != len(result_types):
                got = len(result) if isinstance(result, (tuple, list)) else 1
                raise ArityMismatchError(name, len(result_types), got, "results")
            values = tuple(result)
        return tuple(self.wrap(v, t) for v, t in zip(values, result_types))

    def unwrap(self, value: Any, dest: TypeDefinition | None = None) -> Any:
        """Get the host value behind a script value.

        Handles yield their bound value. Scalars follow the deep decoding
        rules. Tables are never turned into new composites here. A record
        destination receives a copy of the bound value; pass the reference
        type (``"*T"``) to get the bound object itself.
        """
        if isinstance(value, UserData):
            if dest is None:
                bound = value.value
                return bound.value if isinstance(bound, TypedValue) else bound
            return self.converter.decode_handle(value, dest)
        if value is None:
            return None
        if isinstance(value, Table):
            raise ShapeMismatchError("table", dest.name if dest is not None else "handle")
        if isinstance(value, Function):
            if value.host is None:
                raise ShapeMismatchError("function", dest.name if dest is not None else "handle")
            return value.host
        if dest is None:
            dest = self.converter.infer(value)
        return self.converter.script_to_native(value, dest)

    # Handlers installed in every handle's metatable.

    def index(self, handle: UserData, key: Any) -> Any:
        """Read a method, field, element or entry through a handle."""
        bound: TypedValue = handle.value
        if isinstance(key, str) and handle.metatable is not None:
            thunk = handle.metatable.methods.get(key)
            if thunk is not None:
                return self._bind_method(bound, thunk)

        base = bound.type_def.resolve_base_type()
        if isinstance(base, RecordTypeDefinition):
            field = self._field(bound, base, key)
            return self.wrap(getattr(bound.value, field.name), field.type_def)
        if isinstance(base, ArrayTypeDefinition):
            position = self._position(bound, key)
            return self.wrap(bound.value[position], base.element_type)
        if isinstance(base, MappingTypeDefinition):
            native_key = self._entry_key(bound, base, key)
            if native_key not in bound.value:
                return None
            return self.wrap(bound.value[native_key], base.value_type)
        raise UnsupportedKindError(bound.type_def.name, "index")

    def set_index(self, handle: UserData, key: Any, value: Any) -> None:
        """Assign a field, element or entry through a handle."""
        bound: TypedValue = handle.value
        base = bound.type_def.resolve_base_type()

        if isinstance(base, RecordTypeDefinition):
            field = self._field(bound, base, key)
            native = self.converter.script_to_native(value, field.type_def)
            if bound.addressable:
                setattr(bound.value, field.name, native)
            else:
                bound.value = dataclasses.replace(bound.value, **{field.name: native})
            return

        if isinstance(base, ArrayTypeDefinition):
            position = self._position(bound, key)
            native = self.converter.script_to_native(value, base.element_type)
            if bound.addressable:
                bound.value[position] = native
            else:
                items = list(bound.value)
                items[position] = native
                bound.value = construct(bound.type_def, tuple(items))
            return

        if isinstance(base, MappingTypeDefinition):
            native_key = self._entry_key(bound, base, key)
            if value is None:
                bound.value.pop(native_key, None)
            else:
                bound.value[native_key] = self.converter.script_to_native(value, base.value_type)
            return

        raise UnsupportedKindError(bound.type_def.name, "assign through")

    def length(self, handle: UserData) -> int:
        bound: TypedValue = handle.value
        if isinstance(bound.type_def.resolve_base_type(), RecordTypeDefinition):
            raise ShapeMismatchError(f"record {bound.type_def.name}", "sequence")
        return len(bound.value)

    def to_string(self, handle: UserData) -> str:
        bound: TypedValue = handle.value
        value = bound.value
        if type(value).__str__ is not object.__str__:
            return str(value)
        base = bound.type_def.resolve_base_type()
        if isinstance(base, RecordTypeDefinition):
            parts = ", ".join(
                f"{f.name}={getattr(value, f.name)!r}" for f in base.fields if f.is_public
            )
            return f"{bound.type_def.name}({parts})"
        return f"{bound.type_def.name}({value!r})"

    def _bind_method(self, bound: TypedValue, thunk: MethodThunk) -> Function:
        return Function(
            f"{bound.type_def.name}.{thunk.name}",
            lambda *args: thunk(bound, *args),
            arity=thunk.arity,
        )

    def _field(self, bound: TypedValue, record: RecordTypeDefinition, key: Any) -> FieldDefinition:
        if not isinstance(key, str):
            raise NonStringKeyError(bound.type_def.name, key)
        field = record.get_field(key)
        if field is None or not field.is_public:
            raise FieldNotFoundError(bound.type_def.name, key)
        return field

    def _entry_key(self, bound: TypedValue, mapping: MappingTypeDefinition, key: Any) -> Any:
        native_key = self.converter.script_to_native(key, mapping.key_type)
        try:
            hash(native_key)
        except TypeError as e:
            raise ConversionError(
                f"cannot use {native_key!r} as a key of {bound.type_def.name}"
            ) from e
        return native_key

    def _position(self, bound: TypedValue, key: Any) -> int:
        length = len(bound.value)
        if isinstance(key, str):
            raise FieldNotFoundError(bound.type_def.name, key)
        if not is_number(key):
            raise ShapeMismatchError(type_name(key), f"index of {bound.type_def.name}")
        if isinstance(key, float):
            if not math.isfinite(key) or not key.is_integer():
                raise IndexOutOfRangeError(key, length)
            key = int(key)
        position = key - 1
        if not 0 <= position < length:
            raise IndexOutOfRangeError(key, length)
        return position
