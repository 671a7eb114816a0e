"""Deep conversion: copy host values into script values and back.

Encoding dispatches on the kind of the source type, decoding on the kind of
the destination type, so a script number can land in any numeric field.
Neither direction keeps a reference to its input, with one exception: a
userdata handle decoded to a sequence or mapping type yields the bound
container itself.
"""

from __future__ import annotations

import copy
from typing import Any, Mapping

from typed_bridge.codec import CodecCache
from typed_bridge.config import BridgeOptions
from typed_bridge.engine import Function, Table, UserData, is_number, type_name
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
from typed_bridge.primitives import (
    construct,
    convert_value,
    decode_scalar,
    encode_scalar,
    is_convertible,
    is_sequence,
    zero_value,
)
from typed_bridge.types import (
    ArrayTypeDefinition,
    FixedArrayTypeDefinition,
    FunctionTypeDefinition,
    InterfaceTypeDefinition,
    Kind,
    MappingTypeDefinition,
    PrimitiveType,
    RecordTypeDefinition,
    ReferenceTypeDefinition,
    TypeDefinition,
    TypeRegistry,
)


class DeepConverter:
    """Copy-semantics conversion between host values and script values."""

    def __init__(
        self,
        registry: TypeRegistry,
        codecs: CodecCache | None = None,
        options: BridgeOptions | None = None,
    ) -> None:
        self.registry = registry
        self.codecs = codecs if codecs is not None else CodecCache()
        self.options = options if options is not None else BridgeOptions()

    def native_to_script(
        self, value: Any, type_def: TypeDefinition | None = None, tag_name: str | None = None
    ) -> Any:
        """Copy a host value into a script value.

        Without ``type_def`` the runtime type of the value is used. Records
        become tables keyed by the tags found under ``tag_name``.
        """
        if isinstance(value, TypedValue):
            value, type_def = value.value, type_def or value.type_def
        if tag_name is None:
            tag_name = self.options.default_tag
        return self._encode(value, type_def, tag_name)

    def _encode(self, value: Any, type_def: TypeDefinition | None, tag: str | None) -> Any:
        if value is None:
            return None
        if type_def is None:
            type_def = self.registry.type_of(value)
            assert type_def is not None

        base = type_def.resolve_base_type()
        if isinstance(base, InterfaceTypeDefinition):
            runtime = self.registry.type_of(value)
            if runtime is None or runtime.is_interface:
                raise UnsupportedKindError(type(value).__name__)
            return self._encode(value, runtime, tag)
        if isinstance(base, ReferenceTypeDefinition):
            return self._encode(value, base.target, tag)

        kind = base.kind
        if kind.is_scalar:
            return encode_scalar(value, base)
        if kind in (Kind.COMPLEX, Kind.FUNCTION):
            raise UnsupportedKindError(type_def.name)

        table = Table()
        if isinstance(base, ArrayTypeDefinition):
            if not isinstance(value, (list, tuple)):
                raise ShapeMismatchError(type(value).__name__, type_def.name)
            for i, item in enumerate(value):
                table[i + 1] = self._encode(item, base.element_type, tag)
            return table

        if isinstance(base, MappingTypeDefinition):
            if not isinstance(value, Mapping):
                raise ShapeMismatchError(type(value).__name__, type_def.name)
            for key, item in value.items():
                script_key = self._encode(key, base.key_type, tag)
                if script_key is None:
                    raise ShapeMismatchError("nil", f"key of {type_def.name}")
                table[script_key] = self._encode(item, base.value_type, tag)
            return table

        assert isinstance(base, RecordTypeDefinition)
        cls = type_def.python_class or base.python_class
        if cls is not None and not isinstance(value, cls):
            raise ShapeMismatchError(type(value).__name__, type_def.name)
        codec = self.codecs.load(type_def, tag)
        for key, field_value in codec.record_to_map(value).items():
            field = codec.field_for_tag(key)
            assert field is not None
            table[key] = self._encode(field_value, field.type_def, tag)
        return table

    def script_to_native(self, value: Any, dest: TypeDefinition, tag_name: str | None = None) -> Any:
        """Build a new host value of type ``dest`` from a script value."""
        if tag_name is None:
            tag_name = self.options.default_tag
        return self._decode(value, dest, tag_name)

    def _decode(self, value: Any, dest: TypeDefinition, tag: str | None) -> Any:
        if isinstance(value, UserData):
            return self.decode_handle(value, dest)

        base = dest.resolve_base_type()
        if value is None:
            if isinstance(
                base, (ReferenceTypeDefinition, InterfaceTypeDefinition, FunctionTypeDefinition)
            ):
                return None
            raise ShapeMismatchError("nil", dest.name)

        if isinstance(base, InterfaceTypeDefinition):
            if not base.is_empty:
                raise ShapeMismatchError(type_name(value), dest.name)
            if isinstance(value, Function):
                return self._decode_function(value, dest)
            return self._decode(value, self.infer(value), tag)

        if isinstance(base, ReferenceTypeDefinition):
            return self._decode(value, base.target, tag)

        kind = base.kind
        if kind.is_scalar:
            return decode_scalar(value, dest)
        if kind is Kind.COMPLEX:
            raise UnsupportedKindError(dest.name)
        if kind is Kind.FUNCTION:
            return self._decode_function(value, dest)

        if not isinstance(value, Table):
            raise ShapeMismatchError(type_name(value), dest.name)

        if isinstance(base, FixedArrayTypeDefinition):
            return construct(dest, self._decode_fixed_array(value, dest, base, tag))

        if isinstance(base, ArrayTypeDefinition):
            items = [self._decode(item, base.element_type, tag) for item in value.to_list()]
            return construct(dest, items)

        if isinstance(base, MappingTypeDefinition):
            result: dict[Any, Any] = {}
            for key, item in value.items():
                native_key = self._decode(key, base.key_type, tag)
                native_item = self._decode(item, base.value_type, tag)
                try:
                    result[native_key] = native_item
                except TypeError as e:
                    raise ConversionError(f"cannot use {native_key!r} as a key of {dest.name}") from e
            return construct(dest, result)

        assert isinstance(base, RecordTypeDefinition)
        codec = self.codecs.load(dest, tag)
        by_tag: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise NonStringKeyError(dest.name, key)
            field = codec.field_for_tag(key)
            if field is None:
                raise FieldNotFoundError(dest.name, key)
            by_tag[key] = self._decode(item, field.type_def, tag)
        return codec.map_to_record(by_tag)

    def _decode_fixed_array(
        self, table: Table, dest: TypeDefinition, base: FixedArrayTypeDefinition, tag: str | None
    ) -> tuple[Any, ...]:
        items = table.to_list()
        if len(items) != base.length:
            if self.options.fixed_array == "strict":
                raise SizeMismatchError(dest.name, base.length, len(items))
            items = items[: base.length]
        decoded = [self._decode(item, base.element_type, tag) for item in items]
        while len(decoded) < base.length:
            decoded.append(zero_value(base.element_type))
        return tuple(decoded)

    def _decode_function(self, value: Any, dest: TypeDefinition) -> Any:
        if isinstance(value, Function) and value.host is not None:
            return value.host
        raise UnsupportedKindError(type_name(value), f"convert to {dest.name}")

    def infer(self, value: Any) -> TypeDefinition:
        """Pick a concrete destination type for a script value from its shape."""
        registry = self.registry
        if isinstance(value, bool):
            return registry.primitive(PrimitiveType.BOOL)
        if is_number(value):
            return registry.primitive(PrimitiveType.FLOAT64)
        if isinstance(value, str):
            return registry.primitive(PrimitiveType.STRING)
        if isinstance(value, Table):
            empty_as_sequence = self.options.empty_table == "sequence" and value.entry_count() == 0
            if is_sequence(value) or empty_as_sequence:
                return registry.get_array_type(registry.any_type)
            return registry.get_mapping_type(registry.any_type, registry.any_type)
        raise UnsupportedKindError(type_name(value))

    def decode_handle(self, handle: UserData, dest: TypeDefinition) -> Any:
        """Return the value bound to a handle as a value of type ``dest``.

        Records are copied, since a record destination holds its own value.
        A reference to the bound type yields the bound object itself when it
        is addressable.
        """
        bound = handle.value
        if not isinstance(bound, TypedValue):
            raise IncompatibleHandleError(type(bound).__name__, dest.name)

        src = bound.type_def
        dest_base = dest.resolve_base_type()
        if isinstance(dest_base, ReferenceTypeDefinition) and dest_base.target is src:
            if not bound.addressable:
                raise IncompatibleHandleError(src.name, dest.name)
            return bound.value

        if not is_convertible(src, dest):
            raise IncompatibleHandleError(src.name, dest.name)
        value = convert_value(bound.value, src, dest)
        if isinstance(dest_base, RecordTypeDefinition):
            value = copy.copy(value)
        return value
