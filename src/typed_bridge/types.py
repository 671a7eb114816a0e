"""Type definitions for the typed_bridge library."""

from __future__ import annotations

import threading
from dataclasses import MISSING, dataclass, field
from enum import Enum
from typing import Any, Callable, TypeVar


class Kind(Enum):
    """The closed set of shapes a host type can take."""

    BOOL = "bool"
    INT = "int"
    UINT = "uint"
    FLOAT = "float"
    COMPLEX = "complex"
    STRING = "string"
    SEQUENCE = "sequence"
    ARRAY = "array"
    MAPPING = "mapping"
    RECORD = "record"
    FUNCTION = "function"
    REFERENCE = "reference"
    INTERFACE = "interface"

    @property
    def is_numeric(self) -> bool:
        return self in (Kind.INT, Kind.UINT, Kind.FLOAT)

    @property
    def is_scalar(self) -> bool:
        return self in (Kind.BOOL, Kind.INT, Kind.UINT, Kind.FLOAT, Kind.STRING)

    @property
    def is_composite(self) -> bool:
        """Return whether values of this kind are proxied by reference."""
        return self in (Kind.SEQUENCE, Kind.ARRAY, Kind.MAPPING, Kind.RECORD)


class PrimitiveType(Enum):
    """Built-in primitive types supported by the type system."""

    BOOL = "bool"
    UINT8 = "uint8"
    INT8 = "int8"
    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    UINT64 = "uint64"
    INT64 = "int64"
    FLOAT32 = "float32"
    FLOAT64 = "float64"
    STRING = "string"
    COMPLEX64 = "complex64"
    COMPLEX128 = "complex128"

    @property
    def size_bytes(self) -> int:
        """Return the size in bytes of a value of this type (0 for strings)."""
        sizes = {
            PrimitiveType.BOOL: 1,
            PrimitiveType.UINT8: 1,
            PrimitiveType.INT8: 1,
            PrimitiveType.UINT16: 2,
            PrimitiveType.INT16: 2,
            PrimitiveType.UINT32: 4,
            PrimitiveType.INT32: 4,
            PrimitiveType.UINT64: 8,
            PrimitiveType.INT64: 8,
            PrimitiveType.FLOAT32: 4,
            PrimitiveType.FLOAT64: 8,
            PrimitiveType.STRING: 0,
            PrimitiveType.COMPLEX64: 8,
            PrimitiveType.COMPLEX128: 16,
        }
        return sizes[self]

    @property
    def bits(self) -> int:
        return self.size_bytes * 8

    @property
    def kind(self) -> Kind:
        if self is PrimitiveType.BOOL:
            return Kind.BOOL
        if self is PrimitiveType.STRING:
            return Kind.STRING
        if self in (PrimitiveType.FLOAT32, PrimitiveType.FLOAT64):
            return Kind.FLOAT
        if self in (PrimitiveType.COMPLEX64, PrimitiveType.COMPLEX128):
            return Kind.COMPLEX
        if self.value.startswith("uint"):
            return Kind.UINT
        return Kind.INT


# Additional names registered for existing primitives
PRIMITIVE_ALIASES: dict[str, PrimitiveType] = {
    "int": PrimitiveType.INT64,
    "uint": PrimitiveType.UINT64,
    "byte": PrimitiveType.UINT8,
    "float": PrimitiveType.FLOAT64,
}

ANY_TYPE_NAME = "any"


@dataclass(eq=False, repr=False)
class TypeDefinition:
    """Base class for all type definitions.

    Definitions compare and hash by identity. Structural types (arrays,
    mappings, references, functions) are interned by the registry under
    their canonical name, so a name always resolves to the same object.

    Any named type may carry the Python class that constructs its values and
    the methods it exposes to scripts.
    """

    name: str
    methods: list[MethodDefinition] = field(default_factory=list, kw_only=True)
    python_class: type | None = field(default=None, kw_only=True)

    @property
    def kind(self) -> Kind:
        """Return the kind of values described by this type."""
        raise NotImplementedError

    @property
    def is_interface(self) -> bool:
        """Return whether this type is an interface type."""
        return False

    def resolve_base_type(self) -> TypeDefinition:
        """Resolve through aliases to get the underlying type."""
        return self

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


@dataclass(eq=False, repr=False)
class PrimitiveTypeDefinition(TypeDefinition):
    """Type definition wrapping a primitive type."""

    primitive: PrimitiveType

    @property
    def kind(self) -> Kind:
        return self.primitive.kind


@dataclass(eq=False, repr=False)
class AliasTypeDefinition(TypeDefinition):
    """A named type over another type (``define Age as uint64``, ``NewType``)."""

    base_type: TypeDefinition

    @property
    def kind(self) -> Kind:
        return self.base_type.kind

    def resolve_base_type(self) -> TypeDefinition:
        """Resolve through aliases to get the underlying type."""
        return self.base_type.resolve_base_type()


@dataclass(eq=False, repr=False)
class ArrayTypeDefinition(TypeDefinition):
    """Type definition for dynamically sized sequences (e.g., uint8[])."""

    element_type: TypeDefinition

    @property
    def kind(self) -> Kind:
        return Kind.SEQUENCE


@dataclass(eq=False, repr=False)
class FixedArrayTypeDefinition(ArrayTypeDefinition):
    """Type definition for fixed-size arrays (e.g., string[2]), held as tuples."""

    length: int

    @property
    def kind(self) -> Kind:
        return Kind.ARRAY


@dataclass(eq=False, repr=False)
class MappingTypeDefinition(TypeDefinition):
    """Type definition for mappings (e.g., {string: any})."""

    key_type: TypeDefinition
    value_type: TypeDefinition

    @property
    def kind(self) -> Kind:
        return Kind.MAPPING


@dataclass
class FieldDefinition:
    """Definition of a field within a record type."""

    name: str
    type_def: TypeDefinition
    default_value: Any = MISSING
    default_factory: Any = MISSING
    tags: dict[str, str] = field(default_factory=dict)

    @property
    def has_default(self) -> bool:
        return self.default_value is not MISSING or self.default_factory is not MISSING

    @property
    def is_public(self) -> bool:
        return not self.name.startswith("_")

    def tag(self, tag_name: str) -> str | None:
        """Return the raw tag string stored under tag_name, if any."""
        return self.tags.get(tag_name)


class Receiver(Enum):
    """How a method receives the value it is called on."""

    VALUE = "value"
    REFERENCE = "reference"


@dataclass(eq=False, repr=False)
class FunctionTypeDefinition(TypeDefinition):
    """Type definition for callables with fixed positional parameters."""

    params: list[TypeDefinition] = field(default_factory=list)
    results: list[TypeDefinition] = field(default_factory=list)

    @property
    def kind(self) -> Kind:
        return Kind.FUNCTION

    @property
    def arity(self) -> int:
        return len(self.params)


@dataclass
class MethodDefinition:
    """A method exposed to scripts.

    ``name`` is the script-visible name and ``attribute`` the Python
    attribute it is looked up under on the receiver.
    """

    name: str
    attribute: str
    function_type: FunctionTypeDefinition
    receiver: Receiver = Receiver.REFERENCE

    @property
    def arity(self) -> int:
        return self.function_type.arity


@dataclass(eq=False, repr=False)
class RecordTypeDefinition(TypeDefinition):
    """Type definition for record types (dataclasses and other classes)."""

    fields: list[FieldDefinition] = field(default_factory=list)
    frozen: bool = False

    @property
    def kind(self) -> Kind:
        return Kind.RECORD

    def get_field(self, name: str) -> FieldDefinition | None:
        """Get a field by name."""
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass(eq=False, repr=False)
class ReferenceTypeDefinition(TypeDefinition):
    """A nullable reference to a value of the target type (``*T``)."""

    target: TypeDefinition

    @property
    def kind(self) -> Kind:
        return Kind.REFERENCE


@dataclass(eq=False, repr=False)
class InterfaceTypeDefinition(TypeDefinition):
    """Type definition for interface types.

    The empty interface (``any``) accepts every value. Other interfaces
    require the named methods to be present in a value's method set.
    """

    method_names: list[str] = field(default_factory=list)

    @property
    def kind(self) -> Kind:
        return Kind.INTERFACE

    @property
    def is_interface(self) -> bool:
        return True

    @property
    def is_empty(self) -> bool:
        return not self.method_names

    def satisfied_by(self, type_def: TypeDefinition) -> bool:
        """Check whether type_def exposes every method this interface requires."""
        available = {m.name for m in type_def.methods}
        base = type_def.resolve_base_type()
        if isinstance(base, ReferenceTypeDefinition):
            available.update(m.name for m in base.target.methods)
        return all(name in available for name in self.method_names)


def component_name(type_def: TypeDefinition) -> str:
    """Return a type's name as it should appear inside a larger type name."""
    if isinstance(type_def, (ReferenceTypeDefinition, FunctionTypeDefinition)):
        return f"({type_def.name})"
    return type_def.name


_T = TypeVar("_T", bound=TypeDefinition)


class TypeRegistry:
    """Registry of all defined types."""

    def __init__(self) -> None:
        self._types: dict[str, TypeDefinition] = {}
        self._classes: dict[Any, TypeDefinition] = {}
        # Reentrant: registering a class may register the classes of its fields.
        self.lock = threading.RLock()
        self._parser: Any = None
        self._register_primitives()

    def _register_primitives(self) -> None:
        """Register all primitive types and the empty interface."""
        for pt in PrimitiveType:
            self._types[pt.value] = PrimitiveTypeDefinition(name=pt.value, primitive=pt)
        for alias, pt in PRIMITIVE_ALIASES.items():
            self._types[alias] = self._types[pt.value]
        self._types[ANY_TYPE_NAME] = InterfaceTypeDefinition(name=ANY_TYPE_NAME)

    @property
    def any_type(self) -> InterfaceTypeDefinition:
        return self._types[ANY_TYPE_NAME]  # type: ignore[return-value]

    def primitive(self, pt: PrimitiveType) -> PrimitiveTypeDefinition:
        return self._types[pt.value]  # type: ignore[return-value]

    def register(self, type_def: TypeDefinition) -> None:
        """Register a type definition."""
        with self.lock:
            if type_def.name in self._types:
                raise ValueError(f"Type '{type_def.name}' is already defined")
            self._types[type_def.name] = type_def

    def register_class(self, cls: Any, type_def: TypeDefinition) -> None:
        """Associate a Python class or NewType with its (already registered) type."""
        with self.lock:
            self._classes[cls] = type_def

    def discard(self, name: str, cls: type | None = None) -> None:
        """Forget a type that failed to finish registering."""
        with self.lock:
            self._types.pop(name, None)
            if cls is not None:
                self._classes.pop(cls, None)

    def get(self, name: str) -> TypeDefinition | None:
        """Get a type by name."""
        return self._types.get(name)

    def get_or_raise(self, name: str) -> TypeDefinition:
        """Get a type by name, raising if not found."""
        type_def = self._types.get(name)
        if type_def is None:
            raise KeyError(f"Type '{name}' not found")
        return type_def

    def get_for_class(self, cls: Any) -> TypeDefinition | None:
        """Get the type registered for a Python class or NewType."""
        return self._classes.get(cls)

    def _intern(self, name: str, expected: type[_T], factory: Callable[[], _T]) -> _T:
        existing = self._types.get(name)
        if existing is None:
            with self.lock:
                existing = self._types.get(name)
                if existing is None:
                    existing = factory()
                    self._types[name] = existing
        if not isinstance(existing, expected):
            raise TypeError(f"Type '{name}' exists but is not a {expected.__name__}")
        return existing

    def get_array_type(self, element_type: TypeDefinition) -> ArrayTypeDefinition:
        """Get or create a dynamic array type for the given element type."""
        name = f"{component_name(element_type)}[]"
        return self._intern(
            name,
            ArrayTypeDefinition,
            lambda: ArrayTypeDefinition(name=name, element_type=element_type),
        )

    def get_fixed_array_type(
        self, element_type: TypeDefinition, length: int
    ) -> FixedArrayTypeDefinition:
        """Get or create a fixed-size array type."""
        if length < 0:
            raise ValueError(f"Array length must be non-negative, got {length}")
        name = f"{component_name(element_type)}[{length}]"
        return self._intern(
            name,
            FixedArrayTypeDefinition,
            lambda: FixedArrayTypeDefinition(name=name, element_type=element_type, length=length),
        )

    def get_mapping_type(
        self, key_type: TypeDefinition, value_type: TypeDefinition
    ) -> MappingTypeDefinition:
        """Get or create a mapping type."""
        name = f"{{{key_type.name}: {value_type.name}}}"
        return self._intern(
            name,
            MappingTypeDefinition,
            lambda: MappingTypeDefinition(name=name, key_type=key_type, value_type=value_type),
        )

    def get_reference_type(self, target: TypeDefinition) -> ReferenceTypeDefinition:
        """Get or create a reference type to the target."""
        name = f"*{component_name(target)}"
        return self._intern(
            name,
            ReferenceTypeDefinition,
            lambda: ReferenceTypeDefinition(name=name, target=target),
        )

    def get_function_type(
        self, params: list[TypeDefinition], results: list[TypeDefinition]
    ) -> FunctionTypeDefinition:
        """Get or create a function type with the given signature."""
        name = f"fn({', '.join(p.name for p in params)})"
        if results:
            name += f" -> ({', '.join(r.name for r in results)})"
        return self._intern(
            name,
            FunctionTypeDefinition,
            lambda: FunctionTypeDefinition(name=name, params=list(params), results=list(results)),
        )

    @property
    def parser(self) -> Any:
        """The DSL parser bound to this registry, built on first use."""
        if self._parser is None:
            from typed_bridge.parsing import TypeParser

            with self.lock:
                if self._parser is None:
                    self._parser = TypeParser(self)
        return self._parser

    def parse_type(self, text: str) -> TypeDefinition:
        """Resolve a DSL type expression such as ``{string: uint8[]}``."""
        return self.parser.parse_type(text)

    def type_of(self, value: Any) -> TypeDefinition | None:
        """Return the runtime type of a host value (None for None)."""
        from typed_bridge.reflection import type_of

        return type_of(self, value)

    def type_for(self, annotation: Any) -> TypeDefinition:
        """Return the type described by a Python annotation or class."""
        from typed_bridge.reflection import type_for_annotation

        return type_for_annotation(self, annotation)

    def __contains__(self, name: str) -> bool:
        return name in self._types
