"""Typed Bridge - Marshal typed Python values to and from an embedded script engine."""

from typed_bridge.bridge import (
    Bridge,
    default_bridge,
    native_to_script,
    script_to_native,
    set_default_bridge,
    unwrap,
    wrap,
)
from typed_bridge.config import BridgeOptions
from typed_bridge.engine import Function, Metatable, ScriptError, State, Table, UserData
from typed_bridge.errors import (
    ArityMismatchError,
    BridgeError,
    ConversionError,
    FieldNotFoundError,
    IncompatibleHandleError,
    IndexOutOfRangeError,
    NonStringKeyError,
    ShapeMismatchError,
    SizeMismatchError,
    UnsupportedKindError,
)
from typed_bridge.instance import TypedValue
from typed_bridge.parsing import TypeParser
from typed_bridge.reflection import script_method
from typed_bridge.types import (
    AliasTypeDefinition,
    ArrayTypeDefinition,
    FieldDefinition,
    FixedArrayTypeDefinition,
    FunctionTypeDefinition,
    InterfaceTypeDefinition,
    Kind,
    MappingTypeDefinition,
    MethodDefinition,
    PrimitiveType,
    PrimitiveTypeDefinition,
    Receiver,
    RecordTypeDefinition,
    ReferenceTypeDefinition,
    TypeDefinition,
    TypeRegistry,
)

__all__ = [
    # Main API
    "Bridge",
    "BridgeOptions",
    "native_to_script",
    "script_to_native",
    "wrap",
    "unwrap",
    "default_bridge",
    "set_default_bridge",
    "script_method",
    "TypeParser",
    "TypedValue",
    # Script engine values
    "Table",
    "Function",
    "UserData",
    "Metatable",
    "State",
    "ScriptError",
    # Errors
    "BridgeError",
    "UnsupportedKindError",
    "ShapeMismatchError",
    "NonStringKeyError",
    "FieldNotFoundError",
    "SizeMismatchError",
    "ArityMismatchError",
    "IndexOutOfRangeError",
    "ConversionError",
    "IncompatibleHandleError",
    # Type definitions
    "Kind",
    "TypeDefinition",
    "PrimitiveType",
    "PrimitiveTypeDefinition",
    "AliasTypeDefinition",
    "ArrayTypeDefinition",
    "FixedArrayTypeDefinition",
    "MappingTypeDefinition",
    "RecordTypeDefinition",
    "ReferenceTypeDefinition",
    "FunctionTypeDefinition",
    "InterfaceTypeDefinition",
    "FieldDefinition",
    "MethodDefinition",
    "Receiver",
    "TypeRegistry",
]

__version__ = "0.1.0"
