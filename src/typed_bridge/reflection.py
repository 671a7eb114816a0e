"""Build type definitions from Python classes, annotations and callables.

Annotations map onto the type system as follows:

    bool, int, float, str, complex   bool, int64, float64, string, complex128
    Any, object                      any
    list[T], Sequence[T]             T[]
    tuple[T, ...]                    T[]
    tuple[T, T]                      T[2]
    dict[K, V], Mapping[K, V]        {K: V}
    Optional[T]                      *T
    Union[A, B]                      any
    Callable[[A, B], R]              fn(A, B) -> (R)
    Annotated[int, "uint8"]          uint8 (any DSL type expression)
    NewType("Name", str)             Name, an alias of string
    class Name(str)                  Name, an alias of string built with Name(...)
    @dataclass class                 record
    Protocol class                   interface requiring its methods
    any other class                  record without fields

Every public function defined on a class is exposed to scripts as a method.
The :func:`script_method` decorator renames a method or declares that it
receives its value by copy.
"""

from __future__ import annotations

import collections.abc
import dataclasses
import functools
import inspect
import logging
import types as pytypes
import typing
from typing import Any, Callable

from typed_bridge.errors import UnsupportedKindError
from typed_bridge.types import (
    AliasTypeDefinition,
    FieldDefinition,
    FunctionTypeDefinition,
    InterfaceTypeDefinition,
    MethodDefinition,
    PrimitiveType,
    Receiver,
    RecordTypeDefinition,
    TypeDefinition,
    TypeRegistry,
)

logger = logging.getLogger(__name__)

SCRIPT_METHOD_ATTR = "__script_method__"

_PRIMITIVE_CLASSES: dict[type, PrimitiveType] = {
    bool: PrimitiveType.BOOL,
    int: PrimitiveType.INT64,
    float: PrimitiveType.FLOAT64,
    str: PrimitiveType.STRING,
    complex: PrimitiveType.COMPLEX128,
}

# Builtins a named type may subclass
_BUILTIN_BASES = (int, float, str, complex, list, tuple, dict)

_SEQUENCE_ORIGINS = (list, collections.abc.Sequence, collections.abc.MutableSequence)
_MAPPING_ORIGINS = (dict, collections.abc.Mapping, collections.abc.MutableMapping)


@dataclasses.dataclass(frozen=True)
class ScriptMethodInfo:
    """Options recorded by :func:`script_method`."""

    name: str | None = None
    receiver: Receiver | None = None


def script_method(
    func: Callable[..., Any] | None = None,
    *,
    name: str | None = None,
    receiver: Receiver | None = None,
) -> Any:
    """Set the script-visible name and receiver kind of a method.

    Usable bare (``@script_method``) or with arguments
    (``@script_method(name="Get", receiver=Receiver.VALUE)``). Methods
    without an explicit receiver take the class default: by reference for
    mutable classes, by value for frozen dataclasses and subclasses of
    immutable builtins.

    Record parameters receive a copy of the argument. Annotate a parameter
    as ``Optional[T]`` (a reference to T) to receive the bound object itself.
    """

    def decorate(fn: Callable[..., Any]) -> Callable[..., Any]:
        setattr(fn, SCRIPT_METHOD_ATTR, ScriptMethodInfo(name=name, receiver=receiver))
        return fn

    if func is not None:
        return decorate(func)
    return decorate


def type_for_annotation(registry: TypeRegistry, annotation: Any) -> TypeDefinition:
    """Return the type definition described by a Python annotation."""
    if isinstance(annotation, TypeDefinition):
        return annotation
    if isinstance(annotation, str):
        return registry.parse_type(annotation)
    if annotation is Any or annotation is object:
        return registry.any_type

    origin = typing.get_origin(annotation)
    args = typing.get_args(annotation)

    if origin is typing.Annotated:
        for meta in args[1:]:
            if isinstance(meta, (str, TypeDefinition)):
                return type_for_annotation(registry, meta)
        return type_for_annotation(registry, args[0])

    if origin is typing.Union or origin is pytypes.UnionType:
        members = [a for a in args if a is not type(None)]
        if len(members) == 1 and len(members) < len(args):
            return registry.get_reference_type(type_for_annotation(registry, members[0]))
        return registry.any_type

    if origin in _SEQUENCE_ORIGINS:
        element = type_for_annotation(registry, args[0]) if args else registry.any_type
        return registry.get_array_type(element)

    if origin is tuple:
        if not args or args == ((),):
            return registry.get_fixed_array_type(registry.any_type, 0)
        if len(args) == 2 and args[1] is Ellipsis:
            return registry.get_array_type(type_for_annotation(registry, args[0]))
        elements = [type_for_annotation(registry, a) for a in args]
        if any(e is not elements[0] for e in elements):
            raise UnsupportedKindError(repr(annotation), "reflect")
        return registry.get_fixed_array_type(elements[0], len(elements))

    if origin in _MAPPING_ORIGINS:
        key = type_for_annotation(registry, args[0]) if args else registry.any_type
        value = type_for_annotation(registry, args[1]) if len(args) > 1 else registry.any_type
        return registry.get_mapping_type(key, value)

    if origin is collections.abc.Callable:
        if not args or args[0] is Ellipsis:
            raise UnsupportedKindError(repr(annotation), "reflect")
        params = [type_for_annotation(registry, a) for a in args[0]]
        return registry.get_function_type(params, _results_for(registry, args[1]))

    if origin is not None:
        raise UnsupportedKindError(repr(annotation), "reflect")

    if isinstance(annotation, typing.NewType):
        return _alias_for_newtype(registry, annotation)

    if isinstance(annotation, type):
        return type_for_class(registry, annotation)

    raise UnsupportedKindError(repr(annotation), "reflect")


def _results_for(registry: TypeRegistry, annotation: Any) -> list[TypeDefinition]:
    # A tuple return annotation declares several results.
    if annotation is None or annotation is type(None):
        return []
    if typing.get_origin(annotation) is tuple:
        args = typing.get_args(annotation)
        if args and args != ((),) and not (len(args) == 2 and args[1] is Ellipsis):
            return [type_for_annotation(registry, a) for a in args]
    return [type_for_annotation(registry, annotation)]


def _type_name(registry: TypeRegistry, cls: Any) -> str:
    name = cls.__name__
    if name not in registry:
        return name
    qualified = name = f"{cls.__module__}.{cls.__qualname__}"
    n = 1
    while name in registry:
        n += 1
        name = f"{qualified}_{n}"
    return name


def _alias_for_newtype(registry: TypeRegistry, newtype: Any) -> TypeDefinition:
    with registry.lock:
        existing = registry.get_for_class(newtype)
        if existing is not None:
            return existing
        base = type_for_annotation(registry, newtype.__supertype__)
        alias = AliasTypeDefinition(name=_type_name(registry, newtype), base_type=base)
        registry.register(alias)
        registry.register_class(newtype, alias)
    logger.debug("registered alias %s of %s", alias.name, base.name)
    return alias


def type_for_class(registry: TypeRegistry, cls: type) -> TypeDefinition:
    """Return the type of instances of cls, registering it on first use."""
    existing = registry.get_for_class(cls)
    if existing is not None:
        return existing
    if cls in _PRIMITIVE_CLASSES:
        return registry.primitive(_PRIMITIVE_CLASSES[cls])
    if cls is list or cls is tuple:
        return registry.get_array_type(registry.any_type)
    if cls is dict:
        return registry.get_mapping_type(registry.any_type, registry.any_type)
    if cls is object:
        return registry.any_type
    if cls in (set, frozenset):
        raise UnsupportedKindError(cls.__name__)

    with registry.lock:
        existing = registry.get_for_class(cls)
        if existing is not None:
            return existing
        if getattr(cls, "_is_protocol", False):
            return _interface_for(registry, cls)
        if not dataclasses.is_dataclass(cls) and issubclass(cls, _BUILTIN_BASES):
            return _alias_for_class(registry, cls)
        return _record_for(registry, cls)


def _interface_for(registry: TypeRegistry, cls: type) -> InterfaceTypeDefinition:
    names: list[str] = []
    for attr, member in vars(cls).items():
        if attr.startswith("_") or not inspect.isfunction(member):
            continue
        info = getattr(member, SCRIPT_METHOD_ATTR, None)
        names.append(info.name if info is not None and info.name else attr)
    iface = InterfaceTypeDefinition(name=_type_name(registry, cls), method_names=names)
    registry.register(iface)
    registry.register_class(cls, iface)
    logger.debug("registered interface %s requiring %s", iface.name, names)
    return iface


def _alias_for_class(registry: TypeRegistry, cls: type) -> AliasTypeDefinition:
    builtin = next(b for b in cls.__mro__ if b in _BUILTIN_BASES)
    base: TypeDefinition | None = None
    for orig in cls.__dict__.get("__orig_bases__", ()):
        if typing.get_origin(orig) is builtin:
            base = type_for_annotation(registry, orig)
            break
    if base is None:
        base = type_for_class(registry, builtin)

    alias = AliasTypeDefinition(name=_type_name(registry, cls), base_type=base, python_class=cls)
    registry.register(alias)
    registry.register_class(cls, alias)
    immutable = builtin not in (list, dict)
    try:
        alias.methods = methods_for_class(
            registry, cls, Receiver.VALUE if immutable else Receiver.REFERENCE
        )
    except Exception:
        registry.discard(alias.name, cls)
        raise
    logger.debug(
        "registered alias %s of %s with %d methods", alias.name, base.name, len(alias.methods)
    )
    return alias


def _record_for(registry: TypeRegistry, cls: type) -> RecordTypeDefinition:
    is_dataclass = dataclasses.is_dataclass(cls)
    frozen = bool(is_dataclass and cls.__dataclass_params__.frozen)  # type: ignore[attr-defined]
    record = RecordTypeDefinition(name=_type_name(registry, cls), python_class=cls, frozen=frozen)

    # Registered before the fields resolve so self-referential records find it.
    registry.register(record)
    registry.register_class(cls, record)
    try:
        if is_dataclass:
            record.fields = _fields_for(registry, cls)
        record.methods = methods_for_class(
            registry, cls, Receiver.VALUE if frozen else Receiver.REFERENCE
        )
    except Exception:
        registry.discard(record.name, cls)
        raise

    logger.debug(
        "registered record %s with %d fields and %d methods",
        record.name,
        len(record.fields),
        len(record.methods),
    )
    return record


def _fields_for(registry: TypeRegistry, cls: type) -> list[FieldDefinition]:
    hints = typing.get_type_hints(cls, include_extras=True)
    fields: list[FieldDefinition] = []
    for f in dataclasses.fields(cls):
        if not f.init:
            continue
        fields.append(
            FieldDefinition(
                name=f.name,
                type_def=type_for_annotation(registry, hints.get(f.name, Any)),
                default_value=f.default,
                default_factory=f.default_factory,
                tags={k: v for k, v in f.metadata.items() if isinstance(k, str) and isinstance(v, str)},
            )
        )
    return fields


def methods_for_class(
    registry: TypeRegistry, cls: type, default_receiver: Receiver = Receiver.REFERENCE
) -> list[MethodDefinition]:
    """Collect the public methods a class exposes to scripts."""
    methods: list[MethodDefinition] = []
    seen: set[str] = set()
    for klass in cls.__mro__:
        for attr, member in vars(klass).items():
            if attr in seen:
                continue
            seen.add(attr)
            if attr.startswith("_") or not inspect.isfunction(member):
                continue
            info = getattr(member, SCRIPT_METHOD_ATTR, None) or ScriptMethodInfo()
            try:
                fn_type = function_type_for(registry, member, bound=True)
            except UnsupportedKindError as e:
                logger.debug("not exposing %s.%s: %s", cls.__name__, attr, e)
                continue
            methods.append(
                MethodDefinition(
                    name=info.name or attr,
                    attribute=attr,
                    function_type=fn_type,
                    receiver=info.receiver or default_receiver,
                )
            )
    return methods


def function_type_for(
    registry: TypeRegistry, fn: Callable[..., Any], bound: bool = False
) -> FunctionTypeDefinition:
    """Reflect a callable's positional signature.

    With ``bound`` the first parameter is the receiver and is left out.
    Unannotated parameters and results are ``any``.
    """
    try:
        sig = inspect.signature(fn)
    except (TypeError, ValueError) as e:
        raise UnsupportedKindError(getattr(fn, "__qualname__", repr(fn)), "reflect") from e
    try:
        hints = typing.get_type_hints(fn, include_extras=True)
    except (NameError, TypeError) as e:
        logger.debug("unresolved annotations on %r: %s", fn, e)
        hints = {}

    params = list(sig.parameters.values())
    if bound:
        params = params[1:]

    param_types: list[TypeDefinition] = []
    for p in params:
        if p.kind is inspect.Parameter.VAR_POSITIONAL:
            raise UnsupportedKindError(f"{getattr(fn, '__qualname__', fn)}(*{p.name})", "reflect")
        if p.kind in (inspect.Parameter.KEYWORD_ONLY, inspect.Parameter.VAR_KEYWORD):
            continue
        param_types.append(type_for_annotation(registry, hints.get(p.name, Any)))

    if "return" in hints:
        results = _results_for(registry, hints["return"])
    elif sig.return_annotation is inspect.Signature.empty:
        results = [registry.any_type]
    else:
        results = _results_for(registry, sig.return_annotation)
    return registry.get_function_type(param_types, results)


def type_of(registry: TypeRegistry, value: Any) -> TypeDefinition | None:
    """Return the runtime type of a host value, or None for None."""
    if value is None:
        return None
    cls = type(value)
    if cls in _PRIMITIVE_CLASSES:
        return registry.primitive(_PRIMITIVE_CLASSES[cls])
    if cls is list:
        return registry.get_array_type(registry.any_type)
    if cls is tuple:
        return registry.get_fixed_array_type(registry.any_type, len(value))
    if cls is dict:
        return registry.get_mapping_type(registry.any_type, registry.any_type)
    registered = registry.get_for_class(cls)
    if registered is not None:
        return registered
    if inspect.isroutine(value) or isinstance(value, functools.partial):
        return function_type_for(registry, value)
    return type_for_class(registry, cls)
