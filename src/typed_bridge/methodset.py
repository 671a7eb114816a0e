"""Method sets: the script-callable methods of a type, built once per type."""

from __future__ import annotations

import copy
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping

from typed_bridge.cache import TypeCache
from typed_bridge.errors import ArityMismatchError, IncompatibleHandleError
from typed_bridge.instance import TypedValue
from typed_bridge.types import (
    MethodDefinition,
    Receiver,
    RecordTypeDefinition,
    ReferenceTypeDefinition,
    TypeDefinition,
)

if TYPE_CHECKING:
    from typed_bridge.proxy import ProxyBridge

logger = logging.getLogger(__name__)


class MethodThunk:
    """Invokes one method on the value bound to a proxy handle.

    Arguments are decoded against the declared parameter types and every
    result is wrapped, so composites come back as live handles.
    """

    def __init__(self, definition: MethodDefinition, proxy: ProxyBridge) -> None:
        self.definition = definition
        self._proxy = proxy

    @property
    def name(self) -> str:
        return self.definition.name

    @property
    def arity(self) -> int:
        return self.definition.arity

    def __call__(self, bound: TypedValue, *args: Any) -> tuple[Any, ...]:
        d = self.definition
        if len(args) != d.arity:
            raise ArityMismatchError(d.name, d.arity, len(args))

        converter = self._proxy.converter
        native_args = [
            converter.script_to_native(arg, param)
            for arg, param in zip(args, d.function_type.params)
        ]
        receiver = self._receiver(bound)
        result = getattr(receiver, d.attribute)(*native_args)
        return self._proxy.wrap_results(d.name, d.function_type.results, result)

    def _receiver(self, bound: TypedValue) -> Any:
        if self.definition.receiver is Receiver.REFERENCE:
            if not bound.addressable:
                raise IncompatibleHandleError(bound.type_def.name, f"*{bound.type_def.name}")
            return bound.value
        if isinstance(bound.type_def.resolve_base_type(), RecordTypeDefinition):
            return copy.copy(bound.value)
        return bound.value

    def __repr__(self) -> str:
        return f"MethodThunk({self.definition.name!r}, {self.definition.receiver.value})"


class MethodSetCache:
    """Per-type method sets, shared read-only by every handle of the type.

    Thunks invoke methods through ``proxy``. A cache created without one is
    bound to the first ProxyBridge it is handed to.
    """

    def __init__(self, proxy: ProxyBridge | None = None) -> None:
        self.proxy = proxy
        self._cache: TypeCache[TypeDefinition, Mapping[str, MethodThunk]] = TypeCache(self._build)

    def load(self, type_def: TypeDefinition) -> Mapping[str, MethodThunk]:
        return self._cache.load(type_def)

    @property
    def builds(self) -> int:
        return self._cache.builds

    def __contains__(self, type_def: TypeDefinition) -> bool:
        return type_def in self._cache

    def _build(self, type_def: TypeDefinition) -> Mapping[str, MethodThunk]:
        base = type_def.resolve_base_type()
        if isinstance(base, ReferenceTypeDefinition):
            return self.load(base.target)

        proxy = self.proxy
        if proxy is None:
            raise RuntimeError("method set cache is not bound to a proxy")
        methods: dict[str, MethodThunk] = {}
        for m in type_def.methods:
            if m.receiver is Receiver.REFERENCE:
                methods[m.name] = MethodThunk(m, proxy)
        for m in type_def.methods:
            if m.receiver is Receiver.VALUE:
                methods.setdefault(m.name, MethodThunk(m, proxy))

        logger.debug("built method set for %s: %s", type_def.name, sorted(methods))
        return MappingProxyType(methods)
