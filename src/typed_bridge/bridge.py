"""Bridge class tying the registry, the caches and both conversion paths together."""

from __future__ import annotations

import threading
from typing import Any

from typed_bridge.codec import CodecCache
from typed_bridge.config import BridgeOptions
from typed_bridge.convert import DeepConverter
from typed_bridge.methodset import MethodSetCache
from typed_bridge.proxy import ProxyBridge
from typed_bridge.types import AliasTypeDefinition, TypeDefinition, TypeRegistry


class Bridge:
    """Marshals values between Python and a script engine."""

    def __init__(
        self,
        registry: TypeRegistry | None = None,
        options: BridgeOptions | None = None,
        method_sets: MethodSetCache | None = None,
    ) -> None:
        """Initialize a bridge.

        Args:
            registry: Type registry to resolve and register types in. A new
                one is created when omitted.
            options: Conversion policy. Defaults to ``BridgeOptions()``.
            method_sets: Method-set cache for proxy handles. A new one is
                created when omitted; pass one to share it between bridges.
        """
        self.registry = registry if registry is not None else TypeRegistry()
        self.options = options if options is not None else BridgeOptions()
        self.codecs = CodecCache()
        self.converter = DeepConverter(self.registry, self.codecs, self.options)
        self.proxy = ProxyBridge(self.registry, self.converter, method_sets)

    @property
    def method_sets(self) -> MethodSetCache:
        return self.proxy.method_sets

    def resolve(self, dest: Any) -> TypeDefinition:
        """Turn a destination descriptor into a type definition.

        Args:
            dest: A TypeDefinition, a DSL type expression such as
                ``"{string: any}"``, or a Python annotation or class.

        Returns:
            The type definition.

        Raises:
            SyntaxError: If a DSL string is malformed.
            KeyError: If a DSL string names an unknown type.
            UnsupportedKindError: If an annotation has no counterpart.
        """
        if isinstance(dest, TypeDefinition):
            return dest
        if isinstance(dest, str):
            return self.registry.parse_type(dest)
        return self.registry.type_for(dest)

    def type_of(self, value: Any) -> TypeDefinition | None:
        """Get the runtime type of a host value (None for None)."""
        return self.registry.type_of(value)

    def register(self, cls: Any) -> TypeDefinition:
        """Register a class (or any annotation) ahead of first use.

        Returns:
            The type definition it maps to.
        """
        return self.registry.type_for(cls)

    def define(self, definitions: str) -> list[AliasTypeDefinition]:
        """Define named types from DSL text such as ``define Color as uint64``.

        Returns:
            The new aliases in declaration order.
        """
        return self.registry.parser.parse(definitions)

    def native_to_script(
        self, value: Any, type_def: Any = None, tag_name: str | None = None
    ) -> Any:
        """Deep-copy a host value into a script value.

        Args:
            value: The host value, or a TypedValue carrying its own type.
            type_def: Source type descriptor; the runtime type when omitted.
            tag_name: Field metadata key that names record fields in tables.
        """
        source = self.resolve(type_def) if type_def is not None else None
        return self.converter.native_to_script(value, source, tag_name)

    def script_to_native(self, value: Any, dest: Any, tag_name: str | None = None) -> Any:
        """Build a new host value of the destination type from a script value.

        Args:
            value: The script value.
            dest: Destination type descriptor.
            tag_name: Field metadata key that names record fields in tables.
        """
        return self.converter.script_to_native(value, self.resolve(dest), tag_name)

    def wrap(self, value: Any, type_def: Any = None) -> Any:
        """Expose a host value to scripts, proxying composites by reference."""
        source = self.resolve(type_def) if type_def is not None else None
        return self.proxy.wrap(value, source)

    def unwrap(self, value: Any, dest: Any = None) -> Any:
        """Get the host value behind a script value.

        A record destination receives a copy; use ``"*T"`` or ``Optional[T]``
        for the bound object itself.
        """
        target = self.resolve(dest) if dest is not None else None
        return self.proxy.unwrap(value, target)


_default_bridge: Bridge | None = None
_default_lock = threading.Lock()


def default_bridge() -> Bridge:
    """Return the process-wide bridge used by the module-level functions."""
    global _default_bridge
    if _default_bridge is None:
        with _default_lock:
            if _default_bridge is None:
                _default_bridge = Bridge()
    return _default_bridge


def set_default_bridge(bridge: Bridge | None) -> None:
    """Replace the process-wide bridge; None starts a fresh one on next use."""
    global _default_bridge
    with _default_lock:
        _default_bridge = bridge


def native_to_script(value: Any, type_def: Any = None, tag_name: str | None = None) -> Any:
    return default_bridge().native_to_script(value, type_def, tag_name)


def script_to_native(value: Any, dest: Any, tag_name: str | None = None) -> Any:
    return default_bridge().script_to_native(value, dest, tag_name)


def wrap(value: Any, type_def: Any = None) -> Any:
    return default_bridge().wrap(value, type_def)


def unwrap(value: Any, dest: Any = None) -> Any:
    return default_bridge().unwrap(value, dest)
