"""Host values paired with their static types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from typed_bridge.types import Kind, RecordTypeDefinition, TypeDefinition


@dataclass
class TypedValue:
    """A host value together with the type it is known by.

    Userdata handles hold a TypedValue so the bound value can be replaced
    in place when the host representation cannot be mutated (tuples, frozen
    records).
    """

    value: Any
    type_def: TypeDefinition
    addressable: bool = True

    @classmethod
    def bind(cls, value: Any, type_def: TypeDefinition) -> TypedValue:
        """Bind a composite value, working out whether it can be mutated in place."""
        return cls(value=value, type_def=type_def, addressable=is_addressable(value, type_def))

    @property
    def kind(self) -> Kind:
        return self.type_def.kind

    def __repr__(self) -> str:
        return f"TypedValue({self.value!r}, {self.type_def.name})"


def is_addressable(value: Any, type_def: TypeDefinition) -> bool:
    """Check whether a composite host value can be updated in place."""
    base = type_def.resolve_base_type()
    if isinstance(value, tuple):
        return False
    if isinstance(base, RecordTypeDefinition):
        return not base.frozen
    return True
