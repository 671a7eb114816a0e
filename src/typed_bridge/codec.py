"""Struct codec: maps the tagged fields of a record type to table keys.

Tags live in dataclass field metadata under a tag name, so one record can
carry several independent naming conventions::

    @dataclass
    class Person:
        name: str = field(metadata={"lua": "name", "json": "fullName"})
        age: int = field(metadata={"lua": "age,omitempty"})
        secret: str = field(default="", metadata={"lua": "-"})

A tag value of ``-`` hides the field, an empty name part falls back to the
field name and the ``omitempty`` option skips zero values when encoding.
With no tag name at all, every public field is keyed by its own name.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

from typed_bridge.cache import TypeCache
from typed_bridge.errors import FieldNotFoundError
from typed_bridge.primitives import build_record
from typed_bridge.types import FieldDefinition, RecordTypeDefinition, TypeDefinition

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TagSpec:
    """A parsed field tag."""

    key: str
    omitempty: bool = False


def parse_tag(raw: str, field_name: str) -> TagSpec | None:
    """Parse a raw tag string; returns None for a hidden field."""
    key, sep, options = raw.partition(",")
    if key == "-" and not sep:
        return None
    return TagSpec(key=key or field_name, omitempty="omitempty" in options.split(","))


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (bool, int, float, str, list, tuple, dict)):
        return not value
    return False


class StructCodec:
    """Bidirectional tag <-> field mapping for one (record type, tag name) pair."""

    def __init__(self, type_def: TypeDefinition, tag_name: str | None) -> None:
        record = type_def.resolve_base_type()
        if not isinstance(record, RecordTypeDefinition):
            raise TypeError(f"Type '{type_def.name}' is not a record type")

        self.type_def = type_def
        self.record = record
        self.tag_name = tag_name
        self._by_tag: dict[str, FieldDefinition] = {}
        self._by_field: dict[str, TagSpec] = {}

        for f in record.fields:
            if not f.is_public:
                continue
            if tag_name is None:
                spec: TagSpec | None = TagSpec(key=f.name)
            else:
                raw = f.tag(tag_name)
                if raw is None:
                    continue
                spec = parse_tag(raw, f.name)
            if spec is None:
                continue
            if spec.key in self._by_tag:
                raise ValueError(
                    f"Type '{type_def.name}' maps two fields to {tag_name} tag '{spec.key}'"
                )
            self._by_tag[spec.key] = f
            self._by_field[f.name] = spec

    def field_for_tag(self, tag: str) -> FieldDefinition | None:
        """Get the field a tag string maps to."""
        return self._by_tag.get(tag)

    def tag_for_field(self, field_name: str) -> str | None:
        """Get the tag string a field is keyed by."""
        spec = self._by_field.get(field_name)
        return spec.key if spec is not None else None

    def fields(self) -> Iterator[tuple[str, FieldDefinition]]:
        """Iterate over (tag, field) pairs in declaration order."""
        return iter(self._by_tag.items())

    def record_to_map(self, value: Any) -> dict[str, Any]:
        """Read every tagged field of a record into a dict keyed by tag."""
        result: dict[str, Any] = {}
        for tag, f in self._by_tag.items():
            field_value = getattr(value, f.name)
            if self._by_field[f.name].omitempty and _is_empty(field_value):
                continue
            result[tag] = field_value
        return result

    def map_to_record(self, values: Mapping[str, Any]) -> Any:
        """Build a record from host values keyed by tag."""
        by_name: dict[str, Any] = {}
        for tag, field_value in values.items():
            f = self._by_tag.get(tag)
            if f is None:
                raise FieldNotFoundError(self.type_def.name, tag)
            by_name[f.name] = field_value
        return build_record(self.type_def, by_name)

    def __repr__(self) -> str:
        return f"StructCodec({self.type_def.name!r}, tag={self.tag_name!r}, keys={list(self._by_tag)})"


class CodecCache:
    """Struct codecs, built once per (record type, tag name) and never rebuilt."""

    def __init__(self) -> None:
        self._cache: TypeCache[tuple[TypeDefinition, str | None], StructCodec] = TypeCache(
            self._build
        )

    def load(self, type_def: TypeDefinition, tag_name: str | None) -> StructCodec:
        return self._cache.load((type_def, tag_name))

    @property
    def builds(self) -> int:
        return self._cache.builds

    @staticmethod
    def _build(key: tuple[TypeDefinition, str | None]) -> StructCodec:
        type_def, tag_name = key
        codec = StructCodec(type_def, tag_name)
        logger.debug("built struct codec for %s (tag %r)", type_def.name, tag_name)
        return codec
