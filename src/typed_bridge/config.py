"""Policy knobs for a Bridge."""

from __future__ import annotations

from dataclasses import dataclass

EMPTY_TABLE_POLICIES = ("mapping", "sequence")
FIXED_ARRAY_POLICIES = ("strict", "lenient")


@dataclass(frozen=True)
class BridgeOptions:
    """Options shared by every conversion a bridge performs.

    ``default_tag`` is the field-tag name used when a call passes none.
    ``empty_table`` decides what an empty table becomes when decoded
    without a concrete destination type. ``fixed_array`` decides whether a
    table of the wrong length is an error ("strict") or is truncated or
    zero-padded ("lenient") when decoded to a fixed-size array.
    """

    default_tag: str | None = None
    empty_table: str = "mapping"
    fixed_array: str = "strict"

    def __post_init__(self) -> None:
        if self.empty_table not in EMPTY_TABLE_POLICIES:
            raise ValueError(
                f"empty_table must be one of {EMPTY_TABLE_POLICIES}, got {self.empty_table!r}"
            )
        if self.fixed_array not in FIXED_ARRAY_POLICIES:
            raise ValueError(
                f"fixed_array must be one of {FIXED_ARRAY_POLICIES}, got {self.fixed_array!r}"
            )
        if self.default_tag is not None and not self.default_tag:
            raise ValueError("default_tag must be a non-empty string or None")
