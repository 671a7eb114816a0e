"""Errors raised while converting values between the host and a script engine."""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base class for all conversion and proxy errors."""


class UnsupportedKindError(BridgeError):
    """The value's kind cannot cross the bridge (complex numbers, bare callables)."""

    def __init__(self, type_name: str, operation: str = "convert") -> None:
        super().__init__(f"cannot {operation} a value of type {type_name}")
        self.type_name = type_name


class ShapeMismatchError(BridgeError):
    """A table was expected where a scalar was found, or the other way around."""

    def __init__(self, source: str, dest: str) -> None:
        super().__init__(f"cannot convert {source} to {dest}")
        self.source = source
        self.dest = dest


class NonStringKeyError(BridgeError):
    """A record was decoded from a table that has a non-string key."""

    def __init__(self, record: str, key: Any) -> None:
        super().__init__(f"cannot convert a table with non-string key {key!r} to {record}")
        self.record = record
        self.key = key


class FieldNotFoundError(BridgeError):
    """A tag or field name does not exist on the record type."""

    def __init__(self, type_name: str, name: str) -> None:
        super().__init__(f"'{name}' does not exist on type {type_name}")
        self.type_name = type_name
        self.name = name


class SizeMismatchError(BridgeError):
    """A fixed-size array was decoded from a table of the wrong length."""

    def __init__(self, type_name: str, expected: int, got: int) -> None:
        super().__init__(f"{type_name} expects {expected} elements, got {got}")
        self.expected = expected
        self.got = got


class ArityMismatchError(BridgeError):
    """A function or method was called with the wrong number of arguments."""

    def __init__(self, name: str, expected: int, got: int, what: str = "args") -> None:
        super().__init__(f"{name}: expected {expected} {what}, got {got}")
        self.expected = expected
        self.got = got


class IndexOutOfRangeError(BridgeError):
    """A sequence proxy was indexed outside its bounds."""

    def __init__(self, index: Any, length: int) -> None:
        super().__init__(f"index {index} out of range (length {length})")
        self.index = index
        self.length = length


class ConversionError(BridgeError):
    """A value cannot be converted to the destination primitive type."""


class IncompatibleHandleError(ConversionError):
    """A userdata handle's bound type cannot satisfy the requested destination."""

    def __init__(self, bound: str, dest: str) -> None:
        super().__init__(f"cannot convert userdata({bound}) to {dest}")
        self.bound = bound
        self.dest = dest
