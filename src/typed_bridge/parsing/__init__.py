"""Parsing module for the type expression DSL."""

from typed_bridge.parsing.type_parser import TypeParser

__all__ = [
    "TypeParser",
]
