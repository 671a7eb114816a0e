"""Parser for the type expression DSL.

A document is either a single type expression::

    {string: uint8[4]}[]
    *Person
    fn(string, int64) -> (bool, any)

or a list of alias definitions::

    define Color as uint64
    define Palette as Color[]
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Union

import ply.yacc as yacc

from typed_bridge.parsing.type_lexer import TypeLexer
from typed_bridge.types import AliasTypeDefinition, TypeDefinition, TypeRegistry


@dataclass
class NamedRef:
    """Reference to a type by name."""

    name: str


@dataclass
class ArrayRef:
    """An array of some element type; a length makes it fixed-size."""

    element: TypeRef
    length: int | None = None


@dataclass
class MappingRef:
    key: TypeRef
    value: TypeRef


@dataclass
class ReferenceRef:
    target: TypeRef


@dataclass
class FunctionRef:
    params: list[TypeRef]
    results: list[TypeRef]


TypeRef = Union[NamedRef, ArrayRef, MappingRef, ReferenceRef, FunctionRef]


@dataclass
class AliasSpec:
    """An alias definition awaiting resolution."""

    name: str
    base_type_ref: TypeRef


class TypeParser:
    """Parser for the type expression DSL."""

    tokens = TypeLexer.tokens

    def __init__(self, registry: TypeRegistry | None = None) -> None:
        self.lexer = TypeLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore
        self.registry: TypeRegistry = registry if registry is not None else TypeRegistry()
        self._lock = threading.Lock()

    def p_document_statements(self, p: yacc.YaccProduction) -> None:
        """document : statement_list"""
        p[0] = p[1]

    def p_document_type(self, p: yacc.YaccProduction) -> None:
        """document : type_expr"""
        p[0] = p[1]

    def p_document_empty(self, p: yacc.YaccProduction) -> None:
        """document : empty"""
        p[0] = []

    def p_statement_list_single(self, p: yacc.YaccProduction) -> None:
        """statement_list : statement"""
        p[0] = [p[1]]

    def p_statement_list_multiple(self, p: yacc.YaccProduction) -> None:
        """statement_list : statement_list statement"""
        p[0] = p[1]
        p[0].append(p[2])

    def p_statement_alias(self, p: yacc.YaccProduction) -> None:
        """statement : DEFINE IDENTIFIER AS type_expr"""
        p[0] = AliasSpec(name=p[2], base_type_ref=p[4])

    def p_type_expr_postfix(self, p: yacc.YaccProduction) -> None:
        """type_expr : postfix_expr"""
        p[0] = p[1]

    def p_type_expr_reference(self, p: yacc.YaccProduction) -> None:
        """type_expr : STAR type_expr"""
        p[0] = ReferenceRef(target=p[2])

    def p_postfix_expr_primary(self, p: yacc.YaccProduction) -> None:
        """postfix_expr : primary"""
        p[0] = p[1]

    def p_postfix_expr_array(self, p: yacc.YaccProduction) -> None:
        """postfix_expr : postfix_expr LBRACKET RBRACKET"""
        p[0] = ArrayRef(element=p[1])

    def p_postfix_expr_fixed_array(self, p: yacc.YaccProduction) -> None:
        """postfix_expr : postfix_expr LBRACKET INTEGER RBRACKET"""
        p[0] = ArrayRef(element=p[1], length=p[3])

    def p_primary_named(self, p: yacc.YaccProduction) -> None:
        """primary : IDENTIFIER"""
        p[0] = NamedRef(name=p[1])

    def p_primary_mapping(self, p: yacc.YaccProduction) -> None:
        """primary : LBRACE type_expr COLON type_expr RBRACE"""
        p[0] = MappingRef(key=p[2], value=p[4])

    def p_primary_group(self, p: yacc.YaccProduction) -> None:
        """primary : LPAREN type_expr RPAREN"""
        p[0] = p[2]

    def p_primary_function(self, p: yacc.YaccProduction) -> None:
        """primary : FN LPAREN type_list_opt RPAREN"""
        p[0] = FunctionRef(params=p[3], results=[])

    def p_primary_function_results(self, p: yacc.YaccProduction) -> None:
        """primary : FN LPAREN type_list_opt RPAREN ARROW LPAREN type_list_opt RPAREN"""
        p[0] = FunctionRef(params=p[3], results=p[7])

    def p_type_list_opt(self, p: yacc.YaccProduction) -> None:
        """type_list_opt : type_list
                         | empty"""
        p[0] = p[1] if p[1] is not None else []

    def p_type_list_single(self, p: yacc.YaccProduction) -> None:
        """type_list : type_expr"""
        p[0] = [p[1]]

    def p_type_list_multiple(self, p: yacc.YaccProduction) -> None:
        """type_list : type_list COMMA type_expr"""
        p[0] = p[1] + [p[3]]

    def p_empty(self, p: yacc.YaccProduction) -> None:
        """empty :"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (line {p.lineno})")
        else:
            raise SyntaxError("Syntax error at end of input")

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, **kwargs)

    def _parse_document(self, data: str) -> Any:
        with self._lock:
            if self.parser is None:
                self.build(debug=False, write_tables=False)
            self.lexer.lexer.lineno = 1
            return self.parser.parse(data, lexer=self.lexer.lexer)

    def parse_type(self, data: str) -> TypeDefinition:
        """Parse a single type expression and resolve it against the registry.

        Raises SyntaxError for malformed text and KeyError for unknown names.
        """
        ref = self._parse_document(data)
        if isinstance(ref, list):
            raise SyntaxError(f"Expected a type expression, got {data!r}")
        return self._resolve_type_ref(ref)

    def parse(self, data: str) -> list[AliasTypeDefinition]:
        """Parse alias definitions, register them and return them in order."""
        specs = self._parse_document(data)
        if not isinstance(specs, list):
            raise SyntaxError(f"Expected alias definitions, got {data!r}")
        return self._resolve_specs(specs)

    def _resolve_type_ref(self, ref: TypeRef) -> TypeDefinition:
        """Resolve a type reference to a type definition."""
        if isinstance(ref, NamedRef):
            return self.registry.get_or_raise(ref.name)
        if isinstance(ref, ArrayRef):
            element = self._resolve_type_ref(ref.element)
            if ref.length is None:
                return self.registry.get_array_type(element)
            return self.registry.get_fixed_array_type(element, ref.length)
        if isinstance(ref, MappingRef):
            return self.registry.get_mapping_type(
                self._resolve_type_ref(ref.key), self._resolve_type_ref(ref.value)
            )
        if isinstance(ref, ReferenceRef):
            return self.registry.get_reference_type(self._resolve_type_ref(ref.target))
        return self.registry.get_function_type(
            [self._resolve_type_ref(r) for r in ref.params],
            [self._resolve_type_ref(r) for r in ref.results],
        )

    def _resolve_specs(self, specs: list[AliasSpec]) -> list[AliasTypeDefinition]:
        """Resolve alias specs, letting an alias refer to one defined after it."""
        resolved: dict[str, AliasTypeDefinition] = {}
        unresolved = list(specs)

        max_iterations = len(unresolved) + 1
        for _ in range(max_iterations):
            if not unresolved:
                break

            still_unresolved: list[AliasSpec] = []
            for spec in unresolved:
                try:
                    base_type = self._resolve_type_ref(spec.base_type_ref)
                except KeyError:
                    # Dependency not yet resolved
                    still_unresolved.append(spec)
                    continue
                alias = AliasTypeDefinition(name=spec.name, base_type=base_type)
                self.registry.register(alias)
                resolved[spec.name] = alias

            if len(still_unresolved) == len(unresolved):
                remaining = [s.name for s in still_unresolved]
                raise KeyError(f"Cannot resolve types: {remaining}")
            unresolved = still_unresolved

        return [resolved[spec.name] for spec in specs]
