"""Lexer for type expressions such as ``{string: uint8[4]}`` and alias definitions."""

import ply.lex as lex


class TypeLexer:
    """Tokenizes type expressions.

    Identifiers may contain dots so that qualified class names
    (``module.Class``) can be referenced from type expressions.
    """

    reserved = {
        "define": "DEFINE",
        "as": "AS",
        "fn": "FN",
    }

    punctuation = {
        "LBRACE": r"\{",
        "RBRACE": r"\}",
        "LBRACKET": r"\[",
        "RBRACKET": r"\]",
        "LPAREN": r"\(",
        "RPAREN": r"\)",
        "COLON": r":",
        "COMMA": r",",
        "STAR": r"\*",
        "ARROW": r"->",
    }

    tokens = ["IDENTIFIER", "INTEGER", *punctuation, *reserved.values()]

    t_LBRACE = punctuation["LBRACE"]
    t_RBRACE = punctuation["RBRACE"]
    t_LBRACKET = punctuation["LBRACKET"]
    t_RBRACKET = punctuation["RBRACKET"]
    t_LPAREN = punctuation["LPAREN"]
    t_RPAREN = punctuation["RPAREN"]
    t_COLON = punctuation["COLON"]
    t_COMMA = punctuation["COMMA"]
    t_STAR = punctuation["STAR"]
    t_ARROW = punctuation["ARROW"]

    t_ignore = " \t"
    t_ignore_COMMENT = r"\#[^\n]*"

    def __init__(self) -> None:
        self.lexer: lex.Lexer | None = None

    def t_INTEGER(self, t: lex.LexToken) -> lex.LexToken:
        r"\d+"
        t.value = int(t.value)
        return t

    def t_IDENTIFIER(self, t: lex.LexToken) -> lex.LexToken:
        r"[a-zA-Z_][a-zA-Z0-9_.]*"
        t.type = self.reserved.get(t.value, "IDENTIFIER")
        return t

    def t_newline(self, t: lex.LexToken) -> None:
        r"\n+"
        t.lexer.lineno += len(t.value)

    def t_error(self, t: lex.LexToken) -> None:
        raise SyntaxError(f"Illegal character '{t.value[0]}' at line {t.lineno}")

    def build(self, **kwargs) -> None:  # type: ignore
        self.lexer = lex.lex(module=self, **kwargs)

    def input(self, data: str) -> None:
        """Start tokenizing ``data`` from line 1."""
        assert self.lexer is not None, "call build() first"
        self.lexer.lineno = 1
        self.lexer.input(data)

    def token(self) -> lex.LexToken | None:
        assert self.lexer is not None, "call build() first"
        return self.lexer.token()

    def tokenize(self, data: str) -> list[lex.LexToken]:
        """Return every token of ``data``."""
        self.input(data)
        return list(iter(self.token, None))
