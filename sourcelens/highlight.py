"""Function-name token discovery on top of the Pygments JavaScript lexer."""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple

from pygments.lexers import JavascriptLexer
from pygments.token import Name, Punctuation, Text, Whitespace

_LEXER = JavascriptLexer(stripnl=False, ensurenl=False)

# Names that look like calls but are language keywords in the lexer's eyes.
_NOT_FUNCTIONS = {"if", "for", "while", "switch", "catch", "return", "typeof", "function"}


@dataclass(frozen=True)
class FunctionToken:
    line: int
    column: int
    name: str


def find_function_tokens(text: str) -> List[FunctionToken]:
    """Return name tokens directly followed by ``(`` (1-based line, 0-based column)."""
    tokens: List[FunctionToken] = []
    pending: Optional[Tuple[int, int, str]] = None
    line = 1
    column = 0

    for ttype, value in _LEXER.get_tokens(text):
        if ttype in Name and value not in _NOT_FUNCTIONS:
            pending = (line, column, value)
        elif ttype in Punctuation and value.startswith("("):
            if pending is not None:
                tokens.append(FunctionToken(line=pending[0], column=pending[1], name=pending[2]))
            pending = None
        elif not (ttype in Whitespace or ttype in Text) or value.strip():
            pending = None

        newlines = value.count("\n")
        if newlines:
            line += newlines
            column = len(value) - value.rfind("\n") - 1
        else:
            column += len(value)

    return tokens
