"""
Tokenizer for the template minilanguage.

Text outside ``{{ ... }}`` becomes TEXT tokens; everything inside an
action is split into operands and punctuation. Trim markers (``{{- ``
and `` -}}``) are applied here, so the parser never sees the
whitespace they remove. Comments (``{{/* ... */}}``) produce no tokens.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Tuple

from render_api.app.core.errors import TemplateParseError

LEFT_DELIM = "{{"
RIGHT_DELIM = "}}"

# Token kinds
TEXT = "text"
ACTION_START = "action_start"
ACTION_END = "action_end"
IDENT = "identifier"
FIELD = "field"
CHAIN = "chain"
DOT = "dot"
VARIABLE = "variable"
STRING = "string"
NUMBER = "number"
BOOL = "bool"
NIL = "nil"
PIPE = "pipe"
LPAREN = "lparen"
RPAREN = "rparen"
COMMA = "comma"
DECLARE = "declare"
ASSIGN = "assign"
EOF = "eof"

_WHITESPACE = " \t\r\n"

_NUMBER_RE = re.compile(
    r"[+-]?(?:0[xX][0-9a-fA-F_]+|(?:\d[\d_]*)?(?:\.\d[\d_]*)?(?:[eE][+-]?\d+)?)"
)
_IDENT_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_PATH_RE = re.compile(r"(?:\.[A-Za-z_][A-Za-z0-9_]*)+")

_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "v": "\v",
    "\\": "\\",
    '"': '"',
    "'": "'",
}


@dataclass(frozen=True)
class Token:
    kind: str
    value: str
    pos: int


def position(source: str, offset: int) -> Tuple[int, int]:
    """Translate a character offset into a 1-based (line, column) pair."""
    line = source.count("\n", 0, offset) + 1
    column = offset - (source.rfind("\n", 0, offset) + 1) + 1
    return line, column


def _error(source: str, offset: int, message: str) -> TemplateParseError:
    line, column = position(source, offset)
    return TemplateParseError(message, line=line, column=column)


def _unquote(source: str, start: int, end: int) -> str:
    """Decode the body of a double-quoted string literal."""
    out: List[str] = []
    i = start
    while i < end:
        char = source[i]
        if char != "\\":
            out.append(char)
            i += 1
            continue

        i += 1
        code = source[i]
        if code in _ESCAPES:
            out.append(_ESCAPES[code])
            i += 1
        elif code in "xuU":
            width = {"x": 2, "u": 4, "U": 8}[code]
            digits = source[i + 1:i + 1 + width]
            if len(digits) != width or not all(
                d in "0123456789abcdefABCDEF" for d in digits
            ):
                raise _error(source, i - 1, "invalid escape in string literal")
            out.append(chr(int(digits, 16)))
            i += 1 + width
        else:
            raise _error(
                source, i - 1, f"unknown escape sequence \\{code}"
            )
    return "".join(out)


def _trim_marker_left(source: str, offset: int) -> bool:
    return (
        source.startswith("-", offset)
        and offset + 1 < len(source)
        and source[offset + 1] in _WHITESPACE
    )


def _skip_whitespace(source: str, offset: int) -> int:
    while offset < len(source) and source[offset] in _WHITESPACE:
        offset += 1
    return offset


def _close_delimiter(source: str, offset: int):
    """
    Return ``(end_offset, trim_right)`` if a closing delimiter starts at
    ``offset`` (optionally preceded by a `` -`` trim marker), else None.
    """
    if source.startswith(RIGHT_DELIM, offset):
        return offset + len(RIGHT_DELIM), False
    if (
        source.startswith("-" + RIGHT_DELIM, offset)
        and offset > 0
        and source[offset - 1] in _WHITESPACE
    ):
        return offset + 1 + len(RIGHT_DELIM), True
    return None


def tokenize(source: str) -> List[Token]:
    tokens: List[Token] = []
    pos = 0
    trim_next = False

    while True:
        start = source.find(LEFT_DELIM, pos)
        text = source[pos:] if start < 0 else source[pos:start]

        if trim_next:
            text = text.lstrip(_WHITESPACE)

        inner = start + len(LEFT_DELIM)
        if start >= 0 and _trim_marker_left(source, inner):
            text = text.rstrip(_WHITESPACE)
            inner += 2

        if text:
            tokens.append(Token(TEXT, text, pos))

        if start < 0:
            break

        # --------------------------------------------------------------
        # Comments
        # --------------------------------------------------------------
        probe = _skip_whitespace(source, inner)
        if source.startswith("/*", probe):
            close = source.find("*/", probe + 2)
            if close < 0:
                raise _error(source, start, "unclosed comment")
            closing = _close_delimiter(
                source, _skip_whitespace(source, close + 2)
            )
            if closing is None:
                raise _error(
                    source, close, "comment ends before closing delimiter"
                )
            pos, trim_next = closing
            continue

        tokens.append(Token(ACTION_START, LEFT_DELIM, start))
        pos, trim_next = _lex_action(source, inner, tokens)

    tokens.append(Token(EOF, "", len(source)))
    return tokens


def _lex_action(source: str, i: int, tokens: List[Token]) -> Tuple[int, bool]:
    """Lex one action body; return the offset after its closing delimiter."""
    length = len(source)

    while True:
        if i >= length:
            raise _error(source, i, "unclosed action")

        closing = _close_delimiter(source, i)
        if closing is not None:
            tokens.append(Token(ACTION_END, RIGHT_DELIM, i))
            return closing

        char = source[i]

        if char in _WHITESPACE:
            i += 1

        elif char == "|":
            tokens.append(Token(PIPE, char, i))
            i += 1

        elif char == "(":
            tokens.append(Token(LPAREN, char, i))
            i += 1

        elif char == ")":
            tokens.append(Token(RPAREN, char, i))
            i += 1
            chain = _PATH_RE.match(source, i)
            if chain:
                tokens.append(Token(CHAIN, chain.group()[1:], i))
                i = chain.end()

        elif char == ",":
            tokens.append(Token(COMMA, char, i))
            i += 1

        elif source.startswith(":=", i):
            tokens.append(Token(DECLARE, ":=", i))
            i += 2

        elif char == "=":
            tokens.append(Token(ASSIGN, char, i))
            i += 1

        elif char == '"':
            end = i + 1
            while end < length and source[end] != '"':
                if source[end] == "\n":
                    break
                end += 2 if source[end] == "\\" else 1
            if end >= length or source[end] != '"':
                raise _error(source, i, "unterminated quoted string")
            tokens.append(Token(STRING, _unquote(source, i + 1, end), i))
            i = end + 1

        elif char == "`":
            end = source.find("`", i + 1)
            if end < 0:
                raise _error(source, i, "unterminated raw quoted string")
            tokens.append(Token(STRING, source[i + 1:end], i))
            i = end + 1

        elif char == "$":
            name = _IDENT_RE.match(source, i + 1)
            end = name.end() if name else i + 1
            path = _PATH_RE.match(source, end)
            if path:
                end = path.end()
            tokens.append(Token(VARIABLE, source[i:end], i))
            i = end

        elif char == "." and i + 1 < length and (
            source[i + 1].isalpha() or source[i + 1] == "_"
        ):
            path = _PATH_RE.match(source, i)
            tokens.append(Token(FIELD, path.group()[1:], i))
            i = path.end()

        elif char.isdigit() or (
            char in "+-." and i + 1 < length and source[i + 1].isdigit()
        ):
            number = _NUMBER_RE.match(source, i)
            tokens.append(Token(NUMBER, number.group(), i))
            i = number.end()

        elif char == ".":
            tokens.append(Token(DOT, char, i))
            i += 1

        elif char.isalpha() or char == "_":
            word = _IDENT_RE.match(source, i).group()
            if word in ("true", "false"):
                kind = BOOL
            elif word == "nil":
                kind = NIL
            else:
                kind = IDENT
            tokens.append(Token(kind, word, i))
            i += len(word)

        else:
            raise _error(source, i, f"unexpected {char!r} in action")
