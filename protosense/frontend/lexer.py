# Licensed to the Apache Software Foundation (ASF) under one
# or more contributor license agreements.  See the NOTICE file
# distributed with this work for additional information
# regarding copyright ownership.  The ASF licenses this file
# to you under the Apache License, Version 2.0 (the
# "License"); you may not use this file except in compliance
# with the License.  You may obtain a copy of the License at
#
#   http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing,
# software distributed under the License is distributed on an
# "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY
# KIND, either express or implied.  See the License for the
# specific language governing permissions and limitations
# under the License.

"""Hand-written, error tolerant lexer for proto files.

The lexer never fails. Unknown characters are dropped, and unterminated
strings or block comments simply run to the end of the text. Keywords are
returned as ``IDENT`` tokens; the parser decides from context whether an
identifier such as ``message`` starts a declaration or names a field.
"""

import re
from dataclasses import dataclass
from enum import Enum, auto
from typing import List, Optional

from protosense.frontend.ast import Position, Range


class TokenType(Enum):
    """Token types for proto files."""

    # Literals
    IDENT = auto()
    NUMBER = auto()
    STRING = auto()

    # Punctuation
    LBRACE = auto()
    RBRACE = auto()
    LBRACKET = auto()
    RBRACKET = auto()
    LPAREN = auto()
    RPAREN = auto()
    LANGLE = auto()
    RANGLE = auto()
    SEMI = auto()
    COMMA = auto()
    EQUALS = auto()
    DOT = auto()
    COLON = auto()
    MINUS = auto()
    PLUS = auto()

    EOF = auto()


@dataclass
class Token:
    """A token produced by the lexer.

    ``value`` is the verbatim source text, so string tokens keep their quotes.
    """

    type: TokenType
    value: str
    range: Range
    leading_comment: Optional[str] = None
    trailing_comment: Optional[str] = None

    @property
    def line(self) -> int:
        return self.range.start.line

    @property
    def column(self) -> int:
        return self.range.start.character

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


_BLOCK_LINE_PREFIX = re.compile(r"^\s*\*?\s?")


class Lexer:
    """Hand-written tokenizer for proto files."""

    PUNCTUATION = {
        "{": TokenType.LBRACE,
        "}": TokenType.RBRACE,
        "[": TokenType.LBRACKET,
        "]": TokenType.RBRACKET,
        "(": TokenType.LPAREN,
        ")": TokenType.RPAREN,
        "<": TokenType.LANGLE,
        ">": TokenType.RANGLE,
        ";": TokenType.SEMI,
        ",": TokenType.COMMA,
        "=": TokenType.EQUALS,
        ".": TokenType.DOT,
        ":": TokenType.COLON,
        "-": TokenType.MINUS,
        "+": TokenType.PLUS,
    }

    def __init__(self, source: str):
        self.source = source
        self.pos = 0
        self.line = 0
        self.column = 0
        self.tokens: List[Token] = []
        self.pending_comments: List[str] = []
        # True while the last token ended on the current line.
        self.same_line_as_previous = False

    def at_end(self) -> bool:
        return self.pos >= len(self.source)

    def peek(self, offset: int = 0) -> str:
        pos = self.pos + offset
        if pos >= len(self.source):
            return "\0"
        return self.source[pos]

    def advance(self) -> str:
        if self.at_end():
            return "\0"
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 0
        else:
            self.column += 1
        return ch

    def position(self) -> Position:
        return Position(self.line, self.column)

    def read_line_comment(self) -> str:
        self.advance()
        self.advance()
        start = self.pos
        while not self.at_end() and self.peek() != "\n":
            self.advance()
        return self.source[start : self.pos].strip()

    def read_block_comment(self) -> str:
        self.advance()
        self.advance()
        start = self.pos
        while not self.at_end() and not (self.peek() == "*" and self.peek(1) == "/"):
            self.advance()
        body = self.source[start : self.pos]
        if not self.at_end():
            self.advance()
            self.advance()
        lines = [_BLOCK_LINE_PREFIX.sub("", line).strip() for line in body.split("\n")]
        return "\n".join(lines).strip()

    def add_comment(self, text: str, start_line: int) -> None:
        previous = self.tokens[-1] if self.tokens else None
        if (
            previous is not None
            and self.same_line_as_previous
            and previous.range.end.line == start_line
        ):
            if previous.trailing_comment:
                previous.trailing_comment += "\n" + text
            else:
                previous.trailing_comment = text
        else:
            self.pending_comments.append(text)

    def read_string(self) -> None:
        quote_char = self.advance()
        while not self.at_end():
            ch = self.peek()
            if ch == quote_char:
                self.advance()
                return
            if ch == "\\":
                self.advance()
            self.advance()

    def starts_number(self) -> bool:
        ch = self.peek()
        if ch.isdigit():
            return True
        if ch == "." and self.peek(1).isdigit():
            return True
        if ch in "+-":
            nxt = self.peek(1)
            return nxt.isdigit() or (nxt == "." and self.peek(2).isdigit())
        return False

    def read_number(self) -> None:
        if self.peek() in "+-":
            self.advance()
        if self.peek() == "0" and self.peek(1) in "xX":
            self.advance()
            self.advance()
            while self.peek() in "0123456789abcdefABCDEF" and not self.at_end():
                self.advance()
            return
        while not self.at_end() and (self.peek().isdigit() or self.peek() == "."):
            self.advance()
        if self.peek() in "eE":
            self.advance()
            if self.peek() in "+-":
                self.advance()
            while not self.at_end() and self.peek().isdigit():
                self.advance()

    def read_identifier(self) -> None:
        while not self.at_end():
            ch = self.peek()
            if ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch.isdigit() or ch == "_":
                self.advance()
            else:
                break

    def emit(self, token_type: TokenType, start: int, start_pos: Position) -> None:
        leading = "\n".join(self.pending_comments) if self.pending_comments else None
        self.pending_comments = []
        self.tokens.append(
            Token(
                token_type,
                self.source[start : self.pos],
                Range(start_pos, self.position()),
                leading_comment=leading,
            )
        )
        self.same_line_as_previous = True

    def tokenize(self) -> List[Token]:
        while not self.at_end():
            ch = self.peek()

            if ch == "\n":
                self.advance()
                self.same_line_as_previous = False
                continue

            if ch.isspace():
                self.advance()
                continue

            start = self.pos
            start_pos = self.position()

            if ch == "/" and self.peek(1) == "/":
                self.add_comment(self.read_line_comment(), start_pos.line)
                continue

            if ch == "/" and self.peek(1) == "*":
                self.add_comment(self.read_block_comment(), start_pos.line)
                continue

            if ch in "\"'":
                self.read_string()
                self.emit(TokenType.STRING, start, start_pos)
                continue

            if self.starts_number():
                self.read_number()
                self.emit(TokenType.NUMBER, start, start_pos)
                continue

            if ("a" <= ch <= "z") or ("A" <= ch <= "Z") or ch == "_":
                self.read_identifier()
                self.emit(TokenType.IDENT, start, start_pos)
                continue

            if ch in self.PUNCTUATION:
                self.advance()
                self.emit(self.PUNCTUATION[ch], start, start_pos)
                continue

            # Unknown character.
            self.advance()

        end = self.position()
        self.tokens.append(
            Token(
                TokenType.EOF,
                "",
                Range(end, end),
                leading_comment="\n".join(self.pending_comments) if self.pending_comments else None,
            )
        )
        self.pending_comments = []
        return self.tokens


def tokenize(text: str) -> List[Token]:
    """Tokenize proto source text; the result always ends with an EOF token."""
    return Lexer(text).tokenize()


_SIMPLE_ESCAPES = {
    "a": "\a",
    "b": "\b",
    "f": "\f",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "v": "\v",
    "\\": "\\",
    "'": "'",
    '"': '"',
    "?": "?",
}

MAX_CODE_POINT = 0x10FFFF


def unquote(raw: str) -> str:
    """Decode a quoted string token, tolerating a missing closing quote."""
    if not raw or raw[0] not in "\"'":
        return raw
    quote = raw[0]
    body = raw[1:]
    if body.endswith(quote) and not _ends_with_escape(body[:-1]):
        body = body[:-1]

    result = []
    i = 0
    while i < len(body):
        ch = body[i]
        if ch != "\\" or i + 1 >= len(body):
            result.append(ch)
            i += 1
            continue
        esc = body[i + 1]
        i += 2
        if esc in _SIMPLE_ESCAPES:
            result.append(_SIMPLE_ESCAPES[esc])
        elif esc in "xX":
            digits = _take(body, i, "0123456789abcdefABCDEF", 2)
            if digits:
                result.append(chr(int(digits, 16)))
                i += len(digits)
            else:
                result.append(esc)
        elif esc in "01234567":
            digits = esc + _take(body, i, "01234567", 2)
            result.append(chr(int(digits, 8)))
            i += len(digits) - 1
        elif esc in "uU":
            width = 4 if esc == "u" else 8
            digits = _take(body, i, "0123456789abcdefABCDEF", width)
            if len(digits) == width and int(digits, 16) <= MAX_CODE_POINT:
                result.append(chr(int(digits, 16)))
                i += width
            elif len(digits) == width:
                # Beyond Unicode; keep the escape as written.
                result.append("\\" + esc + digits)
                i += width
            else:
                result.append(esc)
        else:
            result.append(esc)
    return "".join(result)


def _ends_with_escape(text: str) -> bool:
    count = 0
    for ch in reversed(text):
        if ch != "\\":
            break
        count += 1
    return count % 2 == 1


def _take(text: str, start: int, allowed: str, limit: int) -> str:
    end = start
    while end < len(text) and end - start < limit and text[end] in allowed:
        end += 1
    return text[start:end]


def parse_int_literal(text: str) -> Optional[int]:
    """Parse a decimal, hex or octal integer literal with an optional sign."""
    sign = 1
    body = text
    if body[:1] in "+-":
        if body[0] == "-":
            sign = -1
        body = body[1:]
    if not body:
        return None
    try:
        if body[:2] in ("0x", "0X"):
            return sign * int(body[2:], 16)
        if len(body) > 1 and body[0] == "0":
            return sign * int(body[1:], 8)
        return sign * int(body, 10)
    except ValueError:
        return None


def parse_float_literal(text: str) -> Optional[float]:
    """Parse a float literal, including the ``inf`` and ``nan`` spellings."""
    lowered = text.lower()
    if lowered.lstrip("+-") in ("inf", "infinity", "nan"):
        return float(lowered)
    try:
        return float(text)
    except ValueError:
        value = parse_int_literal(text)
        return float(value) if value is not None else None
