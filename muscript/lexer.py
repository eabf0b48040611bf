"""Tokenizer for muScript source text.

Token spans are byte offsets into the UTF-8 encoding of the source.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Union

from muscript.ast import Span

__all__ = ["LexErrorCode", "LexError", "TokenKind", "Token", "tokenize"]


class LexErrorCode(enum.Enum):
    """Diagnostic codes reported by the lexer."""

    UNEXPECTED_CHAR = "E1001"
    UNTERMINATED_STRING = "E1002"
    UNTERMINATED_ESCAPE = "E1003"
    INVALID_ESCAPE = "E1004"
    UNTERMINATED_BLOCK_COMMENT = "E1005"
    INVALID_INT_LEADING_ZERO = "E1006"
    INT_OUT_OF_RANGE = "E1007"

    def as_str(self) -> str:
        return self.value


class LexError(Exception):
    """Raised when the source text cannot be tokenized."""

    def __init__(self, code: LexErrorCode, span: Span, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.span = span
        self.message = message

    def __str__(self) -> str:
        return (
            f"{self.code.value}: {self.message} "
            f"at bytes {self.span.start}..{self.span.end}"
        )


class TokenKind(enum.Enum):
    AT = enum.auto()
    DOLLAR = enum.auto()
    COLON = enum.auto()
    HASH = enum.auto()
    SEMICOLON = enum.auto()
    COMMA = enum.auto()
    DOT = enum.auto()
    EQ = enum.auto()
    PIPE = enum.auto()
    BANG = enum.auto()
    QUESTION = enum.auto()
    CARET = enum.auto()
    LPAREN = enum.auto()
    RPAREN = enum.auto()
    LBRACKET = enum.auto()
    RBRACKET = enum.auto()
    LBRACE = enum.auto()
    RBRACE = enum.auto()
    ARROW = enum.auto()
    FAT_ARROW = enum.auto()
    PLUS = enum.auto()
    MINUS = enum.auto()
    STAR = enum.auto()
    SLASH = enum.auto()
    PERCENT = enum.auto()
    EQ_EQ = enum.auto()
    NOT_EQ = enum.auto()
    LT = enum.auto()
    LE = enum.auto()
    GT = enum.auto()
    GE = enum.auto()
    UNDERSCORE = enum.auto()
    SYM_REF = enum.auto()
    IDENT = enum.auto()
    INT = enum.auto()
    STRING = enum.auto()
    EOF = enum.auto()


@dataclass(frozen=True)
class Token:
    """A token; ``value`` holds the payload of identifier, literal and symbol tokens."""

    kind: TokenKind
    span: Span
    value: Union[str, int, None] = None


_SIMPLE = {
    "@": TokenKind.AT,
    "$": TokenKind.DOLLAR,
    ":": TokenKind.COLON,
    ";": TokenKind.SEMICOLON,
    ",": TokenKind.COMMA,
    ".": TokenKind.DOT,
    "|": TokenKind.PIPE,
    "?": TokenKind.QUESTION,
    "^": TokenKind.CARET,
    "+": TokenKind.PLUS,
    "*": TokenKind.STAR,
    "%": TokenKind.PERCENT,
    "(": TokenKind.LPAREN,
    ")": TokenKind.RPAREN,
    "[": TokenKind.LBRACKET,
    "]": TokenKind.RBRACKET,
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
}

# First character -> (single-char kind, {second char: two-char kind}).
_COMPOUND = {
    "=": (TokenKind.EQ, {"=": TokenKind.EQ_EQ, ">": TokenKind.FAT_ARROW}),
    "!": (TokenKind.BANG, {"=": TokenKind.NOT_EQ}),
    "<": (TokenKind.LT, {"=": TokenKind.LE}),
    ">": (TokenKind.GT, {"=": TokenKind.GE}),
    "-": (TokenKind.MINUS, {">": TokenKind.ARROW}),
}

_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "r": "\r", "t": "\t"}

_I64_MAX = 2**63 - 1
_U32_MAX = 2**32 - 1

_DIGITS = frozenset("0123456789")
_ASCII_ALPHA = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ")
# Characters Python treats as whitespace that are not Unicode White_Space.
_NOT_WHITESPACE = frozenset("\x1c\x1d\x1e\x1f")


def _is_whitespace(ch: str) -> bool:
    return ch.isspace() and ch not in _NOT_WHITESPACE


def _is_ident_start(ch: str) -> bool:
    return ch == "_" or ch in _ASCII_ALPHA


def _is_ident_continue(ch: str) -> bool:
    return ch == "_" or ch in _ASCII_ALPHA or ch in _DIGITS


def _utf8_len(ch: str) -> int:
    return len(ch.encode("utf-8", "surrogatepass"))


def tokenize(src: str) -> list[Token]:
    """Split ``src`` into tokens, ending with an EOF token.

    Raises :class:`LexError` on malformed input.
    """
    return _Lexer(src).run()


class _Lexer:
    def __init__(self, src: str) -> None:
        self._chars: list[tuple[int, str]] = []
        offset = 0
        for ch in src:
            self._chars.append((offset, ch))
            offset += _utf8_len(ch)
        self._pos = 0
        self._last_end = 0

    def _peek(self) -> Optional[tuple[int, str]]:
        if self._pos < len(self._chars):
            return self._chars[self._pos]
        return None

    def _peek_char(self) -> Optional[str]:
        item = self._peek()
        return item[1] if item else None

    def _peek_next_char(self) -> Optional[str]:
        if self._pos + 1 < len(self._chars):
            return self._chars[self._pos + 1][1]
        return None

    def _bump(self) -> Optional[tuple[int, str]]:
        item = self._peek()
        if item is not None:
            self._pos += 1
            self._last_end = item[0] + _utf8_len(item[1])
        return item

    def run(self) -> list[Token]:
        out: list[Token] = []
        while (item := self._peek()) is not None:
            idx, ch = item
            if _is_whitespace(ch):
                self._bump()
                continue
            if ch == "/" and self._peek_next_char() == "/":
                self._skip_line_comment()
                continue
            if ch == "/" and self._peek_next_char() == "*":
                self._skip_block_comment()
                continue
            out.append(self._next_token(idx, ch))
        out.append(Token(TokenKind.EOF, Span(self._last_end, self._last_end)))
        return out

    def _next_token(self, idx: int, ch: str) -> Token:
        if ch in _SIMPLE:
            self._bump()
            return Token(_SIMPLE[ch], Span(idx, idx + 1))
        if ch in _COMPOUND:
            single, doubles = _COMPOUND[ch]
            self._bump()
            nxt = self._peek_char()
            if nxt is not None and nxt in doubles:
                self._bump()
                return Token(doubles[nxt], Span(idx, idx + 2))
            return Token(single, Span(idx, idx + 1))
        if ch == "#":
            return self._lex_sym_ref()
        if ch == "_":
            self._bump()
            nxt = self._peek_char()
            if nxt is not None and _is_ident_continue(nxt):
                return self._lex_ident(idx, ch)
            return Token(TokenKind.UNDERSCORE, Span(idx, idx + 1))
        if ch == '"':
            return self._lex_string()
        if _is_ident_start(ch):
            self._bump()
            return self._lex_ident(idx, ch)
        if ch in _DIGITS:
            return self._lex_int()
        if ch == "/":
            self._bump()
            return Token(TokenKind.SLASH, Span(idx, idx + 1))
        raise LexError(
            LexErrorCode.UNEXPECTED_CHAR,
            Span(idx, idx + _utf8_len(ch)),
            f"unexpected character `{ch}`",
        )

    def _skip_line_comment(self) -> None:
        self._bump()
        self._bump()
        while (item := self._bump()) is not None:
            if item[1] == "\n":
                break

    def _skip_block_comment(self) -> None:
        start, _ = self._bump()
        self._bump()
        while (item := self._bump()) is not None:
            if item[1] == "*" and self._peek_char() == "/":
                self._bump()
                return
        raise LexError(
            LexErrorCode.UNTERMINATED_BLOCK_COMMENT,
            Span(start, self._last_end),
            "unterminated block comment",
        )

    def _lex_ident(self, start: int, first: str) -> Token:
        chars = [first]
        while (nxt := self._peek_char()) is not None and _is_ident_continue(nxt):
            chars.append(self._bump()[1])
        return Token(TokenKind.IDENT, Span(start, self._last_end), "".join(chars))

    def _take_digits(self) -> str:
        digits = []
        while (nxt := self._peek_char()) is not None and nxt in _DIGITS:
            digits.append(self._bump()[1])
        return "".join(digits)

    def _lex_int(self) -> Token:
        start, first = self._bump()
        if first == "0":
            item = self._peek()
            if item is not None and item[1] in _DIGITS:
                raise LexError(
                    LexErrorCode.INVALID_INT_LEADING_ZERO,
                    Span(start, item[0] + 1),
                    "leading zeros are not allowed",
                )
            return Token(TokenKind.INT, Span(start, start + 1), 0)
        value = int(first + self._take_digits())
        span = Span(start, self._last_end)
        if value > _I64_MAX:
            raise LexError(
                LexErrorCode.INT_OUT_OF_RANGE, span, "integer literal out of range"
            )
        return Token(TokenKind.INT, span, value)

    def _lex_string(self) -> Token:
        start, _ = self._bump()
        value: list[str] = []
        while (item := self._bump()) is not None:
            idx, ch = item
            if ch == '"':
                return Token(TokenKind.STRING, Span(start, idx + 1), "".join(value))
            if ch == "\\":
                esc_item = self._bump()
                if esc_item is None:
                    raise LexError(
                        LexErrorCode.UNTERMINATED_ESCAPE,
                        Span(start, self._last_end),
                        "unterminated escape sequence",
                    )
                esc = esc_item[1]
                if esc not in _ESCAPES:
                    raise LexError(
                        LexErrorCode.INVALID_ESCAPE,
                        Span(idx, self._last_end),
                        f"invalid escape `\\{esc}`",
                    )
                value.append(_ESCAPES[esc])
            elif ch == "\n":
                raise LexError(
                    LexErrorCode.UNTERMINATED_STRING,
                    Span(start, idx),
                    "unterminated string literal",
                )
            else:
                value.append(ch)
        raise LexError(
            LexErrorCode.UNTERMINATED_STRING,
            Span(start, self._last_end),
            "unterminated string literal",
        )

    def _lex_sym_ref(self) -> Token:
        start, _ = self._bump()
        nxt = self._peek_char()
        if nxt is None or nxt not in _DIGITS:
            raise LexError(
                LexErrorCode.UNEXPECTED_CHAR,
                Span(start, start + 1),
                "expected digits after `#`",
            )
        value = int(self._take_digits())
        span = Span(start, self._last_end)
        if value > _U32_MAX:
            raise LexError(
                LexErrorCode.INT_OUT_OF_RANGE, span, "symbol reference out of range"
            )
        return Token(TokenKind.SYM_REF, span, value)