"""Parser for the head of an HTTP/1.1 GET request."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Callable, NamedTuple, Optional, Union

MAX_FIELDS = 32


class HttpParseError(ValueError):
    """The request head could not be parsed."""


@dataclass
class HttpRequest:
    """A parsed request head."""

    header_length: int
    content_length: int = 0
    content_type: Optional[str] = None
    fields: list[tuple[str, str]] = field(default_factory=list)


class _Tok(Enum):
    SOLIDUS = auto()
    CR = auto()
    LF = auto()
    WS = auto()
    LITERAL = auto()
    KEY = auto()
    VALUE = auto()
    QUERY = auto()
    AMPERSAND = auto()
    EQ = auto()


class _State(Enum):
    REQUEST = auto()
    KEY = auto()
    VALUE = auto()


class _Token(NamedTuple):
    type: _Tok
    value: str = ""


_SINGLE_CHAR_TOKENS = {
    "\r": _Tok.CR,
    "\n": _Tok.LF,
    "?": _Tok.QUERY,
    "&": _Tok.AMPERSAND,
    "=": _Tok.EQ,
}
_SEPARATORS = frozenset("/\r\n \t?&=")
_ATOI = re.compile(r"[ \t\n\v\f\r]*([+-]?[0-9]+)")


def _is_literal_char(c: str) -> bool:
    return c not in _SEPARATORS and " " <= c <= "~"


def _is_key_char(c: str) -> bool:
    return c.isascii() and (c.isalnum() or c == "-")


def _atoi(value: str) -> int:
    match = _ATOI.match(value)
    return int(match.group(1)) if match else 0


class _Lexer:
    def __init__(self, text: str) -> None:
        self.text = text
        self.state = _State.REQUEST
        self.start = 0
        self.end = 0
        self._token: Optional[_Token] = None
        self._accepted = True

    def peek(self) -> Optional[_Token]:
        if not self._accepted:
            return self._token
        self.start = self.end
        token = self._classify()
        if token is None:
            return None
        self._token = token
        self._accepted = False
        return token

    def accept(self) -> bool:
        self._accepted = True
        return True

    def _span(self, pos: int, predicate: Callable[[str], bool]) -> int:
        text = self.text
        while pos < len(text) and predicate(text[pos]):
            pos += 1
        return pos

    def _classify(self) -> Optional[_Token]:
        if self.state is _State.REQUEST:
            return self._classify_request()
        if self.state is _State.KEY:
            return self._classify_key()
        return self._classify_value()

    def _classify_request(self) -> Optional[_Token]:
        pos = self.start
        if pos >= len(self.text):
            return None
        c = self.text[pos]
        if c == "/":
            self.end = self._span(pos, lambda ch: ch == "/")
            return _Token(_Tok.SOLIDUS)
        if c in " \t":
            self.end = self._span(pos, lambda ch: ch in " \t")
            return _Token(_Tok.WS)
        if c in _SINGLE_CHAR_TOKENS:
            self.end = pos + 1
            return _Token(_SINGLE_CHAR_TOKENS[c])
        if _is_literal_char(c):
            self.end = self._span(pos, _is_literal_char)
            return _Token(_Tok.LITERAL, self.text[pos:self.end])
        return None

    def _classify_key(self) -> Optional[_Token]:
        pos = self.start
        text = self.text
        if pos >= len(text):
            return None
        c = text[pos]
        if c == "\r":
            self.end = pos + 1
            return _Token(_Tok.CR)
        if c == "\n":
            self.end = pos + 1
            return _Token(_Tok.LF)
        if not _is_key_char(c):
            return None
        key_end = self._span(pos, _is_key_char)
        if key_end >= len(text) or text[key_end] != ":":
            return None
        self.end = self._span(key_end + 1, lambda ch: ch in " \t")
        return _Token(_Tok.KEY, text[pos:key_end])

    def _classify_value(self) -> Optional[_Token]:
        pos = self.start
        cr = self.text.find("\r", pos)
        if cr < 0 or self.text[cr + 1:cr + 2] != "\n":
            return None
        self.end = cr + 2
        return _Token(_Tok.VALUE, self.text[pos:cr])


class _Parser:
    def __init__(self, text: str) -> None:
        self.lex = _Lexer(text)
        self.request = HttpRequest(header_length=0)

    def _literal(self, word: str) -> bool:
        tok = self.lex.peek()
        if tok is None or tok.type is not _Tok.LITERAL:
            return False
        if tok.value.lower() != word.lower():
            return False
        return self.lex.accept()

    def _peek(self, kind: _Tok) -> bool:
        tok = self.lex.peek()
        return tok is not None and tok.type is kind

    def _expect(self, kind: _Tok) -> bool:
        return self._peek(kind) and self.lex.accept()

    def _version(self) -> bool:
        return (
            self._literal("HTTP")
            and self._expect(_Tok.SOLIDUS)
            and self._literal("1.1")
        )

    def _url_path(self) -> bool:
        while True:
            if not self._expect(_Tok.SOLIDUS):
                return False
            tok = self.lex.peek()
            if tok is None:
                return False
            if tok.type is not _Tok.LITERAL:
                return tok.type is _Tok.WS
            self.lex.accept()
            if not self._peek(_Tok.SOLIDUS):
                return True

    def _url_query(self) -> None:
        while (
            self._expect(_Tok.LITERAL)
            and self._expect(_Tok.EQ)
            and self._expect(_Tok.LITERAL)
            and self._expect(_Tok.AMPERSAND)
        ):
            pass

    def _url(self) -> bool:
        if self._url_path() and self._expect(_Tok.QUERY):
            self._url_query()
        return True

    def request_line(self) -> bool:
        return (
            self._literal("GET")
            and self._expect(_Tok.WS)
            and self._url()
            and self._expect(_Tok.WS)
            and self._version()
            and self._expect(_Tok.CR)
            and self._expect(_Tok.LF)
        )

    def _key(self, name: Optional[str] = None) -> Optional[str]:
        self.lex.state = _State.KEY
        tok = self.lex.peek()
        if tok is None or tok.type is not _Tok.KEY:
            return None
        if name is not None and tok.value.lower() != name.lower():
            return None
        self.lex.accept()
        return tok.value

    def _value(self) -> Optional[str]:
        self.lex.state = _State.VALUE
        tok = self.lex.peek()
        if tok is None or tok.type is not _Tok.VALUE:
            return None
        self.lex.accept()
        return tok.value

    def _content_length(self) -> bool:
        if self._key("Content-Length") is None:
            return False
        value = self._value()
        if value is None:
            return False
        self.request.content_length = _atoi(value)
        return True

    def _content_type(self) -> bool:
        if self._key("Content-Type") is None:
            return False
        value = self._value()
        if value is None:
            return False
        self.request.content_type = value
        return True

    def _field(self) -> bool:
        self.lex.state = _State.KEY
        tok = self.lex.peek()
        if tok is not None and tok.type is _Tok.KEY:
            if len(self.request.fields) >= MAX_FIELDS:
                raise HttpParseError("too many header fields")
        key = self._key()
        if key is None:
            return False
        value = self._value()
        if value is None:
            return False
        self.request.fields.append((key, value))
        return True

    def _header_field(self) -> bool:
        return self._content_length() or self._content_type() or self._field()

    def header(self) -> bool:
        while self._header_field():
            pass
        self.lex.state = _State.KEY
        if self._expect(_Tok.CR):
            return self._expect(_Tok.LF)
        return True


def parse_request(text: Union[str, bytes, bytearray, memoryview]) -> HttpRequest:
    """Parse the head of a GET request.

    Parsing stops at the first NUL character. ``header_length`` is the
    number of characters (bytes, for byte input) that the head occupies.
    """
    if isinstance(text, (bytes, bytearray, memoryview)):
        text = bytes(text).decode("latin-1")
    text = text.split("\0", 1)[0]

    parser = _Parser(text)
    if not parser.request_line():
        raise HttpParseError("malformed request line")
    if not parser.header():
        raise HttpParseError("malformed header")

    parser.request.header_length = parser.lex.end
    return parser.request