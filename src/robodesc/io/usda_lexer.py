"""Tokenizer and value grammar for ASCII USD (``.usda``) layers."""

import enum
import logging
import re
from typing import Any, List

from robodesc.config import DEFAULT_CONFIG

logger = logging.getLogger(__name__)

_OPENERS = "(["
_CLOSERS = ")]"
_MATCHING = {"(": ")", "[": "]"}
_PUNCTUATION = "{}="
_QUOTES = "\"'@"

_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?$")
# @path@, @@@path@@@, optionally followed by a </Prim/Path> target
_ASSET_PATH = re.compile(r"^(@{1,3})(.*?)\1(<[^>]*>)?$", re.DOTALL)


class LexState(enum.Enum):
    """Scanner state; the bracket depth is tracked beside it."""
    NORMAL = "normal"
    NESTED = "nested"
    STRING = "string"
    COMMENT = "comment"


def tokenize(text: str) -> List[str]:
    """Split a USDA layer into tokens.

    Whitespace separates tokens in the normal state. ``{``, ``}`` and ``=``
    are tokens of their own. Anything inside ``( )``/``[ ]`` nesting or
    inside a quoted string (single, double, triple-quoted or ``@`` asset
    path) stays within one token. ``#`` outside a string starts a comment
    that runs to the end of the line; the ``#usda`` header is one such
    comment.
    """
    tokens: List[str] = []
    current: List[str] = []

    def flush():
        token = "".join(current).strip()
        if token:
            tokens.append(token)
        current.clear()

    state = LexState.NORMAL
    resume = LexState.NORMAL
    depth = 0
    quote = ""
    i = 0
    n = len(text)

    while i < n:
        char = text[i]

        if state is LexState.STRING:
            if char == "\\" and i + 1 < n:
                current.append(text[i:i + 2])
                i += 2
            elif text.startswith(quote, i):
                current.append(quote)
                i += len(quote)
                state = resume
            else:
                current.append(char)
                i += 1
            continue

        if state is LexState.COMMENT:
            if char == "\n":
                state = resume
                if state is LexState.NORMAL:
                    flush()
            i += 1
            continue

        if char == "#":
            resume, state = state, LexState.COMMENT
            i += 1
            continue

        if char in _QUOTES:
            quote = char * 3 if text.startswith(char * 3, i) else char
            current.append(quote)
            i += len(quote)
            resume, state = state, LexState.STRING
            continue

        if char in _OPENERS:
            depth += 1
            state = LexState.NESTED
            current.append(char)
        elif char in _CLOSERS:
            depth = max(0, depth - 1)
            current.append(char)
            if depth == 0:
                state = LexState.NORMAL
        elif state is LexState.NESTED:
            current.append(char)
        elif char.isspace():
            flush()
        elif char in _PUNCTUATION:
            flush()
            tokens.append(char)
        else:
            current.append(char)
        i += 1

    flush()
    return tokens


def split_top_level(text: str, separator: str = ",") -> List[str]:
    """Split on ``separator`` outside brackets and quotes; empty parts are dropped."""
    parts = []
    current = []
    depth = 0
    quote = ""

    for char in text:
        if quote:
            if char == quote:
                quote = ""
        elif char in _QUOTES:
            quote = char
        elif char in _OPENERS:
            depth += 1
        elif char in _CLOSERS:
            depth -= 1
        elif char == separator and depth == 0:
            parts.append("".join(current))
            current = []
            continue
        current.append(char)

    parts.append("".join(current))
    return [part.strip() for part in parts if part.strip()]


def _unquote(text: str):
    for quote in ('"""', "'''", '"', "'"):
        if len(text) >= 2 * len(quote) and text.startswith(quote) and text.endswith(quote):
            return text[len(quote):-len(quote)]
    return None


def parse_value(text: str, max_depth: int = DEFAULT_CONFIG.max_depth) -> Any:
    """Convert one value token to Python.

    Tuples and arrays become (nested) lists, quoted strings and ``@asset@``
    paths become ``str`` without their delimiters, numbers become ``float``
    and ``true``/``false`` become ``bool``. Anything else is returned as
    the stripped source text.

    Brackets nested more than ``max_depth`` levels deep are kept as their
    source text.
    """
    return _parse_value(text, 0, max_depth)


def _parse_value(text: str, depth: int, max_depth: int) -> Any:
    text = text.strip()

    if len(text) >= 2 and text[0] in _OPENERS and text[-1] == _MATCHING[text[0]]:
        if depth >= max_depth:
            logger.debug("Value nests deeper than max_depth=%d; kept as text", max_depth)
            return text
        return [_parse_value(part, depth + 1, max_depth)
                for part in split_top_level(text[1:-1])]

    unquoted = _unquote(text)
    if unquoted is not None:
        return unquoted

    asset = _ASSET_PATH.match(text)
    if asset is not None:
        return asset.group(2)

    if _NUMBER.match(text):
        return float(text)

    if text == "true":
        return True
    if text == "false":
        return False

    return text
