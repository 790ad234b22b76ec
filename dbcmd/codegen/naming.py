"""
Identifier case conversion for generated code.
"""

import keyword
import re

_WORD_RE = re.compile(r"[A-Z]+(?![a-z])|[A-Z]?[a-z]+|\d+")


def split_words(name: str) -> list[str]:
    """``ls-jobs`` -> [ls, jobs]; ``getHTTPStatus`` -> [get, HTTP, Status]."""
    return _WORD_RE.findall(str(name or ""))


def to_pascal(name: str) -> str:
    return "".join(w.capitalize() for w in split_words(name))


def to_snake(name: str) -> str:
    return "_".join(w.lower() for w in split_words(name))


def to_screaming_snake(name: str) -> str:
    return "_".join(w.upper() for w in split_words(name))


def to_identifier(name: str, reserved: frozenset[str] = frozenset()) -> str:
    """
    Snake-case attribute name for *name*; keywords and *reserved* names get
    a trailing underscore, a leading digit gets an ``f_`` prefix. Empty when
    *name* has no usable characters.
    """
    text = to_snake(name)
    if not text:
        return ""
    if text[0].isdigit():
        text = f"f_{text}"
    if keyword.iskeyword(text) or text in reserved:
        text = f"{text}_"
    return text
