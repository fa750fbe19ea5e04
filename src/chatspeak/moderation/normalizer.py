"""Canonical form of chat text used for every vocabulary comparison.

The canonical form is only used for matching; the text that is spoken
is the operator-visible clipped message, never this output.
"""

from __future__ import annotations

import re
import unicodedata

_ZERO_WIDTH = re.compile("[\u200b\u200c\u200d\u2060\ufeff]")
_LETTER_RUN = re.compile(r"([^\W\d_])\1{2,}")
_WHITESPACE = re.compile(r"\s+")

_LEET_TABLE = str.maketrans(
    {
        "0": "o",
        "1": "i",
        "!": "i",
        "|": "i",
        "3": "e",
        "4": "a",
        "5": "s",
        "7": "t",
        "8": "b",
        "$": "s",
        "@": "a",
    }
)


def strip_zero_width(text: str) -> str:
    return _ZERO_WIDTH.sub("", text)


def strip_diacritics(text: str) -> str:
    decomposed = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize(raw: str) -> str:
    """Return the canonical matching form of ``raw``.

    Total and idempotent: ``normalize(normalize(x)) == normalize(x)``.
    """

    text = strip_zero_width(raw or "")
    text = text.lower()
    text = strip_diacritics(text)
    text = text.translate(_LEET_TABLE)
    text = _LETTER_RUN.sub(r"\1\1", text)
    text = "".join(ch if ch.isalnum() or ch.isspace() else " " for ch in text)
    text = _WHITESPACE.sub(" ", text)
    return text.strip()


def tokenize(canonical: str) -> list[str]:
    return [token for token in canonical.split(" ") if token]


def sanitize_word(word: str) -> str:
    """Reduce an operator-supplied word to lower-case ASCII alphanumerics."""

    text = strip_diacritics(strip_zero_width(word or "").lower())
    return "".join(ch for ch in text if ch.isascii() and ch.isalnum())


__all__ = [
    "normalize",
    "sanitize_word",
    "strip_diacritics",
    "strip_zero_width",
    "tokenize",
]
