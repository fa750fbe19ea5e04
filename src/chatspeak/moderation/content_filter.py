"""Rule-based content filter for chat messages.

Checks run in a fixed order and the first failing check decides the
reason code. Structural checks look at the clipped text as typed;
vocabulary checks look at its canonical form (see ``normalizer``).
"""

from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

from ..schemas.moderation import FilterOutcome, ReasonCode
from .normalizer import normalize, strip_zero_width, tokenize
from .word_lists import Vocabulary

_URL = re.compile(
    r"(https?://|www\.|\.(com|net|org|gg|ru|mx|xyz|io|ly|tv|me|co)\b)",
    re.IGNORECASE,
)
_EMAIL = re.compile(r"[\w.+-]+@[\w-]+(\.[\w-]+)+")
_PHONE = re.compile(r"(?<!\d)\d{10}(?!\d)")
_MENTION = re.compile(r"@\w+")
_REPEAT_SPAM = re.compile(r"(\S)\1{4,}")
_PUNCT_SPAM = re.compile(r"[!?¿¡]{4,}")

_ALLOWED_PUNCTUATION = frozenset(".,!?¿¡'\":;()-+")

_STRUCTURAL_CHECKS: tuple[tuple[re.Pattern[str], ReasonCode], ...] = (
    (_URL, ReasonCode.URL),
    (_EMAIL, ReasonCode.EMAIL),
    (_PHONE, ReasonCode.PHONE),
    (_MENTION, ReasonCode.MENTION),
    (_REPEAT_SPAM, ReasonCode.REPEAT_SPAM),
    (_PUNCT_SPAM, ReasonCode.PUNCT_SPAM),
)


@dataclass(frozen=True)
class FilterLimits:
    max_chars: int
    max_words: int


def is_allowed_char(ch: str) -> bool:
    """Latin letters, numbers, whitespace and a small punctuation set."""

    if ch.isspace() or ch in _ALLOWED_PUNCTUATION:
        return True
    category = unicodedata.category(ch)
    if category.startswith("N"):
        return True
    if category.startswith("M"):
        # Combining accents typed in decomposed form.
        return True
    if category.startswith("L"):
        return unicodedata.name(ch, "").startswith("LATIN ")
    return False


def _spaced_match(tokens: list[str], vocabulary: Vocabulary) -> bool:
    if len(tokens) < 2 or any(len(token) != 1 for token in tokens):
        return False
    joined = "".join(tokens)
    if joined in vocabulary.exact:
        return True
    return any(bad in joined for bad in vocabulary.substrings)


def filter_message(
    raw: str | None, limits: FilterLimits, vocabulary: Vocabulary
) -> FilterOutcome:
    """Decide whether ``raw`` may be spoken.

    Accepted outcomes carry the clipped text as typed (not the canonical
    form), at most ``limits.max_chars`` long.
    """

    text = strip_zero_width(raw or "").strip()
    if not text:
        return FilterOutcome.reject(ReasonCode.EMPTY)

    clipped = text[: limits.max_chars].rstrip()

    for pattern, reason in _STRUCTURAL_CHECKS:
        if pattern.search(clipped):
            return FilterOutcome.reject(reason)

    if not all(is_allowed_char(ch) for ch in clipped):
        return FilterOutcome.reject(ReasonCode.CHARS)

    tokens = tokenize(normalize(clipped))
    if not tokens:
        return FilterOutcome.reject(ReasonCode.EMPTY_NORM)
    if max(len(tokens), len(clipped.split())) > limits.max_words:
        return FilterOutcome.reject(ReasonCode.TOO_MANY_WORDS)

    if _spaced_match(tokens, vocabulary):
        return FilterOutcome.reject(ReasonCode.BADWORD_SPACED)
    if any(token in vocabulary.exact for token in tokens):
        return FilterOutcome.reject(ReasonCode.BADWORD_EXACT)

    joined = "".join(tokens)
    if any(bad in joined for bad in vocabulary.substrings):
        return FilterOutcome.reject(ReasonCode.BADWORD_JOINED)

    return FilterOutcome.accept(clipped)


__all__ = ["FilterLimits", "filter_message", "is_allowed_char"]
