"""Text normalization, word lists and the content filter."""

from .content_filter import FilterLimits, filter_message
from .normalizer import normalize, sanitize_word, tokenize
from .word_lists import Vocabulary, WordLists

__all__ = [
    "FilterLimits",
    "Vocabulary",
    "WordLists",
    "filter_message",
    "normalize",
    "sanitize_word",
    "tokenize",
]
