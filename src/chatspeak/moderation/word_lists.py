"""Exact and substring banned-word lists backed by plain text files."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from ..utils.files import atomic_write_text, read_lines, read_text
from .normalizer import normalize, sanitize_word

logger = logging.getLogger(__name__)

MIN_SUBSTRING_LENGTH = 4
MIN_ADDED_WORD_LENGTH = 3
SNAPSHOT_LIMIT = 200

ListMode = Literal["exact", "substring"]


@dataclass(frozen=True)
class Vocabulary:
    """Immutable view of both lists, as consumed by the content filter."""

    exact: frozenset[str] = field(default_factory=frozenset)
    substrings: tuple[str, ...] = ()


def _prepare(line: str) -> str:
    """Canonical form of a list entry, comparable with normalized chat tokens.

    Entries go through the same normalization as chat text, so ``h0la`` and
    ``hoooola`` land where the chat forms of those words do. Multi-word
    entries are joined into one token.
    """

    return "".join(normalize(line).split())


def _load_exact(path: Path) -> frozenset[str]:
    return frozenset(word for word in (_prepare(line) for line in read_lines(path)) if word)


def _load_substrings(path: Path) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for line in read_lines(path):
        word = _prepare(line)
        if len(word) >= MIN_SUBSTRING_LENGTH:
            seen.setdefault(word, None)
    return tuple(seen)


class WordLists:
    """Owns the two banned-word files and their in-memory vocabulary."""

    def __init__(self, exact_path: Path, substring_path: Path) -> None:
        self.exact_path = exact_path
        self.substring_path = substring_path
        self._vocabulary = Vocabulary()

    @property
    def vocabulary(self) -> Vocabulary:
        return self._vocabulary

    def _path_for(self, mode: ListMode) -> Path:
        return self.exact_path if mode == "exact" else self.substring_path

    def load(self) -> Vocabulary:
        """Read both files, replacing the in-memory vocabulary.

        Raises ``OSError``/``UnicodeDecodeError`` when a file exists but
        cannot be read; the current vocabulary is left untouched then.
        """

        vocabulary = Vocabulary(
            exact=_load_exact(self.exact_path),
            substrings=_load_substrings(self.substring_path),
        )
        self._vocabulary = vocabulary
        logger.info(
            "Loaded word lists: %d exact, %d substring",
            len(vocabulary.exact),
            len(vocabulary.substrings),
        )
        return vocabulary

    def reload(self) -> bool:
        """Re-read both files; keep the previous lists if that fails."""

        try:
            self.load()
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Word list reload failed, keeping previous lists: %s", exc)
            return False
        return True

    def snapshot(self) -> dict[str, list[str]]:
        vocabulary = self._vocabulary
        return {
            "exact": sorted(vocabulary.exact)[:SNAPSHOT_LIMIT],
            "substring": list(vocabulary.substrings[:SNAPSHOT_LIMIT]),
        }

    def read_raw(self) -> dict[str, list[str]]:
        """Full file contents, as the operator edits them."""

        return {
            "exact": read_lines(self.exact_path),
            "substring": read_lines(self.substring_path),
        }

    def replace(self, *, exact: str | None = None, substring: str | None = None) -> None:
        """Overwrite one or both files with the given full text."""

        if exact is not None:
            atomic_write_text(self.exact_path, exact.replace("\r", ""))
        if substring is not None:
            atomic_write_text(self.substring_path, substring.replace("\r", ""))
        self.load()

    def add_word(self, word: str, mode: ListMode = "exact") -> str | None:
        """Append a sanitized word to one list.

        Returns the stored word, or None when the word is too short after
        sanitation. Adding a word already present is a no-op that still
        returns it.
        """

        cleaned = sanitize_word(word)
        if len(cleaned) < MIN_ADDED_WORD_LENGTH:
            return None

        path = self._path_for(mode)
        existing = read_lines(path)
        if _prepare(cleaned) not in (_prepare(line) for line in existing):
            current = read_text(path) if path.exists() else ""
            if current and not current.endswith("\n"):
                current += "\n"
            atomic_write_text(path, f"{current}{cleaned}\n")
            logger.info("Added %r to %s list", cleaned, mode)
        self.load()
        return cleaned


__all__ = [
    "ListMode",
    "MIN_SUBSTRING_LENGTH",
    "Vocabulary",
    "WordLists",
]
