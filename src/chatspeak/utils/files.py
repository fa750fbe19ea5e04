"""File helpers shared by the persisted stores."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any

_BOM = "\ufeff"


class StorageError(RuntimeError):
    """A persisted file cannot be read, parsed or written."""


def read_text(path: Path) -> str:
    """Read a UTF-8 file, dropping a leading byte-order mark."""

    text = path.read_text(encoding="utf-8")
    if text.startswith(_BOM):
        text = text[len(_BOM):]
    return text


def read_lines(path: Path) -> list[str]:
    """Return the stripped, non-empty, non-comment lines of ``path``.

    A missing file is treated as an empty list.
    """

    if not path.exists():
        return []
    lines: list[str] = []
    for raw_line in read_text(path).splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        lines.append(line)
    return lines


def read_json(path: Path) -> Any:
    return json.loads(read_text(path))


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` through a temp file and an atomic rename.

    Readers polling ``path`` observe either the old or the new content,
    never a partially written file. Any ``OSError`` is raised as
    ``StorageError`` and leaves ``path`` untouched.
    """

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
        )
    except OSError as exc:
        raise StorageError(f"Cannot write {path}: {exc}") from exc

    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, path)
    except OSError as exc:
        _discard(tmp_name)
        raise StorageError(f"Cannot write {path}: {exc}") from exc
    except BaseException:
        _discard(tmp_name)
        raise


def _discard(tmp_name: str) -> None:
    try:
        os.unlink(tmp_name)
    except FileNotFoundError:
        pass


def atomic_write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2, ensure_ascii=False) + "\n")


__all__ = [
    "StorageError",
    "atomic_write_json",
    "atomic_write_text",
    "read_json",
    "read_lines",
    "read_text",
]
