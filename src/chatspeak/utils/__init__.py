"""Utility helpers for chatspeak services."""

from .files import (
    StorageError,
    atomic_write_json,
    atomic_write_text,
    read_json,
    read_lines,
    read_text,
)

__all__ = [
    "StorageError",
    "atomic_write_json",
    "atomic_write_text",
    "read_json",
    "read_lines",
    "read_text",
]
