"""Shared validation helpers for frozen dataclass models.

Private module, not part of the public API. Used exclusively by
``__post_init__`` methods in sibling model modules to enforce runtime
type constraints, null-byte safety and hex encoding of keys and ids.
"""

from __future__ import annotations

import string
from typing import Any


_HEX_DIGITS = frozenset(string.hexdigits.lower())


def validate_instance(value: Any, expected: type, name: str) -> None:
    """Raise ``TypeError`` if *value* is not an instance of *expected*."""
    if not isinstance(value, expected):
        article = "an" if expected.__name__[0] in "AEIOUaeiou" else "a"
        raise TypeError(f"{name} must be {article} {expected.__name__}, got {type(value).__name__}")


def validate_timestamp(value: Any, name: str) -> None:
    """Raise if *value* is not a non-negative ``int`` (``bool`` excluded)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{name} must be non-negative")


def validate_str_no_null(value: Any, name: str) -> None:
    """Raise if *value* is not a ``str`` or contains null bytes."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if "\x00" in value:
        raise ValueError(f"{name} contains null bytes")


def validate_str_not_empty(value: Any, name: str) -> None:
    """Raise if *value* is not a non-empty ``str`` without null bytes."""
    validate_str_no_null(value, name)
    if not value:
        raise ValueError(f"{name} must not be empty")


def validate_hex(value: Any, name: str, length: int = 64) -> None:
    """Raise if *value* is not a lowercase hex string of exactly *length* chars."""
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str, got {type(value).__name__}")
    if len(value) != length or not set(value) <= _HEX_DIGITS:
        raise ValueError(f"{name} must be {length} lowercase hex characters, got {value!r}")


def validate_kind(value: Any, name: str = "kind") -> None:
    """Raise if *value* is not an event kind in ``[0, 65535]``."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an int, got {type(value).__name__}")
    if not 0 <= value <= 65_535:
        raise ValueError(f"{name} must be in [0, 65535], got {value}")


def validate_tags(value: Any, name: str = "tags") -> None:
    """Raise if *value* is not a sequence of non-empty string sequences."""
    if not isinstance(value, tuple):
        raise TypeError(f"{name} must be a tuple, got {type(value).__name__}")
    for tag in value:
        if not isinstance(tag, tuple) or not tag:
            raise ValueError(f"{name} entries must be non-empty tuples, got {tag!r}")
        for item in tag:
            validate_str_no_null(item, f"{name} value")
