"""Utility helpers for filesystem-safe names."""

from __future__ import annotations

import re
import unicodedata

FILENAME_PATTERN = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(value: str, *, default: str = "file", max_length: int = 120) -> str:
    """Keep the extension, replace anything unusual in the name."""
    value = unicodedata.normalize("NFKD", value).encode("ascii", "ignore").decode()
    value = value.replace("\\", "/").rsplit("/", 1)[-1]
    value = FILENAME_PATTERN.sub("-", value).strip(".-")
    return value[-max_length:] if value else default
