"""Utilities to normalize file and page display names."""

from __future__ import annotations

import re
from typing import Optional

UNTITLED_FILE = "Untitled"
UNTITLED_PAGE = "Page"

_WHITESPACE_PATTERN = re.compile(r"\s+")


def normalize_name(value: Optional[str], fallback: str) -> str:
    """Collapse whitespace in a host-reported label, falling back when blank."""
    if not value:
        return fallback
    normalized = _WHITESPACE_PATTERN.sub(" ", str(value)).strip()
    return normalized or fallback


def normalize_file_name(value: Optional[str]) -> str:
    return normalize_name(value, UNTITLED_FILE)


def normalize_page_name(value: Optional[str]) -> str:
    return normalize_name(value, UNTITLED_PAGE)
