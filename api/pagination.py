"""
api/pagination.py -- Query-string helpers shared by the list endpoints.

Two sort syntaxes exist on the wire:
  "-updatedAt"      prefix form (public project list)
  "startDate:desc"  colon form (experience lists, admin project list)

Both are resolved against a whitelist mapping camelCase wire names to the
store's sort keys. Anything else is a 400 VALIDATION_ERROR.
"""

from __future__ import annotations

import math

from core.errors import ValidationError

MAX_PAGE_SIZE = 100


def clamp_page_size(size: int) -> int:
    return min(size, MAX_PAGE_SIZE)


def total_pages(total: int, size: int) -> int:
    return math.ceil(total / size) if size else 0


def parse_prefixed_sort(value: str, allowed: dict[str, str]) -> tuple[str, bool]:
    """Parse "-field" / "field" into (store_key, descending)."""
    descending = value.startswith("-")
    name = value[1:] if descending else value
    if name not in allowed:
        raise ValidationError("Invalid sort parameter")
    return allowed[name], descending


def parse_colon_sort(value: str, allowed: dict[str, str]) -> tuple[str, bool]:
    """Parse "field:asc" / "field:desc" / "field" (desc) into (store_key, descending)."""
    name, _, direction = value.partition(":")
    direction = direction or "desc"
    if name not in allowed or direction not in ("asc", "desc"):
        raise ValidationError("Invalid sort parameter")
    return allowed[name], direction == "desc"
