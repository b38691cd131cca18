"""Small builders for Klaviyo filter expressions used by the list tools."""
from __future__ import annotations

from typing import Iterable, List, Optional


def equals(field: str, value: str) -> str:
    return f'equals({field},"{value}")'


def contains(field: str, value: str) -> str:
    return f'contains({field},"{value}")'


def greater_than(field: str, value: str) -> str:
    return f"greater-than({field},{value})"


def greater_or_equal(field: str, value: str) -> str:
    return f"greater-or-equal({field},{value})"


def less_than(field: str, value: str) -> str:
    return f"less-than({field},{value})"


def combine(filters: Iterable[Optional[str]], raw: Optional[str] = None) -> Optional[str]:
    """AND the given expressions together. A raw filter string wins over everything else."""
    if raw:
        return raw
    parts: List[str] = [f for f in filters if f]
    if not parts:
        return None
    if len(parts) == 1:
        return parts[0]
    return f"and({','.join(parts)})"
