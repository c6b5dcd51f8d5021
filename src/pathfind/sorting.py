"""Deterministic ordering of matched paths."""
from __future__ import annotations

from typing import Iterable

from .filtering import MatchedPath


def _sort_key(match: MatchedPath) -> tuple[str, str]:
    return match.record.name, str(match.path)


def sort_matches(matches: Iterable[MatchedPath]) -> list[MatchedPath]:
    """Return ``matches`` ordered by lane name, then absolute path.

    ``sorted`` is stable, so equal keys keep their discovery order. The input
    is left untouched.
    """

    return sorted(matches, key=_sort_key)


__all__ = ["sort_matches"]
