"""Ordered "first match wins" extraction over loosely shaped payloads."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping, TypeVar

T = TypeVar("T")
S = TypeVar("S")

Extractor = Callable[[S], T | None]


def first_match(source: S, extractors: Iterable[Extractor[S, T]]) -> T | None:
    """Return the first non-empty value produced by ``extractors``."""

    for extractor in extractors:
        value = extractor(source)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return value
    return None


def path(*keys: str) -> Callable[[Any], Any]:
    """Build an extractor reading a nested attribute/key path."""

    def _extract(source: Any) -> Any:
        current = source
        for key in keys:
            if current is None:
                return None
            if isinstance(current, Mapping):
                current = current.get(key)
            else:
                current = getattr(current, key, None)
        return current

    return _extract


__all__ = ["Extractor", "first_match", "path"]
