"""Arrow-separated path access into decoded JSON payloads.

Paths look like ``sender->login`` or ``commits->0->id``. A leading
``context`` segment addresses the dispatch context instead of the payload
when one is supplied. Lookups never raise; a miss returns
:data:`PATH_NOT_FOUND`.
"""

from __future__ import annotations

import json
from typing import Any, List, Mapping, Optional


PATH_SEPARATOR = "->"
CONTEXT_ROOT = "context"


class _PathNotFound:
    """Sentinel for an unresolved path; falsy and distinct from JSON null."""

    _instance: Optional["_PathNotFound"] = None

    def __new__(cls) -> "_PathNotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "PATH_NOT_FOUND"


PATH_NOT_FOUND = _PathNotFound()


def split_path(path: str) -> List[str]:
    return [segment.strip() for segment in path.split(PATH_SEPARATOR)]


def last_segment(path: str) -> str:
    return split_path(path)[-1]


def resolve(path: str, payload: Any, context: Optional[Mapping[str, Any]] = None) -> Any:
    """Return the value at ``path`` or :data:`PATH_NOT_FOUND`.

    Example:
        >>> resolve("sender->login", {"sender": {"login": "alice"}})
        'alice'
        >>> resolve("commits->1", {"commits": ["a"]})
        PATH_NOT_FOUND
    """
    segments = split_path(path)
    current = payload
    if context is not None and segments and segments[0] == CONTEXT_ROOT:
        current = context
        segments = segments[1:]

    for segment in segments:
        if isinstance(current, Mapping):
            if segment not in current:
                return PATH_NOT_FOUND
            current = current[segment]
        elif isinstance(current, list):
            if not segment.isdigit() or int(segment) >= len(current):
                return PATH_NOT_FOUND
            current = current[int(segment)]
        else:
            return PATH_NOT_FOUND
    return current


def render_value(value: Any) -> str:
    """String form used by templates and regex conditions."""
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    if isinstance(value, str):
        return value
    if isinstance(value, (Mapping, list)):
        return json.dumps(value, separators=(",", ":"), default=str)
    return str(value)


__all__ = [
    "CONTEXT_ROOT",
    "PATH_NOT_FOUND",
    "PATH_SEPARATOR",
    "last_segment",
    "render_value",
    "resolve",
    "split_path",
]
