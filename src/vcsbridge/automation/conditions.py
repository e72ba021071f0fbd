"""Automation binding conditions.

Two forms are accepted:

* ``NOT_NULL(path)`` passes when the path resolves to a non-null value.
* ``path=regex`` passes when ``regex`` is found in the string form of the
  resolved value (``re.search``, unanchored).

A path that does not resolve fails either form.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Optional

from vcsbridge.automation.paths import PATH_NOT_FOUND, render_value, resolve
from vcsbridge.errors import ConfigurationError


NOT_NULL_PATTERN = re.compile(r"^NOT_NULL\((.*)\)$")
MATCH_PATTERN = re.compile(r"^([>\w-]+)=(.*)$", re.DOTALL)


@dataclass(frozen=True)
class Condition:
    raw: str
    path: str
    regex: Optional[re.Pattern[str]] = None

    @property
    def is_not_null(self) -> bool:
        return self.regex is None

    @classmethod
    def parse(cls, raw: str) -> "Condition":
        text = raw.strip()
        match = NOT_NULL_PATTERN.match(text)
        if match:
            path = match.group(1).strip()
            if path:
                return cls(raw=text, path=path)
        match = MATCH_PATTERN.match(text)
        if match:
            try:
                regex = re.compile(match.group(2))
            except re.error as exc:
                raise ConfigurationError(
                    f"Invalid regular expression in condition {text!r}: {exc}",
                    details={"condition": text},
                ) from exc
            return cls(raw=text, path=match.group(1), regex=regex)
        raise ConfigurationError(
            f"Unrecognized condition {text!r}; expected 'path=regex' or 'NOT_NULL(path)'",
            details={"condition": text},
        )

    def evaluate(self, payload: Any, context: Optional[Mapping[str, Any]] = None) -> bool:
        value = resolve(self.path, payload, context)
        if value is PATH_NOT_FOUND:
            return False
        if self.regex is None:
            return value is not None
        return self.regex.search(render_value(value)) is not None


def conditions_met(
    conditions: Iterable[str], payload: Any, context: Optional[Mapping[str, Any]] = None
) -> bool:
    """AND every condition; an empty list always passes."""
    return all(Condition.parse(raw).evaluate(payload, context) for raw in conditions)


__all__ = ["Condition", "conditions_met"]
