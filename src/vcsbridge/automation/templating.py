"""Message templates for automation handlers.

Templates mix literal HTML with ``[[...]]`` tags, rendered in stages:

1. ``[[@for path as alias]]...[[@endfor]]`` blocks are expanded, rewriting
   ``alias`` references in the body to ``path->N``.
2. ``[[event]]`` is replaced by the event type.
3. Helpers: ``@hyperlink``, ``@mailto``, ``@image``, ``@substring``,
   ``@count`` and ``@style``.
4. Data tags ``[[a->b->c]]`` are replaced by payload values.

Output of every stage is set aside behind placeholders until the end, so text
coming from the payload is never interpreted as template syntax. A path that does
not resolve renders as its last segment, e.g. ``[[sender->login]]`` becomes
``login``.

Example:
    >>> engine = TemplateEngine()
    >>> engine.render(
    ...     "[[@hyperlink sender->url as sender->login]]",
    ...     {"sender": {"url": "https://x/alice", "login": "alice"}},
    ... )
    '<a href="https://x/alice" target="_blank">alice</a>'
"""

from __future__ import annotations

import logging
import re
from typing import Any, Callable, List, Mapping, Optional, Tuple

from vcsbridge.automation.paths import (
    PATH_NOT_FOUND,
    last_segment,
    render_value,
    resolve,
)


logger = logging.getLogger(__name__)

_PATH = r"[>\w-]+"

FOR_PATTERN = re.compile(
    r"\[\[@for\s+(" + _PATH + r")\s+as\s+(\w+)\]\](.*?)\[\[@endfor\]\]", re.DOTALL
)
EVENT_PATTERN = re.compile(r"\[\[event\]\]")
HYPERLINK_PATTERN = re.compile(r"\[\[@hyperlink\s+(" + _PATH + r")(?:\s+as\s+([^\]]+?))?\s*\]\]")
MAILTO_PATTERN = re.compile(r"\[\[@mailto\s+(" + _PATH + r")(?:\s+as\s+([^\]]+?))?\s*\]\]")
IMAGE_PATTERN = re.compile(r"\[\[@image\s+(" + _PATH + r")(?:\s+(\d+))?\s*\]\]")
SUBSTRING_PATTERN = re.compile(r"\[\[@substring\s+(" + _PATH + r")\s+(-?\d+)(?:\s+(-?\d+))?\s*\]\]")
COUNT_PATTERN = re.compile(r"\[\[@count\s+(" + _PATH + r")\s+(\w+)(?:\s+(\w+))?\s*\]\]")
STYLE_PATTERN = re.compile(r"\[\[@style\s+(" + _PATH + r")\s+([\w\s:;#%.,()-]+?)\s*\]\]")
DATA_PATTERN = re.compile(r"\[\[(" + _PATH + r")\]\]")

_TAG_PATTERN = re.compile(r"\[\[(.*?)\]\]", re.DOTALL)
_PLACEHOLDER_PATTERN = re.compile("\x00(\\d+)\x00")


class TemplateEngine:
    """Render templates against a payload and an optional dispatch context.

    Args:
        line_breaks: Append ``<br />`` to every line break of the output
    """

    def __init__(self, *, line_breaks: bool = True) -> None:
        self.line_breaks = line_breaks
        self._helpers: List[Tuple[re.Pattern, Callable[..., str]]] = [
            (HYPERLINK_PATTERN, self._hyperlink),
            (MAILTO_PATTERN, self._mailto),
            (IMAGE_PATTERN, self._image),
            (SUBSTRING_PATTERN, self._substring),
            (COUNT_PATTERN, self._count),
            (STYLE_PATTERN, self._style),
        ]

    def render(
        self,
        template: str,
        payload: Any,
        context: Optional[Mapping[str, Any]] = None,
        event_type: Optional[str] = None,
    ) -> str:
        rendered = self.expand_loops(template, payload, context)

        reserved: List[str] = []

        def reserve(text: str) -> str:
            reserved.append(text)
            return f"\x00{len(reserved) - 1}\x00"

        if "\x00" in rendered:
            rendered = rendered.replace("\x00", reserve("\x00"))
        rendered = EVENT_PATTERN.sub(lambda _: reserve(event_type or ""), rendered)
        for pattern, helper in self._helpers:
            rendered = pattern.sub(
                lambda match, helper=helper: reserve(helper(match, payload, context)), rendered
            )
        rendered = DATA_PATTERN.sub(
            lambda match: reserve(self.text(match.group(1), payload, context)), rendered
        )
        rendered = _PLACEHOLDER_PATTERN.sub(lambda match: reserved[int(match.group(1))], rendered)

        if self.line_breaks:
            rendered = re.sub(r"(\r\n|\n|\r)", r"<br />\1", rendered)
        return rendered

    def expand_loops(self, template: str, payload: Any, context: Optional[Mapping[str, Any]] = None) -> str:
        """Expand every ``@for`` block; non-list targets render as nothing."""

        def expand(match: re.Match[str]) -> str:
            path, alias, body = match.group(1), match.group(2), match.group(3).lstrip()
            items = resolve(path, payload, context)
            if isinstance(items, list):
                keys = [str(index) for index in range(len(items))]
            elif isinstance(items, Mapping):
                keys = [str(key) for key in items]
            else:
                if items is PATH_NOT_FOUND:
                    logger.debug("Template loop path not found", extra={"path": path})
                return ""
            return "".join(_rebind_alias(body, alias, f"{path}->{key}") for key in keys)

        return FOR_PATTERN.sub(expand, template)

    def text(self, path: str, payload: Any, context: Optional[Mapping[str, Any]] = None) -> str:
        """Resolved value as text, or the last path segment on a miss."""
        value = resolve(path, payload, context)
        if value is PATH_NOT_FOUND:
            return last_segment(path)
        return render_value(value)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _hyperlink(self, match: re.Match[str], payload: Any, context: Optional[Mapping[str, Any]]) -> str:
        href = self.text(match.group(1), payload, context)
        label = self.text(match.group(2).strip(), payload, context) if match.group(2) else href
        return f'<a href="{href}" target="_blank">{label}</a>'

    def _mailto(self, match: re.Match[str], payload: Any, context: Optional[Mapping[str, Any]]) -> str:
        address = self.text(match.group(1), payload, context)
        label = self.text(match.group(2).strip(), payload, context) if match.group(2) else address
        return f'<a href="mailto:{address}" target="_blank">{label}</a>'

    def _image(self, match: re.Match[str], payload: Any, context: Optional[Mapping[str, Any]]) -> str:
        path, width = match.group(1), match.group(2)
        style = f"width: {width}px;vertical-align: middle;" if width else "vertical-align: middle;"
        src = self.text(path, payload, context)
        return f'<img style="{style}" alt="{path}" src="{src}"/>'

    def _substring(self, match: re.Match[str], payload: Any, context: Optional[Mapping[str, Any]]) -> str:
        value = self.text(match.group(1), payload, context)
        length = int(match.group(3)) if match.group(3) is not None else None
        return _substr(value, int(match.group(2)), length)

    def _count(self, match: re.Match[str], payload: Any, context: Optional[Mapping[str, Any]]) -> str:
        value = resolve(match.group(1), payload, context)
        if isinstance(value, (list, Mapping)):
            count = len(value)
        elif isinstance(value, (int, float)) and not isinstance(value, bool):
            count = int(value)
        else:
            count = 0
        singular = match.group(2)
        plural = match.group(3) or f"{singular}s"
        return f"{count} {singular if count == 1 else plural}"

    def _style(self, match: re.Match[str], payload: Any, context: Optional[Mapping[str, Any]]) -> str:
        text = self.text(match.group(1), payload, context)
        return f'<span style="{match.group(2).strip()}">{text}</span>'


def _rebind_alias(body: str, alias: str, target: str) -> str:
    alias_pattern = re.compile(r"(?<![\w>-])" + re.escape(alias) + r"(?=->|\s|$)")

    def rewrite(tag: re.Match[str]) -> str:
        return "[[" + alias_pattern.sub(lambda _: target, tag.group(1)) + "]]"

    return _TAG_PATTERN.sub(rewrite, body)


def _substr(value: str, offset: int, length: Optional[int]) -> str:
    """Slice with negative offset/length counted from the end."""
    start = offset if offset >= 0 else max(len(value) + offset, 0)
    if start > len(value):
        return ""
    if length is None:
        return value[start:]
    if length >= 0:
        return value[start:start + length]
    return value[start:length]


__all__ = ["TemplateEngine"]
