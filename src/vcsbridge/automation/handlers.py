"""Template-driven automation handlers and the automation definitions file.

``automations.json`` in the state directory lists the automations a
process serves::

    [
      {"id": "push-log", "name": "Push log", "events": ["push"],
       "scope": "commits",
       "template": "[[@hyperlink url as id]] [[message]]",
       "summary_template": "[[context->entries]]"}
    ]
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field, ValidationError

from vcsbridge.automation.models import Automation, AutomationCatalog, AutomationHandler
from vcsbridge.automation.templating import TemplateEngine
from vcsbridge.errors import ConfigurationError


logger = logging.getLogger(__name__)

MessageSink = Callable[[str], None]


class TemplateMessageHandler(AutomationHandler):
    """Render a message per activation and hand it to ``sink``.

    In a scoped dispatch with a ``summary_template``, rendered entries are
    collected in the accumulator and a single summary is emitted when the
    scope ends. The summary is rendered against the full payload with
    ``context->entries`` (newline-joined) and ``context->count``.
    """

    def __init__(
        self,
        template: str,
        sink: MessageSink,
        *,
        summary_template: Optional[str] = None,
        engine: Optional[TemplateEngine] = None,
    ) -> None:
        self.template = template
        self.summary_template = summary_template
        self.sink = sink
        self.engine = engine or TemplateEngine()

    def handle_event(
        self,
        event_type: str,
        payload: Mapping[str, Any],
        scope_data: Optional[Mapping[str, Any]],
        accumulator: Dict[str, Any],
    ) -> None:
        if scope_data is None:
            self.sink(self.engine.render(self.template, payload, event_type=event_type))
            return
        message = self.engine.render(self.template, scope_data, context=payload, event_type=event_type)
        if self.summary_template is None:
            self.sink(message)
        else:
            accumulator.setdefault("entries", []).append(message)

    def handle_scope_end(
        self,
        event_type: str,
        payload: Mapping[str, Any],
        accumulator: Dict[str, Any],
    ) -> None:
        entries: List[str] = accumulator.get("entries", [])
        if self.summary_template is None or not entries:
            return
        context = {"entries": "\n".join(entries), "count": len(entries), "event": event_type}
        self.sink(self.engine.render(self.summary_template, payload, context=context, event_type=event_type))


def log_sink(name: str = "vcsbridge.automation.messages", level: int = logging.INFO) -> MessageSink:
    """Sink writing rendered messages to a logger."""
    message_logger = logging.getLogger(name)

    def sink(message: str) -> None:
        message_logger.log(level, message)

    return sink


class AutomationDefinition(BaseModel):
    """Serialized form of a template automation."""

    id: str
    name: str
    events: List[str] = Field(..., min_length=1)
    scope: Optional[str] = None
    template: str
    summary_template: Optional[str] = None


def load_automation_catalog(
    path: Path,
    sink: MessageSink,
    *,
    engine: Optional[TemplateEngine] = None,
) -> AutomationCatalog:
    """Build a catalog from an ``automations.json`` file; missing file means empty."""
    if not path.exists():
        logger.info("No automation definitions found", extra={"path": str(path)})
        return AutomationCatalog()
    try:
        raw = json.loads(path.read_text())
        definitions = [AutomationDefinition.model_validate(item) for item in raw]
    except (json.JSONDecodeError, ValidationError, TypeError) as exc:
        raise ConfigurationError(
            f"Invalid automation definitions in {path}: {exc}", details={"path": str(path)}
        ) from exc

    engine = engine or TemplateEngine()
    return AutomationCatalog.from_automations(
        Automation(
            id=definition.id,
            name=definition.name,
            events=definition.events,
            scope=definition.scope,
            handler=TemplateMessageHandler(
                definition.template,
                sink,
                summary_template=definition.summary_template,
                engine=engine,
            ),
        )
        for definition in definitions
    )


__all__ = [
    "AutomationDefinition",
    "MessageSink",
    "TemplateMessageHandler",
    "load_automation_catalog",
    "log_sink",
]
