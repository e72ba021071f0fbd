"""Route verified events to the automations bound to a webhook binding."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from vcsbridge.automation.conditions import conditions_met
from vcsbridge.automation.models import Automation, AutomationBinding, AutomationCatalog
from vcsbridge.automation.paths import resolve
from vcsbridge.errors import InvalidScope, VCSBridgeError
from vcsbridge.github.models import Binding


logger = logging.getLogger(__name__)


@dataclass
class DispatchFailure:
    automation_id: str
    code: str
    message: str


@dataclass
class DispatchResult:
    """Outcome of one dispatch pass.

    ``triggered_count`` counts matched automation bindings, including those
    whose handler raised; handler errors are listed in ``failures``.
    """

    event_type: str
    triggered_count: int = 0
    failures: List[DispatchFailure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_type": self.event_type,
            "triggered_count": self.triggered_count,
            "failures": [failure.__dict__ for failure in self.failures],
        }


class Dispatcher:
    """Evaluate automation bindings for an event and run their handlers.

    Args:
        catalog: Automations available in this process
    """

    def __init__(self, catalog: AutomationCatalog) -> None:
        self.catalog = catalog

    def dispatch(self, event_type: str, binding: Binding, payload: Mapping[str, Any]) -> DispatchResult:
        event_type = event_type.lower()
        result = DispatchResult(event_type=event_type)
        context = dispatch_context(event_type, binding)

        for link in binding.automations:
            automation = self.catalog.get(link.automation_id)
            if automation is None:
                logger.warning(
                    "Automation binding references unknown automation",
                    extra={"binding_id": binding.id, "automation_id": link.automation_id},
                )
                continue
            if not automation.listens_to(event_type):
                continue
            if not self._accepts(link, payload, context):
                continue

            try:
                self._activate(automation, event_type, payload, result)
            except VCSBridgeError as exc:
                logger.warning(
                    "Automation skipped",
                    extra={
                        "binding_id": binding.id,
                        "automation_id": automation.id,
                        "event_type": event_type,
                        "error": exc.message,
                    },
                )
                result.failures.append(DispatchFailure(automation.id, exc.code, exc.message))
                continue
            result.triggered_count += 1

        logger.info(
            "Dispatched event",
            extra={
                "binding_id": binding.id,
                "event_type": event_type,
                "triggered_count": result.triggered_count,
            },
        )
        return result

    def _accepts(self, link: AutomationBinding, payload: Mapping[str, Any], context: Mapping[str, Any]) -> bool:
        if not link.is_active:
            return False
        return conditions_met(link.conditions, payload, context)

    def _activate(
        self,
        automation: Automation,
        event_type: str,
        payload: Mapping[str, Any],
        result: DispatchResult,
    ) -> None:
        if not automation.scope:
            self._launch(automation, result, "handle_event", event_type, payload, None, {})
            return

        items = resolve(automation.scope, payload)
        if not isinstance(items, list):
            raise InvalidScope(
                f"Scope {automation.scope!r} of automation {automation.id} is not a list",
                details={"automation_id": automation.id, "scope": automation.scope},
            )
        accumulator: Dict[str, Any] = {}
        for element in items:
            self._launch(
                automation, result, "handle_event",
                event_type, payload, scoped_payload(element, payload), accumulator,
            )
        self._launch(automation, result, "handle_scope_end", event_type, payload, accumulator)

    def _launch(self, automation: Automation, result: DispatchResult, method: str, *args: Any) -> None:
        try:
            getattr(automation.handler, method)(*args)
        except Exception as exc:
            logger.exception(
                "Automation handler failed",
                extra={"automation_id": automation.id, "handler_method": method},
            )
            result.failures.append(DispatchFailure(automation.id, type(exc).__name__, str(exc)))


def scoped_payload(element: Any, payload: Mapping[str, Any]) -> Dict[str, Any]:
    """``{...element, context: payload}``; scalars are exposed as ``value``."""
    if isinstance(element, Mapping):
        scoped = dict(element)
    else:
        scoped = {"value": element}
    scoped["context"] = payload
    return scoped


def dispatch_context(event_type: str, binding: Optional[Binding]) -> Dict[str, Any]:
    context: Dict[str, Any] = {"event": event_type}
    if binding is not None:
        context.update(
            {
                "binding_id": binding.id,
                "binding_name": binding.name,
                "target": binding.target.display_name,
                "target_type": binding.target.target_type.value,
            }
        )
    return context


__all__ = [
    "DispatchFailure",
    "DispatchResult",
    "Dispatcher",
    "dispatch_context",
    "scoped_payload",
]
