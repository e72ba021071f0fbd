"""Automation rules, their bindings, and the handler contract."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from pydantic import BaseModel, Field, field_validator

from vcsbridge.automation.conditions import Condition
from vcsbridge.errors import ConfigurationError


MAX_CONDITIONS = 3


class AutomationBindingStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class AutomationBinding(BaseModel):
    """Link between a webhook binding and an automation."""

    automation_id: str = Field(..., description="Identifier of the bound automation")
    status: AutomationBindingStatus = Field(default=AutomationBindingStatus.ACTIVE)
    conditions: List[str] = Field(
        default_factory=list,
        description="Up to three 'path=regex' or 'NOT_NULL(path)' conditions",
    )

    @field_validator("conditions")
    def _validate_conditions(cls, value: List[str]) -> List[str]:
        cleaned = [condition.strip() for condition in value if condition and condition.strip()]
        if len(cleaned) > MAX_CONDITIONS:
            raise ValueError(f"At most {MAX_CONDITIONS} conditions are allowed")
        for condition in cleaned:
            try:
                Condition.parse(condition)
            except ConfigurationError as exc:
                raise ValueError(exc.message) from exc
        return cleaned

    @property
    def is_active(self) -> bool:
        return self.status == AutomationBindingStatus.ACTIVE


class AutomationHandler(ABC):
    """Work performed when an automation is activated.

    ``accumulator`` is a mutable mapping shared by every activation of one
    scoped dispatch, so handlers can emit a single aggregate from
    :meth:`handle_scope_end`.
    """

    @abstractmethod
    def handle_event(
        self,
        event_type: str,
        payload: Mapping[str, Any],
        scope_data: Optional[Mapping[str, Any]],
        accumulator: Dict[str, Any],
    ) -> None:
        """Handle one activation."""

    def handle_scope_end(
        self,
        event_type: str,
        payload: Mapping[str, Any],
        accumulator: Dict[str, Any],
    ) -> None:
        """Called once after every element of a scope has been handled."""


@dataclass
class Automation:
    """A rule reacting to one or more event types."""

    id: str
    name: str
    events: Sequence[str]
    handler: AutomationHandler
    scope: Optional[str] = None

    def __post_init__(self) -> None:
        self.events = tuple(event.strip().lower() for event in self.events if event.strip())
        if not self.events:
            raise ValueError(f"Automation {self.id} must declare at least one event")
        if self.scope is not None and not self.scope.strip():
            self.scope = None

    def listens_to(self, event_type: str) -> bool:
        return event_type.lower() in self.events


@dataclass
class AutomationCatalog:
    """In-process registry of automations wired at startup."""

    automations: Dict[str, Automation] = field(default_factory=dict)

    @classmethod
    def from_automations(cls, automations: Iterable[Automation]) -> "AutomationCatalog":
        catalog = cls()
        for automation in automations:
            catalog.register(automation)
        return catalog

    def register(self, automation: Automation) -> None:
        self.automations[automation.id] = automation

    def get(self, automation_id: str) -> Optional[Automation]:
        return self.automations.get(automation_id)

    def __len__(self) -> int:
        return len(self.automations)


__all__ = [
    "MAX_CONDITIONS",
    "Automation",
    "AutomationBinding",
    "AutomationBindingStatus",
    "AutomationCatalog",
    "AutomationHandler",
]
