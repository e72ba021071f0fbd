"""Automation rules, conditions and message templates.

The dispatcher lives in :mod:`vcsbridge.automation.dispatcher`; it depends
on the GitHub binding model and is imported from there directly.
"""

from .conditions import Condition, conditions_met
from .handlers import TemplateMessageHandler, load_automation_catalog, log_sink
from .models import (
    Automation,
    AutomationBinding,
    AutomationBindingStatus,
    AutomationCatalog,
    AutomationHandler,
)
from .paths import PATH_NOT_FOUND, render_value, resolve
from .templating import TemplateEngine

__all__ = [
    "Automation",
    "AutomationBinding",
    "AutomationBindingStatus",
    "AutomationCatalog",
    "AutomationHandler",
    "Condition",
    "PATH_NOT_FOUND",
    "TemplateEngine",
    "TemplateMessageHandler",
    "conditions_met",
    "load_automation_catalog",
    "log_sink",
    "render_value",
    "resolve",
]
