"""GitHub REST operations needed by reconciliation and metadata refresh.

Every call goes through :class:`AuthHeaderBuilder`, and target paths come
from the binding's target variant, so repository and organization webhooks
share one code path.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from vcsbridge.errors import ProviderAPIError
from vcsbridge.github.auth import AuthHeaderBuilder
from vcsbridge.github.models import Connector, Target
from vcsbridge.github.transport import ProviderTransport


logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class RemoteWebhook(BaseModel):
    """Provider-side webhook configuration."""

    id: int
    active: bool = True
    events: List[str] = Field(default_factory=list)
    url: Optional[str] = None

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "RemoteWebhook":
        config = data.get("config") or {}
        return cls(
            id=data["id"],
            active=bool(data.get("active", True)),
            events=list(data.get("events") or []),
            url=config.get("url"),
        )


@dataclass(frozen=True)
class WebhookSpec:
    """Locally expected webhook configuration."""

    url: str
    events: Sequence[str]
    secret: Optional[str] = None

    def config(self) -> Dict[str, Any]:
        config = {"url": self.url, "content_type": "json", "insecure_ssl": "0"}
        if self.secret:
            config["secret"] = self.secret
        return config


def repository_summary(data: Dict[str, Any]) -> Dict[str, Any]:
    """Reduce a repository payload to the fields shown next to a binding."""
    owner = data.get("owner") or {}
    return {
        "watchers_count": data.get("watchers_count"),
        "forks": data.get("forks"),
        "open_issues": data.get("open_issues"),
        "clone_url": data.get("clone_url"),
        "description": data.get("description"),
        "owner": {
            "login": owner.get("login"),
            "avatar_url": owner.get("avatar_url"),
            "url": owner.get("html_url"),
        },
    }


def organization_summary(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "login": data.get("login"),
        "description": data.get("description"),
        "avatar_url": data.get("avatar_url"),
        "url": data.get("html_url"),
    }


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class ProviderClient:
    """Authenticated webhook and metadata operations.

    Args:
        transport: HTTP transport
        auth: Header builder holding the credential cache
    """

    def __init__(self, transport: ProviderTransport, auth: AuthHeaderBuilder) -> None:
        self.transport = transport
        self.auth = auth

    def _call(
        self,
        method: str,
        path: str,
        connector: Connector,
        target: Target,
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        headers = self.auth.build_headers(connector, target)
        logger.debug("Provider call", extra={"method": method, "path": path, "connector_id": connector.id})
        return self.transport.request(method, path, headers=headers, data=data)

    def get_metadata(self, connector: Connector, target: Target) -> Dict[str, Any]:
        """Fetch repository or organization metadata."""
        return self._call("GET", target.api_path(), connector, target)

    def get_webhook(self, connector: Connector, target: Target, hook_id: int) -> RemoteWebhook:
        data = self._call("GET", target.hooks_path(hook_id), connector, target)
        return RemoteWebhook.from_api(data)

    def find_webhook(
        self, connector: Connector, target: Target, hook_id: int
    ) -> Optional[RemoteWebhook]:
        """Existence probe: ``None`` when the provider answers 404."""
        try:
            return self.get_webhook(connector, target, hook_id)
        except ProviderAPIError as exc:
            if exc.status == 404:
                return None
            raise

    def create_webhook(self, connector: Connector, target: Target, spec: WebhookSpec) -> RemoteWebhook:
        body = {
            "name": "web",
            "active": True,
            "events": list(spec.events),
            "config": spec.config(),
        }
        data = self._call("POST", target.hooks_path(), connector, target, body)
        logger.info(
            "Created remote webhook",
            extra={"target": target.display_name, "hook_id": data.get("id")},
        )
        return RemoteWebhook.from_api(data)

    def update_webhook(
        self, connector: Connector, target: Target, hook_id: int, spec: WebhookSpec
    ) -> RemoteWebhook:
        body = {"events": list(spec.events), "config": spec.config()}
        data = self._call("PATCH", target.hooks_path(hook_id), connector, target, body)
        return RemoteWebhook.from_api(data)

    def delete_webhook(self, connector: Connector, target: Target, hook_id: int) -> bool:
        self._call("DELETE", target.hooks_path(hook_id), connector, target)
        logger.info("Deleted remote webhook", extra={"target": target.display_name, "hook_id": hook_id})
        return True

    def resolve_installation(self, connector: Connector, target: Optional[Target] = None) -> int:
        return self.auth.resolve_installation(connector, target)

    def issue_installation_token(self, connector: Connector, target: Optional[Target] = None) -> str:
        return self.auth.installation_token(connector, target)


__all__ = [
    "ProviderClient",
    "RemoteWebhook",
    "WebhookSpec",
    "organization_summary",
    "repository_summary",
]
