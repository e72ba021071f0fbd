"""Converge locally declared webhooks with the provider's remote state.

The reconciler owns the binding ``status`` state machine::

    unset -> unsynchronized <-> active <-> inactive
    any state -> error on failure, error -> unsynchronized on next check

Operations mutate the :class:`Binding` they are given and return an
:class:`OperationResult`; persisting the binding is left to the caller so a
whole reconciliation step can be written under one registry lock.
Provider and configuration failures never escape an operation: they are
logged with the binding id and operation name, and reported in
``OperationResult.errors``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from vcsbridge.automation.models import AutomationCatalog
from vcsbridge.configuration.settings import WebhookSettings
from vcsbridge.errors import ConfigurationError, ProviderAPIError, VCSBridgeError
from vcsbridge.github.api_client import (
    ProviderClient,
    RemoteWebhook,
    WebhookSpec,
    organization_summary,
    repository_summary,
)
from vcsbridge.github.models import (
    Binding,
    BindingStatus,
    Connector,
    ExternalData,
    RemoteConfiguration,
    SyncMode,
)
from vcsbridge.github.registry import ConnectorRegistry


logger = logging.getLogger(__name__)

DEFAULT_EVENTS = ("push",)
AUTHORITY_PATTERN = re.compile(r"(https?)://([^/]+)/")
AUTO_SYNC_STATUSES = (BindingStatus.UNSYNCHRONIZED, BindingStatus.ERROR)


@dataclass
class OperationResult:
    """Outcome of a reconciliation operation."""

    operation: str
    data: Any = None
    errors: List[str] = field(default_factory=list)

    @property
    def has_error(self) -> bool:
        return bool(self.errors)

    def to_dict(self) -> Dict[str, Any]:
        return {"operation": self.operation, "data": self.data, "errors": list(self.errors)}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Reconciler:
    """Check, create, update and delete provider webhooks for bindings.

    Args:
        client: Authenticated provider client
        connectors: Connector lookup
        catalog: Automations, used to derive the expected event set
        settings: Callback URL and status policy settings
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        client: ProviderClient,
        connectors: ConnectorRegistry,
        catalog: AutomationCatalog,
        settings: Optional[WebhookSettings] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.client = client
        self.connectors = connectors
        self.catalog = catalog
        self.settings = settings or WebhookSettings()
        self.clock = clock

    # ------------------------------------------------------------------
    # Expected configuration
    # ------------------------------------------------------------------

    def callback_url(self, binding: Binding) -> str:
        """Delivery URL for a binding, with the host/scheme override applied."""
        base = self.settings.callback_base_url.rstrip("/")
        url = f"{base}{self.settings.callback_path}?binding={quote(binding.id, safe='')}"
        host, scheme = self.settings.host_override, self.settings.scheme_override
        if host or scheme:
            url = AUTHORITY_PATTERN.sub(
                lambda match: f"{scheme or match.group(1)}://{host or match.group(2)}/", url, count=1
            )
        return url

    def refresh_callback_url(self, binding: Binding) -> str:
        binding.url = self.callback_url(binding)
        return binding.url

    def expected_events(self, binding: Binding) -> List[str]:
        """Sorted union of events of active automation bindings, ``push`` by default."""
        events = set()
        for link in binding.automations:
            if not link.is_active:
                continue
            automation = self.catalog.get(link.automation_id)
            if automation is not None:
                events.update(automation.events)
        return sorted(events) if events else list(DEFAULT_EVENTS)

    def webhook_spec(self, binding: Binding) -> WebhookSpec:
        secret = binding.secret_value
        if secret is None and self.settings.require_secret:
            raise ConfigurationError(
                f"Binding {binding.id} has no webhook secret", details={"binding_id": binding.id}
            )
        return WebhookSpec(
            url=binding.url or self.callback_url(binding),
            events=self.expected_events(binding),
            secret=secret,
        )

    def is_in_sync(self, binding: Binding, remote: RemoteWebhook) -> bool:
        expected_url = binding.url or self.callback_url(binding)
        return remote.url == expected_url and sorted(remote.events) == self.expected_events(binding)

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def check(self, binding: Binding) -> OperationResult:
        """Derive the binding status from the remote webhook."""
        self.refresh_callback_url(binding)
        if binding.sync_mode == SyncMode.NONE:
            binding.status = BindingStatus.UNSET
            return OperationResult("check", data={"status": binding.status.value})

        def probe() -> BindingStatus:
            if binding.remote_id is None:
                return BindingStatus(self.settings.unconfigured_status.value)
            remote = self.client.find_webhook(self._connector(binding), binding.target, binding.remote_id)
            if remote is None:
                return BindingStatus.UNSYNCHRONIZED
            if not self.is_in_sync(binding, remote):
                return BindingStatus.UNSYNCHRONIZED
            return BindingStatus.ACTIVE if remote.active else BindingStatus.INACTIVE

        result = self._execute("check", binding, probe)
        binding.status = BindingStatus.ERROR if result.has_error else result.data
        result.data = {"status": binding.status.value}
        return result

    def synchronize(self, binding: Binding) -> OperationResult:
        """Create or update the remote webhook to match the binding."""
        self.refresh_callback_url(binding)
        if binding.sync_mode == SyncMode.NONE:
            return OperationResult(
                "synchronize", errors=[f"Synchronization is disabled for binding {binding.id}"]
            )

        def converge() -> RemoteWebhook:
            connector = self._connector(binding)
            spec = self.webhook_spec(binding)
            if binding.remote_id is not None:
                existing = self.client.find_webhook(connector, binding.target, binding.remote_id)
                if existing is not None:
                    return self.client.update_webhook(connector, binding.target, existing.id, spec)
            return self.client.create_webhook(connector, binding.target, spec)

        result = self._execute("synchronize", binding, converge)
        if result.has_error:
            binding.status = BindingStatus.ERROR
            return result

        remote: RemoteWebhook = result.data
        binding.configuration = RemoteConfiguration(remote_id=remote.id, last_synced_at=self.clock())
        binding.status = BindingStatus.ACTIVE if remote.active else BindingStatus.INACTIVE
        result.data = {
            "status": binding.status.value,
            "remote_id": remote.id,
            "events": remote.events,
            "url": remote.url,
        }
        logger.info(
            "Synchronized webhook",
            extra={"binding_id": binding.id, "remote_id": remote.id, "status": binding.status.value},
        )
        return result

    def delete_synchronization(self, binding: Binding) -> OperationResult:
        """Delete the remote webhook if present and forget it locally."""

        def remove() -> bool:
            if binding.remote_id is None:
                return False
            connector = self._connector(binding)
            if self.client.find_webhook(connector, binding.target, binding.remote_id) is None:
                return False
            return self.client.delete_webhook(connector, binding.target, binding.remote_id)

        result = self._execute("delete_synchronization", binding, remove)
        binding.configuration = None
        binding.external_data = None
        binding.status = BindingStatus.UNSET
        result.data = {"deleted": bool(result.data), "status": binding.status.value}
        return result

    def refresh_external_data(self, binding: Binding) -> OperationResult:
        """Store denormalized repository or organization metadata."""

        def fetch() -> Dict[str, Any]:
            data = self.client.get_metadata(self._connector(binding), binding.target)
            if binding.is_organization:
                return organization_summary(data)
            return repository_summary(data)

        result = self._execute("refresh_external_data", binding, fetch)
        if not result.has_error:
            binding.external_data = ExternalData(refreshed_at=self.clock(), metadata=result.data)
            result.data = binding.external_data.model_dump(mode="json")
        return result

    def auto_synchronize(self, binding: Binding) -> Optional[OperationResult]:
        """Synchronize ``auto`` bindings that are out of sync or in error.

        Repository targets also get their external metadata refreshed.
        Returns ``None`` when the policy does not apply.
        """
        if binding.sync_mode != SyncMode.AUTO or binding.status not in AUTO_SYNC_STATUSES:
            return None
        result = self.synchronize(binding)
        if not result.has_error and not binding.is_organization:
            refreshed = self.refresh_external_data(binding)
            result.errors.extend(refreshed.errors)
        return result

    # ------------------------------------------------------------------
    # Local mutation hooks
    # ------------------------------------------------------------------

    def on_binding_changed(self, binding: Binding, *, secret_rotated: bool = False) -> OperationResult:
        """Re-derive status after a local edit and auto-synchronize if needed.

        A rotated secret cannot be detected by comparing remote state, so it
        forces the binding to ``unsynchronized``.
        """
        result = self.check(binding)
        if secret_rotated and binding.sync_mode != SyncMode.NONE:
            binding.status = BindingStatus.UNSYNCHRONIZED
        synchronized = self.auto_synchronize(binding)
        return synchronized if synchronized is not None else result

    def on_automations_changed(self, binding: Binding) -> OperationResult:
        return self.on_binding_changed(binding)

    def on_binding_deleted(self, binding: Binding) -> OperationResult:
        return self.delete_synchronization(binding)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _connector(self, binding: Binding) -> Connector:
        if not binding.connector_id:
            raise ConfigurationError(
                f"Binding {binding.id} has no connector", details={"binding_id": binding.id}
            )
        return self.connectors.get(binding.connector_id)

    def _execute(self, operation: str, binding: Binding, action: Callable[[], Any]) -> OperationResult:
        try:
            return OperationResult(operation, data=action())
        except VCSBridgeError as exc:
            message = exc.user_message if isinstance(exc, ProviderAPIError) else exc.message
            logger.warning(
                "Reconciliation operation failed",
                extra={
                    "binding_id": binding.id,
                    "operation": operation,
                    "error_code": exc.code,
                    "error": exc.message,
                },
            )
            return OperationResult(operation, errors=[message])
        except (KeyError, ValueError) as exc:
            logger.exception(
                "Unexpected provider response",
                extra={"binding_id": binding.id, "operation": operation},
            )
            return OperationResult(operation, errors=[f"Unexpected provider response: {exc}"])


__all__ = ["DEFAULT_EVENTS", "OperationResult", "Reconciler"]
