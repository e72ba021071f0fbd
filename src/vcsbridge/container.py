"""Process-wide service wiring.

Services are plain objects built once from :class:`IntegrationSettings` and
passed to their consumers; there are no module-level singletons.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from vcsbridge.audit import AuditLogger
from vcsbridge.automation.dispatcher import Dispatcher
from vcsbridge.automation.handlers import MessageSink, load_automation_catalog, log_sink
from vcsbridge.automation.models import AutomationCatalog
from vcsbridge.automation.templating import TemplateEngine
from vcsbridge.configuration.settings import IntegrationSettings, SecretStore
from vcsbridge.github.api_client import ProviderClient
from vcsbridge.github.auth import AuthHeaderBuilder
from vcsbridge.github.credential_cache import FileCredentialCache
from vcsbridge.github.registry import BindingRegistry, ConnectorRegistry
from vcsbridge.github.transport import ProviderTransport
from vcsbridge.github.webhook.admin import AdminOperations
from vcsbridge.github.webhook.delivery import DeliveryService
from vcsbridge.github.webhook.processes import DeliveryProcessor, SynchronizationPass
from vcsbridge.github.webhook.queue import DeliveryQueue
from vcsbridge.github.webhook.reconciler import Reconciler


@dataclass
class Services:
    settings: IntegrationSettings
    connectors: ConnectorRegistry
    bindings: BindingRegistry
    auth: AuthHeaderBuilder
    client: ProviderClient
    catalog: AutomationCatalog
    dispatcher: Dispatcher
    reconciler: Reconciler
    delivery: DeliveryService
    admin: AdminOperations
    synchronization: SynchronizationPass
    queue: DeliveryQueue
    processor: DeliveryProcessor


def build_services(
    settings: IntegrationSettings,
    *,
    secret_store: Optional[SecretStore] = None,
    catalog: Optional[AutomationCatalog] = None,
    sink: Optional[MessageSink] = None,
) -> Services:
    """Wire every service from settings.

    Layout under ``settings.state_dir``: ``connectors/``, ``bindings/``,
    ``queue/``, ``credentials.json``, ``automations.json`` and ``audit/``.
    """
    state_dir = settings.state_dir.expanduser()
    secret_store = secret_store or SecretStore()
    connectors = ConnectorRegistry(state_dir / "connectors", secret_store)
    bindings = BindingRegistry(state_dir / "bindings", secret_store)

    transport = ProviderTransport.from_settings(settings.provider)
    auth = AuthHeaderBuilder(
        transport,
        FileCredentialCache(state_dir / "credentials.json"),
        jwt_lifetime=settings.provider.jwt_lifetime_seconds,
        jwt_backdate=settings.provider.jwt_backdate_seconds,
    )
    client = ProviderClient(transport, auth)

    if catalog is None:
        catalog = load_automation_catalog(
            state_dir / "automations.json", sink or log_sink(), engine=TemplateEngine()
        )
    dispatcher = Dispatcher(catalog)
    reconciler = Reconciler(client, connectors, catalog, settings.webhook)

    audit_logger = AuditLogger(state_dir / "audit")
    queue = DeliveryQueue(state_dir / "queue")
    delivery = DeliveryService(
        bindings,
        dispatcher,
        queue=queue if settings.webhook.process_asynchronously else None,
        event_log_size=settings.webhook.event_log_size,
        audit_logger=audit_logger,
    )

    return Services(
        settings=settings,
        connectors=connectors,
        bindings=bindings,
        auth=auth,
        client=client,
        catalog=catalog,
        dispatcher=dispatcher,
        reconciler=reconciler,
        delivery=delivery,
        admin=AdminOperations(bindings, reconciler, auth, audit_logger=audit_logger),
        synchronization=SynchronizationPass(bindings, reconciler),
        queue=queue,
        processor=DeliveryProcessor(queue, delivery),
    )


__all__ = ["Services", "build_services"]
