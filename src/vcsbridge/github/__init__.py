"""GitHub connectors, bindings, credentials and REST client."""

from .api_client import ProviderClient, RemoteWebhook, WebhookSpec
from .auth import AuthHeaderBuilder
from .credential_cache import (
    CredentialCache,
    CredentialCacheEntry,
    FileCredentialCache,
    InMemoryCredentialCache,
)
from .models import (
    AuthMode,
    Binding,
    BindingStatus,
    Connector,
    OrganizationTarget,
    RemoteConfiguration,
    RepositoryTarget,
    SyncMode,
    TargetType,
)
from .registry import BindingRegistry, ConnectorRegistry
from .transport import ProviderTransport

__all__ = [
    "AuthHeaderBuilder",
    "AuthMode",
    "Binding",
    "BindingRegistry",
    "BindingStatus",
    "Connector",
    "ConnectorRegistry",
    "CredentialCache",
    "CredentialCacheEntry",
    "FileCredentialCache",
    "InMemoryCredentialCache",
    "OrganizationTarget",
    "ProviderClient",
    "ProviderTransport",
    "RemoteConfiguration",
    "RemoteWebhook",
    "RepositoryTarget",
    "SyncMode",
    "TargetType",
    "WebhookSpec",
]
