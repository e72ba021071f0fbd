"""Configuration loading utilities for vcsbridge."""

from .settings import (
    DEFAULT_CONFIG_PATH,
    IntegrationSettings,
    ProviderSettings,
    SecretStore,
    UnconfiguredStatus,
    WebhookSettings,
    bootstrap_settings,
    load_settings,
    save_settings,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "IntegrationSettings",
    "ProviderSettings",
    "SecretStore",
    "UnconfiguredStatus",
    "WebhookSettings",
    "bootstrap_settings",
    "load_settings",
    "save_settings",
]
