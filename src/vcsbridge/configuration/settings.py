"""Typed settings for the GitHub integration.

Settings are wrapped in Pydantic models so the CLI, the webhook server and
the background passes share one validated view of the deployment. Connector
credentials never live in the settings file; they go through the
keyring-backed :class:`SecretStore`.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
from keyring.errors import PasswordDeleteError
from pydantic import BaseModel, Field, ValidationError, field_validator


DEFAULT_STATE_DIR = Path.home() / ".vcsbridge"
DEFAULT_CONFIG_PATH = DEFAULT_STATE_DIR / "config.json"
DEFAULT_SECRETS_SERVICE = "vcsbridge"


class UnconfiguredStatus(str, Enum):
    """Status given to a synchronized binding that has no remote webhook yet."""

    UNSET = "unset"
    UNSYNCHRONIZED = "unsynchronized"


class ProviderSettings(BaseModel):
    """Outbound REST API settings."""

    api_base_url: str = Field("https://api.github.com", description="Provider REST API base")
    api_version: str = Field("2022-11-28", description="X-GitHub-Api-Version header value")
    request_timeout: float = Field(30.0, gt=0, description="Per-request timeout in seconds")
    jwt_lifetime_seconds: int = Field(300, ge=60, le=600)
    jwt_backdate_seconds: int = Field(60, ge=0, le=300)

    @field_validator("api_base_url")
    def _validate_api_base_url(cls, value: str) -> str:
        if not value.startswith(("http://", "https://")):
            raise ValueError("api_base_url must start with http:// or https://")
        return value.rstrip("/")


class WebhookSettings(BaseModel):
    """Inbound delivery and reconciliation settings."""

    callback_base_url: str = Field(
        "http://localhost:8765", description="Public base URL the provider posts to"
    )
    callback_path: str = Field("/webhook/github", description="Delivery endpoint path")
    host_override: Optional[str] = Field(
        default=None, description="Replace the callback URL host (reverse proxies)"
    )
    scheme_override: Optional[str] = Field(default=None, description="Replace the callback URL scheme")
    listen_host: str = Field("127.0.0.1")
    listen_port: int = Field(8765, ge=1, le=65535)
    process_asynchronously: bool = Field(
        False, description="Queue deliveries instead of dispatching inline"
    )
    async_handler_interval: int = Field(10, ge=1, description="Queue processing period in seconds")
    synchro_interval: int = Field(86400, ge=60, description="Reconciliation pass period in seconds")
    unconfigured_status: UnconfiguredStatus = Field(UnconfiguredStatus.UNSYNCHRONIZED)
    require_secret: bool = Field(True, description="Refuse to synchronize bindings without secret")
    event_log_size: int = Field(50, ge=0, le=1000)

    @field_validator("callback_path")
    def _validate_callback_path(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("callback_path must start with '/'")
        return value

    @field_validator("scheme_override")
    def _validate_scheme(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and value not in {"http", "https"}:
            raise ValueError("scheme_override must be http or https")
        return value


class IntegrationSettings(BaseModel):
    """Root configuration state."""

    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    state_dir: Path = Field(default=DEFAULT_STATE_DIR)


@dataclass
class SecretStore:
    """Keyring abstraction for connector credentials."""

    service_name: str = DEFAULT_SECRETS_SERVICE
    keyring_module: Any = field(default=keyring)

    def set_secret(self, key: str, value: str) -> None:
        self.keyring_module.set_password(self.service_name, key, value)

    def get_secret(self, key: str) -> Optional[str]:
        return self.keyring_module.get_password(self.service_name, key)

    def delete_secret(self, key: str) -> None:
        try:
            self.keyring_module.delete_password(self.service_name, key)
        except PasswordDeleteError:
            return


def secret_key(kind: str, identifier: str) -> str:
    return f"{kind}:{identifier}"


def load_settings(path: Path = DEFAULT_CONFIG_PATH) -> IntegrationSettings:
    """Load settings from disk or raise if invalid."""

    if not path.exists():
        raise FileNotFoundError(f"Settings file not found at {path}")
    payload = json.loads(path.read_text())
    try:
        return IntegrationSettings.model_validate(payload)
    except ValidationError as exc:
        raise ValueError(f"Invalid configuration: {exc}") from exc


def save_settings(settings: IntegrationSettings, path: Path = DEFAULT_CONFIG_PATH) -> None:
    payload = settings.model_dump(mode="json")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2))


def bootstrap_settings(
    *,
    path: Path = DEFAULT_CONFIG_PATH,
    overrides: Optional[Dict[str, Any]] = None,
) -> IntegrationSettings:
    """Create or load settings respecting environment overrides.

    Args:
        path: Settings file location, created with defaults when missing
        overrides: Nested mapping merged over the file contents

    Returns:
        Validated settings with the state directory created
    """

    if path.exists():
        settings = load_settings(path)
    else:
        settings = IntegrationSettings()
        save_settings(settings, path)

    merged = settings.model_dump(mode="python")
    merged = _apply_overrides(merged, overrides or {})
    merged = _apply_env_overrides(merged)

    resolved = IntegrationSettings.model_validate(merged)
    resolved.state_dir.mkdir(parents=True, exist_ok=True)
    save_settings(resolved, path)
    return resolved


def _apply_overrides(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = base.copy()
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _apply_overrides(merged[key], value)
        else:
            merged[key] = value
    return merged


def _apply_env_overrides(data: Dict[str, Any]) -> Dict[str, Any]:
    provider = data.setdefault("provider", {})
    _set_env_override(provider, "api_base_url", "VCSBRIDGE_API_BASE_URL")
    _set_env_override(provider, "api_version", "VCSBRIDGE_API_VERSION")
    _set_env_override(provider, "request_timeout", "VCSBRIDGE_REQUEST_TIMEOUT", cast=float)

    webhook = data.setdefault("webhook", {})
    _set_env_override(webhook, "callback_base_url", "VCSBRIDGE_CALLBACK_BASE_URL")
    _set_env_override(webhook, "host_override", "VCSBRIDGE_WEBHOOK_HOST")
    _set_env_override(webhook, "scheme_override", "VCSBRIDGE_WEBHOOK_SCHEME")
    _set_env_override(webhook, "listen_port", "VCSBRIDGE_LISTEN_PORT", cast=int)
    _set_env_override(
        webhook, "process_asynchronously", "VCSBRIDGE_PROCESS_ASYNC", cast=_parse_bool
    )

    _set_env_override(data, "state_dir", "VCSBRIDGE_STATE_DIR")
    return data


def _parse_bool(raw: str) -> bool:
    return raw.lower() in {"1", "true", "yes"}


def _set_env_override(mapping: Dict[str, Any], key: str, env_name: str, *, cast=None) -> None:
    raw = os.getenv(env_name)
    if raw is None:
        return
    mapping[key] = cast(raw) if cast else raw


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_STATE_DIR",
    "IntegrationSettings",
    "ProviderSettings",
    "SecretStore",
    "UnconfiguredStatus",
    "WebhookSettings",
    "bootstrap_settings",
    "load_settings",
    "save_settings",
    "secret_key",
]
