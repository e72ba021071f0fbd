"""Data model for connectors, webhook bindings and their targets.

A *connector* is an authentication profile. A *binding* is the local
declaration of a repository or organization webhook to keep synchronized
with the provider. Targets are a closed tagged variant so API paths are
resolved once, at the client boundary.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, SecretStr, field_validator

from vcsbridge.automation.models import AutomationBinding


# Ids name files in the registries and appear in callback URLs.
RECORD_ID_PATTERN = r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$"


def _ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ---------------------------------------------------------------------------
# Connectors
# ---------------------------------------------------------------------------


class AuthMode(str, Enum):
    """How requests made on behalf of a connector are authenticated."""

    NONE = "none"
    PERSONAL = "personal"
    APP_USER = "app_user"
    APP_REPOSITORY = "app_repository"
    APP_ORGANIZATION = "app_organization"

    @property
    def is_app(self) -> bool:
        return self in (AuthMode.APP_USER, AuthMode.APP_REPOSITORY, AuthMode.APP_ORGANIZATION)


class Connector(BaseModel):
    """Authentication profile shared by one or more bindings."""

    id: str = Field(..., pattern=RECORD_ID_PATTERN, description="Connector identifier, cache key for credentials")
    name: str = Field(..., description="Display name")
    mode: AuthMode = Field(default=AuthMode.PERSONAL)
    personal_access_token: Optional[SecretStr] = Field(default=None)
    app_id: Optional[str] = Field(default=None, description="GitHub App ID (JWT issuer)")
    app_private_key: Optional[SecretStr] = Field(default=None, description="PEM encoded RSA key")
    app_user: Optional[str] = Field(default=None, description="User owning the installation")
    app_repository_owner: Optional[str] = Field(default=None)
    app_repository_name: Optional[str] = Field(default=None)
    app_organization: Optional[str] = Field(default=None)

    @field_validator("app_id", mode="before")
    def _coerce_app_id(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)


# ---------------------------------------------------------------------------
# Targets
# ---------------------------------------------------------------------------


class TargetType(str, Enum):
    REPOSITORY = "repository"
    ORGANIZATION = "organization"


class RepositoryTarget(BaseModel):
    """A repository webhook target."""

    type: Literal["repository"] = "repository"
    owner: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)

    @property
    def target_type(self) -> TargetType:
        return TargetType.REPOSITORY

    @property
    def display_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def owner_context(self) -> str:
        return self.owner

    def api_path(self) -> str:
        return f"/repos/{self.owner}/{self.name}"

    def hooks_path(self, hook_id: Optional[int] = None) -> str:
        path = f"{self.api_path()}/hooks"
        return path if hook_id is None else f"{path}/{hook_id}"

    def installation_path(self) -> str:
        return f"{self.api_path()}/installation"


class OrganizationTarget(BaseModel):
    """An organization-wide webhook target."""

    type: Literal["organization"] = "organization"
    login: str = Field(..., min_length=1)

    @property
    def target_type(self) -> TargetType:
        return TargetType.ORGANIZATION

    @property
    def display_name(self) -> str:
        return self.login

    def owner_context(self) -> str:
        return self.login

    def api_path(self) -> str:
        return f"/orgs/{self.login}"

    def hooks_path(self, hook_id: Optional[int] = None) -> str:
        path = f"{self.api_path()}/hooks"
        return path if hook_id is None else f"{path}/{hook_id}"

    def installation_path(self) -> str:
        return f"{self.api_path()}/installation"


Target = Annotated[Union[RepositoryTarget, OrganizationTarget], Field(discriminator="type")]


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


class SyncMode(str, Enum):
    NONE = "none"
    MANUAL = "manual"
    AUTO = "auto"


class BindingStatus(str, Enum):
    UNSET = "unset"
    UNSYNCHRONIZED = "unsynchronized"
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"


class RemoteConfiguration(BaseModel):
    """Cached identity of the provider-side webhook."""

    remote_id: int = Field(..., description="Provider webhook id")
    last_synced_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("last_synced_at")
    def _validate_synced_at(cls, value: datetime) -> datetime:
        return _ensure_utc(value)


class ExternalData(BaseModel):
    """Denormalized provider metadata shown next to a binding."""

    refreshed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("refreshed_at")
    def _validate_refreshed_at(cls, value: datetime) -> datetime:
        return _ensure_utc(value)


class EventLogEntry(BaseModel):
    """One handled delivery, as shown in the binding history."""

    event_type: str
    received_at: datetime
    sender: Optional[str] = None
    triggered_count: int = 0

    @field_validator("received_at")
    def _validate_received_at(cls, value: datetime) -> datetime:
        return _ensure_utc(value)

    def render(self) -> str:
        when = self.received_at.strftime("%Y-%m-%d %H:%M:%S")
        line = f"Event {self.event_type} at {when}"
        if self.sender:
            line += f" by {self.sender}"
        return f"{line}\n{self.triggered_count} executed automation(s)."


class Binding(BaseModel):
    """Local declaration of a provider webhook to keep synchronized."""

    id: str = Field(..., pattern=RECORD_ID_PATTERN, description="Binding identifier, part of the callback URL")
    name: str = Field(..., description="Display name")
    target: Target
    connector_id: Optional[str] = Field(default=None)
    sync_mode: SyncMode = Field(default=SyncMode.MANUAL)
    secret: Optional[SecretStr] = Field(default=None, description="Shared HMAC secret")
    status: BindingStatus = Field(default=BindingStatus.UNSET)
    url: Optional[str] = Field(default=None, description="Last computed callback URL")
    configuration: Optional[RemoteConfiguration] = None
    external_data: Optional[ExternalData] = None
    automations: List[AutomationBinding] = Field(default_factory=list)
    event_count: int = Field(default=0, ge=0)
    last_event_at: Optional[datetime] = None
    event_log: List[EventLogEntry] = Field(default_factory=list)

    @field_validator("last_event_at")
    def _validate_last_event(cls, value: Optional[datetime]) -> Optional[datetime]:
        return _ensure_utc(value)

    @property
    def secret_value(self) -> Optional[str]:
        if self.secret is None:
            return None
        return self.secret.get_secret_value() or None

    @property
    def remote_id(self) -> Optional[int]:
        return self.configuration.remote_id if self.configuration else None

    @property
    def is_organization(self) -> bool:
        return self.target.target_type == TargetType.ORGANIZATION


__all__ = [
    "AuthMode",
    "Binding",
    "BindingStatus",
    "Connector",
    "EventLogEntry",
    "ExternalData",
    "OrganizationTarget",
    "RECORD_ID_PATTERN",
    "RemoteConfiguration",
    "RepositoryTarget",
    "SyncMode",
    "Target",
    "TargetType",
]
