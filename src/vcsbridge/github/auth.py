"""Authorization headers for personal tokens and GitHub App installations.

App modes use a two-step exchange: a short-lived RS256 JWT identifies the
App itself, and is traded for an installation access token that is cached
per connector until it expires. The installation id is resolved once and
kept in the cache entry across token renewals.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

import jwt

from vcsbridge.errors import ConfigurationError
from vcsbridge.github.credential_cache import (
    CredentialCache,
    CredentialCacheEntry,
    InMemoryCredentialCache,
)
from vcsbridge.github.models import AuthMode, Connector, RepositoryTarget, Target
from vcsbridge.github.transport import ProviderTransport


logger = logging.getLogger(__name__)

JWT_ALGORITHM = "RS256"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthHeaderBuilder:
    """Produce request headers for a connector.

    Args:
        transport: Transport used for installation lookup and token issuance
        cache: Credential cache shared by every consumer in the process
        jwt_lifetime: Seconds the App JWT stays valid
        jwt_backdate: Seconds ``iat`` is moved into the past for clock drift
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        transport: ProviderTransport,
        cache: Optional[CredentialCache] = None,
        *,
        jwt_lifetime: int = 300,
        jwt_backdate: int = 60,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.transport = transport
        self.cache = cache if cache is not None else InMemoryCredentialCache()
        self.jwt_lifetime = jwt_lifetime
        self.jwt_backdate = jwt_backdate
        self.clock = clock

    def build_headers(self, connector: Connector, target: Optional[Target] = None) -> Dict[str, str]:
        """Return ``Accept``, ``Authorization`` and API version headers.

        Raises:
            ConfigurationError: If the connector lacks the fields its mode needs
            ProviderAPIError: If installation lookup or token issuance fails
        """
        headers = self.transport.base_headers()
        token = self.bearer_token(connector, target)
        if token is not None:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def bearer_token(self, connector: Connector, target: Optional[Target] = None) -> Optional[str]:
        if connector.mode == AuthMode.NONE:
            return None
        if connector.mode == AuthMode.PERSONAL:
            if connector.personal_access_token is None:
                raise ConfigurationError(
                    f"Connector {connector.id} has no personal access token",
                    details={"connector_id": connector.id},
                )
            return connector.personal_access_token.get_secret_value()
        return self.installation_token(connector, target)

    def app_headers(self, connector: Connector) -> Dict[str, str]:
        headers = self.transport.base_headers()
        headers["Authorization"] = f"Bearer {self.create_app_jwt(connector)}"
        return headers

    def create_app_jwt(self, connector: Connector) -> str:
        """Sign a JWT authenticating as the App (``iss`` = App ID)."""
        if not connector.app_id or connector.app_private_key is None:
            raise ConfigurationError(
                f"Connector {connector.id} needs an App ID and private key",
                details={"connector_id": connector.id},
            )
        issued = int(self.clock().timestamp())
        claims = {
            "iat": issued - self.jwt_backdate,
            "exp": issued + self.jwt_lifetime,
            "iss": connector.app_id,
        }
        try:
            return jwt.encode(
                claims, connector.app_private_key.get_secret_value(), algorithm=JWT_ALGORITHM
            )
        except (ValueError, TypeError, jwt.PyJWTError) as exc:
            raise ConfigurationError(
                f"Connector {connector.id} private key cannot sign an App token",
                details={"connector_id": connector.id, "error": type(exc).__name__},
            ) from exc

    def installation_token(self, connector: Connector, target: Optional[Target] = None) -> str:
        """Return a valid installation token, issuing one when needed."""
        entry = self.cache.get(connector.id)
        if entry is not None and entry.is_valid(self.clock()):
            return entry.access_token.get_secret_value()

        app_headers = self.app_headers(connector)
        if entry is not None:
            installation_id = entry.installation_id
        else:
            installation_id = self.resolve_installation(connector, target, app_headers)

        data = self.transport.request(
            "POST", f"/app/installations/{installation_id}/access_tokens", headers=app_headers
        )
        fresh = CredentialCacheEntry(
            installation_id=installation_id,
            access_token=data["token"],
            expires_at=data.get("expires_at") or self.clock() + timedelta(hours=1),
        )
        self.cache.set(connector.id, fresh)
        logger.info(
            "Issued installation token",
            extra={
                "connector_id": connector.id,
                "installation_id": installation_id,
                "expires_at": fresh.expires_at.isoformat(),
            },
        )
        return fresh.access_token.get_secret_value()

    def resolve_installation(
        self,
        connector: Connector,
        target: Optional[Target],
        app_headers: Optional[Dict[str, str]] = None,
    ) -> int:
        path = installation_path(connector, target)
        data = self.transport.request("GET", path, headers=app_headers or self.app_headers(connector))
        return int(data["id"])

    def revoke(self, connector_id: str) -> None:
        """Forget cached credentials; the next call re-issues from scratch."""
        self.cache.delete(connector_id)
        logger.info("Revoked cached installation token", extra={"connector_id": connector_id})


def installation_path(connector: Connector, target: Optional[Target] = None) -> str:
    """Resolve the installation lookup path for an App connector.

    Connector fields win; the binding target fills in whatever the connector
    leaves blank.
    """
    mode = connector.mode
    if mode == AuthMode.APP_USER:
        user = connector.app_user or (target.owner_context() if target is not None else None)
        if user:
            return f"/users/{user}/installation"
    elif mode == AuthMode.APP_REPOSITORY:
        owner, name = connector.app_repository_owner, connector.app_repository_name
        if not (owner and name) and isinstance(target, RepositoryTarget):
            owner, name = target.owner, target.name
        if owner and name:
            return f"/repos/{owner}/{name}/installation"
    elif mode == AuthMode.APP_ORGANIZATION:
        org = connector.app_organization or (target.owner_context() if target is not None else None)
        if org:
            return f"/orgs/{org}/installation"
    else:
        raise ConfigurationError(
            f"Connector {connector.id} does not use App authentication",
            details={"connector_id": connector.id, "mode": mode.value},
        )
    raise ConfigurationError(
        f"Connector {connector.id} has no installation target for mode {mode.value}",
        details={"connector_id": connector.id, "mode": mode.value},
    )


__all__ = ["AuthHeaderBuilder", "JWT_ALGORITHM", "installation_path"]
