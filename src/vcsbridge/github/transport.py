"""Low-level HTTP transport for the GitHub REST API.

The transport knows the API base URL, the version header and the retry
policy. It does not know how to authenticate; callers pass the headers
produced by :class:`~vcsbridge.github.auth.AuthHeaderBuilder`.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import requests

from vcsbridge.configuration.settings import ProviderSettings
from vcsbridge.errors import ProviderAPIError, ProviderConnectionError


logger = logging.getLogger(__name__)

ACCEPT_HEADER = "application/vnd.github+json"
DEFAULT_API_BASE_URL = "https://api.github.com"
DEFAULT_API_VERSION = "2022-11-28"

# Methods safe to repeat after a 5xx or a dropped connection.
_RETRYABLE_METHODS = frozenset({"GET", "PATCH", "DELETE"})


@dataclass
class ProviderTransport:
    """HTTP session wrapper with retry and error decoding.

    Example:
        >>> transport = ProviderTransport()
        >>> transport.request("GET", "/repos/octo/hello", headers={"Authorization": "Bearer ..."})
    """

    api_base_url: str = DEFAULT_API_BASE_URL
    api_version: str = DEFAULT_API_VERSION
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    session: requests.Session = field(default_factory=requests.Session)

    @classmethod
    def from_settings(cls, settings: ProviderSettings, **kwargs: Any) -> "ProviderTransport":
        return cls(
            api_base_url=settings.api_base_url,
            api_version=settings.api_version,
            timeout=settings.request_timeout,
            **kwargs,
        )

    def base_headers(self) -> Dict[str, str]:
        return {"Accept": ACCEPT_HEADER, "X-GitHub-Api-Version": self.api_version}

    def request(
        self,
        method: str,
        path: str,
        *,
        headers: Dict[str, str],
        data: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """Send a request and decode the JSON response.

        Args:
            method: HTTP method
            path: Resource path starting with ``/``
            headers: Complete request headers
            data: JSON body

        Returns:
            Decoded JSON body, or ``None`` for empty responses (204)

        Raises:
            ProviderAPIError: On any non-2xx response
            ProviderConnectionError: When the provider cannot be reached
        """
        method = method.upper()
        url = f"{self.api_base_url.rstrip('/')}{path}"
        attempts = self.max_retries if method in _RETRYABLE_METHODS else 1
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            try:
                response = self.session.request(
                    method=method,
                    url=url,
                    headers=headers,
                    json=data,
                    timeout=self.timeout,
                )
            except requests.RequestException as exc:
                last_error = exc
                logger.warning(
                    "Provider request failed",
                    extra={"method": method, "path": path, "attempt": attempt + 1, "error": str(exc)},
                )
                if attempt < attempts - 1:
                    time.sleep(self.retry_delay * (2**attempt))
                    continue
                break

            if response.status_code >= 500 and attempt < attempts - 1:
                time.sleep(self.retry_delay * (2**attempt))
                continue

            if response.status_code >= 400:
                raise _api_error(response)

            if response.status_code == 204 or not response.content:
                return None
            try:
                return response.json()
            except ValueError as exc:
                raise ProviderAPIError(
                    response.status_code, f"Undecodable provider response: {exc}"
                ) from exc

        raise ProviderConnectionError(
            f"{method} {path} failed after {attempts} attempt(s): {last_error}",
            details={"method": method, "path": path},
        )


def _api_error(response: requests.Response) -> ProviderAPIError:
    message = response.reason or f"HTTP {response.status_code}"
    errors = []
    documentation_url = None
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        message = body.get("message") or message
        documentation_url = body.get("documentation_url")
        for item in body.get("errors") or []:
            if isinstance(item, dict):
                errors.append(item)
            else:
                errors.append({"message": str(item)})
    return ProviderAPIError(
        response.status_code, message, errors, documentation_url=documentation_url
    )


__all__ = [
    "ACCEPT_HEADER",
    "DEFAULT_API_BASE_URL",
    "DEFAULT_API_VERSION",
    "ProviderTransport",
]
