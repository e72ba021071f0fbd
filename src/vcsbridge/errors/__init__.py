"""Centralized error definitions for vcsbridge.

Every failure the integration can surface is a subclass of
:class:`VCSBridgeError` carrying a stable ``code`` so that the CLI, the
webhook server and the administrative operations can render it without
special-casing.

Usage:
    from vcsbridge.errors import ProviderAPIError, format_error_for_cli

    try:
        client.get_webhook(connector, binding, hook_id)
    except ProviderAPIError as exc:
        print(format_error_for_cli(exc))
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from vcsbridge.errors.user_messages import (
    format_error_for_cli,
    format_provider_error,
    get_recovery_suggestion,
    get_user_message,
    provider_hint,
)


# =============================================================================
# Base Error
# =============================================================================


class VCSBridgeError(Exception):
    """Base exception for all vcsbridge errors.

    Attributes:
        code: Error code for categorization
        user_message: User-friendly message (optional override)
        recoverable: Whether retrying later may succeed
        details: Additional error details for debugging
    """

    code: str = "VCSBRIDGE_ERROR"
    default_message: str = "An unexpected error occurred"
    recoverable: bool = True

    def __init__(
        self,
        message: str | None = None,
        *,
        user_message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.message = message or self.default_message
        self._user_message = user_message
        self.details = details or {}
        super().__init__(self.message)

    @property
    def user_message(self) -> str:
        """Get user-friendly message."""
        if self._user_message:
            return self._user_message
        return get_user_message(self)

    @property
    def recovery_suggestion(self) -> str:
        return get_recovery_suggestion(self)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "message": self.message,
            "user_message": self.user_message,
            "recoverable": self.recoverable,
            "details": self.details,
        }


# =============================================================================
# Delivery Errors
# =============================================================================


class SignatureError(VCSBridgeError):
    """Inbound delivery signature could not be verified."""

    code = "SIGNATURE_ERROR"
    default_message = "Webhook signature verification failed"
    recoverable = False


class MissingSignature(SignatureError):
    code = "MISSING_SIGNATURE"
    default_message = "Webhook signature header is missing"


class UnsupportedAlgorithm(SignatureError):
    code = "UNSUPPORTED_ALGORITHM"
    default_message = "Webhook signature algorithm is not supported"


class SignatureMismatch(SignatureError):
    code = "SIGNATURE_MISMATCH"
    default_message = "Webhook signature does not match payload"


class DeliveryRequestError(VCSBridgeError):
    """Inbound delivery is missing required headers or has an unreadable body."""

    code = "DELIVERY_REQUEST_ERROR"
    default_message = "Webhook delivery request is invalid"
    recoverable = False


# =============================================================================
# Provider Errors
# =============================================================================


class ProviderAPIError(VCSBridgeError):
    """Non-2xx response from the provider REST API.

    Attributes:
        status: HTTP status code returned by the provider
        errors: Structured sub-errors (``resource``, ``code``, ``message``)
        documentation_url: Provider documentation link, when supplied
    """

    code = "PROVIDER_API_ERROR"
    default_message = "Provider API request failed"

    def __init__(
        self,
        status: int,
        message: str | None = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        *,
        documentation_url: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.status = status
        self.errors = list(errors or [])
        self.documentation_url = documentation_url
        merged = {"status": status}
        if documentation_url:
            merged["documentation_url"] = documentation_url
        merged.update(details or {})
        super().__init__(message, details=merged)

    @property
    def user_message(self) -> str:
        return format_provider_error(self.message, self.errors, status=self.status)

    @property
    def hint(self) -> str | None:
        return provider_hint(self.message, status=self.status)


class ProviderConnectionError(VCSBridgeError):
    """The provider could not be reached at all."""

    code = "PROVIDER_CONNECTION_ERROR"
    default_message = "Cannot reach the provider API"


# =============================================================================
# Local State Errors
# =============================================================================


class ConfigurationError(VCSBridgeError):
    """A required local field is missing or invalid."""

    code = "CONFIGURATION_ERROR"
    default_message = "Integration configuration is incomplete"
    recoverable = False


class InvalidScope(VCSBridgeError):
    """Automation scope path does not resolve to an array."""

    code = "INVALID_SCOPE"
    default_message = "Automation scope does not resolve to a list"
    recoverable = False


class BindingNotFoundError(VCSBridgeError):
    code = "BINDING_NOT_FOUND"
    default_message = "Webhook binding not found"
    recoverable = False


class ConnectorNotFoundError(VCSBridgeError):
    code = "CONNECTOR_NOT_FOUND"
    default_message = "Connector not found"
    recoverable = False


__all__ = [
    "VCSBridgeError",
    "SignatureError",
    "MissingSignature",
    "UnsupportedAlgorithm",
    "SignatureMismatch",
    "DeliveryRequestError",
    "ProviderAPIError",
    "ProviderConnectionError",
    "ConfigurationError",
    "InvalidScope",
    "BindingNotFoundError",
    "ConnectorNotFoundError",
    "format_error_for_cli",
    "format_provider_error",
    "provider_hint",
]
