"""User-facing error messages and provider hints.

The provider hint table is keyed by the verbatim ``message`` field GitHub
returns, so operators see a short pointer to the connector or binding field
most likely at fault.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Mapping, Optional


# =============================================================================
# Error Message Catalog
# =============================================================================

ERROR_MESSAGES: dict[str, str] = {
    # Delivery errors
    "SIGNATURE_ERROR": "The webhook delivery signature could not be verified.",
    "MISSING_SIGNATURE": "The webhook delivery carried no signature header.",
    "UNSUPPORTED_ALGORITHM": "The webhook delivery was signed with an unsupported algorithm.",
    "SIGNATURE_MISMATCH": "The webhook delivery signature does not match its payload.",
    "DELIVERY_REQUEST_ERROR": "The webhook delivery request is malformed.",
    # Provider errors
    "PROVIDER_API_ERROR": "The provider rejected the request.",
    "PROVIDER_CONNECTION_ERROR": "The provider API could not be reached.",
    # Local state errors
    "CONFIGURATION_ERROR": "The integration configuration is incomplete.",
    "INVALID_SCOPE": "An automation scope does not point at a list in the payload.",
    "BINDING_NOT_FOUND": "The webhook binding does not exist.",
    "CONNECTOR_NOT_FOUND": "The connector does not exist.",
    # Generic
    "VCSBRIDGE_ERROR": "An unexpected error occurred.",
    "UNKNOWN_ERROR": "Something went wrong. Please try again.",
}


# =============================================================================
# Recovery Suggestions
# =============================================================================

RECOVERY_SUGGESTIONS: dict[str, str] = {
    "SIGNATURE_ERROR": "Make sure the webhook secret matches on both sides.",
    "MISSING_SIGNATURE": "Configure the same secret on the provider webhook.",
    "UNSUPPORTED_ALGORITHM": "Use sha256 signatures (X-Hub-Signature-256).",
    "SIGNATURE_MISMATCH": "Rotate the secret and synchronize the webhook: vcsbridge github sync <id>",
    "DELIVERY_REQUEST_ERROR": "Set the webhook content type to application/json.",
    "PROVIDER_API_ERROR": "Check the provider message and hint above.",
    "PROVIDER_CONNECTION_ERROR": "Check network access to the provider API base URL.",
    "CONFIGURATION_ERROR": "Check config: vcsbridge config show",
    "INVALID_SCOPE": "Fix the automation scope path or remove it.",
    "BINDING_NOT_FOUND": "Verify the binding identifier.",
    "CONNECTOR_NOT_FOUND": "Attach an existing connector to the binding.",
    "VCSBRIDGE_ERROR": "If this persists, please report the issue.",
    "UNKNOWN_ERROR": "Retry the operation. Report if the issue continues.",
}


# =============================================================================
# Provider Hints
# =============================================================================

PROVIDER_HINTS: dict[str, str] = {
    "Not Found": "Verify webhook name and connector owner",
    "Bad credentials": "Verify connector authentication",
    "Validation Failed": "Refer to the above message(s)",
    "Integration not found": "Verify connector app id",
    "A JSON web token could not be decoded": "Verify connector app private key",
}

# Used when the provider body carried no recognised message.
STATUS_HINTS: dict[int, str] = {
    401: PROVIDER_HINTS["Bad credentials"],
    404: PROVIDER_HINTS["Not Found"],
    422: PROVIDER_HINTS["Validation Failed"],
}


# =============================================================================
# Helper Functions
# =============================================================================


def _error_code(error: Any) -> str:
    if hasattr(error, "code"):
        return error.code
    if isinstance(error, str):
        return error
    return type(error).__name__.upper()


def get_user_message(error: Any) -> str:
    """Get user-friendly message for an error or error code."""
    return ERROR_MESSAGES.get(_error_code(error), ERROR_MESSAGES["UNKNOWN_ERROR"])


def get_recovery_suggestion(error: Any) -> str:
    return RECOVERY_SUGGESTIONS.get(_error_code(error), RECOVERY_SUGGESTIONS["UNKNOWN_ERROR"])


def provider_hint(message: Optional[str], *, status: Optional[int] = None) -> Optional[str]:
    """Look up the operator hint for a provider error message.

    Args:
        message: Verbatim ``message`` field of the provider response
        status: HTTP status, used when the message is unknown

    Returns:
        Hint text, or ``None`` when nothing applies
    """
    if message and message in PROVIDER_HINTS:
        return PROVIDER_HINTS[message]
    if status is not None:
        return STATUS_HINTS.get(status)
    return None


def format_provider_error(
    message: Optional[str],
    errors: Iterable[Mapping[str, Any]] = (),
    *,
    status: Optional[int] = None,
) -> str:
    """Render a provider error with its sub-errors and hint.

    Example:
        >>> format_provider_error("Not Found", status=404)
        'Not Found\\nHint: Verify webhook name and connector owner'
    """
    lines = [message or "Provider error"]
    for sub_error in errors:
        lines.append(
            "- Resource: {resource}, Code: {code}, Message: {message}".format(
                resource=sub_error.get("resource", ""),
                code=sub_error.get("code", ""),
                message=sub_error.get("message", ""),
            )
        )
    hint = provider_hint(message, status=status)
    if hint:
        lines.append(f"Hint: {hint}")
    return "\n".join(lines)


def format_error_for_cli(error: Any) -> str:
    """Format error for CLI output.

    Args:
        error: The error to format

    Returns:
        CLI-formatted error message
    """
    code = getattr(error, "code", "ERROR")
    message = getattr(error, "user_message", None) or get_user_message(error)
    lines = [f"Error [{code}]: {message}", "", f"Suggestion: {get_recovery_suggestion(error)}"]

    details: Dict[str, Any] = getattr(error, "details", None) or {}
    if details:
        lines.append("")
        lines.append("Details:")
        for key, value in details.items():
            if key not in ("secret", "token", "private_key"):
                lines.append(f"  {key}: {value}")

    return "\n".join(lines)


__all__ = [
    "ERROR_MESSAGES",
    "RECOVERY_SUGGESTIONS",
    "PROVIDER_HINTS",
    "STATUS_HINTS",
    "get_user_message",
    "get_recovery_suggestion",
    "provider_hint",
    "format_provider_error",
    "format_error_for_cli",
]
