"""Tests for error taxonomy and provider hints."""

from vcsbridge.errors import (
    BindingNotFoundError,
    ConfigurationError,
    MissingSignature,
    ProviderAPIError,
    SignatureError,
    VCSBridgeError,
)
from vcsbridge.errors.user_messages import (
    format_error_for_cli,
    format_provider_error,
    get_recovery_suggestion,
    get_user_message,
    provider_hint,
)


def test_error_defaults_and_to_dict():
    """Test error defaults and serialization."""
    error = ConfigurationError(details={"binding_id": "b1"})

    assert error.message == "Integration configuration is incomplete"
    assert error.code == "CONFIGURATION_ERROR"
    assert error.recoverable is False
    payload = error.to_dict()
    assert payload["details"] == {"binding_id": "b1"}
    assert payload["user_message"] == "The integration configuration is incomplete."


def test_signature_errors_share_base():
    """Test the signature error hierarchy."""
    error = MissingSignature()
    assert isinstance(error, SignatureError)
    assert isinstance(error, VCSBridgeError)
    assert error.code == "MISSING_SIGNATURE"


def test_provider_hints_by_message():
    """Test provider hints by message."""
    assert provider_hint("Not Found") == "Verify webhook name and connector owner"
    assert provider_hint("Bad credentials") == "Verify connector authentication"
    assert provider_hint("Integration not found") == "Verify connector app id"
    assert provider_hint("A JSON web token could not be decoded") == "Verify connector app private key"


def test_provider_hint_falls_back_to_status():
    """Test provider hint status fallback."""
    assert provider_hint("Something odd", status=401) == "Verify connector authentication"
    assert provider_hint("Something odd", status=500) is None
    assert provider_hint(None) is None


def test_format_provider_error_lists_sub_errors():
    """Test formatting provider sub-errors."""
    text = format_provider_error(
        "Validation Failed",
        [{"resource": "Hook", "code": "custom", "message": "Hook already exists on this repository"}],
        status=422,
    )

    assert text.splitlines() == [
        "Validation Failed",
        "- Resource: Hook, Code: custom, Message: Hook already exists on this repository",
        "Hint: Refer to the above message(s)",
    ]


def test_provider_api_error_user_message_includes_hint():
    """Test provider error user messages."""
    error = ProviderAPIError(404, "Not Found", documentation_url="https://docs.github.com/rest")

    assert error.status == 404
    assert error.details["documentation_url"] == "https://docs.github.com/rest"
    assert error.hint == "Verify webhook name and connector owner"
    assert error.user_message == "Not Found\nHint: Verify webhook name and connector owner"


def test_lookup_by_code_string():
    """Test message lookup by code."""
    assert get_user_message("BINDING_NOT_FOUND") == "The webhook binding does not exist."
    assert get_recovery_suggestion("NOPE") == "Retry the operation. Report if the issue continues."


def test_format_error_for_cli_hides_secrets():
    """Test CLI error formatting."""
    error = BindingNotFoundError(details={"id": "b1", "secret": "hidden"})
    text = format_error_for_cli(error)

    assert text.startswith("Error [BINDING_NOT_FOUND]: The webhook binding does not exist.")
    assert "Suggestion: Verify the binding identifier." in text
    assert "id: b1" in text
    assert "hidden" not in text
