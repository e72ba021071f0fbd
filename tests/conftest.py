"""Shared fixtures for vcsbridge tests."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from unittest.mock import MagicMock

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from vcsbridge.automation.models import (
    Automation,
    AutomationBinding,
    AutomationCatalog,
    AutomationHandler,
)
from vcsbridge.configuration.settings import SecretStore
from vcsbridge.github.models import AuthMode, Binding, Connector, RepositoryTarget, SyncMode
from vcsbridge.github.registry import BindingRegistry, ConnectorRegistry


# ---------------------------------------------------------------------------
# Mock keyring
# ---------------------------------------------------------------------------


class MockKeyring:
    """Mock keyring for testing credential storage."""

    def __init__(self):
        self.storage = {}

    def set_password(self, service: str, username: str, password: str):
        self.storage[f"{service}:{username}"] = password

    def get_password(self, service: str, username: str) -> Optional[str]:
        return self.storage.get(f"{service}:{username}")

    def delete_password(self, service: str, username: str):
        self.storage.pop(f"{service}:{username}", None)


@pytest.fixture
def mock_keyring():
    return MockKeyring()


@pytest.fixture
def secret_store(mock_keyring):
    return SecretStore(service_name="vcsbridge-test", keyring_module=mock_keyring)


# ---------------------------------------------------------------------------
# Registries
# ---------------------------------------------------------------------------


@pytest.fixture
def connector_registry(tmp_path: Path, secret_store) -> ConnectorRegistry:
    return ConnectorRegistry(tmp_path / "connectors", secret_store)


@pytest.fixture
def binding_registry(tmp_path: Path, secret_store) -> BindingRegistry:
    return BindingRegistry(tmp_path / "bindings", secret_store)


# ---------------------------------------------------------------------------
# Keys and clocks
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def rsa_private_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_private_key) -> str:
    return rsa_private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")


@pytest.fixture(scope="session")
def public_key_pem(rsa_private_key) -> str:
    return rsa_private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("utf-8")


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


# ---------------------------------------------------------------------------
# Connectors and bindings
# ---------------------------------------------------------------------------


@pytest.fixture
def personal_connector() -> Connector:
    return Connector(
        id="conn-pat",
        name="Personal token",
        mode=AuthMode.PERSONAL,
        personal_access_token="ghp_test_token",
    )


@pytest.fixture
def app_connector(private_key_pem) -> Connector:
    return Connector(
        id="conn-app",
        name="Octo App",
        mode=AuthMode.APP_REPOSITORY,
        app_id="12345",
        app_private_key=private_key_pem,
        app_repository_owner="octocat",
        app_repository_name="Hello-World",
    )


@pytest.fixture
def repository_binding() -> Binding:
    return Binding(
        id="hello-world",
        name="Hello World",
        target=RepositoryTarget(owner="octocat", name="Hello-World"),
        connector_id="conn-pat",
        sync_mode=SyncMode.MANUAL,
        secret="s3cret",
        automations=[AutomationBinding(automation_id="push-log")],
    )


# ---------------------------------------------------------------------------
# Automations
# ---------------------------------------------------------------------------


class RecordingHandler(AutomationHandler):
    """Handler recording every call it receives."""

    def __init__(self, fail: bool = False):
        self.events: List[Dict[str, Any]] = []
        self.scope_ends: List[Dict[str, Any]] = []
        self.fail = fail

    def handle_event(self, event_type, payload, scope_data, accumulator):
        self.events.append({"event_type": event_type, "scope_data": scope_data})
        accumulator["seen"] = accumulator.get("seen", 0) + 1
        if self.fail:
            raise RuntimeError("handler exploded")

    def handle_scope_end(self, event_type, payload, accumulator):
        self.scope_ends.append(dict(accumulator))


@pytest.fixture
def recording_handler():
    return RecordingHandler()


@pytest.fixture
def catalog(recording_handler) -> AutomationCatalog:
    return AutomationCatalog.from_automations(
        [
            Automation(id="push-log", name="Push log", events=["push"], handler=recording_handler),
            Automation(
                id="commit-log",
                name="Commit log",
                events=["push"],
                handler=RecordingHandler(),
                scope="commits",
            ),
            Automation(
                id="issue-log",
                name="Issue log",
                events=["issues", "issue_comment"],
                handler=RecordingHandler(),
            ),
        ]
    )


# ---------------------------------------------------------------------------
# Sample payloads
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_push_payload() -> Dict[str, Any]:
    return {
        "ref": "refs/heads/main",
        "repository": {
            "name": "Hello-World",
            "full_name": "octocat/Hello-World",
            "html_url": "https://github.com/octocat/Hello-World",
        },
        "sender": {
            "login": "octocat",
            "html_url": "https://github.com/octocat",
            "avatar_url": "https://avatars.githubusercontent.com/u/1",
        },
        "commits": [
            {"id": "abc123", "message": "Fix bug", "url": "https://github.com/octocat/Hello-World/commit/abc123"},
            {"id": "def456", "message": "Add feature", "url": "https://github.com/octocat/Hello-World/commit/def456"},
        ],
    }


# ---------------------------------------------------------------------------
# Fake HTTP
# ---------------------------------------------------------------------------


def _make_response(status: int = 200, body: Any = None, reason: str = "") -> MagicMock:
    """Build a ``requests.Response`` look-alike."""
    response = MagicMock()
    response.status_code = status
    response.reason = reason
    if body is None:
        response.content = b""
        response.json.side_effect = ValueError("No JSON")
    else:
        response.content = json.dumps(body).encode("utf-8")
        response.json.return_value = body
    return response


@pytest.fixture
def fake_session():
    return MagicMock()


@pytest.fixture
def response_factory():
    return _make_response


@pytest.fixture
def handler_factory():
    return RecordingHandler
