"""Tests for administrative binding operations."""

from unittest.mock import MagicMock

import pytest

from vcsbridge.audit import AuditLogger
from vcsbridge.errors import ProviderAPIError
from vcsbridge.github.api_client import ProviderClient, RemoteWebhook
from vcsbridge.github.auth import AuthHeaderBuilder
from vcsbridge.github.credential_cache import CredentialCacheEntry
from vcsbridge.github.models import BindingStatus, RemoteConfiguration, SyncMode
from vcsbridge.github.webhook.admin import AdminOperations
from vcsbridge.github.webhook.reconciler import Reconciler


@pytest.fixture
def client():
    return MagicMock(spec=ProviderClient)


@pytest.fixture
def auth():
    return AuthHeaderBuilder(MagicMock())


@pytest.fixture
def admin(client, auth, binding_registry, connector_registry, personal_connector, repository_binding, catalog):
    connector_registry.save(personal_connector)
    binding_registry.save(repository_binding)
    return AdminOperations(binding_registry, Reconciler(client, connector_registry, catalog), auth)


def test_synchronize_persists_status(admin, client, binding_registry):
    """Test synchronize persisting the binding status."""
    client.create_webhook.return_value = RemoteWebhook(id=5, events=["push"], url="u")

    outcome = admin.synchronize("hello-world")

    assert outcome["errors"] == []
    assert outcome["status"] == "active"
    assert outcome["data"]["remote_id"] == 5
    assert outcome["url"].endswith("?binding=hello-world")
    stored = binding_registry.get("hello-world")
    assert stored.remote_id == 5
    assert stored.status == BindingStatus.ACTIVE


def test_check_synchro_reports_errors(admin, client, binding_registry):
    """Test check-synchro reporting provider errors."""
    client.create_webhook.return_value = RemoteWebhook(id=5)
    admin.synchronize("hello-world")
    client.find_webhook.side_effect = ProviderAPIError(404, "Not Found")

    outcome = admin.check_synchro("hello-world")

    assert outcome["status"] == "error"
    assert outcome["errors"] == ["Not Found\nHint: Verify webhook name and connector owner"]
    assert binding_registry.get("hello-world").status == BindingStatus.ERROR


def test_get_info_stores_external_data(admin, client, binding_registry):
    """Test get-info storing external metadata."""
    client.get_metadata.return_value = {"description": "demo", "owner": {"login": "octocat"}}

    outcome = admin.get_info("hello-world")

    assert outcome["data"]["metadata"]["description"] == "demo"
    assert binding_registry.get("hello-world").external_data.metadata["owner"]["login"] == "octocat"


def test_stop_synchronization(admin, client, binding_registry):
    """Test stopping synchronization."""
    client.create_webhook.return_value = RemoteWebhook(id=5)
    admin.synchronize("hello-world")
    client.find_webhook.return_value = RemoteWebhook(id=5)
    client.delete_webhook.return_value = True

    outcome = admin.stop_synchronization("hello-world")

    assert outcome["status"] == "unset"
    assert outcome["data"]["deleted"] is True
    assert binding_registry.get("hello-world").remote_id is None


def test_rotate_secret_marks_manual_binding_unsynchronized(admin, client, binding_registry):
    """Test that rotating the secret of a manual binding leaves it waiting for a sync."""
    client.create_webhook.return_value = RemoteWebhook(id=5, events=["push"])
    admin.synchronize("hello-world")
    stored = binding_registry.get("hello-world")
    client.find_webhook.return_value = RemoteWebhook(id=5, events=["push"], url=stored.url)

    outcome = admin.rotate_secret("hello-world", "n3w-secret")

    assert outcome["errors"] == []
    assert outcome["status"] == "unsynchronized"
    assert binding_registry.get("hello-world").secret_value == "n3w-secret"
    client.update_webhook.assert_not_called()


def test_rotate_secret_pushes_auto_binding(admin, client, binding_registry):
    """Test that an auto binding sends its new secret to the provider straight away."""
    binding_registry.update("hello-world", lambda binding: setattr(binding, "sync_mode", SyncMode.AUTO))
    client.create_webhook.return_value = RemoteWebhook(id=7, events=["push"])
    client.get_metadata.return_value = {}

    outcome = admin.rotate_secret("hello-world")

    assert outcome["errors"] == []
    assert outcome["status"] == "active"
    stored = binding_registry.get("hello-world")
    spec = client.create_webhook.call_args.args[2]
    assert spec.secret == stored.secret_value
    assert stored.secret_value != "s3cret"


def test_set_automation_status(admin, binding_registry):
    """Test that automations can be disabled and unknown ones are reported."""
    outcome = admin.set_automation_status("hello-world", "push-log", active=False)

    assert outcome["errors"] == []
    assert not binding_registry.get("hello-world").automations[0].is_active

    missing = admin.set_automation_status("hello-world", "issue-log", active=True)
    assert missing["errors"] == ["Automation issue-log is not bound to hello-world"]


def test_remove_binding_deletes_remote_webhook(admin, client, binding_registry):
    """Test that removing a binding deletes its webhook and then the local record."""
    client.create_webhook.return_value = RemoteWebhook(id=5)
    admin.synchronize("hello-world")
    client.find_webhook.return_value = RemoteWebhook(id=5)
    client.delete_webhook.return_value = True

    outcome = admin.remove_binding("hello-world")

    assert outcome["removed"] is True
    assert outcome["data"]["deleted"] is True
    assert binding_registry.find("hello-world") is None
    assert admin.remove_binding("hello-world") == {"errors": ["Binding hello-world not found"]}


def test_unknown_binding(admin):
    """Test operations on an unknown binding."""
    assert admin.check_synchro("ghost") == {"errors": ["Binding ghost not found"]}
    assert admin.revoke_token("ghost") == {"errors": ["Binding ghost not found"]}


def test_unexpected_failure_is_reported(admin, client):
    """Test reporting of unexpected failures."""
    client.get_metadata.side_effect = RuntimeError("boom")

    outcome = admin.get_info("hello-world")

    assert outcome == {"errors": ["Unexpected error: boom"]}


def test_revoke_token(admin, auth):
    """Test revoking a cached token."""
    auth.cache.set("conn-pat", CredentialCacheEntry(installation_id=1, access_token="t"))

    outcome = admin.revoke_token("hello-world")

    assert outcome == {"errors": [], "connector_id": "conn-pat", "revoked": True}
    assert auth.cache.get("conn-pat") is None


def test_revoke_token_without_connector(admin, binding_registry):
    """Test revoking a token for a binding without connector."""
    binding_registry.update("hello-world", lambda binding: setattr(binding, "connector_id", None))

    assert admin.revoke_token("hello-world")["errors"] == ["Binding hello-world has no connector"]


def test_outcomes_are_audited(
    client, auth, binding_registry, connector_registry, personal_connector, repository_binding, catalog, tmp_path
):
    """Test audit events for administrative operations."""
    connector_registry.save(personal_connector)
    binding_registry.save(repository_binding)
    audit = AuditLogger(tmp_path / "audit")
    admin = AdminOperations(
        binding_registry, Reconciler(client, connector_registry, catalog), auth, audit_logger=audit
    )
    client.find_webhook.side_effect = ProviderAPIError(401, "Bad credentials")
    binding_registry.update("hello-world", lambda binding: setattr(binding, "configuration", RemoteConfiguration(remote_id=1)))

    admin.check_synchro("hello-world")
    admin.revoke_token("hello-world")

    events = list(audit.iter_events())
    assert [(event["action"], event["status"]) for event in events] == [
        ("check_synchro", "failed"),
        ("revoke_token", "success"),
    ]
    assert audit.verify()
