"""Tests for credential caching and authorization headers."""

import os
import sys
from datetime import timedelta
from unittest.mock import MagicMock

import jwt
import pytest

from vcsbridge.errors import ConfigurationError
from vcsbridge.github.auth import AuthHeaderBuilder, installation_path
from vcsbridge.github.credential_cache import (
    CredentialCacheEntry,
    FileCredentialCache,
    InMemoryCredentialCache,
)
from vcsbridge.github.models import (
    AuthMode,
    Connector,
    OrganizationTarget,
    RepositoryTarget,
)
from vcsbridge.github.transport import ProviderTransport


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


def test_entry_validity_is_strict(clock):
    """Test cache entry expiry."""
    entry = CredentialCacheEntry(installation_id=1, access_token="t", expires_at=clock.now)

    assert not entry.is_valid(clock.now)
    assert entry.is_valid(clock.now - timedelta(seconds=1))
    assert not CredentialCacheEntry(installation_id=1).is_valid(clock.now)


def test_in_memory_cache():
    """Test the in-memory credential cache."""
    cache = InMemoryCredentialCache()
    entry = CredentialCacheEntry(installation_id=7)

    cache.set("c1", entry)
    assert cache.get("c1") == entry
    cache.delete("c1")
    assert cache.get("c1") is None


def test_file_cache_persists_token(tmp_path, clock):
    """Test persisting tokens in the file cache."""
    path = tmp_path / "credentials.json"
    cache = FileCredentialCache(path)
    cache.set("c1", CredentialCacheEntry(installation_id=7, access_token="ghs_abc", expires_at=clock.now))

    reloaded = FileCredentialCache(path).get("c1")

    assert reloaded.installation_id == 7
    assert reloaded.access_token.get_secret_value() == "ghs_abc"
    assert reloaded.expires_at == clock.now
    assert path.stat().st_mode & 0o777 == 0o600


@pytest.mark.skipif(sys.platform == "win32", reason="POSIX file modes")
def test_file_cache_never_exposes_tokens(tmp_path, monkeypatch):
    """Test that the cache file is private from creation, even over a stale temp file."""
    path = tmp_path / "credentials.json"
    stale = path.with_suffix(".tmp")
    stale.write_text("{}")
    stale.chmod(0o644)
    modes = []
    real_replace = os.replace

    def recording_replace(src, dst):
        modes.append(os.stat(src).st_mode & 0o777)
        real_replace(src, dst)

    monkeypatch.setattr(os, "replace", recording_replace)
    previous = os.umask(0)
    try:
        FileCredentialCache(path).set("c1", CredentialCacheEntry(installation_id=7, access_token="ghs_abc"))
    finally:
        os.umask(previous)

    assert modes == [0o600]
    assert path.stat().st_mode & 0o777 == 0o600


def test_file_cache_delete(tmp_path):
    """Test deleting from the file cache."""
    cache = FileCredentialCache(tmp_path / "credentials.json")
    cache.set("c1", CredentialCacheEntry(installation_id=7))

    cache.delete("c1")
    cache.delete("unknown")

    assert cache.get("c1") is None


def test_file_cache_tolerates_corrupt_file(tmp_path):
    """Test the file cache with a corrupt file."""
    path = tmp_path / "credentials.json"
    path.write_text("{not json")

    assert FileCredentialCache(path).get("c1") is None


# ---------------------------------------------------------------------------
# Header builder
# ---------------------------------------------------------------------------


@pytest.fixture
def transport():
    transport = MagicMock(spec=ProviderTransport)
    transport.base_headers.return_value = {
        "Accept": "application/vnd.github+json",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    return transport


def _token_response(clock, token="ghs_first"):
    return {"token": token, "expires_at": (clock.now + timedelta(hours=1)).isoformat()}


def test_personal_token_headers(transport, personal_connector):
    """Test personal token headers."""
    headers = AuthHeaderBuilder(transport).build_headers(personal_connector)

    assert headers["Authorization"] == "Bearer ghp_test_token"
    assert headers["Accept"] == "application/vnd.github+json"
    assert headers["X-GitHub-Api-Version"] == "2022-11-28"
    transport.request.assert_not_called()


def test_personal_without_token_is_configuration_error(transport):
    """Test a personal connector without token."""
    connector = Connector(id="c", name="c", mode=AuthMode.PERSONAL)

    with pytest.raises(ConfigurationError):
        AuthHeaderBuilder(transport).build_headers(connector)


def test_mode_none_sends_no_authorization(transport):
    """Test connectors without authentication."""
    connector = Connector(id="c", name="c", mode=AuthMode.NONE)

    assert "Authorization" not in AuthHeaderBuilder(transport).build_headers(connector)


def test_app_jwt_claims(transport, app_connector, public_key_pem, clock):
    """Test GitHub App JWT claims."""
    builder = AuthHeaderBuilder(transport, clock=clock)

    token = builder.create_app_jwt(app_connector)
    claims = jwt.decode(
        token,
        public_key_pem,
        algorithms=["RS256"],
        options={"verify_exp": False, "verify_iat": False},
    )

    now = int(clock.now.timestamp())
    assert claims == {"iat": now - 60, "exp": now + 300, "iss": "12345"}


def test_app_jwt_requires_key(transport):
    """Test JWT creation without a private key."""
    connector = Connector(id="c", name="c", mode=AuthMode.APP_USER, app_id="1")

    with pytest.raises(ConfigurationError):
        AuthHeaderBuilder(transport).create_app_jwt(connector)


def test_app_jwt_rejects_invalid_key(transport):
    """Test JWT creation with an invalid private key."""
    connector = Connector(
        id="c", name="c", mode=AuthMode.APP_USER, app_id="1", app_private_key="not a key"
    )

    with pytest.raises(ConfigurationError):
        AuthHeaderBuilder(transport).create_app_jwt(connector)


def test_installation_token_issued_once_and_reused(transport, app_connector, clock):
    """Test installation token caching."""
    transport.request.side_effect = [{"id": 99}, _token_response(clock)]
    builder = AuthHeaderBuilder(transport, clock=clock)

    first = builder.build_headers(app_connector)
    second = builder.build_headers(app_connector)

    assert first["Authorization"] == "Bearer ghs_first"
    assert second == first
    calls = [(call.args[0], call.args[1]) for call in transport.request.call_args_list]
    assert calls == [
        ("GET", "/repos/octocat/Hello-World/installation"),
        ("POST", "/app/installations/99/access_tokens"),
    ]


def test_expired_token_reissued_without_lookup(transport, app_connector, clock):
    """Test reissuing an expired installation token."""
    transport.request.side_effect = [{"id": 99}, _token_response(clock)]
    builder = AuthHeaderBuilder(transport, clock=clock)
    builder.installation_token(app_connector)

    clock.advance(hours=2)
    transport.request.side_effect = [_token_response(clock, "ghs_second")]

    assert builder.installation_token(app_connector) == "ghs_second"
    assert transport.request.call_args.args[:2] == ("POST", "/app/installations/99/access_tokens")
    assert transport.request.call_count == 3


def test_revoke_drops_cached_credentials(transport, app_connector, clock):
    """Test revoking cached credentials."""
    transport.request.side_effect = [{"id": 99}, _token_response(clock)]
    builder = AuthHeaderBuilder(transport, clock=clock)
    builder.installation_token(app_connector)

    builder.revoke(app_connector.id)

    assert builder.cache.get(app_connector.id) is None


def test_token_without_expiry_defaults_to_one_hour(transport, app_connector, clock):
    """Test tokens without expiry."""
    transport.request.side_effect = [{"id": 5}, {"token": "ghs_x"}]
    builder = AuthHeaderBuilder(transport, clock=clock)

    builder.installation_token(app_connector)

    assert builder.cache.get(app_connector.id).expires_at == clock.now + timedelta(hours=1)


# ---------------------------------------------------------------------------
# Installation paths
# ---------------------------------------------------------------------------


def test_installation_path_per_mode():
    """Test installation lookup paths per mode."""
    repo = RepositoryTarget(owner="octo", name="hello")
    org = OrganizationTarget(login="acme")

    assert installation_path(Connector(id="c", name="c", mode=AuthMode.APP_USER, app_user="bob")) == (
        "/users/bob/installation"
    )
    assert installation_path(Connector(id="c", name="c", mode=AuthMode.APP_USER), repo) == (
        "/users/octo/installation"
    )
    assert installation_path(Connector(id="c", name="c", mode=AuthMode.APP_REPOSITORY), repo) == (
        "/repos/octo/hello/installation"
    )
    assert installation_path(Connector(id="c", name="c", mode=AuthMode.APP_ORGANIZATION), org) == (
        "/orgs/acme/installation"
    )


def test_installation_path_missing_target():
    """Test installation lookup without a target."""
    with pytest.raises(ConfigurationError):
        installation_path(Connector(id="c", name="c", mode=AuthMode.APP_REPOSITORY), OrganizationTarget(login="x"))
    with pytest.raises(ConfigurationError):
        installation_path(Connector(id="c", name="c", mode=AuthMode.PERSONAL))
