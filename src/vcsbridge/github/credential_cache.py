"""Per-connector cache of GitHub App installation credentials.

The cache is keyed by connector id. Each entry holds the resolved
installation id (which never expires) and the current installation access
token with its expiry. Two implementations are provided: an in-memory map
for single-process deployments and a file-backed store shared between the
webhook server and the background passes.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Protocol

from filelock import FileLock
from pydantic import BaseModel, Field, SecretStr, field_validator


logger = logging.getLogger(__name__)


class CredentialCacheEntry(BaseModel):
    """Cached installation credentials for one connector."""

    installation_id: int = Field(..., description="Resolved App installation id")
    access_token: Optional[SecretStr] = Field(default=None)
    expires_at: Optional[datetime] = Field(default=None)

    @field_validator("expires_at")
    def _validate_expires_at(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_valid(self, now: Optional[datetime] = None) -> bool:
        """Return True while the token may still be used (``now < expires_at``)."""
        if self.access_token is None or self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now < self.expires_at


class CredentialCache(Protocol):
    """Storage contract; per-connector entries are the unit of invalidation."""

    def get(self, key: str) -> Optional[CredentialCacheEntry]: ...

    def set(self, key: str, entry: CredentialCacheEntry) -> None: ...

    def delete(self, key: str) -> None: ...


class InMemoryCredentialCache:
    """Process-local cache."""

    def __init__(self) -> None:
        self._entries: Dict[str, CredentialCacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[CredentialCacheEntry]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, entry: CredentialCacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)


class FileCredentialCache:
    """Cache shared between processes through a locked JSON file.

    The file is created with ``0o600`` permissions because it holds live
    installation tokens.
    """

    def __init__(self, path: Path) -> None:
        self.path = path.expanduser()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(str(self.path) + ".lock")

    def get(self, key: str) -> Optional[CredentialCacheEntry]:
        with self._lock:
            raw = self._load().get(key)
        if raw is None:
            return None
        try:
            return CredentialCacheEntry.model_validate(raw)
        except ValueError:
            logger.warning("Discarding malformed credential cache entry", extra={"connector_id": key})
            return None

    def set(self, key: str, entry: CredentialCacheEntry) -> None:
        payload = entry.model_dump(mode="json")
        if entry.access_token is not None:
            payload["access_token"] = entry.access_token.get_secret_value()
        with self._lock:
            data = self._load()
            data[key] = payload
            self._save(data)

    def delete(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if data.pop(key, None) is not None:
                self._save(data)

    def _load(self) -> Dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            return json.loads(self.path.read_text())
        except json.JSONDecodeError:
            logger.warning("Credential cache file is corrupt; starting empty", extra={"path": str(self.path)})
            return {}

    def _save(self, data: Dict[str, dict]) -> None:
        tmp = self.path.with_suffix(".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        # A leftover temp file keeps its old mode through O_CREAT.
        os.fchmod(fd, 0o600)
        with os.fdopen(fd, "w") as fp:
            fp.write(json.dumps(data, indent=2))
        os.replace(tmp, self.path)


__all__ = [
    "CredentialCache",
    "CredentialCacheEntry",
    "FileCredentialCache",
    "InMemoryCredentialCache",
]
