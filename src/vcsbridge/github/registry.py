"""File-backed registries for connectors and webhook bindings.

Each record is one JSON file under the registry root, written atomically
under a per-record file lock. Secret fields are stripped from the JSON and
kept in the system keyring through :class:`SecretStore`.
"""

from __future__ import annotations

import json
import logging
import os
import re
from pathlib import Path
from typing import Callable, Generic, List, Optional, Tuple, Type, TypeVar

from filelock import FileLock
from pydantic import BaseModel, SecretStr, ValidationError

from vcsbridge.configuration.settings import SecretStore, secret_key
from vcsbridge.errors import BindingNotFoundError, ConnectorNotFoundError, VCSBridgeError
from vcsbridge.github.models import RECORD_ID_PATTERN, Binding, Connector


logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

_RECORD_ID = re.compile(RECORD_ID_PATTERN)


class JsonRegistry(Generic[ModelT]):
    """One JSON document per record, keyed by the model ``id``."""

    kind: str = "record"
    model: Type[ModelT]
    secret_fields: Tuple[str, ...] = ()
    not_found_error: Type[VCSBridgeError] = VCSBridgeError

    def __init__(self, root: Path, secret_store: Optional[SecretStore] = None) -> None:
        self.root = root.expanduser()
        self.root.mkdir(parents=True, exist_ok=True)
        self.secret_store = secret_store or SecretStore()

    def _path(self, record_id: str) -> Path:
        if not _RECORD_ID.fullmatch(record_id):
            raise self.not_found_error(
                f"{self.kind.capitalize()} {record_id} not found", details={"id": record_id}
            )
        return self.root / f"{record_id}.json"

    def _lock(self, record_id: str) -> FileLock:
        return FileLock(str(self._path(record_id).with_suffix(".json.lock")))

    def get(self, record_id: str) -> ModelT:
        path = self._path(record_id)
        if not path.exists():
            raise self.not_found_error(
                f"{self.kind.capitalize()} {record_id} not found", details={"id": record_id}
            )
        data = json.loads(path.read_text())
        self._hydrate(record_id, data)
        return self.model.model_validate(data)

    def find(self, record_id: str) -> Optional[ModelT]:
        try:
            return self.get(record_id)
        except VCSBridgeError:
            return None

    def list(self) -> List[ModelT]:
        items: List[ModelT] = []
        for file in sorted(self.root.glob("*.json")):
            try:
                data = json.loads(file.read_text())
                self._hydrate(file.stem, data)
                items.append(self.model.model_validate(data))
            except (json.JSONDecodeError, ValidationError) as exc:
                logger.warning(
                    "Skipping malformed registry entry",
                    extra={"kind": self.kind, "path": str(file), "error": str(exc)},
                )
        return items

    def save(self, record: ModelT) -> ModelT:
        record_id = getattr(record, "id")
        with self._lock(record_id):
            self._write(record)
        return record

    def update(self, record_id: str, mutate: Callable[[ModelT], None]) -> ModelT:
        """Read, mutate and write a record under its lock."""
        with self._lock(record_id):
            record = self.get(record_id)
            mutate(record)
            self._write(record)
        return record

    def remove(self, record_id: str) -> None:
        with self._lock(record_id):
            path = self._path(record_id)
            if not path.exists():
                raise self.not_found_error(
                    f"{self.kind.capitalize()} {record_id} not found", details={"id": record_id}
                )
            path.unlink()
            for name in self.secret_fields:
                self.secret_store.delete_secret(self._secret_key(record_id, name))
        logger.info("Removed registry entry", extra={"kind": self.kind, "id": record_id})

    def _write(self, record: ModelT) -> None:
        record_id = getattr(record, "id")
        payload = record.model_dump(mode="json")
        for name in self.secret_fields:
            payload.pop(name, None)
            value = getattr(record, name)
            key = self._secret_key(record_id, name)
            if isinstance(value, SecretStr) and value.get_secret_value():
                self.secret_store.set_secret(key, value.get_secret_value())
            else:
                self.secret_store.delete_secret(key)
        path = self._path(record_id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(payload, indent=2))
        os.replace(tmp, path)

    def _hydrate(self, record_id: str, data: dict) -> None:
        for name in self.secret_fields:
            value = self.secret_store.get_secret(self._secret_key(record_id, name))
            if value is not None:
                data[name] = value

    def _secret_key(self, record_id: str, field_name: str) -> str:
        return secret_key(self.kind, f"{record_id}:{field_name}")


class ConnectorRegistry(JsonRegistry[Connector]):
    kind = "connector"
    model = Connector
    secret_fields = ("personal_access_token", "app_private_key")
    not_found_error = ConnectorNotFoundError


class BindingRegistry(JsonRegistry[Binding]):
    kind = "binding"
    model = Binding
    secret_fields = ("secret",)
    not_found_error = BindingNotFoundError

    def with_connector(self) -> List[Binding]:
        return [binding for binding in self.list() if binding.connector_id]


__all__ = ["BindingRegistry", "ConnectorRegistry", "JsonRegistry"]
