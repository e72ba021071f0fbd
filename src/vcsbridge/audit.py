"""Tamper-evident audit trail for deliveries and reconciliation outcomes."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from hashlib import sha256
from pathlib import Path
from typing import Dict, Iterable, Optional

from filelock import FileLock


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEvent:
    """Represents a structured audit event."""

    source: str
    action: str
    status: str
    binding_id: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    metadata: Dict[str, object] = field(default_factory=dict)

    def to_payload(self) -> Dict[str, object]:
        payload: Dict[str, object] = {
            "source": self.source,
            "action": self.action,
            "status": self.status,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.binding_id:
            payload["binding_id"] = self.binding_id
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload


@dataclass
class AuditLogger:
    """Appends hash-chained JSON lines to ``<output_dir>/<filename>``.

    Each line carries ``chain_prev`` and ``chain_hash``; :meth:`verify`
    walks the file and detects edited or removed lines.
    """

    output_dir: Path
    filename: str = "audit.log"

    def __post_init__(self) -> None:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._path = self.output_dir / self.filename
        self._lock = FileLock(str(self._path) + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    def record(self, event: AuditEvent) -> None:
        with self._lock:
            payload = event.to_payload()
            payload["chain_prev"] = self._last_hash()
            payload["chain_hash"] = _compute_chain_hash(payload)
            with self._path.open("a", encoding="utf-8") as fp:
                fp.write(json.dumps(payload, separators=(",", ":")) + "\n")

    def iter_events(self) -> Iterable[Dict[str, object]]:
        if not self._path.exists():
            return
        with self._path.open("r", encoding="utf-8") as fp:
            for line in fp:
                line = line.strip()
                if line:
                    yield json.loads(line)

    def verify(self) -> bool:
        """Return False if any line was altered or removed."""
        previous_hash = None
        for entry in self.iter_events():
            if entry.get("chain_prev") != previous_hash:
                return False
            if entry.get("chain_hash") != _compute_chain_hash(entry):
                return False
            previous_hash = entry.get("chain_hash")
        return True

    def _last_hash(self) -> Optional[str]:
        last = None
        for entry in self.iter_events():
            last = entry.get("chain_hash")
        return last


def _compute_chain_hash(payload: Dict[str, object]) -> str:
    canonical = json.dumps(
        {k: payload[k] for k in sorted(payload) if k != "chain_hash"}, separators=(",", ":")
    )
    return sha256(canonical.encode("utf-8")).hexdigest()


__all__ = ["AuditEvent", "AuditLogger"]
