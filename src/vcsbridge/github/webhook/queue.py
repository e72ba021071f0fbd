"""File-backed queue of deliveries awaiting asynchronous dispatch.

Each delivery is one JSON file named after its arrival sequence number, so
listing the directory in name order yields arrival order. A delivery file is
removed only after the processor has dispatched it.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import List

from filelock import FileLock
from pydantic import ValidationError

from vcsbridge.github.webhook.models import WebhookDelivery


logger = logging.getLogger(__name__)

_SEQUENCE_FILE = "sequence"


class DeliveryQueue:
    """Arrival-ordered delivery store."""

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()
        self.root.mkdir(parents=True, exist_ok=True)
        self._lock = FileLock(str(self.root / "queue.lock"))

    def _path(self, sequence: int) -> Path:
        return self.root / f"{sequence:012d}.json"

    def enqueue(self, delivery: WebhookDelivery) -> WebhookDelivery:
        with self._lock:
            sequence = self._next_sequence()
            stored = delivery.model_copy(update={"sequence": sequence})
            path = self._path(sequence)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(stored.model_dump(mode="json")))
            os.replace(tmp, path)
        logger.debug(
            "Queued delivery",
            extra={"binding_id": delivery.binding_id, "event_type": delivery.event_type, "sequence": sequence},
        )
        return stored

    def pending(self) -> List[WebhookDelivery]:
        """Stored deliveries in arrival order; unreadable files are skipped."""
        items: List[WebhookDelivery] = []
        for file in sorted(self.root.glob("*.json")):
            try:
                items.append(WebhookDelivery.model_validate_json(file.read_text()))
            except (ValidationError, ValueError) as exc:
                logger.warning("Skipping unreadable queued delivery", extra={"path": str(file), "error": str(exc)})
        return items

    def delete(self, sequence: int) -> None:
        self._path(sequence).unlink(missing_ok=True)

    def __len__(self) -> int:
        return len(list(self.root.glob("*.json")))

    def _next_sequence(self) -> int:
        counter = self.root / _SEQUENCE_FILE
        current = int(counter.read_text()) if counter.exists() else 0
        current += 1
        counter.write_text(str(current))
        return current


__all__ = ["DeliveryQueue"]
