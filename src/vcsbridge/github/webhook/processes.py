"""Time-budgeted background passes.

Both passes visit items one at a time and stop before starting a new item
once the budget is spent; unvisited items are left for the next run. Each
item is handled under its registry lock, so a pass that stops early never
leaves a half-written binding behind.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from vcsbridge.github.models import Binding
from vcsbridge.github.registry import BindingRegistry
from vcsbridge.github.webhook.delivery import DeliveryService
from vcsbridge.github.webhook.queue import DeliveryQueue
from vcsbridge.github.webhook.reconciler import Reconciler


logger = logging.getLogger(__name__)


@dataclass
class PassReport:
    """Counters for one pass."""

    visited: int = 0
    failed: int = 0
    skipped: int = 0
    remaining: int = 0

    @property
    def completed(self) -> bool:
        return self.remaining == 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "visited": self.visited,
            "failed": self.failed,
            "skipped": self.skipped,
            "remaining": self.remaining,
        }


class SynchronizationPass:
    """Check every binding with a connector, then auto-synchronize it."""

    def __init__(
        self,
        bindings: BindingRegistry,
        reconciler: Reconciler,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.bindings = bindings
        self.reconciler = reconciler
        self.clock = clock

    def run(self, time_budget: float) -> PassReport:
        deadline = self.clock() + time_budget
        report = PassReport()
        candidates = self.bindings.with_connector()

        for index, binding in enumerate(candidates):
            if self.clock() >= deadline:
                report.remaining = len(candidates) - index
                logger.info("Synchronization pass out of time", extra=report.to_dict())
                break
            try:
                self.bindings.update(binding.id, self.reconcile)
            except Exception:
                report.failed += 1
                logger.exception("Binding reconciliation failed", extra={"binding_id": binding.id})
                continue
            report.visited += 1

        return report

    def reconcile(self, binding: Binding) -> None:
        self.reconciler.check(binding)
        self.reconciler.auto_synchronize(binding)


class DeliveryProcessor:
    """Dispatch queued deliveries in arrival order.

    A delivery is deleted only after dispatch succeeded; a failing delivery
    stays queued and is retried by the next run. Deliveries addressed to a
    binding that no longer exists are dropped.
    """

    def __init__(
        self,
        queue: DeliveryQueue,
        service: DeliveryService,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.queue = queue
        self.service = service
        self.clock = clock

    def run(self, time_budget: Optional[float] = None) -> PassReport:
        deadline = None if time_budget is None else self.clock() + time_budget
        report = PassReport()
        pending = self.queue.pending()

        for index, delivery in enumerate(pending):
            if deadline is not None and self.clock() >= deadline:
                report.remaining = len(pending) - index
                break

            binding = self.service.bindings.find(delivery.binding_id)
            if binding is None:
                logger.warning(
                    "Dropping delivery for unknown binding",
                    extra={"binding_id": delivery.binding_id, "sequence": delivery.sequence},
                )
                self.queue.delete(delivery.sequence)
                report.skipped += 1
                continue

            try:
                self.service.process(binding, delivery)
            except Exception:
                report.failed += 1
                logger.exception(
                    "Queued delivery failed",
                    extra={"binding_id": binding.id, "sequence": delivery.sequence},
                )
                continue
            self.queue.delete(delivery.sequence)
            report.visited += 1

        return report


__all__ = ["DeliveryProcessor", "PassReport", "SynchronizationPass"]
