"""Inbound delivery ingestion.

:class:`DeliveryService` turns a raw HTTP request (headers, body, URL) into
a verified :class:`WebhookDelivery`, then either dispatches it inline or
queues it for the asynchronous processor. After dispatch it records the
delivery on the binding: event counter, last event date and event log.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional
from urllib.parse import parse_qs, urlsplit

from vcsbridge.audit import AuditEvent, AuditLogger
from vcsbridge.automation.dispatcher import Dispatcher, DispatchResult
from vcsbridge.errors import DeliveryRequestError, SignatureError
from vcsbridge.github.models import Binding, EventLogEntry
from vcsbridge.github.registry import BindingRegistry
from vcsbridge.github.webhook.models import DeliveryURL, WebhookDelivery
from vcsbridge.github.webhook.queue import DeliveryQueue
from vcsbridge.github.webhook.security import SignatureVerifier, signature_from_headers


logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


# ---------------------------------------------------------------------------
# Request parsing
# ---------------------------------------------------------------------------


def parse_delivery_url(url: str) -> DeliveryURL:
    parts = urlsplit(url)
    query = {key: values[-1] for key, values in parse_qs(parts.query).items()}
    return DeliveryURL(
        scheme=parts.scheme,
        host=parts.hostname or "",
        port=parts.port,
        path=parts.path,
        query=query,
    )


def decode_payload(content_type: Optional[str], body: bytes) -> Dict[str, Any]:
    """Decode a JSON body or the ``payload`` field of a form body.

    Raises:
        DeliveryRequestError: Missing or unsupported content type, or bad JSON
    """
    if not content_type:
        raise DeliveryRequestError("Missing Content-Type header")
    media_type = content_type.split(";", 1)[0].strip().lower()

    if media_type == JSON_CONTENT_TYPE:
        raw = body.decode("utf-8", errors="replace")
    elif media_type == FORM_CONTENT_TYPE:
        fields = parse_qs(body.decode("utf-8", errors="replace"))
        if "payload" not in fields:
            raise DeliveryRequestError("Form delivery has no payload field")
        raw = fields["payload"][-1]
    else:
        raise DeliveryRequestError(
            f"Unsupported Content-Type {media_type!r}", details={"content_type": media_type}
        )

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DeliveryRequestError(f"Payload is not valid JSON: {exc}") from exc
    if not isinstance(payload, dict):
        raise DeliveryRequestError("Payload must be a JSON object")
    return payload


def parse_delivery(
    binding_id: str,
    headers: Mapping[str, str],
    body: bytes,
    url: str = "",
) -> WebhookDelivery:
    """Validate required headers and decode the body.

    Raises:
        DeliveryRequestError: Missing ``Content-Type`` or ``X-GitHub-Event``
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    content_type = lowered.get("content-type")
    if not content_type:
        raise DeliveryRequestError("Missing Content-Type header")
    event_type = (lowered.get("x-github-event") or "").strip()
    if not event_type:
        raise DeliveryRequestError("Missing X-GitHub-Event header")

    return WebhookDelivery(
        binding_id=binding_id,
        event_type=event_type,
        delivery_id=lowered.get("x-github-delivery"),
        payload=decode_payload(content_type, body),
        url=parse_delivery_url(url) if url else None,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class DeliveryReceipt:
    delivery: WebhookDelivery
    queued: bool = False
    dispatch: Optional[DispatchResult] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "binding_id": self.delivery.binding_id,
            "event": self.delivery.event_type,
            "url": self.delivery.url.model_dump() if self.delivery.url else None,
            "queued": self.queued,
        }
        if self.queued:
            data["sequence"] = self.delivery.sequence
        if self.dispatch is not None:
            data["triggered_count"] = self.dispatch.triggered_count
        return data


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryService:
    """Verify, dispatch and record deliveries for registered bindings.

    Args:
        bindings: Binding registry, also used to persist counters
        dispatcher: Automation dispatcher
        verifier: Signature verifier
        queue: When set, deliveries are queued instead of dispatched inline
        event_log_size: Number of entries kept in the binding event log
        audit_logger: Optional audit trail
    """

    def __init__(
        self,
        bindings: BindingRegistry,
        dispatcher: Dispatcher,
        *,
        verifier: Optional[SignatureVerifier] = None,
        queue: Optional[DeliveryQueue] = None,
        event_log_size: int = 50,
        audit_logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.bindings = bindings
        self.dispatcher = dispatcher
        self.verifier = verifier or SignatureVerifier()
        self.queue = queue
        self.event_log_size = event_log_size
        self.audit_logger = audit_logger
        self.clock = clock

    def receive(
        self,
        binding_id: str,
        headers: Mapping[str, str],
        body: bytes,
        url: str = "",
    ) -> DeliveryReceipt:
        """Handle one HTTP delivery.

        Raises:
            BindingNotFoundError: Unknown binding id
            SignatureError: Signature missing, unsupported or wrong
            DeliveryRequestError: Required header missing or body unreadable
        """
        binding = self.bindings.get(binding_id)
        try:
            self.verifier.verify(body, signature_from_headers(headers), binding.secret_value)
        except SignatureError as exc:
            self._audit(binding_id, "delivery_rejected", "failed", {"code": exc.code})
            raise

        delivery = parse_delivery(binding_id, headers, body, url)
        delivery = delivery.model_copy(update={"received_at": self.clock()})

        if self.queue is not None:
            stored = self.queue.enqueue(delivery)
            self._audit(binding_id, "delivery_queued", "success", {"event": delivery.event_type})
            return DeliveryReceipt(delivery=stored, queued=True)

        result = self.process(binding, delivery)
        return DeliveryReceipt(delivery=delivery, dispatch=result)

    def process(self, binding: Binding, delivery: WebhookDelivery) -> DispatchResult:
        """Dispatch a verified delivery and record it on the binding."""
        result = self.dispatcher.dispatch(delivery.event_type, binding, delivery.payload)
        self.record(binding.id, delivery, result)
        self._audit(
            binding.id,
            "delivery_dispatched",
            "success" if not result.failures else "partial",
            {"event": delivery.event_type, "triggered_count": result.triggered_count},
        )
        return result

    def record(self, binding_id: str, delivery: WebhookDelivery, result: DispatchResult) -> Binding:
        entry = EventLogEntry(
            event_type=delivery.event_type,
            received_at=delivery.received_at,
            sender=delivery.sender_login,
            triggered_count=result.triggered_count,
        )

        def apply(binding: Binding) -> None:
            binding.event_count += 1
            binding.last_event_at = delivery.received_at
            if self.event_log_size:
                binding.event_log = [entry, *binding.event_log][: self.event_log_size]

        return self.bindings.update(binding_id, apply)

    def _audit(self, binding_id: str, action: str, status: str, metadata: Dict[str, object]) -> None:
        if self.audit_logger is None:
            return
        self.audit_logger.record(
            AuditEvent(
                source="github_webhook",
                action=action,
                status=status,
                binding_id=binding_id,
                metadata=metadata,
            )
        )


__all__ = [
    "DeliveryReceipt",
    "DeliveryService",
    "decode_payload",
    "parse_delivery",
    "parse_delivery_url",
]
