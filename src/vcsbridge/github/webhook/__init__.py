"""Webhook delivery intake, reconciliation and background passes."""

from .admin import AdminOperations
from .delivery import DeliveryReceipt, DeliveryService, decode_payload, parse_delivery
from .models import DeliveryURL, WebhookDelivery
from .processes import DeliveryProcessor, PassReport, SynchronizationPass
from .queue import DeliveryQueue
from .reconciler import DEFAULT_EVENTS, OperationResult, Reconciler
from .security import SignatureVerifier, compute_signature, generate_secret, signature_from_headers
from .server import WebhookServer

__all__ = [
    "AdminOperations",
    "DEFAULT_EVENTS",
    "DeliveryProcessor",
    "DeliveryQueue",
    "DeliveryReceipt",
    "DeliveryService",
    "DeliveryURL",
    "OperationResult",
    "PassReport",
    "Reconciler",
    "SignatureVerifier",
    "SynchronizationPass",
    "WebhookDelivery",
    "WebhookServer",
    "compute_signature",
    "decode_payload",
    "generate_secret",
    "parse_delivery",
    "signature_from_headers",
]
