"""HMAC verification of inbound webhook deliveries.

GitHub signs deliveries with the binding secret and sends the digest as
``X-Hub-Signature: <algo>=<hex>`` (``sha1``) and
``X-Hub-Signature-256: sha256=<hex>``. A binding without a secret accepts
unsigned deliveries.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import string
from typing import Mapping, Optional

from vcsbridge.errors import MissingSignature, SignatureMismatch, UnsupportedAlgorithm

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("X-Hub-Signature-256", "X-Hub-Signature")

# shake_* digests need an explicit length and cannot back an HMAC.
SUPPORTED_ALGORITHMS = frozenset(
    name for name in hashlib.algorithms_guaranteed if not name.startswith("shake_")
)

SECRET_SYMBOLS = "!@#$%^&*"


def generate_secret(lower: int = 8, upper: int = 8, digits: int = 8, special: int = 8) -> str:
    """Random webhook secret with the requested count of each character class."""
    if min(lower, upper, digits, special) < 0:
        raise ValueError("Character counts must not be negative")
    pools = (
        (string.ascii_lowercase, lower),
        (string.ascii_uppercase, upper),
        (string.digits, digits),
        (SECRET_SYMBOLS, special),
    )
    characters = [secrets.choice(pool) for pool, count in pools for _ in range(count)]
    secrets.SystemRandom().shuffle(characters)
    return "".join(characters)


def compute_signature(payload_body: bytes, secret: str, algorithm: str = "sha256") -> str:
    """Return ``<algo>=<hex>`` for a payload, as GitHub would send it."""
    digest = hmac.new(secret.encode("utf-8"), payload_body, algorithm).hexdigest()
    return f"{algorithm}={digest}"


def signature_from_headers(headers: Mapping[str, str]) -> Optional[str]:
    """Pick the strongest signature header present."""
    lowered = {key.lower(): value for key, value in headers.items()}
    for name in SIGNATURE_HEADERS:
        value = lowered.get(name.lower())
        if value:
            return value
    return None


class SignatureVerifier:
    """Validate delivery signatures.

    Example:
        >>> verifier = SignatureVerifier()
        >>> body = b'{"zen": "Keep it logically awesome."}'
        >>> verifier.verify(body, compute_signature(body, "s3cret"), "s3cret")
    """

    def __init__(self, supported_algorithms: frozenset = SUPPORTED_ALGORITHMS) -> None:
        self.supported_algorithms = supported_algorithms

    def verify(self, payload_body: bytes, signature_header: Optional[str], secret: Optional[str]) -> None:
        """Raise a :class:`SignatureError` subclass unless the delivery is authentic.

        Args:
            payload_body: Raw request body, exactly as received
            signature_header: ``<algo>=<hex>`` header value, if any
            secret: Binding secret; ``None`` or empty skips verification

        Raises:
            MissingSignature: Secret configured but no header sent
            UnsupportedAlgorithm: Header names an unknown MAC algorithm
            SignatureMismatch: Digest differs from the recomputed one
        """
        if not secret:
            return
        if not signature_header:
            raise MissingSignature()

        algorithm, _, received = signature_header.strip().partition("=")
        algorithm = algorithm.strip().lower()
        if not received or algorithm not in self.supported_algorithms:
            raise UnsupportedAlgorithm(
                f"Unsupported signature algorithm {algorithm!r}", details={"algorithm": algorithm}
            )

        expected = hmac.new(secret.encode("utf-8"), payload_body, algorithm).hexdigest()
        digest = received.strip().lower().encode("utf-8", "surrogateescape")
        if not hmac.compare_digest(digest, expected.encode("ascii")):
            logger.warning(
                "Webhook signature verification failed",
                extra={"algorithm": algorithm, "expected_length": len(expected)},
            )
            raise SignatureMismatch()


__all__ = [
    "SIGNATURE_HEADERS",
    "SUPPORTED_ALGORITHMS",
    "SignatureVerifier",
    "compute_signature",
    "generate_secret",
    "signature_from_headers",
]
