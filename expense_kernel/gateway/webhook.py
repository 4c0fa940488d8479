"""
PayMongo webhook signature verification and event parsing.

Signature header format::

    Paymongo-Signature: t=<unix ts>,te=<test signature>,li=<live signature>

The signature is ``hex(HMAC-SHA256(secret, f"{t}.{raw_body}"))``.  It is
compared in constant time against ``te`` and, when present, ``li``.
"""

import hashlib
import hmac
import json
from dataclasses import dataclass, field
from typing import Any

from expense_kernel.exceptions import WebhookPayloadError, WebhookSignatureError

SIGNATURE_HEADER = "Paymongo-Signature"

LINK_PAYMENT_PAID = "link.payment.paid"
CHECKOUT_SESSION_PAYMENT_PAID = "checkout_session.payment.paid"
PAID_EVENTS = frozenset({LINK_PAYMENT_PAID, CHECKOUT_SESSION_PAYMENT_PAID})


@dataclass(frozen=True)
class WebhookEvent:
    """The parts of a PayMongo event the reconciler acts on."""

    event_type: str
    session_id: str | None
    raw: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def is_payment_paid(self) -> bool:
        return self.event_type in PAID_EVENTS


def _as_text(body: bytes | str) -> str:
    return body.decode("utf-8") if isinstance(body, bytes) else body


def parse_signature_header(header: str) -> dict[str, str]:
    parts: dict[str, str] = {}
    for chunk in header.split(","):
        key, sep, value = chunk.strip().partition("=")
        if sep:
            parts[key] = value
    return parts


def compute_signature(secret: str, timestamp: str, body: bytes | str) -> str:
    signed_payload = f"{timestamp}.{_as_text(body)}"
    return hmac.new(
        secret.encode("utf-8"), signed_payload.encode("utf-8"), hashlib.sha256,
    ).hexdigest()


def verify_signature(secret: str, body: bytes | str, header: str | None) -> None:
    """
    Raise WebhookSignatureError unless ``header`` signs ``body`` with ``secret``.
    """
    if not header:
        raise WebhookSignatureError(f"missing {SIGNATURE_HEADER} header")

    parts = parse_signature_header(header)
    timestamp = parts.get("t")
    if not timestamp:
        raise WebhookSignatureError("header has no timestamp")

    candidates = [parts[k] for k in ("te", "li") if parts.get(k)]
    if not candidates:
        raise WebhookSignatureError("header has no signature")

    expected = compute_signature(secret, timestamp, body)
    if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
        raise WebhookSignatureError("signature mismatch")


def parse_event(body: bytes | str) -> WebhookEvent:
    """
    Extract event type and the paid session id from a webhook body.

    ``link.payment.paid`` carries the link id in the payment's metadata;
    ``checkout_session.payment.paid`` carries the checkout session itself.
    """
    try:
        document = json.loads(_as_text(body))
        attributes = document["data"]["attributes"]
        event_type = attributes["type"]
    except (ValueError, KeyError, TypeError) as exc:
        raise WebhookPayloadError(f"not a PayMongo event: {exc}") from exc

    if not isinstance(event_type, str):
        raise WebhookPayloadError("event type is not a string")

    resource = attributes.get("data")
    if not isinstance(resource, dict):
        resource = {}
    session_id = None
    if event_type == LINK_PAYMENT_PAID:
        metadata = (resource.get("attributes") or {}).get("metadata") or {}
        session_id = metadata.get("link_id") if isinstance(metadata, dict) else None
    elif event_type == CHECKOUT_SESSION_PAYMENT_PAID:
        session_id = resource.get("id")

    return WebhookEvent(
        event_type=event_type,
        session_id=str(session_id) if session_id else None,
        raw=document,
    )
