"""Payment gateway protocol, implementations and webhook handling."""

from expense_kernel.gateway.base import CheckoutSession, PaymentGateway
from expense_kernel.gateway.disabled import DisabledGateway
from expense_kernel.gateway.paymongo import PayMongoGateway
from expense_kernel.gateway.webhook import (
    SIGNATURE_HEADER,
    WebhookEvent,
    compute_signature,
    parse_event,
    verify_signature,
)

__all__ = [
    "CheckoutSession",
    "DisabledGateway",
    "PayMongoGateway",
    "PaymentGateway",
    "SIGNATURE_HEADER",
    "WebhookEvent",
    "compute_signature",
    "parse_event",
    "verify_signature",
]
