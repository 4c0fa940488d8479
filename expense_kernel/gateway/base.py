"""
Payment gateway capability consumed by the reimbursement reconciler.

The kernel depends only on this protocol; ``PayMongoGateway`` and
``DisabledGateway`` are the shipped implementations and tests use an
in-memory fake.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID


@dataclass(frozen=True)
class CheckoutSession:
    """A hosted checkout page created by the gateway."""

    session_id: str
    checkout_url: str


@runtime_checkable
class PaymentGateway(Protocol):
    """Creates checkout sessions and reports their status."""

    def create_checkout_session(
        self,
        amount: Decimal,
        description: str,
        report_id: UUID,
        success_url: str,
        cancel_url: str,
        customer_email: str | None = None,
        customer_name: str | None = None,
    ) -> CheckoutSession:
        ...

    def get_checkout_status(self, session_id: str) -> str:
        """Return ``"paid"``, ``"unpaid"``, ``"expired"`` or a gateway-specific status."""
        ...
