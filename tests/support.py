"""Shared test data and doubles for the expense kernel suite."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from expense_kernel.domain.values import ExpenseItemInput
from expense_kernel.exceptions import ExternalServiceError
from expense_kernel.gateway.base import CheckoutSession

# Actors used across the suite
OWNER_ID = uuid4()
MANAGER_ID = uuid4()
CEO_ID = uuid4()
FINANCE_ID = uuid4()

# DeterministicClock defaults to 2024-01-15 12:00 UTC
THIS_MONTH = date(2024, 1, 10)
LAST_MONTH = date(2023, 12, 20)

SUCCESS_URL = "https://expenses.test/finance/success"
CANCEL_URL = "https://expenses.test/finance/cancel"


def item(category: str, amount, expense_date: date = THIS_MONTH, description: str = "") -> ExpenseItemInput:
    """Build an ExpenseItemInput; amounts may be given as str, int or Decimal."""
    return ExpenseItemInput(
        category=category,
        amount=Decimal(str(amount)),
        expense_date=expense_date,
        description=description,
    )


class FakeGateway:
    """In-memory PaymentGateway with switchable failures."""

    def __init__(self):
        self.created: list[dict] = []
        self.statuses: dict[str, str] = {}
        self.error: Exception | None = None

    def create_checkout_session(
        self,
        amount,
        description,
        report_id,
        success_url,
        cancel_url,
        customer_email=None,
        customer_name=None,
    ) -> CheckoutSession:
        if self.error is not None:
            raise self.error
        session_id = f"cs_test_{len(self.created) + 1}"
        self.created.append(
            {
                "session_id": session_id,
                "amount": amount,
                "report_id": report_id,
                "success_url": success_url,
                "cancel_url": cancel_url,
                "customer_email": customer_email,
            }
        )
        self.statuses[session_id] = "unpaid"
        return CheckoutSession(session_id, f"https://checkout.test/{session_id}")

    def get_checkout_status(self, session_id: str) -> str:
        if self.error is not None:
            raise self.error
        return self.statuses.get(session_id, "unknown")

    def fail_with(self, reason: str = "connection reset") -> None:
        self.error = ExternalServiceError("fake", reason)
