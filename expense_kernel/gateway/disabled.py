"""Gateway used when no PayMongo secret key is configured."""

from decimal import Decimal
from uuid import UUID

from expense_kernel.exceptions import ExternalServiceError
from expense_kernel.gateway.base import CheckoutSession
from expense_kernel.logging_config import get_logger

logger = get_logger("gateway.disabled")

_REASON = "Payment gateway is not configured (set PAYMONGO_SECRET_KEY)"


class DisabledGateway:
    """Every call fails; manual reimbursement still works."""

    name = "disabled"

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
        logger.warning("gateway_disabled_call", extra={"operation": "create_checkout_session"})
        raise ExternalServiceError(self.name, _REASON, retryable=False)

    def get_checkout_status(self, session_id: str) -> str:
        logger.warning("gateway_disabled_call", extra={"operation": "get_checkout_status"})
        raise ExternalServiceError(self.name, _REASON, retryable=False)
