"""
PayMongoGateway -- checkout sessions over the PayMongo REST API (httpx).

Responsibility:
    Creates GCash checkout sessions for approved reports and reads their
    status back.  Amounts travel in centavos.

Failure modes:
    - ValidationError when the amount is below PHP 1.00 (100 centavos);
      raised before any request is sent.
    - ExternalServiceError on transport failure, non-2xx response or an
      unparseable body.  Transport errors, 429 and 5xx are retried up to
      ``max_attempts`` times before giving up.
"""

from decimal import Decimal
from typing import Any
from uuid import UUID

import httpx

from expense_kernel.db.types import to_money
from expense_kernel.exceptions import ExternalServiceError, ValidationError
from expense_kernel.gateway.base import CheckoutSession
from expense_kernel.logging_config import get_logger

logger = get_logger("gateway.paymongo")

DEFAULT_BASE_URL = "https://api.paymongo.com/v1/"
MIN_AMOUNT_CENTAVOS = 100
CURRENCY = "PHP"
PAYMENT_METHODS = ("gcash",)

_RETRY_STATUSES = frozenset({429, 500, 502, 503, 504})


def to_centavos(amount: Decimal) -> int:
    """PHP amount -> integer centavos (fractions of a centavo are dropped)."""
    return int(to_money(amount) * 100)


class PayMongoGateway:
    """Synchronous PayMongo client."""

    name = "paymongo"

    def __init__(
        self,
        secret_key: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10.0,
        max_attempts: int = 3,
        transport: httpx.BaseTransport | None = None,
    ):
        if not secret_key:
            raise ValueError("PayMongo secret key is required")
        self.max_attempts = max(1, max_attempts)
        self._client = httpx.Client(
            base_url=base_url,
            auth=(secret_key, ""),
            timeout=timeout,
            headers={"Accept": "application/json"},
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "PayMongoGateway":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # =========================================================================
    # PaymentGateway
    # =========================================================================

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
        centavos = to_centavos(amount)
        if centavos < MIN_AMOUNT_CENTAVOS:
            raise ValidationError(
                "amount", f"must be at least PHP 1.00 (got PHP {to_money(amount)})"
            )

        attributes: dict[str, Any] = {
            "description": description,
            "payment_method_types": list(PAYMENT_METHODS),
            "line_items": [
                {
                    "currency": CURRENCY,
                    "amount": centavos,
                    "description": description,
                    "name": f"Reimbursement - Report #{report_id}",
                    "quantity": 1,
                }
            ],
            "success_url": success_url,
            "cancel_url": cancel_url,
        }
        if customer_email:
            attributes["customer_email"] = customer_email
            attributes["billing"] = {
                "email": customer_email,
                "name": customer_name or customer_email,
            }

        body = self._request("POST", "checkout_sessions", json={"data": {"attributes": attributes}})
        try:
            data = body["data"]
            session = CheckoutSession(
                session_id=str(data["id"]),
                checkout_url=str(data["attributes"]["checkout_url"]),
            )
        except (KeyError, TypeError) as exc:
            raise ExternalServiceError(self.name, f"unexpected checkout response: missing {exc}") from exc

        logger.info(
            "checkout_session_created",
            extra={
                "session_id": session.session_id,
                "amount_centavos": centavos,
                "checkout_report_id": str(report_id),
            },
        )
        return session

    def get_checkout_status(self, session_id: str) -> str:
        body = self._request("GET", f"checkout_sessions/{session_id}")
        try:
            attributes = body["data"]["attributes"]
        except (KeyError, TypeError) as exc:
            raise ExternalServiceError(self.name, f"unexpected status response: missing {exc}") from exc

        payments = attributes.get("payments") or []
        if payments:
            status = "paid"
        else:
            status = attributes.get("status") or "unknown"

        logger.info("checkout_status_fetched", extra={"session_id": session_id, "status": status})
        return status

    # =========================================================================
    # Transport
    # =========================================================================

    def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        last_error: ExternalServiceError | None = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = self._client.request(method, path, **kwargs)
            except httpx.TransportError as exc:
                last_error = ExternalServiceError(self.name, f"{type(exc).__name__}: {exc}")
            else:
                if response.status_code in _RETRY_STATUSES:
                    last_error = ExternalServiceError(
                        self.name, response.text[:500], status_code=response.status_code,
                    )
                elif response.is_error:
                    raise ExternalServiceError(
                        self.name, response.text[:500], status_code=response.status_code,
                    )
                else:
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise ExternalServiceError(
                            self.name, "response body is not JSON",
                            status_code=response.status_code,
                        ) from exc

            logger.warning(
                "gateway_request_failed",
                extra={
                    "method": method,
                    "path": path,
                    "attempt": attempt,
                    "max_attempts": self.max_attempts,
                    "status_code": last_error.status_code,
                },
            )

        raise last_error
