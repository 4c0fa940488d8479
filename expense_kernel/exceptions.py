"""
Typed Exception Hierarchy for the Expense Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow engine (an HTTP layer, a webhook endpoint, an admin
console) must react differently to "this report does not exist", "this report
cannot be approved from its current state" and "the payment gateway is down".
Parsing message strings for that is fragile, so every failure is:

  1. A TYPED exception class (catch by type, not message)
  2. Carrying a CODE class attribute (machine-readable, API-safe)
  3. Carrying structured DATA as attributes (not just a message string)

Example:
    try:
        service.approve_as_manager(report_id, actor_id)
    except InvalidStateError as e:
        api_response(code=e.code, status=e.current_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ExpenseKernelError (base)
    |
    +-- NotFoundError
    |   +-- ReportNotFoundError
    |   +-- BudgetNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- InvalidStateError
    |
    +-- ValidationError
    |   +-- WebhookPayloadError
    |
    +-- AlreadyPaidError
    |
    +-- ExternalServiceError
    |
    +-- ConcurrencyConflictError
    |
    +-- ImmutabilityViolationError
    |
    +-- WebhookSignatureError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | When Raised
----------------------------|-----------------------------------------------
NOT_FOUND                   | Report, budget category or payment missing
INVALID_STATE               | Transition not allowed from current status
VALIDATION_ERROR            | Missing/invalid field, blank rejection remarks
WEBHOOK_PAYLOAD_INVALID     | Webhook body is not a recognizable event
ALREADY_PAID                | Checkout requested for a session already paid
EXTERNAL_SERVICE_ERROR      | Gateway call failed or returned garbage
CONCURRENCY_CONFLICT        | Two operations raced on the same report
IMMUTABILITY_VIOLATION      | Update/delete of an append-only record
WEBHOOK_SIGNATURE_INVALID   | Webhook signature header missing or wrong

===============================================================================
PROPAGATION
===============================================================================

* NotFoundError and ValidationError are raised before any mutation begins.
* InvalidStateError and ConcurrencyConflictError abort the enclosing
  transaction; the facade rolls back the session.
* ExternalServiceError is retryable. The reconciler never assumes success
  and requires an explicit later confirmation.
"""


class ExpenseKernelError(Exception):
    """
    Base exception for all expense kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "EXPENSE_KERNEL_ERROR"


# Not-found exceptions


class NotFoundError(ExpenseKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ReportNotFoundError(NotFoundError):
    """Expense report with given ID was not found."""

    def __init__(self, report_id: str):
        self.report_id = report_id
        super().__init__("ExpenseReport", report_id)


class BudgetNotFoundError(NotFoundError):
    """No budget row exists for the category."""

    def __init__(self, category: str):
        self.category = category
        super().__init__("Budget", category)


class PaymentNotFoundError(NotFoundError):
    """No reimbursement payment session exists for the report or session id."""

    def __init__(self, reference: str):
        self.reference = reference
        super().__init__("ReimbursementPayment", reference)


# Workflow exceptions


class InvalidStateError(ExpenseKernelError):
    """Transition attempted from a status that does not permit it."""

    code: str = "INVALID_STATE"

    def __init__(self, report_id: str, current_status: str, action: str, reason: str = ""):
        self.report_id = report_id
        self.current_status = current_status
        self.action = action
        self.reason = reason
        message = f"Cannot {action} report {report_id} in status {current_status}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class ValidationError(ExpenseKernelError):
    """Missing or invalid required field."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class WebhookPayloadError(ValidationError):
    """Webhook body could not be parsed into a payment event."""

    code: str = "WEBHOOK_PAYLOAD_INVALID"

    def __init__(self, reason: str):
        super().__init__("webhook_body", reason)


# Reimbursement exceptions


class AlreadyPaidError(ExpenseKernelError):
    """Reimbursement initiated for a report whose session already shows paid."""

    code: str = "ALREADY_PAID"

    def __init__(self, report_id: str, session_id: str):
        self.report_id = report_id
        self.session_id = session_id
        super().__init__(
            f"Report {report_id} already paid through session {session_id}"
        )


class ExternalServiceError(ExpenseKernelError):
    """
    Payment gateway call failed or returned unparseable data.

    The operation that triggered the call is aborted with no local mutation.
    """

    code: str = "EXTERNAL_SERVICE_ERROR"

    def __init__(
        self,
        service: str,
        reason: str,
        status_code: int | None = None,
        retryable: bool = True,
    ):
        self.service = service
        self.reason = reason
        self.status_code = status_code
        self.retryable = retryable
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{service} error{detail}: {reason}")


class WebhookSignatureError(ExpenseKernelError):
    """Webhook signature header missing or does not match the payload."""

    code: str = "WEBHOOK_SIGNATURE_INVALID"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid webhook signature: {reason}")


# Concurrency exceptions


class ConcurrencyConflictError(ExpenseKernelError):
    """Two operations raced on the same report."""

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, reason: str = ""):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        message = (
            f"Concurrent modification of {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


# Immutability exceptions


class ImmutabilityViolationError(ExpenseKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
