"""
BaseService -- abstract base for the kernel's write-side services.

Responsibility:
    Common constructor and session-handling contract.  Services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.

Invariants enforced:
    Transaction boundaries: services flush within the caller's transaction
    and never commit or rollback themselves.  ``ExpenseWorkflowService``
    (or a test) owns commit/rollback, which is what makes a transition's
    status change, ledger spend, approval record and audit row atomic.
"""

from abc import ABC

from sqlalchemy.orm import Session

from expense_kernel.domain.clock import Clock, SystemClock


class BaseService(ABC):
    """Abstract base class for kernel services."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
