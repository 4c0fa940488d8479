"""
SQLAlchemy ORM persistence for reimbursement checkout sessions.

One row per report: re-initiating a checkout overwrites the row, so a
report never has more than one active session.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from expense_kernel.db.base import Base


class ReimbursementPaymentModel(Base):
    """The external payment session for a report."""

    __tablename__ = "reimbursement_payments"

    __table_args__ = (
        UniqueConstraint("report_id", name="uq_reimbursement_payment_report"),
        Index("idx_reimbursement_payment_session", "session_id"),
    )

    report_id: Mapped[UUID] = mapped_column(ForeignKey("expense_reports.id"), nullable=False)
    session_id: Mapped[str] = mapped_column(String(255), nullable=False)
    checkout_url: Mapped[str] = mapped_column(String(1000), nullable=False, default="")
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="unpaid")
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    created_at: Mapped[datetime] = mapped_column(nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    processed_by_id: Mapped[UUID | None] = mapped_column(nullable=True)

    def to_dto(self):
        from expense_kernel.domain.values import PaymentSnapshot

        return PaymentSnapshot(
            id=self.id,
            report_id=self.report_id,
            session_id=self.session_id,
            checkout_url=self.checkout_url,
            status=self.status,
            amount=self.amount,
            created_at=self.created_at,
            paid_at=self.paid_at,
            processed_by_id=self.processed_by_id,
        )

    def __repr__(self) -> str:
        return f"<ReimbursementPaymentModel report={self.report_id} {self.session_id} [{self.status}]>"
