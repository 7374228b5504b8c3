"""Payment ORM model for incoming money, imported or entered by the office."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import JSON, Boolean, Date, DateTime, Float, ForeignKey, Index, Numeric, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel
from snt_billing.models.accrual import PaymentCategory


class MatchStatus(str, Enum):
    """Outcome of resolving a payment to a plot."""

    MATCHED = "matched"
    UNMATCHED = "unmatched"


class Payment(Base, BaseModel):
    """Model representing a payment.

    Append-only: corrections void the row (is_voided) instead of deleting it.
    plot_id is the plot the payment counts toward in balances; matched_plot_id
    records what the matcher (or a manual override) resolved.
    """

    __tablename__ = "payments"

    plot_id: Mapped[int | None] = mapped_column(
        ForeignKey("plots.id"),
        nullable=True,
        index=True,
        comment="Plot credited with the payment; NULL until matched",
    )
    category: Mapped[PaymentCategory] = mapped_column(
        SQLEnum(PaymentCategory),
        nullable=False,
        default=PaymentCategory.MEMBERSHIP,
    )
    amount: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        comment="Payment amount in rubles",
    )
    paid_at: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        index=True,
    )
    method: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default="bank",
        comment="bank | cash | card",
    )
    reference: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        comment="Bank operation reference, if the statement provides one",
    )
    payer: Mapped[str | None] = mapped_column(String(255), nullable=True)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)
    fingerprint: Mapped[str | None] = mapped_column(
        String(512),
        nullable=True,
        index=True,
        comment="Deduplication key; NULL when it cannot be derived",
    )

    # Matching
    matched_plot_id: Mapped[int | None] = mapped_column(
        ForeignKey("plots.id"),
        nullable=True,
    )
    match_status: Mapped[MatchStatus] = mapped_column(
        SQLEnum(MatchStatus),
        nullable=False,
        default=MatchStatus.UNMATCHED,
    )
    match_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    match_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    match_candidates: Mapped[list[int] | None] = mapped_column(JSON, nullable=True)
    auto_allocate_disabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    # Voiding
    is_voided: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)
    void_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    voided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    import_batch_id: Mapped[int | None] = mapped_column(
        ForeignKey("import_batches.id"),
        nullable=True,
        index=True,
    )

    # Relationships
    plot: Mapped["Plot | None"] = relationship(  # noqa: F821
        "Plot",
        foreign_keys=[plot_id],
    )
    import_batch: Mapped["ImportBatch | None"] = relationship(  # noqa: F821
        "ImportBatch",
        back_populates="payments",
    )
    allocations: Mapped[list["Allocation"]] = relationship(  # noqa: F821
        "Allocation",
        back_populates="payment",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("idx_payment_plot_date", "plot_id", "paid_at"),
        Index("idx_payment_batch_voided", "import_batch_id", "is_voided"),
    )

    @property
    def candidates(self) -> list[int]:
        return list(self.match_candidates or [])

    def to_audit(self) -> dict[str, Any]:
        """Snapshot of the fields worth keeping in the audit log."""
        return {
            "plot_id": self.plot_id,
            "amount": str(self.amount),
            "paid_at": self.paid_at.isoformat() if self.paid_at else None,
            "category": self.category.value if self.category else None,
            "match_status": self.match_status.value if self.match_status else None,
            "match_reason": self.match_reason,
            "is_voided": self.is_voided,
        }

    def __repr__(self) -> str:
        return (
            f"<Payment(id={self.id}, plot_id={self.plot_id}, amount={self.amount}, "
            f"paid_at={self.paid_at}, match_status={self.match_status}, is_voided={self.is_voided})>"
        )


__all__ = ["Payment", "MatchStatus"]
