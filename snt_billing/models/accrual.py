"""Accrual ORM model: amount owed by a plot for a category within a period."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import ForeignKey, Index, Numeric, UniqueConstraint
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel


class PaymentCategory(str, Enum):
    """Fee categories shared by accruals and payments."""

    MEMBERSHIP = "membership"
    """Membership fee (членский взнос)"""

    TARGET = "target"
    """Target fee for a specific project (целевой взнос)"""

    ELECTRICITY = "electricity"
    """Electricity consumption (электроэнергия)"""


class Accrual(Base, BaseModel):
    """One row per plot per category per period, created on demand."""

    __tablename__ = "accruals"

    period_id: Mapped[int] = mapped_column(
        ForeignKey("billing_periods.id"),
        nullable=False,
        index=True,
    )
    plot_id: Mapped[int] = mapped_column(
        ForeignKey("plots.id"),
        nullable=False,
        index=True,
    )
    category: Mapped[PaymentCategory] = mapped_column(
        SQLEnum(PaymentCategory),
        nullable=False,
    )
    amount_accrued: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Amount owed in rubles",
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(12, 2),
        nullable=False,
        default=Decimal("0.00"),
        comment="Paid amount as of the last reconciliation write-back",
    )

    # Relationships
    period: Mapped["BillingPeriod"] = relationship(  # noqa: F821
        "BillingPeriod",
        back_populates="accruals",
    )
    plot: Mapped["Plot"] = relationship(  # noqa: F821
        "Plot",
        back_populates="accruals",
    )
    allocations: Mapped[list["Allocation"]] = relationship(  # noqa: F821
        "Allocation",
        back_populates="accrual",
    )

    __table_args__ = (
        UniqueConstraint("period_id", "plot_id", "category", name="uq_accrual_period_plot_category"),
        Index("idx_accrual_plot_period", "plot_id", "period_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Accrual(id={self.id}, period_id={self.period_id}, plot_id={self.plot_id}, "
            f"category={self.category}, amount_accrued={self.amount_accrued})>"
        )


__all__ = ["Accrual", "PaymentCategory"]
