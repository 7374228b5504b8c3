"""Billing period ORM model for grouping accruals and payments into cycles."""

from datetime import date, datetime
from enum import Enum

from sqlalchemy import Date, DateTime, String
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel


class PeriodStatus(str, Enum):
    """Status of a billing period."""

    DRAFT = "draft"
    APPROVED = "approved"
    CLOSED = "closed"


class BillingPeriod(Base, BaseModel):
    """Model representing a billing period.

    Accruals belong to a period; payments fall into it by paid date. A closed
    period is immutable.
    """

    __tablename__ = "billing_periods"

    title: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        unique=True,
        index=True,
        comment="Period title (e.g., 'Январь 2025')",
    )
    date_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="First day of the period (inclusive)",
    )
    date_to: Mapped[date] = mapped_column(
        Date,
        nullable=False,
        comment="Last day of the period (inclusive)",
    )
    status: Mapped[PeriodStatus] = mapped_column(
        SQLEnum(PeriodStatus),
        nullable=False,
        default=PeriodStatus.DRAFT,
    )
    closed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Relationships
    accruals: Mapped[list["Accrual"]] = relationship(  # noqa: F821
        "Accrual",
        back_populates="period",
        cascade="all, delete-orphan",
    )

    def contains(self, day: date) -> bool:
        """Whether a date falls inside the period window."""
        return self.date_from <= day <= self.date_to

    def __repr__(self) -> str:
        return f"<BillingPeriod(id={self.id}, title={self.title}, status={self.status})>"


__all__ = ["BillingPeriod", "PeriodStatus"]
