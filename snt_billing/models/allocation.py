"""Allocation ORM model: part of a payment applied to a specific accrual."""

from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel


class Allocation(Base, BaseModel):
    """Link between a payment and an accrual with the applied amount."""

    __tablename__ = "allocations"

    payment_id: Mapped[int] = mapped_column(
        ForeignKey("payments.id"),
        nullable=False,
        index=True,
    )
    accrual_id: Mapped[int] = mapped_column(
        ForeignKey("accruals.id"),
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    payment: Mapped["Payment"] = relationship(  # noqa: F821
        "Payment",
        back_populates="allocations",
    )
    accrual: Mapped["Accrual"] = relationship(  # noqa: F821
        "Accrual",
        back_populates="allocations",
    )

    def __repr__(self) -> str:
        return (
            f"<Allocation(id={self.id}, payment_id={self.payment_id}, "
            f"accrual_id={self.accrual_id}, amount={self.amount})>"
        )


__all__ = ["Allocation"]
