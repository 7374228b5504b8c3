"""Allocation of payments to accruals.

A payment's money is applied to the open accruals of its plot in a fixed
order: oldest period first, then by category priority (membership, target,
electricity). Whatever cannot be applied stays on the payment as credit.

Allocation statuses of a payment:
- UNALLOCATED: nothing applied yet
- PARTIALLY_ALLOCATED: part applied, open accruals remain
- ALLOCATED: fully applied
- OVERPAID: remainder left and the plot has no open accruals
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from snt_billing.errors import NotFoundError, ValidationError
from snt_billing.models.accrual import Accrual, PaymentCategory
from snt_billing.models.allocation import Allocation
from snt_billing.models.billing_period import BillingPeriod, PeriodStatus
from snt_billing.models.payment import MatchStatus, Payment
from snt_billing.services.audit_service import AuditService
from snt_billing.services.period_service import assert_period_editable

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

CATEGORY_PRIORITY = {
    PaymentCategory.MEMBERSHIP: 0,
    PaymentCategory.TARGET: 1,
    PaymentCategory.ELECTRICITY: 2,
}


class AllocationStatus(str, Enum):
    """How much of a payment has been applied to accruals."""

    UNALLOCATED = "unallocated"
    PARTIALLY_ALLOCATED = "partially_allocated"
    ALLOCATED = "allocated"
    OVERPAID = "overpaid"


@dataclass
class PaymentAllocationSummary:
    """Allocation state of one payment."""

    payment_id: int
    amount: Decimal
    allocated: Decimal
    remaining: Decimal
    status: AllocationStatus

    def to_dict(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "amount": str(self.amount),
            "allocated": str(self.allocated),
            "remaining": str(self.remaining),
            "status": self.status.value,
        }


def allocated_amount(payment: Payment) -> Decimal:
    return sum((allocation.amount for allocation in payment.allocations), ZERO)


def accrual_outstanding(accrual: Accrual) -> Decimal:
    """Part of the accrual not yet covered by allocations of live payments."""
    covered = sum(
        (
            allocation.amount
            for allocation in accrual.allocations
            if allocation.payment is not None and not allocation.payment.is_voided
        ),
        ZERO,
    )
    return Decimal(accrual.amount_accrued) - covered


class PaymentAllocationService:
    """Apply, inspect and undo payment allocations."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def open_accruals(self, plot_id: int) -> list[Accrual]:
        """Accruals of the plot in non-closed periods that still have money owed.

        Ordered by period start, then category priority.
        """
        accruals = (
            self.db.query(Accrual)
            .join(BillingPeriod, Accrual.period_id == BillingPeriod.id)
            .filter(Accrual.plot_id == plot_id, BillingPeriod.status != PeriodStatus.CLOSED)
            .all()
        )
        accruals.sort(
            key=lambda accrual: (
                accrual.period.date_from,
                CATEGORY_PRIORITY[accrual.category],
                accrual.id,
            )
        )
        return [accrual for accrual in accruals if accrual_outstanding(accrual) > 0]

    def auto_allocate_payment(
        self,
        payment: Payment,
        actor: str | None = None,
        commit: bool = True,
    ) -> list[Allocation]:
        """Apply the unallocated remainder of a payment to open accruals.

        No-op for voided or unmatched payments and for payments whose
        allocations were undone by hand (auto_allocate_disabled).
        """
        if (
            payment.is_voided
            or payment.plot_id is None
            or payment.match_status != MatchStatus.MATCHED
            or payment.auto_allocate_disabled
        ):
            return []

        remaining = Decimal(payment.amount) - allocated_amount(payment)
        created: list[Allocation] = []
        for accrual in self.open_accruals(payment.plot_id):
            if remaining <= 0:
                break
            portion = min(remaining, accrual_outstanding(accrual))
            allocation = Allocation(payment=payment, accrual=accrual, amount=portion)
            self.db.add(allocation)
            created.append(allocation)
            remaining -= portion

        if created:
            self.db.flush()
            AuditService.log(
                self.db,
                "payment",
                payment.id,
                "auto_allocate",
                actor,
                {"allocations": [[a.accrual_id, str(a.amount)] for a in created]},
            )
            logger.debug("Auto-allocated payment %d across %d accruals", payment.id, len(created))
        if commit:
            self.db.commit()
        return created

    def auto_allocate_plot(self, plot_id: int, actor: str | None = None) -> int:
        """Auto-allocate every live payment of a plot, oldest first.

        Returns:
            Number of allocations created
        """
        payments = (
            self.db.query(Payment)
            .filter(Payment.plot_id == plot_id, Payment.is_voided.is_(False))
            .order_by(Payment.paid_at, Payment.id)
            .all()
        )
        count = 0
        for payment in payments:
            count += len(self.auto_allocate_payment(payment, actor=actor, commit=False))
        self.db.commit()
        logger.info("Auto-allocated plot %d: %d allocations", plot_id, count)
        return count

    def allocate(
        self,
        payment_id: int,
        accrual_id: int,
        amount: Decimal,
        actor: str | None = None,
    ) -> Allocation:
        """Manually apply part of a payment to a specific accrual.

        Raises:
            NotFoundError: Unknown payment or accrual
            ValidationError: Amount not positive or exceeding what is left on
                either side, voided payment, or accrual of another plot
            PeriodClosedError: The accrual's period is closed
        """
        payment = self._get_payment(payment_id)
        accrual = self.db.get(Accrual, accrual_id)
        if not accrual:
            raise NotFoundError(f"Accrual {accrual_id} not found")

        amount = Decimal(str(amount))
        if amount <= 0:
            raise ValidationError("amount must be positive")
        if payment.is_voided:
            raise ValidationError("Cannot allocate a voided payment")
        if payment.plot_id != accrual.plot_id:
            raise ValidationError("Payment and accrual belong to different plots")
        assert_period_editable(accrual.period)

        remaining = Decimal(payment.amount) - allocated_amount(payment)
        if amount > remaining:
            raise ValidationError(f"Only {remaining} left on payment {payment.id}")
        outstanding = accrual_outstanding(accrual)
        if amount > outstanding:
            raise ValidationError(f"Only {outstanding} outstanding on accrual {accrual.id}")

        allocation = Allocation(payment=payment, accrual=accrual, amount=amount)
        self.db.add(allocation)
        self.db.flush()
        AuditService.log(
            self.db,
            "payment",
            payment.id,
            "allocate",
            actor,
            {"accrual_id": accrual.id, "amount": str(amount)},
        )
        self.db.commit()
        logger.info(
            "Allocated %s of payment %d to accrual %d", amount, payment.id, accrual.id
        )
        return allocation

    def unapply_payment(self, payment_id: int, actor: str | None = None) -> int:
        """Remove all allocations of a payment and stop auto-allocating it.

        Returns:
            Number of allocations removed
        """
        payment = self._get_payment(payment_id)
        for allocation in payment.allocations:
            assert_period_editable(allocation.accrual.period)

        removed = len(payment.allocations)
        payment.allocations.clear()
        payment.auto_allocate_disabled = True
        AuditService.log(self.db, "payment", payment.id, "unapply", actor, {"removed": removed})
        self.db.commit()
        logger.info("Unapplied payment %d: %d allocations removed", payment.id, removed)
        return removed

    def payment_summary(self, payment: Payment) -> PaymentAllocationSummary:
        amount = Decimal(payment.amount)
        allocated = allocated_amount(payment)
        remaining = amount - allocated

        if remaining <= 0:
            status = AllocationStatus.ALLOCATED
        elif payment.plot_id is not None and not payment.is_voided and not self.open_accruals(
            payment.plot_id
        ):
            status = AllocationStatus.OVERPAID
        elif allocated == 0:
            status = AllocationStatus.UNALLOCATED
        else:
            status = AllocationStatus.PARTIALLY_ALLOCATED

        return PaymentAllocationSummary(
            payment_id=payment.id,
            amount=amount,
            allocated=allocated,
            remaining=remaining,
            status=status,
        )

    def plot_credit(self, plot_id: int) -> Decimal:
        """Money paid by a plot that has nothing left to cover."""
        if self.open_accruals(plot_id):
            return ZERO
        payments = (
            self.db.query(Payment)
            .filter(Payment.plot_id == plot_id, Payment.is_voided.is_(False))
            .all()
        )
        return sum(
            (Decimal(payment.amount) - allocated_amount(payment) for payment in payments),
            ZERO,
        )

    def _get_payment(self, payment_id: int) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment


__all__ = [
    "AllocationStatus",
    "CATEGORY_PRIORITY",
    "PaymentAllocationService",
    "PaymentAllocationSummary",
    "accrual_outstanding",
    "allocated_amount",
]
