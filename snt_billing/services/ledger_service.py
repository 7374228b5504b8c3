"""Ledger of accruals and payments.

Payments are append-only: corrections void a payment instead of deleting it.
Every write checks the period its date falls into and is rejected once that
period is closed.
"""

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from snt_billing.errors import DuplicatePaymentError, NotFoundError, ValidationError
from snt_billing.models.accrual import Accrual, PaymentCategory
from snt_billing.models.billing_period import BillingPeriod
from snt_billing.models.payment import MatchStatus, Payment
from snt_billing.models.plot import Plot
from snt_billing.services.allocation_service import PaymentAllocationService
from snt_billing.services.audit_service import AuditService
from snt_billing.services.fingerprint import build_payment_fingerprint
from snt_billing.services.matcher import manual_match
from snt_billing.services.period_service import BillingPeriodService, assert_period_editable

logger = logging.getLogger(__name__)

PAYMENT_METHODS = ("bank", "cash", "card")


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce to a two-decimal Decimal."""
    try:
        return Decimal(str(value)).quantize(Decimal("0.01"))
    except ArithmeticError as e:
        raise ValidationError(f"Invalid amount '{value}'") from e


class LedgerService:
    """Service for accrual and payment database operations."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db
        self.periods = BillingPeriodService(db)

    # Accruals

    def ensure_accrual(
        self,
        period: BillingPeriod,
        plot_id: int,
        category: PaymentCategory,
    ) -> Accrual:
        """Return the (period, plot, category) accrual, creating a zero one if missing.

        Flushes but does not commit; callers own the transaction.
        """
        accrual = (
            self.db.query(Accrual)
            .filter(
                Accrual.period_id == period.id,
                Accrual.plot_id == plot_id,
                Accrual.category == category,
            )
            .first()
        )
        if accrual:
            return accrual

        accrual = Accrual(
            period_id=period.id,
            plot_id=plot_id,
            category=category,
            amount_accrued=Decimal("0.00"),
            amount_paid=Decimal("0.00"),
        )
        self.db.add(accrual)
        self.db.flush()
        logger.debug(
            "Created accrual on demand: period=%d, plot=%d, category=%s",
            period.id,
            plot_id,
            category.value,
        )
        return accrual

    def set_accrual_amount(
        self,
        period_id: int,
        plot_id: int,
        category: PaymentCategory,
        amount: Decimal,
        actor: str | None = None,
    ) -> Accrual:
        """Set the accrued amount of a plot for a category.

        Raises:
            PeriodClosedError: If the period is closed
            ValidationError: If the amount is negative
        """
        period = self.periods.get_period(period_id)
        assert_period_editable(period)
        self._get_plot(plot_id)
        amount = to_money(amount)
        if amount < 0:
            raise ValidationError("amount must not be negative")

        accrual = self.ensure_accrual(period, plot_id, category)
        previous = accrual.amount_accrued
        accrual.amount_accrued = amount
        AuditService.log(
            self.db,
            "accrual",
            accrual.id,
            "set_amount",
            actor,
            {"from": str(previous), "to": str(amount)},
        )
        self.db.commit()
        self.db.refresh(accrual)
        logger.info(
            "Accrual set: period=%d, plot=%d, category=%s, amount=%s",
            period_id,
            plot_id,
            category.value,
            amount,
        )
        return accrual

    def generate_accruals(
        self,
        period_id: int,
        category: PaymentCategory,
        amount: Decimal,
        plot_ids: list[int] | None = None,
        actor: str | None = None,
    ) -> dict:
        """Create one accrual per plot (all active plots by default).

        Existing (period, plot, category) rows are left untouched and reported
        as duplicates.

        Returns:
            {"created_count": int, "skipped_count": int, "duplicates": [plot_id, ...]}
        """
        period = self.periods.get_period(period_id)
        assert_period_editable(period)
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount must be positive")

        if plot_ids is None:
            plots = self.db.query(Plot).filter(Plot.is_active.is_(True)).order_by(Plot.id).all()
        else:
            plots = [self._get_plot(plot_id) for plot_id in dict.fromkeys(plot_ids)]

        existing = {
            plot_id
            for (plot_id,) in self.db.query(Accrual.plot_id).filter(
                Accrual.period_id == period.id, Accrual.category == category
            )
        }

        created = 0
        duplicates: list[int] = []
        for plot in plots:
            if plot.id in existing:
                duplicates.append(plot.id)
                continue
            self.db.add(
                Accrual(
                    period_id=period.id,
                    plot_id=plot.id,
                    category=category,
                    amount_accrued=amount,
                    amount_paid=Decimal("0.00"),
                )
            )
            created += 1

        AuditService.log(
            self.db,
            "period",
            period.id,
            "generate_accruals",
            actor,
            {"category": category.value, "amount": str(amount), "created": created},
        )
        self.db.commit()
        logger.info(
            "Generated accruals: period=%d, category=%s, created=%d, skipped=%d",
            period.id,
            category.value,
            created,
            len(duplicates),
        )
        return {"created_count": created, "skipped_count": len(duplicates), "duplicates": duplicates}

    def list_accruals(self, period_id: int, plot_id: int | None = None) -> list[Accrual]:
        query = self.db.query(Accrual).filter(Accrual.period_id == period_id)
        if plot_id is not None:
            query = query.filter(Accrual.plot_id == plot_id)
        return query.order_by(Accrual.plot_id, Accrual.id).all()

    # Payments

    def find_duplicate(self, fingerprint: str | None) -> Payment | None:
        """Live (non-voided) payment sharing the fingerprint."""
        if not fingerprint:
            return None
        return (
            self.db.query(Payment)
            .filter(Payment.fingerprint == fingerprint, Payment.is_voided.is_(False))
            .first()
        )

    def record_payment(
        self,
        plot_id: int,
        amount: Decimal,
        paid_at: date,
        category: PaymentCategory = PaymentCategory.MEMBERSHIP,
        reference: str | None = None,
        payer: str | None = None,
        purpose: str | None = None,
        method: str = "bank",
        actor: str | None = None,
        auto_allocate: bool = False,
    ) -> Payment:
        """Record a payment entered by the office for a known plot.

        Raises:
            ValidationError: Non-positive amount or unknown method
            NotFoundError: Unknown plot
            PeriodClosedError: The payment date falls into a closed period
            DuplicatePaymentError: A live payment with the same fingerprint exists
        """
        amount = to_money(amount)
        if amount <= 0:
            raise ValidationError("amount must be positive")
        if method not in PAYMENT_METHODS:
            raise ValidationError(f"method must be one of {', '.join(PAYMENT_METHODS)}")
        self._get_plot(plot_id)

        period = self.periods.find_period_for_date(paid_at)
        assert_period_editable(period)

        fingerprint = build_payment_fingerprint(
            plot_id, category, paid_at, amount, purpose=purpose, reference=reference
        )
        if self.find_duplicate(fingerprint):
            raise DuplicatePaymentError()

        match = manual_match(plot_id)
        payment = Payment(
            plot_id=plot_id,
            category=category,
            amount=amount,
            paid_at=paid_at,
            method=method,
            reference=reference,
            payer=payer,
            purpose=purpose,
            fingerprint=fingerprint,
            matched_plot_id=plot_id,
            match_status=match.status,
            match_confidence=match.confidence,
            match_reason=match.reason,
            match_candidates=match.candidates,
        )
        self.db.add(payment)
        if period is not None:
            self.ensure_accrual(period, plot_id, category)
        self.db.flush()

        AuditService.log(self.db, "payment", payment.id, "create", actor, payment.to_audit())
        if auto_allocate:
            PaymentAllocationService(self.db).auto_allocate_payment(payment, actor, commit=False)
        self.db.commit()
        self.db.refresh(payment)
        logger.info(
            "Recorded payment: id=%d, plot=%d, amount=%s, paid_at=%s",
            payment.id,
            plot_id,
            amount,
            paid_at,
        )
        return payment

    def get_payment(self, payment_id: int) -> Payment:
        payment = self.db.get(Payment, payment_id)
        if not payment:
            raise NotFoundError(f"Payment {payment_id} not found")
        return payment

    def list_payments(
        self,
        period_id: int | None = None,
        plot_id: int | None = None,
        match_status: MatchStatus | None = None,
        import_batch_id: int | None = None,
        include_voided: bool = False,
    ) -> list[Payment]:
        """List payments ordered by date, optionally filtered."""
        query = self.db.query(Payment)
        if period_id is not None:
            period = self.periods.get_period(period_id)
            query = query.filter(Payment.paid_at >= period.date_from, Payment.paid_at <= period.date_to)
        if plot_id is not None:
            query = query.filter(Payment.plot_id == plot_id)
        if match_status is not None:
            query = query.filter(Payment.match_status == match_status)
        if import_batch_id is not None:
            query = query.filter(Payment.import_batch_id == import_batch_id)
        if not include_voided:
            query = query.filter(Payment.is_voided.is_(False))
        return query.order_by(Payment.paid_at, Payment.id).all()

    def void_payment(
        self,
        payment_id: int,
        reason: str | None = None,
        actor: str | None = None,
    ) -> Payment:
        """Void a payment and drop its allocations; voiding twice is a no-op.

        Raises:
            PeriodClosedError: The payment date, or an accrual the payment is
                allocated to, falls into a closed period
        """
        payment = self.get_payment(payment_id)
        if payment.is_voided:
            return payment
        assert_period_editable(self.periods.find_period_for_date(payment.paid_at))
        for allocation in payment.allocations:
            assert_period_editable(allocation.accrual.period)

        payment.is_voided = True
        payment.void_reason = reason
        payment.voided_at = datetime.now(timezone.utc)
        payment.allocations.clear()
        AuditService.log(self.db, "payment", payment.id, "void", actor, {"reason": reason})
        self.db.commit()
        logger.info("Voided payment: id=%d, reason=%s", payment.id, reason)
        return payment

    def match_payment_manually(
        self,
        payment_id: int,
        plot_id: int,
        actor: str | None = None,
    ) -> Payment:
        """Override the matcher: credit the payment to the chosen plot.

        Allocations made for a previous plot are removed.

        Raises:
            ValidationError: The payment is voided
            NotFoundError: Unknown payment or plot
            PeriodClosedError: The payment date falls into a closed period
        """
        payment = self.get_payment(payment_id)
        if payment.is_voided:
            raise ValidationError("Cannot match a voided payment")
        self._get_plot(plot_id)
        period = self.periods.find_period_for_date(payment.paid_at)
        assert_period_editable(period)

        before = payment.to_audit()
        if payment.plot_id != plot_id:
            payment.allocations.clear()

        match = manual_match(plot_id)
        payment.plot_id = plot_id
        payment.matched_plot_id = plot_id
        payment.match_status = match.status
        payment.match_reason = match.reason
        payment.match_confidence = match.confidence
        if not payment.reference:
            payment.fingerprint = build_payment_fingerprint(
                plot_id,
                payment.category,
                payment.paid_at,
                payment.amount,
                purpose=payment.purpose,
            )
        if period is not None:
            self.ensure_accrual(period, plot_id, payment.category)

        AuditService.log(
            self.db,
            "payment",
            payment.id,
            "match_manual",
            actor,
            {"before": before, "after": payment.to_audit()},
        )
        self.db.commit()
        logger.info("Payment %d manually matched to plot %d", payment.id, plot_id)
        return payment

    def _get_plot(self, plot_id: int) -> Plot:
        plot = self.db.get(Plot, plot_id)
        if not plot:
            raise NotFoundError(f"Plot {plot_id} not found")
        return plot


__all__ = ["LedgerService", "PAYMENT_METHODS", "to_money"]
