"""Reconciliation of accrued vs. paid amounts per plot for a billing period.

    balance = paid - accrued   (negative means the plot owes money)
    debt    = accrued - paid

Paid amounts are sums of non-voided payments dated inside the period window,
so payments of rolled-back import batches never count. The result depends
only on the stored rows, not on the order they were written in.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from sqlalchemy.orm import Session

from snt_billing.models.accrual import Accrual, PaymentCategory
from snt_billing.models.payment import Payment
from snt_billing.models.plot import Plot
from snt_billing.services.audit_service import AuditService
from snt_billing.services.ledger_service import LedgerService
from snt_billing.services.parsers import normalize_text
from snt_billing.services.period_service import BillingPeriodService, assert_period_editable

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")
_DIGITS_RE = re.compile(r"\d+")


@dataclass
class CategoryBalance:
    accrued: Decimal = ZERO
    paid: Decimal = ZERO

    @property
    def balance(self) -> Decimal:
        return self.paid - self.accrued

    @property
    def debt(self) -> Decimal:
        return self.accrued - self.paid

    def to_dict(self) -> dict:
        return {
            "accrued": str(self.accrued),
            "paid": str(self.paid),
            "balance": str(self.balance),
            "debt": str(self.debt),
        }


@dataclass
class ReconciliationRow:
    """Balance of one plot within a period, overall and per category."""

    plot_id: int
    plot_label: str
    owner_name: str | None
    categories: dict[PaymentCategory, CategoryBalance] = field(
        default_factory=lambda: {category: CategoryBalance() for category in PaymentCategory}
    )

    @property
    def accrued(self) -> Decimal:
        return sum((item.accrued for item in self.categories.values()), ZERO)

    @property
    def paid(self) -> Decimal:
        return sum((item.paid for item in self.categories.values()), ZERO)

    @property
    def balance(self) -> Decimal:
        return self.paid - self.accrued

    @property
    def debt(self) -> Decimal:
        return self.accrued - self.paid

    def to_dict(self) -> dict:
        return {
            "plot_id": self.plot_id,
            "plot": self.plot_label,
            "owner": self.owner_name,
            "accrued": str(self.accrued),
            "paid": str(self.paid),
            "balance": str(self.balance),
            "debt": str(self.debt),
            "by_category": {
                category.value: item.to_dict() for category, item in self.categories.items()
            },
        }


@dataclass
class Reconciliation:
    period_id: int
    title: str
    date_from: date
    date_to: date
    rows: list[ReconciliationRow]

    @property
    def totals(self) -> dict[str, Decimal]:
        accrued = sum((row.accrued for row in self.rows), ZERO)
        paid = sum((row.paid for row in self.rows), ZERO)
        return {"accrued": accrued, "paid": paid, "balance": paid - accrued, "debt": accrued - paid}

    @property
    def category_totals(self) -> dict[PaymentCategory, CategoryBalance]:
        totals = {category: CategoryBalance() for category in PaymentCategory}
        for row in self.rows:
            for category, item in row.categories.items():
                totals[category].accrued += item.accrued
                totals[category].paid += item.paid
        return totals

    def row_for(self, plot_id: int) -> ReconciliationRow | None:
        return next((row for row in self.rows if row.plot_id == plot_id), None)

    def to_dict(self) -> dict:
        return {
            "period": {
                "id": self.period_id,
                "title": self.title,
                "date_from": self.date_from.isoformat(),
                "date_to": self.date_to.isoformat(),
            },
            "rows": [row.to_dict() for row in self.rows],
            "totals": {key: str(value) for key, value in self.totals.items()},
            "category_totals": {
                category.value: item.to_dict() for category, item in self.category_totals.items()
            },
        }


def plot_sort_key(street: str, number: str) -> tuple:
    """Street alphabetically, then house numbers numerically ("2" before "10")."""
    digits = _DIGITS_RE.match(number or "")
    return (normalize_text(street), int(digits.group(0)) if digits else 0, normalize_text(number))


class ReconciliationService:
    """Build period reconciliations and debtor lists."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def build_period_reconciliation(
        self,
        period_id: int,
        include_zero: bool = False,
        update_accrual_paid: bool = False,
        actor: str | None = None,
    ) -> Reconciliation:
        """Reconcile a period.

        Args:
            period_id: Period to reconcile
            include_zero: Also list active plots with no accruals and no payments
            update_accrual_paid: Write per-category paid sums back to accrual rows
            actor: Staff member, recorded when accruals are written back

        Returns:
            Reconciliation with rows sorted by plot

        Raises:
            NotFoundError: Unknown period
            PeriodClosedError: update_accrual_paid on a closed period
        """
        period = BillingPeriodService(self.db).get_period(period_id)
        if update_accrual_paid:
            assert_period_editable(period)

        accruals = self.db.query(Accrual).filter(Accrual.period_id == period.id).all()
        payments = (
            self.db.query(Payment)
            .filter(
                Payment.is_voided.is_(False),
                Payment.plot_id.isnot(None),
                Payment.paid_at >= period.date_from,
                Payment.paid_at <= period.date_to,
            )
            .all()
        )

        plot_ids = {accrual.plot_id for accrual in accruals} | {payment.plot_id for payment in payments}
        plot_query = self.db.query(Plot)
        if include_zero:
            plots = [
                plot for plot in plot_query.all() if plot.is_active or plot.id in plot_ids
            ]
        elif plot_ids:
            plots = plot_query.filter(Plot.id.in_(plot_ids)).all()
        else:
            plots = []

        rows = {
            plot.id: ReconciliationRow(
                plot_id=plot.id, plot_label=plot.label, owner_name=plot.owner_name
            )
            for plot in plots
        }
        for accrual in accruals:
            rows[accrual.plot_id].categories[accrual.category].accrued += Decimal(
                accrual.amount_accrued
            )
        for payment in payments:
            rows[payment.plot_id].categories[payment.category].paid += Decimal(payment.amount)

        plots_by_id = {plot.id: plot for plot in plots}
        ordered = sorted(
            rows.values(),
            key=lambda row: plot_sort_key(plots_by_id[row.plot_id].street, plots_by_id[row.plot_id].number),
        )
        reconciliation = Reconciliation(
            period_id=period.id,
            title=period.title,
            date_from=period.date_from,
            date_to=period.date_to,
            rows=ordered,
        )

        if update_accrual_paid:
            self._write_back_paid(period, reconciliation, accruals, actor)

        logger.debug(
            "Reconciled period %d: %d rows, totals=%s",
            period.id,
            len(ordered),
            reconciliation.totals,
        )
        return reconciliation

    def _write_back_paid(self, period, reconciliation: Reconciliation, accruals, actor) -> None:
        ledger = LedgerService(self.db)
        by_key = {(accrual.plot_id, accrual.category): accrual for accrual in accruals}
        updated = 0
        for row in reconciliation.rows:
            for category, item in row.categories.items():
                accrual = by_key.get((row.plot_id, category))
                if accrual is None:
                    if item.paid == 0:
                        continue
                    accrual = ledger.ensure_accrual(period, row.plot_id, category)
                if Decimal(accrual.amount_paid) != item.paid:
                    accrual.amount_paid = item.paid
                    updated += 1

        AuditService.log(
            self.db, "period", period.id, "update_accrual_paid", actor, {"updated": updated}
        )
        self.db.commit()
        logger.info("Wrote paid amounts back to %d accruals of period %d", updated, period.id)

    def list_debtors(self, period_id: int, min_debt: Decimal = ZERO) -> list[ReconciliationRow]:
        """Plots whose debt exceeds min_debt, largest debt first."""
        reconciliation = self.build_period_reconciliation(period_id)
        debtors = [row for row in reconciliation.rows if row.debt > min_debt]
        return sorted(debtors, key=lambda row: row.debt, reverse=True)


__all__ = [
    "CategoryBalance",
    "Reconciliation",
    "ReconciliationRow",
    "ReconciliationService",
    "plot_sort_key",
]
