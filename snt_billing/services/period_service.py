"""Billing period lifecycle: draft → approved → closed."""

import logging
from datetime import date, datetime, timezone

from sqlalchemy.orm import Session

from snt_billing.errors import NotFoundError, PeriodClosedError, ValidationError
from snt_billing.models.billing_period import BillingPeriod, PeriodStatus
from snt_billing.services.audit_service import AuditService

logger = logging.getLogger(__name__)


def assert_period_editable(period: BillingPeriod | None) -> None:
    """Reject writes that would change a closed period.

    A missing period (payment dated outside every period) is editable.

    Raises:
        PeriodClosedError: If the period is closed
    """
    if period is not None and period.status == PeriodStatus.CLOSED:
        raise PeriodClosedError()


class BillingPeriodService:
    """Service for billing period database operations."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def list_periods(self) -> list[BillingPeriod]:
        """List periods, most recent first."""
        return self.db.query(BillingPeriod).order_by(BillingPeriod.date_from.desc()).all()

    def get_period(self, period_id: int) -> BillingPeriod:
        """Get period by ID.

        Raises:
            NotFoundError: If no such period exists
        """
        period = self.db.get(BillingPeriod, period_id)
        if not period:
            raise NotFoundError(f"Period {period_id} not found")
        return period

    def find_period_for_date(self, day: date) -> BillingPeriod | None:
        """Period whose [date_from, date_to] window contains the day."""
        return (
            self.db.query(BillingPeriod)
            .filter(BillingPeriod.date_from <= day, BillingPeriod.date_to >= day)
            .order_by(BillingPeriod.date_from.desc())
            .first()
        )

    def create_period(
        self,
        title: str,
        date_from: date,
        date_to: date,
        actor: str | None = None,
    ) -> BillingPeriod:
        """Create a draft period.

        Args:
            title: Unique human-readable title (e.g., "Январь 2025")
            date_from: First day, inclusive
            date_to: Last day, inclusive
            actor: Staff member creating the period

        Returns:
            Created BillingPeriod

        Raises:
            ValidationError: Empty title, inverted dates, duplicate title or
                a window overlapping an existing period
        """
        title = (title or "").strip()
        if not title:
            raise ValidationError("title is required")
        if date_from > date_to:
            raise ValidationError("date_from must not be after date_to")

        if self.db.query(BillingPeriod).filter(BillingPeriod.title == title).first():
            raise ValidationError(f"Period '{title}' already exists")

        overlapping = (
            self.db.query(BillingPeriod)
            .filter(BillingPeriod.date_from <= date_to, BillingPeriod.date_to >= date_from)
            .first()
        )
        if overlapping:
            raise ValidationError(f"Period overlaps '{overlapping.title}'")

        period = BillingPeriod(
            title=title,
            date_from=date_from,
            date_to=date_to,
            status=PeriodStatus.DRAFT,
        )
        self.db.add(period)
        self.db.flush()

        AuditService.log(
            self.db,
            "period",
            period.id,
            "create",
            actor,
            {"title": title, "date_from": date_from.isoformat(), "date_to": date_to.isoformat()},
        )
        self.db.commit()
        self.db.refresh(period)

        logger.info(
            "Created billing period: id=%d, title=%s, dates=%s to %s",
            period.id,
            title,
            date_from,
            date_to,
        )
        return period

    def approve_period(self, period_id: int, actor: str | None = None) -> BillingPeriod:
        """Move a draft period to approved; approving twice is a no-op."""
        period = self.get_period(period_id)
        assert_period_editable(period)
        if period.status == PeriodStatus.APPROVED:
            return period

        period.status = PeriodStatus.APPROVED
        AuditService.log(self.db, "period", period.id, "approve", actor)
        self.db.commit()
        logger.info("Approved billing period: id=%d", period.id)
        return period

    def close_period(self, period_id: int, actor: str | None = None) -> BillingPeriod:
        """Close the period and snapshot its reconciliation totals into the audit log.

        Closing is final: there is no reopen.

        Raises:
            PeriodClosedError: If the period is already closed
        """
        from snt_billing.services.reconciliation_service import ReconciliationService

        period = self.get_period(period_id)
        assert_period_editable(period)

        reconciliation = ReconciliationService(self.db).build_period_reconciliation(period.id)
        totals = {key: str(value) for key, value in reconciliation.totals.items()}

        period.status = PeriodStatus.CLOSED
        period.closed_at = datetime.now(timezone.utc)
        AuditService.log(
            self.db,
            "period",
            period.id,
            "close",
            actor,
            {"totals": totals, "plots": len(reconciliation.rows)},
        )
        self.db.commit()

        logger.info("Closed billing period: id=%d, totals=%s", period.id, totals)
        return period


__all__ = ["BillingPeriodService", "assert_period_editable"]
