"""Statement import: preview, apply as a batch, roll back.

A statement is parsed, every incoming row is matched to a plot and
fingerprinted, and rows already present as live payments are flagged as
duplicates. Applying creates one ImportBatch with one Payment per accepted
row; rolling the batch back voids all its payments at once.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlalchemy.orm import Session

from snt_billing.config import settings
from snt_billing.errors import NotFoundError, ValidationError
from snt_billing.models.billing_period import BillingPeriod, PeriodStatus
from snt_billing.models.import_batch import ImportBatch, ImportBatchStatus
from snt_billing.models.payment import Payment
from snt_billing.services.allocation_service import PaymentAllocationService
from snt_billing.services.audit_service import AuditService
from snt_billing.services.fingerprint import build_payment_fingerprint
from snt_billing.services.ledger_service import LedgerService
from snt_billing.services.matcher import MatchResult, PaymentMatcher, manual_match
from snt_billing.services.period_service import BillingPeriodService, assert_period_editable
from snt_billing.services.plot_directory import PlotRegistryService
from snt_billing.services.statement_import import StatementRow, parse_statement

logger = logging.getLogger(__name__)

STATUS_READY = "ready"
STATUS_DUPLICATE = "duplicate"
STATUS_UNMATCHED = "unmatched"
STATUS_INVALID = "invalid"
STATUS_SKIPPED_OUT = "skipped_out"
STATUS_PERIOD_CLOSED = "period_closed"

ROLLBACK_REASON = "import_rollback"


@dataclass
class PreviewRow:
    """A statement row with its match, fingerprint and import status."""

    row: StatementRow
    status: str
    match: MatchResult | None = None
    fingerprint: str | None = None
    period_id: int | None = None
    duplicate_of: int | None = None

    @property
    def plot_id(self) -> int | None:
        return self.match.plot_id if self.match else None

    def to_dict(self) -> dict:
        row = self.row
        return {
            "row_index": row.row_index,
            "status": self.status,
            "paid_at": row.paid_at.isoformat() if row.paid_at else None,
            "amount": str(row.amount) if row.amount is not None else None,
            "direction": row.direction,
            "category": row.category.value,
            "payer": row.payer,
            "purpose": row.purpose,
            "reference": row.reference,
            "plot_label": row.plot_label,
            "plot_id": self.plot_id,
            "match_reason": self.match.reason if self.match else None,
            "match_confidence": self.match.confidence if self.match else None,
            "candidates": self.match.candidates if self.match else [],
            "fingerprint": self.fingerprint,
            "period_id": self.period_id,
            "duplicate_of": self.duplicate_of,
            "errors": list(row.errors),
        }


@dataclass
class ImportPreview:
    rows: list[PreviewRow]

    @property
    def totals(self) -> dict[str, int]:
        counts = Counter(item.status for item in self.rows)
        return {
            "total": len(self.rows),
            "matched": counts[STATUS_READY],
            "unmatched": counts[STATUS_UNMATCHED],
            "duplicates": counts[STATUS_DUPLICATE],
            "invalid": counts[STATUS_INVALID],
            "skipped_out": counts[STATUS_SKIPPED_OUT],
            "period_closed": counts[STATUS_PERIOD_CLOSED],
        }

    def to_dict(self) -> dict:
        return {"totals": self.totals, "rows": [item.to_dict() for item in self.rows]}


@dataclass
class ImportResult:
    batch_id: int
    created: int
    skipped: list[dict] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "batch_id": self.batch_id,
            "created": self.created,
            "skipped": self.skipped,
            "warnings": self.warnings,
        }


@dataclass
class RollbackResult:
    batch_id: int
    voided: int

    def to_dict(self) -> dict:
        return {"batch_id": self.batch_id, "voided": self.voided}


class StatementImportService:
    """Import bank statements as payment batches."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db
        self.periods = BillingPeriodService(db)
        self.ledger = LedgerService(db)

    def preview(
        self,
        content: bytes | str,
        overrides: dict[int, int] | None = None,
    ) -> ImportPreview:
        """Classify every row of a statement without writing anything.

        Args:
            content: Raw statement file
            overrides: row_index → plot_id chosen by the operator; beats the matcher

        Returns:
            ImportPreview with per-row status and totals
        """
        parsed = parse_statement(content)
        directory = PlotRegistryService(self.db).directory()
        matcher = PaymentMatcher(directory)
        overrides = overrides or {}
        period_cache: dict[date, BillingPeriod | None] = {}

        items: list[PreviewRow] = []
        for row in parsed.rows:
            if not row.is_valid:
                items.append(PreviewRow(row=row, status=STATUS_INVALID))
                continue
            if row.is_outgoing:
                items.append(PreviewRow(row=row, status=STATUS_SKIPPED_OUT))
                continue

            if row.row_index in overrides:
                match = manual_match(overrides[row.row_index])
                if directory.get(match.plot_id) is None:
                    raise ValidationError(
                        f"Row {row.row_index}: plot {match.plot_id} does not exist"
                    )
            else:
                match = matcher.match(label=row.plot_label, purpose=row.purpose, payer_name=row.payer)

            if row.paid_at not in period_cache:
                period_cache[row.paid_at] = self.periods.find_period_for_date(row.paid_at)
            period = period_cache[row.paid_at]
            item = PreviewRow(
                row=row,
                status=STATUS_READY,
                match=match,
                period_id=period.id if period else None,
            )
            items.append(item)

            if not match.is_matched:
                item.status = STATUS_UNMATCHED
                continue
            if period is not None and period.status == PeriodStatus.CLOSED:
                item.status = STATUS_PERIOD_CLOSED
                continue
            item.fingerprint = build_payment_fingerprint(
                match.plot_id,
                row.category,
                row.paid_at,
                row.amount,
                purpose=row.purpose,
                reference=row.reference,
            )

        self._mark_duplicates(items)
        preview = ImportPreview(rows=items)
        logger.info("Statement preview: %s", preview.totals)
        return preview

    def _mark_duplicates(self, items: list[PreviewRow]) -> None:
        """Flag rows whose fingerprint exists as a live payment or earlier in the file."""
        fingerprints = {item.fingerprint for item in items if item.fingerprint}
        existing: dict[str, int] = {}
        if fingerprints:
            for payment_id, fingerprint in self.db.query(Payment.id, Payment.fingerprint).filter(
                Payment.fingerprint.in_(fingerprints), Payment.is_voided.is_(False)
            ):
                existing.setdefault(fingerprint, payment_id)

        seen: set[str] = set()
        for item in items:
            if item.status != STATUS_READY or not item.fingerprint:
                continue
            if item.fingerprint in existing:
                item.status = STATUS_DUPLICATE
                item.duplicate_of = existing[item.fingerprint]
            elif item.fingerprint in seen:
                item.status = STATUS_DUPLICATE
            else:
                seen.add(item.fingerprint)

    def apply_import(
        self,
        content: bytes | str,
        file_name: str | None = None,
        actor: str | None = None,
        comment: str | None = None,
        overrides: dict[int, int] | None = None,
        auto_allocate: bool | None = None,
    ) -> ImportResult:
        """Create payments for every ready row of the statement in a new batch.

        Outgoing rows are not recorded in the batch; every other row that is
        not imported is listed in ``skipped`` with its reason.
        """
        preview = self.preview(content, overrides=overrides)
        if auto_allocate is None:
            auto_allocate = settings.auto_allocate_on_import

        batch = ImportBatch(
            file_name=file_name,
            status=ImportBatchStatus.COMPLETED,
            total_rows=len(preview.rows),
            comment=comment,
            actor=actor,
        )
        self.db.add(batch)
        self.db.flush()

        allocator = PaymentAllocationService(self.db)
        created: list[Payment] = []
        skipped: list[dict] = []
        warnings: list[str] = []
        for item in preview.rows:
            if item.status == STATUS_SKIPPED_OUT:
                continue
            if item.status != STATUS_READY:
                skipped.append({"row_index": item.row.row_index, "reason": item.status})
                continue

            row, match = item.row, item.match
            if item.fingerprint is None:
                warnings.append(f"Row {row.row_index}: imported without duplicate check")
            payment = Payment(
                plot_id=match.plot_id,
                category=row.category,
                amount=row.amount,
                paid_at=row.paid_at,
                method="bank",
                reference=row.reference,
                payer=row.payer,
                purpose=row.purpose,
                fingerprint=item.fingerprint,
                matched_plot_id=match.plot_id,
                match_status=match.status,
                match_confidence=match.confidence,
                match_reason=match.reason,
                match_candidates=match.candidates,
                import_batch=batch,
            )
            self.db.add(payment)
            if item.period_id is not None:
                period = self.periods.get_period(item.period_id)
                self.ledger.ensure_accrual(period, match.plot_id, row.category)
            created.append(payment)

        self.db.flush()
        if auto_allocate:
            for payment in sorted(created, key=lambda p: (p.paid_at, p.id)):
                allocator.auto_allocate_payment(payment, actor, commit=False)

        batch.created_count = len(created)
        batch.skipped_count = len(skipped)
        batch.skipped = skipped
        batch.warnings = warnings
        AuditService.log(
            self.db,
            "import_batch",
            batch.id,
            "import",
            actor,
            {"file_name": file_name, "created": len(created), "skipped": len(skipped)},
        )
        self.db.commit()

        logger.info(
            "Imported statement %s: batch=%d, created=%d, skipped=%d",
            file_name,
            batch.id,
            len(created),
            len(skipped),
        )
        return ImportResult(
            batch_id=batch.id,
            created=len(created),
            skipped=skipped,
            warnings=warnings,
        )

    def rollback_batch(
        self,
        batch_id: int,
        actor: str | None = None,
        reason: str | None = None,
    ) -> RollbackResult:
        """Void every live payment of the batch; a second call voids nothing.

        Raises:
            NotFoundError: Unknown batch
            PeriodClosedError: A payment of the batch, or an accrual it is
                allocated to, falls into a closed period
        """
        batch = self.get_batch(batch_id)
        payments = [payment for payment in batch.payments if not payment.is_voided]

        for payment in payments:
            assert_period_editable(self.periods.find_period_for_date(payment.paid_at))
            for allocation in payment.allocations:
                assert_period_editable(allocation.accrual.period)

        now = datetime.now(timezone.utc)
        for payment in payments:
            payment.is_voided = True
            payment.void_reason = reason or ROLLBACK_REASON
            payment.voided_at = now
            payment.allocations.clear()

        if batch.status != ImportBatchStatus.ROLLED_BACK:
            batch.status = ImportBatchStatus.ROLLED_BACK
            batch.rolled_back_at = now
            AuditService.log(
                self.db, "import_batch", batch.id, "rollback", actor, {"voided": len(payments)}
            )
        self.db.commit()

        logger.info("Rolled back import batch %d: %d payments voided", batch.id, len(payments))
        return RollbackResult(batch_id=batch.id, voided=len(payments))

    def get_batch(self, batch_id: int) -> ImportBatch:
        batch = self.db.get(ImportBatch, batch_id)
        if not batch:
            raise NotFoundError(f"Import batch {batch_id} not found")
        return batch

    def list_batches(self, limit: int = 50) -> list[ImportBatch]:
        return self.db.query(ImportBatch).order_by(ImportBatch.id.desc()).limit(limit).all()

    def batch_total(self, batch_id: int) -> Decimal:
        """Sum of live payments in the batch."""
        batch = self.get_batch(batch_id)
        return sum(
            (Decimal(payment.amount) for payment in batch.payments if not payment.is_voided),
            Decimal("0.00"),
        )


def batch_to_dict(batch: ImportBatch) -> dict:
    return {
        "id": batch.id,
        "file_name": batch.file_name,
        "status": batch.status.value,
        "total_rows": batch.total_rows,
        "created_count": batch.created_count,
        "skipped_count": batch.skipped_count,
        "skipped": batch.skipped or [],
        "warnings": batch.warnings or [],
        "comment": batch.comment,
        "actor": batch.actor,
        "created_at": batch.created_at.isoformat() if batch.created_at else None,
        "rolled_back_at": batch.rolled_back_at.isoformat() if batch.rolled_back_at else None,
    }


__all__ = [
    "ImportPreview",
    "ImportResult",
    "PreviewRow",
    "RollbackResult",
    "StatementImportService",
    "batch_to_dict",
]
