"""CSV exports for the office spreadsheet.

Files are UTF-8 with a BOM (so Excel picks the encoding), CRLF line endings,
";" as the default delimiter and a fixed column order.
"""

import csv
import io
from decimal import Decimal
from typing import Iterable

from sqlalchemy.orm import Session

from snt_billing.config import settings
from snt_billing.models.accrual import PaymentCategory
from snt_billing.services.ledger_service import LedgerService
from snt_billing.services.plot_directory import PlotRegistryService
from snt_billing.services.reconciliation_service import ReconciliationService

BOM = "\ufeff"

PAYMENTS_HEADER = [
    "id",
    "paid_at",
    "plot",
    "category",
    "amount",
    "reference",
    "payer",
    "purpose",
    "match_status",
    "match_reason",
    "voided",
]
RECONCILIATION_HEADER = ["plot", "owner", "accrued", "paid", "balance", "debt"]
DEBTORS_HEADER = [
    "Участок",
    "Владелец",
    "Долг (членские)",
    "Долг (целевые)",
    "Долг (электро)",
    "Долг (всего)",
]


def write_csv(header: list[str], rows: Iterable[list], delimiter: str | None = None) -> str:
    """Render rows as BOM-prefixed CSV text."""
    buffer = io.StringIO()
    writer = csv.writer(buffer, delimiter=delimiter or settings.csv_delimiter, lineterminator="\r\n")
    writer.writerow(header)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return BOM + buffer.getvalue()


def _money(value: Decimal) -> str:
    return f"{Decimal(value):.2f}"


class ExportService:
    """Build CSV exports from the ledger and reconciliations."""

    def __init__(self, db: Session, delimiter: str | None = None):
        """Initialize with database session."""
        self.db = db
        self.delimiter = delimiter

    def payments_csv(self, period_id: int | None = None, include_voided: bool = True) -> str:
        payments = LedgerService(self.db).list_payments(
            period_id=period_id, include_voided=include_voided
        )
        directory = PlotRegistryService(self.db).directory()
        rows = (
            [
                payment.id,
                payment.paid_at.isoformat(),
                directory.label_for(payment.plot_id),
                payment.category.value,
                _money(payment.amount),
                payment.reference,
                payment.payer,
                payment.purpose,
                payment.match_status.value,
                payment.match_reason,
                "1" if payment.is_voided else "0",
            ]
            for payment in payments
        )
        return write_csv(PAYMENTS_HEADER, rows, self.delimiter)

    def reconciliation_csv(self, period_id: int, include_zero: bool = False) -> str:
        reconciliation = ReconciliationService(self.db).build_period_reconciliation(
            period_id, include_zero=include_zero
        )
        rows = (
            [
                row.plot_label,
                row.owner_name,
                _money(row.accrued),
                _money(row.paid),
                _money(row.balance),
                _money(row.debt),
            ]
            for row in reconciliation.rows
        )
        return write_csv(RECONCILIATION_HEADER, rows, self.delimiter)

    def debtors_csv(self, period_id: int, min_debt: Decimal = Decimal("0")) -> str:
        debtors = ReconciliationService(self.db).list_debtors(period_id, min_debt=min_debt)
        rows = (
            [
                row.plot_label,
                row.owner_name,
                _money(row.categories[PaymentCategory.MEMBERSHIP].debt),
                _money(row.categories[PaymentCategory.TARGET].debt),
                _money(row.categories[PaymentCategory.ELECTRICITY].debt),
                _money(row.debt),
            ]
            for row in debtors
        )
        return write_csv(DEBTORS_HEADER, rows, self.delimiter)


__all__ = [
    "DEBTORS_HEADER",
    "ExportService",
    "PAYMENTS_HEADER",
    "RECONCILIATION_HEADER",
    "write_csv",
]
