"""Reconciliation and CSV export routes."""

from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from snt_billing.api.dependencies import get_actor
from snt_billing.api.responses import csv_response, ok
from snt_billing.services import get_db
from snt_billing.services.export_service import ExportService
from snt_billing.services.reconciliation_service import ReconciliationService

router = APIRouter(prefix="/api/billing", tags=["reports"])


@router.get("/periods/{period_id}/reconciliation")
def get_reconciliation(
    period_id: int,
    include_zero: bool = False,
    db: Session = Depends(get_db),
) -> dict:
    reconciliation = ReconciliationService(db).build_period_reconciliation(
        period_id, include_zero=include_zero
    )
    return ok(reconciliation.to_dict())


@router.post("/periods/{period_id}/reconciliation")
def refresh_reconciliation(
    period_id: int,
    include_zero: bool = False,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    """Reconcile and write paid sums back to the period's accruals."""
    reconciliation = ReconciliationService(db).build_period_reconciliation(
        period_id, include_zero=include_zero, update_accrual_paid=True, actor=actor
    )
    return ok(reconciliation.to_dict())


@router.get("/periods/{period_id}/debtors")
def list_debtors(
    period_id: int,
    min_debt: Decimal = Decimal("0"),
    db: Session = Depends(get_db),
) -> dict:
    debtors = ReconciliationService(db).list_debtors(period_id, min_debt=min_debt)
    return ok([row.to_dict() for row in debtors])


@router.get("/periods/{period_id}/reconciliation.csv")
def reconciliation_csv(
    period_id: int,
    include_zero: bool = False,
    db: Session = Depends(get_db),
):
    content = ExportService(db).reconciliation_csv(period_id, include_zero=include_zero)
    return csv_response(content, f"reconciliation-{period_id}.csv")


@router.get("/periods/{period_id}/debtors.csv")
def debtors_csv(
    period_id: int,
    min_debt: Decimal = Decimal("0"),
    db: Session = Depends(get_db),
):
    content = ExportService(db).debtors_csv(period_id, min_debt=min_debt)
    return csv_response(content, f"debtors-{period_id}.csv")


@router.get("/payments.csv")
def payments_csv(
    period_id: int | None = None,
    include_voided: bool = True,
    db: Session = Depends(get_db),
):
    content = ExportService(db).payments_csv(period_id=period_id, include_voided=include_voided)
    return csv_response(content, "payments.csv")
