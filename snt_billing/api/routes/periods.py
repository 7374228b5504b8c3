"""Billing period and accrual routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from snt_billing.api.dependencies import get_actor
from snt_billing.api.responses import ok
from snt_billing.api.schemas import AccrualGenerate, AccrualOut, AccrualSet, PeriodCreate, PeriodOut
from snt_billing.services import get_db
from snt_billing.services.ledger_service import LedgerService
from snt_billing.services.period_service import BillingPeriodService

router = APIRouter(prefix="/api/billing/periods", tags=["periods"])


def _period(period) -> dict:
    return PeriodOut.model_validate(period).model_dump(mode="json")


@router.get("")
def list_periods(db: Session = Depends(get_db)) -> dict:
    return ok([_period(period) for period in BillingPeriodService(db).list_periods()])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_period(
    payload: PeriodCreate,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    """Create a draft billing period."""
    period = BillingPeriodService(db).create_period(
        payload.title, payload.date_from, payload.date_to, actor=actor
    )
    return ok(_period(period))


@router.get("/{period_id}")
def get_period(period_id: int, db: Session = Depends(get_db)) -> dict:
    return ok(_period(BillingPeriodService(db).get_period(period_id)))


@router.post("/{period_id}/approve")
def approve_period(
    period_id: int,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    return ok(_period(BillingPeriodService(db).approve_period(period_id, actor=actor)))


@router.post("/{period_id}/close")
def close_period(
    period_id: int,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    """Close the period; accruals and payments dated in it become read-only."""
    return ok(_period(BillingPeriodService(db).close_period(period_id, actor=actor)))


@router.get("/{period_id}/accruals")
def list_accruals(
    period_id: int,
    plot_id: int | None = None,
    db: Session = Depends(get_db),
) -> dict:
    BillingPeriodService(db).get_period(period_id)
    accruals = LedgerService(db).list_accruals(period_id, plot_id=plot_id)
    return ok([AccrualOut.model_validate(a).model_dump(mode="json") for a in accruals])


@router.put("/{period_id}/accruals")
def set_accrual(
    period_id: int,
    payload: AccrualSet,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    accrual = LedgerService(db).set_accrual_amount(
        period_id, payload.plot_id, payload.category, payload.amount, actor=actor
    )
    return ok(AccrualOut.model_validate(accrual).model_dump(mode="json"))


@router.post("/{period_id}/accruals/generate")
def generate_accruals(
    period_id: int,
    payload: AccrualGenerate,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    """Create the same accrual for every active plot (or the listed ones)."""
    result = LedgerService(db).generate_accruals(
        period_id, payload.category, payload.amount, plot_ids=payload.plot_ids, actor=actor
    )
    return ok(result)
