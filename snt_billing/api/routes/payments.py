"""Payment routes: office entry, void, manual match and allocation."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from snt_billing.api.dependencies import get_actor
from snt_billing.api.responses import ok
from snt_billing.api.schemas import AllocatePayload, MatchPayload, PaymentCreate, PaymentOut, VoidPayload
from snt_billing.models.payment import MatchStatus, Payment
from snt_billing.services import get_db
from snt_billing.services.allocation_service import PaymentAllocationService
from snt_billing.services.ledger_service import LedgerService

router = APIRouter(prefix="/api/billing/payments", tags=["payments"])


def _payment(db: Session, payment: Payment) -> dict:
    data = PaymentOut.model_validate(payment).model_dump(mode="json")
    data["allocation"] = PaymentAllocationService(db).payment_summary(payment).to_dict()
    return data


@router.get("")
def list_payments(
    period_id: int | None = None,
    plot_id: int | None = None,
    match_status: MatchStatus | None = None,
    import_batch_id: int | None = None,
    include_voided: bool = False,
    db: Session = Depends(get_db),
) -> dict:
    payments = LedgerService(db).list_payments(
        period_id=period_id,
        plot_id=plot_id,
        match_status=match_status,
        import_batch_id=import_batch_id,
        include_voided=include_voided,
    )
    return ok([_payment(db, payment) for payment in payments])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: PaymentCreate,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    """
    Record a payment entered by the office.

    Returns:
        201: created payment
        409: duplicate_payment or period_closed
    """
    payment = LedgerService(db).record_payment(
        plot_id=payload.plot_id,
        amount=payload.amount,
        paid_at=payload.paid_at,
        category=payload.category,
        reference=payload.reference,
        payer=payload.payer,
        purpose=payload.purpose,
        method=payload.method,
        actor=actor,
        auto_allocate=payload.auto_allocate,
    )
    return ok(_payment(db, payment))


@router.get("/{payment_id}")
def get_payment(payment_id: int, db: Session = Depends(get_db)) -> dict:
    return ok(_payment(db, LedgerService(db).get_payment(payment_id)))


@router.post("/{payment_id}/void")
def void_payment(
    payment_id: int,
    payload: VoidPayload,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    payment = LedgerService(db).void_payment(payment_id, reason=payload.reason, actor=actor)
    return ok(_payment(db, payment))


@router.post("/{payment_id}/match")
def match_payment(
    payment_id: int,
    payload: MatchPayload,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    """Manual override of the matcher."""
    payment = LedgerService(db).match_payment_manually(payment_id, payload.plot_id, actor=actor)
    return ok(_payment(db, payment))


@router.post("/{payment_id}/allocate")
def allocate_payment(
    payment_id: int,
    payload: AllocatePayload,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    service = PaymentAllocationService(db)
    service.allocate(payment_id, payload.accrual_id, payload.amount, actor=actor)
    return ok(_payment(db, LedgerService(db).get_payment(payment_id)))


@router.post("/{payment_id}/auto-allocate")
def auto_allocate_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    payment = LedgerService(db).get_payment(payment_id)
    PaymentAllocationService(db).auto_allocate_payment(payment, actor=actor)
    return ok(_payment(db, payment))


@router.post("/{payment_id}/unapply")
def unapply_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    removed = PaymentAllocationService(db).unapply_payment(payment_id, actor=actor)
    payment = LedgerService(db).get_payment(payment_id)
    return ok({"removed": removed, "payment": _payment(db, payment)})
