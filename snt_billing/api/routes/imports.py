"""Statement import routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from snt_billing.api.dependencies import get_actor
from snt_billing.api.responses import ok
from snt_billing.api.schemas import ImportPayload, RollbackPayload
from snt_billing.services import get_db
from snt_billing.services.import_service import StatementImportService, batch_to_dict

router = APIRouter(prefix="/api/billing/import", tags=["import"])


@router.post("/preview")
def preview_import(payload: ImportPayload, db: Session = Depends(get_db)) -> dict:
    """Parse and match a statement without writing anything."""
    preview = StatementImportService(db).preview(payload.content, overrides=payload.overrides)
    return ok(preview.to_dict())


@router.post("", status_code=status.HTTP_201_CREATED)
def apply_import(
    payload: ImportPayload,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    result = StatementImportService(db).apply_import(
        payload.content,
        file_name=payload.file_name,
        actor=actor,
        comment=payload.comment,
        overrides=payload.overrides,
        auto_allocate=payload.auto_allocate,
    )
    return ok(result.to_dict())


@router.get("/batches")
def list_batches(limit: int = 50, db: Session = Depends(get_db)) -> dict:
    return ok([batch_to_dict(batch) for batch in StatementImportService(db).list_batches(limit)])


@router.get("/batches/{batch_id}")
def get_batch(batch_id: int, db: Session = Depends(get_db)) -> dict:
    return ok(batch_to_dict(StatementImportService(db).get_batch(batch_id)))


@router.post("/batches/{batch_id}/rollback")
def rollback_batch(
    batch_id: int,
    payload: RollbackPayload | None = None,
    db: Session = Depends(get_db),
    actor: str | None = Depends(get_actor),
) -> dict:
    """Void every payment of the batch. Repeating the call voids nothing."""
    result = StatementImportService(db).rollback_batch(
        batch_id, actor=actor, reason=payload.reason if payload else None
    )
    return ok(result.to_dict())
