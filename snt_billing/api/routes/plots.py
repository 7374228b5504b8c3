"""Plot registry routes."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from snt_billing.api.responses import ok
from snt_billing.api.schemas import PlotCreate, PlotOut
from snt_billing.services import get_db
from snt_billing.services.allocation_service import PaymentAllocationService
from snt_billing.services.plot_directory import PlotRegistryService

router = APIRouter(prefix="/api/billing/plots", tags=["plots"])


@router.get("")
def list_plots(
    q: str | None = None,
    active_only: bool = False,
    db: Session = Depends(get_db),
) -> dict:
    plots = PlotRegistryService(db).list_plots(active_only=active_only, query=q)
    return ok([PlotOut.model_validate(plot).model_dump(mode="json") for plot in plots])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_plot(payload: PlotCreate, db: Session = Depends(get_db)) -> dict:
    plot = PlotRegistryService(db).create_plot(
        street=payload.street,
        number=payload.number,
        owner_name=payload.owner_name,
        phone=payload.phone,
        is_active=payload.is_active,
    )
    return ok(PlotOut.model_validate(plot).model_dump(mode="json"))


@router.get("/{plot_id}/credit")
def plot_credit(plot_id: int, db: Session = Depends(get_db)) -> dict:
    """Overpaid money the plot has nothing left to spend on."""
    PlotRegistryService(db).get_plot(plot_id)
    credit = PaymentAllocationService(db).plot_credit(plot_id)
    return ok({"plot_id": plot_id, "credit": str(credit)})
