"""Pydantic schemas for the billing API."""

from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from snt_billing.models.accrual import PaymentCategory
from snt_billing.models.billing_period import PeriodStatus
from snt_billing.models.payment import MatchStatus


class PeriodCreate(BaseModel):
    """Request payload for POST /periods."""

    title: str = Field(..., min_length=1, description="Period title, e.g. 'Январь 2025'")
    date_from: date = Field(..., description="First day of the period (inclusive)")
    date_to: date = Field(..., description="Last day of the period (inclusive)")


class PeriodOut(BaseModel):
    id: int
    title: str
    date_from: date
    date_to: date
    status: PeriodStatus
    closed_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PlotCreate(BaseModel):
    """Request payload for POST /plots."""

    street: str = Field(..., min_length=1)
    number: str = Field(..., min_length=1)
    owner_name: str | None = None
    phone: str | None = None
    is_active: bool = True


class PlotOut(BaseModel):
    id: int
    street: str
    number: str
    label: str
    owner_name: str | None = None
    phone: str | None = None
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class AccrualSet(BaseModel):
    """Request payload for PUT /periods/{id}/accruals."""

    plot_id: int
    category: PaymentCategory
    amount: Decimal = Field(..., ge=0)


class AccrualGenerate(BaseModel):
    """Request payload for POST /periods/{id}/accruals/generate."""

    category: PaymentCategory
    amount: Decimal = Field(..., gt=0)
    plot_ids: list[int] | None = Field(None, description="Defaults to all active plots")


class AccrualOut(BaseModel):
    id: int
    period_id: int
    plot_id: int
    category: PaymentCategory
    amount_accrued: Decimal
    amount_paid: Decimal

    model_config = ConfigDict(from_attributes=True)


class PaymentCreate(BaseModel):
    """Request payload for POST /payments (office entry)."""

    plot_id: int
    amount: Decimal = Field(..., gt=0)
    paid_at: date
    category: PaymentCategory = PaymentCategory.MEMBERSHIP
    reference: str | None = None
    payer: str | None = None
    purpose: str | None = None
    method: str = "bank"
    auto_allocate: bool = False


class PaymentOut(BaseModel):
    id: int
    plot_id: int | None = None
    category: PaymentCategory
    amount: Decimal
    paid_at: date
    method: str
    reference: str | None = None
    payer: str | None = None
    purpose: str | None = None
    fingerprint: str | None = None
    matched_plot_id: int | None = None
    match_status: MatchStatus
    match_confidence: float | None = None
    match_reason: str | None = None
    candidates: list[int] = Field(default_factory=list)
    auto_allocate_disabled: bool
    is_voided: bool
    void_reason: str | None = None
    voided_at: datetime | None = None
    import_batch_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class VoidPayload(BaseModel):
    reason: str | None = None


class MatchPayload(BaseModel):
    plot_id: int


class AllocatePayload(BaseModel):
    accrual_id: int
    amount: Decimal = Field(..., gt=0)


class ImportPayload(BaseModel):
    """Request payload for statement preview/apply."""

    content: str = Field(..., description="Statement CSV text")
    file_name: str | None = None
    comment: str | None = None
    overrides: dict[int, int] | None = Field(
        None, description="row_index → plot_id chosen by the operator"
    )
    auto_allocate: bool | None = None


class RollbackPayload(BaseModel):
    reason: str | None = None
