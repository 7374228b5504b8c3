"""SQLAlchemy base model with common fields and model exports."""

from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlalchemy.orm import Mapped, declarative_base, mapped_column

# Base class for all models
Base = declarative_base()


class BaseModel:
    """Base model with common timestamp fields."""

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )


# Import models to register them with Base (after Base is defined)
# This must be after Base declaration to avoid circular imports
from snt_billing.models.plot import Plot  # noqa: E402
from snt_billing.models.billing_period import BillingPeriod, PeriodStatus  # noqa: E402
from snt_billing.models.accrual import Accrual, PaymentCategory  # noqa: E402
from snt_billing.models.import_batch import ImportBatch, ImportBatchStatus  # noqa: E402
from snt_billing.models.payment import MatchStatus, Payment  # noqa: E402
from snt_billing.models.allocation import Allocation  # noqa: E402
from snt_billing.models.audit_log import AuditLog  # noqa: E402

__all__ = [
    "Base",
    "BaseModel",
    "Plot",
    "BillingPeriod",
    "PeriodStatus",
    "Accrual",
    "PaymentCategory",
    "ImportBatch",
    "ImportBatchStatus",
    "Payment",
    "MatchStatus",
    "Allocation",
    "AuditLog",
]
