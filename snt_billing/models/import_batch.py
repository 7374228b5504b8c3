"""Import batch ORM model: one uploaded bank statement applied as payments."""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel


class ImportBatchStatus(str, Enum):
    """Lifecycle of an import batch."""

    COMPLETED = "completed"
    ROLLED_BACK = "rolled_back"


class ImportBatch(Base, BaseModel):
    """Group of payments created from one statement, revertible as a unit."""

    __tablename__ = "import_batches"

    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[ImportBatchStatus] = mapped_column(
        SQLEnum(ImportBatchStatus),
        nullable=False,
        default=ImportBatchStatus.COMPLETED,
    )
    total_rows: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[list[dict[str, Any]] | None] = mapped_column(
        JSON,
        nullable=True,
        comment="Skipped rows: [{'row_index': 3, 'reason': 'duplicate'}]",
    )
    warnings: Mapped[list[str] | None] = mapped_column(JSON, nullable=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    actor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    rolled_back_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    payments: Mapped[list["Payment"]] = relationship(  # noqa: F821
        "Payment",
        back_populates="import_batch",
    )

    def __repr__(self) -> str:
        return (
            f"<ImportBatch(id={self.id}, file_name={self.file_name!r}, status={self.status}, "
            f"created_count={self.created_count}, skipped_count={self.skipped_count})>"
        )


__all__ = ["ImportBatch", "ImportBatchStatus"]
