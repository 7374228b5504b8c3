"""Plot ORM model: the partnership's registry of land plots and their owners."""

from sqlalchemy import Boolean, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snt_billing.models import Base, BaseModel


class Plot(Base, BaseModel):
    """Model representing a land plot addressed by street and number.

    The plot directory is the lookup table for statement matching: labels like
    "Берёзовая, 12" resolve to a plot id, owner name and phone feed the fuzzy
    matcher.
    """

    __tablename__ = "plots"

    street: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        comment="Street name (e.g., 'Берёзовая')",
    )
    number: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        comment="Plot number on the street (e.g., '12', '12А')",
    )
    owner_name: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Owner full name as written in the registry",
    )
    phone: Mapped[str | None] = mapped_column(
        String(32),
        nullable=True,
        comment="Owner contact phone",
    )
    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
        index=True,
    )

    # Relationships
    accruals: Mapped[list["Accrual"]] = relationship(  # noqa: F821
        "Accrual",
        back_populates="plot",
    )

    __table_args__ = (Index("idx_plot_street_number", "street", "number", unique=True),)

    @property
    def label(self) -> str:
        """Human-readable address used in statements and exports."""
        return f"{self.street}, {self.number}"

    def __repr__(self) -> str:
        return (
            f"<Plot(id={self.id}, street={self.street!r}, number={self.number!r}, "
            f"owner_name={self.owner_name!r}, is_active={self.is_active})>"
        )


__all__ = ["Plot"]
