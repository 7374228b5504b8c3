"""Plot directory: registry CRUD and label resolution.

Statement rows and office forms refer to plots by free-form labels such as
"ул. Берёзовая, д. 12" or "Березовая 12". The directory normalizes those labels
and resolves them to plot ids; the matcher builds on top of it.
"""

import logging
import re
from dataclasses import dataclass

from sqlalchemy.orm import Session

from snt_billing.errors import NotFoundError, ValidationError
from snt_billing.models.plot import Plot
from snt_billing.services.parsers import normalize_text

logger = logging.getLogger(__name__)

_PUNCTUATION_RE = re.compile(r"[,.;:№#\"'()]+")
_NUMBER_TOKEN_RE = re.compile(r"^\d+[а-яa-z\-/]*$")
# Address words that carry no identity
_NOISE_TOKENS = {"ул", "улица", "д", "дом", "уч", "участок", "пер", "переулок", "снт"}
MIN_NAME_LENGTH = 5


def normalize_label(label: str | None) -> str:
    """Reduce a plot label to "<street words> <number>" form.

    Examples:
        >>> normalize_label("ул. Берёзовая, д. 12")
        'березовая 12'
        >>> normalize_label("БЕРЕЗОВАЯ 12")
        'березовая 12'
    """
    text = _PUNCTUATION_RE.sub(" ", normalize_text(label))
    tokens = [token for token in text.split() if token not in _NOISE_TOKENS]
    return " ".join(tokens)


def split_street_number(label: str | None) -> tuple[str, str] | None:
    """Split a label into (street, number); None if either part is missing."""
    parts = normalize_label(label).split()
    for idx, part in enumerate(parts):
        if _NUMBER_TOKEN_RE.match(part) and idx > 0:
            street = " ".join(parts[:idx])
            return street, part
    return None


def normalize_phone(phone: str | None) -> str:
    """Digits only, with the Russian trunk prefix 8 rewritten to 7."""
    digits = re.sub(r"\D", "", phone or "")
    if len(digits) == 11 and digits.startswith("8"):
        digits = "7" + digits[1:]
    return digits


@dataclass(frozen=True)
class PlotEntry:
    """Read-only snapshot of a plot used for matching."""

    plot_id: int
    street: str
    number: str
    owner_name: str | None
    phone: str | None

    @property
    def label(self) -> str:
        return f"{self.street}, {self.number}"

    @property
    def normalized_label(self) -> str:
        return normalize_label(self.label)

    @property
    def normalized_street(self) -> str:
        return normalize_label(self.street)

    @property
    def normalized_number(self) -> str:
        return normalize_text(self.number)


class PlotDirectory:
    """In-memory lookup over a set of plots.

    Built once per import so matching a statement of hundreds of rows does not
    query the database per row.
    """

    def __init__(self, entries: list[PlotEntry]):
        self.entries = list(entries)
        self._by_id = {entry.plot_id: entry for entry in self.entries}
        self._by_label: dict[str, int] = {}
        for entry in self.entries:
            self._by_label.setdefault(entry.normalized_label, entry.plot_id)

    @classmethod
    def from_plots(cls, plots: list[Plot]) -> "PlotDirectory":
        return cls(
            [
                PlotEntry(
                    plot_id=plot.id,
                    street=plot.street,
                    number=plot.number,
                    owner_name=plot.owner_name,
                    phone=plot.phone,
                )
                for plot in plots
            ]
        )

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, plot_id: int) -> PlotEntry | None:
        return self._by_id.get(plot_id)

    def label_for(self, plot_id: int | None) -> str:
        entry = self._by_id.get(plot_id) if plot_id is not None else None
        return entry.label if entry else (str(plot_id) if plot_id is not None else "")

    def resolve_label(self, label: str | None) -> int | None:
        """Exact lookup: normalized "street number" or a bare plot id."""
        if not label or not label.strip():
            return None
        stripped = label.strip()
        if stripped.isdigit() and int(stripped) in self._by_id:
            return int(stripped)
        return self._by_label.get(normalize_label(stripped))

    def find_by_number(self, number: str) -> list[PlotEntry]:
        wanted = normalize_text(number)
        return [entry for entry in self.entries if entry.normalized_number == wanted]

    def find_owner_mentions(self, text: str | None) -> list[PlotEntry]:
        """Plots whose full owner name occurs in free text (e.g. a payment purpose)."""
        haystack = normalize_text(text)
        if not haystack:
            return []
        found = []
        for entry in self.entries:
            owner = normalize_text(entry.owner_name)
            if len(owner) >= MIN_NAME_LENGTH and owner in haystack:
                found.append(entry)
        return found

    def find_owner_by_payer(self, payer: str | None) -> list[PlotEntry]:
        """Plots whose owner name contains the payer name or is contained in it.

        Banks print the payer as "ИВАНОВ ИВАН" or "Иванов Иван Иванович ИП",
        so containment works in both directions.
        """
        needle = normalize_text(payer)
        if len(needle) < MIN_NAME_LENGTH:
            return []
        found = []
        for entry in self.entries:
            owner = normalize_text(entry.owner_name)
            if len(owner) >= MIN_NAME_LENGTH and (needle in owner or owner in needle):
                found.append(entry)
        return found

    def find_by_phone_suffix(self, suffix: str) -> list[PlotEntry]:
        if len(suffix) < 4:
            return []
        return [
            entry
            for entry in self.entries
            if entry.phone and normalize_phone(entry.phone).endswith(suffix)
        ]


class PlotRegistryService:
    """Service for plot registry database operations."""

    def __init__(self, db: Session):
        """Initialize with database session."""
        self.db = db

    def list_plots(self, active_only: bool = False, query: str | None = None) -> list[Plot]:
        """List plots ordered by street and number, optionally filtered by a search string."""
        stmt = self.db.query(Plot)
        if active_only:
            stmt = stmt.filter(Plot.is_active.is_(True))
        plots = stmt.order_by(Plot.street, Plot.number).all()
        if query:
            needle = normalize_text(query)
            plots = [
                plot
                for plot in plots
                if needle in normalize_text(f"{plot.label} {plot.owner_name or ''}")
            ]
        return plots

    def get_plot(self, plot_id: int) -> Plot:
        plot = self.db.get(Plot, plot_id)
        if not plot:
            raise NotFoundError(f"Plot {plot_id} not found")
        return plot

    def create_plot(
        self,
        street: str,
        number: str,
        owner_name: str | None = None,
        phone: str | None = None,
        is_active: bool = True,
    ) -> Plot:
        """Register a plot; street + number must be unique after normalization."""
        street = (street or "").strip()
        number = (number or "").strip()
        if not street or not number:
            raise ValidationError("street and number are required")

        directory = self.directory()
        if directory.resolve_label(f"{street}, {number}") is not None:
            raise ValidationError(f"Plot '{street}, {number}' already exists")

        plot = Plot(
            street=street,
            number=number,
            owner_name=owner_name,
            phone=phone,
            is_active=is_active,
        )
        self.db.add(plot)
        self.db.commit()
        self.db.refresh(plot)
        logger.info("Registered plot: id=%d, label=%s", plot.id, plot.label)
        return plot

    def directory(self, active_only: bool = False) -> PlotDirectory:
        """Snapshot of the registry for label resolution and matching."""
        return PlotDirectory.from_plots(self.list_plots(active_only=active_only))


__all__ = [
    "PlotDirectory",
    "PlotEntry",
    "PlotRegistryService",
    "normalize_label",
    "normalize_phone",
    "split_street_number",
]
