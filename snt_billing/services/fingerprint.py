"""Payment fingerprints for duplicate detection.

A fingerprint is a stable string derived from a payment's attributes. Two rows
with the same fingerprint describe the same money movement, so importing a
statement twice never doubles a plot's payments.

- With a bank reference: ``ref:<normalized reference>``.
- Without one: ``<plot>|<category>|<YYYY-MM-DD>|<amount 0.00>|<normalized purpose>``.

When neither form can be derived (no reference, and plot, date or a positive
amount is missing) the engine returns None and the caller must import the row
without deduplication.
"""

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from snt_billing.models.payment import Payment
from snt_billing.services.parsers import normalize_text

REFERENCE_PREFIX = "ref:"
_CENTS = Decimal("0.01")


def normalize_reference(reference: str | None) -> str | None:
    """Normalize a bank reference; blank references count as absent."""
    normalized = normalize_text(reference)
    return normalized or None


def format_amount(amount: Decimal | int | float | str) -> str:
    """Two-decimal string used inside fingerprints."""
    return str(Decimal(str(amount)).quantize(_CENTS, rounding=ROUND_HALF_UP))


def _day(paid_at: date | datetime | str | None) -> str | None:
    if paid_at is None or paid_at == "":
        return None
    if isinstance(paid_at, datetime):
        return paid_at.date().isoformat()
    if isinstance(paid_at, date):
        return paid_at.isoformat()
    # ISO string: keep the date part only
    return str(paid_at).split("T")[0][:10] or None


def build_payment_fingerprint(
    plot_id: int | str | None,
    category: str | Enum | None,
    paid_at: date | datetime | str | None,
    amount: Decimal | int | float | str | None,
    purpose: str | None = None,
    reference: str | None = None,
) -> str | None:
    """Derive the deduplication key for a payment.

    Args:
        plot_id: Plot the payment is credited to
        category: Payment category (enum or raw string)
        paid_at: Payment date; datetimes and ISO strings are cut to the day
        amount: Payment amount
        purpose: Free-text payment purpose from the statement
        reference: Bank operation reference; takes precedence when present

    Returns:
        Fingerprint string, or None when required fields are missing
    """
    normalized_ref = normalize_reference(reference)
    if normalized_ref:
        return f"{REFERENCE_PREFIX}{normalized_ref}"

    day = _day(paid_at)
    if plot_id is None or plot_id == "" or not day or amount is None:
        return None
    if Decimal(str(amount)) <= 0:
        return None

    category_value = category.value if isinstance(category, Enum) else (category or "")
    return "|".join(
        [
            str(plot_id),
            category_value,
            day,
            format_amount(amount),
            normalize_text(purpose),
        ]
    )


def fingerprint_for_payment(payment: Payment) -> str | None:
    """Fingerprint of a stored payment: the saved one, or one derived from its fields."""
    if payment.fingerprint:
        return payment.fingerprint
    return build_payment_fingerprint(
        plot_id=payment.plot_id,
        category=payment.category,
        paid_at=payment.paid_at,
        amount=payment.amount,
        purpose=payment.purpose,
        reference=payment.reference,
    )


__all__ = [
    "REFERENCE_PREFIX",
    "build_payment_fingerprint",
    "fingerprint_for_payment",
    "format_amount",
    "normalize_reference",
]
