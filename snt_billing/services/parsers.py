"""Russian data type parsing utilities for bank statements and registry labels.

Handles Russian-specific number formatting:
- Decimal separator: comma (,)
- Thousand separator: space ( ) or non-breaking space
- Currency suffix/prefix: р., руб., ₽
- Date format: DD.MM.YYYY (ISO YYYY-MM-DD is accepted too)

Example:
    >>> parse_russian_decimal("1 000,25")
    Decimal('1000.25')

    >>> parse_russian_currency("7 000,00 руб.")
    Decimal('7000.00')

    >>> parse_date("23.06.2025")
    datetime.date(2025, 6, 23)

    >>> normalize_text("  Берёзовая,   12 ")
    'березовая, 12'
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Optional

_WHITESPACE_RE = re.compile(r"\s+")
_ISO_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")
_RU_DATE_RE = re.compile(r"(\d{2})\.(\d{2})\.(\d{4})")
_CURRENCY_TOKENS = ("руб.", "руб", "р.", "₽", "rub", "р")


def normalize_text(value: Optional[str]) -> str:
    """Lowercase, replace ё with е, trim and collapse whitespace.

    Examples:
        >>> normalize_text("Оплата   ЧЛЕНСКОГО\\tвзноса")
        'оплата членского взноса'
        >>> normalize_text(None)
        ''
    """
    if not value:
        return ""
    return _WHITESPACE_RE.sub(" ", value.replace("ё", "е").replace("Ё", "Е").lower()).strip()


def parse_russian_decimal(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a Russian-formatted decimal number to Python Decimal.

    Russian format uses comma as decimal separator and space as thousand separator.

    Args:
        value: Russian-formatted number string (e.g., "1 000,25") or None/empty

    Returns:
        Decimal object or None if input is empty/None

    Raises:
        ValueError: If value cannot be parsed as a valid decimal

    Examples:
        >>> parse_russian_decimal("1 000,25")
        Decimal('1000.25')
        >>> parse_russian_decimal("2,5")
        Decimal('2.5')
        >>> parse_russian_decimal("")
        None
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    try:
        # Remove spaces (thousand separators)
        # Handle both regular spaces and non-breaking spaces (U+00A0, U+202F)
        normalized = (
            value.replace(" ", "").replace("\xa0", "").replace("\u202f", "").replace(",", ".")
        )
        result = Decimal(normalized)
    except (ValueError, InvalidOperation) as e:
        raise ValueError(f"Cannot parse Russian decimal '{value}': {e}") from e

    if not result.is_finite():
        raise ValueError(f"Cannot parse Russian decimal '{value}': not a finite number")
    return result


def parse_russian_currency(value: Optional[str]) -> Optional[Decimal]:
    """
    Parse a Russian-formatted currency value to Python Decimal.

    Handles the ruble symbol in any position (р., руб, ₽), comma decimal
    separator and space thousand separators.

    Args:
        value: Russian-formatted currency string (e.g., "р.7 000,00") or None/empty

    Returns:
        Decimal object or None if input is empty

    Raises:
        ValueError: If value cannot be parsed as a valid number

    Examples:
        >>> parse_russian_currency("р.7 000 000,00")
        Decimal('7000000.00')
        >>> parse_russian_currency("1 500 ₽")
        Decimal('1500')
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    cleaned = value.lower()
    for token in _CURRENCY_TOKENS:
        cleaned = cleaned.replace(token, "")
    try:
        return parse_russian_decimal(cleaned.strip())
    except ValueError as e:
        raise ValueError(f"Cannot parse Russian currency '{value}': {e}") from e


def parse_date(value: Optional[str]) -> Optional[date]:
    """Parse a statement date string to Python date object.

    Handles "DD.MM.YYYY" and ISO "YYYY-MM-DD", optionally followed by a time
    component that is ignored (day granularity).

    Args:
        value: Date string or None/empty

    Returns:
        datetime.date object or None if input is empty

    Raises:
        ValueError: If date format is invalid

    Examples:
        >>> parse_date("23.06.2025")
        datetime.date(2025, 6, 23)
        >>> parse_date("2025-01-15T10:20:00Z")
        datetime.date(2025, 1, 15)
        >>> parse_date("")
        None
    """
    if not value or not isinstance(value, str):
        return None

    value = value.strip()
    if not value:
        return None

    try:
        match = _ISO_DATE_RE.search(value)
        if match:
            return datetime.strptime(match.group(0), "%Y-%m-%d").date()
        match = _RU_DATE_RE.search(value)
        if match:
            return datetime.strptime(match.group(0), "%d.%m.%Y").date()
    except ValueError as e:
        raise ValueError(f"Cannot parse date '{value}': {e}") from e

    raise ValueError(f"Cannot parse date '{value}' (expected DD.MM.YYYY or YYYY-MM-DD)")
