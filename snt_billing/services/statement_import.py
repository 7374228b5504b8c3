"""Bank statement CSV parsing.

Statements exported by Russian banks and by the office spreadsheet differ in
delimiter, header wording and encoding. The parser:

- decodes UTF-8 (with or without BOM), falling back to Windows-1251
- detects the delimiter (";", "," or tab) on the first non-empty line
- finds the header row by keywords (Дата/Сумма/Участок/Плательщик/...)
- supports one signed amount column or separate credit/debit columns
- reads the direction of the operation ("приход"/"зачисление" = in,
  "расход"/"списание" = out)

Rows are returned with their 1-based line number in the file so errors can be
reported against what the operator sees in a spreadsheet.
"""

import csv
import io
import logging
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from snt_billing.errors import ValidationError
from snt_billing.models.accrual import PaymentCategory
from snt_billing.services.parsers import normalize_text, parse_date, parse_russian_currency

logger = logging.getLogger(__name__)

DIRECTION_IN = "in"
DIRECTION_OUT = "out"

# Checked in order; the first field whose keyword occurs in a header cell wins
HEADER_KEYWORDS: list[tuple[str, tuple[str, ...]]] = [
    ("direction", ("тип операции", "вид операции", "приход/расход", "направление", "direction")),
    ("credit", ("приход", "поступлен", "зачислен", "кредит", "credit")),
    ("debit", ("расход", "списан", "дебет", "debit")),
    ("date", ("дата", "date", "paid_at")),
    ("amount", ("сумма", "amount")),
    ("plot", ("участ", "plot", "адрес")),
    ("reference", ("номер", "документ", "reference", "ref")),
    ("category", ("категори", "category", "вид платеж")),
    ("payer", ("плательщик", "контрагент", "фио", "payer")),
    ("purpose", ("назначение", "комментарий", "purpose", "описание")),
]
HEADER_SEARCH_LINES = 20
DELIMITERS = (";", ",", "\t")

# Running row numbers repeat in every statement and must never become a reference
ROW_NUMBER_MARKERS = ("п/п",)

_IN_WORDS = ("приход", "зачис", "поступ", "in", "credit")
_OUT_WORDS = ("расход", "спис", "out", "debit")

_CATEGORY_WORDS: list[tuple[PaymentCategory, tuple[str, ...]]] = [
    (PaymentCategory.ELECTRICITY, ("электр", "свет", "квт", "electricity")),
    (PaymentCategory.TARGET, ("целев", "target")),
    (PaymentCategory.MEMBERSHIP, ("членск", "membership")),
]


@dataclass
class StatementRow:
    """One data row of a statement."""

    row_index: int
    paid_at: date | None = None
    amount: Decimal | None = None
    direction: str = DIRECTION_IN
    payer: str | None = None
    purpose: str | None = None
    reference: str | None = None
    category: PaymentCategory = PaymentCategory.MEMBERSHIP
    plot_label: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    @property
    def is_outgoing(self) -> bool:
        return self.direction == DIRECTION_OUT


@dataclass
class ParsedStatement:
    """Result of parsing a statement file."""

    rows: list[StatementRow]
    delimiter: str
    header_row: int
    columns: dict[str, int]


def decode_statement(content: bytes | str) -> str:
    """Decode raw statement bytes; strips the UTF-8 BOM."""
    if isinstance(content, str):
        return content.lstrip("\ufeff")
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        logger.debug("Statement is not UTF-8, decoding as cp1251")
        return content.decode("cp1251")


def detect_delimiter(text: str) -> str:
    for line in text.splitlines():
        if not line.strip():
            continue
        counts = {delimiter: line.count(delimiter) for delimiter in DELIMITERS}
        best = max(counts, key=counts.get)
        return best if counts[best] else ";"
    return ";"


def map_header(cells: list[str]) -> dict[str, int]:
    """Map known fields to column indices from a header row."""
    columns: dict[str, int] = {}
    for idx, cell in enumerate(cells):
        text = normalize_text(cell)
        if not text or any(marker in text for marker in ROW_NUMBER_MARKERS):
            continue
        for field_name, keywords in HEADER_KEYWORDS:
            if field_name in columns:
                continue
            if any(keyword in text for keyword in keywords):
                columns[field_name] = idx
                break
    return columns


def _is_header(columns: dict[str, int]) -> bool:
    return "date" in columns and ("amount" in columns or "credit" in columns)


def _find_header(records: list[list[str]]) -> tuple[int, dict[str, int]] | None:
    for idx, cells in enumerate(records[:HEADER_SEARCH_LINES]):
        columns = map_header(cells)
        if _is_header(columns):
            return idx, columns
    return None


def parse_direction(value: str | None) -> str | None:
    text = normalize_text(value)
    if not text:
        return None
    if any(word in text for word in _OUT_WORDS):
        return DIRECTION_OUT
    if any(word in text for word in _IN_WORDS):
        return DIRECTION_IN
    return None


def parse_category(value: str | None) -> PaymentCategory | None:
    """Category from a category cell or purpose text; None if nothing fits."""
    text = normalize_text(value)
    if not text:
        return None
    for category, words in _CATEGORY_WORDS:
        if any(word in text for word in words):
            return category
    return None


def _cell(cells: list[str], columns: dict[str, int], name: str) -> str | None:
    idx = columns.get(name)
    if idx is None or idx >= len(cells):
        return None
    value = cells[idx].strip()
    return value or None


def _parse_amount(raw: str | None, row: StatementRow, label: str) -> Decimal | None:
    try:
        return parse_russian_currency(raw)
    except ValueError:
        row.errors.append(f"invalid_{label}")
        return None


def parse_row(cells: list[str], columns: dict[str, int], row_index: int) -> StatementRow:
    row = StatementRow(row_index=row_index)
    row.payer = _cell(cells, columns, "payer")
    row.purpose = _cell(cells, columns, "purpose")
    row.reference = _cell(cells, columns, "reference")
    row.plot_label = _cell(cells, columns, "plot")

    raw_date = _cell(cells, columns, "date")
    if raw_date is None:
        row.errors.append("missing_date")
    else:
        try:
            row.paid_at = parse_date(raw_date)
        except ValueError:
            row.errors.append("invalid_date")

    amount = None
    if "credit" in columns or "debit" in columns:
        credit = _parse_amount(_cell(cells, columns, "credit"), row, "amount")
        debit = _parse_amount(_cell(cells, columns, "debit"), row, "amount")
        if credit:
            amount, row.direction = credit, DIRECTION_IN
        elif debit:
            amount, row.direction = debit, DIRECTION_OUT
    if amount is None and "amount" in columns:
        amount = _parse_amount(_cell(cells, columns, "amount"), row, "amount")
        if amount is not None and amount < 0:
            amount, row.direction = -amount, DIRECTION_OUT

    direction = parse_direction(_cell(cells, columns, "direction"))
    if direction:
        row.direction = direction

    if amount is None or amount == 0:
        if "invalid_amount" not in row.errors:
            row.errors.append("missing_amount")
    else:
        row.amount = amount.quantize(Decimal("0.01"))

    row.category = (
        parse_category(_cell(cells, columns, "category"))
        or parse_category(row.purpose)
        or PaymentCategory.MEMBERSHIP
    )
    return row


def parse_statement(content: bytes | str) -> ParsedStatement:
    """Parse a statement file into rows.

    Raises:
        ValidationError: If the file is empty or no header row is found
    """
    text = decode_statement(content)
    if not text.strip():
        raise ValidationError("Statement file is empty")

    # Bank preambles often contain commas, so the first line only breaks ties:
    # the delimiter whose header maps the most columns wins
    guess = detect_delimiter(text)
    best = None
    for delimiter in [guess] + [d for d in DELIMITERS if d != guess]:
        records = list(csv.reader(io.StringIO(text), delimiter=delimiter))
        header = _find_header(records)
        if header is not None and (best is None or len(header[1]) > len(best[3])):
            best = (delimiter, records, header[0], header[1])
    if best is None:
        raise ValidationError("Statement header not found: expected date and amount columns")
    delimiter, records, header_idx, columns = best

    rows = []
    for idx in range(header_idx + 1, len(records)):
        cells = records[idx]
        if not any(cell.strip() for cell in cells):
            continue
        rows.append(parse_row(cells, columns, row_index=idx + 1))

    logger.info(
        "Parsed statement: %d rows, delimiter=%r, header at line %d",
        len(rows),
        delimiter,
        header_idx + 1,
    )
    return ParsedStatement(
        rows=rows, delimiter=delimiter, header_row=header_idx + 1, columns=columns
    )


__all__ = [
    "DIRECTION_IN",
    "DIRECTION_OUT",
    "ParsedStatement",
    "StatementRow",
    "decode_statement",
    "detect_delimiter",
    "map_header",
    "parse_category",
    "parse_direction",
    "parse_row",
    "parse_statement",
]
