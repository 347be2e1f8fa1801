"""Column mapping shared by the CSV and spreadsheet decoders.

Both formats come down to a grid of cells with a header row somewhere near
the top. Headers are recognized through the aliases below, in English and
French, ignoring case and accents.
"""

import logging
from decimal import Decimal
from typing import Any, Optional, Sequence

from ledgerlink.domain.entities import DetectedAccount, RawTransactionRecord
from ledgerlink.domain.errors import ParseError
from ledgerlink.utils.amount_parser import combine_debit_credit, detect_decimal_separator, parse_amount
from ledgerlink.utils.date_parser import coerce_date, detect_dayfirst
from ledgerlink.utils.text import mask_account_number, normalize_account_number, normalize_header

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 20

COLUMN_ALIASES = {
    "date": (
        "date",
        "date operation",
        "booking date",
        "transaction date",
        "posting date",
        "date comptable",
        "date valeur",
        "date de valeur",
    ),
    "description": (
        "libelle",
        "libelle operation",
        "description",
        "label",
        "memo",
        "details",
        "narration",
        "objet",
        "tiers",
        "payee",
    ),
    "amount": ("montant", "amount", "montant (eur)", "amount (eur)"),
    "debit": ("debit", "withdrawal", "money out", "debit (eur)"),
    "credit": ("credit", "deposit", "money in", "credit (eur)"),
    "account": ("compte", "account", "account number", "iban", "numero de compte", "n de compte"),
    "currency": ("devise", "currency"),
    "balance": ("solde", "balance"),
}

_ALIAS_TO_FIELD = {alias: name for name, aliases in COLUMN_ALIASES.items() for alias in aliases}


def _cell_text(cell: Any) -> str:
    if cell is None:
        return ""
    return str(cell).strip()


def _is_blank(row: Sequence[Any]) -> bool:
    return all(_cell_text(cell) == "" for cell in row)


def map_header(row: Sequence[Any]) -> dict[str, int]:
    """Map field names to column indexes for one candidate header row.

    The first column matching a field wins.
    """
    mapping: dict[str, int] = {}
    for index, cell in enumerate(row):
        name = _ALIAS_TO_FIELD.get(normalize_header(_cell_text(cell)))
        if name is not None and name not in mapping:
            mapping[name] = index
    return mapping


def _is_usable(mapping: dict[str, int]) -> bool:
    has_amount = "amount" in mapping or "debit" in mapping or "credit" in mapping
    return "date" in mapping and has_amount


def find_header(rows: Sequence[Sequence[Any]]) -> tuple[int, dict[str, int]]:
    """Locate the header row within the first rows of a grid.

    Returns:
        (row index, column mapping)

    Raises:
        ParseError: If no row names at least a date and an amount column
    """
    for index, row in enumerate(rows[:HEADER_SCAN_ROWS]):
        mapping = map_header(row)
        if _is_usable(mapping):
            return index, mapping
    raise ParseError(
        "No header row found: expected a date column and an amount (or debit/credit) column",
        location=f"first {HEADER_SCAN_ROWS} rows",
    )


def _column(rows: Sequence[Sequence[Any]], index: Optional[int]) -> list[Any]:
    if index is None:
        return []
    return [row[index] for row in rows if index < len(row)]


def _get(row: Sequence[Any], index: Optional[int]) -> Any:
    if index is None or index >= len(row):
        return None
    return row[index]


def _to_decimal(cell: Any, decimal_separator: str) -> Decimal:
    if isinstance(cell, bool):
        raise ValueError(f"Could not parse amount '{cell}'")
    if isinstance(cell, (int, float, Decimal)):
        return Decimal(str(cell))
    return parse_amount(_cell_text(cell), decimal_separator)


def _text_or_number(cell: Any) -> Optional[str]:
    if cell is None or _cell_text(cell) == "":
        return None
    if isinstance(cell, (int, float, Decimal)) and not isinstance(cell, bool):
        return str(cell)
    return _cell_text(cell)


def rows_to_statement(
    rows: Sequence[Sequence[Any]],
    location_label: str = "line",
    default_currency: str = "EUR",
) -> tuple[list[RawTransactionRecord], list[DetectedAccount]]:
    """Turn a grid of cells into statement records and accounts.

    Rows are grouped by the account column when there is one. Without it the
    whole grid belongs to a single generic account.

    Args:
        rows: Cells, row by row, as strings or native spreadsheet values
        location_label: Word used in error locations ("line" or "row")
        default_currency: Currency when no currency column is present

    Raises:
        ParseError: If the header is missing or a row holds an unusable
            date or amount
    """
    header_index, mapping = find_header(rows)
    data_start = header_index + 1
    body = [(data_start + offset + 1, row) for offset, row in enumerate(rows[data_start:])]
    body = [(number, row) for number, row in body if not _is_blank(row)]
    data_rows = [row for _, row in body]

    text_dates = [_cell_text(c) for c in _column(data_rows, mapping.get("date")) if isinstance(c, str)]
    dayfirst = detect_dayfirst(text_dates)

    amount_columns = [mapping.get(name) for name in ("amount", "debit", "credit", "balance")]
    text_amounts = [
        _cell_text(c)
        for index in amount_columns
        for c in _column(data_rows, index)
        if isinstance(c, str)
    ]
    decimal_separator = detect_decimal_separator(text_amounts)
    logger.debug(
        "Header at %s %d, columns %s, dayfirst=%s, decimal separator '%s'",
        location_label,
        header_index + 1,
        sorted(mapping),
        dayfirst,
        decimal_separator,
    )

    records: list[RawTransactionRecord] = []
    # account token -> (currency, latest balance date, latest balance)
    account_info: dict[Optional[str], dict[str, Any]] = {}

    for number, row in body:
        location = f"{location_label} {number}"
        date_cell = _get(row, mapping.get("date"))
        if date_cell is None or _cell_text(date_cell) == "":
            raise ParseError("Missing date", location=location)
        try:
            txn_date = coerce_date(date_cell, dayfirst=dayfirst)
        except ValueError as e:
            raise ParseError(str(e), location=location)

        try:
            if "amount" in mapping and _cell_text(_get(row, mapping["amount"])) != "":
                amount = _to_decimal(_get(row, mapping["amount"]), decimal_separator)
            elif "debit" in mapping or "credit" in mapping:
                amount = _signed_from_columns(row, mapping, decimal_separator)
            else:
                raise ValueError("Missing amount")
        except ValueError as e:
            raise ParseError(str(e), location=location)

        account_token = _text_or_number(_get(row, mapping.get("account")))
        description = _cell_text(_get(row, mapping.get("description")))
        records.append(
            RawTransactionRecord(
                date=txn_date,
                amount=amount,
                description=description,
                account_token=account_token,
                location=location,
            )
        )

        key = normalize_account_number(account_token)
        info = account_info.setdefault(
            key,
            {"number": account_token, "currency": None, "balance": None, "balance_date": None},
        )
        currency = _cell_text(_get(row, mapping.get("currency")))
        if currency and info["currency"] is None:
            info["currency"] = currency.upper()
        balance_cell = _get(row, mapping.get("balance"))
        if _cell_text(balance_cell) != "":
            try:
                balance = _to_decimal(balance_cell, decimal_separator)
            except ValueError as e:
                raise ParseError(str(e), location=location)
            if info["balance_date"] is None or txn_date >= info["balance_date"]:
                info["balance"] = balance
                info["balance_date"] = txn_date

    if not records:
        raise ParseError("File contains a header but no transactions", location=f"{location_label} {data_start}")

    accounts = [
        DetectedAccount(
            account_number=info["number"],
            currency=info["currency"] or default_currency,
            balance=info["balance"],
            balance_date=info["balance_date"],
        )
        for info in account_info.values()
    ]
    for account in accounts:
        logger.debug("Tabular account %s detected", mask_account_number(account.account_number))
    return records, accounts


def _signed_from_columns(row: Sequence[Any], mapping: dict[str, int], decimal_separator: str) -> Decimal:
    debit = _get(row, mapping.get("debit"))
    credit = _get(row, mapping.get("credit"))
    if isinstance(debit, (int, float, Decimal)) or isinstance(credit, (int, float, Decimal)):
        total = Decimal("0")
        if _cell_text(credit) != "":
            total += abs(_to_decimal(credit, decimal_separator))
        if _cell_text(debit) != "":
            total -= abs(_to_decimal(debit, decimal_separator))
        if _cell_text(credit) == "" and _cell_text(debit) == "":
            raise ValueError("Missing both debit and credit values")
        return total
    return combine_debit_credit(_cell_text(debit), _cell_text(credit), decimal_separator)
