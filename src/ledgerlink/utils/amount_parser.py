"""Amount parsing utilities."""

from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional
import re

_CURRENCY_SYMBOLS = re.compile(r"[$€£¥]|\b(?:EUR|USD|GBP|CHF)\b", re.IGNORECASE)
_SPACES = re.compile(r"[\s\u00a0\u202f']")
_COMMA_DECIMAL = re.compile(r",\d{1,2}$")
_DOT_DECIMAL = re.compile(r"\.\d{1,2}$")


def detect_decimal_separator(values: Iterable[str]) -> str:
    """Guess the decimal separator used by a column of amount strings.

    Looks at every value: the separator that appears last and is followed by
    one or two digits wins. Returns "." when nothing conclusive is found.

    Args:
        values: Raw amount strings from one file

    Returns:
        "." or ","
    """
    comma_votes = 0
    dot_votes = 0
    for raw in values:
        if not raw:
            continue
        value = _SPACES.sub("", str(raw)).strip("()+-")
        if "," in value and "." in value:
            if value.rfind(",") > value.rfind("."):
                comma_votes += 1
            else:
                dot_votes += 1
        elif _COMMA_DECIMAL.search(value):
            comma_votes += 1
        elif _DOT_DECIMAL.search(value):
            dot_votes += 1
    return "," if comma_votes > dot_votes else "."


def parse_amount(amount_str: str, decimal_separator: Optional[str] = None) -> Decimal:
    """Parse an amount string into a Decimal.

    Handles various formats:
    - "123.45", "-123.45", "+123.45"
    - "$123.45", "-€123.45", "123,45 EUR"
    - "1,234.56" and "1.234,56" (thousands separators)
    - "1 234,56" (space or apostrophe grouping)
    - "(123.45)" (negative in parentheses)
    - "123.45-" (trailing minus)

    Args:
        amount_str: Amount string
        decimal_separator: "." or ","; guessed from the value itself when None

    Returns:
        Decimal amount

    Raises:
        ValueError: If amount string cannot be parsed
    """
    if amount_str is None or not str(amount_str).strip():
        raise ValueError("Empty amount string")

    original = str(amount_str)
    value = original.strip()

    # Handle parentheses notation (negative)
    is_negative = False
    if value.startswith("(") and value.endswith(")"):
        is_negative = True
        value = value[1:-1]

    value = _CURRENCY_SYMBOLS.sub("", value)
    value = _SPACES.sub("", value)

    if value.endswith("-"):
        is_negative = not is_negative
        value = value[:-1]

    if decimal_separator is None:
        decimal_separator = detect_decimal_separator([value])

    if decimal_separator == ",":
        value = value.replace(".", "").replace(",", ".")
    else:
        value = value.replace(",", "")

    try:
        amount = Decimal(value)
    except InvalidOperation:
        raise ValueError(f"Could not parse amount '{original}'")
    if not amount.is_finite():
        raise ValueError(f"Could not parse amount '{original}'")
    return -amount if is_negative else amount


def combine_debit_credit(
    debit: Optional[str], credit: Optional[str], decimal_separator: Optional[str] = None
) -> Decimal:
    """Fold a debit column and a credit column into one signed amount.

    Debits are always outflows whatever sign the bank printed them with.

    Raises:
        ValueError: If both values are missing or unparseable
    """
    debit = (debit or "").strip()
    credit = (credit or "").strip()
    if not debit and not credit:
        raise ValueError("Missing both debit and credit values")

    total = Decimal("0")
    if credit:
        total += abs(parse_amount(credit, decimal_separator))
    if debit:
        total -= abs(parse_amount(debit, decimal_separator))
    return total
