"""Text normalization helpers for descriptions and account identifiers."""

import re
import unicodedata
from typing import Optional

_WHITESPACE = re.compile(r"\s+")
_ACCOUNT_NOISE = re.compile(r"[\s\-./]")
_IBAN = re.compile(r"\b([A-Z]{2}\d{2}(?:[ ]?[A-Z0-9]{4}){2,7}(?:[ ]?[A-Z0-9]{1,3})?)\b")
_BIC = re.compile(r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")


def normalize_description(description: Optional[str]) -> str:
    """Lowercase a description and collapse runs of whitespace."""
    if not description:
        return ""
    return _WHITESPACE.sub(" ", description).strip().lower()


def normalize_account_number(account_number: Optional[str]) -> Optional[str]:
    """Canonical form of an account number or IBAN used for matching.

    Uppercases and strips spaces, dashes, dots and slashes. Blank input
    normalizes to None.
    """
    if account_number is None:
        return None
    cleaned = _ACCOUNT_NOISE.sub("", str(account_number)).upper()
    return cleaned or None


def normalize_header(header: Optional[str]) -> str:
    """Lowercase a column header and strip accents and surrounding spaces."""
    if header is None:
        return ""
    decomposed = unicodedata.normalize("NFD", str(header))
    stripped = "".join(c for c in decomposed if unicodedata.category(c) != "Mn")
    return _WHITESPACE.sub(" ", stripped).strip().lower()


def extract_iban(description: Optional[str]) -> Optional[str]:
    """Return the first IBAN-looking token of a description, normalized."""
    if not description:
        return None
    match = _IBAN.search(description.upper())
    if match is None:
        return None
    return normalize_account_number(match.group(1))


def is_bic(value: Optional[str]) -> bool:
    """Whether a value has the shape of a SWIFT/BIC code."""
    return bool(value) and _BIC.match(value.strip().upper()) is not None


def mask_account_number(account_number: Optional[str]) -> str:
    """Mask an account number or IBAN for log output.

    IBANs keep their country/check prefix and last four characters
    ("FR76 **** **** **** 1234"); other numbers keep the last four only.
    """
    if not account_number:
        return "<none>"
    clean = account_number.replace(" ", "")
    if len(clean) < 6:
        return clean
    if re.match(r"^[A-Z]{2}\d{2}", clean) and len(clean) >= 15:
        return f"{clean[:4]} **** **** **** {clean[-4:]}"
    return f"****{clean[-4:]}"
