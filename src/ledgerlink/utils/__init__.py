"""Utility functions for ledgerlink."""

from ledgerlink.utils.date_parser import parse_date, parse_ofx_date
from ledgerlink.utils.amount_parser import parse_amount
from ledgerlink.utils.text import normalize_account_number, normalize_description

__all__ = [
    "parse_date",
    "parse_ofx_date",
    "parse_amount",
    "normalize_account_number",
    "normalize_description",
]
