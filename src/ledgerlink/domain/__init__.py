"""Domain layer for ledgerlink application.

Services live in their own modules (``ledgerlink.domain.import_service`` and
friends) and are imported from there; this package only re-exports the data
model so the database layer can depend on it without import cycles.
"""

from ledgerlink.domain.entities import (
    Account,
    AccountType,
    Bank,
    Classification,
    ImportBatch,
    ImportPreview,
    StatementFormat,
    Transaction,
)

__all__ = [
    "Account",
    "AccountType",
    "Bank",
    "Classification",
    "ImportBatch",
    "ImportPreview",
    "StatementFormat",
    "Transaction",
]
