"""Mapper functions to convert between domain models and SQLAlchemy models.

This layer isolates the conversion logic, so string-typed enum columns and
numeric columns come out of the database as proper domain types.
"""

from decimal import Decimal

from ledgerlink.domain import entities as domain
from ledgerlink.database.models import (
    Bank as ORMBank,
    Account as ORMAccount,
    Transaction as ORMTransaction,
    ImportBatch as ORMImportBatch,
)


def bank_to_domain(orm_bank: ORMBank) -> domain.Bank:
    """Convert SQLAlchemy Bank model to domain Bank entity."""
    return domain.Bank(
        id=orm_bank.id,
        name=orm_bank.name,
        color=orm_bank.color,
        icon=orm_bank.icon,
        swift_bic=orm_bank.swift_bic,
        active=bool(orm_bank.active),
        created_at=orm_bank.created_at,
    )


def account_to_domain(orm_account: ORMAccount) -> domain.Account:
    """Convert SQLAlchemy Account model to domain Account entity."""
    return domain.Account(
        id=orm_account.id,
        bank_id=orm_account.bank_id,
        name=orm_account.name,
        account_type=domain.AccountType(orm_account.account_type),
        currency=orm_account.currency,
        balance=Decimal(orm_account.balance if orm_account.balance is not None else 0),
        balance_date=orm_account.balance_date,
        account_number=orm_account.account_number,
        active=bool(orm_account.active),
        created_at=orm_account.created_at,
    )


def transaction_to_domain(orm_transaction: ORMTransaction) -> domain.Transaction:
    """Convert SQLAlchemy Transaction model to domain Transaction entity."""
    return domain.Transaction(
        id=orm_transaction.id,
        account_id=orm_transaction.account_id,
        date=orm_transaction.date,
        amount=Decimal(orm_transaction.amount),
        description=orm_transaction.description or "",
        category=orm_transaction.category,
        classification=domain.Classification(orm_transaction.classification),
        classification_confidence=float(orm_transaction.classification_confidence),
        linked_account_id=orm_transaction.linked_account_id,
        fingerprint=orm_transaction.fingerprint,
        import_batch_id=orm_transaction.import_batch_id,
        manually_classified=bool(orm_transaction.manually_classified),
        external_id=orm_transaction.external_id,
        created_at=orm_transaction.created_at,
    )


def import_batch_to_domain(orm_batch: ORMImportBatch) -> domain.ImportBatch:
    """Convert SQLAlchemy ImportBatch model to domain ImportBatch entity."""
    return domain.ImportBatch(
        id=orm_batch.id,
        bank_id=orm_batch.bank_id,
        source_fingerprint=orm_batch.source_fingerprint,
        source_format=orm_batch.source_format,
        inserted_count=orm_batch.inserted_count,
        duplicate_count=orm_batch.duplicate_count or 0,
        total_count=orm_batch.total_count or 0,
        created_at=orm_batch.created_at,
    )
