"""Transaction domain service."""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from ledgerlink.config import ImportSettings
from ledgerlink.database.base import Database
from ledgerlink.domain.classifier import ClassificationRequest, Classifier
from ledgerlink.domain.deduplicator import account_identity, compute_fingerprint
from ledgerlink.domain.entities import Classification, Transaction as TransactionEntity
from ledgerlink.domain.errors import (
    ConflictError,
    NotFoundError,
    account_not_found,
    duplicate_transaction_fingerprint,
    transaction_not_found,
)

logger = logging.getLogger(__name__)


class TransactionService:
    """Service for managing transactions."""

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize transaction service.

        Args:
            db: Database instance
            settings: Import tunables; read from the environment when None
        """
        self.db = db
        self.classifier = Classifier(db, settings or ImportSettings.from_env())

    def create_transaction(
        self,
        account_id: int,
        date: date,
        amount: Decimal,
        description: str = "",
        category: Optional[str] = None,
    ) -> int:
        """Record a transaction typed in by hand.

        It is fingerprinted and classified the same way as an imported line.

        Args:
            account_id: Account ID
            date: Transaction date
            amount: Signed amount, negative for an outflow
            description: Free text description
            category: Optional category label

        Returns:
            Transaction ID

        Raises:
            NotFoundError: If the account doesn't exist
            ConflictError: If the same transaction is already recorded
        """
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))

        description = (description or "").strip()
        fingerprint = compute_fingerprint(account_identity(account_id), date, amount, description)
        if self.db.transaction_exists(account_id, fingerprint):
            raise ConflictError(duplicate_transaction_fingerprint(fingerprint, account_id))

        result = self.classifier.classify_one(
            account.bank_id,
            ClassificationRequest(
                account_key=account_identity(account_id),
                account_id=account_id,
                date=date,
                amount=amount,
                description=description,
            ),
        )
        classification = result.classification
        linked = result.linked_account_id if classification.is_internal else None
        confidence = result.confidence
        if classification.is_internal and linked is None:
            classification, confidence = Classification.UNKNOWN, 0.0

        transaction_id = self.db.create_transaction(
            account_id=account_id,
            date=date,
            amount=amount,
            description=description,
            fingerprint=fingerprint,
            classification=classification,
            classification_confidence=confidence,
            linked_account_id=linked,
            category=category,
        )
        logger.info(
            "Recorded transaction %s on account %s as %s", transaction_id, account_id, classification.value
        )
        return transaction_id

    def get_transaction(self, transaction_id: int) -> Optional[TransactionEntity]:
        """Get transaction by ID.

        Args:
            transaction_id: Transaction ID

        Returns:
            Transaction entity or None if not found
        """
        return self.db.get_transaction(transaction_id)

    def list_transactions(
        self,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        classification: Optional[Classification] = None,
        import_batch_id: Optional[int] = None,
    ) -> list[TransactionEntity]:
        """List transactions with optional filters, newest first."""
        return self.db.list_transactions(
            account_id=account_id,
            start_date=start_date,
            end_date=end_date,
            classification=classification,
            import_batch_id=import_batch_id,
        )

    def update_category(self, transaction_id: int, category: Optional[str]) -> None:
        """Set or clear a transaction's category label.

        Raises:
            NotFoundError: If transaction doesn't exist
        """
        if self.db.get_transaction(transaction_id) is None:
            raise NotFoundError(transaction_not_found(transaction_id))
        self.db.update_transaction_category(transaction_id, category or None)
