"""Reclassification of stored transactions."""

import logging
from typing import Optional, Union

from ledgerlink.config import ImportSettings
from ledgerlink.database.base import Database
from ledgerlink.domain.classifier import ClassificationRequest, Classifier
from ledgerlink.domain.deduplicator import account_identity
from ledgerlink.domain.entities import Classification, Transaction
from ledgerlink.domain.errors import (
    NotFoundError,
    ValidationError,
    account_not_found,
    transaction_not_found,
)

logger = logging.getLogger(__name__)


def coerce_classification(value: Union[str, Classification]) -> Classification:
    """Accept a classification name in any case.

    Raises:
        ValidationError: For an unknown classification
    """
    if isinstance(value, Classification):
        return value
    try:
        return Classification(str(value).strip().upper())
    except ValueError:
        choices = ", ".join(c.value for c in Classification)
        raise ValidationError(f"Unknown classification '{value}'. Use one of: {choices}")


class ReclassificationService:
    """Service for re-running or overriding transaction classifications.

    Only two paths change a stored classification: ``override_classification``
    (sets the manual flag) and ``reclassify_one`` (clears it). The bulk
    ``reclassify_automatic`` leaves manually classified transactions alone.
    """

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize reclassification service.

        Args:
            db: Database instance
            settings: Import tunables; read from the environment when None
        """
        self.db = db
        self.classifier = Classifier(db, settings or ImportSettings.from_env())

    def _bank_of(self, account_id: int) -> int:
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        return account.bank_id

    def _recompute(self, transaction: Transaction, manually_classified: bool = False) -> None:
        request = ClassificationRequest(
            account_key=account_identity(transaction.account_id),
            account_id=transaction.account_id,
            date=transaction.date,
            amount=transaction.amount,
            description=transaction.description,
            transaction_id=transaction.id,
        )
        result = self.classifier.classify_one(self._bank_of(transaction.account_id), request)
        linked = result.linked_account_id if result.classification.is_internal else None
        classification = result.classification
        confidence = result.confidence
        if classification.is_internal and linked is None:
            classification, confidence = Classification.UNKNOWN, 0.0
        self.db.update_transaction_classification(
            transaction.id,
            classification=classification,
            classification_confidence=confidence,
            linked_account_id=linked,
            manually_classified=manually_classified,
        )

    def reclassify_one(self, transaction_id: int) -> Transaction:
        """Re-run the classifier on a transaction against the current ledger.

        This is the explicit user action that also clears a manual override.

        Raises:
            NotFoundError: If the transaction does not exist
        """
        with self.db.unit_of_work():
            transaction = self.db.get_transaction_for_update(transaction_id)
            if transaction is None:
                raise NotFoundError(transaction_not_found(transaction_id))
            self._recompute(transaction)

        updated = self.db.get_transaction(transaction_id)
        logger.info(
            "Transaction %s reclassified: %s -> %s (%.2f)",
            transaction_id,
            transaction.classification.value,
            updated.classification.value,
            updated.classification_confidence,
        )
        return updated

    def override_classification(
        self,
        transaction_id: int,
        classification: Union[str, Classification],
        linked_account_id: Optional[int] = None,
    ) -> Transaction:
        """Set a classification by hand.

        INTERNAL_* classifications need ``linked_account_id``, distinct from
        the transaction's own account. For the other classifications it is
        ignored.

        Raises:
            ValidationError: If the combination is invalid
            NotFoundError: If the transaction or linked account does not exist
        """
        classification = coerce_classification(classification)
        if classification.is_internal:
            if linked_account_id is None:
                raise ValidationError(f"{classification.value} needs a linked account")
        else:
            linked_account_id = None

        with self.db.unit_of_work():
            transaction = self.db.get_transaction_for_update(transaction_id)
            if transaction is None:
                raise NotFoundError(transaction_not_found(transaction_id))
            if linked_account_id is not None:
                if linked_account_id == transaction.account_id:
                    raise ValidationError("A transfer cannot be linked to its own account")
                if self.db.get_account(linked_account_id) is None:
                    raise NotFoundError(account_not_found(linked_account_id))
            self.db.update_transaction_classification(
                transaction_id,
                classification=classification,
                classification_confidence=1.0,
                linked_account_id=linked_account_id,
                manually_classified=True,
            )

        logger.info(
            "Transaction %s manually classified as %s%s",
            transaction_id,
            classification.value,
            f" (linked to account {linked_account_id})" if linked_account_id is not None else "",
        )
        return self.db.get_transaction(transaction_id)

    def reclassify_automatic(self, account_id: Optional[int] = None) -> int:
        """Re-run the classifier over every automatically classified transaction.

        Manually classified transactions are skipped.

        Args:
            account_id: Restrict to one account

        Returns:
            Number of transactions whose classification changed
        """
        if account_id is not None and self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))

        changed = 0
        with self.db.unit_of_work():
            for transaction in self.db.list_transactions(account_id=account_id, manually_classified=False):
                current = self.db.get_transaction_for_update(transaction.id)
                self._recompute(current)
                after = self.db.get_transaction(transaction.id)
                if (after.classification, after.linked_account_id) != (
                    current.classification,
                    current.linked_account_id,
                ):
                    changed += 1

        logger.info("Automatic reclassification changed %d transactions", changed)
        return changed
