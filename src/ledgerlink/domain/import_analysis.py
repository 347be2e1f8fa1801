"""Fingerprinting, duplicate detection and classification of an import.

Preview and commit run the same analysis: the preview with the accounts as
resolved at that time, the commit again with the accounts it materialized.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ledgerlink.config import ImportSettings
from ledgerlink.database.base import Database
from ledgerlink.domain.classifier import ClassificationRequest, ClassificationResult, Classifier
from ledgerlink.domain.deduplicator import DuplicateMatch, Deduplicator, account_identity, fingerprint_records
from ledgerlink.domain.entities import RawTransactionRecord

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordAnalysis:
    """What the ledger says about one statement record.

    ``result`` is None for duplicates, which are not classified again.
    """

    record: RawTransactionRecord
    fingerprint: str
    duplicate: Optional[DuplicateMatch]
    result: Optional[ClassificationResult]

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate is not None


class ImportAnalyzer:
    """Run deduplication then classification over statement records."""

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        self.db = db
        self.settings = settings or ImportSettings()
        self.deduplicator = Deduplicator(db, window_days=self.settings.dedup_window_days)
        self.classifier = Classifier(db, self.settings)

    def analyze(
        self,
        bank_id: int,
        records: list[RawTransactionRecord],
        account_ids: dict[str, Optional[int]],
        currencies: Optional[dict[str, str]] = None,
    ) -> list[RecordAnalysis]:
        """Analyze records of one statement.

        Args:
            bank_id: Bank the statement is imported into
            records: Statement records in file order
            account_ids: Account key -> existing account ID, or None for an
                account that does not exist yet
            currencies: Account key -> currency declared by the statement

        Returns:
            One RecordAnalysis per record, in the same order
        """
        currencies = currencies or {}
        groups: dict[str, list[int]] = {}
        for index, record in enumerate(records):
            groups.setdefault(record.account_key, []).append(index)

        fingerprints: list[str] = [""] * len(records)
        duplicates: list[Optional[DuplicateMatch]] = [None] * len(records)
        for key, indexes in groups.items():
            account_id = account_ids.get(key)
            identity = account_identity(account_id, bank_id, key)
            group = [records[i] for i in indexes]
            group_fingerprints = fingerprint_records(identity, group)
            matches = self.deduplicator.find_duplicates(account_id, group, group_fingerprints)
            for i, fingerprint, match in zip(indexes, group_fingerprints, matches):
                fingerprints[i] = fingerprint
                duplicates[i] = match

        to_classify = [i for i in range(len(records)) if duplicates[i] is None]
        requests = [
            ClassificationRequest(
                account_key=records[i].account_key,
                account_id=account_ids.get(records[i].account_key),
                date=records[i].date,
                amount=records[i].amount,
                description=records[i].description,
                currency=currencies.get(records[i].account_key),
            )
            for i in to_classify
        ]
        results: list[Optional[ClassificationResult]] = [None] * len(records)
        for i, result in zip(to_classify, self.classifier.classify(bank_id, requests)):
            results[i] = result

        logger.debug(
            "Analyzed %d records: %d duplicates", len(records), len(records) - len(to_classify)
        )
        return [
            RecordAnalysis(record=records[i], fingerprint=fingerprints[i], duplicate=duplicates[i], result=results[i])
            for i in range(len(records))
        ]
