"""Fingerprinting and duplicate detection of statement records."""

import hashlib
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional

from ledgerlink.database.base import Database
from ledgerlink.domain.entities import RawTransactionRecord, Transaction
from ledgerlink.utils.date_parser import window
from ledgerlink.utils.text import normalize_description

logger = logging.getLogger(__name__)

_CENT = Decimal("0.01")


def account_identity(account_id: Optional[int] = None, bank_id: Optional[int] = None, key: str = "") -> str:
    """Identity an account contributes to fingerprints.

    Existing accounts are identified by ID. Accounts that only exist in a
    preview use their bank and statement key until they are created.
    """
    if account_id is not None:
        return f"account:{account_id}"
    return f"pending:{bank_id}:{key}"


def compute_fingerprint(
    identity: str, txn_date: date, amount: Decimal, description: str, ordinal: int = 0
) -> str:
    """Stable fingerprint of a transaction.

    Two records with the same account, date, amount and normalized
    description share a fingerprint. ``ordinal`` separates identical lines
    repeated within one statement (the second one gets ordinal 1).
    """
    parts = [
        identity,
        txn_date.isoformat(),
        str(Decimal(amount).quantize(_CENT, rounding=ROUND_HALF_UP)),
        normalize_description(description),
    ]
    if ordinal:
        parts.append(f"#{ordinal}")
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def fingerprint_records(identity: str, records: Iterable[RawTransactionRecord]) -> list[str]:
    """Fingerprints of one account's records, in order, with repeat ordinals."""
    seen: Counter[str] = Counter()
    fingerprints = []
    for record in records:
        base = compute_fingerprint(identity, record.date, record.amount, record.description)
        fingerprints.append(
            compute_fingerprint(identity, record.date, record.amount, record.description, seen[base])
        )
        seen[base] += 1
    return fingerprints


@dataclass(frozen=True)
class DuplicateMatch:
    """The stored transaction a statement record duplicates."""

    transaction: Transaction
    by_external_id: bool = False


class Deduplicator:
    """Find statement records that are already in the ledger."""

    def __init__(self, db: Database, window_days: int = 3):
        """Initialize deduplicator.

        Args:
            db: Database instance
            window_days: Half-width of the date window loaded per account
        """
        self.db = db
        self.window_days = window_days

    def find_duplicates(
        self,
        account_id: Optional[int],
        records: list[RawTransactionRecord],
        fingerprints: list[str],
    ) -> list[Optional[DuplicateMatch]]:
        """Match one account's records against its stored transactions.

        A record is a duplicate when a stored transaction of the account has
        the same fingerprint, or the same bank-issued transaction ID (FITID).
        Records of an account that does not exist yet are never duplicates.

        Returns:
            One entry per record: the match, or None for a new record
        """
        if account_id is None or not records:
            return [None] * len(records)

        start, _ = window(min(r.date for r in records), self.window_days)
        _, end = window(max(r.date for r in records), self.window_days)
        stored = self.db.list_transactions(account_id=account_id, start_date=start, end_date=end)
        by_fingerprint = {txn.fingerprint: txn for txn in stored}
        by_external_id = {txn.external_id: txn for txn in stored if txn.external_id}

        matches: list[Optional[DuplicateMatch]] = []
        for record, fingerprint in zip(records, fingerprints):
            if fingerprint in by_fingerprint:
                matches.append(DuplicateMatch(by_fingerprint[fingerprint]))
            elif record.external_id and record.external_id in by_external_id:
                matches.append(DuplicateMatch(by_external_id[record.external_id], by_external_id=True))
            else:
                matches.append(None)

        found = sum(1 for m in matches if m is not None)
        if found:
            logger.debug("Account %s: %d of %d records already stored", account_id, found, len(records))
        return matches
