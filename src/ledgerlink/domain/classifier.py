"""Internal/external classification of transactions.

A record is an internal transfer when exactly one opposite movement of the
same amount and currency shows up in another account of the profile within a few days and
with a similar description. The counterpart is searched in the ledger and
among the other records of the same import. Without a unique counterpart the
description decides between EXTERNAL and UNKNOWN.
"""

import logging
import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from rapidfuzz import fuzz

from ledgerlink.config import ImportSettings
from ledgerlink.database.base import Database
from ledgerlink.domain.entities import Account, Classification
from ledgerlink.utils.date_parser import days_between, window
from ledgerlink.utils.text import extract_iban, normalize_account_number, normalize_header

logger = logging.getLogger(__name__)

# Weights of the confidence score
AMOUNT_WEIGHT = 0.35
DATE_WEIGHT = 0.2
SIMILARITY_WEIGHT = 0.25
UNIQUENESS_WEIGHT = 0.2

IBAN_CONFIDENCE = 0.95
EXTERNAL_PATTERN_CONFIDENCE = 0.9
EXTERNAL_DEFAULT_CONFIDENCE = 0.6
TRANSFER_WITHOUT_COUNTERPART_CONFIDENCE = 0.4
AMBIGUOUS_EXTERNAL_CONFIDENCE = 0.6
AMBIGUOUS_CONFIDENCE = 0.3

_TRANSFER_MARKERS = re.compile(r"\b(vir|virt|virement|transfer|transfert|versement)\b")
_EXTERNAL_MARKERS = re.compile(
    r"\b(cb|carte|card|visa|mastercard|maestro|amex|prlv|prelevement|direct debit|pos|achat|paiement)\b"
)


def has_transfer_marker(description: str) -> bool:
    """Whether a description announces a transfer (VIR, VIREMENT, TRANSFER...)."""
    return _TRANSFER_MARKERS.search(normalize_header(description)) is not None


def has_external_marker(description: str) -> bool:
    """Whether a description carries a card or direct-debit marker."""
    return _EXTERNAL_MARKERS.search(normalize_header(description)) is not None


def description_similarity(first: str, second: str) -> float:
    """Token-set similarity of two descriptions, between 0 and 1."""
    left, right = normalize_header(first), normalize_header(second)
    if not left or not right:
        return 0.0
    return fuzz.token_set_ratio(left, right) / 100.0


def clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


@dataclass(frozen=True)
class ClassificationRequest:
    """A movement to classify.

    ``account_id`` is None for an account that only exists in a preview;
    ``account_key`` identifies it among the records of one import.
    ``transaction_id`` is set when a stored transaction is re-classified.
    ``currency`` is the currency of a preview-only account; a stored
    account's own currency takes precedence.
    """

    account_key: str
    account_id: Optional[int]
    date: date
    amount: Decimal
    description: str
    transaction_id: Optional[int] = None
    currency: Optional[str] = None


@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of classifying one movement."""

    classification: Classification
    confidence: float
    linked_account_id: Optional[int] = None
    linked_account_key: Optional[str] = None
    counterpart_transaction_id: Optional[int] = None
    needs_review: bool = False


@dataclass(frozen=True)
class _Candidate:
    account_id: Optional[int]
    account_key: Optional[str]
    bank_id: int
    date: date
    description: str
    similarity: float
    transaction_id: Optional[int] = None


class Classifier:
    """Assign a classification and a confidence to movements."""

    def __init__(self, db: Database, settings: Optional[ImportSettings] = None):
        """Initialize classifier.

        Args:
            db: Database instance
            settings: Import tunables; defaults when None
        """
        self.db = db
        self.settings = settings or ImportSettings()

    def classify(
        self, bank_id: int, requests: list[ClassificationRequest]
    ) -> list[ClassificationResult]:
        """Classify movements belonging to accounts of one bank.

        Args:
            bank_id: Bank owning the requests' accounts
            requests: Movements to classify; they are also counterpart
                candidates for each other

        Returns:
            One result per request, in the same order
        """
        accounts = {account.id: account for account in self.db.list_accounts()}
        by_number = {
            normalize_account_number(account.account_number): account
            for account in accounts.values()
            if account.account_number
        }
        pending_keys = {request.account_key for request in requests if request.account_id is None}
        currencies = [self._currency_of(request, accounts) for request in requests]

        results = []
        for index, request in enumerate(requests):
            candidates = self._ledger_candidates(request, currencies[index], accounts)
            candidates.extend(self._batch_candidates(index, requests, currencies, bank_id))
            result = self._decide(request, bank_id, candidates, by_number, pending_keys)
            results.append(result)
            logger.debug(
                "%s %s on %s: %s (%.2f, %d candidates)",
                request.amount,
                request.description[:40],
                request.date,
                result.classification.value,
                result.confidence,
                len(candidates),
            )
        return results

    def classify_one(self, bank_id: int, request: ClassificationRequest) -> ClassificationResult:
        """Classify a single movement against the ledger."""
        return self.classify(bank_id, [request])[0]

    def _qualifies(self, description: str, other: str) -> Optional[float]:
        similarity = description_similarity(description, other)
        if similarity >= self.settings.similarity_threshold:
            return similarity
        if has_transfer_marker(description) and has_transfer_marker(other):
            return similarity
        return None

    @staticmethod
    def _currency_of(request: ClassificationRequest, accounts: dict[int, Account]) -> Optional[str]:
        account = accounts.get(request.account_id) if request.account_id is not None else None
        currency = account.currency if account is not None else request.currency
        return currency.upper() if currency else None

    def _ledger_candidates(
        self, request: ClassificationRequest, currency: Optional[str], accounts: dict[int, Account]
    ) -> list[_Candidate]:
        if not request.amount:
            return []
        start, end = window(request.date, self.settings.transfer_tolerance_days)
        found = self.db.find_counterpart_candidates(
            -request.amount, start, end, exclude_account_id=request.account_id, currency=currency
        )
        candidates = []
        for txn in found:
            if txn.id == request.transaction_id:
                continue
            # Already the other leg of a transfer with a third account
            if (
                txn.classification.is_internal
                and txn.linked_account_id is not None
                and txn.linked_account_id != request.account_id
            ):
                continue
            account = accounts.get(txn.account_id)
            if account is None:
                continue
            similarity = self._qualifies(request.description, txn.description)
            if similarity is None:
                continue
            candidates.append(
                _Candidate(
                    account_id=txn.account_id,
                    account_key=None,
                    bank_id=account.bank_id,
                    date=txn.date,
                    description=txn.description,
                    similarity=similarity,
                    transaction_id=txn.id,
                )
            )
        return candidates

    def _batch_candidates(
        self,
        index: int,
        requests: list[ClassificationRequest],
        currencies: list[Optional[str]],
        bank_id: int,
    ) -> list[_Candidate]:
        request = requests[index]
        if not request.amount:
            return []
        candidates = []
        for other_index, other in enumerate(requests):
            if other_index == index or other.account_key == request.account_key:
                continue
            if other.account_id is not None and other.account_id == request.account_id:
                continue
            if other.amount != -request.amount:
                continue
            currency, other_currency = currencies[index], currencies[other_index]
            if currency and other_currency and currency != other_currency:
                continue
            if days_between(other.date, request.date) > self.settings.transfer_tolerance_days:
                continue
            similarity = self._qualifies(request.description, other.description)
            if similarity is None:
                continue
            candidates.append(
                _Candidate(
                    account_id=other.account_id,
                    account_key=other.account_key,
                    bank_id=bank_id,
                    date=other.date,
                    description=other.description,
                    similarity=similarity,
                )
            )
        return candidates

    def _result(self, classification: Classification, confidence: float, **links) -> ClassificationResult:
        confidence = round(clamp(confidence), 4)
        needs_review = (
            confidence < self.settings.review_threshold or classification == Classification.UNKNOWN
        )
        return ClassificationResult(
            classification=classification, confidence=confidence, needs_review=needs_review, **links
        )

    def _decide(
        self,
        request: ClassificationRequest,
        bank_id: int,
        candidates: list[_Candidate],
        by_number: dict[Optional[str], Account],
        pending_keys: Iterable[str],
    ) -> ClassificationResult:
        if len(candidates) == 1:
            candidate = candidates[0]
            tolerance = self.settings.transfer_tolerance_days
            date_score = 1.0 - 0.5 * days_between(candidate.date, request.date) / (tolerance + 1)
            confidence = (
                AMOUNT_WEIGHT * 1.0
                + DATE_WEIGHT * date_score
                + SIMILARITY_WEIGHT * candidate.similarity
                + UNIQUENESS_WEIGHT * 1.0
            )
            classification = (
                Classification.INTERNAL_INTRA_BANK
                if candidate.bank_id == bank_id
                else Classification.INTERNAL_INTER_BANK
            )
            return self._result(
                classification,
                confidence,
                linked_account_id=candidate.account_id,
                linked_account_key=candidate.account_key,
                counterpart_transaction_id=candidate.transaction_id,
            )

        iban = extract_iban(request.description)
        if iban is not None and iban != request.account_key:
            target = by_number.get(iban)
            if target is not None and target.id != request.account_id:
                classification = (
                    Classification.INTERNAL_INTRA_BANK
                    if target.bank_id == bank_id
                    else Classification.INTERNAL_INTER_BANK
                )
                return self._result(classification, IBAN_CONFIDENCE, linked_account_id=target.id)
            if iban in pending_keys:
                return self._result(
                    Classification.INTERNAL_INTRA_BANK, IBAN_CONFIDENCE, linked_account_key=iban
                )

        external = has_external_marker(request.description)
        if candidates:
            logger.warning(
                "%d possible counterparts for %s on %s, left for review",
                len(candidates),
                request.amount,
                request.date,
            )
            if external:
                return self._result(Classification.EXTERNAL, AMBIGUOUS_EXTERNAL_CONFIDENCE)
            return self._result(Classification.UNKNOWN, AMBIGUOUS_CONFIDENCE)

        if external:
            return self._result(Classification.EXTERNAL, EXTERNAL_PATTERN_CONFIDENCE)
        if has_transfer_marker(request.description):
            return self._result(Classification.UNKNOWN, TRANSFER_WITHOUT_COUNTERPART_CONFIDENCE)
        return self._result(Classification.EXTERNAL, EXTERNAL_DEFAULT_CONFIDENCE)
