"""Atomic application of an import preview to the ledger."""

import logging
from datetime import datetime, time, UTC
from typing import Callable, Iterable, Optional

from ledgerlink.config import ImportSettings
from ledgerlink.database.base import Database
from ledgerlink.domain.entities import (
    GENERIC_ACCOUNT_KEY,
    Account,
    Classification,
    CommitResult,
    CommitSucceeded,
    ImportPreview,
    PreviewAccount,
    RawTransactionRecord,
)
from ledgerlink.domain.errors import (
    CommitError,
    DuplicateImportError,
    NotFoundError,
    ResolutionError,
    ValidationError,
    account_archived_for_import,
    bank_not_found,
    commit_failed,
    file_already_imported,
)
from ledgerlink.domain.import_analysis import ImportAnalyzer, RecordAnalysis
from ledgerlink.utils.text import mask_account_number, normalize_account_number

logger = logging.getLogger(__name__)

CommitListener = Callable[[CommitSucceeded], None]


class ImportCommitter:
    """Apply an edited preview to the ledger in one unit of work.

    Account names come from the preview as the user edited them. Everything
    else that matters to ledger integrity (which account a key designates,
    duplicate status, classification) is derived again from the ledger.
    """

    def __init__(
        self,
        db: Database,
        settings: Optional[ImportSettings] = None,
        listeners: Optional[Iterable[CommitListener]] = None,
    ):
        """Initialize import committer.

        Args:
            db: Database instance
            settings: Import tunables; defaults when None
            listeners: Callables notified after each successful commit
        """
        self.db = db
        self.analyzer = ImportAnalyzer(db, settings)
        self.listeners: list[CommitListener] = list(listeners or [])

    def add_listener(self, listener: CommitListener) -> None:
        """Register a callable notified after each successful commit."""
        self.listeners.append(listener)

    def commit(self, bank_id: int, preview: ImportPreview) -> CommitResult:
        """Commit a preview.

        Args:
            bank_id: Target bank
            preview: Preview as returned by the preview step, possibly with
                edited account names

        Returns:
            CommitResult with created account IDs, inserted count and batch ID

        Raises:
            NotFoundError: If the bank does not exist
            ValidationError: If the bank is archived or the preview is inconsistent
            ResolutionError: If an ambiguous account was left unresolved or a
                statement account was archived since the preview
            DuplicateImportError: If this file was already imported into the bank
            CommitError: If the unit of work failed; nothing was saved
        """
        bank = self.db.get_bank(bank_id)
        if bank is None:
            raise NotFoundError(bank_not_found(bank_id))
        if not bank.active:
            raise ValidationError(f"Bank {bank_id} is archived; unarchive it before importing")
        self._validate_preview(bank_id, preview)

        previous = self.db.find_import_batch(bank_id, preview.source_fingerprint)
        if previous is not None:
            raise DuplicateImportError(file_already_imported(bank_id, previous.id))

        try:
            with self.db.unit_of_work():
                result, affected = self._apply(bank_id, preview)
        except ValidationError:
            raise
        except Exception as e:
            logger.error("Import into bank %s rolled back: %s", bank_id, e)
            raise CommitError(commit_failed(str(e))) from e

        logger.info(
            "Committed import batch %s into bank %s: %d transactions, %d new accounts",
            result.import_batch_id,
            bank_id,
            result.inserted_transactions,
            len(result.created_accounts),
        )
        self._notify(
            CommitSucceeded(
                bank_id=bank_id,
                import_batch_id=result.import_batch_id,
                inserted_transactions=result.inserted_transactions,
                affected_account_ids=tuple(sorted(affected)),
            )
        )
        return result

    def _validate_preview(self, bank_id: int, preview: ImportPreview) -> None:
        if preview.bank_id != bank_id:
            raise ValidationError(
                f"Preview was built for bank {preview.bank_id}, not bank {bank_id}"
            )
        keys = [account.key for account in preview.accounts]
        if len(set(keys)) != len(keys):
            raise ValidationError("Preview lists the same account twice")
        for account in preview.accounts:
            if not account.account_name or not account.account_name.strip():
                raise ValidationError(f"Account '{account.key}' needs a name")
        unknown = {t.account_key for t in preview.transactions} - set(keys)
        if unknown:
            raise ValidationError(
                f"Preview transactions reference unknown accounts: {', '.join(sorted(unknown))}"
            )

    def _apply(self, bank_id: int, preview: ImportPreview) -> tuple[CommitResult, set[int]]:
        batch_id = self.db.create_import_batch(
            bank_id, preview.source_fingerprint, preview.source_format.value
        )

        bank_accounts = self.db.list_accounts(bank_id=bank_id)
        by_number = {
            normalize_account_number(account.account_number): account
            for account in bank_accounts
            if account.account_number
        }
        active = [account for account in bank_accounts if account.active]

        account_ids: dict[str, int] = {}
        created: list[int] = []
        for item in preview.accounts:
            account_id, is_new = self._materialize(bank_id, item, by_number, active)
            account_ids[item.key] = account_id
            if is_new:
                created.append(account_id)

        records = [
            RawTransactionRecord(
                date=t.date,
                amount=t.amount,
                description=t.description,
                account_token=None if t.account_key == GENERIC_ACCOUNT_KEY else t.account_key,
                external_id=t.external_id,
            )
            for t in preview.transactions
        ]
        currencies = {item.key: item.currency for item in preview.accounts}
        analyses = self.analyzer.analyze(bank_id, records, dict(account_ids), currencies)
        to_insert = [a for a in analyses if not a.is_duplicate]

        rows = [self._row(analysis, account_ids, batch_id) for analysis in to_insert]
        inserted_ids = self.db.insert_transactions(rows)
        self._pair_counterparts(to_insert, rows)

        affected = set(created)
        affected.update(row["account_id"] for row in rows)
        for item in preview.accounts:
            if item.balance is None:
                continue
            declared = item.balance_date
            balance_date = (
                datetime.combine(declared, time.min) if declared is not None else datetime.now(UTC)
            )
            self.db.update_account(account_ids[item.key], balance=item.balance, balance_date=balance_date)
            affected.add(account_ids[item.key])

        self.db.set_import_batch_counts(
            batch_id,
            inserted_count=len(inserted_ids),
            duplicate_count=len(analyses) - len(to_insert),
            total_count=len(analyses),
        )
        return (
            CommitResult(
                created_accounts=created,
                inserted_transactions=len(inserted_ids),
                import_batch_id=batch_id,
            ),
            affected,
        )

    def _materialize(
        self,
        bank_id: int,
        item: PreviewAccount,
        by_number: dict[Optional[str], Account],
        active: list[Account],
    ) -> tuple[int, bool]:
        number = normalize_account_number(item.account_number)
        if number is None:
            if item.account_id is not None:
                chosen = self.db.get_account(item.account_id)
                if chosen is None or chosen.bank_id != bank_id or not chosen.active:
                    raise ResolutionError(
                        f"Account {item.account_id} is not an active account of bank {bank_id}"
                    )
                return chosen.id, False
            if len(active) == 1:
                return active[0].id, False
            if len(active) > 1 and item.ambiguous:
                ids = ", ".join(str(account.id) for account in active)
                raise ResolutionError(
                    f"Choose which account receives '{item.account_name}' (one of {ids}), "
                    "or clear the ambiguity to create a new account"
                )
        else:
            existing = by_number.get(number)
            if existing is not None:
                if not existing.active:
                    raise ResolutionError(account_archived_for_import(existing.id, existing.name))
                return existing.id, False

        account_id = self.db.create_account(
            bank_id=bank_id,
            name=item.account_name.strip(),
            account_type=item.account_type,
            currency=item.currency,
            account_number=number,
        )
        logger.info(
            "Created account %s '%s' (%s)", account_id, item.account_name.strip(), mask_account_number(number)
        )
        return account_id, True

    @staticmethod
    def _row(analysis: RecordAnalysis, account_ids: dict[str, int], batch_id: int) -> dict:
        record = analysis.record
        result = analysis.result
        account_id = account_ids[record.account_key]
        classification = result.classification
        confidence = result.confidence
        linked = None
        if classification.is_internal:
            linked = result.linked_account_id
            if linked is None and result.linked_account_key is not None:
                linked = account_ids.get(result.linked_account_key)
            if linked is None or linked == account_id:
                classification, confidence, linked = Classification.UNKNOWN, 0.0, None
        return {
            "account_id": account_id,
            "date": record.date,
            "amount": record.amount,
            "description": record.description,
            "fingerprint": analysis.fingerprint,
            "classification": classification,
            "classification_confidence": confidence,
            "linked_account_id": linked,
            "import_batch_id": batch_id,
            "external_id": record.external_id,
        }

    def _pair_counterparts(self, analyses: list[RecordAnalysis], rows: list[dict]) -> None:
        """Link stored counterparts back to the accounts of new transfers."""
        for analysis, row in zip(analyses, rows):
            counterpart_id = analysis.result.counterpart_transaction_id
            if counterpart_id is None or not row["classification"].is_internal:
                continue
            stored = self.db.get_transaction(counterpart_id)
            if stored is None or stored.manually_classified:
                continue
            self.db.update_transaction_classification(
                counterpart_id,
                classification=row["classification"],
                classification_confidence=row["classification_confidence"],
                linked_account_id=row["account_id"],
                manually_classified=False,
            )
            logger.debug("Paired stored transaction %s with account %s", counterpart_id, row["account_id"])

    def _notify(self, event: CommitSucceeded) -> None:
        for listener in self.listeners:
            try:
                listener(event)
            except Exception:
                # The commit is already durable
                logger.exception("Commit listener %r failed", listener)
