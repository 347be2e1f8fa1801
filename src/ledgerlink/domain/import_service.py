"""Statement import domain service.

Two commands: ``preview_import`` computes what an import would do without
touching the ledger, ``confirm_import`` applies a (possibly edited) preview
atomically.
"""

import logging
from typing import Optional, Union

from ledgerlink.config import ImportSettings
from ledgerlink.database.base import Database
from ledgerlink.domain.account_resolver import AccountResolver
from ledgerlink.domain.entities import CommitResult, ImportBatch, ImportPreview, StatementFormat
from ledgerlink.domain.errors import NotFoundError, ValidationError, bank_not_found
from ledgerlink.domain.import_analysis import ImportAnalyzer
from ledgerlink.domain.import_commit import CommitListener, ImportCommitter
from ledgerlink.domain.import_preview import ImportPreviewBuilder
from ledgerlink.domain.parsers import StatementParser

logger = logging.getLogger(__name__)


class ImportService:
    """Service for importing bank statements."""

    def __init__(
        self,
        db: Database,
        settings: Optional[ImportSettings] = None,
        listeners: Optional[list[CommitListener]] = None,
    ):
        """Initialize import service.

        Args:
            db: Database instance
            settings: Import tunables; read from the environment when None
            listeners: Callables notified after each successful commit
        """
        self.db = db
        self.settings = settings or ImportSettings.from_env()
        self.parser = StatementParser()
        self.resolver = AccountResolver(db)
        self.analyzer = ImportAnalyzer(db, self.settings)
        self.builder = ImportPreviewBuilder()
        self.committer = ImportCommitter(db, self.settings, listeners)

    def preview_import(
        self,
        raw: bytes,
        bank_id: int,
        filename: Optional[str] = None,
        declared_format: Union[str, StatementFormat, None] = None,
        target_account_id: Optional[int] = None,
    ) -> ImportPreview:
        """Compute the preview of importing a statement into a bank.

        Args:
            raw: Statement file content
            bank_id: Target bank
            filename: Original file name, used as a format hint
            declared_format: Forced format ("ofx", "qfx", "csv", "xlsx")
            target_account_id: Existing account receiving a statement that
                names no account

        Returns:
            ImportPreview

        Raises:
            ValidationError: If no bank is selected or the bank is archived
            NotFoundError: If the bank or target account does not exist
            ParseError: If the file cannot be decoded
        """
        if bank_id is None:
            raise ValidationError("Select the bank to import into")
        bank = self.db.get_bank(bank_id)
        if bank is None:
            raise NotFoundError(bank_not_found(bank_id))
        if not bank.active:
            raise ValidationError(f"Bank {bank_id} is archived; unarchive it before importing")

        parsed = self.parser.parse_with_time_budget(
            raw, declared_format, filename, time_budget=self.settings.parse_time_budget
        )
        resolved = self.resolver.resolve(bank_id, parsed.accounts, parsed.format, target_account_id)

        suggested_bank_id = None
        for account in parsed.accounts:
            suggested_bank_id = self.resolver.suggest_bank(account.swift_bic)
            if suggested_bank_id is not None:
                break
        if suggested_bank_id is not None and suggested_bank_id != bank_id:
            logger.warning(
                "Statement BIC points at bank %s, importing into bank %s", suggested_bank_id, bank_id
            )

        account_ids = {
            item.detected.key: (item.existing.id if item.existing is not None else None)
            for item in resolved
        }
        currencies = {item.detected.key: item.detected.currency for item in resolved}
        analyses = self.analyzer.analyze(bank_id, parsed.records, account_ids, currencies)
        preview = self.builder.build(bank_id, parsed, resolved, analyses, suggested_bank_id)
        logger.info(
            "Preview for bank %s: %d transactions, %d new, %d duplicates",
            bank_id,
            preview.summary.total_transactions,
            preview.summary.new_transactions,
            preview.summary.duplicates,
        )
        return preview

    def confirm_import(self, bank_id: int, preview: ImportPreview) -> CommitResult:
        """Apply an edited preview to the ledger.

        See ImportCommitter.commit for the error contract.
        """
        if bank_id is None:
            raise ValidationError("Select the bank to import into")
        return self.committer.commit(bank_id, preview)

    def add_listener(self, listener: CommitListener) -> None:
        """Register a callable notified after each successful commit."""
        self.committer.add_listener(listener)

    def list_import_history(self, bank_id: Optional[int] = None) -> list[ImportBatch]:
        """List confirmed imports, newest first.

        Args:
            bank_id: Restrict to one bank

        Raises:
            NotFoundError: If the bank does not exist
        """
        if bank_id is not None and self.db.get_bank(bank_id) is None:
            raise NotFoundError(bank_not_found(bank_id))
        return self.db.list_import_batches(bank_id=bank_id)
