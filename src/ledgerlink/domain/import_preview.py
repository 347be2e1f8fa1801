"""Composition of the import preview."""

from typing import Optional

from ledgerlink.domain.entities import (
    ImportPreview,
    ImportSummary,
    ParsedStatement,
    PreviewAccount,
    PreviewTransaction,
    ResolvedAccount,
)
from ledgerlink.domain.import_analysis import RecordAnalysis


class ImportPreviewBuilder:
    """Assemble parsed, resolved and analyzed pieces into an ImportPreview.

    Pure composition: nothing here reads or writes the ledger.
    """

    def build(
        self,
        bank_id: int,
        parsed: ParsedStatement,
        resolved: list[ResolvedAccount],
        analyses: list[RecordAnalysis],
        suggested_bank_id: Optional[int] = None,
    ) -> ImportPreview:
        """Build the preview.

        Args:
            bank_id: Target bank
            parsed: Decoded statement
            resolved: Resolution of each detected account
            analyses: Duplicate and classification outcome of each record
            suggested_bank_id: Bank implied by the statement's SWIFT/BIC

        Returns:
            ImportPreview with accounts in statement order and transactions
            in file order
        """
        accounts = [self._account(item) for item in resolved]
        transactions = [self._transaction(analysis) for analysis in analyses]
        duplicates = sum(1 for t in transactions if t.is_duplicate)
        summary = ImportSummary(
            total_transactions=len(transactions),
            new_transactions=len(transactions) - duplicates,
            duplicates=duplicates,
        )
        return ImportPreview(
            bank_id=bank_id,
            source_fingerprint=parsed.source_fingerprint,
            source_format=parsed.format,
            summary=summary,
            accounts=accounts,
            transactions=transactions,
            suggested_bank_id=suggested_bank_id,
        )

    @staticmethod
    def _account(item: ResolvedAccount) -> PreviewAccount:
        detected = item.detected
        if item.existing is not None:
            return PreviewAccount(
                key=detected.key,
                account_number=detected.account_number,
                account_name=item.existing.name,
                currency=detected.currency,
                balance=detected.balance,
                balance_date=detected.balance_date,
                is_new=False,
                account_type=item.existing.account_type,
                account_id=item.existing.id,
            )
        return PreviewAccount(
            key=detected.key,
            account_number=detected.account_number,
            account_name=item.candidate_new.name,
            currency=detected.currency,
            balance=detected.balance,
            balance_date=detected.balance_date,
            is_new=True,
            account_type=item.candidate_new.account_type,
            ambiguous=item.ambiguous,
            candidate_account_ids=list(item.candidate_account_ids),
        )

    @staticmethod
    def _transaction(analysis: RecordAnalysis) -> PreviewTransaction:
        record = analysis.record
        if analysis.duplicate is not None:
            # Shown with what the ledger already holds
            stored = analysis.duplicate.transaction
            return PreviewTransaction(
                account_key=record.account_key,
                date=record.date,
                amount=record.amount,
                description=record.description,
                classification=stored.classification,
                confidence=stored.classification_confidence,
                is_duplicate=True,
                fingerprint=analysis.fingerprint,
                linked_account_id=stored.linked_account_id,
                external_id=record.external_id,
            )
        result = analysis.result
        return PreviewTransaction(
            account_key=record.account_key,
            date=record.date,
            amount=record.amount,
            description=record.description,
            classification=result.classification,
            confidence=result.confidence,
            is_duplicate=False,
            fingerprint=analysis.fingerprint,
            needs_review=result.needs_review,
            linked_account_id=result.linked_account_id,
            linked_account_key=result.linked_account_key,
            external_id=record.external_id,
        )
