"""Matching of statement accounts against the ledger."""

import logging
from typing import Optional

from ledgerlink.database.base import Database
from ledgerlink.domain.bank import BankService
from ledgerlink.domain.entities import (
    Account,
    CandidateAccount,
    DetectedAccount,
    ResolvedAccount,
    StatementFormat,
)
from ledgerlink.domain.errors import (
    NotFoundError,
    ResolutionError,
    ValidationError,
    account_archived_for_import,
    account_not_found,
    bank_not_found,
)
from ledgerlink.utils.text import mask_account_number, normalize_account_number

logger = logging.getLogger(__name__)


def default_account_name(detected: DetectedAccount, source_format: Optional[StatementFormat] = None) -> str:
    """Name proposed for an account that does not exist yet.

    "Account ••1234" for numbered accounts, "Imported account (CSV)" otherwise.
    """
    number = normalize_account_number(detected.account_number)
    if number:
        return f"Account ••{number[-4:]}"
    label = source_format.value.upper() if source_format is not None else "file"
    return f"Imported account ({label})"


class AccountResolver:
    """Resolve detected accounts to existing or to-be-created accounts."""

    def __init__(self, db: Database):
        """Initialize account resolver.

        Args:
            db: Database instance
        """
        self.db = db

    def resolve(
        self,
        bank_id: int,
        detected: list[DetectedAccount],
        source_format: Optional[StatementFormat] = None,
        target_account_id: Optional[int] = None,
    ) -> list[ResolvedAccount]:
        """Resolve each detected account within one bank.

        Numbered accounts match on their normalized number, scoped to the
        bank. An account without a number (generic CSV/XLSX) matches the
        bank's only active account; with several candidates the result is
        ambiguous until the user picks one.

        Args:
            bank_id: Bank the statement is imported into
            detected: Accounts found in the statement
            source_format: Format of the statement, used in default names
            target_account_id: Existing account chosen for the generic account

        Returns:
            One ResolvedAccount per detected account, in the same order

        Raises:
            NotFoundError: If the bank or the target account does not exist
            ValidationError: If the target account belongs to another bank
            ResolutionError: If a numbered account matches an archived account
        """
        if self.db.get_bank(bank_id) is None:
            raise NotFoundError(bank_not_found(bank_id))

        target = None
        if target_account_id is not None:
            target = self.db.get_account(target_account_id)
            if target is None:
                raise NotFoundError(account_not_found(target_account_id))
            if target.bank_id != bank_id:
                raise ValidationError(
                    f"Account {target_account_id} belongs to bank {target.bank_id}, not bank {bank_id}"
                )

        accounts = self.db.list_accounts(bank_id=bank_id)
        by_number = {
            normalize_account_number(account.account_number): account
            for account in accounts
            if account.account_number
        }
        active = [account for account in accounts if account.active]

        resolved = []
        for item in detected:
            number = normalize_account_number(item.account_number)
            if number is not None:
                result = self._resolve_numbered(item, number, by_number, source_format)
            else:
                result = self._resolve_generic(item, active, target, source_format)
            resolved.append(result)
            logger.debug(
                "Account %s resolved: %s",
                mask_account_number(item.account_number),
                "ambiguous" if result.ambiguous else ("new" if result.is_new else f"id {result.existing.id}"),
            )
        return resolved

    def _candidate(self, item: DetectedAccount, source_format: Optional[StatementFormat]) -> CandidateAccount:
        return CandidateAccount(
            name=default_account_name(item, source_format),
            account_number=normalize_account_number(item.account_number),
            currency=item.currency,
            account_type=item.account_type,
        )

    def _resolve_numbered(
        self,
        item: DetectedAccount,
        number: str,
        by_number: dict[Optional[str], Account],
        source_format: Optional[StatementFormat],
    ) -> ResolvedAccount:
        existing = by_number.get(number)
        if existing is not None:
            if not existing.active:
                raise ResolutionError(account_archived_for_import(existing.id, existing.name))
            return ResolvedAccount(detected=item, existing=existing)
        return ResolvedAccount(detected=item, candidate_new=self._candidate(item, source_format))

    def _resolve_generic(
        self,
        item: DetectedAccount,
        active: list[Account],
        target: Optional[Account],
        source_format: Optional[StatementFormat],
    ) -> ResolvedAccount:
        if target is not None:
            return ResolvedAccount(detected=item, existing=target)
        if len(active) == 1:
            return ResolvedAccount(detected=item, existing=active[0])
        if len(active) > 1:
            return ResolvedAccount(
                detected=item,
                candidate_new=self._candidate(item, source_format),
                ambiguous=True,
                candidate_account_ids=tuple(account.id for account in active),
            )
        return ResolvedAccount(detected=item, candidate_new=self._candidate(item, source_format))

    def suggest_bank(self, swift_bic: Optional[str]) -> Optional[int]:
        """Return the only active bank registered with this SWIFT/BIC, if any.

        An 8-character BIC matches its 11-character branch forms and back.
        """
        bank = BankService(self.db).suggest_bank(swift_bic)
        return bank.id if bank is not None else None
