"""Bank domain service."""

import logging
from typing import Optional

from ledgerlink.database.base import Database
from ledgerlink.domain.entities import Bank as BankEntity
from ledgerlink.domain.errors import (
    ConflictError,
    DependencyError,
    NotFoundError,
    ValidationError,
    bank_delete_blocked,
    bank_not_found,
)
from ledgerlink.utils.text import is_bic

logger = logging.getLogger(__name__)


def _clean_bic(swift_bic: Optional[str]) -> Optional[str]:
    if swift_bic is None or not swift_bic.strip():
        return None
    value = swift_bic.strip().upper()
    if not is_bic(value):
        raise ValidationError(f"'{swift_bic}' is not a valid SWIFT/BIC code")
    return value


class BankService:
    """Service for managing banks."""

    def __init__(self, db: Database):
        """Initialize bank service.

        Args:
            db: Database instance
        """
        self.db = db

    def _require(self, bank_id: int) -> BankEntity:
        bank = self.db.get_bank(bank_id)
        if bank is None:
            raise NotFoundError(bank_not_found(bank_id))
        return bank

    def _check_name(self, name: str, exclude_id: Optional[int] = None) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Bank name cannot be empty")
        for bank in self.db.list_banks(include_archived=True):
            if bank.id != exclude_id and bank.name.lower() == name.lower():
                raise ConflictError(f"Bank with name '{name}' already exists")
        return name

    def create_bank(
        self,
        name: str,
        color: str = "#64748b",
        icon: Optional[str] = None,
        swift_bic: Optional[str] = None,
    ) -> int:
        """Create a new bank.

        Args:
            name: Bank name
            color: Display color
            icon: Optional icon name
            swift_bic: Optional SWIFT/BIC, used to suggest the bank on import

        Returns:
            Bank ID

        Raises:
            ValidationError: If the name is empty or the BIC malformed
            ConflictError: If a bank with the same name exists
        """
        name = self._check_name(name)
        bank_id = self.db.create_bank(name=name, color=color, icon=icon, swift_bic=_clean_bic(swift_bic))
        logger.info("Created bank %s '%s'", bank_id, name)
        return bank_id

    def get_bank(self, bank_id: int) -> Optional[BankEntity]:
        """Get bank by ID."""
        return self.db.get_bank(bank_id)

    def list_banks(self, include_archived: bool = False) -> list[BankEntity]:
        """List banks, archived ones included on request."""
        return self.db.list_banks(include_archived=include_archived)

    def update_bank(
        self,
        bank_id: int,
        name: Optional[str] = None,
        color: Optional[str] = None,
        icon: Optional[str] = None,
        swift_bic: Optional[str] = None,
    ) -> None:
        """Update bank fields; None leaves a field unchanged.

        Raises:
            NotFoundError: If the bank does not exist
            ValidationError: If a value is invalid
            ConflictError: If the new name is taken
        """
        self._require(bank_id)
        fields = {}
        if name is not None:
            fields["name"] = self._check_name(name, exclude_id=bank_id)
        if color is not None:
            fields["color"] = color
        if icon is not None:
            fields["icon"] = icon or None
        if swift_bic is not None:
            fields["swift_bic"] = _clean_bic(swift_bic)
        if fields:
            self.db.update_bank(bank_id, **fields)

    def archive_bank(self, bank_id: int) -> None:
        """Hide a bank from listings and imports, keeping its data."""
        self._require(bank_id)
        self.db.update_bank(bank_id, active=False)
        logger.info("Archived bank %s", bank_id)

    def unarchive_bank(self, bank_id: int) -> None:
        """Make an archived bank active again."""
        self._require(bank_id)
        self.db.update_bank(bank_id, active=True)

    def delete_bank(self, bank_id: int, force: bool = False) -> None:
        """Delete a bank.

        Args:
            bank_id: Bank ID
            force: Also delete the bank's accounts, transactions and import
                batches

        Raises:
            NotFoundError: If the bank does not exist
            DependencyError: If the bank has accounts and force is False
        """
        self._require(bank_id)
        account_count = len(self.db.list_accounts(bank_id=bank_id))
        if account_count and not force:
            raise DependencyError(bank_delete_blocked(bank_id, account_count))
        with self.db.unit_of_work():
            self.db.delete_bank(bank_id)
        logger.info("Deleted bank %s with %d accounts", bank_id, account_count)

    def suggest_bank(self, swift_bic: Optional[str]) -> Optional[BankEntity]:
        """The only active bank registered with this SWIFT/BIC, if any."""
        if not swift_bic:
            return None
        wanted = swift_bic.strip().upper()[:8]
        matches = [
            bank
            for bank in self.db.list_banks()
            if bank.swift_bic and bank.swift_bic[:8] == wanted
        ]
        return matches[0] if len(matches) == 1 else None
