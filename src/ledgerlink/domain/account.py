"""Account domain service."""

import logging
from decimal import Decimal
from typing import Optional, Union

from ledgerlink.database.base import Database
from ledgerlink.domain.entities import Account as AccountEntity, AccountType
from ledgerlink.domain.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    account_not_found,
    bank_not_found,
)
from ledgerlink.utils.text import mask_account_number, normalize_account_number

logger = logging.getLogger(__name__)


def coerce_account_type(value: Union[str, AccountType]) -> AccountType:
    """Accept an account type name in any case."""
    if isinstance(value, AccountType):
        return value
    try:
        return AccountType(str(value).strip().upper())
    except ValueError:
        choices = ", ".join(t.value for t in AccountType)
        raise ValidationError(f"Unknown account type '{value}'. Use one of: {choices}")


class AccountService:
    """Service for managing accounts."""

    def __init__(self, db: Database):
        """Initialize account service.

        Args:
            db: Database instance
        """
        self.db = db

    def create_account(
        self,
        bank_id: int,
        name: str,
        account_type: Union[str, AccountType] = AccountType.CHECKING,
        currency: str = "EUR",
        account_number: Optional[str] = None,
        balance: Decimal = Decimal("0"),
    ) -> int:
        """Create a new account.

        Args:
            bank_id: Owning bank
            name: Account name
            account_type: CHECKING, SAVINGS, CREDIT or OTHER
            currency: ISO currency code
            account_number: Optional account number or IBAN, stored normalized
            balance: Opening balance

        Returns:
            Account ID

        Raises:
            NotFoundError: If the bank does not exist
            ValidationError: If the name or currency is invalid
            ConflictError: If the bank already has an account with this number
        """
        if self.db.get_bank(bank_id) is None:
            raise NotFoundError(bank_not_found(bank_id))
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name cannot be empty")
        currency = (currency or "").strip().upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"'{currency}' is not a 3-letter currency code")

        number = normalize_account_number(account_number)
        if number is not None:
            for existing in self.db.list_accounts(bank_id=bank_id):
                if normalize_account_number(existing.account_number) == number:
                    raise ConflictError(
                        f"Bank {bank_id} already has account {existing.id} with number "
                        f"{mask_account_number(number)}"
                    )

        account_id = self.db.create_account(
            bank_id=bank_id,
            name=name,
            account_type=coerce_account_type(account_type),
            currency=currency,
            account_number=number,
            balance=balance,
        )
        logger.info("Created account %s '%s' in bank %s", account_id, name, bank_id)
        return account_id

    def get_account(self, account_id: int) -> Optional[AccountEntity]:
        """Get account by ID."""
        return self.db.get_account(account_id)

    def list_accounts(
        self, bank_id: Optional[int] = None, include_archived: bool = False
    ) -> list[AccountEntity]:
        """List accounts, optionally of one bank.

        Returns:
            List of account entities
        """
        return self.db.list_accounts(bank_id=bank_id, include_archived=include_archived)

    def get_transaction_count(self, account_id: int) -> int:
        """Number of transactions recorded on an account."""
        return self.db.get_account_transaction_count(account_id)

    def rename_account(self, account_id: int, name: str) -> None:
        """Rename an account.

        Raises:
            NotFoundError: If the account does not exist
            ValidationError: If the name is empty
        """
        account = self.db.get_account(account_id)
        if account is None:
            raise NotFoundError(account_not_found(account_id))
        name = (name or "").strip()
        if not name:
            raise ValidationError("Account name cannot be empty")
        self.db.update_account(account_id, name=name)

    def archive_account(self, account_id: int) -> None:
        """Hide an account from listings; its transactions are kept.

        Raises:
            NotFoundError: If the account does not exist
        """
        if self.db.get_account(account_id) is None:
            raise NotFoundError(account_not_found(account_id))
        self.db.update_account(account_id, active=False)
        logger.info("Archived account %s", account_id)
