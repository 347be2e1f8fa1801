"""Abstract database interface."""

from abc import ABC, abstractmethod
from contextlib import AbstractContextManager
from typing import Optional, Any
from datetime import date, datetime
from decimal import Decimal

# Import entities directly to avoid circular import through domain/__init__.py
from ledgerlink.domain.entities import (
    Bank,
    Account,
    AccountType,
    Classification,
    Transaction,
    ImportBatch,
)


class Database(ABC):
    """Abstract database interface for ledgerlink."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the database."""
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the database."""
        pass

    @abstractmethod
    def initialize_schema(self) -> None:
        """Initialize database schema (create tables)."""
        pass

    @abstractmethod
    def unit_of_work(self) -> AbstractContextManager[None]:
        """Group every write made inside the block into one transaction.

        The block either commits as a whole or rolls back as a whole. Storage
        failures surface as ConflictError (constraint violations) or
        StorageError once the rollback is done. Nested blocks join the
        outermost one.
        """
        pass

    # Bank operations
    @abstractmethod
    def create_bank(
        self,
        name: str,
        color: str = "#64748b",
        icon: Optional[str] = None,
        swift_bic: Optional[str] = None,
    ) -> int:
        """Create a bank. Returns bank ID."""
        pass

    @abstractmethod
    def get_bank(self, bank_id: int) -> Optional[Bank]:
        """Get bank by ID."""
        pass

    @abstractmethod
    def list_banks(self, include_archived: bool = False) -> list[Bank]:
        """List banks, active ones only unless include_archived."""
        pass

    @abstractmethod
    def update_bank(self, bank_id: int, **fields: Any) -> None:
        """Update bank fields (name, color, icon, swift_bic, active)."""
        pass

    @abstractmethod
    def delete_bank(self, bank_id: int) -> None:
        """Delete a bank together with its accounts, transactions and batches."""
        pass

    # Account operations
    @abstractmethod
    def create_account(
        self,
        bank_id: int,
        name: str,
        account_type: AccountType = AccountType.CHECKING,
        currency: str = "EUR",
        account_number: Optional[str] = None,
        balance: Decimal = Decimal("0"),
        balance_date: Optional[datetime] = None,
    ) -> int:
        """Create a new account. Returns account ID."""
        pass

    @abstractmethod
    def get_account(self, account_id: int) -> Optional[Account]:
        """Get account by ID."""
        pass

    @abstractmethod
    def list_accounts(
        self, bank_id: Optional[int] = None, include_archived: bool = True
    ) -> list[Account]:
        """List accounts, optionally filtered by bank."""
        pass

    @abstractmethod
    def update_account(self, account_id: int, **fields: Any) -> None:
        """Update account fields (name, account_type, active, balance, balance_date)."""
        pass

    @abstractmethod
    def get_account_transaction_count(self, account_id: int) -> int:
        """Get count of transactions associated with an account."""
        pass

    # Transaction operations
    @abstractmethod
    def create_transaction(
        self,
        account_id: int,
        date: date,
        amount: Decimal,
        description: str,
        fingerprint: str,
        classification: Classification = Classification.UNKNOWN,
        classification_confidence: float = 0.0,
        linked_account_id: Optional[int] = None,
        category: Optional[str] = None,
        import_batch_id: Optional[int] = None,
        external_id: Optional[str] = None,
    ) -> int:
        """Create a transaction. Returns transaction ID."""
        pass

    @abstractmethod
    def insert_transactions(self, rows: list[dict[str, Any]]) -> list[int]:
        """Insert many transactions at once. Returns their IDs in input order.

        Each row holds the keyword arguments of create_transaction.
        """
        pass

    @abstractmethod
    def get_transaction(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID."""
        pass

    @abstractmethod
    def get_transaction_for_update(self, transaction_id: int) -> Optional[Transaction]:
        """Get transaction by ID, locking its row until the unit of work ends."""
        pass

    @abstractmethod
    def transaction_exists(self, account_id: int, fingerprint: str) -> bool:
        """Check if a transaction with given fingerprint exists for account."""
        pass

    @abstractmethod
    def list_transactions(
        self,
        account_id: Optional[int] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        classification: Optional[Classification] = None,
        import_batch_id: Optional[int] = None,
        manually_classified: Optional[bool] = None,
    ) -> list[Transaction]:
        """List transactions with optional filters, newest first."""
        pass

    @abstractmethod
    def find_counterpart_candidates(
        self,
        amount: Decimal,
        start_date: date,
        end_date: date,
        exclude_account_id: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> list[Transaction]:
        """Transactions of exactly ``amount`` dated within [start_date, end_date].

        Transactions of ``exclude_account_id`` are left out. With ``currency``
        only transactions of accounts held in that currency are returned.
        """
        pass

    @abstractmethod
    def update_transaction_classification(
        self,
        transaction_id: int,
        classification: Classification,
        classification_confidence: float,
        linked_account_id: Optional[int],
        manually_classified: bool,
    ) -> None:
        """Replace the classification fields of a transaction."""
        pass

    @abstractmethod
    def update_transaction_category(self, transaction_id: int, category: Optional[str]) -> None:
        """Update transaction category."""
        pass

    # Import batch operations
    @abstractmethod
    def create_import_batch(
        self, bank_id: int, source_fingerprint: str, source_format: Optional[str] = None
    ) -> int:
        """Record an import batch. Returns batch ID."""
        pass

    @abstractmethod
    def set_import_batch_counts(
        self, batch_id: int, inserted_count: int, duplicate_count: int, total_count: int
    ) -> None:
        """Record how many lines a batch read, skipped as duplicates and inserted."""
        pass

    @abstractmethod
    def get_import_batch(self, batch_id: int) -> Optional[ImportBatch]:
        """Get import batch by ID."""
        pass

    @abstractmethod
    def find_import_batch(self, bank_id: int, source_fingerprint: str) -> Optional[ImportBatch]:
        """Find the batch that imported a given file into a bank."""
        pass

    @abstractmethod
    def list_import_batches(self, bank_id: Optional[int] = None) -> list[ImportBatch]:
        """List import batches, newest first."""
        pass
