"""Shared domain error messages and error types."""

from typing import Optional


class DomainError(ValueError):
    """Base class for domain-level errors.

    Subclasses provide semantic categories while preserving ValueError
    compatibility for existing error handling.
    """


class ValidationError(DomainError):
    """Invalid input or failed validation in domain logic."""


class NotFoundError(DomainError):
    """Requested domain entity does not exist."""


class ConflictError(DomainError):
    """Domain conflict, such as uniqueness violations."""


class DependencyError(DomainError):
    """Operation blocked due to dependent domain data."""


class ParseError(ValidationError):
    """A statement file could not be decoded.

    ``location`` points at the offending line, row or record when known.
    """

    def __init__(self, message: str, location: Optional[str] = None):
        self.location = location
        if location:
            message = f"{message} (at {location})"
        super().__init__(message)


class ResolutionError(ValidationError):
    """An account match still needs a decision from the user."""


class DuplicateImportError(ConflictError):
    """This exact statement file was already imported into the bank."""


class StorageError(DomainError):
    """The storage layer failed while applying a unit of work."""


class CommitError(DomainError):
    """A commit failed and was rolled back entirely."""


def bank_not_found(bank_id: int) -> str:
    """Return message for missing bank."""
    return f"Bank {bank_id} not found"


def account_not_found(account_id: int) -> str:
    """Return message for missing account."""
    return f"Account {account_id} not found"


def transaction_not_found(transaction_id: int) -> str:
    """Return message for missing transaction."""
    return f"Transaction {transaction_id} not found"


def duplicate_transaction_fingerprint(fingerprint: str, account_id: int) -> str:
    """Return message for duplicate transaction fingerprint."""
    return f"Transaction with fingerprint '{fingerprint[:12]}' already exists for account {account_id}"


def file_already_imported(bank_id: int, batch_id: int) -> str:
    """Return message when a statement file was already committed."""
    return (
        f"This file was already imported into bank {bank_id} (import batch {batch_id}). "
        "Nothing was changed."
    )


def commit_failed(reason: str) -> str:
    """Return the user-facing message for a rolled-back commit."""
    return (
        f"The whole import failed and nothing was saved: {reason}. "
        "Generate a new preview and retry."
    )


def bank_delete_blocked(bank_id: int, account_count: int) -> str:
    """Return message when a bank still owns accounts."""
    return (
        f"Cannot delete bank {bank_id}: it has {account_count} "
        f"account{'s' if account_count != 1 else ''}. "
        "Archive it instead, or confirm deletion of its accounts."
    )


def account_archived_for_import(account_id: int, name: str) -> str:
    """Return message when a statement names an archived account."""
    return (
        f"The statement belongs to archived account {account_id} '{name}'. "
        "Unarchive it before importing into it."
    )
