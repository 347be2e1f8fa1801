"""Domain model entities for ledgerlink.

These are pure data classes representing business concepts, independent of
database schema. Persisted entities are frozen dataclasses. The import preview
is a set of pydantic models: it is the one structure edited by the user and
sent back as JSON before it is committed.
"""

from dataclasses import dataclass
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from ledgerlink.domain.errors import ValidationError
from ledgerlink.utils.text import normalize_account_number

GENERIC_ACCOUNT_KEY = "default"


class Classification(str, Enum):
    """Nature of a transaction relative to the user's own accounts."""

    EXTERNAL = "EXTERNAL"
    INTERNAL_INTRA_BANK = "INTERNAL_INTRA_BANK"
    INTERNAL_INTER_BANK = "INTERNAL_INTER_BANK"
    UNKNOWN = "UNKNOWN"

    @property
    def is_internal(self) -> bool:
        return self.value.startswith("INTERNAL_")


class AccountType(str, Enum):
    """Kind of bank account."""

    CHECKING = "CHECKING"
    SAVINGS = "SAVINGS"
    CREDIT = "CREDIT"
    OTHER = "OTHER"


class StatementFormat(str, Enum):
    """Supported statement file formats."""

    OFX = "ofx"
    CSV = "csv"
    XLSX = "xlsx"


@dataclass(frozen=True)
class Bank:
    """Bank domain entity."""

    id: int
    name: str
    color: str
    icon: Optional[str]
    swift_bic: Optional[str]
    active: bool
    created_at: datetime


@dataclass(frozen=True)
class Account:
    """Bank account domain entity."""

    id: int
    bank_id: int
    name: str
    account_type: AccountType
    currency: str
    balance: Decimal
    balance_date: Optional[datetime]
    account_number: Optional[str]
    active: bool
    created_at: datetime


@dataclass(frozen=True)
class Transaction:
    """Transaction domain entity."""

    id: int
    account_id: int
    date: date
    amount: Decimal
    description: str
    category: Optional[str]
    classification: Classification
    classification_confidence: float
    linked_account_id: Optional[int]
    fingerprint: str
    import_batch_id: Optional[int]
    manually_classified: bool
    external_id: Optional[str]
    created_at: datetime


@dataclass(frozen=True)
class ImportBatch:
    """Audit record of one confirmed import."""

    id: int
    bank_id: int
    source_fingerprint: str
    source_format: Optional[str]
    inserted_count: int
    created_at: datetime
    duplicate_count: int = 0
    total_count: int = 0


@dataclass(frozen=True)
class RawTransactionRecord:
    """One statement line as decoded from a file, before any ledger lookup."""

    date: date
    amount: Decimal
    description: str
    account_token: Optional[str]
    external_id: Optional[str] = None
    location: Optional[str] = None

    @property
    def account_key(self) -> str:
        return normalize_account_number(self.account_token) or GENERIC_ACCOUNT_KEY


@dataclass(frozen=True)
class DetectedAccount:
    """An account declared by a statement file."""

    account_number: Optional[str]
    currency: str
    balance: Optional[Decimal] = None
    balance_date: Optional[date] = None
    swift_bic: Optional[str] = None
    bank_code: Optional[str] = None
    account_type: AccountType = AccountType.CHECKING

    @property
    def key(self) -> str:
        return normalize_account_number(self.account_number) or GENERIC_ACCOUNT_KEY


@dataclass(frozen=True)
class ParsedStatement:
    """Result of decoding one statement file."""

    format: StatementFormat
    accounts: list[DetectedAccount]
    records: list[RawTransactionRecord]
    source_fingerprint: str


@dataclass(frozen=True)
class CandidateAccount:
    """An account that would be created by committing an import."""

    name: str
    account_number: Optional[str]
    currency: str
    account_type: AccountType = AccountType.CHECKING


@dataclass(frozen=True)
class ResolvedAccount:
    """Outcome of matching a detected account against the ledger.

    Exactly one of ``existing`` and ``candidate_new`` is set. An ambiguous
    resolution carries a candidate plus the existing accounts it could be.
    """

    detected: DetectedAccount
    existing: Optional[Account] = None
    candidate_new: Optional[CandidateAccount] = None
    ambiguous: bool = False
    candidate_account_ids: tuple[int, ...] = ()

    @property
    def is_new(self) -> bool:
        return self.existing is None

class ImportSummary(BaseModel):
    """Counts shown at the top of a preview."""

    total_transactions: int = 0
    new_transactions: int = 0
    duplicates: int = 0


class PreviewAccount(BaseModel):
    """One account of an import preview. ``account_name`` is user-editable."""

    key: str
    account_number: Optional[str]
    account_name: str
    currency: str
    balance: Optional[Decimal]
    balance_date: Optional[date]
    is_new: bool
    account_type: AccountType = AccountType.CHECKING
    account_id: Optional[int] = None
    ambiguous: bool = False
    candidate_account_ids: list[int] = Field(default_factory=list)


class PreviewTransaction(BaseModel):
    """One statement line of an import preview."""

    account_key: str
    date: date
    amount: Decimal
    description: str = ""
    classification: Classification
    confidence: float = Field(ge=0.0, le=1.0)
    is_duplicate: bool
    fingerprint: str
    needs_review: bool = False
    linked_account_id: Optional[int] = None
    linked_account_key: Optional[str] = None
    external_id: Optional[str] = None

    @field_validator("description", mode="before")
    @classmethod
    def _blank_description(cls, value: Any) -> Any:
        return "" if value is None else value


class ImportPreview(BaseModel):
    """Side-effect-free description of what an import would do."""

    bank_id: int
    source_fingerprint: str
    source_format: StatementFormat
    summary: ImportSummary = Field(default_factory=ImportSummary)
    accounts: list[PreviewAccount]
    transactions: list[PreviewTransaction]
    suggested_bank_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        """JSON-compatible form: decimals and dates become strings."""
        return self.model_dump(mode="json")

    @classmethod
    def from_dict(cls, data: Any) -> "ImportPreview":
        """Rebuild a preview from its to_dict() form.

        Raises:
            ValidationError: If a field is missing or malformed
        """
        try:
            return cls.model_validate(data)
        except PydanticValidationError as e:
            errors = e.errors()
            missing = [_error_location(error) for error in errors if error["type"] == "missing"]
            if missing:
                raise ValidationError(f"Import preview is missing field {', '.join(missing)}")
            details = "; ".join(f"{_error_location(error)}: {error['msg']}" for error in errors)
            raise ValidationError(f"Import preview is malformed: {details}")


def _error_location(error: dict[str, Any]) -> str:
    return "'" + ".".join(str(part) for part in error["loc"]) + "'"


@dataclass(frozen=True)
class CommitResult:
    """What a successful commit created."""

    created_accounts: list[int]
    inserted_transactions: int
    import_batch_id: int


@dataclass(frozen=True)
class CommitSucceeded:
    """Signal emitted once a commit is durable."""

    bank_id: int
    import_batch_id: int
    inserted_transactions: int
    affected_account_ids: tuple[int, ...]
