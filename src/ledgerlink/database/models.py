"""SQLAlchemy models for ledgerlink database."""

from datetime import datetime, UTC
from sqlalchemy import (
    Column,
    Integer,
    String,
    ForeignKey,
    DateTime,
    Date,
    Numeric,
    Boolean,
    Float,
    Index,
    UniqueConstraint,
    create_engine,
    event,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship, sessionmaker, Session

Base = declarative_base()


class Bank(Base):
    """Bank model."""

    __tablename__ = "banks"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    color = Column(String, default="#64748b", nullable=False)
    icon = Column(String, nullable=True)
    swift_bic = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Relationships
    accounts = relationship("Account", back_populates="bank", cascade="all, delete-orphan")
    import_batches = relationship("ImportBatch", back_populates="bank", cascade="all, delete-orphan")


class Account(Base):
    """Bank account model."""

    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True)
    bank_id = Column(Integer, ForeignKey("banks.id"), nullable=False)
    name = Column(String, nullable=False)
    account_type = Column(String, default="CHECKING", nullable=False)
    currency = Column(String(3), default="EUR", nullable=False)
    balance = Column(Numeric(14, 2), default=0, nullable=False)
    balance_date = Column(DateTime, nullable=True)
    account_number = Column(String, nullable=True)
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # Same number may exist at two banks, never twice at one
    __table_args__ = (
        UniqueConstraint("bank_id", "account_number", name="uq_bank_account_number"),
    )

    # Relationships
    bank = relationship("Bank", back_populates="accounts")
    transactions = relationship(
        "Transaction",
        back_populates="account",
        cascade="all, delete-orphan",
        foreign_keys="Transaction.account_id",
    )


class ImportBatch(Base):
    """Import batch audit model."""

    __tablename__ = "import_batches"

    id = Column(Integer, primary_key=True)
    bank_id = Column(Integer, ForeignKey("banks.id"), nullable=False)
    source_fingerprint = Column(String(64), nullable=False)
    source_format = Column(String, nullable=True)
    inserted_count = Column(Integer, default=0, nullable=False)
    duplicate_count = Column(Integer, default=0, nullable=False)
    total_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    __table_args__ = (
        UniqueConstraint("bank_id", "source_fingerprint", name="uq_bank_source_fingerprint"),
    )

    # Relationships
    bank = relationship("Bank", back_populates="import_batches")
    transactions = relationship("Transaction", back_populates="import_batch")


class Transaction(Base):
    """Transaction model."""

    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True)
    account_id = Column(Integer, ForeignKey("accounts.id"), nullable=False)
    date = Column(Date, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)
    description = Column(String, nullable=False, default="")
    category = Column(String, nullable=True)
    classification = Column(String, default="UNKNOWN", nullable=False)
    classification_confidence = Column(Float, default=0.0, nullable=False)
    linked_account_id = Column(Integer, ForeignKey("accounts.id"), nullable=True)
    fingerprint = Column(String(64), nullable=False)
    import_batch_id = Column(Integer, ForeignKey("import_batches.id"), nullable=True)
    manually_classified = Column(Boolean, default=False, nullable=False)
    external_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=lambda: datetime.now(UTC), nullable=False)

    # The real duplicate guarantee under concurrent imports
    __table_args__ = (
        UniqueConstraint("account_id", "fingerprint", name="uq_account_fingerprint"),
        Index("ix_transactions_account_date", "account_id", "date"),
        Index("ix_transactions_date_amount", "date", "amount"),
    )

    # Relationships
    account = relationship("Account", back_populates="transactions", foreign_keys=[account_id])
    linked_account = relationship("Account", foreign_keys=[linked_account_id])
    import_batch = relationship("ImportBatch", back_populates="transactions")


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    """Turn on foreign key enforcement for SQLite connections."""
    module = type(dbapi_connection).__module__
    if module.startswith("sqlite3"):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_session_factory(database_url: str) -> sessionmaker[Session]:
    """Create a SQLAlchemy session factory."""
    engine = create_engine(database_url, echo=False)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)
