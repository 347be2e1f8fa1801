"""Shared pytest fixtures for ledgerlink tests."""

import tempfile
import os
from pathlib import Path
import pytest

from ledgerlink.config import ImportSettings
from ledgerlink.database.factories import create_sqlite_database
from ledgerlink.domain.account import AccountService
from ledgerlink.domain.bank import BankService
from ledgerlink.domain.import_service import ImportService
from ledgerlink.domain.reclassification import ReclassificationService
from ledgerlink.domain.transaction import TransactionService


@pytest.fixture
def temp_db():
    """Create a temporary database for testing."""
    # Create a temporary file for the database
    fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(fd)

    # Create database
    db = create_sqlite_database(database_path=db_path)
    # Store the path for tests that need it
    db.database_path = db_path
    db.connect()
    db.initialize_schema()

    yield db

    # Cleanup
    db.disconnect()
    if os.path.exists(db_path):
        os.unlink(db_path)


@pytest.fixture
def settings():
    """Default import settings, independent of the environment."""
    return ImportSettings()


@pytest.fixture
def bank_service(temp_db):
    """Create a BankService with a temporary database."""
    return BankService(temp_db)


@pytest.fixture
def account_service(temp_db):
    """Create an AccountService with a temporary database."""
    return AccountService(temp_db)


@pytest.fixture
def transaction_service(temp_db, settings):
    """Create a TransactionService with a temporary database."""
    return TransactionService(temp_db, settings)


@pytest.fixture
def import_service(temp_db, settings):
    """Create an ImportService with a temporary database."""
    return ImportService(temp_db, settings)


@pytest.fixture
def reclassification_service(temp_db, settings):
    """Create a ReclassificationService with a temporary database."""
    return ReclassificationService(temp_db, settings)


@pytest.fixture
def sample_bank(bank_service):
    """A bank registered with a SWIFT/BIC."""
    bank_id = bank_service.create_bank(name="Societe Generale", swift_bic="SOGEFRPP")
    return bank_service.get_bank(bank_id)


@pytest.fixture
def other_bank(bank_service):
    """A second bank, for inter-bank transfers."""
    bank_id = bank_service.create_bank(name="Boursorama", swift_bic="BOUSFRPP")
    return bank_service.get_bank(bank_id)


@pytest.fixture
def sample_account(account_service, sample_bank):
    """A checking account of the sample bank."""
    account_id = account_service.create_account(
        bank_id=sample_bank.id, name="Compte courant", account_number="00012345678"
    )
    return account_service.get_account(account_id)


@pytest.fixture
def savings_account(account_service, sample_bank):
    """A savings account of the sample bank."""
    account_id = account_service.create_account(
        bank_id=sample_bank.id, name="Livret A", account_type="SAVINGS", account_number="00098765432"
    )
    return account_service.get_account(account_id)


@pytest.fixture
def external_bank_account(account_service, other_bank):
    """An account held at the other bank."""
    account_id = account_service.create_account(
        bank_id=other_bank.id, name="Compte Bourso", account_number="FR7640618802650004034616528"
    )
    return account_service.get_account(account_id)


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    from click.testing import CliRunner

    return CliRunner()


@pytest.fixture
def fixtures_dir():
    """Return the path to the test fixtures directory."""
    return Path(__file__).parent / "fixtures"
