"""Tests for Database interface returning domain models."""

import pytest
from datetime import date, datetime
from decimal import Decimal

from ledgerlink.domain import entities
from ledgerlink.domain.entities import Classification
from ledgerlink.domain.errors import ConflictError


class TestDatabaseInterface:
    """Tests to verify Database interface returns domain models."""

    def test_get_bank_returns_domain_model(self, temp_db):
        """Test that get_bank returns a domain Bank entity."""
        bank_id = temp_db.create_bank(name="Boursorama", swift_bic="BOUSFRPP")

        bank = temp_db.get_bank(bank_id)

        assert isinstance(bank, entities.Bank)
        assert bank.name == "Boursorama"
        assert bank.active is True
        assert isinstance(bank.created_at, datetime)

    def test_list_accounts_returns_domain_models(self, temp_db, sample_bank):
        """Test that list_accounts returns domain Account entities."""
        temp_db.create_account(bank_id=sample_bank.id, name="Account 1", account_number="111")
        temp_db.create_account(bank_id=sample_bank.id, name="Account 2", account_type=entities.AccountType.SAVINGS)

        accounts = temp_db.list_accounts(bank_id=sample_bank.id)

        assert len(accounts) == 2
        for account in accounts:
            assert isinstance(account, entities.Account)
            assert isinstance(account.balance, Decimal)
        assert accounts[1].account_type == entities.AccountType.SAVINGS

    def test_update_account_balance(self, temp_db, sample_account):
        """Test balance updates keep Decimal precision."""
        temp_db.update_account(sample_account.id, balance=Decimal("1520.35"), balance_date=datetime(2024, 3, 5))

        account = temp_db.get_account(sample_account.id)

        assert account.balance == Decimal("1520.35")
        assert account.balance_date == datetime(2024, 3, 5)

    def test_insert_transactions_returns_ids_in_order(self, temp_db, sample_account):
        """Test bulk insertion."""
        rows = [
            {
                "account_id": sample_account.id,
                "date": date(2024, 3, day),
                "amount": Decimal("-10.00") * day,
                "description": f"Line {day}",
                "fingerprint": f"fp-{day}",
                "classification": Classification.EXTERNAL,
                "classification_confidence": 0.9,
            }
            for day in (1, 2, 3)
        ]

        ids = temp_db.insert_transactions(rows)

        assert len(ids) == 3
        assert [temp_db.get_transaction(i).description for i in ids] == ["Line 1", "Line 2", "Line 3"]
        assert temp_db.transaction_exists(sample_account.id, "fp-2")
        assert not temp_db.transaction_exists(sample_account.id, "fp-9")

    def test_duplicate_fingerprint_is_conflict(self, temp_db, sample_account):
        """Test the per-account fingerprint constraint."""
        temp_db.create_transaction(
            account_id=sample_account.id,
            date=date(2024, 3, 1),
            amount=Decimal("-1.00"),
            description="x",
            fingerprint="same",
        )
        with pytest.raises(ConflictError):
            temp_db.create_transaction(
                account_id=sample_account.id,
                date=date(2024, 3, 1),
                amount=Decimal("-1.00"),
                description="x",
                fingerprint="same",
            )

    def test_find_counterpart_candidates(self, temp_db, sample_account, savings_account):
        """Test exact-amount lookup within a date range."""
        for account_id, day, amount in (
            (savings_account.id, 2, "500.00"),
            (savings_account.id, 2, "500.01"),
            (savings_account.id, 9, "500.00"),
            (sample_account.id, 2, "500.00"),
        ):
            temp_db.create_transaction(
                account_id=account_id,
                date=date(2024, 3, day),
                amount=Decimal(amount),
                description="VIR",
                fingerprint=f"{account_id}-{day}-{amount}",
            )

        found = temp_db.find_counterpart_candidates(
            Decimal("500.00"), date(2024, 2, 28), date(2024, 3, 3), exclude_account_id=sample_account.id
        )

        assert [(t.account_id, t.date, t.amount) for t in found] == [
            (savings_account.id, date(2024, 3, 2), Decimal("500.00"))
        ]
        in_euros = temp_db.find_counterpart_candidates(
            Decimal("500.00"), date(2024, 2, 28), date(2024, 3, 3), exclude_account_id=sample_account.id, currency="eur"
        )
        assert [t.account_id for t in in_euros] == [savings_account.id]
        assert temp_db.find_counterpart_candidates(
            Decimal("500.00"), date(2024, 2, 28), date(2024, 3, 3), currency="USD"
        ) == []

    def test_unit_of_work_rolls_back(self, temp_db, sample_bank):
        """Test nothing written inside a failed unit of work remains."""
        with pytest.raises(RuntimeError):
            with temp_db.unit_of_work():
                temp_db.create_account(bank_id=sample_bank.id, name="Ghost")
                batch_id = temp_db.create_import_batch(sample_bank.id, "c" * 64, "csv")
                assert temp_db.get_import_batch(batch_id) is not None
                raise RuntimeError("abort")

        assert temp_db.list_accounts(bank_id=sample_bank.id) == []
        assert temp_db.find_import_batch(sample_bank.id, "c" * 64) is None

    def test_unit_of_work_conflict(self, temp_db, sample_bank):
        """Test constraint violations surface as ConflictError after rollback."""
        temp_db.create_import_batch(sample_bank.id, "d" * 64, "ofx")
        with pytest.raises(ConflictError):
            with temp_db.unit_of_work():
                temp_db.create_account(bank_id=sample_bank.id, name="Ghost")
                temp_db.create_import_batch(sample_bank.id, "d" * 64, "ofx")

        assert temp_db.list_accounts(bank_id=sample_bank.id) == []

    def test_import_batch_lookup(self, temp_db, sample_bank, other_bank):
        """Test batches are found per bank and source."""
        batch_id = temp_db.create_import_batch(sample_bank.id, "e" * 64, "xlsx")
        temp_db.set_import_batch_counts(batch_id, inserted_count=12, duplicate_count=3, total_count=15)

        batch = temp_db.find_import_batch(sample_bank.id, "e" * 64)
        assert isinstance(batch, entities.ImportBatch)
        assert (batch.inserted_count, batch.duplicate_count, batch.total_count) == (12, 3, 15)
        assert temp_db.find_import_batch(other_bank.id, "e" * 64) is None

    def test_list_import_batches(self, temp_db, sample_bank, other_bank):
        """Test batches are listed newest first, optionally per bank."""
        first = temp_db.create_import_batch(sample_bank.id, "f" * 64, "ofx")
        second = temp_db.create_import_batch(other_bank.id, "a" * 64, "csv")
        third = temp_db.create_import_batch(sample_bank.id, "b" * 64, "csv")

        assert [b.id for b in temp_db.list_import_batches()] == [third, second, first]
        assert [b.id for b in temp_db.list_import_batches(bank_id=sample_bank.id)] == [third, first]
        assert temp_db.list_import_batches(bank_id=other_bank.id)[0].source_format == "csv"
