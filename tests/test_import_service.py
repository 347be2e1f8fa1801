"""Tests for the preview/confirm import workflow."""

import json
import pytest
from datetime import date, datetime
from decimal import Decimal
from ledgerlink.domain.entities import Classification, ImportPreview, StatementFormat
from ledgerlink.domain.errors import (
    CommitError,
    DuplicateImportError,
    NotFoundError,
    ParseError,
    ResolutionError,
    ValidationError,
)
from ledgerlink.domain.import_service import ImportService


def _read(fixtures_dir, name):
    return (fixtures_dir / name).read_bytes()


def _csv(*lines):
    return ("\n".join(("Date,Account,Description,Amount",) + lines) + "\n").encode("utf-8")


def test_preview_counts_duplicates(import_service, transaction_service, sample_bank, sample_account, fixtures_dir):
    """Test a 10-line CSV of which 2 lines are already stored."""
    transaction_service.create_transaction(sample_account.id, date(2024, 3, 1), Decimal("-45.00"), "CB CARREFOUR PARIS")
    transaction_service.create_transaction(sample_account.id, date(2024, 3, 2), Decimal("-82.10"), "PRLV EDF")

    preview = import_service.preview_import(
        _read(fixtures_dir, "releve_10_lignes.csv"), sample_bank.id, filename="releve_10_lignes.csv"
    )

    assert preview.summary.total_transactions == 10
    assert preview.summary.new_transactions == 8
    assert preview.summary.duplicates == 2
    assert [t.is_duplicate for t in preview.transactions[:3]] == [True, True, False]
    assert preview.source_format == StatementFormat.CSV
    assert len(preview.accounts) == 1
    assert preview.accounts[0].account_id == sample_account.id
    assert preview.accounts[0].is_new is False

    result = import_service.confirm_import(sample_bank.id, preview)

    assert result.inserted_transactions == 8
    assert result.created_accounts == []
    assert len(transaction_service.list_transactions(account_id=sample_account.id)) == 10
    batch = transaction_service.list_transactions(import_batch_id=result.import_batch_id)
    assert len(batch) == 8


def test_reimport_same_file(import_service, sample_bank, sample_account, fixtures_dir):
    """Test a second pass over a committed file finds only duplicates."""
    raw = _read(fixtures_dir, "releve_10_lignes.csv")
    first = import_service.preview_import(raw, sample_bank.id, filename="releve.csv")
    import_service.confirm_import(sample_bank.id, first)

    second = import_service.preview_import(raw, sample_bank.id, filename="releve.csv")
    assert second.summary.new_transactions == 0
    assert second.summary.duplicates == 10

    with pytest.raises(DuplicateImportError):
        import_service.confirm_import(sample_bank.id, second)


def test_resubmitted_preview_is_rejected(import_service, temp_db, sample_bank, sample_account, fixtures_dir):
    """Test committing the same preview twice changes nothing the second time."""
    preview = import_service.preview_import(_read(fixtures_dir, "releve_10_lignes.csv"), sample_bank.id)
    import_service.confirm_import(sample_bank.id, preview)

    with pytest.raises(DuplicateImportError, match="already imported"):
        import_service.confirm_import(sample_bank.id, preview)
    assert len(temp_db.list_transactions(account_id=sample_account.id)) == 10


def test_preview_has_no_side_effects(import_service, temp_db, sample_bank, fixtures_dir):
    """Test previewing a file never writes to the ledger."""
    preview = import_service.preview_import(_read(fixtures_dir, "multi_account.ofx"), sample_bank.id)

    assert len(preview.accounts) == 3
    assert all(a.is_new for a in preview.accounts)
    assert temp_db.list_accounts(bank_id=sample_bank.id) == []
    assert temp_db.list_transactions() == []


def test_confirm_creates_accounts_and_sets_balances(
    import_service, temp_db, sample_bank, fixtures_dir
):
    """Test new accounts get the statement's balances and the edited names."""
    preview = import_service.preview_import(_read(fixtures_dir, "multi_account.ofx"), sample_bank.id)
    assert preview.accounts[0].account_name == "Account ••5678"
    assert preview.suggested_bank_id == sample_bank.id
    preview.accounts[0].account_name = "Compte joint"

    result = import_service.confirm_import(sample_bank.id, preview)

    assert len(result.created_accounts) == 3
    assert result.inserted_transactions == 5
    accounts = {a.account_number: a for a in temp_db.list_accounts(bank_id=sample_bank.id)}
    checking = accounts["00012345678"]
    assert checking.name == "Compte joint"
    assert checking.balance == Decimal("1520.35")
    assert checking.balance_date == datetime(2024, 3, 5)
    assert accounts["00098765432"].name == "Account ••5432"
    assert accounts["4970123412341234"].balance == Decimal("-20.00")

    batch = temp_db.get_import_batch(result.import_batch_id)
    assert batch.inserted_count == 5
    assert batch.source_format == "ofx"


def test_transfer_between_new_accounts_of_one_file(import_service, temp_db, sample_bank, fixtures_dir):
    """Test both legs of a transfer inside one multi-account file."""
    preview = import_service.preview_import(_read(fixtures_dir, "multi_account.ofx"), sample_bank.id)
    legs = [t for t in preview.transactions if t.description == "VIR EPARGNE LIVRET"]
    assert [t.classification for t in legs] == [Classification.INTERNAL_INTRA_BANK] * 2
    assert legs[0].linked_account_key == "00098765432"
    assert all(t.confidence >= 0.8 for t in legs)

    import_service.confirm_import(sample_bank.id, preview)

    accounts = {a.account_number: a.id for a in temp_db.list_accounts(bank_id=sample_bank.id)}
    stored = {t.account_id: t for t in temp_db.list_transactions() if t.description == "VIR EPARGNE LIVRET"}
    checking_leg = stored[accounts["00012345678"]]
    savings_leg = stored[accounts["00098765432"]]
    assert checking_leg.linked_account_id == accounts["00098765432"]
    assert savings_leg.linked_account_id == accounts["00012345678"]
    assert checking_leg.classification == Classification.INTERNAL_INTRA_BANK


def test_transfer_between_existing_accounts(
    import_service, temp_db, sample_bank, sample_account, savings_account, fixtures_dir
):
    """Test statements matched to existing accounts by number."""
    preview = import_service.preview_import(_read(fixtures_dir, "multi_account.ofx"), sample_bank.id)
    assert [a.account_id for a in preview.accounts[:2]] == [sample_account.id, savings_account.id]
    assert preview.accounts[2].is_new is True

    result = import_service.confirm_import(sample_bank.id, preview)
    assert len(result.created_accounts) == 1

    outflow = [t for t in temp_db.list_transactions(account_id=sample_account.id) if t.amount < 0]
    transfer = [t for t in outflow if t.description == "VIR EPARGNE LIVRET"][0]
    assert transfer.linked_account_id == savings_account.id
    card = [t for t in outflow if t.description == "CB CARREFOUR PARIS"][0]
    assert card.classification == Classification.EXTERNAL


def test_transfer_paired_across_imports(import_service, temp_db, sample_bank, sample_account, savings_account):
    """Test the stored leg is updated when its counterpart arrives later."""
    first = import_service.preview_import(
        _csv("2024-03-01,00012345678,VIR EPARGNE LIVRET,-500.00"), sample_bank.id
    )
    assert first.transactions[0].classification == Classification.UNKNOWN
    import_service.confirm_import(sample_bank.id, first)

    second = import_service.preview_import(
        _csv("2024-03-02,00098765432,VIR EPARGNE LIVRET,500.00"), sample_bank.id
    )
    assert second.transactions[0].classification == Classification.INTERNAL_INTRA_BANK
    assert second.transactions[0].linked_account_id == sample_account.id
    import_service.confirm_import(sample_bank.id, second)

    outflow = temp_db.list_transactions(account_id=sample_account.id)[0]
    assert outflow.classification == Classification.INTERNAL_INTRA_BANK
    assert outflow.linked_account_id == savings_account.id


def test_carrefour_without_counterpart_is_external(import_service, sample_bank, sample_account):
    """Test a purchase with no opposite movement is EXTERNAL."""
    preview = import_service.preview_import(
        _csv("2024-03-01,00012345678,CARREFOUR PARIS,-45.00"), sample_bank.id
    )
    assert preview.transactions[0].classification == Classification.EXTERNAL
    assert preview.transactions[0].linked_account_id is None


def test_failed_commit_leaves_nothing(import_service, temp_db, sample_bank, fixtures_dir, monkeypatch):
    """Test a failure mid-commit rolls back accounts, batch and transactions."""
    preview = import_service.preview_import(_read(fixtures_dir, "multi_account.ofx"), sample_bank.id)

    def failing_insert(rows):
        raise RuntimeError("disk full")

    monkeypatch.setattr(temp_db, "insert_transactions", failing_insert)

    with pytest.raises(CommitError, match="nothing was saved"):
        import_service.confirm_import(sample_bank.id, preview)

    assert temp_db.list_accounts(bank_id=sample_bank.id) == []
    assert temp_db.list_transactions() == []
    assert temp_db.find_import_batch(sample_bank.id, preview.source_fingerprint) is None

    monkeypatch.undo()
    result = import_service.confirm_import(sample_bank.id, preview)
    assert result.inserted_transactions == 5


def test_commit_recomputes_client_data(import_service, temp_db, sample_bank, sample_account, fixtures_dir):
    """Test duplicate flags and classifications sent back are not trusted."""
    preview = import_service.preview_import(_read(fixtures_dir, "releve_10_lignes.csv"), sample_bank.id)
    for txn in preview.transactions:
        txn.is_duplicate = True
        txn.classification = Classification.INTERNAL_INTER_BANK
        txn.linked_account_id = sample_account.id
        txn.confidence = 1.0

    result = import_service.confirm_import(sample_bank.id, preview)

    assert result.inserted_transactions == 10
    stored = temp_db.list_transactions(account_id=sample_account.id)
    assert all(t.classification != Classification.INTERNAL_INTER_BANK for t in stored)
    assert all(t.linked_account_id is None for t in stored)


def test_preview_survives_json(import_service, temp_db, sample_bank, fixtures_dir):
    """Test a preview sent as JSON and edited can still be committed."""
    preview = import_service.preview_import(_read(fixtures_dir, "statement_v2.ofx"), sample_bank.id)
    payload = json.loads(json.dumps(preview.to_dict()))
    payload["accounts"][0]["account_name"] = "Compte SG"

    restored = ImportPreview.from_dict(payload)
    assert restored.transactions[0].amount == Decimal("-12.50")
    assert restored.transactions[0].date == date(2024, 4, 2)
    assert restored.accounts[0].balance == Decimal("2310.75")

    result = import_service.confirm_import(sample_bank.id, restored)
    account = temp_db.get_account(result.created_accounts[0])
    assert account.name == "Compte SG"
    assert account.account_number == "FR7630003012340001234567890"


def test_malformed_preview_payload():
    """Test a broken payload is a validation error."""
    with pytest.raises(ValidationError, match="missing field"):
        ImportPreview.from_dict({"bank_id": 1})
    with pytest.raises(ValidationError, match="malformed"):
        ImportPreview.from_dict(
            {
                "bank_id": 1,
                "source_fingerprint": "x",
                "source_format": "pdf",
                "accounts": [],
                "transactions": [],
            }
        )


def test_preview_payload_field_errors(import_service, sample_bank, fixtures_dir):
    """Test edited fields are type-checked and reported by location."""
    preview = import_service.preview_import(_read(fixtures_dir, "statement_v2.ofx"), sample_bank.id)
    payload = json.loads(json.dumps(preview.to_dict()))
    assert payload["transactions"][0]["amount"] == "-12.50"
    assert payload["transactions"][0]["date"] == "2024-04-02"
    assert payload["source_format"] == "ofx"

    payload["transactions"][0]["amount"] = "twelve"
    with pytest.raises(ValidationError, match="'transactions.0.amount'"):
        ImportPreview.from_dict(payload)

    payload["transactions"][0]["amount"] = "-12.50"
    payload["transactions"][1]["confidence"] = 1.5
    with pytest.raises(ValidationError, match="'transactions.1.confidence'"):
        ImportPreview.from_dict(payload)

    del payload["accounts"][0]["account_name"]
    with pytest.raises(ValidationError, match="missing field 'accounts.0.account_name'"):
        ImportPreview.from_dict(payload)


def test_generic_statement_with_several_accounts(
    import_service, temp_db, sample_bank, sample_account, savings_account, fixtures_dir
):
    """Test an ambiguous generic account must be settled before commit."""
    raw = _read(fixtures_dir, "debit_credit.csv")
    preview = import_service.preview_import(raw, sample_bank.id, filename="debit_credit.csv")
    assert preview.accounts[0].ambiguous is True
    assert set(preview.accounts[0].candidate_account_ids) == {sample_account.id, savings_account.id}

    with pytest.raises(ResolutionError):
        import_service.confirm_import(sample_bank.id, preview)
    assert temp_db.list_transactions() == []

    preview.accounts[0].account_id = savings_account.id
    result = import_service.confirm_import(sample_bank.id, preview)
    assert result.created_accounts == []
    assert len(temp_db.list_transactions(account_id=savings_account.id)) == 3
    assert temp_db.get_account(savings_account.id).balance == Decimal("11145.44")


def test_generic_statement_into_new_account(import_service, temp_db, sample_bank, sample_account, savings_account, fixtures_dir):
    """Test clearing the ambiguity creates a new account."""
    preview = import_service.preview_import(_read(fixtures_dir, "debit_credit.csv"), sample_bank.id)
    preview.accounts[0].ambiguous = False
    preview.accounts[0].account_name = "Carte UK"

    result = import_service.confirm_import(sample_bank.id, preview)
    assert len(result.created_accounts) == 1
    assert temp_db.get_account(result.created_accounts[0]).name == "Carte UK"


def test_preview_with_target_account(import_service, sample_bank, sample_account, savings_account, fixtures_dir):
    """Test the target account option for generic statements."""
    preview = import_service.preview_import(
        _read(fixtures_dir, "debit_credit.csv"), sample_bank.id, target_account_id=savings_account.id
    )
    assert preview.accounts[0].account_id == savings_account.id
    assert preview.accounts[0].ambiguous is False


def test_statement_without_balance_keeps_balance(import_service, temp_db, sample_bank, sample_account):
    """Test an account balance is only replaced by a declared one."""
    import_service.confirm_import(
        sample_bank.id,
        import_service.preview_import(_csv("2024-03-01,00012345678,CB FNAC,-19.99"), sample_bank.id),
    )
    assert temp_db.get_account(sample_account.id).balance == Decimal("0")


def test_preview_errors(import_service, bank_service, sample_bank):
    """Test bank selection and file errors."""
    with pytest.raises(ValidationError, match="Select the bank"):
        import_service.preview_import(b"Date,Amount\n2024-01-01,1\n", None)
    with pytest.raises(NotFoundError):
        import_service.preview_import(b"Date,Amount\n2024-01-01,1\n", 999)
    with pytest.raises(ParseError):
        import_service.preview_import(b"", sample_bank.id)

    bank_service.archive_bank(sample_bank.id)
    with pytest.raises(ValidationError, match="archived"):
        import_service.preview_import(b"Date,Amount\n2024-01-01,1\n", sample_bank.id)


def test_confirm_into_other_bank(import_service, sample_bank, other_bank, fixtures_dir):
    """Test a preview can only be committed into the bank it was built for."""
    preview = import_service.preview_import(_read(fixtures_dir, "statement_v2.ofx"), sample_bank.id)
    with pytest.raises(ValidationError, match="built for bank"):
        import_service.confirm_import(other_bank.id, preview)


def test_confirm_requires_account_names(import_service, sample_bank, fixtures_dir):
    """Test an emptied account name is refused."""
    preview = import_service.preview_import(_read(fixtures_dir, "statement_v2.ofx"), sample_bank.id)
    preview.accounts[0].account_name = "  "
    with pytest.raises(ValidationError, match="needs a name"):
        import_service.confirm_import(sample_bank.id, preview)


def test_bic_mismatch_is_reported(import_service, other_bank, fixtures_dir, sample_bank):
    """Test the preview suggests the bank matching the statement BIC."""
    preview = import_service.preview_import(_read(fixtures_dir, "statement_v2.ofx"), other_bank.id)
    assert preview.suggested_bank_id == sample_bank.id
    assert preview.bank_id == other_bank.id


def test_commit_listeners(temp_db, settings, sample_bank, fixtures_dir):
    """Test listeners hear about commits and cannot break them."""
    events = []

    def broken(event):
        raise RuntimeError("listener bug")

    service = ImportService(temp_db, settings, listeners=[broken, events.append])
    preview = service.preview_import(_read(fixtures_dir, "multi_account.ofx"), sample_bank.id)
    result = service.confirm_import(sample_bank.id, preview)

    assert len(events) == 1
    event = events[0]
    assert event.bank_id == sample_bank.id
    assert event.import_batch_id == result.import_batch_id
    assert event.inserted_transactions == 5
    assert set(event.affected_account_ids) == set(result.created_accounts)


def test_add_listener_after_construction(import_service, sample_bank, fixtures_dir):
    """Test a listener registered on the service hears the next commit."""
    events = []
    import_service.add_listener(events.append)

    preview = import_service.preview_import(_read(fixtures_dir, "multi_account.ofx"), sample_bank.id)
    result = import_service.confirm_import(sample_bank.id, preview)

    assert [e.import_batch_id for e in events] == [result.import_batch_id]


def test_import_history(import_service, transaction_service, sample_bank, other_bank, sample_account, fixtures_dir):
    """Test each confirmed import is listed with its counts."""
    transaction_service.create_transaction(sample_account.id, date(2024, 3, 1), Decimal("-45.00"), "CB CARREFOUR PARIS")
    transaction_service.create_transaction(sample_account.id, date(2024, 3, 2), Decimal("-82.10"), "PRLV EDF")
    assert import_service.list_import_history() == []

    preview = import_service.preview_import(_read(fixtures_dir, "releve_10_lignes.csv"), sample_bank.id)
    result = import_service.confirm_import(sample_bank.id, preview)

    history = import_service.list_import_history(bank_id=sample_bank.id)
    assert [b.id for b in history] == [result.import_batch_id]
    batch = history[0]
    assert batch.source_format == "csv"
    assert (batch.inserted_count, batch.duplicate_count, batch.total_count) == (8, 2, 10)
    assert import_service.list_import_history(bank_id=other_bank.id) == []
    with pytest.raises(NotFoundError):
        import_service.list_import_history(bank_id=999)


def test_statement_of_archived_account_is_refused(
    import_service, account_service, temp_db, sample_bank, sample_account, fixtures_dir
):
    """Test a statement never lands silently in an archived account."""
    raw = _read(fixtures_dir, "multi_account.ofx")
    preview = import_service.preview_import(raw, sample_bank.id)
    account_service.archive_account(sample_account.id)

    with pytest.raises(ResolutionError, match="archived account"):
        import_service.preview_import(raw, sample_bank.id)
    with pytest.raises(ResolutionError, match="Unarchive it"):
        import_service.confirm_import(sample_bank.id, preview)

    assert temp_db.list_import_batches() == []
    assert [a.id for a in temp_db.list_accounts(bank_id=sample_bank.id)] == [sample_account.id]
    assert temp_db.list_transactions(account_id=sample_account.id) == []
