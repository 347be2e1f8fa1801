"""Tests for statement file decoding."""

import pytest
from datetime import date
from decimal import Decimal
from ledgerlink.domain.entities import AccountType, GENERIC_ACCOUNT_KEY, StatementFormat
from ledgerlink.domain.errors import ParseError
from ledgerlink.domain.parsers import StatementParser, coerce_format, detect_format, source_fingerprint


@pytest.fixture
def parser():
    return StatementParser()


def test_parse_multi_account_ofx(parser, fixtures_dir):
    """Test an SGML OFX file holding three statements."""
    raw = (fixtures_dir / "multi_account.ofx").read_bytes()
    parsed = parser.parse(raw, filename="multi_account.ofx")

    assert parsed.format == StatementFormat.OFX
    assert parsed.source_fingerprint == source_fingerprint(raw)
    assert [a.account_number for a in parsed.accounts] == ["00012345678", "00098765432", "4970123412341234"]
    assert [a.account_type for a in parsed.accounts] == [
        AccountType.CHECKING,
        AccountType.SAVINGS,
        AccountType.CREDIT,
    ]

    checking = parsed.accounts[0]
    assert checking.balance == Decimal("1520.35")
    assert checking.balance_date == date(2024, 3, 5)
    assert checking.currency == "EUR"
    assert checking.swift_bic == "SOGEFRPP"

    assert len(parsed.records) == 5
    first = parsed.records[0]
    assert first.date == date(2024, 3, 1)
    assert first.amount == Decimal("-500.00")
    assert first.description == "VIR EPARGNE LIVRET"
    assert first.external_id == "CHK0001"
    assert first.account_key == "00012345678"
    # NAME and MEMO are joined
    assert parsed.records[1].description == "CB CARREFOUR PARIS"


def test_parse_xml_ofx(parser, fixtures_dir):
    """Test an OFX 2 (XML) file with an IBAN and a BIC bank id."""
    raw = (fixtures_dir / "statement_v2.ofx").read_bytes()
    parsed = parser.parse(raw)

    assert parsed.format == StatementFormat.OFX
    account = parsed.accounts[0]
    assert account.key == "FR7630003012340001234567890"
    assert account.swift_bic == "SOGEFRPP"
    assert account.balance == Decimal("2310.75")
    assert account.balance_date == date(2024, 4, 10)

    assert parsed.records[0].date == date(2024, 4, 2)
    assert parsed.records[0].description == "CB Boulangerie Paul Pain & croissant"
    assert parsed.records[1].amount == Decimal("1800.00")


def test_parse_ofx_missing_amount(parser):
    """Test a transaction without TRNAMT is reported with its position."""
    raw = (
        b"<OFX><BANKMSGSRSV1><STMTTRNRS><STMTRS><CURDEF>EUR"
        b"<BANKACCTFROM><ACCTID>123456</ACCTID></BANKACCTFROM>"
        b"<BANKTRANLIST><STMTTRN><DTPOSTED>20240301</DTPOSTED></STMTTRN></BANKTRANLIST>"
        b"</STMTRS></STMTTRNRS></BANKMSGSRSV1></OFX>"
    )
    with pytest.raises(ParseError) as exc_info:
        parser.parse(raw, filename="broken.ofx")
    assert exc_info.value.location == "statement 1, transaction 1"
    assert "TRNAMT" in str(exc_info.value)


def test_parse_sgml_ofx_with_empty_unclosed_memo(parser):
    """Test an empty leaf left open does not swallow its siblings."""
    raw = (
        b"OFXHEADER:100\nDATA:OFXSGML\nVERSION:102\n\n"
        b"<OFX><BANKMSGSRSV1><STMTTRNRS><STMTRS><CURDEF>EUR\n"
        b"<BANKACCTFROM><BANKID>30003<ACCTID>00012345678<ACCTTYPE>CHECKING</BANKACCTFROM>\n"
        b"<BANKTRANLIST>\n"
        b"<STMTTRN><TRNTYPE>DEBIT<DTPOSTED>20240301<TRNAMT>-12.00<FITID>A1"
        b"<NAME>CB BOULANGERIE<MEMO>note</MEMO></STMTTRN>\n"
        b"<STMTTRN><TRNTYPE>DEBIT<DTPOSTED>20240302<FITID>A2<NAME>CB PHARMACIE<MEMO>\n"
        b"<TRNAMT>-8.50</STMTTRN>\n"
        b"</BANKTRANLIST></STMTRS></STMTTRNRS></BANKMSGSRSV1></OFX>\n"
    )
    parsed = parser.parse(raw, filename="releve.ofx")

    assert [r.amount for r in parsed.records] == [Decimal("-12.00"), Decimal("-8.50")]
    assert [r.description for r in parsed.records] == ["CB BOULANGERIE note", "CB PHARMACIE"]
    assert parsed.records[1].external_id == "A2"


def test_parse_french_csv(parser, fixtures_dir):
    """Test a semicolon CSV with comma decimals and a balance column."""
    raw = (fixtures_dir / "releve_10_lignes.csv").read_bytes()
    parsed = parser.parse(raw, filename="releve_10_lignes.csv")

    assert parsed.format == StatementFormat.CSV
    assert len(parsed.records) == 10
    assert parsed.records[0].date == date(2024, 3, 1)
    assert parsed.records[0].amount == Decimal("-45.00")
    assert parsed.records[0].description == "CB CARREFOUR PARIS"
    assert parsed.records[2].amount == Decimal("2500.00")
    assert all(r.account_key == GENERIC_ACCOUNT_KEY for r in parsed.records)

    assert len(parsed.accounts) == 1
    account = parsed.accounts[0]
    assert account.account_number is None
    assert account.balance == Decimal("4067.71")
    assert account.balance_date == date(2024, 3, 18)


def test_parse_debit_credit_csv(parser, fixtures_dir):
    """Test a comma CSV with separate debit/credit columns and US dates."""
    raw = (fixtures_dir / "debit_credit.csv").read_bytes()
    parsed = parser.parse(raw, filename="debit_credit.csv")

    assert [r.amount for r in parsed.records] == [
        Decimal("-1234.56"),
        Decimal("2500.00"),
        Decimal("-120.00"),
    ]
    assert parsed.records[2].date == date(2024, 3, 15)
    assert parsed.records[0].date == date(2024, 3, 1)
    assert parsed.accounts[0].balance == Decimal("11145.44")


def test_parse_csv_with_account_column(parser):
    """Test rows are grouped by their account column."""
    raw = (
        "Date,Account,Description,Amount,Currency\n"
        "2024-03-01,FR76 1111 2222 3333,Coffee,-3.50,eur\n"
        "2024-03-02,FR76 4444 5555 6666,Refund,12.00,USD\n"
        "2024-03-03,FR76 1111 2222 3333,Lunch,-11.20,EUR\n"
    ).encode("utf-8")
    parsed = parser.parse(raw)

    assert [a.key for a in parsed.accounts] == ["FR76111122223333", "FR76444455556666"]
    assert [a.currency for a in parsed.accounts] == ["EUR", "USD"]
    assert parsed.records[2].account_key == "FR76111122223333"


def test_parse_csv_header_after_preamble(parser):
    """Test the header row is found below a few preamble lines."""
    raw = (
        "Releve de compte;;\n"
        "Periode du 01/03/2024 au 31/03/2024;;\n"
        "Date operation;Libelle;Montant\n"
        "02/03/2024;PRLV EDF;-82,10\n"
    ).encode("utf-8")
    parsed = parser.parse(raw, filename="export.csv")
    assert parsed.records[0].amount == Decimal("-82.10")
    assert parsed.records[0].location == "line 4"


def test_parse_cp1252_csv(parser):
    """Test a CSV exported in Windows-1252."""
    raw = "Date;Libellé;Montant\n01/03/2024;Café de la Gare;-3,20\n".encode("cp1252")
    parsed = parser.parse(raw)
    assert parsed.records[0].description == "Café de la Gare"


def test_parse_csv_bad_date_location(parser):
    """Test an unusable date is reported with its line."""
    raw = b"Date;Montant\n01/03/2024;-10,00\nxx/03/2024;-5,00\n"
    with pytest.raises(ParseError) as exc_info:
        parser.parse(raw, filename="bad.csv")
    assert exc_info.value.location == "line 3"
    assert "line 3" in str(exc_info.value)


def test_parse_csv_bad_amount_location(parser):
    """Test an unusable amount is reported with its line."""
    raw = b"Date;Montant\n01/03/2024;abc\n"
    with pytest.raises(ParseError) as exc_info:
        parser.parse(raw, filename="bad.csv")
    assert exc_info.value.location == "line 2"


def test_parse_csv_without_header(parser):
    """Test a CSV without date/amount columns is rejected."""
    with pytest.raises(ParseError, match="No header row found"):
        parser.parse(b"foo,bar\n1,2\n", filename="x.csv")


def test_parse_csv_header_only(parser):
    """Test a CSV with a header and no rows is rejected."""
    with pytest.raises(ParseError, match="no transactions"):
        parser.parse(b"Date,Amount\n", filename="x.csv")


def test_parse_empty_file(parser):
    """Test an empty file is rejected before format detection."""
    with pytest.raises(ParseError, match="empty"):
        parser.parse(b"")
    with pytest.raises(ParseError, match="empty"):
        parser.parse(b"   \n")


def test_detect_format():
    """Test format detection from content, then file name."""
    assert detect_format(b"OFXHEADER:100\n<OFX>") == StatementFormat.OFX
    assert detect_format(b'<?xml version="1.0"?><?OFX OFXHEADER="200"?>') == StatementFormat.OFX
    assert detect_format(b"PK\x03\x04rest") == StatementFormat.XLSX
    assert detect_format(b"Date,Amount", "statement.csv") == StatementFormat.CSV
    assert detect_format(b"Date,Amount") == StatementFormat.CSV


def test_detect_format_rejects_xls():
    """Test legacy workbooks are refused with a hint."""
    with pytest.raises(ParseError, match="xlsx"):
        detect_format(b"\xd0\xcf\x11\xe0", "statement.xls")


def test_coerce_format():
    """Test declared format names."""
    assert coerce_format("QFX") == StatementFormat.OFX
    assert coerce_format(".csv") == StatementFormat.CSV
    assert coerce_format(None) is None
    with pytest.raises(ParseError):
        coerce_format("pdf")


def test_declared_format_wins(parser, fixtures_dir):
    """Test a forced format is used even against the content."""
    raw = (fixtures_dir / "multi_account.ofx").read_bytes()
    with pytest.raises(ParseError):
        parser.parse(raw, declared_format="csv")


def test_parse_with_time_budget(parser, fixtures_dir):
    """Test the time-bounded entry point returns the same result."""
    raw = (fixtures_dir / "releve_10_lignes.csv").read_bytes()
    parsed = parser.parse_with_time_budget(raw, filename="releve.csv", time_budget=30)
    assert len(parsed.records) == 10


def test_parse_with_time_budget_exceeded(parser, monkeypatch):
    """Test parsing is abandoned once over budget."""
    import threading

    release = threading.Event()

    def slow_parse(raw, declared_format=None, filename=None):
        release.wait(5)

    monkeypatch.setattr(parser, "parse", slow_parse)
    try:
        with pytest.raises(ParseError, match="longer than"):
            parser.parse_with_time_budget(b"Date,Amount\n", time_budget=0.05)
    finally:
        release.set()
