"""OFX/QFX statement decoding.

Accepts OFX 1.x (SGML, leaf elements without closing tags) and OFX 2.x (XML).
Every bank (STMTRS) or credit card (CCSTMTRS) section of a file becomes its
own DetectedAccount.
"""

import codecs
import html
import logging
import re
from typing import Iterator, Optional

from ledgerlink.domain.entities import AccountType, DetectedAccount, RawTransactionRecord
from ledgerlink.domain.errors import ParseError
from ledgerlink.utils.amount_parser import parse_amount
from ledgerlink.utils.date_parser import parse_ofx_date
from ledgerlink.utils.text import is_bic

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<(/?)([A-Za-z0-9_.]+)[^>]*>([^<]*)")
_OFX_START = re.compile(rb"<OFX>", re.IGNORECASE)
_SGML_HEADER = re.compile(rb"^\s*(ENCODING|CHARSET)\s*:\s*(\S+)", re.IGNORECASE | re.MULTILINE)
_XML_ENCODING = re.compile(rb"<\?xml[^>]*encoding=[\"']([A-Za-z0-9_\-]+)[\"']", re.IGNORECASE)

# French bank codes (code banque) of common institutions
BANK_CODE_TO_BIC = {
    "30003": "SOGEFRPP",
    "30004": "BNPAFRPP",
    "30002": "CRLYFRPP",
    "30006": "AGRIFRPP",
    "30066": "CMCIFRPP",
    "10278": "CMCIFR2A",
    "20041": "PSSTFRPP",
    "40618": "BOUSFRPP",
    "14518": "FTNOFRP1",
    "10107": "BREDFRPP",
    "30056": "CCFRFRPP",
    "11315": "CEPAFRPP",
}

# Elements that hold other elements. An empty SGML tag with one of these
# names opens an aggregate; any other empty tag is a leaf without a value.
_AGGREGATES = frozenset(
    {
        "OFX",
        "SIGNONMSGSRSV1",
        "SONRS",
        "STATUS",
        "FI",
        "BANKMSGSRSV1",
        "STMTTRNRS",
        "STMTRS",
        "CREDITCARDMSGSRSV1",
        "CCSTMTTRNRS",
        "CCSTMTRS",
        "BANKACCTFROM",
        "BANKACCTTO",
        "CCACCTFROM",
        "CCACCTTO",
        "BANKTRANLIST",
        "STMTTRN",
        "LEDGERBAL",
        "AVAILBAL",
        "BALLIST",
        "BAL",
        "CURRENCY",
        "ORIGCURRENCY",
    }
)

# Elements that always carry a value
_LEAVES = frozenset(
    {
        "TRNTYPE",
        "DTPOSTED",
        "DTUSER",
        "DTAVAIL",
        "TRNAMT",
        "FITID",
        "CHECKNUM",
        "REFNUM",
        "SIC",
        "PAYEEID",
        "NAME",
        "MEMO",
        "BANKID",
        "BRANCHID",
        "ACCTID",
        "ACCTTYPE",
        "ACCTKEY",
        "CURDEF",
        "BALAMT",
        "DTASOF",
        "DTSTART",
        "DTEND",
        "CODE",
        "SEVERITY",
        "MESSAGE",
        "DTSERVER",
        "LANGUAGE",
        "ORG",
        "FID",
        "TRNUID",
        "CURRATE",
        "CURSYM",
    }
)

_ACCOUNT_TYPES = {
    "CHECKING": AccountType.CHECKING,
    "SAVINGS": AccountType.SAVINGS,
    "MONEYMRKT": AccountType.SAVINGS,
    "CREDITLINE": AccountType.CREDIT,
    "CD": AccountType.SAVINGS,
}


class OfxNode:
    """One element of an OFX document."""

    __slots__ = ("name", "text", "children")

    def __init__(self, name: str, text: str = ""):
        self.name = name
        self.text = text
        self.children: list["OfxNode"] = []

    def find(self, name: str) -> Optional["OfxNode"]:
        """First direct child with the given name."""
        for child in self.children:
            if child.name == name:
                return child
        return None

    def value(self, name: str) -> Optional[str]:
        """Text of a direct child leaf, or None when absent or empty."""
        child = self.find(name)
        if child is None or not child.text:
            return None
        return child.text

    def iter(self) -> Iterator["OfxNode"]:
        """Depth-first traversal in document order."""
        yield self
        for child in self.children:
            yield from child.iter()


def extract_swift(bank_code: Optional[str]) -> Optional[str]:
    """SWIFT/BIC implied by an OFX BANKID, if recognizable."""
    if not bank_code:
        return None
    code = bank_code.strip().upper()
    if is_bic(code):
        return code
    return BANK_CODE_TO_BIC.get(code)


def _decode(raw: bytes) -> str:
    """Decode an OFX payload using the encoding its header declares."""
    head = raw[:1024]
    declared = None

    xml_match = _XML_ENCODING.search(head)
    if xml_match:
        declared = xml_match.group(1).decode("latin-1")
    else:
        headers = {
            m.group(1).decode("latin-1").upper(): m.group(2).decode("latin-1").upper()
            for m in _SGML_HEADER.finditer(head)
        }
        if headers.get("ENCODING") == "UTF-8":
            declared = "utf-8"
        elif headers.get("CHARSET") not in (None, "NONE"):
            charset = headers["CHARSET"]
            declared = f"cp{charset}" if charset.isdigit() else charset

    if declared is not None:
        try:
            codecs.lookup(declared)
        except LookupError:
            raise ParseError(f"Unsupported encoding '{declared}'", location="header")
        try:
            return raw.decode(declared)
        except UnicodeDecodeError as e:
            raise ParseError(f"File is not valid {declared}: {e.reason}", location=f"byte {e.start}")

    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        try:
            return raw.decode("cp1252")
        except UnicodeDecodeError as e:
            raise ParseError("Unsupported encoding: neither UTF-8 nor Windows-1252", location=f"byte {e.start}")


def _build_tree(body: str) -> OfxNode:
    """Build an element tree, tolerating SGML leaves without closing tags."""
    closed_names = {m.group(2).upper() for m in _TAG.finditer(body) if m.group(1)}

    root = OfxNode("#document")
    stack = [root]
    last_leaf: Optional[OfxNode] = None

    for match in _TAG.finditer(body):
        closing, name = match.group(1), match.group(2).upper()
        text = html.unescape(match.group(3).strip())
        if closing:
            if last_leaf is not None and last_leaf.name == name:
                last_leaf = None
                continue
            for depth in range(len(stack) - 1, 0, -1):
                if stack[depth].name == name:
                    del stack[depth:]
                    break
            last_leaf = None
            continue

        node = OfxNode(name, text)
        stack[-1].children.append(node)
        if name in _AGGREGATES:
            is_leaf = False
        elif name in _LEAVES:
            is_leaf = True
        else:
            is_leaf = bool(text) or name not in closed_names
        if is_leaf:
            last_leaf = node
        else:
            stack.append(node)
            last_leaf = None
    return root


def parse_ofx(raw: bytes) -> tuple[list[RawTransactionRecord], list[DetectedAccount]]:
    """Decode an OFX/QFX file.

    Raises:
        ParseError: If the file has no statement, or a statement or
            transaction lacks a required field
    """
    start = _OFX_START.search(raw)
    if start is None:
        raise ParseError("Not an OFX file: no <OFX> element found", location="header")

    text = _decode(raw)
    body_start = text.upper().find("<OFX>")
    root = _build_tree(text[body_start:])

    statements = [node for node in root.iter() if node.name in ("STMTRS", "CCSTMTRS")]
    if not statements:
        raise ParseError("No account statement found in OFX file", location="<OFX>")

    records: list[RawTransactionRecord] = []
    accounts: list[DetectedAccount] = []
    for number, statement in enumerate(statements, start=1):
        stmt_records, account = _read_statement(statement, number)
        records.extend(stmt_records)
        accounts.append(account)
        logger.debug(
            "OFX statement %d: %d transactions, currency %s",
            number,
            len(stmt_records),
            account.currency,
        )
    return records, accounts


def _read_statement(
    statement: OfxNode, number: int
) -> tuple[list[RawTransactionRecord], DetectedAccount]:
    location = f"statement {number}"
    is_credit_card = statement.name == "CCSTMTRS"
    account_node = statement.find("CCACCTFROM" if is_credit_card else "BANKACCTFROM")
    if account_node is None:
        account_node = statement.find("BANKACCTFROM") or statement.find("CCACCTFROM")
    if account_node is None or account_node.value("ACCTID") is None:
        raise ParseError("Statement has no <ACCTID>", location=location)

    account_id = account_node.value("ACCTID")
    bank_code = account_node.value("BANKID")
    if is_credit_card:
        account_type = AccountType.CREDIT
    else:
        account_type = _ACCOUNT_TYPES.get((account_node.value("ACCTTYPE") or "").upper(), AccountType.CHECKING)

    balance = None
    balance_date = None
    ledger = statement.find("LEDGERBAL")
    if ledger is not None and ledger.value("BALAMT") is not None:
        try:
            balance = parse_amount(ledger.value("BALAMT"))
            if ledger.value("DTASOF"):
                balance_date = parse_ofx_date(ledger.value("DTASOF"))
        except ValueError as e:
            raise ParseError(str(e), location=f"{location}, <LEDGERBAL>")

    records = []
    transaction_list = statement.find("BANKTRANLIST")
    entries = [] if transaction_list is None else [
        child for child in transaction_list.children if child.name == "STMTTRN"
    ]
    for index, entry in enumerate(entries, start=1):
        entry_location = f"{location}, transaction {index}"
        posted = entry.value("DTPOSTED")
        amount = entry.value("TRNAMT")
        if posted is None or amount is None:
            missing = "DTPOSTED" if posted is None else "TRNAMT"
            raise ParseError(f"Transaction is missing <{missing}>", location=entry_location)
        try:
            txn_date = parse_ofx_date(posted)
            txn_amount = parse_amount(amount)
        except ValueError as e:
            raise ParseError(str(e), location=entry_location)

        name = entry.value("NAME") or entry.value("PAYEE") or ""
        memo = entry.value("MEMO") or ""
        description = name if memo == name else f"{name} {memo}".strip()

        records.append(
            RawTransactionRecord(
                date=txn_date,
                amount=txn_amount,
                description=description,
                account_token=account_id,
                external_id=entry.value("FITID"),
                location=entry_location,
            )
        )

    account = DetectedAccount(
        account_number=account_id,
        currency=(statement.value("CURDEF") or "EUR").upper(),
        balance=balance,
        balance_date=balance_date,
        swift_bic=extract_swift(bank_code),
        bank_code=bank_code,
        account_type=account_type,
    )
    return records, account
