"""Statement file decoding.

StatementParser turns the raw bytes of an OFX/QFX, CSV or XLSX statement into
a ParsedStatement. It never touches the ledger.
"""

import hashlib
import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from pathlib import PurePath
from typing import Optional, Union

from ledgerlink.domain.entities import ParsedStatement, StatementFormat
from ledgerlink.domain.errors import ParseError
from ledgerlink.domain.parsers.delimited import parse_csv
from ledgerlink.domain.parsers.ofx import parse_ofx
from ledgerlink.domain.parsers.spreadsheet import parse_xlsx

logger = logging.getLogger(__name__)

_EXTENSIONS = {
    ".ofx": StatementFormat.OFX,
    ".qfx": StatementFormat.OFX,
    ".csv": StatementFormat.CSV,
    ".txt": StatementFormat.CSV,
    ".xlsx": StatementFormat.XLSX,
}

_DECODERS = {
    StatementFormat.OFX: parse_ofx,
    StatementFormat.CSV: parse_csv,
    StatementFormat.XLSX: parse_xlsx,
}


def source_fingerprint(raw: bytes) -> str:
    """SHA-256 of a file's bytes, identifying it across re-submissions."""
    return hashlib.sha256(raw).hexdigest()


def coerce_format(value: Union[str, StatementFormat, None]) -> Optional[StatementFormat]:
    """Accept a format name ("ofx", "qfx", "csv", "xlsx") or enum member.

    Raises:
        ParseError: For an unsupported format name
    """
    if value is None or isinstance(value, StatementFormat):
        return value
    name = value.strip().lower().lstrip(".")
    if name == "qfx":
        name = "ofx"
    try:
        return StatementFormat(name)
    except ValueError:
        raise ParseError(f"Unsupported statement format '{value}'. Use ofx, qfx, csv or xlsx")


def detect_format(raw: bytes, filename: Optional[str] = None) -> StatementFormat:
    """Guess a statement's format from its content, then its file name.

    Raises:
        ParseError: For legacy .xls workbooks, which are not supported
    """
    head = raw[:2048].lstrip()
    if head.startswith(b"PK\x03\x04"):
        return StatementFormat.XLSX
    upper = head.upper()
    if b"OFXHEADER" in upper or b"<OFX>" in upper or b"<?OFX" in upper:
        return StatementFormat.OFX

    if filename:
        suffix = PurePath(filename).suffix.lower()
        if suffix == ".xls":
            raise ParseError("Legacy .xls workbooks are not supported; save the file as .xlsx or CSV")
        if suffix in _EXTENSIONS:
            return _EXTENSIONS[suffix]
    return StatementFormat.CSV


class StatementParser:
    """Decode statement files into records and detected accounts."""

    def parse(
        self,
        raw: bytes,
        declared_format: Union[str, StatementFormat, None] = None,
        filename: Optional[str] = None,
    ) -> ParsedStatement:
        """Parse a statement file.

        Args:
            raw: File content
            declared_format: Format forced by the caller; detected when None
            filename: Original file name, used as a format hint

        Returns:
            ParsedStatement with records in file order

        Raises:
            ParseError: If the file is empty, of unsupported format, or malformed
        """
        if not raw or not raw.strip():
            raise ParseError("Statement file is empty")

        fmt = coerce_format(declared_format) or detect_format(raw, filename)
        records, accounts = _DECODERS[fmt](raw)

        statement = ParsedStatement(
            format=fmt,
            accounts=accounts,
            records=records,
            source_fingerprint=source_fingerprint(raw),
        )
        logger.info(
            "Parsed %s statement: %d accounts, %d transactions",
            fmt.value.upper(),
            len(accounts),
            len(records),
        )
        return statement

    def parse_with_time_budget(
        self,
        raw: bytes,
        declared_format: Union[str, StatementFormat, None] = None,
        filename: Optional[str] = None,
        time_budget: float = 90.0,
    ) -> ParsedStatement:
        """Parse a statement, giving up after ``time_budget`` seconds.

        Raises:
            ParseError: If parsing fails or runs out of time
        """
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="statement-parser")
        try:
            future = executor.submit(self.parse, raw, declared_format, filename)
            try:
                return future.result(timeout=time_budget)
            except FutureTimeout:
                future.cancel()
                logger.warning("Statement parsing exceeded %.1fs budget", time_budget)
                raise ParseError(f"Parsing took longer than {time_budget:g} seconds and was abandoned")
        finally:
            executor.shutdown(wait=False)


__all__ = ["StatementParser", "detect_format", "coerce_format", "source_fingerprint"]
