"""XLSX statement decoding via openpyxl."""

import io
import logging
import zipfile

from openpyxl import load_workbook

from ledgerlink.domain.entities import DetectedAccount, RawTransactionRecord
from ledgerlink.domain.errors import ParseError
from ledgerlink.domain.parsers.tabular import rows_to_statement

logger = logging.getLogger(__name__)


def parse_xlsx(raw: bytes) -> tuple[list[RawTransactionRecord], list[DetectedAccount]]:
    """Decode the first worksheet of an XLSX workbook.

    Cells keep their native types: dates may come as datetime values or
    serial numbers, amounts as numbers.

    Raises:
        ParseError: If the workbook cannot be opened or its sheet cannot be
            mapped
    """
    try:
        workbook = load_workbook(io.BytesIO(raw), read_only=True, data_only=True)
    except (zipfile.BadZipFile, KeyError, OSError, ValueError) as e:
        raise ParseError(f"Could not open XLSX workbook: {e}", location="workbook")

    try:
        sheet = workbook.worksheets[0] if workbook.worksheets else None
        if sheet is None:
            raise ParseError("Workbook has no worksheet", location="workbook")
        rows = [list(row) for row in sheet.iter_rows(values_only=True)]
        logger.debug("XLSX sheet '%s': %d rows", sheet.title, len(rows))
    finally:
        workbook.close()

    if not rows:
        raise ParseError("Worksheet is empty", location="row 1")
    return rows_to_statement(rows, location_label="row")
