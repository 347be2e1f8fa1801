"""Delimited text (CSV) statement decoding."""

import csv
import io
import logging
from collections import Counter

from ledgerlink.domain.entities import DetectedAccount, RawTransactionRecord
from ledgerlink.domain.errors import ParseError
from ledgerlink.domain.parsers.tabular import rows_to_statement

logger = logging.getLogger(__name__)

DELIMITERS = ",;\t|"
_SNIFF_BYTES = 8192


def decode_text(raw: bytes) -> str:
    """Decode a text statement as UTF-8, falling back to Windows-1252.

    Raises:
        ParseError: If neither encoding applies
    """
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError:
        pass
    try:
        text = raw.decode("cp1252")
    except UnicodeDecodeError as e:
        raise ParseError("Unsupported encoding: neither UTF-8 nor Windows-1252", location=f"byte {e.start}")
    logger.debug("CSV decoded as Windows-1252")
    return text


def detect_delimiter(text: str) -> str:
    """Guess the field delimiter of a delimited text.

    csv.Sniffer is tried first; when it gives up, the candidate that splits
    the most lines into the same number of fields wins.
    """
    sample = text[:_SNIFF_BYTES]
    try:
        return csv.Sniffer().sniff(sample, delimiters=DELIMITERS).delimiter
    except csv.Error:
        pass

    lines = [line for line in sample.splitlines() if line.strip()][:20]
    best, best_score = ",", 0
    for delimiter in DELIMITERS:
        counts = Counter(line.count(delimiter) for line in lines if line.count(delimiter))
        if not counts:
            continue
        _, score = counts.most_common(1)[0]
        if score > best_score:
            best, best_score = delimiter, score
    return best


def parse_csv(raw: bytes) -> tuple[list[RawTransactionRecord], list[DetectedAccount]]:
    """Decode a CSV statement.

    Raises:
        ParseError: If the file cannot be decoded, has no recognizable header,
            or a line holds an unusable date or amount
    """
    text = decode_text(raw)
    if not text.strip():
        raise ParseError("CSV file is empty", location="line 1")

    delimiter = detect_delimiter(text)
    logger.debug("CSV delimiter %r", delimiter)
    try:
        rows = list(csv.reader(io.StringIO(text, newline=""), delimiter=delimiter))
    except csv.Error as e:
        raise ParseError(f"Malformed CSV: {e}")
    return rows_to_statement(rows, location_label="line")
