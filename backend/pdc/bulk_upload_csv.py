"""Structural validation and row streaming for bulk upload CSV files.

A bulk upload CSV is UTF-8, comma-delimited; its first row lists base field
short codes (one per column) and every later row is one proposal.  The
structural checks here run against a local copy of the file before anything
is written to the database:

1. the file has a header row, every short code in it is registered, and the
   required columns are present;
2. every data row has exactly as many cells as the header.

A blank line is a record with one empty cell: it is a data row when the
header has a single column and a ragged row otherwise.  The newline that
ends the last record is not a record.
"""

import csv
import logging
import os
from typing import Iterator, Sequence

from pdc.exceptions import (
    EmptyCsvError,
    MissingRequiredColumnError,
    RaggedRowError,
    UnknownShortCodeError,
)
from pdc.services.base_field_service import FieldRegistry

logger = logging.getLogger(__name__)

CSV_ENCODING = "utf-8-sig"


def _required_short_codes_from_env() -> tuple[str, ...]:
    raw = os.getenv("PDC_BULK_UPLOAD_REQUIRED_SHORT_CODES", "proposal_submitter_email")
    return tuple(code.strip() for code in raw.split(",") if code.strip())


REQUIRED_SHORT_CODES: tuple[str, ...] = _required_short_codes_from_env()


def _iter_records(csv_path: str) -> Iterator[tuple[int, list[str]]]:
    """Yield ``(line_number, record)`` for every record in the file."""
    with open(csv_path, newline="", encoding=CSV_ENCODING) as csv_file:
        reader = csv.reader(csv_file)
        for record in reader:
            # csv.reader returns [] for an empty line.
            yield reader.line_num, record or [""]


# ---------------------------------------------------------------------------
# Header
# ---------------------------------------------------------------------------


def read_short_codes(csv_path: str) -> list[str]:
    """Return the header row, or an empty list for an empty file."""
    for _, record in _iter_records(csv_path):
        return [short_code.strip() for short_code in record]
    return []


def assert_short_codes_are_valid(
    short_codes: Sequence[str],
    registry: FieldRegistry,
    required_short_codes: Sequence[str] = REQUIRED_SHORT_CODES,
) -> None:
    if not short_codes:
        raise EmptyCsvError()
    for short_code in short_codes:
        if short_code not in registry:
            raise UnknownShortCodeError(short_code)
    for short_code in required_short_codes:
        if short_code not in short_codes:
            raise MissingRequiredColumnError(short_code)


# ---------------------------------------------------------------------------
# Rows
# ---------------------------------------------------------------------------


def assert_rows_have_equal_length(csv_path: str, expected_length: int) -> int:
    """Check every data row against the header width.

    Returns the number of data rows.
    """
    row_count = 0
    records = _iter_records(csv_path)
    next(records, None)
    for line_number, record in records:
        if len(record) != expected_length:
            raise RaggedRowError(line_number, expected_length, len(record))
        row_count += 1
    return row_count


def assert_bulk_upload_csv_is_valid(
    csv_path: str,
    registry: FieldRegistry,
    required_short_codes: Sequence[str] = REQUIRED_SHORT_CODES,
) -> list[str]:
    """Run every structural check and return the header's short codes.

    Raises:
        BulkUploadCsvError: The first structural problem found.
    """
    short_codes = read_short_codes(csv_path)
    assert_short_codes_are_valid(short_codes, registry, required_short_codes)
    row_count = assert_rows_have_equal_length(csv_path, len(short_codes))
    logger.debug(
        "Bulk upload CSV is structurally valid",
        extra={"columns": len(short_codes), "rows": row_count},
    )
    return short_codes


def iter_data_rows(csv_path: str) -> Iterator[list[str]]:
    """Yield data rows in file order, skipping the header."""
    records = _iter_records(csv_path)
    next(records, None)
    for _, record in records:
        yield record
