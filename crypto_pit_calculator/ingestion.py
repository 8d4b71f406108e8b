"""Per-file ingestion: size guard, CSV/spreadsheet readers and row parsing."""

import io
import logging
import zipfile
from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from pathlib import Path

import pandas as pd

from crypto_pit_calculator.config import (
    MAX_FILE_SIZE_BYTES,
    FileKind,
    ParsedBatch,
    Transaction,
    TransactionKind,
)
from crypto_pit_calculator.parsers import detect_parser
from crypto_pit_calculator.parsers.base import Row

logger = logging.getLogger(__name__)

UNSUPPORTED_GUIDANCE = (
    "PDF parsing requires manual data entry.",
    "Please export your data from the exchange to CSV or XLSX format.",
)
EMPTY_SHEET_WARNING = "File is empty or contains no data."
_DELIMITERS = (",", ";", "\t", "|")
_OVERFLOW_MARKER = "\x00overflow:"

_ROW_PARSE_EXCEPTIONS = (ValueError, TypeError, KeyError, ArithmeticError)
_READER_EXCEPTIONS = (
    ValueError,
    OSError,
    KeyError,
    IndexError,
    zipfile.BadZipFile,
    pd.errors.ParserError,
)


class FileTooLargeError(ValueError):
    """Raised when input content exceeds the maximum accepted size."""


def detect_file_kind(file_name: str, mime_type: str = "") -> FileKind:
    """Determine file kind from extension, then MIME type, defaulting to CSV."""
    extension = Path(file_name).suffix.lower().lstrip(".")
    mime = mime_type.lower()
    if extension == "csv" or "csv" in mime:
        return FileKind.CSV
    if extension in {"xlsx", "xls"} or "spreadsheet" in mime or "excel" in mime:
        return FileKind.SHEET
    if extension == "pdf" or "pdf" in mime:
        return FileKind.UNSUPPORTED
    return FileKind.CSV


def parse_file(
    file_name: str,
    file_kind: FileKind,
    content: bytes | str,
    max_size_bytes: int = MAX_FILE_SIZE_BYTES,
) -> ParsedBatch:
    """Parse one file into transactions, dropping failing rows with warnings."""
    size = len(content.encode("utf-8") if isinstance(content, str) else content)
    if size > max_size_bytes:
        raise FileTooLargeError(
            f"File {file_name} is too large. "
            f"Maximum size: {max_size_bytes / (1024 * 1024):g}MB"
        )
    if file_kind is FileKind.UNSUPPORTED:
        return ParsedBatch(file_name, file_kind, warnings=UNSUPPORTED_GUIDANCE)

    try:
        if file_kind is FileKind.SHEET:
            table = _read_sheet(content)
        else:
            table = _read_csv(content)
    except _READER_EXCEPTIONS as error:
        logger.warning("Failed to read %s: %s", file_name, error)
        label = "XLSX" if file_kind is FileKind.SHEET else "CSV"
        return ParsedBatch(file_name, file_kind, warnings=(f"{label} parse error: {error}",))
    if table is None:
        return ParsedBatch(file_name, file_kind, warnings=(EMPTY_SHEET_WARNING,))

    headers, rows, row_errors = table
    transactions, warnings = _parse_rows(file_name, headers, rows, row_errors)
    logger.info(
        "Parsed %d transaction(s) from %s with %d warning(s).",
        len(transactions),
        file_name,
        len(warnings),
    )
    return ParsedBatch(file_name, file_kind, tuple(transactions), tuple(warnings))


def parse_files(
    files: Iterable[tuple[str, FileKind, bytes | str]],
    max_size_bytes: int = MAX_FILE_SIZE_BYTES,
) -> list[ParsedBatch]:
    """Parse several files; an oversized file yields an empty batch with its error."""
    batches = []
    for file_name, file_kind, content in files:
        try:
            batches.append(parse_file(file_name, file_kind, content, max_size_bytes))
        except FileTooLargeError as error:
            batches.append(ParsedBatch(file_name, file_kind, warnings=(str(error),)))
    return batches


def parse_path(path: Path | str, max_size_bytes: int = MAX_FILE_SIZE_BYTES) -> ParsedBatch:
    """Read local file and parse it according to its detected kind."""
    path = Path(path).expanduser()
    if path.stat().st_size > max_size_bytes:
        raise FileTooLargeError(
            f"File {path.name} is too large. "
            f"Maximum size: {max_size_bytes / (1024 * 1024):g}MB"
        )
    return parse_file(path.name, detect_file_kind(path.name), path.read_bytes(), max_size_bytes)


def validate_transactions(transactions: Iterable[Transaction]) -> list[str]:
    """Return descriptive problems found in parsed transactions."""
    problems = []
    for number, transaction in enumerate(transactions, start=1):
        if not isinstance(transaction.date, datetime):
            problems.append(f"Transaction {number}: Invalid date")
        if not transaction.symbol:
            problems.append(f"Transaction {number}: Missing cryptocurrency symbol")
        if transaction.kind is TransactionKind.UNKNOWN:
            problems.append(f"Transaction {number}: Unrecognized transaction type")
    return problems


def _parse_rows(
    file_name: str,
    headers: list[str],
    rows: list[Row],
    row_errors: dict[int, str] | None = None,
) -> tuple[list[Transaction], list[str]]:
    """Run detected parser over rows; row numbers count the header as row 1."""
    row_errors = row_errors or {}
    parser = detect_parser(headers)
    logger.debug("Detected %s layout for %s.", parser.name, file_name)
    transactions: list[Transaction] = []
    warnings: list[str] = []
    for index, row in enumerate(rows):
        if index in row_errors:
            warnings.append(f"Row {index + 2}: {row_errors[index]}")
            continue
        try:
            transaction = parser(row, headers, index)
        except _ROW_PARSE_EXCEPTIONS as error:
            warnings.append(f"Row {index + 2}: {error}")
            continue
        if transaction is not None:
            transactions.append(replace(transaction, id=f"{file_name}:{transaction.id}"))
    return transactions, warnings


def _decode(content: bytes | str) -> str:
    """Decode CSV bytes as UTF-8, falling back to the Polish Windows code page."""
    if isinstance(content, str):
        return content
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError:
        return content.decode("cp1250")


def _sniff_delimiter(text: str) -> str:
    """Return most frequent delimiter in the first non-blank line."""
    first_line = next((line for line in text.splitlines() if line.strip()), "")
    return max(_DELIMITERS, key=first_line.count)


def _read_csv(content: bytes | str) -> tuple[list[str], list[Row], dict[int, str]]:
    """Read delimited text with the first line as headers.

    Lines with more fields than the header are kept as placeholder rows so
    that row numbers stay aligned; their positions map to a warning cause.
    """
    text = _decode(content)
    if not text.strip():
        return [], [], {}
    delimiter = _sniff_delimiter(text)
    width = pd.read_csv(
        io.StringIO(text), sep=delimiter, header=None, nrows=1, engine="python"
    ).shape[1]
    overflows: list[str] = []

    def mark_overflow(fields: list[str]) -> list[str]:
        overflows.append(f"Expected {width} fields, saw {len(fields)}")
        return [f"{_OVERFLOW_MARKER}{len(overflows) - 1}"] + [""] * (width - 1)

    df = pd.read_csv(
        io.StringIO(text),
        sep=delimiter,
        header=None,
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
        engine="python",
        on_bad_lines=mark_overflow,
    ).fillna("")
    headers = [str(value).strip() for value in df.iloc[0]]
    rows: list[Row] = []
    row_errors: dict[int, str] = {}
    for index, values in enumerate(df.iloc[1:].itertuples(index=False)):
        first = str(values[0])
        if first.startswith(_OVERFLOW_MARKER):
            row_errors[index] = overflows[int(first.removeprefix(_OVERFLOW_MARKER))]
        rows.append(dict(zip(headers, (str(value) for value in values))))
    return headers, rows, row_errors


def _read_sheet(content: bytes | str) -> tuple[list[str], list[Row], dict[int, str]] | None:
    """Read first worksheet with the first row as headers, or None when empty."""
    if isinstance(content, str):
        raise ValueError("Spreadsheet content must be binary.")
    df = pd.read_excel(io.BytesIO(content), sheet_name=0, header=None, dtype=str)
    if len(df) < 2:
        return None
    df = df.fillna("")
    headers = [str(value).strip() for value in df.iloc[0]]
    rows = [
        dict(zip(headers, (str(value).strip() for value in values)))
        for values in df.iloc[1:].itertuples(index=False)
    ]
    return headers, rows, {}
