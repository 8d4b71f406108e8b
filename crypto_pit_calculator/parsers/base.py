"""Row-parser strategy type and shared field-conversion helpers."""

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

import pandas as pd

from crypto_pit_calculator.config import Transaction

Row = dict[str, str]
ParseRow = Callable[[Row, list[str], int], Transaction | None]

_NUMBER_PATTERN = re.compile(r"[+-]?\d+(?:\.\d*)?(?:[eE][+-]?\d+)?")
_NON_NUMERIC_CHARS = re.compile(r"[^\d.,+\-eE]")


class RowParseError(ValueError):
    """Raised when a row holds a value that cannot be interpreted."""


@dataclass(frozen=True, slots=True)
class RowParser:
    """Exchange layout: header signature plus the row conversion function."""

    name: str
    signature: frozenset[str]
    parse_row: ParseRow

    def matches(self, headers: Iterable[str]) -> bool:
        """Return whether every signature column is present, ignoring case."""
        lowered = {str(header).strip().lower() for header in headers}
        return self.signature <= lowered

    def __call__(self, row: Row, headers: list[str], row_index: int) -> Transaction | None:
        return self.parse_row(row, headers, row_index)


def get_value(row: Row, *keys: str) -> str:
    """Return first non-empty value among keys, matching exact then case-insensitive."""
    lowered = {str(key).strip().lower(): key for key in row}
    for key in keys:
        value = row.get(key)
        if value is None and (actual := lowered.get(key.lower())) is not None:
            value = row[actual]
        if value is not None and (text := str(value).strip()):
            return text
    return ""


def to_float(raw: object) -> float:
    """Convert exchange-formatted number to float, defaulting to zero."""
    text = _NON_NUMERIC_CHARS.sub("", str(raw or ""))
    if "," in text and "." in text:
        # Whichever separator comes last is the decimal one.
        thousands = "." if text.rfind(",") > text.rfind(".") else ","
        text = text.replace(thousands, "").replace(",", ".")
    elif "," in text:
        text = text.replace(",", ".")
    if not (match := _NUMBER_PATTERN.search(text)):
        return 0.0
    return float(match.group())


def parse_timestamp(raw: str, dayfirst: bool = False) -> datetime:
    """Parse exchange timestamp into naive UTC datetime."""
    try:
        timestamp = pd.to_datetime(raw, dayfirst=dayfirst)
    except (ValueError, TypeError, OverflowError) as error:
        raise RowParseError(f"Invalid date '{raw}'.") from error
    if pd.isna(timestamp):
        raise RowParseError(f"Invalid date '{raw}'.")
    if timestamp.tzinfo is not None:
        timestamp = timestamp.tz_convert("UTC").tz_localize(None)
    return timestamp.to_pydatetime()
