"""Exchange layout detection from a file's header row."""

from collections.abc import Iterable

from crypto_pit_calculator.parsers.base import RowParser
from crypto_pit_calculator.parsers.binance import BINANCE
from crypto_pit_calculator.parsers.coinbase import COINBASE
from crypto_pit_calculator.parsers.generic import GENERIC
from crypto_pit_calculator.parsers.kraken import KRAKEN
from crypto_pit_calculator.parsers.zonda import ZONDA

# Checked in order; first match wins.
PARSERS: tuple[RowParser, ...] = (BINANCE, KRAKEN, COINBASE, ZONDA)


def detect_parser(headers: Iterable[str]) -> RowParser:
    """Return parser for the first matching layout, or the generic parser."""
    headers = list(headers)
    return next((parser for parser in PARSERS if parser.matches(headers)), GENERIC)
