"""Exchange export row parsers and layout detection."""

from crypto_pit_calculator.parsers.base import RowParseError, RowParser
from crypto_pit_calculator.parsers.binance import BINANCE
from crypto_pit_calculator.parsers.coinbase import COINBASE
from crypto_pit_calculator.parsers.detector import PARSERS, detect_parser
from crypto_pit_calculator.parsers.generic import GENERIC
from crypto_pit_calculator.parsers.kraken import KRAKEN
from crypto_pit_calculator.parsers.zonda import ZONDA

__all__ = [
    "BINANCE",
    "COINBASE",
    "GENERIC",
    "KRAKEN",
    "PARSERS",
    "RowParseError",
    "RowParser",
    "ZONDA",
    "detect_parser",
]
