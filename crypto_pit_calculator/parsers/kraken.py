"""Kraken trades-export row parser."""

from crypto_pit_calculator.config import Transaction, TransactionKind
from crypto_pit_calculator.parsers.base import Row, RowParser, get_value, parse_timestamp, to_float

DEFAULT_QUOTE = "USD"
_QUOTES = ("PLN", "USD", "EUR", "GBP", "CHF")
_ASSET_ALIASES = {"XBT": "BTC", "XDG": "DOGE"}


def split_pair(pair: str) -> tuple[str, str | None]:
    """Split Kraken pair into normalized base asset and fiat quote, if recognized.

    Legacy pairs prefix assets with X and fiat with Z, e.g. XXBTZUSD.
    """
    text = pair.strip().upper()
    if "/" in text:
        base, quote = (part.strip() for part in text.split("/", 1))
        return _ASSET_ALIASES.get(base, base), quote if quote in _QUOTES else None
    quote = next((x for x in _QUOTES if text.endswith(x) and len(text) > len(x)), None)
    base = text[: -len(quote)] if quote else text
    if len(base) == 5 and base.startswith("X") and base.endswith("Z"):
        base = base[:-1]
    if len(base) == 4 and base[0] in "XZ":
        base = base[1:]
    return _ASSET_ALIASES.get(base, base), quote


def parse_kraken_row(row: Row, _headers: list[str], row_index: int) -> Transaction | None:
    """Convert one Kraken trades export row into a transaction."""
    pair = get_value(row, "pair")
    date_str = get_value(row, "time")
    if not date_str or not pair:
        return None
    tx_type = get_value(row, "type").lower()
    kind = {"buy": TransactionKind.ACQUISITION, "sell": TransactionKind.DISPOSAL}.get(
        tx_type, TransactionKind.UNKNOWN
    )
    symbol, quote = split_pair(pair)
    currency = quote or DEFAULT_QUOTE
    return Transaction(
        id=f"kraken-{row_index}",
        date=parse_timestamp(date_str),
        kind=kind,
        symbol=symbol,
        quantity=abs(to_float(get_value(row, "vol"))),
        fiat_amount=abs(to_float(get_value(row, "cost"))),
        fiat_currency=currency,
        fee=abs(to_float(get_value(row, "fee"))),
        fee_currency=currency,
        exchange="Kraken",
    )


KRAKEN = RowParser(
    name="Kraken",
    signature=frozenset({"txid", "pair"}),
    parse_row=parse_kraken_row,
)
