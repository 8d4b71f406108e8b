"""Fallback row parser guessing columns from common header synonyms."""

from crypto_pit_calculator.config import LOCAL_CURRENCY, Transaction, TransactionKind
from crypto_pit_calculator.parsers.base import Row, RowParser, parse_timestamp, to_float

DATE_KEYS = frozenset({"date", "data", "time", "timestamp", "datetime", "utc_time"})
TYPE_KEYS = frozenset({"type", "typ", "operation", "side", "action"})
QUANTITY_KEYS = frozenset({"amount", "kwota", "quantity", "vol", "volume", "size"})
SYMBOL_KEYS = frozenset({"symbol", "coin", "asset", "currency", "waluta", "pair"})
PRICE_KEYS = frozenset({"price", "cena", "total", "cost", "value", "wartość"})


def find_column(headers: list[str], synonyms: frozenset[str]) -> str | None:
    """Return first header whose lowercased name is one of synonyms."""
    return next((h for h in headers if str(h).strip().lower() in synonyms), None)


def _classify_type(type_str: str) -> TransactionKind:
    """Map English or Polish buy/sell wording to transaction kind."""
    if "buy" in type_str or "kup" in type_str:
        return TransactionKind.ACQUISITION
    if "sell" in type_str or "sprzed" in type_str:
        return TransactionKind.DISPOSAL
    return TransactionKind.UNKNOWN


def parse_generic_row(row: Row, headers: list[str], row_index: int) -> Transaction | None:
    """Convert one row of an unrecognized layout, requiring only a date column."""
    if not (date_key := find_column(headers, DATE_KEYS)):
        return None
    if not (date_str := str(row.get(date_key) or "").strip()):
        return None
    type_key = find_column(headers, TYPE_KEYS)
    quantity_key = find_column(headers, QUANTITY_KEYS)
    symbol_key = find_column(headers, SYMBOL_KEYS)
    price_key = find_column(headers, PRICE_KEYS)
    symbol = str(row.get(symbol_key) or "").strip() if symbol_key else ""
    return Transaction(
        id=f"generic-{row_index}",
        date=parse_timestamp(date_str),
        kind=_classify_type(str(row.get(type_key) or "").lower() if type_key else ""),
        symbol=symbol.upper() or "UNKNOWN",
        quantity=abs(to_float(row.get(quantity_key))) if quantity_key else 0.0,
        fiat_amount=abs(to_float(row.get(price_key))) if price_key else 0.0,
        fiat_currency=LOCAL_CURRENCY,
        exchange="Custom",
    )


GENERIC = RowParser(
    name="Generic",
    signature=frozenset(),
    parse_row=parse_generic_row,
)
