"""Binance transaction-history row parser."""

from crypto_pit_calculator.config import Transaction, TransactionKind
from crypto_pit_calculator.parsers.base import Row, RowParser, get_value, parse_timestamp, to_float


def _classify_operation(operation: str, change: float) -> TransactionKind:
    """Map Binance operation vocabulary and signed change to transaction kind."""
    if "buy" in operation or "deposit" in operation:
        return TransactionKind.ACQUISITION if change > 0 else TransactionKind.DISPOSAL
    if "sell" in operation or "withdraw" in operation:
        return TransactionKind.DISPOSAL
    if "fee" in operation:
        return TransactionKind.FEE
    if "transfer" in operation:
        return TransactionKind.TRANSFER_IN if change > 0 else TransactionKind.TRANSFER_OUT
    if "convert" in operation or "small assets exchange" in operation:
        return TransactionKind.CRYPTO_EXCHANGE
    if "staking" in operation or "earn" in operation:
        return TransactionKind.STAKING_REWARD
    if "airdrop" in operation:
        return TransactionKind.AIRDROP
    return TransactionKind.UNKNOWN


def parse_binance_row(row: Row, _headers: list[str], row_index: int) -> Transaction | None:
    """Convert one Binance export row into a transaction."""
    coin = get_value(row, "Coin")
    date_str = get_value(row, "UTC_Time", "Date")
    if not date_str or not coin:
        return None
    change = to_float(get_value(row, "Change"))
    return Transaction(
        id=f"binance-{row_index}",
        date=parse_timestamp(date_str),
        kind=_classify_operation(get_value(row, "Operation").lower(), change),
        symbol=coin.upper(),
        quantity=abs(change),
        fiat_amount=0.0,
        fiat_currency="USD",
        exchange="Binance",
        note=get_value(row, "Remark") or None,
    )


BINANCE = RowParser(
    name="Binance",
    signature=frozenset({"operation", "coin"}),
    parse_row=parse_binance_row,
)
