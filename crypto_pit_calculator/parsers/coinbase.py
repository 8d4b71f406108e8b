"""Coinbase transaction-report row parser."""

from crypto_pit_calculator.config import Transaction, TransactionKind
from crypto_pit_calculator.parsers.base import Row, RowParser, get_value, parse_timestamp, to_float


def _classify_type(tx_type: str) -> TransactionKind:
    """Map Coinbase transaction type, including Advanced Trade variants, to kind."""
    if "buy" in tx_type:
        return TransactionKind.ACQUISITION
    if "sell" in tx_type:
        return TransactionKind.DISPOSAL
    if "convert" in tx_type:
        return TransactionKind.CRYPTO_EXCHANGE
    if "learning reward" in tx_type:
        return TransactionKind.AIRDROP
    if "staking" in tx_type or "rewards income" in tx_type or "inflation reward" in tx_type:
        return TransactionKind.STAKING_REWARD
    return {
        "receive": TransactionKind.TRANSFER_IN,
        "send": TransactionKind.TRANSFER_OUT,
    }.get(tx_type, TransactionKind.UNKNOWN)


def parse_coinbase_row(row: Row, _headers: list[str], row_index: int) -> Transaction | None:
    """Convert one Coinbase export row into a transaction."""
    asset = get_value(row, "Asset")
    date_str = get_value(row, "Timestamp")
    if not date_str or not asset:
        return None
    quantity = abs(to_float(get_value(row, "Quantity Transacted")))
    spot_price = abs(to_float(get_value(row, "Spot Price at Transaction", "Price at Transaction")))
    total = abs(
        to_float(
            get_value(
                row,
                "Total (inclusive of fees)",
                "Total (inclusive of fees and/or spread)",
            )
        )
    )
    currency = get_value(row, "Spot Price Currency", "Price Currency").upper() or "USD"
    return Transaction(
        id=f"coinbase-{row_index}",
        date=parse_timestamp(date_str),
        kind=_classify_type(get_value(row, "Transaction Type").lower()),
        symbol=asset.upper(),
        quantity=quantity,
        fiat_amount=total or quantity * spot_price,
        fiat_currency=currency,
        fee=abs(to_float(get_value(row, "Fees", "Fees and/or Spread"))),
        fee_currency=currency,
        exchange="Coinbase",
        note=get_value(row, "Notes") or None,
    )


COINBASE = RowParser(
    name="Coinbase",
    signature=frozenset({"transaction type", "asset"}),
    parse_row=parse_coinbase_row,
)
