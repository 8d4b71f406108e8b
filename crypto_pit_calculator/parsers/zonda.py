"""Zonda (formerly BitBay) operation-history row parser."""

from crypto_pit_calculator.config import LOCAL_CURRENCY, Transaction, TransactionKind
from crypto_pit_calculator.parsers.base import Row, RowParser, get_value, parse_timestamp, to_float


def _classify_type(typ: str) -> TransactionKind:
    """Map Polish or English Zonda operation type to transaction kind."""
    if "prowizja" in typ or "fee" in typ:
        return TransactionKind.FEE
    if "kupno" in typ or "buy" in typ:
        return TransactionKind.ACQUISITION
    if "sprzedaż" in typ or "sell" in typ:
        return TransactionKind.DISPOSAL
    if "wpłata" in typ or "deposit" in typ:
        return TransactionKind.TRANSFER_IN
    if "wypłata" in typ or "withdraw" in typ:
        return TransactionKind.TRANSFER_OUT
    return TransactionKind.UNKNOWN


def parse_zonda_row(row: Row, _headers: list[str], row_index: int) -> Transaction | None:
    """Convert one Zonda export row into a transaction."""
    currency = get_value(row, "Waluta", "Currency")
    date_str = get_value(row, "Data", "Date")
    if not date_str or not currency:
        return None
    typ = get_value(row, "Typ", "Type")
    return Transaction(
        id=f"zonda-{row_index}",
        date=parse_timestamp(date_str, dayfirst=True),
        kind=_classify_type(typ.lower()),
        symbol=currency.upper(),
        quantity=abs(to_float(get_value(row, "Kwota", "Amount"))),
        fiat_amount=0.0,
        fiat_currency=LOCAL_CURRENCY,
        exchange="BitBay/Zonda",
        note=typ or None,
    )


ZONDA = RowParser(
    name="Zonda",
    signature=frozenset({"typ", "waluta"}),
    parse_row=parse_zonda_row,
)
