"""Tax classification predicates over canonical transactions."""

from crypto_pit_calculator.config import Transaction, TransactionKind

_DISPOSAL_KINDS = frozenset({TransactionKind.DISPOSAL, TransactionKind.PAYMENT})


def is_taxable_disposal(transaction: Transaction) -> bool:
    """Return whether transaction is a paid disposal counted as revenue.

    Crypto-to-crypto exchanges are exempt and never count as disposals.
    """
    return transaction.kind in _DISPOSAL_KINDS


def is_deductible_cost(transaction: Transaction) -> bool:
    """Return whether transaction is a deductible acquisition cost.

    Purchases always qualify. A fee qualifies only when its note ties it to a
    sale; withdrawal and swap fees do not.
    """
    if transaction.kind is TransactionKind.ACQUISITION:
        return True
    return transaction.kind is TransactionKind.FEE and "sell" in (transaction.note or "").lower()
