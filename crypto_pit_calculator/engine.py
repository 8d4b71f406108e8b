"""Multi-year crypto tax computation with cost carry-forward."""

from collections.abc import Iterable
from dataclasses import replace
from datetime import datetime
from itertools import groupby
from uuid import uuid4

from crypto_pit_calculator.classifier import is_deductible_cost, is_taxable_disposal
from crypto_pit_calculator.config import (
    LOCAL_CURRENCY,
    TAX_RATE,
    ParsedBatch,
    RateOrigin,
    TaxCalculation,
    TaxReportLogs,
    TaxYear,
    Transaction,
    format_log,
    round_money,
)
from crypto_pit_calculator.rates import RateResolver, ResolvedRate, reference_date

DEFAULT_CALCULATION_NAME = "New calculation"


def new_calculation_id() -> str:
    """Return random nine-digit calculation identifier."""
    return f"{uuid4().int % 1_000_000_000:09d}"


def calculate_year(
    year: int,
    transactions: list[Transaction],
    carry_forward: float,
) -> tuple[TaxYear, float]:
    """Compute one year's figures and return them with the unrounded carry-forward.

    Transactions must already carry PLN amounts. Income is floored at zero;
    cost not consumed by revenue moves to the next year instead of a loss.
    """
    disposals = [tx for tx in transactions if is_taxable_disposal(tx)]
    acquisitions = [tx for tx in transactions if is_deductible_cost(tx)]
    revenue = sum(tx.amount_pln or 0.0 for tx in disposals)
    current_year_cost = sum((tx.amount_pln or 0.0) + (tx.fee_pln or 0.0) for tx in acquisitions)
    total_cost = current_year_cost + carry_forward
    income = max(revenue - total_cost, 0.0)
    next_carry_forward = max(total_cost - revenue, 0.0)
    tax_year = TaxYear(
        year=year,
        revenue=round_money(revenue),
        current_year_cost=round_money(current_year_cost),
        previous_years_cost=round_money(carry_forward),
        total_cost=round_money(total_cost),
        income=round_money(income),
        tax=round_money(income * TAX_RATE),
        carry_forward=round_money(next_carry_forward),
        disposals=tuple(disposals),
        acquisitions=tuple(acquisitions),
        transactions=tuple(transactions),
    )
    return tax_year, next_carry_forward


class TaxEngine:
    """Stateless calculator turning parsed batches into a TaxCalculation."""

    def __init__(self, resolver: RateResolver | None = None) -> None:
        self.resolver = resolver if resolver is not None else RateResolver()

    def calculate(
        self,
        batches: Iterable[ParsedBatch],
        carry_forward: float = 0.0,
        name: str = DEFAULT_CALCULATION_NAME,
        logs: TaxReportLogs | None = None,
    ) -> TaxCalculation:
        """Resolve PLN amounts and compute every year that has transactions."""
        batches = tuple(batches)
        logs = logs if logs is not None else TaxReportLogs()
        transactions = sorted(
            (tx for batch in batches for tx in batch.transactions),
            key=lambda tx: tx.date,
        )
        logged: set[tuple[str, object]] = set()
        resolved = [self._resolve(tx, logs, logged) for tx in transactions]
        years = []
        for year, year_transactions in groupby(resolved, key=lambda tx: tx.date.year):
            tax_year, carry_forward = calculate_year(year, list(year_transactions), carry_forward)
            years.append(tax_year)
        now = datetime.now()
        return TaxCalculation(
            id=new_calculation_id(),
            name=name,
            created_at=now,
            updated_at=now,
            years=tuple(years),
            batches=batches,
        )

    def _resolve(
        self,
        tx: Transaction,
        logs: TaxReportLogs,
        logged: set[tuple[str, object]],
    ) -> Transaction:
        """Attach PLN amount, rate and fee; already resolved transactions are kept."""
        if tx.amount_pln is not None:
            return tx
        if tx.fiat_currency.upper() != LOCAL_CURRENCY and tx.fiat_amount > 0:
            amount_pln, rate = self.resolver.convert(tx.fiat_amount, tx.fiat_currency, tx.date)
            self._log_approximation(tx, tx.fiat_currency, rate, logs, logged)
            tx = replace(
                tx,
                amount_pln=amount_pln,
                exchange_rate=rate.rate,
                rate_origin=rate.origin,
            )
        else:
            tx = replace(
                tx,
                amount_pln=tx.fiat_amount,
                exchange_rate=1.0,
                rate_origin=RateOrigin.LOCAL,
            )
        if tx.fee and tx.fee_currency:
            if tx.fee_currency.upper() == LOCAL_CURRENCY:
                return replace(tx, fee_pln=tx.fee)
            fee_pln, fee_rate = self.resolver.convert(tx.fee, tx.fee_currency, tx.date)
            self._log_approximation(tx, tx.fee_currency, fee_rate, logs, logged)
            return replace(tx, fee_pln=fee_pln)
        return tx

    @staticmethod
    def _log_approximation(
        tx: Transaction,
        currency: str,
        rate: ResolvedRate,
        logs: TaxReportLogs,
        logged: set[tuple[str, object]],
    ) -> None:
        """Record one log line per currency/date priced with an approximate rate."""
        key = (currency.upper(), rate.reference_date)
        if not rate.origin.is_approximate or key in logged:
            return
        logged.add(key)
        if rate.origin is RateOrigin.WIDENED:
            detail = f"{currency.upper()} rate taken from earlier day"
            changes = [
                {
                    "name": "Rate Date",
                    "before": str(reference_date(tx.date)),
                    "after": str(rate.reference_date),
                }
            ]
        else:
            detail = f"{currency.upper()} rate approximated"
            changes = [{"name": "Rate", "before": "unavailable", "after": f"{rate.rate}"}]
        logs.add(tx.date.date(), format_log("NBP", tx.date.date(), "rate", detail, changes))
