"""Tests for yearly tax computation, carry-forward threading and PLN resolution."""

from datetime import date, datetime
from unittest import TestCase

from conftest import FakeRateSource, make_batch, make_tx

from crypto_pit_calculator.config import RateOrigin, TaxReportLogs, TransactionKind
from crypto_pit_calculator.engine import TaxEngine, calculate_year, new_calculation_id
from crypto_pit_calculator.rates import RateResolver

BUY = TransactionKind.ACQUISITION
SELL = TransactionKind.DISPOSAL


def _engine(source: FakeRateSource | None = None) -> TaxEngine:
    return TaxEngine(RateResolver(source=source or FakeRateSource()))


class TestCalculateYear(TestCase):
    """Test single-year computation on already resolved transactions."""

    def test_carry_forward_is_returned_unrounded(self) -> None:
        """Test stored figures are rounded while the threaded value is exact."""
        txs = [
            make_tx(BUY, datetime(2024, 1, 10), 10.005, amount_pln=10.005),
        ]
        tax_year, carry_forward = calculate_year(2024, txs, 0.0)
        self.assertEqual(tax_year.carry_forward, 10.01)
        self.assertEqual(carry_forward, 10.005)

    def test_income_floored_at_zero(self) -> None:
        """Test cost exceeding revenue never produces negative income or tax."""
        txs = [
            make_tx(BUY, datetime(2024, 1, 10), 500.0, amount_pln=500.0),
            make_tx(SELL, datetime(2024, 2, 10), 200.0, amount_pln=200.0),
        ]
        tax_year, carry_forward = calculate_year(2024, txs, 0.0)
        self.assertEqual(tax_year.income, 0.0)
        self.assertEqual(tax_year.tax, 0.0)
        self.assertEqual(carry_forward, 300.0)

    def test_sell_fee_adds_to_cost_but_withdrawal_fee_does_not(self) -> None:
        """Test fee deductibility follows its note."""
        txs = [
            make_tx(
                TransactionKind.FEE,
                datetime(2024, 1, 10),
                7.0,
                amount_pln=7.0,
                note="Sell fee",
            ),
            make_tx(
                TransactionKind.FEE,
                datetime(2024, 1, 11),
                3.0,
                amount_pln=3.0,
                note="Withdrawal fee",
            ),
        ]
        tax_year, _ = calculate_year(2024, txs, 0.0)
        self.assertEqual(tax_year.current_year_cost, 7.0)
        self.assertEqual(len(tax_year.acquisitions), 1)

    def test_acquisition_fee_in_pln_is_part_of_cost(self) -> None:
        """Test converted fee on a purchase is added to its amount."""
        txs = [make_tx(BUY, datetime(2024, 1, 10), 100.0, amount_pln=100.0, fee_pln=2.5)]
        tax_year, _ = calculate_year(2024, txs, 0.0)
        self.assertEqual(tax_year.current_year_cost, 102.5)


class TestTaxEngine(TestCase):
    """Test multi-year calculations over parsed batches."""

    def test_single_year_gain(self) -> None:
        """Test buy at 100,000 and sell at 150,000 gives 9,500 tax."""
        batch = make_batch(
            make_tx(BUY, datetime(2024, 2, 1), 100_000.0),
            make_tx(SELL, datetime(2024, 9, 1), 150_000.0),
        )
        calculation = _engine().calculate([batch])
        year = calculation.year(2024)
        assert year is not None
        self.assertEqual(year.revenue, 150_000.0)
        self.assertEqual(year.current_year_cost, 100_000.0)
        self.assertEqual(year.income, 50_000.0)
        self.assertEqual(year.tax, 9_500.0)
        self.assertEqual(year.carry_forward, 0.0)

    def test_unused_cost_moves_to_next_year(self) -> None:
        """Test cost without revenue is carried forward and consumed next year."""
        batch = make_batch(
            make_tx(BUY, datetime(2023, 5, 1), 100_000.0),
            make_tx(SELL, datetime(2024, 5, 1), 80_000.0),
        )
        calculation = _engine().calculate([batch])
        first, second = calculation.years
        self.assertEqual((first.revenue, first.income, first.tax), (0.0, 0.0, 0.0))
        self.assertEqual(first.carry_forward, 100_000.0)
        self.assertEqual(second.previous_years_cost, 100_000.0)
        self.assertEqual(second.total_cost, 100_000.0)
        self.assertEqual(second.income, 0.0)
        self.assertEqual(second.carry_forward, 20_000.0)

    def test_totals_sum_every_yearly_figure(self) -> None:
        """Test grand totals add up each field over the years."""
        batch = make_batch(
            make_tx(BUY, datetime(2023, 5, 1), 100_000.0),
            make_tx(SELL, datetime(2024, 5, 1), 80_000.0),
        )
        calculation = _engine().calculate([batch], carry_forward=500.0)
        self.assertEqual(calculation.total_revenue, 80_000.0)
        self.assertEqual(calculation.total_cost, 100_000.0)
        self.assertEqual(calculation.total_previous_years_cost, 101_000.0)
        self.assertEqual(calculation.total_total_cost, 201_000.0)
        self.assertEqual(calculation.total_income, 0.0)
        self.assertEqual(calculation.total_tax, 0.0)
        self.assertEqual(calculation.total_carry_forward, 121_000.0)

    def test_crypto_exchange_is_listed_but_tax_neutral(self) -> None:
        """Test swap appears in the year's transactions with no figures."""
        swap = make_tx(TransactionKind.CRYPTO_EXCHANGE, datetime(2024, 4, 1), 5_000.0)
        calculation = _engine().calculate([make_batch(swap)])
        year = calculation.years[0]
        self.assertEqual([tx.id for tx in year.transactions], [swap.id])
        self.assertEqual(
            (year.revenue, year.current_year_cost, year.income, year.tax),
            (0.0, 0.0, 0.0, 0.0),
        )

    def test_initial_carry_forward_reduces_first_year_income(self) -> None:
        """Test carried-in cost from before the data counts in the first year."""
        batch = make_batch(make_tx(SELL, datetime(2024, 9, 1), 1_000.0))
        year = _engine().calculate([batch], carry_forward=400.0).years[0]
        self.assertEqual(year.previous_years_cost, 400.0)
        self.assertEqual(year.income, 600.0)
        self.assertEqual(year.tax, 114.0)

    def test_years_without_transactions_are_skipped(self) -> None:
        """Test carry-forward passes through a gap year unchanged."""
        batch = make_batch(
            make_tx(BUY, datetime(2021, 5, 1), 300.0),
            make_tx(SELL, datetime(2023, 5, 1), 1_000.0),
        )
        calculation = _engine().calculate([batch])
        self.assertEqual([year.year for year in calculation.years], [2021, 2023])
        self.assertEqual(calculation.years[1].previous_years_cost, 300.0)
        self.assertEqual(calculation.years[1].income, 700.0)

    def test_carry_forward_is_conserved_across_years(self) -> None:
        """Test every cost is either consumed by revenue or carried to the end."""
        batch = make_batch(
            make_tx(BUY, datetime(2022, 1, 1), 1_000.0),
            make_tx(SELL, datetime(2022, 6, 1), 400.0),
            make_tx(BUY, datetime(2023, 1, 1), 200.0),
            make_tx(SELL, datetime(2023, 6, 1), 300.0),
            make_tx(SELL, datetime(2024, 6, 1), 2_000.0),
        )
        years = _engine().calculate([batch]).years
        self.assertEqual([y.carry_forward for y in years], [600.0, 500.0, 0.0])
        self.assertEqual([y.income for y in years], [0.0, 0.0, 1_500.0])
        for year in years:
            self.assertGreaterEqual(year.income, 0.0)
            self.assertGreaterEqual(year.carry_forward, 0.0)

    def test_transactions_are_sorted_across_batches(self) -> None:
        """Test merged transactions are ordered by date within each year."""
        late = make_tx(SELL, datetime(2024, 9, 1), 10.0, id="late")
        early = make_tx(BUY, datetime(2024, 1, 1), 5.0, id="early")
        calculation = _engine().calculate([make_batch(late), make_batch(early, file_name="b.csv")])
        self.assertEqual([tx.id for tx in calculation.years[0].transactions], ["early", "late"])
        self.assertEqual(len(calculation.batches), 2)

    def test_same_input_gives_same_figures(self) -> None:
        """Test repeated calculation over identical input is deterministic."""
        batch = make_batch(
            make_tx(BUY, datetime(2024, 3, 5), 100.0, "USD"),
            make_tx(SELL, datetime(2024, 6, 5), 200.0, "USD"),
        )
        source = FakeRateSource({"USD": {date(2024, 3, 4): 4.0, date(2024, 6, 4): 3.9}})
        first = _engine(source).calculate([batch])
        second = _engine(source).calculate([batch])
        self.assertEqual(first.years, second.years)

    def test_foreign_amounts_and_fees_are_converted(self) -> None:
        """Test USD amount and fee use the previous business day's rate."""
        buy = make_tx(BUY, datetime(2024, 3, 5), 250.0, "USD", fee=2.0, fee_currency="USD")
        source = FakeRateSource({"USD": {date(2024, 3, 4): 4.0}})
        year = _engine(source).calculate([make_batch(buy)]).years[0]
        tx = year.transactions[0]
        self.assertEqual(tx.amount_pln, 1_000.0)
        self.assertEqual(tx.fee_pln, 8.0)
        self.assertEqual(tx.exchange_rate, 4.0)
        self.assertEqual(tx.rate_origin, RateOrigin.EXACT)
        self.assertEqual(year.current_year_cost, 1_008.0)
        self.assertEqual(len(source.calls), 1)

    def test_pln_transactions_never_query_rates(self) -> None:
        """Test local-currency amounts are used as is."""
        source = FakeRateSource()
        batch = make_batch(make_tx(BUY, datetime(2024, 3, 5), 100.0, fee=1.0, fee_currency="PLN"))
        tx = _engine(source).calculate([batch]).years[0].transactions[0]
        self.assertEqual((tx.amount_pln, tx.fee_pln, tx.exchange_rate), (100.0, 1.0, 1.0))
        self.assertEqual(tx.rate_origin, RateOrigin.LOCAL)
        self.assertEqual(source.calls, [])

    def test_already_resolved_transactions_are_kept(self) -> None:
        """Test replayed transactions are not converted again."""
        source = FakeRateSource()
        tx = make_tx(SELL, datetime(2024, 3, 5), 100.0, "USD", amount_pln=390.0, exchange_rate=3.9)
        year = _engine(source).calculate([make_batch(tx)]).years[0]
        self.assertEqual(year.revenue, 390.0)
        self.assertEqual(source.calls, [])

    def test_approximate_rates_are_logged_once_per_currency_and_date(self) -> None:
        """Test widened-window pricing is reported in the calculation logs."""
        source = FakeRateSource({"USD": {date(2023, 12, 29): 3.9432}})
        batch = make_batch(
            make_tx(SELL, datetime(2024, 1, 2, 10), 100.0, "USD", id="a"),
            make_tx(SELL, datetime(2024, 1, 2, 15), 50.0, "USD", id="b"),
        )
        logs = TaxReportLogs()
        calculation = _engine(source).calculate([batch], logs=logs)
        self.assertEqual(len(logs), 1)
        self.assertIn("USD rate taken from earlier day", logs[0])
        self.assertIn("2023-12-29", logs[0])
        self.assertEqual(len(calculation.approximated_transactions), 2)

    def test_fallback_rates_are_logged(self) -> None:
        """Test fallback pricing is reported with the approximate rate."""
        logs = TaxReportLogs()
        batch = make_batch(make_tx(SELL, datetime(2024, 3, 5), 100.0, "EUR"))
        calculation = _engine(FakeRateSource(error=OSError("offline"))).calculate(
            [batch], logs=logs
        )
        self.assertEqual(calculation.years[0].revenue, 430.0)
        self.assertEqual(len(logs), 1)
        self.assertIn("EUR rate approximated", logs[0])

    def test_empty_input_gives_no_years(self) -> None:
        """Test calculation over no transactions has zero totals."""
        calculation = _engine().calculate([], name="Empty")
        self.assertEqual(calculation.years, ())
        self.assertEqual(calculation.total_tax, 0.0)
        self.assertEqual(calculation.name, "Empty")

    def test_new_calculation_id_is_nine_digits(self) -> None:
        """Test generated ids are zero-padded nine-digit strings."""
        calculation_id = new_calculation_id()
        self.assertEqual(len(calculation_id), 9)
        self.assertTrue(calculation_id.isdigit())
