"""Core tax data models and constants shared by ingestion, rates and the engine."""

from bisect import bisect_right
from dataclasses import asdict, dataclass, field, fields
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, TypedDict

import pandas as pd

TAX_RATE = 0.19
LOCAL_CURRENCY = "PLN"
MAX_FILE_SIZE_MB = 50
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
NBP_API_BASE = "https://api.nbp.pl/api/exchangerates"
NBP_TIMEOUT_ENV_VAR = "CRYPTO_PIT_CALCULATOR_NBP_TIMEOUT"
NBP_DEFAULT_TIMEOUT = 10.0
TWO_PLACES = Decimal("0.01")


def round_money(value: float) -> float:
    """Round monetary value half-up to two decimal places."""
    return float(Decimal(str(value)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP))


class TransactionKind(str, Enum):
    """Semantic kind of a canonical transaction."""

    ACQUISITION = "acquisition"
    DISPOSAL = "disposal"
    CRYPTO_EXCHANGE = "crypto_exchange"
    FEE = "fee"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    PAYMENT = "payment"
    STAKING_REWARD = "staking_reward"
    AIRDROP = "airdrop"
    UNKNOWN = "unknown"

    @property
    def label(self) -> str:
        """Return human-readable kind label."""
        return self.value.replace("_", " ").title()


class FileKind(str, Enum):
    """Declared kind of an input file."""

    CSV = "csv"
    SHEET = "xlsx"
    UNSUPPORTED = "unsupported"


class RateOrigin(str, Enum):
    """Provenance of a resolved exchange rate."""

    LOCAL = "local"
    EXACT = "exact"
    WIDENED = "widened"
    FALLBACK = "fallback"

    @property
    def is_approximate(self) -> bool:
        """Return whether rate did not come from the reference date itself."""
        return self in (RateOrigin.WIDENED, RateOrigin.FALLBACK)


@dataclass(frozen=True, slots=True)
class Transaction:
    """Canonical exchange-agnostic transaction record."""

    id: str
    date: datetime
    kind: TransactionKind
    symbol: str
    quantity: float = 0.0
    fiat_amount: float = 0.0
    fiat_currency: str = LOCAL_CURRENCY
    fee: float | None = None
    fee_currency: str | None = None
    exchange: str | None = None
    note: str | None = None
    amount_pln: float | None = None
    exchange_rate: float | None = None
    fee_pln: float | None = None
    rate_origin: RateOrigin | None = None

    def __post_init__(self) -> None:
        """Reject signed magnitudes; direction is carried by kind."""
        for name in ("quantity", "fiat_amount", "fee", "amount_pln", "fee_pln"):
            value = getattr(self, name)
            if value is not None and value < 0.0:
                raise ValueError(f"Transaction {name} must be non-negative, got {value}.")

    def to_entry_data(self) -> dict[str, Any]:
        """Serialize transaction to plain types for persistence."""
        data = asdict(self)
        data["date"] = self.date.isoformat()
        data["kind"] = self.kind.value
        data["rate_origin"] = None if self.rate_origin is None else self.rate_origin.value
        return data

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "Transaction":
        """Deserialize transaction from persisted payload."""
        kwargs = {f.name: data.get(f.name) for f in fields(cls) if f.name in data}
        kwargs["date"] = datetime.fromisoformat(data["date"])
        kwargs["kind"] = TransactionKind(data["kind"])
        if data.get("rate_origin") is not None:
            kwargs["rate_origin"] = RateOrigin(data["rate_origin"])
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class ParsedBatch:
    """Transactions and warnings produced from one input file."""

    file_name: str
    file_kind: FileKind
    transactions: tuple[Transaction, ...] = ()
    warnings: tuple[str, ...] = ()
    parsed_at: datetime = field(default_factory=datetime.now)

    def to_entry_data(self) -> dict[str, Any]:
        """Serialize batch to plain types for persistence."""
        return {
            "file_name": self.file_name,
            "file_kind": self.file_kind.value,
            "transactions": [tx.to_entry_data() for tx in self.transactions],
            "warnings": list(self.warnings),
            "parsed_at": self.parsed_at.isoformat(),
        }

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "ParsedBatch":
        """Deserialize batch from persisted payload."""
        return cls(
            file_name=data["file_name"],
            file_kind=FileKind(data["file_kind"]),
            transactions=tuple(map(Transaction.from_entry_data, data["transactions"])),
            warnings=tuple(data["warnings"]),
            parsed_at=datetime.fromisoformat(data["parsed_at"]),
        )


@dataclass(frozen=True, slots=True)
class TaxYear:
    """Crypto tax figures for one calendar year."""

    year: int
    revenue: float = 0.0
    current_year_cost: float = 0.0
    previous_years_cost: float = 0.0
    total_cost: float = 0.0
    income: float = 0.0
    tax: float = 0.0
    carry_forward: float = 0.0
    disposals: tuple[Transaction, ...] = ()
    acquisitions: tuple[Transaction, ...] = ()
    transactions: tuple[Transaction, ...] = ()

    def to_dict(self) -> dict[str, float]:
        """Serialize figures to report-row labels and numeric values."""
        return {
            "Crypto Revenue": self.revenue,
            "Crypto Cost": self.current_year_cost,
            "Crypto Cost Excess from Previous Years": self.previous_years_cost,
            "Crypto Total Cost": self.total_cost,
            "Crypto Income": self.income,
            "Crypto Tax": self.tax,
            "Crypto Cost Excess": self.carry_forward,
        }

    @staticmethod
    def get_name_to_pit_label_mapping() -> dict[str, str]:
        """Map output row names to PIT form coordinates."""
        return {
            "Crypto Revenue": "PIT-38/E34",
            "Crypto Cost": "PIT-38/E35",
            "Crypto Cost Excess from Previous Years": "PIT-38/E36",
            "Crypto Total Cost": "",
            "Crypto Income": "",
            "Crypto Tax": "",
            "Crypto Cost Excess": "PIT-38/E36 - Next Year",
        }

    def to_entry_data(self) -> dict[str, Any]:
        """Serialize tax year to plain types for persistence."""
        data: dict[str, Any] = {"year": self.year}
        for name in (
            "revenue",
            "current_year_cost",
            "previous_years_cost",
            "total_cost",
            "income",
            "tax",
            "carry_forward",
        ):
            data[name] = getattr(self, name)
        for name in ("disposals", "acquisitions", "transactions"):
            data[name] = [tx.to_entry_data() for tx in getattr(self, name)]
        return data

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "TaxYear":
        """Deserialize tax year from persisted payload."""
        kwargs = dict(data)
        for name in ("disposals", "acquisitions", "transactions"):
            kwargs[name] = tuple(map(Transaction.from_entry_data, data.get(name, [])))
        return cls(**kwargs)


@dataclass(frozen=True, slots=True)
class TaxCalculation:
    """Multi-year crypto tax calculation with source batches and totals."""

    id: str
    name: str
    created_at: datetime
    updated_at: datetime
    years: tuple[TaxYear, ...] = ()
    batches: tuple[ParsedBatch, ...] = ()

    @property
    def total_revenue(self) -> float:
        """Return revenue summed across years."""
        return round_money(sum(year.revenue for year in self.years))

    @property
    def total_cost(self) -> float:
        """Return current-year costs summed across years."""
        return round_money(sum(year.current_year_cost for year in self.years))

    @property
    def total_previous_years_cost(self) -> float:
        """Return carried-in costs summed across years."""
        return round_money(sum(year.previous_years_cost for year in self.years))

    @property
    def total_total_cost(self) -> float:
        """Return current plus carried-in costs summed across years."""
        return round_money(sum(year.total_cost for year in self.years))

    @property
    def total_income(self) -> float:
        """Return income summed across years."""
        return round_money(sum(year.income for year in self.years))

    @property
    def total_tax(self) -> float:
        """Return tax summed across years."""
        return round_money(sum(year.tax for year in self.years))

    @property
    def total_carry_forward(self) -> float:
        return round_money(sum(year.carry_forward for year in self.years))

    @property
    def approximated_transactions(self) -> list[Transaction]:
        """Return transactions priced with a widened-window or fallback rate."""
        return [
            tx
            for year in self.years
            for tx in year.transactions
            if tx.rate_origin is not None and tx.rate_origin.is_approximate
        ]

    def to_dataframe(self) -> pd.DataFrame:
        """Convert yearly figures to a table with PIT labels and one column per year."""
        pit_label_df = pd.Series(
            TaxYear.get_name_to_pit_label_mapping(),
            name="PIT",
        ).to_frame()
        if not self.years:
            return pit_label_df
        df = pd.DataFrame.from_dict(
            {year.year: year.to_dict() for year in self.years},
            orient="index",
        ).T.sort_index(axis=1)
        return pit_label_df.join(df)

    def year(self, year: int) -> TaxYear | None:
        """Return figures for one year, if that year had any transactions."""
        return next((x for x in self.years if x.year == year), None)

    def to_entry_data(self) -> dict[str, Any]:
        """Serialize calculation to plain types for persistence."""
        return {
            "id": self.id,
            "name": self.name,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "years": [year.to_entry_data() for year in self.years],
            "batches": [batch.to_entry_data() for batch in self.batches],
        }

    @classmethod
    def from_entry_data(cls, data: dict[str, Any]) -> "TaxCalculation":
        """Deserialize calculation from persisted payload."""
        return cls(
            id=data["id"],
            name=data["name"],
            created_at=datetime.fromisoformat(data["created_at"]),
            updated_at=datetime.fromisoformat(data["updated_at"]),
            years=tuple(map(TaxYear.from_entry_data, data["years"])),
            batches=tuple(map(ParsedBatch.from_entry_data, data["batches"])),
        )


class LogChange(TypedDict):
    """One before/after change rendered under a report log header."""

    name: str
    before: str
    after: str


class TaxReportLogs(list[str]):
    """Report log sink keeping formatted lines in ascending date order."""

    def __init__(self) -> None:
        super().__init__()
        self._dates: list[date] = []

    def add(self, log_date: date, message: str) -> None:
        """Insert message after all messages logged for the same or earlier dates."""
        index = bisect_right(self._dates, log_date)
        self._dates.insert(index, log_date)
        self.insert(index, message)

    def clear(self) -> None:
        """Remove all messages and their dates."""
        super().clear()
        self._dates.clear()


def format_log(
    source: str,
    log_date: date,
    action: str,
    detail: str,
    changes: list[LogChange],
) -> str:
    """Format one colored report log entry with its change lines."""
    header = (
        f"[\x1b[36m{source}\x1b[0m] "
        f"[\x1b[95m{log_date.strftime('%m/%d/%Y')}\x1b[0m] "
        f"[\x1b[33m{action} {detail}\x1b[0m]"
    )
    changes_text = "\n".join(
        (
            f" \x1b[36m•\x1b[0m {change['name']}: "
            f"\x1b[31m{change['before']}\x1b[0m -> "
            f"\x1b[32m{change['after']}\x1b[0m"
        )
        for change in changes
    )
    return f"{header}\n{changes_text}"
