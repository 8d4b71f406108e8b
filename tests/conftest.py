"""Shared pytest fixtures for directory isolation, network blocking and rate stubs."""

import socket
import urllib.request
from datetime import date, datetime
from pathlib import Path

import pytest

from crypto_pit_calculator.config import (
    FileKind,
    ParsedBatch,
    Transaction,
    TransactionKind,
)


@pytest.fixture(autouse=True)
def isolate_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Force rate-cache and history writes into per-test temporary directories."""
    monkeypatch.setenv("CRYPTO_PIT_CALCULATOR_CACHE_DIR", str(tmp_path / "cache"))
    monkeypatch.setenv("CRYPTO_PIT_CALCULATOR_HISTORY_DIR", str(tmp_path / "history"))


@pytest.fixture(autouse=True)
def block_network(monkeypatch: pytest.MonkeyPatch) -> None:
    """Block network access in all tests."""

    def blocked(*_args: object, **_kwargs: object) -> None:
        """Raise explicit error when any test attempts network access."""
        raise AssertionError("Network access is blocked in tests.")

    monkeypatch.setattr(urllib.request, "urlopen", blocked)
    monkeypatch.setattr(socket, "create_connection", blocked)
    monkeypatch.setattr(socket.socket, "connect", blocked)
    monkeypatch.setattr(socket.socket, "connect_ex", blocked)


class FakeRateSource:
    """In-memory rate source recording every queried range."""

    def __init__(
        self,
        rates: dict[str, dict[date, float]] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.rates = rates or {}
        self.error = error
        self.calls: list[tuple[str, date, date]] = []

    def fetch_rates(self, currency: str, start: date, end: date) -> list[tuple[date, float]]:
        """Return stored rates for currency within inclusive range."""
        self.calls.append((currency, start, end))
        if self.error is not None:
            raise self.error
        return sorted(
            (day, rate)
            for day, rate in self.rates.get(currency, {}).items()
            if start <= day <= end
        )


def make_tx(
    kind: TransactionKind,
    when: datetime,
    fiat_amount: float = 0.0,
    fiat_currency: str = "PLN",
    **kwargs: object,
) -> Transaction:
    """Build transaction with sensible defaults for engine tests."""
    kwargs.setdefault("id", f"tx-{kind.value}-{when.isoformat()}")
    kwargs.setdefault("symbol", "BTC")
    kwargs.setdefault("quantity", 1.0)
    return Transaction(
        date=when,
        kind=kind,
        fiat_amount=fiat_amount,
        fiat_currency=fiat_currency,
        **kwargs,
    )


def make_batch(*transactions: Transaction, file_name: str = "export.csv") -> ParsedBatch:
    """Wrap transactions into one parsed CSV batch."""
    return ParsedBatch(file_name, FileKind.CSV, tuple(transactions))
