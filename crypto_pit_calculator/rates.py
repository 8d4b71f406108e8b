"""NBP exchange-rate resolution with an injectable in-memory cache."""

import http.client
import json
import logging
import os
import threading
import urllib.request
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Protocol
from urllib.error import HTTPError

import pandas as pd

from crypto_pit_calculator.config import (
    LOCAL_CURRENCY,
    NBP_API_BASE,
    NBP_DEFAULT_TIMEOUT,
    NBP_TIMEOUT_ENV_VAR,
    RateOrigin,
)

logger = logging.getLogger(__name__)

WIDEN_DAYS = 7
DEFAULT_FALLBACK_RATE = 4.0
FALLBACK_RATES = {
    "USD": 4.0,
    "EUR": 4.3,
    "GBP": 5.1,
    "CHF": 4.5,
    "AUD": 2.6,
    "CAD": 3.0,
    "JPY": 0.027,
}


class RateSourceError(OSError):
    """Raised when the rate source responds with an error or malformed payload."""


@dataclass(frozen=True, slots=True)
class ResolvedRate:
    """Exchange rate with the date it was taken for and its provenance."""

    rate: float
    reference_date: date
    origin: RateOrigin


class RateSource(Protocol):
    """Reference-rate source returning (date, mid rate) entries."""

    def fetch_rates(self, currency: str, start: date, end: date) -> list[tuple[date, float]]:
        """Return published rates for currency within inclusive date range."""


class NbpRateSource:
    """NBP table A mid-rate source backed by the public JSON API."""

    def __init__(self, base_url: str = NBP_API_BASE, timeout: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout if timeout is not None else self._timeout_from_env()

    @staticmethod
    def _timeout_from_env() -> float:
        """Return HTTP timeout from environment override or default."""
        if raw := os.environ.get(NBP_TIMEOUT_ENV_VAR):
            return float(raw)
        return NBP_DEFAULT_TIMEOUT

    def build_url(self, currency: str, start: date, end: date) -> str:
        """Build single-date or date-range table A URL for currency."""
        code = currency.lower()
        if start == end:
            return f"{self.base_url}/rates/a/{code}/{start.isoformat()}/?format=json"
        return (
            f"{self.base_url}/rates/a/{code}/"
            f"{start.isoformat()}/{end.isoformat()}/?format=json"
        )

    def fetch_rates(self, currency: str, start: date, end: date) -> list[tuple[date, float]]:
        """Fetch table A mid rates, treating 404 as no published data."""
        url = self.build_url(currency, start, end)
        try:
            with urllib.request.urlopen(url, timeout=self.timeout) as resp:
                payload = json.loads(resp.read().decode("utf-8"))
        except HTTPError as error:
            if error.code == 404:
                return []
            raise RateSourceError(f"NBP request failed with HTTP {error.code}: {url}") from error
        if not isinstance(payload, dict) or not isinstance(payload.get("rates"), list):
            raise RateSourceError(f"Malformed NBP response for {currency}: {url}")
        if not payload["rates"]:
            return []
        df = pd.DataFrame(payload["rates"])
        if not {"effectiveDate", "mid"} <= set(df.columns):
            raise RateSourceError(f"Malformed NBP response for {currency}: {url}")
        df["effectiveDate"] = pd.to_datetime(df["effectiveDate"]).dt.date
        df = df.sort_values("effectiveDate")
        return [(row.effectiveDate, float(row.mid)) for row in df.itertuples(index=False)]


class RateCache:
    """Process-wide cache of resolved rates keyed by currency and reference date."""

    _dir_env_var_name = "CRYPTO_PIT_CALCULATOR_CACHE_DIR"
    _file_name = "nbp-rates.csv"

    def __init__(self) -> None:
        self._rates: dict[tuple[str, date], ResolvedRate] = {}
        self._lock = threading.Lock()

    @classmethod
    def cache_dir(cls) -> Path:
        """Return base cache directory path for the application."""
        if path := os.environ.get(cls._dir_env_var_name):
            return Path(path).expanduser()
        return Path.home() / ".cache" / "crypto-pit-calculator"

    def __len__(self) -> int:
        return len(self._rates)

    def __contains__(self, key: object) -> bool:
        return key in self._rates

    def get(self, currency: str, reference_date: date) -> ResolvedRate | None:
        """Return cached rate for key, if any."""
        return self._rates.get((currency, reference_date))

    def put(self, currency: str, reference_date: date, resolved: ResolvedRate) -> ResolvedRate:
        """Store rate unless key is already cached and return the stored rate."""
        with self._lock:
            return self._rates.setdefault((currency, reference_date), resolved)

    def clear(self) -> None:
        """Drop all cached rates."""
        with self._lock:
            self._rates.clear()

    def save(self, path: Path | None = None) -> Path:
        """Persist non-fallback rates as CSV snapshot and return its path."""
        path = path or self.cache_dir() / self._file_name
        rows = [
            {
                "currency": currency,
                "reference_date": reference_date.isoformat(),
                "rate": resolved.rate,
                "rate_date": resolved.reference_date.isoformat(),
                "origin": resolved.origin.value,
            }
            for (currency, reference_date), resolved in sorted(self._rates.items())
            if resolved.origin is not RateOrigin.FALLBACK
        ]
        df = pd.DataFrame(
            rows,
            columns=["currency", "reference_date", "rate", "rate_date", "origin"],
        )
        path.parent.mkdir(parents=True, exist_ok=True)
        df.to_csv(path, index=False)
        return path

    def load(self, path: Path | None = None) -> int:
        """Load CSV snapshot into cache and return number of loaded rates."""
        path = path or self.cache_dir() / self._file_name
        try:
            df = pd.read_csv(
                path,
                dtype={"currency": str, "origin": str},
                float_precision="round_trip",
            )
            entries = [
                (
                    row.currency,
                    date.fromisoformat(row.reference_date),
                    ResolvedRate(
                        rate=float(row.rate),
                        reference_date=date.fromisoformat(row.rate_date),
                        origin=RateOrigin(row.origin),
                    ),
                )
                for row in df.itertuples(index=False)
            ]
        except (FileNotFoundError, OSError, ValueError, AttributeError, pd.errors.ParserError):
            return 0
        for currency, reference_date, resolved in entries:
            self.put(currency, reference_date, resolved)
        return len(entries)


def reference_date(when: date | datetime) -> date:
    """Return the last weekday strictly before the given date."""
    day = when.date() if isinstance(when, datetime) else when
    day -= timedelta(days=1)
    while day.weekday() >= 5:
        day -= timedelta(days=1)
    return day


_RATE_SOURCE_EXCEPTIONS = (
    OSError,
    ValueError,
    KeyError,
    TypeError,
    http.client.HTTPException,
)


class RateResolver:
    """Resolve PLN rates with exact-date, widened-window and fallback steps."""

    def __init__(self, source: RateSource | None = None, cache: RateCache | None = None) -> None:
        self.source = source if source is not None else NbpRateSource()
        self.cache = cache if cache is not None else RateCache()

    def resolve(self, currency: str, when: date | datetime) -> ResolvedRate:
        """Return PLN per one unit of currency for a transaction date; never raises."""
        code = currency.strip().upper()
        ref = reference_date(when)
        if code == LOCAL_CURRENCY:
            return ResolvedRate(rate=1.0, reference_date=ref, origin=RateOrigin.LOCAL)
        if (cached := self.cache.get(code, ref)) is not None:
            logger.debug("Rate cache hit for %s on %s.", code, ref)
            return cached
        return self.cache.put(code, ref, self._query(code, ref))

    def get_exchange_rate(self, currency: str, when: date | datetime) -> float:
        """Return PLN exchange rate for currency and transaction date."""
        return self.resolve(currency, when).rate

    def convert(
        self,
        amount: float,
        currency: str,
        when: date | datetime,
    ) -> tuple[float, ResolvedRate]:
        """Convert amount to PLN and return it with the rate used."""
        resolved = self.resolve(currency, when)
        return amount * resolved.rate, resolved

    def _query(self, code: str, ref: date) -> ResolvedRate:
        """Query source for reference date, widening the window before falling back."""
        if rates := self._fetch(code, ref, ref):
            _, rate = rates[-1]
            return ResolvedRate(rate=rate, reference_date=ref, origin=RateOrigin.EXACT)
        if rates := self._fetch(code, ref - timedelta(days=WIDEN_DAYS), ref):
            rate_date, rate = max((x for x in rates if x[0] <= ref), default=rates[-1])
            return ResolvedRate(rate=rate, reference_date=rate_date, origin=RateOrigin.WIDENED)
        rate = FALLBACK_RATES.get(code, DEFAULT_FALLBACK_RATE)
        logger.warning("Using approximate fallback rate %s for %s on %s.", rate, code, ref)
        return ResolvedRate(rate=rate, reference_date=ref, origin=RateOrigin.FALLBACK)

    def _fetch(self, code: str, start: date, end: date) -> list[tuple[date, float]]:
        """Fetch rates from source, returning empty list on any source failure."""
        try:
            return self.source.fetch_rates(code, start, end)
        except _RATE_SOURCE_EXCEPTIONS as error:
            logger.warning("Rate source failed for %s %s..%s: %s", code, start, end, error)
            return []
