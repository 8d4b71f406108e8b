"""Calculation history persistence and carry-forward cost storage."""

import os
from base64 import b64decode, b64encode
from pathlib import Path
from typing import Any

import yaml

from crypto_pit_calculator.config import TaxCalculation


class CalculationHistory:
    """Singleton class for calculation persistence and history directory management."""

    _dir_env_var_name = "CRYPTO_PIT_CALCULATOR_HISTORY_DIR"
    _carry_forward_name = "carry-forward"
    _dir_mode = 0o700
    _file_mode = 0o600

    @classmethod
    def history_dir(cls) -> Path:
        """Return path to persisted calculation-history directory."""
        if path := os.environ.get(cls._dir_env_var_name):
            return Path(path).expanduser()
        return Path.home() / ".crypto-pit-calculator"

    @classmethod
    def save(cls, calculation: TaxCalculation) -> str:
        """Persist full calculation under its id, replacing an earlier version."""
        cls._write_entry(calculation.id, calculation.to_entry_data())
        return calculation.id

    @classmethod
    def load(cls, entry_id: str) -> TaxCalculation:
        """Read one persisted calculation by id."""
        return TaxCalculation.from_entry_data(cls._read_entry(entry_id))

    @classmethod
    def delete(cls, entry_id: str) -> None:
        """Delete persisted calculation by id."""
        (cls.history_dir() / f"{entry_id}.yaml").unlink()

    @classmethod
    def entry_ids(cls) -> list[str]:
        """Return persisted calculation ids, oldest first."""
        history_dir = cls.history_dir()
        if not history_dir.is_dir():
            return []
        paths = sorted(
            (
                path
                for path in history_dir.glob("*.yaml")
                if path.stem != cls._carry_forward_name
            ),
            key=lambda x: x.stat().st_mtime_ns,
        )
        return [path.stem for path in paths]

    @classmethod
    def ls(cls) -> list[TaxCalculation]:
        """Read all persisted calculations, oldest first."""
        return [cls.load(entry_id) for entry_id in cls.entry_ids()]

    @classmethod
    def summaries(cls) -> list[dict[str, Any]]:
        """Return lightweight per-year summaries of persisted calculations."""
        return [
            {
                "id": calculation.id,
                "name": calculation.name,
                "created_at": calculation.created_at,
                "summary": [
                    {
                        "year": year.year,
                        "revenue": year.revenue,
                        "income": year.income,
                        "tax": year.tax,
                    }
                    for year in calculation.years
                ],
            }
            for calculation in cls.ls()
        ]

    @classmethod
    def carry_forward_costs(cls) -> dict[int, float]:
        """Return stored carry-forward costs keyed by the year they were left over."""
        if not (cls.history_dir() / f"{cls._carry_forward_name}.yaml").is_file():
            return {}
        entry = cls._read_entry(cls._carry_forward_name) or {}
        return {int(year): float(amount) for year, amount in entry.items()}

    @classmethod
    def save_carry_forward(cls, year: int, amount: float) -> None:
        """Store cost left over after given year."""
        costs = cls.carry_forward_costs()
        costs[int(year)] = float(amount)
        cls._write_entry(cls._carry_forward_name, dict(sorted(costs.items())))

    @classmethod
    def save_carry_forwards(cls, calculation: TaxCalculation) -> None:
        """Store every year's carry-forward from a calculation."""
        for year in calculation.years:
            cls.save_carry_forward(year.year, year.carry_forward)

    @classmethod
    def latest_carry_forward(cls, for_year: int) -> float:
        """Return cost carried into given year from the year before it."""
        return cls.carry_forward_costs().get(for_year - 1, 0.0)

    @classmethod
    def _read_entry(cls, entry_id: str) -> Any:
        """Read and decode one history entry payload."""
        entry_path = cls.history_dir() / f"{entry_id}.yaml"
        encoded = entry_path.read_text(encoding="utf-8").strip()
        decoded = b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
        return yaml.safe_load(decoded)

    @classmethod
    def _write_entry(cls, entry_id: str, payload: Any) -> Path:
        """Encode and write one history entry with private file permissions."""
        entry_path = cls.history_dir() / f"{entry_id}.yaml"
        history_path = entry_path.parent
        history_path.mkdir(parents=True, exist_ok=True, mode=cls._dir_mode)
        history_path.chmod(cls._dir_mode)
        fd = os.open(entry_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, cls._file_mode)
        with os.fdopen(fd, "w", encoding="utf-8") as stream:
            decoded = yaml.safe_dump(payload, sort_keys=False, allow_unicode=True)
            encoded = b64encode(decoded.encode("utf-8")).decode("ascii")
            stream.write(encoded)
        entry_path.chmod(cls._file_mode)
        return entry_path
