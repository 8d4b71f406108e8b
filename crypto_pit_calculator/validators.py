"""Shared input validators used by console prompts."""

from collections.abc import Iterable
from pathlib import Path

SUPPORTED_EXTENSIONS = (".csv", ".xlsx", ".xls", ".pdf")


def validate_amount(raw: str) -> bool | str:
    """Validate non-empty, non-negative numeric amount input."""
    if not (text := raw.strip()):
        return "Amount is required."
    try:
        value = float(text.replace(",", "."))
    except ValueError:
        return "Amount must be a number."
    if value < 0.0:
        return "Amount must not be negative."
    return True


def validate_name(raw: str) -> bool | str:
    """Validate non-empty calculation name input."""
    if not raw.strip():
        return "Name is required."
    return True


def validate_file_path(raw: str, imported_paths: Iterable[Path] = ()) -> bool | str:
    """Validate non-empty, existing, supported and not yet imported file input."""
    if not (text := raw.strip()):
        return "This field is required."
    if not (path := Path(text).expanduser().resolve()).is_file():
        return "Path must be a file."
    if path.suffix.lower() not in SUPPORTED_EXTENSIONS:
        return f"Only {', '.join(SUPPORTED_EXTENSIONS)} files are supported."
    if path in set(imported_paths):
        return "File already imported."
    return True
