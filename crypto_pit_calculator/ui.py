"""UI helpers for questionary prompts and terminal rendering."""

import functools
import sys
import threading
import time
import traceback
from collections.abc import Iterable
from numbers import Real
from pathlib import Path
from typing import Any, Callable, Literal, ParamSpec, TypeVar, cast

import questionary
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.key_binding.key_bindings import merge_key_bindings
from prompt_toolkit.key_binding.key_processor import KeyPressEvent
from prompt_toolkit.shortcuts import clear as prompt_toolkit_clear
from questionary.prompts.path import GreatUXPathCompleter
from questionary.question import Question
from tabulate import tabulate

from crypto_pit_calculator.config import ParsedBatch, TaxCalculation
from crypto_pit_calculator.ingestion import validate_transactions
from crypto_pit_calculator.validators import validate_amount, validate_file_path, validate_name

ParamsT = ParamSpec("ParamsT")
ResultT = TypeVar("ResultT")
MainMenuAction = Literal["import_file", "ls", "rm", "calculate", "show", "history", "exit_app"]
HistoryAction = Literal["open", "delete"]
BackAction = Literal["__back__"]


def _ask(
    question: Question,
    disable_escape_back: bool = False,
    block_typed_input: bool = False,
) -> Any:
    """Run a Questionary prompt with built-in ESC back handling."""
    bindings = [question.application.key_bindings]
    if not disable_escape_back:
        escape_bindings = KeyBindings()

        @escape_bindings.add("escape", eager=True)
        def _(event: KeyPressEvent) -> None:
            """Exit prompt immediately and return a back sentinel."""
            event.app.exit(result="__back__")

        bindings.insert(0, escape_bindings)
    if block_typed_input:
        readonly_bindings = KeyBindings()

        def _ignore_keypress(_event: KeyPressEvent) -> None:
            return

        readonly_bindings.add("enter", eager=True)(_ignore_keypress)
        for codepoint in range(32, 127):
            readonly_bindings.add(chr(codepoint), eager=True)(_ignore_keypress)
        bindings.insert(0, readonly_bindings)
    question.application.key_bindings = merge_key_bindings(bindings)
    question.application.ttimeoutlen = 0
    question.application.timeoutlen = 0
    return question.unsafe_ask()


def clear_terminal_viewport() -> None:
    """Clear terminal viewport and scrollback, then reset cursor to top-left."""
    prompt_toolkit_clear()
    sys.stdout.write("\x1b[3J\x1b[2J\x1b[H")
    sys.stdout.flush()


def prompt_for_main_menu_action(
    has_imported_files: bool,
    has_calculation: bool,
    has_history: bool,
) -> MainMenuAction:
    """Prompt for one main-menu action and return selected command key."""
    disabled_files = None if has_imported_files else "No imported files"
    disabled_show = None if has_calculation else "No calculation in this session"
    disabled_history = None if has_history else "No saved calculations"
    question = questionary.select(
        "Crypto PIT Calculator",
        choices=[
            questionary.Choice("Import transaction file", "import_file"),
            questionary.Choice("List imported files", "ls", disabled=disabled_files),
            questionary.Choice("Remove imported files", "rm", disabled=disabled_files),
            questionary.Choice("Calculate tax", "calculate", disabled=disabled_files),
            questionary.Choice("Show calculation", "show", disabled=disabled_show),
            questionary.Choice("Calculation history", "history", disabled=disabled_history),
            questionary.Choice("Exit", "exit_app"),
        ],
        erase_when_done=True,
    )
    return cast(MainMenuAction, _ask(question, disable_escape_back=True))


def prompt_for_file_path(imported_paths: Iterable[Path]) -> Path | BackAction:
    """Prompt for exchange export path and return resolved path or '__back__'."""
    imported = set(imported_paths)

    def _validate(raw: str) -> bool | str:
        return validate_file_path(raw, imported)

    def _file_filter(raw: str) -> bool:
        path = Path(raw).expanduser().resolve()
        return path.is_dir() or (path.is_file() and _validate(str(path)) is True)

    question = questionary.text(
        "File [esc to back]:",
        validate=_validate,
        completer=GreatUXPathCompleter(file_filter=_file_filter, expanduser=True),
        erase_when_done=True,
    )
    answer = _ask(question)
    if answer == "__back__":
        return "__back__"
    return Path(str(answer).strip()).expanduser().resolve()


def prompt_for_calculation_name(default: str) -> str | BackAction:
    """Prompt for display name of the new calculation."""
    question = questionary.text(
        "Calculation name [esc to back]:",
        default=default,
        validate=validate_name,
        erase_when_done=True,
    )
    answer = _ask(question)
    return answer if answer == "__back__" else str(answer).strip()


def prompt_for_carry_forward(default: float) -> float | BackAction:
    """Prompt for unused cost carried in from years before the imported data."""
    question = questionary.text(
        "Cost Excess from Previous Years [esc to back]:",
        default=f"{default:.2f}",
        validate=validate_amount,
        erase_when_done=True,
    )
    answer = _ask(question)
    if answer == "__back__":
        return "__back__"
    return float(str(answer).strip().replace(",", "."))


def prompt_for_files_to_remove(batches: list[ParsedBatch]) -> list[int] | BackAction:
    """Prompt for imported files to remove and return their positions."""
    question = questionary.checkbox(
        "Select files to remove [esc to back]:",
        choices=[
            questionary.Choice(f"{batch.file_name} ({len(batch.transactions)} tx)", index)
            for index, batch in enumerate(batches)
        ],
        erase_when_done=True,
    )
    return cast(list[int] | BackAction, _ask(question))


def prompt_for_history_entry(summaries: list[dict[str, Any]]) -> str | BackAction:
    """Prompt for one saved calculation and return its id."""
    question = questionary.select(
        "Select calculation [esc to back]:",
        choices=[
            questionary.Choice(
                f"#{summary['id']} {summary['name']} "
                f"({summary['created_at']:%Y-%m-%d %H:%M})",
                summary["id"],
            )
            for summary in summaries
        ],
        erase_when_done=True,
    )
    return cast(str | BackAction, _ask(question))


def prompt_for_history_action() -> HistoryAction | BackAction:
    """Prompt whether to open or delete the selected calculation."""
    question = questionary.select(
        "Action [esc to back]:",
        choices=[
            questionary.Choice("Open", "open"),
            questionary.Choice("Delete", "delete"),
        ],
        erase_when_done=True,
    )
    return cast(HistoryAction | BackAction, _ask(question))


def with_prepare_animation(
    method: Callable[ParamsT, ResultT],
) -> Callable[ParamsT, ResultT]:
    """Decorator that runs method body while a spinner is shown."""

    @functools.wraps(method)
    def _wrapped(*args: ParamsT.args, **kwargs: ParamsT.kwargs) -> ResultT:
        stop_event = threading.Event()

        def _run_prepare_animation() -> None:
            spinner = "|/-\\"
            index = 0
            while not stop_event.is_set():
                dots = "." * (index % 3 + 1)
                sys.stdout.write(f"\rCalculating tax{dots.ljust(3)} {spinner[index % 4]}")
                sys.stdout.flush()
                index += 1
                time.sleep(0.12)
            sys.stdout.write("\r\x1b[2K")
            sys.stdout.flush()

        loader_thread = threading.Thread(target=_run_prepare_animation, daemon=True)
        loader_thread.start()
        try:
            return method(*args, **kwargs)
        finally:
            stop_event.set()
            loader_thread.join()

    return _wrapped


def wait_for_back_navigation() -> None:
    """Display read-only back prompt and wait until user dismisses it."""
    question = questionary.text("[esc to back]", erase_when_done=True)
    _ask(question, block_typed_input=True)


def print_batches(batches: list[ParsedBatch]) -> None:
    """Render imported files with transaction counts and their warnings."""
    table = tabulate(
        [
            [batch.file_name, batch.file_kind.value, len(batch.transactions), len(batch.warnings)]
            for batch in batches
        ],
        headers=["File", "Kind", "Transactions", "Warnings"],
        tablefmt="simple_outline",
        disable_numparse=True,
    )
    lines = [table]
    for batch in batches:
        problems = [*batch.warnings, *validate_transactions(batch.transactions)]
        lines.extend(f"\x1b[33m{batch.file_name}: {problem}\x1b[0m" for problem in problems)
    print("\n".join(lines), flush=True)


def print_tax_calculation(calculation: TaxCalculation, logs: list[str]) -> None:
    """Render yearly figures, totals and approximation notices."""
    df = calculation.to_dataframe()
    year_columns = list(df.columns[1:])
    for column in year_columns:
        df[column] = df[column].map(lambda x: f"{x:,.2f}" if isinstance(x, Real) else str(x))
    table = tabulate(
        df,
        headers="keys",
        tablefmt="simple_outline",
        showindex=True,
        disable_numparse=True,
        colalign=tuple(["left", "left", *(["right"] * len(year_columns))]),
    )
    totals = tabulate(
        [
            ["Total Revenue", f"{calculation.total_revenue:,.2f}"],
            ["Total Cost", f"{calculation.total_cost:,.2f}"],
            ["Total Income", f"{calculation.total_income:,.2f}"],
            ["Total Tax", f"{calculation.total_tax:,.2f}"],
        ],
        tablefmt="simple_outline",
        disable_numparse=True,
        colalign=("left", "right"),
    )
    header = f"{calculation.name} (#{calculation.id})"
    print("\n".join([*logs, header, table, totals]), flush=True)


def print_history(summaries: list[dict[str, Any]]) -> None:
    """Render saved calculations with per-year tax."""
    table = tabulate(
        [
            [
                summary["id"],
                summary["name"],
                f"{summary['created_at']:%Y-%m-%d %H:%M}",
                ", ".join(f"{x['year']}: {x['tax']:,.2f}" for x in summary["summary"]),
            ]
            for summary in summaries
        ],
        headers=["ID", "Name", "Created", "Tax"],
        tablefmt="simple_outline",
        disable_numparse=True,
    )
    print(table, flush=True)


def print_error(error: Exception) -> None:
    """Render and print framed red traceback."""
    traceback_text = "".join(
        traceback.format_exception(type(error), error, error.__traceback__)
    ).rstrip("\n")
    error_lines = traceback_text.splitlines()
    width = max(len(line) for line in error_lines)
    framed_error = "\n".join(
        [
            f"┌{'─' * (width + 2)}┐",
            *[f"│ {line.ljust(width)} │" for line in error_lines],
            f"└{'─' * (width + 2)}┘",
        ]
    )
    print(f"\x1b[31m{framed_error}\x1b[0m", flush=True)
