"""Interactive console application for importing exports and calculating crypto tax."""

import sys
from pathlib import Path

from crypto_pit_calculator import ui
from crypto_pit_calculator.config import ParsedBatch, TaxCalculation, TaxReportLogs
from crypto_pit_calculator.engine import DEFAULT_CALCULATION_NAME, TaxEngine
from crypto_pit_calculator.history import CalculationHistory
from crypto_pit_calculator.ingestion import FileTooLargeError, parse_path
from crypto_pit_calculator.rates import RateCache, RateResolver

_CALCULATE_EXCEPTIONS = (
    ArithmeticError,
    AttributeError,
    LookupError,
    OSError,
    RuntimeError,
    TypeError,
    ValueError,
)


class App:
    """Stateful interactive console app for building crypto tax calculations."""

    def __init__(self, engine: TaxEngine | None = None) -> None:
        """Initialize session state and load persisted rate snapshot."""
        if engine is None:
            cache = RateCache()
            cache.load()
            engine = TaxEngine(RateResolver(cache=cache))
        self.engine = engine
        self.files: list[tuple[Path, ParsedBatch]] = []
        self.calculation: TaxCalculation | None = None
        self.logs = TaxReportLogs()

    def run(self) -> None:
        """Run interactive command loop."""
        while True:
            ui.clear_terminal_viewport()
            action = ui.prompt_for_main_menu_action(
                has_imported_files=bool(self.files),
                has_calculation=self.calculation is not None,
                has_history=bool(CalculationHistory.entry_ids()),
            )
            getattr(self, action)()

    def import_file(self) -> None:
        """CLI command: parse one exchange export and add it to the session."""
        path = ui.prompt_for_file_path(path for path, _ in self.files)
        if path == "__back__":
            return
        try:
            batch = parse_path(path)
        except (FileTooLargeError, OSError) as error:
            self._show_error(error)
            return
        self.files.append((path, batch))
        self._reset()
        ui.print_batches([batch])
        ui.wait_for_back_navigation()

    def ls(self) -> None:
        """CLI command: list imported files with warnings."""
        ui.print_batches(self.batches)
        ui.wait_for_back_navigation()

    def rm(self) -> None:
        """CLI command: remove one or more imported files."""
        indices = ui.prompt_for_files_to_remove(self.batches)
        if indices == "__back__" or not indices:
            return
        self.files = [entry for index, entry in enumerate(self.files) if index not in indices]
        self._reset()

    def calculate(self) -> None:
        """CLI command: calculate tax for imported files and save it to history."""
        name = ui.prompt_for_calculation_name(DEFAULT_CALCULATION_NAME)
        if name == "__back__":
            return
        first_year = min(
            (tx.date.year for batch in self.batches for tx in batch.transactions),
            default=None,
        )
        default_carry_forward = (
            0.0 if first_year is None else CalculationHistory.latest_carry_forward(first_year)
        )
        carry_forward = ui.prompt_for_carry_forward(default_carry_forward)
        if carry_forward == "__back__":
            return

        @ui.with_prepare_animation
        def _calculate() -> TaxCalculation:
            return self.engine.calculate(self.batches, carry_forward, name, self.logs)

        self.logs.clear()
        try:
            self.calculation = _calculate()
            CalculationHistory.save(self.calculation)
            CalculationHistory.save_carry_forwards(self.calculation)
            self.engine.resolver.cache.save()
        except _CALCULATE_EXCEPTIONS as error:
            self._reset()
            self._show_error(error)
            return
        self.show()

    def show(self) -> None:
        """CLI command: display calculation prepared in this session."""
        if self.calculation is not None:
            ui.print_tax_calculation(self.calculation, self.logs)
        ui.wait_for_back_navigation()

    def history(self) -> None:
        """CLI command: browse, open or delete saved calculations."""
        summaries = CalculationHistory.summaries()
        ui.print_history(summaries)
        entry_id = ui.prompt_for_history_entry(summaries)
        if entry_id == "__back__":
            return
        action = ui.prompt_for_history_action()
        if action == "open":
            self.logs.clear()
            self.calculation = CalculationHistory.load(entry_id)
            self.show()
        elif action == "delete":
            CalculationHistory.delete(entry_id)

    def exit_app(self) -> None:
        """Exit interactive run loop."""
        self._reset()
        sys.exit(0)

    @property
    def batches(self) -> list[ParsedBatch]:
        """Return parsed batches of imported files in import order."""
        return [batch for _, batch in self.files]

    def _reset(self) -> None:
        """Drop calculation prepared in this session."""
        self.calculation = None
        self.logs.clear()

    def _show_error(self, error: Exception) -> None:
        ui.print_error(error)
        ui.wait_for_back_navigation()


def main() -> None:
    """CLI entrypoint with clean Ctrl-C exit code."""
    app = App()
    try:
        app.run()
    except KeyboardInterrupt:
        app.exit_app()


if __name__ == "__main__":
    main()
