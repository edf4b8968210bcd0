"""Progress reporting for long running planner steps."""

from typing import Protocol

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskID, TextColumn, TimeRemainingColumn


class ProgressReporter(Protocol):
    def start(self, step_count: int, label: str) -> None: ...

    def step(self, label: str | None = None) -> None: ...

    def set_label(self, label: str) -> None: ...

    def finish(self, label: str | None = None) -> None: ...


class NullProgress:
    """Reporter that ignores every update."""

    def start(self, step_count: int, label: str) -> None:
        pass

    def step(self, label: str | None = None) -> None:
        pass

    def set_label(self, label: str) -> None:
        pass

    def finish(self, label: str | None = None) -> None:
        pass


class RichProgress:
    """Drives a rich progress bar; one bar per ``start``/``finish`` pair."""

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    def start(self, step_count: int, label: str) -> None:
        self._stop()
        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TimeRemainingColumn(),
            console=self.console,
        )
        self._progress.start()
        self._task = self._progress.add_task(label, total=step_count)

    def step(self, label: str | None = None) -> None:
        if self._progress is None or self._task is None:
            return
        if label:
            self._progress.update(self._task, advance=1, description=label)
        else:
            self._progress.update(self._task, advance=1)

    def set_label(self, label: str) -> None:
        if self._progress is not None and self._task is not None:
            self._progress.update(self._task, description=label)

    def finish(self, label: str | None = None) -> None:
        running = self._progress is not None
        self._stop()
        if running and label:
            self.console.print(f"[green]✓[/green] {label}")

    def _stop(self) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task = None
