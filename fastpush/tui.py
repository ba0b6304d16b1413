"""Live step list shown while the fast-push workflow runs."""
from __future__ import annotations

# ======================= STANDARDS =======================
from contextlib import contextmanager
from collections.abc import Iterator
from types import TracebackType
from enum import Enum

# ==================== THIRD-PARTIES ======================
from rich.console import Console, RenderableType, Group
from rich.spinner import Spinner
from rich.panel import Panel
from rich.table import Table
from rich.box import MINIMAL
from rich.live import Live
from rich.text import Text

# ======================== LOCALS =========================
from .utils import StepResult
from . import utils


class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE    = "done"
    SKIPPED = "skipped"
    FAIL    = "fail"
    ABORT   = "abort"


RESULT_STATUS: dict[StepResult, StepStatus] = {
    StepResult.OK: StepStatus.DONE,
    StepResult.DONE: StepStatus.DONE,
    StepResult.SKIP: StepStatus.SKIPPED,
    StepResult.ABORT: StepStatus.ABORT,
    StepResult.FAIL: StepStatus.FAIL,
}

# status -> (marker, style)
STATUS_STYLE: dict[StepStatus, tuple[str, str]] = {
    StepStatus.DONE: ("✔", "green"),
    StepStatus.SKIPPED: ("-", "dim"),
    StepStatus.FAIL: ("✖", "red"),
    StepStatus.ABORT: ("✖", "yellow"),
    StepStatus.PENDING: ("○", "dim"),
}


class TUIRunner:
    """
    Rich live view of workflow steps and their messages

    Disabled runners print messages straight to the terminal
    so plain and CI output keep the `[fastpush]` prefix.
    """

    def __init__(self, labels: list[str], enabled: bool) -> None:
        self.enabled  = enabled
        self.labels   = labels
        self.statuses = [StepStatus.PENDING] * len(labels)
        self.console  = Console(stderr=True)
        self._messages: list[list[tuple[str, str, bool]]] \
                      = [[] for _ in labels]
        self._live: Live | None = None

    def add_message(self, idx: int | None, msg: str,
                    fg: str = "yellow", prfx: bool = True) -> None:
        if not self.enabled or idx is None:
            styled = utils.color(utils.wrap(msg) if prfx else msg, fg)
            print(f"{utils.const.FASTPUSH}{styled}" if prfx else styled)
            return
        self._messages[idx].append((msg, fg, prfx))
        self._refresh()

    def _open_live(self) -> None:
        self._live = Live(self._render(), console=self.console,
                     refresh_per_second=10, transient=False)
        self._live.__enter__()
        utils.bind_console(self)

    def __enter__(self) -> "TUIRunner":
        if self.enabled: self._open_live()
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc: BaseException | None,
                 tb: TracebackType | None) -> None:
        utils.bind_console(None)
        if self._live:
            self._live.__exit__(exc_type, exc, tb)
            self._live = None

    def suspend(self) -> None:
        """Stop live rendering while a prompt owns the terminal."""
        if not self.enabled or not self._live: return
        utils.bind_console(None)
        self._live.__exit__(None, None, None)
        self._live = None

    def resume(self) -> None:
        if not self.enabled or self._live is not None: return
        self._open_live()

    def start(self, idx: int) -> None:
        if not self.enabled: return
        self.statuses[idx] = StepStatus.RUNNING
        self._refresh()

    def finish(self, idx: int, result: StepResult) -> None:
        if not self.enabled: return
        self.statuses[idx] = RESULT_STATUS.get(result, StepStatus.FAIL)
        self._refresh()

    def _refresh(self) -> None:
        if self._live: self._live.update(self._render())

    def _render(self) -> Table:
        table = Table(show_header=False, box=None, pad_edge=False)
        table.add_column(justify="left")
        for label, status, msgs in zip(self.labels, self.statuses,
                                   self._messages):
            row: RenderableType = self._row(label, status)
            if msgs: row = Group(row, self._panel(msgs))
            table.add_row(row)
        return table

    def _panel(self, msgs: list[tuple[str, str, bool]]) -> Panel:
        text = Text()
        for j, (msg, fg, prfx) in enumerate(msgs):
            if j: text.append("\n")
            if prfx: text.append(f"{utils.const.APP} ", style="magenta")
            text.append(msg, style=fg)
        return Panel(text, box=MINIMAL, padding=(0, 2))

    def _row(self, label: str, status: StepStatus) -> Text | Spinner:
        if status == StepStatus.RUNNING:
            return Spinner("dots", text=label)
        marker, style = STATUS_STYLE[status]
        return Text(f"{marker} {label}", style=style)


@contextmanager
def tui_runner(labels: list[str], enabled: bool) -> Iterator[TUIRunner]:
    runner = TUIRunner(labels, enabled)
    with runner: yield runner
