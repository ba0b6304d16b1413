"""Module to keep terminal communication isolated."""
# ======================= STANDARDS ========================
from enum import Enum, auto as auto_enum
from typing import Protocol
from dataclasses import dataclass
from pathlib import Path
import os

# ===================== THIRD-PARTIES ======================
from tuikit.textools import wrap_text, style_text as color
from tuikit.textools import transmit as _transmit, pathit

# ======================== LOCALS ==========================
from . import _constants as const
from ._constants import *


class MessageSink(Protocol):
    def add_message(self, idx: int | None, msg: str,
                    fg: str = PROMPT, prfx: bool = True
                   ) -> None: ...


_active_console: MessageSink | None = None
_console_stack: list[MessageSink | None] = []


def bind_console(console: MessageSink | None) -> None:
    global _active_console
    _active_console = console


def suspend_console() -> None:
    """Pause active sink while a prompt needs the terminal."""
    global _active_console
    current = _active_console
    _console_stack.append(current)
    if current is None: return
    suspend = getattr(current, "suspend", None)
    if callable(suspend): suspend()
    else: bind_console(None)


def resume_console() -> None:
    """Restore previously suspended sink."""
    if not _console_stack: return

    previous = _console_stack.pop()
    if previous is None: bind_console(None); return

    resume = getattr(previous, "resume", None)
    if callable(resume): resume()
    else: bind_console(previous)


def wrap(text: str) -> str:
    return wrap_text(text, I, inline=True, order=APP)


def to_list(array: list[str]) -> str:
    text = ""
    for i, item in enumerate(array):
        pfx    = f"{' ' * I}{i + 1}."
        indent = len(pfx) + 2
        text  += pfx + " " + wrap_text(f"{item}\n", indent,
                inline=True, order=pfx)
    return text


def transmit(*text: str | tuple[str], fg: str = PROMPT,
             quiet: bool = False, prfx: bool = True,
             step_idx: int | None = None) -> None:
    if quiet: return

    msg = " ".join(map(str, text))
    # --- TUI ACTIVE: Rich owns the terminal ---
    if _active_console is not None:
        _active_console.add_message(step_idx, msg, fg=fg, prfx=prfx)
        return

    # --- Plain terminal path ---
    if prfx: print(FASTPUSH, end="")

    if const.PLAIN: print(msg); return
    _transmit(msg, speed=SPEED, hold=HOLD, hue=fg)


def ask(prompt: str, placeholder: str = "") -> str:
    """Read one line of free text; empty input yields ''."""
    hint = f" (e.g. {placeholder})" if placeholder else ""
    transmit(wrap(prompt + hint))
    answer = input(CURSOR).strip()
    print()
    return answer


def get_log_dir(path: str) -> Path:
    log_dir = Path(path) / LOG_DIR_NAME
    os.makedirs(log_dir, exist_ok=True)
    # keeps `git add --all` from staging the logs
    ignore = log_dir / ".gitignore"
    if not ignore.exists(): ignore.write_text("*\n", encoding="utf-8")
    return log_dir


def log_dir_for(path: str) -> str:
    """Resolve the log directory for a target path without creating it."""
    target = os.path.abspath(path)
    if os.path.isfile(target): target = os.path.dirname(target)
    return os.path.join(target, LOG_DIR_NAME)


@dataclass
class Output:
    quiet: bool = False

    def success(self, msg: str, step_idx: int | None = None
               ) -> None:
        msg = msg if _active_console is not None else wrap(msg)
        transmit(msg, fg=GOOD, quiet=self.quiet,
            step_idx=step_idx)

    def info(self, msg: str, prefix: bool = True,
             step_idx: int | None = None) -> None:
        msg = wrap(msg) if const.PLAIN else msg
        transmit(msg, fg=INFO, quiet=self.quiet, prfx=prefix,
            step_idx=step_idx)

    def prompt(self, msg: str, fit: bool = True,
               step_idx: int | None = None) -> None:
        if fit and _active_console is None:
            msg = wrap(msg)
        transmit(msg, quiet=self.quiet, step_idx=step_idx)

    def warn(self, msg: str, fit: bool = True,
             step_idx: int | None = None) -> None:
        if fit and _active_console is None:
            msg = wrap(msg)
        transmit(msg, fg=BAD, step_idx=step_idx)

    def raw(self, *args: object, **kwargs: object) -> None:
        if not self.quiet: print(*args, **kwargs)  # type: ignore[call-overload]


class StepResult(Enum):
    OK    = auto_enum()
    DONE  = auto_enum()
    SKIP  = auto_enum()
    FAIL  = auto_enum()
    ABORT = auto_enum()
