"""Decision-makers answering remediation questions."""
# ======================= STANDARDS =======================
from typing import Sequence
import logging as log

# ======================== LOCALS =========================
from .utils import Output, ask, resume_console, suspend_console, to_list
from .remediation import CANCEL, SAFE_CHOICES
from .diagnostics import Issue
from ._constants import CURSOR

logger = log.getLogger("fastpush.decisions")


def _notify(out: Output, message: str, level: str) -> None:
    if level == "warn": out.warn(message)
    elif level == "success": out.success(message)
    else: out.info(message)


class ConsoleDecisionMaker:
    """A person at the terminal picks from numbered choices."""
    interactive = True
    autofix     = False

    def __init__(self, out: Output | None = None) -> None:
        self.out = out or Output()

    def _show(self, issue: Issue) -> None:
        self.out.warn(issue.title)
        self.out.info(issue.description)
        self.out.info(f"Fix: {issue.resolution}")

    def choose(self, issue: Issue, choices: Sequence[str]) -> str | None:
        suspend_console()
        try:
            self._show(issue)
            self.out.prompt("Choose an action:")
            self.out.raw(to_list(list(choices)), end="")
            raw = input(CURSOR).strip(); print()
        finally: resume_console()

        if raw.isdigit() and 1 <= int(raw) <= len(choices):
            return choices[int(raw) - 1]
        if raw in choices: return raw
        return CANCEL

    def ask(self, issue: Issue, prompt: str, placeholder: str = ""
           ) -> str | None:
        suspend_console()
        try:
            self._show(issue)
            answer = ask(prompt, placeholder)
        finally: resume_console()
        return answer or None

    def notify(self, message: str, level: str = "info") -> None:
        _notify(self.out, message, level)


class AutoDecisionMaker:
    """
    Unattended answers for CI and piped runs

    With `autofix` the first safe fix offered is taken and
    free-text questions get their suggested default; without
    it every question is answered with Cancel. Blocking issues
    are never acknowledged: nobody fixed them.
    """
    interactive = False

    def __init__(self, autofix: bool = False,
                 out: Output | None = None) -> None:
        self.autofix = autofix
        self.out     = out or Output()

    def choose(self, issue: Issue, choices: Sequence[str]) -> str | None:
        pick = CANCEL
        if self.autofix:
            pick = next((c for c in choices if c in SAFE_CHOICES), CANCEL)
        logger.info("auto decision for %s: %s", issue.id, pick)
        return pick

    def ask(self, issue: Issue, prompt: str, placeholder: str = ""
           ) -> str | None:
        answer = placeholder if self.autofix and placeholder else None
        logger.info("auto answer for %s (%s): %s", issue.id, prompt,
            answer)
        return answer

    def notify(self, message: str, level: str = "info") -> None:
        _notify(self.out, message, level)
