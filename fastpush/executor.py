"""
Runs single git commands for fastpush. All operations use
the git CLI via subprocess with explicit argument vectors.

Failures raise GitCommandError carrying a classified
ErrorKind; only transient kinds are retried here.
"""
# ======================= STANDARDS =======================
from dataclasses import dataclass
import logging as log
import subprocess
import random
import time

# ======================== LOCALS =========================
from .classifier import ErrorKind, classify, is_transient
from .errors import GitCommandError
from . import _constants as const
from . import telemetry

logger = log.getLogger("fastpush.executor")

RETRY_POLICY_BY_KIND: dict[ErrorKind, dict[str, float]] = {
    ErrorKind.TIMEOUT: {
        "base_delay_s": 0.25,
        "max_delay_s": 1.0,
        "jitter_s": 0.10,
    },
    ErrorKind.CONNECTION: {
        "base_delay_s": 0.25,
        "max_delay_s": 2.0,
        "jitter_s": 0.10,
    },
}


@dataclass(frozen=True)
class CommandResult:
    """Successful command outcome; stdout is trimmed."""
    stdout: str
    argv: tuple[str, ...] = ()
    attempts: int = 1

    def lines(self) -> list[str]:
        return [ln for ln in self.stdout.splitlines() if ln.strip()]


def filter_warnings(text: str) -> str:
    """Drop `warning:` noise lines git writes next to real errors."""
    kept = [ln for ln in text.splitlines()
            if not ln.strip().lower().startswith("warning:")]
    return "\n".join(kept).strip()


def failure_text(stdout: str, stderr: str) -> str:
    """Build the reason attached to a failed command."""
    reason = filter_warnings(stderr)
    out    = stdout.strip()
    if out and "fatal" not in out.lower():
        reason = f"{reason}\n{out}" if reason else out
    return reason


def _retry_delay_seconds(tries: int, policy: dict[str, float]) -> float:
    """Compute exponential backoff delay with jitter."""
    base   = float(policy.get("base_delay_s", 0.0))
    cap    = float(policy.get("max_delay_s", base))
    jitter = float(policy.get("jitter_s", 0.0))
    delay  = min(base * (2 ** max(tries, 0)), cap)
    if jitter > 0:
        delay += random.uniform(0.0, jitter)
    return max(delay, 0.0)


def _run_once(argv: list[str], cwd: str, timeout_s: float,
              max_output: int, attempt: int) -> CommandResult:
    try:
        proc = subprocess.run(
            argv,
            cwd=cwd,
            text=True,
            encoding="utf-8",
            errors="replace",
            capture_output=True,
            timeout=timeout_s,
        )
    except subprocess.TimeoutExpired:
        raise GitCommandError(argv, 124,
              f"command timed out after {timeout_s:g}s",
              ErrorKind.TIMEOUT, attempt) from None
    except FileNotFoundError as e:
        raise GitCommandError(argv, 127, f"{argv[0]}: {e.strerror}",
              ErrorKind.UNCLASSIFIED, attempt) from None

    stdout = proc.stdout or ""
    stderr = proc.stderr or ""
    size   = len(stdout.encode("utf-8")) + len(stderr.encode("utf-8"))
    if size > max_output:
        raise GitCommandError(argv, proc.returncode,
              f"output exceeded {max_output} bytes",
              ErrorKind.OUTPUT_LIMIT, attempt)

    if proc.returncode == 0:
        return CommandResult(stdout.strip(), tuple(argv), attempt)

    reason = failure_text(stdout, stderr)
    kind   = classify(reason).kind
    raise GitCommandError(argv, proc.returncode, reason, kind, attempt)


def run_command(argv: list[str], cwd: str,
                timeout_s: float = const.GIT_TIMEOUT_S,
                max_output: int = const.MAX_OUTPUT_BYTES,
                tries: int = 0) -> CommandResult:
    """
    Run one command, retrying transient failures

    Behavior:
    - Exceeding `timeout_s` or `max_output` is a failure,
      never a truncated success
    - Timeout and connection failures are retried up to
      TRANSIENT_RETRIES times with exponential backoff
    - Any other failure is raised on the first attempt

    Returns:
        CommandResult: trimmed stdout of the successful run
    """
    try:
        return _run_once(argv, cwd, timeout_s, max_output,
               attempt=tries + 1)
    except GitCommandError as e:
        if not is_transient(e.kind) \
        or tries >= const.TRANSIENT_RETRIES: raise

        delay = _retry_delay_seconds(tries,
                RETRY_POLICY_BY_KIND.get(e.kind, {}))
        logger.warning("transient %s failure on %r (attempt %d), "
            "retrying in %.2fs", e.kind.value, " ".join(argv[:3]),
            tries + 1, delay)
        telemetry.emit_event(
            event_type="retry",
            step_id=" ".join(argv[1:3]),
            payload={
                "kind": e.kind.value,
                "attempt": tries + 1,
                "delay_s": round(delay, 3),
                "stderr": e.stderr[:400],
            },
        )
        time.sleep(delay)
        return run_command(argv, cwd, timeout_s, max_output,
               tries + 1)


def run_git(args: list[str], cwd: str,
            timeout_s: float = const.GIT_TIMEOUT_S,
            max_output: int = const.MAX_OUTPUT_BYTES) -> CommandResult:
    """Run `git <args>` in `cwd`."""
    return run_command(["git", *args], cwd, timeout_s, max_output)
