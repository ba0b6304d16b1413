"""Constants across fastpush."""


from argparse import Namespace

from tuikit.textools import style_text as color


GITHUB         = "https://api.github.com"
CURSOR         = color("  >>> ", "magenta")
GOOD           = "green"
BAD            = "red"
PROMPT         = "yellow"
INFO           = "cyan"
SPEED          = 0.0075
HOLD           = 0.01
APP            = "[fastpush]"
FASTPUSH       = color(f"{APP} ", "magenta")
I              = 11
LOG_DIR_NAME   = "fastpushlog"

# Git execution limits
GIT_TIMEOUT_S     = 60.0
MAX_OUTPUT_BYTES  = 10 * 1024 * 1024
TRANSIENT_RETRIES = 2
STALE_LOCK_AGE_S  = 5 * 60

# Workflow defaults
DEFAULT_BRANCH         = "main"
DEFAULT_REMOTE         = "origin"
DEFAULT_COMMIT_MESSAGE = "Fast Push: Auto-commit"

# Runtime flags: initialized once per invocation by CLI.
PLAIN   = False
DEBUG   = False
AUTOFIX = False
CI_MODE = True
QUIET   = False


def sync_runtime_flags(args: Namespace) -> None:
    """Synchronize runtime flags from parsed CLI args."""
    global PLAIN, DEBUG, AUTOFIX, CI_MODE, QUIET

    PLAIN   = bool(getattr(args, "plain", False))
    DEBUG   = bool(getattr(args, "debug", False))
    AUTOFIX = bool(getattr(args, "auto_fix", False))
    QUIET   = bool(getattr(args, "quiet", False))
    CI_MODE = bool(getattr(args, "ci", False)
            or getattr(args, "quiet", False)
            or getattr(args, "plain", False)
            or not getattr(args, "interactive", False))
