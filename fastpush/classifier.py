"""Pure classification of git failure text into a closed error kind."""
from dataclasses import asdict, dataclass
from typing import Callable
from enum import Enum
import re

from .error_model import error_policy_for


class ErrorKind(str, Enum):
    TIMEOUT           = "timeout"
    CONNECTION        = "connection"
    OUTPUT_LIMIT      = "output-limit"
    NOTHING_TO_COMMIT = "nothing-to-commit"
    NO_UPSTREAM       = "no-upstream"
    UPSTREAM_GONE     = "upstream-gone"
    PUSH_REJECTED     = "push-rejected"
    MERGE_CONFLICT    = "merge-conflict"
    AUTH_FAILURE      = "auth-failure"
    REMOTE_UNREADABLE = "remote-unreadable"
    INVALID_REF       = "invalid-ref"
    LOCK_CONTENTION   = "lock-contention"
    NOT_A_REPOSITORY  = "not-a-repository"
    UNCLASSIFIED      = "unclassified"
    EMPTY             = "empty"


TRANSIENT_KINDS: frozenset[ErrorKind] = frozenset({
    ErrorKind.TIMEOUT,
    ErrorKind.CONNECTION,
})

KIND_CODES: dict[ErrorKind, str] = {
    ErrorKind.TIMEOUT: "FP_NET_TIMEOUT",
    ErrorKind.CONNECTION: "FP_NET_CONNECTIVITY",
    ErrorKind.OUTPUT_LIMIT: "FP_GIT_OUTPUT_LIMIT",
    ErrorKind.NOTHING_TO_COMMIT: "FP_GIT_NOTHING_TO_COMMIT",
    ErrorKind.NO_UPSTREAM: "FP_GIT_UPSTREAM_MISSING",
    ErrorKind.UPSTREAM_GONE: "FP_GIT_UPSTREAM_GONE",
    ErrorKind.PUSH_REJECTED: "FP_GIT_NON_FAST_FORWARD",
    ErrorKind.MERGE_CONFLICT: "FP_GIT_MERGE_CONFLICT",
    ErrorKind.AUTH_FAILURE: "FP_NET_AUTH_FAIL",
    ErrorKind.REMOTE_UNREADABLE: "FP_NET_REMOTE_UNREADABLE",
    ErrorKind.INVALID_REF: "FP_GIT_INVALID_REF",
    ErrorKind.LOCK_CONTENTION: "FP_GIT_LOCK_CONTENTION",
    ErrorKind.NOT_A_REPOSITORY: "FP_GIT_NOT_A_REPOSITORY",
    ErrorKind.UNCLASSIFIED: "FP_GIT_UNCLASSIFIED",
    ErrorKind.EMPTY: "FP_GIT_EMPTY_STDERR",
}


@dataclass(frozen=True)
class ErrorClassification:
    """Stable classification for one failure text."""
    kind: ErrorKind
    code: str
    severity: str

    @property
    def transient(self) -> bool: return self.kind in TRANSIENT_KINDS

    def as_dict(self) -> dict[str, str]:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


@dataclass(frozen=True)
class ClassificationRule:
    """Declarative failure-text classification rule."""
    kind: ErrorKind
    matcher: Callable[[str], bool]


def _match_any(needles: tuple[str, ...]) -> Callable[[str], bool]:
    """Return predicate that matches if any needle exists in text."""
    def _matcher(text: str) -> bool:
        return any(needle in text for needle in needles)
    return _matcher


NOTHING_TO_COMMIT_NEEDLES: tuple[str, ...] = (
    "nothing to commit",
    "working tree clean",
    "no changes added to commit",
    "nothing added to commit",
)

PUSH_REJECTED_NEEDLES: tuple[str, ...] = (
    "! [rejected]",
    "non-fast-forward",
    "fetch first",
    "updates were rejected",
    "tip of your current branch is behind",
)

NO_UPSTREAM_NEEDLES: tuple[str, ...] = (
    "has no upstream branch",
    "no upstream configured",
    "no upstream branch",
    "--set-upstream",
)

UPSTREAM_GONE_NEEDLES: tuple[str, ...] = (
    "no such ref was fetched",
    "no tracking information",
    "couldn't find remote ref",
)

MERGE_CONFLICT_NEEDLES: tuple[str, ...] = (
    "conflict (",
    "automatic merge failed",
    "resolve all conflicts manually",
    "could not apply",
    "you have unmerged paths",
    "merge conflict",
)

TIMEOUT_NEEDLES: tuple[str, ...] = (
    "operation timed out",
    "connection timed out",
    "timed out",
    "timeout",
)

CONNECTION_NEEDLES: tuple[str, ...] = (
    "connection reset",
    "connection refused",
    "connection was reset",
    "connection closed",
    "software caused connection abort",
    "could not resolve host",
    "no address associated with hostname",
    "failed to connect",
    "the remote end hung up unexpectedly",
    "early eof",
)

AUTH_NEEDLES: tuple[str, ...] = (
    "authentication failed",
    "permission denied (publickey)",
    "could not read username",
    "invalid username or password",
    "repository not found",
)

LOCK_CONTENTION_NEEDLES: tuple[str, ...] = (
    "another git process seems to be running",
    "index.lock",
    "unable to create '.git/shallow.lock'",
)

INVALID_REF_NEEDLES: tuple[str, ...] = (
    "is not a valid branch name",
    "not a valid ref",
    "invalid reference",
    "unknown revision",
    "did not match any file(s) known to git",
    "not a valid object name",
)

NOT_A_REPOSITORY_NEEDLES: tuple[str, ...] = (
    "not a git repository",
)

REMOTE_UNREADABLE_NEEDLES: tuple[str, ...] = (
    "could not read from remote",
    "does not appear to be a git repository",
)

# Order matters: first match wins.
CLASSIFICATION_RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(ErrorKind.NOTHING_TO_COMMIT,
                       _match_any(NOTHING_TO_COMMIT_NEEDLES)),
    ClassificationRule(ErrorKind.PUSH_REJECTED,
                       _match_any(PUSH_REJECTED_NEEDLES)),
    ClassificationRule(ErrorKind.UPSTREAM_GONE,
                       _match_any(UPSTREAM_GONE_NEEDLES)),
    ClassificationRule(ErrorKind.NO_UPSTREAM,
                       _match_any(NO_UPSTREAM_NEEDLES)),
    ClassificationRule(ErrorKind.MERGE_CONFLICT,
                       _match_any(MERGE_CONFLICT_NEEDLES)),
    ClassificationRule(ErrorKind.AUTH_FAILURE,
                       _match_any(AUTH_NEEDLES)),
    ClassificationRule(ErrorKind.LOCK_CONTENTION,
                       _match_any(LOCK_CONTENTION_NEEDLES)),
    ClassificationRule(ErrorKind.TIMEOUT,
                       _match_any(TIMEOUT_NEEDLES)),
    ClassificationRule(ErrorKind.CONNECTION,
                       _match_any(CONNECTION_NEEDLES)),
    ClassificationRule(ErrorKind.NOT_A_REPOSITORY,
                       _match_any(NOT_A_REPOSITORY_NEEDLES)),
    ClassificationRule(ErrorKind.INVALID_REF,
                       _match_any(INVALID_REF_NEEDLES)),
    ClassificationRule(ErrorKind.REMOTE_UNREADABLE,
                       _match_any(REMOTE_UNREADABLE_NEEDLES)),
)

_UNKNOWN_CLASSIFICATION_COUNT = 0
_RULE_CONFLICT_COUNT          = 0
_URL_PATTERN                  = re.compile(
                                r"https?://[^\s'\"`]+")
_HTTPS_TOKEN_PATTERN          = re.compile(
                                r"(https?://)[^/\s@]+(@)")


def normalize_text(text: str) -> str:
    """Normalize failure text for resilient, deterministic matching."""
    text = text.strip().lower()
    if not text: return ""
    text = text\
           .replace("`", "'")\
           .replace("’", "'")\
           .replace('"', "'")
    text = _HTTPS_TOKEN_PATTERN.sub(r"\1<token>\2", text)
    text = _URL_PATTERN.sub("<url>", text)
    text = re.sub(r"\s+", " ", text)
    return text


def unknown_classification_count() -> int:
    """Return number of fallback/unknown classifications."""
    return _UNKNOWN_CLASSIFICATION_COUNT


def rule_conflict_count() -> int:
    """Return number of multi-match rule conflicts observed."""
    return _RULE_CONFLICT_COUNT


def reset_counters() -> None:
    """Reset classifier counters for test isolation."""
    global _UNKNOWN_CLASSIFICATION_COUNT
    global _RULE_CONFLICT_COUNT
    _UNKNOWN_CLASSIFICATION_COUNT = 0
    _RULE_CONFLICT_COUNT          = 0


def classification_for(kind: ErrorKind) -> ErrorClassification:
    code   = KIND_CODES[kind]
    policy = error_policy_for(code, fallback_category="git")
    return ErrorClassification(kind=kind, code=code,
           severity=policy["severity"])


def classify(text: str) -> ErrorClassification:
    """Classify git failure text into a stable kind/code/severity."""
    global _UNKNOWN_CLASSIFICATION_COUNT
    global _RULE_CONFLICT_COUNT
    lowered = normalize_text(text or "")
    if not lowered: return classification_for(ErrorKind.EMPTY)

    matched = [rule for rule in CLASSIFICATION_RULES
               if rule.matcher(lowered)]
    if not matched:
        _UNKNOWN_CLASSIFICATION_COUNT += 1
        return classification_for(ErrorKind.UNCLASSIFIED)
    if len({rule.kind for rule in matched}) > 1:
        _RULE_CONFLICT_COUNT += 1
    return classification_for(matched[0].kind)


def is_transient(kind: ErrorKind) -> bool:
    return kind in TRANSIENT_KINDS
