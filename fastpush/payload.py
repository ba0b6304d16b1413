"""Input contract of the fast-push workflow."""
# ======================= STANDARDS =======================
from dataclasses import dataclass, replace
from collections.abc import Mapping
from enum import Enum
import logging as log

# ======================== LOCALS =========================
from .facade import is_valid_branch_name
from .errors import InvalidPayload
from . import _constants as const

logger = log.getLogger("fastpush.payload")

PLACEHOLDER_BRANCHES = frozenset({"", "loading...", "loading"})


class RepoMode(str, Enum):
    EXISTING = "existing"
    NEW      = "new"


@dataclass(frozen=True)
class FastPushPayload:
    repo_mode: RepoMode = RepoMode.EXISTING
    remote_url: str | None = None
    new_repo_name: str | None = None
    new_repo_description: str = ""
    new_repo_private: bool = False
    branch: str = const.DEFAULT_BRANCH
    commit_message: str = const.DEFAULT_COMMIT_MESSAGE

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> "FastPushPayload":
        """Build from loose key/value input (CLI namespace, JSON)."""
        raw_mode = str(data.get("repo_mode") or RepoMode.EXISTING.value)
        try: mode = RepoMode(raw_mode.strip().lower())
        except ValueError:
            raise InvalidPayload(f"unknown repo mode {raw_mode!r}: "
                  "expected 'existing' or 'new'") from None

        def text(key: str) -> str | None:
            value = data.get(key)
            return str(value).strip() if value is not None else None

        return cls(
            repo_mode=mode,
            remote_url=text("remote_url") or None,
            new_repo_name=text("new_repo_name") or None,
            new_repo_description=text("new_repo_description") or "",
            new_repo_private=bool(data.get("new_repo_private", False)),
            branch=text("branch") or "",
            commit_message=text("commit_message") or "",
        )


def is_placeholder_branch(name: str | None) -> bool:
    """Empty or UI loading text rather than a real branch name."""
    return (name or "").strip().lower() in PLACEHOLDER_BRANCHES


def normalize_branch(name: str | None) -> str:
    """
    Return `name` when usable, else the default branch

    Placeholders and names outside the branch whitelist are
    replaced by DEFAULT_BRANCH with a warning instead of
    failing the run.
    """
    candidate = (name or "").strip()
    if is_placeholder_branch(candidate):
        logger.warning("placeholder branch %r replaced by %r", candidate,
            const.DEFAULT_BRANCH)
        return const.DEFAULT_BRANCH
    if not is_valid_branch_name(candidate):
        logger.warning("invalid branch name %r replaced by %r",
            candidate, const.DEFAULT_BRANCH)
        return const.DEFAULT_BRANCH
    return candidate


def normalize_payload(payload: FastPushPayload) -> FastPushPayload:
    """Validated copy of `payload` ready for the orchestrator."""
    if payload.repo_mode is RepoMode.NEW and not payload.new_repo_name:
        raise InvalidPayload("a new repository needs a name")
    message = (payload.commit_message or "").strip() \
           or const.DEFAULT_COMMIT_MESSAGE
    return replace(payload,
        branch=normalize_branch(payload.branch),
        commit_message=message,
    )
