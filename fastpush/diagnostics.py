"""
Pre-flight diagnostics

Inspects a working copy before anything is mutated and turns
what it finds into an ordered list of Issues, each either
blocking (a human must act) or auto-fixable (the remediation
protocol knows a safe fix).
"""
# ======================= STANDARDS =======================
from dataclasses import dataclass
from enum import Enum
import logging as log

# ======================== LOCALS =========================
from .inspector import RepositoryInspector, gather
from . import telemetry

logger = log.getLogger("fastpush.diagnostics")


class IssueId(str, Enum):
    NO_REPO            = "no-repo"
    MERGE_CONFLICTS    = "merge-conflicts"
    REBASE_IN_PROGRESS = "rebase-in-progress"
    MERGE_IN_PROGRESS  = "merge-in-progress"
    NO_REMOTE          = "no-remote"
    UPSTREAM_MISSING   = "upstream-missing"
    UPSTREAM_BROKEN    = "upstream-broken"
    BRANCHES_DIVERGED  = "branches-diverged"
    BEHIND_REMOTE      = "behind-remote"
    DIRTY_SUBMODULES   = "dirty-submodules"
    NOTHING_TO_DO      = "nothing-to-do"
    DETACHED_HEAD      = "detached-head"
    STALE_LOCK         = "stale-lock"
    ACTIVE_LOCK        = "active-lock"
    PUSH_REJECTED      = "push-rejected"


@dataclass(frozen=True)
class Issue:
    id: str
    title: str
    description: str
    resolution: str
    auto_fixable: bool

    @property
    def blocking(self) -> bool: return not self.auto_fixable

    def as_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "resolution": self.resolution,
            "auto_fixable": self.auto_fixable,
        }


# id -> (title, description, resolution, auto_fixable); texts are
# str.format templates over the make_issue context
ISSUE_TEXT: dict[IssueId, tuple[str, str, str, bool]] = {
    IssueId.NO_REPO: (
        "Not a Git Repository",
        "This folder is not a git repository yet.",
        "Initialize one here with \"git init\".",
        True,
    ),
    IssueId.MERGE_CONFLICTS: (
        "Merge Conflicts Detected",
        "{count} file(s) have unresolved merge conflicts:\n{files}",
        "Resolve the conflicts in the listed files, then stage them "
        "with \"git add\".",
        False,
    ),
    IssueId.REBASE_IN_PROGRESS: (
        "Rebase In Progress",
        "A git rebase is in progress in this repository.",
        "Finish it with \"git rebase --continue\" or abort it with "
        "\"git rebase --abort\".",
        False,
    ),
    IssueId.MERGE_IN_PROGRESS: (
        "Merge In Progress",
        "A git merge is in progress; it blocks new commits.",
        "Commit to complete the merge, or abort with "
        "\"git merge --abort\".",
        False,
    ),
    IssueId.NO_REMOTE: (
        "No Remote URL Configured",
        "There is no \"origin\" remote to push to.",
        "Set a remote URL, e.g. https://github.com/user/repo.git.",
        True,
    ),
    IssueId.UPSTREAM_MISSING: (
        "Remote Branch Does Not Exist",
        "Branch '{branch}' has no usable upstream and the remote has "
        "no branch of that name (it was never pushed, or was deleted).",
        "Continue: the push will create it with \"--set-upstream\".",
        True,
    ),
    IssueId.UPSTREAM_BROKEN: (
        "Upstream Tracking Is Broken",
        "The remote has branch '{branch}' but the local branch does "
        "not track it correctly.",
        "Reset the upstream tracking to 'origin/{branch}'.",
        True,
    ),
    IssueId.BRANCHES_DIVERGED: (
        "Local & Remote Have Diverged",
        "Your branch is {ahead} commit(s) ahead and {behind} commit(s) "
        "behind the remote; a plain push will be rejected.",
        "Pull with rebase to replay your commits on top of the remote, "
        "then push.",
        True,
    ),
    IssueId.BEHIND_REMOTE: (
        "Branch Is Behind Remote",
        "Your branch is {behind} commit(s) behind the remote.",
        "Pull the latest changes before pushing.",
        True,
    ),
    IssueId.DIRTY_SUBMODULES: (
        "Submodules Have Uncommitted Changes",
        "{count} submodule(s) have local changes:\n{submodules}\n"
        "The parent repository cannot record them until they are "
        "committed inside the submodule.",
        "Commit inside each submodule first, then stage the submodule "
        "reference in the parent repository.",
        False,
    ),
    IssueId.NOTHING_TO_DO: (
        "No Changes to Commit or Push",
        "The working tree is clean and the branch is up to date with "
        "the remote.",
        "Make some changes first, then run fast push again.",
        False,
    ),
    IssueId.DETACHED_HEAD: (
        "Detached HEAD State",
        "HEAD is not on any branch; commits made here can be lost.",
        "Create a new branch from this commit.",
        True,
    ),
    IssueId.STALE_LOCK: (
        "Stale Git Lock File Detected",
        "index.lock is {age} old; a previous git process most likely "
        "crashed.",
        "Remove the stale lock file.",
        True,
    ),
    IssueId.ACTIVE_LOCK: (
        "Git Lock File Exists",
        "index.lock exists; another git process may be running.",
        "Wait for it to finish, or remove the lock if that process "
        "crashed.",
        False,
    ),
    IssueId.PUSH_REJECTED: (
        "Push Rejected",
        "The remote has commits your branch does not have:\n{reason}",
        "Pull with rebase and push once more.",
        True,
    ),
}

HANDLED_BY_WORKFLOW: frozenset[str] = frozenset({
    IssueId.NO_REPO.value,
    IssueId.NO_REMOTE.value,
})

EXPECTED_WITHOUT_COMMITS: frozenset[str] = frozenset({
    IssueId.DETACHED_HEAD.value,
    IssueId.UPSTREAM_MISSING.value,
    IssueId.UPSTREAM_BROKEN.value,
    IssueId.NOTHING_TO_DO.value,
})


class _Defaults(dict):
    def __missing__(self, key: str) -> str: return "?"


def make_issue(issue_id: IssueId, **context: object) -> Issue:
    """Build the Issue for `issue_id`, filling its text templates."""
    title, description, resolution, fixable = ISSUE_TEXT[issue_id]
    values = _Defaults(context)
    return Issue(
        id=issue_id.value,
        title=title,
        description=description.format_map(values),
        resolution=resolution.format_map(values),
        auto_fixable=fixable,
    )


def _bullets(items: list[str]) -> str:
    return "\n".join(f"  - {item}" for item in items)


def _age(seconds: float) -> str:
    minutes = int(seconds // 60)
    if minutes < 60: return f"{minutes} min"
    return f"{minutes // 60} h {minutes % 60} min"


def diagnose(inspector: RepositoryInspector) -> list[Issue]:
    """
    Run every pre-flight check and return the Issues found

    A directory that is not a repository yields exactly
    `[no-repo]` and nothing else is queried. Otherwise the
    local facts are gathered concurrently (all read-only) and
    the upstream divergence is computed afterwards; the
    resulting order is fixed:

      merge-conflicts, rebase/merge-in-progress, no-remote,
      upstream-missing/broken or diverged/behind,
      dirty-submodules, nothing-to-do, detached-head,
      stale-lock/active-lock

    Returns:
        list[Issue]: empty when the repository is ready
    """
    if not inspector.is_repo():
        issues = [make_issue(IssueId.NO_REPO)]
        _report(issues)
        return issues

    facts = gather({
        "conflicts": inspector.conflicts,
        "rebase": inspector.rebase_in_progress,
        "merge": inspector.merge_in_progress,
        "has_remote": inspector.has_remote,
        "branch": inspector.current_branch,
        "submodules": inspector.dirty_submodules,
        "clean": inspector.is_clean,
        "staged": inspector.staged_files,
        "detached": inspector.is_detached,
        "lock": inspector.index_lock,
    })
    issues: list[Issue] = []

    conflicts = facts["conflicts"]
    if conflicts:
        issues.append(make_issue(IssueId.MERGE_CONFLICTS,
            count=len(conflicts), files=_bullets(conflicts)))  # type: ignore[arg-type]
    if facts["rebase"]:
        issues.append(make_issue(IssueId.REBASE_IN_PROGRESS))
    if facts["merge"]:
        issues.append(make_issue(IssueId.MERGE_IN_PROGRESS))

    has_remote  = bool(facts["has_remote"])
    branch      = facts["branch"]
    divergence  = None
    if not has_remote:
        issues.append(make_issue(IssueId.NO_REMOTE))
    elif isinstance(branch, str):
        divergence = inspector.divergence()
        if divergence.no_upstream:
            if inspector.has_remote_branch(branch):
                issues.append(make_issue(IssueId.UPSTREAM_BROKEN,
                    branch=branch))
            else: issues.append(make_issue(IssueId.UPSTREAM_MISSING,
                  branch=branch))
        elif divergence.diverged:
            issues.append(make_issue(IssueId.BRANCHES_DIVERGED,
                ahead=divergence.ahead, behind=divergence.behind))
        elif divergence.behind_only:
            issues.append(make_issue(IssueId.BEHIND_REMOTE,
                behind=divergence.behind))

    submodules = facts["submodules"]
    if submodules:
        listed = [f"{s.name} ({s.status.value})" for s in submodules]  # type: ignore[attr-defined]
        issues.append(make_issue(IssueId.DIRTY_SUBMODULES,
            count=len(listed), submodules=_bullets(listed)))

    # without an upstream nothing counts as ahead
    ahead = divergence.ahead if divergence else 0
    if facts["clean"] and not facts["staged"] and has_remote \
    and ahead == 0:
        issues.append(make_issue(IssueId.NOTHING_TO_DO))

    if facts["detached"]:
        issues.append(make_issue(IssueId.DETACHED_HEAD))

    lock = facts["lock"]
    if lock is not None:
        if lock.stale:  # type: ignore[attr-defined]
            issues.append(make_issue(IssueId.STALE_LOCK,
                age=_age(lock.age_s)))  # type: ignore[attr-defined]
        else: issues.append(make_issue(IssueId.ACTIVE_LOCK))

    _report(issues)
    return issues


def _report(issues: list[Issue]) -> None:
    ids = [issue.id for issue in issues]
    logger.info("pre-flight issues: %s", ", ".join(ids) or "none")
    telemetry.emit_event(
        event_type="diagnosis",
        step_id="diagnose",
        payload={"issues": ids},
    )


def relevant_issues(issues: list[Issue], has_commits: bool) -> list[Issue]:
    """
    Issues the remediation step must handle

    `no-repo` and `no-remote` are settled by their own workflow
    states. In a repository without commits, a missing
    upstream, a detached HEAD and a clean tree are expected
    rather than anomalous.
    """
    kept = [i for i in issues if i.id not in HANDLED_BY_WORKFLOW]
    if has_commits: return kept
    return [i for i in kept if i.id not in EXPECTED_WITHOUT_COMMITS]


def split_issues(issues: list[Issue]) -> tuple[list[Issue], list[Issue]]:
    """Partition into (blocking, auto_fixable), keeping order."""
    blocking = [i for i in issues if i.blocking]
    fixable  = [i for i in issues if not i.blocking]
    return blocking, fixable


def has_blocking(issues: list[Issue]) -> bool:
    return any(issue.blocking for issue in issues)
