"""
Remediation protocol

Walks the pre-flight Issues with an external decision-maker:
blocking issues can only be acknowledged or cancelled,
auto-fixable ones are dispatched by id to a fix on the git
façade. A single cancel stops the whole flow; fixes already
applied stay applied.
"""
# ======================= STANDARDS =======================
from dataclasses import dataclass, field
from typing import Callable, Protocol, Sequence
import logging as log
import time

# ======================== LOCALS =========================
from .remediation_policy import can_run_remediation, requires_confirmation
from .diagnostics import Issue, IssueId, split_issues
from .errors import FastPushError, GitCommandError
from .utils import StepResult
from .facade import GitFacade
from . import telemetry

logger = log.getLogger("fastpush.remediation")

# exact choice strings offered to the decision-maker
FIXED_IT        = "I Fixed It - Continue"
CANCEL          = "Cancel"
PULL_REBASE     = "Pull with Rebase"
REMOVE_LOCK     = "Remove Lock File"
CONTINUE_CREATE = "Continue - Push Will Create It"
FIX_UPSTREAM    = "Fix Upstream Tracking"
CONTINUE_ANYWAY = "Continue Anyway"
INIT_REPOSITORY = "Initialize Repository"
PULL_AND_RETRY  = "Pull & Retry"

SAFE_CHOICES = frozenset({
    PULL_REBASE,
    PULL_AND_RETRY,
    REMOVE_LOCK,
    CONTINUE_CREATE,
    FIX_UPSTREAM,
    INIT_REPOSITORY,
})


class DecisionMaker(Protocol):
    """Whoever answers remediation questions: a person or a policy."""
    interactive: bool
    autofix: bool

    def choose(self, issue: Issue, choices: Sequence[str]
              ) -> str | None: ...

    def ask(self, issue: Issue, prompt: str, placeholder: str = ""
           ) -> str | None: ...

    def notify(self, message: str, level: str = "info") -> None: ...


@dataclass
class RemediationOutcome:
    proceed: bool
    reason: str = ""
    nothing_to_do: bool = False
    resolved: list[str] = field(default_factory=list)
    set_upstream: bool = False


def _emit_remediation_event(
    action: str,
    outcome: str,
    details: dict[str, str] | None = None,
) -> None:
    telemetry.emit_event(
        event_type="remediation",
        step_id=action,
        payload={
            "action": action,
            "outcome": outcome,
            "details": details or {},
        },
    )


def recovery_branch_name() -> str:
    return f"recovered-{time.strftime('%Y%m%d%H%M%S')}"


class RemediationProtocol:
    """
    Resolve a list of Issues against a decision-maker

    Usage:
        outcome = RemediationProtocol(facade, decider).resolve(issues)
        if not outcome.proceed: stop(outcome.reason)

    Handlers return StepResult.OK to move to the next issue
    or StepResult.ABORT to stop; the abort reason is kept in
    `last_reason`.
    """

    def __init__(self, facade: GitFacade, decider: DecisionMaker) -> None:
        self.facade       = facade
        self.decider      = decider
        self.last_reason  = ""
        self.set_upstream = False
        self._handlers: dict[str, Callable[[Issue], StepResult]] = {
            IssueId.BRANCHES_DIVERGED.value: self.pull_rebase,
            IssueId.BEHIND_REMOTE.value: self.pull_rebase,
            IssueId.PUSH_REJECTED.value: self.pull_and_retry,
            IssueId.DETACHED_HEAD.value: self.detached_head,
            IssueId.STALE_LOCK.value: self.stale_lock,
            IssueId.UPSTREAM_MISSING.value: self.upstream_missing,
            IssueId.UPSTREAM_BROKEN.value: self.upstream_broken,
            IssueId.NO_REPO.value: self.init_repository,
            IssueId.NO_REMOTE.value: self.add_origin,
        }

    # ---------- Entry point ----------
    def resolve(self, issues: list[Issue]) -> RemediationOutcome:
        """
        Present every issue, blocking ones first

        Returns:
            RemediationOutcome: `proceed` is False when anything
                                was cancelled, blocked by policy,
                                or when there is nothing to do
        """
        self.last_reason  = ""
        self.set_upstream = False
        blocking, fixable = split_issues(issues)
        resolved: list[str] = []

        for issue in blocking:
            if issue.id == IssueId.NOTHING_TO_DO.value:
                self.decider.notify(issue.description, "info")
                _emit_remediation_event("abort", "nothing-to-do")
                return RemediationOutcome(False, "nothing to push",
                       nothing_to_do=True, resolved=resolved)
            if self.acknowledge(issue) is not StepResult.OK:
                return self._stopped(resolved)
            resolved.append(issue.id)

        for issue in fixable:
            handler = self._handlers.get(issue.id, self.continue_anyway)
            logger.info("remediating %s", issue.id)
            if handler(issue) is not StepResult.OK:
                return self._stopped(resolved)
            resolved.append(issue.id)

        return RemediationOutcome(True, resolved=resolved,
               set_upstream=self.set_upstream)

    def _stopped(self, resolved: list[str]) -> RemediationOutcome:
        logger.warning("remediation stopped: %s", self.last_reason)
        return RemediationOutcome(False, self.last_reason,
               resolved=resolved, set_upstream=self.set_upstream)

    # ---------- Helpers ----------
    def _allow(self, action: str) -> bool:
        allowed, reason = can_run_remediation(
            action=action,
            ci_mode=not self.decider.interactive,
            autofix=self.decider.autofix,
            interactive=self.decider.interactive,
        )
        if not allowed:
            self.last_reason = f"{action}: {reason}"
            _emit_remediation_event(action, "blocked", {"reason": reason})
            self.decider.notify(self.last_reason, "warn")
            return False
        confirmed = "explicit" if requires_confirmation(action,
                    self.decider.autofix) else "implicit"
        _emit_remediation_event(action, "allowed",
            {"confirmation": confirmed})
        return True

    def _cancel(self, issue: Issue) -> StepResult:
        self.last_reason = f"cancelled at '{issue.title}'"
        _emit_remediation_event("abort", "cancelled", {"issue": issue.id})
        return StepResult.ABORT

    def _offer(self, issue: Issue, fix: str, action: str) -> bool:
        choice = self.decider.choose(issue, [fix, CANCEL])
        if choice != fix:
            self._cancel(issue)
            return False
        return self._allow(action)

    def _failed(self, action: str, summary: str,
                error: Exception) -> StepResult:
        self.last_reason = f"{summary}: {error}"
        _emit_remediation_event(action, "failed", {"reason": str(error)})
        self.decider.notify(self.last_reason, "warn")
        return StepResult.ABORT

    def _succeeded(self, action: str, message: str,
                   details: dict[str, str] | None = None) -> StepResult:
        _emit_remediation_event(action, "success", details)
        self.decider.notify(message, "success")
        return StepResult.OK

    # ---------- Blocking ----------
    def acknowledge(self, issue: Issue) -> StepResult:
        choice = self.decider.choose(issue, [FIXED_IT, CANCEL])
        if choice != FIXED_IT: return self._cancel(issue)
        if not self._allow("acknowledge_manual_fix"):
            return StepResult.ABORT
        _emit_remediation_event("acknowledge_manual_fix", "success",
            {"issue": issue.id})
        return StepResult.OK

    # ---------- Auto-fixable ----------
    def pull_rebase(self, issue: Issue) -> StepResult:
        if not self._offer(issue, PULL_REBASE, "pull_rebase"):
            return StepResult.ABORT
        return self._run_pull_rebase()

    def pull_and_retry(self, issue: Issue) -> StepResult:
        if not self._offer(issue, PULL_AND_RETRY, "pull_rebase"):
            return StepResult.ABORT
        return self._run_pull_rebase()

    def _run_pull_rebase(self) -> StepResult:
        try: message = self.facade.pull_rebase()
        except GitCommandError as e:
            return self._failed("pull_rebase", "pull with rebase failed",
                   e)
        return self._succeeded("pull_rebase", message)

    def detached_head(self, issue: Issue) -> StepResult:
        if not self._allow("recover_detached_head"):
            return StepResult.ABORT
        name = self.decider.ask(issue, "Name for the new branch",
               recovery_branch_name())
        if not name: return self._cancel(issue)
        try: self.facade.create_branch_from_detached_head(name)
        except FastPushError as e:
            return self._failed("recover_detached_head",
                   "could not create branch", e)
        return self._succeeded("recover_detached_head",
               f"now on new branch '{name}'", {"branch": name})

    def stale_lock(self, issue: Issue) -> StepResult:
        if not self._offer(issue, REMOVE_LOCK, "stale_lock_cleanup"):
            return StepResult.ABORT
        try: removed = self.facade.remove_index_lock()
        except (OSError, GitCommandError) as e:
            return self._failed("stale_lock_cleanup",
                   "could not remove the lock file", e)
        message = "removed stale index.lock" if removed \
             else "lock file was already gone"
        return self._succeeded("stale_lock_cleanup", message)

    def upstream_missing(self, issue: Issue) -> StepResult:
        if not self._offer(issue, CONTINUE_CREATE,
               "continue_create_upstream"): return StepResult.ABORT
        self.set_upstream = True
        _emit_remediation_event("continue_create_upstream", "success")
        return StepResult.OK

    def upstream_broken(self, issue: Issue) -> StepResult:
        if not self._offer(issue, FIX_UPSTREAM, "set_upstream_tracking"):
            return StepResult.ABORT
        try: self.facade.fix_upstream_tracking()
        except GitCommandError as e:
            return self._failed("set_upstream_tracking",
                   "could not fix upstream tracking", e)
        return self._succeeded("set_upstream_tracking",
               "upstream tracking reset")

    def init_repository(self, issue: Issue) -> StepResult:
        if not self._offer(issue, INIT_REPOSITORY, "init_repository"):
            return StepResult.ABORT
        try: self.facade.init()
        except GitCommandError as e:
            return self._failed("init_repository",
                   "could not initialize the repository", e)
        return self._succeeded("init_repository",
               "initialized empty git repository")

    def add_origin(self, issue: Issue) -> StepResult:
        if not self._allow("add_origin"): return StepResult.ABORT
        url = self.decider.ask(issue, "Remote URL for origin",
              "https://github.com/user/repo.git")
        if not url: return self._cancel(issue)
        try: self.facade.set_remote(url)
        except FastPushError as e:
            return self._failed("add_origin", "could not set origin", e)
        return self._succeeded("add_origin", "origin configured")

    def continue_anyway(self, issue: Issue) -> StepResult:
        logger.info("no dedicated fix for %s", issue.id)
        if not self._offer(issue, CONTINUE_ANYWAY, "continue_anyway"):
            return StepResult.ABORT
        _emit_remediation_event("continue_anyway", "success",
            {"issue": issue.id})
        return StepResult.OK
