"""Workflow orchestration engine for fastpush."""
# ======================= STANDARDS =======================
from typing import Callable
import logging as log
import sys

# ======================== LOCALS =========================
from .diagnostics import Issue, IssueId, make_issue, relevant_issues
from .errors import BranchNotFound, FastPushAborted, FastPushError
from .error_model import (
    FailureEvent,
    error_policy_for,
    resolve_failure_code,
)
from .errors import GitCommandError, RepoCreationError
from .payload import FastPushPayload, RepoMode, normalize_payload
from .remediation import DecisionMaker, RemediationProtocol
from .facade import GitFacade, Runner
from .inspector import RepositoryInspector
from .repository import RepositoryHandle
from .classifier import ErrorKind
from .github import RepoCreator
from .bridge import HostBridge
from .flowlog import FlowLog
from . import diagnostics
from . import telemetry
from . import _constants as const
from .tui import tui_runner
from . import utils

logger = log.getLogger("fastpush.workflow")

Step = Callable[..., tuple[str | None, utils.StepResult]]


class FastPushOrchestrator:
    """
    Stage, commit and push one repository, safely

    Runs a fixed chain of steps, each a precondition for
    the next:

      repository -> remote -> commits -> branch -> diagnose
      -> remediate -> stage -> commit -> rename -> push

    Nothing is mutated before `remediate` has settled every
    pre-flight issue; a cancel there aborts the run with the
    repository as it was (fixes already applied excepted).

    Usage:
        result = FastPushOrchestrator(handle, payload,
                 AutoDecisionMaker()).orchestrate()
    """

    def __init__(self, handle: RepositoryHandle,
                 payload: FastPushPayload,
                 decider: DecisionMaker,
                 bridge: HostBridge | None = None,
                 repo_creator: RepoCreator | None = None,
                 runner: Runner | None = None,
                 flow_log: FlowLog | None = None) -> None:
        self.handle       = handle
        self.payload      = normalize_payload(payload)
        self.decider      = decider
        self.repo_creator = repo_creator
        self.flow_log     = flow_log
        self.facade       = GitFacade(handle, bridge, runner)
        self.inspector    = RepositoryInspector(self.facade)
        self.remediation  = RemediationProtocol(self.facade, decider)
        self.out          = utils.Output(quiet=const.QUIET)

        self.has_commits  = False
        self.set_upstream = False
        self.issues: list[Issue] = []
        self.preflight_status = "skipped"
        self.failure_hint: FailureEvent | None = None

    def _set_failure_hint(
        self,
        step: str,
        label: str,
        result: str,
        message: str,
        code: str = "",
    ) -> None:
        code   = resolve_failure_code(step=step, preferred_code=code)
        policy = error_policy_for(code)
        self.failure_hint = FailureEvent(
            step=step,
            label=label,
            result=result,
            message=message.strip(),
            code=code,
            severity=policy["severity"],
            category=policy["category"],
        )

    # ---------- Flow log ----------
    def _start_flow(self) -> str | None:
        if self.flow_log is None: return None
        return self.flow_log.start(
            operation="fast-push",
            details=self.payload.commit_message,
            branch=self.payload.branch,
            repo_name=self.handle.name,
        )

    def _finish_flow(self, entry: str | None, status: str,
                     error: str | None = None) -> None:
        if self.flow_log is None or entry is None: return
        self.flow_log.finish(entry, status, error,
            preflight_status=self.preflight_status)

    def _emit_step(self, key: str, label: str,
                   result: utils.StepResult, msg: str | None = None
                  ) -> None:
        telemetry.emit_event("step", key, {
            "label": label,
            "result": result.name.lower(),
            "message": msg or "",
        })

    # ---------- Workflow Plan ----------
    def _workflow_plan(self) -> tuple[list[Step], list[str], list[str]]:
        steps: list[Step] = [
            self.ensure_repository,
            self.ensure_remote,
            self.resolve_commits,
            self.ensure_branch,
            self.diagnose,
            self.remediate,
            self.stage,
            self.commit,
            self.rename_branch,
            self.push,
        ]
        labels = [
            "Detect repository",
            "Ensure remote",
            "Check history",
            "Select target branch",
            "Pre-flight diagnostics",
            "Resolve issues",
            "Stage changes",
            "Commit",
            "Name first branch",
            "Push to remote",
        ]
        keys = [
            "repository",
            "remote",
            "commits",
            "branch",
            "diagnose",
            "remediate",
            "stage",
            "commit",
            "rename",
            "push",
        ]
        return steps, labels, keys

    # ---------- Orchestration ----------
    def orchestrate(self) -> str:
        """
        Execute the fast-push workflow

        Each step returns a message and a `StepResult`:
          - OK/SKIP: continue with the next step
          - DONE: stop, the message is the result
          - ABORT: stop, raise FastPushAborted(message)
          - FAIL: stop, raise FastPushError(message)

        FastPushErrors raised inside a step propagate
        unchanged after the failure is recorded.

        Returns:
            str: "pushed <branch> to origin" or
                 "nothing to push"
        """
        steps, labels, keys = self._workflow_plan()
        use_ui = bool(not const.PLAIN and not const.QUIET
                 and sys.stdout.isatty())
        entry  = self._start_flow()
        logger.info("fast push started in %s (branch=%s)",
            self.handle.path, self.payload.branch)

        with tui_runner(labels, enabled=use_ui) as ui:
            for i, step in enumerate(steps):
                ui.start(i)
                try: msg, result = step(step_idx=i)
                except FastPushError as e:
                    ui.finish(i, utils.StepResult.FAIL)
                    self._emit_step(keys[i], labels[i],
                        utils.StepResult.FAIL, str(e))
                    self._set_failure_hint(keys[i], labels[i], "fail",
                        str(e), getattr(e, "code", ""))
                    self._finish_flow(entry, "failed", str(e))
                    logger.error("%s failed: %s", keys[i], e)
                    raise
                ui.finish(i, result)
                self._emit_step(keys[i], labels[i], result, msg)
                logger.debug("step %s -> %s", keys[i], result.name)

                if result is utils.StepResult.DONE:
                    self._finish_flow(entry, "success")
                    return msg or "done"
                if result is utils.StepResult.ABORT:
                    reason = msg or f"{labels[i]} aborted"
                    self._set_failure_hint(keys[i], labels[i],
                        "abort", reason, FastPushAborted.code)
                    self._finish_flow(entry, "cancelled", reason)
                    raise FastPushAborted(reason, keys[i])
                if result is utils.StepResult.FAIL:
                    reason = msg or f"{labels[i]} failed"
                    self._set_failure_hint(keys[i], labels[i], "fail",
                        reason)
                    self._finish_flow(entry, "failed", reason)
                    raise FastPushError(reason)

        # push always ends the chain; reaching here means it was skipped
        self._finish_flow(entry, "success")
        return "nothing to push"

    # ---------- Step: Repository ----------
    def ensure_repository(self, step_idx: int | None = None
                         ) -> tuple[str | None, utils.StepResult]:
        """Initialize the directory when it is not a repository yet."""
        if self.inspector.is_repo():
            self.out.success("repo root: "
                f"{utils.pathit(self.handle.path)}", step_idx)
            return None, utils.StepResult.OK

        if self.payload.repo_mode is RepoMode.NEW:
            self.facade.init()
            self.out.success("initialized new repository", step_idx)
            return None, utils.StepResult.OK

        outcome = self.remediation.resolve([make_issue(IssueId.NO_REPO)])
        if not outcome.proceed:
            return outcome.reason or "no git repository found", \
                   utils.StepResult.ABORT
        return None, utils.StepResult.OK

    # ---------- Step: Remote ----------
    def ensure_remote(self, step_idx: int | None = None
                     ) -> tuple[str | None, utils.StepResult]:
        """
        Make sure `origin` points where the payload wants

        New-repository runs create the GitHub repository first
        and use its clone URL; an explicit remote URL replaces
        the current one; otherwise a missing origin is asked
        for through remediation.
        """
        url = self.payload.remote_url
        if self.payload.repo_mode is RepoMode.NEW:
            if self.repo_creator is None:
                raise RepoCreationError("creating a repository needs a "
                      "GitHub token (--gh-token or GITHUB_TOKEN)")
            assert self.payload.new_repo_name is not None
            created = self.repo_creator.create(
                self.payload.new_repo_name,
                private=self.payload.new_repo_private,
                description=self.payload.new_repo_description,
            )
            self.out.success(f"created {created.full_name or created.name}"
                f" {created.html_url}".rstrip(), step_idx)
            url = created.clone_url or created.ssh_url

        current = self.facade.remote_url()
        if url:
            if url != current:
                self.facade.set_remote(url)
                self.out.success(f"origin set to {url}", step_idx)
            return None, utils.StepResult.OK
        if current:
            self.out.info(f"origin: {current}", step_idx=step_idx)
            return None, utils.StepResult.OK

        outcome = self.remediation.resolve(
                  [make_issue(IssueId.NO_REMOTE)])
        if not outcome.proceed:
            return outcome.reason or "no remote configured", \
                   utils.StepResult.ABORT
        return None, utils.StepResult.OK

    # ---------- Step: History ----------
    def resolve_commits(self, step_idx: int | None = None
                       ) -> tuple[str | None, utils.StepResult]:
        self.has_commits = self.inspector.has_commits()
        if not self.has_commits:
            self.out.info("repository has no commits yet",
                step_idx=step_idx)
        return None, utils.StepResult.OK

    # ---------- Step: Branch ----------
    def ensure_branch(self, step_idx: int | None = None
                     ) -> tuple[str | None, utils.StepResult]:
        """
        Check out the payload's branch, creating it when needed

        Skipped for repositories without commits (the branch is
        named after the first commit) and on a detached HEAD
        (left to the detached-head remediation).
        """
        if not self.has_commits or self.inspector.is_detached():
            return None, utils.StepResult.SKIP
        target = self.payload.branch
        if self.facade.current_branch() == target:
            return None, utils.StepResult.OK

        try:
            self.facade.switch_branch(target)
            self.out.success(f"switched to {target}", step_idx)
        except BranchNotFound:
            self.facade.create_branch(target)
            self.out.success(f"created branch {target}", step_idx)
        return None, utils.StepResult.OK

    # ---------- Step: Diagnostics ----------
    def diagnose(self, step_idx: int | None = None
                ) -> tuple[str | None, utils.StepResult]:
        self.issues = diagnostics.diagnose(self.inspector)
        relevant    = relevant_issues(self.issues, self.has_commits)
        self.preflight_status = "failed" if relevant else "passed"
        if not relevant:
            self.out.success("pre-flight checks passed", step_idx)
            return None, utils.StepResult.OK
        titles = [issue.title for issue in relevant]
        self.out.warn("pre-flight found:\n" + utils.to_list(titles),
            fit=False, step_idx=step_idx)
        return None, utils.StepResult.OK

    def remediate(self, step_idx: int | None = None
                 ) -> tuple[str | None, utils.StepResult]:
        relevant = relevant_issues(self.issues, self.has_commits)
        if not relevant: return None, utils.StepResult.SKIP

        outcome = self.remediation.resolve(relevant)
        if outcome.nothing_to_do:
            self.out.info("nothing to push", step_idx=step_idx)
            return "nothing to push", utils.StepResult.DONE
        if not outcome.proceed:
            return outcome.reason, utils.StepResult.ABORT
        self.set_upstream = outcome.set_upstream
        self.preflight_status = "passed"
        return None, utils.StepResult.OK

    # ---------- Step: Stage and commit ----------
    def stage(self, step_idx: int | None = None
             ) -> tuple[str | None, utils.StepResult]:
        self.facade.stage_all()
        return None, utils.StepResult.OK

    def commit(self, step_idx: int | None = None
              ) -> tuple[str | None, utils.StepResult]:
        """Commit staged changes; nothing to commit is not an error."""
        try: self.facade.commit(self.payload.commit_message)
        except GitCommandError as e:
            if e.kind is not ErrorKind.NOTHING_TO_COMMIT: raise
            self.out.info("nothing to commit, pushing existing commits",
                step_idx=step_idx)
            return None, utils.StepResult.OK
        self.out.success(f"committed: {self.payload.commit_message}",
            step_idx)
        return None, utils.StepResult.OK

    def rename_branch(self, step_idx: int | None = None
                     ) -> tuple[str | None, utils.StepResult]:
        """Give the first commit's branch the payload's name."""
        if self.has_commits: return None, utils.StepResult.SKIP
        if not self.inspector.has_commits():
            self.out.info("empty repository, nothing to push",
                step_idx=step_idx)
            return "nothing to push", utils.StepResult.DONE

        target = self.payload.branch
        if self.facade.current_branch() != target:
            self.facade.rename_branch(target)
            self.out.success(f"branch renamed to {target}", step_idx)
        return None, utils.StepResult.OK

    # ---------- Step: Push ----------
    def push(self, step_idx: int | None = None
            ) -> tuple[str | None, utils.StepResult]:
        """
        Push, recovering from one rejection

        A rejected push is offered exactly one pull-with-rebase
        followed by a second push; a second rejection
        propagates as the final error.
        """
        set_upstream = self.set_upstream or not self.has_commits
        try: self.facade.push(set_upstream=set_upstream)
        except GitCommandError as e:
            if e.kind is not ErrorKind.PUSH_REJECTED: raise
            logger.warning("push rejected: %s", e.stderr)
            self.out.warn("push rejected, remote has new commits",
                step_idx=step_idx)
            issue   = make_issue(IssueId.PUSH_REJECTED, reason=e.stderr)
            outcome = self.remediation.resolve([issue])
            if not outcome.proceed:
                return outcome.reason or "push rejected", \
                       utils.StepResult.ABORT
            self.facade.push(set_upstream=set_upstream)

        branch = self.facade.current_branch() or self.payload.branch
        msg    = f"pushed {branch} to {const.DEFAULT_REMOTE}"
        self.out.success(msg, step_idx)
        return msg, utils.StepResult.DONE
