#!/usr/bin/env python3
"""
Primary CLI entry point for `fastpush`.

Stages, commits and pushes a working copy in one command,
after pre-flight diagnostics have checked that doing so is
safe. Problems found before anything is changed go through
the remediation protocol: interactively with -i, otherwise
answered by policy (cancel, or the safe fix with -a).

Read-only modes: --check/--check-json, --status, --history
and --show-config.

Uses `main` as the safe entry point to invoke the CLI.
"""


# ======================= STANDARDS =======================
import argparse
import json
import sys
import os

# ======================== LOCALS =========================
from .decisions import AutoDecisionMaker, ConsoleDecisionMaker
from .remediation import DecisionMaker
from .error_model import (
    FailureEvent,
    build_error_envelope,
    error_policy_for,
    resolve_failure_code,
)
from .workflow_engine import FastPushOrchestrator
from .repository import RepositoryHandle
from .github import GitHubRepoCreator
from .payload import FastPushPayload
from .errors import FastPushError
from . import _constants as const
from .flowlog import FlowLog
from . import __version__
from . import classifier
from . import telemetry
from . import reports
from . import config
from . import utils


DESCRIPTION = "Stage, commit and push in one step, with pre-flight " \
            + "checks and guided fixes for unsafe repository states."

COMMON_FAILURE_FIXES: dict[str, tuple[str, str]] = {
    "FP_GIT_REPOSITORY_FAIL": (
        "repository setup failed",
        "Run inside a git repository or let fastpush initialize one.",
    ),
    "FP_NET_REMOTE_FAIL": (
        "remote setup failed",
        "Pass a valid remote with --remote-url or run `git remote add "
        "origin <url>`.",
    ),
    "FP_NET_REMOTE_URL_INVALID": (
        "remote URL rejected",
        "Use an https://, ssh://, git@ or file:// URL.",
    ),
    "FP_NET_REPO_CREATE_FAIL": (
        "GitHub repository creation failed",
        "Check --gh-token scopes and that the name is free.",
    ),
    "FP_GIT_BRANCH_NOT_FOUND": (
        "branch not found",
        "Check the branch name or create it with -b.",
    ),
    "FP_INT_REMEDIATION_CANCELLED": (
        "fast push cancelled",
        "Fix the reported issue, or rerun with -i or --auto-fix.",
    ),
    "FP_GIT_COMMIT_FAIL": (
        "commit step failed",
        "Inspect staged changes and commit hooks, then rerun.",
    ),
    "FP_NET_PUSH_FAIL": (
        "push step failed",
        "Verify remote, credentials and network, then retry.",
    ),
    "FP_GIT_NON_FAST_FORWARD": (
        "push rejected twice",
        "The remote keeps moving; pull with rebase manually, then push.",
    ),
    "FP_NET_AUTH_FAIL": (
        "authentication failed",
        "Refresh your git credentials or token, then retry.",
    ),
    "FP_GIT_MERGE_CONFLICT": (
        "rebase stopped on conflicts",
        "Resolve the conflicts, run `git rebase --continue`, then rerun.",
    ),
}


def _emit_runtime_failure_ux(
    args: argparse.Namespace,
    envelope: dict[str, object],
    out: utils.Output,
) -> None:
    """Emit concise failure summary with optional advanced details."""
    code    = str(envelope.get("code", "")).strip()
    step    = str(envelope.get("step", "")).strip()
    message = str(envelope.get("message", "")).strip()
    summary, one_liner = COMMON_FAILURE_FIXES.get(
        code,
        ("fast push failed", "Inspect fastpushlog/debug.log and rerun "
         "with --verbose."),
    )
    telemetry.emit_event(
        event_type="error_signal",
        step_id=step or "orchestrate",
        payload={"code": code, "summary": summary, "fix": one_liner},
    )
    out.warn(f"summary: {summary}")
    out.warn(f"fix: {one_liner}")

    if not (getattr(args, "verbose", False)
            or getattr(args, "debug", False)): return

    out.warn("advanced details:")
    out.warn(f"code={code} step={step} "
        f"severity={envelope.get('severity', '')} "
        f"category={envelope.get('category', '')}")
    if message: out.warn(f"message={message}")
    raw_ref = str(envelope.get("raw_ref", "")).strip()
    if raw_ref: out.warn(f"envelope_ref={raw_ref}")


def _build_runtime_error_envelope(
    args: argparse.Namespace,
    error: BaseException,
    exit_code: int,
    failure_hint: FailureEvent | None = None,
) -> dict[str, object]:
    """Build a stable envelope for a failed run."""
    code          = getattr(error, "code", "") \
                 if isinstance(error, FastPushError) else ""
    message       = str(error).strip() or "fast push failed"
    suggested_fix = "Run with --debug for a traceback and inspect " \
                  + "fastpushlog/debug.log."
    step          = failure_hint.step if failure_hint else "orchestrate"

    if isinstance(error, KeyboardInterrupt):
        code          = "FP_INT_KEYBOARD_INTERRUPT"
        message       = "fast push interrupted by keyboard input"
        suggested_fix = "Rerun when ready."
    elif isinstance(error, EOFError):
        code          = "FP_INT_EOF_INTERRUPT"
        message       = "input stream closed during a prompt"
        suggested_fix = "Run interactively or without -i."
    elif isinstance(error, SystemExit):
        message = f"fast push exited with code {exit_code}"
    elif not code:
        code = "FP_INT_UNHANDLED_EXCEPTION"

    if failure_hint is not None:
        code = resolve_failure_code(step=failure_hint.step,
               preferred_code=failure_hint.code or code)
        message = failure_hint.message or message
    code   = code or "FP_INT_WORKFLOW_EXIT_NONZERO"
    policy = error_policy_for(code)

    stderr = getattr(error, "stderr", "")
    context: dict[str, object] = {
        "path": os.path.abspath(getattr(args, "path", ".")),
        "branch": getattr(args, "branch", "") or "",
        "remote_url": getattr(args, "remote_url", "") or "",
        "ci_mode": bool(const.CI_MODE),
        "auto_fix": bool(getattr(args, "auto_fix", False)),
        "unclassified_errors": classifier.unknown_classification_count(),
        "classifier_rule_conflicts": classifier.rule_conflict_count(),
    }
    envelope = build_error_envelope(
        code=code,
        message=message,
        step=step,
        context=context,
        retryable=bool(getattr(error, "transient", False)),
        suggested_fix=suggested_fix,
        stderr_excerpt=str(stderr or message)[:400],
        raw_ref=f"{const.LOG_DIR_NAME}/last_error_envelope.json",
        severity=policy["severity"],
        category=policy["category"],
    )
    return envelope.with_runtime_schema()


def _persist_runtime_error_envelope(
    args: argparse.Namespace,
    envelope: dict[str, object],
    out: utils.Output,
) -> None:
    """Persist the envelope to the project log dir for postmortems."""
    log_dir = utils.log_dir_for(getattr(args, "path", "."))
    path    = os.path.join(log_dir, "last_error_envelope.json")
    try:
        os.makedirs(log_dir, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(telemetry.redact(envelope), f, indent=2)
    except OSError as e:
        out.warn(f"failed to persist error envelope: {e}")
        return
    telemetry.emit_event(
        event_type="runtime_error",
        step_id=str(envelope.get("step", "orchestrate")),
        payload=dict(envelope),
    )
    out.warn(f"error envelope written: {utils.pathit(path)}")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="fastpush", description=DESCRIPTION)
    p.add_argument("--version", action="version",
        version=f"{const.APP} {__version__}")

    # Read-only modes
    p.add_argument("--check", action="store_true")
    p.add_argument("--check-json", action="store_true")
    p.add_argument("--status", action="store_true")
    p.add_argument("--history", action="store_true")
    p.add_argument("--show-config", action="store_true")

    # Payload
    p.add_argument("path", nargs="?", default=".")
    p.add_argument("--branch", "-b", default=const.DEFAULT_BRANCH)
    p.add_argument("--message", "-m",
                   default=const.DEFAULT_COMMIT_MESSAGE)
    p.add_argument("--remote-url", "-r", default=None)

    # GitHub repository creation
    p.add_argument("--new-repo", default=None, metavar="NAME")
    p.add_argument("--private", action="store_true")
    p.add_argument("--description", default="")
    p.add_argument("--gh-token", default=None)

    # Behaviour
    p.add_argument("--interactive", "-i", action="store_true")
    p.add_argument("--ci", action="store_true")
    p.add_argument("--auto-fix", "-a", action="store_true")
    p.add_argument("--quiet", "-q", action="store_true")
    p.add_argument("--plain", action="store_true")
    p.add_argument("--verbose", "-v", action="store_true")
    p.add_argument("--debug", "-d", action="store_true")
    return p


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Add and parse arguments, then apply layered config."""
    parser = _build_parser()
    parsed = parser.parse_args(argv)
    return config.apply_layered_config(parsed, argv, parser)


def build_payload(args: argparse.Namespace) -> FastPushPayload:
    return FastPushPayload.from_mapping({
        "repo_mode": "new" if args.new_repo else "existing",
        "remote_url": args.remote_url,
        "new_repo_name": args.new_repo,
        "new_repo_description": args.description,
        "new_repo_private": args.private,
        "branch": args.branch,
        "commit_message": args.message,
    })


def build_decider(args: argparse.Namespace) -> DecisionMaker:
    if const.CI_MODE:
        return AutoDecisionMaker(autofix=const.AUTOFIX,
               out=utils.Output(quiet=args.quiet))
    return ConsoleDecisionMaker(utils.Output(quiet=args.quiet))


def _dispatch(args: argparse.Namespace, out: utils.Output) -> int:
    if args.show_config: return reports.show_config(args, out)
    if args.check or args.check_json: return reports.run_check(args, out)
    if args.status: return reports.show_status(args, out)
    if args.history: return reports.show_history(args, out)
    return -1


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point for the `fastpush` tool

    Parses arguments and layered config, opens the log
    directory, then either runs a read-only mode or the
    fast-push workflow. Every failure ends with a short
    summary, a one-line fix and a persisted error envelope;
    Ctrl-C and closed input exit as "forced exit".
    """
    args   = parse_args(sys.argv[1:] if argv is None else argv)
    target = utils.log_dir_for(args.path)
    const.sync_runtime_flags(args)
    telemetry.set_run_id()

    log_dir = None
    if os.path.isdir(os.path.dirname(target)):
        log_dir = utils.get_log_dir(os.path.dirname(target))
        telemetry.configure_logger(log_dir)
        telemetry.init_event_stream(log_dir)

    out  = utils.Output(quiet=args.quiet)
    code = 0
    last_error: BaseException | None = None
    orchestrator: FastPushOrchestrator | None = None
    try:
        code = _dispatch(args, out)
        if code >= 0: return None
        code = 0

        token   = args.gh_token or os.environ.get("GITHUB_TOKEN")
        creator = GitHubRepoCreator(token) if args.new_repo and token \
             else None
        orchestrator = FastPushOrchestrator(
            RepositoryHandle.for_path(args.path),
            build_payload(args),
            build_decider(args),
            repo_creator=creator,
            flow_log=FlowLog(log_dir) if log_dir else None,
        )
        result = orchestrator.orchestrate()
        out.success(result)
    except BaseException as e:
        last_error = e
        code = 1
        exit = (KeyboardInterrupt, EOFError, SystemExit)
        if const.DEBUG: raise
        if isinstance(e, SystemExit) and isinstance(e.code, int):
            code = e.code
        if not isinstance(e, exit): out.warn(f"ERROR: {e}")
        elif not isinstance(e, SystemExit):
            i = 1 if not isinstance(e, EOFError) else 2
            out.raw("\n" * i + const.FASTPUSH, end="")
            out.raw(utils.color("forced exit", const.BAD))
    finally:
        if code != 0 and last_error is not None:
            hint = orchestrator.failure_hint if orchestrator else None
            envelope = _build_runtime_error_envelope(args, last_error,
                       code, hint)
            _emit_runtime_failure_ux(args, envelope, out)
            _persist_runtime_error_envelope(args, envelope, out)
        telemetry.close_event_stream()
        sys.exit(code)
