"""Read-only CLI modes: check, status, history and config."""
# ======================= STANDARDS =======================
from datetime import datetime, timezone
import argparse
import json
import os

# ======================== LOCALS =========================
from .diagnostics import Issue, diagnose, has_blocking, split_issues
from .inspector import RepositoryInspector
from .repository import RepositoryHandle
from .facade import GitFacade
from .flowlog import FlowLog
from . import config
from . import utils

CHECK_SCHEMA     = "fastpush.check.v1"
EXIT_CLEAN       = 0
EXIT_AUTOFIXABLE = 10
EXIT_BLOCKING    = 20


def _inspector(args: argparse.Namespace) -> RepositoryInspector:
    handle = RepositoryHandle.for_path(getattr(args, "path", "."))
    return RepositoryInspector(GitFacade(handle))


def check_exit_code(issues: list[Issue]) -> int:
    if has_blocking(issues): return EXIT_BLOCKING
    if issues: return EXIT_AUTOFIXABLE
    return EXIT_CLEAN


def run_check(args: argparse.Namespace, out: utils.Output,
              inspector: RepositoryInspector | None = None) -> int:
    """
    Run pre-flight diagnostics without changing anything

    Exit codes:
        0  - ready to push
        10 - only auto-fixable issues
        20 - at least one blocking issue
    """
    inspector = inspector or _inspector(args)
    issues    = diagnose(inspector)
    code      = check_exit_code(issues)
    blocking, fixable = split_issues(issues)

    if getattr(args, "check_json", False):
        report = {
            "schema": CHECK_SCHEMA,
            "schema_version": 1,
            "generated_at": datetime.now(timezone.utc).isoformat(
                timespec="seconds").replace("+00:00", "Z"),
            "path": inspector.facade.handle.path,
            "issues": [issue.as_dict() for issue in issues],
            "summary": {
                "blocking": len(blocking),
                "auto_fixable": len(fixable),
            },
            "exit_code": code,
        }
        out.raw(json.dumps(report, indent=2))
        return code

    if not issues:
        out.success("pre-flight: ready to push")
        return code
    for issue in issues:
        tag  = "blocking" if issue.blocking else "auto-fixable"
        emit = out.warn if issue.blocking else out.prompt
        emit(f"[{tag}] {issue.title}")
        out.info(issue.description)
        out.info(f"fix: {issue.resolution}")
    return code


def show_status(args: argparse.Namespace, out: utils.Output,
                inspector: RepositoryInspector | None = None) -> int:
    inspector = inspector or _inspector(args)
    if not inspector.is_repo():
        out.warn("not a git repository")
        return 1
    out.raw(json.dumps(inspector.snapshot(), indent=2, sort_keys=True))
    return 0


def show_history(args: argparse.Namespace, out: utils.Output) -> int:
    flow = FlowLog(utils.log_dir_for(getattr(args, "path", ".")))
    out.raw(json.dumps(flow.entries(), indent=2))
    return 0


def show_config(args: argparse.Namespace, out: utils.Output) -> int:
    """Print the effective merged configuration with sources."""
    report: dict[str, object] = {
        "path": os.path.abspath(getattr(args, "path", ".")),
        "options": config.effective_config(args),
    }
    files = getattr(args, "_fastpush_config_files", None)
    if isinstance(files, dict): report["_config_files"] = files
    diagnostics = getattr(args, "_fastpush_config_diagnostics", None)
    if isinstance(diagnostics, list):
        report["_config_diagnostics"] = diagnostics
    out.raw(json.dumps(report, indent=2, sort_keys=True))
    return 0
