"""Policy matrix for pre-flight remediation actions."""
from dataclasses import dataclass


@dataclass(frozen=True)
class RemediationRule:
    """Execution policy for a remediation action."""
    destructive: bool
    allow_ci: bool
    allow_autofix: bool
    requires_interactive: bool
    requires_confirmation: bool


def _safe(confirm: bool = False) -> RemediationRule:
    return RemediationRule(
        destructive=False,
        allow_ci=True,
        allow_autofix=True,
        requires_interactive=False,
        requires_confirmation=confirm,
    )


def _manual(confirm: bool = True) -> RemediationRule:
    return RemediationRule(
        destructive=False,
        allow_ci=False,
        allow_autofix=False,
        requires_interactive=True,
        requires_confirmation=confirm,
    )


REMEDIATION_POLICY: dict[str, RemediationRule] = {
    "pull_rebase": _safe(),
    "recover_detached_head": _safe(),
    "stale_lock_cleanup": _safe(),
    "continue_create_upstream": _safe(),
    "set_upstream_tracking": _safe(),
    "init_repository": _safe(confirm=True),
    # the user claims to have fixed a blocking issue by hand; only a
    # person at a terminal can say that
    "acknowledge_manual_fix": _manual(confirm=False),
    "continue_anyway": _manual(),
    "add_origin": _manual(),
    "abort": _safe(),
}


def can_run_remediation(
    action: str,
    ci_mode: bool,
    autofix: bool,
    interactive: bool,
) -> tuple[bool, str]:
    """Validate whether a remediation action is allowed in context."""
    rule = REMEDIATION_POLICY.get(action)
    if rule is None:
        return False, "unknown remediation action"
    if ci_mode and not rule.allow_ci:
        return False, "action disabled in CI mode"
    if autofix and not rule.allow_autofix:
        return False, "action disabled in auto-fix mode"
    if rule.requires_interactive and not interactive:
        return False, "action requires interactive mode"
    return True, ""


def requires_confirmation(action: str, autofix: bool) -> bool:
    """Whether a remediation action needs an explicit confirmation prompt."""
    rule = REMEDIATION_POLICY.get(action)
    if rule is None: return False
    if autofix: return False
    return rule.requires_confirmation
