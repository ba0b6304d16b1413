"""
Shared typed error envelope model for machine-readable
failures.
"""
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Any


WORKFLOW_STEP_CODES: dict[str, str] = {
    "repository": "FP_GIT_REPOSITORY_FAIL",
    "remote": "FP_NET_REMOTE_FAIL",
    "commits": "FP_GIT_REPOSITORY_FAIL",
    "branch": "FP_GIT_BRANCH_FAIL",
    "diagnose": "FP_GIT_DIAGNOSE_FAIL",
    "remediate": "FP_INT_REMEDIATION_CANCELLED",
    "stage": "FP_GIT_STAGE_FAIL",
    "commit": "FP_GIT_COMMIT_FAIL",
    "rename": "FP_GIT_BRANCH_FAIL",
    "push": "FP_NET_PUSH_FAIL",
}

ERROR_CODE_POLICY: dict[str, dict[str, Any]] = {
    "FP_INT_UNHANDLED_EXCEPTION": {
        "severity": "error",
        "category": "internal",
    },
    "FP_INT_KEYBOARD_INTERRUPT": {
        "severity": "warn",
        "category": "workflow",
    },
    "FP_INT_EOF_INTERRUPT": {
        "severity": "warn",
        "category": "workflow",
    },
    "FP_INT_WORKFLOW_EXIT_NONZERO": {
        "severity": "error",
        "category": "workflow",
    },
    "FP_INT_REMEDIATION_CANCELLED": {
        "severity": "warn",
        "category": "workflow",
    },
    "FP_INT_INVALID_PAYLOAD": {
        "severity": "error",
        "category": "workflow",
    },
    "FP_GIT_REPOSITORY_FAIL": {
        "severity": "error",
        "category": "git",
    },
    "FP_NET_REMOTE_FAIL": {
        "severity": "error",
        "category": "network",
    },
    "FP_NET_REPO_CREATE_FAIL": {
        "severity": "error",
        "category": "network",
    },
    "FP_GIT_BRANCH_FAIL": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_BRANCH_NOT_FOUND": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_INVALID_BRANCH_NAME": {
        "severity": "error",
        "category": "git",
    },
    "FP_NET_REMOTE_URL_INVALID": {
        "severity": "error",
        "category": "network",
    },
    "FP_GIT_DIAGNOSE_FAIL": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_STAGE_FAIL": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_COMMIT_FAIL": {
        "severity": "error",
        "category": "git",
    },
    "FP_NET_PUSH_FAIL": {
        "severity": "error",
        "category": "network",
    },
    "FP_NET_TIMEOUT": {
        "severity": "error",
        "category": "network",
    },
    "FP_NET_CONNECTIVITY": {
        "severity": "error",
        "category": "network",
    },
    "FP_NET_AUTH_FAIL": {
        "severity": "error",
        "category": "network",
    },
    "FP_NET_REMOTE_UNREADABLE": {
        "severity": "error",
        "category": "network",
    },
    "FP_GIT_OUTPUT_LIMIT": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_NOTHING_TO_COMMIT": {
        "severity": "info",
        "category": "git",
    },
    "FP_GIT_UPSTREAM_MISSING": {
        "severity": "warn",
        "category": "git",
    },
    "FP_GIT_UPSTREAM_GONE": {
        "severity": "warn",
        "category": "git",
    },
    "FP_GIT_NON_FAST_FORWARD": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_MERGE_CONFLICT": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_INVALID_REF": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_LOCK_CONTENTION": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_NOT_A_REPOSITORY": {
        "severity": "error",
        "category": "git",
    },
    "FP_GIT_UNCLASSIFIED": {
        "severity": "warn",
        "category": "git",
    },
    "FP_GIT_EMPTY_STDERR": {
        "severity": "warn",
        "category": "git",
    },
}


def resolve_failure_code(
    step: str = "",
    preferred_code: str = "",
    fallback_code: str = "FP_INT_WORKFLOW_EXIT_NONZERO",
) -> str:
    """Resolve a stable code for a runtime failure."""
    code = preferred_code.strip()
    if code: return code
    return WORKFLOW_STEP_CODES.get(step.strip(), fallback_code)


def error_policy_for(
    code: str,
    fallback_severity: str = "error",
    fallback_category: str = "workflow",
) -> dict[str, str]:
    """Resolve canonical severity/category for a stable code."""
    policy = ERROR_CODE_POLICY.get(code.strip(), {})
    severity = str(policy.get("severity", fallback_severity)).strip()
    category = str(policy.get("category", fallback_category)).strip()
    return {
        "severity": severity or fallback_severity,
        "category": category or fallback_category,
    }


@dataclass(frozen=True)
class FailureEvent:
    """Typed runtime workflow failure signal propagated to CLI."""
    step: str
    label: str
    result: str
    message: str
    code: str = ""
    severity: str = ""
    category: str = ""


@dataclass(frozen=True)
class ErrorEnvelope:
    code: str
    severity: str
    category: str
    actionable: bool
    message: str
    operation: str
    step: str
    stderr_excerpt: str
    raw_ref: str
    retryable: bool
    user_action_required: bool
    suggested_fix: str
    context: dict[str, object]

    def as_dict(self) -> dict[str, object]:
        return {
            "code": self.code,
            "severity": self.severity,
            "category": self.category,
            "actionable": self.actionable,
            "message": self.message,
            "operation": self.operation,
            "step": self.step,
            "stderr_excerpt": self.stderr_excerpt,
            "raw_ref": self.raw_ref,
            "retryable": self.retryable,
            "user_action_required": self.user_action_required,
            "suggested_fix": self.suggested_fix,
            "context": self.context,
        }

    def with_runtime_schema(self) -> dict[str, object]:
        payload = self.as_dict()
        payload["schema"] = "fastpush.error_envelope.v1"
        payload["schema_version"] = 1
        payload["generated_at"] = datetime.now(timezone.utc).isoformat(
            timespec="seconds"
        ).replace("+00:00", "Z")
        return payload


def build_error_envelope(
    code: str,
    message: str,
    step: str,
    context: dict[str, object],
    operation: str = "fast-push",
    retryable: bool = False,
    user_action_required: bool = True,
    suggested_fix: str = "",
    stderr_excerpt: str = "",
    raw_ref: str = "",
    severity: str = "",
    category: str = "",
) -> ErrorEnvelope:
    """Construct a typed error envelope; policy fills severity/category."""
    policy = error_policy_for(code)
    return ErrorEnvelope(
        code=code,
        severity=severity or policy["severity"],
        category=category or policy["category"],
        actionable=bool(suggested_fix),
        message=message,
        operation=operation,
        step=step,
        stderr_excerpt=stderr_excerpt,
        raw_ref=raw_ref,
        retryable=retryable,
        user_action_required=user_action_required,
        suggested_fix=suggested_fix,
        context=context,
    )
