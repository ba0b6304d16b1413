"""Typed failures raised by the git layers and the fast-push workflow."""
from .classifier import ErrorKind, TRANSIENT_KINDS, KIND_CODES


class FastPushError(RuntimeError):
    """Base class for every failure fastpush raises on purpose."""
    code = "FP_INT_UNHANDLED_EXCEPTION"


class GitCommandError(FastPushError):
    """A git command failed; `stderr` holds the noise-filtered reason."""

    def __init__(self, argv: list[str] | tuple[str, ...],
                 returncode: int, stderr: str,
                 kind: ErrorKind = ErrorKind.UNCLASSIFIED,
                 attempts: int = 1) -> None:
        self.argv       = tuple(argv)
        self.returncode = returncode
        self.stderr     = stderr.strip()
        self.kind       = kind
        self.attempts   = attempts
        self.code       = KIND_CODES.get(kind, FastPushError.code)
        command = " ".join(self.argv[:3])
        reason  = self.stderr or f"exit code {returncode}"
        super().__init__(f"{command} failed: {reason}")

    @property
    def transient(self) -> bool: return self.kind in TRANSIENT_KINDS


class BranchNotFound(FastPushError):
    code = "FP_GIT_BRANCH_NOT_FOUND"

    def __init__(self, branch: str) -> None:
        self.branch = branch
        super().__init__(f"Branch '{branch}' not found locally or on remote")


class InvalidBranchName(FastPushError):
    code = "FP_GIT_INVALID_BRANCH_NAME"

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"invalid branch name {name!r}: use letters, "
              "digits, '_', '-' and '/' only")


class InvalidRemoteUrl(FastPushError):
    code = "FP_NET_REMOTE_URL_INVALID"

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"invalid remote URL {url!r}: expected "
              "https://, ssh://, git@ or file:// form")


class InvalidPayload(FastPushError):
    code = "FP_INT_INVALID_PAYLOAD"


class RepoCreationError(FastPushError):
    code = "FP_NET_REPO_CREATE_FAIL"

    def __init__(self, message: str, status: int | None = None) -> None:
        self.status = status
        super().__init__(message)


class FastPushAborted(FastPushError):
    """The workflow stopped on purpose: user cancel or unresolved issue."""
    code = "FP_INT_REMEDIATION_CANCELLED"

    def __init__(self, reason: str, step: str = "") -> None:
        self.reason = reason
        self.step   = step
        super().__init__(reason)
