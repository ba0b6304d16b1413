"""
Dual-backend git façade

Every operation first tries the host bridge bound to the
repository path, then falls back to the git CLI. Callers get
the same result type whichever backend served them; the
backend is only recorded in `GitFacade.served` and the
telemetry stream.
"""
# ======================= STANDARDS =======================
from collections.abc import Callable
import logging as log
import sys
import os
import re

# ======================== LOCALS =========================
from .errors import InvalidBranchName, InvalidRemoteUrl
from .bridge import HostBridge, HostRepository, resolve_host_repository
from .executor import CommandResult, run_git
from .classifier import ErrorKind, classify
from .repository import RepositoryHandle
from .errors import BranchNotFound, GitCommandError
from . import _constants as const
from . import telemetry

logger = log.getLogger("fastpush.facade")

Runner = Callable[[list[str], str], CommandResult]

BRIDGE = "bridge"
CLI    = "cli"

BRANCH_NAME_PATTERN    = re.compile(r"^[A-Za-z0-9_/-]+$")
REMOTE_URL_PREFIXES    = ("https://", "http://", "ssh://", "git@",
                          "file://")
WINDOWS_RESERVED_NAMES = ("nul", "con", "prn", "aux", "com1", "com2",
                          "com3", "com4", "lpt1", "lpt2", "lpt3")
_CREDENTIALS_PATTERN   = re.compile(r"(https?://)[^/\s@]+@")


def is_valid_branch_name(name: str | None) -> bool:
    if not name or not BRANCH_NAME_PATTERN.match(name): return False
    if name.startswith(("-", "/")) or name.endswith("/"): return False
    return "//" not in name


def validate_branch_name(name: str) -> str:
    if not is_valid_branch_name(name): raise InvalidBranchName(name)
    return name


def validate_remote_url(url: str) -> str:
    url = (url or "").strip()
    if not url.startswith(REMOTE_URL_PREFIXES) or any(c.isspace()
       for c in url):
        raise InvalidRemoteUrl(url)
    return url


def strip_credentials(url: str) -> str:
    """Remove `user:token@` from https remote URLs."""
    return _CREDENTIALS_PATTERN.sub(r"\1", url)


class GitFacade:
    """One operation set over the host bridge and the git CLI."""

    def __init__(self, handle: RepositoryHandle,
                 bridge: HostBridge | None = None,
                 runner: Runner | None = None) -> None:
        self.handle = handle
        self.bridge = bridge
        self.served: list[tuple[str, str]] = []
        self._runner: Runner = runner or run_git

    # ---------- Backends ----------
    def git(self, *args: str) -> str:
        """Run a git command in the repository; return trimmed stdout."""
        return self._runner(list(args), self.handle.path).stdout

    def read(self, *args: str) -> str:
        """Read-only git command that never takes the index lock."""
        return self.git("--no-optional-locks", *args)

    def _host_repo(self) -> HostRepository | None:
        # re-resolved on every call: the host's repository set changes,
        # e.g. after `init`
        if self.bridge is None: return None
        try: candidates = list(self.bridge.repositories())
        except Exception as e:
            logger.debug("host bridge unavailable: %s", e)
            return None
        return resolve_host_repository(candidates, self.handle.path)

    def _record(self, op: str, backend: str) -> None:
        self.served.append((op, backend))
        logger.debug("%s served by %s", op, backend)
        telemetry.emit_event(
            event_type="backend",
            step_id=op,
            payload={"backend": backend, "repo": self.handle.path},
        )

    def _bridge(self, op: str,
                call: Callable[[HostRepository], object]) -> bool:
        """Run `call` on the bound host repository; False means use the CLI."""
        repo = self._host_repo()
        if repo is None: return False
        try: call(repo)
        except Exception as e:
            reason = str(e)
            if classify(reason).kind is ErrorKind.MERGE_CONFLICT:
                # the one bridge failure that does not fall back: the
                # bridge left conflict state behind and the CLI must not
                # run on top of it
                raise GitCommandError(("bridge", op), 1, reason,
                      ErrorKind.MERGE_CONFLICT) from e
            logger.debug("bridge %s failed, falling back to git CLI: %s",
                op, reason)
            return False
        self._record(op, BRIDGE)
        return True

    # ---------- Queries ----------
    def current_branch(self) -> str | None:
        """Current branch name; None on a detached HEAD."""
        repo = self._host_repo()
        if repo is not None:
            try: name = repo.head_name()
            except Exception as e:
                logger.debug("bridge current_branch failed: %s", e)
                name = None
            if name:
                self._record("current_branch", BRIDGE)
                return name
        try: name = self.read("symbolic-ref", "--short", "-q", "HEAD")
        except GitCommandError: return None
        self._record("current_branch", CLI)
        return name or None

    def git_dir(self) -> str:
        return self.read("rev-parse", "--absolute-git-dir")

    def remote_url(self) -> str | None:
        """URL of `origin` with embedded credentials removed."""
        repo = self._host_repo()
        if repo is not None:
            try: url = repo.remote_url(const.DEFAULT_REMOTE)
            except Exception as e:
                logger.debug("bridge remote_url failed: %s", e)
                url = None
            if url:
                self._record("remote_url", BRIDGE)
                return strip_credentials(url)
        try: url = self.read("remote", "get-url", const.DEFAULT_REMOTE)
        except GitCommandError: return None
        self._record("remote_url", CLI)
        return strip_credentials(url) if url else None

    def has_local_branch(self, name: str) -> bool:
        try: self.read("show-ref", "--verify", "--quiet",
                 f"refs/heads/{name}")
        except GitCommandError: return False
        return True

    def has_remote_tracking_branch(self, name: str) -> bool:
        try: self.read("show-ref", "--verify", "--quiet",
                 f"refs/remotes/{const.DEFAULT_REMOTE}/{name}")
        except GitCommandError: return False
        return True

    def has_remote_branch(self, name: str) -> bool:
        """Ask the remote itself; unreachable remotes count as absent."""
        try: out = self.git("ls-remote", "--heads",
                   const.DEFAULT_REMOTE, f"refs/heads/{name}")
        except GitCommandError as e:
            logger.debug("ls-remote for %s failed: %s", name, e)
            return False
        return bool(out.strip())

    def local_branches(self) -> list[str]:
        out = self.read("for-each-ref", "--format=%(refname:short)",
              "refs/heads")
        return [ln.strip() for ln in out.splitlines() if ln.strip()]

    # ---------- Sync ----------
    def fetch(self, prune: bool = False, quiet: bool = False) -> None:
        if self._bridge("fetch", lambda r: r.fetch(prune=prune)): return
        args = ["fetch"]
        if quiet: args.append("--quiet")
        if prune: args.append("--prune")
        self.git(*args)
        self._record("fetch", CLI)

    def pull(self) -> str:
        if self._bridge("pull", lambda r: r.pull()): return "pulled"
        out = self.git("pull")
        self._record("pull", CLI)
        return out or "pulled"

    def pull_rebase(self) -> str:
        """
        Rebase the current branch onto its remote counterpart

        When the branch tracks nothing usable, tracking is set
        to `origin/<branch>` if the remote has that branch;
        otherwise there is nothing to pull yet.
        """
        if self._bridge("pull_rebase", lambda r: r.pull(rebase=True)):
            return "pulled with rebase"
        try: out = self.git("pull", "--rebase")
        except GitCommandError as e:
            if e.kind not in (ErrorKind.NO_UPSTREAM,
                              ErrorKind.UPSTREAM_GONE): raise
            branch = self.current_branch()
            if not branch: raise
            if not self.has_remote_branch(branch):
                self._record("pull_rebase", CLI)
                return "nothing to pull, remote branch will be " \
                     + "created on push"
            remote_ref = f"{const.DEFAULT_REMOTE}/{branch}"
            self.git("fetch", const.DEFAULT_REMOTE, branch)
            self.git("branch", f"--set-upstream-to={remote_ref}", branch)
            out = self.git("pull", "--rebase", const.DEFAULT_REMOTE,
                  branch)
        self._record("pull_rebase", CLI)
        return out or "pulled with rebase"

    def push(self, set_upstream: bool = False) -> str:
        """
        Push the current branch to `origin`

        A branch without upstream is pushed with --set-upstream,
        either up front (`set_upstream=True`) or after git
        reports that no upstream exists.
        """
        def call(repo: HostRepository) -> None:
            head = repo.head_name()
            if repo.has_upstream() and not set_upstream: repo.push()
            elif head: repo.push(const.DEFAULT_REMOTE, head,
                       set_upstream=True)
            else: raise RuntimeError("host repository has no HEAD branch")

        if self._bridge("push", call): return "pushed"
        if set_upstream: return self._push_set_upstream()

        try: self.git("push")
        except GitCommandError as e:
            if e.kind is not ErrorKind.NO_UPSTREAM: raise
            logger.info("no upstream for current branch, "
                "retrying with --set-upstream")
            return self._push_set_upstream()
        self._record("push", CLI)
        return "pushed"

    def _push_set_upstream(self) -> str:
        branch = self.current_branch()
        if not branch:
            raise GitCommandError(["git", "push"], 1,
                  "cannot set upstream from a detached HEAD",
                  ErrorKind.INVALID_REF)
        self.git("push", "--set-upstream", const.DEFAULT_REMOTE, branch)
        self._record("push", CLI)
        return f"pushed {branch} with upstream " \
             + f"{const.DEFAULT_REMOTE}/{branch}"

    # ---------- Working tree ----------
    def stage_all(self) -> None:
        args = ["add", "--all"]
        if sys.platform == "win32":
            args += ["--", "."] + [f":(exclude){name}"
                    for name in WINDOWS_RESERVED_NAMES]
        self.git(*args)
        self._record("stage_all", CLI)

    def commit(self, message: str) -> str:
        if not message or not message.strip():
            raise ValueError("commit message cannot be empty")
        out = self.git("commit", "-m", message)
        self._record("commit", CLI)
        return out

    def stash(self, message: str | None = None) -> None:
        if self._bridge("stash", lambda r: r.stash(message, True)):
            return
        args = ["stash", "push", "--include-untracked"]
        if message: args += ["-m", message]
        self.git(*args)
        self._record("stash", CLI)

    def init(self) -> None:
        self.git("init")
        self._record("init", CLI)

    def remove_index_lock(self) -> bool:
        """Delete `<git-dir>/index.lock`; False when there was none."""
        path = os.path.join(self.git_dir(), "index.lock")
        if not os.path.exists(path): return False
        os.remove(path)
        logger.warning("removed index lock %s", path)
        return True

    # ---------- Remote ----------
    def set_remote(self, url: str) -> None:
        """Point `origin` at `url`, creating the remote if needed."""
        url = validate_remote_url(url)
        try:
            self.read("remote", "get-url", const.DEFAULT_REMOTE)
            exists = True
        except GitCommandError: exists = False

        if exists:
            self.git("remote", "set-url", const.DEFAULT_REMOTE, url)
            self._record("set_remote", CLI)
            return
        if self._bridge("set_remote",
           lambda r: r.add_remote(const.DEFAULT_REMOTE, url)): return
        self.git("remote", "add", const.DEFAULT_REMOTE, url)
        self._record("set_remote", CLI)

    def fix_upstream_tracking(self) -> None:
        """Reset the current branch's upstream to `origin/<branch>`."""
        branch = self.current_branch()
        if not branch:
            raise GitCommandError(["git", "branch"], 1,
                  "cannot fix upstream tracking from a detached HEAD",
                  ErrorKind.INVALID_REF)
        try: self.git("branch", "--unset-upstream", branch)
        except GitCommandError as e:
            logger.debug("no upstream to unset for %s: %s", branch, e)
        # the remote-tracking ref may not exist locally yet
        self.git("fetch", const.DEFAULT_REMOTE, branch)
        self.git("branch", "--set-upstream-to="
            f"{const.DEFAULT_REMOTE}/{branch}", branch)
        self._record("fix_upstream_tracking", CLI)

    # ---------- Branches ----------
    def create_branch(self, name: str) -> None:
        """Create `name` from HEAD and switch to it."""
        validate_branch_name(name)
        if self._bridge("create_branch",
           lambda r: r.create_branch(name, True)): return
        self.git("checkout", "-b", name)
        self._record("create_branch", CLI)

    def create_branch_from_detached_head(self, name: str) -> None:
        validate_branch_name(name)
        self.git("checkout", "-b", name)
        self._record("create_branch_from_detached_head", CLI)

    def switch_branch(self, name: str) -> None:
        """
        Switch to `name`

        Fallback order: bridge checkout, CLI checkout of the
        local branch, CLI checkout tracking `origin/<name>`.

        Raises:
            BranchNotFound: neither a local nor a remote branch
                            exists
        """
        validate_branch_name(name)
        try: self.fetch(prune=True, quiet=True)
        except GitCommandError as e:
            logger.info("fetch before switching to %s failed: %s",
                name, e)

        if self._bridge("switch_branch", lambda r: r.checkout(name)):
            return
        if self.has_local_branch(name):
            self.git("checkout", name)
        elif self.has_remote_tracking_branch(name):
            self.git("checkout", "-b", name, "--track",
                f"{const.DEFAULT_REMOTE}/{name}")
        else: raise BranchNotFound(name)
        self._record("switch_branch", CLI)

    def merge_branch(self, name: str) -> None:
        """Merge `name` into the current branch."""
        validate_branch_name(name)
        if not self.has_local_branch(name):
            if not self.has_remote_tracking_branch(name):
                raise BranchNotFound(name)
            self.git("branch", "--track", name,
                f"{const.DEFAULT_REMOTE}/{name}")
        if self._bridge("merge_branch", lambda r: r.merge(name)): return
        self.git("merge", name)
        self._record("merge_branch", CLI)

    def rename_branch(self, name: str) -> None:
        validate_branch_name(name)
        self.git("branch", "-M", name)
        self._record("rename_branch", CLI)

    def delete_branch(self, name: str) -> None:
        """Force-delete a local branch, leaving it first if checked out."""
        validate_branch_name(name)
        if self.current_branch() == name:
            others   = [b for b in self.local_branches() if b != name]
            fallback = next((b for b in ("main", "master")
                       if b in others), None) \
                    or next(iter(others), None)
            if fallback is None:
                raise GitCommandError(["git", "branch", "-D", name], 1,
                      f"cannot delete '{name}': it is the only local "
                      "branch", ErrorKind.INVALID_REF)
            self.switch_branch(fallback)

        if not self._bridge("delete_branch",
               lambda r: r.delete_branch(name, True)):
            self.git("branch", "-D", name)
            self._record("delete_branch", CLI)
        try: self.fetch(prune=True, quiet=True)
        except GitCommandError as e:
            logger.info("prune after deleting %s failed: %s", name, e)

    def delete_remote_branch(self, name: str) -> None:
        validate_branch_name(name)
        refspec = f":refs/heads/{name}"
        if self._bridge("delete_remote_branch",
           lambda r: r.push(const.DEFAULT_REMOTE, refspec)): return
        self.git("push", const.DEFAULT_REMOTE, "--delete", name)
        self._record("delete_remote_branch", CLI)
