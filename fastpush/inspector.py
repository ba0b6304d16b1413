"""Read-only repository state queries behind pre-flight diagnostics."""
# ======================= STANDARDS =======================
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from collections.abc import Callable
from enum import Enum
import logging as log
import time
import os
import re

# ======================== LOCALS =========================
from .errors import GitCommandError
from .facade import GitFacade
from . import _constants as const

logger = log.getLogger("fastpush.inspector")

UNMERGED_STATUS_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA",
                                   "UU"})
_SUBMODULE_LINE       = re.compile(r"^([ +\-U]?)([0-9a-f]{7,64})\s+(\S+)")


class SubmoduleStatus(str, Enum):
    MODIFIED          = "modified"
    NOT_INITIALIZED   = "not-initialized"
    MERGE_CONFLICT    = "merge-conflict"
    UNTRACKED_CONTENT = "untracked-content"


SUBMODULE_MARKERS: dict[str, SubmoduleStatus] = {
    "+": SubmoduleStatus.MODIFIED,
    "-": SubmoduleStatus.NOT_INITIALIZED,
    "U": SubmoduleStatus.MERGE_CONFLICT,
}


@dataclass(frozen=True)
class Divergence:
    """Commit counts between HEAD and its upstream."""
    ahead: int = 0
    behind: int = 0
    no_upstream: bool = False

    @property
    def diverged(self) -> bool: return self.ahead > 0 and self.behind > 0

    @property
    def behind_only(self) -> bool:
        return self.behind > 0 and self.ahead == 0


@dataclass(frozen=True)
class DirtySubmodule:
    name: str
    status: SubmoduleStatus


@dataclass(frozen=True)
class LockState:
    path: str
    age_s: float
    stale: bool


def gather(queries: dict[str, Callable[[], object]],
           max_workers: int = 4) -> dict[str, object]:
    """Run independent read-only queries concurrently, keyed by name."""
    if not queries: return {}
    workers = max(1, min(max_workers, len(queries)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = {name: pool.submit(fn) for name, fn in queries.items()}
        return {name: f.result() for name, f in futures.items()}


def _status_path(line: str) -> tuple[str, str]:
    code, _, path = line.strip().partition(" ")
    path = path.strip()
    if " -> " in path: path = path.split(" -> ", 1)[1]
    return code, path.strip('"')


class RepositoryInspector:
    """
    Answers questions about a working copy without changing it

    Every git call goes through `GitFacade.read`, so
    inspection never takes the index lock and can run from
    several threads at once. The one network-touching query is
    `divergence`, which fetches before counting.
    """

    def __init__(self, facade: GitFacade,
                 clock: Callable[[], float] = time.time) -> None:
        self.facade = facade
        self._clock = clock

    # ---------- Repository ----------
    def is_repo(self) -> bool:
        try: out = self.facade.read("rev-parse", "--is-inside-work-tree")
        except GitCommandError: return False
        return out.strip() == "true"

    def has_commits(self) -> bool:
        try: self.facade.read("rev-parse", "--verify", "--quiet", "HEAD")
        except GitCommandError: return False
        return True

    def git_dir(self) -> str:
        return self.facade.git_dir()

    def current_branch(self) -> str | None:
        return self.facade.current_branch()

    def is_detached(self) -> bool:
        try: self.facade.read("symbolic-ref", "-q", "HEAD")
        except GitCommandError: return True
        return False

    # ---------- In-progress operations ----------
    def rebase_in_progress(self) -> bool:
        git_dir = self.git_dir()
        return any(os.path.isdir(os.path.join(git_dir, marker))
                   for marker in ("rebase-apply", "rebase-merge"))

    def merge_in_progress(self) -> bool:
        return os.path.isfile(os.path.join(self.git_dir(), "MERGE_HEAD"))

    def conflicts(self) -> list[str]:
        try:
            out = self.facade.read("diff", "--name-only",
                  "--diff-filter=U")
            return sorted({ln.strip() for ln in out.splitlines()
                           if ln.strip()})
        except GitCommandError as e:
            logger.debug("diff --diff-filter=U failed, reading "
                "status instead: %s", e)
        found = set()
        for line in self._status_lines():
            code, path = _status_path(line)
            if code in UNMERGED_STATUS_CODES: found.add(path)
        return sorted(found)

    # ---------- Working tree ----------
    def _status_lines(self) -> list[str]:
        out = self.facade.read("status", "--porcelain=v1",
              "--untracked-files=all")
        return [ln for ln in out.splitlines() if ln.strip()]

    def is_clean(self) -> bool:
        return not self._status_lines()

    def staged_files(self) -> list[str]:
        out = self.facade.read("diff", "--cached", "--name-only")
        return [ln.strip() for ln in out.splitlines() if ln.strip()]

    def untracked_files(self) -> list[str]:
        out = self.facade.read("ls-files", "--others",
              "--exclude-standard")
        return [ln.strip() for ln in out.splitlines() if ln.strip()]

    def stash_list(self) -> list[str]:
        out = self.facade.read("stash", "list")
        return [ln.strip() for ln in out.splitlines() if ln.strip()]

    # ---------- Remote ----------
    def remote_url(self) -> str | None:
        return self.facade.remote_url()

    def has_remote(self) -> bool:
        return self.remote_url() is not None

    def has_remote_branch(self, branch: str) -> bool:
        return self.facade.has_remote_branch(branch)

    def _upstream_ref(self) -> str | None:
        try: ref = self.facade.read("rev-parse", "--abbrev-ref",
                   "--symbolic-full-name", "@{upstream}")
        except GitCommandError: return None
        return ref or None

    def divergence(self) -> Divergence:
        """
        Ahead/behind counts against the upstream, computed fresh

        No configured upstream reports `no_upstream` without
        touching the network. Otherwise a quiet prune-fetch runs
        first (offline failures are tolerated) and the upstream
        ref must still resolve before counting.
        """
        if self._upstream_ref() is None:
            return Divergence(no_upstream=True)

        try: self.facade.fetch(prune=True, quiet=True)
        except GitCommandError as e:
            logger.info("fetch during divergence check failed "
                "(offline?): %s", e)

        upstream = self._upstream_ref()
        if upstream is None: return Divergence(no_upstream=True)
        try: self.facade.read("rev-parse", "--verify", "--quiet",
                 upstream)
        except GitCommandError: return Divergence(no_upstream=True)

        out = self.facade.read("rev-list", "--left-right", "--count",
              "HEAD...@{upstream}")
        ahead, _, behind = out.strip().partition("\t")
        if not behind: ahead, _, behind = out.strip().partition(" ")
        return Divergence(int(ahead or 0), int(behind or 0))

    # ---------- Submodules ----------
    def _submodule_paths(self) -> set[str]:
        try: out = self.facade.read("config", "--file", ".gitmodules",
                   "--get-regexp", r"^submodule\..*\.path$")
        except GitCommandError: return set()
        paths = set()
        for line in out.splitlines():
            _, _, path = line.strip().partition(" ")
            if path: paths.add(path.strip())
        return paths

    def dirty_submodules(self) -> list[DirtySubmodule]:
        if not os.path.isfile(self.facade.handle.join(".gitmodules")):
            return []
        dirty: dict[str, SubmoduleStatus] = {}
        out = self.facade.read("submodule", "status", "--recursive")
        for line in out.splitlines():
            match = _SUBMODULE_LINE.match(line)
            if not match: continue
            status = SUBMODULE_MARKERS.get(match.group(1))
            if status: dirty[match.group(3)] = status

        paths = self._submodule_paths()
        for line in self._status_lines():
            _, path = _status_path(line)
            path = path.rstrip("/")
            if path in paths and path not in dirty:
                dirty[path] = SubmoduleStatus.UNTRACKED_CONTENT
        return [DirtySubmodule(name, status)
                for name, status in sorted(dirty.items())]

    # ---------- Locks ----------
    def index_lock(self) -> LockState | None:
        path = os.path.join(self.git_dir(), "index.lock")
        try: mtime = os.path.getmtime(path)
        except OSError: return None
        age = max(0.0, self._clock() - mtime)
        return LockState(path, age, age > const.STALE_LOCK_AGE_S)

    # ---------- Reports ----------
    def snapshot(self) -> dict[str, object]:
        """Gather a status report; unrelated queries run concurrently."""
        facts = gather({
            "branch": self.current_branch,
            "detached": self.is_detached,
            "remote": self.remote_url,
            "conflicts": self.conflicts,
            "staged": self.staged_files,
            "untracked": self.untracked_files,
            "stashes": self.stash_list,
            "rebase_in_progress": self.rebase_in_progress,
            "merge_in_progress": self.merge_in_progress,
            "lock": self.index_lock,
            "submodules": self.dirty_submodules,
        })
        lock = facts["lock"]
        facts["lock"] = asdict(lock) if isinstance(lock,
                        LockState) else None
        facts["submodules"] = [
            {"name": sub.name, "status": sub.status.value}
            for sub in facts["submodules"]  # type: ignore[attr-defined]
        ]
        return facts
