"""
Optional editor-provided git backend

A host (an editor or IDE extension) may expose its own
repository objects that can fetch, pull, push and manage
branches without spawning git. fastpush only consumes this
capability; GitFacade falls back to the git CLI whenever it is
absent or fails.
"""
from collections.abc import Sequence
from typing import Protocol
import os


class HostRepository(Protocol):
    root: str

    def head_name(self) -> str | None: ...
    def has_upstream(self) -> bool: ...
    def remote_url(self, name: str) -> str | None: ...
    def fetch(self, remote: str | None = None,
              refspec: str | None = None,
              prune: bool = False) -> None: ...
    def pull(self, rebase: bool = False) -> None: ...
    def push(self, remote: str | None = None,
             refspec: str | None = None,
             set_upstream: bool = False) -> None: ...
    def checkout(self, branch: str) -> None: ...
    def create_branch(self, name: str, checkout: bool) -> None: ...
    def delete_branch(self, name: str, force: bool) -> None: ...
    def merge(self, branch: str) -> None: ...
    def stash(self, message: str | None,
              include_untracked: bool) -> None: ...
    def add_remote(self, name: str, url: str) -> None: ...


class HostBridge(Protocol):
    def repositories(self) -> Sequence[HostRepository]: ...


def normalize_path(path: str) -> str:
    """Comparable form of a filesystem path across platforms."""
    path = os.path.normpath(os.path.abspath(path))
    return path.replace("\\", "/").rstrip("/").lower()


def resolve_host_repository(candidates: Sequence[HostRepository],
                            path: str) -> HostRepository | None:
    """Pick the host repository rooted exactly at `path`, if any."""
    target = normalize_path(path)
    for repo in candidates:
        root = getattr(repo, "root", None)
        if isinstance(root, str) and normalize_path(root) == target:
            return repo
    return None
