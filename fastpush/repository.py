"""Explicit handle for the working copy every git operation targets."""
from dataclasses import dataclass
import os


@dataclass(frozen=True)
class RepositoryHandle:
    """
    Identifies one working directory

    Holds no git state of its own; pass it to every façade,
    inspector and orchestrator call. Cheap to recreate.
    """
    path: str

    @classmethod
    def for_path(cls, path: str) -> "RepositoryHandle":
        return cls(os.path.abspath(os.path.expanduser(path)))

    @property
    def name(self) -> str:
        return os.path.basename(os.path.normpath(self.path))

    def join(self, *parts: str) -> str:
        return os.path.join(self.path, *parts)
