from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class CommandOutput:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """One changed path, with its two-letter porcelain code (``"??"``, ``" M"``, ``"A "``...)."""

    path: str
    code: str

    @property
    def untracked(self) -> bool:
        return self.code == "??"

    @property
    def staged(self) -> bool:
        return not self.untracked and self.code[:1] not in {" ", "?"}


class FilesystemAdapter(ABC):
    @abstractmethod
    def read_text(self, path: Path) -> str:
        """Return file contents; PathNotFound when absent, ReadFailure otherwise."""

    @abstractmethod
    def write(self, path: Path, content: str) -> None:
        """Write ``content``, creating missing parent directories first."""

    @abstractmethod
    def list_entries(self, path: Path) -> list[str]:
        """Sorted entry names of a directory; PathNotFound / InvalidPath otherwise."""

    @abstractmethod
    def exists(self, path: Path) -> bool: ...

    @abstractmethod
    def create_dir_all(self, path: Path) -> None: ...

    @abstractmethod
    def is_dir(self, path: Path) -> bool: ...

    @abstractmethod
    def is_file(self, path: Path) -> bool: ...


class VersionControlAdapter(ABC):
    @abstractmethod
    def is_repository(self, path: Path) -> bool: ...

    @abstractmethod
    def repository_root(self, path: Path) -> Path:
        """Top-level directory of the repository containing ``path``."""

    @abstractmethod
    def create_worktree(self, repo_root: Path, worktree_path: Path, branch: str) -> None:
        """Check out a new ``branch`` into ``worktree_path``."""

    @abstractmethod
    def remove_worktree(self, repo_root: Path, worktree_path: Path) -> None: ...

    @abstractmethod
    def commit(self, path: Path, message: str) -> bool:
        """Stage everything and commit; returns False when there was nothing to commit."""

    @abstractmethod
    def status(self, path: Path) -> list[StatusEntry]: ...

    @abstractmethod
    def has_uncommitted_changes(self, path: Path) -> bool: ...

    @abstractmethod
    def diff(self, path: Path) -> str: ...

    @abstractmethod
    def add(self, path: Path, files: list[str]) -> None: ...


class ShellAdapter(ABC):
    @abstractmethod
    def run(
        self, command: str, cwd: Path | None = None, *, timeout: float | None = None
    ) -> CommandOutput:
        """Run ``command`` and capture its output.

        A non-zero exit status is returned, not raised. ShellCommandFailed is
        raised only when the process cannot be started or exceeds ``timeout``.
        """

    @abstractmethod
    def run_streaming(
        self, command: str, cwd: Path | None = None, *, timeout: float | None = None
    ) -> CommandOutput:
        """Like :meth:`run`, but forward output to the terminal as it is produced."""
