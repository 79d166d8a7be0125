"""In-memory adapters for tests.

Each fake raises the same errors as its real counterpart under the same
preconditions and exposes a few inspection helpers. Instances own their state;
create one per test.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path

from mpca.errors import (
    BranchAlreadyExists,
    InvalidPath,
    NotARepository,
    PathNotFound,
    PermissionDenied,
    ReadFailure,
    ShellCommandFailed,
    UncommittedChanges,
    VersionControlCommandFailed,
    WorktreeAlreadyExists,
    WorktreeNotFound,
    WriteFailure,
)
from mpca.tools.base import (
    CommandOutput,
    FilesystemAdapter,
    ShellAdapter,
    StatusEntry,
    VersionControlAdapter,
)


def _norm(path: Path | str) -> Path:
    return Path(os.path.normpath(path))


class InMemoryFilesystem(FilesystemAdapter):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._files: dict[Path, str] = {}
        self._dirs: set[Path] = set()
        self._read_only: set[Path] = set()

    def deny_writes(self, path: Path) -> None:
        """Make writes at or below ``path`` fail with PermissionDenied."""
        with self._lock:
            self._read_only.add(_norm(path))

    def _denied(self, path: Path) -> bool:
        return any(path == root or root in path.parents for root in self._read_only)

    def _ensure_dirs(self, directory: Path, *, error_path: Path) -> None:
        for candidate in (*reversed(directory.parents), directory):
            if candidate in self._files:
                raise WriteFailure(error_path, f"{candidate} is not a directory")
        self._dirs.add(directory)
        self._dirs.update(directory.parents)

    def read_text(self, path: Path) -> str:
        key = _norm(path)
        with self._lock:
            if key in self._files:
                return self._files[key]
            if key in self._dirs:
                raise ReadFailure(key, "is a directory")
        raise PathNotFound(key)

    def write(self, path: Path, content: str) -> None:
        key = _norm(path)
        with self._lock:
            if self._denied(key):
                raise PermissionDenied(key)
            if key in self._dirs:
                raise WriteFailure(key, "is a directory")
            self._ensure_dirs(key.parent, error_path=key)
            self._files[key] = content

    def list_entries(self, path: Path) -> list[str]:
        key = _norm(path)
        with self._lock:
            if key in self._files:
                raise InvalidPath(key)
            if key not in self._dirs:
                raise PathNotFound(key)
            names = {p.name for p in self._files if p.parent == key}
            names.update(d.name for d in self._dirs if d.parent == key and d != key)
        return sorted(names)

    def exists(self, path: Path) -> bool:
        key = _norm(path)
        with self._lock:
            return key in self._files or key in self._dirs

    def create_dir_all(self, path: Path) -> None:
        key = _norm(path)
        with self._lock:
            if key in self._files:
                raise InvalidPath(key, "exists and is not a directory")
            if self._denied(key) and key not in self._dirs:
                raise PermissionDenied(key)
            self._ensure_dirs(key, error_path=key)

    def is_dir(self, path: Path) -> bool:
        key = _norm(path)
        with self._lock:
            return key in self._dirs

    def is_file(self, path: Path) -> bool:
        key = _norm(path)
        with self._lock:
            return key in self._files

    @property
    def files(self) -> dict[Path, str]:
        with self._lock:
            return dict(self._files)


class FakeVersionControl(VersionControlAdapter):
    """Repositories, branches, worktrees and pending changes held in dictionaries.

    ``record_change`` stands in for editing files in a checkout; ``commit``
    clears them again.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._repos: set[Path] = set()
        self._branches: dict[Path, set[str]] = {}
        self._worktrees: dict[Path, tuple[Path, str]] = {}
        self._changes: dict[Path, dict[str, str]] = {}
        self._commits: dict[Path, list[str]] = {}

    def init_repository(self, path: Path, default_branch: str = "main") -> FakeVersionControl:
        key = _norm(path)
        with self._lock:
            self._repos.add(key)
            self._branches.setdefault(key, set()).add(default_branch)
            self._changes.setdefault(key, {})
            self._commits.setdefault(key, [])
        return self

    def record_change(self, path: Path, file: str, code: str = "??") -> None:
        with self._lock:
            top = self._top_level(_norm(path))
            self._changes[top][file] = code

    def worktrees(self) -> dict[Path, str]:
        with self._lock:
            return {path: branch for path, (_, branch) in self._worktrees.items()}

    def branches(self, repo_root: Path) -> set[str]:
        with self._lock:
            return set(self._branches.get(_norm(repo_root), set()))

    def commits(self, path: Path) -> list[str]:
        with self._lock:
            return list(self._commits.get(self._top_level(_norm(path)), []))

    def _top_level(self, path: Path) -> Path:
        for candidate in (path, *path.parents):
            if candidate in self._worktrees or candidate in self._repos:
                return candidate
        raise VersionControlCommandFailed(f"not a git repository: {path}", exit_code=128)

    def is_repository(self, path: Path) -> bool:
        key = _norm(path)
        with self._lock:
            return key in self._repos or key in self._worktrees

    def repository_root(self, path: Path) -> Path:
        key = _norm(path)
        with self._lock:
            try:
                return self._top_level(key)
            except VersionControlCommandFailed as exc:
                raise NotARepository(key) from exc

    def create_worktree(self, repo_root: Path, worktree_path: Path, branch: str) -> None:
        repo = _norm(repo_root)
        target = _norm(worktree_path)
        with self._lock:
            if repo not in self._repos:
                raise NotARepository(repo)
            if target in self._worktrees or target in self._repos:
                raise WorktreeAlreadyExists(target)
            if branch in self._branches[repo]:
                raise BranchAlreadyExists(branch)
            self._branches[repo].add(branch)
            self._worktrees[target] = (repo, branch)
            self._changes[target] = {}
            self._commits[target] = []

    def remove_worktree(self, repo_root: Path, worktree_path: Path) -> None:
        target = _norm(worktree_path)
        with self._lock:
            if target not in self._worktrees:
                raise WorktreeNotFound(target)
            if self._changes[target]:
                raise UncommittedChanges(target)
            del self._worktrees[target]
            del self._changes[target]

    def commit(self, path: Path, message: str) -> bool:
        with self._lock:
            top = self._top_level(_norm(path))
            if not self._changes[top]:
                return False
            self._changes[top].clear()
            self._commits[top].append(message)
            return True

    def status(self, path: Path) -> list[StatusEntry]:
        with self._lock:
            top = self._top_level(_norm(path))
            return [StatusEntry(path=f, code=c) for f, c in sorted(self._changes[top].items())]

    def has_uncommitted_changes(self, path: Path) -> bool:
        return bool(self.status(path))

    def diff(self, path: Path) -> str:
        return "".join(
            f"diff --git a/{entry.path} b/{entry.path}\n"
            for entry in self.status(path)
            if entry.code[1:] == "M"
        )

    def add(self, path: Path, files: list[str]) -> None:
        with self._lock:
            top = self._top_level(_norm(path))
            for file in files:
                code = self._changes[top].get(file)
                if code is None:
                    raise VersionControlCommandFailed(
                        f"pathspec '{file}' did not match any files", exit_code=128
                    )
                self._changes[top][file] = "A " if code == "??" else f"{code.strip()[:1]} "


class FakeShell(ShellAdapter):
    """Returns canned output per command string and records every invocation."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outputs: dict[str, CommandOutput] = {}
        self._timeouts: set[str] = set()
        self._default: CommandOutput | None = None
        self._history: list[tuple[str, Path | None]] = []

    def set_output(
        self, command: str, *, exit_code: int = 0, stdout: str = "", stderr: str = ""
    ) -> FakeShell:
        with self._lock:
            self._outputs[command] = CommandOutput(exit_code, stdout, stderr)
        return self

    def with_success(self, command: str, stdout: str = "") -> FakeShell:
        return self.set_output(command, stdout=stdout)

    def set_default_output(self, *, exit_code: int = 0, stdout: str = "", stderr: str = "") -> None:
        with self._lock:
            self._default = CommandOutput(exit_code, stdout, stderr)

    def set_timeout(self, command: str) -> None:
        """Make ``command`` behave as if it outlived its deadline."""
        with self._lock:
            self._timeouts.add(command)

    @property
    def history(self) -> list[tuple[str, Path | None]]:
        with self._lock:
            return list(self._history)

    def command_count(self) -> int:
        with self._lock:
            return len(self._history)

    def run(
        self, command: str, cwd: Path | None = None, *, timeout: float | None = None
    ) -> CommandOutput:
        with self._lock:
            self._history.append((command, cwd))
            if command in self._timeouts:
                raise ShellCommandFailed(
                    f"{command!r} timed out",
                    command=command,
                    timed_out=True,
                    timeout_seconds=timeout,
                )
            output = self._outputs.get(command, self._default)
        if output is None:
            raise ShellCommandFailed(f"no output configured for {command!r}", command=command)
        return output

    def run_streaming(
        self, command: str, cwd: Path | None = None, *, timeout: float | None = None
    ) -> CommandOutput:
        return self.run(command, cwd, timeout=timeout)
