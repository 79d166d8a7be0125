from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from mpca.errors import (
    BranchAlreadyExists,
    NotARepository,
    UncommittedChanges,
    VersionControlCommandFailed,
    WorktreeAlreadyExists,
    WorktreeNotFound,
)
from mpca.tools.base import StatusEntry, VersionControlAdapter

logger = logging.getLogger(__name__)


def _status_line_path(status_line: str) -> str:
    candidate = status_line[3:].strip()
    if " -> " in candidate:
        candidate = candidate.split(" -> ", maxsplit=1)[1].strip()
    return candidate.strip('"')


class GitAdapter(VersionControlAdapter):
    """Version control through the ``git`` command line."""

    def __init__(self, executable: str = "git") -> None:
        self.executable = executable

    def _run_git(
        self, args: list[str], cwd: Path, check: bool = True
    ) -> subprocess.CompletedProcess[str]:
        logger.debug("git %s (cwd=%s)", " ".join(args), cwd)
        try:
            proc = subprocess.run(
                [self.executable, "--no-pager", *args],
                cwd=cwd,
                text=True,
                capture_output=True,
            )
        except OSError as exc:
            raise VersionControlCommandFailed(f"could not run git in {cwd}: {exc}") from exc
        if check and proc.returncode != 0:
            raise VersionControlCommandFailed(
                proc.stderr.strip() or proc.stdout.strip() or f"git {args[0]} failed",
                exit_code=proc.returncode,
            )
        return proc

    def is_repository(self, path: Path) -> bool:
        return (Path(path) / ".git").exists()

    def repository_root(self, path: Path) -> Path:
        directory = Path(path)
        if not directory.is_dir():
            raise NotARepository(directory)
        proc = self._run_git(["rev-parse", "--show-toplevel"], cwd=directory, check=False)
        if proc.returncode != 0:
            raise NotARepository(directory)
        return Path(proc.stdout.strip()).resolve()

    def _branch_exists(self, repo_root: Path, branch: str) -> bool:
        proc = self._run_git(
            ["rev-parse", "--verify", "--quiet", f"refs/heads/{branch}"], cwd=repo_root, check=False
        )
        return proc.returncode == 0

    def create_worktree(self, repo_root: Path, worktree_path: Path, branch: str) -> None:
        repo_root = Path(repo_root)
        worktree_path = Path(worktree_path)
        if not self.is_repository(repo_root):
            raise NotARepository(repo_root)
        if worktree_path.exists():
            raise WorktreeAlreadyExists(worktree_path)
        if self._branch_exists(repo_root, branch):
            raise BranchAlreadyExists(branch)
        worktree_path.parent.mkdir(parents=True, exist_ok=True)
        self._run_git(["worktree", "add", "-b", branch, str(worktree_path)], cwd=repo_root)
        logger.info("created worktree %s on branch %s", worktree_path, branch)

    def remove_worktree(self, repo_root: Path, worktree_path: Path) -> None:
        worktree_path = Path(worktree_path)
        if not worktree_path.exists():
            raise WorktreeNotFound(worktree_path)
        if self.has_uncommitted_changes(worktree_path):
            raise UncommittedChanges(worktree_path)
        self._run_git(["worktree", "remove", str(worktree_path)], cwd=Path(repo_root))
        logger.info("removed worktree %s", worktree_path)

    def commit(self, path: Path, message: str) -> bool:
        path = Path(path)
        self._run_git(["add", "-A"], cwd=path)
        staged = self._run_git(["diff", "--cached", "--quiet"], cwd=path, check=False)
        if staged.returncode == 0:
            logger.debug("nothing to commit in %s", path)
            return False
        if staged.returncode != 1:
            raise VersionControlCommandFailed(
                staged.stderr.strip() or "git diff --cached failed", exit_code=staged.returncode
            )
        self._run_git(["commit", "-m", message], cwd=path)
        return True

    def status(self, path: Path) -> list[StatusEntry]:
        proc = self._run_git(["status", "--porcelain", "--untracked-files=all"], cwd=Path(path))
        return [
            StatusEntry(path=_status_line_path(line), code=line[:2])
            for line in proc.stdout.splitlines()
            if line.strip()
        ]

    def has_uncommitted_changes(self, path: Path) -> bool:
        return bool(self.status(path))

    def diff(self, path: Path) -> str:
        return self._run_git(["diff"], cwd=Path(path)).stdout

    def add(self, path: Path, files: list[str]) -> None:
        if not files:
            return
        self._run_git(["add", "--", *files], cwd=Path(path))
