import subprocess
from dataclasses import dataclass
from pathlib import Path

import pytest

from mpca.errors import (
    BranchAlreadyExists,
    NotARepository,
    UncommittedChanges,
    VersionControlCommandFailed,
    WorktreeAlreadyExists,
    WorktreeNotFound,
)
from mpca.tools import FakeVersionControl, GitAdapter, VersionControlAdapter


def _run(cmd: list[str], cwd: Path) -> None:
    subprocess.run(cmd, cwd=cwd, check=True, text=True, capture_output=True)


def _init_git_repo(repo_path: Path) -> None:
    _run(["git", "init"], cwd=repo_path)
    _run(["git", "config", "user.email", "test@example.com"], cwd=repo_path)
    _run(["git", "config", "user.name", "Test User"], cwd=repo_path)
    (repo_path / "seed.txt").write_text("seed\n", encoding="utf-8")
    _run(["git", "add", "seed.txt"], cwd=repo_path)
    _run(["git", "commit", "-m", "seed"], cwd=repo_path)


@dataclass
class Checkout:
    vcs: VersionControlAdapter
    repo: Path
    real: bool

    def touch(self, base: Path, name: str, content: str = "x\n") -> None:
        """Create an untracked file in ``base``."""
        if self.real:
            (base / name).write_text(content, encoding="utf-8")
        else:
            self.vcs.record_change(base, name)


@pytest.fixture(params=["git", "fake"])
def checkout(request: pytest.FixtureRequest, tmp_path: Path) -> Checkout:
    repo = tmp_path.resolve() / "repo"
    repo.mkdir()
    if request.param == "git":
        _init_git_repo(repo)
        return Checkout(GitAdapter(), repo, real=True)
    return Checkout(FakeVersionControl().init_repository(repo), repo, real=False)


def test_repository_detection(checkout: Checkout, tmp_path: Path) -> None:
    plain = tmp_path.resolve() / "plain"
    plain.mkdir()

    assert checkout.vcs.is_repository(checkout.repo)
    assert not checkout.vcs.is_repository(plain)
    assert checkout.vcs.repository_root(checkout.repo) == checkout.repo
    with pytest.raises(NotARepository):
        checkout.vcs.repository_root(plain)


def test_untracked_file_makes_tree_dirty_until_commit(checkout: Checkout) -> None:
    vcs = checkout.vcs
    assert vcs.has_uncommitted_changes(checkout.repo) is False

    checkout.touch(checkout.repo, "notes.txt")
    assert vcs.has_uncommitted_changes(checkout.repo) is True
    assert [(e.path, e.code, e.untracked) for e in vcs.status(checkout.repo)] == [
        ("notes.txt", "??", True)
    ]

    assert vcs.commit(checkout.repo, "add notes") is True
    assert vcs.has_uncommitted_changes(checkout.repo) is False


def test_committing_clean_tree_is_a_noop(checkout: Checkout) -> None:
    assert checkout.vcs.commit(checkout.repo, "nothing") is False


def test_add_stages_files(checkout: Checkout) -> None:
    checkout.touch(checkout.repo, "notes.txt")
    checkout.vcs.add(checkout.repo, ["notes.txt"])

    [entry] = checkout.vcs.status(checkout.repo)
    assert entry.code == "A "
    assert entry.staged is True


def test_create_worktree_checks_path_and_branch(checkout: Checkout, tmp_path: Path) -> None:
    vcs = checkout.vcs
    trees = tmp_path.resolve() / "trees"
    vcs.create_worktree(checkout.repo, trees / "demo", "feature/demo")

    assert vcs.is_repository(trees / "demo")
    assert vcs.has_uncommitted_changes(trees / "demo") is False
    with pytest.raises(WorktreeAlreadyExists):
        vcs.create_worktree(checkout.repo, trees / "demo", "feature/other")
    with pytest.raises(BranchAlreadyExists, match="feature/demo"):
        vcs.create_worktree(checkout.repo, trees / "second", "feature/demo")


def test_create_worktree_outside_repository(checkout: Checkout, tmp_path: Path) -> None:
    plain = tmp_path.resolve() / "plain"
    plain.mkdir()

    with pytest.raises(NotARepository):
        checkout.vcs.create_worktree(plain, tmp_path / "trees" / "demo", "feature/demo")


def test_remove_worktree(checkout: Checkout, tmp_path: Path) -> None:
    vcs = checkout.vcs
    worktree = tmp_path.resolve() / "trees" / "demo"

    with pytest.raises(WorktreeNotFound):
        vcs.remove_worktree(checkout.repo, worktree)

    vcs.create_worktree(checkout.repo, worktree, "feature/demo")
    checkout.touch(worktree, "wip.txt")
    with pytest.raises(UncommittedChanges):
        vcs.remove_worktree(checkout.repo, worktree)

    assert vcs.commit(worktree, "wip") is True
    vcs.remove_worktree(checkout.repo, worktree)
    assert not vcs.is_repository(worktree)
    vcs.create_worktree(checkout.repo, worktree, "feature/demo-again")


def test_commit_outside_repository_fails(checkout: Checkout, tmp_path: Path) -> None:
    plain = tmp_path.resolve() / "plain"
    plain.mkdir()

    with pytest.raises(VersionControlCommandFailed):
        checkout.vcs.commit(plain, "nope")


def test_git_diff_shows_unstaged_modifications(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    _init_git_repo(repo)
    (repo / "seed.txt").write_text("changed\n", encoding="utf-8")

    diff = GitAdapter().diff(repo)

    assert "seed.txt" in diff
    assert "+changed" in diff


def test_fake_tracks_branches_worktrees_and_commits(tmp_path: Path) -> None:
    vcs = FakeVersionControl().init_repository(tmp_path)
    vcs.create_worktree(tmp_path, tmp_path / ".trees" / "demo", "feature/demo")
    vcs.record_change(tmp_path / ".trees" / "demo", "src/lib.rs", " M")

    assert vcs.branches(tmp_path) == {"main", "feature/demo"}
    assert vcs.worktrees() == {tmp_path / ".trees" / "demo": "feature/demo"}
    assert vcs.diff(tmp_path / ".trees" / "demo") == "diff --git a/src/lib.rs b/src/lib.rs\n"
    assert vcs.repository_root(tmp_path / ".trees" / "demo" / "src") == tmp_path / ".trees" / "demo"

    vcs.commit(tmp_path / ".trees" / "demo", "implement")
    assert vcs.commits(tmp_path / ".trees" / "demo") == ["implement"]
    assert vcs.commits(tmp_path) == []
