import subprocess
from pathlib import Path

import pytest
from click.testing import CliRunner

from mpca import __version__
from mpca.cli import cli


def _init_git_repo(repo_path: Path) -> None:
    subprocess.run(["git", "init"], cwd=repo_path, check=True, text=True, capture_output=True)
    subprocess.run(
        ["git", "config", "user.email", "test@example.com"],
        cwd=repo_path,
        check=True,
        text=True,
        capture_output=True,
    )
    subprocess.run(
        ["git", "config", "user.name", "Test User"],
        cwd=repo_path,
        check=True,
        text=True,
        capture_output=True,
    )
    (repo_path / "README.md").write_text("seed\n", encoding="utf-8")
    subprocess.run(
        ["git", "add", "README.md"], cwd=repo_path, check=True, text=True, capture_output=True
    )
    subprocess.run(
        ["git", "commit", "-m", "seed"],
        cwd=repo_path,
        check=True,
        text=True,
        capture_output=True,
    )


def _set_test_command(repo_path: Path, command: str) -> None:
    config_path = repo_path / ".mpca" / "config.toml"
    text = config_path.read_text(encoding="utf-8")
    config_path.write_text(
        text.replace('"cargo test --all -- --nocapture"', f'"{command}"'), encoding="utf-8"
    )


@pytest.fixture
def repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    repo_path = tmp_path / "repo"
    repo_path.mkdir()
    _init_git_repo(repo_path)
    monkeypatch.chdir(repo_path)
    return repo_path


def test_cli_feature_lifecycle(repo: Path) -> None:
    runner = CliRunner()

    init_result = runner.invoke(cli, ["init"])
    assert init_result.exit_code == 0, init_result.output
    assert "Initialized mpca" in init_result.output
    _set_test_command(repo, "echo 'test result: ok. 5 passed; 0 failed; 1 ignored'")

    plan_result = runner.invoke(cli, ["plan", "add-caching"])
    assert plan_result.exit_code == 0, plan_result.output
    assert "Planned feature add-caching" in plan_result.output

    run_result = runner.invoke(cli, ["run", "add-caching"])
    assert run_result.exit_code == 0, run_result.output
    assert "Started feature add-caching" in run_result.output
    assert "Branch: feature/add-caching" in run_result.output

    resume_result = runner.invoke(cli, ["run", "add-caching"])
    assert resume_result.exit_code == 0, resume_result.output
    assert "Resumed feature add-caching" in resume_result.output

    status_result = runner.invoke(cli, ["status", "add-caching"])
    assert status_result.exit_code == 0
    assert "Phase: Run" in status_result.output

    verify_result = runner.invoke(cli, ["verify", "add-caching"])
    assert verify_result.exit_code == 0, verify_result.output
    assert "5 passed, 0 failed, 1 ignored" in verify_result.output
    assert (repo / ".mpca" / "specs" / "add-caching" / "verification_report.md").exists()

    status_result = runner.invoke(cli, ["status", "add-caching"])
    assert "Phase: Verify" in status_result.output


def test_cli_commands_from_subdirectory_use_repository_root(
    repo: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0
    nested = repo / "src" / "deep"
    nested.mkdir(parents=True)
    monkeypatch.chdir(nested)

    result = runner.invoke(cli, ["plan", "add-caching"])

    assert result.exit_code == 0, result.output
    assert (repo / ".mpca" / "specs" / "add-caching" / "specs" / "state.toml").exists()


def test_cli_failed_verification_exits_non_zero(repo: Path) -> None:
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0
    _set_test_command(repo, "echo 'test result: FAILED. 2 passed; 3 failed; 0 ignored'")
    assert runner.invoke(cli, ["plan", "add-caching"]).exit_code == 0

    result = runner.invoke(cli, ["verify", "add-caching"])

    assert result.exit_code == 1
    assert "3 test(s) failed" in result.output
    assert "verification_report.md" in result.output


def test_cli_reports_errors(repo: Path) -> None:
    runner = CliRunner()

    not_initialized = runner.invoke(cli, ["plan", "add-caching"])
    assert not_initialized.exit_code == 1
    assert "not initialized" in not_initialized.output

    assert runner.invoke(cli, ["init"]).exit_code == 0
    again = runner.invoke(cli, ["init"])
    assert again.exit_code == 1
    assert "already initialized" in again.output

    bad_slug = runner.invoke(cli, ["plan", "Bad_Slug"])
    assert bad_slug.exit_code == 1
    assert "invalid feature slug" in bad_slug.output

    missing = runner.invoke(cli, ["run", "never-planned"])
    assert missing.exit_code == 1
    assert "feature not found: never-planned" in missing.output


def test_cli_init_outside_repository(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    plain = tmp_path / "plain"
    plain.mkdir()
    monkeypatch.chdir(plain)

    result = CliRunner().invoke(cli, ["init"])

    assert result.exit_code == 1
    assert "not a git repository" in result.output


def test_cli_version() -> None:
    result = CliRunner().invoke(cli, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.output
