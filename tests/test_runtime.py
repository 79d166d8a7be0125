import subprocess
from pathlib import Path

import pytest

from mpca.config import AgentMode, MpcaConfig
from mpca.errors import (
    FeatureNotFound,
    InvalidConfig,
    StateMissing,
    UnexpectedError,
    VerificationFailed,
)
from mpca.runtime import ChatReply, Runtime
from mpca.state import Phase, PhaseState, StateRecord
from mpca.tools import GitAdapter, LocalFilesystem, SubprocessShell, ToolRegistry

PASSING = "test result: ok. 3 passed; 0 failed; 0 ignored"


def _run(cmd: list[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    return subprocess.run(cmd, cwd=cwd, check=True, text=True, capture_output=True)


def _init_git_repo(repo_path: Path) -> None:
    _run(["git", "init"], cwd=repo_path)
    _run(["git", "config", "user.email", "test@example.com"], cwd=repo_path)
    _run(["git", "config", "user.name", "Test User"], cwd=repo_path)
    (repo_path / "README.md").write_text("seed\n", encoding="utf-8")
    _run(["git", "add", "README.md"], cwd=repo_path)
    _run(["git", "commit", "-m", "seed"], cwd=repo_path)


@pytest.fixture
def runtime(tmp_path: Path) -> Runtime:
    tools = ToolRegistry.in_memory()
    config = MpcaConfig.default(tmp_path)
    tools.vcs.init_repository(config.repo_root)
    return Runtime(config, tools=tools)


def test_runtime_defaults_to_real_adapters(tmp_path: Path) -> None:
    runtime = Runtime(MpcaConfig.default(tmp_path))

    assert isinstance(runtime.tools.fs, LocalFilesystem)
    assert isinstance(runtime.tools.vcs, GitAdapter)
    assert isinstance(runtime.tools.shell, SubprocessShell)
    assert runtime.state == PhaseState.fresh()


def test_runtime_tracks_feature_phase(runtime: Runtime) -> None:
    runtime.init_project()
    assert runtime.state.phase is Phase.INIT

    runtime.plan_feature("add-caching")
    assert runtime.state == PhaseState.for_feature("add-caching")

    outcome = runtime.run_feature("add-caching")
    assert outcome.resumed is False
    assert runtime.state.phase is Phase.RUN

    runtime.tools.shell.set_output(runtime.config.verify.test_command, stdout=PASSING)
    result = runtime.verify_feature("add-caching")
    assert result.passed == 3
    assert runtime.state.phase is Phase.VERIFY
    assert runtime.feature_status("add-caching").phase is Phase.VERIFY


def test_runtime_state_reflects_failed_verification(runtime: Runtime) -> None:
    runtime.plan_feature("add-caching")
    runtime.tools.shell.set_default_output(stdout="test result: FAILED. 0 passed; 1 failed; 0 ignored")

    with pytest.raises(VerificationFailed):
        runtime.verify_feature("add-caching")

    assert runtime.state.phase is Phase.VERIFY


def test_feature_status_errors(runtime: Runtime) -> None:
    with pytest.raises(FeatureNotFound):
        runtime.feature_status("add-caching")

    runtime.tools.fs.create_dir_all(runtime.config.specs_dir / "add-caching" / "specs")
    with pytest.raises(StateMissing):
        runtime.feature_status("add-caching")


def test_chat_requires_responder(runtime: Runtime) -> None:
    with pytest.raises(InvalidConfig, match="responder"):
        runtime.chat("hello")


def test_chat_uses_phase_agent_mode_and_persists_usage(runtime: Runtime) -> None:
    calls: list[tuple[str, AgentMode, Phase]] = []

    def responder(message: str, mode: AgentMode, state: PhaseState) -> ChatReply:
        calls.append((message, mode, state.phase))
        return ChatReply(text=f"echo: {message}", cost_usd=0.125)

    runtime.responder = responder
    paths = runtime.plan_feature("add-caching")

    assert runtime.chat("outline the cache") == "echo: outline the cache"
    assert runtime.chat("and eviction?") == "echo: and eviction?"

    assert [call[2] for call in calls] == [Phase.PLAN, Phase.PLAN]
    assert calls[0][1] == runtime.config.agent_modes.plan
    record = StateRecord.load(runtime.tools.fs, paths.state_file)
    assert record.get("turns") == 2
    assert record.get("cost_usd") == 0.25
    assert record.get("phase") == "Plan"
    assert runtime.feature_status("add-caching").turns == 2


def test_chat_without_feature_only_counts_in_memory(runtime: Runtime) -> None:
    runtime.responder = lambda message, mode, state: ChatReply(text="ok")

    assert runtime.chat("hi") == "ok"
    assert runtime.state.turns == 1
    assert runtime.tools.fs.files == {}


def test_chat_wraps_unexpected_responder_errors(runtime: Runtime) -> None:
    def responder(message: str, mode: AgentMode, state: PhaseState) -> ChatReply:
        raise ValueError("stream closed")

    runtime.responder = responder

    with pytest.raises(UnexpectedError, match="stream closed") as excinfo:
        runtime.chat("hi")
    assert isinstance(excinfo.value.__cause__, ValueError)
    assert runtime.state.turns == 0


def test_chat_rejects_negative_cost_without_counting_the_turn(runtime: Runtime) -> None:
    runtime.responder = lambda message, mode, state: ChatReply(text="ok", cost_usd=-0.5)
    paths = runtime.plan_feature("add-caching")

    with pytest.raises(UnexpectedError, match="negative cost"):
        runtime.chat("hi")

    assert runtime.state.turns == 0
    assert runtime.state.cost_usd == 0.0
    assert StateRecord.load(runtime.tools.fs, paths.state_file).get("turns") == 0


def test_full_lifecycle_against_real_git(tmp_path: Path) -> None:
    repo = tmp_path / "repo"
    repo.mkdir()
    _init_git_repo(repo)

    Runtime.from_repo(repo).init_project()
    config_file = repo / ".mpca" / "config.toml"
    config_file.write_text(
        config_file.read_text(encoding="utf-8").replace(
            "cargo test --all -- --nocapture", f"echo '{PASSING}'"
        ),
        encoding="utf-8",
    )

    runtime = Runtime.from_repo(repo, require_config=True)
    paths = runtime.plan_feature("add-caching")
    first = runtime.run_feature("add-caching")
    second = runtime.run_feature("add-caching")
    result = runtime.verify_feature("add-caching")

    assert (first.resumed, second.resumed) == (False, True)
    assert (paths.worktree / "README.md").read_text(encoding="utf-8") == "seed\n"
    branches = _run(["git", "branch", "--list", "feature/add-caching"], cwd=repo).stdout
    assert "feature/add-caching" in branches
    worktrees = _run(["git", "worktree", "list", "--porcelain"], cwd=repo).stdout
    assert worktrees.count("worktree ") == 2
    assert result.passed == 3
    assert "✅ PASS" in paths.report.read_text(encoding="utf-8")
    assert ".trees/" in (repo / ".gitignore").read_text(encoding="utf-8")
    assert "## MPCA Workflow" in (repo / "CLAUDE.md").read_text(encoding="utf-8")
    assert runtime.state.phase is Phase.VERIFY
