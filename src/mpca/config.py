from __future__ import annotations

import json
import logging
import tomllib
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Literal, get_args

from mpca.errors import ConfigNotFound, ConfigParseFailure, InvalidConfig

logger = logging.getLogger(__name__)

ToolSet = Literal["minimal", "standard", "full"]
WorkflowName = Literal["init", "plan", "execute", "review", "verify"]

WORKFLOWS: tuple[str, ...] = get_args(WorkflowName)
TOOL_SETS: tuple[str, ...] = get_args(ToolSet)
FEATURE_SLUG_PLACEHOLDER = "{feature_slug}"
DEFAULT_MODEL = "claude-3-5-sonnet-20241022"

# Keys computed from the repository root; a value in the file never wins.
DERIVED_PATH_KEYS = frozenset(
    {"repo_root", "trees_dir", "specs_dir", "docs_file", "claude_md", "config_file"}
)


@dataclass(frozen=True, slots=True)
class GitConfig:
    auto_commit: bool = True
    branch_naming: str = "feature/{feature_slug}"

    def branch_for(self, feature_slug: str) -> str:
        return self.branch_naming.replace(FEATURE_SLUG_PLACEHOLDER, feature_slug)


@dataclass(frozen=True, slots=True)
class ReviewConfig:
    enabled: bool = False
    reviewers: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class AgentMode:
    use_code_preset: bool = False
    model: str = DEFAULT_MODEL
    temperature: float = 0.0
    max_tokens: int = 4096


@dataclass(frozen=True, slots=True)
class WorkflowModes:
    init: AgentMode = field(default_factory=lambda: AgentMode(False, DEFAULT_MODEL, 0.0, 4096))
    plan: AgentMode = field(default_factory=lambda: AgentMode(True, DEFAULT_MODEL, 0.3, 8192))
    execute: AgentMode = field(default_factory=lambda: AgentMode(True, DEFAULT_MODEL, 0.0, 8192))
    review: AgentMode = field(default_factory=lambda: AgentMode(True, DEFAULT_MODEL, 0.0, 8192))
    verify: AgentMode = field(default_factory=lambda: AgentMode(False, DEFAULT_MODEL, 0.0, 4096))

    def for_workflow(self, workflow: str) -> AgentMode:
        if workflow not in WORKFLOWS:
            raise InvalidConfig(f"unknown workflow '{workflow}'")
        return getattr(self, workflow)


@dataclass(frozen=True, slots=True)
class WorkflowTools:
    init: ToolSet = "minimal"
    plan: ToolSet = "standard"
    execute: ToolSet = "full"
    review: ToolSet = "standard"
    verify: ToolSet = "standard"

    def for_workflow(self, workflow: str) -> ToolSet:
        if workflow not in WORKFLOWS:
            raise InvalidConfig(f"unknown workflow '{workflow}'")
        return getattr(self, workflow)


@dataclass(frozen=True, slots=True)
class VerifyConfig:
    test_command: str = "cargo test --all -- --nocapture"
    test_timeout_seconds: float = 1800.0

    @property
    def timeout(self) -> float | None:
        return self.test_timeout_seconds if self.test_timeout_seconds > 0 else None


@dataclass(frozen=True, slots=True)
class MpcaConfig:
    repo_root: Path
    trees_dir: Path
    specs_dir: Path
    docs_file: Path
    config_file: Path
    prompt_dirs: tuple[Path, ...] = ()
    git: GitConfig = field(default_factory=GitConfig)
    review: ReviewConfig = field(default_factory=ReviewConfig)
    agent_modes: WorkflowModes = field(default_factory=WorkflowModes)
    tool_sets: WorkflowTools = field(default_factory=WorkflowTools)
    verify: VerifyConfig = field(default_factory=VerifyConfig)

    @classmethod
    def default(cls, repo_root: Path) -> MpcaConfig:
        return cls.from_dict(repo_root, {})

    @classmethod
    def from_dict(cls, repo_root: Path, data: dict[str, Any]) -> MpcaConfig:
        root = Path(repo_root).resolve()
        for key in sorted(DERIVED_PATH_KEYS & data.keys()):
            logger.debug("ignoring path override '%s' in config; derived from %s", key, root)

        prompts = _section(data, "prompts")
        _reject_unknown("prompts", prompts, {"dirs"})
        prompt_dirs = tuple(
            path if path.is_absolute() else root / path
            for path in map(Path, _string_list("prompts.dirs", prompts.get("dirs", [])))
        )

        return cls(
            repo_root=root,
            trees_dir=root / ".trees",
            specs_dir=root / ".mpca" / "specs",
            docs_file=root / "CLAUDE.md",
            config_file=root / ".mpca" / "config.toml",
            prompt_dirs=prompt_dirs,
            git=_git_from_dict(_section(data, "git")),
            review=_review_from_dict(_section(data, "review")),
            agent_modes=_modes_from_dict(_section(data, "agent_modes")),
            tool_sets=_tools_from_dict(_section(data, "tool_sets")),
            verify=_verify_from_dict(_section(data, "verify")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "git": {
                "auto_commit": self.git.auto_commit,
                "branch_naming": self.git.branch_naming,
            },
            "review": {
                "enabled": self.review.enabled,
                "reviewers": list(self.review.reviewers),
            },
            "agent_modes": {
                name: asdict(self.agent_modes.for_workflow(name)) for name in WORKFLOWS
            },
            "tool_sets": {name: self.tool_sets.for_workflow(name) for name in WORKFLOWS},
            "prompts": {"dirs": [str(path) for path in self.prompt_dirs]},
            "verify": {
                "test_command": self.verify.test_command,
                "test_timeout_seconds": self.verify.test_timeout_seconds,
            },
        }


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    value = data.get(name, {})
    if not isinstance(value, dict):
        raise InvalidConfig(f"[{name}] must be a table")
    return value


def _reject_unknown(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(data) - allowed)
    if unknown:
        raise InvalidConfig(f"unknown key(s) in [{section}]: {', '.join(unknown)}")


def _expect(name: str, value: Any, kind: type | tuple[type, ...]) -> Any:
    # bool is an int subclass; never accept it where a number is expected.
    if isinstance(value, bool) and bool not in (kind if isinstance(kind, tuple) else (kind,)):
        raise InvalidConfig(f"{name} must not be a boolean")
    if not isinstance(value, kind):
        raise InvalidConfig(f"{name} has the wrong type ({type(value).__name__})")
    return value


def _string_list(name: str, value: Any) -> list[str]:
    _expect(name, value, list)
    return [_expect(f"{name}[]", item, str) for item in value]


def _git_from_dict(data: dict[str, Any]) -> GitConfig:
    _reject_unknown("git", data, {"auto_commit", "branch_naming"})
    default = GitConfig()
    branch_naming = _expect("git.branch_naming", data.get("branch_naming", default.branch_naming), str)
    if FEATURE_SLUG_PLACEHOLDER not in branch_naming:
        raise InvalidConfig(
            f"git.branch_naming must contain {FEATURE_SLUG_PLACEHOLDER}: {branch_naming!r}"
        )
    return GitConfig(
        auto_commit=_expect("git.auto_commit", data.get("auto_commit", default.auto_commit), bool),
        branch_naming=branch_naming,
    )


def _review_from_dict(data: dict[str, Any]) -> ReviewConfig:
    _reject_unknown("review", data, {"enabled", "reviewers"})
    return ReviewConfig(
        enabled=_expect("review.enabled", data.get("enabled", False), bool),
        reviewers=tuple(_string_list("review.reviewers", data.get("reviewers", []))),
    )


def _mode_from_dict(workflow: str, base: AgentMode, data: Any) -> AgentMode:
    prefix = f"agent_modes.{workflow}"
    if not isinstance(data, dict):
        raise InvalidConfig(f"[{prefix}] must be a table")
    _reject_unknown(prefix, data, {item.name for item in fields(AgentMode)})
    temperature = float(
        _expect(f"{prefix}.temperature", data.get("temperature", base.temperature), (int, float))
    )
    if not 0.0 <= temperature <= 1.0:
        raise InvalidConfig(f"{prefix}.temperature must be between 0.0 and 1.0")
    max_tokens = _expect(f"{prefix}.max_tokens", data.get("max_tokens", base.max_tokens), int)
    if max_tokens <= 0:
        raise InvalidConfig(f"{prefix}.max_tokens must be positive")
    return AgentMode(
        use_code_preset=_expect(
            f"{prefix}.use_code_preset", data.get("use_code_preset", base.use_code_preset), bool
        ),
        model=_expect(f"{prefix}.model", data.get("model", base.model), str),
        temperature=temperature,
        max_tokens=max_tokens,
    )


def _modes_from_dict(data: dict[str, Any]) -> WorkflowModes:
    _reject_unknown("agent_modes", data, set(WORKFLOWS))
    defaults = WorkflowModes()
    return WorkflowModes(
        **{
            workflow: _mode_from_dict(workflow, defaults.for_workflow(workflow), data[workflow])
            if workflow in data
            else defaults.for_workflow(workflow)
            for workflow in WORKFLOWS
        }
    )


def _tools_from_dict(data: dict[str, Any]) -> WorkflowTools:
    _reject_unknown("tool_sets", data, set(WORKFLOWS))
    defaults = WorkflowTools()
    resolved: dict[str, str] = {}
    for workflow in WORKFLOWS:
        value = data.get(workflow, defaults.for_workflow(workflow))
        _expect(f"tool_sets.{workflow}", value, str)
        normalized = value.strip().lower()
        if normalized not in TOOL_SETS:
            raise InvalidConfig(
                f"tool_sets.{workflow} must be one of {', '.join(TOOL_SETS)} (got {value!r})"
            )
        resolved[workflow] = normalized
    return WorkflowTools(**resolved)


def _verify_from_dict(data: dict[str, Any]) -> VerifyConfig:
    _reject_unknown("verify", data, {"test_command", "test_timeout_seconds"})
    default = VerifyConfig()
    command = _expect("verify.test_command", data.get("test_command", default.test_command), str)
    if not command.strip():
        raise InvalidConfig("verify.test_command is empty")
    timeout = float(
        _expect(
            "verify.test_timeout_seconds",
            data.get("test_timeout_seconds", default.test_timeout_seconds),
            (int, float),
        )
    )
    if timeout < 0:
        raise InvalidConfig("verify.test_timeout_seconds must not be negative")
    return VerifyConfig(test_command=command, test_timeout_seconds=timeout)


def toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value)
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: MpcaConfig) -> str:
    data = config.to_dict()
    lines: list[str] = ["# mpca configuration", ""]
    for section in ("git", "review", "tool_sets", "prompts", "verify"):
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {toml_value(value)}")
        lines.append("")
    for workflow, mode in data["agent_modes"].items():
        lines.append(f"[agent_modes.{workflow}]")
        for key, value in mode.items():
            lines.append(f"{key} = {toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def config_path(repo_root: Path) -> Path:
    return Path(repo_root).resolve() / ".mpca" / "config.toml"


def load_config(repo_root: Path, *, required: bool = False) -> MpcaConfig:
    path = config_path(repo_root)
    if not path.exists():
        if required:
            raise ConfigNotFound(path)
        return MpcaConfig.default(repo_root)
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise ConfigParseFailure(path, str(exc)) from exc
    return MpcaConfig.from_dict(repo_root, data)
