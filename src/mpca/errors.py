from __future__ import annotations

from pathlib import Path


class MpcaError(RuntimeError):
    """Base class for every failure raised by mpca."""


# Repository state


class RepositoryError(MpcaError):
    pass


class NotARepository(RepositoryError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"not a git repository: {path}")
        self.path = Path(path)


class AlreadyInitialized(RepositoryError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"repository already initialized by mpca: {path}")
        self.path = Path(path)


class NotInitialized(RepositoryError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"repository not initialized by mpca (run `mpca init` first): {path}")
        self.path = Path(path)


# Feature existence


class FeatureError(MpcaError):
    def __init__(self, message: str, *, slug: str) -> None:
        super().__init__(message)
        self.slug = slug


class FeatureNotFound(FeatureError):
    def __init__(self, slug: str, detail: str | None = None) -> None:
        message = f"feature not found: {slug}"
        if detail:
            message += f" ({detail})"
        super().__init__(message, slug=slug)


class FeatureAlreadyExists(FeatureError):
    def __init__(self, slug: str) -> None:
        super().__init__(f"feature already exists: {slug}", slug=slug)


class InvalidFeatureSlug(FeatureError):
    def __init__(self, slug: str, reason: str) -> None:
        super().__init__(f"invalid feature slug: {slug!r} ({reason})", slug=slug)
        self.reason = reason


# State integrity


class StateError(MpcaError):
    pass


class CorruptedState(StateError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"corrupted state file {path}: {reason}")
        self.path = Path(path)
        self.reason = reason


class InvalidStateTransition(StateError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"invalid state transition from {current} to {target}")
        self.current = current
        self.target = target


class StateMissing(StateError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"state file missing: {path}")
        self.path = Path(path)


# Version control


class VersionControlError(MpcaError):
    pass


class WorktreeAlreadyExists(VersionControlError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"worktree already exists: {path}")
        self.path = Path(path)


class WorktreeNotFound(VersionControlError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"worktree not found: {path}")
        self.path = Path(path)


class BranchAlreadyExists(VersionControlError):
    def __init__(self, branch: str) -> None:
        super().__init__(f"branch already exists: {branch}")
        self.branch = branch


class UncommittedChanges(VersionControlError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"uncommitted changes in worktree: {path}")
        self.path = Path(path)


class VersionControlCommandFailed(VersionControlError):
    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(f"git command failed: {message}")
        self.exit_code = exit_code


# Filesystem


class FilesystemError(MpcaError):
    def __init__(self, message: str, *, path: Path | str) -> None:
        super().__init__(message)
        self.path = Path(path)


class PathNotFound(FilesystemError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"path not found: {path}", path=path)


class InvalidPath(FilesystemError):
    def __init__(self, path: Path | str, reason: str = "not a directory") -> None:
        super().__init__(f"invalid path: {path} ({reason})", path=path)


class ReadFailure(FilesystemError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"file read error: {path}: {reason}", path=path)


class WriteFailure(FilesystemError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"file write error: {path}: {reason}", path=path)


class PermissionDenied(FilesystemError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"permission denied: {path}", path=path)


# Configuration


class ConfigError(MpcaError):
    pass


class InvalidConfig(ConfigError):
    def __init__(self, message: str) -> None:
        super().__init__(f"invalid config: {message}")


class ConfigParseFailure(ConfigError):
    def __init__(self, path: Path | str, reason: str) -> None:
        super().__init__(f"config parse error in {path}: {reason}")
        self.path = Path(path)


class MissingConfigField(ConfigError):
    def __init__(self, field_name: str) -> None:
        super().__init__(f"missing required config field: {field_name}")
        self.field_name = field_name


class ConfigNotFound(ConfigError):
    def __init__(self, path: Path | str) -> None:
        super().__init__(f"config file not found: {path}")
        self.path = Path(path)


# Verification


class VerificationError(MpcaError):
    pass


class VerificationFailed(VerificationError):
    def __init__(self, failed: int, *, result: object | None = None) -> None:
        super().__init__(f"verification failed: {failed} test(s) failed")
        self.failed = failed
        self.result = result


class VerificationSpecMissing(VerificationError):
    def __init__(self, slug: str) -> None:
        super().__init__(f"verification spec missing for feature: {slug}")
        self.slug = slug


class TestsFailed(VerificationError):
    __test__ = False

    def __init__(self, message: str) -> None:
        super().__init__(f"tests failed: {message}")


class VerificationTimeout(VerificationError):
    def __init__(self, seconds: float) -> None:
        super().__init__(f"verification timeout after {seconds:g}s")
        self.seconds = seconds


# Shell


class ShellError(MpcaError):
    pass


class ShellCommandFailed(ShellError):
    def __init__(
        self,
        message: str,
        *,
        command: str | None = None,
        timed_out: bool = False,
        timeout_seconds: float | None = None,
    ) -> None:
        super().__init__(f"shell command failed: {message}")
        self.command = command
        self.timed_out = timed_out
        self.timeout_seconds = timeout_seconds


class UnexpectedError(MpcaError):
    """Passthrough for causes outside the taxonomy; always raised ``from`` the cause."""

    def __init__(self, message: str) -> None:
        super().__init__(f"unexpected error: {message}")
