from __future__ import annotations

import logging
from pathlib import Path

from mpca.config import MpcaConfig, dumps_toml
from mpca.errors import AlreadyInitialized, MpcaError, NotARepository
from mpca.tools.base import FilesystemAdapter, VersionControlAdapter

logger = logging.getLogger(__name__)

DOCS_MARKER = "## MPCA Workflow"

DOCS_SECTION = """\
## MPCA Workflow

Features in this repository are planned, implemented and verified with mpca.

- Configuration: `{config}`
- Feature specifications: `{specs}/<feature-slug>/specs/`
- Verification reports: `{specs}/<feature-slug>/verification_report.md`
- Worktrees: `{trees}/<feature-slug>/`, checked out on branch `{branch}`

Typical flow: `mpca plan <feature-slug>`, then `mpca run <feature-slug>`, then
`mpca verify <feature-slug>`. `mpca status <feature-slug>` shows the current phase.
"""


def _relative(config: MpcaConfig, path: Path) -> str:
    try:
        return path.relative_to(config.repo_root).as_posix()
    except ValueError:
        return str(path)


def _ignore_rule(config: MpcaConfig) -> tuple[str, set[str]]:
    name = _relative(config, config.trees_dir)
    return f"{name}/", {name, f"{name}/", f"/{name}", f"/{name}/"}


def _ensure_gitignore(config: MpcaConfig, fs: FilesystemAdapter) -> bool:
    path = config.repo_root / ".gitignore"
    rule, equivalents = _ignore_rule(config)
    existing = fs.read_text(path) if fs.is_file(path) else ""
    if any(line.strip() in equivalents for line in existing.splitlines()):
        return False
    separator = "" if not existing or existing.endswith("\n") else "\n"
    fs.write(path, f"{existing}{separator}{rule}\n")
    return True


def _ensure_docs(config: MpcaConfig, fs: FilesystemAdapter) -> bool:
    section = DOCS_SECTION.format(
        config=_relative(config, config.config_file),
        specs=_relative(config, config.specs_dir),
        trees=_relative(config, config.trees_dir),
        branch=config.git.branch_naming,
    )
    if not fs.is_file(config.docs_file):
        fs.write(config.docs_file, f"# {config.docs_file.stem}\n\n{section}")
        return True
    existing = fs.read_text(config.docs_file)
    if DOCS_MARKER in existing:
        return False
    separator = "\n" if existing.endswith("\n") else "\n\n"
    fs.write(config.docs_file, f"{existing}{separator}{section}")
    return True


def init_project(config: MpcaConfig, fs: FilesystemAdapter, vcs: VersionControlAdapter) -> None:
    """Prepare a repository for mpca.

    Creates the specs and worktree directories, writes the default
    configuration, ignores the worktree directory and documents the workflow
    in the docs file. Refuses to run twice.
    """
    if not vcs.is_repository(config.repo_root):
        raise NotARepository(config.repo_root)
    if fs.exists(config.config_file):
        raise AlreadyInitialized(config.repo_root)

    try:
        fs.create_dir_all(config.specs_dir)
        fs.create_dir_all(config.trees_dir)
        fs.write(config.config_file, dumps_toml(config))
        if _ensure_gitignore(config, fs):
            logger.debug("added worktree directory to .gitignore")
        if _ensure_docs(config, fs):
            logger.debug("documented workflow in %s", config.docs_file)
    except MpcaError as exc:
        exc.add_note(f"while initializing {config.repo_root}")
        raise
    logger.info("initialized mpca in %s", config.repo_root)
