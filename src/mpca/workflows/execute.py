from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from mpca.config import MpcaConfig
from mpca.errors import FeatureNotFound, MpcaError, WorktreeAlreadyExists
from mpca.feature import FeaturePaths
from mpca.state.phase import Phase, PhaseState
from mpca.state.record import StateRecord, utcnow_iso
from mpca.tools.base import FilesystemAdapter, VersionControlAdapter
from mpca.workflows.plan import initial_state_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExecutionOutcome:
    worktree: Path
    branch: str
    resumed: bool


def _load_or_seed(fs: FilesystemAdapter, paths: FeaturePaths) -> tuple[StateRecord, bool]:
    if fs.exists(paths.state_file):
        return StateRecord.load(fs, paths.state_file), True
    logger.debug("no state for %s; seeding a fresh record", paths.slug)
    return initial_state_record(paths.slug), False


def execute_feature(
    config: MpcaConfig, slug: str, fs: FilesystemAdapter, vcs: VersionControlAdapter
) -> ExecutionOutcome:
    """Move a planned feature into its worktree and mark it as running.

    A feature whose persisted phase is already Run or Verify is resumed: the
    worktree is left alone and only the timestamp is refreshed.
    """
    paths = FeaturePaths.for_slug(config, slug)
    if not fs.is_dir(paths.specs_dir):
        raise FeatureNotFound(slug, "no specs directory; run plan first")

    try:
        record, persisted = _load_or_seed(fs, paths)
        state = PhaseState.from_record(record)
        resumed = persisted and state.phase.rank > Phase.PLAN.rank

        if resumed:
            logger.info("resuming feature %s at phase %s", slug, state.phase)
            if not fs.exists(paths.worktree):
                logger.warning("worktree for %s is missing: %s", slug, paths.worktree)
        else:
            if fs.exists(paths.worktree):
                raise WorktreeAlreadyExists(paths.worktree)
            vcs.create_worktree(config.repo_root, paths.worktree, paths.branch)
            logger.info("created worktree %s on %s", paths.worktree, paths.branch)

        if state.phase.rank < Phase.RUN.rank:
            state.move_to(Phase.RUN)
        record.set("phase", str(state.phase))
        record.set("updated_at", utcnow_iso())
        record.save(fs, paths.state_file)
    except MpcaError as exc:
        exc.add_note(f"while executing feature '{slug}'")
        raise

    return ExecutionOutcome(worktree=paths.worktree, branch=paths.branch, resumed=resumed)
