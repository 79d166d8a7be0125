from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from mpca.config import AgentMode, MpcaConfig, load_config
from mpca.errors import FeatureNotFound, InvalidConfig, MpcaError, UnexpectedError, VerificationFailed
from mpca.feature import FeaturePaths
from mpca.state.phase import Phase, PhaseState
from mpca.state.record import StateRecord, utcnow_iso
from mpca.tools import ToolRegistry
from mpca.workflows import (
    ExecutionOutcome,
    VerificationResult,
    execute_feature,
    init_project,
    plan_feature,
    verify_feature,
)

logger = logging.getLogger(__name__)

WORKFLOW_FOR_PHASE = {
    Phase.INIT: "init",
    Phase.PLAN: "plan",
    Phase.RUN: "execute",
    Phase.VERIFY: "verify",
}


@dataclass(frozen=True, slots=True)
class ChatReply:
    text: str
    cost_usd: float = 0.0


ChatResponder = Callable[[str, AgentMode, PhaseState], ChatReply]


@dataclass(slots=True)
class Runtime:
    config: MpcaConfig
    tools: ToolRegistry | None = None
    state: PhaseState | None = None
    responder: ChatResponder | None = None

    def __post_init__(self) -> None:
        if self.tools is None:
            self.tools = ToolRegistry.local()
        if self.state is None:
            self.state = PhaseState.fresh()

    @classmethod
    def from_repo(
        cls,
        repo_root: Path,
        *,
        require_config: bool = False,
        tools: ToolRegistry | None = None,
        responder: ChatResponder | None = None,
    ) -> Runtime:
        config = load_config(Path(repo_root), required=require_config)
        return cls(config=config, tools=tools, responder=responder)

    def _paths(self, slug: str) -> FeaturePaths:
        return FeaturePaths.for_slug(self.config, slug)

    def _sync_state(self, slug: str) -> None:
        paths = self._paths(slug)
        if self.tools.fs.is_file(paths.state_file):
            self.state = PhaseState.from_record(StateRecord.load(self.tools.fs, paths.state_file))

    def init_project(self) -> None:
        init_project(self.config, self.tools.fs, self.tools.vcs)
        self.state = PhaseState.fresh()

    def plan_feature(self, slug: str) -> FeaturePaths:
        paths = plan_feature(self.config, slug, self.tools.fs, self.tools.vcs)
        self._sync_state(slug)
        return paths

    def run_feature(self, slug: str) -> ExecutionOutcome:
        outcome = execute_feature(self.config, slug, self.tools.fs, self.tools.vcs)
        self._sync_state(slug)
        return outcome

    def verify_feature(self, slug: str) -> VerificationResult:
        try:
            result = verify_feature(self.config, slug, self.tools.fs, self.tools.shell)
        except VerificationFailed:
            self._sync_state(slug)
            raise
        self._sync_state(slug)
        return result

    def feature_status(self, slug: str) -> PhaseState:
        paths = self._paths(slug)
        if not self.tools.fs.exists(paths.root):
            raise FeatureNotFound(slug)
        return PhaseState.from_record(StateRecord.load(self.tools.fs, paths.state_file))

    def chat(self, message: str) -> str:
        """Send ``message`` to the configured responder and account for the turn.

        Turns and cost are persisted when a feature is active and already has
        a state file.
        """
        if self.responder is None:
            raise InvalidConfig("no chat responder configured")
        mode = self.config.agent_modes.for_workflow(WORKFLOW_FOR_PHASE[self.state.phase])
        try:
            reply = self.responder(message, mode, self.state)
        except MpcaError:
            raise
        except Exception as exc:
            raise UnexpectedError(f"chat responder failed: {exc}") from exc

        if reply.cost_usd < 0:
            raise UnexpectedError(f"chat responder reported a negative cost: {reply.cost_usd}")
        self.state.increment_turn()
        self.state.add_cost(reply.cost_usd)
        slug = self.state.feature_slug
        if slug is not None:
            state_file = self._paths(slug).state_file
            if self.tools.fs.is_file(state_file):
                record = StateRecord.load(self.tools.fs, state_file)
                record.set("turns", self.state.turns)
                record.set("cost_usd", float(self.state.cost_usd))
                record.set("updated_at", utcnow_iso())
                record.save(self.tools.fs, state_file)
        logger.debug("chat turn %d (cost %.4f)", self.state.turns, self.state.cost_usd)
        return reply.text
