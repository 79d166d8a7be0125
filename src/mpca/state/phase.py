from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from mpca.errors import CorruptedState, InvalidStateTransition

if TYPE_CHECKING:
    from mpca.state.record import StateRecord


class Phase(Enum):
    INIT = "Init"
    PLAN = "Plan"
    RUN = "Run"
    VERIFY = "Verify"

    @property
    def rank(self) -> int:
        return _ORDER.index(self)

    @property
    def next(self) -> Phase | None:
        rank = self.rank
        return _ORDER[rank + 1] if rank + 1 < len(_ORDER) else None

    @classmethod
    def parse(cls, value: str) -> Phase:
        normalized = str(value).strip().lower()
        for phase in cls:
            if phase.value.lower() == normalized:
                return phase
        raise ValueError(f"unknown phase: {value!r}")

    def __str__(self) -> str:
        return self.value


_ORDER: tuple[Phase, ...] = (Phase.INIT, Phase.PLAN, Phase.RUN, Phase.VERIFY)


@dataclass(slots=True)
class PhaseState:
    feature_slug: str | None = None
    phase: Phase = Phase.INIT
    turns: int = 0
    cost_usd: float = 0.0

    @classmethod
    def fresh(cls) -> PhaseState:
        return cls()

    @classmethod
    def for_feature(cls, slug: str) -> PhaseState:
        return cls(feature_slug=slug, phase=Phase.PLAN)

    def advance(self) -> bool:
        """Step to the next phase; returns False (and changes nothing) at Verify."""
        target = self.phase.next
        if target is None:
            return False
        self.phase = target
        return True

    def move_to(self, target: Phase) -> bool:
        if target.rank < self.phase.rank:
            raise InvalidStateTransition(str(self.phase), str(target))
        if target is self.phase:
            return False
        self.phase = target
        return True

    def increment_turn(self) -> int:
        self.turns += 1
        return self.turns

    def add_cost(self, amount: float) -> float:
        if amount < 0:
            raise ValueError(f"cost must not be negative: {amount}")
        self.cost_usd += float(amount)
        return self.cost_usd

    @classmethod
    def from_record(cls, record: StateRecord) -> PhaseState:
        raw_phase = record.get("phase")
        if raw_phase is None:
            raise CorruptedState(record.source, "missing 'phase'")
        if not isinstance(raw_phase, str):
            raise CorruptedState(record.source, "'phase' must be a string")
        try:
            phase = Phase.parse(raw_phase)
        except ValueError as exc:
            raise CorruptedState(record.source, str(exc)) from exc

        slug = record.get("feature_slug")
        if slug is not None and not isinstance(slug, str):
            raise CorruptedState(record.source, "'feature_slug' must be a string")

        turns = record.get("turns", 0)
        if isinstance(turns, bool) or not isinstance(turns, int) or turns < 0:
            raise CorruptedState(record.source, "'turns' must be a non-negative integer")

        cost = record.get("cost_usd", 0.0)
        if isinstance(cost, bool) or not isinstance(cost, (int, float)) or cost < 0:
            raise CorruptedState(record.source, "'cost_usd' must be a non-negative number")

        return cls(feature_slug=slug, phase=phase, turns=turns, cost_usd=float(cost))

    def apply_to(self, record: StateRecord) -> None:
        if self.feature_slug is not None:
            record.set("feature_slug", self.feature_slug)
        record.set("phase", str(self.phase))
        record.set("turns", self.turns)
        record.set("cost_usd", float(self.cost_usd))
