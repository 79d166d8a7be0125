from mpca.state.phase import Phase, PhaseState
from mpca.state.record import StateRecord

__all__ = ["Phase", "PhaseState", "StateRecord"]
