"""World adapters: the protocol, the guarded interceptor and the in-memory world."""

from .guarded import GuardedWorld
from .simulated import Scenario, SimulatedWorld
from .world import MovementFailedError, WorldAdapter, WorldUnavailableError

__all__ = [
    "GuardedWorld",
    "MovementFailedError",
    "Scenario",
    "SimulatedWorld",
    "WorldAdapter",
    "WorldUnavailableError",
]
