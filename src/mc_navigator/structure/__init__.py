"""Protected structure model, persistence and guard."""

from .descriptor import Bounds, Door, StructureDescriptor
from .door import DoorTraversal, nudge_nearby_opening
from .guard import StructureGuard, TransitionInProgressError, TransitionState
from .store import StructureStore

__all__ = [
    "Bounds",
    "Door",
    "DoorTraversal",
    "StructureDescriptor",
    "StructureGuard",
    "StructureStore",
    "TransitionInProgressError",
    "TransitionState",
    "nudge_nearby_opening",
]
