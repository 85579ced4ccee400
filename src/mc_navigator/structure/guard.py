"""Protection rules for the agent's own structure."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import replace
from enum import Enum

from mc_navigator import blocks
from mc_navigator.models import Coord, Vec3
from mc_navigator.profiles import MAX_DROP_DOWN, MovementProfile
from mc_navigator.structure.descriptor import StructureDescriptor


class TransitionState(str, Enum):
    IDLE = "idle"
    EXITING = "exiting"
    ENTERING = "entering"


class TransitionInProgressError(RuntimeError):
    """Raised when a door transition is requested while another one is running."""


class StructureGuard:
    """Classifies voxels against one protected structure.

    The descriptor is read on every query, so a repair collaborator that swaps
    it out through ``bind`` takes effect immediately for every profile that was
    augmented earlier.
    """

    def __init__(self, descriptor: StructureDescriptor | None = None, *, logger: logging.Logger | None = None) -> None:
        self._descriptor = descriptor
        self._override_depth = 0
        self._transition = TransitionState.IDLE
        self._logger = logger or logging.getLogger("mc_navigator.structure.guard")
        self.refusals = 0

    @property
    def descriptor(self) -> StructureDescriptor | None:
        return self._descriptor

    def bind(self, descriptor: StructureDescriptor | None) -> None:
        self._descriptor = descriptor

    @property
    def override_active(self) -> bool:
        return self._override_depth > 0

    @contextmanager
    def edits_allowed(self) -> Iterator[None]:
        """Scope in which a repair/expand collaborator may dig and place inside the structure."""
        self._override_depth += 1
        try:
            yield
        finally:
            self._override_depth -= 1

    def is_protected(self, coord: Coord) -> bool:
        descriptor = self._descriptor
        if descriptor is None:
            return False
        x, y, z = coord
        b = descriptor.bounds
        if not (b.x1 <= x <= b.x2 and b.z1 <= z <= b.z2):
            return False
        if y < b.y or y > b.roof:
            return False
        if y == b.y or y == b.roof:
            return True
        if x not in (b.x1, b.x2) and z not in (b.z1, b.z2):
            return False
        door = descriptor.door
        if door is not None and x == door.x and z == door.z and y - b.y <= 2:
            return False
        return True

    def is_inside(self, position: Vec3) -> bool:
        """Strictly inside the walls, between floor and roof."""
        descriptor = self._descriptor
        if descriptor is None:
            return False
        b = descriptor.bounds
        return b.x1 < position.x < b.x2 and b.z1 < position.z < b.z2 and b.y <= position.y <= b.roof

    def near_footprint(self, position: Vec3, margin: float = 2) -> bool:
        descriptor = self._descriptor
        if descriptor is None:
            return False
        return descriptor.bounds.contains_xz(position.x, position.z, margin)

    def under_footprint(self, position: Vec3) -> bool:
        descriptor = self._descriptor
        if descriptor is None:
            return False
        return descriptor.bounds.contains_xz(position.x, position.z) and position.y < descriptor.floor_y

    def blocks_placement(self, coord: Coord, item_name: str) -> bool:
        """Whether placing ``item_name`` at ``coord`` would wall the agent in."""
        descriptor = self._descriptor
        if descriptor is None or self.override_active:
            return False
        if item_name not in blocks.BUILD_MATERIALS:
            return False
        x, y, z = coord
        b = descriptor.bounds
        if not (b.y < y < b.roof):
            return False
        ix1, iz1, ix2, iz2 = descriptor.interior
        if ix1 <= x <= ix2 and iz1 <= z <= iz2:
            return True
        door = descriptor.door
        return door is not None and abs(x - door.x) <= 1 and abs(z - door.z) <= 1

    def protected_cost(self, coord: Coord) -> float | None:
        return math.inf if self.is_protected(coord) else None

    def augment(self, profile: MovementProfile) -> MovementProfile:
        """Return ``profile`` with protected cells priced out of the grid search."""
        if profile.guarded:
            return profile
        augmented = profile.with_break_override(self.protected_cost)
        return replace(augmented, max_drop_down=min(augmented.max_drop_down, MAX_DROP_DOWN), guarded=True)

    def record_refusal(self, action: str, coord: Coord) -> None:
        self.refusals += 1
        self._logger.warning("protected_structure_refusal", extra={"action": action, "coord": coord})

    @property
    def transition(self) -> TransitionState:
        return self._transition

    @contextmanager
    def transitioning(self, state: TransitionState) -> Iterator[None]:
        """Hold the single door-transition slot for the duration of the block."""
        if state is TransitionState.IDLE:
            raise ValueError("transition state must be EXITING or ENTERING")
        if self._transition is not TransitionState.IDLE:
            raise TransitionInProgressError(f"cannot start {state.value} while {self._transition.value}")
        self._transition = state
        try:
            yield
        finally:
            self._transition = TransitionState.IDLE
