from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, Union

from mc_navigator import blocks

if TYPE_CHECKING:
    from mc_navigator.adapters.world import WorldAdapter

Coord = tuple[int, int, int]


@dataclass(frozen=True, slots=True)
class Vec3:
    """Continuous agent position. Voxel lookups always go through ``floored``."""

    x: float
    y: float
    z: float

    @classmethod
    def center_of(cls, coord: Coord) -> Vec3:
        return cls(coord[0] + 0.5, float(coord[1]), coord[2] + 0.5)

    def floored(self) -> Coord:
        return (math.floor(self.x), math.floor(self.y), math.floor(self.z))

    def offset(self, dx: float = 0.0, dy: float = 0.0, dz: float = 0.0) -> Vec3:
        return Vec3(self.x + dx, self.y + dy, self.z + dz)

    def distance_to(self, other: Vec3) -> float:
        return math.sqrt((self.x - other.x) ** 2 + (self.y - other.y) ** 2 + (self.z - other.z) ** 2)

    def xz_distance_to(self, other: Vec3) -> float:
        return math.hypot(self.x - other.x, self.z - other.z)


@dataclass(slots=True)
class BlockInfo:
    name: str
    position: Coord
    diggable: bool = True
    skylight: int | None = None
    properties: dict[str, Any] = field(default_factory=dict)

    @property
    def is_liquid(self) -> bool:
        return blocks.is_liquid(self.name)


@dataclass(slots=True)
class InventoryItem:
    name: str
    count: int


class NavigationCause(str, Enum):
    """Why a navigation call returned."""

    REACHED = "reached"
    NAVIGATION_TIMEOUT = "navigation_timeout"
    NAVIGATION_STUCK = "navigation_stuck"
    INTERRUPTED = "interrupted"
    HAZARD_ABORT = "hazard_abort"
    MATERIAL_EXHAUSTED = "material_exhausted"
    PROTECTED_STRUCTURE_VIOLATION = "protected_structure_violation"
    UNREACHABLE = "unreachable"


@dataclass(slots=True)
class NavigationOutcome:
    """Result of every top-level navigation operation. Expected failures live here, not in exceptions."""

    reached: bool
    distance_remaining: float
    cause: NavigationCause
    profile: str | None = None
    detail: str | None = None

    @classmethod
    def success(cls, distance_remaining: float = 0.0, *, profile: str | None = None) -> NavigationOutcome:
        return cls(True, distance_remaining, NavigationCause.REACHED, profile=profile)

    @classmethod
    def failure(
        cls,
        cause: NavigationCause,
        distance_remaining: float = math.inf,
        *,
        profile: str | None = None,
        detail: str | None = None,
    ) -> NavigationOutcome:
        return cls(False, distance_remaining, cause, profile=profile, detail=detail)

    def as_dict(self) -> dict[str, Any]:
        return {
            "reached": self.reached,
            "distance_remaining": round(self.distance_remaining, 2),
            "cause": self.cause.value,
            "profile": self.profile,
            "detail": self.detail,
        }


class Goal(Protocol):
    """Immutable target handed to the grid search."""

    def is_end(self, coord: Coord) -> bool:
        """Whether standing at ``coord`` satisfies the goal."""

    def heuristic(self, coord: Coord) -> float:
        """Estimated remaining cost from ``coord``."""

    def resolve(self, world: WorldAdapter) -> Goal:
        """Bind any entity reference to a concrete position."""


@dataclass(frozen=True, slots=True)
class GoalNear:
    x: int
    y: int
    z: int
    radius: float = 1.0

    def is_end(self, coord: Coord) -> bool:
        dx, dy, dz = coord[0] - self.x, coord[1] - self.y, coord[2] - self.z
        return dx * dx + dy * dy + dz * dz <= self.radius * self.radius

    def heuristic(self, coord: Coord) -> float:
        return math.sqrt((coord[0] - self.x) ** 2 + (coord[1] - self.y) ** 2 + (coord[2] - self.z) ** 2)

    def resolve(self, world: WorldAdapter) -> GoalNear:
        return self

    @property
    def point(self) -> Vec3:
        return Vec3.center_of((self.x, self.y, self.z))


@dataclass(frozen=True, slots=True)
class GoalXZ:
    x: int
    z: int

    def is_end(self, coord: Coord) -> bool:
        return coord[0] == self.x and coord[2] == self.z

    def heuristic(self, coord: Coord) -> float:
        return math.hypot(coord[0] - self.x, coord[2] - self.z)

    def resolve(self, world: WorldAdapter) -> GoalXZ:
        return self


@dataclass(frozen=True, slots=True)
class GoalFollow:
    """Stay within ``radius`` of an entity; the position is looked up when the search starts."""

    entity_id: str
    radius: float = 2.0

    def is_end(self, coord: Coord) -> bool:
        raise TypeError("GoalFollow must be resolved against a world before searching")

    def heuristic(self, coord: Coord) -> float:
        raise TypeError("GoalFollow must be resolved against a world before searching")

    def resolve(self, world: WorldAdapter) -> GoalNear:
        position = world.entity_position(self.entity_id)
        if position is None:
            raise LookupError(f"Unknown entity: {self.entity_id}")
        x, y, z = position.floored()
        return GoalNear(x, y, z, self.radius)


@dataclass(frozen=True, slots=True)
class GoalInvert:
    """Flee goal: satisfied anywhere the wrapped goal is not."""

    goal: GoalNear | GoalXZ | GoalFollow

    def is_end(self, coord: Coord) -> bool:
        return not self.goal.is_end(coord)

    def heuristic(self, coord: Coord) -> float:
        return -self.goal.heuristic(coord)

    def resolve(self, world: WorldAdapter) -> GoalInvert:
        return GoalInvert(self.goal.resolve(world))


AnyGoal = Union[GoalNear, GoalXZ, GoalFollow, GoalInvert]
