"""Boundary between the navigation core and the game client."""

from __future__ import annotations

from typing import Callable, Protocol

from mc_navigator.models import AnyGoal, BlockInfo, Coord, InventoryItem, Vec3
from mc_navigator.profiles import MovementProfile


class WorldUnavailableError(RuntimeError):
    """Raised when the game client is disconnected or a world query cannot be served."""


class MovementFailedError(RuntimeError):
    """Raised by ``move`` when the grid search finds no route to the goal."""


class WorldAdapter(Protocol):
    """World queries plus the actuator calls the core drives.

    Queries are synchronous snapshots and must be re-read after every await.
    """

    def block_at(self, coord: Coord) -> BlockInfo | None:
        """Return the block at a voxel, or ``None`` when the chunk is not loaded."""

    def find_blocks(
        self,
        predicate: Callable[[BlockInfo], bool],
        *,
        origin: Coord,
        max_distance: int = 32,
        count: int = 1,
    ) -> list[BlockInfo]:
        """Return up to ``count`` matching blocks, nearest first."""

    def current_position(self) -> Vec3:
        """Return the agent's feet position."""

    def entity_position(self, entity_id: str) -> Vec3 | None:
        """Return a tracked entity's position if it is loaded."""

    def inventory_items(self) -> list[InventoryItem]:
        """Return a snapshot of the inventory."""

    def held_item(self) -> InventoryItem | None:
        """Return the item in the main hand."""

    def is_block_item(self, item_name: str) -> bool:
        """Whether the registry knows ``item_name`` as a placeable block."""

    async def move(self, goal: AnyGoal, profile: MovementProfile) -> None:
        """Run the grid search to ``goal``; raise ``MovementFailedError`` when no route exists."""

    def stop(self) -> None:
        """Abort any in-flight ``move``."""

    async def dig(self, block: BlockInfo) -> bool:
        """Break ``block``; return whether it was broken."""

    async def place(self, reference: BlockInfo, face: Coord) -> bool:
        """Place the held item against ``reference`` on ``face``; return whether it was placed."""

    async def equip(self, item_name: str) -> bool:
        """Move ``item_name`` to the main hand."""

    async def activate_block(self, block: BlockInfo) -> None:
        """Right-click a block (doors, gates, trapdoors)."""

    async def look_at(self, point: Vec3) -> None:
        """Turn toward ``point``."""

    def jump(self, state: bool) -> None: ...

    def forward(self, state: bool) -> None: ...

    def sprint(self, state: bool) -> None: ...

    def clear_controls(self) -> None:
        """Release every movement control."""

    async def wait(self, seconds: float) -> None:
        """Let the game run for ``seconds``."""
