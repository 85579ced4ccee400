"""Walking through the structure's door instead of through its walls."""

from __future__ import annotations

import logging
import math

from mc_navigator import blocks
from mc_navigator.adapters.world import MovementFailedError, WorldAdapter
from mc_navigator.config import Settings, settings as default_settings
from mc_navigator.context import CancellationToken
from mc_navigator.models import GoalNear, Vec3
from mc_navigator.profiles import conservative
from mc_navigator.structure.guard import StructureGuard, TransitionInProgressError, TransitionState
from mc_navigator.supervisor import StuckSupervisor, SupervisionStatus

EXIT_POLLS = 20
ENTRY_POLLS = 15
POLL_SECONDS = 0.2


class DoorTraversal:
    """Two-way door transition owned by one agent.

    ``ensure_side`` is idempotent: when the agent is already on the target's
    side of the walls it returns ``True`` without touching the world.
    """

    def __init__(
        self,
        world: WorldAdapter,
        guard: StructureGuard,
        *,
        token: CancellationToken | None = None,
        supervisor: StuckSupervisor | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._guard = guard
        self._token = token or CancellationToken()
        self._settings = settings or default_settings
        self._supervisor = supervisor or StuckSupervisor(world, self._token, settings=self._settings)
        self._logger = logger or logging.getLogger("mc_navigator.structure.door")

    async def ensure_side(self, target: Vec3) -> bool:
        descriptor = self._guard.descriptor
        if descriptor is None or descriptor.door is None:
            return True
        inside_now = self._guard.is_inside(self._world.current_position())
        if inside_now == self._guard.is_inside(target):
            return True
        if inside_now:
            return await self.exit()
        return await self.enter()

    async def exit(self) -> bool:
        if not self._guard.is_inside(self._world.current_position()):
            return True
        try:
            with self._guard.transitioning(TransitionState.EXITING):
                return await self._walk_through(outward=True)
        except TransitionInProgressError as exc:
            self._logger.warning("door_transition_rejected", extra={"error": str(exc)})
            return False

    async def enter(self) -> bool:
        if self._guard.is_inside(self._world.current_position()):
            return True
        try:
            with self._guard.transitioning(TransitionState.ENTERING):
                return await self._walk_through(outward=False)
        except TransitionInProgressError as exc:
            self._logger.warning("door_transition_rejected", extra={"error": str(exc)})
            return False

    def door_front(self) -> Vec3 | None:
        """Center of the cell just outside the door."""
        descriptor = self._guard.descriptor
        if descriptor is None or descriptor.door is None:
            return None
        door = descriptor.door
        ox, oz = door.outward
        return Vec3(door.x + 0.5 + ox, descriptor.door_y, door.z + 0.5 + oz)

    async def _walk_through(self, *, outward: bool) -> bool:
        descriptor = self._guard.descriptor
        door = descriptor.door
        ox, oz = door.outward
        door_y = descriptor.door_y
        center_x, center_z = door.x + 0.5, door.z + 0.5

        if outward:
            approach = Vec3(center_x - ox * 1.5, door_y, center_z - oz * 1.5)
            destination = Vec3(center_x + ox * 2, door_y, center_z + oz * 2)
            polls = EXIT_POLLS
        else:
            approach = Vec3(center_x + ox, door_y, center_z + oz)
            destination = Vec3(center_x - ox * 2, door_y, center_z - oz * 2)
            polls = ENTRY_POLLS

        self._logger.info("door_transition_started", extra={"outward": outward, "door": (door.x, door_y, door.z)})
        try:
            result = await self._supervisor.run(
                self._world.move(
                    GoalNear(math.floor(approach.x), door_y, math.floor(approach.z), 1),
                    conservative(),
                ),
                timeout=self._settings.door_approach_timeout_seconds,
            )
        except MovementFailedError:
            self._logger.warning("door_approach_failed", extra={"outward": outward})
        else:
            if result.status is SupervisionStatus.INTERRUPTED:
                return False
            if not result.ok:
                self._logger.warning("door_approach_failed", extra={"outward": outward, "cause": result.cause.value})

        block = self._world.block_at((door.x, door_y, door.z))
        if block is not None and blocks.is_door(block.name) and not block.properties.get("open"):
            await self._world.activate_block(block)
            await self._world.wait(0.3)

        await self._world.look_at(destination)
        self._world.forward(True)
        try:
            for _ in range(polls):
                if self._token.cancelled:
                    break
                if self._guard.is_inside(self._world.current_position()) != outward:
                    break
                await self._world.wait(POLL_SECONDS)
        finally:
            self._world.clear_controls()

        done = self._guard.is_inside(self._world.current_position()) != outward
        self._logger.info("door_transition_finished", extra={"outward": outward, "success": done})
        return done


async def nudge_nearby_opening(world: WorldAdapter) -> bool:
    """Open the first closed door, gate or trapdoor around a stalled agent."""
    x, y, z = world.current_position().floored()
    candidates = [(x, y, z), (x, y + 1, z), (x, y + 2, z), (x, y - 1, z)]
    for dx, dz in ((1, 0), (-1, 0), (0, 1), (0, -1)):
        candidates.append((x + dx, y, z + dz))
        candidates.append((x + dx, y + 1, z + dz))

    for coord in candidates:
        block = world.block_at(coord)
        if block is None or not blocks.is_nudgeable_opening(block.name):
            continue
        if block.properties.get("open"):
            continue
        await world.activate_block(block)
        return True
    return False
