"""Dig-up / pillar-up state machine that brings the agent back to the surface."""

from __future__ import annotations

import asyncio
import logging
import math
from collections import deque
from enum import Enum
from typing import TYPE_CHECKING

from mc_navigator import blocks
from mc_navigator.adapters.world import MovementFailedError, WorldAdapter
from mc_navigator.config import Settings, settings as default_settings
from mc_navigator.context import NavigationContext
from mc_navigator.models import BlockInfo, Coord, GoalNear, NavigationCause, NavigationOutcome, Vec3
from mc_navigator.profiles import permissive
from mc_navigator.structure.guard import StructureGuard
from mc_navigator.supervisor import StuckSupervisor

if TYPE_CHECKING:
    from mc_navigator.escape.aquatic import AquaticEscapeController

CARDINALS: tuple[tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))
UP: Coord = (0, 1, 0)

UNDERGROUND_SKYLIGHT = 4
UNDERGROUND_DEPTH = 5
HAZARD_SCAN_HEIGHT = 5
CLEAR_HEIGHT = 4
STAND_SCAN_DEPTH = 6
DRAIN_LENGTH = 4
CAVE_EXIT_SKYLIGHT = 14
CAVE_EXIT_MAX_SOLIDS = 3


class _StepResult(str, Enum):
    PLACED = "placed"
    MOVED = "moved"
    NOTHING = "nothing"
    EXHAUSTED = "exhausted"


class VerticalEscapeController:
    """Pillars the agent up a one-wide shaft until it stands at or above the surface, dry.

    Every loop iteration re-reads position and blocks. The loop is bounded by
    ``surface_y - start_y + vertical_extra_steps`` iterations and by a
    no-progress streak, so it always terminates.
    """

    def __init__(
        self,
        world: WorldAdapter,
        context: NavigationContext,
        *,
        guard: StructureGuard,
        supervisor: StuckSupervisor,
        aquatic: AquaticEscapeController | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._context = context
        self._guard = guard
        self._supervisor = supervisor
        self._aquatic = aquatic
        self._settings = settings or default_settings
        self._logger = logger or logging.getLogger("mc_navigator.escape.vertical")

    # -- diagnostics -----------------------------------------------------------

    def surface_y(self, position: Vec3 | None = None) -> int:
        """One above the highest non-air block in the agent's column."""
        x, _, z = (position or self._world.current_position()).floored()
        for y in range(self._settings.surface_scan_top, -65, -1):
            block = self._world.block_at((x, y, z))
            if block is not None and not blocks.is_air(block.name):
                return y + 1
        return -64

    def is_underground(self, position: Vec3 | None = None) -> bool:
        """Skylight at the head cell decides; depth below the surface is only consulted when light is unknown."""
        position = position or self._world.current_position()
        x, y, z = position.floored()
        head = self._world.block_at((x, y + 1, z))
        if head is not None and head.skylight is not None:
            return head.skylight < UNDERGROUND_SKYLIGHT
        return self.surface_y(position) - y > UNDERGROUND_DEPTH

    def is_submerged(self, position: Vec3 | None = None) -> bool:
        x, y, z = (position or self._world.current_position()).floored()
        for coord in ((x, y, z), (x, y + 1, z)):
            block = self._world.block_at(coord)
            if block is not None and blocks.is_water(block.name):
                return True
        return False

    # -- escape ----------------------------------------------------------------

    async def escape(self) -> NavigationOutcome:
        if self._context.vertical_escape_active:
            return NavigationOutcome.failure(NavigationCause.UNREACHABLE, detail="vertical escape already running")
        self._context.vertical_escape_active = True
        try:
            outcome = await self._escape()
        finally:
            self._context.vertical_escape_active = False
        self._logger.info("vertical_escape_finished", extra={"outcome": outcome.as_dict()})
        return outcome

    async def _escape(self) -> NavigationOutcome:
        token = self._context.token
        position = self._world.current_position()
        descriptor = self._guard.descriptor
        if (
            descriptor is not None
            and self._guard.near_footprint(position, 2)
            and position.y >= descriptor.floor_y - 2
        ):
            return NavigationOutcome.failure(
                NavigationCause.PROTECTED_STRUCTURE_VIOLATION,
                detail="too close to the structure to pillar; use the door",
            )

        surface = self.surface_y(position)
        if self.is_submerged(position) and self._aquatic is not None:
            await self._aquatic.escape()
            position = self._world.current_position()
        if token.cancelled:
            return NavigationOutcome.failure(NavigationCause.INTERRUPTED)
        if self._escaped(surface):
            return NavigationOutcome.success(profile="vertical")

        if await self._try_cave_exit():
            return NavigationOutcome.success(profile="cave_exit")
        if token.cancelled:
            return NavigationOutcome.failure(NavigationCause.INTERRUPTED)

        max_steps = max(1, surface - math.floor(position.y) + self._settings.vertical_extra_steps)
        self._logger.info(
            "vertical_escape_started",
            extra={"start_y": position.y, "surface_y": surface, "max_steps": max_steps},
        )
        best_y = math.floor(position.y)
        no_progress = 0
        for _ in range(max_steps):
            if token.cancelled:
                return NavigationOutcome.failure(NavigationCause.INTERRUPTED, self._gap(surface))
            if self._escaped(surface):
                return NavigationOutcome.success(profile="vertical")

            if self.is_submerged():
                # Lateral escape from water belongs to the aquatic controller.
                self._world.jump(True)
                await self._supervisor.pause(0.4)
                self._world.jump(False)
            else:
                hazard = await self._handle_hazards()
                if hazard is NavigationCause.HAZARD_ABORT:
                    return NavigationOutcome.failure(
                        NavigationCause.HAZARD_ABORT, self._gap(surface), detail="lava above with no safe side column"
                    )
                if hazard is None:
                    await self._clear_overhead()
                    if token.cancelled:
                        return NavigationOutcome.failure(NavigationCause.INTERRUPTED, self._gap(surface))
                    step = await self._build_underfoot()
                    if step is _StepResult.EXHAUSTED:
                        return NavigationOutcome.failure(NavigationCause.MATERIAL_EXHAUSTED, self._gap(surface))

            y = math.floor(self._world.current_position().y)
            if y > best_y:
                best_y = y
                no_progress = 0
            else:
                no_progress += 1
                if no_progress > self._settings.vertical_max_no_progress:
                    return NavigationOutcome.failure(NavigationCause.NAVIGATION_STUCK, self._gap(surface))

        if self._escaped(surface):
            return NavigationOutcome.success(profile="vertical")
        return NavigationOutcome.failure(NavigationCause.NAVIGATION_STUCK, self._gap(surface), detail="step budget spent")

    def _escaped(self, surface: int) -> bool:
        position = self._world.current_position()
        return position.y >= surface and not self.is_submerged(position)

    def _gap(self, surface: int) -> float:
        return max(0.0, surface - self._world.current_position().y)

    # -- cave exit ---------------------------------------------------------------

    async def _try_cave_exit(self) -> bool:
        exit_cell = self._find_cave_exit()
        if exit_cell is None:
            return False
        x, y, z = exit_cell
        self._logger.info("cave_exit_found", extra={"cell": exit_cell})
        try:
            await self._supervisor.run(
                self._world.move(GoalNear(x, y, z, 1), permissive()),
                timeout=self._settings.cave_exit_timeout_seconds,
            )
        except MovementFailedError:
            return False
        return not self.is_underground() and not self.is_submerged()

    def _find_cave_exit(self) -> Coord | None:
        start = self._world.current_position().floored()
        depth = {start: 0}
        queue: deque[Coord] = deque([start])
        budget = self._settings.cave_exit_node_budget
        while queue and budget > 0:
            budget -= 1
            cell = queue.popleft()
            if cell != start and self._is_sky_exposed(cell):
                return cell
            if depth[cell] >= self._settings.cave_exit_depth:
                continue
            x, y, z = cell
            for dx, dy, dz in ((1, 0, 0), (-1, 0, 0), (0, 1, 0), (0, -1, 0), (0, 0, 1), (0, 0, -1)):
                neighbor = (x + dx, y + dy, z + dz)
                if neighbor in depth:
                    continue
                block = self._world.block_at(neighbor)
                if block is None or not blocks.is_air(block.name):
                    continue
                depth[neighbor] = depth[cell] + 1
                queue.append(neighbor)
        return None

    def _is_sky_exposed(self, cell: Coord) -> bool:
        x, y, z = cell
        head = self._world.block_at((x, y + 1, z))
        if head is None or head.skylight is None or head.skylight < CAVE_EXIT_SKYLIGHT:
            return False
        if not blocks.is_solid(self._world.block_at((x, y - 1, z))):
            return False
        solids = sum(1 for dy in range(2, 12) if blocks.is_solid(self._world.block_at((x, y + dy, z))))
        return solids <= CAVE_EXIT_MAX_SOLIDS

    # -- one step ------------------------------------------------------------------

    async def _handle_hazards(self) -> NavigationCause | _StepResult | None:
        """Deal with lava, water and falling blocks overhead.

        Returns ``None`` when the shaft above is safe to dig, ``HAZARD_ABORT``
        when it is not and nothing can be done, or a step marker when the agent
        moved sideways and the loop should re-read its surroundings.
        """
        x, y, z = self._world.current_position().floored()
        for dy in range(1, HAZARD_SCAN_HEIGHT + 1):
            coord = (x, y + 1 + dy, z)
            block = self._world.block_at(coord)
            if block is None:
                continue
            if blocks.is_lava(block.name):
                self._logger.warning("lava_overhead", extra={"cell": coord})
                if await self._sidestep(avoid_lava=True):
                    return _StepResult.MOVED
                return NavigationCause.HAZARD_ABORT
            if blocks.is_water(block.name):
                self._logger.info("water_overhead", extra={"cell": coord})
                await self._dig_drain(coord[1])
                return None
            if blocks.is_falling(block.name):
                self._logger.info("falling_block_overhead", extra={"cell": coord, "block": block.name})
                if await self._sidestep(avoid_lava=True):
                    return _StepResult.MOVED
                return None
        return None

    async def _sidestep(self, *, avoid_lava: bool) -> bool:
        position = self._world.current_position()
        x, y, z = position.floored()
        for dx, dz in CARDINALS:
            feet = self._world.block_at((x + dx, y, z + dz))
            head = self._world.block_at((x + dx, y + 1, z + dz))
            column = [feet, head]
            if avoid_lava and any(b is not None and blocks.is_lava(b.name) for b in column):
                continue
            if any(b is not None and self._blocks_body(b) and not self._diggable(b) for b in column):
                continue
            if any(b is not None and blocks.is_falling(b.name) for b in column):
                continue
            for block in column:
                if block is not None and self._blocks_body(block):
                    await self._world.dig(block)
            if self._context.token.cancelled:
                return False
            if await self._step_to(x + dx, y, z + dz):
                self._logger.info("sidestepped", extra={"column": (x + dx, z + dz)})
                return True
        return False

    async def _dig_drain(self, water_y: int) -> bool:
        x, _, z = self._world.current_position().floored()
        for dx, dz in CARDINALS:
            dug = False
            for distance in range(1, DRAIN_LENGTH + 1):
                block = self._world.block_at((x + dx * distance, water_y, z + dz * distance))
                if block is None or blocks.is_air(block.name) or blocks.is_liquid(block.name):
                    break
                if not self._diggable(block):
                    break
                dug = await self._world.dig(block) or dug
                if self._context.token.cancelled:
                    return dug
            if dug:
                return True
        return False

    async def _clear_overhead(self) -> None:
        x, y, z = self._world.current_position().floored()
        for dy in range(1, CLEAR_HEIGHT + 2):
            block = self._world.block_at((x, y + dy, z))
            if block is None or not self._blocks_body(block) or not self._diggable(block):
                continue
            if blocks.is_falling(block.name) and dy > 1:
                continue
            await self._world.dig(block)
            if self._context.token.cancelled:
                return

    async def _build_underfoot(self) -> _StepResult:
        position = self._world.current_position()
        x, y, z = position.floored()
        stand = None
        for depth in range(1, STAND_SCAN_DEPTH + 1):
            block = self._world.block_at((x, y - depth, z))
            if blocks.is_solid(block):
                stand = block
                break
        if stand is None:
            await self._supervisor.pause(0.2)
            return _StepResult.NOTHING

        target = (x, stand.position[1] + 1, z)
        if not blocks.is_passable(self._world.block_at(target)) and not self._is_liquid_at(target):
            return _StepResult.NOTHING

        item = self._placeable_item()
        if item is None:
            if await self._replenish():
                return _StepResult.MOVED
            return _StepResult.EXHAUSTED

        await self._world.equip(item)
        if target[1] >= y:
            self._world.jump(True)
            await self._supervisor.pause(0.3)
        await self._respect_place_delay()
        placed = await self._world.place(stand, UP)
        if not placed:
            placed = await self._place_against_side(target)
        self._world.jump(False)
        await self._supervisor.pause(0.2)
        return _StepResult.PLACED if placed else _StepResult.NOTHING

    async def _place_against_side(self, target: Coord) -> bool:
        x, y, z = target
        for dx, dz in CARDINALS:
            neighbor = self._world.block_at((x + dx, y, z + dz))
            if blocks.is_solid(neighbor) and await self._world.place(neighbor, (-dx, 0, -dz)):
                return True
        return False

    async def _replenish(self) -> bool:
        """Mine the feet and head cells of one adjacent wall and step into the gap."""
        x, y, z = self._world.current_position().floored()
        for dx, dz in CARDINALS:
            column = [self._world.block_at((x + dx, y + dy, z + dz)) for dy in (0, 1)]
            if any(b is not None and blocks.is_lava(b.name) for b in column):
                continue
            if any(b is not None and self._blocks_body(b) and not self._diggable(b) for b in column):
                continue
            minable = [b for b in column if b is not None and self._blocks_body(b)]
            if not minable:
                continue
            dug = False
            for block in minable:
                dug = await self._world.dig(block) or dug
            if self._context.token.cancelled:
                return False
            if dug:
                self._logger.info("replenished_from_wall", extra={"column": (x + dx, z + dz)})
                await self._step_to(x + dx, y, z + dz)
                return True
        return False

    def _placeable_item(self) -> str | None:
        for item in self._world.inventory_items():
            if item.count > 0 and blocks.is_placeable_item(item.name, self._world.is_block_item):
                return item.name
        return None

    async def _respect_place_delay(self) -> None:
        delay = self._settings.block_place_delay_ms
        if delay > 0:
            await asyncio.sleep(delay / 1000)

    async def _step_to(self, x: int, y: int, z: int) -> bool:
        await self._world.look_at(Vec3(x + 0.5, y, z + 0.5))
        self._world.forward(True)
        try:
            await self._supervisor.pause(0.4)
        finally:
            self._world.forward(False)
        fx, _, fz = self._world.current_position().floored()
        return (fx, fz) == (x, z)

    def _is_liquid_at(self, coord: Coord) -> bool:
        block = self._world.block_at(coord)
        return block is not None and block.is_liquid

    def _blocks_body(self, block: BlockInfo) -> bool:
        return not blocks.is_passable(block) and not block.is_liquid

    def _diggable(self, block: BlockInfo) -> bool:
        return block.diggable and not blocks.is_undiggable(block.name) and not self._guard.is_protected(block.position)

    # -- supplements ---------------------------------------------------------------

    async def descend(self, target: Vec3) -> NavigationOutcome:
        """Dig straight down toward a target well below, then finish with a supervised move."""
        token = self._context.token
        start = self._world.current_position()
        max_steps = int(abs(start.y - target.y)) + 20
        best_y = math.floor(start.y)
        no_progress = 0
        for _ in range(max_steps):
            if token.cancelled:
                return NavigationOutcome.failure(NavigationCause.INTERRUPTED)
            position = self._world.current_position()
            if position.y <= target.y + 1:
                break
            x, y, z = position.floored()
            below = self._world.block_at((x, y - 1, z))
            further = self._world.block_at((x, y - 2, z))
            if any(b is not None and blocks.is_lava(b.name) for b in (below, further)):
                return NavigationOutcome.failure(
                    NavigationCause.HAZARD_ABORT, position.distance_to(target), detail="lava below"
                )
            if below is not None and blocks.is_undiggable(below.name):
                break
            if below is not None and self._blocks_body(below):
                await self._world.dig(below)
            await self._supervisor.pause(0.2)

            y = math.floor(self._world.current_position().y)
            if y < best_y:
                best_y = y
                no_progress = 0
            else:
                no_progress += 1
                if no_progress >= 5:
                    break

        tx, ty, tz = target.floored()
        try:
            await self._supervisor.run(
                self._world.move(GoalNear(tx, ty, tz, 1), permissive()),
                timeout=self._settings.descend_timeout_seconds,
            )
        except MovementFailedError:
            self._logger.info("descend_final_move_failed", extra={"target": (tx, ty, tz)})
        remaining = self._world.current_position().distance_to(target)
        if token.cancelled:
            return NavigationOutcome.failure(NavigationCause.INTERRUPTED, remaining)
        if remaining <= 5:
            return NavigationOutcome.success(remaining, profile="descend")
        return NavigationOutcome.failure(NavigationCause.NAVIGATION_STUCK, remaining, profile="descend")

    async def pillar_toward(self, x: float, z: float, max_steps: int = 40) -> bool:
        """Tunnel and hop toward an XZ point, pillaring one block after repeated stalls."""
        token = self._context.token
        stalled = 0
        for _ in range(max_steps):
            if token.cancelled:
                return False
            position = self._world.current_position()
            distance = math.hypot(x - position.x, z - position.z)
            if distance < 4:
                return True
            fx, fy, fz = position.floored()
            ahead_x = math.floor(position.x + (x - position.x) / distance)
            ahead_z = math.floor(position.z + (z - position.z) / distance)
            for dy in range(3):
                block = self._world.block_at((ahead_x, fy + dy, ahead_z))
                if block is not None and self._blocks_body(block) and self._diggable(block):
                    await self._world.dig(block)

            await self._world.look_at(Vec3(x, position.y, z))
            self._world.forward(True)
            self._world.sprint(True)
            self._world.jump(True)
            try:
                await self._supervisor.pause(0.5)
            finally:
                self._world.clear_controls()
            await self._supervisor.pause(0.3)

            moved = self._world.current_position().xz_distance_to(position)
            if moved >= 0.5:
                stalled = 0
                continue
            stalled += 1
            if stalled >= 3:
                stalled = 0
                await self._pillar_once()
        position = self._world.current_position()
        return math.hypot(x - position.x, z - position.z) < 4

    async def climb_over(self, dx: int, dz: int, max_height: int = 8) -> bool:
        """Pillar up beside a wall in direction ``(dx, dz)`` and step over it.

        Falls back to tunnelling through the wall when nothing can be placed.
        Returns ``True`` when the agent ends up in a different column.
        """
        token = self._context.token
        start = self._world.current_position()
        fx, _, fz = start.floored()
        wall_x, wall_z = fx + dx, fz + dz
        for _ in range(max_height):
            if token.cancelled:
                return False
            y = math.floor(self._world.current_position().y)
            wall = [self._world.block_at((wall_x, y + dy, wall_z)) for dy in (0, 1)]
            if not any(blocks.is_solid(block) for block in wall):
                break
            x, _, z = self._world.current_position().floored()
            above = self._world.block_at((x, y + 2, z))
            if above is not None and self._blocks_body(above) and self._diggable(above):
                await self._world.dig(above)
            if not await self._pillar_once():
                for block in wall:
                    if block is not None and self._blocks_body(block) and self._diggable(block):
                        await self._world.dig(block)
                break

        if token.cancelled:
            return False
        y = math.floor(self._world.current_position().y)
        for dy in (0, 1):
            block = self._world.block_at((wall_x, y + dy, wall_z))
            if block is not None and self._blocks_body(block) and self._diggable(block):
                await self._world.dig(block)
        await self._world.look_at(Vec3(wall_x + 0.5, y + 1, wall_z + 0.5))
        self._world.forward(True)
        try:
            await self._supervisor.pause(0.6)
        finally:
            self._world.forward(False)
        x, _, z = self._world.current_position().floored()
        crossed = (x, z) != (fx, fz)
        self._logger.info("climbed_over_wall", extra={"column": (wall_x, wall_z), "success": crossed})
        return crossed

    async def _pillar_once(self) -> bool:
        x, y, z = self._world.current_position().floored()
        stand = self._world.block_at((x, y - 1, z))
        item = self._placeable_item()
        if item is None or not blocks.is_solid(stand):
            return False
        await self._world.equip(item)
        self._world.jump(True)
        await self._supervisor.pause(0.3)
        await self._respect_place_delay()
        placed = await self._world.place(stand, UP)
        self._world.jump(False)
        await self._supervisor.pause(0.2)
        return placed
