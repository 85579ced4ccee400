"""Two-phase swim-to-shore state machine."""

from __future__ import annotations

import asyncio
import logging
import math
from collections import Counter, deque
from dataclasses import dataclass, field

from mc_navigator import blocks
from mc_navigator.adapters.world import MovementFailedError, WorldAdapter
from mc_navigator.config import Settings, settings as default_settings
from mc_navigator.context import NavigationContext
from mc_navigator.models import BlockInfo, Coord, GoalNear, NavigationCause, NavigationOutcome, Vec3
from mc_navigator.profiles import permissive
from mc_navigator.structure.guard import StructureGuard
from mc_navigator.supervisor import StuckSupervisor

CARDINALS: tuple[tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))

STUCK_MOVE = 0.3
OSCILLATION_WINDOW = 6
OSCILLATION_HISTORY = 8
OSCILLATION_RADIUS = 3.0
CHANNEL_MAX_LENGTH = 20
CHANNEL_MIN_LENGTH = 3
CHANNEL_SWITCH_TICKS = 10
SHORE_STUCK_TICKS = 4
SHORE_MAX_DIG_ATTEMPTS = 2
CLIFF_SCAN = 12
CLIFF_DIG_REACH = 3
DIG_UP_SCAN = 5
SKY_CHECK_HEIGHT = 10


@dataclass(slots=True)
class _ChannelState:
    directions: list[tuple[int, int, int]] = field(default_factory=list)
    index: int = 0
    ticks: int = 0
    active: bool = False
    exhausted: bool = False


class AquaticEscapeController:
    """Gets a swimming agent onto dry land.

    Phase one asks the grid search for the best dry cell nearby. Phase two is a
    manual per-tick loop (bounded by attempts and wall-clock time) that swims
    toward shore, follows water channels when it oscillates, and digs into
    cliffs or straight up when there is nowhere to swim to.
    """

    def __init__(
        self,
        world: WorldAdapter,
        context: NavigationContext,
        *,
        guard: StructureGuard,
        supervisor: StuckSupervisor,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._context = context
        self._guard = guard
        self._supervisor = supervisor
        self._settings = settings or default_settings
        self._logger = logger or logging.getLogger("mc_navigator.escape.aquatic")

    def in_water(self, position: Vec3 | None = None) -> bool:
        """Feet cell or the cell below is water."""
        x, y, z = (position or self._world.current_position()).floored()
        for coord in ((x, y, z), (x, y - 1, z)):
            block = self._world.block_at(coord)
            if block is not None and blocks.is_water(block.name):
                return True
        return False

    async def escape(self) -> NavigationOutcome:
        if self._context.aquatic_escape_active:
            return NavigationOutcome.failure(NavigationCause.UNREACHABLE, detail="aquatic escape already running")
        self._context.aquatic_escape_active = True
        try:
            if not self.in_water():
                return NavigationOutcome.success(profile="aquatic")
            outcome = await self._phase_one()
            if outcome is None:
                outcome = await self._phase_two()
        finally:
            self._context.aquatic_escape_active = False
        self._logger.info("aquatic_escape_finished", extra={"outcome": outcome.as_dict()})
        return outcome

    # -- phase one -------------------------------------------------------------

    async def _phase_one(self) -> NavigationOutcome | None:
        position = self._world.current_position()
        candidate = self._best_dry_cell(position)
        if candidate is None:
            self._logger.info("aquatic_phase_one_no_candidate")
            return None

        x, y, z = candidate
        self._logger.info("aquatic_phase_one_target", extra={"cell": candidate})
        try:
            result = await self._supervisor.run(
                self._world.move(GoalNear(x, y, z, 0), permissive()),
                timeout=self._settings.aquatic_phase1_timeout_seconds,
            )
        except MovementFailedError:
            self._logger.info("aquatic_phase_one_unreachable", extra={"cell": candidate})
            return None

        if result.cause is NavigationCause.INTERRUPTED:
            return NavigationOutcome.failure(NavigationCause.INTERRUPTED)
        if self._on_dry_ground() and self._sky_exposed():
            return NavigationOutcome.success(profile="aquatic_search")
        return None

    def _best_dry_cell(self, position: Vec3) -> Coord | None:
        cx, cy, cz = position.floored()
        radius = self._settings.aquatic_phase1_radius
        best: tuple[float, Coord] | None = None
        for dx in range(-radius, radius + 1):
            span = radius - abs(dx)
            for dz in range(-span, span + 1):
                x, z = cx + dx, cz + dz
                for y in range(cy - 2, cy + 6):
                    if not self._dry_standing_cell(x, y, z):
                        continue
                    stand = (x, y + 1, z)
                    if self._guard.near_footprint(Vec3.center_of(stand), 0):
                        continue
                    score = abs(stand[1] - cy) * 5 + position.distance_to(Vec3.center_of(stand))
                    if best is None or score < best[0]:
                        best = (score, stand)
        return None if best is None else best[1]

    def _dry_standing_cell(self, x: int, y: int, z: int) -> bool:
        """Solid block at ``y`` with two open, dry cells above it."""
        ground = self._world.block_at((x, y, z))
        if not blocks.is_solid(ground):
            return False
        for dy in (1, 2):
            above = self._world.block_at((x, y + dy, z))
            if above is not None and not blocks.is_air(above.name):
                return False
        return True

    # -- phase two -------------------------------------------------------------

    async def _phase_two(self) -> NavigationOutcome:
        loop = asyncio.get_running_loop()
        started = loop.time()
        token = self._context.token
        history: deque[Vec3] = deque(maxlen=OSCILLATION_HISTORY * 2)
        channel = _ChannelState()
        blacklist: set[Coord] = set()
        dig_attempts: Counter[Coord] = Counter()
        stuck_ticks = 0
        last: Vec3 | None = None

        for attempt in range(self._settings.aquatic_max_attempts):
            if token.cancelled:
                return NavigationOutcome.failure(NavigationCause.INTERRUPTED)
            if loop.time() - started > self._settings.aquatic_time_budget_seconds:
                return NavigationOutcome.failure(NavigationCause.NAVIGATION_TIMEOUT, detail="aquatic time budget spent")

            position = self._world.current_position()
            if self._on_dry_ground():
                return NavigationOutcome.success(profile="aquatic_manual")

            history.append(position)
            if last is not None and position.xz_distance_to(last) < STUCK_MOVE:
                stuck_ticks += 1
            else:
                stuck_ticks = 0
            last = position

            if not channel.exhausted and (channel.active or self._oscillating(history, attempt)):
                if await self._follow_channel(position, channel):
                    continue

            shore = self._find_shore(position, blacklist)
            if shore is not None:
                if stuck_ticks >= SHORE_STUCK_TICKS:
                    dug = await self._dig_toward(position, shore)
                    dig_attempts[shore] += 1
                    if not dug or dig_attempts[shore] >= SHORE_MAX_DIG_ATTEMPTS:
                        self._logger.info("shore_blacklisted", extra={"cell": shore})
                        blacklist.add(shore)
                    stuck_ticks = 0
                    continue
                await self._swim_toward(position, shore, attempt)
                continue

            cliff = self._find_cliff(position)
            if cliff is not None:
                await self._break_cliff(position, cliff)
                continue

            await self._dig_up(position)

        if self._on_dry_ground():
            return NavigationOutcome.success(profile="aquatic_manual")
        return NavigationOutcome.failure(NavigationCause.NAVIGATION_STUCK, detail="aquatic attempts spent")

    def _oscillating(self, history: deque[Vec3], attempt: int) -> bool:
        if attempt < OSCILLATION_WINDOW or len(history) < OSCILLATION_HISTORY:
            return False
        return history[-1].xz_distance_to(history[-1 - OSCILLATION_WINDOW]) < OSCILLATION_RADIUS

    async def _follow_channel(self, position: Vec3, channel: _ChannelState) -> bool:
        if not channel.active:
            channel.directions = self._rank_channels(position)
            channel.index = 0
            channel.ticks = 0
            channel.active = bool(channel.directions)
            if not channel.active:
                channel.exhausted = True
                return False
            self._logger.info("channel_follow_started", extra={"directions": channel.directions})

        if channel.ticks >= CHANNEL_SWITCH_TICKS:
            channel.index += 1
            channel.ticks = 0
            if channel.index >= min(2, len(channel.directions)):
                channel.active = False
                channel.exhausted = True
                self._logger.info("channel_follow_exhausted")
                return False
            self._logger.info("channel_switched", extra={"direction": channel.directions[channel.index]})

        dx, dz, length = channel.directions[channel.index]
        channel.ticks += 1
        target = Vec3(position.x + dx * length, position.y, position.z + dz * length)
        await self._world.look_at(target)
        self._world.forward(True)
        self._world.sprint(True)
        self._world.jump(True)
        try:
            await self._supervisor.pause(1.0)
        finally:
            self._world.clear_controls()
        return True

    def _rank_channels(self, position: Vec3) -> list[tuple[int, int, int]]:
        x, y, z = position.floored()
        ranked = []
        for dx, dz in CARDINALS:
            length = 0
            for distance in range(1, CHANNEL_MAX_LENGTH + 1):
                block = self._world.block_at((x + dx * distance, y, z + dz * distance))
                if block is None or not blocks.is_water(block.name):
                    break
                length = distance
            if length >= CHANNEL_MIN_LENGTH:
                ranked.append((dx, dz, length))
        ranked.sort(key=lambda entry: entry[2], reverse=True)
        return ranked

    def _water_top(self, position: Vec3) -> int:
        x, y, z = position.floored()
        top = y
        while True:
            block = self._world.block_at((x, top + 1, z))
            if block is None or not blocks.is_water(block.name):
                return top
            top += 1

    def _find_shore(self, position: Vec3, blacklist: set[Coord]) -> Coord | None:
        cx, cy, cz = position.floored()
        water_top = self._water_top(position)
        radius = self._settings.shore_radius
        best: tuple[float, Coord] | None = None
        for dx in range(-radius, radius + 1):
            for dz in range(-radius, radius + 1):
                x, z = cx + dx, cz + dz
                for y in range(cy - 2, water_top + 5):
                    ground = self._world.block_at((x, y, z))
                    if not blocks.is_solid(ground):
                        continue
                    above = self._world.block_at((x, y + 1, z))
                    if above is None or not blocks.is_air(above.name):
                        continue
                    stand = (x, y + 1, z)
                    if stand in blacklist or self._guard.near_footprint(Vec3.center_of(stand), 0):
                        continue
                    score = abs(stand[1] - (water_top + 1)) * 10 + position.distance_to(Vec3.center_of(stand))
                    if best is None or score < best[0]:
                        best = (score, stand)
        return None if best is None else best[1]

    async def _swim_toward(self, position: Vec3, shore: Coord, attempt: int) -> None:
        target = Vec3.center_of(shore)
        water_top = self._water_top(position)
        try:
            if position.y < water_top - 3:
                await self._world.look_at(position.offset(dy=5))
                self._world.forward(True)
                self._world.jump(True)
                self._world.sprint(True)
                await self._supervisor.pause(1.5)
                return

            await self._world.look_at(target)
            if position.xz_distance_to(target) <= 3:
                self._world.forward(True)
                self._world.jump(True)
                await self._supervisor.pause(0.6 if attempt % 2 == 0 else 0.8)
                return

            self._world.forward(True)
            self._world.sprint(True)
            self._world.jump(attempt % 3 == 0)
            await self._supervisor.pause(1.2)
        finally:
            self._world.clear_controls()

    async def _dig_toward(self, position: Vec3, shore: Coord) -> bool:
        x, y, z = position.floored()
        dx, dz = shore[0] - x, shore[2] - z
        if abs(dx) >= abs(dz):
            step = (int(math.copysign(1, dx)), 0)
        else:
            step = (0, int(math.copysign(1, dz)))
        dug = False
        for distance in range(1, 4):
            for dy in (-1, 0, 1, 2):
                block = self._world.block_at((x + step[0] * distance, y + dy, z + step[1] * distance))
                if block is not None and self._diggable(block):
                    dug = await self._world.dig(block) or dug
                    if self._context.token.cancelled:
                        return dug
        if dug:
            self._logger.info("dug_toward_shore", extra={"cell": shore})
        return dug

    def _find_cliff(self, position: Vec3) -> tuple[BlockInfo, int] | None:
        x, y, z = position.floored()
        best: tuple[BlockInfo, int] | None = None
        for dx, dz in CARDINALS:
            for distance in range(1, CLIFF_SCAN + 1):
                block = self._world.block_at((x + dx * distance, y, z + dz * distance))
                if block is None:
                    break
                if blocks.is_water(block.name):
                    continue
                if self._diggable(block) and (best is None or distance < best[1]):
                    best = (block, distance)
                break
        return best

    async def _break_cliff(self, position: Vec3, cliff: tuple[BlockInfo, int]) -> None:
        block, distance = cliff
        if distance > CLIFF_DIG_REACH:
            await self._world.look_at(Vec3.center_of(block.position))
            self._world.forward(True)
            self._world.jump(True)
            try:
                await self._supervisor.pause(0.2 * min(distance, 5))
            finally:
                self._world.clear_controls()
            return
        self._logger.info("breaking_cliff", extra={"cell": block.position})
        await self._world.dig(block)
        x, y, z = block.position
        above = self._world.block_at((x, y + 1, z))
        if above is not None and self._diggable(above):
            await self._world.dig(above)

    async def _dig_up(self, position: Vec3) -> None:
        x, y, z = position.floored()
        for dy in range(2, DIG_UP_SCAN + 2):
            block = self._world.block_at((x, y + dy, z))
            if block is not None and self._diggable(block):
                await self._world.dig(block)
                break
        self._world.jump(True)
        try:
            await self._supervisor.pause(0.6)
        finally:
            self._world.jump(False)

    # -- checks ------------------------------------------------------------------

    def _on_dry_ground(self) -> bool:
        x, y, z = self._world.current_position().floored()
        feet = self._world.block_at((x, y, z))
        if feet is not None and feet.is_liquid:
            return False
        return blocks.is_solid(self._world.block_at((x, y - 1, z)))

    def _sky_exposed(self) -> bool:
        x, y, z = self._world.current_position().floored()
        for dy in range(2, SKY_CHECK_HEIGHT + 1):
            if blocks.is_solid(self._world.block_at((x, y + dy, z))):
                return False
        return True

    def _diggable(self, block: BlockInfo) -> bool:
        if block.is_liquid or blocks.is_passable(block):
            return False
        return block.diggable and not blocks.is_undiggable(block.name) and not self._guard.is_protected(block.position)
