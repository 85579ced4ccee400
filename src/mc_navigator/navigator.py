"""Top-level goal navigation: direct search, BFS milestones, and escape fallbacks."""

from __future__ import annotations

import logging
import math
from functools import partial

from mc_navigator import blocks
from mc_navigator.adapters.guarded import GuardedWorld
from mc_navigator.adapters.world import MovementFailedError, WorldAdapter
from mc_navigator.config import Settings, settings as default_settings
from mc_navigator.context import NavigationContext
from mc_navigator.escape.aquatic import AquaticEscapeController
from mc_navigator.escape.vertical import VerticalEscapeController
from mc_navigator.explorer import ConnectivityExplorer
from mc_navigator.models import (
    AnyGoal,
    Coord,
    GoalInvert,
    GoalNear,
    GoalXZ,
    NavigationCause,
    NavigationOutcome,
    Vec3,
)
from mc_navigator.profiles import conservative, permissive
from mc_navigator.structure.descriptor import StructureDescriptor
from mc_navigator.structure.door import DoorTraversal, nudge_nearby_opening
from mc_navigator.structure.guard import StructureGuard
from mc_navigator.structure.store import StructureStore
from mc_navigator.supervisor import StuckSupervisor
from mc_navigator.telemetry.logging import LoggingTelemetry, Telemetry

CARDINALS: tuple[tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))

SURFACE_PRECHECK_MIN_RISE = 2
FAR_BELOW_RISE = 5
DESCEND_MIN_DROP = 5
DESCEND_MAX_XZ = 20
OVERSHOOT_SLACK = 5.0
MIN_SEGMENT_MOVE = 5.0
DOOR_FRONT_RADIUS = 3.0
FOOTPRINT_CLEARANCE = 3
MAX_PERMISSIVE_FALLBACKS = 2
CLIMB_AFTER_STUCK_SEGMENTS = 2


class GoalNavigator:
    """Entry point the skills layer calls to move an agent.

    Every public coroutine returns a ``NavigationOutcome``; only adapter
    failures (disconnects and the like) escape as exceptions.
    """

    def __init__(
        self,
        world: WorldAdapter,
        context: NavigationContext,
        *,
        guard: StructureGuard,
        supervisor: StuckSupervisor,
        explorer: ConnectivityExplorer,
        vertical: VerticalEscapeController,
        aquatic: AquaticEscapeController,
        doors: DoorTraversal,
        store: StructureStore | None = None,
        telemetry: Telemetry | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._context = context
        self._guard = guard
        self._supervisor = supervisor
        self._explorer = explorer
        self._vertical = vertical
        self._aquatic = aquatic
        self._doors = doors
        self._store = store
        self._telemetry = telemetry or LoggingTelemetry()
        self._settings = settings or default_settings
        self._logger = logger or logging.getLogger("mc_navigator.navigator")

    @property
    def context(self) -> NavigationContext:
        return self._context

    @property
    def world(self) -> WorldAdapter:
        return self._world

    @property
    def vertical(self) -> VerticalEscapeController:
        return self._vertical

    @property
    def aquatic(self) -> AquaticEscapeController:
        return self._aquatic

    # -- public operations ---------------------------------------------------------

    async def go_to_position(self, x: float, y: float, z: float, min_distance: float = 2) -> NavigationOutcome:
        target = Vec3(x, y, z)
        tx, ty, tz = target.floored()
        return await self._navigate(GoalNear(tx, ty, tz, min_distance), target, min_distance)

    async def go_to_goal(self, goal: AnyGoal) -> NavigationOutcome:
        if isinstance(goal, GoalNear):
            return await self._navigate(goal, goal.point, goal.radius)
        if isinstance(goal, GoalXZ):
            target = Vec3(goal.x + 0.5, self._world.current_position().y, goal.z + 0.5)
            return await self._navigate(goal, target, 1, xz_only=True)
        self._load_structure()
        outcome = await self._direct(goal, None, 0)
        return self._finish(outcome, None)

    async def go_to_nearest_block(
        self,
        block_name: str,
        min_distance: float = 2,
        search_range: int = 64,
    ) -> NavigationOutcome:
        origin = self._world.current_position().floored()
        found = self._world.find_blocks(
            lambda block: block.name == block_name,
            origin=origin,
            max_distance=search_range,
            count=1,
        )
        if not found:
            return self._finish(
                NavigationOutcome.failure(
                    NavigationCause.UNREACHABLE, detail=f"no {block_name} within {search_range} blocks"
                ),
                None,
            )
        x, y, z = found[0].position
        return await self.go_to_position(x + 0.5, y, z + 0.5, min_distance)

    async def escape_enclosure(self, max_radius: int | None = None) -> NavigationOutcome:
        """Walk to the furthest reachable point, or dig out when none is worth walking to."""
        self._load_structure()
        position = self._world.current_position()
        result = await self._explorer.explore(position, max_radius or self._settings.milestone_radius)
        if self._context.token.cancelled:
            return self._finish(NavigationOutcome.failure(NavigationCause.INTERRUPTED), None)
        if result is None or result.point[1] < position.y - FAR_BELOW_RISE:
            self._logger.info("enclosure_escape_vertical", extra={"found": result is not None})
            return self._finish(await self._vertical.escape(), None)

        x, y, z = result.point
        outcome = await self.go_to_position(x + 0.5, max(y, position.y), z + 0.5, min_distance=3)
        if outcome.reached or outcome.cause is NavigationCause.INTERRUPTED:
            return outcome
        if await self._vertical.pillar_toward(x + 0.5, z + 0.5, max_steps=40):
            remaining = self._world.current_position().xz_distance_to(Vec3.center_of(result.point))
            return self._finish(NavigationOutcome.success(remaining, profile="pillar"), None)
        return outcome

    async def move_away(self, distance: float) -> NavigationOutcome:
        """Retreat at least ``distance`` blocks from where the retreat started.

        Repeated calls keep the same reference point, so they never walk back
        toward it.
        """
        self._load_structure()
        position = self._world.current_position()
        origin = self._context.retreat_origin
        if origin is None:
            origin = position
            self._context.retreat_origin = position

        radius = max(int(math.ceil(distance)), 5)
        result = await self._explorer.explore(position, radius, reference=origin)
        if result is None:
            heading = self._context.move_away_heading or _away_heading(origin, position)
            self._context.move_away_heading = heading
            result = await self._explorer.explore(position, radius, heading=heading)

        if result is not None:
            x, y, z = result.point
            outcome = await self.go_to_position(x + 0.5, y, z + 0.5, min_distance=1)
        else:
            ox, oy, oz = origin.floored()
            outcome = await self._direct(GoalInvert(GoalNear(ox, oy, oz, distance)), None, 0)

        moved = self._world.current_position().xz_distance_to(origin)
        if moved >= 0.8 * distance:
            self._context.retreat_origin = None
            self._context.move_away_heading = None
            return self._finish(NavigationOutcome.success(0.0, profile=outcome.profile), None)
        if outcome.reached:
            outcome = NavigationOutcome.failure(
                NavigationCause.NAVIGATION_STUCK,
                max(0.0, distance - moved),
                profile=outcome.profile,
                detail="retreat fell short",
            )
        return self._finish(outcome, None)

    # -- orchestration -----------------------------------------------------------------

    async def _navigate(
        self,
        goal: AnyGoal,
        target: Vec3,
        min_distance: float,
        *,
        xz_only: bool = False,
    ) -> NavigationOutcome:
        self._load_structure()
        if self._context.token.cancelled:
            return self._finish(NavigationOutcome.failure(NavigationCause.INTERRUPTED), target)

        if not await self._doors.ensure_side(target):
            self._logger.warning("door_traversal_failed", extra={"target": (target.x, target.y, target.z)})

        precheck = await self._surface_precheck(target)
        if precheck is not None and not precheck.reached:
            return self._finish(precheck, target)

        if self._should_descend(target):
            descent = await self._vertical.descend(target)
            if descent.cause is NavigationCause.INTERRUPTED:
                return self._finish(descent, target)

        if self._within_direct_range(target):
            outcome = await self._direct(goal, target, min_distance, xz_only=xz_only)
        else:
            outcome = await self._long_range(goal, target, min_distance, xz_only=xz_only)

        if outcome.reached or outcome.cause is NavigationCause.INTERRUPTED:
            return self._finish(outcome, target)

        if await self._enter_from_door_front(target):
            entered = self._evaluate(target, min_distance, xz_only, outcome.profile, outcome.cause)
            if entered.reached:
                return self._finish(entered, target)

        outcome = await self._fallback_escape(goal, target, min_distance, xz_only, outcome)
        return self._finish(outcome, target)

    async def _direct(
        self,
        goal: AnyGoal,
        target: Vec3 | None,
        min_distance: float,
        *,
        xz_only: bool = False,
    ) -> NavigationOutcome:
        """One supervised grid search; permissive only when conservative finds no route at all."""
        for profile in (conservative(), permissive()):
            try:
                result = await self._supervisor.run(
                    self._world.move(goal, profile),
                    timeout=self._settings.direct_timeout_seconds,
                )
            except MovementFailedError as exc:
                self._logger.info("direct_search_failed", extra={"profile": profile.name, "error": str(exc)})
                continue
            remaining = self._distance(target, xz_only)
            if result.ok:
                return NavigationOutcome.success(0.0 if target is None else remaining, profile=profile.name)
            return NavigationOutcome.failure(result.cause, remaining, profile=profile.name)

        return NavigationOutcome.failure(
            NavigationCause.UNREACHABLE,
            self._distance(target, xz_only),
            profile="permissive",
            detail="no route under either profile",
        )

    async def _long_range(
        self,
        goal: AnyGoal,
        target: Vec3,
        min_distance: float,
        *,
        xz_only: bool = False,
    ) -> NavigationOutcome:
        token = self._context.token
        best_xz = self._world.current_position().xz_distance_to(target)
        no_progress = 0
        stuck_segments = 0
        aquatic_deferrals = 0
        permissive_fallbacks = 0
        enclosure_checked = False

        for milestone in range(self._settings.max_milestones):
            if token.cancelled:
                return NavigationOutcome.failure(NavigationCause.INTERRUPTED, self._distance(target, xz_only))
            position = self._world.current_position()
            if self._within_direct_range(target):
                return await self._direct(goal, target, min_distance, xz_only=xz_only)

            if self._aquatic.in_water(position) and aquatic_deferrals < self._settings.max_aquatic_deferrals:
                aquatic_deferrals += 1
                self._logger.info("long_range_aquatic_deferral", extra={"count": aquatic_deferrals})
                swim = await self._aquatic.escape()
                if swim.cause is NavigationCause.INTERRUPTED:
                    return swim
                continue

            heading = (target.x - position.x, target.z - position.z)
            result = await self._explorer.explore(
                position,
                self._settings.milestone_radius,
                heading=heading,
                max_drop=self._settings.milestone_max_drop,
            )
            if token.cancelled:
                return NavigationOutcome.failure(NavigationCause.INTERRUPTED, self._distance(target, xz_only))

            if result is None:
                if not enclosure_checked:
                    enclosure_checked = True
                    if await self._dig_out_toward(target):
                        continue
                if permissive_fallbacks >= MAX_PERMISSIVE_FALLBACKS:
                    return NavigationOutcome.failure(
                        NavigationCause.UNREACHABLE,
                        self._distance(target, xz_only),
                        detail="no milestone toward target",
                    )
                permissive_fallbacks += 1
                attempt = await self._permissive_attempt(goal, target, xz_only)
                if attempt.reached or attempt.cause is NavigationCause.INTERRUPTED:
                    return attempt
                continue

            waypoint = self._milestone(result.path, target)
            self._logger.info(
                "milestone_selected",
                extra={"milestone": milestone, "waypoint": waypoint, "heading_score": result.heading_score},
            )
            before = position.xz_distance_to(target)
            try:
                segment = await self._supervisor.run(
                    self._world.move(GoalXZ(waypoint[0], waypoint[2]), conservative()),
                    timeout=self._settings.segment_timeout_seconds,
                )
                if segment.cause is NavigationCause.INTERRUPTED:
                    return NavigationOutcome.failure(NavigationCause.INTERRUPTED, self._distance(target, xz_only))
            except MovementFailedError:
                self._logger.info("segment_search_failed", extra={"waypoint": waypoint})

            after = self._world.current_position()
            if after.xz_distance_to(position) < MIN_SEGMENT_MOVE:
                stuck_segments += 1
                if stuck_segments >= self._settings.max_segment_stuck:
                    return NavigationOutcome.failure(
                        NavigationCause.NAVIGATION_STUCK, self._distance(target, xz_only), detail="segments not moving"
                    )
                if stuck_segments >= CLIMB_AFTER_STUCK_SEGMENTS and await self._climb_wall_toward(target):
                    stuck_segments = 0
            else:
                stuck_segments = 0

            now = after.xz_distance_to(target)
            if now > before + OVERSHOOT_SLACK:
                self._logger.warning("segment_overshoot", extra={"before": round(before, 1), "after": round(now, 1)})
                return self._evaluate(target, min_distance, xz_only, "conservative", NavigationCause.NAVIGATION_STUCK)

            if best_xz - now > self._settings.min_milestone_progress:
                best_xz = now
                no_progress = 0
            else:
                no_progress += 1
                if no_progress >= self._settings.max_no_progress_milestones:
                    return NavigationOutcome.failure(
                        NavigationCause.NAVIGATION_STUCK, self._distance(target, xz_only), detail="no lateral progress"
                    )

        return self._evaluate(target, min_distance, xz_only, "conservative", NavigationCause.NAVIGATION_TIMEOUT)

    async def _permissive_attempt(self, goal: AnyGoal, target: Vec3, xz_only: bool) -> NavigationOutcome:
        try:
            result = await self._supervisor.run(
                self._world.move(goal, permissive()),
                timeout=self._settings.direct_timeout_seconds,
            )
        except MovementFailedError:
            return NavigationOutcome.failure(NavigationCause.UNREACHABLE, self._distance(target, xz_only))
        if result.ok:
            return NavigationOutcome.success(self._distance(target, xz_only), profile="permissive")
        return NavigationOutcome.failure(result.cause, self._distance(target, xz_only), profile="permissive")

    def _milestone(self, path: list[Coord], target: Vec3) -> Coord:
        for cell in path:
            if Vec3.center_of(cell).xz_distance_to(target) <= self._settings.waypoint_distance:
                return cell
        return path[-1]

    async def _dig_out_toward(self, target: Vec3) -> bool:
        """Dig feet and head cells toward the target when walled in on all four sides."""
        x, y, z = self._world.current_position().floored()
        for dx, dz in CARDINALS:
            feet = self._world.block_at((x + dx, y, z + dz))
            head = self._world.block_at((x + dx, y + 1, z + dz))
            if not blocks.is_solid(feet) and not blocks.is_solid(head):
                return False

        step = _cardinal_toward(Vec3(x + 0.5, y, z + 0.5), target)
        dug = False
        for dy in (0, 1):
            block = self._world.block_at((x + step[0], y + dy, z + step[1]))
            if blocks.is_solid(block) and block.diggable:
                dug = await self._world.dig(block) or dug
        self._logger.info("enclosure_dig", extra={"direction": step, "dug": dug})
        return dug

    async def _climb_wall_toward(self, target: Vec3) -> bool:
        """Pillar over a wall standing between a stalled agent and the target."""
        position = self._world.current_position()
        x, y, z = position.floored()
        dx, dz = _cardinal_toward(position, target)
        wall = [self._world.block_at((x + dx, y + dy, z + dz)) for dy in (0, 1)]
        if not any(blocks.is_solid(block) for block in wall):
            return False
        self._logger.info("stuck_segment_wall", extra={"direction": (dx, dz)})
        return await self._vertical.climb_over(dx, dz)

    async def _surface_precheck(self, target: Vec3) -> NavigationOutcome | None:
        if self._context.surface_precheck_active or self._context.vertical_escape_active:
            return None
        position = self._world.current_position()
        rise = target.y - position.y
        if rise <= SURFACE_PRECHECK_MIN_RISE:
            return None
        if self._guard.near_footprint(position, 2):
            return None

        far_below = (
            rise > FAR_BELOW_RISE
            and not self._aquatic.in_water(position)
            and position.xz_distance_to(target) <= self._settings.waypoint_distance
        )
        if not (self._vertical.is_underground(position) or far_below):
            return None

        self._context.surface_precheck_active = True
        try:
            if self._guard.under_footprint(position):
                await self._leave_footprint(position)
            outcome = await self._vertical.escape()
        finally:
            self._context.surface_precheck_active = False
        self._logger.info("surface_precheck", extra={"outcome": outcome.as_dict()})
        return outcome

    async def _leave_footprint(self, position: Vec3) -> None:
        bounds = self._guard.descriptor.bounds
        exits = [
            (position.x - bounds.x1, Vec3(bounds.x1 - FOOTPRINT_CLEARANCE, position.y, position.z)),
            (bounds.x2 - position.x, Vec3(bounds.x2 + FOOTPRINT_CLEARANCE + 1, position.y, position.z)),
            (position.z - bounds.z1, Vec3(position.x, position.y, bounds.z1 - FOOTPRINT_CLEARANCE)),
            (bounds.z2 - position.z, Vec3(position.x, position.y, bounds.z2 + FOOTPRINT_CLEARANCE + 1)),
        ]
        _, point = min(exits, key=lambda entry: entry[0])
        x, y, z = point.floored()
        self._logger.info("leaving_footprint", extra={"point": (x, y, z)})
        try:
            await self._supervisor.run(
                self._world.move(GoalNear(x, y, z, 1), permissive()),
                timeout=self._settings.direct_timeout_seconds,
            )
        except MovementFailedError:
            self._logger.info("leave_footprint_failed", extra={"point": (x, y, z)})

    def _should_descend(self, target: Vec3) -> bool:
        position = self._world.current_position()
        return (
            position.y - target.y >= DESCEND_MIN_DROP
            and position.xz_distance_to(target) <= DESCEND_MAX_XZ
            and not self._aquatic.in_water(position)
            and not self._guard.near_footprint(position, 2)
        )

    def _within_direct_range(self, target: Vec3) -> bool:
        position = self._world.current_position()
        waypoint = self._settings.waypoint_distance
        return position.distance_to(target) <= waypoint * 1.5 or position.xz_distance_to(target) <= waypoint

    async def _enter_from_door_front(self, target: Vec3) -> bool:
        if not self._guard.is_inside(target):
            return False
        front = self._doors.door_front()
        if front is None or self._world.current_position().distance_to(front) > DOOR_FRONT_RADIUS:
            return False
        self._logger.info("door_front_auto_enter")
        return await self._doors.enter()

    async def _fallback_escape(
        self,
        goal: AnyGoal,
        target: Vec3,
        min_distance: float,
        xz_only: bool,
        outcome: NavigationOutcome,
    ) -> NavigationOutcome:
        if self._context.fallback_escape_active or self._context.vertical_escape_active:
            return outcome
        position = self._world.current_position()
        if not (target.y - position.y > SURFACE_PRECHECK_MIN_RISE or self._aquatic.in_water(position)):
            return outcome

        self._context.fallback_escape_active = True
        try:
            self._logger.info("fallback_escape", extra={"cause": outcome.cause.value})
            escape = await self._vertical.escape()
            if not escape.reached:
                return outcome
            return await self._direct(goal, target, min_distance, xz_only=xz_only)
        finally:
            self._context.fallback_escape_active = False

    # -- helpers -------------------------------------------------------------------

    def _load_structure(self) -> None:
        if self._context.structure is None and self._store is not None:
            self._context.structure = self._store.load(self._context.agent_id)
        if self._context.structure is not None and self._guard.descriptor is not self._context.structure:
            self._guard.bind(self._context.structure)

    def _distance(self, target: Vec3 | None, xz_only: bool) -> float:
        if target is None:
            return math.inf
        position = self._world.current_position()
        return position.xz_distance_to(target) if xz_only else position.distance_to(target)

    def _evaluate(
        self,
        target: Vec3,
        min_distance: float,
        xz_only: bool,
        profile: str | None,
        cause: NavigationCause,
    ) -> NavigationOutcome:
        remaining = self._distance(target, xz_only)
        if remaining <= min_distance + 1:
            return NavigationOutcome.success(remaining, profile=profile)
        return NavigationOutcome.failure(cause, remaining, profile=profile)

    def _finish(self, outcome: NavigationOutcome, target: Vec3 | None) -> NavigationOutcome:
        payload = {"agent_id": self._context.agent_id, **outcome.as_dict()}
        if target is not None:
            payload["target"] = (round(target.x, 2), round(target.y, 2), round(target.z, 2))
        self._telemetry.emit("navigation_finished", payload)
        return outcome


def _away_heading(origin: Vec3, position: Vec3) -> tuple[float, float]:
    dx, dz = position.x - origin.x, position.z - origin.z
    norm = math.hypot(dx, dz)
    if norm < 1e-6:
        return (1.0, 0.0)
    return (dx / norm, dz / norm)


def _cardinal_toward(position: Vec3, target: Vec3) -> tuple[int, int]:
    dx, dz = target.x - position.x, target.z - position.z
    if abs(dx) >= abs(dz):
        return (int(math.copysign(1, dx)), 0)
    return (0, int(math.copysign(1, dz)))


def build_navigator(
    world: WorldAdapter,
    agent_id: str,
    *,
    settings: Settings | None = None,
    store: StructureStore | None = None,
    structure: StructureDescriptor | None = None,
    telemetry: Telemetry | None = None,
) -> GoalNavigator:
    """Wire one agent's navigation stack around a single guarded world."""
    settings = settings or default_settings
    context = NavigationContext(agent_id=agent_id, structure=structure)
    guard = StructureGuard(structure)
    guarded = GuardedWorld(world, guard)
    supervisor = StuckSupervisor(
        guarded,
        context.token,
        settings=settings,
        on_stall=partial(nudge_nearby_opening, guarded),
    )
    aquatic = AquaticEscapeController(guarded, context, guard=guard, supervisor=supervisor, settings=settings)
    vertical = VerticalEscapeController(
        guarded,
        context,
        guard=guard,
        supervisor=supervisor,
        aquatic=aquatic,
        settings=settings,
    )
    return GoalNavigator(
        guarded,
        context,
        guard=guard,
        supervisor=supervisor,
        explorer=ConnectivityExplorer(guarded, token=context.token, settings=settings),
        vertical=vertical,
        aquatic=aquatic,
        doors=DoorTraversal(guarded, guard, token=context.token, supervisor=supervisor, settings=settings),
        store=store,
        telemetry=telemetry,
        settings=settings,
    )
