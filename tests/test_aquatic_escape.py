from __future__ import annotations

import asyncio
import logging

from mc_navigator.adapters import MovementFailedError, SimulatedWorld
from mc_navigator.adapters.simulated import lake_scenario
from mc_navigator.config import Settings
from mc_navigator.models import NavigationCause, Vec3
from mc_navigator.navigator import build_navigator

FAST = Settings(supervisor_interval_seconds=0.01, aquatic_time_budget_seconds=10)


class NoSearchWorld(SimulatedWorld):
    """Grid search always fails, forcing the manual swim loop."""

    async def move(self, goal, profile) -> None:
        self.moves.append((goal, profile))
        raise MovementFailedError("search disabled")


def _lake_terrain(x: int, y: int, z: int) -> str:
    if x >= 10:
        return "stone" if y <= 60 else "air"
    if y <= 57:
        return "stone"
    return "water" if y <= 60 else "air"


def _walled_lake_terrain(x: int, y: int, z: int) -> str:
    """Shore beyond an undiggable wall at x == 3."""
    if x == 3 and 58 <= y <= 75:
        return "bedrock"
    return _lake_terrain(x, y, z)


def test_dry_agent_needs_no_escape() -> None:
    async def _run():
        world = SimulatedWorld(lambda x, y, z: "stone" if y <= 63 else "air", position=Vec3(0.5, 64, 0.5))
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.aquatic.escape(), world

    outcome, world = asyncio.run(_run())
    assert outcome.reached
    assert world.moves == []


def test_search_phase_lands_on_nearest_dry_cell() -> None:
    async def _run():
        scenario = lake_scenario()
        navigator = build_navigator(scenario.world, "bot", settings=FAST)
        assert navigator.aquatic.in_water()
        return await navigator.aquatic.escape(), scenario.world

    outcome, world = asyncio.run(_run())
    assert outcome.reached, outcome
    assert outcome.profile == "aquatic_search"
    x, y, z = world.current_position().floored()
    assert x >= 10
    assert y == 61


def test_manual_phase_swims_to_shore_when_search_fails() -> None:
    async def _run():
        world = NoSearchWorld(_lake_terrain, position=Vec3(0.5, 60, 0.5), sky_limit=96)
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.aquatic.escape(), world

    outcome, world = asyncio.run(_run())
    assert outcome.reached, outcome
    assert outcome.profile == "aquatic_manual"
    assert world.current_position().x >= 10
    assert not any(world.controls.values())


def test_escape_is_not_reentrant() -> None:
    async def _run():
        scenario = lake_scenario()
        navigator = build_navigator(scenario.world, "bot", settings=FAST)
        navigator.context.aquatic_escape_active = True
        return await navigator.aquatic.escape()

    outcome = asyncio.run(_run())
    assert outcome.cause is NavigationCause.UNREACHABLE


def test_cancelled_manual_phase_reports_interrupted() -> None:
    async def _run():
        world = NoSearchWorld(_lake_terrain, position=Vec3(0.5, 60, 0.5), sky_limit=96)
        navigator = build_navigator(world, "bot", settings=FAST)
        navigator.context.token.cancel()
        return await navigator.aquatic.escape()

    outcome = asyncio.run(_run())
    assert outcome.cause is NavigationCause.INTERRUPTED


def test_vertical_escape_hands_submerged_agent_to_aquatic() -> None:
    async def _run():
        scenario = lake_scenario()
        navigator = build_navigator(scenario.world, "bot", settings=FAST)
        return await navigator.vertical.escape(), scenario.world

    outcome, world = asyncio.run(_run())
    assert outcome.reached, outcome
    assert world.placed == []


def _messages(caplog) -> list[str]:
    return [record.getMessage() for record in caplog.records]


def test_unreachable_shore_is_blacklisted_after_failed_digs(caplog) -> None:
    caplog.set_level(logging.INFO, logger="mc_navigator.escape.aquatic")

    async def _run():
        world = NoSearchWorld(_walled_lake_terrain, position=Vec3(0.5, 60, 0.5), sky_limit=96)
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.aquatic.escape(), world

    outcome, world = asyncio.run(_run())
    blacklisted = [record.cell for record in caplog.records if record.getMessage() == "shore_blacklisted"]
    assert not outcome.reached
    assert blacklisted[0] == (10, 61, 0)
    assert not any(cell[0] == 3 for cell in world.dug)


def test_oscillating_swimmer_follows_channels_then_switches(caplog) -> None:
    caplog.set_level(logging.INFO, logger="mc_navigator.escape.aquatic")
    settings = Settings(supervisor_interval_seconds=0.01, aquatic_time_budget_seconds=10, aquatic_max_attempts=30)

    async def _run():
        world = NoSearchWorld(_walled_lake_terrain, position=Vec3(0.5, 60, 0.5), sky_limit=96)
        navigator = build_navigator(world, "bot", settings=settings)
        return await navigator.aquatic.escape()

    asyncio.run(_run())
    messages = _messages(caplog)
    switched = [record.direction for record in caplog.records if record.getMessage() == "channel_switched"]
    assert "channel_follow_started" in messages
    assert switched == [(0, 1, 20)]
    assert "channel_follow_exhausted" in messages
    assert messages.index("channel_follow_started") < messages.index("channel_follow_exhausted")


def test_cliff_in_reach_is_broken_when_no_shore_is_in_range() -> None:
    def terrain(x: int, y: int, z: int) -> str:
        if x >= 8:
            return "stone" if y <= 70 else "air"
        return _lake_terrain(x, y, z)

    async def _run():
        world = NoSearchWorld(terrain, position=Vec3(0.5, 60, 0.5), sky_limit=96)
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.aquatic.escape(), world

    _, world = asyncio.run(_run())
    assert world.dug[:2] == [(8, 60, 0), (8, 61, 0)]


def test_enclosed_swimmer_digs_straight_up() -> None:
    def terrain(x: int, y: int, z: int) -> str:
        if (x, z) == (0, 0) and 50 <= y <= 51:
            return "water"
        if abs(x) <= 1 and abs(z) <= 1 and 49 <= y <= 53 and (x, z) != (0, 0):
            return "bedrock"
        return "stone" if y <= 60 else "air"

    async def _run():
        world = NoSearchWorld(terrain, position=Vec3(0.5, 50, 0.5), sky_limit=96)
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.aquatic.escape(), world

    outcome, world = asyncio.run(_run())
    assert not outcome.reached
    assert world.dug[0] == (0, 52, 0)
    assert all((x, z) == (0, 0) for x, _, z in world.dug)


def test_cancel_during_a_swim_stroke_returns_promptly() -> None:
    async def _run():
        world = NoSearchWorld(_lake_terrain, position=Vec3(0.5, 60, 0.5), sky_limit=96, tick_delay=0.2)
        navigator = build_navigator(world, "bot", settings=FAST)
        loop = asyncio.get_running_loop()
        cancelled_at: list[float] = []

        def cancel() -> None:
            cancelled_at.append(loop.time())
            navigator.context.token.cancel()

        loop.call_later(0.1, cancel)
        outcome = await navigator.aquatic.escape()
        return outcome, loop.time() - cancelled_at[0], world

    outcome, elapsed, world = asyncio.run(_run())
    assert outcome.cause is NavigationCause.INTERRUPTED
    assert elapsed < 0.6
    assert not any(world.controls.values())
