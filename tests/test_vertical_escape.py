from __future__ import annotations

import asyncio

from mc_navigator.adapters import SimulatedWorld
from mc_navigator.adapters.simulated import house_scenario, shaft_scenario
from mc_navigator.config import Settings
from mc_navigator.context import NavigationContext
from mc_navigator.escape import VerticalEscapeController
from mc_navigator.models import NavigationCause, Vec3
from mc_navigator.navigator import build_navigator
from mc_navigator.structure import StructureGuard
from mc_navigator.supervisor import StuckSupervisor

FAST = Settings(supervisor_interval_seconds=0.01, cave_exit_node_budget=500)


def _pocket_world(material: str, *, inventory: dict[str, int] | None = None) -> SimulatedWorld:
    world = SimulatedWorld(
        lambda x, y, z: material if y <= 69 else "air",
        position=Vec3(0.5, 40, 0.5),
        inventory=inventory,
        sky_limit=96,
    )
    world.set_block((0, 40, 0), "air")
    world.set_block((0, 41, 0), "air")
    return world


def test_underground_detection_uses_skylight() -> None:
    scenario = shaft_scenario()
    navigator = build_navigator(scenario.world, "bot", settings=FAST, structure=scenario.structure)

    assert navigator.vertical.is_underground()
    assert navigator.vertical.surface_y() == 70
    assert not navigator.vertical.is_underground(Vec3(0.5, 70, 0.5))


def test_shaft_escape_reaches_surface_without_touching_structure() -> None:
    async def _run():
        scenario = shaft_scenario()
        navigator = build_navigator(scenario.world, "bot", settings=FAST, structure=scenario.structure)
        return await navigator.vertical.escape(), scenario

    outcome, scenario = asyncio.run(_run())
    world = scenario.world
    guard = StructureGuard(scenario.structure)
    assert outcome.reached, outcome
    assert world.current_position().y >= 70
    assert world.placed
    assert not any(guard.is_protected(cell) for cell in world.dug + world.placed)
    assert not any(world.controls.values())


def test_vertical_escape_reports_material_exhausted() -> None:
    async def _run():
        world = _pocket_world("bedrock", inventory={})
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.escape(), world

    outcome, world = asyncio.run(_run())
    assert outcome.cause is NavigationCause.MATERIAL_EXHAUSTED
    assert not outcome.reached
    assert world.current_position().y == 40


def test_vertical_escape_mines_walls_for_material() -> None:
    async def _run():
        world = _pocket_world("stone", inventory={})
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.escape(), world

    outcome, world = asyncio.run(_run())
    assert outcome.reached, outcome
    assert world.current_position().y >= 70


def test_lava_overhead_without_safe_column_aborts() -> None:
    async def _run():
        world = _pocket_world("stone", inventory={"cobblestone": 64})
        world.set_block((0, 43, 0), "lava")
        for dx, dz in ((1, 0), (-1, 0), (0, 1), (0, -1)):
            world.set_block((dx, 40, dz), "lava")
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.escape(), world

    outcome, world = asyncio.run(_run())
    assert outcome.cause is NavigationCause.HAZARD_ABORT
    assert world.current_position().y == 40


def test_escape_refused_next_to_protected_structure() -> None:
    async def _run():
        scenario = house_scenario(inside=True)
        navigator = build_navigator(scenario.world, "bot", settings=FAST, structure=scenario.structure)
        return await navigator.vertical.escape(), scenario.world

    outcome, world = asyncio.run(_run())
    assert outcome.cause is NavigationCause.PROTECTED_STRUCTURE_VIOLATION
    assert world.dug == []


def test_escape_is_not_reentrant() -> None:
    async def _run():
        scenario = shaft_scenario()
        navigator = build_navigator(scenario.world, "bot", settings=FAST, structure=scenario.structure)
        navigator.context.vertical_escape_active = True
        return await navigator.vertical.escape()

    outcome = asyncio.run(_run())
    assert not outcome.reached
    assert outcome.cause is NavigationCause.UNREACHABLE


def test_interrupted_escape_stops_climbing() -> None:
    async def _run():
        scenario = shaft_scenario()
        navigator = build_navigator(scenario.world, "bot", settings=FAST, structure=scenario.structure)
        navigator.context.token.cancel()
        return await navigator.vertical.escape(), scenario.world

    outcome, world = asyncio.run(_run())
    assert outcome.cause is NavigationCause.INTERRUPTED
    assert world.placed == []


def test_descend_digs_down_to_target() -> None:
    async def _run():
        world = SimulatedWorld(lambda x, y, z: "stone" if y <= 63 else "air", position=Vec3(0.5, 64, 0.5))
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.descend(Vec3(0.5, 54, 0.5)), world

    outcome, world = asyncio.run(_run())
    assert outcome.reached, outcome
    assert world.current_position().y <= 56
    assert (0, 63, 0) in world.dug


def test_descend_refuses_to_dig_into_lava() -> None:
    async def _run():
        world = SimulatedWorld(lambda x, y, z: "stone" if y <= 63 else "air", position=Vec3(0.5, 64, 0.5))
        world.set_block((0, 62, 0), "lava")
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.descend(Vec3(0.5, 50, 0.5)), world

    outcome, world = asyncio.run(_run())
    assert outcome.cause is NavigationCause.HAZARD_ABORT
    assert world.dug == []


def test_pillar_toward_tunnels_through_wall() -> None:
    async def _run():
        world = SimulatedWorld(lambda x, y, z: "stone" if y <= 63 else "air", position=Vec3(0.5, 64, 0.5))
        for y in (64, 65, 66):
            for z in range(-3, 4):
                world.set_block((3, y, z), "stone")
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.pillar_toward(10.5, 0.5), world

    arrived, world = asyncio.run(_run())
    assert arrived
    assert world.current_position().x > 6
    assert (3, 64, 0) in world.dug


def _walled_plain(inventory: dict[str, int] | None = None) -> SimulatedWorld:
    world = SimulatedWorld(
        lambda x, y, z: "stone" if y <= 63 else "air",
        position=Vec3(0.5, 64, 0.5),
        inventory=inventory,
    )
    for y in (64, 65, 66):
        for z in range(-2, 3):
            world.set_block((1, y, z), "stone")
    return world


def test_climb_over_pillars_up_and_steps_onto_the_wall() -> None:
    async def _run():
        world = _walled_plain({"cobblestone": 8})
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.climb_over(1, 0), world

    crossed, world = asyncio.run(_run())
    assert crossed
    assert world.placed == [(0, 64, 0), (0, 65, 0), (0, 66, 0)]
    assert world.dug == []
    assert world.current_position().floored() == (1, 67, 0)


def test_climb_over_without_blocks_tunnels_through_the_wall() -> None:
    async def _run():
        world = _walled_plain()
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.climb_over(1, 0), world

    crossed, world = asyncio.run(_run())
    assert crossed
    assert world.placed == []
    assert world.dug == [(1, 64, 0), (1, 65, 0)]
    assert world.current_position().floored() == (1, 64, 0)


def test_water_overhead_is_drained_sideways() -> None:
    async def _run():
        world = _pocket_world("stone", inventory={"cobblestone": 64})
        world.set_block((0, 43, 0), "water")
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.escape(), world

    _, world = asyncio.run(_run())
    assert (1, 43, 0) in world.dug


def test_falling_block_overhead_steps_out_of_the_fall_line() -> None:
    async def _run():
        world = _pocket_world("stone", inventory={"cobblestone": 64})
        world.set_block((0, 43, 0), "gravel")
        navigator = build_navigator(world, "bot", settings=FAST)
        return await navigator.vertical.escape(), world

    outcome, world = asyncio.run(_run())
    assert outcome.reached, outcome
    assert world.dug[:2] == [(1, 40, 0), (1, 41, 0)]
    assert (0, 43, 0) not in world.dug
    assert world.name_at((0, 43, 0)) == "gravel"


def test_submerged_agent_only_jumps() -> None:
    def terrain(x: int, y: int, z: int) -> str:
        if y > 69:
            return "air"
        if (x, z) == (0, 0) and y >= 40:
            return "water"
        return "stone"

    async def _run():
        world = SimulatedWorld(terrain, position=Vec3(0.5, 40, 0.5), inventory={"cobblestone": 64}, sky_limit=96)
        context = NavigationContext(agent_id="bot")
        vertical = VerticalEscapeController(
            world,
            context,
            guard=StructureGuard(),
            supervisor=StuckSupervisor(world, context.token, settings=FAST),
            settings=FAST,
        )
        return await vertical.escape(), world

    outcome, world = asyncio.run(_run())
    assert outcome.cause is NavigationCause.NAVIGATION_STUCK
    assert world.current_position().y == 69
    assert world.dug == []
    assert world.placed == []
