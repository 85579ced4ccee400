from __future__ import annotations

import asyncio

from mc_navigator.adapters import GuardedWorld
from mc_navigator.adapters.simulated import house_scenario
from mc_navigator.config import Settings
from mc_navigator.context import CancellationToken
from mc_navigator.models import AnyGoal, Vec3
from mc_navigator.profiles import MovementProfile
from mc_navigator.structure import DoorTraversal, StructureGuard, TransitionState, nudge_nearby_opening

FAST = Settings(supervisor_interval_seconds=0.05)


class SearchNeverEndsWorld(GuardedWorld):
    async def move(self, goal: AnyGoal, profile: MovementProfile) -> None:
        await asyncio.sleep(3600)


def _doors(inside: bool):
    scenario = house_scenario(inside=inside)
    guard = StructureGuard(scenario.structure)
    world = GuardedWorld(scenario.world, guard)
    return scenario, guard, DoorTraversal(world, guard, token=CancellationToken())


def test_exit_walks_out_through_the_door() -> None:
    async def _run():
        scenario, guard, doors = _doors(inside=True)
        done = await doors.exit()
        return done, guard, scenario.world

    done, guard, world = asyncio.run(_run())
    assert done
    assert not guard.is_inside(world.current_position())
    assert world.current_position().z < 0
    assert world.activated
    assert world.dug == []
    assert guard.transition is TransitionState.IDLE


def test_enter_walks_in_through_the_door() -> None:
    async def _run():
        scenario, guard, doors = _doors(inside=False)
        done = await doors.enter()
        return done, guard, scenario.world

    done, guard, world = asyncio.run(_run())
    assert done
    assert guard.is_inside(world.current_position())
    assert world.dug == []


def test_ensure_side_is_a_no_op_when_already_on_target_side() -> None:
    async def _run():
        scenario, _, doors = _doors(inside=True)
        done = await doors.ensure_side(Vec3(4.5, 64, 4.5))
        return done, scenario.world

    done, world = asyncio.run(_run())
    assert done
    assert world.activated == []
    assert world.moves == []


def test_door_front_is_one_block_outward() -> None:
    _, _, doors = _doors(inside=True)

    assert doors.door_front() == Vec3(3.5, 64, -0.5)


def test_concurrent_transition_is_rejected() -> None:
    async def _run():
        scenario, guard, doors = _doors(inside=False)
        with guard.transitioning(TransitionState.EXITING):
            done = await doors.enter()
        return done, scenario.world

    done, world = asyncio.run(_run())
    assert done is False
    assert world.moves == []


def test_nudge_opens_adjacent_door() -> None:
    async def _run():
        scenario, _, _ = _doors(inside=True)
        world = scenario.world
        world.position = Vec3(3.5, 64, 1.5)
        opened = await nudge_nearby_opening(world)
        return opened, world

    opened, world = asyncio.run(_run())
    assert opened
    assert world.block_at((3, 64, 0)).properties["open"] is True
    assert world.block_at((3, 65, 0)).properties["open"] is True


def test_cancel_during_door_approach_returns_promptly() -> None:
    async def _run():
        scenario = house_scenario(inside=True)
        guard = StructureGuard(scenario.structure)
        token = CancellationToken()
        doors = DoorTraversal(SearchNeverEndsWorld(scenario.world, guard), guard, token=token, settings=FAST)

        loop = asyncio.get_running_loop()
        started = loop.time()
        task = asyncio.create_task(doors.exit())
        await asyncio.sleep(0.1)
        token.cancel("new command")
        done = await asyncio.wait_for(task, timeout=2)
        return done, loop.time() - started, guard, scenario.world

    done, elapsed, guard, world = asyncio.run(_run())
    assert done is False
    assert elapsed < 1
    assert guard.transition is TransitionState.IDLE
    assert world.activated == []


def test_door_approach_that_times_out_still_tries_the_door() -> None:
    async def _run():
        scenario = house_scenario(inside=True)
        guard = StructureGuard(scenario.structure)
        settings = Settings(supervisor_interval_seconds=0.05, door_approach_timeout_seconds=0.2)
        doors = DoorTraversal(SearchNeverEndsWorld(scenario.world, guard), guard, settings=settings)
        return await doors.exit(), scenario.world

    _, world = asyncio.run(_run())
    assert world.activated
