from __future__ import annotations

import asyncio

import pytest

from mc_navigator.adapters import MovementFailedError
from mc_navigator.config import Settings
from mc_navigator.context import CancellationToken
from mc_navigator.models import NavigationCause, Vec3
from mc_navigator.supervisor import StuckSupervisor, SupervisionStatus

FAST = Settings(supervisor_interval_seconds=0.01, stuck_max_samples=5, stall_nudge_seconds=0.03)


class FrozenWorld:
    def __init__(self) -> None:
        self.position = Vec3(0.5, 64, 0.5)
        self.stop_calls = 0
        self.clear_calls = 0

    def current_position(self) -> Vec3:
        return self.position

    def stop(self) -> None:
        self.stop_calls += 1

    def clear_controls(self) -> None:
        self.clear_calls += 1


class SlowClockWorld(FrozenWorld):
    async def wait(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class WalkingWorld(FrozenWorld):
    async def walk(self, steps: int) -> None:
        for _ in range(steps):
            await asyncio.sleep(0.01)
            self.position = self.position.offset(dx=1.0)


def test_completed_operation_reports_success() -> None:
    async def _run():
        world = WalkingWorld()
        supervisor = StuckSupervisor(world, CancellationToken(), settings=FAST)
        return await supervisor.run(world.walk(3), timeout=2), world

    result, world = asyncio.run(_run())
    assert result.status is SupervisionStatus.SUCCESS
    assert result.ok
    assert result.cause is NavigationCause.REACHED
    assert world.stop_calls == 0


def test_deadline_abandons_operation_and_stops_actuator() -> None:
    async def _run():
        world = FrozenWorld()
        supervisor = StuckSupervisor(world, CancellationToken(), settings=FAST)
        return await supervisor.run(asyncio.sleep(10), timeout=0.1, detect_stuck=False), world

    result, world = asyncio.run(_run())
    assert result.status is SupervisionStatus.TIMEOUT
    assert result.cause is NavigationCause.NAVIGATION_TIMEOUT
    assert result.elapsed < 0.1 + FAST.supervisor_interval_seconds + 0.2
    assert world.stop_calls == 1
    assert world.clear_calls == 1


def test_no_lateral_progress_is_reported_as_stuck() -> None:
    async def _run():
        world = FrozenWorld()
        supervisor = StuckSupervisor(world, CancellationToken(), settings=FAST)
        return await supervisor.run(asyncio.sleep(10), timeout=5), world

    result, world = asyncio.run(_run())
    assert result.status is SupervisionStatus.STUCK
    assert result.elapsed < 1
    assert world.stop_calls == 1


def test_cancellation_interrupts_running_operation() -> None:
    async def _run():
        world = FrozenWorld()
        token = CancellationToken()
        supervisor = StuckSupervisor(world, token, settings=FAST)

        async def operation() -> None:
            await asyncio.sleep(0.02)
            token.cancel("player command")
            await asyncio.sleep(10)

        return await supervisor.run(operation(), timeout=5, detect_stuck=False), world

    result, world = asyncio.run(_run())
    assert result.status is SupervisionStatus.INTERRUPTED
    assert result.cause is NavigationCause.INTERRUPTED
    assert world.clear_calls == 1


def test_operation_errors_propagate_after_cleanup() -> None:
    async def _run():
        world = FrozenWorld()
        supervisor = StuckSupervisor(world, CancellationToken(), settings=FAST)

        async def operation() -> None:
            raise MovementFailedError("no path")

        await supervisor.run(operation(), timeout=1)

    with pytest.raises(MovementFailedError):
        asyncio.run(_run())


def test_stall_nudge_fires_once_per_stall() -> None:
    async def _run():
        world = FrozenWorld()
        nudges: list[int] = []

        async def nudge() -> bool:
            nudges.append(1)
            return True

        supervisor = StuckSupervisor(world, CancellationToken(), settings=FAST, on_stall=nudge)
        result = await supervisor.run(asyncio.sleep(10), timeout=5)
        return result, nudges

    result, nudges = asyncio.run(_run())
    assert result.status is SupervisionStatus.STUCK
    assert len(nudges) == 1


def test_operation_ignoring_cancel_does_not_hold_the_supervisor() -> None:
    async def _run():
        world = FrozenWorld()
        supervisor = StuckSupervisor(world, CancellationToken(), settings=FAST)
        teardown: list[str] = []

        async def operation() -> None:
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                await asyncio.sleep(0.3)
                teardown.append("finished")

        result = await supervisor.run(operation(), timeout=0.1, detect_stuck=False)
        finished_early = list(teardown)
        await asyncio.sleep(0.4)
        return result, world, finished_early, teardown

    result, world, finished_early, teardown = asyncio.run(_run())
    assert result.status is SupervisionStatus.TIMEOUT
    assert result.elapsed < 0.1 + 2 * FAST.supervisor_interval_seconds + 0.1
    assert world.stop_calls == 1
    assert finished_early == []
    assert teardown == ["finished"]


def test_pause_returns_early_when_cancelled() -> None:
    async def _run():
        token = CancellationToken()
        supervisor = StuckSupervisor(SlowClockWorld(), token, settings=FAST)
        loop = asyncio.get_running_loop()
        loop.call_later(0.05, token.cancel)
        started = loop.time()
        finished = await supervisor.pause(5)
        return finished, loop.time() - started

    finished, elapsed = asyncio.run(_run())
    assert finished is False
    assert elapsed < 0.5


def test_pause_runs_to_completion_without_cancel() -> None:
    async def _run():
        supervisor = StuckSupervisor(SlowClockWorld(), CancellationToken(), settings=FAST)
        return await supervisor.pause(0.05)

    assert asyncio.run(_run()) is True
