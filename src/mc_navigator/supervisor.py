"""Deadline, stuck and cancellation watchdog around goal-directed operations."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from mc_navigator.adapters.world import WorldAdapter
from mc_navigator.config import Settings, settings as default_settings
from mc_navigator.context import CancellationToken
from mc_navigator.models import NavigationCause, Vec3


class SupervisionStatus(str, Enum):
    SUCCESS = "success"
    TIMEOUT = "timeout"
    STUCK = "stuck"
    INTERRUPTED = "interrupted"


_CAUSES = {
    SupervisionStatus.SUCCESS: NavigationCause.REACHED,
    SupervisionStatus.TIMEOUT: NavigationCause.NAVIGATION_TIMEOUT,
    SupervisionStatus.STUCK: NavigationCause.NAVIGATION_STUCK,
    SupervisionStatus.INTERRUPTED: NavigationCause.INTERRUPTED,
}


@dataclass(slots=True)
class SupervisionResult:
    status: SupervisionStatus
    elapsed: float
    position: Vec3

    @property
    def ok(self) -> bool:
        return self.status is SupervisionStatus.SUCCESS

    @property
    def cause(self) -> NavigationCause:
        return _CAUSES[self.status]


class StuckSupervisor:
    """Races one operation against a hard deadline, a lateral-progress sampler and the cancel flag.

    All three checks share one polling loop, so a call returns within
    ``timeout + interval``. Whenever the operation is abandoned the actuator
    is stopped and every control released before returning.
    """

    def __init__(
        self,
        world: WorldAdapter,
        token: CancellationToken,
        *,
        settings: Settings | None = None,
        on_stall: Callable[[], Awaitable[object]] | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._token = token
        self._settings = settings or default_settings
        self._on_stall = on_stall
        self._logger = logger or logging.getLogger("mc_navigator.supervisor")

    async def run(
        self,
        operation: Awaitable[object],
        *,
        timeout: float,
        detect_stuck: bool = True,
    ) -> SupervisionResult:
        loop = asyncio.get_running_loop()
        interval = self._settings.supervisor_interval_seconds
        threshold = self._settings.stuck_threshold_blocks
        max_samples = self._settings.stuck_max_samples

        task = asyncio.ensure_future(operation)
        started = loop.time()
        deadline = started + timeout
        last = self._world.current_position()
        stuck_samples = 0
        nudged = False
        status: SupervisionStatus | None = None

        try:
            while status is None:
                if self._token.cancelled:
                    status = SupervisionStatus.INTERRUPTED
                    break
                remaining = deadline - loop.time()
                if remaining <= 0:
                    status = SupervisionStatus.TIMEOUT
                    break

                done, _ = await asyncio.wait({task}, timeout=min(interval, remaining))
                if task in done:
                    task.result()
                    status = SupervisionStatus.SUCCESS
                    break
                if self._token.cancelled:
                    status = SupervisionStatus.INTERRUPTED
                    break
                if loop.time() >= deadline:
                    status = SupervisionStatus.TIMEOUT
                    break
                if not detect_stuck:
                    continue

                position = self._world.current_position()
                if position.xz_distance_to(last) < threshold:
                    stuck_samples += 1
                else:
                    stuck_samples = 0
                    nudged = False
                last = position

                if stuck_samples >= max_samples:
                    status = SupervisionStatus.STUCK
                elif (
                    self._on_stall is not None
                    and not nudged
                    and stuck_samples * interval >= self._settings.stall_nudge_seconds
                ):
                    nudged = True
                    await self._on_stall()
        finally:
            if status is not SupervisionStatus.SUCCESS:
                await self._abandon(task)

        elapsed = loop.time() - started
        if status is not SupervisionStatus.SUCCESS:
            self._logger.info(
                "supervised_operation_ended",
                extra={"status": status.value, "elapsed": round(elapsed, 3), "timeout": timeout},
            )
        return SupervisionResult(status=status, elapsed=elapsed, position=self._world.current_position())

    async def pause(self, seconds: float) -> bool:
        """World-time wait that gives up within one polling interval of a cancel.

        Returns ``False`` when the token was set before the wait finished.
        """
        if self._token.cancelled:
            return False
        interval = self._settings.supervisor_interval_seconds
        task = asyncio.ensure_future(self._world.wait(seconds))
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=interval)
                if task in done:
                    task.result()
                    return True
                if self._token.cancelled:
                    return False
        finally:
            if not task.done():
                task.cancel()

    async def _abandon(self, task: asyncio.Future) -> None:
        self._world.stop()
        self._world.clear_controls()
        if task.done():
            if not task.cancelled():
                task.exception()
            return
        task.cancel()
        await asyncio.wait({task}, timeout=self._settings.supervisor_interval_seconds)
        if task.done():
            self._collect(task)
            return
        self._logger.warning("supervised_operation_ignored_cancel")
        task.add_done_callback(self._collect)

    def _collect(self, task: asyncio.Future) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self._logger.error(
                "supervised_operation_failed_during_cancel",
                exc_info=(type(error), error, error.__traceback__),
            )
