"""World adapter wrapper that enforces structure protection on every call path."""

from __future__ import annotations

import logging
from typing import Any

from mc_navigator.adapters.world import WorldAdapter
from mc_navigator.models import AnyGoal, BlockInfo, Coord
from mc_navigator.profiles import MovementProfile
from mc_navigator.structure.guard import StructureGuard


class GuardedWorld:
    """Built once per agent; every component talks to the world through it.

    ``move`` sees only guard-augmented profiles, and ``dig``/``place`` refuse
    protected cells unless the guard's override scope is active.
    """

    def __init__(self, inner: WorldAdapter, guard: StructureGuard, *, logger: logging.Logger | None = None) -> None:
        self._inner = inner
        self.guard = guard
        self._logger = logger or logging.getLogger("mc_navigator.adapters.guarded")

    def __getattr__(self, attr: str) -> Any:
        return getattr(self._inner, attr)

    async def move(self, goal: AnyGoal, profile: MovementProfile) -> None:
        await self._inner.move(goal, self.guard.augment(profile))

    async def dig(self, block: BlockInfo) -> bool:
        if self.guard.is_protected(block.position) and not self.guard.override_active:
            self.guard.record_refusal("dig", block.position)
            return False
        return await self._inner.dig(block)

    async def place(self, reference: BlockInfo, face: Coord) -> bool:
        target = (
            reference.position[0] + face[0],
            reference.position[1] + face[1],
            reference.position[2] + face[2],
        )
        held = self._inner.held_item()
        if held is not None and self.guard.blocks_placement(target, held.name):
            self.guard.record_refusal("place", target)
            return False
        return await self._inner.place(reference, face)
