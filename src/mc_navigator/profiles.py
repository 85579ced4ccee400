"""Movement profiles handed to the grid search."""

from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Callable

from mc_navigator import blocks
from mc_navigator.models import BlockInfo, Coord

MAX_DROP_DOWN = 3
MAGMA_STEP_COST = 100.0

CostOverride = Callable[[Coord], "float | None"]


@dataclass(frozen=True, slots=True)
class MovementProfile:
    """Costs and deny-lists governing what the grid search may break, place or cross."""

    name: str
    dig_cost: float
    place_cost: float
    liquid_cost: float = 0.0
    max_drop_down: int = MAX_DROP_DOWN
    allow_towers: bool = False
    break_deny: frozenset[str] = frozenset()
    break_cost_overrides: tuple[CostOverride, ...] = field(default=())
    step_cost_overrides: tuple[Callable[[BlockInfo], "float | None"], ...] = field(default=())
    guarded: bool = False

    def break_cost(self, block: BlockInfo) -> float:
        """Cost of breaking ``block``; ``math.inf`` means never."""
        if not block.diggable or blocks.is_undiggable(block.name) or block.name in self.break_deny:
            return math.inf
        cost = self.dig_cost
        for override in self.break_cost_overrides:
            value = override(block.position)
            if value is not None:
                cost = max(cost, value)
        return cost

    def step_cost(self, floor: BlockInfo | None) -> float:
        """Extra cost of standing on ``floor``."""
        if floor is None:
            return 0.0
        extra = 0.0
        for override in self.step_cost_overrides:
            value = override(floor)
            if value is not None:
                extra = max(extra, value)
        return extra

    def with_break_override(self, override: CostOverride) -> MovementProfile:
        return replace(self, break_cost_overrides=self.break_cost_overrides + (override,))


def _magma_penalty(floor: BlockInfo) -> float | None:
    return MAGMA_STEP_COST if floor.name == "magma_block" else None


def conservative() -> MovementProfile:
    """Never breaks valuable or structural blocks; prefers walking around."""
    return MovementProfile(
        name="conservative",
        dig_cost=3.0,
        place_cost=2.0,
        break_deny=blocks.CONSERVATIVE_BREAK_DENY,
        step_cost_overrides=(_magma_penalty,),
    )


def permissive() -> MovementProfile:
    """Breaks anything not protected; cheap scaffolding and towers allowed."""
    return MovementProfile(
        name="permissive",
        dig_cost=2.0,
        place_cost=1.0,
        allow_towers=True,
        step_cost_overrides=(_magma_penalty,),
    )
