from __future__ import annotations

import math

import pytest

from mc_navigator import blocks
from mc_navigator.models import BlockInfo, GoalFollow, GoalInvert, GoalNear, GoalXZ, Vec3
from mc_navigator.profiles import MAGMA_STEP_COST, conservative, permissive


def test_conservative_profile_refuses_valuable_blocks() -> None:
    profile = conservative()

    assert math.isinf(profile.break_cost(BlockInfo("glass", (0, 0, 0))))
    assert math.isinf(profile.break_cost(BlockInfo("oak_planks", (0, 0, 0))))
    assert profile.break_cost(BlockInfo("stone", (0, 0, 0))) == 3.0
    assert not profile.allow_towers


def test_permissive_profile_is_cheaper_and_breaks_planks() -> None:
    profile = permissive()

    assert profile.break_cost(BlockInfo("oak_planks", (0, 0, 0))) == 2.0
    assert profile.place_cost < conservative().place_cost
    assert profile.allow_towers


def test_undiggable_blocks_are_never_broken() -> None:
    for profile in (conservative(), permissive()):
        assert math.isinf(profile.break_cost(BlockInfo("bedrock", (0, 0, 0), diggable=False)))


def test_magma_floor_is_penalized() -> None:
    assert permissive().step_cost(BlockInfo("magma_block", (0, 0, 0))) == MAGMA_STEP_COST
    assert permissive().step_cost(BlockInfo("stone", (0, 0, 0))) == 0.0


def test_break_override_only_raises_cost() -> None:
    profile = permissive().with_break_override(lambda coord: 0.5 if coord == (1, 1, 1) else None)

    assert profile.break_cost(BlockInfo("stone", (1, 1, 1))) == 2.0


def test_passability_rules() -> None:
    assert blocks.is_passable(None)
    assert blocks.is_passable(BlockInfo("air", (0, 0, 0)))
    assert blocks.is_passable(BlockInfo("oak_door", (0, 0, 0), properties={"open": True}))
    assert not blocks.is_passable(BlockInfo("oak_door", (0, 0, 0)))
    assert not blocks.is_passable(BlockInfo("water", (0, 0, 0)))
    assert not blocks.is_solid(BlockInfo("water", (0, 0, 0)))
    assert blocks.is_solid(BlockInfo("stone", (0, 0, 0)))


def test_placeable_items_exclude_tools_and_food() -> None:
    assert blocks.is_placeable_item("cobblestone", lambda name: True)
    assert not blocks.is_placeable_item("diamond_pickaxe", lambda name: True)
    assert not blocks.is_placeable_item("cod", lambda name: True)
    assert not blocks.is_placeable_item("cobblestone", lambda name: False)


def test_goal_near_and_xz() -> None:
    near = GoalNear(0, 64, 0, 2)
    xz = GoalXZ(5, 5)

    assert near.is_end((1, 64, 1))
    assert not near.is_end((3, 64, 0))
    assert xz.is_end((5, 90, 5))
    assert xz.heuristic((5, 0, 0)) == 5.0


def test_goal_invert_is_satisfied_outside_the_wrapped_goal() -> None:
    flee = GoalInvert(GoalNear(0, 64, 0, 4))

    assert not flee.is_end((1, 64, 1))
    assert flee.is_end((10, 64, 0))
    assert flee.heuristic((3, 64, 0)) < flee.heuristic((1, 64, 0))


class _Entities:
    def entity_position(self, entity_id: str):
        return {"alex": Vec3(10.2, 64, -3.7)}.get(entity_id)


def test_goal_follow_resolves_against_entity_position() -> None:
    resolved = GoalFollow("alex", radius=3).resolve(_Entities())

    assert resolved == GoalNear(10, 64, -4, 3)
    with pytest.raises(LookupError):
        GoalFollow("steve").resolve(_Entities())
