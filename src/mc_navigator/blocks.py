"""Block classification helpers.

Everything here is derived from a block name (and a few block properties) at
query time. Nothing is cached: the world mutates between ticks.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from mc_navigator.models import BlockInfo

AIR_BLOCKS = frozenset({"air", "cave_air", "void_air"})
WATER_BLOCKS = frozenset({"water", "flowing_water", "bubble_column", "kelp", "kelp_plant", "seagrass", "tall_seagrass"})
LAVA_BLOCKS = frozenset({"lava", "flowing_lava"})
FALLING_BLOCKS = frozenset({"sand", "red_sand", "gravel", "suspicious_sand", "suspicious_gravel"})
UNDIGGABLE_BLOCKS = frozenset({"bedrock", "barrier", "end_portal_frame", "command_block", "structure_void"})
NON_COLLIDING_BLOCKS = frozenset(
    {
        "short_grass",
        "grass",
        "tall_grass",
        "fern",
        "large_fern",
        "dead_bush",
        "dandelion",
        "poppy",
        "torch",
        "wall_torch",
        "snow",
        "vine",
        "sugar_cane",
    }
)

WOOD_TYPES = ("oak", "birch", "spruce", "jungle", "acacia", "dark_oak", "mangrove", "cherry")

# Blocks the conservative profile never breaks.
CONSERVATIVE_BREAK_DENY = frozenset(
    {
        "glass",
        "glass_pane",
        "oak_door",
        "birch_door",
        "spruce_door",
        "iron_door",
        "chest",
        "trapped_chest",
        "crafting_table",
        "furnace",
        "blast_furnace",
        "bed",
        *(f"{wood}_planks" for wood in WOOD_TYPES),
        *(f"{wood}_log" for wood in WOOD_TYPES),
        *(
            f"{color}_bed"
            for color in (
                "white",
                "orange",
                "magenta",
                "light_blue",
                "yellow",
                "lime",
                "pink",
                "gray",
                "light_gray",
                "cyan",
                "purple",
                "blue",
                "brown",
                "green",
                "red",
                "black",
            )
        ),
    }
)

# Common building materials the agent must not drop inside its own structure.
BUILD_MATERIALS = frozenset(
    {
        "cobblestone",
        "stone",
        "dirt",
        "oak_stairs",
        "cobblestone_stairs",
        "stone_bricks",
        "bricks",
        "sandstone",
        "sand",
        "gravel",
        "glass",
        "oak_slab",
        "cobblestone_slab",
        "cobbled_deepslate",
        "deepslate_bricks",
        "mossy_cobblestone",
        "andesite",
        "diorite",
        "granite",
    }
)

_NON_STRUCTURAL_ITEMS = frozenset(
    {
        "stick",
        "flint",
        "salmon",
        "cod",
        "porkchop",
        "beef",
        "chicken",
        "mutton",
        "bone_meal",
        "feather",
        "string",
        "paper",
        "book",
        "arrow",
        "emerald",
        "torch",
        "ladder",
        "vine",
        "lily_pad",
        "scaffolding",
    }
)
_NON_STRUCTURAL_SUFFIXES = (
    "pickaxe",
    "axe",
    "sword",
    "shovel",
    "hoe",
    "helmet",
    "chestplate",
    "leggings",
    "boots",
    "bucket",
    "boat",
    "minecart",
    "ingot",
    "nugget",
    "gem",
    "dye",
    "seeds",
    "seed",
    "spawn_egg",
    "sapling",
)

# Item a block drops when mined, when it differs from the block name.
BLOCK_DROPS = {
    "stone": "cobblestone",
    "deepslate": "cobbled_deepslate",
    "grass_block": "dirt",
}


def is_air(name: str) -> bool:
    return name in AIR_BLOCKS


def is_water(name: str) -> bool:
    return name in WATER_BLOCKS


def is_lava(name: str) -> bool:
    return name in LAVA_BLOCKS


def is_liquid(name: str) -> bool:
    return name in WATER_BLOCKS or name in LAVA_BLOCKS


def is_falling(name: str) -> bool:
    return name in FALLING_BLOCKS or name.endswith("_concrete_powder")


def is_undiggable(name: str) -> bool:
    return name in UNDIGGABLE_BLOCKS


def is_door(name: str) -> bool:
    return name.endswith("_door")


def is_nudgeable_opening(name: str) -> bool:
    """Doors, gates and trapdoors a stalled agent can open by hand (iron needs redstone)."""
    if name.startswith("iron_"):
        return False
    return name.endswith("_door") or name.endswith("_fence_gate") or name.endswith("_trapdoor")


def is_passable(block: BlockInfo | None) -> bool:
    """A cell the agent's body can occupy without swimming. Unloaded cells count as open."""
    if block is None:
        return True
    if block.name in AIR_BLOCKS or block.name in NON_COLLIDING_BLOCKS:
        return True
    if is_nudgeable_opening(block.name) and block.properties.get("open"):
        return True
    return False


def is_solid(block: BlockInfo | None) -> bool:
    """Something the agent can stand on: present, not passable, not liquid."""
    if block is None:
        return False
    return not is_passable(block) and not is_liquid(block.name)


def is_placeable_item(name: str, is_block_item: Callable[[str], bool]) -> bool:
    """True for inventory items usable as a scaffold block."""
    if name in _NON_STRUCTURAL_ITEMS:
        return False
    if name.endswith(_NON_STRUCTURAL_SUFFIXES):
        return False
    return is_block_item(name)


def drop_for(name: str) -> str:
    return BLOCK_DROPS.get(name, name)
