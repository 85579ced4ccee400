"""In-memory voxel world implementing ``WorldAdapter``.

Used by the ``simulate`` CLI command and the scenario tests. Physics is
deliberately coarse: one block of travel per 0.2 s tick, a single-block jump,
no sinking in water, and a grid search that walks, swims and steps but never
digs or places.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import math
from dataclasses import dataclass
from typing import Callable, Iterator

from mc_navigator import blocks
from mc_navigator.adapters.world import MovementFailedError
from mc_navigator.models import AnyGoal, BlockInfo, Coord, InventoryItem, Vec3
from mc_navigator.profiles import MovementProfile
from mc_navigator.structure.descriptor import Bounds, Door, StructureDescriptor

Terrain = Callable[[int, int, int], str]

TICK_SECONDS = 0.2
WORLD_MIN_Y = -64
WORLD_MAX_Y = 320
REACH = 6.0

CARDINALS: tuple[tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))

DEFAULT_BLOCK_ITEMS = frozenset(
    {
        "cobblestone",
        "cobbled_deepslate",
        "stone",
        "dirt",
        "sand",
        "gravel",
        "netherrack",
        "oak_planks",
        "spruce_planks",
        "oak_log",
        "torch",
        "ladder",
        "scaffolding",
    }
)


class SimulatedWorld:
    """Deterministic world for tests and demos. Terrain is a pure function plus an override map."""

    def __init__(
        self,
        terrain: Terrain,
        *,
        position: Vec3,
        inventory: dict[str, int] | None = None,
        block_items: frozenset[str] = DEFAULT_BLOCK_ITEMS,
        sky_limit: int = 128,
        step_delay: float = 0.0,
        tick_delay: float = 0.0,
        search_node_limit: int = 20_000,
        logger: logging.Logger | None = None,
    ) -> None:
        self._terrain = terrain
        self._overrides: dict[Coord, str] = {}
        self._properties: dict[Coord, dict] = {}
        self._column_tops: dict[tuple[int, int], int] = {}
        self._block_items = block_items
        self._sky_limit = sky_limit
        self._step_delay = step_delay
        self._tick_delay = tick_delay
        self._search_node_limit = search_node_limit
        self._logger = logger or logging.getLogger("mc_navigator.adapters.simulated")

        self.position = position
        self.inventory: dict[str, int] = dict(inventory or {})
        self.held: str | None = None
        self.entities: dict[str, Vec3] = {}
        self.controls = {"jump": False, "forward": False, "sprint": False}
        self._look: Vec3 | None = None
        self._hovering = False
        self._stop_requested = False

        self.dug: list[Coord] = []
        self.placed: list[Coord] = []
        self.activated: list[Coord] = []
        self.moves: list[tuple[AnyGoal, MovementProfile]] = []
        self.stop_calls = 0
        self.ticks = 0

    # -- world editing -------------------------------------------------

    def name_at(self, coord: Coord) -> str:
        name = self._overrides.get(coord)
        if name is not None:
            return name
        return self._terrain(*coord)

    def set_block(self, coord: Coord, name: str, **properties: object) -> None:
        self._overrides[coord] = name
        if properties:
            self._properties[coord] = dict(properties)
        else:
            self._properties.pop(coord, None)
        self._column_tops.pop((coord[0], coord[2]), None)

    def _column_top(self, x: int, z: int) -> int:
        top = self._column_tops.get((x, z))
        if top is None:
            top = WORLD_MIN_Y - 1
            for y in range(self._sky_limit, WORLD_MIN_Y - 1, -1):
                if _opaque(self.name_at((x, y, z))):
                    top = y
                    break
            self._column_tops[(x, z)] = top
        return top

    def _peek(self, coord: Coord) -> BlockInfo | None:
        if coord[1] < WORLD_MIN_Y or coord[1] >= WORLD_MAX_Y:
            return None
        name = self.name_at(coord)
        properties = self._properties.get(coord)
        return BlockInfo(
            name=name,
            position=coord,
            diggable=not (blocks.is_air(name) or blocks.is_liquid(name) or blocks.is_undiggable(name)),
            properties=dict(properties) if properties else {},
        )

    def _solid(self, coord: Coord) -> bool:
        return blocks.is_solid(self._peek(coord))

    # -- queries ---------------------------------------------------------

    def block_at(self, coord: Coord) -> BlockInfo | None:
        block = self._peek(coord)
        if block is not None:
            block.skylight = 15 if coord[1] > self._column_top(coord[0], coord[2]) else 0
        return block

    def find_blocks(
        self,
        predicate: Callable[[BlockInfo], bool],
        *,
        origin: Coord,
        max_distance: int = 32,
        count: int = 1,
    ) -> list[BlockInfo]:
        found: list[BlockInfo] = []
        for radius in range(max_distance + 1):
            for coord in _shell(origin, radius):
                block = self.block_at(coord)
                if block is not None and predicate(block):
                    found.append(block)
            if len(found) >= count:
                break
        center = Vec3.center_of(origin)
        found.sort(key=lambda block: Vec3.center_of(block.position).distance_to(center))
        return found[:count]

    def current_position(self) -> Vec3:
        return self.position

    def entity_position(self, entity_id: str) -> Vec3 | None:
        return self.entities.get(entity_id)

    def inventory_items(self) -> list[InventoryItem]:
        return [InventoryItem(name, count) for name, count in self.inventory.items() if count > 0]

    def held_item(self) -> InventoryItem | None:
        if self.held is None or self.inventory.get(self.held, 0) <= 0:
            return None
        return InventoryItem(self.held, self.inventory[self.held])

    def is_block_item(self, item_name: str) -> bool:
        return item_name in self._block_items

    # -- grid search -------------------------------------------------------

    async def move(self, goal: AnyGoal, profile: MovementProfile) -> None:
        self.moves.append((goal, profile))
        self._stop_requested = False
        resolved = goal.resolve(self)
        path = self._search(resolved, profile)
        for cell in path:
            await asyncio.sleep(self._step_delay)
            if self._stop_requested:
                return
            self.position = Vec3.center_of(cell)

    def stop(self) -> None:
        self.stop_calls += 1
        self._stop_requested = True

    def _search(self, goal: AnyGoal, profile: MovementProfile) -> list[Coord]:
        start = self.position.floored()
        if goal.is_end(start):
            return []

        counter = itertools.count()
        best: dict[Coord, float] = {start: 0.0}
        parents: dict[Coord, Coord] = {}
        heap: list[tuple[float, float, int, Coord]] = [(goal.heuristic(start), 0.0, next(counter), start)]
        expanded = 0
        while heap and expanded < self._search_node_limit:
            _, cost, _, node = heapq.heappop(heap)
            if cost > best.get(node, math.inf):
                continue
            if goal.is_end(node):
                path = [node]
                while path[-1] in parents:
                    path.append(parents[path[-1]])
                path.reverse()
                return path[1:]
            expanded += 1
            for neighbor, step_cost in self._neighbors(node, profile):
                total = cost + step_cost
                if total < best.get(neighbor, math.inf):
                    best[neighbor] = total
                    parents[neighbor] = node
                    heapq.heappush(heap, (total + goal.heuristic(neighbor), total, next(counter), neighbor))

        raise MovementFailedError(f"No path to goal after {expanded} nodes")

    def _cell_kind(self, coord: Coord) -> str | None:
        x, y, z = coord
        feet = self._peek(coord)
        head = self._peek((x, y + 1, z))
        if blocks.is_solid(self._peek((x, y - 1, z))) and blocks.is_passable(feet) and blocks.is_passable(head):
            return "stand"
        if feet is not None and blocks.is_water(feet.name) and (blocks.is_passable(head) or blocks.is_water(head.name)):
            return "swim"
        return None

    def _neighbors(self, node: Coord, profile: MovementProfile) -> Iterator[tuple[Coord, float]]:
        x, y, z = node
        drops = tuple(range(-1, -profile.max_drop_down - 1, -1))
        for dx, dz in CARDINALS:
            nx, nz = x + dx, z + dz
            for dy in (0, 1, *drops):
                ny = y + dy
                if ny < WORLD_MIN_Y or ny >= WORLD_MAX_Y:
                    continue
                kind = self._cell_kind((nx, ny, nz))
                if kind is None:
                    continue
                if kind == "swim" and math.isinf(profile.liquid_cost):
                    continue
                if dy == 1 and self._solid((x, y + 2, z)):
                    continue
                if dy < 0 and any(self._solid((nx, level, nz)) for level in range(ny + 2, y + 2)):
                    continue
                if kind == "stand":
                    cost = 1.0 + (1.0 if dy > 0 else 0.0) + profile.step_cost(self._peek((nx, ny - 1, nz)))
                else:
                    cost = 2.0 + profile.liquid_cost
                yield (nx, ny, nz), cost
                break

    # -- actuators -----------------------------------------------------------

    async def dig(self, block: BlockInfo) -> bool:
        coord = block.position
        name = self.name_at(coord)
        if blocks.is_air(name) or blocks.is_liquid(name) or blocks.is_undiggable(name):
            return False
        eyes = self.position.offset(dy=1.6)
        if eyes.distance_to(Vec3(coord[0] + 0.5, coord[1] + 0.5, coord[2] + 0.5)) > REACH + 1:
            return False
        await asyncio.sleep(0)
        self.set_block(coord, "air")
        drop = blocks.drop_for(name)
        self.inventory[drop] = self.inventory.get(drop, 0) + 1
        self.dug.append(coord)
        return True

    async def place(self, reference: BlockInfo, face: Coord) -> bool:
        item = self.held_item()
        if item is None or not self._solid(reference.position):
            return False
        target = (
            reference.position[0] + face[0],
            reference.position[1] + face[1],
            reference.position[2] + face[2],
        )
        current = self.name_at(target)
        if not (blocks.is_air(current) or blocks.is_liquid(current) or current in blocks.NON_COLLIDING_BLOCKS):
            return False
        fx, fy, fz = self.position.floored()
        if target in ((fx, fy, fz), (fx, fy + 1, fz)):
            return False
        await asyncio.sleep(0)
        self.set_block(target, item.name)
        self.inventory[item.name] -= 1
        if self.inventory[item.name] <= 0:
            del self.inventory[item.name]
            self.held = None
        self.placed.append(target)
        return True

    async def equip(self, item_name: str) -> bool:
        if self.inventory.get(item_name, 0) <= 0:
            return False
        self.held = item_name
        return True

    async def activate_block(self, block: BlockInfo) -> None:
        coord = block.position
        name = self.name_at(coord)
        if not blocks.is_nudgeable_opening(name):
            return
        is_open = not self._properties.get(coord, {}).get("open", False)
        self.set_block(coord, name, open=is_open)
        if blocks.is_door(name):
            for dy in (-1, 1):
                half = (coord[0], coord[1] + dy, coord[2])
                if self.name_at(half) == name:
                    self.set_block(half, name, open=is_open)
        self.activated.append(coord)

    async def look_at(self, point: Vec3) -> None:
        self._look = point

    def jump(self, state: bool) -> None:
        self.controls["jump"] = state

    def forward(self, state: bool) -> None:
        self.controls["forward"] = state

    def sprint(self, state: bool) -> None:
        self.controls["sprint"] = state

    def clear_controls(self) -> None:
        for control in self.controls:
            self.controls[control] = False

    async def wait(self, seconds: float) -> None:
        for _ in range(max(1, round(seconds / TICK_SECONDS))):
            self.tick()
            await asyncio.sleep(self._tick_delay)

    # -- physics ---------------------------------------------------------------

    def tick(self) -> None:
        self.ticks += 1
        pos = self.position
        fx, fy, fz = pos.floored()
        in_water = blocks.is_water(self.name_at((fx, fy, fz)))

        if self.controls["jump"]:
            if in_water:
                if blocks.is_water(self.name_at((fx, fy + 1, fz))):
                    pos = Vec3(pos.x, fy + 1, pos.z)
            elif not self._hovering and self._solid((fx, fy - 1, fz)) and not self._solid((fx, fy + 2, fz)):
                pos = Vec3(pos.x, fy + 1, pos.z)
                self._hovering = True
        else:
            self._hovering = False

        if self.controls["forward"] and self._look is not None:
            pos = self._walk(pos)

        fx, fy, fz = pos.floored()
        if (
            not self._hovering
            and not blocks.is_water(self.name_at((fx, fy, fz)))
            and not self._solid((fx, fy - 1, fz))
            and fy - 1 >= WORLD_MIN_Y
        ):
            pos = Vec3(pos.x, fy - 1, pos.z)

        self.position = pos

    def _walk(self, pos: Vec3) -> Vec3:
        target = self._look
        dx, dz = target.x - pos.x, target.z - pos.z
        distance = math.hypot(dx, dz)
        if distance < 1e-6:
            return pos
        step = min(1.0, distance)
        nx, nz = pos.x + dx / distance * step, pos.z + dz / distance * step
        for cx, cz in ((nx, nz), (nx, pos.z), (pos.x, nz)):
            moved = self._enter(pos, cx, cz)
            if moved is not None:
                return moved
        return pos

    def _enter(self, pos: Vec3, cx: float, cz: float) -> Vec3 | None:
        fx, fy, fz = pos.floored()
        tx, tz = math.floor(cx), math.floor(cz)
        if (tx, tz) == (fx, fz):
            return Vec3(cx, pos.y, cz)
        if not self._solid((tx, fy, tz)) and not self._solid((tx, fy + 1, tz)):
            return Vec3(cx, pos.y, cz)
        can_climb = self.controls["jump"] or blocks.is_water(self.name_at((fx, fy, fz)))
        if (
            can_climb
            and not self._solid((tx, fy + 1, tz))
            and not self._solid((tx, fy + 2, tz))
            and not self._solid((fx, fy + 2, fz))
        ):
            return Vec3(cx, fy + 1, cz)
        return None


def _opaque(name: str) -> bool:
    return not (blocks.is_air(name) or blocks.is_liquid(name) or name in blocks.NON_COLLIDING_BLOCKS)


def _shell(origin: Coord, radius: int) -> Iterator[Coord]:
    ox, oy, oz = origin
    if radius == 0:
        yield origin
        return
    for x in range(ox - radius, ox + radius + 1):
        for y in range(max(oy - radius, WORLD_MIN_Y), min(oy + radius, WORLD_MAX_Y - 1) + 1):
            for z in range(oz - radius, oz + radius + 1):
                if max(abs(x - ox), abs(y - oy), abs(z - oz)) == radius:
                    yield (x, y, z)


def build_structure(world: SimulatedWorld, descriptor: StructureDescriptor, *, door_block: str = "oak_door") -> None:
    """Lay out floor, walls, roof and a closed door for ``descriptor``."""
    b = descriptor.bounds
    material = descriptor.wall_material
    for x in range(b.x1, b.x2 + 1):
        for z in range(b.z1, b.z2 + 1):
            world.set_block((x, b.y, z), material)
            world.set_block((x, b.roof, z), material)
            if x in (b.x1, b.x2) or z in (b.z1, b.z2):
                for y in range(b.y + 1, b.roof):
                    world.set_block((x, y, z), material)
    door = descriptor.door
    if door is not None:
        world.set_block((door.x, b.y + 1, door.z), door_block, open=False)
        world.set_block((door.x, b.y + 2, door.z), door_block, open=False)


@dataclass(slots=True)
class Scenario:
    name: str
    world: SimulatedWorld
    structure: StructureDescriptor | None = None
    target: Vec3 | None = None


def flat_scenario(*, floor_y: int = 63, target_x: float = 200.5) -> Scenario:
    def terrain(x: int, y: int, z: int) -> str:
        return "stone" if y <= floor_y else "air"

    world = SimulatedWorld(terrain, position=Vec3(0.5, floor_y + 1, 0.5), sky_limit=floor_y + 32)
    return Scenario("long-range", world, target=Vec3(target_x, floor_y + 1, 0.5))


def lake_scenario() -> Scenario:
    """Water at y 58-60 for x < 10, dry land topped at y 60 for x >= 10."""

    def terrain(x: int, y: int, z: int) -> str:
        if x >= 10:
            return "stone" if y <= 60 else "air"
        if y <= 57:
            return "stone"
        if y <= 60:
            return "water"
        return "air"

    world = SimulatedWorld(terrain, position=Vec3(0.5, 60, 0.5), sky_limit=96)
    return Scenario("lake", world)


def shaft_scenario(*, inventory: dict[str, int] | None = None) -> Scenario:
    """Agent sealed in a two-block pocket at y 40, bedrock at y 30 and below, surface at y 70."""

    def terrain(x: int, y: int, z: int) -> str:
        if y <= 30:
            return "bedrock"
        if y <= 69:
            return "stone"
        return "air"

    world = SimulatedWorld(
        terrain,
        position=Vec3(0.5, 40, 0.5),
        inventory={"cobblestone": 64} if inventory is None else inventory,
        sky_limit=96,
    )
    world.set_block((0, 40, 0), "air")
    world.set_block((0, 41, 0), "air")
    structure = StructureDescriptor(
        bounds=Bounds(x1=97, z1=97, x2=103, z2=103, y=70),
        door=Door(x=100, z=97, facing="north"),
    )
    build_structure(world, structure)
    return Scenario("shaft", world, structure=structure)


def house_scenario(*, inside: bool = True) -> Scenario:
    """A 7x7 plank house on flat ground with its door on the north wall at (3, 0)."""

    def terrain(x: int, y: int, z: int) -> str:
        return "stone" if y <= 63 else "air"

    start = Vec3(3.5, 64, 3.5) if inside else Vec3(3.5, 64, -5.5)
    world = SimulatedWorld(terrain, position=start, sky_limit=96)
    structure = StructureDescriptor(
        bounds=Bounds(x1=0, z1=0, x2=6, z2=6, y=63),
        door=Door(x=3, z=0, facing="north"),
    )
    build_structure(world, structure)
    target = Vec3(3.5, 64, -10.5) if inside else Vec3(3.5, 64, 3.5)
    return Scenario("house", world, structure=structure, target=target)
