"""Bounded flood fill over standable and swimmable voxels."""

from __future__ import annotations

import asyncio
import logging
import math
from collections import deque
from dataclasses import dataclass, field

from mc_navigator import blocks
from mc_navigator.adapters.world import WorldAdapter
from mc_navigator.config import Settings, settings as default_settings
from mc_navigator.context import CancellationToken
from mc_navigator.models import Coord, Vec3

WORLD_MIN_Y = -64
WORLD_MAX_Y = 320

DIRECTIONS: tuple[tuple[int, int], ...] = ((1, 0), (-1, 0), (0, 1), (0, -1))
VERTICAL_STEPS = (0, 1, -1)

MIN_HEADING_PROGRESS = 5.0
MIN_REFERENCE_GAIN = 2.0
MIN_PLAIN_DISTANCE = 5.0

WATER_COST = 3


@dataclass(slots=True)
class ExplorationResult:
    point: Coord
    distance: float
    path: list[Coord] = field(default_factory=list)
    is_water: bool = False
    heading_score: float | None = None
    reference_distance: float | None = None
    nodes_visited: int = 0


class ConnectivityExplorer:
    """Finds the furthest reachable cell from an origin under one of three scoring policies.

    * plain: maximize path cost from the origin,
    * reference: maximize horizontal distance from ``reference``,
    * heading: maximize displacement along ``heading``.

    Dry cells always win over water cells; a water cell is returned only when
    no dry cell clears the minimum-improvement threshold.
    """

    def __init__(
        self,
        world: WorldAdapter,
        *,
        token: CancellationToken | None = None,
        settings: Settings | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._world = world
        self._token = token or CancellationToken()
        self._settings = settings or default_settings
        self._logger = logger or logging.getLogger("mc_navigator.explorer")

    async def explore(
        self,
        origin: Vec3,
        max_radius: int | None = None,
        *,
        reference: Vec3 | None = None,
        heading: tuple[float, float] | None = None,
        max_drop: int | None = None,
    ) -> ExplorationResult | None:
        radius = self._settings.explorer_max_radius if max_radius is None else max_radius
        budget = self._settings.explorer_node_budget
        yield_every = max(1, self._settings.explorer_yield_every)
        if heading is not None:
            norm = math.hypot(*heading)
            heading = (heading[0] / norm, heading[1] / norm) if norm > 0 else None

        start = origin.floored()
        sx, sy, sz = start
        reference_start = math.hypot(sx - reference.x, sz - reference.z) if reference is not None else 0.0

        parents: dict[Coord, Coord] = {}
        costs: dict[Coord, float] = {start: 0.0}
        water: dict[Coord, bool] = {start: False}
        queue: deque[Coord] = deque([start])
        best_dry: tuple[float, Coord] | None = None
        best_wet: tuple[float, Coord] | None = None
        nodes = 0

        while queue and nodes < budget:
            node = queue.popleft()
            nodes += 1
            if nodes % yield_every == 0:
                await asyncio.sleep(0)
                if self._token.cancelled:
                    self._logger.info("explore_cancelled", extra={"nodes": nodes})
                    return None

            x, y, z = node
            for dx, dz in DIRECTIONS:
                nx, nz = x + dx, z + dz
                if max(abs(nx - sx), abs(nz - sz)) > radius:
                    continue
                for dy in VERTICAL_STEPS:
                    ny = y + dy
                    if ny < WORLD_MIN_Y or ny > WORLD_MAX_Y:
                        continue
                    candidate = (nx, ny, nz)
                    if candidate in costs:
                        continue
                    kind = self._classify(candidate)
                    if kind is None:
                        continue
                    is_water = kind == "swim"
                    if not is_water and max_drop is not None and sy - ny > max_drop:
                        continue

                    cost = costs[node] + (WATER_COST if is_water else 1 + abs(dy))
                    costs[candidate] = cost
                    parents[candidate] = node
                    water[candidate] = is_water
                    queue.append(candidate)

                    score = self._score(candidate, cost, start, reference, heading)
                    if is_water:
                        if best_wet is None or score > best_wet[0]:
                            best_wet = (score, candidate)
                    elif best_dry is None or score > best_dry[0]:
                        best_dry = (score, candidate)
                    break

        for best in (best_dry, best_wet):
            if best is None:
                continue
            score, point = best
            if not self._clears_threshold(score, reference_start, reference, heading):
                continue
            result = ExplorationResult(
                point=point,
                distance=costs[point],
                path=self._path_to(point, parents),
                is_water=water[point],
                heading_score=score if heading is not None else None,
                reference_distance=score if heading is None and reference is not None else None,
                nodes_visited=nodes,
            )
            self._logger.debug(
                "explore_finished",
                extra={"point": point, "nodes": nodes, "is_water": result.is_water, "score": round(score, 2)},
            )
            return result

        self._logger.debug("explore_no_candidate", extra={"nodes": nodes, "origin": start})
        return None

    def _classify(self, coord: Coord) -> str | None:
        x, y, z = coord
        feet = self._world.block_at(coord)
        head = self._world.block_at((x, y + 1, z))
        if not blocks.is_passable(head):
            return None
        if blocks.is_passable(feet):
            floor = self._world.block_at((x, y - 1, z))
            return "stand" if blocks.is_solid(floor) else None
        if feet is not None and blocks.is_water(feet.name):
            return "swim"
        return None

    @staticmethod
    def _score(
        candidate: Coord,
        cost: float,
        start: Coord,
        reference: Vec3 | None,
        heading: tuple[float, float] | None,
    ) -> float:
        if heading is not None:
            return (candidate[0] - start[0]) * heading[0] + (candidate[2] - start[2]) * heading[1]
        if reference is not None:
            return math.hypot(candidate[0] - reference.x, candidate[2] - reference.z)
        return cost

    @staticmethod
    def _clears_threshold(
        score: float,
        reference_start: float,
        reference: Vec3 | None,
        heading: tuple[float, float] | None,
    ) -> bool:
        if heading is not None:
            return score >= MIN_HEADING_PROGRESS
        if reference is not None:
            return score - reference_start >= MIN_REFERENCE_GAIN
        return score >= MIN_PLAIN_DISTANCE

    @staticmethod
    def _path_to(point: Coord, parents: dict[Coord, Coord]) -> list[Coord]:
        path = [point]
        while path[-1] in parents:
            path.append(parents[path[-1]])
        path.pop()
        path.reverse()
        return path
