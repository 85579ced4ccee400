"""Persisted description of the agent's protected structure."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Facing = Literal["north", "south", "east", "west"]

# Unit step from the door toward the outside, per facing.
OUTWARD: dict[str, tuple[int, int]] = {
    "north": (0, -1),
    "south": (0, 1),
    "east": (1, 0),
    "west": (-1, 0),
}


class Bounds(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    x1: int
    z1: int
    x2: int
    z2: int
    y: int
    roof_y: int | None = Field(default=None, alias="roofY")

    @model_validator(mode="after")
    def _normalize(self) -> Bounds:
        if self.x1 > self.x2:
            self.x1, self.x2 = self.x2, self.x1
        if self.z1 > self.z2:
            self.z1, self.z2 = self.z2, self.z1
        if self.roof_y is None:
            self.roof_y = self.y + 4
        return self

    @property
    def roof(self) -> int:
        return self.roof_y if self.roof_y is not None else self.y + 4

    def contains_xz(self, x: float, z: float, margin: float = 0) -> bool:
        return self.x1 - margin <= x <= self.x2 + margin and self.z1 - margin <= z <= self.z2 + margin


class Door(BaseModel):
    x: int
    z: int
    facing: Facing = "north"

    @property
    def outward(self) -> tuple[int, int]:
        return OUTWARD[self.facing]


class StructureDescriptor(BaseModel):
    """Single source of truth for what must never be dug."""

    model_config = ConfigDict(populate_by_name=True)

    bounds: Bounds
    door: Door | None = None
    wall_material: str = Field(default="oak_planks", alias="wallMaterial")
    furniture: list[dict[str, Any]] = Field(default_factory=list)
    enclosed: bool = True
    interior_area: int | None = Field(default=None, alias="interiorArea")
    cramped: bool = False

    @property
    def floor_y(self) -> int:
        return self.bounds.y

    @property
    def door_y(self) -> int:
        return self.bounds.y + 1

    @property
    def interior(self) -> tuple[int, int, int, int]:
        """Inner footprint (x1, z1, x2, z2), walls excluded."""
        b = self.bounds
        return (b.x1 + 1, b.z1 + 1, b.x2 - 1, b.z2 - 1)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)
