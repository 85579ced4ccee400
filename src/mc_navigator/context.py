"""Per-agent navigation state threaded through every component."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from mc_navigator.models import Vec3

if TYPE_CHECKING:
    from mc_navigator.structure.descriptor import StructureDescriptor


class CancellationToken:
    """Shared stop flag polled at every suspension point."""

    def __init__(self) -> None:
        self._cancelled = False
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self, reason: str = "interrupted") -> None:
        self._cancelled = True
        self.reason = reason

    def reset(self) -> None:
        self._cancelled = False
        self.reason = None


@dataclass(slots=True)
class NavigationContext:
    """Owned by the agent task; never shared between agents."""

    agent_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    structure: StructureDescriptor | None = None
    vertical_escape_active: bool = False
    aquatic_escape_active: bool = False
    surface_precheck_active: bool = False
    fallback_escape_active: bool = False
    retreat_origin: Vec3 | None = None
    move_away_heading: tuple[float, float] | None = None
