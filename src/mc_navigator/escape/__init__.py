"""Recovery controllers for agents trapped underground or in water."""

from .aquatic import AquaticEscapeController
from .vertical import VerticalEscapeController

__all__ = ["AquaticEscapeController", "VerticalEscapeController"]
