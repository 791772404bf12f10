"""
Voxel Cell Values

A voxel is either Empty or Solid with an RGB color. Both variants are
frozen dataclasses, so equality is structural:

- Empty == Empty
- Solid == Solid iff the colors match
- Empty never equals Solid
"""

from dataclasses import dataclass
from typing import Tuple, Union
import numpy as np


@dataclass(frozen=True)
class Empty:
    """An unoccupied cell."""

    @property
    def is_solid(self) -> bool:
        return False


@dataclass(frozen=True)
class Solid:
    """An occupied cell with an RGB color (0-255 per channel)."""

    r: int
    g: int
    b: int

    def __post_init__(self):
        for name in ("r", "g", "b"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise TypeError(f"Color component {name}={value!r} must be an integer")
            if not 0 <= value <= 255:
                raise ValueError(f"Color component {name}={value} not in [0, 255]")

    @property
    def is_solid(self) -> bool:
        return True

    @property
    def color(self) -> Tuple[int, int, int]:
        """Get the (r, g, b) tuple."""
        return (self.r, self.g, self.b)


Voxel = Union[Empty, Solid]

EMPTY = Empty()
