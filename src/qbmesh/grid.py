"""
Dense Voxel Grid

VoxelGrid stores every cell of a model in a single flat int32 array of
color keys (see color.py). Cells are addressed by linear index:

    index = x + y * size_x + z * size_x * size_y

This matches the record order of a QB matrix (z outer, y middle, x inner),
so the parser can fill the whole array in one step.

Memory consideration: 4 bytes per cell, a 256³ grid is 64 MB.
"""

from dataclasses import dataclass, field
from typing import Iterator, Tuple
import numpy as np

from .color import EMPTY_KEY, key_to_voxel, keys_to_rgba, voxel_to_key
from .voxel import Solid, Voxel


Position = Tuple[int, int, int]


@dataclass(frozen=True, eq=False)
class VoxelGrid:
    """
    Dense 3D voxel grid with fixed dimensions.

    Dimensions are fixed at construction and every cell starts Empty.
    Accessors check bounds and raise IndexError; the mesher reads `keys`
    directly and relies on its loop bounds instead.

    Coordinate system: X-right, Y-up, Z-forward (Qubicle)
    """

    size_x: int
    size_y: int
    size_z: int
    _keys: np.ndarray = field(init=False, repr=False)

    def __post_init__(self):
        """Validate dimensions and allocate the cell array."""
        for name in ("size_x", "size_y", "size_z"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)) or value <= 0:
                raise ValueError(f"Grid dimension {name} must be a positive integer, got {value!r}")
        object.__setattr__(
            self, "_keys",
            np.full(self.size_x * self.size_y * self.size_z, EMPTY_KEY, dtype=np.int32)
        )

    @classmethod
    def from_keys(cls, size: Tuple[int, int, int], keys: np.ndarray) -> "VoxelGrid":
        """
        Build a grid from a flat key array in linear-index order.

        Args:
            size: (x, y, z) dimensions
            keys: Array of x*y*z color keys

        Returns:
            New VoxelGrid owning a copy of the keys
        """
        grid = cls(*size)
        keys = np.asarray(keys, dtype=np.int32).reshape(-1)
        if keys.shape != grid._keys.shape:
            raise ValueError(
                f"Expected {grid._keys.size} keys for size {grid.shape}, got {keys.size}"
            )
        grid._keys[:] = keys
        return grid

    @property
    def shape(self) -> Tuple[int, int, int]:
        """Get grid dimensions (x, y, z)."""
        return (self.size_x, self.size_y, self.size_z)

    @property
    def keys(self) -> np.ndarray:
        """Get a read-only view of the flat key array."""
        view = self._keys.view()
        view.flags.writeable = False
        return view

    def __len__(self) -> int:
        return self._keys.size

    def index(self, x: int, y: int, z: int) -> int:
        """Convert a position to its linear cell index."""
        return x + y * self.size_x + z * self.size_x * self.size_y

    @property
    def strides(self) -> np.ndarray:
        """Get the linear-index step of one cell along x, y and z."""
        return np.array(
            [self.index(1, 0, 0), self.index(0, 1, 0), self.index(0, 0, 1)],
            dtype=np.int64
        )

    def position(self, index: int) -> Position:
        """Convert a linear cell index back to a position."""
        _, stride_y, stride_z = (int(s) for s in self.strides)
        z, rest = divmod(index, stride_z)
        y, x = divmod(rest, stride_y)
        return (x, y, z)

    def in_bounds(self, x: int, y: int, z: int) -> bool:
        """Check if coordinates are within grid bounds."""
        return (
            0 <= x < self.size_x and
            0 <= y < self.size_y and
            0 <= z < self.size_z
        )

    def _checked_index(self, position: Position) -> int:
        x, y, z = position
        if not self.in_bounds(x, y, z):
            raise IndexError(f"Position {tuple(position)} outside grid of size {self.shape}")
        return self.index(x, y, z)

    def set(self, position: Position, voxel: Voxel):
        """
        Overwrite one cell.

        Args:
            position: (x, y, z) coordinates
            voxel: Empty or Solid value to store
        """
        self._keys[self._checked_index(position)] = voxel_to_key(voxel)

    def lookup(self, position: Position) -> Voxel:
        """Get the voxel stored at a position."""
        return key_to_voxel(int(self._keys[self._checked_index(position)]))

    def count_voxels(self) -> int:
        """Count the number of solid voxels."""
        return int(np.count_nonzero(self._keys != EMPTY_KEY))

    def iterate_voxels(self) -> Iterator[Tuple[int, int, int, Solid]]:
        """
        Iterate over all solid voxels in linear-index order.

        Yields:
            Tuples of (x, y, z, Solid)
        """
        for index in np.flatnonzero(self._keys != EMPTY_KEY):
            x, y, z = self.position(int(index))
            yield (x, y, z, key_to_voxel(int(self._keys[index])))

    def to_rgba(self) -> np.ndarray:
        """
        Get the grid as an RGBA array.

        Returns:
            uint8 array of shape (X, Y, Z, 4); alpha is 255 for solid cells
        """
        rgba = keys_to_rgba(self._keys)
        # linear index runs x fastest, so reshape as (z, y, x) then swap
        return rgba.reshape(self.size_z, self.size_y, self.size_x, 4).transpose(2, 1, 0, 3).copy()
