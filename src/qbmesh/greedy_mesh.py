"""
Greedy Meshing Algorithm with Numba JIT Compilation

This module turns a VoxelGrid into the smallest set of axis-aligned quads
covering every visible face. Adjacent faces with the same color are merged
into larger rectangles ("mesh parts"), one per maximal region.

Algorithm Overview:
1. Six sweeps, one per (axis, direction) pair from the FACES table
2. Face Culling: for each boundary plane ("slab") between two layers, a
   face exists only where the two cells differ and the cell on the swept
   side is solid
3. Greedy Merge: scan the 2D mask row by row, grow each rectangle along
   axis_a then axis_b, emit it and clear the covered mask cells
4. Emit Geometry: four corners, a shared normal, zero UVs, two triangles

Output order is fixed (sweep, then slab, then scan order), so meshing the
same grid twice gives identical results.
"""

from typing import List, Tuple, NamedTuple
import numpy as np
from numba import njit

from .color import EMPTY_KEY, unpack_rgb
from .grid import VoxelGrid


class Face(NamedTuple):
    """One sweep of the mesher."""
    axis: int
    back: bool
    normal: Tuple[float, float, float]
    axis_a: int
    axis_b: int


def _face(axis: int, back: bool) -> Face:
    normal = [0.0, 0.0, 0.0]
    normal[axis] = -1.0 if back else 1.0
    return Face(axis, back, tuple(normal), (axis + 1) % 3, (axis + 2) % 3)


# Sweep order: the three front faces (+X, +Y, +Z), then the back faces
FACES = tuple(_face(axis, False) for axis in range(3)) + tuple(
    _face(axis, True) for axis in range(3)
)

# Triangle indices into the corners (origin, origin+dv, origin+du, origin+du+dv)
FRONT_INDICES = np.array([2, 3, 1, 1, 0, 2], dtype=np.uint32)
BACK_INDICES = np.array([2, 0, 1, 1, 3, 2], dtype=np.uint32)

# Columns of the quad table written by _sweep
_PLANE, _I, _J, _WIDTH, _HEIGHT, _KEY = range(6)


class MeshPart(NamedTuple):
    """One merged rectangle: a quad and its color."""
    positions: np.ndarray    # (4, 3) float32 corners
    normals: np.ndarray      # (4, 3) float32, same normal on every corner
    uvs: np.ndarray          # (4, 2) float32, always zero
    indices: np.ndarray      # (6,) uint32, two triangles
    color: Tuple[int, int, int]

    @property
    def normal(self) -> Tuple[float, float, float]:
        return tuple(float(c) for c in self.normals[0])

    @property
    def width(self) -> float:
        """Extent along axis_a."""
        return float(np.abs(self.positions[2] - self.positions[0]).sum())

    @property
    def height(self) -> float:
        """Extent along axis_b."""
        return float(np.abs(self.positions[1] - self.positions[0]).sum())

    @property
    def area(self) -> float:
        return self.width * self.height


class MeshData(NamedTuple):
    """Container for merged mesh geometry data."""
    vertices: np.ndarray     # (N, 3) float32 positions
    normals: np.ndarray      # (N, 3) float32 normals
    uvs: np.ndarray          # (N, 2) float32 texture coordinates
    colors: np.ndarray       # (N, 4) uint8 RGBA colors
    indices: np.ndarray      # (M,) uint32 triangle indices


@njit(cache=True)
def _sweep(
    keys: np.ndarray,
    dims: np.ndarray,
    strides: np.ndarray,
    axis: int,
    back: bool,
    merge: bool,
    quads: np.ndarray
) -> int:
    """
    Run one face sweep over the grid.

    Args:
        keys: Flat int32 color keys in linear-index order
        dims: Grid dimensions (x, y, z)
        strides: Linear-index step along x, y and z
        axis: Sweep axis (0-2)
        back: True for the negative-direction faces
        merge: False emits one quad per unit face
        quads: Output table of (plane, i, j, width, height, key) rows

    Returns:
        Number of rows written to quads
    """
    axis_a = (axis + 1) % 3
    axis_b = (axis + 2) % 3

    size_d = dims[axis]
    size_a = dims[axis_a]
    size_b = dims[axis_b]
    stride_d = strides[axis]
    stride_a = strides[axis_a]
    stride_b = strides[axis_b]

    mask = np.empty(size_a * size_b, dtype=np.int64)
    count = 0

    for slab in range(-1, size_d):
        has_before = slab >= 0
        has_after = slab + 1 < size_d

        # Build the mask for the plane between layer slab and slab + 1
        n = 0
        for j in range(size_b):
            for i in range(size_a):
                base = i * stride_a + j * stride_b
                before = EMPTY_KEY
                after = EMPTY_KEY
                if has_before:
                    before = keys[base + slab * stride_d]
                if has_after:
                    after = keys[base + (slab + 1) * stride_d]

                if has_before and has_after and before == after:
                    mask[n] = EMPTY_KEY
                elif back:
                    mask[n] = after
                else:
                    mask[n] = before
                n += 1

        # Merge the mask into rectangles
        n = 0
        for j in range(size_b):
            i = 0
            while i < size_a:
                key = mask[n]
                if key == EMPTY_KEY:
                    i += 1
                    n += 1
                    continue

                width = 1
                height = 1
                if merge:
                    while i + width < size_a and mask[n + width] == key:
                        width += 1

                    done = False
                    while j + height < size_b:
                        row = n + height * size_a
                        for k in range(width):
                            if mask[row + k] != key:
                                done = True
                                break
                        if done:
                            break
                        height += 1

                quads[count, 0] = slab + 1
                quads[count, 1] = i
                quads[count, 2] = j
                quads[count, 3] = width
                quads[count, 4] = height
                quads[count, 5] = key
                count += 1

                for h in range(height):
                    row = n + h * size_a
                    for k in range(width):
                        mask[row + k] = EMPTY_KEY

                i += width
                n += width

    return count


def _quad_to_part(face: Face, quad: np.ndarray) -> MeshPart:
    """
    Convert a quad table row to a MeshPart.

    Args:
        face: The sweep that produced the quad
        quad: [plane, i, j, width, height, key]

    Returns:
        MeshPart with corners origin, origin+dv, origin+du, origin+du+dv
    """
    origin = np.zeros(3, dtype=np.float32)
    origin[face.axis] = quad[_PLANE]
    origin[face.axis_a] = quad[_I]
    origin[face.axis_b] = quad[_J]

    du = np.zeros(3, dtype=np.float32)
    du[face.axis_a] = quad[_WIDTH]
    dv = np.zeros(3, dtype=np.float32)
    dv[face.axis_b] = quad[_HEIGHT]

    positions = np.array([origin, origin + dv, origin + du, origin + du + dv], dtype=np.float32)
    normals = np.tile(np.array(face.normal, dtype=np.float32), (4, 1))

    return MeshPart(
        positions=positions,
        normals=normals,
        uvs=np.zeros((4, 2), dtype=np.float32),
        indices=(BACK_INDICES if face.back else FRONT_INDICES).copy(),
        color=unpack_rgb(quad[_KEY]),
    )


def _mesh_parts(grid: VoxelGrid, merge: bool) -> List[MeshPart]:
    solid_count = grid.count_voxels()
    if solid_count == 0:
        return []

    keys = grid.keys
    dims = np.array(grid.shape, dtype=np.int64)
    strides = grid.strides
    # every face in one sweep belongs to a distinct solid voxel
    quads = np.empty((solid_count, 6), dtype=np.int64)

    parts = []
    for face in FACES:
        count = _sweep(keys, dims, strides, face.axis, face.back, merge, quads)
        for row in range(count):
            parts.append(_quad_to_part(face, quads[row]))
    return parts


def mesh_parts(grid: VoxelGrid) -> List[MeshPart]:
    """
    Greedy-mesh a grid into one part per maximal same-colored rectangle.

    Args:
        grid: Populated VoxelGrid (read only)

    Returns:
        Parts in sweep order, then slab order, then scan order
    """
    return _mesh_parts(grid, merge=True)


def merge_parts(
    parts: List[MeshPart],
    scale: float = 1.0,
    center: bool = False
) -> MeshData:
    """
    Concatenate parts into a single indexed mesh.

    Args:
        parts: Parts from mesh_parts
        scale: Vertex position scale factor
        center: If True, center the mesh at origin

    Returns:
        MeshData with per-vertex RGBA colors and offset indices
    """
    if not parts:
        return MeshData(
            vertices=np.zeros((0, 3), dtype=np.float32),
            normals=np.zeros((0, 3), dtype=np.float32),
            uvs=np.zeros((0, 2), dtype=np.float32),
            colors=np.zeros((0, 4), dtype=np.uint8),
            indices=np.zeros((0,), dtype=np.uint32)
        )

    vertices = np.vstack([part.positions for part in parts]) * np.float32(scale)
    normals = np.vstack([part.normals for part in parts])
    uvs = np.vstack([part.uvs for part in parts])
    colors = np.repeat(
        np.array([part.color + (255,) for part in parts], dtype=np.uint8), 4, axis=0
    )
    indices = np.concatenate([
        part.indices + np.uint32(4 * i) for i, part in enumerate(parts)
    ]).astype(np.uint32)

    if center:
        vertices = vertices - (vertices.max(axis=0) + vertices.min(axis=0)) / 2

    return MeshData(
        vertices=vertices.astype(np.float32),
        normals=normals,
        uvs=uvs,
        colors=colors,
        indices=indices
    )


class GreedyMesher:
    """
    Greedy meshing for voxel grids.

    This class wraps the Numba-accelerated sweep kernel and
    provides a clean interface for mesh generation.
    """

    def __init__(self, scale: float = 1.0, center: bool = False):
        """
        Initialize the mesher.

        Args:
            scale: Vertex position scale factor for mesh() (default 1.0 = 1 unit per voxel)
            center: If True, mesh() centers the mesh at origin
        """
        self.scale = scale
        self.center = center

    def mesh_parts(self, grid: VoxelGrid) -> List[MeshPart]:
        """Generate parts in grid coordinates."""
        return mesh_parts(grid)

    def mesh(self, grid: VoxelGrid) -> MeshData:
        """
        Generate a single merged mesh from a voxel grid.

        Args:
            grid: VoxelGrid instance

        Returns:
            MeshData containing vertices, normals, uvs, colors, and indices
        """
        return merge_parts(self.mesh_parts(grid), self.scale, self.center)


class NaiveMesher(GreedyMesher):
    """
    Naive meshing for comparison/debugging.

    Applies the same face culling as GreedyMesher but emits one
    quad per visible unit face.
    """

    def mesh_parts(self, grid: VoxelGrid) -> List[MeshPart]:
        return _mesh_parts(grid, merge=False)


def compare_mesh_stats(greedy_mesh: MeshData, naive_mesh: MeshData) -> dict:
    """
    Compare statistics between greedy and naive meshing.

    Args:
        greedy_mesh: MeshData from GreedyMesher
        naive_mesh: MeshData from NaiveMesher

    Returns:
        Dictionary with comparison statistics
    """
    greedy_verts = len(greedy_mesh.vertices)
    naive_verts = len(naive_mesh.vertices)
    greedy_tris = len(greedy_mesh.indices) // 3
    naive_tris = len(naive_mesh.indices) // 3

    reduction_verts = (1 - greedy_verts / naive_verts) * 100 if naive_verts > 0 else 0
    reduction_tris = (1 - greedy_tris / naive_tris) * 100 if naive_tris > 0 else 0

    return {
        "greedy_vertices": greedy_verts,
        "naive_vertices": naive_verts,
        "greedy_triangles": greedy_tris,
        "naive_triangles": naive_tris,
        "vertex_reduction_percent": reduction_verts,
        "triangle_reduction_percent": reduction_tris,
    }
