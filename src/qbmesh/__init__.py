"""
qbmesh
======

Qubicle Binary (.qb) voxel models to minimal triangle meshes.

This package decodes a single-matrix, uncompressed QB file into a dense
voxel grid and converts the grid into one quad per maximal same-colored
face region using face culling and greedy rectangle merging.

Key Features:
- Strict QB reader with descriptive errors (no partial grids)
- High-performance Greedy Meshing with Numba JIT compilation
- Deterministic output order for reproducible fixtures
- Export to glTF 2.0 (.glb) and Wavefront (.obj)

Example Usage:
    import qbmesh

    grid = qbmesh.load_file("model.qb")
    for part in qbmesh.mesh_parts(grid):
        print(part.normal, part.color)
"""

__version__ = "1.0.0"

from .voxel import Empty, Solid, Voxel, EMPTY
from .grid import VoxelGrid
from .qb import (
    QBError,
    FormatError,
    TruncatedInputError,
    EncodingError,
    QBHeader,
    QBMatrix,
    ZAxisOrientation,
    parse_header,
    read_matrix,
    load,
    load_file,
    dumps,
    save_file,
)
from .greedy_mesh import (
    GreedyMesher,
    NaiveMesher,
    MeshPart,
    MeshData,
    mesh_parts,
    merge_parts,
)

__all__ = [
    "Empty",
    "Solid",
    "Voxel",
    "EMPTY",
    "VoxelGrid",
    "QBError",
    "FormatError",
    "TruncatedInputError",
    "EncodingError",
    "QBHeader",
    "QBMatrix",
    "ZAxisOrientation",
    "parse_header",
    "read_matrix",
    "load",
    "load_file",
    "dumps",
    "save_file",
    "GreedyMesher",
    "NaiveMesher",
    "MeshPart",
    "MeshData",
    "mesh_parts",
    "merge_parts",
]
