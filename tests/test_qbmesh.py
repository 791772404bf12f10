"""
Unit tests for qbmesh: voxels, grid, QB reader and greedy mesher.
"""

import sys
from pathlib import Path
import struct
import tempfile
import numpy as np
import unittest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from qbmesh import (
    EMPTY, Empty, Solid, VoxelGrid,
    FormatError, TruncatedInputError, EncodingError, QBError, ZAxisOrientation,
    parse_header, read_matrix, load, load_file, dumps, save_file,
)
from qbmesh.color import EMPTY_KEY, pack_rgb, unpack_rgb, srgb_to_linear
from qbmesh.greedy_mesh import (
    FACES, GreedyMesher, NaiveMesher, mesh_parts, merge_parts, compare_mesh_stats,
)


RED = Solid(255, 0, 0)
BLUE = Solid(0, 0, 255)

AXIS_NORMALS = [
    (1.0, 0.0, 0.0), (0.0, 1.0, 0.0), (0.0, 0.0, 1.0),
    (-1.0, 0.0, 0.0), (0.0, -1.0, 0.0), (0.0, 0.0, -1.0),
]


def build_qb(
    size=(2, 1, 1),
    records=((255, 0, 0, 255), (255, 0, 0, 0)),
    version=1,
    color_format=0,
    z_axis=1,
    compressed=0,
    visibility_mask=0,
    num_matrices=1,
    name=b"m",
    position=(0, 0, 0),
) -> bytes:
    """Pack a single-matrix QB file."""
    data = struct.pack(
        '<6I', version, color_format, z_axis, compressed, visibility_mask, num_matrices
    )
    data += struct.pack('<B', len(name)) + name
    data += struct.pack('<6I', *size, *position)
    for record in records:
        data += struct.pack('<4B', *record)
    return data


def filled_grid(size, voxel=RED) -> VoxelGrid:
    grid = VoxelGrid(*size)
    for z in range(size[2]):
        for y in range(size[1]):
            for x in range(size[0]):
                grid.set((x, y, z), voxel)
    return grid


class TestVoxel(unittest.TestCase):
    """Tests for voxel values."""

    def test_structural_equality(self):
        """Test equality between voxel values."""
        assert Empty() == EMPTY
        assert Solid(1, 2, 3) == Solid(1, 2, 3)
        assert Solid(1, 2, 3) != Solid(1, 2, 4)
        assert EMPTY != Solid(0, 0, 0)
        assert Solid(0, 0, 0) != EMPTY

    def test_hashable(self):
        """Test voxels as set members."""
        assert len({Solid(1, 2, 3), Solid(1, 2, 3), EMPTY, Empty()}) == 2

    def test_color(self):
        """Test color tuple and solid flag."""
        assert RED.color == (255, 0, 0)
        assert RED.is_solid
        assert not EMPTY.is_solid

    def test_invalid_component(self):
        """Test rejection of invalid color components."""
        with self.assertRaises(ValueError):
            Solid(256, 0, 0)
        with self.assertRaises(ValueError):
            Solid(0, -1, 0)
        with self.assertRaises(TypeError):
            Solid(1.5, 0, 0)
        with self.assertRaises(TypeError):
            Solid(True, 0, 0)
        with self.assertRaises(TypeError):
            Solid(0, "1", 0)
        assert Solid(np.uint8(5), 0, 0) == Solid(5, 0, 0)


class TestColorKeys(unittest.TestCase):
    """Tests for color key packing and conversion."""

    def test_pack_unpack(self):
        """Test key packing round trip."""
        key = pack_rgb(12, 34, 56)
        assert key == (12 << 16) | (34 << 8) | 56
        assert unpack_rgb(key) == (12, 34, 56)

    def test_black_is_not_empty(self):
        """Test black key differs from the empty key."""
        assert pack_rgb(0, 0, 0) != EMPTY_KEY

    def test_linear_zero_one(self):
        """Test sRGB to Linear endpoints."""
        colors = np.array([[0, 0, 0, 255], [255, 255, 255, 255]], dtype=np.uint8)
        linear = srgb_to_linear(colors)

        assert np.allclose(linear[0, :3], 0, atol=0.01)
        assert np.allclose(linear[1, :3], 1, atol=0.01)
        assert np.allclose(linear[:, 3], 1, atol=0.01)


class TestVoxelGrid(unittest.TestCase):
    """Tests for VoxelGrid class."""

    def test_create_grid(self):
        """Test grid creation."""
        grid = VoxelGrid(3, 4, 5)
        assert grid.shape == (3, 4, 5)
        assert len(grid) == 60
        assert grid.count_voxels() == 0
        assert grid.lookup((2, 3, 4)) == EMPTY

    def test_invalid_dimensions(self):
        """Test rejection of non-positive dimensions."""
        for size in [(0, 1, 1), (1, -2, 1), (1, 1, 1.5)]:
            with self.assertRaises(ValueError):
                VoxelGrid(*size)

    def test_set_lookup(self):
        """Test setting and looking up voxels."""
        grid = VoxelGrid(4, 4, 4)
        grid.set((1, 2, 3), Solid(255, 128, 64))

        assert grid.lookup((1, 2, 3)) == Solid(255, 128, 64)
        assert grid.lookup((3, 2, 1)) == EMPTY
        assert grid.count_voxels() == 1

        grid.set((1, 2, 3), EMPTY)
        assert grid.lookup((1, 2, 3)) == EMPTY
        assert grid.count_voxels() == 0

    def test_set_rejects_non_voxel(self):
        """Test set rejects values that are not Empty or Solid."""
        grid = VoxelGrid(2, 2, 2)
        grid.set((0, 0, 0), RED)

        for value in [(255, 0, 0), None, 0xFF0000, "red"]:
            with self.assertRaises(TypeError):
                grid.set((0, 0, 0), value)

        assert grid.lookup((0, 0, 0)) == RED
        assert grid.count_voxels() == 1

    def test_out_of_bounds(self):
        """Test bounds checking."""
        grid = VoxelGrid(2, 2, 2)
        with self.assertRaises(IndexError):
            grid.set((2, 0, 0), RED)
        with self.assertRaises(IndexError):
            grid.lookup((0, -1, 0))

    def test_index_formula(self):
        """Test linear index layout."""
        grid = VoxelGrid(3, 4, 5)
        assert grid.index(0, 0, 0) == 0
        assert grid.index(1, 0, 0) == 1
        assert grid.index(0, 1, 0) == 3
        assert grid.index(0, 0, 1) == 12
        assert grid.index(2, 3, 4) == 59

        for i in range(len(grid)):
            assert grid.index(*grid.position(i)) == i

    def test_strides_match_index(self):
        """Test strides agree with the linear index."""
        grid = VoxelGrid(3, 4, 5)
        strides = grid.strides

        assert list(strides) == [grid.index(1, 0, 0), grid.index(0, 1, 0), grid.index(0, 0, 1)]
        assert list(strides) == [1, 3, 12]
        for x, y, z in [(0, 0, 0), (2, 1, 0), (1, 3, 4), (2, 3, 4)]:
            assert grid.index(x, y, z) == x * strides[0] + y * strides[1] + z * strides[2]

    def test_set_writes_linear_index(self):
        """Test set writes the key at the linear index."""
        grid = VoxelGrid(3, 4, 5)
        grid.set((2, 1, 3), BLUE)
        assert grid.keys[2 + 1 * 3 + 3 * 12] == pack_rgb(0, 0, 255)

    def test_keys_read_only(self):
        """Test the key view is read-only."""
        grid = VoxelGrid(2, 2, 2)
        with self.assertRaises(ValueError):
            grid.keys[0] = 0

    def test_iterate_voxels(self):
        """Test voxel iteration order."""
        grid = VoxelGrid(2, 2, 2)
        grid.set((1, 1, 1), BLUE)
        grid.set((1, 0, 0), RED)

        assert list(grid.iterate_voxels()) == [(1, 0, 0, RED), (1, 1, 1, BLUE)]

    def test_to_rgba(self):
        """Test RGBA export."""
        grid = VoxelGrid(3, 2, 1)
        grid.set((2, 1, 0), Solid(10, 20, 30))

        rgba = grid.to_rgba()
        assert rgba.shape == (3, 2, 1, 4)
        assert list(rgba[2, 1, 0]) == [10, 20, 30, 255]
        assert list(rgba[0, 0, 0]) == [0, 0, 0, 0]

    def test_from_keys_size_mismatch(self):
        """Test rejection of a wrong-sized key array."""
        with self.assertRaises(ValueError):
            VoxelGrid.from_keys((2, 2, 2), np.zeros(7, dtype=np.int32))


class TestQBReader(unittest.TestCase):
    """Tests for the QB binary reader and writer."""

    def test_two_voxel_fixture(self):
        """Test loading a two-voxel matrix."""
        grid = load(build_qb())

        assert grid.shape == (2, 1, 1)
        assert grid.lookup((0, 0, 0)) == Solid(255, 0, 0)
        assert grid.lookup((1, 0, 0)) == EMPTY

    def test_record_order(self):
        """Records run z outer, y middle, x inner."""
        records = [(i, 0, 0, 255) for i in range(2 * 3 * 4)]
        grid = load(build_qb(size=(2, 3, 4), records=records))

        for z in range(4):
            for y in range(3):
                for x in range(2):
                    assert grid.lookup((x, y, z)) == Solid(x + 2 * y + 6 * z, 0, 0)

    def test_alpha_only_decides_solid(self):
        """Test alpha alone decides occupancy."""
        records = [(10, 20, 30, 1), (10, 20, 30, 0)]
        grid = load(build_qb(records=records))

        assert grid.lookup((0, 0, 0)) == Solid(10, 20, 30)
        assert grid.lookup((1, 0, 0)) == EMPTY

    def test_compressed_rejected(self):
        """Test rejection of compressed files."""
        with self.assertRaises(FormatError):
            load(build_qb(compressed=1))

    def test_matrix_count_rejected(self):
        """Test rejection of matrix counts other than one."""
        with self.assertRaises(FormatError):
            load(build_qb(num_matrices=2))
        with self.assertRaises(FormatError):
            load(build_qb(num_matrices=0))

    def test_zero_size_rejected(self):
        """Test rejection of zero-size matrices."""
        with self.assertRaises(FormatError):
            load(build_qb(size=(0, 1, 1), records=()))

    def test_truncated_input(self):
        """Test every truncation raises TruncatedInputError."""
        data = build_qb()
        for cut in range(len(data)):
            with self.assertRaises(TruncatedInputError):
                load(data[:cut])

    def test_invalid_utf8_name(self):
        """Test rejection of non-UTF-8 matrix names."""
        with self.assertRaises(EncodingError):
            load(build_qb(name=b"\xff\xfe"))

    def test_errors_are_value_errors(self):
        """Test error hierarchy."""
        for cls in (FormatError, TruncatedInputError, EncodingError):
            assert issubclass(cls, QBError)
            assert issubclass(cls, ValueError)

    def test_trailing_bytes_ignored(self):
        """Test trailing bytes are ignored."""
        grid = load(build_qb() + b"\x00" * 7)
        assert grid.lookup((0, 0, 0)) == RED

    def test_parse_header(self):
        """Test header field parsing."""
        header = parse_header(build_qb(version=257, color_format=1, z_axis=0))

        assert header.version == 257
        assert header.color_format == 1
        assert header.z_axis_orientation == ZAxisOrientation.LEFT_HANDED
        assert not header.compressed
        assert not header.visibility_mask_encoded
        assert header.num_matrices == 1

    def test_flags_do_not_change_decoding(self):
        """Test header flags leave decoding unchanged."""
        plain = load(build_qb(z_axis=0, color_format=0))
        flagged = load(build_qb(z_axis=1, color_format=1, visibility_mask=1))
        assert np.array_equal(plain.keys, flagged.keys)

    def test_read_matrix_metadata(self):
        """Test matrix name, size and position."""
        header, matrix, grid = read_matrix(
            build_qb(name="körper".encode("utf-8"), position=(4, 5, 6))
        )

        assert header.z_axis_orientation == ZAxisOrientation.RIGHT_HANDED
        assert matrix.name == "körper"
        assert matrix.size == (2, 1, 1)
        assert matrix.position == (4, 5, 6)
        assert grid.shape == matrix.size

    def test_dumps_round_trip(self):
        """Test writing and reading back a grid."""
        grid = VoxelGrid(3, 2, 2)
        grid.set((0, 0, 0), RED)
        grid.set((2, 1, 1), BLUE)
        grid.set((1, 1, 0), Solid(0, 0, 0))

        header, matrix, loaded = read_matrix(dumps(grid, name="model", position=(1, 2, 3)))

        assert np.array_equal(loaded.keys, grid.keys)
        assert matrix.name == "model"
        assert matrix.position == (1, 2, 3)
        assert header.num_matrices == 1

    def test_dumps_name_too_long(self):
        """Test rejection of long matrix names."""
        with self.assertRaises(ValueError):
            dumps(VoxelGrid(1, 1, 1), name="x" * 256)

    def test_file_round_trip(self):
        """Test saving and loading a file."""
        grid = filled_grid((2, 2, 1), BLUE)
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "model.qb"
            save_file(grid, path)
            loaded = load_file(path)

        assert np.array_equal(loaded.keys, grid.keys)


class TestGreedyMesher(unittest.TestCase):
    """Tests for greedy meshing."""

    def test_face_table(self):
        """Test sweep order and axes."""
        assert [face.normal for face in FACES] == AXIS_NORMALS
        for face in FACES:
            assert face.axis_a == (face.axis + 1) % 3
            assert face.axis_b == (face.axis + 2) % 3
        assert [face.back for face in FACES] == [False] * 3 + [True] * 3

    def test_empty_grid(self):
        """Test meshing empty grids."""
        for size in [(1, 1, 1), (3, 4, 5)]:
            assert mesh_parts(VoxelGrid(*size)) == []

    def test_single_voxel(self):
        """Test meshing a single voxel."""
        grid = VoxelGrid(1, 1, 1)
        grid.set((0, 0, 0), RED)

        parts = mesh_parts(grid)

        assert len(parts) == 6
        assert [part.normal for part in parts] == AXIS_NORMALS
        for part in parts:
            assert part.area == 1
            assert part.color == (255, 0, 0)
            assert np.all(part.uvs == 0)
            assert np.all(part.normals == part.normals[0])

    def test_black_voxel(self):
        """Test a black voxel is meshed like any other color."""
        grid = VoxelGrid(1, 1, 1)
        grid.set((0, 0, 0), Solid(0, 0, 0))

        parts = mesh_parts(grid)

        assert len(parts) == 6
        assert [part.normal for part in parts] == AXIS_NORMALS
        assert all(part.color == (0, 0, 0) for part in parts)
        assert all(part.area == 1 for part in parts)

    def test_single_voxel_positions(self):
        """Test corner order and triangle indices."""
        grid = VoxelGrid(1, 1, 1)
        grid.set((0, 0, 0), RED)

        east = mesh_parts(grid)[0]
        expected = [[1, 0, 0], [1, 0, 1], [1, 1, 0], [1, 1, 1]]
        assert np.array_equal(east.positions, np.array(expected, dtype=np.float32))
        assert list(east.indices) == [2, 3, 1, 1, 0, 2]

        west = mesh_parts(grid)[3]
        expected = [[0, 0, 0], [0, 0, 1], [0, 1, 0], [0, 1, 1]]
        assert np.array_equal(west.positions, np.array(expected, dtype=np.float32))
        assert list(west.indices) == [2, 0, 1, 1, 3, 2]

    def test_voxel_inside_larger_grid(self):
        """Test a voxel away from the origin."""
        grid = VoxelGrid(4, 4, 4)
        grid.set((1, 2, 3), RED)

        parts = mesh_parts(grid)

        assert len(parts) == 6
        top = parts[1]
        assert np.all(top.positions[:, 1] == 3)
        assert top.positions[:, 0].min() == 1
        assert top.positions[:, 2].min() == 3

    def test_triangles_face_outward(self):
        """Test triangle winding matches the normal."""
        grid = VoxelGrid(3, 2, 2)
        grid.set((0, 0, 0), RED)
        grid.set((1, 0, 0), RED)
        grid.set((2, 1, 1), BLUE)

        for part in mesh_parts(grid):
            for t in range(2):
                a, b, c = part.positions[part.indices[3 * t:3 * t + 3]]
                winding = np.cross(b - a, c - a)
                assert np.dot(winding, part.normals[0]) > 0

    def test_shared_face_culled(self):
        """Test culling of faces between equal voxels."""
        grid = filled_grid((2, 1, 1), RED)

        for part in mesh_parts(grid):
            on_seam = np.all(part.positions[:, 0] == 1)
            assert not (on_seam and abs(part.normal[0]) == 1)

    def test_row_merges_long_sides(self):
        """Test merging along a row."""
        for n in (2, 5):
            grid = filled_grid((n, 1, 1), RED)
            parts = mesh_parts(grid)

            assert len(parts) == 6
            x_parts = [p for p in parts if p.normal[0] != 0]
            side_parts = [p for p in parts if p.normal[0] == 0]
            assert sorted(p.area for p in x_parts) == [1, 1]
            assert sorted(p.area for p in side_parts) == [n] * 4

    def test_different_colors_not_merged(self):
        """Test different colors stay separate."""
        grid = VoxelGrid(2, 1, 1)
        grid.set((0, 0, 0), RED)
        grid.set((1, 0, 0), BLUE)

        parts = mesh_parts(grid)

        assert len(parts) == 12
        seam = [p for p in parts if np.all(p.positions[:, 0] == 1)]
        assert sorted((p.normal, p.color) for p in seam) == [
            ((-1.0, 0.0, 0.0), (0, 0, 255)),
            ((1.0, 0.0, 0.0), (255, 0, 0)),
        ]

    def test_cube_with_cavity(self):
        """Test meshing a hollow cube."""
        grid = filled_grid((3, 3, 3), RED)
        grid.set((1, 1, 1), EMPTY)

        parts = mesh_parts(grid)
        areas = sorted(p.area for p in parts)

        assert areas == [1] * 6 + [9] * 6
        inner = [p for p in parts if p.area == 1]
        # cavity faces point into the cavity
        for part in inner:
            center = part.positions.mean(axis=0)
            assert np.dot(np.array([1.5, 1.5, 1.5]) - center, part.normals[0]) > 0

    def test_greedy_rectangle_shape(self):
        """An L-shaped layer merges into a 2x1 and a 1x1 rectangle."""
        grid = VoxelGrid(2, 2, 1)
        grid.set((0, 0, 0), RED)
        grid.set((1, 0, 0), RED)
        grid.set((0, 1, 0), RED)

        top = [p for p in mesh_parts(grid) if p.normal == (0.0, 0.0, 1.0)]

        assert [(p.width, p.height) for p in top] == [(2, 1), (1, 1)]

    def test_deterministic(self):
        """Test repeated meshing gives identical output."""
        grid = VoxelGrid(4, 3, 2)
        rng = np.random.default_rng(7)
        for index in range(len(grid)):
            if rng.random() < 0.6:
                grid.set(grid.position(index), Solid(*[int(c) for c in rng.integers(0, 2, 3)]))

        first = mesh_parts(grid)
        second = mesh_parts(grid)

        assert len(first) == len(second)
        for a, b in zip(first, second):
            assert a.positions.tobytes() == b.positions.tobytes()
            assert a.normals.tobytes() == b.normals.tobytes()
            assert a.indices.tobytes() == b.indices.tobytes()
            assert a.color == b.color

    def test_greedy_reduction(self):
        """Test greedy vs naive part counts."""
        grid = filled_grid((2, 2, 2), RED)

        greedy_parts = GreedyMesher().mesh_parts(grid)
        naive_parts = NaiveMesher().mesh_parts(grid)

        assert len(greedy_parts) == 6
        assert len(naive_parts) == 24
        assert sum(p.area for p in greedy_parts) == sum(p.area for p in naive_parts)

    def test_mesh_data(self):
        """Test merged mesh data."""
        grid = VoxelGrid(1, 1, 1)
        grid.set((0, 0, 0), RED)

        mesh = GreedyMesher().mesh(grid)

        # Single voxel = 6 faces = 24 vertices = 12 triangles
        assert len(mesh.vertices) == 24
        assert len(mesh.indices) == 36
        assert mesh.indices.max() == 23
        assert list(mesh.indices[6:12]) == [6, 7, 5, 5, 4, 6]
        assert np.all(mesh.colors == [255, 0, 0, 255])
        assert mesh.uvs.shape == (24, 2)

    def test_mesh_scale_and_center(self):
        """Test scale and centering."""
        grid = filled_grid((2, 2, 2), RED)

        mesh = GreedyMesher(scale=0.5, center=True).mesh(grid)

        assert np.allclose(mesh.vertices.min(axis=0), -0.5)
        assert np.allclose(mesh.vertices.max(axis=0), 0.5)

    def test_merge_empty(self):
        """Test merging no parts."""
        mesh = merge_parts([])
        assert len(mesh.vertices) == 0
        assert len(mesh.indices) == 0

    def test_compare_stats(self):
        """Test mesh statistics."""
        grid = filled_grid((3, 1, 1), RED)
        stats = compare_mesh_stats(GreedyMesher().mesh(grid), NaiveMesher().mesh(grid))

        assert stats["greedy_triangles"] == 12
        assert stats["naive_triangles"] == 28
        assert stats["vertex_reduction_percent"] > 50


class TestPipeline(unittest.TestCase):
    """Integration tests: bytes to mesh parts."""

    def test_load_and_mesh(self):
        """Test loading bytes and meshing."""
        records = [(0, 255, 0, 255)] * 8
        grid = load(build_qb(size=(2, 2, 2), records=records))

        parts = mesh_parts(grid)

        assert len(parts) == 6
        assert all(p.color == (0, 255, 0) for p in parts)
        assert all(p.area == 4 for p in parts)


if __name__ == "__main__":
    unittest.main(verbosity=2)
