"""
Qubicle Binary (.qb) Format Reader and Writer

QB is a flat little-endian binary format with no chunking or padding.
Only the uncompressed single-matrix subset is supported.

File Structure:
- Header: six uint32 fields
  version, color format, z-axis orientation, compressed,
  visibility-mask encoded, matrix count
- Matrix:
  - name length (uint8) + name bytes (UTF-8)
  - size x, y, z (uint32)
  - position x, y, z (uint32)
  - x*y*z RGBA records, z outer, y middle, x inner

A record with alpha > 0 is a solid voxel, alpha == 0 is empty. The color
format, z-axis and visibility-mask flags are read but never change how the
records are decoded.
"""

from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import Tuple, Union
import struct
import numpy as np

from .color import keys_to_rgba, rgba_to_keys
from .grid import VoxelGrid


# QB format constants
QB_VERSION = 257  # 1.1.0.0
HEADER_FORMAT = '<6I'
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
MATRIX_FORMAT = '<6I'
MATRIX_SIZE = struct.calcsize(MATRIX_FORMAT)
RECORD_SIZE = 4


class QBError(ValueError):
    """Base class for QB decoding errors."""


class FormatError(QBError):
    """The file uses a feature this reader does not support."""


class TruncatedInputError(QBError):
    """A field extends past the end of the input."""


class EncodingError(QBError):
    """The matrix name is not valid UTF-8."""


class ZAxisOrientation(IntEnum):
    """Handedness flag from the header (informational only)."""
    LEFT_HANDED = 0
    RIGHT_HANDED = 1


@dataclass(frozen=True)
class QBHeader:
    """Decoded QB file header."""

    version: int
    color_format: int
    z_axis_orientation: ZAxisOrientation
    compressed: bool
    visibility_mask_encoded: bool
    num_matrices: int


@dataclass(frozen=True)
class QBMatrix:
    """Matrix metadata (the voxels themselves go into a VoxelGrid)."""

    name: str
    size: Tuple[int, int, int]
    position: Tuple[int, int, int]


class _Reader:
    """Sequential reader over a byte buffer."""

    def __init__(self, data: bytes):
        self._data = memoryview(data)
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self._data) - self.offset

    def read(self, n: int, what: str) -> memoryview:
        """Read n raw bytes."""
        if n > self.remaining:
            raise TruncatedInputError(
                f"Truncated {what}: need {n} bytes at offset {self.offset}, "
                f"{self.remaining} left"
            )
        chunk = self._data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def unpack(self, fmt: str, what: str) -> tuple:
        """Read and unpack a struct format."""
        return struct.unpack(fmt, self.read(struct.calcsize(fmt), what))


def _read_header(reader: _Reader) -> QBHeader:
    (
        version, color_format, z_axis, compressed, visibility_mask, num_matrices
    ) = reader.unpack(HEADER_FORMAT, "header")

    return QBHeader(
        version=version,
        color_format=color_format,
        z_axis_orientation=(
            ZAxisOrientation.RIGHT_HANDED if z_axis > 0 else ZAxisOrientation.LEFT_HANDED
        ),
        compressed=compressed != 0,
        visibility_mask_encoded=visibility_mask != 0,
        num_matrices=num_matrices,
    )


def parse_header(data: bytes) -> QBHeader:
    """
    Decode the header of a QB file without reading any matrix.

    Args:
        data: File contents (at least the 24 header bytes)

    Returns:
        QBHeader
    """
    return _read_header(_Reader(data))


def read_matrix(data: bytes) -> Tuple[QBHeader, QBMatrix, VoxelGrid]:
    """
    Decode a single-matrix QB file.

    Args:
        data: File contents

    Returns:
        Tuple of (header, matrix metadata, populated grid)

    Raises:
        FormatError: compressed data, matrix count other than 1, or a zero dimension
        TruncatedInputError: input ends before a declared field
        EncodingError: matrix name is not valid UTF-8
    """
    reader = _Reader(data)
    header = _read_header(reader)

    if header.compressed:
        raise FormatError("compression unsupported")
    if header.num_matrices != 1:
        raise FormatError(
            f"only one matrix supported (file declares {header.num_matrices})"
        )

    (name_len,) = reader.unpack('<B', "matrix name length")
    name_bytes = reader.read(name_len, "matrix name")
    try:
        name = bytes(name_bytes).decode('utf-8')
    except UnicodeDecodeError as e:
        raise EncodingError(f"Matrix name is not valid UTF-8: {e}") from e

    size_x, size_y, size_z, pos_x, pos_y, pos_z = reader.unpack(
        MATRIX_FORMAT, "matrix size/position"
    )
    if size_x == 0 or size_y == 0 or size_z == 0:
        raise FormatError(f"Matrix {name!r} has zero size ({size_x}, {size_y}, {size_z})")

    num_voxels = size_x * size_y * size_z
    payload = reader.read(num_voxels * RECORD_SIZE, "voxel data")

    # record order (z, y, x) is the grid's linear-index order
    rgba = np.frombuffer(payload, dtype=np.uint8).reshape(num_voxels, RECORD_SIZE)
    grid = VoxelGrid.from_keys((size_x, size_y, size_z), rgba_to_keys(rgba))

    matrix = QBMatrix(
        name=name,
        size=(size_x, size_y, size_z),
        position=(pos_x, pos_y, pos_z),
    )
    return header, matrix, grid


def load(data: bytes) -> VoxelGrid:
    """
    Decode a QB file into a voxel grid.

    Args:
        data: File contents

    Returns:
        Fully populated VoxelGrid
    """
    _, _, grid = read_matrix(data)
    return grid


def load_file(file_path: Union[str, Path]) -> VoxelGrid:
    """Read and decode a .qb file."""
    return load(Path(file_path).read_bytes())


def dumps(
    grid: VoxelGrid,
    name: str = "matrix",
    position: Tuple[int, int, int] = (0, 0, 0)
) -> bytes:
    """
    Encode a grid as an uncompressed single-matrix QB file.

    Args:
        grid: Grid to encode
        name: Matrix name (at most 255 UTF-8 bytes)
        position: Matrix position written to the file

    Returns:
        File contents
    """
    name_bytes = name.encode('utf-8')
    if len(name_bytes) > 255:
        raise ValueError(f"Matrix name too long: {len(name_bytes)} bytes (max 255)")

    parts = [
        struct.pack(HEADER_FORMAT, QB_VERSION, 0, ZAxisOrientation.RIGHT_HANDED, 0, 0, 1),
        struct.pack('<B', len(name_bytes)),
        name_bytes,
        struct.pack(MATRIX_FORMAT, *grid.shape, *position),
        keys_to_rgba(grid.keys).tobytes(),
    ]
    return b''.join(parts)


def save_file(
    grid: VoxelGrid,
    file_path: Union[str, Path],
    name: str = "matrix",
    position: Tuple[int, int, int] = (0, 0, 0)
):
    """Encode a grid and write it to a .qb file."""
    Path(file_path).write_bytes(dumps(grid, name, position))
