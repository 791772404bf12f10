"""
Color Keys and Color Space Conversion

Handles:
- Packing RGB colors into integer keys for the dense grid and mesher mask
- sRGB to Linear conversion (for glTF vertex colors)

Key layout: r << 16 | g << 8 | b. Empty cells use EMPTY_KEY (-1), which
is also the "no face" value of the mesher mask.
"""

from typing import Tuple
import numpy as np
from numba import njit, prange

from .voxel import EMPTY, Empty, Solid, Voxel


EMPTY_KEY = -1


def pack_rgb(r: int, g: int, b: int) -> int:
    """Pack an RGB triple into a color key."""
    return (int(r) << 16) | (int(g) << 8) | int(b)


def unpack_rgb(key: int) -> Tuple[int, int, int]:
    """Unpack a color key into an (r, g, b) triple."""
    key = int(key)
    return ((key >> 16) & 0xFF, (key >> 8) & 0xFF, key & 0xFF)


def voxel_to_key(voxel: Voxel) -> int:
    """Convert a Voxel to its grid key."""
    if isinstance(voxel, Solid):
        return pack_rgb(voxel.r, voxel.g, voxel.b)
    if isinstance(voxel, Empty):
        return EMPTY_KEY
    raise TypeError(f"Expected Empty or Solid, got {voxel!r}")


def key_to_voxel(key: int) -> Voxel:
    """Convert a grid key back to a Voxel."""
    if key == EMPTY_KEY:
        return EMPTY
    return Solid(*unpack_rgb(key))


def rgba_to_keys(rgba: np.ndarray) -> np.ndarray:
    """
    Convert RGBA records to color keys.

    Args:
        rgba: Array of shape (N, 4) with uint8 values

    Returns:
        int32 array of shape (N,); alpha 0 maps to EMPTY_KEY
    """
    rgb = rgba[:, :3].astype(np.int32)
    keys = (rgb[:, 0] << 16) | (rgb[:, 1] << 8) | rgb[:, 2]
    return np.where(rgba[:, 3] > 0, keys, EMPTY_KEY).astype(np.int32)


def keys_to_rgba(keys: np.ndarray) -> np.ndarray:
    """
    Convert color keys to RGBA records.

    Solid cells get alpha 255, empty cells are all zero.
    """
    keys = np.asarray(keys, dtype=np.int32)
    solid = keys != EMPTY_KEY
    rgba = np.zeros((len(keys), 4), dtype=np.uint8)
    rgba[:, 0] = np.where(solid, (keys >> 16) & 0xFF, 0)
    rgba[:, 1] = np.where(solid, (keys >> 8) & 0xFF, 0)
    rgba[:, 2] = np.where(solid, keys & 0xFF, 0)
    rgba[:, 3] = np.where(solid, 255, 0)
    return rgba


@njit(cache=True)
def _srgb_to_linear_component(c: float) -> float:
    """
    Convert a single sRGB component to Linear.

    The sRGB standard uses a piecewise function:
    - Linear below threshold (0.04045)
    - Gamma curve above threshold
    """
    if c <= 0.04045:
        return c / 12.92
    else:
        return ((c + 0.055) / 1.055) ** 2.4


@njit(cache=True, parallel=True)
def srgb_to_linear(colors: np.ndarray) -> np.ndarray:
    """
    Convert sRGB colors to Linear color space.

    Args:
        colors: Array of shape (N, 3) or (N, 4) with uint8 sRGB values

    Returns:
        Array of same shape with float32 Linear values [0, 1]
    """
    n = colors.shape[0]
    channels = colors.shape[1]
    result = np.empty((n, channels), dtype=np.float32)

    for i in prange(n):
        for c in range(min(channels, 3)):  # alpha is not gamma encoded
            normalized = colors[i, c] / 255.0
            result[i, c] = _srgb_to_linear_component(normalized)

        if channels == 4:
            result[i, 3] = colors[i, 3] / 255.0

    return result
