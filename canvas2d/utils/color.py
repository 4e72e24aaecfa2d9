"""Color packing and image conversion helpers.

Provides:
    - pack_rgba8 / unpack_rgba8: 4 × u8 channels ↔ two u16 fields
    - normalize_rgba8: u8 channels → float RGBA in [0, 1] (divide by 255)
    - parse_hex_color: "#rrggbb[aa]" → u8 channels
    - to_uint8_image: float RGBA grid → uint8 image for PNG output
    - luma_to_rgba: replicate a luma grid across four channels

Packing layout (bit-exact with the command buffer):
    field0 = r | (g << 8)
    field1 = b | (a << 8)

Invariants:
    - Channels are straight (not premultiplied) alpha
    - No color-space conversion anywhere; values are stored as given
"""

from typing import Sequence, Tuple

import numpy as np

U8_MAX = 255
U16_MAX = 0xFFFF


def _check_u8(name: str, value: int) -> int:
    value = int(value)
    if not 0 <= value <= U8_MAX:
        raise ValueError(f"{name} must be in [0, {U8_MAX}], got {value}")
    return value


def pack_rgba8(rgba: Sequence[int]) -> Tuple[int, int]:
    """Pack four 8-bit channels into two 16-bit fields.

    Parameters
    ----------
    rgba : sequence of int
        (r, g, b, a), each in [0, 255]

    Returns
    -------
    tuple of int
        (r | g << 8, b | a << 8)

    Raises
    ------
    ValueError
        If there are not exactly four channels or any channel is out of range
    """
    if len(rgba) != 4:
        raise ValueError(f"Expected 4 channels (r, g, b, a), got {len(rgba)}")
    r, g, b, a = (_check_u8(name, v) for name, v in zip("rgba", rgba))
    return r | (g << 8), b | (a << 8)


def unpack_rgba8(packed: Sequence[int]) -> Tuple[int, int, int, int]:
    """Unpack two 16-bit fields into (r, g, b, a) 8-bit channels."""
    lo, hi = int(packed[0]), int(packed[1])
    return lo & 0xFF, (lo >> 8) & 0xFF, hi & 0xFF, (hi >> 8) & 0xFF


def normalize_rgba8(rgba: Sequence[int]) -> Tuple[float, float, float, float]:
    """Convert 8-bit channels to floats by dividing each by 255."""
    return tuple(float(c) / U8_MAX for c in rgba)


def parse_hex_color(text: str) -> Tuple[int, int, int, int]:
    """Parse "#rrggbb" or "#rrggbbaa" into 8-bit channels (alpha defaults to 255).

    Examples
    --------
    >>> parse_hex_color("#ff000080")
    (255, 0, 0, 128)
    """
    s = text.strip().lstrip('#')
    if len(s) not in (6, 8):
        raise ValueError(f"Hex color must have 6 or 8 digits, got '{text}'")
    try:
        channels = [int(s[i:i + 2], 16) for i in range(0, len(s), 2)]
    except ValueError as e:
        raise ValueError(f"Invalid hex color '{text}'") from e
    if len(channels) == 3:
        channels.append(U8_MAX)
    return tuple(channels)


def to_uint8_image(grid: np.ndarray) -> np.ndarray:
    """Convert a float grid in [0, 1] to uint8 with rounding.

    Parameters
    ----------
    grid : np.ndarray
        Float image, shape (H, W) or (H, W, C)

    Returns
    -------
    np.ndarray
        uint8 image, same shape
    """
    return np.round(np.clip(grid, 0.0, 1.0) * U8_MAX).astype(np.uint8)


def luma_to_rgba(luma: np.ndarray) -> np.ndarray:
    """Replicate a (H, W) luma grid into (H, W, 4) RGBA (all channels equal)."""
    luma = np.asarray(luma, dtype=np.float32)
    return np.repeat(luma[..., np.newaxis], 4, axis=-1)
