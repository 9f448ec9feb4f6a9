from __future__ import annotations

import numpy as np

from rawdng.errors import DecodeError


# CSI-2 packing: (pixels per group, bytes per group)
_RAW10_GROUP = (4, 5)
_RAW12_GROUP = (2, 3)


def _gather_groups(
    packed: bytes | bytearray | memoryview | np.ndarray,
    width: int,
    height: int,
    stride: int,
    group: tuple[int, int],
) -> np.ndarray:
    """Return a ``(height, groups, bytes_per_group)`` view of the packed rows.

    The final group of a row is always read in full, even when it holds fewer
    than ``pixels_per_group`` valid samples.
    """

    if width <= 0 or height <= 0:
        raise DecodeError(f"invalid frame size {width}x{height}")
    if stride <= 0:
        raise DecodeError(f"invalid stride {stride}")

    if isinstance(packed, np.ndarray):
        buf = np.asarray(packed, dtype=np.uint8).reshape(-1)
    else:
        buf = np.frombuffer(packed, dtype=np.uint8)
    pixels_per_group, bytes_per_group = group
    groups = -(-width // pixels_per_group)
    row_bytes = groups * bytes_per_group

    last_byte = (height - 1) * stride + row_bytes
    if last_byte > buf.size:
        raise DecodeError(
            f"packed buffer too small: need {last_byte} bytes for {width}x{height} "
            f"(stride {stride}), got {buf.size}"
        )

    # Rows are viewed in place; only the per-sample columns are widened.
    buf = np.ascontiguousarray(buf)
    rows = np.lib.stride_tricks.as_strided(
        buf, shape=(height, row_bytes), strides=(stride, 1), writeable=False
    )
    return rows.reshape(height, groups, bytes_per_group)


def _trim_rows(out: np.ndarray, width: int) -> np.ndarray:
    if out.shape[1] == width:
        return out.reshape(-1)
    return np.ascontiguousarray(out[:, :width]).reshape(-1)


def unpack_raw10(
    packed: bytes | bytearray | memoryview | np.ndarray,
    width: int,
    height: int,
    stride: int,
) -> np.ndarray:
    """Expand 10-bit packed Bayer rows into a flat ``uint16`` array.

    Every 4 pixels occupy 5 bytes: the high 8 bits of each pixel, then one
    byte carrying the two low bits of pixels 0..3 in bits [1:0], [3:2],
    [5:4] and [7:6].
    """

    g = _gather_groups(packed, width, height, stride, _RAW10_GROUP)
    low = g[..., 4]
    out = np.empty((height, g.shape[1] * 4), dtype=np.uint16)
    for i in range(4):
        out[:, i::4] = (g[..., i].astype(np.uint16) << 2) | ((low >> (2 * i)) & 0x03)
    return _trim_rows(out, width)


def unpack_raw12(
    packed: bytes | bytearray | memoryview | np.ndarray,
    width: int,
    height: int,
    stride: int,
) -> np.ndarray:
    """Expand 12-bit packed Bayer rows (2 pixels in 3 bytes) into ``uint16``."""

    g = _gather_groups(packed, width, height, stride, _RAW12_GROUP)
    low = g[..., 2]
    out = np.empty((height, g.shape[1] * 2), dtype=np.uint16)
    out[:, 0::2] = (g[..., 0].astype(np.uint16) << 4) | (low & 0x0F)
    out[:, 1::2] = (g[..., 1].astype(np.uint16) << 4) | ((low >> 4) & 0x0F)
    return _trim_rows(out, width)


def unpack_packed(
    packed: bytes | bytearray | memoryview | np.ndarray,
    width: int,
    height: int,
    stride: int,
    bit_depth: int,
) -> np.ndarray:
    if bit_depth == 10:
        return unpack_raw10(packed, width, height, stride)
    if bit_depth == 12:
        return unpack_raw12(packed, width, height, stride)
    raise DecodeError(f"unsupported packed bit depth: {bit_depth}")
