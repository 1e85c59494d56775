"""
Color space conversion between RGB and full-range YCbCr
"""

import numpy as np


def _split_channels(arr, name):
    arr = np.asarray(arr, dtype=np.float64)
    if arr.ndim != 3 or arr.shape[2] != 3:
        raise ValueError(f"Expected an (H, W, 3) {name} array, got shape {arr.shape}")
    return arr[..., 0], arr[..., 1], arr[..., 2]


def rgb_to_ycbcr(rgb):
    """Convert an (H, W, 3) RGB array to float64 YCbCr (JFIF full range).

    Each pixel is converted on its own with elementwise arithmetic, so equal
    RGB triples always give bit-identical YCbCr triples wherever they sit in
    the image.
    """
    r, g, b = _split_channels(rgb, 'RGB')
    y = 0.299 * r + 0.587 * g + 0.114 * b
    cb = 128.0 - 0.168736 * r - 0.331264 * g + 0.5 * b
    cr = 128.0 + 0.5 * r - 0.418688 * g - 0.081312 * b
    return np.stack([y, cb, cr], axis=-1)


def ycbcr_to_rgb(ycbcr, clip=False):
    """Invert rgb_to_ycbcr. Values are left unclamped unless clip is set."""
    y, cb, cr = _split_channels(ycbcr, 'YCbCr')
    cb = cb - 128.0
    cr = cr - 128.0
    rgb = np.stack([
        y + 1.402 * cr,
        y - 0.344136 * cb - 0.714136 * cr,
        y + 1.772 * cb,
    ], axis=-1)
    if clip:
        rgb = np.clip(rgb, 0, 255)
    return rgb


def to_uint8(arr):
    """Round and clamp a float array for 8-bit encoding"""
    return np.clip(np.rint(arr), 0, 255).astype(np.uint8)
