"""
Block decomposition and DCT feature extraction
"""

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view
from scipy.fft import dctn
from color_transform import ycbcr_to_rgb
from config import BLOCK_SIZE, DCT_NORMALIZATION, DCT_NORMALIZATIONS, FEATURE_CHUNK_COLUMNS

FEATURE_DTYPE = np.dtype([('x', np.int32), ('y', np.int32), ('kind', np.uint8), ('value', np.float64)])

# Emission order of the per-tile features; 'kind' indexes into this tuple
FEATURE_NAMES = (
    'luma_dc', 'luma_dct_01', 'luma_dct_10',
    'red_dc', 'green_dc', 'blue_dc',
    'red_mean', 'green_mean', 'blue_mean',
)
FEATURES_PER_BLOCK = len(FEATURE_NAMES)


def _check_block_size(block_size):
    if int(block_size) != block_size or block_size < 1:
        raise ValueError(f"block_size must be a positive integer, got {block_size}")
    return int(block_size)


def count_blocks(width, height, block_size=BLOCK_SIZE):
    """Number of overlapping tiles (step 1) in a width x height image"""
    block_size = _check_block_size(block_size)
    return max(width - block_size + 1, 0) * max(height - block_size + 1, 0)


def block_coordinates(width, height, block_size=BLOCK_SIZE):
    """Top-left (x, y) of every tile, x-major (x outer, y inner)"""
    block_size = _check_block_size(block_size)
    nx = max(width - block_size + 1, 0)
    ny = max(height - block_size + 1, 0)
    xs, ys = np.meshgrid(np.arange(nx), np.arange(ny), indexing='ij')
    return xs.ravel(), ys.ravel()


def decompose_blocks(channel, block_size=BLOCK_SIZE):
    """
    Slice a single (H, W) channel into overlapping block_size x block_size tiles.

    Returns a read-only view indexed [x, y, row, col]. An image smaller than the
    block size yields an empty tile set rather than an error.
    """
    block_size = _check_block_size(block_size)
    channel = np.asarray(channel)
    h, w = channel.shape
    if h < block_size or w < block_size:
        return np.empty((max(w - block_size + 1, 0), max(h - block_size + 1, 0),
                         block_size, block_size), dtype=channel.dtype)
    # sliding_window_view gives [y, x, row, col]
    return sliding_window_view(channel, (block_size, block_size)).transpose(1, 0, 2, 3)


def dct_basis(u, v, block_size=BLOCK_SIZE):
    """DCT-II basis for frequency (u, v) as a [row, col] grid"""
    coords = np.arange(block_size)
    cos_x = np.cos((2 * coords + 1) * u * np.pi / (2 * block_size))
    cos_y = np.cos((2 * coords + 1) * v * np.pi / (2 * block_size))
    return np.outer(cos_y, cos_x)


def dct_scale(u, v, width, height, block_size=BLOCK_SIZE, normalization=DCT_NORMALIZATION):
    """alpha(u) * alpha(v) normalization applied to a raw coefficient"""
    if normalization not in DCT_NORMALIZATIONS:
        raise ValueError(f"Unknown DCT normalization: {normalization}")
    if normalization == 'image':
        n_u, n_v = width, height
    else:
        n_u = n_v = block_size

    def alpha(k, n):
        return np.sqrt(1.0 / n) if k == 0 else np.sqrt(2.0 / n)

    return alpha(u, n_u) * alpha(v, n_v)


def block_dct(tiles):
    """
    Unscaled DCT-II coefficients of every tile in a [..., row, col] stack.

    Indexed [..., v, u]. scipy's unnormalized type-2 transform carries a factor
    of 2 per axis, which is removed so coefficient (u, v) equals the plain sum
    of basis * sample over the tile.
    """
    return dctn(np.asarray(tiles, dtype=np.float64), type=2, axes=(-2, -1)) / 4.0


def raw_dct_coefficient(tiles, u, v):
    """Unscaled DCT-II coefficient (u, v) for every tile in a [..., row, col] stack"""
    return block_dct(tiles)[..., v, u]


def extract_block_features(ycbcr, block_size=BLOCK_SIZE, dct_normalization=DCT_NORMALIZATION,
                           chunk_columns=FEATURE_CHUNK_COLUMNS):
    """
    Compute the 9 scalar features of every overlapping tile.

    Returns a FEATURE_DTYPE array, tile-major (9 consecutive records per tile)
    with tiles in x-major order.
    """
    block_size = _check_block_size(block_size)
    ycbcr = np.asarray(ycbcr, dtype=np.float64)
    h, w = ycbcr.shape[:2]
    nx = max(w - block_size + 1, 0)
    ny = max(h - block_size + 1, 0)
    features = np.empty(nx * ny * FEATURES_PER_BLOCK, dtype=FEATURE_DTYPE)
    if len(features) == 0:
        return features

    scale_00 = dct_scale(0, 0, w, h, block_size, dct_normalization)
    scale_01 = dct_scale(0, 1, w, h, block_size, dct_normalization)
    scale_10 = dct_scale(1, 0, w, h, block_size, dct_normalization)
    area = float(block_size * block_size)

    luma = ycbcr[..., 0]
    rgb = ycbcr_to_rgb(ycbcr, clip=True)
    values = np.empty((nx, ny, FEATURES_PER_BLOCK), dtype=np.float64)

    step = max(int(chunk_columns), 1)
    for x0 in range(0, nx, step):
        x1 = min(x0 + step, nx)
        cols = slice(x0, x1 + block_size - 1)
        coeffs = block_dct(decompose_blocks(luma[:, cols], block_size))
        values[x0:x1, :, 0] = coeffs[..., 0, 0] * scale_00
        values[x0:x1, :, 1] = coeffs[..., 1, 0] * scale_01
        values[x0:x1, :, 2] = coeffs[..., 0, 1] * scale_10
        for c in range(3):
            dc = block_dct(decompose_blocks(rgb[:, cols, c], block_size))[..., 0, 0]
            values[x0:x1, :, 3 + c] = dc * scale_00
            values[x0:x1, :, 6 + c] = dc / area

    xs, ys = block_coordinates(w, h, block_size)
    features['x'] = np.repeat(xs, FEATURES_PER_BLOCK)
    features['y'] = np.repeat(ys, FEATURES_PER_BLOCK)
    features['kind'] = np.tile(np.arange(FEATURES_PER_BLOCK), nx * ny)
    features['value'] = values.ravel()
    return features
