"""
Copy-move detection functions
"""

import time
from collections import Counter
import numpy as np
from scipy import ndimage
from block_features import FEATURE_DTYPE, count_blocks, extract_block_features
from color_transform import rgb_to_ycbcr
from config import (BLOCK_SIZE, DCT_NORMALIZATION, DCT_NORMALIZATIONS, MAGNITUDE_THRESHOLD,
                    NEIGHBOR_SCOPE, NEIGHBOR_SCOPES, NEIGHBOR_THRESHOLD, SYMMETRY_THRESHOLD,
                    TOP_SHIFT_VECTORS)
from utils import image_to_rgb_array, safe_divide

MATCH_DTYPE = np.dtype([
    ('xa', np.int32), ('ya', np.int32),
    ('xb', np.int32), ('yb', np.int32),
    ('offset_x', np.int32), ('offset_y', np.int32),
])


def match_features(features, magnitude_threshold=MAGNITUDE_THRESHOLD):
    """
    Pair lexicographically adjacent features as match candidates.

    Features are sorted by value and every adjacent pair is compared on the
    spatial distance between their tiles; pairs closer than
    magnitude_threshold become MatchVectors. A pair from the same tile
    (distance 0) is kept here and dropped by the neighbor filter.
    """
    features = np.asarray(features, dtype=FEATURE_DTYPE)
    if len(features) < 2:
        return np.empty(0, dtype=MATCH_DTYPE)

    ordered = features[np.argsort(features['value'], kind='stable')]
    block_a, block_b = ordered[:-1], ordered[1:]
    dx = block_a['x'].astype(np.int64) - block_b['x']
    dy = block_a['y'].astype(np.int64) - block_b['y']
    keep = np.hypot(dx, dy) < magnitude_threshold

    matches = np.empty(int(np.count_nonzero(keep)), dtype=MATCH_DTYPE)
    matches['xa'] = block_a['x'][keep]
    matches['ya'] = block_a['y'][keep]
    matches['xb'] = block_b['x'][keep]
    matches['yb'] = block_b['y'][keep]
    matches['offset_x'] = np.abs(dx[keep])
    matches['offset_y'] = np.abs(dy[keep])
    return matches


def accumulate_shift_vectors(matches, symmetry_threshold=SYMMETRY_THRESHOLD):
    """
    Tally shift vectors and collect the matches whose vector recurs too often.

    A match is suspicious once the count of its (offset_x, offset_y) key,
    including the match itself, exceeds symmetry_threshold.
    Returns (suspicious_blocks, shift_counts).
    """
    shift_counts = Counter()
    suspicious_idx = []
    keys = zip(matches['offset_x'].tolist(), matches['offset_y'].tolist())
    for i, key in enumerate(keys):
        shift_counts[key] += 1
        if shift_counts[key] > symmetry_threshold:
            suspicious_idx.append(i)
    return matches[np.asarray(suspicious_idx, dtype=np.intp)], shift_counts


def _is_separate_region(xa, ya, xb, yb, neighbor_threshold):
    # co-linear blocks count as neighbors
    dx = xa - xb
    dy = ya - yb
    return (dx != 0) & (dy != 0) & (np.hypot(dx, dy) > neighbor_threshold)


def _match_to_region(match):
    offset = (int(match['offset_x']), int(match['offset_y']))
    return {
        'block1': (int(match['xa']), int(match['ya'])),
        'block2': (int(match['xb']), int(match['yb'])),
        'offset': offset,
        'distance': float(np.hypot(*offset)),
    }


def filter_neighbor_blocks(suspicious_blocks, neighbor_threshold=NEIGHBOR_THRESHOLD,
                           neighbor_scope=NEIGHBOR_SCOPE):
    """
    Drop suspicious blocks that sit next to each other.

    With neighbor_scope='adjacent' each block is compared with its successor
    in sequence order only; 'all-pairs' compares it with every other
    suspicious block. Self-matches (both features from the same tile) never
    become regions. Returns (forged_regions, is_forged).
    """
    if neighbor_scope not in NEIGHBOR_SCOPES:
        raise ValueError(f"Unknown neighbor scope: {neighbor_scope}")
    self_match = ((suspicious_blocks['xa'] == suspicious_blocks['xb']) &
                  (suspicious_blocks['ya'] == suspicious_blocks['yb']))
    suspicious_blocks = suspicious_blocks[~self_match]
    if len(suspicious_blocks) < 2:
        return [], False

    xa = suspicious_blocks['xa'].astype(np.int64)
    ya = suspicious_blocks['ya'].astype(np.int64)

    if neighbor_scope == 'adjacent':
        keep = _is_separate_region(xa[:-1], ya[:-1], xa[1:], ya[1:], neighbor_threshold)
        forged_idx = np.nonzero(keep)[0]
    else:
        forged_idx = [i for i in range(len(suspicious_blocks))
                      if np.any(_is_separate_region(xa[i], ya[i], xa, ya, neighbor_threshold))]

    forged_regions = [_match_to_region(suspicious_blocks[i]) for i in forged_idx]
    return forged_regions, len(forged_regions) > 0


def build_forgery_mask(image_shape, forged_regions, block_size=BLOCK_SIZE):
    """Boolean (H, W) mask covering both tiles of every forged region"""
    h, w = image_shape[:2]
    mask = np.zeros((h, w), dtype=bool)
    for region in forged_regions:
        for x, y in (region['block1'], region['block2']):
            mask[y:y + block_size, x:x + block_size] = True
    return mask


def summarize_forged_areas(image_shape, forged_regions, block_size=BLOCK_SIZE):
    """Connected forged areas and the share of the image they cover"""
    mask = build_forgery_mask(image_shape, forged_regions, block_size)
    _, area_count = ndimage.label(mask)
    return {
        'forged_area_count': int(area_count),
        'forged_percentage': float(safe_divide(np.count_nonzero(mask), mask.size) * 100),
    }


def _validate_parameters(block_size, magnitude_threshold, symmetry_threshold,
                         neighbor_threshold, neighbor_scope, dct_normalization):
    if int(block_size) != block_size or block_size < 1:
        raise ValueError(f"block_size must be a positive integer, got {block_size}")
    for name, value in (('magnitude_threshold', magnitude_threshold),
                        ('symmetry_threshold', symmetry_threshold),
                        ('neighbor_threshold', neighbor_threshold)):
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")
    if neighbor_scope not in NEIGHBOR_SCOPES:
        raise ValueError(f"Unknown neighbor scope: {neighbor_scope}")
    if dct_normalization not in DCT_NORMALIZATIONS:
        raise ValueError(f"Unknown DCT normalization: {dct_normalization}")


def detect_copy_move_dct(image, block_size=BLOCK_SIZE, magnitude_threshold=MAGNITUDE_THRESHOLD,
                         symmetry_threshold=SYMMETRY_THRESHOLD, neighbor_threshold=NEIGHBOR_THRESHOLD,
                         neighbor_scope=NEIGHBOR_SCOPE, dct_normalization=DCT_NORMALIZATION):
    """Block-DCT copy-move detection on a PIL image or (H, W, 3) RGB array"""
    _validate_parameters(block_size, magnitude_threshold, symmetry_threshold,
                         neighbor_threshold, neighbor_scope, dct_normalization)
    block_size = int(block_size)
    start_time = time.time()

    rgb = image_to_rgb_array(image)
    h, w = rgb.shape[:2]
    print(f"  - Block-DCT copy-move detection on {w}x{h} image (block size {block_size})...")

    ycbcr = rgb_to_ycbcr(rgb)
    tile_count = count_blocks(w, h, block_size)
    if tile_count == 0:
        print(f"  Warning: Image smaller than block size {block_size}, no blocks to analyze.")

    features = extract_block_features(ycbcr, block_size, dct_normalization)
    print(f"  - Extracted {len(features)} features from {tile_count} blocks")

    matches = match_features(features, magnitude_threshold)
    suspicious_blocks, shift_counts = accumulate_shift_vectors(matches, symmetry_threshold)
    print(f"  - {len(matches)} candidate matches, {len(suspicious_blocks)} suspicious blocks")

    forged_regions, is_forged = filter_neighbor_blocks(suspicious_blocks, neighbor_threshold,
                                                       neighbor_scope)
    print(f"  - Found {len(forged_regions)} forged regions after neighbor filtering.")

    results = {
        'forged_regions': forged_regions,
        'is_forged': is_forged,
        'tile_count': int(tile_count),
        'feature_count': int(len(features)),
        'match_count': int(len(matches)),
        'suspicious_count': int(len(suspicious_blocks)),
        'top_shift_vectors': [{'offset': offset, 'count': count}
                              for offset, count in shift_counts.most_common(TOP_SHIFT_VECTORS)],
        'image_size': (w, h),
        'parameters': {
            'block_size': block_size,
            'magnitude_threshold': magnitude_threshold,
            'symmetry_threshold': symmetry_threshold,
            'neighbor_threshold': neighbor_threshold,
            'neighbor_scope': neighbor_scope,
            'dct_normalization': dct_normalization,
        },
    }
    results.update(summarize_forged_areas(rgb.shape, forged_regions, block_size))
    results['processing_time'] = f"{time.time() - start_time:.2f}s"
    return results
