# --- START OF FILE test_app.py ---

import json
import os
import numpy as np
import pytest
from PIL import Image

from color_transform import rgb_to_ycbcr, ycbcr_to_rgb, to_uint8
from block_features import (FEATURE_DTYPE, FEATURES_PER_BLOCK, FEATURE_NAMES, block_coordinates,
                            block_dct, count_blocks, decompose_blocks, dct_basis, dct_scale,
                            extract_block_features, raw_dct_coefficient)
from copy_move_detection import (MATCH_DTYPE, accumulate_shift_vectors, build_forgery_mask,
                                 detect_copy_move_dct, filter_neighbor_blocks, match_features,
                                 summarize_forged_areas)
from validation import validate_image_file, load_image_rgb
from visualization import reassemble_blocks, draw_forged_regions
from export_utils import (export_results_json, export_complete_package, export_visualization_png,
                          results_to_serializable)
from main import analyze_image, main

PASTE_OFFSET = (70, 70)


def create_copy_move_array(seed=7):
    """Noise image with its 40x40 top-left corner pasted 70 px down and right."""
    rng = np.random.default_rng(seed)
    base_arr = rng.integers(0, 256, (120, 120, 3), dtype=np.uint8)
    base_arr[70:110, 70:110] = base_arr[0:40, 0:40]
    return base_arr


def create_single_tile_copy_array(seed=3):
    """Noise image where the tile at (3, 2) is copied to (15, 16)."""
    rng = np.random.default_rng(seed)
    base_arr = rng.integers(0, 256, (24, 24, 3), dtype=np.uint8)
    base_arr[16:20, 15:19] = base_arr[2:6, 3:7]
    return base_arr


def feature_index(features, x, y, kind):
    return int(np.nonzero((features['x'] == x) & (features['y'] == y) & (features['kind'] == kind))[0][0])


# ---- Color transform ----
def test_color_transform_round_trip():
    rng = np.random.default_rng(0)
    rgb = rng.integers(0, 256, (50, 40, 3), dtype=np.uint8)
    restored = to_uint8(ycbcr_to_rgb(rgb_to_ycbcr(rgb)))
    assert np.max(np.abs(restored.astype(int) - rgb.astype(int))) <= 1


def test_color_transform_is_per_pixel():
    triple = np.array([[[10, 200, 30]]], dtype=np.uint8)
    tiled = np.tile(triple, (5, 7, 1))
    first = rgb_to_ycbcr(triple)
    converted = rgb_to_ycbcr(tiled)
    assert np.array_equal(converted, np.broadcast_to(first, converted.shape))

    gray = rgb_to_ycbcr(np.full((1, 1, 3), 255, dtype=np.uint8))[0, 0]
    assert gray[0] == pytest.approx(255.0)
    assert gray[1] == pytest.approx(128.0)
    assert gray[2] == pytest.approx(128.0)

    with pytest.raises(ValueError):
        rgb_to_ycbcr(np.zeros((4, 4)))


# ---- Block decomposer ----
def test_decompose_blocks_layout():
    channel = np.arange(30).reshape(5, 6)  # H=5, W=6
    tiles = decompose_blocks(channel, 4)
    assert tiles.shape == (3, 2, 4, 4)
    assert np.array_equal(tiles[2, 1], channel[1:5, 2:6])
    assert count_blocks(6, 5, 4) == 6

    xs, ys = block_coordinates(6, 5, 4)
    assert xs.tolist() == [0, 0, 1, 1, 2, 2]
    assert ys.tolist() == [0, 1, 0, 1, 0, 1]


def test_decompose_blocks_smaller_than_block():
    assert decompose_blocks(np.zeros((3, 10)), 4).size == 0
    assert decompose_blocks(np.zeros((10, 2)), 4).size == 0
    assert count_blocks(3, 3, 4) == 0
    with pytest.raises(ValueError):
        decompose_blocks(np.zeros((8, 8)), 0)


# ---- Feature extractor ----
def test_dct_basis_matches_formula():
    basis = dct_basis(1, 2, 4)
    x, y = 3, 1
    expected = np.cos((2 * x + 1) * 1 * np.pi / 8) * np.cos((2 * y + 1) * 2 * np.pi / 8)
    assert basis[y, x] == pytest.approx(expected)

    rng = np.random.default_rng(1)
    tile = rng.uniform(0, 255, (4, 4))
    assert raw_dct_coefficient(tile[None], 1, 2)[0] == pytest.approx(np.sum(basis * tile))


def test_block_dct_equals_basis_sums():
    rng = np.random.default_rng(5)
    tiles = rng.uniform(0, 255, (3, 2, 4, 4))
    coeffs = block_dct(tiles)
    assert coeffs.shape == tiles.shape
    for u in range(4):
        for v in range(4):
            expected = np.sum(dct_basis(u, v, 4) * tiles, axis=(-2, -1))
            assert np.allclose(coeffs[..., v, u], expected)


def test_dct_scale_normalizations():
    assert dct_scale(0, 0, 16, 9) == pytest.approx(1 / 12)
    assert dct_scale(1, 0, 16, 9) == pytest.approx(np.sqrt(2 / 16) * np.sqrt(1 / 9))
    assert dct_scale(0, 1, 16, 9) == pytest.approx(np.sqrt(1 / 16) * np.sqrt(2 / 9))
    assert dct_scale(0, 0, 16, 9, block_size=4, normalization='block') == pytest.approx(0.25)
    with pytest.raises(ValueError):
        dct_scale(0, 0, 16, 9, normalization='global')


def test_flat_tile_dc_equals_scaled_value():
    ycbcr = rgb_to_ycbcr(np.full((8, 8, 3), 90, dtype=np.uint8))
    features = extract_block_features(ycbcr, 4)
    luma_dc = features['value'][features['kind'] == FEATURE_NAMES.index('luma_dc')]
    luma_ac = features['value'][features['kind'] == FEATURE_NAMES.index('luma_dct_01')]
    red_mean = features['value'][features['kind'] == FEATURE_NAMES.index('red_mean')]

    expected = 90.0 * 4 * 4 * dct_scale(0, 0, 8, 8, 4)
    assert np.allclose(luma_dc, expected)
    assert np.allclose(luma_ac, 0.0, atol=1e-9)
    assert np.allclose(red_mean, 90.0)


def test_feature_layout_is_tile_major():
    ycbcr = rgb_to_ycbcr(np.zeros((5, 6, 3), dtype=np.uint8))
    features = extract_block_features(ycbcr, 4)
    assert features.dtype == FEATURE_DTYPE
    assert len(features) == 6 * FEATURES_PER_BLOCK
    assert features['x'][:9].tolist() == [0] * 9
    assert features['y'][9:18].tolist() == [1] * 9
    assert features['kind'][:9].tolist() == list(range(9))


def test_identical_tiles_have_equal_features_and_sort_adjacent():
    ycbcr = rgb_to_ycbcr(create_single_tile_copy_array())
    features = extract_block_features(ycbcr, 4, chunk_columns=8)
    src = [feature_index(features, 3, 2, k) for k in range(FEATURES_PER_BLOCK)]
    dst = [feature_index(features, 15, 16, k) for k in range(FEATURES_PER_BLOCK)]
    assert np.allclose(features['value'][src], features['value'][dst], rtol=0, atol=1e-9)

    rank = np.empty(len(features), dtype=int)
    rank[np.argsort(features['value'], kind='stable')] = np.arange(len(features))
    for k in range(3):  # luma coefficients are unique in a noise image
        assert abs(rank[src[k]] - rank[dst[k]]) == 1


# ---- Feature matcher ----
def test_match_features_adjacent_pairs():
    features = np.array([(0, 0, 0, 1.0), (5, 5, 0, 3.0), (0, 0, 1, 1.0000001), (9, 9, 0, 2.0)],
                        dtype=FEATURE_DTYPE)
    matches = match_features(features)
    assert len(matches) == 1
    assert (matches[0]['offset_x'], matches[0]['offset_y']) == (0, 0)

    wide = match_features(features, magnitude_threshold=6)
    assert len(wide) == 2
    assert (wide[1]['xa'], wide[1]['ya'], wide[1]['xb'], wide[1]['yb']) == (9, 9, 5, 5)
    assert (wide[1]['offset_x'], wide[1]['offset_y']) == (4, 4)

    assert len(match_features(np.empty(0, dtype=FEATURE_DTYPE))) == 0


# ---- Shift vector accumulator ----
def test_accumulate_shift_vectors_threshold():
    matches = np.zeros(80, dtype=MATCH_DTYPE)
    matches['offset_x'][:75] = 5
    matches['offset_x'][75:] = 1
    matches['offset_y'][75:] = 2

    suspicious, counts = accumulate_shift_vectors(matches, 72)
    assert len(suspicious) == 3
    assert counts[(5, 0)] == 75
    assert counts[(1, 2)] == 5
    assert len(accumulate_shift_vectors(matches, 74)[0]) == 1
    assert len(accumulate_shift_vectors(matches, 75)[0]) == 0


# ---- Neighbor filter ----
def make_suspicious(coords):
    return np.array([(x, y, x + 50, y, 50, 0) for x, y in coords], dtype=MATCH_DTYPE)


def test_filter_neighbor_blocks_adjacent():
    suspicious = make_suspicious([(0, 0), (0, 40), (40, 0), (41, 1)])
    regions, is_forged = filter_neighbor_blocks(suspicious, 25)
    assert is_forged is True
    assert [r['block1'] for r in regions] == [(0, 40)]
    assert regions[0]['offset'] == (50, 0)

    assert filter_neighbor_blocks(make_suspicious([(0, 0)]), 25) == ([], False)


def test_filter_neighbor_blocks_skips_self_matches():
    # same-tile pairs far apart from each other, as in a flat image
    coords = [(0, 60), (1, 0), (1, 60), (2, 0), (40, 30)]
    self_matches = np.array([(x, y, x, y, 0, 0) for x, y in coords], dtype=MATCH_DTYPE)
    for scope in ('adjacent', 'all-pairs'):
        assert filter_neighbor_blocks(self_matches, 25, scope) == ([], False)

    mixed = np.concatenate([self_matches, make_suspicious([(0, 0), (40, 40)])])
    for scope in ('adjacent', 'all-pairs'):
        regions, is_forged = filter_neighbor_blocks(mixed, 25, scope)
        assert is_forged is True
        assert all(r['block1'] != r['block2'] for r in regions)
        assert (0, 0) in [r['block1'] for r in regions]


def test_filter_neighbor_blocks_all_pairs():
    suspicious = make_suspicious([(0, 0), (0, 50), (50, 50)])
    assert filter_neighbor_blocks(suspicious, 25, 'adjacent') == ([], False)

    regions, is_forged = filter_neighbor_blocks(suspicious, 25, 'all-pairs')
    assert is_forged is True
    assert [r['block1'] for r in regions] == [(0, 0), (50, 50)]

    with pytest.raises(ValueError):
        filter_neighbor_blocks(suspicious, 25, 'nearest')


def test_forgery_mask_summary():
    regions = [{'block1': (0, 0), 'block2': (10, 10), 'offset': (10, 10), 'distance': 14.1}]
    mask = build_forgery_mask((20, 20), regions, 4)
    assert mask.sum() == 32
    summary = summarize_forged_areas((20, 20), regions, 4)
    assert summary['forged_area_count'] == 2
    assert summary['forged_percentage'] == pytest.approx(8.0)


# ---- Full pipeline ----
def test_detect_copy_move_pasted_region():
    image = Image.fromarray(create_copy_move_array())
    results = detect_copy_move_dct(image, magnitude_threshold=120)

    top = results['top_shift_vectors'][0]
    assert tuple(top['offset']) == PASTE_OFFSET
    assert top['count'] > results['parameters']['symmetry_threshold']
    assert results['is_forged'] is True
    assert len(results['forged_regions']) >= 1
    assert results['tile_count'] == 117 * 117
    assert results['feature_count'] == 117 * 117 * FEATURES_PER_BLOCK


def test_detect_copy_move_uniform_image():
    colors = [(120, 120, 120), (0, 0, 0), (255, 255, 255), (255, 0, 0), (30, 200, 90)]
    for size in (8, 16, 32, 64, 100):
        for color in colors:
            results = detect_copy_move_dct(Image.new('RGB', (size, size), color))
            assert results['forged_regions'] == []
            assert results['is_forged'] is False
            assert results['forged_area_count'] == 0


def test_detect_copy_move_never_reports_self_matches():
    results = detect_copy_move_dct(create_copy_move_array(), magnitude_threshold=120)
    assert results['is_forged'] is True
    assert all(r['block1'] != r['block2'] for r in results['forged_regions'])
    assert all(r['offset'] != (0, 0) for r in results['forged_regions'])


def test_detect_copy_move_image_smaller_than_block():
    for size in ((3, 3), (2, 10)):
        results = detect_copy_move_dct(Image.new('RGB', size, 'red'))
        assert results['tile_count'] == 0
        assert results['feature_count'] == 0
        assert results['forged_regions'] == []
        assert results['is_forged'] is False


def test_detect_copy_move_is_deterministic():
    arr = create_single_tile_copy_array()
    first = detect_copy_move_dct(arr, magnitude_threshold=50, symmetry_threshold=2)
    second = detect_copy_move_dct(arr, magnitude_threshold=50, symmetry_threshold=2)
    assert first['forged_regions'] == second['forged_regions']
    assert first['is_forged'] == second['is_forged']
    assert first['top_shift_vectors'] == second['top_shift_vectors']


def test_detect_copy_move_rejects_bad_parameters():
    image = Image.new('RGB', (16, 16), 'blue')
    with pytest.raises(ValueError):
        detect_copy_move_dct(image, block_size=0)
    with pytest.raises(ValueError):
        detect_copy_move_dct(image, neighbor_scope='bogus')
    with pytest.raises(ValueError):
        detect_copy_move_dct(image, dct_normalization='bogus')
    with pytest.raises(ValueError):
        detect_copy_move_dct(image, symmetry_threshold=-1)


# ---- Visualization & export ----
def test_reassemble_blocks_reproduces_image():
    rng = np.random.default_rng(5)
    ycbcr = rgb_to_ycbcr(rng.integers(0, 256, (10, 12, 3), dtype=np.uint8))
    assert np.allclose(reassemble_blocks(ycbcr, 4), ycbcr)
    tiny = rgb_to_ycbcr(np.ones((3, 3, 3), dtype=np.uint8))
    assert not reassemble_blocks(tiny, 4).any()


def test_draw_forged_regions_marks_blocks():
    image = Image.new('RGB', (40, 40), 'black')
    results = {'forged_regions': [{'block1': (2, 2), 'block2': (30, 30), 'offset': (28, 28),
                                   'distance': 39.6}],
               'parameters': {'block_size': 4}}
    overlay = draw_forged_regions(image, results)
    assert overlay.shape == (40, 40, 3)
    assert overlay[2, 2].any() and overlay[30, 30].any()
    assert not np.array(image).any()


def test_export_results_json(tmp_path):
    results = detect_copy_move_dct(create_single_tile_copy_array())
    assert isinstance(results_to_serializable(results)['image_size'], list)
    out = export_results_json(results, str(tmp_path / "results.json"))
    with open(out, encoding='utf-8') as f:
        loaded = json.load(f)
    assert loaded['is_forged'] is results['is_forged']
    assert loaded['tile_count'] == results['tile_count']
    assert loaded['parameters']['block_size'] == 4


def test_export_complete_package(tmp_path):
    image = Image.fromarray(create_single_tile_copy_array())
    results = detect_copy_move_dct(image, magnitude_threshold=50, symmetry_threshold=2)
    exported = export_complete_package(image, results, str(tmp_path / "sample"))
    for key in ('json', 'overlay', 'visualization', 'block_grid'):
        assert exported[key] is not None and os.path.exists(exported[key])
    assert Image.open(exported['block_grid']).size == image.size


def test_export_visualization_closes_figure_on_failure(tmp_path, monkeypatch):
    import matplotlib.pyplot as plt
    from matplotlib.figure import Figure

    def failing_savefig(self, *args, **kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(Figure, 'savefig', failing_savefig)
    image = Image.fromarray(create_single_tile_copy_array())
    results = detect_copy_move_dct(image)
    open_before = len(plt.get_fignums())
    assert export_visualization_png(image, results, str(tmp_path / "vis.png")) is None
    assert len(plt.get_fignums()) == open_before


# ---- Validation & CLI ----
def test_validation_logic(tmp_path):
    good = tmp_path / "sample.png"
    Image.new('RGB', (32, 32), 'green').save(good)
    assert validate_image_file(str(good)) is True
    assert load_image_rgb(str(good)).mode == 'RGB'

    with pytest.raises(FileNotFoundError):
        validate_image_file(str(tmp_path / "missing.png"))
    bad_ext = tmp_path / "notes.txt"
    bad_ext.write_text("test")
    with pytest.raises(ValueError):
        validate_image_file(str(bad_ext))
    corrupt = tmp_path / "corrupt.png"
    corrupt.write_bytes(b"not an image")
    with pytest.raises(OSError):
        load_image_rgb(str(corrupt))


def test_analyze_image_aborts_on_io_error(tmp_path):
    corrupt = tmp_path / "corrupt.jpg"
    corrupt.write_bytes(b"garbage")
    with pytest.raises(OSError):
        analyze_image(str(corrupt))


def test_main_cli(tmp_path):
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "missing.png")])
    assert excinfo.value.code == 1

    image_path = tmp_path / "forged.png"
    Image.fromarray(create_single_tile_copy_array()).save(image_path)
    results = main([str(image_path), '--export-json', '-o', str(tmp_path / "out")])
    assert 'is_forged' in results
    assert os.path.exists(tmp_path / "out" / "forged_results.json")

    with pytest.raises(SystemExit) as excinfo:
        main([str(image_path), '--block-size', '0'])
    assert excinfo.value.code == 1
# --- END OF FILE test_app.py ---
