"""
Visualization Module for Copy-Move Forgery Detection System
Contains the diagnostic block grid export and the detection overlays
"""

import os
import numpy as np
import cv2
import matplotlib.pyplot as plt
from PIL import Image
from block_features import decompose_blocks
from color_transform import ycbcr_to_rgb, to_uint8
from config import BLOCK_SIZE, MAX_REGIONS_DISPLAY
from utils import image_to_rgb_array, normalize_array, format_offset


def reassemble_blocks(ycbcr, block_size=BLOCK_SIZE):
    """
    Paste every decomposed tile back at its top-left coordinate.

    Pixels no tile covers stay zero; for an image at least block_size on both
    sides the result reproduces the input.
    """
    ycbcr = np.asarray(ycbcr, dtype=np.float64)
    canvas = np.zeros_like(ycbcr)
    for c in range(ycbcr.shape[2]):
        tiles = decompose_blocks(ycbcr[..., c], block_size)
        nx, ny = tiles.shape[:2]
        if nx == 0 or ny == 0:
            continue
        for row in range(block_size):
            for col in range(block_size):
                canvas[row:row + ny, col:col + nx, c] = tiles[:, :, row, col].T
    return canvas


def save_block_grid(ycbcr, block_size=BLOCK_SIZE, output_filename="block_grid.png", as_rgb=True):
    """Encode the reassembled block grid as PNG"""
    grid = reassemble_blocks(ycbcr, block_size)
    if as_rgb:
        grid = ycbcr_to_rgb(grid, clip=True)
    Image.fromarray(to_uint8(grid)).save(output_filename, 'PNG')
    return output_filename


def draw_forged_regions(image, results, max_regions=MAX_REGIONS_DISPLAY):
    """Draw matched tile pairs of the forged regions onto a copy of the image"""
    img_blocks = np.ascontiguousarray(image_to_rgb_array(image), dtype=np.uint8).copy()
    block_size = results.get('parameters', {}).get('block_size', BLOCK_SIZE)

    for i, region in enumerate(results.get('forged_regions', [])[:max_regions]):
        x1, y1 = region['block1']
        x2, y2 = region['block2']
        color = (255, 64, 64) if i % 2 == 0 else (64, 160, 255)

        cv2.rectangle(img_blocks, (x1, y1), (x1 + block_size - 1, y1 + block_size - 1), color, 1)
        cv2.rectangle(img_blocks, (x2, y2), (x2 + block_size - 1, y2 + block_size - 1), color, 1)
        center1 = (x1 + block_size // 2, y1 + block_size // 2)
        center2 = (x2 + block_size // 2, y2 + block_size // 2)
        cv2.line(img_blocks, center1, center2, color, 1, cv2.LINE_AA)

    return img_blocks


def create_shift_vector_plot(ax, results, symmetry_threshold=None):
    top_vectors = results.get('top_shift_vectors', [])
    if not top_vectors:
        ax.text(0.5, 0.5, 'No shift vectors', ha='center', va='center')
        ax.axis('off')
        return

    labels = [format_offset(v['offset']) for v in top_vectors]
    counts = [v['count'] for v in top_vectors]
    colors = plt.cm.Reds(0.3 + 0.7 * normalize_array(counts))
    ax.barh(labels[::-1], counts[::-1], color=colors[::-1])
    if symmetry_threshold is not None:
        ax.axvline(symmetry_threshold, color='black', linestyle='--', linewidth=1,
                   label=f'Symmetry threshold ({symmetry_threshold})')
        ax.legend(loc='lower right', fontsize=8)
    ax.set_xlabel('Occurrences')
    ax.set_title('Most frequent shift vectors', fontsize=12)


def visualize_detection(original_pil, results, output_filename="copy_move_analysis.png"):
    """Original, overlay and shift-vector histogram in one figure"""
    print("📊 Creating copy-move visualization...")
    fig, (ax1, ax2, ax3) = plt.subplots(1, 3, figsize=(18, 6))
    try:
        verdict = 'FORGED' if results.get('is_forged') else 'No forgery detected'
        fig.suptitle(f"Block-DCT Copy-Move Analysis: {verdict}", fontsize=16, fontweight='bold')

        ax1.imshow(image_to_rgb_array(original_pil))
        ax1.set_title('1. Original', fontsize=12)
        ax1.axis('off')

        ax2.imshow(draw_forged_regions(original_pil, results))
        ax2.set_title(f"2. Forged Regions ({len(results.get('forged_regions', []))} found)",
                      fontsize=12)
        ax2.axis('off')

        symmetry_threshold = results.get('parameters', {}).get('symmetry_threshold')
        create_shift_vector_plot(ax3, results, symmetry_threshold)

        out_dir = os.path.dirname(os.path.abspath(output_filename))
        os.makedirs(out_dir, exist_ok=True)
        fig.savefig(output_filename, dpi=100, bbox_inches='tight')
    finally:
        plt.close(fig)
    return output_filename
