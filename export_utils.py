"""
Export Utilities Module for Copy-Move Forgery Detection System
Contains functions for exporting results to JSON and PNG
"""

import os
import json
from datetime import datetime
import numpy as np
from PIL import Image
from color_transform import rgb_to_ycbcr
from config import BLOCK_SIZE
from utils import image_to_rgb_array
from visualization import draw_forged_regions, save_block_grid, visualize_detection


def results_to_serializable(obj):
    """Recursively convert tuples and numpy scalars/arrays into JSON types"""
    if isinstance(obj, dict):
        return {str(k): results_to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [results_to_serializable(v) for v in obj]
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    return obj


def export_results_json(analysis_results, output_filename="copy_move_results.json"):
    """Write the detection result to a JSON file"""
    payload = results_to_serializable(analysis_results)
    payload['exported_at'] = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    with open(output_filename, 'w', encoding='utf-8') as f:
        json.dump(payload, f, indent=4)
    print(f"💾 Results saved to {output_filename}")
    return output_filename


def export_overlay_png(original_pil, analysis_results, output_filename="forged_regions.png"):
    overlay = draw_forged_regions(original_pil, analysis_results)
    Image.fromarray(overlay).save(output_filename, 'PNG')
    return output_filename


def export_visualization_png(original_pil, analysis_results, output_filename="copy_move_analysis.png"):
    """Export the summary figure, reporting rather than raising on failure"""
    try:
        return visualize_detection(original_pil, analysis_results, output_filename)
    except (OSError, ValueError) as e:
        print(f"❌ Error creating PNG visualization: {e}")
        return None


def export_block_grid(original_pil, analysis_results, output_filename="block_grid.png"):
    block_size = analysis_results.get('parameters', {}).get('block_size', BLOCK_SIZE)
    ycbcr = rgb_to_ycbcr(image_to_rgb_array(original_pil))
    try:
        return save_block_grid(ycbcr, block_size, output_filename)
    except OSError as e:
        print(f"❌ Error writing block grid: {e}")
        return None


def export_complete_package(original_pil, analysis_results, base_filename="copy_move_analysis"):
    """Export JSON, overlay, summary figure and block grid side by side"""
    print(f"\n{'='*80}")
    print("EXPORTING RESULTS")
    print(f"{'='*80}")
    out_dir = os.path.dirname(os.path.abspath(base_filename))
    os.makedirs(out_dir, exist_ok=True)

    export_files = {}
    try:
        export_files['json'] = export_results_json(analysis_results, f"{base_filename}_results.json")
    except OSError as e:
        print(f"❌ Error writing JSON results: {e}")
        export_files['json'] = None
    try:
        export_files['overlay'] = export_overlay_png(original_pil, analysis_results,
                                                     f"{base_filename}_forged_regions.png")
    except OSError as e:
        print(f"❌ Error writing overlay: {e}")
        export_files['overlay'] = None
    export_files['visualization'] = export_visualization_png(original_pil, analysis_results,
                                                             f"{base_filename}_analysis.png")
    export_files['block_grid'] = export_block_grid(original_pil, analysis_results,
                                                   f"{base_filename}_block_grid.png")

    for file_type, path in export_files.items():
        if path:
            print(f"  ✅ {file_type}: {path}")
        else:
            print(f"  ❌ {file_type}: Failed to create")
    print(f"{'='*80}\n")
    return export_files
