"""
Block-DCT Copy-Move Forgery Detection System
Main execution file

Usage:
    python main.py <image_path> [options]

Example:
    python main.py test_image.png
    python main.py test_image.png --export-all
    python main.py test_image.png --symmetry-threshold 50 --output-dir ./results
"""

import sys
import os
import time
import argparse

from validation import validate_image_file, load_image_rgb, extract_basic_metadata
from copy_move_detection import detect_copy_move_dct
from export_utils import (export_complete_package, export_results_json,
                          export_visualization_png, export_block_grid)
from utils import format_offset
from config import (BLOCK_SIZE, MAGNITUDE_THRESHOLD, SYMMETRY_THRESHOLD, NEIGHBOR_THRESHOLD,
                    NEIGHBOR_SCOPE, NEIGHBOR_SCOPES, DCT_NORMALIZATION, DCT_NORMALIZATIONS)

TOTAL_STAGES = 4


def analyze_image(image_path, **detection_params):
    """
    Validate, load and run block-DCT copy-move detection on one image file.

    I/O failures (missing file, unsupported extension, undecodable data) are
    raised before detection starts.
    """
    print(f"\n{'='*80}")
    print("BLOCK-DCT COPY-MOVE FORGERY DETECTION")
    print(f"{'='*80}\n")
    start_time = time.time()

    print(f"🚀 [1/{TOTAL_STAGES}] Validating image file...")
    try:
        validate_image_file(image_path)
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ [1/{TOTAL_STAGES}] File validation failed: {e}")
        raise
    print(f"✅ [1/{TOTAL_STAGES}] File validation passed")

    print(f"🖼️ [2/{TOTAL_STAGES}] Loading image...")
    try:
        original_image = load_image_rgb(image_path)
    except OSError as e:
        print(f"❌ [2/{TOTAL_STAGES}] Error loading image: {e}")
        raise
    print(f"✅ [2/{TOTAL_STAGES}] Image loaded: {os.path.basename(image_path)}")
    print(f"  Size: {original_image.size}")

    print(f"🔍 [3/{TOTAL_STAGES}] Detecting copy-move regions...")
    analysis_results = detect_copy_move_dct(original_image, **detection_params)
    analysis_results['metadata'] = extract_basic_metadata(image_path, original_image)

    print(f"📋 [4/{TOTAL_STAGES}] Summarizing...")
    processing_time = time.time() - start_time
    analysis_results['total_time'] = f"{processing_time:.2f}s"
    print_summary(analysis_results)

    return analysis_results, original_image


def print_summary(analysis_results):
    print(f"\n{'='*80}")
    print(f"ANALYSIS COMPLETE - Processing Time: {analysis_results.get('total_time', analysis_results['processing_time'])}")
    print(f"{'='*80}")
    verdict = 'FORGED' if analysis_results['is_forged'] else 'AUTHENTIC (no copy-move found)'
    print(f"📊 FINAL RESULT: {verdict}")
    print(f"📊 Blocks: {analysis_results['tile_count']}, Features: {analysis_results['feature_count']}")
    print(f"📊 Matches: {analysis_results['match_count']}, Suspicious: {analysis_results['suspicious_count']}")
    print(f"📊 Forged Regions: {len(analysis_results['forged_regions'])} "
          f"({analysis_results['forged_area_count']} connected areas, "
          f"{analysis_results['forged_percentage']:.2f}% of image)")
    print(f"{'='*80}\n")

    if analysis_results['top_shift_vectors']:
        print("📋 Most frequent shift vectors:")
        for entry in analysis_results['top_shift_vectors'][:5]:
            print(f"  {format_offset(entry['offset'])}: {entry['count']}")
        print()


def build_parser():
    parser = argparse.ArgumentParser(description='Block-DCT Copy-Move Forgery Detection')
    parser.add_argument('image_path', help='Path to the image file to analyze')
    parser.add_argument('--output-dir', '-o', default='./results',
                        help='Output directory for exported files (default: ./results)')
    parser.add_argument('--block-size', '-b', type=int, default=BLOCK_SIZE,
                        help=f'Tile edge length in pixels (default: {BLOCK_SIZE})')
    parser.add_argument('--magnitude-threshold', type=float, default=MAGNITUDE_THRESHOLD,
                        help=f'Max spatial distance for a feature match (default: {MAGNITUDE_THRESHOLD})')
    parser.add_argument('--symmetry-threshold', type=int, default=SYMMETRY_THRESHOLD,
                        help=f'Min shift vector recurrence before blocks are suspicious (default: {SYMMETRY_THRESHOLD})')
    parser.add_argument('--neighbor-threshold', type=float, default=NEIGHBOR_THRESHOLD,
                        help=f'Min separation of a forged region (default: {NEIGHBOR_THRESHOLD})')
    parser.add_argument('--neighbor-scope', choices=NEIGHBOR_SCOPES, default=NEIGHBOR_SCOPE,
                        help=f'Compare suspicious blocks with their successor or with all others (default: {NEIGHBOR_SCOPE})')
    parser.add_argument('--dct-normalization', choices=DCT_NORMALIZATIONS, default=DCT_NORMALIZATION,
                        help=f'DCT scale: image dimensions or block size (default: {DCT_NORMALIZATION})')
    parser.add_argument('--export-all', '-e', action='store_true',
                        help='Export JSON, overlay, summary figure and block grid')
    parser.add_argument('--export-vis', '-v', action='store_true',
                        help='Export only the summary figure (PNG)')
    parser.add_argument('--export-json', '-j', action='store_true',
                        help='Export only the JSON result')
    parser.add_argument('--export-blocks', action='store_true',
                        help='Export the reassembled block grid (PNG)')
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    if not os.path.exists(args.image_path):
        print(f"❌ Error: Image file '{args.image_path}' not found!")
        sys.exit(1)

    detection_params = {
        'block_size': args.block_size,
        'magnitude_threshold': args.magnitude_threshold,
        'symmetry_threshold': args.symmetry_threshold,
        'neighbor_threshold': args.neighbor_threshold,
        'neighbor_scope': args.neighbor_scope,
        'dct_normalization': args.dct_normalization,
    }

    try:
        analysis_results, original_image = analyze_image(args.image_path, **detection_params)
    except KeyboardInterrupt:
        print("\n❌ Analysis interrupted by user!")
        sys.exit(1)
    except (OSError, ValueError) as e:
        print(f"\n❌ Analysis failed with error: {e}")
        sys.exit(1)

    os.makedirs(args.output_dir, exist_ok=True)
    base_filename = os.path.splitext(os.path.basename(args.image_path))[0]
    base_path = os.path.join(args.output_dir, base_filename)

    if args.export_all:
        print("\n📦 Exporting complete package...")
        export_complete_package(original_image, analysis_results, base_path)
    else:
        if args.export_vis:
            print("\n📊 Exporting PNG visualization...")
            export_visualization_png(original_image, analysis_results, f"{base_path}_analysis.png")
        if args.export_json:
            print("\n📄 Exporting JSON result...")
            export_results_json(analysis_results, f"{base_path}_results.json")
        if args.export_blocks:
            print("\n🧱 Exporting block grid...")
            export_block_grid(original_image, analysis_results, f"{base_path}_block_grid.png")

    print("✅ Analysis completed successfully!")
    return analysis_results


if __name__ == "__main__":
    main()
