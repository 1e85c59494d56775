"""
Image validation and loading functions
"""

import os
from PIL import Image, UnidentifiedImageError
from config import VALID_EXTENSIONS, MIN_FILE_SIZE


def validate_image_file(filepath):
    """Check extension and existence before any decoding is attempted"""
    ext = os.path.splitext(filepath)[1].lower()
    if ext not in VALID_EXTENSIONS:
        raise ValueError(f"Unsupported file format: {ext}")

    if not os.path.isfile(filepath):
        raise FileNotFoundError(f"File {filepath} not found.")

    file_size = os.path.getsize(filepath)
    if file_size < MIN_FILE_SIZE:
        print(f"⚠ Warning: Very small file ({file_size} bytes), results may be unreliable")

    return True


def load_image_rgb(filepath):
    """Decode an image file into an RGB PIL image"""
    try:
        with Image.open(filepath) as img:
            img.load()
            return img.convert('RGB')
    except UnidentifiedImageError as e:
        raise OSError(f"Cannot decode image {filepath}: {e}") from e


def extract_basic_metadata(filepath, image_pil):
    """File and image properties reported alongside the detection result"""
    return {
        'Filename': os.path.basename(filepath),
        'FileSize (bytes)': os.path.getsize(filepath),
        'Width': image_pil.width,
        'Height': image_pil.height,
        'Format': os.path.splitext(filepath)[1].lower().lstrip('.'),
    }
