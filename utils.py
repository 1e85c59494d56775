"""
Utility functions for Copy-Move Forgery Detection System
"""

import numpy as np
from PIL import Image


def image_to_rgb_array(image):
    """Return an (H, W, 3) RGB array from a PIL image or array-like"""
    if isinstance(image, Image.Image):
        if image.mode != 'RGB':
            image = image.convert('RGB')
        return np.array(image)
    arr = np.asarray(image)
    if arr.ndim == 2:
        # grayscale, replicate into three channels
        arr = np.stack([arr] * 3, axis=-1)
    if arr.ndim != 3 or arr.shape[2] not in (3, 4):
        raise ValueError(f"Expected an RGB image array, got shape {arr.shape}")
    return arr[..., :3]


def normalize_array(arr):
    """Normalize array to 0-1 range"""
    arr = np.asarray(arr, dtype=float)
    if arr.size == 0:
        return arr
    arr_min = np.min(arr)
    arr_max = np.max(arr)
    if arr_max - arr_min == 0:
        return np.zeros_like(arr)
    return (arr - arr_min) / (arr_max - arr_min)


def safe_divide(numerator, denominator, default=0.0):
    """Safe division with default value"""
    if denominator == 0:
        return default
    return numerator / denominator


def format_offset(offset):
    return f"({offset[0]}, {offset[1]})"
