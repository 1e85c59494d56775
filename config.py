"""
Configuration file for Copy-Move Forgery Detection System
"""

# Block decomposition
BLOCK_SIZE = 4                    # tile edge length (feature locality)
FEATURE_CHUNK_COLUMNS = 256       # tile columns processed per DCT batch

# DCT normalization: 'image' scales by the image dimensions, 'block' by the tile size
DCT_NORMALIZATION = 'image'
DCT_NORMALIZATIONS = ('image', 'block')

# Copy-move detection parameters
MAGNITUDE_THRESHOLD = 0.2         # max spatial distance for two tiles to be a feature match
SYMMETRY_THRESHOLD = 72           # min recurrence of a shift vector before it is suspicious
NEIGHBOR_THRESHOLD = 25           # min separation before a suspicious pair counts as forged
NEIGHBOR_SCOPE = 'adjacent'
NEIGHBOR_SCOPES = ('adjacent', 'all-pairs')

# Reporting
TOP_SHIFT_VECTORS = 10
MAX_REGIONS_DISPLAY = 50

# File format support
VALID_EXTENSIONS = ['.jpg', '.jpeg', '.png', '.bmp', '.tiff', '.tif', '.webp']
MIN_FILE_SIZE = 1024  # 1KB
