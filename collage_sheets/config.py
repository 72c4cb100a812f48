# config.py
"""
Engine configuration constants for Collage Sheets
"""

# Canvas limits
MAX_CANVAS_DIMENSION = 8192      # Hard limit for any cell/sheet edge in pixels
BASE_CELL_WIDTH = 1500           # High-res cell width before shrinking

# Grid defaults
DEFAULT_COLUMNS = 3
DEFAULT_ROWS_PER_GROUP = 3
FALLBACK_ROWS_PER_GROUP = 50     # Used when rows_per_group is 0
DEFAULT_GAP = 0
DEFAULT_ASPECT_RATIO = 0.75      # 3:4 portrait
DEFAULT_CUSTOM_WIDTH = 1000
DEFAULT_CUSTOM_HEIGHT = 1500

# Numbering defaults
DEFAULT_START_NUMBER = 1
DEFAULT_FONT_SIZE = 350
DEFAULT_FONT_FAMILY = "sans-serif"
DEFAULT_FONT_COLOR = "#FFFFFF"
DEFAULT_STROKE_COLOR = "#000000"
DEFAULT_SHADOW_COLOR = "#000000"
TEXT_INSET = 20                  # Horizontal inset for left/right anchors
TOP_TEXT_OFFSET = 20             # Extra drop below fontSize for top anchors

# Font lookup order for generic families
FONT_FALLBACKS = {
    "sans-serif": ["DejaVuSans-Bold.ttf", "Arial Bold.ttf", "arialbd.ttf", "Arial.ttf", "arial.ttf"],
    "serif": ["DejaVuSerif-Bold.ttf", "Times New Roman Bold.ttf", "timesbd.ttf"],
    "monospace": ["DejaVuSansMono-Bold.ttf", "Courier New Bold.ttf", "courbd.ttf"],
}

# Masking defaults
DEFAULT_MASK_COLOR = "#FF3B30"
DEFAULT_MASK_WIDTH = 10
MASK_REFERENCE_WIDTH = 500       # Mask stroke scales relative to this cell width
DEFAULT_STICKER_SIZE = 50
DEFAULT_STICKER_POSITION = 50

# Error placeholder
PLACEHOLDER_FILL = "#f9f9f9"
PLACEHOLDER_GLYPH_COLOR = "#ff3b30"

# Output
DEFAULT_QUALITY = 0.8
LOSSLESS_FORMAT = "PNG"
LOSSY_FORMAT = "JPEG"
PNG_COMPRESS_LEVEL = 6

# Pacing (seconds)
CELL_YIELD_INTERVAL = 30         # Yield every N cells inside a sheet
CELL_YIELD_PAUSE_SECS = 0.01
SHEET_PAUSE_SECS = 0.2

# Post-export limits
COMBINE_MAX_SOURCE_IMAGES = 100
MOBILE_MAX_PIXELS = 16_777_216
DESKTOP_MAX_PIXELS = 50_000_000

# File naming
SHEET_FILENAME_PREFIX = "Part_"
COMBINED_FILENAME_PREFIX = "Combined_"
ARCHIVE_FILENAME_PREFIX = "Collage_"

# Performance monitor settings
MEMORY_THRESHOLD_BYTES = 1 << 30  # 1 GB

# Persisted state
STORE_PATH = "image_store"
SETTINGS_PATH = "collage_settings.json"
SETTINGS_VERSION = 3

# Logging
LOG_FILENAME = "collage_sheets.log"
LOG_MAX_BYTES = 1_048_576
LOG_BACKUP_COUNT = 5
