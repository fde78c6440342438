"""Shared constants for oralscreen."""

# Fixed logical drawing surface; the report layout assumes these dimensions
CANVAS_WIDTH = 800
CANVAS_HEIGHT = 600
CANVAS_BACKGROUND = "#FFFFFF"

# Problem label -> stroke color (hex)
PROBLEM_COLORS = {
    "Inflammed/Red gums": "#A855F7",  # Purple
    "Malaligned": "#EAB308",  # Yellow
    "Receded gums": "#78716C",  # Stone
    "Stains": "#EF4444",  # Red
    "Attrition": "#22D3EE",  # Cyan
    "Crowns": "#EC4899",  # Pink
}

# Alternate spellings seen in stored data
LABEL_ALIASES = {
    "Inflammed / Red gums": "Inflammed/Red gums",
}

# Color for operator-entered labels outside the fixed table
FALLBACK_COLOR = "#888888"

DEFAULT_LABEL = "Stains"

# Shape kinds supported by the canvas
SHAPE_KINDS = ("rectangle", "circle", "arrow", "freehand")

# Geometry given to a freshly added shape (before any drag gesture)
DEFAULT_GEOMETRY = {
    "rectangle": {"left": 100.0, "top": 100.0, "width": 100.0, "height": 100.0},
    "circle": {"left": 100.0, "top": 100.0, "radius": 50.0},
    "arrow": {"x1": 100.0, "y1": 100.0, "x2": 200.0, "y2": 200.0},
}

# Arrow head geometry (length in px, half-angle in radians = pi/6)
ARROW_HEAD_LENGTH = 15.0
ARROW_HEAD_ANGLE = 0.5235987755982988

# Image slots, in report order
IMAGE_SLOTS = ("upper_teeth", "front_teeth", "lower_teeth")

SLOT_LABELS = {
    "upper_teeth": "Upper Teeth",
    "front_teeth": "Front Teeth",
    "lower_teeth": "Lower Teeth",
}

# Raster formats accepted as backgrounds / uploads
SUPPORTED_IMAGE_FORMATS = frozenset({"JPEG", "PNG", "WEBP", "GIF", "BMP"})
