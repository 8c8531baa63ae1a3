"""
Fixed tables and tunables for ASCII generation.

Everything here is read-only. Per-call options live in GenerationSettings,
which clamps out-of-range values instead of rejecting them.
"""

from dataclasses import dataclass

# Glyph ramp, darkest/densest -> lightest/sparsest
ASCII_CHARS = (
    "$@B%8&WM#*"
    "oahkbdpqwm"
    "ZO0QLCJUYX"
    "zcvunxrjft"
    "/\\|()1{}[]"
    "?-_+~<>i!l"
    "I;:,\"^`'. "
)

# Edge-aware sub-ramps, ordered by visual complexity
EDGE_CHARS = {
    "high": "#@$%&MWB8*NH",
    "medium": "oahkbdpqwmZO",
    "low": "0QLCJUYXzcvu",
    "minimal": "nxrjft/\\|()",
    "sparse": "1{}[]?-_+~<>",
    "light": "i!lI;:,\"^`'.",
}

# (lower bound, tier) checked top to bottom
EDGE_TIERS = (
    (0.7, "high"),
    (0.5, "medium"),
    (0.3, "low"),
    (0.1, "minimal"),
)
SPARSE_BRIGHTNESS = 0.05

GAMMA = 0.8
BLANK_GUARD_BRIGHTNESS = 0.1
BLANK_GUARD_CAP = 0.95

TRANSPARENT_CHAR = " "

# Monospace glyphs are roughly 0.6 wide for every 1.0 tall
CHAR_ASPECT_RATIO = 0.6
LINE_HEIGHT_RATIO = 1.2

CONTRAST_MULTIPLIER = 259
CONTRAST_OFFSET = 255
CONTRAST_CENTER = 0.5
# Distance from 1.0 maps onto the classic [-255, 255] contrast scale
CONTRAST_SPAN = 128

DARK_BOOST_THRESHOLD = 0.15
DARK_BOOST_BASE = 1.3
DARK_BOOST_SLOPE = 2.0

ALPHA_THRESHOLD = 50
TRANSPARENT_FRACTION = 0.7
MULTI_SAMPLE_GRID = 2
EDGE_THRESHOLD = 0.15
# Largest Sobel magnitude on a [0, 1] luminance field along one axis
SOBEL_NORMALIZER = 4.0
SOBEL_X = (
    (-1, 0, 1),
    (-2, 0, 2),
    (-1, 0, 1),
)
SOBEL_Y = (
    (-1, -2, -1),
    (0, 0, 0),
    (1, 2, 1),
)

# (dx, dy, weight) relative to the pixel being quantized
ERROR_DIFFUSION = (
    (1, 0, 7 / 16),
    (-1, 1, 3 / 16),
    (0, 1, 5 / 16),
    (1, 1, 1 / 16),
)
DIFFUSION_INTENSITY = 0.75

TERMINAL_COLORS = (
    (0, 0, 0),
    (128, 0, 0),
    (0, 128, 0),
    (128, 128, 0),
    (0, 0, 128),
    (128, 0, 128),
    (0, 128, 128),
    (192, 192, 192),
    (128, 128, 128),
    (255, 0, 0),
    (0, 255, 0),
    (255, 255, 0),
    (0, 0, 255),
    (255, 0, 255),
    (0, 255, 255),
    (255, 255, 255),
    # extra grayscale steps
    (32, 32, 32),
    (64, 64, 64),
    (96, 96, 96),
    (160, 160, 160),
    (224, 224, 224),
)

DEFAULT_FRAME_DELAY = 100  # ms
MIN_FRAME_DELAY = 20
MAX_FRAME_DELAY = 5000
LARGE_FILE_THRESHOLD = 10 * 1024 * 1024

CHUNK_ROWS = 20

BACKGROUND_COLOR = (0x1E, 0x1E, 0x1E)
TEXT_COLOR = (0xFF, 0xFF, 0xFF)

RESOLUTION_RANGE = (50, 200)
FONT_SIZE_RANGE = (4, 16)
CONTRAST_RANGE = (0.5, 2.0)
SUB_SAMPLE_RANGE = (1, 8)


def clamp(value, low, high):
    return max(low, min(high, value))


@dataclass(frozen=True)
class GenerationSettings:
    """
    Options for one generation call.

    Args:
        resolution: Percentage of the base character density (50-200)
        font_size: Glyph size in pixels, drives how many characters fit (4-16)
        contrast: Contrast multiplier, 1.0 leaves brightness untouched (0.5-2.0)
        colored: Keep a display color per cell
        inverted: Map bright pixels to dense glyphs
        edge_enhanced: Multi-sample the high-resolution source and pick glyphs by edge strength
        palette: Quantize display colors to the terminal palette with error diffusion
        sub_samples: Sub-grid size per cell for the enhanced path (1-8)
    """
    resolution: int = 100
    font_size: int = 8
    contrast: float = 1.0
    colored: bool = False
    inverted: bool = False
    edge_enhanced: bool = False
    palette: bool = False
    sub_samples: int = MULTI_SAMPLE_GRID

    def __post_init__(self):
        # frozen, so go through object.__setattr__
        object.__setattr__(self, "resolution", int(round(clamp(self.resolution, *RESOLUTION_RANGE))))
        object.__setattr__(self, "font_size", int(round(clamp(self.font_size, *FONT_SIZE_RANGE))))
        object.__setattr__(self, "contrast", float(clamp(self.contrast, *CONTRAST_RANGE)))
        object.__setattr__(self, "sub_samples", int(clamp(self.sub_samples, *SUB_SAMPLE_RANGE)))
        for name in ("colored", "inverted", "edge_enhanced", "palette"):
            object.__setattr__(self, name, bool(getattr(self, name)))
