"""
Palette quantization with Floyd-Steinberg style error diffusion.

Cells must be quantized in raster order (row by row, left to right): the
residual of each cell is pushed only to cells that have not been visited
yet.
"""

import numpy as np

from .config import DIFFUSION_INTENSITY, ERROR_DIFFUSION, TERMINAL_COLORS


class QuantizationErrorField:
    """
    Sparse (row, col) -> accumulated RGB error for one generation pass.

    Error aimed outside the grid is dropped. The raw residuals, what was
    kept and what was dropped are all tallied.
    """

    def __init__(self, width: int, height: int):
        self.width: int = width
        self.height: int = height
        self.errors: dict[tuple[int, int], np.ndarray] = {}
        self.residuals = np.zeros(3, dtype=np.float64)
        self.distributed = np.zeros(3, dtype=np.float64)
        self.discarded = np.zeros(3, dtype=np.float64)

    def __len__(self) -> int:
        return len(self.errors)

    def __contains__(self, key: tuple[int, int]) -> bool:
        return key in self.errors

    def add(self, x: int, y: int, error: np.ndarray):
        if 0 <= x < self.width and 0 <= y < self.height:
            key = (y, x)
            if key in self.errors:
                self.errors[key] += error
            else:
                self.errors[key] = error.astype(np.float64)
            self.distributed += error
        else:
            self.discarded += error

    def take(self, x: int, y: int) -> np.ndarray:
        """Remove and return the error waiting at (x, y), zero when none"""
        return self.errors.pop((y, x), np.zeros(3, dtype=np.float64))


class ColorQuantizer:
    def __init__(self, palette=TERMINAL_COLORS, intensity: float = DIFFUSION_INTENSITY,
                 kernel=ERROR_DIFFUSION):
        if not 0.0 <= intensity <= 1.0:
            raise ValueError(f"Diffusion intensity must be within [0, 1], got {intensity}")
        self.palette = np.array(palette, dtype=np.float64)
        self.intensity: float = intensity
        self.kernel = tuple(kernel)

    def new_field(self, width: int, height: int) -> QuantizationErrorField:
        return QuantizationErrorField(width, height)

    def nearest(self, color) -> tuple[int, int, int]:
        """Closest palette entry by Euclidean RGB distance"""
        distances = ((self.palette - np.asarray(color, dtype=np.float64)) ** 2).sum(axis=1)
        r, g, b = self.palette[int(np.argmin(distances))]
        return int(r), int(g), int(b)

    def quantize(self, color, x: int, y: int, error_field: QuantizationErrorField) -> tuple[int, int, int]:
        """
        Quantize color at cell (x, y), pushing the residual onto the
        not-yet-visited neighbours in error_field.
        """
        adjusted = np.clip(np.asarray(color, dtype=np.float64) + error_field.take(x, y), 0, 255)
        chosen = self.nearest(adjusted)
        residual = adjusted - np.array(chosen, dtype=np.float64)
        error_field.residuals += residual

        if self.intensity > 0 and residual.any():
            for dx, dy, weight in self.kernel:
                error_field.add(x + dx, y + dy, residual * (weight * self.intensity))

        return chosen
