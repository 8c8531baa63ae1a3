import logging
from dataclasses import dataclass

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .config import (
    ALPHA_THRESHOLD,
    EDGE_THRESHOLD,
    MULTI_SAMPLE_GRID,
    SOBEL_NORMALIZER,
    SOBEL_X,
    SOBEL_Y,
    TRANSPARENT_FRACTION,
)
from .raster import RasterFrame, RasterSource, luminance

KERNEL_X = np.array(SOBEL_X, dtype=np.float32)
KERNEL_Y = np.array(SOBEL_Y, dtype=np.float32)


@dataclass(frozen=True)
class CellSample:
    r: int
    g: int
    b: int
    a: int
    edge_intensity: float = 0.0
    is_transparent: bool = False

    @property
    def rgb(self) -> tuple[int, int, int]:
        return self.r, self.g, self.b

    @property
    def brightness(self) -> float:
        return (0.299 * self.r + 0.587 * self.g + 0.114 * self.b) / 255.0


def sobel_magnitude(lum: np.ndarray) -> np.ndarray:
    """
    Gradient magnitude at every interior point of a 2D luminance field.

    lum of shape (H, W) yields (H - 2, W - 2).
    """
    windows = sliding_window_view(lum, (3, 3))
    gx = (windows * KERNEL_X).sum(axis=(-2, -1))
    gy = (windows * KERNEL_Y).sum(axis=(-2, -1))
    return np.hypot(gx, gy)


class PixelSampler:
    """
    Produces one CellSample per output cell.

    The fast path reads a single pixel of a raster that has already been
    reduced to grid size. The enhanced path point-samples an N x N sub-grid
    inside the cell's footprint on the full resolution source, plus a ring of
    neighbours so the Sobel kernel has context at the cell border.
    """

    def __init__(self, sub_samples: int = MULTI_SAMPLE_GRID, alpha_threshold: int = ALPHA_THRESHOLD,
                 transparent_fraction: float = TRANSPARENT_FRACTION, edge_threshold: float = EDGE_THRESHOLD,
                 logger: logging.Logger | None = None):
        if sub_samples < 1:
            raise ValueError("sub_samples must be at least 1")
        self.sub_samples: int = sub_samples
        self.alpha_threshold: int = alpha_threshold
        self.transparent_fraction: float = transparent_fraction
        self.edge_threshold: float = edge_threshold
        self.logger = logger or logging.getLogger(__name__)

    def sample(self, raster: RasterFrame, cell_x: int, cell_y: int, grid_width: int, grid_height: int,
               high_res: RasterFrame | None = None) -> CellSample:
        if high_res is None:
            return self.sample_fast(raster, cell_x, cell_y, grid_width, grid_height)
        return self.sample_enhanced(high_res, cell_x, cell_y, grid_width, grid_height)

    def sample_fast(self, raster: RasterSource, cell_x: int, cell_y: int, grid_width: int,
                    grid_height: int) -> CellSample:
        # Normally the raster is exactly grid sized and this is the identity
        x = min(raster.width - 1, cell_x * raster.width // grid_width)
        y = min(raster.height - 1, cell_y * raster.height // grid_height)
        r, g, b, a = raster.get_pixel(x, y)
        return CellSample(r, g, b, a, 0.0, a < self.alpha_threshold)

    def _sample_positions(self, cell: int, cells: int, size: int) -> np.ndarray:
        n = self.sub_samples
        span = size / cells
        start = cell * span
        # -1 and n are the neighbour ring outside the cell
        offsets = (np.arange(-1, n + 1) + 0.5) * (span / n)
        return np.clip((start + offsets).astype(np.int64), 0, size - 1)

    def sample_enhanced(self, high_res: RasterFrame, cell_x: int, cell_y: int, grid_width: int,
                        grid_height: int) -> CellSample:
        xs = self._sample_positions(cell_x, grid_width, high_res.width)
        ys = self._sample_positions(cell_y, grid_height, high_res.height)
        patch = high_res.pixels[ys[:, None], xs[None, :]]

        inner = patch[1:-1, 1:-1].reshape(-1, 4)
        alpha = inner[:, 3]
        below = alpha < self.alpha_threshold
        transparent = below.mean() > self.transparent_fraction

        visible = inner[~below] if (~below).any() else inner
        r, g, b, _ = np.rint(visible.mean(axis=0)).astype(int)
        a = int(np.rint(alpha.mean()))

        # Transparent samples take the mean opaque luma so silhouettes are not edges
        luma = luminance(patch)
        hidden = patch[..., 3] < self.alpha_threshold
        fill = luma[~hidden].mean() if (~hidden).any() else 0.0
        luma = np.where(hidden, fill, luma)

        magnitude = sobel_magnitude(luma).max() / SOBEL_NORMALIZER
        edge = float(min(1.0, magnitude))
        if edge < self.edge_threshold:
            edge = 0.0

        return CellSample(int(r), int(g), int(b), a, edge, bool(transparent))
