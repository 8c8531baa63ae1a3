"""
Raster -> CharacterGrid.

Generation walks the grid row by row and hands control back to the caller
after every chunk of rows. GenerationJob is the per-call state; nothing
mutable is shared between two calls on the same FrameGenerator.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator

import numpy as np

from .character_mapper import CharacterMapper
from .color_quantizer import ColorQuantizer
from .config import (
    CHAR_ASPECT_RATIO,
    CHUNK_ROWS,
    CONTRAST_CENTER,
    CONTRAST_MULTIPLIER,
    CONTRAST_OFFSET,
    CONTRAST_SPAN,
    DARK_BOOST_BASE,
    DARK_BOOST_SLOPE,
    DARK_BOOST_THRESHOLD,
    TRANSPARENT_CHAR,
    GenerationSettings,
)
from .errors import GenerationCancelled, ValidationError
from .gif_decoder import GIFDocument
from .grid import GRID_DTYPE, CharacterGrid
from .raster import RasterFrame
from .sampler import CellSample, PixelSampler
from .utils import pack_int24

ProgressCallback = Callable[[float], None]


class GenerationState(Enum):
    IDLE = "idle"
    SAMPLING = "sampling"
    YIELDING = "yielding"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RowChunk:
    start: int
    stop: int
    cells: np.ndarray
    progress: float


def grid_dimensions(image_width: int, image_height: int, font_size: int, resolution: int) -> tuple[int, int]:
    """
    Character columns and rows for an image at the given font size and
    resolution percentage. Either value may come out as 0 for tiny images.
    """
    scale = resolution / 100
    columns = math.floor(image_width / (font_size * CHAR_ASPECT_RATIO) * scale)
    rows = math.floor(image_height / font_size * scale)
    return columns, rows


def apply_contrast(value: float, contrast: float) -> float:
    level = (contrast - 1.0) * CONTRAST_SPAN
    factor = (CONTRAST_MULTIPLIER * (level + CONTRAST_OFFSET)) / (CONTRAST_OFFSET * (CONTRAST_MULTIPLIER - level))
    adjusted = factor * (value - CONTRAST_CENTER) + CONTRAST_CENTER
    return max(0.0, min(1.0, adjusted))


def boost_dark(rgb: tuple[int, int, int], brightness: float) -> tuple[int, int, int]:
    """Brighten very dark display colors so they stay visible on a dark background"""
    if brightness >= DARK_BOOST_THRESHOLD:
        return rgb
    factor = DARK_BOOST_BASE + (DARK_BOOST_THRESHOLD - brightness) * DARK_BOOST_SLOPE
    return tuple(min(255, int(round(c * factor))) for c in rgb)


class GenerationJob:
    def __init__(self, generator: "FrameGenerator", raster: RasterFrame, grid_width: int, grid_height: int,
                 settings: GenerationSettings, high_res: RasterFrame | None = None):
        self.generator = generator
        self.settings = settings
        self.width = grid_width
        self.height = grid_height
        self.delay = raster.delay
        self.state = GenerationState.IDLE
        self.rows_done = 0
        self.grid: CharacterGrid | None = None
        self._cancel_requested = False
        self.sampler = generator.sampler_for(settings)

        if settings.edge_enhanced:
            self.raster = raster
            self.high_res = high_res or raster
        else:
            self.raster = raster.resample(grid_width, grid_height)
            self.high_res = None

        self.cells = np.zeros((grid_height, grid_width), dtype=GRID_DTYPE)
        self.error_field = (
            generator.quantizer.new_field(grid_width, grid_height)
            if settings.colored and settings.palette else None
        )

    @property
    def progress(self) -> float:
        return self.rows_done / self.height

    def cancel(self):
        self._cancel_requested = True

    def chunks(self) -> Iterator[RowChunk]:
        chunk_rows = self.generator.chunk_rows
        self.state = GenerationState.SAMPLING
        try:
            for start in range(0, self.height, chunk_rows):
                stop = min(self.height, start + chunk_rows)
                for y in range(start, stop):
                    self._fill_row(y)
                self.rows_done = stop

                if stop < self.height:
                    self.state = GenerationState.YIELDING
                yield RowChunk(start, stop, self.cells[start:stop], self.progress)

                if self._cancel_requested and self.rows_done < self.height:
                    self.state = GenerationState.CANCELLED
                    raise GenerationCancelled(self.rows_done, self.height)
                self.state = GenerationState.SAMPLING
        except GenerationCancelled:
            raise
        except Exception:
            self.state = GenerationState.FAILED
            raise

        self.grid = CharacterGrid(self.cells, self.settings.colored, self.delay)
        self.state = GenerationState.COMPLETE

    def run(self, progress: ProgressCallback | None = None,
            should_cancel: Callable[[], bool] | None = None) -> CharacterGrid:
        for chunk in self.chunks():
            if progress:
                progress(chunk.progress)
            if should_cancel and should_cancel():
                self.cancel()
        return self.grid

    def _fill_row(self, y: int):
        for x in range(self.width):
            sample = self.sampler.sample(self.raster, x, y, self.width, self.height, self.high_res)
            self.cells[y, x] = self._cell(sample, x, y)

    def _cell(self, sample: CellSample, x: int, y: int) -> tuple:
        settings = self.settings
        raw = pack_int24(sample.rgb) if settings.colored else 0

        if sample.is_transparent:
            if self.error_field is not None:
                self.error_field.take(x, y)
            return TRANSPARENT_CHAR, 0, raw, True, sample.edge_intensity

        mapper = self.generator.mapper
        brightness = apply_contrast(sample.brightness, settings.contrast)
        if settings.edge_enhanced:
            char = mapper.select_edge_aware_char(brightness, sample.edge_intensity, settings.inverted)
        else:
            char = mapper.brightness_to_char(brightness, settings.inverted)

        color = 0
        if settings.colored:
            display = boost_dark(sample.rgb, sample.brightness)
            if self.error_field is not None:
                display = self.generator.quantizer.quantize(display, x, y, self.error_field)
            color = pack_int24(display)

        return char, color, raw, False, sample.edge_intensity


class FrameGenerator:
    def __init__(self, sampler: PixelSampler | None = None, mapper: CharacterMapper | None = None,
                 quantizer: ColorQuantizer | None = None, chunk_rows: int = CHUNK_ROWS,
                 logger: logging.Logger | None = None):
        if chunk_rows < 1:
            raise ValueError("chunk_rows must be at least 1")
        self.sampler: PixelSampler | None = sampler
        self.mapper: CharacterMapper = mapper or CharacterMapper()
        self.quantizer: ColorQuantizer = quantizer or ColorQuantizer()
        self.chunk_rows: int = chunk_rows
        self.logger = logger or logging.getLogger(__name__)

    def sampler_for(self, settings: GenerationSettings) -> PixelSampler:
        if self.sampler is not None and self.sampler.sub_samples == settings.sub_samples:
            return self.sampler
        return PixelSampler(sub_samples=settings.sub_samples, logger=self.logger)

    def job(self, raster: RasterFrame, grid_width: int, grid_height: int, settings: GenerationSettings,
            high_res: RasterFrame | None = None) -> GenerationJob:
        """Validate the request and return a job that has not sampled anything yet"""
        if grid_width <= 0 or grid_height <= 0:
            raise ValidationError(f"Grid dimensions must be positive, got {grid_width}x{grid_height}")
        if raster.width <= 0 or raster.height <= 0:
            raise ValidationError(f"Source raster is empty ({raster.width}x{raster.height})")

        job = GenerationJob(self, raster, grid_width, grid_height, settings, high_res)
        self.logger.debug(
            "Generating %dx%d grid (colored=%s, edges=%s, palette=%s)",
            grid_width, grid_height, settings.colored, settings.edge_enhanced, settings.palette,
        )
        return job

    def generate(self, raster: RasterFrame, grid_width: int, grid_height: int, settings: GenerationSettings,
                 high_res: RasterFrame | None = None, progress: ProgressCallback | None = None,
                 should_cancel: Callable[[], bool] | None = None) -> CharacterGrid:
        return self.job(raster, grid_width, grid_height, settings, high_res).run(progress, should_cancel)

    async def generate_async(self, raster: RasterFrame, grid_width: int, grid_height: int,
                             settings: GenerationSettings, high_res: RasterFrame | None = None,
                             progress: ProgressCallback | None = None,
                             cancel_event: asyncio.Event | None = None) -> CharacterGrid:
        """Same as generate, but awaits between row chunks so the event loop keeps running"""
        job = self.job(raster, grid_width, grid_height, settings, high_res)
        for chunk in job.chunks():
            if progress:
                progress(chunk.progress)
            await asyncio.sleep(0)
            if cancel_event is not None and cancel_event.is_set():
                job.cancel()
        return job.grid

    def generate_document(self, document: GIFDocument, grid_width: int, grid_height: int,
                          settings: GenerationSettings,
                          progress: ProgressCallback | None = None) -> list[CharacterGrid]:
        """One grid per frame; each grid carries its frame's delay"""
        grids = []
        total = len(document.frames)
        for index, frame in enumerate(document.frames):
            grids.append(self.generate(frame, grid_width, grid_height, settings))
            if progress:
                progress((index + 1) / total)
        self.logger.debug("Generated %d frame grid(s)", total)
        return grids
