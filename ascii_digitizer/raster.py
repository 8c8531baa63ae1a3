"""
In-memory RGBA rasters.

A RasterFrame is the only pixel source the sampling code sees. It never
touches a drawing surface: resampling is an area average done on the
numpy buffer.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Protocol, runtime_checkable

import numpy as np
from numba import njit, prange
from PIL import Image

from .config import DEFAULT_FRAME_DELAY


class Disposal(IntEnum):
    NONE = 1
    BACKGROUND = 2
    PREVIOUS = 3

    @classmethod
    def from_code(cls, code: int) -> "Disposal":
        # 0 (unspecified) and the reserved codes 4-7 behave like "leave in place"
        if code == 2:
            return cls.BACKGROUND
        if code == 3:
            return cls.PREVIOUS
        return cls.NONE


@runtime_checkable
class RasterSource(Protocol):
    """Anything the fast sampling path can read pixels from"""

    width: int
    height: int

    def get_pixel(self, x: int, y: int) -> tuple[int, int, int, int]: ...

    def resample(self, width: int, height: int) -> "RasterSource": ...


@njit(parallel=True, fastmath=True)
def box_resample(img: np.ndarray, out_w: int, out_h: int) -> np.ndarray:
    h, w, _ = img.shape
    out = np.zeros((out_h, out_w, 4), np.uint8)

    for cy in prange(out_h):
        y0 = (cy * h) // out_h
        y1 = ((cy + 1) * h) // out_h
        if y1 <= y0:
            y1 = y0 + 1

        for cx in range(out_w):
            x0 = (cx * w) // out_w
            x1 = ((cx + 1) * w) // out_w
            if x1 <= x0:
                x1 = x0 + 1

            r = g = b = 0.0
            a_sum = 0.0
            count = 0

            for y in range(y0, y1):
                for x in range(x0, x1):
                    a = float(img[y, x, 3])
                    r += img[y, x, 0] * a
                    g += img[y, x, 1] * a
                    b += img[y, x, 2] * a
                    a_sum += a
                    count += 1

            # Alpha weighted so fully transparent pixels do not darken the average
            if a_sum > 0.0:
                out[cy, cx, 0] = np.uint8(min(255.0, r / a_sum + 0.5))
                out[cy, cx, 1] = np.uint8(min(255.0, g / a_sum + 0.5))
                out[cy, cx, 2] = np.uint8(min(255.0, b / a_sum + 0.5))
            out[cy, cx, 3] = np.uint8(min(255.0, a_sum / count + 0.5))

    return out


def luminance(rgb: np.ndarray) -> np.ndarray:
    """Rec. 601 luma of (..., 3+) uint8 data, normalized to [0, 1]"""
    rgb = rgb.astype(np.float32)
    return (0.299 * rgb[..., 0] + 0.587 * rgb[..., 1] + 0.114 * rgb[..., 2]) / 255.0


@dataclass(frozen=True, eq=False)
class RasterFrame:
    """
    Immutable RGBA raster.

    pixels is a read-only uint8 array of shape (height, width, 4), row major.
    delay is in milliseconds; disposal is the hint recorded by the GIF
    decoder (always NONE for static images).
    """
    width: int
    height: int
    pixels: np.ndarray
    delay: int = DEFAULT_FRAME_DELAY
    disposal: Disposal = Disposal.NONE

    def __post_init__(self):
        if self.pixels.shape != (self.height, self.width, 4):
            raise ValueError(
                f"pixel buffer shape {self.pixels.shape} does not match {self.width}x{self.height} RGBA"
            )
        pixels = np.ascontiguousarray(self.pixels, dtype=np.uint8)
        pixels.flags.writeable = False
        object.__setattr__(self, "pixels", pixels)

    @classmethod
    def from_bytes(cls, width: int, height: int, data: bytes, delay: int = DEFAULT_FRAME_DELAY,
                   disposal: Disposal = Disposal.NONE) -> "RasterFrame":
        if len(data) != width * height * 4:
            raise ValueError(f"Expected {width * height * 4} bytes of RGBA, got {len(data)}")
        pixels = np.frombuffer(data, dtype=np.uint8).reshape(height, width, 4)
        return cls(width, height, pixels.copy(), delay, disposal)

    @classmethod
    def from_image(cls, image: Image.Image, delay: int = DEFAULT_FRAME_DELAY) -> "RasterFrame":
        if image.mode != "RGBA":
            image = image.convert("RGBA")
        pixels = np.array(image, dtype=np.uint8)
        height, width, _ = pixels.shape
        return cls(width, height, pixels, delay)

    def to_image(self) -> Image.Image:
        return Image.fromarray(np.array(self.pixels), "RGBA")

    def tobytes(self) -> bytes:
        return self.pixels.tobytes()

    def get_pixel(self, x: int, y: int) -> tuple[int, int, int, int]:
        r, g, b, a = self.pixels[y, x]
        return int(r), int(g), int(b), int(a)

    def resample(self, width: int, height: int) -> "RasterFrame":
        """Area-average to width x height. Returns self when already that size."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Cannot resample to {width}x{height}")
        if (width, height) == (self.width, self.height):
            return self
        out = box_resample(self.pixels, width, height)
        return RasterFrame(width, height, out, self.delay, self.disposal)
