import io
import struct
from dataclasses import dataclass

import numpy as np
import pytest
from PIL import Image

from ascii_digitizer import FrameGenerator, RasterFrame

RED = (255, 0, 0)
GREEN = (0, 255, 0)
BLUE = (0, 0, 255)
WHITE = (255, 255, 255)


def lzw_uncompressed(indices, min_code_size: int) -> bytes:
    """
    LZW stream that only ever emits literal codes.

    A clear code goes out before the decoder's table would grow past the
    initial code width, so every code is min_code_size + 1 bits wide.
    """
    clear = 1 << min_code_size
    end = clear + 1
    width = min_code_size + 1
    run = (1 << min_code_size) - 2

    codes = []
    for i, index in enumerate(indices):
        if i % run == 0:
            codes.append(clear)
        codes.append(int(index))
    codes.append(end)

    out = bytearray()
    buffer = 0
    bits = 0
    for code in codes:
        buffer |= code << bits
        bits += width
        while bits >= 8:
            out.append(buffer & 0xFF)
            buffer >>= 8
            bits -= 8
    if bits:
        out.append(buffer & 0xFF)
    return bytes(out)


def sub_blocks(data: bytes) -> bytes:
    out = bytearray()
    for i in range(0, len(data), 255):
        chunk = data[i:i + 255]
        out.append(len(chunk))
        out += chunk
    out.append(0)
    return bytes(out)


@dataclass
class GifFrame:
    indices: np.ndarray  # (h, w) palette indices
    left: int = 0
    top: int = 0
    delay: int = 0  # centiseconds
    disposal: int = 0
    transparent_index: int | None = None
    raw_lzw: bytes | None = None


def write_gif(width: int, height: int, palette, frames, loop: int | None = None,
              comment: str | None = None, min_code_size: int = 2) -> bytes:
    """Minimal GIF89a writer with a global color table"""
    table_bits = max(1, int(np.ceil(np.log2(max(2, len(palette))))))
    table = list(palette) + [(0, 0, 0)] * ((1 << table_bits) - len(palette))

    out = bytearray(b"GIF89a")
    out += struct.pack("<HHBBB", width, height, 0x80 | (table_bits - 1), 0, 0)
    for r, g, b in table:
        out += bytes((r, g, b))

    if loop is not None:
        out += b"\x21\xFF\x0BNETSCAPE2.0" + bytes((3, 1)) + struct.pack("<H", loop) + b"\x00"
    if comment is not None:
        out += b"\x21\xFE" + sub_blocks(comment.encode("latin-1"))

    for frame in frames:
        packed = (frame.disposal << 2) | (1 if frame.transparent_index is not None else 0)
        out += b"\x21\xF9\x04" + struct.pack(
            "<BHB", packed, frame.delay, frame.transparent_index or 0
        ) + b"\x00"

        h, w = frame.indices.shape
        out += b"\x2C" + struct.pack("<HHHHB", frame.left, frame.top, w, h, 0)
        out.append(min_code_size)
        stream = frame.raw_lzw if frame.raw_lzw is not None else \
            lzw_uncompressed(frame.indices.ravel(), min_code_size)
        out += sub_blocks(stream)

    out += b"\x3B"
    return bytes(out)


def solid(width: int, height: int, index: int) -> np.ndarray:
    return np.full((height, width), index, dtype=np.uint8)


def solid_raster(width: int, height: int, rgba, delay: int = 100) -> RasterFrame:
    pixels = np.zeros((height, width, 4), dtype=np.uint8)
    pixels[:, :] = rgba
    return RasterFrame(width, height, pixels, delay)


def png_bytes(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


@pytest.fixture
def generator():
    return FrameGenerator()


@pytest.fixture
def gray_raster():
    return solid_raster(8, 8, (128, 128, 128, 255))


@pytest.fixture
def split_raster():
    """Black left half, white right half"""
    pixels = np.zeros((8, 8, 4), dtype=np.uint8)
    pixels[..., 3] = 255
    pixels[:, 4:, :3] = 255
    return RasterFrame(8, 8, pixels)


@pytest.fixture
def sample_gif_path(tmp_path):
    """60x40 two-frame GIF written by Pillow"""
    path = tmp_path / "sample.gif"
    first = Image.new("RGB", (60, 40), (30, 30, 30))
    second = Image.new("RGB", (60, 40), (220, 220, 220))
    first.save(path, save_all=True, append_images=[second], duration=[100, 200], loop=0)
    return str(path)
