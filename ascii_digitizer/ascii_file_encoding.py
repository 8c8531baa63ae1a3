import io
import logging
import os
import struct
from typing import BinaryIO, List, Sequence

import numpy as np

from .errors import FormatError
from .grid import GRID_DTYPE, CharacterGrid
from .utils import format_file_size, pack_int24_chunk, unpack_int24_array

HEADER_FORMAT = "!4sHHHHI8s"
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 24 bytes
FRAME_HEADER_FORMAT = "!II"
FRAME_HEADER_SIZE = struct.calcsize(FRAME_HEADER_FORMAT)


class AsciiEncoder:
    """Encoder for .asc (ASCII Container) files holding one or more character grids"""

    MAGIC = b'ASCI'
    VERSION = 2

    # Flag bits
    FLAG_HAS_COLOR = 1 << 0
    FLAG_IS_ANIMATED = 1 << 1
    FLAG_HAS_RAW_COLOR = 1 << 2

    def __init__(self, logger: logging.Logger | None = None):
        self.frames: List[CharacterGrid] = []
        self.width = 0
        self.height = 0
        self.logger = logger or logging.getLogger(__name__)

    def add_frame(self, grid: CharacterGrid):
        if not self.frames:
            self.width, self.height = grid.width, grid.height
        elif (grid.width, grid.height) != (self.width, self.height):
            raise ValueError(
                f"Frame is {grid.width}x{grid.height}, expected {self.width}x{self.height}"
            )
        self.frames.append(grid)

    def add_frames(self, grids: Sequence[CharacterGrid]):
        for grid in grids:
            self.add_frame(grid)

    @staticmethod
    def _glyphs(grid: CharacterGrid) -> np.ndarray:
        # Unset cells hold an empty string
        return np.where(grid.chars == "", " ", grid.chars)

    def charmap(self) -> str:
        """Every glyph used by any frame, in first-seen order"""
        seen = dict.fromkeys(ch for grid in self.frames for ch in np.unique(self._glyphs(grid)).tolist())
        return "".join(seen)

    def write_to(self, f: BinaryIO):
        if not self.frames:
            raise ValueError("No frames added")

        charmap = self.charmap()
        if len(charmap) > 256:
            raise ValueError(f"Too many distinct characters ({len(charmap)}), at most 256 fit a frame")

        flags = 0
        has_color = self.frames[0].colored
        if has_color:
            flags |= self.FLAG_HAS_COLOR | self.FLAG_HAS_RAW_COLOR
        if len(self.frames) > 1:
            flags |= self.FLAG_IS_ANIMATED

        header = struct.pack(
            HEADER_FORMAT,
            self.MAGIC,           # Magic number (4 bytes)
            self.VERSION,         # Version (2 bytes)
            flags,                # Flags (2 bytes)
            self.width,           # Width (2 bytes)
            self.height,          # Height (2 bytes)
            len(self.frames),     # Frame count (4 bytes)
            b'\x00' * 8           # Reserved (8 bytes)
        )
        f.write(header)

        charmap_bytes = charmap.encode('utf-8')
        f.write(struct.pack('!H', len(charmap_bytes)))
        f.write(charmap_bytes)

        lookup = {ch: i for i, ch in enumerate(charmap)}
        for grid in self.frames:
            char_indices = np.vectorize(lookup.__getitem__, otypes=[np.uint8])(self._glyphs(grid)) \
                if grid.chars.size else np.zeros(grid.chars.shape, np.uint8)
            frame_data = char_indices.tobytes()
            frame_data += np.packbits(grid.cells["transparent"].ravel()).tobytes()

            if has_color:
                # Display colors, then the raw sampled colors
                for field in ("color", "raw_color"):
                    r, g, b = unpack_int24_array(grid.cells[field])
                    frame_data += np.stack([r, g, b], axis=-1).astype(np.uint8).tobytes()

            f.write(struct.pack(FRAME_HEADER_FORMAT, grid.delay, len(frame_data)))
            f.write(frame_data)

    def to_bytes(self) -> bytes:
        buffer = io.BytesIO()
        self.write_to(buffer)
        return buffer.getvalue()

    def write(self, output_path: str):
        """Write encoded data to file"""
        with open(output_path, 'wb') as f:
            self.write_to(f)
        self.logger.info(
            "Encoded %d frame(s) to %s (%s)",
            len(self.frames), output_path, format_file_size(os.path.getsize(output_path)),
        )


class AsciiDecoder:
    """Decoder for .asc (ASCII Container) files"""

    def __init__(self, logger: logging.Logger | None = None):
        self.width = 0
        self.height = 0
        self.charmap = ""
        self.has_color = False
        self.is_animated = False
        self.frames: List[CharacterGrid] = []
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def _read_exact(f: BinaryIO, size: int, what: str) -> bytes:
        data = f.read(size)
        if len(data) < size:
            raise FormatError(f"Invalid file: {what} truncated")
        return data

    @staticmethod
    def _unpack_rgb(data: bytes, height: int, width: int) -> np.ndarray:
        return pack_int24_chunk(np.frombuffer(data, dtype=np.uint8).reshape(height, width, 3))

    def read_from(self, f: BinaryIO) -> List[CharacterGrid]:
        header_data = self._read_exact(f, HEADER_SIZE, "header")
        magic, version, flags, width, height, frame_count, _ = struct.unpack(HEADER_FORMAT, header_data)

        if magic != AsciiEncoder.MAGIC:
            raise FormatError(f"Invalid file format: expected 'ASCI', got {magic}")
        if version != AsciiEncoder.VERSION:
            raise FormatError(f"Unsupported version: {version}")

        # Parse flags using bitmask with bitwise and for bool
        self.has_color = bool(flags & AsciiEncoder.FLAG_HAS_COLOR)
        self.is_animated = bool(flags & AsciiEncoder.FLAG_IS_ANIMATED)
        has_raw = self.has_color and bool(flags & AsciiEncoder.FLAG_HAS_RAW_COLOR)
        self.width = width
        self.height = height

        charmap_len = struct.unpack('!H', self._read_exact(f, 2, "charmap length"))[0]
        self.charmap = self._read_exact(f, charmap_len, "charmap").decode('utf-8')
        char_map_arr = np.array(list(self.charmap) or [" "], dtype='<U1')

        cell_count = width * height
        mask_size = (cell_count + 7) // 8
        color_size = cell_count * 3
        expected = cell_count + mask_size + (color_size if self.has_color else 0) + (color_size if has_raw else 0)

        self.frames = []
        for index in range(frame_count):
            delay, frame_size = struct.unpack(
                FRAME_HEADER_FORMAT, self._read_exact(f, FRAME_HEADER_SIZE, f"frame {index} header")
            )
            if frame_size != expected:
                raise FormatError(f"Invalid frame {index} size: expected {expected}, got {frame_size}")
            frame_data = self._read_exact(f, frame_size, f"frame {index}")

            char_indices = np.frombuffer(frame_data[:cell_count], dtype=np.uint8).reshape(height, width)
            if cell_count and char_indices.max() >= len(char_map_arr):
                raise FormatError(f"Frame {index} references a character outside the charmap")

            cells = np.zeros((height, width), dtype=GRID_DTYPE)
            cells["char"] = char_map_arr[char_indices]
            mask_bytes = np.frombuffer(frame_data[cell_count:cell_count + mask_size], dtype=np.uint8)
            cells["transparent"] = np.unpackbits(mask_bytes)[:cell_count].reshape(height, width).astype(bool)

            # Read 24 bit colors
            if self.has_color:
                start = cell_count + mask_size
                cells["color"] = self._unpack_rgb(frame_data[start:start + color_size], height, width)
                # Files without the raw table fall back to the display colors
                cells["raw_color"] = self._unpack_rgb(frame_data[start + color_size:], height, width) \
                    if has_raw else cells["color"]

            self.frames.append(CharacterGrid(cells, self.has_color, delay))

        self.logger.debug("Decoded %d frame(s) of %dx%d", len(self.frames), width, height)
        return self.frames

    def from_bytes(self, data: bytes) -> List[CharacterGrid]:
        return self.read_from(io.BytesIO(data))

    def read(self, input_path: str) -> List[CharacterGrid]:
        """Read and decode .asc file"""
        with open(input_path, 'rb') as f:
            return self.read_from(f)

    def get_frame(self, index: int) -> CharacterGrid:
        """Get a specific frame by index"""
        if index < 0 or index >= len(self.frames):
            raise IndexError(f"Frame index {index} out of range")
        return self.frames[index]
