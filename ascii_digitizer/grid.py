from dataclasses import dataclass
from typing import Iterator

import numpy as np

from .config import DEFAULT_FRAME_DELAY, TRANSPARENT_CHAR
from .utils import unpack_int24, unpack_int24_array

# One record per character cell. Colors are packed 0xRRGGBB.
GRID_DTYPE = np.dtype([
    ("char", "<U1"),
    ("color", np.uint32),
    ("raw_color", np.uint32),
    ("transparent", np.bool_),
    ("edge", np.float32),
])


@dataclass(frozen=True)
class CharacterCell:
    char: str
    color: tuple[int, int, int] | None = None
    transparent: bool = False
    edge_intensity: float = 0.0


class CharacterGrid:
    """
    Rows x columns of character cells for one frame.

    Backed by a 2D structured array, so every row has the same length by
    construction. color only means something when colored is True;
    raw_color keeps the sampled color before display adjustments and
    palette quantization.
    """

    def __init__(self, cells: np.ndarray, colored: bool = False, delay: int = DEFAULT_FRAME_DELAY):
        if cells.dtype != GRID_DTYPE or cells.ndim != 2:
            raise ValueError(f"Expected a 2D array of GRID_DTYPE, got {cells.ndim}D {cells.dtype}")
        self.cells: np.ndarray = cells
        self.colored: bool = colored
        self.delay: int = delay

    @classmethod
    def blank(cls, width: int, height: int, colored: bool = False,
              delay: int = DEFAULT_FRAME_DELAY) -> "CharacterGrid":
        cells = np.zeros((height, width), dtype=GRID_DTYPE)
        cells["char"] = TRANSPARENT_CHAR
        return cls(cells, colored, delay)

    @classmethod
    def from_text(cls, text: str, delay: int = DEFAULT_FRAME_DELAY) -> "CharacterGrid":
        """Monochrome grid from the plain text form. Lines must be equal length."""
        lines = text.split("\n")
        width = len(lines[0])
        if any(len(line) != width for line in lines):
            raise ValueError("All lines of a character grid must have the same length")
        cells = np.zeros((len(lines), width), dtype=GRID_DTYPE)
        if width:
            cells["char"] = np.array([list(line) for line in lines], dtype="<U1")
        return cls(cells, False, delay)

    @property
    def width(self) -> int:
        return self.cells.shape[1]

    @property
    def height(self) -> int:
        return self.cells.shape[0]

    @property
    def chars(self) -> np.ndarray:
        return self.cells["char"]

    def cell(self, x: int, y: int) -> CharacterCell:
        record = self.cells[y, x]
        color = unpack_int24(int(record["color"])) if self.colored and not record["transparent"] else None
        return CharacterCell(str(record["char"]), color, bool(record["transparent"]), float(record["edge"]))

    def row(self, y: int) -> list[CharacterCell]:
        return [self.cell(x, y) for x in range(self.width)]

    def __iter__(self) -> Iterator[list[CharacterCell]]:
        for y in range(self.height):
            yield self.row(y)

    def __len__(self) -> int:
        return self.height

    def lines(self) -> list[str]:
        return ["".join(row) for row in self.cells["char"].tolist()]

    def to_text(self) -> str:
        return "\n".join(self.lines())

    def rgb(self, raw: bool = False) -> np.ndarray | None:
        """(H, W, 3) uint8 colors, or None for a monochrome grid"""
        if not self.colored:
            return None
        r, g, b = unpack_int24_array(self.cells["raw_color" if raw else "color"])
        return np.stack([r, g, b], axis=-1).astype(np.uint8)

    def raw_colors(self) -> list[list[tuple[int, int, int]]] | None:
        colors = self.rgb(raw=True)
        if colors is None:
            return None
        return [[tuple(int(c) for c in px) for px in row] for row in colors]

    def __eq__(self, other) -> bool:
        if not isinstance(other, CharacterGrid):
            return NotImplemented
        return (self.colored == other.colored
                and self.cells.shape == other.cells.shape
                and bool(np.array_equal(self.cells, other.cells)))

    def __repr__(self) -> str:
        return f"CharacterGrid({self.width}x{self.height}, colored={self.colored}, delay={self.delay})"


def to_plain_text(grid: CharacterGrid) -> str:
    """Glyphs joined per row, rows joined by newline. Color is dropped."""
    return grid.to_text()
