"""
File-at-a-time export of character grids: plain text, rendered bitmaps,
per-frame directories and animated GIFs.
"""

import logging
import math
import os
from typing import Sequence

from PIL import Image, ImageDraw, ImageFont

from .config import BACKGROUND_COLOR, CHAR_ASPECT_RATIO, LINE_HEIGHT_RATIO, TEXT_COLOR
from .grid import CharacterGrid, to_plain_text

logger = logging.getLogger(__name__)

FRAME_FORMATS = ("txt", "png")


def load_font(font_size: int, font_path: str | None = None):
    if font_path:
        try:
            return ImageFont.truetype(font_path, size=font_size)
        except OSError:
            logger.warning("Could not load font %s, using Pillow's default font", font_path)
    return ImageFont.load_default(size=font_size)


def cell_size(font_size: int) -> tuple[int, int]:
    return math.ceil(font_size * CHAR_ASPECT_RATIO), math.ceil(font_size * LINE_HEIGHT_RATIO)


def render_image(grid: CharacterGrid, font_size: int = 8, font_path: str | None = None,
                 background=BACKGROUND_COLOR, foreground=TEXT_COLOR) -> Image.Image:
    """
    Draw a grid onto an RGB image, one glyph per cell.

    Monochrome grids use foreground for every glyph; colored grids use each
    cell's display color. Transparent cells are left as background.
    """
    char_w, line_h = cell_size(font_size)
    image = Image.new("RGB", (max(1, grid.width * char_w), max(1, grid.height * line_h)), background)
    draw = ImageDraw.Draw(image)
    font = load_font(font_size, font_path)

    colors = grid.rgb()
    chars = grid.chars
    transparent = grid.cells["transparent"]
    for y in range(grid.height):
        for x in range(grid.width):
            ch = str(chars[y, x])
            if transparent[y, x] or ch == " ":
                continue
            fill = tuple(int(c) for c in colors[y, x]) if colors is not None else foreground
            draw.text((x * char_w, y * line_h), ch, font=font, fill=fill)
    return image


def save_text(grid: CharacterGrid, path: str):
    with open(path, "w", encoding="utf-8") as f:
        f.write(to_plain_text(grid))
    logger.debug("Wrote %dx%d text grid to %s", grid.width, grid.height, path)


def load_text(path: str) -> CharacterGrid:
    with open(path, encoding="utf-8") as f:
        return CharacterGrid.from_text(f.read())


def save_image(grid: CharacterGrid, path: str, font_size: int = 8, font_path: str | None = None):
    render_image(grid, font_size, font_path).save(path)
    logger.debug("Wrote grid image to %s", path)


def save_frames(grids: Sequence[CharacterGrid], directory: str, fmt: str = "txt", font_size: int = 8,
                font_path: str | None = None) -> list[str]:
    """Write frame_<i>.<fmt> per grid into directory and return the paths"""
    if fmt not in FRAME_FORMATS:
        raise ValueError(f"Unsupported frame format '{fmt}', expected one of {', '.join(FRAME_FORMATS)}")
    os.makedirs(directory, exist_ok=True)

    paths = []
    for i, grid in enumerate(grids):
        path = os.path.join(directory, f"frame_{i}.{fmt}")
        if fmt == "txt":
            save_text(grid, path)
        else:
            save_image(grid, path, font_size, font_path)
        paths.append(path)
    logger.debug("Wrote %d frame(s) to %s", len(paths), directory)
    return paths


def save_gif(grids: Sequence[CharacterGrid], path: str, font_size: int = 8, font_path: str | None = None):
    """Animated GIF of the rendered grids, looping forever, durations from grid delays"""
    if not grids:
        raise ValueError("No frames to write")
    images = [render_image(grid, font_size, font_path) for grid in grids]
    images[0].save(
        path,
        format="GIF",
        save_all=True,
        append_images=images[1:],
        duration=[grid.delay for grid in grids],
        loop=0,
        optimize=False,
    )
    logger.debug("Wrote %d frame GIF to %s", len(images), path)
