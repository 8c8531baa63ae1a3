import numpy as np

from .config import LARGE_FILE_THRESHOLD


def pack_int24(color: tuple[int, int, int]) -> int:
    return (int(color[0]) << 16) | (int(color[1]) << 8) | int(color[2])


def unpack_int24(packed: int) -> tuple[int, int, int]:
    return ((packed >> 16) & 0xFF, (packed >> 8) & 0xFF, packed & 0xFF)


def pack_int24_chunk(rgb: np.ndarray) -> np.ndarray:
    """
    Args:
        rgb np.ndarray(shape=(H, W, 3), type=uint8) 8 bit color

    Returns:
        np.ndarray(shape=(H, W), type=uint32) packed 24-bit color
    """
    r = rgb[..., 0].astype(np.uint32)
    g = rgb[..., 1].astype(np.uint32)
    b = rgb[..., 2].astype(np.uint32)
    return (r << 16) | (g << 8) | b


def unpack_int24_array(colors: np.ndarray):
    r = (colors >> 16) & 0xFF
    g = (colors >> 8) & 0xFF
    b = colors & 0xFF
    return r, g, b


def format_file_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.2f} KB"
    return f"{size / (1024 * 1024):.2f} MB"


def is_large_file(size: int) -> bool:
    return size > LARGE_FILE_THRESHOLD
