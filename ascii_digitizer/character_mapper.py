import math

from .config import (
    ASCII_CHARS,
    BLANK_GUARD_BRIGHTNESS,
    BLANK_GUARD_CAP,
    EDGE_CHARS,
    EDGE_TIERS,
    GAMMA,
    SPARSE_BRIGHTNESS,
)


class CharacterMapper:
    """
    Brightness -> glyph lookup over a dark-to-light ramp.

    Brightness is gamma corrected (b ** 0.8) before indexing so shadows spread
    over more of the ramp, and anything brighter than 10% is kept off the
    blank end of the ramp.
    """

    def __init__(self, ramp: str = ASCII_CHARS, edge_ramps: dict[str, str] | None = None):
        if len(ramp) < 2:
            raise ValueError("Glyph ramp needs at least two characters")
        self.ramp: str = ramp
        self.ramp_inverted: str = ramp[::-1]
        self.edge_ramps: dict[str, str] = dict(edge_ramps or EDGE_CHARS)

    def get_ramp(self, inverted: bool = False) -> str:
        return self.ramp_inverted if inverted else self.ramp

    @staticmethod
    def adjust(brightness: float) -> float:
        brightness = min(1.0, max(0.0, brightness))
        adjusted = brightness ** GAMMA
        if brightness > BLANK_GUARD_BRIGHTNESS and adjusted > BLANK_GUARD_CAP:
            adjusted = BLANK_GUARD_CAP
        return adjusted

    def ramp_index(self, brightness: float, length: int) -> int:
        return math.floor(self.adjust(brightness) * (length - 1))

    def brightness_to_char(self, brightness: float, inverted: bool = False) -> str:
        chars = self.get_ramp(inverted)
        return chars[self.ramp_index(brightness, len(chars))]

    def edge_tier(self, brightness: float, edge_intensity: float) -> str:
        for bound, tier in EDGE_TIERS:
            if edge_intensity >= bound:
                return tier
        return "sparse" if brightness > SPARSE_BRIGHTNESS else "light"

    def select_edge_aware_char(self, brightness: float, edge_intensity: float, inverted: bool = False) -> str:
        chars = self.edge_ramps[self.edge_tier(brightness, edge_intensity)]
        if inverted:
            chars = chars[::-1]
        return chars[self.ramp_index(brightness, len(chars))]

    @staticmethod
    def rgb_to_brightness(r: float, g: float, b: float) -> float:
        return (0.299 * r + 0.587 * g + 0.114 * b) / 255
