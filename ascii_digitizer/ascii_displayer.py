import signal
import sys
import time
from contextlib import contextmanager
from typing import Sequence, TextIO

from .grid import CharacterGrid
from .utils import unpack_int24_array

ENTER_ALT_SCREEN = "\033[?1049h\033[?25l\033[H\033[2J"
LEAVE_ALT_SCREEN = "\033[?25h\033[?1049l"
HOME = "\033[H"
RESET = "\033[0m"


class AsciiDisplayer:
    def __init__(self, stream: TextIO | None = None):
        self.stream: TextIO = stream or sys.stdout

    def color_text(self, text: str, r: int, g: int, b: int):
        r = max(min(r, 255), 0)
        g = max(min(g, 255), 0)
        b = max(min(b, 255), 0)
        return f"\033[38;2;{r};{g};{b}m{text}"

    def render_grid(self, grid: CharacterGrid, colored: bool | None = None) -> str:
        """
        Render a grid to a string for the terminal.

        Colored grids get 24-bit ANSI escapes, emitted only when the color
        changes from the previous cell. Transparent cells are plain spaces.
        """
        if colored is None:
            colored = grid.colored
        if not (colored and grid.colored):
            return grid.to_text()

        lines = []
        for row in grid.cells:
            r, g, b = unpack_int24_array(row["color"])
            line = ""
            last_color = None
            for ch, transparent, ri, gi, bi in zip(row["char"], row["transparent"], r, g, b):
                if transparent:
                    if last_color is not None:
                        line += RESET
                        last_color = None
                    line += " "
                    continue
                color = (int(ri), int(gi), int(bi))
                if color != last_color:
                    line += self.color_text("", *color)
                    last_color = color
                line += str(ch)
            lines.append(line + RESET)
        return "\n".join(lines)

    def write_frame(self, grid: CharacterGrid, colored: bool | None = None):
        self.stream.write(f"{HOME}{self.render_grid(grid, colored)}")
        self.stream.flush()

    @contextmanager
    def terminal_session(self):
        """Alternate screen with hidden cursor, restored on exit or SIGINT/SIGTERM"""
        self.stream.write(ENTER_ALT_SCREEN)
        self.stream.flush()

        def cleanup():
            self.stream.write(LEAVE_ALT_SCREEN)
            self.stream.flush()

        def signal_handler(sig, frame):
            cleanup()
            sys.exit(0)

        previous = {sig: signal.signal(sig, signal_handler) for sig in (signal.SIGINT, signal.SIGTERM)}
        try:
            yield
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            cleanup()

    def display_grid(self, grid: CharacterGrid, colored: bool | None = None, wait: bool = True):
        with self.terminal_session():
            self.write_frame(grid, colored)
            if wait:
                input()

    def play(self, grids: Sequence[CharacterGrid], loops: int = 0, colored: bool | None = None):
        """
        Play grids using each grid's delay. loops=0 repeats until interrupted.

        Frames are skipped when playback falls behind the wall clock.
        """
        if not grids:
            return
        with self.terminal_session():
            played = 0
            while loops == 0 or played < loops:
                start_time = time.time()
                target_time = start_time
                for grid in grids:
                    target_time += grid.delay / 1000
                    # Skip frame if behind
                    if time.time() > target_time:
                        continue
                    self.write_frame(grid, colored)
                    sleep_time = target_time - time.time()
                    if sleep_time > 0:
                        time.sleep(sleep_time)
                played += 1
