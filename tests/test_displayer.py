import io

import numpy as np

from ascii_digitizer import AsciiDisplayer, CharacterGrid
from ascii_digitizer.ascii_displayer import ENTER_ALT_SCREEN, LEAVE_ALT_SCREEN, RESET
from ascii_digitizer.grid import GRID_DTYPE


def colored_row(colors, transparent=()) -> CharacterGrid:
    cells = np.zeros((1, len(colors)), dtype=GRID_DTYPE)
    cells["char"] = "#"
    cells["color"] = colors
    for x in transparent:
        cells["transparent"][0, x] = True
        cells["char"][0, x] = " "
    return CharacterGrid(cells, colored=True)


def test_monochrome_renders_plain_text():
    grid = CharacterGrid.from_text("#.\n.#")
    assert AsciiDisplayer(io.StringIO()).render_grid(grid) == "#.\n.#"


def test_color_escape_only_on_change():
    rendered = AsciiDisplayer(io.StringIO()).render_grid(colored_row([0xFF0000, 0xFF0000, 0x00FF00]))

    assert rendered.count("\033[38;2;") == 2
    assert rendered.startswith("\033[38;2;255;0;0m##")
    assert "\033[38;2;0;255;0m#" in rendered
    assert rendered.endswith(RESET)


def test_transparent_cells_reset_color():
    rendered = AsciiDisplayer(io.StringIO()).render_grid(colored_row([0xFF0000, 0, 0xFF0000], transparent=[1]))
    assert rendered.count("\033[38;2;255;0;0m") == 2
    assert f"#{RESET} " in rendered


def test_colored_grid_can_render_without_color():
    grid = colored_row([0xFF0000, 0x00FF00])
    assert AsciiDisplayer(io.StringIO()).render_grid(grid, colored=False) == "##"


def test_color_text_clamps():
    assert AsciiDisplayer(io.StringIO()).color_text("x", 300, -5, 10) == "\033[38;2;255;0;10mx"


def test_play_writes_every_frame(monkeypatch):
    monkeypatch.setattr("ascii_digitizer.ascii_displayer.time.sleep", lambda seconds: None)
    stream = io.StringIO()
    grids = [CharacterGrid.from_text("AA", delay=20), CharacterGrid.from_text("BB", delay=20)]

    AsciiDisplayer(stream).play(grids, loops=1)

    output = stream.getvalue()
    assert output.startswith(ENTER_ALT_SCREEN)
    assert output.endswith(LEAVE_ALT_SCREEN)
    assert "AA" in output and "BB" in output


def test_play_nothing():
    stream = io.StringIO()
    AsciiDisplayer(stream).play([], loops=1)
    assert stream.getvalue() == ""
