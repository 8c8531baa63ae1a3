import io

import numpy as np
import pytest
from PIL import Image

from ascii_digitizer import Disposal, FormatError, GIFDecoder, load_document
from ascii_digitizer.gif_decoder import clamp_delay, deinterlace, lzw_decode

from conftest import BLUE, GREEN, RED, WHITE, GifFrame, png_bytes, solid, write_gif

PALETTE = [RED, GREEN, BLUE, WHITE]


def decode(data):
    return GIFDecoder().decode(data)


def test_rejects_missing_signature():
    with pytest.raises(FormatError):
        decode(b"\x89PNG\r\n\x1a\n" + b"\x00" * 32)


def test_rejects_truncated_header():
    with pytest.raises(FormatError):
        decode(b"GIF89a\x04\x00")


def test_rejects_stream_without_frames():
    data = write_gif(4, 4, PALETTE, [])
    with pytest.raises(FormatError):
        decode(data)


def test_single_frame():
    indices = np.array([[0, 1], [2, 3]], dtype=np.uint8)
    document = decode(write_gif(2, 2, PALETTE, [GifFrame(indices)]))

    assert (document.width, document.height) == (2, 2)
    assert document.frame_count == 1
    assert not document.is_animated
    pixels = document.frames[0].pixels
    assert tuple(pixels[0, 0]) == (*RED, 255)
    assert tuple(pixels[0, 1]) == (*GREEN, 255)
    assert tuple(pixels[1, 0]) == (*BLUE, 255)
    assert tuple(pixels[1, 1]) == (*WHITE, 255)


def test_disposal_background_clears_previous_frame():
    frames = [
        GifFrame(solid(4, 4, 0), disposal=2),
        GifFrame(solid(2, 2, 1)),
    ]
    document = decode(write_gif(4, 4, PALETTE, frames))

    second = document.frames[1].pixels
    assert tuple(second[0, 0]) == (*GREEN, 255)
    assert tuple(second[3, 3]) == (0, 0, 0, 0)
    assert document.frames[0].disposal == Disposal.BACKGROUND


def test_disposal_none_keeps_canvas():
    frames = [
        GifFrame(solid(4, 4, 0)),
        GifFrame(solid(2, 2, 1)),
    ]
    document = decode(write_gif(4, 4, PALETTE, frames))

    second = document.frames[1].pixels
    assert tuple(second[1, 1]) == (*GREEN, 255)
    assert tuple(second[3, 3]) == (*RED, 255)


def test_disposal_previous_restores_canvas():
    frames = [
        GifFrame(solid(4, 4, 0)),
        GifFrame(solid(2, 2, 1), disposal=3),
        GifFrame(solid(2, 2, 2), left=2, top=2),
    ]
    document = decode(write_gif(4, 4, PALETTE, frames))

    assert tuple(document.frames[1].pixels[0, 0]) == (*GREEN, 255)
    third = document.frames[2].pixels
    assert tuple(third[0, 0]) == (*RED, 255)
    assert tuple(third[3, 3]) == (*BLUE, 255)


def test_transparent_index_leaves_canvas_alone():
    overlay = np.array([[1, 3], [3, 1]], dtype=np.uint8)
    frames = [
        GifFrame(solid(2, 2, 0)),
        GifFrame(overlay, transparent_index=3),
    ]
    document = decode(write_gif(2, 2, PALETTE, frames))

    second = document.frames[1].pixels
    assert tuple(second[0, 0]) == (*GREEN, 255)
    assert tuple(second[0, 1]) == (*RED, 255)
    assert tuple(second[1, 0]) == (*RED, 255)


def test_transparent_first_frame_stays_transparent():
    frames = [GifFrame(solid(2, 2, 3), transparent_index=3)]
    document = decode(write_gif(2, 2, PALETTE, frames))
    assert (document.frames[0].pixels[..., 3] == 0).all()


@pytest.mark.parametrize("centiseconds, expected", [
    (0, 100),
    (1, 20),
    (5, 50),
    (25, 250),
    (1000, 5000),
])
def test_clamp_delay(centiseconds, expected):
    assert clamp_delay(centiseconds) == expected


def test_frame_delays_are_clamped():
    frames = [GifFrame(solid(2, 2, 0), delay=0), GifFrame(solid(2, 2, 1), delay=1),
              GifFrame(solid(2, 2, 2), delay=7)]
    document = decode(write_gif(2, 2, PALETTE, frames))
    assert [frame.delay for frame in document.frames] == [100, 20, 70]


def test_corrupt_block_keeps_other_frames():
    # clear code (4) followed by code 7, which is not in the table yet
    bad = bytes([4 | (7 << 3)])
    frames = [
        GifFrame(solid(2, 2, 0)),
        GifFrame(solid(2, 2, 1), raw_lzw=bad),
        GifFrame(solid(2, 2, 2)),
    ]
    document = decode(write_gif(2, 2, PALETTE, frames))

    assert document.frame_count == 2
    assert tuple(document.frames[1].pixels[0, 0]) == (*BLUE, 255)
    assert len(document.decode_errors) == 1
    assert document.decode_errors[0].frame_index == 1


def test_truncated_stream_keeps_decoded_frames():
    data = write_gif(2, 2, PALETTE, [GifFrame(solid(2, 2, 0)), GifFrame(solid(2, 2, 1))])
    # Drop the second block's data sub-blocks and the trailer
    document = decode(data[:-6])

    assert document.frame_count == 1
    assert len(document.decode_errors) == 1


def test_loop_count_and_comments():
    data = write_gif(2, 2, PALETTE, [GifFrame(solid(2, 2, 0))], loop=0, comment="made by hand")
    document = decode(data)
    assert document.loop_count == 0
    assert document.comments == ["made by hand"]


def test_loop_count_absent():
    document = decode(write_gif(2, 2, PALETTE, [GifFrame(solid(2, 2, 0))]))
    assert document.loop_count is None


def test_lzw_decode_handles_repeated_string():
    # Code 6 arrives before the decoder has added it (KwKwK)
    # clear=4, 3 bit codes: 4, 0, 6, 5
    codes = [4, 0, 6, 5]
    buffer = 0
    for i, code in enumerate(codes):
        buffer |= code << (3 * i)
    data = np.frombuffer(buffer.to_bytes(2, "little"), dtype=np.uint8)
    out = np.zeros(3, dtype=np.uint8)

    assert lzw_decode(data, 2, out) == 3
    assert out.tolist() == [0, 0, 0]


def test_deinterlace_row_order():
    height, width = 8, 1
    # Interlaced stream order is rows 0, 4, 2, 6, 1, 3, 5, 7
    stream = np.array([0, 4, 2, 6, 1, 3, 5, 7], dtype=np.uint8)
    assert deinterlace(stream, width, height).tolist() == list(range(8))


def pillow_gif(frames, durations) -> bytes:
    buffer = io.BytesIO()
    frames[0].save(buffer, format="GIF", save_all=True, append_images=frames[1:],
                   duration=durations, loop=0, optimize=False)
    return buffer.getvalue()


def striped(shift: int) -> Image.Image:
    rows = (np.arange(16)[:, None] + shift) % 4
    image = Image.frombytes("P", (16, 16), np.repeat(rows, 16, axis=1).astype(np.uint8).tobytes())
    image.putpalette([c for color in PALETTE for c in color])
    return image


def test_decodes_pillow_interlaced_animation():
    data = pillow_gif([striped(0), striped(1), striped(2)], [100, 200, 300])
    document = decode(data)

    assert document.frame_count == 3
    assert [frame.delay for frame in document.frames] == [100, 200, 300]
    assert document.loop_count == 0
    assert not document.decode_errors
    for shift, frame in enumerate(document.frames):
        for y in range(16):
            expected = PALETTE[(y + shift) % 4]
            assert tuple(frame.pixels[y, 5, :3]) == expected


def test_load_document_falls_back_to_static_image():
    image = Image.new("RGBA", (3, 2), (10, 20, 30, 255))
    document = load_document(png_bytes(image))

    assert document.frame_count == 1
    assert (document.width, document.height) == (3, 2)
    assert tuple(document.frames[0].pixels[1, 2]) == (10, 20, 30, 255)


def test_load_document_rejects_garbage():
    with pytest.raises(FormatError):
        load_document(b"not an image at all")


def test_is_large_uses_source_size():
    document = decode(write_gif(2, 2, PALETTE, [GifFrame(solid(2, 2, 0))]))
    assert not document.is_large
    assert document.size > 0


def test_background_disposal_clears_whole_canvas():
    frames = [
        GifFrame(solid(1, 1, 0)),
        GifFrame(solid(1, 1, 1), left=2, top=2, disposal=2),
        GifFrame(solid(1, 1, 2), left=1, top=1),
    ]
    document = decode(write_gif(3, 3, PALETTE, frames))

    assert tuple(document.frames[1].pixels[0, 0]) == (*RED, 255)
    third = document.frames[2].pixels
    assert third[0, 0, 3] == 0
    assert third[2, 2, 3] == 0
    assert tuple(third[1, 1]) == (*BLUE, 255)


def test_short_graphic_control_keeps_walking():
    frames = [GifFrame(solid(2, 2, 0), delay=50), GifFrame(solid(2, 2, 1), delay=50)]
    data = write_gif(2, 2, PALETTE, frames)
    full = b"\x21\xF9\x04\x00\x32\x00\x00\x00"
    assert data.count(full) == 2
    data = data.replace(full, b"\x21\xF9\x02\x00\x32\x00", 1)

    document = decode(data)

    assert document.frame_count == 2
    assert [frame.delay for frame in document.frames] == [100, 500]
    assert len(document.decode_errors) == 1
    assert document.decode_errors[0].frame_index == 0
    assert tuple(document.frames[1].pixels[0, 0]) == (*GREEN, 255)
