"""
GIF container parser.

Walks the block structure of a GIF87a/GIF89a stream, LZW-decompresses every
image block and composites it onto a persistent canvas, honoring each
frame's disposal method. The result is a GIFDocument whose frames are all
full-canvas RGBA rasters.
"""

import io
import logging
from dataclasses import dataclass, field

import numpy as np
from numba import njit
from PIL import Image, UnidentifiedImageError

from .config import DEFAULT_FRAME_DELAY, MAX_FRAME_DELAY, MIN_FRAME_DELAY
from .errors import FormatError, PartialDecodeError
from .raster import Disposal, RasterFrame
from .utils import is_large_file

SIGNATURES = (b"GIF87a", b"GIF89a")

EXTENSION_INTRODUCER = 0x21
IMAGE_SEPARATOR = 0x2C
TRAILER = 0x3B

GRAPHIC_CONTROL_LABEL = 0xF9
COMMENT_LABEL = 0xFE
APPLICATION_LABEL = 0xFF

MAX_CODE_SIZE = 12
MAX_TABLE_SIZE = 1 << MAX_CODE_SIZE

# (first row, step) for each interlace pass
INTERLACE_PASSES = ((0, 8), (4, 8), (2, 4), (1, 2))


@njit
def lzw_decode(data: np.ndarray, min_code_size: int, out: np.ndarray) -> int:
    """
    Decode a GIF LZW stream into out.

    Returns the number of indices written (at most len(out)), or -1 when the
    stream references a code that is not in the table yet.
    """
    clear_code = 1 << min_code_size
    end_code = clear_code + 1

    prefix = np.full(MAX_TABLE_SIZE, -1, np.int32)
    suffix = np.zeros(MAX_TABLE_SIZE, np.uint8)
    first = np.zeros(MAX_TABLE_SIZE, np.uint8)
    length = np.zeros(MAX_TABLE_SIZE, np.int32)
    for i in range(clear_code):
        suffix[i] = i
        first[i] = i
        length[i] = 1

    code_size = min_code_size + 1
    code_mask = (1 << code_size) - 1
    next_code = end_code + 1
    prev = -1

    bit_buffer = 0
    bit_count = 0
    pos = 0
    op = 0
    n_in = data.shape[0]
    n_out = out.shape[0]

    while True:
        while bit_count < code_size:
            if pos >= n_in:
                # Stream ended without an end code
                return op
            bit_buffer |= np.int64(data[pos]) << bit_count
            bit_count += 8
            pos += 1

        code = bit_buffer & code_mask
        bit_buffer >>= code_size
        bit_count -= code_size

        if code == clear_code:
            code_size = min_code_size + 1
            code_mask = (1 << code_size) - 1
            next_code = end_code + 1
            prev = -1
            continue
        if code == end_code:
            return op

        if code > next_code or (code == next_code and prev < 0):
            return -1

        if prev >= 0 and next_code < MAX_TABLE_SIZE:
            k = first[code] if code < next_code else first[prev]
            prefix[next_code] = prev
            suffix[next_code] = k
            first[next_code] = first[prev]
            length[next_code] = length[prev] + 1
            next_code += 1
            if next_code == (1 << code_size) and code_size < MAX_CODE_SIZE:
                code_size += 1
                code_mask = (1 << code_size) - 1

        # Strings are stored back to front, write them from the tail
        n = length[code]
        c = code
        i = op + n - 1
        while c >= 0:
            if i < n_out:
                out[i] = suffix[c]
            i -= 1
            c = prefix[c]
        op += n
        if op >= n_out:
            return n_out

        prev = code


def deinterlace(indices: np.ndarray, width: int, height: int) -> np.ndarray:
    rows = indices.reshape(height, width)
    out = np.empty_like(rows)
    src = 0
    for start, step in INTERLACE_PASSES:
        dest = np.arange(start, height, step)
        out[dest] = rows[src:src + len(dest)]
        src += len(dest)
    return out.reshape(-1)


class _Reader:
    """Cursor over the raw bytes. Running off the end raises FormatError."""

    def __init__(self, data: bytes):
        self.data = data
        self.pos = 0

    def u8(self) -> int:
        if self.pos >= len(self.data):
            raise FormatError(f"Unexpected end of data at offset {self.pos}")
        value = self.data[self.pos]
        self.pos += 1
        return value

    def u16(self) -> int:
        return self.u8() | (self.u8() << 8)

    def take(self, n: int) -> bytes:
        if self.pos + n > len(self.data):
            raise FormatError(f"Unexpected end of data reading {n} bytes at offset {self.pos}")
        chunk = self.data[self.pos:self.pos + n]
        self.pos += n
        return chunk

    def sub_blocks(self) -> bytes:
        chunks = []
        while True:
            size = self.u8()
            if size == 0:
                return b"".join(chunks)
            chunks.append(self.take(size))

    def skip_sub_blocks(self):
        while True:
            size = self.u8()
            if size == 0:
                return
            self.take(size)


@dataclass
class GraphicControl:
    delay: int = DEFAULT_FRAME_DELAY
    disposal: Disposal = Disposal.NONE
    transparent_index: int | None = None


@dataclass(frozen=True)
class ImageDescriptor:
    left: int
    top: int
    width: int
    height: int
    interlaced: bool
    color_table: np.ndarray | None


@dataclass(eq=False)
class GIFDocument:
    width: int
    height: int
    frames: list[RasterFrame]
    size: int
    loop_count: int | None = None
    background_index: int = 0
    comments: list[str] = field(default_factory=list)
    decode_errors: list[PartialDecodeError] = field(default_factory=list)

    @property
    def is_animated(self) -> bool:
        return len(self.frames) > 1

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def is_large(self) -> bool:
        return is_large_file(self.size)


def clamp_delay(centiseconds: int) -> int:
    """GCE delay (1/100 s) to milliseconds. Zero means 'unspecified'."""
    if centiseconds <= 0:
        return DEFAULT_FRAME_DELAY
    return max(MIN_FRAME_DELAY, min(MAX_FRAME_DELAY, centiseconds * 10))


class GIFDecoder:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or logging.getLogger(__name__)

    def decode(self, data: bytes) -> GIFDocument:
        """
        Parse a GIF byte stream into composited frames.

        Raises:
            FormatError: the signature is wrong, the header is truncated or no
                image block could be decoded at all
        """
        data = bytes(data)
        if data[:6] not in SIGNATURES:
            raise FormatError("Not a GIF file (missing GIF87a/GIF89a signature)")

        reader = _Reader(data)
        reader.take(6)
        width = reader.u16()
        height = reader.u16()
        packed = reader.u8()
        background_index = reader.u8()
        reader.u8()  # pixel aspect ratio

        if width == 0 or height == 0:
            raise FormatError(f"Invalid logical screen size {width}x{height}")

        global_table = None
        if packed & 0x80:
            global_table = self._read_color_table(reader, 2 << (packed & 0x07))

        document = GIFDocument(width, height, [], len(data), background_index=background_index)
        self.logger.debug("GIF %dx%d, global color table: %s", width, height, global_table is not None)

        self._walk_blocks(reader, document, global_table)

        if not document.frames:
            raise FormatError("No decodable image blocks in GIF")

        self.logger.debug(
            "Decoded %d frame(s), %d error(s)", len(document.frames), len(document.decode_errors)
        )
        return document

    def _walk_blocks(self, reader: _Reader, document: GIFDocument, global_table: np.ndarray | None):
        canvas = np.zeros((document.height, document.width, 4), np.uint8)
        saved: np.ndarray | None = None
        previous: Disposal | None = None
        control = GraphicControl()
        block_index = 0

        while True:
            offset = reader.pos
            try:
                introducer = reader.u8()
            except FormatError:
                self.logger.warning("GIF ended without a trailer after %d frame(s)", len(document.frames))
                return

            if introducer == TRAILER:
                return

            try:
                if introducer == EXTENSION_INTRODUCER:
                    control = self._read_extension(reader, document, control, block_index, offset)
                    continue
                if introducer != IMAGE_SEPARATOR:
                    raise FormatError(f"Unknown block introducer 0x{introducer:02X}")
                descriptor = self._read_descriptor(reader)
                min_code_size = reader.u8()
                stream = reader.sub_blocks()
            except FormatError as e:
                # Block structure is broken, nothing after this point can be trusted
                self._record(document, str(e), block_index, offset)
                return

            frame_control, control = control, GraphicControl()
            block_index += 1
            try:
                table = descriptor.color_table if descriptor.color_table is not None else global_table
                if table is None:
                    raise FormatError("Image block without a color table")
                rgba = self._decode_pixels(descriptor, min_code_size, stream, table,
                                           frame_control.transparent_index)
            except FormatError as e:
                self._record(document, str(e), block_index - 1, offset)
                continue

            if previous is not None:
                canvas = self._dispose(canvas, saved, previous)
            saved = canvas.copy() if frame_control.disposal == Disposal.PREVIOUS else None

            self._blit(canvas, rgba, descriptor)
            document.frames.append(
                RasterFrame(document.width, document.height, canvas.copy(),
                            frame_control.delay, frame_control.disposal)
            )
            previous = frame_control.disposal
            self.logger.debug(
                "Frame %d: %dx%d at (%d, %d), delay %dms, disposal %s",
                len(document.frames) - 1, descriptor.width, descriptor.height,
                descriptor.left, descriptor.top, frame_control.delay, frame_control.disposal.name,
            )

    def _record(self, document: GIFDocument, message: str, frame_index: int, offset: int):
        self.logger.warning("GIF image block %d at offset %d: %s", frame_index, offset, message)
        document.decode_errors.append(PartialDecodeError(message, frame_index, offset))

    @staticmethod
    def _read_color_table(reader: _Reader, size: int) -> np.ndarray:
        raw = np.frombuffer(reader.take(size * 3), dtype=np.uint8).reshape(size, 3)
        # Padded to 256 so out-of-range indices resolve to black instead of failing
        table = np.zeros((256, 4), np.uint8)
        table[:size, :3] = raw
        table[:, 3] = 255
        return table

    def _read_extension(self, reader: _Reader, document: GIFDocument, control: GraphicControl,
                        frame_index: int, offset: int) -> GraphicControl:
        label = reader.u8()

        if label == GRAPHIC_CONTROL_LABEL:
            body = reader.sub_blocks()
            if len(body) < 4:
                # Sub-blocks were consumed, so the walk can go on with default timing
                self._record(document, "Graphic control extension too short", frame_index, offset)
                return GraphicControl()
            packed = body[0]
            delay = body[1] | (body[2] << 8)
            return GraphicControl(
                delay=clamp_delay(delay),
                disposal=Disposal.from_code((packed >> 2) & 0x07),
                transparent_index=body[3] if packed & 0x01 else None,
            )

        if label == APPLICATION_LABEL:
            app_id = reader.take(reader.u8())
            body = reader.sub_blocks()
            if app_id[:11] in (b"NETSCAPE2.0", b"ANIMEXTS1.0") and len(body) >= 3 and body[0] == 1:
                document.loop_count = body[1] | (body[2] << 8)
        elif label == COMMENT_LABEL:
            document.comments.append(reader.sub_blocks().decode("latin-1"))
        else:
            reader.skip_sub_blocks()
        return control

    def _read_descriptor(self, reader: _Reader) -> ImageDescriptor:
        left = reader.u16()
        top = reader.u16()
        width = reader.u16()
        height = reader.u16()
        packed = reader.u8()
        table = None
        if packed & 0x80:
            table = self._read_color_table(reader, 2 << (packed & 0x07))
        return ImageDescriptor(left, top, width, height, bool(packed & 0x40), table)

    def _decode_pixels(self, descriptor: ImageDescriptor, min_code_size: int, stream: bytes,
                       table: np.ndarray, transparent_index: int | None) -> np.ndarray:
        if not 1 <= min_code_size <= 11:
            raise FormatError(f"Invalid LZW minimum code size {min_code_size}")

        count = descriptor.width * descriptor.height
        indices = np.zeros(count, np.uint8)
        written = lzw_decode(np.frombuffer(stream, dtype=np.uint8), min_code_size, indices)
        if written < 0:
            raise FormatError("Corrupt LZW stream")
        if written < count:
            self.logger.debug("LZW stream short by %d pixel(s)", count - written)

        if descriptor.interlaced:
            indices = deinterlace(indices, descriptor.width, descriptor.height)
            written_mask = deinterlace(np.arange(count) < written, descriptor.width, descriptor.height)
        else:
            written_mask = np.arange(count) < written

        rgba = table[indices]
        if transparent_index is not None:
            rgba[indices == transparent_index, 3] = 0
        # Pixels the stream never reached leave the canvas alone
        rgba[~written_mask, 3] = 0
        return rgba.reshape(descriptor.height, descriptor.width, 4)

    @staticmethod
    def _clip(canvas: np.ndarray, descriptor: ImageDescriptor):
        height, width, _ = canvas.shape
        x0 = min(descriptor.left, width)
        y0 = min(descriptor.top, height)
        x1 = min(descriptor.left + descriptor.width, width)
        y1 = min(descriptor.top + descriptor.height, height)
        return x0, y0, x1, y1

    def _blit(self, canvas: np.ndarray, rgba: np.ndarray, descriptor: ImageDescriptor):
        x0, y0, x1, y1 = self._clip(canvas, descriptor)
        if x1 <= x0 or y1 <= y0:
            return
        patch = rgba[:y1 - y0, :x1 - x0]
        opaque = patch[..., 3] > 0
        region = canvas[y0:y1, x0:x1]
        region[opaque] = patch[opaque]

    @staticmethod
    def _dispose(canvas: np.ndarray, saved: np.ndarray | None, disposal: Disposal) -> np.ndarray:
        if disposal == Disposal.BACKGROUND:
            canvas[:] = 0
        elif disposal == Disposal.PREVIOUS and saved is not None:
            return saved
        return canvas


def load_static(data: bytes, logger: logging.Logger | None = None) -> GIFDocument:
    """Single-frame document from any format Pillow can read"""
    try:
        with Image.open(io.BytesIO(data)) as image:
            frame = RasterFrame.from_image(image)
    except (UnidentifiedImageError, OSError) as e:
        raise FormatError(f"Unrecognized image data: {e}") from e
    (logger or logging.getLogger(__name__)).debug("Loaded static image %dx%d", frame.width, frame.height)
    return GIFDocument(frame.width, frame.height, [frame], len(data))


def load_document(data: bytes, decoder: GIFDecoder | None = None) -> GIFDocument:
    """
    Decode GIF bytes, falling back to a static single-frame image when the
    stream is not a GIF or yields no frames.
    """
    decoder = decoder or GIFDecoder()
    try:
        return decoder.decode(data)
    except FormatError as e:
        decoder.logger.info("GIF decode failed (%s), falling back to static image", e)
        return load_static(data, decoder.logger)
