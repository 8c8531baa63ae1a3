from .ascii_displayer import AsciiDisplayer
from .ascii_file_encoding import AsciiDecoder, AsciiEncoder
from .character_mapper import CharacterMapper
from .color_quantizer import ColorQuantizer, QuantizationErrorField
from .config import GenerationSettings
from .errors import DigitizerError, FormatError, GenerationCancelled, PartialDecodeError, ValidationError
from .exporter import render_image, save_frames, save_gif, save_image, save_text
from .frame_generator import FrameGenerator, GenerationJob, GenerationState, grid_dimensions
from .gif_decoder import GIFDecoder, GIFDocument, load_document, load_static
from .grid import CharacterCell, CharacterGrid, to_plain_text
from .raster import Disposal, RasterFrame, RasterSource
from .sampler import CellSample, PixelSampler
from .utils import format_file_size

__all__ = [
    "AsciiDecoder",
    "AsciiDisplayer",
    "AsciiEncoder",
    "CellSample",
    "CharacterCell",
    "CharacterGrid",
    "CharacterMapper",
    "ColorQuantizer",
    "DigitizerError",
    "Disposal",
    "FormatError",
    "FrameGenerator",
    "GenerationCancelled",
    "GenerationJob",
    "GenerationSettings",
    "GenerationState",
    "GIFDecoder",
    "GIFDocument",
    "PartialDecodeError",
    "PixelSampler",
    "QuantizationErrorField",
    "RasterFrame",
    "RasterSource",
    "ValidationError",
    "format_file_size",
    "grid_dimensions",
    "load_document",
    "load_static",
    "render_image",
    "save_frames",
    "save_gif",
    "save_image",
    "save_text",
    "to_plain_text",
]
