class DigitizerError(Exception):
    """Base class for every error raised by ascii_digitizer"""


class FormatError(DigitizerError):
    """Input bytes are not a recognized or decodable GIF"""


class PartialDecodeError(DigitizerError):
    """An image block failed to decode. Collected, never raised by the decoder."""

    def __init__(self, message: str, frame_index: int, offset: int):
        super().__init__(message)
        self.frame_index = frame_index
        self.offset = offset


class ValidationError(DigitizerError):
    """Caller supplied an impossible grid (zero or negative dimensions)"""


class GenerationCancelled(DigitizerError):
    """The cancellation hook fired at a chunk boundary"""

    def __init__(self, rows_done: int, total_rows: int):
        super().__init__(f"Generation cancelled after {rows_done}/{total_rows} rows")
        self.rows_done = rows_done
        self.total_rows = total_rows
