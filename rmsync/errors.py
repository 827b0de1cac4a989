"""Exception types and recoverable irregularity records."""

from dataclasses import dataclass


class ConversionError(Exception):
    """Base class for every failure raised by rmsync."""


class ParseError(ConversionError):
    """Raised when structured text cannot be parsed.

    Attributes:
        line: One-based line number of the defect, if known.
        offset: Zero-based byte offset of the defect, if known.
    """

    def __init__(self, message: str, line: int | None = None, offset: int | None = None):
        self.message = message
        self.line = line
        self.offset = offset
        location = []
        if line is not None:
            location.append(f"line {line}")
        if offset is not None:
            location.append(f"byte {offset}")
        if location:
            message = f"{message} ({', '.join(location)})"
        super().__init__(message)


class RenderError(ConversionError):
    """Raised by a page writer when the page document cannot be produced."""


class ExtractionError(ConversionError):
    """Raised when text cannot be extracted from a page document."""


class TransportError(ConversionError):
    """Raised when bytes cannot be moved to or from the device."""


@dataclass(frozen=True)
class ReconstructionIrregularity:
    """A recoverable oddity met while reconstructing Markdown.

    These never abort a conversion; callers decide whether to log them.
    """

    kind: str
    line: int
    message: str
