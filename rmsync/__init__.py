"""Markdown to PDF converter for e-ink devices, and back."""

from rmsync.converter import DocumentConverter
from rmsync.errors import ConversionError, ExtractionError, ParseError, RenderError, TransportError
from rmsync.options import PageSize, ReconstructionOptions, RenderingOptions

__all__ = [
    "DocumentConverter",
    "RenderingOptions",
    "ReconstructionOptions",
    "PageSize",
    "ConversionError",
    "ParseError",
    "RenderError",
    "ExtractionError",
    "TransportError",
]
__version__ = "0.1.0"
