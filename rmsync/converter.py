"""Conversion of files between Markdown and PDF."""

import datetime
import logging
import os
import tempfile
from pathlib import Path

import yaml

from rmsync.errors import ParseError
from rmsync.options import ReconstructionOptions, RenderingOptions
from rmsync.parser import DocumentParser
from rmsync.pdf_io import PDFPageWriter, extract_text
from rmsync.reconstruct import TextReconstructor
from rmsync.renderer import PageRenderer, PageWriter

logger = logging.getLogger(__name__)

MARKDOWN_SUFFIXES = (".md", ".markdown", ".txt")
YAML_SUFFIXES = (".yml", ".yaml")
CONFIG_SUFFIXES = (".conf", ".ini", ".config")
SUPPORTED_SOURCE_SUFFIXES = MARKDOWN_SUFFIXES + YAML_SUFFIXES + CONFIG_SUFFIXES


def is_supported_source(path: str | Path) -> bool:
    """Check whether a file can be converted to PDF."""
    return Path(path).suffix.lower() in SUPPORTED_SOURCE_SUFFIXES


def write_atomically(path: Path, data: bytes) -> None:
    """Write a file so that readers never see partial content.

    The data goes to a temporary file next to the target first and replaces
    the target only once it is complete.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        tmp_path.replace(path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class DocumentConverter:
    """Converts Markdown and config files to PDF, and PDFs back to Markdown."""

    def __init__(
        self,
        rendering: RenderingOptions | None = None,
        reconstruction: ReconstructionOptions | None = None,
    ):
        """Initialize the converter.

        Args:
            rendering: Options for Markdown to PDF. Uses defaults if not provided.
            reconstruction: Options for PDF to Markdown. Uses defaults if not provided.
        """
        self.rendering = rendering or RenderingOptions()
        self.reconstruction = reconstruction or ReconstructionOptions()
        self._parser = DocumentParser()

    def markdown_to_pdf(self, source_path: str | Path, output_path: str | Path | None = None) -> bytes:
        """Convert a Markdown, YAML or config file to PDF.

        Args:
            source_path: Path to the input file.
            output_path: Optional path to write the PDF to.

        Returns:
            The PDF bytes.
        """
        source_path = Path(source_path)
        if not source_path.exists():
            raise FileNotFoundError(f"Source file not found: {source_path}")

        pdf_data = self.render_bytes(source_path.read_bytes(), title=source_path.stem, suffix=source_path.suffix)

        if output_path:
            write_atomically(Path(output_path), pdf_data)
        return pdf_data

    def render_bytes(self, content: bytes, title: str, suffix: str = ".md") -> bytes:
        """Render file content to PDF bytes, dispatching on the file suffix.

        YAML and config files are drawn as a single monospace block; every
        other suffix is parsed as Markdown.

        Raises:
            ParseError: If the content is not valid Markdown or YAML.
            RenderError: If the PDF cannot be produced.
        """
        with PDFPageWriter(self.rendering) as writer:
            self.render_to(writer, content, title, suffix)
            return writer.to_bytes()

    def render_to(self, writer: PageWriter, content: bytes, title: str, suffix: str = ".md") -> None:
        """Render file content onto any page writer."""
        renderer = PageRenderer(self.rendering, writer)
        suffix = suffix.lower()

        if suffix in YAML_SUFFIXES:
            text = self._decode(content)
            try:
                yaml.safe_load(text)
            except yaml.YAMLError as e:
                mark = getattr(e, "problem_mark", None)
                line = mark.line + 1 if mark is not None else None
                raise ParseError(f"Invalid YAML: {e}", line=line) from e
            renderer.render_literal(f"```yaml\n{text.rstrip()}\n```", title=title)
        elif suffix in CONFIG_SUFFIXES:
            renderer.render_literal(self._decode(content).rstrip(), title=title)
        else:
            document = self._parser.parse(content)
            entries = renderer.render(document, title=title)
            logger.debug("Rendered %s with %d contents entries", title, len(entries))

    def pdf_to_markdown(self, pdf_path: str | Path, output_path: str | Path | None = None) -> str:
        """Convert a PDF file to Markdown.

        Args:
            pdf_path: Path to the input PDF.
            output_path: Optional path to write the Markdown to.

        Returns:
            The reconstructed Markdown.
        """
        pdf_path = Path(pdf_path)
        if not pdf_path.exists():
            raise FileNotFoundError(f"PDF file not found: {pdf_path}")

        markdown = self.reconstruct_bytes(pdf_path.read_bytes(), title=pdf_path.stem)

        if output_path:
            write_atomically(Path(output_path), markdown.encode("utf-8"))
        return markdown

    def reconstruct_bytes(self, pdf_data: bytes, title: str, today: datetime.date | None = None) -> str:
        """Extract the text of PDF bytes and rebuild Markdown from it.

        Raises:
            ExtractionError: If the PDF cannot be read.
        """
        flat_text = extract_text(pdf_data)
        result = TextReconstructor(self.reconstruction).reconstruct(flat_text, title=title, today=today)
        for irregularity in result.irregularities:
            logger.warning("%s: %s (line %d)", title, irregularity.message, irregularity.line)
        return result.markdown

    @staticmethod
    def _decode(content: bytes) -> str:
        try:
            return content.decode("utf-8").removeprefix("\ufeff")
        except UnicodeDecodeError as e:
            line = content[: e.start].count(b"\n") + 1
            raise ParseError("Input is not valid UTF-8", line=line, offset=e.start) from e
