"""PyMuPDF implementations of the page writer and the page text source."""

import contextlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path

import fitz  # PyMuPDF

from rmsync.errors import ExtractionError, RenderError
from rmsync.options import RenderingOptions
from rmsync.renderer import FontFamily, TocEntry, Weight

logger = logging.getLogger(__name__)

MM_TO_PT = 72.0 / 25.4
LINE_SPACING = 1.25
MIN_TEXT_AREA = 72.0  # Points left between the margins on each axis.
CONTENTS_TITLE = "Contents"
CONTENTS_INDENT = 12.0

# PDF base-14 font codes (regular, bold) as PyMuPDF names them.
BASE14_FONTS = {
    "arial": ("helv", "hebo"),
    "helvetica": ("helv", "hebo"),
    "times": ("tiro", "tibo"),
    "times new roman": ("tiro", "tibo"),
    "courier": ("cour", "cobo"),
    "courier new": ("cour", "cobo"),
}
DEFAULT_FONTS = {
    FontFamily.MAIN: BASE14_FONTS["helvetica"],
    FontFamily.MONO: BASE14_FONTS["courier"],
}
FONT_FILE_SUFFIXES = (".ttf", ".otf")


@dataclass
class _Font:
    """A font ready for measuring and drawing."""

    name: str
    font: fitz.Font
    file: str | None = None


@contextlib.contextmanager
def _pdf_errors(action: str):
    """Turn PyMuPDF failures into RenderError."""
    try:
        yield
    except (RuntimeError, ValueError) as e:
        raise RenderError(f"Failed to {action}: {e}") from e


def _to_unit(r: int, g: int, b: int) -> tuple[float, float, float]:
    return (r / 255, g / 255, b / 255)


class PDFPageWriter:
    """Lays out page-writer operations on PDF pages with PyMuPDF.

    Text in the main font flows from the cursor and wraps at word
    boundaries. Text in the mono font, and every filled block, keeps its
    line structure and indentation, wrapping by character when a line is
    wider than the text area. Pages are added automatically when the
    cursor passes the bottom margin.
    """

    def __init__(self, options: RenderingOptions):
        """Initialize an empty PDF.

        Args:
            options: Rendering options providing page size, margins and fonts.

        Raises:
            RenderError: If the margins leave no room for text.
        """
        self.options = options
        self._width, self._height = fitz.paper_size(options.page_size.value)
        margin = options.margins * MM_TO_PT
        self._left = margin
        self._right = self._width - margin
        self._top = margin
        self._bottom = self._height - margin
        if self._right - self._left < MIN_TEXT_AREA or self._bottom - self._top < MIN_TEXT_AREA:
            raise RenderError(f"Margins of {options.margins}mm leave no room on a {options.page_size.name} page")

        self._doc = fitz.open()
        self._page: fitz.Page | None = None
        self._fonts: dict[tuple[FontFamily, Weight], _Font] = {}
        self._family = FontFamily.MAIN
        self._weight = Weight.REGULAR
        self._size = options.base_font_size
        self._color = (0.0, 0.0, 0.0)
        self._fill = _to_unit(255, 255, 255)
        self._fill_on = False

        self._x = self._left
        self._y = self._top
        self._line_open = False
        self._line_height = 0.0

    @property
    def page_count(self) -> int:
        return len(self._doc)

    def new_page(self) -> None:
        with _pdf_errors("add a page"):
            self._page = self._doc.new_page(width=self._width, height=self._height)
        self._x = self._left
        self._y = self._top
        self._line_open = False
        self._line_height = 0.0

    def set_font(self, family: FontFamily, weight: Weight, size: float) -> None:
        self._family = family
        self._weight = weight
        self._size = size

    def set_fill(self, r: int, g: int, b: int, on: bool) -> None:
        self._fill = _to_unit(r, g, b)
        self._fill_on = on

    def set_text_color(self, r: int, g: int, b: int) -> None:
        self._color = _to_unit(r, g, b)

    def write_text_block(self, text: str, filled: bool) -> None:
        if filled or self._family is FontFamily.MONO:
            self._write_preformatted(text, filled and self._fill_on)
        else:
            self._write_flowing(text)

    def line_break(self, height: float) -> None:
        self._end_line()
        self._y += height * MM_TO_PT

    def write_glyph(self, glyph: str) -> None:
        self._end_line()
        self._place(f"{glyph} ", self._current_font())

    def write_contents(self, entries: tuple[TocEntry, ...]) -> None:
        """Add a contents section and move it in front of the body pages.

        Also installs the entries as the PDF outline, so the device can
        jump to a heading.
        """
        if not entries:
            return

        body_pages = self.page_count
        self.set_text_color(0, 0, 0)
        self.new_page()
        self.set_font(FontFamily.MAIN, Weight.BOLD, self.options.base_font_size + 4)
        self._write_flowing(CONTENTS_TITLE)
        self.line_break(5.0)

        self.set_font(FontFamily.MAIN, Weight.REGULAR, self.options.base_font_size)
        font = self._current_font()
        numbers = []
        for entry in entries:
            self._end_line()
            self._ensure_room(self._size * LINE_SPACING)
            indent = CONTENTS_INDENT * (entry.level - 1)
            self._x = self._left + indent
            title = self._fit(entry.title, font, self._right - self._x - 4 * self._size)
            self._place(title, font)
            numbers.append((self._page, self._y, entry.page))
        self._end_line()

        contents_pages = self.page_count - body_pages
        # Page numbers are only known once the contents pages are laid out.
        for page, y, number in numbers:
            label = str(number + contents_pages)
            x = self._right - font.font.text_length(label, fontsize=self._size)
            self._draw(page, x, y, label, font)

        with _pdf_errors("reorder contents pages"):
            order = list(range(body_pages, self.page_count)) + list(range(body_pages))
            self._doc.select(order)
            self._doc.set_toc(self._outline(entries, contents_pages))

    def to_bytes(self) -> bytes:
        """Finish the document and return the PDF bytes."""
        if self.page_count == 0:
            self.new_page()
        with _pdf_errors("save the PDF"):
            return self._doc.tobytes(garbage=3, deflate=True)

    def close(self) -> None:
        self._doc.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    @staticmethod
    def _outline(entries: tuple[TocEntry, ...], offset: int) -> list[list]:
        """Build an outline whose levels start at 1 and never skip a level."""
        outline = []
        previous = 0
        for entry in entries:
            level = min(entry.level, previous + 1)
            outline.append([level, entry.title, entry.page + offset])
            previous = level
        return outline

    def _write_flowing(self, text: str) -> None:
        font = self._current_font()
        for index, part in enumerate(text.split("\n")):
            if index:
                self._end_line()
            for token in re.findall(r"\S+|\s+", part):
                if token.isspace():
                    if self._line_open:
                        self._place(" ", font)
                    continue
                width = font.font.text_length(token, fontsize=self._size)
                if self._line_open and self._x + width > self._right:
                    self._end_line()
                if width > self._right - self._left:
                    for piece in self._split_to_width(token, font):
                        self._end_line()
                        self._place(piece, font)
                    continue
                self._place(token, font)

    def _write_preformatted(self, text: str, filled: bool) -> None:
        font = self._current_font()
        self._end_line()
        for line in text.split("\n"):
            pieces = self._split_to_width(line.expandtabs(4), font) or [""]
            for piece in pieces:
                height = self._size * LINE_SPACING
                self._ensure_room(height)
                if filled:
                    rect = fitz.Rect(self._left, self._y, self._right, self._y + height)
                    with _pdf_errors("fill a text block"):
                        self._page.draw_rect(rect, color=None, fill=self._fill, width=0)
                if piece:
                    self._draw(self._page, self._left, self._y, piece, font)
                self._y += height

    def _split_to_width(self, text: str, font: _Font) -> list[str]:
        """Cut text into pieces that each fit between the margins."""
        available = self._right - self._left
        pieces = []
        current = ""
        for char in text:
            if current and font.font.text_length(current + char, fontsize=self._size) > available:
                pieces.append(current)
                current = ""
            current += char
        if current:
            pieces.append(current)
        return pieces

    def _fit(self, text: str, font: _Font, width: float) -> str:
        if font.font.text_length(text, fontsize=self._size) <= width:
            return text
        while text and font.font.text_length(text + "...", fontsize=self._size) > width:
            text = text[:-1]
        return text + "..."

    def _place(self, text: str, font: _Font) -> None:
        """Draw text at the cursor and move the cursor past it."""
        height = self._size * LINE_SPACING
        if not self._line_open:
            self._ensure_room(height)
        self._line_open = True
        self._line_height = max(self._line_height, height)
        self._draw(self._page, self._x, self._y, text, font)
        self._x += font.font.text_length(text, fontsize=self._size)

    def _draw(self, page: fitz.Page, x: float, y: float, text: str, font: _Font) -> None:
        baseline = y + font.font.ascender * self._size
        with _pdf_errors("write text"):
            page.insert_text(
                fitz.Point(x, baseline),
                text,
                fontname=font.name,
                fontfile=font.file,
                fontsize=self._size,
                color=self._color,
            )

    def _end_line(self) -> None:
        if self._line_open:
            self._y += self._line_height
        self._x = self._left
        self._line_open = False
        self._line_height = 0.0

    def _ensure_room(self, height: float) -> None:
        if self._page is None or self._y + height > self._bottom:
            self.new_page()

    def _current_font(self) -> _Font:
        key = (self._family, self._weight)
        if key not in self._fonts:
            self._fonts[key] = self._load_font(self._family, self._weight)
        return self._fonts[key]

    def _load_font(self, family: FontFamily, weight: Weight) -> _Font:
        """Resolve a configured font name to a base-14 font or a font file."""
        name = self.options.mono_font if family is FontFamily.MONO else self.options.main_font
        bold = weight is Weight.BOLD

        path = Path(name).expanduser()
        if path.suffix.lower() in FONT_FILE_SUFFIXES:
            if path.is_file():
                with _pdf_errors(f"load font {path}"):
                    font = fitz.Font(fontfile=str(path))
                # Font files carry one weight; bold text reuses the same file.
                return _Font(name=f"F{family.value}{len(self._fonts)}", font=font, file=str(path))
            logger.warning("Font file not found: %s, using the default %s font", path, family.value)
            codes = DEFAULT_FONTS[family]
        elif name.strip().lower() in BASE14_FONTS:
            codes = BASE14_FONTS[name.strip().lower()]
        else:
            logger.warning("Unknown font %r, using the default %s font", name, family.value)
            codes = DEFAULT_FONTS[family]

        code = codes[1] if bold else codes[0]
        with _pdf_errors(f"load font {code}"):
            return _Font(name=code, font=fitz.Font(code))


def extract_text(pdf_data: bytes) -> str:
    """Extract the plain text of every page of a PDF.

    Args:
        pdf_data: Raw PDF bytes.

    Returns:
        The text of all pages, in page order.

    Raises:
        ExtractionError: If the PDF cannot be opened or read.
    """
    try:
        doc = fitz.open(stream=pdf_data, filetype="pdf")
    except (RuntimeError, ValueError) as e:
        raise ExtractionError(f"Failed to open PDF: {e}") from e

    try:
        return "".join(page.get_text("text") for page in doc)
    except (RuntimeError, ValueError) as e:
        raise ExtractionError(f"Failed to extract text: {e}") from e
    finally:
        doc.close()
