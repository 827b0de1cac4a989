"""Rendering of a Markdown node tree as a stream of page-writer operations.

The renderer never touches PDF internals. It walks the tree in source order,
threads an explicit RenderState through the walk and tells a PageWriter what
to draw. Errors raised by the writer propagate unchanged.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Protocol

from rmsync.nodes import CodeBlock, Document, Heading, Link, List, ListItem, Node, Paragraph, Text, plain_text
from rmsync.options import RenderingOptions

logger = logging.getLogger(__name__)

# Vertical gaps are in millimetres, the unit of the page margins.
HEADING_GAP = 5.0
PARAGRAPH_GAP = 5.0
LIST_GAP = 3.0
TITLE_GAP = 5.0

MIN_HEADING_SIZE = 6.0
HEADING_SIZE_BOUND = 7
TITLE_SIZE_BONUS = 4.0

BULLET_GLYPH = "-"  # Must be encodable in the base-14 fonts.
CODE_FILL = (245, 245, 245)
LINK_COLOR = (0, 0, 255)
TEXT_COLOR = (0, 0, 0)


class FontFamily(str, Enum):
    """Which of the two configured fonts to use."""

    MAIN = "main"
    MONO = "mono"


class Weight(str, Enum):
    REGULAR = "regular"
    BOLD = "bold"


@dataclass(frozen=True)
class RenderState:
    """Font and colour context for the node being rendered.

    A new state is created for every conversion and replaced, never
    mutated, as the traversal enters and leaves nodes.
    """

    font_family: FontFamily = FontFamily.MAIN
    weight: Weight = Weight.REGULAR
    size: float = 11.0
    highlight_fill: bool = False
    in_code: bool = False
    link_color_active: bool = False

    @classmethod
    def initial(cls, options: RenderingOptions) -> "RenderState":
        return cls(size=options.base_font_size)


@dataclass(frozen=True)
class TocEntry:
    """One line of the table of contents."""

    title: str
    level: int
    page: int  # One-based page number of the body page holding the heading.


@dataclass(frozen=True)
class NewPage:
    pass


@dataclass(frozen=True)
class SetFont:
    family: FontFamily
    weight: Weight
    size: float


@dataclass(frozen=True)
class SetFill:
    r: int
    g: int
    b: int
    on: bool


@dataclass(frozen=True)
class SetTextColor:
    r: int
    g: int
    b: int


@dataclass(frozen=True)
class WriteTextBlock:
    text: str
    filled: bool


@dataclass(frozen=True)
class LineBreak:
    height: float


@dataclass(frozen=True)
class WriteGlyph:
    glyph: str


@dataclass(frozen=True)
class WriteContents:
    entries: tuple[TocEntry, ...]


Operation = NewPage | SetFont | SetFill | SetTextColor | WriteTextBlock | LineBreak | WriteGlyph | WriteContents


class PageWriter(Protocol):
    """Sink for the drawing operations emitted by PageRenderer."""

    @property
    def page_count(self) -> int: ...

    def new_page(self) -> None: ...

    def set_font(self, family: FontFamily, weight: Weight, size: float) -> None: ...

    def set_fill(self, r: int, g: int, b: int, on: bool) -> None: ...

    def set_text_color(self, r: int, g: int, b: int) -> None: ...

    def write_text_block(self, text: str, filled: bool) -> None: ...

    def line_break(self, height: float) -> None: ...

    def write_glyph(self, glyph: str) -> None: ...

    def write_contents(self, entries: tuple[TocEntry, ...]) -> None: ...


class OperationRecorder:
    """A PageWriter that only remembers what it was asked to do."""

    def __init__(self):
        self.operations: list[Operation] = []

    @property
    def page_count(self) -> int:
        return sum(1 for op in self.operations if isinstance(op, NewPage))

    def new_page(self) -> None:
        self.operations.append(NewPage())

    def set_font(self, family: FontFamily, weight: Weight, size: float) -> None:
        self.operations.append(SetFont(family, weight, size))

    def set_fill(self, r: int, g: int, b: int, on: bool) -> None:
        self.operations.append(SetFill(r, g, b, on))

    def set_text_color(self, r: int, g: int, b: int) -> None:
        self.operations.append(SetTextColor(r, g, b))

    def write_text_block(self, text: str, filled: bool) -> None:
        self.operations.append(WriteTextBlock(text, filled))

    def line_break(self, height: float) -> None:
        self.operations.append(LineBreak(height))

    def write_glyph(self, glyph: str) -> None:
        self.operations.append(WriteGlyph(glyph))

    def write_contents(self, entries: tuple[TocEntry, ...]) -> None:
        self.operations.append(WriteContents(entries))

    def of_type(self, kind: type) -> list:
        """Return the recorded operations of one type, in order."""
        return [op for op in self.operations if isinstance(op, kind)]


class PageRenderer:
    """Walks a Document and drives a PageWriter.

    Link colour is scoped to the enclosing block: entering or leaving a
    paragraph, heading or list item switches the text colour back to the
    default, so a link never colours unrelated text that follows it.
    """

    def __init__(self, options: RenderingOptions, writer: PageWriter):
        """Initialize the renderer.

        Args:
            options: Rendering options for this job.
            writer: Destination for the drawing operations.
        """
        self.options = options
        self.writer = writer
        self.contents: list[TocEntry] = []
        self._font: tuple[FontFamily, Weight, float] | None = None
        self._link_colored = False
        self._handlers = {
            Document: self._render_document,
            Heading: self._render_heading,
            Paragraph: self._render_paragraph,
            Text: self._render_text,
            CodeBlock: self._render_code_block,
            Link: self._render_link,
            List: self._render_list,
            ListItem: self._render_list_item,
        }

    def render(self, document: Document, title: str | None = None) -> list[TocEntry]:
        """Render a parsed document.

        Args:
            document: Root of the node tree.
            title: Optional document title drawn above the body.

        Returns:
            The table of contents entries that were collected.
        """
        state = self._begin(title)
        self._set_font(state)
        self._render(document, state)

        if self.options.toc and self.contents:
            self.writer.write_contents(tuple(self.contents))
        elif self.options.toc:
            logger.debug("No headings found, skipping table of contents")
        return list(self.contents)

    def render_literal(self, text: str, title: str | None = None) -> None:
        """Render text as one monospace block, without any Markdown parsing."""
        state = replace(self._begin(title), font_family=FontFamily.MONO)
        self._set_font(state)
        self.writer.write_text_block(text, filled=False)

    def _begin(self, title: str | None) -> RenderState:
        self.contents = []
        self._font = None
        self._link_colored = False
        state = RenderState.initial(self.options)
        self.writer.new_page()
        if title:
            heading = replace(state, weight=Weight.BOLD, size=self.options.base_font_size + TITLE_SIZE_BONUS)
            self._set_font(heading)
            self.writer.write_text_block(title, filled=False)
            self.writer.line_break(TITLE_GAP)
        return state

    def _render(self, node: Node, state: RenderState) -> RenderState:
        handler = self._handlers.get(type(node))
        if handler is None:
            raise TypeError(f"Cannot render node of type {type(node).__name__}")
        return handler(node, state)

    def _render_children(self, children, state: RenderState) -> RenderState:
        for child in children:
            state = self._render(child, state)
        return state

    def _render_document(self, node: Document, state: RenderState) -> RenderState:
        return self._render_children(node.children, state)

    def _render_heading(self, node: Heading, state: RenderState) -> RenderState:
        outer = self._enter_block(state)
        size = max(self.options.base_font_size + (HEADING_SIZE_BOUND - node.level), MIN_HEADING_SIZE)
        inner = replace(outer, weight=Weight.BOLD, size=size)

        self.writer.line_break(HEADING_GAP)
        self._set_font(inner)

        if self.options.toc:
            title = plain_text(node).strip()
            if title:
                self.contents.append(TocEntry(title=title, level=node.level, page=self.writer.page_count))

        self._render_children(node.children, inner)
        return self._leave_block(outer)

    def _render_paragraph(self, node: Paragraph, state: RenderState) -> RenderState:
        outer = self._enter_block(state)
        self.writer.line_break(PARAGRAPH_GAP)
        self._render_children(node.children, outer)
        return self._leave_block(outer)

    def _render_text(self, node: Text, state: RenderState) -> RenderState:
        if state.in_code:
            code = replace(state, font_family=FontFamily.MONO)
            self._apply(code)
            self.writer.write_text_block(node.literal, filled=self.options.highlight)
            self._set_font(replace(code, font_family=FontFamily.MAIN))
            return state

        self._apply(state)
        self.writer.write_text_block(node.literal, filled=False)
        return state

    def _render_code_block(self, node: CodeBlock, state: RenderState) -> RenderState:
        highlight = self.options.highlight
        code = replace(state, font_family=FontFamily.MONO, in_code=True, highlight_fill=highlight)

        self._apply(code)
        if highlight:
            self.writer.set_fill(*CODE_FILL, True)
        self.writer.write_text_block(node.literal, filled=highlight)

        restored = replace(code, font_family=FontFamily.MAIN, in_code=False, highlight_fill=False)
        self._set_font(restored)
        if highlight:
            self.writer.set_fill(*CODE_FILL, False)
        return restored

    def _render_link(self, node: Link, state: RenderState) -> RenderState:
        # Stays active for the rest of the enclosing block.
        state = replace(state, link_color_active=self.options.color_links)
        self._apply_color(state)
        if not node.children:
            return self._render_text(Text(node.target), state)
        return self._render_children(node.children, state)

    def _render_list(self, node: List, state: RenderState) -> RenderState:
        self.writer.line_break(LIST_GAP)
        for index, item in enumerate(node.items):
            glyph = f"{node.start + index}." if node.ordered else BULLET_GLYPH
            state = self._render_list_item(item, state, glyph)
        return state

    def _render_list_item(self, node: ListItem, state: RenderState, glyph: str = BULLET_GLYPH) -> RenderState:
        outer = self._enter_block(state)
        self._apply(outer)
        self.writer.write_glyph(glyph)
        self._render_children(node.children, outer)
        return self._leave_block(outer)

    def _enter_block(self, state: RenderState) -> RenderState:
        outer = replace(state, link_color_active=False)
        self._apply_color(outer)
        return outer

    def _leave_block(self, outer: RenderState) -> RenderState:
        self._apply_color(outer)
        return outer

    def _apply(self, state: RenderState) -> None:
        """Bring the writer's font and colour in line with a state."""
        if self._font != (state.font_family, state.weight, state.size):
            self._set_font(state)
        self._apply_color(state)

    def _set_font(self, state: RenderState) -> None:
        self._font = (state.font_family, state.weight, state.size)
        self.writer.set_font(state.font_family, state.weight, state.size)

    def _apply_color(self, state: RenderState) -> None:
        if state.link_color_active == self._link_colored:
            return
        self._link_colored = state.link_color_active
        self.writer.set_text_color(*(LINK_COLOR if state.link_color_active else TEXT_COLOR))


def render(
    document: Document, options: RenderingOptions, writer: PageWriter, title: str | None = None
) -> list[TocEntry]:
    """Render a document onto a writer with a fresh PageRenderer."""
    return PageRenderer(options, writer).render(document, title=title)


def render_literal(text: str, options: RenderingOptions, writer: PageWriter, title: str | None = None) -> None:
    """Render text as a single monospace block with a fresh PageRenderer."""
    PageRenderer(options, writer).render_literal(text, title=title)
