"""Markdown parsing into an immutable node tree."""

import logging
import re

from rmsync.errors import ParseError
from rmsync.nodes import CodeBlock, Document, Heading, Inline, Link, List, ListItem, Paragraph, Text

logger = logging.getLogger(__name__)

MAX_HEADING_LEVEL = 6
BYTE_ORDER_MARK = "\ufeff"


class _LineReader:
    """Cursor over the lines of one document, with byte offsets for errors."""

    def __init__(self, text: str):
        self.lines: list[str] = []
        self.offsets: list[int] = []
        offset = 0
        for raw in text.split("\n"):
            self.offsets.append(offset)
            offset += len(raw.encode("utf-8")) + 1
            self.lines.append(raw.rstrip("\r").expandtabs(4))
        # Offsets count the mark's bytes; the text of line one does not.
        self.lines[0] = self.lines[0].removeprefix(BYTE_ORDER_MARK)
        self.pos = 0

    def peek(self, ahead: int = 0) -> str | None:
        index = self.pos + ahead
        if index < len(self.lines):
            return self.lines[index]
        return None

    def advance(self) -> str:
        line = self.lines[self.pos]
        self.pos += 1
        return line

    def at_end(self) -> bool:
        return self.pos >= len(self.lines)


def _indent_of(line: str) -> int:
    return len(line) - len(line.lstrip(" "))


def _is_blank(line: str | None) -> bool:
    return line is not None and not line.strip()


class DocumentParser:
    """Parses a minimal Markdown dialect into a Document tree.

    Supported: ATX headings, paragraphs, bullet and numbered lists (nested by
    indentation), fenced code blocks and inline links. Everything else is kept
    as plain paragraph text.
    """

    FENCE_PATTERN = re.compile(r"^( {0,3})(`{3,}|~{3,})[ \t]*([^`]*?)[ \t]*$")
    HEADING_PATTERN = re.compile(r"^ {0,3}(#+)(?:[ \t]+(.*?))?[ \t]*$")
    BULLET_PATTERN = re.compile(r"^( *)([-*+])(?:[ \t]+(.*))?$")
    NUMBER_PATTERN = re.compile(r"^( *)(\d{1,9})[.)](?:[ \t]+(.*))?$")
    CLOSING_HASHES_PATTERN = re.compile(r"(?:^|[ \t]+)#+$")
    LINK_PATTERN = re.compile(r"(?<!!)\[([^\[\]]*)\]\(\s*<?([^()\s<>]*)>?(?:\s+\"[^\"]*\")?\s*\)")

    def parse(self, data: bytes) -> Document:
        """Parse UTF-8 Markdown bytes.

        Args:
            data: Raw Markdown bytes.

        Returns:
            Document node whose children appear in source order.

        Raises:
            ParseError: If the input is not valid UTF-8 or a code fence is
                never closed. No partial tree is returned.
        """
        text = self._decode(data)
        reader = _LineReader(text)
        blocks = []
        while not reader.at_end():
            block = self._parse_block(reader)
            if block is not None:
                blocks.append(block)
        return Document(children=tuple(blocks))

    def parse_text(self, text: str) -> Document:
        """Parse Markdown that is already decoded."""
        return self.parse(text.encode("utf-8"))

    def _decode(self, data: bytes) -> str:
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            line = data[: e.start].count(b"\n") + 1
            raise ParseError("Input is not valid UTF-8", line=line, offset=e.start) from e
        return text

    def _parse_block(self, reader: _LineReader):
        """Parse the block starting at the reader position, or skip a blank line."""
        line = reader.peek()
        if not line.strip():
            reader.advance()
            return None

        if self.FENCE_PATTERN.match(line):
            return self._parse_fence(reader)

        heading = self._match_heading(line)
        if heading is not None:
            reader.advance()
            return heading

        if self._match_list_marker(line):
            return self._parse_list(reader)

        return self._parse_paragraph(reader)

    def _match_heading(self, line: str) -> Heading | None:
        match = self.HEADING_PATTERN.match(line)
        if not match:
            return None

        level = len(match.group(1))
        if level > MAX_HEADING_LEVEL:
            logger.debug("Clamping heading level %d to %d", level, MAX_HEADING_LEVEL)
            level = MAX_HEADING_LEVEL

        title = match.group(2) or ""
        title = self.CLOSING_HASHES_PATTERN.sub("", title).strip()
        return Heading(level=level, children=self._parse_inlines(title))

    def _match_list_marker(self, line: str) -> re.Match | None:
        return self.BULLET_PATTERN.match(line) or self.NUMBER_PATTERN.match(line)

    def _starts_block(self, line: str) -> bool:
        """Check if a line interrupts a running paragraph."""
        return bool(
            self.FENCE_PATTERN.match(line)
            or self.HEADING_PATTERN.match(line)
            or self._match_list_marker(line)
        )

    def _parse_fence(self, reader: _LineReader) -> CodeBlock:
        """Parse a fenced code block, including both marker lines.

        Raises:
            ParseError: If the end of input is reached before the closing fence.
        """
        start = reader.pos
        match = self.FENCE_PATTERN.match(reader.advance())
        indent = len(match.group(1))
        marker = match.group(2)
        info = match.group(3)
        closing = re.compile(rf"^ {{0,3}}{re.escape(marker[0])}{{{len(marker)},}}[ \t]*$")

        content = []
        while not reader.at_end():
            line = reader.advance()
            if closing.match(line):
                return CodeBlock(literal="\n".join(content), info=info)
            # Remove the opening fence's indentation from content lines.
            content.append(line[min(indent, _indent_of(line)):])

        raise ParseError("Unterminated code fence", line=start + 1, offset=reader.offsets[start])

    def _parse_paragraph(self, reader: _LineReader) -> Paragraph:
        parts = [reader.advance().strip()]
        while not reader.at_end():
            line = reader.peek()
            if not line.strip() or self._starts_block(line):
                break
            parts.append(reader.advance().strip())
        return Paragraph(children=self._parse_inlines(" ".join(parts)))

    def _parse_list(self, reader: _LineReader) -> List:
        """Parse consecutive items of one list, recursing into nested lists.

        Items belong to the list while their marker sits at the list's
        indentation and has the same kind (bullet or numbered). Deeper
        markers open a nested list inside the current item.
        """
        first = self._match_list_marker(reader.peek())
        list_indent = len(first.group(1))
        ordered = first.re is self.NUMBER_PATTERN
        start = int(first.group(2)) if ordered else 1

        items = []
        segments = None
        saw_blank = False

        while not reader.at_end():
            line = reader.peek()

            if not line.strip():
                if not self._list_continues(reader, list_indent):
                    break
                reader.advance()
                saw_blank = True
                continue

            indent = _indent_of(line)
            marker = self._match_list_marker(line)

            if marker and indent == list_indent:
                if (marker.re is self.NUMBER_PATTERN) != ordered:
                    break
                reader.advance()
                if segments is not None:
                    items.append(self._build_item(segments))
                segments = [[(marker.group(3) or "").strip()]]
                saw_blank = False
                continue

            if indent < list_indent and (marker or saw_blank):
                break

            if indent > list_indent and marker:
                segments.append(self._parse_list(reader))
                saw_blank = False
                continue

            if indent > list_indent and self.FENCE_PATTERN.match(line.strip()):
                segments.append(self._parse_indented_fence(reader, indent))
                saw_blank = False
                continue

            if saw_blank and indent <= list_indent:
                break
            if not saw_blank and indent <= list_indent and self._starts_block(line):
                break

            # Continuation text for the current item.
            if saw_blank or not isinstance(segments[-1], list):
                segments.append([])
            segments[-1].append(reader.advance().strip())
            saw_blank = False

        if segments is not None:
            items.append(self._build_item(segments))
        return List(ordered=ordered, items=tuple(items), start=start)

    def _parse_indented_fence(self, reader: _LineReader, indent: int) -> CodeBlock:
        """Parse a fence nested in a list item by dedenting it first."""
        start = reader.pos
        dedented = []
        for line in reader.lines[start:]:
            dedented.append(line[min(indent, _indent_of(line)):])
        nested = _LineReader("")
        nested.lines = dedented
        nested.offsets = reader.offsets[start:]
        block = self._parse_fence(nested)
        reader.pos = start + nested.pos
        return block

    def _list_continues(self, reader: _LineReader, list_indent: int) -> bool:
        """Check whether the list goes on after the blank line at the cursor."""
        ahead = 1
        while _is_blank(reader.peek(ahead)):
            ahead += 1
        line = reader.peek(ahead)
        if line is None:
            return False
        return _indent_of(line) > list_indent or (
            _indent_of(line) == list_indent and self._match_list_marker(line) is not None
        )

    def _build_item(self, segments: list) -> ListItem:
        """Turn collected item segments into a ListItem.

        The first text run becomes the item's inline content; later text runs
        become paragraphs so their separation survives.
        """
        children = []
        for index, segment in enumerate(segments):
            if isinstance(segment, list):
                inlines = self._parse_inlines(" ".join(part for part in segment if part))
                if index == 0:
                    children.extend(inlines)
                elif inlines:
                    children.append(Paragraph(children=inlines))
            else:
                children.append(segment)
        return ListItem(children=tuple(children))

    def _parse_inlines(self, text: str) -> tuple[Inline, ...]:
        """Split text into Text and Link nodes."""
        nodes = []
        position = 0
        for match in self.LINK_PATTERN.finditer(text):
            if match.start() > position:
                nodes.append(Text(text[position:match.start()]))
            label = match.group(1)
            children = (Text(label),) if label else ()
            nodes.append(Link(target=match.group(2), children=children))
            position = match.end()
        if position < len(text):
            nodes.append(Text(text[position:]))
        return tuple(nodes)


def parse(data: bytes) -> Document:
    """Parse Markdown bytes with a fresh DocumentParser."""
    return DocumentParser().parse(data)
