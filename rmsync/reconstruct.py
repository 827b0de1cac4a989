"""Recovery of Markdown from the flat text of a page document.

Extracted text carries no structure, so lines are classified one at a time
with a few heuristics and rewritten as Markdown. Lines inside a code fence
are never reclassified.
"""

import datetime
import logging
import re
from dataclasses import dataclass, field, replace

import yaml

from rmsync.errors import ReconstructionIrregularity
from rmsync.options import ReconstructionOptions

logger = logging.getLogger(__name__)

FENCE_MARKER = "```"
FRONTMATTER_SOURCE = "remarkable"
MIN_HEADING_LEVEL = 1
MAX_HEADING_LEVEL = 6


@dataclass(frozen=True)
class ReconstructionState:
    """Running state of one reconstruction pass."""

    in_fence: bool = False
    last_emitted_was_blank: bool = False


@dataclass(frozen=True)
class BlankLine:
    pass


@dataclass(frozen=True)
class FenceLine:
    """A fence marker line, opening or closing a code block."""

    text: str


@dataclass(frozen=True)
class CodeLine:
    """A line between two fence markers, passed through verbatim."""

    text: str


@dataclass(frozen=True)
class HeadingLine:
    raw_level: int
    title: str


@dataclass(frozen=True)
class BulletLine:
    text: str


@dataclass(frozen=True)
class NumberedLine:
    number: int
    text: str


@dataclass(frozen=True)
class PlainLine:
    text: str


Classification = BlankLine | FenceLine | CodeLine | HeadingLine | BulletLine | NumberedLine | PlainLine

FENCE_PATTERN = re.compile(r"^```[^`]*$")
HEADING_PATTERN = re.compile(r"^(#+)(?:\s+(.*))?$")
NUMBERED_PATTERN = re.compile(r"^(\d+)\.\s+(.*)$")
BULLET_MARKERS = ("* ", "- ")


def classify(line: str, state: ReconstructionState) -> tuple[Classification, ReconstructionState]:
    """Classify one line of extracted text.

    Args:
        line: The raw line, without its line terminator.
        state: State after the previous line.

    Returns:
        The classification and the state to use for the next line. Only a
        fence marker changes the state.
    """
    stripped = line.strip()

    if FENCE_PATTERN.match(stripped):
        return FenceLine(stripped), replace(state, in_fence=not state.in_fence)

    if state.in_fence:
        return CodeLine(line.rstrip()), state

    if not stripped:
        return BlankLine(), state

    match = HEADING_PATTERN.match(stripped)
    if match:
        return HeadingLine(raw_level=len(match.group(1)), title=(match.group(2) or "").strip()), state

    if stripped.startswith(BULLET_MARKERS):
        return BulletLine(stripped[2:].strip()), state

    match = NUMBERED_PATTERN.match(stripped)
    if match:
        return NumberedLine(number=int(match.group(1)), text=match.group(2).strip()), state

    return PlainLine(stripped), state


@dataclass
class ReconstructionResult:
    """Markdown produced by a reconstruction plus anything odd met on the way."""

    markdown: str
    irregularities: list[ReconstructionIrregularity] = field(default_factory=list)


class TextReconstructor:
    """Turns flat extracted text into Markdown."""

    def __init__(self, options: ReconstructionOptions | None = None):
        self.options = options or ReconstructionOptions()

    def reconstruct(
        self, flat_text: str, title: str = "document", today: datetime.date | None = None
    ) -> ReconstructionResult:
        """Rebuild Markdown from extracted text.

        Args:
            flat_text: Text of the whole page document.
            title: Title written to the frontmatter.
            today: Date written to the frontmatter. Defaults to today.

        Returns:
            ReconstructionResult with the Markdown and any irregularities.
        """
        irregularities = []
        lines = flat_text.replace("\r\n", "\n").split("\n")

        if self.options.cleanup_enabled:
            body = self._clean_lines(lines, irregularities)
        else:
            body = [line.strip() for line in lines]

        markdown = "\n".join(body)
        if self.options.add_frontmatter:
            markdown = self._frontmatter(title, today or datetime.date.today()) + markdown

        for irregularity in irregularities:
            logger.debug("%s at line %d: %s", irregularity.kind, irregularity.line, irregularity.message)
        return ReconstructionResult(markdown=markdown, irregularities=irregularities)

    def _clean_lines(self, lines: list[str], irregularities: list[ReconstructionIrregularity]) -> list[str]:
        output = []
        state = ReconstructionState()
        fence_opened_at = 0

        for number, line in enumerate(lines, start=1):
            kind, state = classify(line, state)

            if isinstance(kind, BlankLine):
                if state.last_emitted_was_blank:
                    continue
                output.append("")
                state = replace(state, last_emitted_was_blank=True)
                continue

            if isinstance(kind, FenceLine):
                if state.in_fence:
                    fence_opened_at = number
                output.append(kind.text)
            elif isinstance(kind, CodeLine):
                output.append(kind.text)
            elif isinstance(kind, HeadingLine):
                output.append(self._heading(kind, number, irregularities))
            elif isinstance(kind, BulletLine):
                output.append(f"- {kind.text}")
            elif isinstance(kind, NumberedLine):
                output.append(f"{kind.number}. {kind.text}")
            else:
                output.append(kind.text)
            state = replace(state, last_emitted_was_blank=False)

        if state.in_fence:
            irregularities.append(
                ReconstructionIrregularity(
                    kind="unterminated-fence",
                    line=fence_opened_at,
                    message="Code fence is never closed; remaining lines were kept verbatim",
                )
            )
        return output

    def _heading(self, kind: HeadingLine, number: int, irregularities: list[ReconstructionIrregularity]) -> str:
        level = kind.raw_level + self.options.header_level_adjust
        clamped = min(max(level, MIN_HEADING_LEVEL), MAX_HEADING_LEVEL)
        if clamped != level:
            irregularities.append(
                ReconstructionIrregularity(
                    kind="heading-level-clamped",
                    line=number,
                    message=f"Heading level {level} clamped to {clamped}",
                )
            )
        marker = "#" * clamped
        return f"{marker} {kind.title}"

    def _frontmatter(self, title: str, today: datetime.date) -> str:
        data = {"title": title, "source": FRONTMATTER_SOURCE, "date": today}
        header = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False, width=1000)
        return f"---\n{header}---\n\n"


def reconstruct(
    flat_text: str,
    options: ReconstructionOptions,
    title: str = "document",
    today: datetime.date | None = None,
) -> str:
    """Rebuild Markdown from extracted text and return only the Markdown."""
    return TextReconstructor(options).reconstruct(flat_text, title=title, today=today).markdown
