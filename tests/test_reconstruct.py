"""Tests for line classification and Markdown reconstruction."""

import datetime

import pytest

from rmsync.options import ReconstructionOptions
from rmsync.reconstruct import (
    BlankLine,
    BulletLine,
    CodeLine,
    FenceLine,
    HeadingLine,
    NumberedLine,
    PlainLine,
    ReconstructionState,
    TextReconstructor,
    classify,
    reconstruct,
)

FIXED_DATE = datetime.date(2024, 3, 9)

SCENARIO_INPUT = """# Title

Some text.

```
code line 1
code line 2
```

- item one
* item two
1.  first
2. second"""


def options(**overrides) -> ReconstructionOptions:
    values = {"header_level_adjust": 0, "add_frontmatter": False}
    values.update(overrides)
    return ReconstructionOptions(**values)


class TestClassify:
    """Tests for the line classifier."""

    @pytest.mark.parametrize(
        "line, expected",
        [
            ("", BlankLine()),
            ("   ", BlankLine()),
            ("## Heading", HeadingLine(raw_level=2, title="Heading")),
            ("###", HeadingLine(raw_level=3, title="")),
            ("  # Indented  ", HeadingLine(raw_level=1, title="Indented")),
            ("- item", BulletLine("item")),
            ("*   spaced", BulletLine("spaced")),
            ("12. twelfth", NumberedLine(number=12, text="twelfth")),
            ("1.  first", NumberedLine(number=1, text="first")),
            ("#hashtag", PlainLine("#hashtag")),
            ("-dash", PlainLine("-dash")),
            ("1.5 million", PlainLine("1.5 million")),
            ("  plain text  ", PlainLine("plain text")),
        ],
    )
    def test_outside_fence(self, line, expected):
        """Verify classification of lines outside code fences."""
        kind, state = classify(line, ReconstructionState())

        assert kind == expected
        assert state == ReconstructionState()

    def test_fence_toggles_state(self):
        """Verify fence markers flip the fence state."""
        kind, state = classify("```", ReconstructionState())
        assert kind == FenceLine("```")
        assert state.in_fence is True

        kind, state = classify("```", state)
        assert state.in_fence is False

    def test_fence_with_language(self):
        """Verify a fence with an info string is a fence marker."""
        kind, state = classify("```python", ReconstructionState())

        assert kind == FenceLine("```python")
        assert state.in_fence is True

    @pytest.mark.parametrize("line", ["# heading", "- bullet", "1. numbered", ""])
    def test_inside_fence_is_passthrough(self, line):
        """Verify lines inside a fence are never reclassified."""
        state = ReconstructionState(in_fence=True)

        kind, new_state = classify(line, state)

        assert kind == CodeLine(line)
        assert new_state == state

    def test_inside_fence_keeps_indentation(self):
        """Verify code indentation is preserved."""
        kind, _ = classify("    return 1   ", ReconstructionState(in_fence=True))

        assert kind == CodeLine("    return 1")


class TestReconstruct:
    """Tests for TextReconstructor."""

    def test_scenario(self):
        """Verify a mixed document with a heading shift of one."""
        result = reconstruct(SCENARIO_INPUT, options(header_level_adjust=1))

        assert result.split("\n") == [
            "## Title",
            "",
            "Some text.",
            "",
            "```",
            "code line 1",
            "code line 2",
            "```",
            "",
            "- item one",
            "- item two",
            "1. first",
            "2. second",
        ]

    @pytest.mark.parametrize("level", range(1, 7))
    @pytest.mark.parametrize("adjust", [-7, -2, -1, 0, 1, 3, 6])
    def test_heading_adjustment_is_clamped(self, level, adjust):
        """Verify heading levels shift by the adjustment within 1 to 6."""
        result = reconstruct("#" * level + " Heading", options(header_level_adjust=adjust))

        expected = min(max(level + adjust, 1), 6)
        assert result == "#" * expected + " Heading"

    def test_bare_heading_marker_keeps_separator(self):
        """Verify an untitled heading is written as marker plus space and stays stable."""
        once = reconstruct("#\ntext", options(header_level_adjust=1))
        twice = reconstruct(once, options(header_level_adjust=0))

        assert once == "## \ntext"
        assert twice == once

    @pytest.mark.parametrize("blank_lines", range(2, 7))
    def test_blank_runs_collapse(self, blank_lines):
        """Verify any run of blank lines becomes exactly one."""
        text = "a" + "\n" * (blank_lines + 1) + "b"

        assert reconstruct(text, options()) == "a\n\nb"

    def test_whitespace_only_lines_count_as_blank(self):
        """Verify lines holding only spaces collapse with other blanks."""
        assert reconstruct("a\n   \n\t\n\nb", options()) == "a\n\nb"

    def test_fence_content_is_verbatim(self):
        """Verify lookalike lines inside a fence are left alone."""
        text = "```\n# not a heading\n* not a bullet\n3.  not renumbered\n```"

        assert reconstruct(text, options(header_level_adjust=2)) == text

    def test_numbered_labels_preserved(self):
        """Verify numbered items keep their original numbers."""
        assert reconstruct("3. c\n1. a\n7.   g", options()) == "3. c\n1. a\n7. g"

    def test_idempotent_on_normalized_text(self):
        """Verify running cleanup twice changes nothing more."""
        once = reconstruct(SCENARIO_INPUT + "\n\n\n\n* tail", options())

        assert reconstruct(once, options()) == once

    def test_cleanup_disabled(self):
        """Verify only trimming happens without cleanup."""
        text = "# A\n\n\n\n* b  \n  1.  c"

        assert reconstruct(text, options(cleanup_enabled=False, header_level_adjust=3)) == "# A\n\n\n\n* b\n1.  c"

    def test_unterminated_fence_is_recoverable(self):
        """Verify an unclosed fence keeps its lines and is reported."""
        result = TextReconstructor(options()).reconstruct("intro\n```\n# keep\n- keep")

        assert result.markdown == "intro\n```\n# keep\n- keep"
        assert [i.kind for i in result.irregularities] == ["unterminated-fence"]
        assert result.irregularities[0].line == 2

    def test_clamped_heading_is_reported(self):
        """Verify an out of range heading level is reported."""
        result = TextReconstructor(options(header_level_adjust=1)).reconstruct("###### Deep")

        assert result.markdown == "###### Deep"
        assert result.irregularities[0].kind == "heading-level-clamped"
        assert result.irregularities[0].line == 1

    def test_crlf_input(self):
        """Verify Windows line endings are handled."""
        assert reconstruct("- a\r\n- b\r\n", options()) == "- a\n- b\n"


class TestFrontmatter:
    """Tests for the frontmatter header."""

    def test_frontmatter_block(self):
        """Verify the frontmatter layout."""
        result = reconstruct("body", options(add_frontmatter=True), title="notes", today=FIXED_DATE)

        assert result == "---\ntitle: notes\nsource: remarkable\ndate: 2024-03-09\n---\n\nbody"

    def test_frontmatter_quotes_awkward_titles(self):
        """Verify titles that are not plain YAML scalars are quoted."""
        result = reconstruct("", options(add_frontmatter=True), title="a: b", today=FIXED_DATE)

        assert "title: 'a: b'\n" in result

    def test_frontmatter_without_cleanup(self):
        """Verify frontmatter does not depend on cleanup."""
        result = reconstruct(
            "x", options(add_frontmatter=True, cleanup_enabled=False), title="t", today=FIXED_DATE
        )

        assert result.startswith("---\ntitle: t\n")
        assert result.endswith("---\n\nx")

    def test_default_options(self):
        """Verify the defaults shift headings and add frontmatter."""
        result = TextReconstructor().reconstruct("# A", title="doc", today=FIXED_DATE)

        assert result.markdown == "---\ntitle: doc\nsource: remarkable\ndate: 2024-03-09\n---\n\n## A"
