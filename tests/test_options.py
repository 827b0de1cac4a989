"""Tests for the option value objects."""

import dataclasses

import pytest

from rmsync.options import PageSize, ReconstructionOptions, RenderingOptions


class TestRenderingOptions:
    """Tests for RenderingOptions."""

    def test_default_options(self):
        """Verify default option values."""
        options = RenderingOptions()

        assert options.margins == 20.0
        assert options.base_font_size == 11.0
        assert options.main_font == "Arial"
        assert options.mono_font == "Courier"
        assert options.page_size is PageSize.A4
        assert options.color_links is True
        assert options.toc is True
        assert options.highlight is True

    def test_page_size_by_name(self):
        """Verify page sizes can be given as names."""
        assert RenderingOptions(page_size="Letter").page_size is PageSize.LETTER

    def test_unknown_page_size(self):
        """Verify unknown page sizes are rejected."""
        with pytest.raises(ValueError, match="Unsupported page size"):
            RenderingOptions(page_size="B12")

    def test_invalid_values(self):
        """Verify sizes and margins are validated."""
        with pytest.raises(ValueError):
            RenderingOptions(base_font_size=0)
        with pytest.raises(ValueError):
            RenderingOptions(margins=-1)

    def test_options_are_read_only(self):
        """Verify options cannot be changed after construction."""
        options = RenderingOptions()

        with pytest.raises(dataclasses.FrozenInstanceError):
            options.toc = False


class TestReconstructionOptions:
    """Tests for ReconstructionOptions."""

    def test_default_options(self):
        """Verify default option values."""
        options = ReconstructionOptions()

        assert options.header_level_adjust == 1
        assert options.add_frontmatter is True
        assert options.cleanup_enabled is True

    def test_custom_options(self):
        """Verify custom option values are set correctly."""
        options = ReconstructionOptions(header_level_adjust=-1, add_frontmatter=False, cleanup_enabled=False)

        assert options.header_level_adjust == -1
        assert options.add_frontmatter is False
        assert options.cleanup_enabled is False
