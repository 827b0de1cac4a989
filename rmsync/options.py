"""Configuration value objects for rendering and reconstruction."""

from dataclasses import dataclass
from enum import Enum


class PageSize(str, Enum):
    """Supported page sizes, named as PyMuPDF's paper size table names them."""

    A4 = "a4"
    A5 = "a5"
    LETTER = "letter"
    LEGAL = "legal"

    @classmethod
    def parse(cls, value: "str | PageSize") -> "PageSize":
        """Look up a page size by name, case-insensitively.

        Args:
            value: A PageSize or a name such as "A4" or "letter".

        Returns:
            The matching PageSize.

        Raises:
            ValueError: If the name is not a supported page size.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            names = ", ".join(size.name for size in cls)
            raise ValueError(f"Unsupported page size: {value!r} (expected one of {names})") from None


@dataclass(frozen=True)
class RenderingOptions:
    """Options for rendering Markdown onto PDF pages."""

    margins: float = 20.0  # Millimetres, applied to all four sides.
    base_font_size: float = 11.0
    main_font: str = "Arial"
    mono_font: str = "Courier"
    page_size: PageSize = PageSize.A4
    color_links: bool = True
    toc: bool = True
    highlight: bool = True

    def __post_init__(self):
        if self.base_font_size <= 0:
            raise ValueError(f"base_font_size must be positive, got {self.base_font_size}")
        if self.margins < 0:
            raise ValueError(f"margins must not be negative, got {self.margins}")
        # Accept plain names for convenience.
        object.__setattr__(self, "page_size", PageSize.parse(self.page_size))


@dataclass(frozen=True)
class ReconstructionOptions:
    """Options for rebuilding Markdown from extracted PDF text."""

    header_level_adjust: int = 1  # "# Title" becomes "## Title".
    add_frontmatter: bool = True
    cleanup_enabled: bool = True
