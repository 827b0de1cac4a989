"""Pytest configuration and shared fixtures."""

import pytest

from rmsync import DocumentConverter, ReconstructionOptions, RenderingOptions
from rmsync.renderer import OperationRecorder

SAMPLE_MARKDOWN = """# Weekly notes

Some text with a [link](https://example.com) inside.

## Tasks

- write report
- review [patch](https://example.com/p)
  - nested item

1. first
2. second

```python
def main():
    return 1
```
"""


@pytest.fixture
def recorder():
    """Return an empty OperationRecorder."""
    return OperationRecorder()


@pytest.fixture
def default_converter():
    """Return a DocumentConverter with default options."""
    return DocumentConverter()


@pytest.fixture
def plain_converter():
    """Return a DocumentConverter with optional features disabled."""
    return DocumentConverter(
        rendering=RenderingOptions(color_links=False, toc=False, highlight=False),
        reconstruction=ReconstructionOptions(header_level_adjust=0, add_frontmatter=False),
    )


@pytest.fixture
def sample_markdown_path(tmp_path):
    """Write the sample Markdown note and return its path."""
    path = tmp_path / "weekly.md"
    path.write_text(SAMPLE_MARKDOWN, encoding="utf-8")
    return path


@pytest.fixture
def device_dir(tmp_path):
    """Return an empty device documents folder."""
    path = tmp_path / "device"
    path.mkdir()
    return path
