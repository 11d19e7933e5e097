"""
Markdown section extraction.

Lines starting with one or more '#' followed by whitespace are headings;
the text between headings becomes that section's chunks.
"""

import re
from pathlib import Path
from typing import List, Optional

from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE, split_text


_HEADING_PATTERN = re.compile(r"^#+\s")


def parse_markdown(text: str, window_size: int = DEFAULT_WINDOW_SIZE) -> List[Section]:
    """
    Convert markdown text into sections.
    
    A heading with no body text before the next heading yields no section.
    
    Args:
        text: Markdown source
        window_size: Maximum characters per chunk
        
    Returns:
        Sections with at least one chunk, in document order
    """
    sections: List[Section] = []
    heading: Optional[str] = None
    buffer: List[str] = []

    def flush() -> None:
        chunks = split_text("\n".join(buffer), window_size)
        if chunks:
            sections.append(Section(heading=heading or "", content=chunks))

    for line in text.splitlines():
        if _HEADING_PATTERN.match(line):
            flush()
            heading = line.replace("#", "").strip()
            buffer = []
        else:
            buffer.append(line)

    flush()
    return sections


def parse_markdown_file(path: Path, window_size: int = DEFAULT_WINDOW_SIZE) -> List[Section]:
    """Read a markdown file (UTF-8) and parse it."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    return parse_markdown(text, window_size)
