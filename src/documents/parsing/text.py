"""
Plain text fallback parser.
"""

from pathlib import Path
from typing import List

from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE, split_text


def parse_text(path: Path, window_size: int = DEFAULT_WINDOW_SIZE) -> List[Section]:
    """Read a file as UTF-8 text and return a single untitled section."""
    text = Path(path).read_text(encoding="utf-8", errors="replace")
    chunks = split_text(text, window_size)
    if not chunks:
        return []
    return [Section(heading="", content=chunks)]
