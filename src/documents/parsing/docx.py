"""
DOCX section extraction using python-docx.

Paragraphs styled as headings (or Title) start sections; body paragraphs
are cleaned and split into sentence chunks.
"""

import logging
from pathlib import Path
from typing import List

from ..core.exceptions import DocumentParseError
from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE, split_text

try:
    import docx
except ImportError:
    docx = None


logger = logging.getLogger(__name__)


def _is_heading(paragraph) -> bool:
    style = getattr(paragraph, "style", None)
    name = (getattr(style, "name", "") or "").lower()
    return name.startswith("heading") or name == "title"


def parse_docx(path: Path, window_size: int = DEFAULT_WINDOW_SIZE) -> List[Section]:
    """
    Parse a .docx file into sections.
    
    Raises:
        DocumentParseError: If the file is not a readable Word document
    """
    if docx is None:
        raise ImportError(
            "python-docx library is required to parse .docx files. "
            "Install with: pip install python-docx"
        )

    try:
        document = docx.Document(str(path))
    except Exception as e:
        # python-docx raises a mix of zipfile, KeyError and lxml errors
        raise DocumentParseError(f"Failed to open {Path(path).name}: {e}") from e

    sections: List[Section] = []
    current = Section()

    for paragraph in document.paragraphs:
        text = paragraph.text.strip()
        if not text:
            continue
        if _is_heading(paragraph):
            if current.heading or current.content:
                sections.append(current)
            current = Section(heading=text)
        else:
            current.content.extend(split_text(text, window_size))

    if current.heading or current.content:
        sections.append(current)

    logger.debug(f"Parsed {len(sections)} section(s) from {Path(path).name}")
    return sections
