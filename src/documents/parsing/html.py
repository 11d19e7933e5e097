"""
HTML section extraction.

Only headings (h1-h6) and paragraphs carry text into sections; every other
tag is dropped. A heading starts a new section and each paragraph is
cleaned and split into sentence chunks.
"""

import html
import re
from typing import List

from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE, split_text


_BLOCK_PATTERN = re.compile(
    r"<(h[1-6])\b[^>]*>(.*?)</\1\s*>|<p\b[^>]*>(.*?)</p\s*>",
    re.DOTALL | re.IGNORECASE,
)
_TAG_PATTERN = re.compile(r"<[^>]+>")
_SCRIPT_STYLE_PATTERN = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.DOTALL | re.IGNORECASE)


def _inner_text(fragment: str) -> str:
    return html.unescape(_TAG_PATTERN.sub("", fragment)).strip()


def parse_html(markup: str, window_size: int = DEFAULT_WINDOW_SIZE) -> List[Section]:
    """
    Convert HTML into sections.
    
    Args:
        markup: HTML document or fragment
        window_size: Maximum characters per chunk
        
    Returns:
        Sections in document order; sections with neither heading nor
        content are omitted
    """
    markup = _SCRIPT_STYLE_PATTERN.sub("", markup)

    sections: List[Section] = []
    current = Section()

    for match in _BLOCK_PATTERN.finditer(markup):
        if match.group(1):
            if current.heading or current.content:
                sections.append(current)
            current = Section(heading=_inner_text(match.group(2)))
        else:
            paragraph = _inner_text(match.group(3))
            if paragraph:
                current.content.extend(split_text(paragraph, window_size))

    if current.heading or current.content:
        sections.append(current)

    return sections
