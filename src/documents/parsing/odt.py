"""
ODT section extraction.

An OpenDocument text file is a zip archive; content.xml holds text:h
headings and text:p paragraphs in document order.
"""

import logging
import zipfile
from pathlib import Path
from typing import List
from xml.etree import ElementTree

from ..core.exceptions import DocumentParseError
from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE, split_text


logger = logging.getLogger(__name__)

TEXT_NS = "urn:oasis:names:tc:opendocument:xmlns:text:1.0"
HEADING_TAG = f"{{{TEXT_NS}}}h"
PARAGRAPH_TAG = f"{{{TEXT_NS}}}p"
SPACE_TAG = f"{{{TEXT_NS}}}s"
TAB_TAG = f"{{{TEXT_NS}}}tab"
LINE_BREAK_TAG = f"{{{TEXT_NS}}}line-break"


def _element_text(element: ElementTree.Element) -> str:
    """Text of an element, expanding text:s / text:tab / text:line-break."""
    parts = [element.text or ""]
    for child in element:
        if child.tag == SPACE_TAG:
            parts.append(" " * int(child.get(f"{{{TEXT_NS}}}c", "1")))
        elif child.tag in (TAB_TAG, LINE_BREAK_TAG):
            parts.append(" ")
        else:
            parts.append(_element_text(child))
        parts.append(child.tail or "")
    return "".join(parts)


def parse_odt(path: Path, window_size: int = DEFAULT_WINDOW_SIZE) -> List[Section]:
    """
    Parse a .odt file into sections.
    
    Raises:
        DocumentParseError: If the archive or its content.xml is unreadable
    """
    try:
        with zipfile.ZipFile(path) as archive:
            content = archive.read("content.xml")
        root = ElementTree.fromstring(content)
    except (zipfile.BadZipFile, KeyError, ElementTree.ParseError, OSError) as e:
        raise DocumentParseError(f"Failed to read {Path(path).name}: {e}") from e

    sections: List[Section] = []
    current = Section()

    for element in root.iter():
        if element.tag == HEADING_TAG:
            heading = _element_text(element).strip()
            if not heading:
                continue
            if current.heading or current.content:
                sections.append(current)
            current = Section(heading=heading)
        elif element.tag == PARAGRAPH_TAG:
            text = _element_text(element).strip()
            if text:
                current.content.extend(split_text(text, window_size))

    if current.heading or current.content:
        sections.append(current)

    logger.debug(f"Parsed {len(sections)} section(s) from {Path(path).name}")
    return sections
