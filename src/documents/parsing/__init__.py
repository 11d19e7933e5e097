"""
Format-specific document parsers.

DocumentParser picks a parser by file extension; unknown extensions are read
as plain text.
"""

import logging
from pathlib import Path
from typing import Callable, Dict, List, Optional

from ..core.exceptions import UnsupportedDocumentError
from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE, clean_text, split_text, window
from .docx import parse_docx
from .html import parse_html
from .image import IMAGE_EXTENSIONS, VisionTranscriber, parse_image
from .markdown import parse_markdown, parse_markdown_file
from .odt import parse_odt
from .pdf import parse_pdf
from .text import parse_text


logger = logging.getLogger(__name__)


def _parse_html_file(path: Path, window_size: int) -> List[Section]:
    return parse_html(Path(path).read_text(encoding="utf-8", errors="replace"), window_size)


class DocumentParser:
    """
    Dispatches parsing on file extension.
    
    Example:
        >>> parser = DocumentParser(transcriber=VisionTranscriber(client))
        >>> sections = parser.parse(Path("notes.md"))
    """
    
    def __init__(
        self,
        transcriber: Optional[VisionTranscriber] = None,
        window_size: int = DEFAULT_WINDOW_SIZE,
    ):
        self.transcriber = transcriber
        self.window_size = window_size
        self._parsers: Dict[str, Callable[[Path], List[Section]]] = {
            ".md": lambda p: parse_markdown_file(p, self.window_size),
            ".markdown": lambda p: parse_markdown_file(p, self.window_size),
            ".docx": lambda p: parse_docx(p, self.window_size),
            ".odt": lambda p: parse_odt(p, self.window_size),
            ".pdf": lambda p: parse_pdf(p, self.transcriber, self.window_size),
            ".html": lambda p: _parse_html_file(p, self.window_size),
            ".htm": lambda p: _parse_html_file(p, self.window_size),
        }
        for extension in IMAGE_EXTENSIONS:
            self._parsers[extension] = self._parse_image
    
    def parse(self, path: Path) -> List[Section]:
        """
        Parse a file into sections.
        
        Raises:
            UnsupportedDocumentError: For images when no transcriber is configured
            DocumentParseError: If the file is malformed
        """
        path = Path(path)
        extension = path.suffix.lower()
        parser = self._parsers.get(extension)
        
        if parser is None:
            logger.debug(f"No parser for '{extension}', reading {path.name} as text")
            return parse_text(path, self.window_size)
        
        return parser(path)
    
    def _parse_image(self, path: Path) -> List[Section]:
        if self.transcriber is None:
            raise UnsupportedDocumentError(
                f"Cannot parse image {path.name}: no vision model configured"
            )
        return parse_image(path, self.transcriber, self.window_size)


__all__ = [
    "DEFAULT_WINDOW_SIZE",
    "DocumentParser",
    "VisionTranscriber",
    "clean_text",
    "parse_docx",
    "parse_html",
    "parse_image",
    "parse_markdown",
    "parse_odt",
    "parse_pdf",
    "parse_text",
    "split_text",
    "window",
]
