"""
PDF section extraction using PyMuPDF.

Each page with a text layer becomes a "Page N" section. Pages without
extractable text (scans) are rendered to PNG and transcribed by the vision
model when a transcriber is configured.
"""

import logging
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import DocumentParseError
from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE, split_text
from .image import VisionTranscriber

try:
    import fitz  # PyMuPDF
except ImportError:
    fitz = None


logger = logging.getLogger(__name__)

# Minimum characters for a page's text layer to be trusted over OCR
MIN_TEXT_CHARS = 20


def parse_pdf(
    path: Path,
    transcriber: Optional[VisionTranscriber] = None,
    window_size: int = DEFAULT_WINDOW_SIZE,
    dpi: int = 200,
) -> List[Section]:
    """
    Parse a PDF into per-page sections.
    
    Args:
        path: PDF file
        transcriber: Optional vision transcriber for pages without text
        window_size: Maximum characters per chunk
        dpi: Render resolution for OCR'd pages
        
    Raises:
        DocumentParseError: If the PDF cannot be opened or a page cannot be read
        RuntimeProviderError: If transcribing a page fails
    """
    if fitz is None:
        raise ImportError(
            "PyMuPDF library is required to parse .pdf files. "
            "Install with: pip install pymupdf"
        )

    name = Path(path).name
    try:
        document = fitz.open(str(path))
    except Exception as e:
        # PyMuPDF raises its own FileDataError/RuntimeError family
        raise DocumentParseError(f"Failed to open {name}: {e}") from e

    sections: List[Section] = []
    with document:
        for index, page in enumerate(document):
            heading = f"Page {index + 1}"
            try:
                text = page.get_text() or ""
            except Exception as e:
                raise DocumentParseError(f"Failed to read {name} {heading}: {e}") from e

            if len(text.strip()) < MIN_TEXT_CHARS and transcriber is not None:
                logger.debug(f"{name} {heading}: no text layer, transcribing")
                try:
                    pixmap = page.get_pixmap(matrix=fitz.Matrix(dpi / 72, dpi / 72), alpha=False)
                    image = pixmap.tobytes("png")
                except Exception as e:
                    raise DocumentParseError(f"Failed to render {name} {heading}: {e}") from e
                text = transcriber.transcribe(image)

            chunks = split_text(text, window_size)
            if chunks:
                sections.append(Section(heading=heading, content=chunks))

    logger.debug(f"Parsed {len(sections)} page section(s) from {name}")
    return sections
