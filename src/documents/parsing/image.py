"""
Image transcription through the runtime's vision model.

The transcript is wrapped as markdown under an "Extracted Text" heading and
parsed like any markdown document.
"""

import logging
from pathlib import Path
from typing import List, Optional

from ..core.exceptions import DocumentParseError
from ..core.models import Section
from .clean import DEFAULT_WINDOW_SIZE
from .markdown import parse_markdown


logger = logging.getLogger(__name__)

TRANSCRIBE_PROMPT = (
    "Read and transcribe all the text visible in this image. Return only the "
    "text content, maintaining the original formatting and structure."
)

IMAGE_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp", ".tif", ".tiff")


class VisionTranscriber:
    """
    Transcribes images to text with a vision-capable runtime model.
    
    Example:
        >>> transcriber = VisionTranscriber(client, model="gemma3n:e4b")
        >>> transcriber.transcribe(Path("scan.png").read_bytes())
    """
    
    def __init__(self, client, model: Optional[str] = None, prompt: str = TRANSCRIBE_PROMPT):
        """
        Args:
            client: Runtime client exposing generate(prompt, model=, images=)
            model: Vision model name (client default if None)
            prompt: Transcription instruction
        """
        self.client = client
        self.model = model
        self.prompt = prompt
    
    def transcribe(self, image: bytes) -> str:
        """
        Return the text visible in an image.
        
        Raises:
            RuntimeProviderError: If the runtime request fails
        """
        response = self.client.generate(self.prompt, model=self.model, images=[image])
        text = (response.content or "").strip()
        logger.debug(f"Transcribed image: {len(text)} characters")
        return text


def sections_from_transcript(text: str, window_size: int = DEFAULT_WINDOW_SIZE) -> List[Section]:
    """Parse a transcript as markdown under an "Extracted Text" heading."""
    if not text.strip():
        return []
    return parse_markdown(f"# Extracted Text\n\n{text}", window_size)


def parse_image(
    path: Path,
    transcriber: VisionTranscriber,
    window_size: int = DEFAULT_WINDOW_SIZE,
) -> List[Section]:
    """
    Transcribe an image file into sections.
    
    Raises:
        DocumentParseError: If the file cannot be read
    """
    try:
        data = Path(path).read_bytes()
    except OSError as e:
        raise DocumentParseError(f"Failed to read image {Path(path).name}: {e}") from e
    if not data:
        return []
    return sections_from_transcript(transcriber.transcribe(data), window_size)
