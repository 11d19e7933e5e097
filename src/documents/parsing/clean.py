"""
Text cleaning and sentence chunking.

Chunks are sentence-bounded where the text has sentence punctuation and
fixed-size character windows otherwise, so every chunk stays under the
embedding model's token budget (about 2K tokens for nomic-embed-text).
"""

import re
from typing import List


# ~2K tokens ≈ 8000 characters; 6000 leaves headroom for model overhead
DEFAULT_WINDOW_SIZE = 6000

_WIKI_IMAGE_PATTERN = re.compile(r"!\[\[.*?\]\]")
_MARKDOWN_IMAGE_PATTERN = re.compile(r"!\[[^\]]*\]\([^)]*\)")
_HYPERLINK_PATTERN = re.compile(r"\[(.*?)\]\((.*?)\)")
_CITATION_PATTERN = re.compile(r"\[\d+\]")
_WHITESPACE_PATTERN = re.compile(r"\s+")

# Split after . ! ? followed by whitespace and a capital letter, but not after
# initialisms (e.g. "U.S. Army") or short titles (e.g. "Mr. Smith")
_SENTENCE_BOUNDARY = re.compile(r"(?<!\w\.\w\.)(?<![A-Z][a-z]\.)(?<=[.!?])\s+(?=[A-Z])")


def remove_images(content: str) -> str:
    """Strip embedded images (![[...]] and ![alt](url))."""
    content = _WIKI_IMAGE_PATTERN.sub("", content)
    return _MARKDOWN_IMAGE_PATTERN.sub("", content)


def remove_hyperlinks(content: str) -> str:
    """Replace [label](url) links with their label."""
    return _HYPERLINK_PATTERN.sub(r"\1", content)


def remove_citations(content: str) -> str:
    """Strip numeric citation markers like [12]."""
    return _CITATION_PATTERN.sub("", content)


def clean_text(text: str) -> str:
    """
    Normalize whitespace and strip markup noise.
    
    Newlines become spaces and whitespace runs collapse to one space before
    images, links and citation markers are removed.
    """
    cleaned = _WHITESPACE_PATTERN.sub(" ", text)
    cleaned = remove_images(cleaned)
    cleaned = remove_citations(cleaned)
    cleaned = remove_hyperlinks(cleaned)
    return _WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def window(text: str, size: int = DEFAULT_WINDOW_SIZE) -> List[str]:
    """
    Cut text into consecutive pieces of at most size characters.
    
    Produces ceil(len(text) / size) pieces; concatenating them gives text back.
    """
    if size <= 0:
        raise ValueError(f"window size must be positive, got {size}")
    return [text[i:i + size] for i in range(0, len(text), size)]


def split_sentences(text: str) -> List[str]:
    """Split cleaned text at sentence boundaries."""
    return [s for s in _SENTENCE_BOUNDARY.split(text) if s]


def split_text(text: str, window_size: int = DEFAULT_WINDOW_SIZE) -> List[str]:
    """
    Clean text and split it into embeddable chunks.
    
    Text containing a period is split into sentences; a sentence longer than
    the window is further cut into windows. Text without any period is cut
    into fixed windows.
    
    Args:
        text: Raw paragraph or section text
        window_size: Maximum characters per chunk
        
    Returns:
        Non-empty chunks in order
        
    Example:
        >>> split_text("Dr. Who arrived. He left! See [1] the [docs](http://x).")
        ['Dr. Who arrived.', 'He left!', 'See the docs.']
    """
    cleaned = clean_text(text)
    if not cleaned:
        return []
    
    if "." not in cleaned:
        return window(cleaned, window_size)
    
    chunks: List[str] = []
    for sentence in split_sentences(cleaned):
        if len(sentence) > window_size:
            chunks.extend(window(sentence, window_size))
        else:
            chunks.append(sentence)
    return chunks
