"""
Streaming content decoders for transport-compressed HTTP bodies.

Each decoder consumes raw wire chunks via ``decompress`` and releases any
buffered tail via ``flush``. Selection is by the Content-Encoding header.
"""

import logging
import zlib
from typing import Optional

try:
    import brotli
except ImportError:
    brotli = None

from .core.exceptions import DownloadError


logger = logging.getLogger(__name__)


class IdentityDecoder:
    """Pass-through decoder for unencoded bodies."""

    def decompress(self, chunk: bytes) -> bytes:
        return chunk

    def flush(self) -> bytes:
        return b""


class GzipDecoder:
    """Incremental gzip decoder; handles multi-member streams."""

    def __init__(self):
        self._obj = zlib.decompressobj(16 + zlib.MAX_WBITS)

    def decompress(self, chunk: bytes) -> bytes:
        output = []
        data = chunk
        while data:
            output.append(self._obj.decompress(data))
            if not self._obj.eof:
                break
            # Concatenated gzip members
            data = self._obj.unused_data
            if data:
                self._obj = zlib.decompressobj(16 + zlib.MAX_WBITS)
        return b"".join(output)

    def flush(self) -> bytes:
        return self._obj.flush()


class DeflateDecoder:
    """
    Incremental deflate decoder.
    
    Servers disagree on whether "deflate" means zlib-wrapped or raw deflate;
    the first chunk decides which one is in use.
    """

    def __init__(self):
        self._obj = zlib.decompressobj()
        self._first = True

    def decompress(self, chunk: bytes) -> bytes:
        if not chunk:
            return b""
        if self._first:
            self._first = False
            try:
                return self._obj.decompress(chunk)
            except zlib.error:
                logger.debug("Deflate body is not zlib-wrapped, using raw deflate")
                self._obj = zlib.decompressobj(-zlib.MAX_WBITS)
        return self._obj.decompress(chunk)

    def flush(self) -> bytes:
        return self._obj.flush()


class BrotliDecoder:
    """Incremental brotli decoder backed by the brotli package."""

    def __init__(self):
        if brotli is None:
            raise ImportError(
                "brotli library is required to decode 'br' responses. "
                "Install with: pip install brotli"
            )
        self._obj = brotli.Decompressor()

    def decompress(self, chunk: bytes) -> bytes:
        if not chunk:
            return b""
        return self._obj.process(chunk)

    def flush(self) -> bytes:
        return b""


def get_decoder(content_encoding: Optional[str]):
    """
    Return a decoder for the given Content-Encoding header value.
    
    Args:
        content_encoding: Header value (case-insensitive), or None
        
    Returns:
        Decoder instance exposing decompress() and flush()
        
    Raises:
        DownloadError: If the encoding is not supported
    """
    encoding = (content_encoding or "").strip().lower()

    if encoding in ("", "identity"):
        return IdentityDecoder()
    if encoding in ("gzip", "x-gzip"):
        return GzipDecoder()
    if encoding == "deflate":
        return DeflateDecoder()
    if encoding == "br":
        return BrotliDecoder()

    raise DownloadError(f"Unsupported Content-Encoding: {content_encoding}")
