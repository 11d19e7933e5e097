"""
Shared test fixtures and configuration for pytest.
"""

import logging
import sqlite3
import sys
from pathlib import Path
from typing import List, Optional, Sequence

import pytest

# Add src directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))


logger = logging.getLogger(__name__)


# ============================================================================
# Environment detection
# ============================================================================

def is_sqlite_vec_available() -> bool:
    """Check if the sqlite-vec extension can be loaded by this interpreter."""
    try:
        import sqlite_vec

        conn = sqlite3.connect(":memory:")
        try:
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.execute("SELECT vec_version()").fetchone()
        finally:
            conn.close()
        return True

    except (ImportError, AttributeError, sqlite3.Error) as e:
        logger.debug(f"sqlite-vec not available: {e}")
        return False


# ============================================================================
# Pytest hooks
# ============================================================================

def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Integration tests (requires sqlite-vec)")
    config.addinivalue_line("markers", "slow: Tests that take a long time to run")


def pytest_collection_modifyitems(config, items):
    """Automatically skip integration tests if sqlite-vec cannot be loaded."""
    if is_sqlite_vec_available():
        return

    skip_vec = pytest.mark.skip(
        reason="sqlite-vec not available (pip install sqlite-vec; sqlite3 must allow extensions)"
    )

    for item in items:
        if "integration" in item.keywords:
            item.add_marker(skip_vec)


# ============================================================================
# Fakes
# ============================================================================

class FakeEmbeddingResponse:
    def __init__(self, embeddings: List[List[float]]):
        self.embeddings = embeddings


class FakeEmbedder:
    """
    Deterministic stand-in for the runtime client's embed().

    Each text maps to a vector derived from its length and first character,
    so identical texts get identical vectors.
    """

    def __init__(self, dimensions: int = 4, fail_times: int = 0, always_fail: bool = False):
        self.dimensions = dimensions
        self.fail_times = fail_times
        self.always_fail = always_fail
        self.calls: List[List[str]] = []

    def vector_for(self, text: str) -> List[float]:
        base = float(len(text))
        first = float(ord(text[0])) if text else 0.0
        return [base, first] + [1.0] * (self.dimensions - 2)

    def embed(self, texts: Sequence[str], model: Optional[str] = None) -> FakeEmbeddingResponse:
        from runtime.core.exceptions import RuntimeProviderError

        self.calls.append(list(texts))
        if self.always_fail or self.fail_times > 0:
            self.fail_times -= 1
            raise RuntimeProviderError("Runtime API error: 500 - boom", status_code=500)
        return FakeEmbeddingResponse([self.vector_for(t) for t in texts])


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def sqlite_vec_available() -> bool:
    """Session-scoped fixture to check if sqlite-vec is loadable."""
    return is_sqlite_vec_available()


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    """Fixture providing a deterministic embedder."""
    return FakeEmbedder()


@pytest.fixture
def sample_markdown(tmp_path: Path) -> Path:
    """Fixture providing a small markdown document."""
    path = tmp_path / "notes.md"
    path.write_text(
        "# Geometry\n"
        "The Pythagorean theorem relates the sides of a right triangle. "
        "It was known long before Pythagoras.\n"
        "\n"
        "# Algebra\n"
        "Variables stand for unknown values.\n",
        encoding="utf-8",
    )
    return path
