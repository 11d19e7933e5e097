"""
Runtime API clients.
"""

from .ollama_client import EmbeddingResponse, GenerateResponse, OllamaClient, PullUpdate

__all__ = ["EmbeddingResponse", "GenerateResponse", "OllamaClient", "PullUpdate"]
