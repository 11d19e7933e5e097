"""
Ollama runtime API client.

Thin HTTP client for the endpoints the supervisor and the ingestion pipeline
depend on: health probe, model listing, streamed model pulls, embeddings and
generation (including image input for transcription).
"""

import base64
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Sequence, Union
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from ..core.exceptions import EmbeddingFailedError, ModelPullError, RuntimeProviderError
from ..core.types import RuntimeConfig


logger = logging.getLogger(__name__)


@dataclass
class GenerateResponse:
    """
    Response from the /api/generate endpoint.

    Attributes:
        content: The generated text
        model: Model that generated the response
        raw_response: Full response JSON
        prompt_tokens: Number of prompt tokens (if available)
        completion_tokens: Number of completion tokens (if available)
        done: Whether generation is complete
    """
    content: str
    model: Optional[str] = None
    raw_response: Optional[Dict[str, Any]] = None
    prompt_tokens: Optional[int] = None
    completion_tokens: Optional[int] = None
    done: bool = True


@dataclass
class EmbeddingResponse:
    """
    Response from the /api/embed endpoint.

    Attributes:
        embeddings: One vector per input text, in input order
        model: Model that generated the embeddings
        total_duration: Total time in nanoseconds
        load_duration: Model load time in nanoseconds
    """
    embeddings: List[List[float]] = field(default_factory=list)
    model: Optional[str] = None
    total_duration: Optional[int] = None
    load_duration: Optional[int] = None


@dataclass(frozen=True)
class PullUpdate:
    """One line of a streamed model pull."""
    status: str
    total: Optional[int] = None
    completed: Optional[int] = None
    digest: Optional[str] = None

    @property
    def percentage(self) -> Optional[int]:
        if not self.total or self.completed is None:
            return None
        return int(self.completed * 100 / self.total + 0.5)


class OllamaClient:
    """
    HTTP client for a local Ollama runtime.

    Example:
        >>> client = OllamaClient(RuntimeConfig(runtime_dir=Path("/tmp/ollama")))
        >>> client.ping()
        True
        >>> client.embed(["Hello world"]).embeddings[0][:3]
    """

    def __init__(self, config: RuntimeConfig):
        """
        Initialize the client.

        Args:
            config: Runtime configuration with base URL, models and timeouts
        """
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout_seconds

        logger.debug(f"Initialized OllamaClient: base_url={self.base_url}")

    def ping(self) -> bool:
        """
        Plain reachability check: GET on the base URL answers 200.

        Returns:
            True if the runtime is reachable, False otherwise
        """
        try:
            request = Request(f"{self.base_url}/", method="GET")
            with urlopen(request, timeout=self.config.probe_timeout_seconds) as response:
                return response.status == 200
        except (HTTPError, URLError, OSError) as e:
            logger.debug(f"Health probe failed: {e}")
            return False

    def list_models(self) -> List[str]:
        """
        List installed model names via /api/tags.

        Raises:
            RuntimeProviderError: If the request fails
        """
        result = self._request_json("GET", "/api/tags")
        return [m.get("name", "") for m in result.get("models", []) if m.get("name")]

    def pull_model(self, model: str) -> Iterator[PullUpdate]:
        """
        Pull a model, yielding streamed progress lines.

        The stream ends after the update whose status is "success".

        Args:
            model: Model name to pull

        Yields:
            PullUpdate for every progress line

        Raises:
            ModelPullError: If the runtime reports an error or the stream ends early
        """
        payload = {"model": model, "stream": True}
        request = self._build_request("POST", "/api/pull", payload)

        logger.info(f"Pulling model {model}")
        try:
            with urlopen(request, timeout=self.config.pull_timeout_seconds) as response:
                for raw_line in response:
                    line = raw_line.decode("utf-8").strip()
                    if not line:
                        continue
                    data = json.loads(line)

                    if data.get("error"):
                        raise ModelPullError(
                            f"Failed to pull {model}: {data['error']}", model=model
                        )

                    update = PullUpdate(
                        status=data.get("status", ""),
                        total=data.get("total"),
                        completed=data.get("completed"),
                        digest=data.get("digest"),
                    )
                    yield update

                    if update.status == "success":
                        logger.info(f"Model {model} pulled")
                        return
        except HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else str(e)
            raise ModelPullError(
                f"Failed to pull {model}: HTTP {e.code} - {error_body}", model=model
            )
        except (URLError, OSError) as e:
            raise ModelPullError(f"Failed to pull {model}: {e}", model=model)
        except json.JSONDecodeError as e:
            raise ModelPullError(f"Invalid pull progress from runtime: {e}", model=model)

        raise ModelPullError(f"Pull of {model} ended without success", model=model)

    def embed(
        self,
        texts: Union[str, Sequence[str]],
        model: Optional[str] = None,
    ) -> EmbeddingResponse:
        """
        Generate embeddings using the /api/embed endpoint.

        Args:
            texts: A single text or a batch of texts
            model: Embedding model (defaults to config.embedding_model)

        Returns:
            EmbeddingResponse with one vector per input text

        Raises:
            RuntimeProviderError: If the request fails
            EmbeddingFailedError: If the vector count does not match the input count
        """
        inputs = [texts] if isinstance(texts, str) else list(texts)
        embed_model = model or self.config.embedding_model

        if not inputs:
            return EmbeddingResponse(embeddings=[], model=embed_model)

        logger.debug(f"Embedding {len(inputs)} text(s) with {embed_model}")
        result = self._request_json("POST", "/api/embed", {"model": embed_model, "input": inputs})

        embeddings = result.get("embeddings") or []
        if len(embeddings) != len(inputs):
            raise EmbeddingFailedError(
                f"Expected {len(inputs)} embeddings from {embed_model}, got {len(embeddings)}"
            )

        return EmbeddingResponse(
            embeddings=embeddings,
            model=result.get("model", embed_model),
            total_duration=result.get("total_duration"),
            load_duration=result.get("load_duration"),
        )

    def generate(
        self,
        prompt: str,
        model: Optional[str] = None,
        images: Optional[Sequence[Union[bytes, str]]] = None,
        system_prompt: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        **kwargs
    ) -> GenerateResponse:
        """
        Generate a completion using the native /api/generate endpoint.

        Args:
            prompt: The user prompt
            model: Model name (defaults to config.generation_model)
            images: Raw image bytes or base64 strings for vision models
            system_prompt: Optional system prompt
            options: Runtime sampling options (temperature, num_predict, ...)
            **kwargs: Additional top-level payload fields

        Returns:
            GenerateResponse with the generated content

        Raises:
            RuntimeProviderError: If the request fails
        """
        payload: Dict[str, Any] = {
            "model": model or self.config.generation_model,
            "prompt": prompt,
            "stream": False,
        }

        if system_prompt:
            payload["system"] = system_prompt
        if images:
            payload["images"] = [
                base64.b64encode(image).decode("ascii") if isinstance(image, bytes) else image
                for image in images
            ]
        if options:
            payload["options"] = dict(options)

        payload.update(kwargs)

        result = self._request_json("POST", "/api/generate", payload)

        return GenerateResponse(
            content=result.get("response", ""),
            model=result.get("model"),
            raw_response=result,
            prompt_tokens=result.get("prompt_eval_count"),
            completion_tokens=result.get("eval_count"),
            done=result.get("done", True),
        )

    def _build_request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Request:
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        headers = {"Content-Type": "application/json"} if data is not None else {}
        return Request(f"{self.base_url}{path}", data=data, headers=headers, method=method)

    def _request_json(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Make a non-streaming request to the runtime API.

        Raises:
            RuntimeProviderError: If the request fails
        """
        request = self._build_request(method, path, payload)
        url = request.full_url

        try:
            logger.debug(f"Making request to {url}")
            with urlopen(request, timeout=self.timeout) as response:
                return json.loads(response.read().decode("utf-8"))

        except HTTPError as e:
            error_body = e.read().decode("utf-8") if e.fp else str(e)
            logger.error(f"HTTP error from runtime: {e.code} - {error_body}")
            raise RuntimeProviderError(
                f"Runtime API error: {e.code} - {error_body}",
                status_code=e.code,
            )
        except URLError as e:
            logger.error(f"Failed to connect to runtime: {e}")
            raise RuntimeProviderError(f"Failed to connect to runtime at {self.base_url}: {e}")
        except json.JSONDecodeError as e:
            logger.error(f"Invalid JSON response from runtime: {e}")
            raise RuntimeProviderError(f"Invalid JSON response from runtime: {e}")
        except OSError as e:
            logger.error(f"I/O error talking to runtime: {e}")
            raise RuntimeProviderError(f"I/O error talking to runtime at {self.base_url}: {e}")
