# @TASK P2-T2.5 - Embedding backends run inside the worker process
# @TEST tests/test_embeddings.py

"""Embedding backends for converting text into vector embeddings.

These run inside the isolated worker process (see
:mod:`smartnotes.search.worker`), never on the engine's event loop, so
they are plain synchronous code.

Supported backends:

* **sentence-transformers** (default) -- loads the model selected by the
  capability tier (e.g. ``all-MiniLM-L6-v2``) locally.
* **http** -- forwards requests to a local embedding service exposing
  ``POST /embed`` (``EMBEDDING_SERVICE_URL``).
* **openai** -- uses the OpenAI embeddings endpoint.
* **keyword** -- the deterministic keyword-hash embedding; useful for
  development machines without a model.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
from openai import APIError, OpenAI

from smartnotes.search.errors import EmbeddingError
from smartnotes.search.vectors import keyword_embedding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BackendSpec:
    """Picklable description of the backend a worker process should build."""

    backend: str = "sentence-transformers"
    model: str = "all-MiniLM-L6-v2"
    service_url: str = ""
    api_key: str = ""
    openai_model: str = "text-embedding-3-small"
    dimensions: int = 384


class EmbeddingBackend(ABC):
    """Generate vector embeddings for text."""

    name: str = "base"

    def __init__(self) -> None:
        self._loaded = False

    @property
    def loaded(self) -> bool:
        return self._loaded

    def load(self) -> None:
        """Prepare the backend. Safe to call more than once.

        Raises
        ------
        EmbeddingError
            If the model or client cannot be prepared.
        """
        if self._loaded:
            return
        self._load()
        self._loaded = True

    def embed(self, text: str) -> list[float]:
        """Embed a single text string, loading the backend on first use.

        Returns an empty list when *text* is empty or whitespace-only.

        Raises
        ------
        EmbeddingError
            If the backend call fails.
        """
        if not text or not text.strip():
            return []
        self.load()
        return self._embed(text)

    def close(self) -> None:
        """Release clients held by the backend. Called when the worker stops."""

    @abstractmethod
    def _load(self) -> None: ...

    @abstractmethod
    def _embed(self, text: str) -> list[float]: ...


class SentenceTransformerBackend(EmbeddingBackend):
    """Local sentence-transformers model."""

    name = "sentence-transformers"

    def __init__(self, model_name: str) -> None:
        super().__init__()
        self._model_name = model_name
        self._model = None

    def _load(self) -> None:
        logger.info("Loading sentence-transformers model: %s", self._model_name)
        try:
            # Imported here: only worker processes pay for loading torch.
            from sentence_transformers import SentenceTransformer

            self._model = SentenceTransformer(self._model_name)
        except Exception as exc:
            logger.error("Failed to load model %s: %s", self._model_name, exc)
            raise EmbeddingError(f"Failed to load model {self._model_name}: {exc}") from exc

    def _embed(self, text: str) -> list[float]:
        try:
            vector = self._model.encode(text, normalize_embeddings=True)
        except Exception as exc:
            logger.error("Model %s failed to encode text: %s", self._model_name, exc)
            raise EmbeddingError(str(exc)) from exc
        return [float(value) for value in vector]


class HttpEmbeddingBackend(EmbeddingBackend):
    """Local HTTP embedding service.

    Expects the service to expose a ``POST /embed`` endpoint that
    accepts ``{"input": [...], "dimensions": N}`` and returns
    ``{"embeddings": [[...], ...]}``.
    """

    name = "http"

    def __init__(self, url: str, dimensions: int, timeout: float = 60.0) -> None:
        super().__init__()
        self._url = url.rstrip("/")
        self._dimensions = dimensions
        self._timeout = timeout
        self._client: httpx.Client | None = None

    def _load(self) -> None:
        if not self._url:
            raise EmbeddingError("EMBEDDING_SERVICE_URL is not configured")
        logger.info("HTTP embedding backend enabled (%s)", self._url)
        self._client = httpx.Client(timeout=self._timeout)

    def _embed(self, text: str) -> list[float]:
        payload = {"input": [text], "dimensions": self._dimensions}
        try:
            response = self._client.post(f"{self._url}/embed", json=payload)
            response.raise_for_status()
            return response.json()["embeddings"][0]
        except httpx.HTTPStatusError as exc:
            logger.error("Local embedding HTTP error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        except httpx.RequestError as exc:
            logger.error("Local embedding request error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        except (KeyError, IndexError, ValueError) as exc:
            logger.error("Local embedding response parse error: %s", exc)
            raise EmbeddingError(f"Unexpected response from local embedding service: {exc}") from exc

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        self._loaded = False


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """OpenAI embeddings API."""

    name = "openai"

    def __init__(self, api_key: str, model: str, dimensions: int) -> None:
        super().__init__()
        self._api_key = api_key
        self._model = model
        self._dimensions = dimensions
        self._client: OpenAI | None = None

    def _load(self) -> None:
        if not self._api_key:
            raise EmbeddingError("OPENAI_API_KEY is not configured")
        self._client = OpenAI(api_key=self._api_key)

    def _embed(self, text: str) -> list[float]:
        try:
            response = self._client.embeddings.create(
                input=[text],
                model=self._model,
                dimensions=self._dimensions,
            )
        except APIError as exc:
            logger.error("Embedding API error: %s", exc)
            raise EmbeddingError(str(exc)) from exc
        return response.data[0].embedding

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
        self._loaded = False


class KeywordEmbeddingBackend(EmbeddingBackend):
    """Deterministic keyword-hash embeddings, no model required."""

    name = "keyword"

    def __init__(self, dimensions: int = 384) -> None:
        super().__init__()
        self._dimensions = dimensions

    def _load(self) -> None:
        logger.info("Keyword embedding backend enabled (%d dimensions)", self._dimensions)

    def _embed(self, text: str) -> list[float]:
        return keyword_embedding(text, self._dimensions)


def create_backend(spec: BackendSpec) -> EmbeddingBackend:
    """Build the backend described by *spec*.

    Raises
    ------
    EmbeddingError
        If ``spec.backend`` is not a known backend name.
    """
    if spec.backend == SentenceTransformerBackend.name:
        return SentenceTransformerBackend(spec.model)
    if spec.backend == HttpEmbeddingBackend.name:
        return HttpEmbeddingBackend(spec.service_url, spec.dimensions)
    if spec.backend == OpenAIEmbeddingBackend.name:
        return OpenAIEmbeddingBackend(spec.api_key, spec.openai_model, spec.dimensions)
    if spec.backend == KeywordEmbeddingBackend.name:
        return KeywordEmbeddingBackend(spec.dimensions)
    raise EmbeddingError(f"Unknown embedding backend: {spec.backend!r}")
