"""Embedding client for the OpenAI-compatible ``/v1/embeddings`` endpoint."""

from __future__ import annotations

from dataclasses import dataclass, field
import json
import logging
import time
from typing import Callable, Protocol

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from ..core.config import Settings, get_settings
from ..core.exceptions import ConfigurationError, EmbeddingServiceError, RateLimitError

logger = logging.getLogger(__name__)


class Embedder(Protocol):
    def embed(self, text: str) -> list[float]: ...


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make, and how long to cool down after a rate limit."""
    attempts: int = 2
    cooldown: float = 21.0
    sleep: Callable[[float], None] = field(default=time.sleep, compare=False, repr=False)

    @classmethod
    def none(cls) -> "RetryPolicy":
        return cls(attempts=1, cooldown=0.0)

    def call(self, fn, *args, **kwargs):
        """Run ``fn``, retrying only on RateLimitError."""
        retrying = Retrying(
            stop=stop_after_attempt(max(self.attempts, 1)),
            wait=wait_fixed(self.cooldown),
            retry=retry_if_exception_type(RateLimitError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self.sleep,
            reraise=True,
        )
        return retrying(fn, *args, **kwargs)


class EmbeddingClient:
    """Calls the embedding endpoint with httpx."""

    def __init__(
        self,
        base_url: str,
        model: str,
        api_key: str = "",
        timeout: float = 90,
        client: httpx.Client | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        self._client = client or httpx.Client()

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "EmbeddingClient":
        settings = settings or get_settings()
        return cls(
            base_url=settings.llm_base_url,
            model=settings.embedding_model,
            api_key=settings.llm_api_key,
            timeout=settings.request_timeout,
        )

    def _headers(self) -> dict[str, str]:
        if not self.api_key:
            return {}
        return {"Authorization": f"Bearer {self.api_key}"}

    def embed(self, text: str, timeout: float | None = None) -> list[float]:
        """Return the embedding vector for ``text``.

        Raises:
            RateLimitError: On HTTP 429
            EmbeddingServiceError: On any other failure or an empty vector
        """
        effective_timeout = timeout or self.timeout
        try:
            response = self._client.post(
                f"{self.base_url}/v1/embeddings",
                json={"model": self.model, "input": text.replace("\n", " ")},
                headers=self._headers(),
                timeout=effective_timeout,
            )
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Embedding request timed out after {effective_timeout}s")
            raise EmbeddingServiceError(f"Embedding request timed out after {effective_timeout}s") from e
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 429:
                logger.warning("Embedding service rate limited the request")
                raise RateLimitError("Embedding service rate limit exceeded") from e
            logger.error(f"Embedding HTTP error: {e.response.status_code} - {e.response.text[:200]}")
            raise EmbeddingServiceError(f"Embedding request failed with status {e.response.status_code}") from e
        except httpx.HTTPError as e:
            logger.error(f"Embedding transport error: {e}")
            raise EmbeddingServiceError(f"Embedding request failed: {e}") from e

        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise EmbeddingServiceError("Embedding service returned invalid JSON") from e

        items = data.get("data") if isinstance(data, dict) else None
        if not items or not isinstance(items, list):
            raise EmbeddingServiceError("Embedding response missing 'data' array")

        vector = items[0].get("embedding") if isinstance(items[0], dict) else None
        if not vector:
            raise EmbeddingServiceError("Embedding service returned an empty vector")

        return [float(v) for v in vector]


class RetryingEmbedder:
    """Wraps an embedder so every call goes through a retry policy."""

    def __init__(self, inner: Embedder, policy: RetryPolicy):
        self.inner = inner
        self.policy = policy

    def embed(self, text: str) -> list[float]:
        return self.policy.call(self.inner.embed, text)


class LocalEmbedder:
    """Embeds text in-process with a sentence-transformers model.

    The model is loaded on first use, so building one is cheap and the
    dependency is only needed when this backend is configured.
    """

    def __init__(self, model_name: str, model=None):
        self.model_name = model_name
        self._model = model

    def _get_model(self):
        if self._model is None:
            from sentence_transformers import SentenceTransformer

            logger.info(f"Loading embedding model: {self.model_name}")
            self._model = SentenceTransformer(self.model_name)
        return self._model

    def embed(self, text: str) -> list[float]:
        # e5 models expect a "query: " prefix
        if "e5" in self.model_name.lower():
            text = f"query: {text}"
        vector = self._get_model().encode(text, convert_to_numpy=True)
        if vector is None or not len(vector):
            raise EmbeddingServiceError(f"Embedding model {self.model_name} returned an empty vector")
        return [float(v) for v in vector]


def make_embedder(settings: Settings | None = None) -> Embedder:
    """Build the embedder selected by ``settings.embedding_backend``.

    Raises:
        ConfigurationError: For an unknown backend name
    """
    settings = settings or get_settings()
    backend = settings.embedding_backend
    if backend == "service":
        return EmbeddingClient.from_settings(settings)
    if backend == "local":
        return LocalEmbedder(settings.local_embedding_model)
    raise ConfigurationError(f"Unknown EMBEDDING_BACKEND {backend!r}; use 'service' or 'local'")
