"""
Embedding service for turning passages and queries into vectors
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, List, Optional

import httpx
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..exceptions import EmbeddingUnavailable, ValidationError

logger = logging.getLogger(__name__)


class _TransientEmbeddingError(Exception):
    """Network failure, timeout, throttling or 5xx from the provider"""


class BaseEmbeddingClient(ABC):
    """
    Provider-agnostic embedding seam.

    Chunks at ingestion and queries at retrieval must go through the same
    client so both live in one vector space.
    """

    dimension: int

    @abstractmethod
    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        """Embed several texts, returning vectors in input order"""

    async def embed(self, text: str) -> List[float]:
        """Embed a single non-empty text"""
        vectors = await self.embed_many([text])
        return vectors[0]

    async def close(self):
        """Release provider resources"""

    @staticmethod
    def _require_text(texts: List[str]):
        for text in texts:
            if not isinstance(text, str) or not text.strip():
                raise ValidationError("Cannot embed empty text", field="text")


class EmbeddingClient(BaseEmbeddingClient):
    """Client for an OpenAI-compatible ``/embeddings`` endpoint (Jina, OpenAI, TogetherAI, ...)"""

    def __init__(self, settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = settings.embedding_base_url.rstrip('/')
        self.model = settings.embedding_model
        self.dimension = settings.embedding_dimension
        self.batch_size = settings.embedding_batch_size
        self.concurrency = settings.embedding_concurrency
        self.max_attempts = settings.retry_max_attempts
        self.backoff_seconds = settings.retry_backoff_seconds

        headers = {"Content-Type": "application/json"}
        if settings.embedding_api_key:
            headers["Authorization"] = f"Bearer {settings.embedding_api_key}"

        # HTTP client with timeout
        self.client = httpx.AsyncClient(
            timeout=httpx.Timeout(settings.embedding_timeout_seconds),
            headers=headers,
            transport=transport
        )

    async def close(self):
        """Close HTTP client"""
        await self.client.aclose()

    async def embed_many(self, texts: List[str]) -> List[List[float]]:
        """
        Embed texts in batches with bounded concurrency

        Args:
            texts: Non-empty passages or queries

        Returns:
            One vector of ``self.dimension`` floats per text, in input order

        Raises:
            ValidationError: a text is empty
            EmbeddingUnavailable: provider unreachable after retries or
                returned malformed output
        """
        if not texts:
            return []
        self._require_text(texts)

        batches = [texts[i:i + self.batch_size] for i in range(0, len(texts), self.batch_size)]
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(batch):
            async with semaphore:
                return await self._embed_batch(batch)

        tasks = [asyncio.ensure_future(run(batch)) for batch in batches]
        try:
            results = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            raise

        vectors = [vector for batch_vectors in results for vector in batch_vectors]
        logger.info(f"Embedded {len(vectors)} texts in {len(batches)} batches with model: {self.model}")
        return vectors

    async def _embed_batch(self, batch: List[str]) -> List[List[float]]:
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(_TransientEmbeddingError),
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=self.backoff_seconds, max=10),
            before_sleep=lambda retry_state: logger.warning(
                f"Embedding request failed, retry {retry_state.attempt_number}/{self.max_attempts}: "
                f"{retry_state.outcome.exception()}"
            ),
            reraise=True
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._request_embeddings(batch)
        except _TransientEmbeddingError as e:
            logger.error(f"Embedding provider unavailable after {self.max_attempts} attempts: {e}")
            raise EmbeddingUnavailable(
                "Embedding provider unavailable",
                details={"attempts": self.max_attempts, "reason": str(e)}
            ) from e

    async def _request_embeddings(self, batch: List[str]) -> List[List[float]]:
        payload = {
            "model": self.model,
            "input": batch
        }

        try:
            response = await self.client.post(f"{self.base_url}/embeddings", json=payload)
        except httpx.TimeoutException as e:
            raise _TransientEmbeddingError("Embedding request timed out") from e
        except httpx.RequestError as e:
            raise _TransientEmbeddingError(f"Embedding request failed: {e}") from e

        if response.status_code == 429 or response.status_code >= 500:
            raise _TransientEmbeddingError(f"Embedding API error: {response.status_code}")

        if response.status_code != 200:
            logger.error(f"Embedding API error: {response.status_code} - {response.text}")
            raise EmbeddingUnavailable(
                f"Embedding provider rejected the request: {response.status_code}",
                details={"status_code": response.status_code}
            )

        try:
            response_data = response.json()
        except ValueError as e:
            raise EmbeddingUnavailable("Embedding provider returned invalid JSON") from e

        return self._parse_vectors(response_data, expected=len(batch))

    def _parse_vectors(self, response_data: Any, expected: int) -> List[List[float]]:
        """Validate the provider payload and return vectors in input order"""
        data = response_data.get("data") if isinstance(response_data, dict) else None
        if not isinstance(data, list) or len(data) != expected:
            raise EmbeddingUnavailable(
                "Embedding provider returned a malformed payload",
                details={"expected": expected, "received": len(data) if isinstance(data, list) else None}
            )

        if all(isinstance(item, dict) and isinstance(item.get("index"), int) for item in data):
            data = sorted(data, key=lambda item: item["index"])

        vectors = []
        for item in data:
            embedding = item.get("embedding") if isinstance(item, dict) else None
            if not isinstance(embedding, list) or not all(
                isinstance(x, (int, float)) and not isinstance(x, bool) for x in embedding
            ):
                raise EmbeddingUnavailable("Embedding provider returned a non-numeric vector")
            if len(embedding) != self.dimension:
                raise EmbeddingUnavailable(
                    f"Expected {self.dimension} dimensions, got {len(embedding)}",
                    details={"expected": self.dimension, "received": len(embedding)}
                )
            vectors.append([float(x) for x in embedding])

        return vectors
