"""
Embedding Gateway

Async client for an OpenAI-compatible ``/embeddings`` endpoint. Ingestion
calls it once per page chunk and retrieval once per query, so both sides
embed with the same model.

Failure Semantics
-----------------
Transport errors, timeouts, non-2xx statuses and malformed payloads all
surface as EmbeddingError. Nothing is retried here; the caller decides
whether the current step fails.
"""

from __future__ import annotations

import logging
from typing import Any, List, Optional, Sequence

import httpx

from ..config import settings
from ..core.errors import EmbeddingError

logger = logging.getLogger("rag.embedder")

Vector = List[float]


class Embedder:
    """
    Stateless embedding client; one instance is shared by all requests.

    Parameters
    ----------
    api_key, model, base_url, timeout : optional
        Overrides for the matching ``settings`` values.
    transport : Optional[httpx.AsyncBaseTransport]
        Replaces the network transport (``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key or settings.openai_api_key.get_secret_value()
        self.model = model or settings.embedding_model
        self.url = (base_url or settings.openai_base_url).rstrip("/") + "/embeddings"
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed_one(self, text: str) -> Vector:
        vectors = await self.embed([text])
        if len(vectors) != 1:
            raise EmbeddingError(f"Expected one vector, received {len(vectors)}.")
        return vectors[0]

    async def embed(self, texts: Sequence[str], batch_size: int = 20) -> List[Vector]:
        """
        Embed ``texts`` in order, ``batch_size`` inputs per request.

        Returns
        -------
        List[Vector]
            ``result[i]`` is the vector for ``texts[i]``.

        Raises
        ------
        EmbeddingError
            If any request fails or returns a malformed payload.
        """
        if not texts:
            return []

        vectors: List[Vector] = []
        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for offset in range(0, len(texts), batch_size):
                chunk = list(texts[offset : offset + batch_size])
                vectors.extend(await self._embed_batch(client, chunk))

        return vectors

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _embed_batch(self, client: httpx.AsyncClient, inputs: List[str]) -> List[Vector]:
        try:
            resp = await client.post(
                self.url,
                json={"model": self.model, "input": inputs},
                headers={"Authorization": f"Bearer {self.api_key}"},
            )
            resp.raise_for_status()
            body = resp.json()
        except httpx.HTTPError as exc:
            logger.error(
                "Embedding call for %d input(s) failed (%s): %s",
                len(inputs),
                type(exc).__name__,
                exc,
            )
            raise EmbeddingError(
                f"Embedding generation failed: {type(exc).__name__}"
            ) from exc
        except ValueError as exc:
            raise EmbeddingError("Embedding provider returned invalid JSON.") from exc

        vectors = self._parse_vectors(body)
        if len(vectors) != len(inputs):
            raise EmbeddingError(
                f"Sent {len(inputs)} input(s) but received {len(vectors)} vector(s)."
            )
        return vectors

    @staticmethod
    def _parse_vectors(body: Any) -> List[Vector]:
        """
        Read ``{"data": [{"index": i, "embedding": [...]}, ...]}``.

        Items are put back in ``index`` order when every item carries one.
        """
        items = body.get("data") if isinstance(body, dict) else None
        if not isinstance(items, list):
            raise EmbeddingError("Embedding payload has no 'data' list.")

        if all(isinstance(item, dict) and isinstance(item.get("index"), int) for item in items):
            items = sorted(items, key=lambda item: item["index"])

        vectors: List[Vector] = []
        for position, item in enumerate(items):
            values = item.get("embedding") if isinstance(item, dict) else None
            if (
                not isinstance(values, list)
                or not values
                or not all(isinstance(v, (int, float)) for v in values)
            ):
                raise EmbeddingError(f"Item {position} does not hold a numeric vector.")
            vectors.append([float(v) for v in values])

        return vectors
