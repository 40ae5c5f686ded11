"""
Embedding Client

This module implements an embedding client for any OpenAI-compatible
``/v1/embeddings`` endpoint (OpenAI, Ollama, LM Studio, vLLM ...). It is
responsible for:

- Efficient batching of text inputs
- Network and transport error isolation
- Strict response validation
- Deterministic output semantics for the vector stores

The class is stateless and safe to reuse across requests. It satisfies the
embedding function contract with ``supports_batch = True``.
"""

from __future__ import annotations

from typing import List, Optional, Sequence, Union
import logging

import httpx

from ..config import settings
from ..core.errors import EmbeddingError
from .base import Vector, as_vector

logger = logging.getLogger("rag_ranker.embedder")


class Embedder:
    """
    Asynchronous embedding generator for single texts or batches.

    This class performs no caching and assumes the caller (the vector store)
    handles persistence of the produced vectors.
    """

    supports_batch = True

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        send_dimensions: Optional[bool] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Initialize an Embedder.

        Parameters
        ----------
        api_key : Optional[str]
            Bearer token. Defaults to settings.embedding_api_key (local
            servers usually need none).

        model : Optional[str]
            Embedding model name. Defaults to settings.embedding_model.

        base_url : Optional[str]
            Full URL of the embeddings endpoint.

        timeout : Optional[float]
            HTTP timeout for each request.

        send_dimensions : Optional[bool]
            Forward the requested ``dim`` as the ``dimensions`` request field.
            Only some providers honour it.

        transport : Optional[httpx.AsyncBaseTransport]
            Transport override, used by tests.
        """
        if api_key is None and settings.embedding_api_key is not None:
            api_key = settings.embedding_api_key.get_secret_value()

        self.api_key = api_key
        self.model = model or settings.embedding_model
        self.base_url = base_url or settings.embedding_base_url
        self.timeout = timeout if timeout is not None else settings.embedding_timeout
        self.send_dimensions = (
            send_dimensions
            if send_dimensions is not None
            else settings.embedding_send_dimensions
        )
        self._transport = transport

    # ------------------------------------------------------------------
    # Embedding function contract
    # ------------------------------------------------------------------

    async def __call__(
        self,
        text: Union[str, Sequence[str]],
        dim: Optional[int] = None,
    ) -> Union[Vector, List[Vector]]:
        if isinstance(text, str):
            vectors = await self.embed([text], dim=dim)
            return vectors[0]
        return await self.embed(list(text), dim=dim)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def embed(
        self,
        texts: Sequence[str],
        dim: Optional[int] = None,
        batch_size: int = 20,
    ) -> List[Vector]:
        """
        Generate embeddings for a sequence of input texts.

        Parameters
        ----------
        texts : Sequence[str]
            Input text strings.

        dim : Optional[int]
            Requested dimensionality (forwarded only when send_dimensions).

        batch_size : int
            Maximum batch size per request.

        Returns
        -------
        List[List[float]]
            One embedding per input text, in input order.

        Raises
        ------
        EmbeddingError
            If any request fails or the response is malformed.
        """
        if not texts:
            return []

        all_embeddings: List[Vector] = []
        headers = {}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"

        async with httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
        ) as client:
            for start in range(0, len(texts), batch_size):
                batch = list(texts[start : start + batch_size])
                payload = {
                    "model": self.model,
                    "input": batch,
                }
                if dim is not None and self.send_dimensions:
                    payload["dimensions"] = dim

                try:
                    response = await client.post(
                        self.base_url,
                        json=payload,
                        headers=headers,
                    )
                    response.raise_for_status()
                except httpx.HTTPStatusError as exc:
                    logger.error(
                        "Embedding request rejected (%s): batch size=%d, model=%s",
                        exc.response.status_code,
                        len(batch),
                        self.model,
                    )
                    if exc.response.status_code == 404:
                        raise EmbeddingError.model_not_found(self.model) from exc
                    raise EmbeddingError.network_error(exc) from exc
                except httpx.HTTPError as exc:
                    logger.error(
                        "Embedding request failed (%s): batch size=%d, error=%s",
                        type(exc).__name__,
                        len(batch),
                        str(exc),
                    )
                    raise EmbeddingError.network_error(exc) from exc

                try:
                    data = response.json()
                except ValueError as exc:
                    raise EmbeddingError.malformed_response("body is not JSON") from exc

                embeddings = self._extract_embeddings(data)
                if len(embeddings) != len(batch):
                    raise EmbeddingError.malformed_response(
                        f"expected {len(batch)} embeddings, got {len(embeddings)}"
                    )
                all_embeddings.extend(embeddings)

        return all_embeddings

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _extract_embeddings(data: dict) -> List[Vector]:
        """
        Parse and validate embedding output format.

        OpenAI-compatible servers return:
            { "data": [ {"index": 0, "embedding": [...]}, ... ] }

        Records are re-ordered by ``index`` when present.
        """
        if not isinstance(data, dict) or "data" not in data:
            raise EmbeddingError.malformed_response("missing 'data' field")

        records = data["data"]
        if not isinstance(records, list):
            raise EmbeddingError.malformed_response("'data' field must be a list")

        for index, record in enumerate(records):
            if not isinstance(record, dict) or "embedding" not in record:
                raise EmbeddingError.malformed_response(
                    f"record at index {index} has no 'embedding'"
                )

        if all("index" in r for r in records):
            records = sorted(records, key=lambda r: r["index"])

        return [as_vector(record["embedding"]) for record in records]
