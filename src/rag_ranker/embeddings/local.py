"""
Local Embedding Functions

Two embedding functions that need no server:

- HashingEmbedder: a deterministic hashed bag-of-words embedding, suitable
  for offline use, demos and tests. Not a semantic model.
- MatryoshkaEmbedder: derives nested lower-dimension embeddings from a
  full-dimension base embedding function by block averaging.
"""

from __future__ import annotations

import hashlib
import re
from typing import Any, List, Optional, Sequence, Union

import numpy as np

from ..core.errors import EmbeddingError
from .base import Vector, as_vector, l2_normalize, supports_batch

_TOKEN = re.compile(r"\w+")


class HashingEmbedder:
    """
    Hash each lowercase word token into one of ``dim`` buckets and
    L2-normalize the counts. Identical input always yields the same vector.
    """

    supports_batch = True

    def __init__(self, default_dim: int = 768) -> None:
        if default_dim < 1:
            raise ValueError("default_dim must be positive")
        self.default_dim = default_dim

    async def __call__(
        self,
        text: Union[str, Sequence[str]],
        dim: Optional[int] = None,
    ) -> Union[Vector, List[Vector]]:
        size = dim or self.default_dim
        if isinstance(text, str):
            return self._embed(text, size)
        return [self._embed(t, size) for t in text]

    @staticmethod
    def _embed(text: str, dim: int) -> Vector:
        vec = np.zeros(dim, dtype="float64")
        for token in _TOKEN.findall(text.lower()):
            digest = hashlib.md5(token.encode("utf-8")).hexdigest()
            vec[int(digest, 16) % dim] += 1.0
        return l2_normalize(vec).tolist()


class MatryoshkaEmbedder:
    """
    Matryoshka (MRL) adapter.

    The base function is always asked for ``full_dim`` vectors; requests for
    a smaller ``dim`` are served by averaging contiguous blocks of the full
    vector and re-normalizing.
    """

    def __init__(self, base: Any, full_dim: int = 768) -> None:
        if base is None:
            raise ValueError("base embedding function is required")
        self.base = base
        self.full_dim = full_dim
        self.supports_batch = supports_batch(base)

    async def __call__(
        self,
        text: Union[str, Sequence[str]],
        dim: Optional[int] = None,
    ) -> Union[Vector, List[Vector]]:
        target = dim or self.full_dim
        raw = await self.base(text, self.full_dim)

        if isinstance(text, str):
            return self.reduce(as_vector(raw), target)
        return [self.reduce(as_vector(v), target) for v in raw]

    @staticmethod
    def reduce(full: Vector, target_dim: int) -> Vector:
        """
        Reduce ``full`` to ``target_dim`` components by block averaging.

        Raises
        ------
        EmbeddingError
            If ``target_dim`` exceeds the length of ``full``.
        """
        src = np.asarray(full, dtype="float64")
        size = src.size

        if target_dim > size:
            raise EmbeddingError.dimension_mismatch(target_dim, size)
        if target_dim == size:
            return l2_normalize(src).tolist()

        out = np.zeros(target_dim, dtype="float64")
        block = size / target_dim
        for i in range(target_dim):
            start = int(np.floor(i * block))
            end = int(np.floor((i + 1) * block))
            if end > start:
                out[i] = src[start:end].mean()
            else:
                out[i] = src[min(size - 1, start)]
        return l2_normalize(out).tolist()
