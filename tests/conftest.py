import asyncio

import pytest

from rag_ranker.embeddings import HashingEmbedder
from rag_ranker.stores import InMemoryVectorStore


class SingleTextEmbedder:
    """
    Embedding function without batch support. Records the peak number of
    in-flight calls and fails for texts listed in ``fail_on``.
    """

    def __init__(self, fail_on=(), delay=0.01, dim=16):
        self._inner = HashingEmbedder(default_dim=dim)
        self.fail_on = set(fail_on)
        self.delay = delay
        self.in_flight = 0
        self.peak = 0
        self.calls = 0

    async def __call__(self, text, dim=None):
        self.calls += 1
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if text in self.fail_on:
                raise RuntimeError(f"cannot embed {text!r}")
            return await self._inner(text, dim)
        finally:
            self.in_flight -= 1


@pytest.fixture
def embedder():
    return HashingEmbedder(default_dim=64)


@pytest.fixture
def store(embedder):
    return InMemoryVectorStore(embedder, default_dim=64)
