import json

import httpx
import pytest

from rag_ranker.core.errors import EmbeddingError
from rag_ranker.embeddings import (
    Embedder,
    EmbeddingFunction,
    HashingEmbedder,
    MatryoshkaEmbedder,
    supports_batch,
)

URL = "http://embeddings.test/v1/embeddings"


def _embedder(handler, **kwargs):
    return Embedder(
        api_key=kwargs.pop("api_key", None),
        model="test-model",
        base_url=URL,
        timeout=5,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


def _ok_handler(requests):
    def handler(request):
        body = json.loads(request.content)
        requests.append((request, body))
        data = [
            {"index": i, "embedding": [float(len(text)), float(i)]}
            for i, text in enumerate(body["input"])
        ]
        # Servers may return records out of order.
        return httpx.Response(200, json={"data": list(reversed(data))})

    return handler


# ---------------------------------------------------------------------
# HTTP embedder
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_embed_batches_and_orders_by_index():
    requests = []
    embedder = _embedder(_ok_handler(requests), api_key="secret")

    vectors = await embedder.embed(["a", "bb", "ccc"], batch_size=2)

    assert vectors == [[1.0, 0.0], [2.0, 1.0], [3.0, 0.0]]
    assert len(requests) == 2
    request, body = requests[0]
    assert body == {"model": "test-model", "input": ["a", "bb"]}
    assert request.headers["Authorization"] == "Bearer secret"


@pytest.mark.asyncio
async def test_call_contract_single_and_list():
    embedder = _embedder(_ok_handler([]))

    assert await embedder("abcd") == [4.0, 0.0]
    assert await embedder(["a", "b"]) == [[1.0, 0.0], [1.0, 1.0]]
    assert supports_batch(embedder)
    assert isinstance(embedder, EmbeddingFunction)


@pytest.mark.asyncio
async def test_dimensions_forwarded_when_enabled():
    requests = []
    embedder = _embedder(_ok_handler(requests), send_dimensions=True)

    await embedder.embed(["a"], dim=256)
    await embedder.embed(["a"])

    assert requests[0][1]["dimensions"] == 256
    assert "dimensions" not in requests[1][1]


@pytest.mark.asyncio
async def test_model_not_found():
    embedder = _embedder(lambda request: httpx.Response(404, json={"error": "no model"}))

    with pytest.raises(EmbeddingError) as exc_info:
        await embedder.embed(["a"])

    assert "test-model" in exc_info.value.message
    assert exc_info.value.suggestion


@pytest.mark.asyncio
async def test_connection_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(EmbeddingError) as exc_info:
        await _embedder(handler).embed(["a"])

    assert isinstance(exc_info.value.__cause__, httpx.ConnectError)
    assert "running" in exc_info.value.suggestion


@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {"nope": []},
    {"data": [{"index": 0}]},
    {"data": [{"index": 0, "embedding": []}]},
    {"data": []},
])
async def test_malformed_responses(payload):
    embedder = _embedder(lambda request: httpx.Response(200, json=payload))

    with pytest.raises(EmbeddingError):
        await embedder.embed(["a"])


@pytest.mark.asyncio
async def test_empty_input_makes_no_request():
    def handler(request):
        raise AssertionError("no request expected")

    assert await _embedder(handler).embed([]) == []


# ---------------------------------------------------------------------
# Local embedders
# ---------------------------------------------------------------------

@pytest.mark.asyncio
async def test_hashing_embedder_is_deterministic_and_normalized():
    embedder = HashingEmbedder(default_dim=32)

    first = await embedder("Hello world")
    second = await embedder("hello WORLD")

    assert first == second
    assert len(first) == 32
    assert sum(v * v for v in first) == pytest.approx(1.0)
    assert len(await embedder("text", 8)) == 8


@pytest.mark.asyncio
async def test_matryoshka_reduces_by_block_average():
    class Base:
        supports_batch = True

        async def __call__(self, text, dim=None):
            vec = [1.0, 1.0, 0.0, 0.0]
            return vec if isinstance(text, str) else [vec for _ in text]

    mrl = MatryoshkaEmbedder(Base(), full_dim=4)

    reduced = await mrl("x", 2)
    assert reduced == pytest.approx([1.0, 0.0])
    assert len(await mrl("x")) == 4
    assert await mrl(["x", "y"], 2) == [reduced, reduced]
    assert mrl.supports_batch is True


@pytest.mark.asyncio
async def test_matryoshka_rejects_dim_above_base():
    mrl = MatryoshkaEmbedder(HashingEmbedder(default_dim=8), full_dim=8)

    with pytest.raises(EmbeddingError) as exc_info:
        await mrl("x", 16)

    assert exc_info.value.metadata["expected"] == 16
    assert exc_info.value.metadata["actual"] == 8

def test_matryoshka_inherits_capability():
    assert MatryoshkaEmbedder(object()).supports_batch is False
