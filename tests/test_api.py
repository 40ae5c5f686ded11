"""
HTTP API tests. The store, retriever and smart retriever are replaced with
in-process instances over a hashing embedder.
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from rag_ranker.api.dependencies import get_smart_retriever, get_vector_store
from rag_ranker.embeddings import HashingEmbedder
from rag_ranker.main import create_app
from rag_ranker.ranking import Retriever, SmartRetriever
from rag_ranker.stores import InMemoryVectorStore

from conftest import SingleTextEmbedder


@pytest.fixture
def memory_store():
    return InMemoryVectorStore(HashingEmbedder(default_dim=64), default_dim=64)


@pytest.fixture
def app(memory_store):
    app = create_app()
    smart = SmartRetriever(Retriever(memory_store))
    app.dependency_overrides[get_vector_store] = lambda: memory_store
    app.dependency_overrides[get_smart_retriever] = lambda: smart
    yield app
    app.dependency_overrides = {}


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def _seed(client):
    resp = client.post("/documents", json={"documents": [
        {"id": "sky", "text": "The sky is blue.", "meta": {"source": "official"}},
        {"id": "water", "text": "Water boils at 100C.", "meta": {"source": "blog"}},
    ]})
    assert resp.status_code == 201
    return resp


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ---------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------

def test_document_lifecycle(client):
    created = _seed(client).json()
    assert created["status"] == "created"
    assert created["count"] == 2

    listed = client.get("/documents").json()
    assert [d["id"] for d in listed] == ["sky", "water"]
    assert "vector" not in listed[0]

    assert client.get("/documents/stats").json()["document_count"] == 2
    assert client.get("/documents/sky").json()["meta"] == {"source": "official"}

    resp = client.put("/documents/sky", json={"text": "The sky is grey."})
    assert resp.json()["status"] == "updated"
    assert client.get("/documents/sky").json()["text"] == "The sky is grey."

    assert client.delete("/documents/water").json()["status"] == "deleted"
    assert client.get("/documents/water").status_code == 404
    assert client.delete("/documents/water").status_code == 404
    assert client.put("/documents/water", json={"text": "x"}).status_code == 404

    assert client.delete("/documents").json()["status"] == "cleared"
    assert client.get("/documents").json() == []


def test_blank_document_text_rejected(client):
    resp = client.post("/documents", json={"documents": [{"text": "   "}]})

    assert resp.status_code == 422
    assert resp.json()["error"] == "INVALID_DOCUMENT"
    assert "suggestion" in resp.json()["metadata"]


def test_update_on_empty_store(client):
    resp = client.put("/documents/any", json={"text": "x"})
    assert resp.status_code == 404
    assert resp.json()["error"] == "EMPTY_STORE"


def test_embedding_failure_maps_to_bad_gateway(app):
    failing = InMemoryVectorStore(SingleTextEmbedder(fail_on={"boom"}), default_dim=16)
    app.dependency_overrides[get_vector_store] = lambda: failing

    with TestClient(app) as client:
        resp = client.post("/documents", json={"documents": [
            {"id": "ok", "text": "fine"},
            {"id": "bad", "text": "boom"},
        ]})

    assert resp.status_code == 502
    body = resp.json()
    assert body["error"] == "PARTIAL_BATCH_FAILURE"
    assert body["metadata"]["failed_ids"] == ["bad"]
    assert body["metadata"]["inserted"] == 1


def test_unhandled_errors_are_generic(app):
    broken = AsyncMock(spec=InMemoryVectorStore)
    broken.get_all_documents.side_effect = RuntimeError("secret internals")
    app.dependency_overrides[get_vector_store] = lambda: broken

    with TestClient(app, raise_server_exceptions=False) as client:
        resp = client.get("/documents")

    assert resp.status_code == 500
    assert resp.json() == {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }


# ---------------------------------------------------------------------
# Search / feedback / knowledge
# ---------------------------------------------------------------------

def test_search_empty_store(client):
    resp = client.post("/search", json={"query": "sky"})

    assert resp.status_code == 404
    body = resp.json()
    assert body["error"] == "RETRIEVAL_ERROR"
    assert "EmptyStoreError" in body["metadata"]["cause"]


def test_search_ranks_results(client):
    _seed(client)

    resp = client.post("/search", json={"query": "Why is the sky blue?", "k": 1})

    assert resp.status_code == 200
    body = resp.json()
    assert body["original_query"] == "Why is the sky blue?"
    assert [r["id"] for r in body["results"]] == ["sky"]
    result = body["results"][0]
    assert 0.0 <= result["weighted_score"] <= 1.0
    assert set(result["score_breakdown"]) == {
        "semantic_similarity",
        "keyword_match",
        "recency",
        "source_quality",
        "context_relevance",
    }
    assert sum(body["decisions"]["weights"].values()) == pytest.approx(1.0)


def test_search_validation(client):
    assert client.post("/search", json={"query": "", "k": 3}).status_code == 422
    assert client.post("/search", json={"query": "x", "k": 0}).status_code == 422
    assert client.post("/search", json={"query": "x", "bogus": 1}).status_code == 422


def test_search_with_unknown_weight_factor(client):
    _seed(client)
    resp = client.post("/search", json={"query": "sky", "weights": {"popularity": 1.0}})

    assert resp.status_code == 400
    assert resp.json()["error"] == "CONFIGURATION_ERROR"


def test_feedback_and_insights(client):
    resp = client.post("/feedback", json={
        "query": "sky colour",
        "results": [{"id": "sky", "score": 0.9}],
        "rating": 5,
        "comment": "spot on",
    })
    assert resp.json() == {"recorded": True}

    insights = client.get("/insights").json()
    assert insights["heuristics"]["total_queries"] == 1
    assert insights["heuristics"]["avg_user_rating"] == 5.0

    assert client.post("/feedback", json={"query": "q", "rating": 9}).status_code == 422


def test_knowledge_export_import(client, memory_store):
    client.post("/feedback", json={"query": "sky colour", "rating": 4})
    exported = client.get("/knowledge").json()
    assert {"rules", "patterns", "history"} <= set(exported)
    assert len(exported["history"]) == 1

    resp = client.put("/knowledge", json=exported)
    assert resp.status_code == 200
    assert resp.json()["status"] == "imported"

    bad = client.put("/knowledge", json={"rules": [{"name": "broken"}]})
    assert bad.status_code == 400
    assert bad.json()["error"] == "CONFIGURATION_ERROR"
