"""
Tests for the REST API
"""
import pytest
from fastapi.testclient import TestClient

from conftest import FakeEmbeddingProvider, FakeReranker, FakeStore, make_result
from hybrid_rag.api import app, get_indexer, get_retriever
from hybrid_rag.chunker import SemanticChunker
from hybrid_rag.docling import DocumentParser
from hybrid_rag.pipeline import DocumentIndexer
from hybrid_rag.retriever import HybridRetriever


class NoopParser(DocumentParser):
    async def convert(self, path):
        raise AssertionError("not expected in these tests")


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(
        dense_results=[make_result("a", 0.9, text="alpha passage"), make_result("b", 0.8, text="beta")],
        sparse_results=[make_result("a", 7.0, provenance="sparse", text="alpha passage")],
    )


@pytest.fixture
def client(store, settings):
    provider = FakeEmbeddingProvider()
    retriever = HybridRetriever(store=store, provider=provider, reranker=FakeReranker(), settings=settings)
    indexer = DocumentIndexer(
        store=store,
        provider=provider,
        parser=NoopParser(),
        chunker=SemanticChunker(2000, 200),
    )

    app.dependency_overrides[get_retriever] = lambda: retriever
    app.dependency_overrides[get_indexer] = lambda: indexer
    yield TestClient(app)
    app.dependency_overrides.clear()


class TestHealth:

    def test_health_ok(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "dense_count": 0, "sparse_count": 0}

    def test_health_degraded(self, client, store):
        store.fail_stats = {"dense"}
        data = client.get("/health").json()
        assert data["status"] == "degraded"
        assert data["dense_count"] is None

    def test_stats(self, client):
        assert client.get("/stats").json() == {
            "dense": {"vector_count": 0, "dimension": 3},
            "sparse": {"vector_count": 0},
        }


class TestSearch:

    def test_search_without_rerank(self, client):
        response = client.post("/search", json={"query": "alpha", "top_k": 5, "rerank": False})

        assert response.status_code == 200
        results = response.json()["results"]
        assert [r["id"] for r in results] == ["a", "b"]
        assert results[0]["provenance"] == "hybrid"
        assert results[1]["provenance"] == "dense"
        assert results[0]["text"] == "alpha passage"
        assert results[0]["source"] == "doc.pdf"

    def test_search_with_rerank(self, client):
        results = client.post("/search", json={"query": "alpha", "top_k": 1}).json()["results"]
        assert len(results) == 1
        assert results[0]["id"] == "a"
        assert results[0]["score"] == pytest.approx(0.9)

    def test_min_score(self, client):
        data = client.post("/search", json={"query": "alpha", "min_score": 0.85}).json()
        assert [r["id"] for r in data["results"]] == ["a"]

    def test_llm_context(self, client):
        data = client.post("/search", json={"query": "alpha", "top_k": 1, "format_for_llm": True}).json()
        assert data["context"].startswith("[1] doc.pdf > Intro\nalpha passage")

    def test_validation(self, client):
        assert client.post("/search", json={"query": ""}).status_code == 422
        assert client.post("/search", json={"query": "x", "top_k": 0}).status_code == 422

    def test_backend_failure(self, client, store):
        store.fail_query = "sparse"
        response = client.post("/search", json={"query": "alpha"})
        assert response.status_code == 502
        assert "Hybrid search failed" in response.json()["detail"]


class TestIndex:

    def test_missing_source(self, client, tmp_path):
        response = client.post("/index", json={"source": str(tmp_path / "missing")})
        assert response.status_code == 404

    def test_unsupported_source(self, client, tmp_path):
        path = tmp_path / "image.png"
        path.write_bytes(b"")
        response = client.post("/index", json={"source": str(path)})
        assert response.status_code == 400

    def test_empty_directory(self, client, tmp_path):
        response = client.post("/index", json={"source": str(tmp_path)})
        assert response.status_code == 200
        assert response.json()["total_files"] == 0

    def test_clear(self, client, store):
        response = client.delete("/index", params={"namespace": "kb"})
        assert response.json() == {"status": "ok", "namespace": "kb"}
        assert store.deleted == [("dense", "kb"), ("sparse", "kb")]
