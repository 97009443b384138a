"""
Shared fixtures and in-memory test doubles
"""
from typing import Optional

import pytest

from hybrid_rag.config import Settings
from hybrid_rag.embeddings import EmbeddingProvider, SparseEncoder
from hybrid_rag.rerank import Reranker
from hybrid_rag.types import (
    ChunkMetadata, DenseEmbedding, PartitionStats, RerankItem, SearchResult,
    SparseEmbedding,
)


def make_result(
    result_id: str,
    score: float = 0.5,
    provenance: str = "dense",
    text: Optional[str] = None,
    source: str = "doc.pdf",
) -> SearchResult:
    """Helper to create a SearchResult with minimal metadata"""
    return SearchResult(
        id=result_id,
        score=score,
        metadata=ChunkMetadata(
            source=source,
            chunk_index=0,
            chunk_text=text if text is not None else f"text of {result_id}",
            headings=["Intro"],
            item_types=["paragraph"],
            total_chunks=1,
        ),
        provenance=provenance,
    )


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic vectors; records every call"""

    def __init__(self, fail_on: Optional[str] = None, max_batch_size: int = 96):
        self.fail_on = fail_on  # "dense" | "sparse"
        self.max_batch_size = max_batch_size
        self.dense_calls: list[tuple[list[str], str]] = []
        self.sparse_calls: list[tuple[list[str], str]] = []
        self.encoder = SparseEncoder(k1=1.2, b=0.75, avg_doc_len=10)

    async def embed_dense(self, texts, purpose):
        self.dense_calls.append((list(texts), purpose))
        if self.fail_on == "dense":
            raise ConnectionError("dense embedding backend down")
        return [DenseEmbedding(values=[float(len(t)), 1.0, 0.5]) for t in texts]

    async def embed_sparse(self, texts, purpose):
        self.sparse_calls.append((list(texts), purpose))
        if self.fail_on == "sparse":
            raise ConnectionError("sparse embedding backend down")
        return [self.encoder.encode(t, purpose) for t in texts]


class FakeReranker(Reranker):
    """Scores documents by length, longest first"""

    def __init__(self):
        self.calls: list[dict] = []

    async def score(self, query, documents, top_n, model=None):
        self.calls.append({"query": query, "documents": list(documents), "top_n": top_n, "model": model})
        ranked = sorted(range(len(documents)), key=lambda i: len(documents[i]), reverse=True)
        return [RerankItem(index=i, score=round(0.9 - 0.1 * pos, 4)) for pos, i in enumerate(ranked[:top_n])]


class FakeStore:
    """Stands in for QdrantStore: canned query results, recorded writes"""

    def __init__(
        self,
        dense_results: Optional[list[SearchResult]] = None,
        sparse_results: Optional[list[SearchResult]] = None,
    ):
        self.dense_results = dense_results or []
        self.sparse_results = sparse_results or []
        self.dense_upserts: list[tuple[list, Optional[str]]] = []
        self.sparse_upserts: list[tuple[list, Optional[str]]] = []
        self.deleted: list[tuple[str, Optional[str]]] = []
        self.queries: list[tuple[str, int, Optional[str]]] = []
        self.fail_delete: set[str] = set()
        self.fail_stats: set[str] = set()
        self.fail_query: Optional[str] = None

    async def upsert_dense(self, records, namespace=None, batch_size=None):
        self.dense_upserts.append((list(records), namespace))
        return len(records)

    async def upsert_sparse(self, records, namespace=None, batch_size=None):
        valid = [r for r in records if not r.sparse_values.is_empty()]
        self.sparse_upserts.append((valid, namespace))
        return len(valid)

    async def delete_all(self, partition, namespace=None):
        if partition in self.fail_delete:
            raise RuntimeError(f"Not found: collection {partition}")
        self.deleted.append((partition, namespace))

    async def query_dense(self, embedding: DenseEmbedding, top_k, namespace=None):
        self.queries.append(("dense", top_k, namespace))
        if self.fail_query == "dense":
            raise TimeoutError("dense search timed out")
        return self.dense_results[:top_k]

    async def query_sparse(self, embedding: SparseEmbedding, top_k, namespace=None):
        self.queries.append(("sparse", top_k, namespace))
        if self.fail_query == "sparse":
            raise TimeoutError("sparse search timed out")
        return self.sparse_results[:top_k]

    async def stats(self, partition):
        if partition in self.fail_stats:
            raise RuntimeError("stats unavailable")
        upserts = self.dense_upserts if partition == "dense" else self.sparse_upserts
        count = sum(len(records) for records, _ in upserts)
        return PartitionStats(vector_count=count, dimension=3 if partition == "dense" else None)

    async def close(self):
        pass


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def provider() -> FakeEmbeddingProvider:
    return FakeEmbeddingProvider()


@pytest.fixture
def reranker() -> FakeReranker:
    return FakeReranker()
