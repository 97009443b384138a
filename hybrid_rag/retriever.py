"""
Main Hybrid Retrieval Pipeline
Dense + Sparse + RRF Fusion + Rerank
"""
import asyncio
import logging
import time
from typing import Awaitable, Optional

from hybrid_rag.config import Settings, get_settings
from hybrid_rag.embeddings import (
    EmbeddingProvider, LocalEmbeddingProvider,
    generate_dense_query_embedding, generate_sparse_query_embedding,
)
from hybrid_rag.exceptions import RetrievalError
from hybrid_rag.qdrant_store import QdrantStore
from hybrid_rag.rerank import CrossEncoderReranker, Reranker, rerank
from hybrid_rag.rrf import reciprocal_rank_fusion
from hybrid_rag.types import RerankOptions, SearchResult

logger = logging.getLogger("hybrid_rag.retriever")

MIN_FETCH_K = 20


async def join_all(*aws: Awaitable) -> list:
    """
    Run awaitables concurrently and wait for all of them

    The first failure cancels the branches still running and is re-raised.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class HybridRetriever:
    """
    Hybrid Retrieval Pipeline

    Pipeline:
    1. Embed the query densely and sparsely (concurrently)
    2. Search both partitions for fetch_k candidates (concurrently)
    3. Fuse results using RRF
    4. Rerank the fused shortlist with a CrossEncoder (optional)
    5. Return at most top_k (or rerank_top_n) results
    """

    def __init__(
        self,
        store: Optional[QdrantStore] = None,
        provider: Optional[EmbeddingProvider] = None,
        reranker: Optional[Reranker] = None,
        settings: Optional[Settings] = None,
    ):
        self._store = store
        self._provider = provider
        self._reranker = reranker
        self.settings = settings or get_settings()

    def _ensure_components(self):
        """Lazy initialization of store and models"""
        if self._store is None:
            self._store = QdrantStore()
        if self._provider is None:
            self._provider = LocalEmbeddingProvider()
        if self._reranker is None:
            self._reranker = CrossEncoderReranker()

    @property
    def store(self) -> QdrantStore:
        self._ensure_components()
        return self._store

    @property
    def provider(self) -> EmbeddingProvider:
        self._ensure_components()
        return self._provider

    async def search(
        self,
        query: str,
        top_k: Optional[int] = None,
        namespace: Optional[str] = None,
        rrf_k: Optional[int] = None,
        rerank_enabled: Optional[bool] = None,
        rerank_model: Optional[str] = None,
        rerank_top_n: Optional[int] = None,
    ) -> list[SearchResult]:
        """
        Hybrid search over both partitions

        Args:
            query: User query
            top_k: Number of results (default from settings)
            namespace: Optional partition key
            rrf_k: RRF constant
            rerank_enabled: Rerank the fused candidates (default from settings)
            rerank_model: Reranking model override
            rerank_top_n: Number of reranked results (defaults to top_k)

        Returns:
            Ranked results. Any failure raises RetrievalError; there is no
            partial (dense-only or sparse-only) result.
        """
        top_k = self.settings.default_top_k if top_k is None else top_k
        rrf_k = self.settings.default_rrf_k if rrf_k is None else rrf_k
        if rerank_enabled is None:
            rerank_enabled = self.settings.rerank_enabled

        if top_k < 1:
            raise ValueError("top_k must be a positive integer")

        self._ensure_components()
        start_time = time.time()

        # Over-fetch so fusion can find the overlap between both rankings
        fetch_k = max(top_k * 2, MIN_FETCH_K)

        try:
            t0 = time.time()
            dense_embedding, sparse_embedding = await join_all(
                generate_dense_query_embedding(self._provider, query),
                generate_sparse_query_embedding(self._provider, query),
            )
            embed_ms = (time.time() - t0) * 1000

            t0 = time.time()
            dense_results, sparse_results = await join_all(
                self._store.query_dense(dense_embedding, fetch_k, namespace),
                self._store.query_sparse(sparse_embedding, fetch_k, namespace),
            )
            search_ms = (time.time() - t0) * 1000

            fused = reciprocal_rank_fusion(dense_results, sparse_results, k=rrf_k)

            logger.debug(
                "embed %.1fms, search %.1fms: dense_n=%d sparse_n=%d fused_n=%d",
                embed_ms, search_ms, len(dense_results), len(sparse_results), len(fused),
            )

            if not rerank_enabled:
                return fused[:top_k]

            # Over-fetch again: fusion rank and true relevance can diverge
            candidates = fused[:max(top_k * 2, fetch_k)]

            t0 = time.time()
            reranked = await rerank(
                query,
                candidates,
                self._reranker,
                RerankOptions(
                    model=rerank_model,
                    top_n=rerank_top_n if rerank_top_n is not None else top_k,
                ),
            )
            logger.debug(
                "rerank %.1fms: reranked_n=%d, total %.1fms",
                (time.time() - t0) * 1000, len(reranked), (time.time() - start_time) * 1000,
            )
            return reranked

        except RetrievalError:
            raise
        except Exception as e:
            logger.error("Hybrid search failed: %s", e)
            raise RetrievalError(f"Hybrid search failed: {e}", {"query": query}) from e


# Convenience function
async def hybrid_search(
    query: str,
    top_k: Optional[int] = None,
    namespace: Optional[str] = None,
    rrf_k: Optional[int] = None,
    rerank_enabled: Optional[bool] = None,
    rerank_model: Optional[str] = None,
    rerank_top_n: Optional[int] = None,
) -> list[SearchResult]:
    """
    Convenience function for hybrid retrieval

    Creates a HybridRetriever instance and runs the pipeline.
    For repeated calls, consider reusing a HybridRetriever instance.
    """
    retriever = HybridRetriever()
    return await retriever.search(
        query,
        top_k=top_k,
        namespace=namespace,
        rrf_k=rrf_k,
        rerank_enabled=rerank_enabled,
        rerank_model=rerank_model,
        rerank_top_n=rerank_top_n,
    )
