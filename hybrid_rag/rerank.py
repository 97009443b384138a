"""
Reranking Module with CrossEncoder
Re-scores fused candidates against the query
"""
import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Optional

import numpy as np

from hybrid_rag.config import get_settings
from hybrid_rag.types import RerankItem, RerankOptions, SearchResult

logger = logging.getLogger("hybrid_rag.rerank")


class Reranker(ABC):
    """Abstract base class for rerankers"""

    @abstractmethod
    async def score(
        self,
        query: str,
        documents: list[str],
        top_n: int,
        model: Optional[str] = None,
    ) -> list[RerankItem]:
        """
        Score documents against the query

        Args:
            query: Search query
            documents: Passage texts
            top_n: Number of results to return
            model: Optional model override

        Returns:
            At most ``top_n`` items, best first, each pointing into ``documents``
        """
        pass


class CrossEncoderReranker(Reranker):
    """Reranker using sentence-transformers CrossEncoder models"""

    def __init__(self, model_name: Optional[str] = None, device: Optional[str] = None):
        self.model_name = model_name or get_settings().cross_encoder_model
        self.device = device
        self._models: dict = {}

    def _ensure_model(self, model_name: str):
        """Lazy load one CrossEncoder per model name"""
        if model_name not in self._models:
            from sentence_transformers import CrossEncoder

            self._models[model_name] = CrossEncoder(model_name, device=self.device)
            logger.info("Loaded CrossEncoder: %s", model_name)
        return self._models[model_name]

    def _predict(self, model_name: str, query: str, documents: list[str]) -> np.ndarray:
        model = self._ensure_model(model_name)
        # Single-label cross-encoders apply a sigmoid, so scores land in [0, 1]
        return np.asarray(model.predict([(query, doc) for doc in documents]), dtype=float)

    async def score(
        self,
        query: str,
        documents: list[str],
        top_n: int,
        model: Optional[str] = None,
    ) -> list[RerankItem]:
        if not documents:
            return []

        scores = await asyncio.to_thread(self._predict, model or self.model_name, query, documents)
        order = np.argsort(-scores, kind="stable")[:top_n]

        return [RerankItem(index=int(i), score=float(scores[i])) for i in order]


def _document_text(result: SearchResult, rank_fields: tuple[str, ...]) -> str:
    payload = result.metadata.to_payload()
    parts = []
    for name in rank_fields:
        value = payload.get(name)
        if isinstance(value, list):
            value = " > ".join(str(v) for v in value)
        if value:
            parts.append(str(value))
    return "\n".join(parts)


async def rerank(
    query: str,
    results: list[SearchResult],
    reranker: Reranker,
    options: Optional[RerankOptions] = None,
) -> list[SearchResult]:
    """
    Rerank search results with a cross-encoder

    Candidates are only re-scored and truncated: every returned result is one
    of the inputs with its id and metadata unchanged, its score replaced by
    the reranker's, and provenance set to "hybrid".
    """
    if not results:
        return []

    options = options or RerankOptions()
    top_n = options.top_n if options.top_n is not None else len(results)

    documents = [_document_text(r, options.rank_fields) for r in results]
    items = await reranker.score(query, documents, top_n=top_n, model=options.model)

    reranked: list[SearchResult] = []
    seen: set[int] = set()
    for item in items:
        if item.index in seen or not 0 <= item.index < len(results):
            continue
        seen.add(item.index)
        reranked.append(replace(results[item.index], score=item.score, provenance="hybrid"))

    reranked.sort(key=lambda x: x.score, reverse=True)
    return reranked[:top_n]
