"""
Embedding generation
Dense vectors (sentence-transformers bi-encoder) and lexical sparse vectors,
with batching that keeps outputs positionally aligned with inputs
"""
import asyncio
import logging
import math
from abc import ABC, abstractmethod
from collections import Counter
from typing import Optional

from hybrid_rag.config import get_settings
from hybrid_rag.exceptions import EmbeddingError, EmbeddingMismatchError
from hybrid_rag.text_utils import term_index, tokenize
from hybrid_rag.types import DenseEmbedding, Purpose, SparseEmbedding

logger = logging.getLogger("hybrid_rag.embeddings")

MAX_BATCH_SIZE = 96

# E5-family models expect a role prefix on every input
E5_PREFIXES = {"query": "query: ", "passage": "passage: "}


def resolve_device(device: str) -> str:
    """Fall back to CPU when CUDA is requested but unavailable"""
    if device == "cuda":
        import torch

        if not torch.cuda.is_available():
            logger.warning("CUDA configured but not available. Using CPU for embeddings.")
            return "cpu"
    return device


class SparseEncoder:
    """
    Hashed BM25-style sparse vectors

    Passage weights apply BM25 term-frequency saturation with document length
    normalisation; query weights are 1.0 per distinct term. Inverse document
    frequency is left to the sparse index (Qdrant ``Modifier.IDF``), so the
    dot product of the two is a BM25 score.
    """

    def __init__(
        self,
        k1: Optional[float] = None,
        b: Optional[float] = None,
        avg_doc_len: Optional[float] = None,
    ):
        settings = get_settings()
        self.k1 = settings.sparse_k1 if k1 is None else k1
        self.b = settings.sparse_b if b is None else b
        self.avg_doc_len = avg_doc_len or settings.sparse_avg_doc_len

    def encode(self, text: str, purpose: Purpose = "passage") -> SparseEmbedding:
        tokens = tokenize(text)
        if not tokens:
            return SparseEmbedding()

        counts = Counter(tokens)
        weights: dict[int, float] = {}

        if purpose == "query":
            for token in counts:
                index = term_index(token)
                weights[index] = weights.get(index, 0.0) + 1.0
        else:
            norm = self.k1 * (1 - self.b + self.b * len(tokens) / self.avg_doc_len)
            for token, tf in counts.items():
                index = term_index(token)
                weight = tf * (self.k1 + 1) / (tf + norm)
                weights[index] = weights.get(index, 0.0) + weight

        indices = sorted(weights)
        return SparseEmbedding(indices=indices, values=[weights[i] for i in indices])


class EmbeddingProvider(ABC):
    """Turns batches of texts into dense or sparse vectors, aligned with the input"""

    max_batch_size: int = MAX_BATCH_SIZE

    @abstractmethod
    async def embed_dense(self, texts: list[str], purpose: Purpose) -> list[DenseEmbedding]:
        pass

    @abstractmethod
    async def embed_sparse(self, texts: list[str], purpose: Purpose) -> list[SparseEmbedding]:
        pass


class LocalEmbeddingProvider(EmbeddingProvider):
    """Dense vectors from a local SentenceTransformer, sparse vectors from :class:`SparseEncoder`"""

    def __init__(
        self,
        model_name: Optional[str] = None,
        device: Optional[str] = None,
        sparse_encoder: Optional[SparseEncoder] = None,
    ):
        settings = get_settings()
        self.model_name = model_name or settings.embed_model
        self.device = resolve_device(device or settings.embedding_device)
        self.sparse_encoder = sparse_encoder or SparseEncoder()
        self._model = None

    def _ensure_model(self):
        """Lazy load the bi-encoder"""
        if self._model is not None:
            return self._model

        from sentence_transformers import SentenceTransformer

        self._model = SentenceTransformer(self.model_name, device=self.device)
        logger.info("Loaded SentenceTransformer %s on %s", self.model_name, self.device)
        return self._model

    def _prefix(self, purpose: Purpose) -> str:
        return E5_PREFIXES[purpose] if "e5" in self.model_name.lower() else ""

    def _encode(self, texts: list[str], purpose: Purpose) -> list[list[float]]:
        model = self._ensure_model()
        prefix = self._prefix(purpose)
        vectors = model.encode(
            [prefix + t for t in texts],
            convert_to_numpy=True,
            normalize_embeddings=True,
        )
        return vectors.tolist()

    async def embed_dense(self, texts: list[str], purpose: Purpose) -> list[DenseEmbedding]:
        if not texts:
            return []
        vectors = await asyncio.to_thread(self._encode, texts, purpose)
        return [DenseEmbedding(values=v) for v in vectors]

    async def embed_sparse(self, texts: list[str], purpose: Purpose) -> list[SparseEmbedding]:
        return [self.sparse_encoder.encode(t, purpose) for t in texts]


def _batch_size(provider: EmbeddingProvider, batch_size: Optional[int]) -> int:
    size = batch_size or get_settings().embed_batch_size
    return max(1, min(size, provider.max_batch_size))


async def generate_dense_embeddings(
    provider: EmbeddingProvider,
    texts: list[str],
    batch_size: Optional[int] = None,
) -> list[DenseEmbedding]:
    """Passage embeddings, one sequential provider call per batch"""
    if not texts:
        return []

    size = _batch_size(provider, batch_size)
    embeddings: list[DenseEmbedding] = []

    for start in range(0, len(texts), size):
        batch = texts[start:start + size]
        result = await provider.embed_dense(batch, "passage")
        if len(result) != len(batch):
            raise EmbeddingMismatchError(chunks=len(batch), dense=len(result), sparse=len(batch))
        embeddings.extend(result)
        logger.debug("Dense embeddings %d/%d", len(embeddings), len(texts))

    return embeddings


async def generate_sparse_embeddings(
    provider: EmbeddingProvider,
    texts: list[str],
    batch_size: Optional[int] = None,
) -> list[SparseEmbedding]:
    """Passage sparse vectors; texts without terms keep an explicit empty entry"""
    if not texts:
        return []

    size = _batch_size(provider, batch_size)
    embeddings: list[SparseEmbedding] = []

    for start in range(0, len(texts), size):
        batch = texts[start:start + size]
        result = await provider.embed_sparse(batch, "passage")
        if len(result) != len(batch):
            raise EmbeddingMismatchError(chunks=len(batch), dense=len(batch), sparse=len(result))
        embeddings.extend(e if e is not None else SparseEmbedding() for e in result)
        logger.debug("Sparse embeddings %d/%d", len(embeddings), len(texts))

    return embeddings


async def generate_dense_query_embedding(provider: EmbeddingProvider, text: str) -> DenseEmbedding:
    result = await provider.embed_dense([text], "query")
    if not result or not result[0].values:
        raise EmbeddingError("Failed to generate dense query embedding")
    if any(math.isnan(v) for v in result[0].values):
        raise EmbeddingError("Dense query embedding contains NaN values")
    return result[0]


async def generate_sparse_query_embedding(provider: EmbeddingProvider, text: str) -> SparseEmbedding:
    result = await provider.embed_sparse([text], "query")
    if not result or result[0] is None:
        raise EmbeddingError("Failed to generate sparse query embedding")
    return result[0]
