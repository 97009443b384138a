"""
Hybrid RAG - Structure-aware chunking and hybrid search
Docling trees -> semantic chunks -> Dense + Sparse (Qdrant) + RRF Fusion + CrossEncoder Reranking
"""
from hybrid_rag.types import Chunk, ChunkMetadata, ContentItem, SearchResult
from hybrid_rag.chunker import SemanticChunker, chunk_document
from hybrid_rag.extractor import ContentExtractor
from hybrid_rag.rrf import reciprocal_rank_fusion
from hybrid_rag.retriever import HybridRetriever, hybrid_search

__all__ = [
    "Chunk", "ChunkMetadata", "ContentItem", "SearchResult",
    "SemanticChunker", "chunk_document", "ContentExtractor",
    "reciprocal_rank_fusion", "HybridRetriever", "hybrid_search",
]
__version__ = "1.0.0"
