"""
Configuration for the Hybrid RAG pipeline
Loads from environment variables with sensible defaults
"""
from pathlib import Path
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    """Configuration loaded from environment variables"""

    # Qdrant (dense + sparse partitions share one id space)
    qdrant_url: str = "http://localhost:6333"
    qdrant_api_key: str | None = None
    dense_collection: str = "rag_dense"
    sparse_collection: str = "rag_sparse"

    # Docling document conversion service
    docling_url: str = "http://localhost:5001/v1"
    docling_api_key: str | None = None
    docling_timeout: float = 300.0
    docling_log_dir: Path | None = None

    # Embedding Model (Bi-Encoder)
    embed_model: str = "intfloat/multilingual-e5-base"
    embed_dim: int = 768
    embedding_device: str = "cpu"

    # CrossEncoder for Reranking
    cross_encoder_model: str = "cross-encoder/ms-marco-MiniLM-L-6-v2"

    # Batching
    embed_batch_size: int = 96
    upsert_batch_size: int = 100

    # Chunking
    max_chunk_size: int = 2000
    min_chunk_size: int = 200
    max_metadata_chars: int = 40000

    # Retrieval defaults
    default_top_k: int = 10
    default_rrf_k: int = 60
    rerank_enabled: bool = True
    min_score: float = 0.3

    # Lexical weighting for sparse vectors
    sparse_k1: float = 1.2
    sparse_b: float = 0.75
    sparse_avg_doc_len: float = 256.0

    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()

