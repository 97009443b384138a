"""
Batch indexing pipeline
Find documents, convert with Docling, chunk, and index each one;
a failing document is counted and skipped, never fatal to the run
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from hybrid_rag.chunker import SemanticChunker
from hybrid_rag.docling import DoclingClient, DocumentParser, find_supported_files
from hybrid_rag.embeddings import EmbeddingProvider, LocalEmbeddingProvider
from hybrid_rag.extractor import ContentExtractor
from hybrid_rag.indexing import (
    LoggingProgressReporter, ProgressReporter, clear_all_indexes, get_index_stats, index_chunks,
)
from hybrid_rag.qdrant_store import QdrantStore
from hybrid_rag.types import IndexResult, IndexStats

logger = logging.getLogger("hybrid_rag.pipeline")


@dataclass
class DocumentError:
    path: str
    message: str


@dataclass
class IndexingSummary:
    total_files: int = 0
    success_count: int = 0
    error_count: int = 0
    empty_count: int = 0  # converted fine but produced no chunks
    total_chunks: int = 0
    errors: list[DocumentError] = field(default_factory=list)
    stats: Optional[IndexStats] = None

    def to_dict(self) -> dict:
        return {
            "total_files": self.total_files,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "empty_count": self.empty_count,
            "total_chunks": self.total_chunks,
            "errors": [{"path": e.path, "message": e.message} for e in self.errors],
            "stats": self.stats.to_dict() if self.stats else None,
        }


class DocumentIndexer:
    """Indexes files or directories into the dense and sparse partitions"""

    def __init__(
        self,
        store: Optional[QdrantStore] = None,
        provider: Optional[EmbeddingProvider] = None,
        parser: Optional[DocumentParser] = None,
        chunker: Optional[SemanticChunker] = None,
        progress: Optional[ProgressReporter] = None,
    ):
        self.store = store or QdrantStore()
        self.provider = provider or LocalEmbeddingProvider()
        self.parser = parser or DoclingClient()
        self.chunker = chunker or SemanticChunker()
        self.extractor = ContentExtractor()
        self.progress = progress or LoggingProgressReporter()

    async def index_file(self, path: str | Path, namespace: Optional[str] = None) -> tuple[int, IndexResult]:
        """Convert, chunk and index one file. Returns (chunk count, index result)"""
        path = Path(path)

        doc = await self.parser.convert(path)
        chunks = self.chunker.chunk(self.extractor.extract(doc))

        if not chunks:
            return 0, IndexResult()

        logger.debug("Created %d chunk(s) for %s", len(chunks), path.name)
        result = await index_chunks(
            chunks, path.name, self.store, self.provider,
            namespace=namespace, progress=self.progress,
        )
        return len(chunks), result

    async def index_path(
        self,
        source: str | Path,
        namespace: Optional[str] = None,
        clear: bool = True,
    ) -> IndexingSummary:
        """
        Index every supported document under ``source``

        Args:
            source: File or directory
            namespace: Optional partition key
            clear: Delete the namespace's existing records first

        Returns:
            IndexingSummary with success_count == total_files - error_count
        """
        files = find_supported_files(source)
        summary = IndexingSummary(total_files=len(files))

        if not files:
            logger.warning("No supported documents found in %s", source)
            return summary

        if clear:
            await clear_all_indexes(self.store, namespace)

        for position, file_path in enumerate(files, start=1):
            logger.info("[%d/%d] Processing: %s", position, len(files), file_path.name)

            try:
                chunk_count, result = await self.index_file(file_path, namespace)
            except Exception as e:
                summary.error_count += 1
                summary.errors.append(DocumentError(path=str(file_path), message=str(e)))
                logger.warning("Failed to index %s: %s", file_path.name, e)
                continue

            summary.success_count += 1
            if chunk_count == 0:
                summary.empty_count += 1
                logger.warning("No content extracted from %s", file_path.name)
                continue

            summary.total_chunks += chunk_count
            if result.dense_count == result.sparse_count:
                logger.info("Indexed %d chunks (dense + sparse)", result.dense_count)
            else:
                logger.info("Indexed %d dense, %d sparse chunks", result.dense_count, result.sparse_count)

        summary.stats = await get_index_stats(self.store)
        return summary
