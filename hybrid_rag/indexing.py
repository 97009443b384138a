"""
Indexing to the dense and sparse partitions
Record construction, embedding + upsert of one document's chunks,
namespace clearing and index statistics
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

from hybrid_rag.config import get_settings
from hybrid_rag.embeddings import (
    EmbeddingProvider, generate_dense_embeddings, generate_sparse_embeddings,
)
from hybrid_rag.exceptions import EmbeddingMismatchError
from hybrid_rag.qdrant_store import QdrantStore
from hybrid_rag.text_utils import truncate_text
from hybrid_rag.types import (
    Chunk, ChunkMetadata, DenseEmbedding, DenseRecord, IndexResult, IndexStats,
    SparseEmbedding, SparseRecord,
)

logger = logging.getLogger("hybrid_rag.indexing")

BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


# =============================================================================
# PROGRESS REPORTING
# =============================================================================

class ProgressReporter(ABC):
    """Receives (stage, percent) updates while a document is indexed"""

    @abstractmethod
    def report(self, stage: str, percent: int) -> None:
        pass


class NullProgressReporter(ProgressReporter):
    def report(self, stage: str, percent: int) -> None:
        pass


class LoggingProgressReporter(ProgressReporter):
    def __init__(self, level: int = logging.DEBUG):
        self.level = level

    def report(self, stage: str, percent: int) -> None:
        logger.log(self.level, "%s... %d%%", stage, percent)


# =============================================================================
# RECORDS
# =============================================================================

def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(BASE36_DIGITS[rem])
    return "".join(reversed(digits))


def source_file_hash(source_file: str) -> str:
    """
    Stable base-36 hash of a source filename

    32-bit ``h = h * 31 + code_unit`` over UTF-16 code units, absolute value
    of the signed result. Ids stay compatible with indexes written by other
    clients using the same scheme.
    """
    h = 0
    encoded = source_file.encode("utf-16-le")
    for i in range(0, len(encoded), 2):
        code_unit = int.from_bytes(encoded[i:i + 2], "little")
        h = (h * 31 + code_unit) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return _to_base36(abs(h))


def make_record_id(file_hash: str, chunk_index: int) -> str:
    return f"{file_hash}-{chunk_index:04d}"


def create_records_from_chunks(
    chunks: list[Chunk],
    source_file: str,
    dense_embeddings: list[DenseEmbedding],
    sparse_embeddings: list[SparseEmbedding],
    max_metadata_chars: Optional[int] = None,
) -> tuple[list[DenseRecord], list[SparseRecord]]:
    """
    Build dense and sparse records sharing ids

    Chunks without sparse terms get no sparse record.
    """
    if len(chunks) != len(dense_embeddings) or len(chunks) != len(sparse_embeddings):
        raise EmbeddingMismatchError(len(chunks), len(dense_embeddings), len(sparse_embeddings))

    max_chars = max_metadata_chars or get_settings().max_metadata_chars
    file_hash = source_file_hash(source_file)

    dense_records: list[DenseRecord] = []
    sparse_records: list[SparseRecord] = []

    for i, (chunk, dense, sparse) in enumerate(zip(chunks, dense_embeddings, sparse_embeddings)):
        record_id = make_record_id(file_hash, i)
        metadata = ChunkMetadata(
            source=source_file,
            chunk_index=i,
            chunk_text=truncate_text(chunk.text, max_chars),
            headings=list(chunk.headings),
            item_types=list(chunk.item_types),
            total_chunks=len(chunks),
        )

        dense_records.append(DenseRecord(id=record_id, values=dense.values, metadata=metadata))

        if not sparse.is_empty():
            sparse_records.append(SparseRecord(id=record_id, sparse_values=sparse, metadata=metadata))

    return dense_records, sparse_records


# =============================================================================
# OPERATIONS
# =============================================================================

async def index_chunks(
    chunks: list[Chunk],
    source_file: str,
    store: QdrantStore,
    provider: EmbeddingProvider,
    namespace: Optional[str] = None,
    progress: Optional[ProgressReporter] = None,
) -> IndexResult:
    """
    Embed one document's chunks and upsert them to both partitions

    Sparse count may be lower than dense count when some chunks have no
    lexical terms.
    """
    if not chunks:
        return IndexResult()

    progress = progress or NullProgressReporter()
    texts = [c.text for c in chunks]

    progress.report("Generating dense embeddings", 0)
    dense_embeddings = await generate_dense_embeddings(provider, texts)
    progress.report("Generating dense embeddings", 100)

    progress.report("Generating sparse embeddings", 0)
    sparse_embeddings = await generate_sparse_embeddings(provider, texts)
    progress.report("Generating sparse embeddings", 100)

    dense_records, sparse_records = create_records_from_chunks(
        chunks, source_file, dense_embeddings, sparse_embeddings
    )

    progress.report("Upserting to dense index", 0)
    dense_count = await store.upsert_dense(dense_records, namespace)
    progress.report("Upserting to dense index", 100)

    progress.report("Upserting to sparse index", 0)
    sparse_count = await store.upsert_sparse(sparse_records, namespace)
    progress.report("Upserting to sparse index", 100)

    return IndexResult(dense_count=dense_count, sparse_count=sparse_count)


async def clear_all_indexes(store: QdrantStore, namespace: Optional[str] = None):
    """Clear one namespace from both partitions; a missing partition is not an error"""
    for partition in ("dense", "sparse"):
        try:
            await store.delete_all(partition, namespace)
        except Exception as e:
            logger.warning("Failed to clear %s index: %s", partition, e)


async def get_index_stats(store: QdrantStore) -> IndexStats:
    """Statistics for both partitions; a failed lookup leaves that entry empty"""
    stats = IndexStats()

    try:
        stats.dense = await store.stats("dense")
    except Exception as e:
        logger.warning("Dense index stats unavailable: %s", e)

    try:
        stats.sparse = await store.stats("sparse")
    except Exception as e:
        logger.warning("Sparse index stats unavailable: %s", e)

    return stats
