"""
Type definitions for the Hybrid RAG pipeline
"""
from dataclasses import dataclass, field
from typing import Any, Literal, Optional


Provenance = Literal["dense", "sparse", "hybrid"]
Purpose = Literal["passage", "query"]
Partition = Literal["dense", "sparse"]


@dataclass(frozen=True)
class ContentItem:
    """One node of a flattened document, in reading order"""
    text: str
    label: str
    is_heading: bool
    ref: str


@dataclass(frozen=True)
class Chunk:
    """A retrieval unit produced by the chunker"""
    text: str
    headings: list[str]
    item_types: list[str]  # distinct labels, first-seen order
    chunk_index: int


@dataclass
class ChunkMetadata:
    """Metadata persisted alongside each indexed vector"""
    source: str
    chunk_index: int
    chunk_text: str
    headings: list[str] = field(default_factory=list)
    item_types: list[str] = field(default_factory=list)
    total_chunks: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "chunk_index": self.chunk_index,
            "chunk_text": self.chunk_text,
            "headings": list(self.headings),
            "item_types": list(self.item_types),
            "total_chunks": self.total_chunks,
        }

    @classmethod
    def from_payload(cls, payload: Optional[dict[str, Any]]) -> "ChunkMetadata":
        payload = payload or {}
        return cls(
            source=payload.get("source", ""),
            chunk_index=int(payload.get("chunk_index", 0)),
            chunk_text=payload.get("chunk_text", ""),
            headings=list(payload.get("headings") or []),
            item_types=list(payload.get("item_types") or []),
            total_chunks=int(payload.get("total_chunks", 0)),
        )


@dataclass
class SearchResult:
    """A ranked match from dense search, sparse search, fusion or reranking"""
    id: str
    score: float
    metadata: ChunkMetadata
    provenance: Provenance

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "score": self.score,
            "provenance": self.provenance,
            "metadata": self.metadata.to_payload(),
        }


@dataclass
class DenseEmbedding:
    values: list[float]


@dataclass
class SparseEmbedding:
    indices: list[int] = field(default_factory=list)
    values: list[float] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.indices or not self.values


@dataclass
class DenseRecord:
    """Record to upsert to the dense partition"""
    id: str
    values: list[float]
    metadata: ChunkMetadata


@dataclass
class SparseRecord:
    """Record to upsert to the sparse partition"""
    id: str
    sparse_values: SparseEmbedding
    metadata: ChunkMetadata


@dataclass(frozen=True)
class RerankItem:
    """One scored entry returned by a reranker, pointing into its input"""
    index: int
    score: float


@dataclass
class RerankOptions:
    model: Optional[str] = None
    top_n: Optional[int] = None
    rank_fields: tuple[str, ...] = ("chunk_text",)


@dataclass
class IndexResult:
    dense_count: int = 0
    sparse_count: int = 0


@dataclass
class PartitionStats:
    vector_count: int
    dimension: Optional[int] = None


@dataclass
class IndexStats:
    dense: Optional[PartitionStats] = None
    sparse: Optional[PartitionStats] = None

    def to_dict(self) -> dict:
        return {
            "dense": None if self.dense is None else {
                "vector_count": self.dense.vector_count,
                "dimension": self.dense.dimension,
            },
            "sparse": None if self.sparse is None else {
                "vector_count": self.sparse.vector_count,
            },
        }
