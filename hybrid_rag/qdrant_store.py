"""
Qdrant Vector Store for Hybrid Retrieval
Dense and sparse partitions as two collections sharing one record id space
"""
import logging
import uuid
from typing import Optional, Any

from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance, FieldCondition, Filter, FilterSelector, MatchValue, Modifier,
    PayloadSchemaType, PointStruct, SparseVector, SparseVectorParams, VectorParams,
)

from hybrid_rag.config import get_settings
from hybrid_rag.exceptions import VectorStoreError
from hybrid_rag.types import (
    ChunkMetadata, DenseEmbedding, DenseRecord, Partition, PartitionStats,
    Provenance, SearchResult, SparseEmbedding, SparseRecord,
)

logger = logging.getLogger("hybrid_rag.qdrant_store")

SPARSE_VECTOR_NAME = "text-sparse"
DEFAULT_NAMESPACE = ""

# Fixed namespace for deriving Qdrant point ids from record ids
POINT_ID_NAMESPACE = uuid.UUID("6f1d3c8e-2a4b-5c7d-9e0f-1a2b3c4d5e6f")


def point_id(record_id: str, namespace: Optional[str] = None) -> str:
    """Qdrant needs int or UUID ids; derive a stable UUID per (namespace, record id)"""
    return str(uuid.uuid5(POINT_ID_NAMESPACE, f"{namespace or DEFAULT_NAMESPACE}/{record_id}"))


def namespace_filter(namespace: Optional[str]) -> Filter:
    return Filter(must=[
        FieldCondition(key="namespace", match=MatchValue(value=namespace or DEFAULT_NAMESPACE))
    ])


class QdrantStore:
    """Qdrant-backed dual index: upsert, namespace delete, top-K query, stats"""

    def __init__(
        self,
        url: Optional[str] = None,
        api_key: Optional[str] = None,
        dense_collection: Optional[str] = None,
        sparse_collection: Optional[str] = None,
        embed_dim: Optional[int] = None,
        client: Optional[AsyncQdrantClient] = None,
    ):
        settings = get_settings()

        self.url = url or settings.qdrant_url
        self.api_key = api_key or settings.qdrant_api_key
        self.collections: dict[str, str] = {
            "dense": dense_collection or settings.dense_collection,
            "sparse": sparse_collection or settings.sparse_collection,
        }
        self.embed_dim = embed_dim or settings.embed_dim
        self.upsert_batch_size = settings.upsert_batch_size

        self.client = client or AsyncQdrantClient(url=self.url, api_key=self.api_key)
        self._ready = False

    async def ensure_collections(self):
        """Create both collections if they don't exist"""
        if self._ready:
            return

        dense = self.collections["dense"]
        if not await self.client.collection_exists(dense):
            await self.client.create_collection(
                collection_name=dense,
                vectors_config=VectorParams(size=self.embed_dim, distance=Distance.COSINE),
            )
            await self._index_namespace(dense)
            logger.info("Created Qdrant collection: %s", dense)

        sparse = self.collections["sparse"]
        if not await self.client.collection_exists(sparse):
            await self.client.create_collection(
                collection_name=sparse,
                vectors_config={},
                sparse_vectors_config={SPARSE_VECTOR_NAME: SparseVectorParams(modifier=Modifier.IDF)},
            )
            await self._index_namespace(sparse)
            logger.info("Created Qdrant collection: %s", sparse)

        self._ready = True

    async def _index_namespace(self, collection: str):
        await self.client.create_payload_index(
            collection_name=collection,
            field_name="namespace",
            field_schema=PayloadSchemaType.KEYWORD,
        )

    @staticmethod
    def _payload(record_id: str, metadata: ChunkMetadata, namespace: Optional[str]) -> dict[str, Any]:
        return {
            **metadata.to_payload(),
            "record_id": record_id,
            "namespace": namespace or DEFAULT_NAMESPACE,
        }

    async def _upsert(self, partition: Partition, points: list[PointStruct], batch_size: Optional[int]):
        size = batch_size or self.upsert_batch_size
        collection = self.collections[partition]
        for start in range(0, len(points), size):
            try:
                await self.client.upsert(
                    collection_name=collection,
                    points=points[start:start + size],
                    wait=True,
                )
            except Exception as e:
                raise VectorStoreError(
                    f"Upsert to {collection} failed: {e}",
                    {"collection": collection, "batch_start": start},
                ) from e
            logger.debug("Upserted %d/%d points to %s", min(start + size, len(points)), len(points), collection)

    async def upsert_dense(
        self,
        records: list[DenseRecord],
        namespace: Optional[str] = None,
        batch_size: Optional[int] = None,
    ) -> int:
        """Upsert dense records in sequential batches"""
        if not records:
            return 0
        await self.ensure_collections()

        points = [
            PointStruct(
                id=point_id(r.id, namespace),
                vector=r.values,
                payload=self._payload(r.id, r.metadata, namespace),
            )
            for r in records
        ]
        await self._upsert("dense", points, batch_size)
        return len(points)

    async def upsert_sparse(
        self,
        records: list[SparseRecord],
        namespace: Optional[str] = None,
        batch_size: Optional[int] = None,
    ) -> int:
        """Upsert sparse records in sequential batches; records without terms are skipped"""
        valid = [r for r in records if not r.sparse_values.is_empty()]
        if len(valid) < len(records):
            logger.warning("Skipping %d empty sparse vectors", len(records) - len(valid))
        if not valid:
            return 0
        await self.ensure_collections()

        points = [
            PointStruct(
                id=point_id(r.id, namespace),
                vector={SPARSE_VECTOR_NAME: SparseVector(
                    indices=r.sparse_values.indices,
                    values=r.sparse_values.values,
                )},
                payload=self._payload(r.id, r.metadata, namespace),
            )
            for r in valid
        ]
        await self._upsert("sparse", points, batch_size)
        return len(points)

    async def delete_all(self, partition: Partition, namespace: Optional[str] = None):
        """Delete every record of one namespace in one partition"""
        await self.client.delete(
            collection_name=self.collections[partition],
            points_selector=FilterSelector(filter=namespace_filter(namespace)),
            wait=True,
        )

    @staticmethod
    def _to_results(points, provenance: Provenance) -> list[SearchResult]:
        results = []
        for point in points:
            payload = point.payload or {}
            results.append(SearchResult(
                id=payload.get("record_id") or str(point.id),
                score=float(point.score) if point.score else 0.0,
                metadata=ChunkMetadata.from_payload(payload),
                provenance=provenance,
            ))
        return results

    async def query_dense(
        self,
        embedding: DenseEmbedding,
        top_k: int,
        namespace: Optional[str] = None,
    ) -> list[SearchResult]:
        """Cosine top-K search in the dense partition"""
        response = await self.client.query_points(
            collection_name=self.collections["dense"],
            query=embedding.values,
            query_filter=namespace_filter(namespace),
            limit=top_k,
            with_payload=True,
        )
        return self._to_results(response.points, "dense")

    async def query_sparse(
        self,
        embedding: SparseEmbedding,
        top_k: int,
        namespace: Optional[str] = None,
    ) -> list[SearchResult]:
        """Dot-product top-K search in the sparse partition"""
        if embedding.is_empty():
            return []

        response = await self.client.query_points(
            collection_name=self.collections["sparse"],
            query=SparseVector(indices=embedding.indices, values=embedding.values),
            using=SPARSE_VECTOR_NAME,
            query_filter=namespace_filter(namespace),
            limit=top_k,
            with_payload=True,
        )
        return self._to_results(response.points, "sparse")

    async def stats(self, partition: Partition) -> PartitionStats:
        """Record count (and dimension for the dense partition)"""
        info = await self.client.get_collection(self.collections[partition])

        dimension = None
        if partition == "dense":
            vectors = info.config.params.vectors
            dimension = getattr(vectors, "size", None)

        return PartitionStats(vector_count=info.points_count or 0, dimension=dimension)

    async def close(self):
        await self.client.close()
