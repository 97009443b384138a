"""
FastAPI Endpoints for Hybrid Retrieval
Optional REST API for indexing and search
"""
from typing import Optional
from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from hybrid_rag.exceptions import DocumentConversionError, RetrievalError, UnsupportedFileTypeError
from hybrid_rag.indexing import clear_all_indexes, get_index_stats
from hybrid_rag.pipeline import DocumentIndexer
from hybrid_rag.retriever import HybridRetriever
from hybrid_rag.sources import filter_by_score, format_context_for_llm


app = FastAPI(
    title="Hybrid RAG API",
    description="Dense + Sparse + RRF + Rerank retrieval over Docling-parsed documents",
    version="1.0.0"
)

# Singletons (reused across requests)
_retriever: Optional[HybridRetriever] = None
_indexer: Optional[DocumentIndexer] = None


def get_retriever() -> HybridRetriever:
    global _retriever
    if _retriever is None:
        _retriever = HybridRetriever()
    return _retriever


def get_indexer() -> DocumentIndexer:
    global _indexer
    if _indexer is None:
        retriever = get_retriever()
        _indexer = DocumentIndexer(store=retriever.store, provider=retriever.provider)
    return _indexer


# Request/Response Models
class SearchRequest(BaseModel):
    """Request body for /search endpoint"""
    query: str = Field(..., min_length=1, description="Search query")
    top_k: int = Field(10, ge=1, description="Number of results")
    namespace: Optional[str] = Field(None, description="Vector store namespace")
    rrf_k: int = Field(60, ge=1, description="RRF constant")
    rerank: bool = Field(True, description="Rerank fused candidates")
    rerank_model: Optional[str] = Field(None, description="Reranking model override")
    rerank_top_n: Optional[int] = Field(None, ge=1, description="Reranked results (defaults to top_k)")
    min_score: Optional[float] = Field(None, description="Drop results scoring below this")
    format_for_llm: bool = Field(False, description="Return formatted context string")


class ResultResponse(BaseModel):
    """Single result in response"""
    id: str
    score: float
    provenance: str
    source: str
    chunk_index: int
    headings: list[str]
    item_types: list[str]
    text: str


class SearchResponse(BaseModel):
    results: list[ResultResponse]
    context: Optional[str] = None


class IndexRequest(BaseModel):
    source: str = Field(..., description="File or directory on the server")
    namespace: Optional[str] = None
    clear: bool = True


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    dense_count: Optional[int]
    sparse_count: Optional[int]


# Endpoints
@app.get("/health", response_model=HealthResponse)
async def health_check(retriever: HybridRetriever = Depends(get_retriever)):
    """Check service health and index sizes"""
    stats = await get_index_stats(retriever.store)

    return HealthResponse(
        status="ok" if stats.dense is not None and stats.sparse is not None else "degraded",
        dense_count=stats.dense.vector_count if stats.dense else None,
        sparse_count=stats.sparse.vector_count if stats.sparse else None,
    )


@app.get("/stats")
async def index_stats(retriever: HybridRetriever = Depends(get_retriever)):
    stats = await get_index_stats(retriever.store)
    return stats.to_dict()


@app.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest, retriever: HybridRetriever = Depends(get_retriever)):
    """
    Hybrid search endpoint

    Performs: Dense + Sparse + RRF Fusion + Rerank
    """
    try:
        results = await retriever.search(
            request.query,
            top_k=request.top_k,
            namespace=request.namespace,
            rrf_k=request.rrf_k,
            rerank_enabled=request.rerank,
            rerank_model=request.rerank_model,
            rerank_top_n=request.rerank_top_n,
        )
    except RetrievalError as e:
        raise HTTPException(status_code=502, detail=e.message)

    if request.min_score is not None:
        results = filter_by_score(results, request.min_score)

    return SearchResponse(
        results=[
            ResultResponse(
                id=r.id,
                score=r.score,
                provenance=r.provenance,
                source=r.metadata.source,
                chunk_index=r.metadata.chunk_index,
                headings=r.metadata.headings,
                item_types=r.metadata.item_types,
                text=r.metadata.chunk_text,
            )
            for r in results
        ],
        context=format_context_for_llm(results) if request.format_for_llm else None,
    )


@app.post("/index")
async def index_documents(request: IndexRequest, indexer: DocumentIndexer = Depends(get_indexer)):
    """Index a server-side file or directory"""
    try:
        summary = await indexer.index_path(request.source, request.namespace, clear=request.clear)
    except UnsupportedFileTypeError as e:
        raise HTTPException(status_code=400, detail=e.message)
    except DocumentConversionError as e:
        raise HTTPException(status_code=404, detail=e.message)

    return summary.to_dict()


@app.delete("/index")
async def clear_index(namespace: Optional[str] = None, retriever: HybridRetriever = Depends(get_retriever)):
    """Delete every record in a namespace from both partitions"""
    await clear_all_indexes(retriever.store, namespace)
    return {"status": "ok", "namespace": namespace}


# Run with: uvicorn hybrid_rag.api:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
