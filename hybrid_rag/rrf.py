"""
RRF (Reciprocal Rank Fusion) Implementation
Combines dense and sparse retrieval results
"""
from hybrid_rag.types import Provenance, SearchResult


def rrf_score_single(rank: int, k: int = 60) -> float:
    """Calculate RRF score for a single 1-based rank"""
    return 1.0 / (k + rank)


def reciprocal_rank_fusion(
    dense_results: list[SearchResult],
    sparse_results: list[SearchResult],
    k: int = 60,
) -> list[SearchResult]:
    """
    Fuse dense and sparse results using Reciprocal Rank Fusion (RRF)

    RRF Score = Σ 1 / (k + rank_i), rank_i 1-based in each list

    Only rank positions matter, so a cosine ranking and a dot-product
    ranking can be merged without score calibration.

    Args:
        dense_results: Results from the dense partition, best first
        sparse_results: Results from the sparse partition, best first
        k: RRF constant (default 60, as in original paper)

    Returns:
        One result per id, sorted by fused score descending. Provenance is
        "hybrid" for ids present in both lists.
    """
    # Key: id, Value: [accumulated_score, first_seen_result, sources]
    score_map: dict[str, list] = {}

    for source, results in (("dense", dense_results), ("sparse", sparse_results)):
        for rank, result in enumerate(results, start=1):
            rrf_score = rrf_score_single(rank, k)

            if result.id in score_map:
                entry = score_map[result.id]
                entry[0] += rrf_score
                entry[2].add(source)
            else:
                score_map[result.id] = [rrf_score, result, {source}]

    fused: list[SearchResult] = []
    for result_id, (score, first, sources) in score_map.items():
        provenance: Provenance = "hybrid" if len(sources) == 2 else next(iter(sources))
        fused.append(SearchResult(
            id=result_id,
            score=score,
            metadata=first.metadata,
            provenance=provenance,
        ))

    # Stable sort: ties keep discovery order
    fused.sort(key=lambda x: x.score, reverse=True)

    return fused
