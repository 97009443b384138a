"""
Helpers for presenting and citing retrieved results
"""
import re
from dataclasses import dataclass, field
from typing import Optional

from hybrid_rag.config import get_settings
from hybrid_rag.types import SearchResult

CITATION_PATTERN = re.compile(r"\[(\d+(?:\s*,\s*\d+)*)\]")


@dataclass
class GroupedSource:
    """A document with the 1-based result indices that cite it"""
    result: SearchResult  # highest-ranked result for this document
    indices: list[int] = field(default_factory=list)


def filter_by_score(results: list[SearchResult], min_score: Optional[float] = None) -> list[SearchResult]:
    """Keep results scoring at least ``min_score`` (default from settings), order preserved"""
    if min_score is None:
        min_score = get_settings().min_score
    return [r for r in results if r.score >= min_score]


def extract_cited_indices(response_text: str) -> set[int]:
    """Citation markers like ``[1]`` or ``[1, 2]`` in a generated answer"""
    cited: set[int] = set()
    for match in CITATION_PATTERN.finditer(response_text):
        for number in match.group(1).split(","):
            cited.add(int(number.strip()))
    return cited


def group_sources_by_document(
    results: list[SearchResult],
    cited_indices: set[int],
) -> list[GroupedSource]:
    """
    Group cited results by source document

    Groups are ordered by first appearance; uncited results are dropped.
    """
    groups: dict[str, GroupedSource] = {}

    for i, result in enumerate(results, start=1):
        if i not in cited_indices:
            continue

        key = result.metadata.source
        if key in groups:
            groups[key].indices.append(i)
        else:
            groups[key] = GroupedSource(result=result, indices=[i])

    for group in groups.values():
        group.indices.sort()

    return list(groups.values())


def _heading_path(result: SearchResult) -> str:
    if not result.metadata.headings:
        return ""
    return " > " + " > ".join(result.metadata.headings)


def format_source_citations(groups: list[GroupedSource]) -> str:
    lines = []
    for group in groups:
        r = group.result
        indices = ", ".join(str(i) for i in group.indices)
        lines.append(f"  [{indices}] {r.metadata.source}{_heading_path(r)} (score: {r.score:.2f})")
    return "\n".join(lines)


def build_context_chunks(results: list[SearchResult]) -> list[dict]:
    """Source, heading path and text of each result, for a generation prompt"""
    return [
        {
            "source": r.metadata.source,
            "headings": list(r.metadata.headings),
            "text": r.metadata.chunk_text,
        }
        for r in results
    ]


def format_context_for_llm(results: list[SearchResult]) -> str:
    """Numbered context blocks, so answers can cite them as [n]"""
    if not results:
        return "(No context found)"

    parts = []
    for i, r in enumerate(results, start=1):
        parts.append(f"[{i}] {r.metadata.source}{_heading_path(r)}\n{r.metadata.chunk_text}")

    return "\n\n---\n\n".join(parts)
