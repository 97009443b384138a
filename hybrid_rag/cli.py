"""
Command-line interface: ``hybrid-rag index`` and ``hybrid-rag search``
"""
import argparse
import asyncio
import logging
import sys
from collections import Counter
from pathlib import Path
from typing import Optional

from hybrid_rag.config import get_settings
from hybrid_rag.docling import SUPPORTED_EXTENSIONS
from hybrid_rag.exceptions import HybridRagError
from hybrid_rag.indexing import ProgressReporter
from hybrid_rag.pipeline import DocumentIndexer, IndexingSummary
from hybrid_rag.retriever import HybridRetriever
from hybrid_rag.sources import filter_by_score
from hybrid_rag.text_utils import preview
from hybrid_rag.types import SearchResult


def positive_int(value: str) -> int:
    number = int(value)
    if number < 1:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="hybrid-rag",
        description="Index documents and run hybrid (semantic + lexical) search",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    index = subparsers.add_parser("index", help="Index documents from a file or directory")
    index.add_argument(
        "-s", "--source",
        default="./docs",
        help="Source directory or file containing documents to index",
    )
    index.add_argument("-n", "--namespace", help="Vector store namespace")
    index.add_argument(
        "--no-clear",
        dest="clear",
        action="store_false",
        help="Keep existing records in the namespace",
    )
    index.add_argument("-v", "--verbose", action="store_true", help="Show per-stage progress")

    search = subparsers.add_parser("search", help="Search indexed documents")
    search.add_argument("query", help="The search query")
    search.add_argument("-k", "--top-k", type=positive_int, default=10, help="Number of results")
    search.add_argument("-n", "--namespace", help="Vector store namespace")
    search.add_argument(
        "--no-rerank",
        dest="rerank",
        action="store_false",
        help="Disable reranking (enabled by default)",
    )
    search.add_argument("--rerank-model", help="Reranking model to use")
    search.add_argument("--min-score", type=float, help="Drop results scoring below this")
    search.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show result provenance (dense/sparse/hybrid)",
    )

    return parser.parse_args(argv)


class ConsoleProgressReporter(ProgressReporter):
    """Renders stage progress as a single rewritten console line"""

    def __init__(self, width: int = 30):
        self.width = width

    def report(self, stage: str, percent: int) -> None:
        filled = round(self.width * min(percent, 100) / 100)
        bar = "█" * filled + "░" * (self.width - filled)
        sys.stdout.write(f"\r   🔄 {stage}... [{bar}] {percent}%")
        if percent >= 100:
            sys.stdout.write("\n")
        sys.stdout.flush()


def format_result(result: SearchResult, position: int, verbose: bool) -> str:
    tag = f" [{result.provenance}]" if verbose else ""
    lines = [f"{position}. {result.metadata.source}{tag} (score: {result.score:.4f})"]
    if result.metadata.headings:
        lines.append(f"   📑 {' > '.join(result.metadata.headings)}")
    lines.append(f"   {preview(result.metadata.chunk_text)}")
    return "\n".join(lines)


def print_summary(summary: IndexingSummary) -> None:
    print("\n" + "─" * 50)
    print("📊 Indexing Summary\n")
    print(f"   Documents processed: {summary.success_count}/{summary.total_files}")
    print(f"   Total chunks indexed: {summary.total_chunks:,}")
    if summary.empty_count:
        print(f"   Documents without content: {summary.empty_count}")
    if summary.error_count:
        print(f"   Errors: {summary.error_count}")
        for error in summary.errors:
            print(f"   ❌ {Path(error.path).name}: {error.message}")

    stats = summary.stats
    if stats and (stats.dense or stats.sparse):
        print("\n📈 Index Statistics:")
        if stats.dense:
            print(f"   Dense index: {stats.dense.vector_count:,} vectors ({stats.dense.dimension}d)")
        if stats.sparse:
            print(f"   Sparse index: {stats.sparse.vector_count:,} vectors")


async def run_index(args: argparse.Namespace) -> int:
    print("📂 Starting document indexing...\n")
    print(f"   Source: {Path(args.source).resolve()}")
    if args.namespace:
        print(f"   Namespace: {args.namespace}")
    print(f"   Supported formats: {', '.join(SUPPORTED_EXTENSIONS)}\n")

    indexer = DocumentIndexer(progress=ConsoleProgressReporter() if args.verbose else None)
    try:
        summary = await indexer.index_path(args.source, args.namespace, clear=args.clear)
    finally:
        await indexer.store.close()

    if summary.total_files == 0:
        print("⚠️  No supported documents found in the specified path.")
        return 0

    print_summary(summary)
    print("\n✨ Indexing complete!")
    return 0


async def run_search(args: argparse.Namespace) -> int:
    print("🔍 Searching documents...\n")
    print(f'   Query: "{args.query}"')
    print(f"   Top K: {args.top_k}")
    if args.namespace:
        print(f"   Namespace: {args.namespace}")
    print(f"   Rerank: {'enabled' if args.rerank else 'disabled'}\n")

    retriever = HybridRetriever()
    try:
        results = await retriever.search(
            args.query,
            top_k=args.top_k,
            namespace=args.namespace,
            rerank_enabled=args.rerank,
            rerank_model=args.rerank_model,
        )
    finally:
        await retriever.store.close()

    if args.min_score is not None:
        results = filter_by_score(results, args.min_score)

    if not results:
        print("📭 No results found.\n")
        print("   Make sure you have indexed some documents first:")
        print("   $ hybrid-rag index --source ./your-documents")
        return 0

    print(f"📋 Found {len(results)} result(s):\n")
    print("─" * 60)
    print("\n\n".join(format_result(r, i, args.verbose) for i, r in enumerate(results, start=1)))
    print("─" * 60)

    if args.verbose:
        counts = Counter(r.provenance for r in results)
        parts = []
        if counts["hybrid"]:
            parts.append(f"{counts['hybrid']} hybrid")
        if counts["dense"]:
            parts.append(f"{counts['dense']} dense-only")
        if counts["sparse"]:
            parts.append(f"{counts['sparse']} sparse-only")
        print(f"\n📊 Result sources: {', '.join(parts)}")

    print("\n✨ Search complete!")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=get_settings().log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    runner = run_index if args.command == "index" else run_search
    try:
        return asyncio.run(runner(args))
    except HybridRagError as e:
        print(f"\n❌ {args.command.capitalize()} failed: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
