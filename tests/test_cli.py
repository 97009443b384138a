"""
Tests for the command-line interface
"""
import pytest

from conftest import FakeEmbeddingProvider, FakeReranker, FakeStore, make_result
from hybrid_rag import cli
from hybrid_rag.chunker import SemanticChunker
from hybrid_rag.docling import DoclingDocument, DocumentParser
from hybrid_rag.pipeline import DocumentIndexer
from hybrid_rag.retriever import HybridRetriever


class StaticParser(DocumentParser):
    async def convert(self, path):
        return DoclingDocument.model_validate({
            "body": {"children": [{"$ref": "#/texts/0"}]},
            "texts": [{"self_ref": "#/texts/0", "label": "paragraph", "text": "Indexed body text."}],
        })


@pytest.fixture
def store() -> FakeStore:
    return FakeStore(
        dense_results=[make_result("a", 0.9, text="alpha passage"), make_result("b", 0.8)],
        sparse_results=[make_result("a", 7.0, provenance="sparse", text="alpha passage")],
    )


@pytest.fixture
def patched(monkeypatch, store, settings):
    provider = FakeEmbeddingProvider()

    monkeypatch.setattr(cli, "HybridRetriever", lambda: HybridRetriever(
        store=store, provider=provider, reranker=FakeReranker(), settings=settings,
    ))
    monkeypatch.setattr(cli, "DocumentIndexer", lambda progress=None: DocumentIndexer(
        store=store,
        provider=provider,
        parser=StaticParser(),
        chunker=SemanticChunker(2000, 200),
        progress=progress,
    ))
    return store


class TestParseArgs:

    def test_search_defaults(self):
        args = cli.parse_args(["search", "what is rrf"])
        assert args.query == "what is rrf"
        assert args.top_k == 10
        assert args.rerank is True
        assert args.namespace is None

    def test_search_flags(self):
        args = cli.parse_args(["search", "q", "-k", "3", "--no-rerank", "-n", "kb", "--min-score", "0.4"])
        assert (args.top_k, args.rerank, args.namespace, args.min_score) == (3, False, "kb", 0.4)

    def test_index_flags(self):
        args = cli.parse_args(["index", "-s", "./manuals", "--no-clear", "-v"])
        assert (args.source, args.clear, args.verbose) == ("./manuals", False, True)

    def test_invalid_top_k(self):
        with pytest.raises(SystemExit):
            cli.parse_args(["search", "q", "-k", "0"])


class TestFormatting:

    def test_format_result(self):
        text = cli.format_result(make_result("a", 0.91234, provenance="hybrid", text="line\nnext"), 1, verbose=True)
        assert text.splitlines() == [
            "1. doc.pdf [hybrid] (score: 0.9123)",
            "   📑 Intro",
            "   line next",
        ]

    def test_progress_bar(self, capsys):
        cli.ConsoleProgressReporter(width=10).report("Upserting to dense index", 50)
        assert "[█████░░░░░] 50%" in capsys.readouterr().out


class TestMain:

    def test_search(self, patched, capsys):
        assert cli.main(["search", "alpha", "-k", "2", "--no-rerank", "-v"]) == 0

        out = capsys.readouterr().out
        assert "Found 2 result(s)" in out
        assert "1. doc.pdf [hybrid]" in out
        assert "1 hybrid, 1 dense-only" in out

    def test_search_no_results(self, patched, capsys):
        patched.dense_results = []
        patched.sparse_results = []

        assert cli.main(["search", "alpha"]) == 0
        assert "No results found" in capsys.readouterr().out

    def test_search_failure(self, patched, capsys):
        patched.fail_query = "dense"

        assert cli.main(["search", "alpha"]) == 1
        assert "Search failed" in capsys.readouterr().err

    def test_index(self, patched, tmp_path, capsys):
        (tmp_path / "a.md").write_text("x")
        (tmp_path / "b.txt").write_text("x")

        assert cli.main(["index", "-s", str(tmp_path), "-n", "kb"]) == 0

        out = capsys.readouterr().out
        assert "Documents processed: 2/2" in out
        assert "Total chunks indexed: 2" in out
        assert patched.deleted == [("dense", "kb"), ("sparse", "kb")]

    def test_index_missing_source(self, patched, tmp_path, capsys):
        assert cli.main(["index", "-s", str(tmp_path / "nope")]) == 1
        assert "Index failed" in capsys.readouterr().err
