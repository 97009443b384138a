"""
Tests for the batch indexing pipeline
"""
import logging
from pathlib import Path

import pytest

from conftest import FakeStore
from hybrid_rag.chunker import SemanticChunker
from hybrid_rag.docling import DoclingDocument, DocumentParser
from hybrid_rag.exceptions import DocumentConversionError, UnsupportedFileTypeError
from hybrid_rag.pipeline import DocumentIndexer


def text_doc(*paragraphs: str) -> DoclingDocument:
    return DoclingDocument.model_validate({
        "body": {"children": [{"$ref": f"#/texts/{i}"} for i in range(len(paragraphs))]},
        "texts": [
            {"self_ref": f"#/texts/{i}", "label": "paragraph", "text": p}
            for i, p in enumerate(paragraphs)
        ],
    })


class FakeParser(DocumentParser):
    """Serves canned documents by file name; names in ``failures`` raise"""

    def __init__(self, documents: dict, failures: set = frozenset()):
        self.documents = documents
        self.failures = failures
        self.converted: list[str] = []

    async def convert(self, path):
        name = Path(path).name
        self.converted.append(name)
        if name in self.failures:
            raise DocumentConversionError("Docling API error (500): boom", file_path=str(path))
        return self.documents[name]


@pytest.fixture
def docs_dir(tmp_path: Path) -> Path:
    for name in ("a.md", "b.md", "c.md", "d.md", "notes.xyz"):
        (tmp_path / name).write_text("placeholder")
    hidden = tmp_path / ".cache"
    hidden.mkdir()
    (hidden / "e.md").write_text("placeholder")
    return tmp_path


def make_indexer(store: FakeStore, provider, parser: FakeParser) -> DocumentIndexer:
    return DocumentIndexer(
        store=store,
        provider=provider,
        parser=parser,
        chunker=SemanticChunker(max_chunk_size=2000, min_chunk_size=200),
    )


class TestDocumentIndexer:

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_batch(self, docs_dir, provider):
        store = FakeStore()
        parser = FakeParser(
            documents={
                "a.md": text_doc("Alpha document body."),
                "c.md": text_doc("Gamma document body."),
                "d.md": DoclingDocument(),
            },
            failures={"b.md"},
        )

        summary = await make_indexer(store, provider, parser).index_path(docs_dir, namespace="kb")

        assert parser.converted == ["a.md", "b.md", "c.md", "d.md"]
        assert summary.total_files == 4
        assert summary.error_count == 1
        assert summary.success_count == summary.total_files - summary.error_count
        assert summary.empty_count == 1
        assert summary.total_chunks == 2
        assert summary.errors[0].path.endswith("b.md")
        assert "500" in summary.errors[0].message
        assert summary.stats.dense.vector_count == 2

    @pytest.mark.asyncio
    async def test_clears_namespace_first(self, docs_dir, provider):
        store = FakeStore()
        parser = FakeParser({name: text_doc("Body.") for name in ("a.md", "b.md", "c.md", "d.md")})

        await make_indexer(store, provider, parser).index_path(docs_dir, namespace="kb")

        assert store.deleted == [("dense", "kb"), ("sparse", "kb")]
        assert {ns for _, ns in store.dense_upserts} == {"kb"}

    @pytest.mark.asyncio
    async def test_no_clear(self, docs_dir, provider):
        store = FakeStore()
        parser = FakeParser({name: text_doc("Body.") for name in ("a.md", "b.md", "c.md", "d.md")})

        await make_indexer(store, provider, parser).index_path(docs_dir, clear=False)

        assert store.deleted == []

    @pytest.mark.asyncio
    async def test_single_file(self, docs_dir, provider):
        store = FakeStore()
        parser = FakeParser({"a.md": text_doc("One.", "Two.")})

        summary = await make_indexer(store, provider, parser).index_path(docs_dir / "a.md")

        assert summary.total_files == 1
        assert summary.success_count == 1
        records, _ = store.dense_upserts[0]
        assert records[0].metadata.source == "a.md"
        assert records[0].metadata.chunk_text == "One.\n\nTwo."

    @pytest.mark.asyncio
    async def test_empty_directory(self, tmp_path, provider):
        store = FakeStore()
        summary = await make_indexer(store, provider, FakeParser({})).index_path(tmp_path)

        assert summary.total_files == 0
        assert store.deleted == []
        assert summary.stats is None

    @pytest.mark.asyncio
    async def test_missing_source(self, tmp_path, provider):
        indexer = make_indexer(FakeStore(), provider, FakeParser({}))
        with pytest.raises(DocumentConversionError):
            await indexer.index_path(tmp_path / "nope")

    @pytest.mark.asyncio
    async def test_unsupported_source(self, docs_dir, provider):
        indexer = make_indexer(FakeStore(), provider, FakeParser({}))
        with pytest.raises(UnsupportedFileTypeError):
            await indexer.index_path(docs_dir / "notes.xyz")

    @pytest.mark.asyncio
    async def test_progress_logged_by_default(self, docs_dir, provider, caplog):
        parser = FakeParser({"a.md": text_doc("Body.")})

        with caplog.at_level(logging.DEBUG, logger="hybrid_rag.indexing"):
            await make_indexer(FakeStore(), provider, parser).index_path(docs_dir / "a.md")

        assert "Upserting to sparse index... 100%" in caplog.text

    def test_summary_to_dict(self):
        from hybrid_rag.pipeline import DocumentError, IndexingSummary

        summary = IndexingSummary(total_files=2, success_count=1, error_count=1)
        summary.errors.append(DocumentError(path="/x/b.md", message="boom"))

        data = summary.to_dict()

        assert data["errors"] == [{"path": "/x/b.md", "message": "boom"}]
        assert data["stats"] is None
