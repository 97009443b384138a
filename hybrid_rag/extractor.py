"""
Content extraction
Flattens a Docling document tree into typed items in reading order
"""
import logging
import re
from typing import Optional

from hybrid_rag.docling import DoclingDocument, DoclingTableItem
from hybrid_rag.types import ContentItem

logger = logging.getLogger("hybrid_rag.extractor")

REF_PATTERN = re.compile(r"^#/(\w+)/(\d+)$")

# Labels that replace the whole heading path instead of nesting under it
TOP_LEVEL_HEADINGS = ("title", "chapter")


def parse_ref(ref: str) -> Optional[tuple[str, int]]:
    """Parse a JSON pointer like ``#/texts/3`` into ``("texts", 3)``"""
    match = REF_PATTERN.match(ref)
    if not match:
        return None
    return match.group(1), int(match.group(2))


def is_heading(label: str) -> bool:
    return (
        label == "section_header"
        or label in TOP_LEVEL_HEADINGS
        or "heading" in label
    )


def table_to_text(table: DoclingTableItem) -> str:
    """Render a table as readable grid text, one row per line"""
    if table.data is None or not table.data.table_cells:
        return "[Table]"

    cells = table.data.table_cells
    num_rows = table.data.num_rows or 0
    num_cols = table.data.num_cols or 0

    if num_rows == 0 or num_cols == 0:
        return " | ".join(c.text for c in cells)

    grid = [["" for _ in range(num_cols)] for _ in range(num_rows)]

    for cell in cells:
        row = cell.start_row_offset_idx or 0
        col = cell.start_col_offset_idx or 0
        # Cells outside the declared grid are dropped
        if 0 <= row < num_rows and 0 <= col < num_cols:
            grid[row][col] = cell.text

    return "\n".join(" | ".join(row) for row in grid)


class ContentExtractor:
    """
    Walks a document tree depth-first from the body's children

    Every reference is visited at most once, so shared or cyclic references
    in malformed trees cannot duplicate content or loop. When the body walk
    yields nothing, the raw text and table collections are read in storage
    order instead.
    """

    def extract(self, doc: DoclingDocument) -> list[ContentItem]:
        items = self._walk_body(doc)

        if not items:
            items = self._linear_fallback(doc)
            if items:
                logger.debug(
                    "Body traversal of %s found nothing, recovered %d items linearly",
                    doc.name or "<document>", len(items),
                )

        return items

    def _walk_body(self, doc: DoclingDocument) -> list[ContentItem]:
        if doc.body is None or not doc.body.children:
            return []

        items: list[ContentItem] = []
        visited: set[str] = set()

        # Explicit stack; children pushed reversed to keep reading order
        stack = [child.ref for child in reversed(doc.body.children)]

        while stack:
            ref = stack.pop()
            if ref in visited:
                continue
            visited.add(ref)

            parsed = parse_ref(ref)
            if parsed is None:
                continue
            collection, index = parsed

            node = self._resolve(doc, collection, index)
            if node is None:
                continue

            if collection == "texts":
                items.append(ContentItem(
                    text=node.text,
                    label=node.label,
                    is_heading=is_heading(node.label),
                    ref=ref,
                ))
            elif collection == "tables":
                items.append(ContentItem(
                    text=table_to_text(node),
                    label="table",
                    is_heading=False,
                    ref=ref,
                ))
            # groups / pictures are containers: only their children count

            stack.extend(child.ref for child in reversed(node.children))

        return items

    @staticmethod
    def _resolve(doc: DoclingDocument, collection: str, index: int):
        nodes = {
            "texts": doc.texts,
            "tables": doc.tables,
            "groups": doc.groups,
            "pictures": doc.pictures,
        }.get(collection)

        if nodes is None or index >= len(nodes):
            return None
        return nodes[index]

    @staticmethod
    def _linear_fallback(doc: DoclingDocument) -> list[ContentItem]:
        items = [
            ContentItem(
                text=text.text,
                label=text.label,
                is_heading=is_heading(text.label),
                ref=text.self_ref,
            )
            for text in doc.texts
        ]
        items.extend(
            ContentItem(text=table_to_text(table), label="table", is_heading=False, ref=table.self_ref)
            for table in doc.tables
        )
        return items
