"""
Docling document conversion
Document tree models, supported file discovery and the async HTTP client
"""
import asyncio
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

import httpx
from pydantic import BaseModel, ConfigDict, Field, field_validator

from hybrid_rag.config import get_settings
from hybrid_rag.exceptions import DocumentConversionError, UnsupportedFileTypeError

logger = logging.getLogger("hybrid_rag.docling")


SUPPORTED_EXTENSIONS = [
    ".pdf", ".docx", ".doc", ".pptx", ".html", ".htm",
    ".md", ".txt", ".xlsx", ".csv",
]

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    ".doc": "application/msword",
    ".pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    ".html": "text/html",
    ".htm": "text/html",
    ".md": "text/markdown",
    ".txt": "text/plain",
    ".xlsx": "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    ".csv": "text/csv",
}


# =============================================================================
# DOCUMENT TREE
# =============================================================================
# Converters occasionally emit null for empty lists, counts or strings; those
# read as empty so a slightly malformed tree still reaches the extractor.

def _empty_list(value: Any) -> Any:
    return [] if value is None else value


def _zero(value: Any) -> Any:
    return 0 if value is None else value


def _empty_str(value: Any) -> Any:
    return "" if value is None else value


class DoclingRef(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ref: str = Field(alias="$ref")


class DoclingNode(BaseModel):
    """Fields shared by every addressable node"""
    self_ref: str = ""
    parent: Optional[DoclingRef] = None
    children: list[DoclingRef] = Field(default_factory=list)
    label: str = ""

    @field_validator("children", mode="before")
    @classmethod
    def _null_children(cls, value):
        return _empty_list(value)

    @field_validator("self_ref", "label", mode="before")
    @classmethod
    def _null_strings(cls, value):
        return _empty_str(value)


class DoclingTextItem(DoclingNode):
    text: str = ""

    @field_validator("text", mode="before")
    @classmethod
    def _null_text(cls, value):
        return _empty_str(value)


class DoclingTableCell(BaseModel):
    text: str = ""
    row_span: Optional[int] = None
    col_span: Optional[int] = None
    start_row_offset_idx: Optional[int] = None
    start_col_offset_idx: Optional[int] = None

    @field_validator("text", mode="before")
    @classmethod
    def _null_text(cls, value):
        return _empty_str(value)


class DoclingTableData(BaseModel):
    table_cells: list[DoclingTableCell] = Field(default_factory=list)
    num_rows: int = 0
    num_cols: int = 0

    @field_validator("table_cells", mode="before")
    @classmethod
    def _null_cells(cls, value):
        return _empty_list(value)

    @field_validator("num_rows", "num_cols", mode="before")
    @classmethod
    def _null_dims(cls, value):
        return _zero(value)


class DoclingTableItem(DoclingNode):
    label: str = "table"
    data: Optional[DoclingTableData] = None


class DoclingGroupItem(DoclingNode):
    name: Optional[str] = None


class DoclingPictureItem(DoclingNode):
    label: str = "picture"


class DoclingBody(BaseModel):
    children: list[DoclingRef] = Field(default_factory=list)
    name: Optional[str] = None
    label: Optional[str] = None

    @field_validator("children", mode="before")
    @classmethod
    def _null_children(cls, value):
        return _empty_list(value)


class DoclingDocument(BaseModel):
    """Structured output of a Docling conversion (the fields chunking needs)"""
    name: Optional[str] = None
    body: Optional[DoclingBody] = None
    groups: list[DoclingGroupItem] = Field(default_factory=list)
    texts: list[DoclingTextItem] = Field(default_factory=list)
    tables: list[DoclingTableItem] = Field(default_factory=list)
    pictures: list[DoclingPictureItem] = Field(default_factory=list)

    @field_validator("groups", "texts", "tables", "pictures", mode="before")
    @classmethod
    def _null_collections(cls, value):
        return _empty_list(value)


# =============================================================================
# FILE DISCOVERY
# =============================================================================

def is_supported_file(path: str | Path) -> bool:
    return Path(path).suffix.lower() in SUPPORTED_EXTENSIONS


def get_mime_type(path: str | Path) -> str:
    return MIME_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


def find_supported_files(path: str | Path) -> list[Path]:
    """
    Find all supported files under ``path`` (recursive, hidden directories skipped)

    A single supported file is returned as-is.
    """
    root = Path(path).resolve()

    if not root.exists():
        raise DocumentConversionError(f"Directory not found: {root}", file_path=str(root))

    if not root.is_dir():
        if is_supported_file(root):
            return [root]
        raise UnsupportedFileTypeError(f"Not a supported file: {root}", file_path=str(root))

    files: list[Path] = []
    pending = [root]
    while pending:
        directory = pending.pop()
        for entry in directory.iterdir():
            if entry.is_dir():
                if not entry.name.startswith("."):
                    pending.append(entry)
            elif entry.is_file() and is_supported_file(entry):
                files.append(entry)

    return sorted(files)


# =============================================================================
# CONVERSION
# =============================================================================

class DocumentParser(ABC):
    """Converts a file into a structured document tree"""

    @abstractmethod
    async def convert(self, path: str | Path) -> DoclingDocument:
        pass


class DoclingClient(DocumentParser):
    """Client for a docling-serve instance (``POST {base_url}/convert/file``)"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        timeout: Optional[float] = None,
        log_dir: Optional[Path] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()

        self.base_url = (base_url or settings.docling_url).rstrip("/")
        self.api_key = api_key or settings.docling_api_key
        self.timeout = timeout or settings.docling_timeout
        self.log_dir = log_dir or settings.docling_log_dir
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def convert(self, path: str | Path) -> DoclingDocument:
        """Convert a document and return its structured tree"""
        file_path = Path(path).resolve()

        if not file_path.exists():
            raise DocumentConversionError(f"File not found: {file_path}", file_path=str(file_path))

        if not is_supported_file(file_path):
            raise UnsupportedFileTypeError(
                f"Unsupported file type: {file_path.suffix}. "
                f"Supported: {', '.join(SUPPORTED_EXTENSIONS)}",
                file_path=str(file_path),
            )

        content = await asyncio.to_thread(file_path.read_bytes)
        files = {"files": (file_path.name, content, get_mime_type(file_path))}
        data = {"to_formats": "json", "do_ocr": "true", "do_table_structure": "true"}
        url = f"{self.base_url}/convert/file"

        client = self._client or httpx.AsyncClient()
        try:
            response = await client.post(
                url, files=files, data=data, headers=self._headers(), timeout=self.timeout
            )
        except httpx.TimeoutException as e:
            raise DocumentConversionError(
                f"Docling conversion timed out after {self.timeout:.0f} seconds",
                file_path=str(file_path),
            ) from e
        finally:
            if self._client is None:
                await client.aclose()

        if response.status_code >= 400:
            raise DocumentConversionError(
                f"Docling API error ({response.status_code}): {response.text[:500]}",
                file_path=str(file_path),
            )

        result = response.json()
        self._log_response(file_path.name, result)

        if result.get("status") == "failure":
            errors = result.get("errors") or []
            raise DocumentConversionError(
                f"Docling conversion failed: {', '.join(str(e) for e in errors)}",
                file_path=str(file_path),
            )

        json_content = (result.get("document") or {}).get("json_content")
        if not json_content:
            raise DocumentConversionError(
                "Docling did not return JSON content", file_path=str(file_path)
            )

        doc = DoclingDocument.model_validate(json_content)
        doc.name = file_path.name
        return doc

    def _log_response(self, file_name: str, response: dict[str, Any]) -> None:
        """Dump the raw conversion response for offline inspection"""
        if not self.log_dir:
            return

        log_dir = Path(self.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)

        now = datetime.now(timezone.utc)
        stamp = now.isoformat().replace(":", "-").replace(".", "-")
        log_path = log_dir / f"{stamp}_{Path(file_name).stem}.json"

        log_path.write_text(
            json.dumps(
                {"source_file": file_name, "timestamp": now.isoformat(), "docling_response": response},
                indent=2,
            ),
            encoding="utf-8",
        )
        logger.debug("Logged full Docling output to %s", log_path)
