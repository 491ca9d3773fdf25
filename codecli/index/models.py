"""
Data classes for the embedding index.

Documents and chunks are owned by :class:`~codecli.index.store.IndexStore`;
everything here is plain data with no locking of its own.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional


# ---------------------------------------------------------------------------
# Stored entities
# ---------------------------------------------------------------------------

@dataclass
class Document:
    """
    One ingested file.

    Attributes
    ----------
    id:
        Store-wide unique ID (shared counter with chunks).
    path:
        File path as discovered during ingestion.
    content:
        Full text of the file at ingestion time.
    chunk_ids:
        IDs of the chunks embedded from this file, in line order.  Grows
        while the file is being ingested and is fixed afterwards.
    """

    id: int
    path: str
    content: str
    chunk_ids: list[int] = field(default_factory=list)


@dataclass(frozen=True)
class Chunk:
    """An embedded line window of a :class:`Document` (1-based, inclusive)."""

    id: int
    document_id: int
    start_line: int
    end_line: int
    content: str
    vector: tuple[float, ...]

    @property
    def dimension(self) -> int:
        return len(self.vector)


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SearchResult:
    """
    A single ranked match.

    Attributes
    ----------
    path:
        Path of the document containing the chunk.
    start_line:
        First line of the chunk (1-indexed).
    end_line:
        Last line of the chunk (1-indexed, inclusive).
    content:
        Text of the chunk.
    score:
        Cosine similarity between the query and chunk vectors, in
        ``[-1, 1]``.  ``0.0`` for zero vectors and dimension mismatches.
    """

    path: str
    start_line: int
    end_line: int
    content: str
    score: float


# ---------------------------------------------------------------------------
# Ingestion reporting
# ---------------------------------------------------------------------------

@dataclass
class FileResult:
    """Outcome of ingesting one file."""

    path: str
    document_id: Optional[int] = None
    chunk_count: int = 0
    skipped: bool = False
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class IngestReport:
    """Per-file results of an ingestion run, in discovery order."""

    root: str
    files: list[FileResult] = field(default_factory=list)

    @property
    def succeeded(self) -> list[FileResult]:
        return [f for f in self.files if f.ok and not f.skipped]

    @property
    def failed(self) -> list[FileResult]:
        return [f for f in self.files if not f.ok]

    @property
    def skipped(self) -> list[FileResult]:
        return [f for f in self.files if f.skipped]

    @property
    def chunk_count(self) -> int:
        return sum(f.chunk_count for f in self.files)

    def summary(self) -> dict:
        return {
            "root": self.root,
            "file_count": len(self.files),
            "indexed": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "chunk_count": self.chunk_count,
        }
