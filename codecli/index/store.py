"""
Index Store — in-memory embedding index with JSON persistence.

Owns the document and chunk maps, drives ingestion
(walk → chunk → embed → insert), saves and loads the index record, and
answers ranked queries.

Locking
-------
One :class:`~codecli.index.rwlock.ReadWriteLock` guards all state.
Searches share the read side.  Every insert, ``load`` and ``reset`` takes
the write side, and only for the map mutation itself: embedding requests
run with no lock held.

Usage::

    store = IndexStore(embedder)
    store.ingest("src", [".py"])
    store.save(".codecli/index/metadata.json")
    results = store.query("parse JSON config", limit=5)
"""

from __future__ import annotations

import json
import logging
import math
import os
import tempfile
import threading
from typing import TYPE_CHECKING, Any, Callable, Iterable, Optional, Sequence

from .chunker import DEFAULT_OVERLAP, DEFAULT_WINDOW, split_lines
from .errors import (
    CodeIndexError,
    IndexFormatError,
    IndexIOError,
    IndexNotFoundError,
    IngestCancelled,
)
from .ids import IdAllocator
from .models import Chunk, Document, FileResult, IngestReport, SearchResult
from .ranking import rank
from .rwlock import ReadWriteLock
from .walker import list_files

if TYPE_CHECKING:
    from ..llm.base import EmbeddingClient

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

DEFAULT_SEARCH_LIMIT = 10
FORMAT_VERSION = 1

ProgressCallback = Callable[[int, int, str], None]


# ---------------------------------------------------------------------------
# IndexStore
# ---------------------------------------------------------------------------

class IndexStore:
    """
    Thread-safe embedding index.

    Parameters
    ----------
    embedder:
        Embedding gateway used by :meth:`ingest` and :meth:`query`.  May be
        ``None`` for a store that only loads and searches pre-computed
        vectors.
    window:
        Lines per chunk.
    overlap:
        Lines shared by consecutive chunks.
    exclude_dirs:
        Directory names skipped during ingestion (``None`` → walker
        defaults).
    """

    def __init__(
        self,
        embedder: Optional["EmbeddingClient"] = None,
        window: int = DEFAULT_WINDOW,
        overlap: int = DEFAULT_OVERLAP,
        exclude_dirs: Optional[Iterable[str]] = None,
    ) -> None:
        if window < 1 or overlap < 0 or overlap >= window:
            raise ValueError(
                f"Invalid chunking: window={window}, overlap={overlap}"
            )
        self._embedder = embedder
        self._window = window
        self._overlap = overlap
        self._exclude_dirs = list(exclude_dirs) if exclude_dirs is not None else None

        self._lock = ReadWriteLock()
        self._documents: dict[int, Document] = {}
        self._chunks: dict[int, Chunk] = {}
        self._ids = IdAllocator()
        # False until a load or ingest has populated (or initialised) the store.
        self._ready = False

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def ingest(
        self,
        root: str,
        extensions: Iterable[str],
        *,
        fail_fast: bool = True,
        cancel_event: Optional[threading.Event] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> IngestReport:
        """
        Chunk, embed and insert every matching file under *root*.

        Parameters
        ----------
        root:
            Workspace directory to walk.
        extensions:
            File extensions to index (``".py"`` or ``"py"``).
        fail_fast:
            When True the first read or embedding error aborts the run and
            is raised.  When False the error is recorded on that file's
            :class:`FileResult` and ingestion moves on to the next file.
        cancel_event:
            Checked before every file and every embedding request; once set
            the run stops with :class:`IngestCancelled`.
        progress_callback:
            Called as ``progress_callback(current, total, path)`` after
            each file.

        Returns
        -------
        IngestReport
            One entry per discovered file.

        Raises
        ------
        IndexIOError
            Workspace or file read failure (fail-fast mode, or an
            unreadable *root* in either mode).
        ServiceError
            Embedding failure (fail-fast mode).
        IngestCancelled
            *cancel_event* was set.

        Documents and chunks inserted before a failure stay in memory; they
        are only written to disk by an explicit :meth:`save`.
        """
        if self._embedder is None:
            raise CodeIndexError("IndexStore has no embedding client; cannot ingest")

        files = list_files(root, extensions, self._exclude_dirs)
        logger.info("Ingesting %d file(s) from %s", len(files), root)

        with self._lock.write_locked():
            self._ready = True

        report = IngestReport(root=root)
        total = len(files)
        for current, path in enumerate(files, start=1):
            _check_cancelled(cancel_event)
            try:
                result = self._ingest_file(path, cancel_event)
            except IngestCancelled:
                raise
            except CodeIndexError as exc:
                if fail_fast:
                    logger.error("Ingestion aborted at %s: %s", path, exc)
                    raise
                logger.warning("Skipping %s after error: %s", path, exc)
                result = FileResult(path=path, error=exc)
            report.files.append(result)
            if progress_callback is not None:
                progress_callback(current, total, path)

        logger.info(
            "Ingestion finished: %d indexed, %d skipped, %d failed, %d chunk(s)",
            len(report.succeeded), len(report.skipped), len(report.failed),
            report.chunk_count,
        )
        return report

    def _ingest_file(
        self, path: str, cancel_event: Optional[threading.Event]
    ) -> FileResult:
        """Ingest one file.  Embedding runs outside the lock."""
        try:
            with open(path, encoding="utf-8", errors="replace") as fh:
                content = fh.read()
        except OSError as exc:
            raise IndexIOError(f"Failed to read {path}: {exc}") from exc

        windows = split_lines(content, self._window, self._overlap)
        if not windows:
            logger.debug("No content to index in %s", path)
            return FileResult(path=path, skipped=True)

        with self._lock.write_locked():
            doc = Document(id=self._ids.next(), path=path, content=content)
            self._documents[doc.id] = doc

        for window in windows:
            _check_cancelled(cancel_event)
            vector = self._embedder.embed(window.text)
            with self._lock.write_locked():
                chunk = Chunk(
                    id=self._ids.next(),
                    document_id=doc.id,
                    start_line=window.start_line,
                    end_line=window.end_line,
                    content=window.text,
                    vector=tuple(vector),
                )
                self._chunks[chunk.id] = chunk
                doc.chunk_ids.append(chunk.id)

        logger.info("Indexed %s: document %d, %d chunk(s)", path, doc.id, len(windows))
        return FileResult(path=path, document_id=doc.id, chunk_count=len(windows))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, path: str) -> None:
        """
        Write the whole index to *path* as one JSON record.

        The maps are copied under the read lock; serialisation and disk I/O
        happen after it is released.  The file is replaced atomically.

        Raises
        ------
        IndexIOError
            If the file cannot be written.
        """
        with self._lock.read_locked():
            record = self._snapshot_record()

        directory = os.path.dirname(os.path.abspath(path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                prefix=".index-", suffix=".tmp", dir=directory
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as fh:
                    json.dump(record, fh)
                os.chmod(tmp_path, 0o644)
                os.replace(tmp_path, path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as exc:
            raise IndexIOError(f"Failed to write index {path}: {exc}") from exc

        logger.info(
            "Saved index to %s (%d documents)", path, len(record["documents"])
        )

    def _snapshot_record(self) -> dict[str, Any]:
        """Build the persisted record.  Caller holds the read lock."""
        documents: dict[str, Any] = {}
        for doc_id, doc in self._documents.items():
            documents[str(doc_id)] = {
                "id": doc.id,
                "path": doc.path,
                "content": doc.content,
                "chunks": [
                    {
                        "id": chunk.id,
                        "start_line": chunk.start_line,
                        "end_line": chunk.end_line,
                        "content": chunk.content,
                        "vector": list(chunk.vector),
                    }
                    for chunk in (self._chunks[cid] for cid in doc.chunk_ids)
                ],
            }
        return {"version": FORMAT_VERSION, "documents": documents}

    def load(self, path: str) -> None:
        """
        Replace the in-memory index with the record saved at *path*.

        The record is decoded and validated completely before the swap; on
        any error the current state is left untouched.

        Raises
        ------
        IndexNotFoundError
            If nothing has been saved at *path*.
        IndexIOError
            If the file exists but cannot be read.
        IndexFormatError
            If the file is not a valid index record.
        """
        if not os.path.isfile(path):
            raise IndexNotFoundError(
                f"No index found at {path}. Run `codecli index` first."
            )
        try:
            with open(path, encoding="utf-8") as fh:
                raw = json.load(fh)
        except json.JSONDecodeError as exc:
            raise IndexFormatError(f"Index file {path} is not valid JSON: {exc}") from exc
        except UnicodeDecodeError as exc:
            raise IndexFormatError(f"Index file {path} is not UTF-8 text") from exc
        except OSError as exc:
            raise IndexIOError(f"Failed to read index {path}: {exc}") from exc

        documents, chunks = _decode_record(raw)

        with self._lock.write_locked():
            self._documents = documents
            self._chunks = chunks
            self._ids.reset_from([*documents, *chunks])
            self._ready = True

        logger.info(
            "Loaded index from %s (%d documents, %d chunks)",
            path, len(documents), len(chunks),
        )

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def search(
        self, query_vector: Sequence[float], limit: int = DEFAULT_SEARCH_LIMIT
    ) -> list[SearchResult]:
        """
        Rank stored chunks against *query_vector*.

        ``limit <= 0`` falls back to :data:`DEFAULT_SEARCH_LIMIT`.  At most
        ``min(limit, chunk_count)`` results are returned.

        Raises
        ------
        IndexNotFoundError
            If nothing has been loaded or ingested yet.
        """
        if limit <= 0:
            limit = DEFAULT_SEARCH_LIMIT

        with self._lock.read_locked():
            if not self._ready:
                raise IndexNotFoundError(
                    "No index loaded. Run `codecli index` first."
                )
            corpus = [
                (chunk, self._documents[chunk.document_id])
                for _, chunk in sorted(self._chunks.items())
            ]

        dim = len(query_vector)
        mismatched = sum(1 for chunk, _ in corpus if chunk.dimension != dim)
        if mismatched:
            logger.warning(
                "%d of %d chunk(s) have a vector dimension other than %d and "
                "score 0; the index may need rebuilding",
                mismatched, len(corpus), dim,
            )

        return rank(query_vector, corpus, limit)

    def query(self, text: str, limit: int = DEFAULT_SEARCH_LIMIT) -> list[SearchResult]:
        """Embed *text* with the store's client, then :meth:`search`."""
        if self._embedder is None:
            raise CodeIndexError("IndexStore has no embedding client; cannot query")
        with self._lock.read_locked():
            if not self._ready:
                raise IndexNotFoundError(
                    "No index loaded. Run `codecli index` first."
                )
        return self.search(self._embedder.embed(text), limit)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, Any]:
        """Return document/chunk counts, vector dimensions and the next ID."""
        with self._lock.read_locked():
            return {
                "ready": self._ready,
                "documents": len(self._documents),
                "chunks": len(self._chunks),
                "dimensions": sorted({c.dimension for c in self._chunks.values()}),
                "next_id": self._ids.peek(),
            }

    def documents(self) -> list[Document]:
        """Return copies of the stored documents ordered by ID."""
        with self._lock.read_locked():
            return [
                Document(d.id, d.path, d.content, list(d.chunk_ids))
                for _, d in sorted(self._documents.items())
            ]

    def chunks(self) -> list[Chunk]:
        """Return the stored chunks ordered by ID."""
        with self._lock.read_locked():
            return [c for _, c in sorted(self._chunks.items())]

    def reset(self) -> None:
        """Drop all state; the store behaves as if nothing was ever loaded."""
        with self._lock.write_locked():
            self._documents = {}
            self._chunks = {}
            self._ids.reset()
            self._ready = False

    @property
    def is_ready(self) -> bool:
        with self._lock.read_locked():
            return self._ready


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _check_cancelled(cancel_event: Optional[threading.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise IngestCancelled("Ingestion cancelled")


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise IndexFormatError(message)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _decode_record(raw: Any) -> tuple[dict[int, Document], dict[int, Chunk]]:
    """Validate a parsed index record and build fresh maps from it."""
    _require(isinstance(raw, dict), "Index record must be a JSON object")
    _require(
        raw.get("version") == FORMAT_VERSION,
        f"Unsupported index version: {raw.get('version')!r}",
    )
    raw_docs = raw.get("documents")
    _require(isinstance(raw_docs, dict), "Index record has no 'documents' map")

    documents: dict[int, Document] = {}
    chunks: dict[int, Chunk] = {}
    seen: set[int] = set()

    def _claim(item_id: Any, what: str) -> int:
        _require(_is_int(item_id) and item_id >= 1, f"Invalid {what} id: {item_id!r}")
        _require(item_id not in seen, f"Duplicate id {item_id} in index record")
        seen.add(item_id)
        return item_id

    for key, raw_doc in raw_docs.items():
        _require(isinstance(raw_doc, dict), f"Document {key!r} is not an object")
        doc_id = _claim(raw_doc.get("id"), "document")
        _require(key == str(doc_id), f"Document key {key!r} does not match id {doc_id}")
        path = raw_doc.get("path")
        content = raw_doc.get("content")
        raw_chunks = raw_doc.get("chunks")
        _require(isinstance(path, str), f"Document {doc_id} has no path")
        _require(isinstance(content, str), f"Document {doc_id} has no content")
        _require(isinstance(raw_chunks, list), f"Document {doc_id} has no chunk list")

        doc = Document(id=doc_id, path=path, content=content)
        for raw_chunk in raw_chunks:
            _require(isinstance(raw_chunk, dict), f"Chunk in document {doc_id} is not an object")
            chunk_id = _claim(raw_chunk.get("id"), "chunk")
            start = raw_chunk.get("start_line")
            end = raw_chunk.get("end_line")
            text = raw_chunk.get("content")
            vector = raw_chunk.get("vector")
            _require(
                _is_int(start) and _is_int(end) and 1 <= start <= end,
                f"Chunk {chunk_id} has an invalid line range",
            )
            _require(isinstance(text, str), f"Chunk {chunk_id} has no content")
            _require(
                isinstance(vector, list)
                and all(_is_int(v) or (isinstance(v, float) and math.isfinite(v))
                        for v in vector),
                f"Chunk {chunk_id} has an invalid vector",
            )
            chunks[chunk_id] = Chunk(
                id=chunk_id,
                document_id=doc_id,
                start_line=start,
                end_line=end,
                content=text,
                vector=tuple(float(v) for v in vector),
            )
            doc.chunk_ids.append(chunk_id)
        documents[doc_id] = doc

    return documents, chunks
