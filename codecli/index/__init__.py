"""
Embedding index — chunking, ID allocation, storage, persistence and ranking.
"""

from .chunker import LineChunk, split_lines
from .errors import (
    CodeIndexError,
    IndexFormatError,
    IndexIOError,
    IndexNotFoundError,
    IngestCancelled,
)
from .ids import IdAllocator
from .models import Chunk, Document, FileResult, IngestReport, SearchResult
from .ranking import cosine_similarity, rank
from .store import IndexStore
from .walker import list_files

__all__ = [
    "Chunk", "CodeIndexError", "Document", "FileResult", "IdAllocator",
    "IndexFormatError", "IndexIOError", "IndexNotFoundError", "IndexStore",
    "IngestCancelled", "IngestReport", "LineChunk", "SearchResult",
    "cosine_similarity", "list_files", "rank", "split_lines",
]
