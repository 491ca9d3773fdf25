"""Error hierarchy for the embedding index."""


class CodeIndexError(Exception):
    """Base class for every error raised by the index and its gateways."""


class IndexIOError(CodeIndexError):
    """A workspace file or the persisted index could not be read or written."""


class IndexNotFoundError(CodeIndexError):
    """No index is available: nothing saved at the path, or nothing loaded yet."""


class IndexFormatError(CodeIndexError):
    """The persisted index record is corrupt or has an unexpected shape."""


class IngestCancelled(CodeIndexError):
    """An ingestion run was cancelled through its cancel event."""
