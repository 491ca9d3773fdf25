"""
codecli — semantic search over a local codebase.

Public API for library usage::

    from codecli import IndexStore, OllamaClient

    store = IndexStore(OllamaClient("http://localhost:11434", "nomic-embed-text"))
    store.ingest("src", [".py"])
    results = store.query("parse JSON config", limit=5)
"""

from .index import IndexStore, SearchResult
from .llm import OllamaClient, OpenAIClient

__all__ = ["IndexStore", "SearchResult", "OllamaClient", "OpenAIClient"]
