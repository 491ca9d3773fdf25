from .base import EmbeddingClient, ServiceError
from .ollama import OllamaClient
from .openai_client import OpenAIClient


def create_embedding_client(cfg) -> EmbeddingClient:
    """Build the embedding client selected by ``cfg.PROVIDER``."""
    kwargs = {
        "max_retries": cfg.EMBED_MAX_RETRIES,
        "retry_delay": cfg.EMBED_RETRY_DELAY,
        "timeout": cfg.EMBED_TIMEOUT,
    }
    if cfg.PROVIDER == "openai":
        return OpenAIClient(base_url=cfg.OPENAI_BASE_URL, model=cfg.EMBEDDING_MODEL,
                            api_key=cfg.OPENAI_API_KEY, **kwargs)
    if cfg.PROVIDER == "ollama":
        return OllamaClient(base_url=cfg.OLLAMA_BASE_URL, model=cfg.EMBEDDING_MODEL,
                            **kwargs)
    raise ValueError(f"Unknown embedding provider: {cfg.PROVIDER!r}")


__all__ = [
    "EmbeddingClient", "ServiceError", "OllamaClient", "OpenAIClient",
    "create_embedding_client",
]
