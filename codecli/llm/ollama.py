import json
from typing import List

import requests

from .base import EmbeddingClient, ServiceError


class OllamaClient(EmbeddingClient):

    def __init__(self, base_url: str, model: str, **kwargs):
        super().__init__(model, **kwargs)
        self.base_url = base_url
        # Derive the API root for endpoints like /api/embed
        if "/api/" in base_url:
            self._api_root = base_url.rsplit("/api/", 1)[0]
        else:
            self._api_root = base_url.rstrip("/")

    def _embed(self, text: str) -> List[float]:
        url = f"{self._api_root}/api/embed"
        payload = {"model": self.model, "input": text}
        response = requests.post(url, json=payload, timeout=(10, self.timeout))
        if response.status_code != 200:
            raise ServiceError(
                f"Ollama returned HTTP {response.status_code}: {response.text[:200]}")
        try:
            data = response.json()
            embeddings = data["embeddings"]
            return embeddings[0]
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
            raise ServiceError(f"Malformed Ollama embedding response: {e}") from e
