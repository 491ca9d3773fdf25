"""
OpenAI-compatible embedding client — works with OpenAI, LM Studio, and any
other provider that implements the OpenAI ``/embeddings`` API.
"""

import json
from typing import List

import requests

from .base import EmbeddingClient, ServiceError


class OpenAIClient(EmbeddingClient):

    def __init__(self, base_url: str, model: str, api_key: str = "", **kwargs):
        super().__init__(model, **kwargs)
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _embed(self, text: str) -> List[float]:
        url = f"{self.base_url}/embeddings"
        payload = {"model": self.model, "input": text}
        response = requests.post(url, headers=self._headers(), json=payload,
                                 timeout=(10, self.timeout))
        if response.status_code != 200:
            raise ServiceError(
                f"Embedding endpoint returned HTTP {response.status_code}: "
                f"{response.text[:200]}")
        try:
            data = response.json()
            return data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError, json.JSONDecodeError) as e:
            raise ServiceError(f"Malformed embedding response: {e}") from e
