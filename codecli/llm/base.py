import logging
import math
import random
import time
from abc import ABC, abstractmethod
from typing import List

import requests

from ..index.errors import CodeIndexError

logger = logging.getLogger(__name__)


class ServiceError(CodeIndexError):
    """Raised when the embedding service fails and all retries are exhausted."""


class EmbeddingClient(ABC):
    """Embedding gateway: turns text into a fixed-dimension float vector."""

    def __init__(self, model: str, max_retries: int = 3, retry_delay: float = 2.0,
                 timeout: float = 30.0):
        self.model = model
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.timeout = timeout

    # ── Public entry point ──

    def embed(self, text: str) -> List[float]:
        """Embed *text* with automatic retry and exponential backoff.

        Calls ``_embed`` and validates the result.  Raises
        :class:`ServiceError` after all retries are exhausted.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_retries + 1):
            try:
                return _validate_vector(self._embed(text))
            except (ServiceError, requests.exceptions.RequestException) as e:
                last_error = e
                logger.warning("[%s] Embedding error on attempt %d/%d: %s",
                               self.name, attempt, self.max_retries, e)

                if attempt < self.max_retries:
                    # Jittered exponential backoff
                    wait = self.retry_delay * (2 ** (attempt - 1))
                    jitter = wait * 0.1 * random.random()

                    # Special handling for 429: wait longer
                    if "429" in str(e):
                        wait *= 2
                        logger.info("[%s] Rate limit detected (429). Backing off for %.1fs",
                                    self.name, wait)

                    time.sleep(wait + jitter)

        raise ServiceError(
            f"Embedding failed after {self.max_retries} attempt(s): {last_error}"
        ) from last_error

    @property
    def name(self) -> str:
        return type(self).__name__

    # ── Subclass hooks ──

    @abstractmethod
    def _embed(self, text: str) -> List[float]:
        """Single embedding request.  Raise ServiceError on a bad response."""


def _validate_vector(vector) -> List[float]:
    """Check that *vector* is a non-empty list of finite numbers."""
    if not isinstance(vector, list) or not vector:
        raise ServiceError("Embedding response contained no vector")
    out: List[float] = []
    for value in vector:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise ServiceError(f"Embedding vector holds a non-numeric value: {value!r}")
        value = float(value)
        if not math.isfinite(value):
            raise ServiceError("Embedding vector holds a non-finite value")
        out.append(value)
    return out
