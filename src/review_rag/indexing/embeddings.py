"""
Embedding Service for Code Chunks

This module turns text into fixed-length vectors. The primary path calls a
networked embedding model (Ollama's /api/embeddings, or an OpenAI-compatible
/v1/embeddings endpoint). Any failure on that path falls back to a
deterministic bag-of-hashed-words vector computed locally.

Vectors from the network model and from the fallback live in different
spaces and are not comparable. A store that mixes both still works, it just
scores cross-method pairs poorly; keeping the method consistent between
index time and query time is up to the caller.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

import numpy as np
import requests

logger = logging.getLogger(__name__)

FALLBACK_DIMENSIONS = 512

_TOKEN_SPLIT = re.compile(r'[^a-z0-9]+')
_GENERATE_SUFFIX = re.compile(r'/api/generate/?$')


class EmbeddingFailure(Enum):
    """Why the network embedding path was not used."""
    TIMEOUT = "timeout"
    CONNECTION = "connection"
    MODEL_MISSING = "model_missing"
    BAD_STATUS = "bad_status"
    BAD_RESPONSE = "bad_response"
    DISABLED = "disabled"


@dataclass
class EmbeddingResult:
    """Result of embedding generation."""
    embedding: List[float]
    success: bool
    method: str  # "network" or "fallback"
    failure: Optional[EmbeddingFailure] = None
    error_message: Optional[str] = None


class EmbeddingService:
    """Networked embedding client with a deterministic local fallback."""

    def __init__(self,
                 model: str = "nomic-embed-text",
                 endpoint: str = "http://localhost:11434/api/generate",
                 provider: str = "ollama",
                 api_key: Optional[str] = None,
                 timeout: float = 30.0):
        if provider not in ("ollama", "openai"):
            raise ValueError(f"Unknown embedding provider: {provider}")

        self.model = model
        self.endpoint = endpoint
        self.provider = provider
        self.api_key = api_key
        self.timeout = timeout

    @property
    def embeddings_url(self) -> str:
        """Embedding URL derived from the configured generation endpoint."""
        base_url = _GENERATE_SUFFIX.sub('', self.endpoint).rstrip('/')
        if self.provider == "openai":
            if base_url.endswith('/v1'):
                return f"{base_url}/embeddings"
            return f"{base_url}/v1/embeddings"
        return f"{base_url}/api/embeddings"

    def embed(self, text: str, use_network: bool = True) -> EmbeddingResult:
        """
        Embed text, falling back to the local hashing scheme on any failure.

        The returned result always carries a usable vector. When the network
        path was skipped or failed, ``success`` is False and ``failure``
        records the reason.
        """
        if use_network:
            result = self.request_embedding(text)
            if result.success:
                return result
            logger.debug(
                "Embedding model %s unavailable (%s), using fallback",
                self.model, result.failure.value
            )
            failure, error_message = result.failure, result.error_message
        else:
            failure, error_message = EmbeddingFailure.DISABLED, None

        return EmbeddingResult(
            embedding=generate_fallback_embedding(text),
            success=False,
            method="fallback",
            failure=failure,
            error_message=error_message,
        )

    def request_embedding(self, text: str) -> EmbeddingResult:
        """Call the embedding service once. Never raises."""
        headers = {"Content-Type": "application/json"}
        if self.provider == "openai":
            payload = {"model": self.model, "input": text}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
        else:
            payload = {"model": self.model, "prompt": text}

        try:
            response = requests.post(
                self.embeddings_url,
                headers=headers,
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            return _failed(EmbeddingFailure.TIMEOUT, e)
        except requests.exceptions.RequestException as e:
            return _failed(EmbeddingFailure.CONNECTION, e)

        if response.status_code == 404:
            return _failed(EmbeddingFailure.MODEL_MISSING, f"HTTP 404 for model {self.model}")
        if not 200 <= response.status_code < 300:
            return _failed(EmbeddingFailure.BAD_STATUS, f"HTTP {response.status_code}")

        try:
            data = response.json()
            if self.provider == "openai":
                embedding = data["data"][0]["embedding"]
            else:
                embedding = data["embedding"]
            if not isinstance(embedding, list) or not embedding:
                raise ValueError("empty or missing embedding array")
            vector = [float(x) for x in embedding]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            return _failed(EmbeddingFailure.BAD_RESPONSE, e)

        return EmbeddingResult(embedding=vector, success=True, method="network")

    def is_available(self) -> bool:
        """Probe the embedding service with one request."""
        result = self.request_embedding("test")
        if result.success:
            logger.info("Embedding model %s available (%d dimensions)",
                        self.model, len(result.embedding))
        else:
            logger.info("Embedding model %s not available (%s), using fallback embeddings",
                        self.model, result.failure.value)
        return result.success


def _failed(failure: EmbeddingFailure, error) -> EmbeddingResult:
    return EmbeddingResult(
        embedding=[],
        success=False,
        method="network",
        failure=failure,
        error_message=str(error)
    )


def _to_int32(value: int) -> int:
    return ((value + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def term_hash(term: str) -> int:
    """djb2-xor string hash with signed 32-bit wraparound."""
    h = 5381
    for ch in term:
        h = _to_int32(_to_int32(h << 5) + h) ^ ord(ch)
    return h


def tokenize(text: str) -> List[str]:
    """Lowercased alphanumeric runs longer than one character."""
    return [t for t in _TOKEN_SPLIT.split(text.lower()) if len(t) > 1]


def generate_fallback_embedding(text: str, dimensions: int = FALLBACK_DIMENSIONS) -> List[float]:
    """
    Deterministic bag-of-hashed-words pseudo-embedding.

    Each distinct token's frequency is added to bucket ``hash(token) mod
    dimensions``, then the vector is L2-normalized. Text without tokens
    yields the zero vector.
    """
    vector = np.zeros(dimensions, dtype=np.float64)

    for term, freq in Counter(tokenize(text)).items():
        vector[term_hash(term) % dimensions] += freq

    norm = np.linalg.norm(vector)
    if norm == 0:
        return vector.tolist()
    return (vector / norm).tolist()


def cosine_similarity(embedding1: List[float], embedding2: List[float]) -> float:
    """Cosine similarity; 0.0 for empty, mismatched or all-zero vectors."""
    if not embedding1 or not embedding2 or len(embedding1) != len(embedding2):
        return 0.0

    vec1 = np.asarray(embedding1, dtype=np.float64)
    vec2 = np.asarray(embedding2, dtype=np.float64)

    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)

    if norm1 == 0 or norm2 == 0:
        return 0.0

    return float(np.dot(vec1, vec2) / (norm1 * norm2))
