"""Embedding decoding and vector math shared by the metric engines."""

import math
from typing import Any

import numpy as np

from .errors import EmbeddingDecodeError


def round4(n: float) -> float:
    """Round half-up to 4 decimal places."""
    return math.floor(n * 10000 + 0.5) / 10000


def decode_embedding(raw: Any, dim: int | None = None) -> np.ndarray:
    """Decode a stored embedding into a float vector.

    Byte payloads are little-endian float32 buffers as written by
    ``encode_embedding``. Vector-native backends hand over lists or arrays.

    Raises:
        EmbeddingDecodeError: empty or truncated payloads, non-finite values,
            or a length different from ``dim``.
    """
    if raw is None:
        raise EmbeddingDecodeError("Embedding payload is missing")

    if isinstance(raw, (bytes, bytearray, memoryview)):
        buf = bytes(raw)
        if len(buf) % 4 != 0:
            raise EmbeddingDecodeError(f"Embedding buffer of {len(buf)} bytes is not a float32 array")
        vec = np.frombuffer(buf, dtype="<f4").astype(np.float64)
    else:
        try:
            vec = np.asarray(raw, dtype=np.float64)
        except (TypeError, ValueError) as e:
            raise EmbeddingDecodeError(f"Unsupported embedding payload: {e}") from e
        if vec.ndim != 1:
            raise EmbeddingDecodeError(f"Embedding must be one-dimensional, got shape {vec.shape}")

    if vec.size == 0:
        raise EmbeddingDecodeError("Embedding is empty")
    if dim is not None and vec.size != dim:
        raise EmbeddingDecodeError(f"Embedding has {vec.size} dimensions, expected {dim}")
    if not np.all(np.isfinite(vec)):
        raise EmbeddingDecodeError("Embedding contains non-finite values")
    return vec


def encode_embedding(vector: Any) -> bytes:
    """Encode a vector as a little-endian float32 buffer."""
    return np.asarray(vector, dtype="<f4").tobytes()


def decode_all(payloads: list[Any], dim: int | None = None) -> list[np.ndarray]:
    """Decode a batch of embeddings that must all share one dimension."""
    vectors = []
    for raw in payloads:
        vec = decode_embedding(raw, dim)
        if dim is None:
            dim = vec.size
        vectors.append(vec)
    return vectors


def mean_vector(vectors: list[np.ndarray]) -> np.ndarray:
    if not vectors:
        return np.array([])
    return np.mean(np.vstack(vectors), axis=0)


def normalize_vector(vec: np.ndarray) -> np.ndarray:
    """L2-normalize; the zero vector is returned unchanged."""
    norm = float(np.linalg.norm(vec))
    if norm == 0:
        return vec
    return vec / norm


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom == 0:
        return 0.0
    return float(np.dot(a, b) / denom)
