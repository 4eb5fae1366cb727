"""Cosine similarity helpers."""

import numpy as np


def normalize_vectors(vectors: np.ndarray) -> np.ndarray:
    """Normalize vectors to unit length for cosine similarity."""
    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    # Zero vectors stay zero, so their similarity to anything is 0
    norms = np.where(norms == 0, 1, norms)
    return (vectors / norms).astype(np.float32)


def cosine_similarity(a, b) -> float:
    """dot(a, b) / (|a| * |b|), or 0.0 when either vector has zero norm."""
    a = np.asarray(a, dtype=np.float64)
    b = np.asarray(b, dtype=np.float64)
    if a.shape != b.shape:
        raise ValueError(f"Vector shapes differ: {a.shape} vs {b.shape}")

    norm_a = np.linalg.norm(a)
    norm_b = np.linalg.norm(b)
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return float(np.dot(a, b) / (norm_a * norm_b))
