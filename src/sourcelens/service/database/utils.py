"""Utility functions for vector operations."""

import math


def cosine_similarity(vec_a: list[float], vec_b: list[float]) -> float:
    """Compute cosine similarity between two vectors.

    Args:
        vec_a: First embedding vector
        vec_b: Second embedding vector

    Returns:
        float: Similarity in [-1, 1]; 0.0 when either vector is empty or has
               zero magnitude.

    Raises:
        ValueError: If both vectors are non-empty but differ in length.
    """
    if not vec_a or not vec_b:
        return 0.0
    if len(vec_a) != len(vec_b):
        raise ValueError(f"Vector length mismatch: {len(vec_a)} != {len(vec_b)}")

    dot_product = sum(a * b for a, b in zip(vec_a, vec_b))
    magnitude_a = math.sqrt(sum(a * a for a in vec_a))
    magnitude_b = math.sqrt(sum(b * b for b in vec_b))

    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0

    # Clamp float rounding so identical vectors never exceed 1.0
    return max(-1.0, min(1.0, dot_product / (magnitude_a * magnitude_b)))
