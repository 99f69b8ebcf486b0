"""
Vector math for semantic search.
"""
from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Returns 0.0 if either vector is empty, the dimensions differ, or either
    has zero magnitude.
    """
    if len(a) == 0 or len(b) == 0 or len(a) != len(b):
        return 0.0

    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm <= 0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def batch_cosine_similarity(
    query: Sequence[float],
    candidates: Sequence[Sequence[float]],
) -> list[float]:
    """
    Similarity of query against every candidate, in candidate order.

    Candidates that are empty or of a different dimension score 0.0.
    """
    if len(query) == 0 or not candidates:
        return [0.0] * len(candidates)

    q = np.asarray(query, dtype=np.float64)
    q_norm = np.linalg.norm(q)
    if q_norm <= 0:
        return [0.0] * len(candidates)

    dim = q.shape[0]
    valid = [i for i, c in enumerate(candidates) if len(c) == dim]
    scores = [0.0] * len(candidates)
    if not valid:
        return scores

    matrix = np.asarray([candidates[i] for i in valid], dtype=np.float64)
    norms = np.linalg.norm(matrix, axis=1) * q_norm
    dots = matrix @ q
    for row, idx in enumerate(valid):
        if norms[row] > 0:
            scores[idx] = float(dots[row] / norms[row])
    return scores
