"""
Vector similarity helpers shared by the in-memory store and result re-ranking
"""
from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as pairwise_cosine_similarity


def cosine_similarities(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """
    Cosine of ``query`` against every row of ``vectors``

    Zero vectors score 0.0. Raises ValueError when dimensions differ.
    """
    if len(vectors) == 0:
        return np.empty(0)

    query_row = np.asarray(query, dtype=float).reshape(1, -1)
    matrix = np.asarray(vectors, dtype=float)
    if matrix.ndim != 2 or matrix.shape[1] != query_row.shape[1]:
        raise ValueError(f"Vector dimensions differ: {query_row.shape[1]} != {matrix.shape[-1]}")

    return pairwise_cosine_similarity(query_row, matrix)[0]


def cosine_scores(query: Sequence[float], vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Cosines mapped to [0, 1] the way Atlas reports vectorSearchScore"""
    return np.clip((1.0 + cosine_similarities(query, vectors)) / 2.0, 0.0, 1.0)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    return float(cosine_similarities(a, [b])[0])


def cosine_score(a: Sequence[float], b: Sequence[float]) -> float:
    return float(cosine_scores(a, [b])[0])
