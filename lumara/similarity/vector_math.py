# Copyright 2025 Vijaykumar Singh <singhvjd@gmail.com>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Vector math kernel for embeddings.

Pure functions over plain float sequences or numpy arrays. Results that are
vectors come back as ``list[float]`` so they can be stored and serialized
without numpy types leaking out.
"""

from __future__ import annotations

import logging
from typing import Hashable, List, Optional, Sequence, Tuple, TypeVar, Union

import numpy as np

from lumara.core.errors import DimensionMismatchError

logger = logging.getLogger(__name__)

Vector = Union[Sequence[float], np.ndarray]
K = TypeVar("K", bound=Hashable)

# Inputs whose magnitude is this close to 1 are treated as already normalized.
UNIT_EPSILON = 1e-6


def _as_array(vector: Vector) -> np.ndarray:
    return np.asarray(vector, dtype=np.float64)


def _check_dimensions(a: np.ndarray, b: np.ndarray) -> None:
    if a.shape[0] != b.shape[0]:
        raise DimensionMismatchError(a.shape[0], b.shape[0])


def dot(a: Vector, b: Vector) -> float:
    """Sum of element-wise products.

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    arr_a, arr_b = _as_array(a), _as_array(b)
    _check_dimensions(arr_a, arr_b)
    return float(np.dot(arr_a, arr_b))


def magnitude(vector: Vector) -> float:
    """Euclidean length of a vector."""
    return float(np.linalg.norm(_as_array(vector)))


def normalize(vector: Vector) -> List[float]:
    """Scale a vector to unit length.

    Raises:
        ValueError: For the zero vector.
    """
    arr = _as_array(vector)
    mag = float(np.linalg.norm(arr))
    if mag == 0:
        raise ValueError("Cannot normalize zero vector")
    return (arr / mag).tolist()


def add(a: Vector, b: Vector) -> List[float]:
    """Element-wise sum."""
    arr_a, arr_b = _as_array(a), _as_array(b)
    _check_dimensions(arr_a, arr_b)
    return (arr_a + arr_b).tolist()


def subtract(a: Vector, b: Vector) -> List[float]:
    """Element-wise difference ``a - b``."""
    arr_a, arr_b = _as_array(a), _as_array(b)
    _check_dimensions(arr_a, arr_b)
    return (arr_a - arr_b).tolist()


def scale(vector: Vector, scalar: float) -> List[float]:
    """Multiply every component by ``scalar``."""
    return (_as_array(vector) * scalar).tolist()


def euclidean_distance(a: Vector, b: Vector) -> float:
    """Straight-line distance between two points."""
    arr_a, arr_b = _as_array(a), _as_array(b)
    _check_dimensions(arr_a, arr_b)
    return float(np.linalg.norm(arr_a - arr_b))


def cosine_similarity(a: Vector, b: Vector) -> float:
    """Cosine of the angle between two vectors, clamped to [-1, 1].

    Identical inputs score exactly 1.0 and a zero-magnitude input scores 0.0.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity score in [-1, 1]

    Raises:
        DimensionMismatchError: If the vectors differ in length.
    """
    arr_a, arr_b = _as_array(a), _as_array(b)
    _check_dimensions(arr_a, arr_b)

    norm_a = float(np.linalg.norm(arr_a))
    norm_b = float(np.linalg.norm(arr_b))
    if norm_a == 0 or norm_b == 0:
        return 0.0

    if a is b or np.array_equal(arr_a, arr_b):
        return 1.0

    product = float(np.dot(arr_a, arr_b))
    if abs(norm_a - 1.0) > UNIT_EPSILON or abs(norm_b - 1.0) > UNIT_EPSILON:
        product /= norm_a * norm_b

    return max(-1.0, min(1.0, product))


def batch_cosine_similarity(query: Vector, vectors: Sequence[Optional[Vector]]) -> List[float]:
    """Score ``query`` against many vectors.

    Missing or wrongly sized vectors score 0.0 instead of failing the batch.
    """
    query_arr = _as_array(query)
    scores: List[float] = []
    for index, vector in enumerate(vectors):
        if vector is None or len(vector) != query_arr.shape[0]:
            logger.warning(
                "Skipping invalid vector at index %d (expected dimension %d)",
                index,
                query_arr.shape[0],
            )
            scores.append(0.0)
            continue
        scores.append(cosine_similarity(query_arr, vector))
    return scores


def rank_top_k(
    query: Vector,
    candidates: Sequence[Tuple[K, Vector]],
    k: int,
) -> List[Tuple[K, float]]:
    """Return the ``k`` best ``(key, score)`` pairs, highest score first.

    Ties keep the order in which candidates were given.
    """
    if k <= 0 or not candidates:
        return []
    query_arr = _as_array(query)
    scored = [(key, cosine_similarity(query_arr, vector)) for key, vector in candidates]
    # sorted() is stable, so equal scores stay in insertion order
    scored = sorted(scored, key=lambda item: item[1], reverse=True)
    return scored[:k]
