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

"""Semantic search over stored vectors.

Example:
    records = [
        VectorRecord(id="m1", text="Standups waste time", vector=v1),
        VectorRecord(id="m2", text="Use TypeScript", vector=v2),
    ]
    results = find_similar(query_vector, records, top_k=3, min_threshold=0.7)
    for r in results:
        print(r.id, r.score)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Optional,
    Sequence,
    Tuple,
    Union,
)

import numpy as np

from lumara.core.errors import InvalidInputError

if TYPE_CHECKING:
    from lumara.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VectorRecord:
    """A stored text and its embedding. ``vector`` may be missing."""

    id: str
    text: str
    vector: Optional[Sequence[float]]


@dataclass(frozen=True)
class SimilarityResult:
    """One search hit."""

    id: str
    score: float
    text: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "score": self.score, "text": self.text}


Candidate = Union[VectorRecord, Tuple[str, Optional[Sequence[float]]]]


def _as_record(candidate: Candidate) -> VectorRecord:
    if isinstance(candidate, VectorRecord):
        return candidate
    record_id, vector = candidate
    return VectorRecord(id=str(record_id), text="", vector=vector)


def find_similar(
    query: Sequence[float],
    candidates: Iterable[Candidate],
    top_k: int = 10,
    min_threshold: float = 0.7,
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[SimilarityResult]:
    """Rank candidates by cosine similarity to ``query``.

    Candidates scoring below ``min_threshold`` are dropped before the
    ``top_k`` cut, so fewer than ``top_k`` results may come back. Ties keep
    the order the candidates were given in.

    Args:
        query: Query vector
        candidates: VectorRecords or ``(id, vector)`` tuples
        top_k: Maximum number of results
        min_threshold: Minimum similarity score (inclusive)
        exclude_ids: Ids never returned (e.g. the query's own record)

    Returns:
        Results sorted by score, highest first

    Raises:
        InvalidInputError: If the query vector is empty or has zero magnitude
    """
    query_arr = np.asarray(query, dtype=np.float64)
    if query_arr.ndim != 1 or query_arr.size == 0:
        raise InvalidInputError("Query vector must be a non-empty list of floats", field="query")
    query_norm = float(np.linalg.norm(query_arr))
    if query_norm == 0:
        raise InvalidInputError("Query vector has zero magnitude", field="query")
    if top_k <= 0:
        return []

    excluded = set(exclude_ids or ())
    dimension = query_arr.shape[0]

    records: List[VectorRecord] = []
    vectors: List[np.ndarray] = []
    for candidate in candidates:
        record = _as_record(candidate)
        if record.id in excluded:
            continue
        if record.vector is None:
            logger.warning("Skipping record %s: no embedding", record.id)
            continue
        vector = np.asarray(record.vector, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != dimension:
            logger.warning(
                "Skipping record %s: dimension %s does not match query dimension %d",
                record.id,
                vector.shape[-1] if vector.ndim else 0,
                dimension,
            )
            continue
        records.append(record)
        vectors.append(vector)

    if not records:
        return []

    matrix = np.vstack(vectors)
    norms = np.linalg.norm(matrix, axis=1)
    dots = matrix @ query_arr
    with np.errstate(divide="ignore", invalid="ignore"):
        scores = np.where(norms > 0, dots / (norms * query_norm), 0.0)
    scores = np.clip(scores, -1.0, 1.0)

    # Stable sort keeps insertion order for equal scores
    order = np.argsort(-scores, kind="stable")
    results: List[SimilarityResult] = []
    for index in order:
        score = float(scores[index])
        if score < min_threshold:
            break
        record = records[index]
        results.append(SimilarityResult(id=record.id, score=score, text=record.text))
        if len(results) >= top_k:
            break
    return results


class SimilarityEngine:
    """``find_similar`` with configured defaults.

    Args:
        top_k: Default maximum number of results
        min_threshold: Default minimum similarity
    """

    def __init__(self, top_k: int = 10, min_threshold: float = 0.7):
        if not 0.0 <= min_threshold <= 1.0:
            raise InvalidInputError(
                f"min_threshold must be between 0 and 1, got {min_threshold}",
                field="min_threshold",
            )
        self.top_k = top_k
        self.min_threshold = min_threshold

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None) -> "SimilarityEngine":
        if settings is None:
            from lumara.config.settings import get_settings

            settings = get_settings()
        return cls(top_k=settings.similarity_top_k, min_threshold=settings.similarity_threshold)

    def search(
        self,
        query: Sequence[float],
        candidates: Iterable[Candidate],
        top_k: Optional[int] = None,
        min_threshold: Optional[float] = None,
        exclude_ids: Optional[Iterable[str]] = None,
    ) -> List[SimilarityResult]:
        return find_similar(
            query,
            candidates,
            top_k=self.top_k if top_k is None else top_k,
            min_threshold=self.min_threshold if min_threshold is None else min_threshold,
            exclude_ids=exclude_ids,
        )
