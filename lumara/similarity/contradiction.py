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

"""Duplicate and contradiction detection for new knowledge.

Classification of a new statement against existing records:

    similarity >= duplicate_threshold                      -> duplicate
    contradiction_threshold <= similarity < duplicate      -> polarity check
        conflict                                           -> contradiction
        no conflict                                        -> unrelated
    similarity < contradiction_threshold                   -> no verdict

Example:
    detector = ContradictionDetector.from_settings()
    verdicts = await detector.classify(text, vector, records, new_id="m42")
    for v in verdicts:
        if v.kind == VerdictKind.CONTRADICTION:
            print(v.existing_id, v.explanation)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence

from lumara.core.errors import InvalidInputError
from lumara.core.performance import PerformanceMonitor, performance_monitor
from lumara.similarity.engine import (
    Candidate,
    SimilarityResult,
    VectorRecord,
    _as_record,
    find_similar,
)
from lumara.similarity.polarity import (
    LexicalPolarityStrategy,
    PolarityAssessment,
    PolarityStrategy,
)

if TYPE_CHECKING:
    from lumara.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_DUPLICATE_THRESHOLD = 0.85
DEFAULT_CONTRADICTION_THRESHOLD = 0.70

METRIC_CLASSIFY = "contradiction.classify"


class VerdictKind(str, Enum):
    DUPLICATE = "duplicate"
    CONTRADICTION = "contradiction"
    UNRELATED = "unrelated"


@dataclass(frozen=True)
class Verdict:
    """Relationship between a new statement and one existing record."""

    new_id: Optional[str]
    existing_id: str
    similarity: float
    kind: VerdictKind
    confidence: float
    explanation: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "new_id": self.new_id,
            "existing_id": self.existing_id,
            "similarity": self.similarity,
            "kind": self.kind.value,
            "confidence": self.confidence,
            "explanation": self.explanation,
        }


@dataclass(frozen=True)
class ContradictionCandidate:
    """A record similar enough to be worth a contradiction check."""

    match: SimilarityResult
    semantically_similar: bool = True


@dataclass(frozen=True)
class TextPair:
    first_id: str
    first_text: str
    second_id: str
    second_text: str


@dataclass(frozen=True)
class PairAssessment:
    first_id: str
    second_id: str
    assessment: PolarityAssessment


def validate_thresholds(duplicate_threshold: float, contradiction_threshold: float) -> None:
    """Require ``0 <= contradiction_threshold <= duplicate_threshold <= 1``."""
    if not 0.0 <= contradiction_threshold <= duplicate_threshold <= 1.0:
        raise InvalidInputError(
            "Thresholds must satisfy 0 <= contradiction <= duplicate <= 1, got "
            f"contradiction={contradiction_threshold}, duplicate={duplicate_threshold}",
            field="thresholds",
        )


class ContradictionDetector:
    """Classifies new statements as duplicates of, or contradictions with,
    existing records.

    Args:
        duplicate_threshold: Similarity at or above which records are duplicates
        contradiction_threshold: Lower edge of the contradiction band
        strategy: Polarity strategy for the band (lexical heuristic by default)
        performance: Monitor receiving classify latencies
    """

    def __init__(
        self,
        duplicate_threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
        contradiction_threshold: float = DEFAULT_CONTRADICTION_THRESHOLD,
        strategy: Optional[PolarityStrategy] = None,
        performance: Optional[PerformanceMonitor] = None,
    ):
        validate_thresholds(duplicate_threshold, contradiction_threshold)
        self.duplicate_threshold = duplicate_threshold
        self.contradiction_threshold = contradiction_threshold
        self.strategy: PolarityStrategy = strategy or LexicalPolarityStrategy()
        self.performance = performance or performance_monitor

    @classmethod
    def from_settings(
        cls,
        settings: Optional["Settings"] = None,
        strategy: Optional[PolarityStrategy] = None,
    ) -> "ContradictionDetector":
        if settings is None:
            from lumara.config.settings import get_settings

            settings = get_settings()
        return cls(
            duplicate_threshold=settings.duplicate_threshold,
            contradiction_threshold=settings.contradiction_threshold,
            strategy=strategy,
        )

    async def classify(
        self,
        new_text: str,
        new_vector: Sequence[float],
        existing_records: Iterable[Candidate],
        new_id: Optional[str] = None,
    ) -> List[Verdict]:
        """Classify ``new_text`` against every related existing record.

        Args:
            new_text: The new statement
            new_vector: Its embedding
            existing_records: Records to compare with
            new_id: Id of the new statement, excluded from matching

        Returns:
            Verdicts for records at or above the contradiction threshold,
            highest similarity first. Empty for an empty corpus.
        """
        return await self.performance.measure(
            METRIC_CLASSIFY,
            lambda: self._classify(new_text, new_vector, existing_records, new_id),
        )

    async def _classify(
        self,
        new_text: str,
        new_vector: Sequence[float],
        existing_records: Iterable[Candidate],
        new_id: Optional[str],
    ) -> List[Verdict]:
        records = [_as_record(r) for r in existing_records]
        if not records:
            return []

        matches = find_similar(
            new_vector,
            records,
            top_k=len(records),
            min_threshold=self.contradiction_threshold,
            exclude_ids=[new_id] if new_id is not None else None,
        )
        if not matches:
            return []

        band = [m for m in matches if m.score < self.duplicate_threshold]
        assessments = await asyncio.gather(
            *(self.strategy.assess(new_text, m.text) for m in band)
        )
        pending = iter(assessments)

        verdicts: List[Verdict] = []
        for match in matches:
            if match.score >= self.duplicate_threshold:
                verdicts.append(
                    Verdict(
                        new_id=new_id,
                        existing_id=match.id,
                        similarity=match.score,
                        kind=VerdictKind.DUPLICATE,
                        confidence=match.score,
                        explanation=f"Near-identical to existing record ({match.score:.2f})",
                    )
                )
                continue

            assessment = next(pending)
            if assessment.conflict:
                verdicts.append(
                    Verdict(
                        new_id=new_id,
                        existing_id=match.id,
                        similarity=match.score,
                        kind=VerdictKind.CONTRADICTION,
                        confidence=match.score * assessment.weight,
                        explanation=assessment.explanation,
                    )
                )
            else:
                verdicts.append(
                    Verdict(
                        new_id=new_id,
                        existing_id=match.id,
                        similarity=match.score,
                        kind=VerdictKind.UNRELATED,
                        confidence=match.score,
                        explanation=assessment.explanation,
                    )
                )

        logger.debug(
            "Classified %r against %d records: %d verdicts",
            new_text[:50],
            len(records),
            len(verdicts),
        )
        return verdicts

    async def assess_pairs(self, pairs: Iterable[TextPair]) -> List[PairAssessment]:
        return await batch_classify_pairs(pairs, self.strategy)


def detect_duplicates(
    new_vector: Sequence[float],
    existing_records: Iterable[Candidate],
    threshold: float = DEFAULT_DUPLICATE_THRESHOLD,
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[SimilarityResult]:
    """Records similar enough to ``new_vector`` to be duplicates."""
    records: List[VectorRecord] = [_as_record(r) for r in existing_records]
    if not records:
        return []
    return find_similar(
        new_vector, records, top_k=len(records), min_threshold=threshold, exclude_ids=exclude_ids
    )


def get_contradiction_candidates(
    new_vector: Sequence[float],
    existing_records: Iterable[Candidate],
    threshold: float = DEFAULT_CONTRADICTION_THRESHOLD,
    exclude_ids: Optional[Iterable[str]] = None,
) -> List[ContradictionCandidate]:
    """Records related closely enough to review for contradictions later."""
    records: List[VectorRecord] = [_as_record(r) for r in existing_records]
    if not records:
        return []
    matches = find_similar(
        new_vector, records, top_k=len(records), min_threshold=threshold, exclude_ids=exclude_ids
    )
    return [ContradictionCandidate(match=m) for m in matches]


async def batch_classify_pairs(
    pairs: Iterable[TextPair],
    strategy: Optional[PolarityStrategy] = None,
) -> List[PairAssessment]:
    """Run the polarity strategy over already-paired statements, in order."""
    strategy = strategy or LexicalPolarityStrategy()
    pair_list = list(pairs)
    assessments = await asyncio.gather(
        *(strategy.assess(p.first_text, p.second_text) for p in pair_list)
    )
    return [
        PairAssessment(first_id=p.first_id, second_id=p.second_id, assessment=a)
        for p, a in zip(pair_list, assessments)
    ]
