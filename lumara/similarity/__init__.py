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

"""Vector math, semantic search and contradiction detection."""

from lumara.similarity.vector_math import (
    add,
    batch_cosine_similarity,
    cosine_similarity,
    dot,
    euclidean_distance,
    magnitude,
    normalize,
    rank_top_k,
    scale,
    subtract,
)
from lumara.similarity.engine import (
    SimilarityEngine,
    SimilarityResult,
    VectorRecord,
    find_similar,
)
from lumara.similarity.polarity import (
    LexicalPolarityStrategy,
    PolarityAssessment,
    PolarityStrategy,
    ProviderPolarityStrategy,
)
from lumara.similarity.contradiction import (
    ContradictionCandidate,
    ContradictionDetector,
    PairAssessment,
    TextPair,
    Verdict,
    VerdictKind,
    batch_classify_pairs,
    detect_duplicates,
    get_contradiction_candidates,
)

__all__ = [
    # Vector math
    "add",
    "batch_cosine_similarity",
    "cosine_similarity",
    "dot",
    "euclidean_distance",
    "magnitude",
    "normalize",
    "rank_top_k",
    "scale",
    "subtract",
    # Search
    "SimilarityEngine",
    "SimilarityResult",
    "VectorRecord",
    "find_similar",
    # Polarity
    "LexicalPolarityStrategy",
    "PolarityAssessment",
    "PolarityStrategy",
    "ProviderPolarityStrategy",
    # Contradiction detection
    "ContradictionCandidate",
    "ContradictionDetector",
    "PairAssessment",
    "TextPair",
    "Verdict",
    "VerdictKind",
    "batch_classify_pairs",
    "detect_duplicates",
    "get_contradiction_candidates",
]
