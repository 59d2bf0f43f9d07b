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

"""Polarity strategies: do two related statements pull in opposite directions?

Two strategies are provided:

- LexicalPolarityStrategy: offline word-list heuristic (default)
- ProviderPolarityStrategy: asks a chat-capable provider for a JSON verdict

Both are async so the contradiction detector can treat them uniformly.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import FrozenSet, Iterator, List, Optional, Protocol, Tuple, runtime_checkable

from lumara.providers.base import BaseProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolarityAssessment:
    """Outcome of comparing two statements.

    Attributes:
        conflict: True if the statements cannot both hold
        weight: Strength of the judgement in [0, 1]
        explanation: Short human-readable reason
    """

    conflict: bool
    weight: float
    explanation: str


@runtime_checkable
class PolarityStrategy(Protocol):
    """Anything that can judge whether two texts conflict."""

    async def assess(self, first: str, second: str) -> PolarityAssessment: ...


# =============================================================================
# Lexical heuristic
# =============================================================================

NEGATION_MARKERS: FrozenSet[str] = frozenset(
    {
        "not",
        "no",
        "never",
        "cannot",
        "without",
        "nor",
        "neither",
        "none",
        "nothing",
        "nobody",
        "hardly",
        "barely",
    }
)

POSITIVE_CUES: FrozenSet[str] = frozenset(
    {
        "improve",
        "help",
        "love",
        "like",
        "enjoy",
        "prefer",
        "good",
        "great",
        "better",
        "best",
        "benefit",
        "boost",
        "useful",
        "valuable",
        "effective",
        "efficient",
        "productive",
        "essential",
        "important",
        "worth",
        "recommend",
        "support",
        "success",
        "succeed",
        "right",
        "true",
        "easy",
        "safe",
        "agree",
        "accept",
    }
)

NEGATIVE_CUES: FrozenSet[str] = frozenset(
    {
        "waste",
        "hurt",
        "hate",
        "dislike",
        "avoid",
        "bad",
        "worse",
        "worst",
        "harm",
        "damage",
        "useless",
        "pointless",
        "ineffective",
        "inefficient",
        "unproductive",
        "unnecessary",
        "overrate",
        "distract",
        "annoy",
        "hinder",
        "slow",
        "fail",
        "failure",
        "wrong",
        "false",
        "hard",
        "difficult",
        "risky",
        "terrible",
        "awful",
        "disagree",
        "reject",
        "disrupt",
        "disturb",
        "impair",
        "worsen",
        "undermine",
        "weaken",
        "degrade",
        "break",
        "ruin",
        "destroy",
        "drain",
        "interfere",
        "sabotage",
    }
)

ANTONYM_PAIRS: Tuple[Tuple[str, str], ...] = (
    ("always", "never"),
    ("accept", "reject"),
    ("allow", "forbid"),
    ("allow", "ban"),
    ("include", "exclude"),
    ("enable", "disable"),
    ("increase", "decrease"),
    ("more", "less"),
    ("start", "stop"),
    ("true", "false"),
    ("agree", "disagree"),
    ("love", "hate"),
    ("like", "dislike"),
    ("better", "worse"),
    ("faster", "slower"),
)

# Tokens after a negation marker that it can still flip
NEGATION_WINDOW = 3

# Suffixes tried in order; (suffix, replacement)
_SUFFIX_RULES: Tuple[Tuple[str, str], ...] = (
    ("ing", ""),
    ("ing", "e"),
    ("ies", "y"),
    ("es", ""),
    ("ed", ""),
    ("ed", "e"),
    ("s", ""),
    ("d", ""),
    ("ful", ""),
    ("ly", ""),
)

_TOKEN_RE = re.compile(r"[a-z0-9]+(?:'[a-z]+)?")


def tokenize(text: str) -> List[str]:
    """Lowercase word tokens, contractions kept whole."""
    return _TOKEN_RE.findall(text.lower().replace("’", "'"))


def word_variants(token: str) -> Iterator[str]:
    """Yield the token and its lightly de-suffixed forms."""
    yield token
    for suffix, replacement in _SUFFIX_RULES:
        if token.endswith(suffix) and len(token) - len(suffix) >= 3:
            yield token[: -len(suffix)] + replacement


def is_negation(token: str) -> bool:
    return token in NEGATION_MARKERS or token.endswith("n't")


def _cue_value(token: str) -> int:
    for variant in word_variants(token):
        if variant in POSITIVE_CUES:
            return 1
        if variant in NEGATIVE_CUES:
            return -1
    return 0


@dataclass(frozen=True)
class TextPolarity:
    """Lexical reading of one text."""

    score: int
    cues: int
    negated: bool
    lemmas: FrozenSet[str]

    @property
    def sign(self) -> int:
        return (self.score > 0) - (self.score < 0)


def analyze_polarity(text: str) -> TextPolarity:
    """Score a text: +1 per positive cue, -1 per negative cue.

    A negation marker flips the next cue within NEGATION_WINDOW tokens.
    """
    tokens = tokenize(text)
    score = 0
    cues = 0
    negated = False
    window = 0
    lemmas = set()

    for token in tokens:
        lemmas.update(word_variants(token))
        if is_negation(token):
            negated = True
            window = NEGATION_WINDOW
            continue

        value = _cue_value(token)
        if value:
            cues += 1
            if window > 0:
                value = -value
                window = 0
            score += value
        elif window > 0:
            window -= 1

    return TextPolarity(score=score, cues=cues, negated=negated, lemmas=frozenset(lemmas))


class LexicalPolarityStrategy:
    """Word-list polarity heuristic.

    Rules, first match wins:
    1. Opposite non-zero sentiment scores conflict.
    2. Matching non-zero sentiment scores do not conflict.
    3. An antonym pair split across the texts conflicts.
    4. With no sentiment cue in either text, exactly one being negated
       conflicts.

    Args:
        sentiment_weight: Weight reported for rule 1
        antonym_weight: Weight reported for rule 3
        negation_weight: Weight reported for rule 4
    """

    def __init__(
        self,
        sentiment_weight: float = 1.0,
        antonym_weight: float = 0.9,
        negation_weight: float = 0.8,
    ):
        self.sentiment_weight = sentiment_weight
        self.antonym_weight = antonym_weight
        self.negation_weight = negation_weight

    async def assess(self, first: str, second: str) -> PolarityAssessment:
        return self.assess_sync(first, second)

    def assess_sync(self, first: str, second: str) -> PolarityAssessment:
        a = analyze_polarity(first)
        b = analyze_polarity(second)

        if a.sign and b.sign:
            if a.sign != b.sign:
                return PolarityAssessment(
                    conflict=True,
                    weight=self.sentiment_weight,
                    explanation=f"Opposite sentiment ({a.score:+d} vs {b.score:+d})",
                )
            return PolarityAssessment(
                conflict=False, weight=0.0, explanation="Same sentiment direction"
            )

        pair = self._antonym_pair(a.lemmas, b.lemmas)
        if pair is not None:
            return PolarityAssessment(
                conflict=True,
                weight=self.antonym_weight,
                explanation=f"Opposing terms: '{pair[0]}' vs '{pair[1]}'",
            )

        if a.cues == 0 and b.cues == 0 and a.negated != b.negated:
            return PolarityAssessment(
                conflict=True,
                weight=self.negation_weight,
                explanation="One statement negates the other",
            )

        return PolarityAssessment(conflict=False, weight=0.0, explanation="No opposing polarity")

    @staticmethod
    def _antonym_pair(
        first: FrozenSet[str], second: FrozenSet[str]
    ) -> Optional[Tuple[str, str]]:
        for left, right in ANTONYM_PAIRS:
            if left in first and right in second:
                return left, right
            if right in first and left in second:
                return right, left
        return None


# =============================================================================
# Provider-backed judgement
# =============================================================================

CONTRADICTION_PROMPT = """Do these two statements contradict each other?

Statement 1: "{first}"
Statement 2: "{second}"

Reply with JSON only:
{{
  "contradicts": true or false,
  "confidence": 0-100,
  "explanation": "one sentence"
}}

Statements that can both be true (different contexts, complementary facts)
do not contradict. Only answer true when both cannot hold at the same time."""

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


class ProviderPolarityStrategy:
    """Delegates the judgement to a chat-capable provider.

    The provider must already be initialized. Provider failures are logged
    and reported as "no conflict" so a flaky backend never blocks ingestion.
    """

    # Confidence assumed when the reply only mentions a contradiction in prose
    KEYWORD_CONFIDENCE = 50

    def __init__(self, provider: BaseProvider, timeout: Optional[float] = None):
        self.provider = provider
        self.timeout = timeout

    async def assess(self, first: str, second: str) -> PolarityAssessment:
        prompt = CONTRADICTION_PROMPT.format(first=first, second=second)
        try:
            response = await self.provider.chat(prompt, timeout=self.timeout)
        except Exception as e:
            logger.error("Error analyzing contradiction with %s: %s", self.provider.name, e)
            return self._unknown()
        return self.parse_response(response)

    @classmethod
    def parse_response(cls, response: str) -> PolarityAssessment:
        """Interpret a provider reply (JSON object, else keyword scan)."""
        match = _JSON_OBJECT_RE.search(response)
        if match:
            try:
                result = json.loads(match.group(0))
            except ValueError as e:
                logger.warning("Unparseable contradiction verdict: %s", e)
                return cls._unknown()
            if not isinstance(result, dict):
                return cls._unknown()
            try:
                confidence = float(result.get("confidence") or 0)
            except (TypeError, ValueError):
                confidence = 0.0
            confidence = min(100.0, max(0.0, confidence))
            return PolarityAssessment(
                conflict=result.get("contradicts") is True,
                weight=confidence / 100.0,
                explanation=str(result.get("explanation") or "No explanation provided"),
            )

        if "contradict" in response.lower():
            return PolarityAssessment(
                conflict=True,
                weight=cls.KEYWORD_CONFIDENCE / 100.0,
                explanation="Likely contradiction detected in response",
            )
        return cls._unknown()

    @staticmethod
    def _unknown() -> PolarityAssessment:
        return PolarityAssessment(
            conflict=False, weight=0.0, explanation="Could not analyze for contradiction"
        )
