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

"""
Lumara - on-device AI core for a personal knowledge assistant.

Provides capability providers with runtime fallback, a cached embedding
service, semantic similarity search and duplicate/contradiction detection.

Usage:
    from lumara import get_provider_registry, generate_embedding, ContradictionDetector

    provider = await get_provider_registry().select_provider()
    vector = await generate_embedding("Daily standups improve alignment")
    verdicts = await ContradictionDetector.from_settings().classify(text, vector, records)
"""

__version__ = "0.1.0"
__license__ = "Apache-2.0"

from lumara.config.settings import Settings, get_settings
from lumara.core.errors import (
    BackendError,
    DimensionMismatchError,
    InitializationError,
    InvalidInputError,
    LumaraError,
    NoProviderAvailableError,
    NotInitializedError,
    UnsupportedCapabilityError,
)
from lumara.core.performance import PerformanceMonitor, performance_monitor
from lumara.core.types import Capability, HealthSnapshot, ProviderStatus
from lumara.embeddings import (
    EmbeddingService,
    generate_batch_embeddings,
    generate_embedding,
    get_embedding_info,
    initialize_embeddings,
    is_embeddings_ready,
)
from lumara.providers import (
    BaseProvider,
    MockProvider,
    OnDeviceProvider,
    ProviderRegistry,
    get_provider_registry,
)
from lumara.similarity import (
    ContradictionDetector,
    SimilarityEngine,
    Verdict,
    VerdictKind,
    VectorRecord,
    cosine_similarity,
    find_similar,
)

__all__ = [
    # Configuration
    "Settings",
    "get_settings",
    # Providers
    "BaseProvider",
    "Capability",
    "HealthSnapshot",
    "MockProvider",
    "OnDeviceProvider",
    "ProviderRegistry",
    "ProviderStatus",
    "get_provider_registry",
    # Embeddings
    "EmbeddingService",
    "generate_batch_embeddings",
    "generate_embedding",
    "get_embedding_info",
    "initialize_embeddings",
    "is_embeddings_ready",
    # Similarity
    "ContradictionDetector",
    "SimilarityEngine",
    "Verdict",
    "VerdictKind",
    "VectorRecord",
    "cosine_similarity",
    "find_similar",
    # Errors
    "BackendError",
    "DimensionMismatchError",
    "InitializationError",
    "InvalidInputError",
    "LumaraError",
    "NoProviderAvailableError",
    "NotInitializedError",
    "UnsupportedCapabilityError",
    # Performance
    "PerformanceMonitor",
    "performance_monitor",
]
