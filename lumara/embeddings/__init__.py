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

"""Embedding generation for Lumara.

Module-level functions operate on the process-wide EmbeddingService
singleton.

Usage:
    from lumara.embeddings import initialize_embeddings, generate_embedding

    await initialize_embeddings(lambda pct, msg: print(pct, msg))
    vector = await generate_embedding("Daily standups improve alignment")
"""

import logging
from typing import List, Optional, Sequence

from lumara.core.progress import ProgressCallback
from lumara.embeddings.backends import (
    EmbeddingBackend,
    ProviderEmbeddingBackend,
    SentenceTransformerBackend,
)
from lumara.embeddings.service import (
    EmbeddingInfo,
    EmbeddingService,
    EmbeddingState,
)

logger = logging.getLogger(__name__)

PRELOAD_LIMIT = 100


async def initialize_embeddings(on_progress: Optional[ProgressCallback] = None) -> None:
    """Open the embedding cache, warm it and load the model.

    Raises:
        InitializationError: If the model cannot be loaded
    """
    service = EmbeddingService.get_instance()
    await service.cache.initialize()
    await service.cache.preload(PRELOAD_LIMIT)
    await service.initialize(on_progress)


async def generate_embedding(text: str, use_cache: bool = True) -> List[float]:
    """Embed a single text (L2-normalized)."""
    return await EmbeddingService.get_instance().embed(text, use_cache=use_cache)


async def generate_batch_embeddings(
    texts: Sequence[str], use_cache: bool = True
) -> List[List[float]]:
    """Embed several texts, returned in input order."""
    return await EmbeddingService.get_instance().embed_batch(texts, use_cache=use_cache)


def is_embeddings_ready() -> bool:
    return EmbeddingService.get_instance().is_ready


def get_embedding_info() -> EmbeddingInfo:
    return EmbeddingService.get_instance().info()


__all__ = [
    # Service
    "EmbeddingService",
    "EmbeddingState",
    "EmbeddingInfo",
    # Backends
    "EmbeddingBackend",
    "SentenceTransformerBackend",
    "ProviderEmbeddingBackend",
    # Facade
    "initialize_embeddings",
    "generate_embedding",
    "generate_batch_embeddings",
    "is_embeddings_ready",
    "get_embedding_info",
]
