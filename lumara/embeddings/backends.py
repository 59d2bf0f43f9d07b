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

"""Model backends for the embedding service.

A backend owns a model handle and turns batches of text into raw vectors.
Caching, normalization, validation and retries live in the service.
"""

import asyncio
import logging
import os
import time
from typing import Any, List, Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from lumara.config.settings import DEFAULT_EMBEDDING_DIMENSION, DEFAULT_EMBEDDING_MODEL
from lumara.core.progress import ProgressCallback
from lumara.providers.base import BaseProvider

# Disable tokenizers parallelism BEFORE importing sentence_transformers
# This prevents "bad value(s) in fds_to_keep" errors in async contexts
os.environ.setdefault("TOKENIZERS_PARALLELISM", "false")

logger = logging.getLogger(__name__)


@runtime_checkable
class EmbeddingBackend(Protocol):
    """Contract for embedding model backends."""

    model_name: str

    @property
    def dimension(self) -> int: ...

    async def load(self, on_progress: Optional[ProgressCallback] = None) -> None: ...

    async def encode(self, texts: Sequence[str]) -> List[List[float]]: ...

    async def close(self) -> None: ...


def _report(on_progress: Optional[ProgressCallback], progress: float, message: str) -> None:
    if on_progress is not None:
        on_progress(progress, message)


class SentenceTransformerBackend:
    """Local sentence-transformers model.

    The model is downloaded on first load (into the Hugging Face cache) and
    runs on CPU unless a device is given.

    Args:
        model_name: sentence-transformers model id.
            Recommended options (all CPU-friendly, 384 dims):
            - "sentence-transformers/all-MiniLM-L6-v2" (default, 80MB, fastest)
            - "BAAI/bge-small-en-v1.5" (130MB, better retrieval quality)
        device: 'cpu', 'cuda' or 'mps'. Auto-detected if None.
        dimension: Expected dimension, confirmed once the model loads.
    """

    def __init__(
        self,
        model_name: str = DEFAULT_EMBEDDING_MODEL,
        device: Optional[str] = None,
        dimension: int = DEFAULT_EMBEDDING_DIMENSION,
    ):
        self.model_name = model_name
        self.device = device
        self._dimension = dimension
        self._model: Any = None  # SentenceTransformer, lazy loaded

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    def _load_sync(self) -> Any:
        try:
            from sentence_transformers import SentenceTransformer
        except ImportError as e:
            raise ImportError(
                "sentence-transformers not installed. "
                "Install with: pip install sentence-transformers"
            ) from e
        return SentenceTransformer(self.model_name, device=self.device)

    async def load(self, on_progress: Optional[ProgressCallback] = None) -> None:
        if self._model is not None:
            return

        load_start = time.perf_counter()
        logger.info(
            f"[EmbeddingService] Loading model: {self.model_name} "
            f"(device={self.device or 'auto'})"
        )
        _report(on_progress, 10, f"Loading {self.model_name}")

        loop = asyncio.get_running_loop()
        model = await loop.run_in_executor(None, self._load_sync)
        _report(on_progress, 90, "Model weights loaded")

        dimension = model.get_sentence_embedding_dimension()
        if dimension:
            self._dimension = int(dimension)
        self._model = model

        logger.info(
            f"[EmbeddingService] Model loaded successfully: "
            f"model={self.model_name}, "
            f"dimension={self._dimension}, "
            f"device={model.device}, "
            f"load_time={time.perf_counter() - load_start:.2f}s"
        )

    @staticmethod
    def _calculate_optimal_batch_size(texts: Sequence[str]) -> int:
        """Pick a batch size from text lengths to keep memory bounded.

        - Short texts (< 256 chars): 64
        - Medium texts (256-1024 chars): 32
        - Long texts (1024-4096 chars): 16
        - Very long texts (> 4096 chars): 8
        """
        if not texts:
            return 32

        avg_length = sum(len(t) for t in texts) / len(texts)
        max_length = max(len(t) for t in texts)
        effective_length = (avg_length + max_length) / 2

        if effective_length < 256:
            return 64
        elif effective_length < 1024:
            return 32
        elif effective_length < 4096:
            return 16
        else:
            return 8

    def _encode_sync(self, texts: List[str]) -> np.ndarray:
        embeddings = self._model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=False,
            batch_size=self._calculate_optimal_batch_size(texts),
            normalize_embeddings=True,
        )
        return np.asarray(embeddings, dtype=np.float32)

    async def encode(self, texts: Sequence[str]) -> List[List[float]]:
        if self._model is None:
            raise RuntimeError(f"Embedding model {self.model_name} is not loaded")
        loop = asyncio.get_running_loop()
        matrix = await loop.run_in_executor(None, self._encode_sync, list(texts))
        return matrix.tolist()

    async def close(self) -> None:
        self._model = None


class ProviderEmbeddingBackend:
    """Delegates embedding to an embed-capable provider.

    The provider is initialized on load if needed but never disposed here;
    whoever created it owns it.
    """

    def __init__(self, provider: BaseProvider, dimension: int = DEFAULT_EMBEDDING_DIMENSION):
        self.provider = provider
        self.model_name = f"provider:{provider.name}"
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def load(self, on_progress: Optional[ProgressCallback] = None) -> None:
        if not self.provider.is_ready:
            _report(on_progress, 10, f"Initializing provider {self.provider.name}")
            await self.provider.initialize()
        _report(on_progress, 90, f"Provider {self.provider.name} ready")

    async def encode(self, texts: Sequence[str]) -> List[List[float]]:
        return list(await asyncio.gather(*(self.provider.embed(text) for text in texts)))

    async def close(self) -> None:
        return None
