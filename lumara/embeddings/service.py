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

"""Shared embedding service singleton for Lumara.

This module provides a single embedding service instance that:
- Loads the embedding model once, lazily, with progress reporting
- Shares one in-flight load between concurrent callers
- Consults the two-tier embedding cache before touching the model
- Returns L2-normalized vectors of a fixed dimension
"""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, List, Optional, Sequence

import numpy as np

from lumara.cache.config import CacheConfig
from lumara.cache.entry import CacheEntry
from lumara.cache.manager import EmbeddingCacheManager
from lumara.core.errors import (
    BackendError,
    DimensionMismatchError,
    InitializationError,
    InvalidInputError,
    LumaraError,
)
from lumara.core.performance import PerformanceMonitor, performance_monitor
from lumara.core.progress import (
    PROGRESS_COMPLETE,
    ProgressCallback,
    ProgressTracker,
    embedding_progress,
)
from lumara.core.retry import BaseRetryStrategy, model_load_retry_strategy, retry_async
from lumara.embeddings.backends import EmbeddingBackend, SentenceTransformerBackend

if TYPE_CHECKING:
    from lumara.config.settings import Settings

logger = logging.getLogger(__name__)

DEFAULT_SLOW_EMBEDDING_MS = 100.0

METRIC_EMBED = "embedding.embed"
METRIC_EMBED_BATCH = "embedding.embed_batch"

MODEL_READY_MESSAGE = "Model loaded successfully"


class EmbeddingState(str, Enum):
    """Model lifecycle of the embedding service."""

    UNLOADED = "unloaded"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class EmbeddingInfo:
    """Public description of the embedding model."""

    is_ready: bool
    is_loading: bool
    model_name: str
    dimension: int


class EmbeddingService:
    """Singleton embedding service for Lumara.

    Used by:
    - Duplicate and contradiction detection (vectors for new knowledge)
    - Similarity search over stored knowledge

    Usage:
        # Get the singleton instance
        service = EmbeddingService.get_instance()

        # Generate embeddings
        vector = await service.embed("Hello world")
        vectors = await service.embed_batch(["Hello", "World"])
    """

    _instance: Optional["EmbeddingService"] = None
    _lock = threading.Lock()

    def __init__(
        self,
        backend: Optional[EmbeddingBackend] = None,
        cache: Optional[EmbeddingCacheManager] = None,
        progress: Optional[ProgressTracker] = None,
        load_retry_strategy: Optional[BaseRetryStrategy] = None,
        slow_threshold_ms: float = DEFAULT_SLOW_EMBEDDING_MS,
        performance: Optional[PerformanceMonitor] = None,
    ):
        """Initialize embedding service.

        Args:
            backend: Model backend (default: sentence-transformers MiniLM)
            cache: Embedding cache (default: cache configured from settings)
            progress: Tracker receiving model-load progress
            load_retry_strategy: Retry policy for model loading
            slow_threshold_ms: Single embeddings slower than this log a warning
            performance: Monitor receiving embed and embed_batch latencies
        """
        self._backend: EmbeddingBackend = backend or SentenceTransformerBackend()
        self._cache = cache if cache is not None else EmbeddingCacheManager(CacheConfig.from_settings())
        self._progress = progress or embedding_progress
        self._load_strategy = load_retry_strategy or model_load_retry_strategy()
        self._slow_threshold_ms = slow_threshold_ms
        self._performance = performance or performance_monitor
        self._state = EmbeddingState.UNLOADED
        self._load_task: Optional[asyncio.Future[None]] = None
        self._last_error: Optional[str] = None

    @classmethod
    def from_settings(cls, settings: Optional["Settings"] = None) -> "EmbeddingService":
        """Build a service wired from application settings."""
        if settings is None:
            from lumara.config.settings import get_settings

            settings = get_settings()
        return cls(
            backend=SentenceTransformerBackend(
                model_name=settings.embedding_model,
                device=settings.embedding_device,
                dimension=settings.embedding_dimension,
            ),
            cache=EmbeddingCacheManager(CacheConfig.from_settings(settings)),
            load_retry_strategy=model_load_retry_strategy(settings.model_load_max_retries),
            slow_threshold_ms=settings.embedding_slow_ms,
        )

    @classmethod
    def get_instance(cls, **kwargs: object) -> "EmbeddingService":
        """Get or create the singleton embedding service instance.

        Args:
            **kwargs: Constructor arguments (only used on first call). With
                no arguments the service is built from settings.

        Returns:
            The singleton EmbeddingService instance
        """
        if cls._instance is None:
            with cls._lock:
                # Double-checked locking
                if cls._instance is None:
                    cls._instance = cls(**kwargs) if kwargs else cls.from_settings()  # type: ignore[arg-type]
                    logger.info(
                        f"[EmbeddingService] Created singleton with model: "
                        f"{cls._instance.model_name}"
                    )
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance (mainly for testing)."""
        with cls._lock:
            if cls._instance is not None:
                cls._instance._cache.close()
                cls._instance = None
                logger.info("[EmbeddingService] Reset singleton")

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> EmbeddingState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == EmbeddingState.READY

    @property
    def is_loading(self) -> bool:
        return self._state == EmbeddingState.LOADING

    @property
    def model_name(self) -> str:
        return self._backend.model_name

    @property
    def dimension(self) -> int:
        return self._backend.dimension

    @property
    def cache(self) -> EmbeddingCacheManager:
        return self._cache

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def performance(self) -> PerformanceMonitor:
        return self._performance

    def info(self) -> EmbeddingInfo:
        return EmbeddingInfo(
            is_ready=self.is_ready,
            is_loading=self.is_loading,
            model_name=self.model_name,
            dimension=self.dimension,
        )

    # ------------------------------------------------------------------
    # Model loading
    # ------------------------------------------------------------------

    async def initialize(self, on_progress: Optional[ProgressCallback] = None) -> None:
        """Load the model if needed.

        Concurrent callers share one load. ``on_progress`` receives this
        load's progress events for as long as the caller waits. If the model
        is already loaded it receives the completion event straight away.

        Raises:
            InitializationError: If loading fails after retries. A later
                call starts a fresh load.
        """
        if self._state == EmbeddingState.READY:
            if on_progress is not None:
                ProgressTracker.deliver(on_progress, PROGRESS_COMPLETE, MODEL_READY_MESSAGE)
            return

        if self._load_task is None:
            self._load_task = asyncio.ensure_future(self._load())

        unsubscribe = self._progress.subscribe(on_progress) if on_progress else None
        try:
            # shield: one caller giving up must not cancel the shared load
            await asyncio.shield(self._load_task)
        finally:
            if unsubscribe is not None:
                unsubscribe()

    async def _load(self) -> None:
        self._state = EmbeddingState.LOADING
        self._progress.reset()
        self._progress.update(0, "Starting model load...")

        max_attempts = getattr(self._load_strategy, "max_attempts", 1)
        attempts = 0

        async def attempt() -> None:
            nonlocal attempts
            attempts += 1
            if attempts > 1:
                message = f"Retry attempt {attempts - 1}/{max_attempts - 1}"
                logger.warning(f"[EmbeddingService] {message}")
                self._progress.update(0, message)
            await self._backend.load(self._progress.update)

        load_start = time.perf_counter()
        try:
            await retry_async(attempt, self._load_strategy)
        except Exception as e:
            self._state = EmbeddingState.ERROR
            self._last_error = str(e)
            self._load_task = None
            self._progress.error(str(e) or "Model load failed")
            logger.error(f"[EmbeddingService] Model load failed after {attempts} attempt(s): {e}")
            raise InitializationError(
                "Failed to load embedding model",
                provider=self.model_name,
                reason=str(e),
                cause=e,
            ) from e

        self._state = EmbeddingState.READY
        self._last_error = None
        self._progress.complete(MODEL_READY_MESSAGE)
        logger.info(
            f"[EmbeddingService] Ready: model={self.model_name}, "
            f"dimension={self.dimension}, "
            f"load_time={time.perf_counter() - load_start:.2f}s"
        )

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def embed(self, text: str, use_cache: bool = True) -> List[float]:
        """Generate the embedding for a single text.

        Args:
            text: Text to embed
            use_cache: Consult and populate the embedding cache

        Returns:
            L2-normalized embedding vector

        Raises:
            InvalidInputError: For empty or whitespace-only text
            InitializationError: If the model cannot be loaded
            DimensionMismatchError: If the backend returns a wrong-sized vector
        """
        return await self._performance.measure(METRIC_EMBED, lambda: self._embed(text, use_cache))

    async def _embed(self, text: str, use_cache: bool) -> List[float]:
        text = self._validate(text)

        if use_cache:
            cached = await self._cache_get(text)
            if cached is not None:
                return list(cached.vector)

        await self.initialize()

        start_time = time.perf_counter()
        raw = await self._encode([text])
        vector = self._finalize(raw[0])
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        if elapsed_ms > self._slow_threshold_ms:
            logger.warning(
                f"[EmbeddingService] Embedding generation took {elapsed_ms:.1f}ms "
                f"(target: <{self._slow_threshold_ms:.0f}ms)"
            )
        else:
            logger.debug(
                f"[EmbeddingService] embed: chars={len(text)}, time={elapsed_ms:.2f}ms"
            )

        if use_cache:
            await self._cache_put(text, vector)
        return vector

    async def embed_batch(self, texts: Sequence[str], use_cache: bool = True) -> List[List[float]]:
        """Generate embeddings for multiple texts.

        Cache lookups run concurrently; misses are encoded in one backend
        call. Results are returned in input order.

        Raises:
            InvalidInputError: For an empty list or any empty text
        """
        return await self._performance.measure(
            METRIC_EMBED_BATCH, lambda: self._embed_batch(texts, use_cache)
        )

    async def _embed_batch(self, texts: Sequence[str], use_cache: bool) -> List[List[float]]:
        if not texts:
            raise InvalidInputError("Texts must be a non-empty list", field="texts")
        cleaned = [self._validate(t) for t in texts]
        results: List[Optional[List[float]]] = [None] * len(cleaned)

        if use_cache:
            entries = await asyncio.gather(*(self._cache_get(t) for t in cleaned))
            for i, entry in enumerate(entries):
                if entry is not None:
                    results[i] = list(entry.vector)

        missing = [i for i, r in enumerate(results) if r is None]
        if missing:
            await self.initialize()

            unique_texts = list(dict.fromkeys(cleaned[i] for i in missing))
            start_time = time.perf_counter()
            raw = await self._encode(unique_texts)
            if len(raw) != len(unique_texts):
                raise BackendError(
                    f"Backend returned {len(raw)} vectors for {len(unique_texts)} texts",
                    provider=self.model_name,
                    operation="embed_batch",
                )
            by_text = {t: self._finalize(v) for t, v in zip(unique_texts, raw)}
            elapsed = time.perf_counter() - start_time

            for i in missing:
                results[i] = list(by_text[cleaned[i]])

            if use_cache:
                await asyncio.gather(*(self._cache_put(t, v) for t, v in by_text.items()))

            logger.debug(
                f"[EmbeddingService] embed_batch: "
                f"count={len(cleaned)}, "
                f"encoded={len(unique_texts)}, "
                f"cached={len(cleaned) - len(missing)}, "
                f"time={elapsed * 1000:.2f}ms"
            )

        return [r for r in results if r is not None]

    async def close(self) -> None:
        """Release the model and close the cache."""
        await self._backend.close()
        self._cache.close()
        self._state = EmbeddingState.UNLOADED
        self._load_task = None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(text: str) -> str:
        if not isinstance(text, str) or not text.strip():
            raise InvalidInputError("Text must be a non-empty string", field="text")
        return text.strip()

    async def _encode(self, texts: List[str]) -> List[List[float]]:
        try:
            return await self._backend.encode(texts)
        except LumaraError:
            raise
        except Exception as e:
            raise BackendError(
                f"Failed to generate embedding: {e}",
                provider=self.model_name,
                operation="embed",
                cause=e,
            ) from e

    def _finalize(self, raw: Sequence[float]) -> List[float]:
        vector = np.asarray(raw, dtype=np.float64)
        if vector.ndim != 1 or vector.shape[0] != self.dimension:
            actual = vector.shape[-1] if vector.ndim else 0
            raise DimensionMismatchError(self.dimension, int(actual))
        norm = float(np.linalg.norm(vector))
        if norm == 0:
            return vector.tolist()
        return (vector / norm).tolist()

    async def _cache_get(self, text: str) -> Optional[CacheEntry]:
        try:
            return await self._cache.get(text, model_id=self.model_name)
        except Exception as e:
            logger.warning(f"[EmbeddingService] Cache lookup failed: {e}")
            return None

    async def _cache_put(self, text: str, vector: List[float]) -> None:
        try:
            await self._cache.put(text, vector, model_id=self.model_name)
        except Exception as e:
            logger.warning(f"[EmbeddingService] Cache write failed: {e}")
