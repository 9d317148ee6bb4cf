from __future__ import annotations

import asyncio
import os
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import numpy as np
import structlog

from ..errors import EmbeddingError
from .constants import DEFAULT_MODEL_NAME

log = structlog.get_logger()

EMBED_BATCH_SIZE = 64


class EmbeddingProvider(Protocol):
    """Anything that turns a batch of texts into fixed-length vectors.

    `available` is False when the model could not be loaded; `init_error`
    then carries the reason. `embed` raises `EmbeddingError` on failure and
    returns exactly one vector per input text otherwise.
    """

    model_name: str

    @property
    def available(self) -> bool: ...

    @property
    def init_error(self) -> Optional[str]: ...

    async def embed(self, texts: Sequence[str]) -> List[List[float]]: ...


class TextEmbedder:
    """Embedding wrapper.

    Uses `fastembed` (ONNX) for better packaging vs torch. Model loading
    failures are captured instead of raised, so the host can keep running in
    a degraded mode.
    """

    def __init__(
        self,
        cache_dir: str | Path,
        model_name: str = DEFAULT_MODEL_NAME,
        batch_size: int = EMBED_BATCH_SIZE,
    ) -> None:
        self.cache_dir = Path(cache_dir)
        self.model_name = model_name
        self.batch_size = batch_size

        self._fastembed = None
        self._init_error: Optional[str] = None

        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            os.environ.setdefault("FASTEMBED_CACHE_PATH", str(self.cache_dir))

            from fastembed import TextEmbedding  # type: ignore

            self._fastembed = TextEmbedding(model_name=model_name)
            log.info("embedder.loaded", model=model_name, cache_dir=str(self.cache_dir))
        except Exception as e:
            self._fastembed = None
            self._init_error = str(e)
            log.error("embedder.init_failed", model=model_name, error=self._init_error)

    @property
    def available(self) -> bool:
        return self._fastembed is not None

    @property
    def init_error(self) -> Optional[str]:
        return self._init_error

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        if self._fastembed is None:
            raise EmbeddingError(f"No embedding backend available: {self._init_error}")
        batch = list(texts)
        if not batch:
            return []
        try:
            return await asyncio.to_thread(self._embed_batch, batch)
        except Exception as e:
            raise EmbeddingError(f"Embedding {len(batch)} text(s) failed: {e}") from e

    def _embed_batch(self, texts: List[str]) -> List[List[float]]:
        out: List[List[float]] = []
        for vec in self._fastembed.embed(texts, batch_size=self.batch_size):
            arr = np.asarray(vec, dtype=np.float32)
            norm = float(np.linalg.norm(arr))
            if norm > 0:
                arr = arr / norm
            out.append(arr.astype(np.float32).tolist())
        return out
