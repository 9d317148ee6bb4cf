"""Shared fixtures: a deterministic, call-counting embedding provider."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from knowledge_local.config import KnowledgeConfig
from knowledge_local.engine import KnowledgeEngine
from knowledge_local.errors import EmbeddingError


class FakeEmbedder:
    """Bag-of-words hashing embedder.

    Identical texts always map to identical vectors. `vectors` pins exact
    vectors for given texts; `fail_with` makes every call raise.
    """

    def __init__(
        self,
        dim: int = 16,
        vectors: Optional[Dict[str, Sequence[float]]] = None,
        init_error: Optional[str] = None,
        model_name: str = "fake-embedder",
    ) -> None:
        self.dim = dim
        self.vectors = dict(vectors or {})
        self.model_name = model_name
        self.calls: List[List[str]] = []
        self.fail_with: Optional[Exception] = None
        self._init_error = init_error

    @property
    def available(self) -> bool:
        return self._init_error is None

    @property
    def init_error(self) -> Optional[str]:
        return self._init_error

    @property
    def embedded_texts(self) -> List[str]:
        return [t for batch in self.calls for t in batch]

    def vector_for(self, text: str) -> List[float]:
        if text in self.vectors:
            return [float(x) for x in self.vectors[text]]
        vec = [0.0] * self.dim
        for token in text.lower().split():
            h = int(hashlib.md5(token.encode("utf-8")).hexdigest(), 16)
            vec[h % self.dim] += 1.0
        return vec

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail_with is not None:
            raise self.fail_with
        return [self.vector_for(t) for t in texts]


def write_doc(path: Path, text: str, mtime: Optional[int] = None) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    if mtime is not None:
        os.utime(path, (mtime, mtime))
    return path


@pytest.fixture
def knowledge_dir(tmp_path: Path) -> Path:
    d = tmp_path / "knowledge"
    d.mkdir()
    return d


@pytest.fixture
def config(tmp_path: Path, knowledge_dir: Path) -> KnowledgeConfig:
    return KnowledgeConfig(
        knowledge_path=knowledge_dir,
        index_path=tmp_path / "data" / "rag_index",
        max_results=3,
        min_score=0.5,
    )


@pytest.fixture
def provider() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def engine(config: KnowledgeConfig, provider: FakeEmbedder) -> KnowledgeEngine:
    return KnowledgeEngine(config, provider=provider)


@pytest.fixture
def failing_provider() -> FakeEmbedder:
    p = FakeEmbedder()
    p.fail_with = EmbeddingError("model unavailable")
    return p
