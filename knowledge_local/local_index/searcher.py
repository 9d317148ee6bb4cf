from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np
import structlog

from ..errors import EmbeddingError
from .cache import IndexCache
from .embedder import EmbeddingProvider
from .store import Document, IndexStore, KnowledgeIndex

log = structlog.get_logger()


@dataclass
class SearchResult:
    path: str
    content: str
    score: float


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine of the angle between `a` and `b`.

    0.0 when either vector has zero magnitude or the lengths differ.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.ndim != 1 or va.shape != vb.shape:
        return 0.0
    na = float(np.linalg.norm(va))
    nb = float(np.linalg.norm(vb))
    if na == 0.0 or nb == 0.0:
        return 0.0
    score = float(np.dot(va, vb) / (na * nb))
    if not np.isfinite(score):
        return 0.0
    return max(-1.0, min(1.0, score))


def score_documents(query_vec: Sequence[float], documents: Sequence[Document]) -> np.ndarray:
    """Cosine score of every document against the query, in document order."""
    scores = np.zeros(len(documents), dtype=np.float64)
    q = np.asarray(query_vec, dtype=np.float64)
    q_norm = float(np.linalg.norm(q)) if q.ndim == 1 else 0.0
    if q_norm == 0.0 or not documents:
        return scores

    # Documents with a different dimension keep a score of 0
    idx = [i for i, d in enumerate(documents) if len(d.embedding) == q.shape[0]]
    if not idx:
        return scores

    mat = np.asarray([documents[i].embedding for i in idx], dtype=np.float64)
    norms = np.linalg.norm(mat, axis=1)
    dots = mat @ q
    with np.errstate(divide="ignore", invalid="ignore"):
        s = np.where(norms > 0, dots / (norms * q_norm), 0.0)
    s = np.clip(np.nan_to_num(s, nan=0.0, posinf=0.0, neginf=0.0), -1.0, 1.0)
    scores[idx] = s
    return scores


def rank(
    query_vec: Sequence[float],
    documents: Sequence[Document],
    max_results: int,
    min_score: float,
) -> List[SearchResult]:
    """Documents scoring at least `min_score`, best first, at most `max_results`.

    Equal scores keep their original document order.
    """
    if max_results <= 0 or not documents:
        return []
    scores = score_documents(query_vec, documents)
    keep = [i for i in range(len(documents)) if scores[i] >= min_score]
    keep.sort(key=lambda i: -scores[i])
    return [
        SearchResult(path=documents[i].path, content=documents[i].content, score=float(scores[i]))
        for i in keep[:max_results]
    ]


class LocalSearcher:
    """Brute-force cosine search over the cached index.

    Reads the index from the cache; when nothing is cached yet, the snapshot
    on disk is loaded once. It never starts an indexing pass.
    """

    def __init__(
        self,
        store: IndexStore,
        cache: IndexCache,
        provider: EmbeddingProvider,
        max_results: int = 3,
        min_score: float = 0.5,
    ) -> None:
        self.store = store
        self.cache = cache
        self.provider = provider
        self.max_results = max_results
        self.min_score = min_score

    async def current_index(self) -> Optional[KnowledgeIndex]:
        index = self.cache.read()
        if index is not None:
            return index

        loaded = await asyncio.to_thread(self.store.load)
        if loaded is None:
            return None
        if loaded.model and loaded.model != self.provider.model_name:
            log.warning(
                "query.index_model_mismatch",
                index_model=loaded.model,
                provider_model=self.provider.model_name,
            )
            return None
        # An ingest that finished meanwhile wins over the lazily loaded copy
        return self.cache.write_if_absent(loaded)

    async def search(
        self,
        query: str,
        limit: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> List[SearchResult]:
        if not query or not query.strip():
            return []

        index = await self.current_index()
        if index is None or not index.documents:
            return []

        q_vec = await self._embed_query(query)
        results = rank(
            q_vec,
            index.documents,
            max_results=self.max_results if limit is None else int(limit),
            min_score=self.min_score if min_score is None else float(min_score),
        )
        log.debug(
            "query.completed",
            documents=len(index),
            results=len(results),
            top_score=round(results[0].score, 4) if results else None,
        )
        return results

    async def query(self, query: str) -> List[str]:
        return [r.content for r in await self.search(query)]

    async def _embed_query(self, query: str) -> List[float]:
        try:
            vectors = await self.provider.embed([query])
        except EmbeddingError:
            log.warning("query.embedding_failed", exc_info=True)
            raise
        except Exception as e:
            log.warning("query.embedding_failed", exc_info=True)
            raise EmbeddingError(f"Embedding provider failed: {e}") from e
        if len(vectors) != 1 or not len(vectors[0]):
            raise EmbeddingError(f"Embedding provider returned {len(vectors)} vectors for 1 query")
        return [float(x) for x in vectors[0]]
