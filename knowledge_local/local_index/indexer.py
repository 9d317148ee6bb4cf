from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Mapping, Optional, Sequence

import structlog

from ..errors import EmbeddingError
from .cache import IndexCache
from .embedder import EmbeddingProvider
from .scanner import DocumentScanner, ScannedFile
from .store import Document, IndexStore, KnowledgeIndex

log = structlog.get_logger()

ProgressCb = Callable[[str], None]


@dataclass
class IndexStats:
    scanned: int = 0
    reused: int = 0
    embedded: int = 0
    dropped: int = 0
    skipped: int = 0
    total: int = 0


@dataclass
class ReconcilePlan:
    """Outcome of comparing a scan against the previous snapshot."""

    reused: List[Document] = field(default_factory=list)
    to_embed: List[ScannedFile] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


def reconcile(previous: Mapping[str, Document], scanned: Mapping[str, ScannedFile]) -> ReconcilePlan:
    """Decide, per scanned file, whether its previous document can be reused.

    A document is carried forward verbatim when its `last_modified` matches the
    file on disk. When only the timestamp moved but the content hash is the
    same, the embedding and id are kept and the timestamp is refreshed.
    Previous paths missing from the scan are dropped.
    """
    plan = ReconcilePlan()
    for path, f in scanned.items():
        prev = previous.get(path)
        if prev is not None and prev.last_modified == f.last_modified:
            plan.reused.append(prev)
        elif prev is not None and prev.content_hash and prev.content_hash == f.content_hash:
            plan.reused.append(replace(prev, last_modified=f.last_modified))
        else:
            plan.to_embed.append(f)
    plan.dropped = [p for p in previous if p not in scanned]
    return plan


class LocalIndexer:
    """Brings the on-disk snapshot and the cache up to date with the knowledge folder.

    Only new or modified files are embedded, in a single batch call. A
    provider failure aborts the pass before anything is written.
    """

    def __init__(
        self,
        scanner: DocumentScanner,
        store: IndexStore,
        cache: IndexCache,
        provider: EmbeddingProvider,
    ) -> None:
        self.scanner = scanner
        self.store = store
        self.cache = cache
        self.provider = provider
        self._lock = asyncio.Lock()
        # Vector length the provider currently returns; learned from the first batch
        self._dimension: Optional[int] = None

    def load_previous(self) -> KnowledgeIndex:
        previous = self.store.load()
        if previous is None:
            return KnowledgeIndex()
        if previous.model and previous.model != self.provider.model_name:
            log.info(
                "ingest.model_changed",
                previous=previous.model,
                current=self.provider.model_name,
                documents=len(previous),
            )
            return KnowledgeIndex()
        if not previous.is_consistent():
            log.warning("ingest.mixed_dimensions", path=str(self.store.path))
            return KnowledgeIndex()
        return previous

    async def ingest(self, progress: Optional[ProgressCb] = None) -> IndexStats:
        # One pass at a time; a re-trigger waits for the running pass.
        async with self._lock:
            return await self._ingest(progress)

    async def _ingest(self, progress: Optional[ProgressCb]) -> IndexStats:
        started = time.monotonic()
        stats = IndexStats()

        def report(msg: str) -> None:
            if progress:
                progress(msg)

        # Phase 1: previous snapshot, keyed by path
        report("Opening local index...")
        previous = await asyncio.to_thread(self.load_previous)

        # Phase 2: scan the knowledge folder
        report("Scanning files...")
        scan = await asyncio.to_thread(self.scanner.scan)
        stats.scanned = len(scan)
        stats.skipped = scan.skipped

        # Phase 3: decide what needs embedding
        plan = reconcile(previous.by_path(), scan.files)
        stats.dropped = len(plan.dropped)
        if plan.dropped:
            log.debug("ingest.dropped", paths=plan.dropped)

        docs: Dict[str, Document] = {d.path: d for d in plan.reused}
        fresh: Dict[str, List[float]] = {}

        # Phase 4: batch embed new + modified files
        if plan.to_embed:
            report(f"Batch embedding {len(plan.to_embed)} documents...")
            vectors = await self._embed([f.content for f in plan.to_embed])
            for f, vec in zip(plan.to_embed, vectors):
                docs[f.path] = Document(
                    id=str(uuid.uuid4()),
                    path=f.path,
                    content=f.content,
                    embedding=tuple(vec),
                    last_modified=f.last_modified,
                    content_hash=f.content_hash,
                )
            stats.embedded = len(plan.to_embed)
            self._dimension = len(vectors[0])
        elif plan.reused and self._dimension is None:
            # Nothing changed on disk: one reused document reveals the provider's width
            first = plan.reused[0]
            (vec,) = await self._embed([first.content])
            self._dimension = len(vec)
            fresh[first.path] = vec

        # Reused vectors from a provider with another dimension are stale
        dim = self._dimension
        stale = [d for d in plan.reused if dim is not None and len(d.embedding) != dim]
        if stale:
            log.warning("ingest.dimension_mismatch", expected=dim, stale=len(stale))
            report(f"Re-embedding {len(stale)} stale documents...")
            missing = [d for d in stale if d.path not in fresh]
            if missing:
                vectors = await self._embed([d.content for d in missing])
                fresh.update((d.path, vec) for d, vec in zip(missing, vectors))
            for d in stale:
                docs[d.path] = replace(d, id=str(uuid.uuid4()), embedding=tuple(fresh[d.path]))
            stats.embedded += len(stale)

        stats.reused = len(plan.reused) - (stats.embedded - len(plan.to_embed))

        index = KnowledgeIndex(
            documents=tuple(docs[p] for p in scan.files),
            model=self.provider.model_name,
        )
        stats.total = len(index)

        # Phase 5: persist, then publish
        if index == previous and self.store.exists():
            log.debug("ingest.unchanged", path=str(self.store.path))
        else:
            report(f"Saving {stats.total} documents to index...")
            await asyncio.to_thread(self.store.save, index)
        self.cache.write(index)

        log.info(
            "ingest.completed",
            total=stats.total,
            embedded=stats.embedded,
            reused=stats.reused,
            dropped=stats.dropped,
            skipped=stats.skipped,
            elapsed_s=round(time.monotonic() - started, 3),
        )
        report(f"Done. Indexed: {stats.total}, embedded: {stats.embedded}, reused: {stats.reused}")
        return stats

    async def _embed(self, texts: Sequence[str]) -> List[List[float]]:
        try:
            vectors = await self.provider.embed(list(texts))
        except EmbeddingError:
            log.error("ingest.embedding_failed", batch=len(texts), exc_info=True)
            raise
        except Exception as e:
            log.error("ingest.embedding_failed", batch=len(texts), exc_info=True)
            raise EmbeddingError(f"Embedding provider failed: {e}") from e

        if len(vectors) != len(texts):
            raise EmbeddingError(f"Embedding provider returned {len(vectors)} vectors for {len(texts)} texts")
        dims = {len(v) for v in vectors}
        if len(dims) != 1 or 0 in dims:
            raise EmbeddingError(f"Embedding provider returned inconsistent dimensions: {sorted(dims)}")
        return [[float(x) for x in v] for v in vectors]
