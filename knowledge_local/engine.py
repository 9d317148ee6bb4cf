from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import structlog

from .config import KnowledgeConfig
from .errors import EmbeddingError
from .local_index.cache import IndexCache
from .local_index.embedder import EmbeddingProvider, TextEmbedder
from .local_index.indexer import IndexStats, LocalIndexer, ProgressCb
from .local_index.scanner import DocumentScanner
from .local_index.searcher import LocalSearcher, SearchResult
from .local_index.store import IndexStore

log = structlog.get_logger()


class KnowledgeEngine:
    """Host-facing entry point: ingest the knowledge folder, answer queries.

    If the embedding provider failed to initialize, the engine stays usable
    but inert: `ingest()` returns 0 and `query()` returns [] for the whole
    process lifetime. `is_operational()` / `get_init_error()` report why.

    The cache is shared by the indexer (publishes finished passes) and the
    searcher (reads, lazily loads the snapshot once). Pass one in to share it
    with other components.
    """

    def __init__(
        self,
        config: KnowledgeConfig,
        provider: Optional[EmbeddingProvider] = None,
        cache: Optional[IndexCache] = None,
    ) -> None:
        self.config = config
        if provider is None:
            provider = TextEmbedder(cache_dir=config.model_cache_dir, model_name=config.model_name)
        self.provider = provider
        self.cache = cache if cache is not None else IndexCache()

        self.store = IndexStore(config.index_file)
        self.scanner = DocumentScanner(config.knowledge_dir, config.extensions)
        self.indexer = LocalIndexer(self.scanner, self.store, self.cache, provider)
        self.searcher = LocalSearcher(
            self.store,
            self.cache,
            provider,
            max_results=config.max_results,
            min_score=config.min_score,
        )
        self._ingest_task: Optional[asyncio.Task[int]] = None

        if not self.is_operational():
            log.error("knowledge.not_operational", error=self.get_init_error())

    def is_operational(self) -> bool:
        return bool(self.provider.available)

    def get_init_error(self) -> Optional[str]:
        return self.provider.init_error

    def _enabled(self, action: str) -> bool:
        if not self.config.enabled:
            log.debug("knowledge.disabled", action=action)
            return False
        if not self.is_operational():
            log.debug("knowledge.degraded", action=action, error=self.get_init_error())
            return False
        return True

    async def ingest(self, progress: Optional[ProgressCb] = None) -> int:
        """Run one indexing pass; returns the number of indexed documents."""
        stats = await self.ingest_with_stats(progress)
        return stats.total

    async def ingest_with_stats(self, progress: Optional[ProgressCb] = None) -> IndexStats:
        if not self._enabled("ingest"):
            return IndexStats()
        return await self.indexer.ingest(progress)

    async def query(self, text: str) -> List[str]:
        """Contents of the best matching documents, best first.

        Raises `EmbeddingError` when the provider fails on the query.
        """
        return [r.content for r in await self.search(text)]

    async def search(
        self,
        text: str,
        limit: Optional[int] = None,
        min_score: Optional[float] = None,
    ) -> List[SearchResult]:
        if not self._enabled("query"):
            return []
        return await self.searcher.search(text, limit=limit, min_score=min_score)

    def start_background_ingest(self) -> asyncio.Task[int]:
        """Schedule an indexing pass without waiting for it.

        While a pass is still running the same task is returned. Failures are
        logged; awaiting the task re-raises them.
        """
        if self._ingest_task is not None and not self._ingest_task.done():
            return self._ingest_task
        task = asyncio.get_running_loop().create_task(self.ingest(), name="knowledge-ingest")
        task.add_done_callback(_log_ingest_result)
        self._ingest_task = task
        return task

    async def gather_context(self, text: str) -> str:
        """Prompt-ready block of matching snippets, or "" when there is none.

        Query failures are logged as warnings and yield "".
        """
        try:
            snippets = await self.query(text)
        except EmbeddingError as e:
            log.warning("knowledge.context_unavailable", error=str(e))
            return ""
        if not snippets:
            return ""
        body = "\n".join(f"- {s.strip()}" for s in snippets)
        return f"Based on local knowledge:\n{body}\n\n"

    def stats(self) -> Dict[str, Any]:
        index = self.cache.read()
        if index is None:
            index = self.store.load()
        return {
            "enabled": self.config.enabled,
            "operational": self.is_operational(),
            "init_error": self.get_init_error(),
            "knowledge_dir": str(self.scanner.root),
            "index_file": str(self.store.path),
            "documents": len(index) if index is not None else 0,
            "model": index.model if index is not None else None,
            "dimension": index.dimension if index is not None else None,
        }

    def clear_index(self) -> bool:
        """Delete the snapshot file and forget the cached index."""
        removed = self.store.clear()
        self.cache.clear()
        log.info("knowledge.index_cleared", path=str(self.store.path), removed=removed)
        return removed


def _log_ingest_result(task: asyncio.Task[int]) -> None:
    if task.cancelled():
        log.info("ingest.background_cancelled")
        return
    exc = task.exception()
    if exc is not None:
        log.error("ingest.background_failed", error=str(exc), error_type=type(exc).__name__)
    else:
        log.info("ingest.background_completed", documents=task.result())
