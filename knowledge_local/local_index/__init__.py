"""Indexing + search core.

Raw files stay local; only contents, timestamps and embeddings are kept, in a
single JSON snapshot.
"""

from .cache import IndexCache
from .embedder import EmbeddingProvider, TextEmbedder
from .indexer import IndexStats, LocalIndexer, reconcile
from .scanner import DocumentScanner, ScannedFile, ScanReport
from .searcher import LocalSearcher, SearchResult, cosine_similarity, rank
from .store import Document, IndexStore, KnowledgeIndex

__all__ = [
    "Document",
    "DocumentScanner",
    "EmbeddingProvider",
    "IndexCache",
    "IndexStats",
    "IndexStore",
    "KnowledgeIndex",
    "LocalIndexer",
    "LocalSearcher",
    "ScanReport",
    "ScannedFile",
    "SearchResult",
    "TextEmbedder",
    "cosine_similarity",
    "rank",
    "reconcile",
]
