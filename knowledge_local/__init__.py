"""Local knowledge index: semantic retrieval over a folder of text documents.

Keep this package import lightweight. The embedding backend (fastembed) is only
imported when a `TextEmbedder` is constructed.
"""

from .engine import KnowledgeEngine

__all__ = ["KnowledgeEngine"]
