"""Error types for the knowledge index.

Degraded states (provider failed to load, feature disabled, nothing indexed)
are not errors: they surface as empty results. These exceptions cover the
failures a caller has to see.
"""

from __future__ import annotations


class KnowledgeError(Exception):
    """Base error for the knowledge index."""


class EmbeddingError(KnowledgeError):
    """The embedding provider failed on a batch (indexing or query)."""


class ScanError(KnowledgeError):
    """The knowledge root could not be walked."""


class IndexWriteError(KnowledgeError):
    """The snapshot could not be persisted. The previous file is left as it was."""


class ConfigError(KnowledgeError):
    """Configuration file could not be parsed or failed validation."""

    def __init__(self, message: str, path: str | None = None) -> None:
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        base = super().__str__()
        return f"{self.path}: {base}" if self.path else base
