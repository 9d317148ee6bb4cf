"""Single-file JSON snapshot of the knowledge index.

Layout::

    {
      "version": 1,
      "model": "BAAI/bge-small-en-v1.5",
      "documents": [
        {"id": ..., "path": ..., "content": ..., "embedding": [...],
         "last_modified": 1700000000, "content_hash": "..."}
      ]
    }

`version`, `model` and `content_hash` are optional on read, so a bare
``{"documents": [...]}`` file still loads.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import structlog

from ..errors import IndexWriteError
from .constants import INDEX_FILENAME, SNAPSHOT_SUFFIX, SNAPSHOT_VERSION

log = structlog.get_logger()


@dataclass(frozen=True)
class Document:
    id: str
    path: str
    content: str
    embedding: Tuple[float, ...]
    last_modified: int
    content_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "path": self.path,
            "content": self.content,
            "embedding": list(self.embedding),
            "last_modified": self.last_modified,
            "content_hash": self.content_hash,
        }

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> "Document":
        doc_id = raw["id"]
        path = raw["path"]
        content = raw["content"]
        if not isinstance(doc_id, str) or not isinstance(path, str) or not path:
            raise ValueError("document id/path must be non-empty strings")
        if not isinstance(content, str) or not content.strip():
            raise ValueError(f"document {path!r} has no content")
        embedding = tuple(float(x) for x in raw["embedding"])
        if not embedding:
            raise ValueError(f"document {path!r} has an empty embedding")
        content_hash = raw.get("content_hash")
        return cls(
            id=doc_id,
            path=path,
            content=content,
            embedding=embedding,
            last_modified=int(raw["last_modified"]),
            content_hash=str(content_hash) if content_hash else None,
        )


@dataclass(frozen=True)
class KnowledgeIndex:
    documents: Tuple[Document, ...] = ()
    model: Optional[str] = None

    def __len__(self) -> int:
        return len(self.documents)

    def by_path(self) -> Dict[str, Document]:
        return {d.path: d for d in self.documents}

    @property
    def dimension(self) -> Optional[int]:
        return len(self.documents[0].embedding) if self.documents else None

    def is_consistent(self) -> bool:
        """True when every embedding has the same length."""
        return len({len(d.embedding) for d in self.documents}) <= 1


def resolve_index_file(index_path: str | Path) -> Path:
    """Snapshot file for a configured path: used as-is when it names a
    ``.json`` file, otherwise ``index.json`` inside it."""
    p = Path(index_path)
    if p.suffix.lower() == SNAPSHOT_SUFFIX:
        return p
    return p / INDEX_FILENAME


class IndexStore:
    def __init__(self, path: str | Path) -> None:
        self.path = resolve_index_file(path)

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> Optional[KnowledgeIndex]:
        """Read the snapshot. Missing or malformed files yield None, never raise."""
        if not self.path.exists():
            return None
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            index = _decode_index(raw)
        except (OSError, ValueError, TypeError, KeyError) as e:
            log.warning("store.load_failed", path=str(self.path), error=str(e))
            return None

        log.debug("store.loaded", path=str(self.path), documents=len(index), model=index.model)
        return index

    def save(self, index: KnowledgeIndex) -> None:
        """Write the whole snapshot, replacing the previous file atomically.

        The payload is serialized in memory, written to a temp file in the same
        directory and moved over the snapshot with `os.replace`.
        """
        payload = {
            "version": SNAPSHOT_VERSION,
            "model": index.model,
            "documents": [d.to_dict() for d in index.documents],
        }
        try:
            data = json.dumps(payload, ensure_ascii=False, indent=2)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp, self.path)
            except BaseException:
                with contextlib.suppress(OSError):
                    os.unlink(tmp)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise IndexWriteError(f"Failed to write index snapshot {self.path}: {e}") from e

        log.debug("store.saved", path=str(self.path), documents=len(index))

    def clear(self) -> bool:
        if not self.path.exists():
            return False
        self.path.unlink()
        return True


def _decode_index(raw: Any) -> KnowledgeIndex:
    if not isinstance(raw, dict):
        raise ValueError("snapshot root must be an object")
    version = raw.get("version", SNAPSHOT_VERSION)
    if version != SNAPSHOT_VERSION:
        raise ValueError(f"unsupported snapshot version {version!r}")
    docs_raw = raw.get("documents")
    if not isinstance(docs_raw, list):
        raise ValueError("snapshot 'documents' must be a list")

    documents = []
    seen: set[str] = set()
    for item in docs_raw:
        if not isinstance(item, dict):
            raise ValueError("snapshot documents must be objects")
        doc = Document.from_dict(item)
        if doc.path in seen:
            raise ValueError(f"duplicate document path {doc.path!r}")
        seen.add(doc.path)
        documents.append(doc)

    model = raw.get("model")
    return KnowledgeIndex(documents=tuple(documents), model=str(model) if model else None)
