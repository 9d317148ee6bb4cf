from __future__ import annotations


SUPPORTED_TEXT_EXTS = (".md", ".txt")

DEFAULT_MODEL_NAME = "BAAI/bge-small-en-v1.5"

INDEX_FILENAME = "index.json"
SNAPSHOT_SUFFIX = ".json"
SNAPSHOT_VERSION = 1
