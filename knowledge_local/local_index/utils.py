from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Iterable, Tuple


def sha256_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8", errors="ignore")).hexdigest()


def normalize_extensions(extensions: Iterable[str]) -> Tuple[str, ...]:
    """Lower-case, dot-prefixed, de-duplicated. Accepts "md", ".md" or "*.md"."""
    out: list[str] = []
    for ext in extensions:
        e = ext.strip().lower().lstrip("*")
        if not e:
            continue
        if not e.startswith("."):
            e = "." + e
        if e not in out:
            out.append(e)
    return tuple(out)


def safe_relpath(path: str | Path, start: str | Path) -> str:
    try:
        return str(Path(path).resolve().relative_to(Path(start).resolve()))
    except (OSError, ValueError):
        return str(path)
