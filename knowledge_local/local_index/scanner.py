from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, Sequence

import structlog

from ..errors import ScanError
from .constants import SUPPORTED_TEXT_EXTS
from .utils import normalize_extensions, sha256_text

log = structlog.get_logger()


@dataclass(frozen=True)
class ScannedFile:
    path: str
    content: str
    last_modified: int
    content_hash: str


@dataclass
class ScanReport:
    files: Dict[str, ScannedFile] = field(default_factory=dict)
    skipped: int = 0

    def __len__(self) -> int:
        return len(self.files)


class DocumentScanner:
    """Walks the knowledge folder and reads every eligible text file.

    Per-file problems (unreadable, empty after trimming) are logged and
    skipped. Only a failure to walk the root itself raises `ScanError`.
    """

    def __init__(self, root: str | Path, extensions: Sequence[str] = SUPPORTED_TEXT_EXTS) -> None:
        self.root = Path(root).expanduser().absolute()
        self.extensions = normalize_extensions(extensions)

    def iter_files(self) -> Iterator[Path]:
        def on_error(err: OSError) -> None:
            if err.filename is not None and Path(err.filename) == self.root:
                raise ScanError(f"Cannot read knowledge folder {self.root}: {err}") from err
            log.warning("scan.dir_skipped", path=err.filename, error=str(err))

        for dirpath, dirnames, filenames in os.walk(self.root, onerror=on_error):
            dirnames.sort()
            for name in sorted(filenames):
                p = Path(dirpath) / name
                if p.suffix.lower() in self.extensions:
                    yield p

    def scan(self) -> ScanReport:
        report = ScanReport()

        if not self.root.exists():
            try:
                self.root.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ScanError(f"Cannot create knowledge folder {self.root}: {e}") from e
            log.info("scan.root_created", root=str(self.root))
            return report

        if not self.root.is_dir():
            raise ScanError(f"Knowledge path is not a directory: {self.root}")

        for file_path in self._unique(self.iter_files()):
            key = str(file_path)
            try:
                if not file_path.is_file():
                    continue
                mtime = int(file_path.stat().st_mtime)
                content = file_path.read_text(encoding="utf-8")
            except UnicodeDecodeError as e:
                report.skipped += 1
                log.warning("scan.file_skipped", path=key, reason="undecodable", error=str(e))
                continue
            except OSError as e:
                report.skipped += 1
                log.warning("scan.file_skipped", path=key, reason="unreadable", error=str(e))
                continue

            if not content.strip():
                report.skipped += 1
                log.debug("scan.file_skipped", path=key, reason="empty")
                continue

            report.files[key] = ScannedFile(
                path=key,
                content=content,
                last_modified=mtime,
                content_hash=sha256_text(content),
            )

        log.debug("scan.completed", root=str(self.root), files=len(report), skipped=report.skipped)
        return report

    @staticmethod
    def _unique(paths: Iterable[Path]) -> Iterator[Path]:
        seen: set[str] = set()
        for p in paths:
            key = str(p)
            if key in seen:
                continue
            seen.add(key)
            yield p
