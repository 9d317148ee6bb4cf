"""Pydantic configuration models.

Configuration is read from a TOML file::

    [knowledge]
    enabled = true
    knowledge_path = "knowledge"
    index_path = "data/knowledge_index"   # or ".../index.json"
    max_results = 3
    min_score = 0.5

    [logging]
    level = "INFO"
    format = "console"

Relative paths resolve against `base_dir`, which defaults to the directory of
the config file (or the current directory when no file is given).
"""

from __future__ import annotations

import tomllib
from pathlib import Path
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .local_index.constants import DEFAULT_MODEL_NAME, SUPPORTED_TEXT_EXTS
from .local_index.store import resolve_index_file
from .local_index.utils import normalize_extensions

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class KnowledgeConfig(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    enabled: bool = True
    knowledge_path: Path = Path("knowledge")
    index_path: Path = Path("data/knowledge_index")
    max_results: int = Field(default=3, ge=1)
    min_score: float = Field(default=0.5, ge=-1.0, le=1.0)
    extensions: list[str] = Field(default_factory=lambda: list(SUPPORTED_TEXT_EXTS))
    model_name: str = DEFAULT_MODEL_NAME
    cache_dir: Path = Path("data/models")
    base_dir: Optional[Path] = None

    @field_validator("extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        exts = list(normalize_extensions(v))
        if not exts:
            raise ValueError("at least one file extension is required")
        return exts

    def _resolve(self, p: Path) -> Path:
        p = p.expanduser()
        if p.is_absolute():
            return p
        return (self.base_dir or Path.cwd()) / p

    @property
    def knowledge_dir(self) -> Path:
        return self._resolve(self.knowledge_path)

    @property
    def index_file(self) -> Path:
        return resolve_index_file(self._resolve(self.index_path))

    @property
    def model_cache_dir(self) -> Path:
        return self._resolve(self.cache_dir)


class LoggingConfig(BaseModel):
    level: LogLevel = "INFO"
    format: Literal["console", "json"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def upper_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class AppConfig(BaseModel):
    knowledge: KnowledgeConfig = Field(default_factory=KnowledgeConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_config(path: str | Path | None = None, **overrides: Any) -> AppConfig:
    """Load configuration from a TOML file, then apply `overrides` to [knowledge].

    A missing `path` (None) gives the defaults. A path that does not exist or
    fails to parse/validate raises `ConfigError`.
    """
    data: dict[str, Any] = {}
    base_dir = Path.cwd()
    if path is not None:
        p = Path(path).expanduser()
        try:
            with p.open("rb") as f:
                data = tomllib.load(f)
        except FileNotFoundError as e:
            raise ConfigError("config file not found", str(p)) from e
        except (OSError, tomllib.TOMLDecodeError) as e:
            raise ConfigError(f"cannot parse config: {e}", str(p)) from e
        base_dir = p.resolve().parent

    knowledge = dict(data.get("knowledge", {}))
    knowledge.update({k: v for k, v in overrides.items() if v is not None})
    knowledge.setdefault("base_dir", base_dir)

    try:
        return AppConfig(knowledge=knowledge, logging=data.get("logging", {}))
    except ValidationError as e:
        raise ConfigError(f"invalid configuration: {e}", str(path) if path else None) from e
