from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv(override=False)


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() not in {"0", "false", "no", "off"}


DEFAULT_TOPIC_BUCKETS: Dict[str, List[str]] = {
    "Lecture 1- Introduction.md": ["introduction", "overview", "history", "basics"],
    "Lecture 2- Prompt Engineering.md": ["prompt", "prompting", "few-shot", "chain-of-thought"],
    "Lecture 3- Tools and Integrations.md": ["tool", "api", "integration", "plugin", "agent"],
    "Lecture 4- Ethics and Safety.md": ["ethics", "safety", "bias", "privacy", "risk"],
}


class GitConfig(BaseModel):
    remote: str = Field(default_factory=lambda: os.getenv("GIT_REMOTE", "origin"))
    default_branch: str = Field(default_factory=lambda: os.getenv("GIT_DEFAULT_BRANCH", "main"))
    enabled: bool = Field(default_factory=lambda: _env_flag("GIT_ENABLED", "true"))
    branch_prefix: str = "content-update"


class LoggingConfig(BaseModel):
    """Logging setup rendered into a ``logging.config.dictConfig`` mapping."""

    level: str = Field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file_path: Path | None = None

    @field_validator("level", mode="before")
    @classmethod
    def _normalize_level(cls, value: object) -> str:
        return str(value or "INFO").upper()

    def get_logging_config(self) -> Dict[str, Any]:
        handlers: Dict[str, Dict[str, Any]] = {
            "console": {
                "class": "logging.StreamHandler",
                "level": self.level,
                "formatter": "default",
            }
        }
        if self.file_path is not None:
            handlers["file"] = {
                "class": "logging.FileHandler",
                "level": self.level,
                "formatter": "default",
                "filename": str(self.file_path),
                "encoding": "utf-8",
            }
        return {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"default": {"format": self.format}},
            "handlers": handlers,
            "loggers": {
                "coursecraft": {
                    "level": self.level,
                    "handlers": list(handlers),
                    "propagate": False,
                },
            },
        }


class Settings(BaseModel):
    """Runtime configuration for imports, write-back and publishing."""

    db_path: Path = Field(default_factory=lambda: Path(os.getenv("COURSECRAFT_DB", "artifacts/coursecraft.db")))
    repo_root: Path = Field(default_factory=lambda: Path(os.getenv("COURSECRAFT_REPO_ROOT", "course_content")))
    import_enabled: bool = Field(default_factory=lambda: _env_flag("IMPORT_ENABLED", "true"))
    import_folder: Path = Field(default_factory=lambda: Path(os.getenv("IMPORT_FOLDER", "course_content")))
    import_pattern: str = Field(default_factory=lambda: os.getenv("IMPORT_PATTERN", "*.md"))
    topic_buckets: Dict[str, List[str]] = Field(default_factory=lambda: dict(DEFAULT_TOPIC_BUCKETS))
    git: GitConfig = Field(default_factory=GitConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {
        "frozen": True,
    }

    @field_validator("topic_buckets", mode="before")
    @classmethod
    def _normalize_buckets(cls, value: object) -> Dict[str, List[str]]:
        if value is None:
            return dict(DEFAULT_TOPIC_BUCKETS)
        if not isinstance(value, dict):
            raise ValueError("topic_buckets must map file names to keyword lists")
        buckets: Dict[str, List[str]] = {}
        for filename, keywords in value.items():
            if isinstance(keywords, str):
                keywords = [part for part in keywords.split(",")]
            buckets[str(filename)] = [str(k).strip().lower() for k in keywords if str(k).strip()]
        return buckets

    def resolve_paths(self, base_path: Path) -> "Settings":
        values = self.model_dump()
        for key in ("db_path", "repo_root", "import_folder"):
            raw = values.get(key)
            if raw is None:
                continue
            values[key] = (base_path / raw).resolve() if not Path(raw).is_absolute() else Path(raw)
        log_file = values["logging"].get("file_path")
        if log_file is not None and not Path(log_file).is_absolute():
            values["logging"]["file_path"] = (base_path / log_file).resolve()
        return Settings.model_validate(values)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance built from the environment."""

    return Settings()


__all__ = [
    "DEFAULT_TOPIC_BUCKETS",
    "GitConfig",
    "LoggingConfig",
    "Settings",
    "get_settings",
]
