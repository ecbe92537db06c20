"""Configuration management for Lanes."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
import logging
import re

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_WORKTREES_FOLDER = ".worktrees"
_DRIVE_PREFIX = re.compile(r"^[A-Za-z]:")

logger = logging.getLogger(__name__)


def normalize_relative_folder(value: str) -> str:
    """Normalize separators and strip leading/trailing slashes."""

    return value.strip().replace("\\", "/").strip("/")


def is_unsafe_relative_folder(value: str) -> bool:
    """True when a configured folder is rooted or would escape its base.

    The raw value is checked before normalization so a leading separator or
    drive prefix is never stripped into an innocent-looking relative path.
    """

    raw = value.strip()
    if not raw:
        return False
    if raw[0] in "/\\" or _DRIVE_PREFIX.match(raw):
        return True
    return ".." in normalize_relative_folder(raw).split("/")


class LanesSettings(BaseSettings):
    """Runtime configuration sourced from environment variables and optional .env file."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore", populate_by_name=True
    )

    worktrees_folder: str = Field(
        default=DEFAULT_WORKTREES_FOLDER, validation_alias="LANES_WORKTREES_FOLDER"
    )
    session_storage_path: str = Field(default="", validation_alias="LANES_SESSION_STORAGE_PATH")
    use_shared_storage: bool = Field(default=True, validation_alias="LANES_USE_SHARED_STORAGE")
    shared_storage_root: Path = Field(
        default=Path("~/.lanes/storage"), validation_alias="LANES_SHARED_STORAGE_ROOT"
    )
    prompts_folder: str = Field(default="", validation_alias="LANES_PROMPTS_FOLDER")
    workflows_folder: str = Field(
        default=".lanes/workflows", validation_alias="LANES_WORKFLOWS_FOLDER"
    )
    default_agent: str = Field(default="claude", validation_alias="LANES_DEFAULT_AGENT")
    git_path: str = Field(default="git", validation_alias="LANES_GIT_PATH")
    log_level: str = Field(default="INFO", validation_alias="LANES_LOG_LEVEL")
    repo_root: Path | None = Field(default=None, validation_alias="LANES_REPO_ROOT")
    worktree_path: Path | None = Field(default=None, validation_alias="LANES_WORKTREE")
    workflow_path: Path | None = Field(default=None, validation_alias="LANES_WORKFLOW_PATH")

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        normalized = value.strip().upper()
        if normalized not in {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}:
            raise ValueError(
                "LANES_LOG_LEVEL must be one of CRITICAL, ERROR, WARNING, INFO, DEBUG"
            )
        return normalized

    @field_validator("worktrees_folder", mode="before")
    @classmethod
    def _normalize_worktrees_folder(cls, value):
        if value is None:
            return DEFAULT_WORKTREES_FOLDER
        if is_unsafe_relative_folder(str(value)):
            logger.warning(
                "Invalid worktrees folder configuration; using default",
                extra={"worktrees_folder": value, "default": DEFAULT_WORKTREES_FOLDER},
            )
            return DEFAULT_WORKTREES_FOLDER
        return normalize_relative_folder(str(value)) or DEFAULT_WORKTREES_FOLDER

    @field_validator("session_storage_path", "prompts_folder", mode="before")
    @classmethod
    def _strip_optional_folder(cls, value):
        if value is None:
            return ""
        return str(value).strip()

    @field_validator("default_agent")
    @classmethod
    def _validate_default_agent(cls, value: str) -> str:
        from .agents import available_agents

        normalized = value.strip().lower()
        if normalized not in available_agents():
            raise ValueError(
                "LANES_DEFAULT_AGENT must be one of " + ", ".join(sorted(available_agents()))
            )
        return normalized


@lru_cache(maxsize=1)
def get_settings() -> LanesSettings:
    """Return cached settings instance."""

    settings = LanesSettings()
    settings.shared_storage_root = settings.shared_storage_root.expanduser().resolve()
    for attr in ("repo_root", "worktree_path", "workflow_path"):
        value = getattr(settings, attr)
        if value is not None:
            setattr(settings, attr, value.expanduser().resolve())
    return settings


__all__ = [
    "DEFAULT_WORKTREES_FOLDER",
    "LanesSettings",
    "get_settings",
    "is_unsafe_relative_folder",
    "normalize_relative_folder",
]
