"""Resolution of where per-session files live.

A session file is resolved, in order, to:

1. ``<worktree>/<configured relative path>/<filename>`` when a relative
   storage path is configured and it is safe (no ``..`` segment, not
   absolute). Unsafe values are discarded, never honoured.
2. ``<shared root>/<repo identifier>/<session name>/<filename>`` when shared
   storage is enabled and a :class:`StorageContext` is available.
3. ``<worktree>/<filename>`` otherwise.

The session name is always the leaf directory name of the worktree.
"""

from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import Path, PurePath

from ..config import LanesSettings, is_unsafe_relative_folder, normalize_relative_folder

logger = logging.getLogger(__name__)

_REPO_NAME_INVALID = re.compile(r"[^A-Za-z0-9_-]")
DEFAULT_PROMPTS_FOLDER = ".lanes/prompts"


@dataclass(frozen=True, slots=True)
class StorageContext:
    """Process-wide storage roots, built once at startup and passed explicitly."""

    shared_storage_root: Path
    repo_root: Path

    @classmethod
    def from_settings(cls, settings: LanesSettings, repo_root: Path | str) -> "StorageContext":
        return cls(
            shared_storage_root=Path(settings.shared_storage_root),
            repo_root=Path(repo_root),
        )

    @property
    def repo_identifier(self) -> str:
        return repo_identifier(self.repo_root)

    def session_dir(self, session_name: str) -> Path:
        """Shared-storage namespace for one session."""

        return self.shared_storage_root / self.repo_identifier / session_name


def repo_identifier(repo_path: Path | str) -> str:
    """Return ``<sanitized basename>-<8 hex chars>`` for a repository path.

    The hash covers the lower-cased path with ``\\`` folded to ``/`` and
    trailing separators removed, so casing and separator style do not change
    the identifier while two repositories sharing a basename still differ.
    """

    slashed = str(repo_path).replace("\\", "/")
    trimmed = slashed.rstrip("/") or slashed
    digest = hashlib.sha256(trimmed.lower().encode("utf-8")).hexdigest()[:8]
    basename = trimmed.rsplit("/", 1)[-1]
    return f"{_REPO_NAME_INVALID.sub('_', basename)}-{digest}"


def session_name_from_worktree(worktree_path: Path | str) -> str:
    return PurePath(worktree_path).name


def safe_relative_folder(configured: str | None) -> str | None:
    """Return the normalized folder, or ``None`` when empty or unsafe."""

    if not configured or not configured.strip():
        return None
    if is_unsafe_relative_folder(configured):
        logger.warning(
            "Ignoring unsafe relative storage path",
            extra={"configured_path": configured},
        )
        return None
    return normalize_relative_folder(configured) or None


def resolve_storage_path(
    worktree_path: Path | str,
    filename: str,
    *,
    configured_relative_path: str | None = None,
    use_shared_storage: bool = False,
    context: StorageContext | None = None,
) -> Path:
    """Return the absolute path of ``filename`` for the session at ``worktree_path``."""

    worktree = Path(worktree_path)
    relative = safe_relative_folder(configured_relative_path)
    if relative is not None:
        return worktree / relative / filename

    if use_shared_storage and context is not None:
        return context.session_dir(session_name_from_worktree(worktree)) / filename

    return worktree / filename


def is_valid_prompt_session_name(session_name: str | None) -> bool:
    if not session_name:
        return False
    return not any(marker in session_name for marker in ("/", "\\", ".."))


def prompts_path(
    session_name: str,
    repo_root: Path | str,
    prompts_folder: str | None = None,
) -> Path | None:
    """Return the prompt file for ``session_name``, or ``None`` for an unsafe name.

    The session name becomes a file name here, so any separator or ``..`` is
    refused outright rather than sanitized.
    """

    if not is_valid_prompt_session_name(session_name):
        logger.warning("Invalid session name for prompts path", extra={"session_name": session_name})
        return None
    folder = safe_relative_folder(prompts_folder) or DEFAULT_PROMPTS_FOLDER
    return Path(repo_root) / folder / f"{session_name}.txt"


__all__ = [
    "DEFAULT_PROMPTS_FOLDER",
    "StorageContext",
    "is_valid_prompt_session_name",
    "prompts_path",
    "repo_identifier",
    "resolve_storage_path",
    "safe_relative_folder",
    "session_name_from_worktree",
]
