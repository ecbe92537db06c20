"""Storage path resolution and persisted-file helpers."""

from .files import atomic_write_text, read_json, read_json_object, write_json
from .paths import (
    DEFAULT_PROMPTS_FOLDER,
    StorageContext,
    prompts_path,
    repo_identifier,
    resolve_storage_path,
    session_name_from_worktree,
)

__all__ = [
    "DEFAULT_PROMPTS_FOLDER",
    "StorageContext",
    "atomic_write_text",
    "prompts_path",
    "read_json",
    "read_json_object",
    "repo_identifier",
    "resolve_storage_path",
    "session_name_from_worktree",
    "write_json",
]
