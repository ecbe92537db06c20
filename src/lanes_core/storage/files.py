"""JSON file helpers for persisted session records."""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write ``content`` to ``path`` via a temp file and ``os.replace``."""

    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink()


def write_json(path: Path, data: Any) -> None:
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")


def read_json(path: Path) -> Any | None:
    """Return parsed JSON, or ``None`` if the file is missing.

    Malformed JSON still raises ``json.JSONDecodeError``; callers decide
    whether corruption counts as absence.
    """

    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    return json.loads(content)


def read_json_object(path: Path) -> dict[str, Any] | None:
    """Return a JSON object from ``path``; missing, malformed or non-object content is ``None``."""

    try:
        data = read_json(path)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError):
        return None
    return data if isinstance(data, dict) else None


__all__ = ["atomic_write_text", "read_json", "read_json_object", "write_json"]
