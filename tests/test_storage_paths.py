from __future__ import annotations

import json
from pathlib import Path

import pytest

from lanes_core.config import LanesSettings
from lanes_core.storage import (
    StorageContext,
    atomic_write_text,
    prompts_path,
    read_json,
    read_json_object,
    repo_identifier,
    resolve_storage_path,
    write_json,
)


def test_repo_identifier_is_deterministic_and_sanitized() -> None:
    first = repo_identifier("/home/dev/my repo.git")
    second = repo_identifier("/home/dev/my repo.git")

    assert first == second
    name, digest = first.rsplit("-", 1)
    assert name == "my_repo_git"
    assert len(digest) == 8
    assert all(char in "0123456789abcdef" for char in digest)


def test_repo_identifier_distinguishes_same_basename() -> None:
    assert repo_identifier("/work/a/project") != repo_identifier("/work/b/project")


def test_repo_identifier_ignores_separator_style_and_casing() -> None:
    assert repo_identifier("C:\\Work\\project") == repo_identifier("C:/Work/project")
    assert repo_identifier("/work/project/") == repo_identifier("/work/project")
    assert repo_identifier("/Work/Project").rsplit("-", 1)[1] == repo_identifier("/work/project").rsplit("-", 1)[1]


def test_resolve_uses_configured_relative_path(tmp_path: Path) -> None:
    worktree = tmp_path / ".worktrees" / "feat"

    path = resolve_storage_path(
        worktree,
        ".claude-status",
        configured_relative_path="\\.lanes\\state\\",
        use_shared_storage=True,
        context=StorageContext(tmp_path / "shared", tmp_path),
    )

    assert path == worktree / ".lanes/state" / ".claude-status"


def test_resolve_uses_shared_storage(tmp_path: Path) -> None:
    worktree = tmp_path / ".worktrees" / "feat"
    context = StorageContext(tmp_path / "shared", tmp_path / "repo")

    path = resolve_storage_path(worktree, ".claude-session", use_shared_storage=True, context=context)

    assert path == tmp_path / "shared" / repo_identifier(tmp_path / "repo") / "feat" / ".claude-session"


def test_resolve_falls_back_to_worktree(tmp_path: Path) -> None:
    worktree = tmp_path / "feat"

    assert resolve_storage_path(worktree, "x.json") == worktree / "x.json"
    assert resolve_storage_path(worktree, "x.json", use_shared_storage=True) == worktree / "x.json"


@pytest.mark.parametrize(
    "unsafe",
    ["../outside", "a/../../b", "..", "C:/temp", "//..", "/etc", "/tmp/x", "\\\\server\\share", "d:\\data"],
)
@pytest.mark.parametrize("filename", [".claude-session", "workflow-state.json"])
def test_unsafe_relative_path_matches_empty_configuration(tmp_path: Path, unsafe: str, filename: str) -> None:
    worktree = tmp_path / ".worktrees" / "feat"
    context = StorageContext(tmp_path / "shared", tmp_path)

    for shared in (True, False):
        expected = resolve_storage_path(
            worktree, filename, configured_relative_path="", use_shared_storage=shared, context=context
        )
        actual = resolve_storage_path(
            worktree, filename, configured_relative_path=unsafe, use_shared_storage=shared, context=context
        )
        assert actual == expected


def test_storage_context_from_settings(tmp_path: Path) -> None:
    settings = LanesSettings(_env_file=None, shared_storage_root=tmp_path / "shared")

    context = StorageContext.from_settings(settings, tmp_path / "repo")

    assert context.session_dir("feat") == tmp_path / "shared" / repo_identifier(tmp_path / "repo") / "feat"


def test_prompts_path(tmp_path: Path) -> None:
    assert prompts_path("feat", tmp_path) == tmp_path / ".lanes/prompts" / "feat.txt"
    assert prompts_path("feat", tmp_path, "prompts") == tmp_path / "prompts" / "feat.txt"
    assert prompts_path("feat", tmp_path, "../prompts") == tmp_path / ".lanes/prompts" / "feat.txt"


@pytest.mark.parametrize("name", ["", "a/b", "a\\b", "..", "x..y"])
def test_prompts_path_rejects_unsafe_names(tmp_path: Path, name: str) -> None:
    assert prompts_path(name, tmp_path) is None


def test_json_helpers(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "record.json"

    assert read_json(target) is None
    write_json(target, {"status": "idle"})

    assert json.loads(target.read_text(encoding="utf-8")) == {"status": "idle"}
    assert read_json_object(target) == {"status": "idle"}
    assert [p.name for p in target.parent.iterdir()] == ["record.json"]

    atomic_write_text(target, "{not json")
    assert read_json_object(target) is None
    with pytest.raises(json.JSONDecodeError):
        read_json(target)

    write_json(target, ["a", "list"])
    assert read_json_object(target) is None
