from __future__ import annotations

import asyncio
import shutil
from pathlib import Path

from lanes_core.git import FakeGitRunner, GitExecutionResult, GitRunner
from lanes_core.worktrees import (
    BrokenWorktree,
    create_session_worktree,
    detect_broken_worktrees,
    repair_broken_worktrees,
    repair_worktree,
)
from lanes_core.worktrees import broken as broken_module
from lanes_core.worktrees.broken import read_gitdir

from conftest import git


def make_session(repo: Path, name: str) -> Path:
    return asyncio.run(
        create_session_worktree(repo, name, worktrees_folder=".worktrees", runner=GitRunner())
    )


def break_metadata(repo: Path, name: str) -> None:
    shutil.rmtree(repo / ".git" / "worktrees" / name)


def test_detects_worktree_with_missing_metadata(git_repo: Path) -> None:
    make_session(git_repo, "healthy")
    make_session(git_repo, "feat-a")
    break_metadata(git_repo, "feat-a")

    broken = detect_broken_worktrees(git_repo, ".worktrees")

    assert broken == [
        BrokenWorktree(
            path=git_repo / ".worktrees" / "feat-a",
            session_name="feat-a",
            expected_branch="feat-a",
        )
    ]


def test_detection_skips_indeterminate_entries(tmp_path: Path) -> None:
    worktrees = tmp_path / ".worktrees"
    (worktrees / "nested-clone" / ".git").mkdir(parents=True)
    (worktrees / "mid-creation").mkdir()
    (worktrees / "garbled").mkdir()
    (worktrees / "garbled" / ".git").write_text("not a pointer\n", encoding="utf-8")
    (worktrees / "stray-file").write_text("x", encoding="utf-8")
    (worktrees / "dangling").mkdir()
    (worktrees / "dangling" / ".git").write_text(
        f"gitdir: {tmp_path / 'gone' / 'worktrees' / 'dangling'}\n", encoding="utf-8"
    )

    broken = detect_broken_worktrees(tmp_path, ".worktrees")

    assert [item.session_name for item in broken] == ["dangling"]
    assert detect_broken_worktrees(tmp_path, "missing-folder") == []


def test_read_gitdir_resolves_relative_targets(tmp_path: Path) -> None:
    git_file = tmp_path / "wt" / ".git"
    git_file.parent.mkdir()
    git_file.write_text("gitdir: ../meta/wt\n", encoding="utf-8")

    assert read_gitdir(git_file) == tmp_path / "wt" / ".." / "meta" / "wt"
    assert read_gitdir(tmp_path / "absent") is None


def test_repair_preserves_files_and_is_idempotent(git_repo: Path) -> None:
    worktree = make_session(git_repo, "feat-a")
    (worktree / "notes.txt").write_text("untracked work\n", encoding="utf-8")
    (worktree / "README.md").write_text("edited in session\n", encoding="utf-8")
    (worktree / "src").mkdir()
    (worktree / "src" / "module.py").write_text("VALUE = 1\n", encoding="utf-8")
    break_metadata(git_repo, "feat-a")

    broken = detect_broken_worktrees(git_repo, ".worktrees")
    assert len(broken) == 1

    outcome = asyncio.run(repair_worktree(git_repo, broken[0], GitRunner()))

    assert outcome.success, outcome.error
    assert (worktree / "notes.txt").read_text(encoding="utf-8") == "untracked work\n"
    assert (worktree / "README.md").read_text(encoding="utf-8") == "edited in session\n"
    assert (worktree / "src" / "module.py").read_text(encoding="utf-8") == "VALUE = 1\n"
    assert (worktree / ".git").is_file()
    assert not list(worktree.parent.glob("feat-a.repair-backup-*"))
    assert detect_broken_worktrees(git_repo, ".worktrees") == []
    assert "branch refs/heads/feat-a" in git(git_repo, "worktree", "list", "--porcelain")


def test_repair_fails_when_branch_is_missing(git_repo: Path) -> None:
    ghost = git_repo / ".worktrees" / "ghost"
    ghost.mkdir(parents=True)
    (ghost / ".git").write_text("gitdir: /nonexistent/.git/worktrees/ghost\n", encoding="utf-8")
    (ghost / "keep.txt").write_text("keep", encoding="utf-8")

    [entry] = detect_broken_worktrees(git_repo, ".worktrees")
    outcome = asyncio.run(repair_worktree(git_repo, entry, GitRunner()))

    assert not outcome.success
    assert "exist" in outcome.error or "ghost" in outcome.error
    assert (ghost / "keep.txt").read_text(encoding="utf-8") == "keep"


def test_failed_worktree_add_restores_directory(tmp_path: Path) -> None:
    worktree = tmp_path / ".worktrees" / "feat"
    worktree.mkdir(parents=True)
    (worktree / "work.txt").write_text("mine", encoding="utf-8")
    runner = FakeGitRunner(
        [
            GitExecutionResult(args=("show-ref",), returncode=0, stdout="", stderr=""),
            GitExecutionResult(args=("worktree", "add"), returncode=128, stdout="", stderr="fatal: boom"),
        ]
    )

    outcome = asyncio.run(
        repair_worktree(tmp_path, BrokenWorktree(worktree, "feat", "feat"), runner)
    )

    assert not outcome.success
    assert "fatal: boom" in outcome.error
    assert (worktree / "work.txt").read_text(encoding="utf-8") == "mine"
    assert runner.invocations[1] == ("worktree", "add", str(worktree), "feat")


def test_batch_repair_continues_past_failures(git_repo: Path) -> None:
    make_session(git_repo, "feat-a")
    break_metadata(git_repo, "feat-a")
    ghost = git_repo / ".worktrees" / "ghost"
    ghost.mkdir()
    (ghost / ".git").write_text("gitdir: /nonexistent/ghost\n", encoding="utf-8")

    broken = detect_broken_worktrees(git_repo, ".worktrees")
    summary = asyncio.run(repair_broken_worktrees(git_repo, broken, GitRunner()))

    assert summary.success_count == 1
    assert [failure.session_name for failure in summary.failures] == ["ghost"]
    assert [item.session_name for item in detect_broken_worktrees(git_repo, ".worktrees")] == ["ghost"]


def test_detection_ignores_leftover_repair_backup(git_repo: Path) -> None:
    path = make_session(git_repo, "feat-a")
    break_metadata(git_repo, "feat-a")
    path.rename(path.with_name("feat-a.repair-backup-1700000000000"))

    assert detect_broken_worktrees(git_repo, ".worktrees") == []


def test_failed_merge_back_reports_backup(tmp_path: Path, monkeypatch) -> None:
    worktree = tmp_path / ".worktrees" / "feat"
    worktree.mkdir(parents=True)
    (worktree / ".git").write_text(f"gitdir: {tmp_path / 'gone'}\n", encoding="utf-8")
    (worktree / "work.txt").write_text("mine", encoding="utf-8")
    runner = FakeGitRunner(
        [
            GitExecutionResult(args=("show-ref",), returncode=0, stdout="", stderr=""),
            GitExecutionResult(args=("worktree", "add"), returncode=0, stdout="", stderr=""),
        ]
    )

    def fail_merge(src: Path, dest: Path) -> None:
        raise OSError("disk full")

    monkeypatch.setattr(broken_module, "_merge_into", fail_merge)

    outcome = asyncio.run(repair_worktree(tmp_path, BrokenWorktree(worktree, "feat", "feat"), runner))

    assert not outcome.success
    assert "remain at" in outcome.error
    backups = [entry for entry in (tmp_path / ".worktrees").iterdir() if entry.name.startswith("feat.repair-backup-")]
    assert len(backups) == 1
    assert (backups[0] / "work.txt").read_text(encoding="utf-8") == "mine"
    assert detect_broken_worktrees(tmp_path, ".worktrees") == []


def test_repair_refuses_nested_repository(tmp_path: Path) -> None:
    clone = tmp_path / ".worktrees" / "clone"
    (clone / ".git").mkdir(parents=True)
    (clone / "work.txt").write_text("mine", encoding="utf-8")
    runner = FakeGitRunner()

    outcome = asyncio.run(repair_worktree(tmp_path, BrokenWorktree(clone, "clone", "clone"), runner))

    assert not outcome.success
    assert "repository" in outcome.error
    assert runner.invocations == []
    assert (clone / ".git").is_dir()
    assert (clone / "work.txt").read_text(encoding="utf-8") == "mine"
