"""Detection and repair of session worktrees whose git metadata has vanished.

A linked worktree holds a ``.git`` *file* pointing at
``<repo>/.git/worktrees/<name>``. Container rebuilds and manual cleanups can
remove that metadata directory while the checkout itself survives; git then
no longer recognizes the directory. Repair re-attaches the directory to its
branch with ``git worktree add`` and puts the user's files back on top.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import time
from dataclasses import dataclass, field
from pathlib import Path

from ..git import GitError, GitRunner
from .manager import branch_exists

logger = logging.getLogger(__name__)

_GITDIR_LINE = re.compile(r"^gitdir:\s*(.+)$", re.MULTILINE)
_BACKUP_SUFFIX = ".repair-backup-"
_BACKUP_NAME = re.compile(re.escape(_BACKUP_SUFFIX) + r"\d+$")


@dataclass(frozen=True, slots=True)
class BrokenWorktree:
    path: Path
    session_name: str
    expected_branch: str


@dataclass(slots=True)
class RepairOutcome:
    success: bool
    error: str | None = None


@dataclass(slots=True)
class RepairFailure:
    session_name: str
    error: str


@dataclass(slots=True)
class RepairSummary:
    success_count: int = 0
    failures: list[RepairFailure] = field(default_factory=list)


def _is_safe_entry(name: str) -> bool:
    return bool(name) and ".." not in name and "/" not in name and "\\" not in name


def read_gitdir(git_file: Path) -> Path | None:
    """Return the ``gitdir:`` target of a worktree ``.git`` file, if any."""

    try:
        content = git_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None
    match = _GITDIR_LINE.search(content)
    if not match:
        return None
    target = match.group(1).strip()
    if not target:
        return None
    path = Path(target)
    if not path.is_absolute():
        path = git_file.parent / path
    return path


def detect_broken_worktrees(repo_root: Path | str, worktrees_folder: str) -> list[BrokenWorktree]:
    """Scan ``<repo_root>/<worktrees_folder>`` for worktrees with dangling metadata.

    Only directories with a ``.git`` file whose ``gitdir`` target is missing
    are reported. A ``.git`` directory (nested clone), a missing ``.git``
    (possibly mid-creation) or an unparseable ``.git`` file are skipped, as are
    backups left behind by an interrupted repair.
    """

    worktrees_dir = Path(repo_root) / worktrees_folder
    if not worktrees_dir.is_dir():
        return []

    try:
        entries = sorted(worktrees_dir.iterdir())
    except OSError as exc:
        logger.warning(
            "Failed to read worktrees directory",
            extra={"path": str(worktrees_dir), "error": str(exc)},
        )
        return []

    broken: list[BrokenWorktree] = []
    for entry in entries:
        if not _is_safe_entry(entry.name) or not entry.is_dir():
            continue
        if _BACKUP_NAME.search(entry.name):
            continue

        git_path = entry / ".git"
        if not git_path.is_file():
            continue

        metadata = read_gitdir(git_path)
        if metadata is None:
            continue
        if metadata.exists():
            continue

        broken.append(
            BrokenWorktree(path=entry, session_name=entry.name, expected_branch=entry.name)
        )

    if broken:
        logger.info(
            "Detected broken worktrees",
            extra={"count": len(broken), "sessions": [item.session_name for item in broken]},
        )
    return broken


def _merge_into(src: Path, dest: Path) -> None:
    """Move everything under ``src`` into ``dest``; entries from ``src`` win."""

    for entry in src.iterdir():
        if entry.name == ".git":
            continue
        target = dest / entry.name
        if entry.is_dir() and not entry.is_symlink() and target.is_dir() and not target.is_symlink():
            _merge_into(entry, target)
            continue
        if target.is_symlink() or target.is_file():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)
        shutil.move(str(entry), str(target))


async def repair_worktree(
    repo_root: Path | str,
    worktree: BrokenWorktree,
    runner: GitRunner,
) -> RepairOutcome:
    """Re-create the git link for ``worktree`` without losing its files.

    The directory is renamed aside, ``git worktree add`` recreates it on the
    expected branch, and the renamed contents are moved back over the fresh
    checkout. Failures are reported in the outcome rather than raised.
    """

    root = Path(repo_root)
    path = Path(worktree.path)
    branch = worktree.expected_branch
    if (path / ".git").is_dir():
        return RepairOutcome(False, f"Refusing to repair '{path}': it holds a repository, not a worktree")

    try:
        exists = await branch_exists(root, branch, runner)
    except GitError as exc:
        return RepairOutcome(False, f"Failed to check branch '{branch}': {exc}")
    if not exists:
        return RepairOutcome(False, f"Branch '{branch}' does not exist in the repository")

    backup = path.with_name(f"{path.name}{_BACKUP_SUFFIX}{int(time.time() * 1000)}")
    # The stale .git file travels with the backup and is dropped by _merge_into.
    if path.exists():
        try:
            os.rename(path, backup)
        except OSError as exc:
            return RepairOutcome(False, f"Failed to rename worktree for repair: {exc}")
    else:
        backup = None

    try:
        await runner.exec(["worktree", "add", str(path), branch], root)
    except GitError as exc:
        if backup is None:
            return RepairOutcome(False, f"Failed to create worktree: {exc}")
        try:
            if path.exists():
                shutil.rmtree(path)
            os.rename(backup, path)
        except OSError:
            return RepairOutcome(
                False,
                f"Failed to create worktree: {exc}. "
                f"WARNING: Original files backed up at {backup} could not be restored.",
            )
        return RepairOutcome(False, f"Failed to create worktree: {exc}")

    if backup is not None:
        try:
            _merge_into(backup, path)
        except OSError as exc:
            logger.warning(
                "Failed to restore some files during repair",
                extra={"session_name": worktree.session_name, "backup": str(backup), "error": str(exc)},
            )
            return RepairOutcome(False, f"Worktree re-created but some files remain at {backup}: {exc}")
        try:
            shutil.rmtree(backup)
        except OSError as exc:
            logger.warning(
                "Failed to clean up repair backup",
                extra={"backup": str(backup), "error": str(exc)},
            )

    logger.info("Repaired worktree", extra={"session_name": worktree.session_name, "branch": branch})
    return RepairOutcome(True)


async def repair_broken_worktrees(
    repo_root: Path | str,
    worktrees: list[BrokenWorktree],
    runner: GitRunner,
) -> RepairSummary:
    """Repair each worktree in turn, continuing past individual failures."""

    summary = RepairSummary()
    for worktree in worktrees:
        outcome = await repair_worktree(repo_root, worktree, runner)
        if outcome.success:
            summary.success_count += 1
            continue
        error = outcome.error or "Unknown error"
        logger.warning(
            "Worktree repair failed",
            extra={"session_name": worktree.session_name, "error": error},
        )
        summary.failures.append(RepairFailure(session_name=worktree.session_name, error=error))
    return summary


__all__ = [
    "BrokenWorktree",
    "RepairFailure",
    "RepairOutcome",
    "RepairSummary",
    "detect_broken_worktrees",
    "read_gitdir",
    "repair_broken_worktrees",
    "repair_worktree",
]
