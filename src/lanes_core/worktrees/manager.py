"""Creation and removal of session worktrees."""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from ..git import GitError, GitRunner

logger = logging.getLogger(__name__)

_BRANCH_NAME = re.compile(r"^[A-Za-z0-9_\-./]+$")
MAX_SESSION_NAME_LENGTH = 200


def validate_session_name(name: str | None) -> str | None:
    """Return an error message for an unusable session name, else ``None``."""

    if not name or not name.strip():
        return "Session name cannot be empty"
    trimmed = name.strip()
    if ".." in trimmed:
        return 'Session name cannot contain ".." (path traversal not allowed)'
    if "\x00" in trimmed:
        return "Session name contains invalid characters (null byte)"
    if len(trimmed) > MAX_SESSION_NAME_LENGTH:
        return f"Session name is too long (maximum {MAX_SESSION_NAME_LENGTH} characters)"
    return None


async def branch_exists(repo_root: Path | str, branch: str, runner: GitRunner) -> bool:
    """True when ``refs/heads/<branch>`` exists. Invalid names are never found."""

    if not _BRANCH_NAME.match(branch):
        return False
    result = await runner.run(["show-ref", "--verify", "--quiet", f"refs/heads/{branch}"], repo_root)
    return result.ok


async def _remote_ref_exists(repo_root: Path | str, ref: str, runner: GitRunner) -> bool:
    if not _BRANCH_NAME.match(ref):
        return False
    result = await runner.run(["show-ref", "--verify", "--quiet", f"refs/remotes/{ref}"], repo_root)
    return result.ok


async def branches_in_worktrees(repo_root: Path | str, runner: GitRunner) -> set[str]:
    """Branch names currently checked out by any worktree of the repository."""

    try:
        output = await runner.exec(["worktree", "list", "--porcelain"], repo_root)
    except GitError as exc:
        logger.debug("Could not list worktrees", extra={"error": str(exc)})
        return set()

    branches: set[str] = set()
    for line in output.splitlines():
        if line.startswith("branch refs/heads/"):
            name = line.removeprefix("branch refs/heads/").strip()
            if name:
                branches.add(name)
    return branches


async def create_session_worktree(
    repo_root: Path | str,
    session_name: str,
    *,
    worktrees_folder: str,
    runner: GitRunner,
    source_branch: str = "",
) -> Path:
    """Materialize ``<repo>/<worktrees_folder>/<session_name>`` on branch ``session_name``.

    An existing branch is reused unless another worktree already has it
    checked out. A new branch starts from ``source_branch`` (local or
    ``remote/branch``) or from ``HEAD`` when no source is given.
    """

    error = validate_session_name(session_name)
    if error:
        raise ValueError(error)
    session_name = session_name.strip()
    root = Path(repo_root)
    worktree_path = root / worktrees_folder / session_name
    worktree_path.parent.mkdir(parents=True, exist_ok=True)

    if await branch_exists(root, session_name, runner):
        if session_name in await branches_in_worktrees(root, runner):
            raise ValueError(
                f"Branch '{session_name}' is already checked out in another worktree. "
                "Git does not allow the same branch to be checked out in multiple worktrees."
            )
        await runner.exec(["worktree", "add", str(worktree_path), session_name], root)
    else:
        source = source_branch.strip()
        if source:
            if not (
                await branch_exists(root, source, runner)
                or await _remote_ref_exists(root, source, runner)
            ):
                raise ValueError(f"Source branch '{source}' does not exist.")
            await runner.exec(
                ["worktree", "add", str(worktree_path), "-b", session_name, source], root
            )
        else:
            await runner.exec(["worktree", "add", str(worktree_path), "-b", session_name], root)

    logger.info(
        "Created session worktree",
        extra={"session_name": session_name, "path": str(worktree_path)},
    )
    return worktree_path


async def remove_session_worktree(
    repo_root: Path | str,
    worktree_path: Path | str,
    runner: GitRunner,
    *,
    storage_dir: Path | None = None,
    delete_branch: bool = False,
) -> None:
    """Remove a session worktree and, when given, its storage namespace."""

    root = Path(repo_root)
    path = Path(worktree_path)
    await runner.exec(["worktree", "remove", "--force", str(path)], root)
    if delete_branch:
        await runner.exec(["branch", "-D", path.name], root)
    if storage_dir is not None and storage_dir.exists():
        shutil.rmtree(storage_dir)
    logger.info("Removed session worktree", extra={"path": str(path)})


__all__ = [
    "MAX_SESSION_NAME_LENGTH",
    "branch_exists",
    "branches_in_worktrees",
    "create_session_worktree",
    "remove_session_worktree",
    "validate_session_name",
]
