"""Session worktree lifecycle and repair."""

from .broken import (
    BrokenWorktree,
    RepairFailure,
    RepairOutcome,
    RepairSummary,
    detect_broken_worktrees,
    repair_broken_worktrees,
    repair_worktree,
)
from .manager import (
    branch_exists,
    branches_in_worktrees,
    create_session_worktree,
    remove_session_worktree,
    validate_session_name,
)

__all__ = [
    "BrokenWorktree",
    "RepairFailure",
    "RepairOutcome",
    "RepairSummary",
    "branch_exists",
    "branches_in_worktrees",
    "create_session_worktree",
    "detect_broken_worktrees",
    "remove_session_worktree",
    "repair_broken_worktrees",
    "repair_worktree",
    "validate_session_name",
]
