"""Git CLI orchestration utilities."""

from .runner import FakeGitRunner, GitError, GitExecutionResult, GitNotFoundError, GitRunner

__all__ = [
    "FakeGitRunner",
    "GitError",
    "GitExecutionResult",
    "GitNotFoundError",
    "GitRunner",
]
