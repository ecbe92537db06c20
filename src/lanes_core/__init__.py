"""Session worktree, storage and workflow core for Lanes."""

__version__ = "0.3.0"

__all__ = ["__version__"]
