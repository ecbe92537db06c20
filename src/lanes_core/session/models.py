"""Records persisted alongside a session worktree."""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal

SESSION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

TerminalMode = Literal["code", "tmux"]
TERMINAL_MODES: tuple[str, ...] = ("code", "tmux")


class SessionStatus(str, Enum):
    IDLE = "idle"
    WORKING = "working"
    WAITING_FOR_USER = "waiting_for_user"
    ERROR = "error"

    @classmethod
    def parse(cls, value: object) -> "SessionStatus | None":
        if not isinstance(value, str):
            return None
        try:
            return cls(value)
        except ValueError:
            return None


def is_valid_session_id(value: object) -> bool:
    """Non-empty, not whitespace-only, and within ``[A-Za-z0-9_-]``."""

    return isinstance(value, str) and bool(value.strip()) and bool(SESSION_ID_PATTERN.match(value))


@dataclass(slots=True)
class SessionStatusRecord:
    status: SessionStatus
    timestamp: str | None = None
    message: str | None = None


@dataclass(slots=True)
class SessionData:
    session_id: str
    agent_name: str
    timestamp: str | None = None
    workflow: str | None = None
    permission_mode: str | None = None


@dataclass(slots=True)
class WorkflowStatusSummary:
    """Condensed workflow position for a session list or status line."""

    active: bool
    workflow: str | None = None
    step: str | None = None
    progress: str | None = None
    summary: str | None = None


__all__ = [
    "SESSION_ID_PATTERN",
    "SessionData",
    "SessionStatus",
    "SessionStatusRecord",
    "TERMINAL_MODES",
    "TerminalMode",
    "WorkflowStatusSummary",
    "is_valid_session_id",
]
