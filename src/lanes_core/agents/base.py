"""Abstract base for coding-agent back-ends.

Each agent knows its CLI command, the names of the files its session and
status records live in, the permission modes it accepts, and how to build
the shell commands that start or resume a session. Session services depend
only on this interface.
"""

from __future__ import annotations

import abc
import json
import re
import shlex
from dataclasses import dataclass

from ..session.models import (
    SessionData,
    SessionStatus,
    SessionStatusRecord,
    is_valid_session_id,
)

_UUID = re.compile(
    r"^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$", re.IGNORECASE
)


@dataclass(frozen=True, slots=True)
class PermissionMode:
    id: str
    label: str
    flag: str = ""


class CodeAgent(abc.ABC):
    """Capability set of one coding agent CLI."""

    name: str = ""
    display_name: str = ""
    cli_command: str = ""
    session_file_name: str = ".claude-session"
    status_file_name: str = ".claude-status"

    @abc.abstractmethod
    def permission_modes(self) -> list[PermissionMode]:
        """Permission modes the agent accepts, in display order."""

    @abc.abstractmethod
    def valid_status_states(self) -> list[SessionStatus]:
        """Statuses this agent is able to report."""

    @abc.abstractmethod
    def build_start_command(
        self,
        prompt: str | None = None,
        permission_mode: str | None = None,
        settings_path: str | None = None,
    ) -> str:
        """Shell command that starts a new agent session."""

    @abc.abstractmethod
    def build_resume_command(self, session_id: str, settings_path: str | None = None) -> str:
        """Shell command that resumes ``session_id``."""

    def validate_permission_mode(self, mode: str | None) -> bool:
        return any(item.id == mode for item in self.permission_modes())

    def permission_flag(self, mode: str | None) -> str:
        for item in self.permission_modes():
            if item.id == mode:
                return item.flag
        return ""

    @staticmethod
    def quote(value: str) -> str:
        return shlex.quote(value)

    @staticmethod
    def require_uuid(session_id: str) -> None:
        """Resume commands interpolate the id into a shell line; only UUIDs pass."""

        if not isinstance(session_id, str) or not _UUID.match(session_id):
            raise ValueError(f"Invalid session ID format: {session_id!r}. Expected UUID format.")

    def parse_session_data(self, text: str) -> SessionData | None:
        """Parse a session record; malformed content or an unsafe id gives ``None``."""

        try:
            data = json.loads(text)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        session_id = data.get("sessionId")
        if not is_valid_session_id(session_id):
            return None
        timestamp = data.get("timestamp")
        workflow = data.get("workflow")
        permission_mode = data.get("permissionMode")
        return SessionData(
            session_id=session_id,
            agent_name=self.name,
            timestamp=timestamp if isinstance(timestamp, str) else None,
            workflow=workflow if isinstance(workflow, str) and workflow else None,
            permission_mode=(
                permission_mode if self.validate_permission_mode(permission_mode) else None
            ),
        )

    def parse_status(self, text: str) -> SessionStatusRecord | None:
        """Parse a status record; unknown statuses give ``None``."""

        try:
            data = json.loads(text)
        except (TypeError, ValueError):
            return None
        if not isinstance(data, dict):
            return None
        status = SessionStatus.parse(data.get("status"))
        if status is None or status not in self.valid_status_states():
            return None
        timestamp = data.get("timestamp")
        message = data.get("message")
        return SessionStatusRecord(
            status=status,
            timestamp=timestamp if isinstance(timestamp, str) else None,
            message=message if isinstance(message, str) else None,
        )


__all__ = ["CodeAgent", "PermissionMode"]
