"""Claude Code CLI."""

from __future__ import annotations

from ..session.models import SessionStatus
from .base import CodeAgent, PermissionMode


class ClaudeAgent(CodeAgent):
    name = "claude"
    display_name = "Claude"
    cli_command = "claude"

    def permission_modes(self) -> list[PermissionMode]:
        return [
            PermissionMode("default", "Default"),
            PermissionMode("acceptEdits", "Accept Edits", "--permission-mode acceptEdits"),
            PermissionMode(
                "bypassPermissions", "Bypass Permissions", "--dangerously-skip-permissions"
            ),
            PermissionMode("dontAsk", "Don't Ask", "--permission-mode dontAsk"),
        ]

    def valid_status_states(self) -> list[SessionStatus]:
        return list(SessionStatus)

    def build_start_command(
        self,
        prompt: str | None = None,
        permission_mode: str | None = None,
        settings_path: str | None = None,
    ) -> str:
        parts = [self.cli_command]
        if settings_path:
            parts.extend(["--settings", self.quote(settings_path)])
        if permission_mode and permission_mode != "default":
            flag = self.permission_flag(permission_mode)
            if flag:
                parts.append(flag)
        if prompt:
            parts.append(self.quote(prompt))
        return " ".join(parts)

    def build_resume_command(self, session_id: str, settings_path: str | None = None) -> str:
        self.require_uuid(session_id)
        parts = [self.cli_command]
        if settings_path:
            parts.extend(["--settings", self.quote(settings_path)])
        parts.extend(["--resume", session_id])
        return " ".join(parts)
