"""Codex CLI.

Codex has no hook system, so it only reports whether it is working or idle,
and it takes no settings file. Permission modes map onto its ``--sandbox``
and ``--ask-for-approval`` flag pair.
"""

from __future__ import annotations

from ..session.models import SessionStatus
from .base import CodeAgent, PermissionMode


class CodexAgent(CodeAgent):
    name = "codex"
    display_name = "Codex"
    cli_command = "codex"

    def permission_modes(self) -> list[PermissionMode]:
        return [
            PermissionMode(
                "acceptEdits",
                "Accept Edits",
                "--sandbox workspace-write --ask-for-approval on-failure",
            ),
            PermissionMode(
                "bypassPermissions",
                "Bypass Permissions",
                "--sandbox danger-full-access --ask-for-approval never",
            ),
        ]

    def valid_status_states(self) -> list[SessionStatus]:
        return [SessionStatus.IDLE, SessionStatus.WORKING]

    def build_start_command(
        self,
        prompt: str | None = None,
        permission_mode: str | None = None,
        settings_path: str | None = None,
    ) -> str:
        parts = [self.cli_command]
        flag = self.permission_flag(permission_mode)
        if flag:
            parts.append(flag)
        if prompt:
            parts.append(self.quote(prompt))
        return " ".join(parts)

    def build_resume_command(self, session_id: str, settings_path: str | None = None) -> str:
        self.require_uuid(session_id)
        return " ".join([self.cli_command, "resume", session_id])
