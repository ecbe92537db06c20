"""Reads and writes the records that belong to a session worktree.

Every file location goes through :func:`lanes_core.storage.resolve_storage_path`.
Readers never raise for missing or corrupt data: both come back as ``None``
(or a documented default) because callers fall back the same way in either
case. Writers merge into the existing record and replace it atomically.
"""

from __future__ import annotations

import logging
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ..agents import CodeAgent, available_agents, get_agent
from ..config import LanesSettings
from ..storage import (
    StorageContext,
    read_json_object,
    resolve_storage_path,
    session_name_from_worktree,
    write_json,
)
from ..storage.paths import safe_relative_folder
from ..workflow.machine import sanitize_summary
from ..workflow.models import WorkflowState
from .models import (
    TERMINAL_MODES,
    SessionData,
    SessionStatus,
    SessionStatusRecord,
    WorkflowStatusSummary,
    is_valid_session_id,
)

logger = logging.getLogger(__name__)

WORKFLOW_STATE_FILE = "workflow-state.json"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _non_empty_str(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value
    return None


class SessionDataService:
    """Facade over the per-session status, identity and workflow records."""

    def __init__(
        self,
        settings: LanesSettings,
        context: StorageContext | None = None,
        agent: CodeAgent | None = None,
    ) -> None:
        self._settings = settings
        self._context = context
        self._agent = agent or get_agent(settings.default_agent)

    @property
    def agent(self) -> CodeAgent:
        return self._agent

    def _resolve(self, worktree_path: Path | str, filename: str) -> Path:
        return resolve_storage_path(
            worktree_path,
            filename,
            configured_relative_path=self._settings.session_storage_path,
            use_shared_storage=self._settings.use_shared_storage,
            context=self._context,
        )

    def session_file(self, worktree_path: Path | str) -> Path:
        return self._resolve(worktree_path, self._agent.session_file_name)

    def status_file(self, worktree_path: Path | str) -> Path:
        return self._resolve(worktree_path, self._agent.status_file_name)

    def workflow_state_file(self, worktree_path: Path | str) -> Path:
        return self._resolve(worktree_path, WORKFLOW_STATE_FILE)

    def _read_text(self, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            return None

    def _agent_for_record(self, record: dict[str, Any] | None) -> CodeAgent:
        name = _non_empty_str((record or {}).get("agentName"))
        if name and name != self._agent.name and name in available_agents():
            return get_agent(name)
        return self._agent

    def _update_record(self, worktree_path: Path | str, **fields: Any) -> dict[str, Any]:
        path = self.session_file(worktree_path)
        record = read_json_object(path) or {}
        for key, value in fields.items():
            if value is None:
                record.pop(key, None)
            else:
                record[key] = value
        record["timestamp"] = _now()
        write_json(path, record)
        return record

    # Readers

    def get_session_record(self, worktree_path: Path | str) -> dict[str, Any] | None:
        return read_json_object(self.session_file(worktree_path))

    def get_status(self, worktree_path: Path | str) -> SessionStatusRecord | None:
        content = self._read_text(self.status_file(worktree_path))
        if content is None:
            return None
        return self._agent.parse_status(content)

    def get_session_id(self, worktree_path: Path | str) -> SessionData | None:
        """Return the resumable session, parsed by the agent that recorded it."""

        content = self._read_text(self.session_file(worktree_path))
        if content is None:
            return None
        agent = self._agent_for_record(read_json_object(self.session_file(worktree_path)))
        return agent.parse_session_data(content)

    def get_agent_name(self, worktree_path: Path | str) -> str:
        record = self.get_session_record(worktree_path) or {}
        return _non_empty_str(record.get("agentName")) or self._settings.default_agent

    def get_permission_mode(self, worktree_path: Path | str) -> str | None:
        record = self.get_session_record(worktree_path)
        if record is None:
            return None
        mode = _non_empty_str(record.get("permissionMode"))
        if mode is None or not self._agent_for_record(record).validate_permission_mode(mode):
            return None
        return mode

    def get_terminal_mode(self, worktree_path: Path | str) -> str | None:
        record = self.get_session_record(worktree_path) or {}
        terminal = record.get("terminal")
        return terminal if terminal in TERMINAL_MODES else None

    def get_workflow(self, worktree_path: Path | str) -> str | None:
        record = self.get_session_record(worktree_path) or {}
        return _non_empty_str(record.get("workflow"))

    def get_summary(self, worktree_path: Path | str) -> str | None:
        record = self.get_session_record(worktree_path) or {}
        return _non_empty_str(record.get("summary"))

    def get_workflow_state(self, worktree_path: Path | str) -> WorkflowState | None:
        data = read_json_object(self.workflow_state_file(worktree_path))
        if data is None:
            return None
        try:
            return WorkflowState.model_validate(data)
        except ValidationError:
            logger.debug(
                "Ignoring invalid workflow state",
                extra={"worktree": str(worktree_path)},
            )
            return None

    def get_workflow_status(self, worktree_path: Path | str) -> WorkflowStatusSummary | None:
        """Condensed view of the persisted workflow state, or ``None`` without one."""

        state = self.get_workflow_state(worktree_path)
        if state is None:
            return None
        progress = None
        if state.step_type == "loop" and state.status == "running":
            loop = state.tasks.get(state.step)
            if loop is not None:
                progress = f"Task {loop.index + 1}"
        return WorkflowStatusSummary(
            active=state.status == "running",
            workflow=state.workflow,
            step=state.step,
            progress=progress,
            summary=_non_empty_str(state.summary),
        )

    # Writers

    def seed_session(
        self,
        worktree_path: Path | str,
        *,
        workflow: str | None = None,
        permission_mode: str | None = None,
        terminal_mode: str | None = None,
    ) -> dict[str, Any]:
        """Write the initial record for a freshly created session."""

        if permission_mode is not None and not self._agent.validate_permission_mode(permission_mode):
            raise ValueError(
                f"Permission mode '{permission_mode}' is not supported by {self._agent.display_name}"
            )
        if terminal_mode is not None and terminal_mode not in TERMINAL_MODES:
            raise ValueError(f"Terminal mode must be one of {', '.join(TERMINAL_MODES)}")

        record: dict[str, Any] = {"agentName": self._agent.name, "timestamp": _now()}
        if workflow:
            record["workflow"] = workflow
        if permission_mode:
            record["permissionMode"] = permission_mode
        if terminal_mode:
            record["terminal"] = terminal_mode
        write_json(self.session_file(worktree_path), record)
        logger.info(
            "Seeded session record",
            extra={"session_name": session_name_from_worktree(worktree_path), "agent": self._agent.name},
        )
        return record

    def save_session_id(self, worktree_path: Path | str, session_id: str) -> None:
        if not is_valid_session_id(session_id):
            raise ValueError(f"Invalid session ID: {session_id!r}")
        self._update_record(worktree_path, sessionId=session_id)

    def clear_session_id(self, worktree_path: Path | str) -> None:
        if self.get_session_record(worktree_path) is None:
            return
        self._update_record(worktree_path, sessionId=None)

    def save_status(
        self,
        worktree_path: Path | str,
        status: SessionStatus | str,
        message: str | None = None,
    ) -> SessionStatusRecord:
        parsed = status if isinstance(status, SessionStatus) else SessionStatus.parse(status)
        if parsed is None or parsed not in self._agent.valid_status_states():
            raise ValueError(f"Unsupported status {status!r} for {self._agent.display_name}")
        record = SessionStatusRecord(status=parsed, timestamp=_now(), message=message)
        payload: dict[str, Any] = {"status": parsed.value, "timestamp": record.timestamp}
        if message:
            payload["message"] = message
        write_json(self.status_file(worktree_path), payload)
        return record

    def save_agent_name(self, worktree_path: Path | str, agent_name: str) -> None:
        name = agent_name.strip().lower()
        if name not in available_agents():
            raise ValueError(f"Unknown agent '{agent_name}'")
        self._update_record(worktree_path, agentName=name)

    def save_permission_mode(self, worktree_path: Path | str, mode: str) -> None:
        agent = self._agent_for_record(self.get_session_record(worktree_path))
        if not agent.validate_permission_mode(mode):
            raise ValueError(f"Permission mode '{mode}' is not supported by {agent.display_name}")
        self._update_record(worktree_path, permissionMode=mode)

    def save_terminal_mode(self, worktree_path: Path | str, terminal: str) -> None:
        if terminal not in TERMINAL_MODES:
            raise ValueError(f"Terminal mode must be one of {', '.join(TERMINAL_MODES)}")
        self._update_record(worktree_path, terminal=terminal)

    def save_workflow(self, worktree_path: Path | str, workflow: Path | str) -> None:
        self._update_record(worktree_path, workflow=str(workflow))

    def save_summary(self, worktree_path: Path | str, summary: str) -> None:
        sanitized = sanitize_summary(summary)
        if sanitized:
            self._update_record(worktree_path, summary=sanitized)

    def save_workflow_state(self, worktree_path: Path | str, state: WorkflowState) -> None:
        write_json(self.workflow_state_file(worktree_path), state.to_record())

    def delete_session_data(self, worktree_path: Path | str) -> bool:
        """Remove the session's shared-storage directory. Returns whether one was removed."""

        if (
            not self._settings.use_shared_storage
            or self._context is None
            or safe_relative_folder(self._settings.session_storage_path) is not None
        ):
            return False
        session_dir = self._context.session_dir(session_name_from_worktree(worktree_path))
        if not session_dir.is_dir():
            return False
        shutil.rmtree(session_dir)
        logger.info("Deleted session storage", extra={"path": str(session_dir)})
        return True


__all__ = ["SessionDataService", "WORKFLOW_STATE_FILE"]
