"""FastMCP server that drives one session's workflow."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import LanesSettings, get_settings
from .session.service import SessionDataService
from .storage import StorageContext
from .tools import register_tools
from .workflow import (
    WorkflowStateError,
    WorkflowStateMachine,
    load_workflow_template,
)

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging for the Lanes server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def _restore_machine(
    sessions: SessionDataService,
    worktree_path: Path,
    workflow_path: Path,
) -> tuple[WorkflowStateMachine, dict[str, Any]]:
    """Build the machine, resuming from a persisted snapshot when it matches the template."""

    template = load_workflow_template(workflow_path)
    resume: dict[str, Any] = {"restored": False, "step": None, "error": None}

    state = sessions.get_workflow_state(worktree_path)
    if state is None:
        return WorkflowStateMachine(template), resume

    try:
        machine = WorkflowStateMachine.from_state(template, state)
    except WorkflowStateError as exc:
        logger.warning(
            "Discarding persisted workflow state",
            extra={"worktree": str(worktree_path), "error": str(exc)},
        )
        resume["error"] = str(exc)
        return WorkflowStateMachine(template), resume

    resume.update({"restored": True, "step": state.step, "status": state.status})
    logger.info(
        "Resumed workflow from persisted state",
        extra={"workflow": template.name, "step": state.step, "status": state.status},
    )
    return machine, resume


def create_server(
    settings: Optional[LanesSettings] = None,
    *,
    worktree_path: Path | None = None,
    workflow_path: Path | None = None,
    repo_root: Path | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server for a session worktree and workflow template."""

    settings = settings or get_settings()
    worktree_path = worktree_path or settings.worktree_path
    workflow_path = workflow_path or settings.workflow_path
    repo_root = repo_root or settings.repo_root
    if worktree_path is None or workflow_path is None:
        raise ValueError("A worktree path and a workflow path are required (LANES_WORKTREE, LANES_WORKFLOW_PATH)")

    context = StorageContext.from_settings(settings, repo_root) if repo_root is not None else None
    sessions = SessionDataService(settings, context)
    machine, resume = _restore_machine(sessions, worktree_path, workflow_path)

    server = FastMCP(
        name="Lanes Workflow",
        version=__version__,
        instructions=(
            "Lanes drives a multi-step workflow inside an isolated session worktree. "
            "Call workflow_start, follow the returned instructions, and call "
            "workflow_advance after each step."
        ),
    )

    handles = register_tools(
        server,
        sessions=sessions,
        worktree_path=worktree_path,
        workflow_path=workflow_path,
        machine=machine,
    )

    @server.resource(
        "resource://lanes/workflow",
        name="lanes_workflow",
        title="Lanes Workflow State",
        description="Current workflow snapshot for this session.",
        mime_type="application/json",
        tags={"workflow", "status"},
    )
    def workflow_resource(context: Context) -> str:
        """Return a JSON string with the current snapshot."""

        state = machine.get_state()
        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "workflow": machine.template.name,
            "workflow_path": str(workflow_path),
            "worktree": str(worktree_path),
            "started": machine.started,
            "state": state.to_record() if state is not None else None,
            "resume": resume,
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "session_service", sessions)
    setattr(server, "workflow_machine", machine)
    setattr(server, "resume_info", resume)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Lanes workflow server."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logger.info(
        "Launching Lanes workflow server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "workflow_path": str(settings.workflow_path),
            "resumed": getattr(server, "resume_info", {}).get("restored"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
