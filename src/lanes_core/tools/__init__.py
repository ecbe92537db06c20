"""Workflow tools exposed to the coding agent over MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from fastmcp import Context, FastMCP

from ..session.service import SessionDataService
from ..workflow import (
    TaskSpec,
    WorkflowStateMachine,
    WorkflowStatus,
    load_workflow_template,
)

logger = logging.getLogger(__name__)

ADVANCE_REMINDER = (
    "\n\nIMPORTANT: When you have completed this step, you MUST call "
    "workflow_advance with a summary of what you accomplished."
)


@dataclass(slots=True)
class ToolHandles:
    workflow_start: Any
    workflow_set_tasks: Any
    workflow_status: Any
    workflow_advance: Any
    workflow_resume: Any
    workflow_set_summary: Any
    workflow_context: Any
    machine: WorkflowStateMachine


def _status_payload(status: WorkflowStatus) -> dict[str, Any]:
    payload = status.model_dump(mode="json")
    if status.status == "running":
        payload["instructions"] = payload["instructions"] + ADVANCE_REMINDER
    return payload


def register_tools(
    server: FastMCP,
    *,
    sessions: SessionDataService,
    worktree_path: Path,
    workflow_path: Path | None = None,
    machine: WorkflowStateMachine | None = None,
) -> ToolHandles:
    """Register the workflow tools on the server.

    ``machine`` carries a restored run; without one a fresh machine is built
    from the template at ``workflow_path``.
    """

    if machine is None:
        if workflow_path is None:
            raise ValueError("Either a workflow path or a state machine is required")
        machine = WorkflowStateMachine(load_workflow_template(workflow_path))

    def _persist() -> None:
        state = machine.get_state()
        if state is not None:
            sessions.save_workflow_state(worktree_path, state)

    def _require_started() -> None:
        if not machine.started:
            raise ValueError("Workflow not started. Call workflow_start first.")

    def _workflow_start(summary: str | None = None, context: Context | None = None) -> dict[str, Any]:
        """Start the workflow, or report the current position if it is already running."""

        if machine.started:
            if summary:
                machine.set_summary(summary)
                _persist()
            _emit_log(context, "debug", "Workflow already started", extra={"step": machine.status().step})
            return _status_payload(machine.status())

        machine.start()
        if summary:
            machine.set_summary(summary)
        _persist()
        if workflow_path is not None:
            sessions.save_workflow(worktree_path, workflow_path)
        status = machine.status()
        _emit_log(
            context,
            "info",
            "Workflow started",
            extra={"workflow": machine.template.name, "step": status.step},
        )
        return _status_payload(status)

    def _workflow_set_tasks(
        loop_id: str,
        tasks: list[dict[str, Any]],
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Replace the tasks a loop step iterates over."""

        _require_started()
        if not loop_id:
            raise ValueError("loop_id must be a non-empty string")
        specs = [TaskSpec.model_validate(task) for task in tasks]
        status = machine.set_tasks(loop_id, specs)
        _persist()
        _emit_log(
            context,
            "info",
            "Loop tasks set",
            extra={"loop_id": loop_id, "count": len(specs)},
        )
        return {"loop_id": loop_id, "task_count": len(specs), "status": _status_payload(status)}

    def _workflow_status(context: Context | None = None) -> dict[str, Any]:
        """Report the current step, agent, instructions and progress."""

        _require_started()
        return _status_payload(machine.status())

    def _workflow_advance(output: str, context: Context | None = None) -> dict[str, Any]:
        """Record the output of the current step or task and move on."""

        _require_started()
        previous = machine.status()
        status = machine.advance(output)
        _persist()
        _emit_log(
            context,
            "info",
            "Workflow advanced",
            extra={"from_step": previous.step, "to_step": status.step, "status": status.status},
        )
        return _status_payload(status)

    def _workflow_resume(context: Context | None = None) -> dict[str, Any]:
        """Continue past a step that was waiting for confirmation."""

        _require_started()
        status = machine.resume()
        _persist()
        _emit_log(context, "info", "Workflow resumed", extra={"step": status.step, "status": status.status})
        return _status_payload(status)

    def _workflow_set_summary(summary: str, context: Context | None = None) -> dict[str, Any]:
        """Store a short sanitized summary of the user's request."""

        _require_started()
        machine.set_summary(summary)
        _persist()
        state = machine.get_state()
        stored = state.summary if state is not None else None
        if stored:
            sessions.save_summary(worktree_path, stored)
        return {"summary": stored}

    def _workflow_context(context: Context | None = None) -> dict[str, str]:
        """Outputs of earlier steps keyed ``step`` or ``step.task``."""

        _require_started()
        return machine.context()

    tool_start = server.tool(
        name="workflow_start",
        description=(
            "Initialize the workflow and return the first step instructions. "
            "If the workflow was previously started, returns the current status."
        ),
    )(_workflow_start)

    tool_set_tasks = server.tool(
        name="workflow_set_tasks",
        description="Replace the tasks of a loop step before the loop starts consuming them.",
    )(_workflow_set_tasks)

    tool_status = server.tool(
        name="workflow_status",
        description="Get the current step, agent, instructions and progress.",
    )(_workflow_status)

    tool_advance = server.tool(
        name="workflow_advance",
        description="Complete the current step or task with a summary of the work and advance.",
    )(_workflow_advance)

    tool_resume = server.tool(
        name="workflow_resume",
        description="Resume a workflow that is waiting for confirmation.",
    )(_workflow_resume)

    tool_set_summary = server.tool(
        name="workflow_set_summary",
        description="Set a short summary (under 100 characters) of the user's request.",
    )(_workflow_set_summary)

    tool_context = server.tool(
        name="workflow_context",
        description="Get the outputs recorded by previous steps.",
    )(_workflow_context)

    logger.debug(
        "Registered workflow tools",
        extra={"workflow": machine.template.name, "worktree": str(worktree_path)},
    )

    return ToolHandles(
        workflow_start=tool_start,
        workflow_set_tasks=tool_set_tasks,
        workflow_status=tool_status,
        workflow_advance=tool_advance,
        workflow_resume=tool_resume,
        workflow_set_summary=tool_set_summary,
        workflow_context=tool_context,
        machine=machine,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log through the MCP context logger when there is one, else the module logger."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["ADVANCE_REMINDER", "ToolHandles", "register_tools"]
