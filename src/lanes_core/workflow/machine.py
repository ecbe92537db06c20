"""Automaton that walks a workflow template one step at a time.

The machine performs no I/O. After every mutating call the caller takes a
snapshot with :meth:`WorkflowStateMachine.get_state` and persists it.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, Mapping

from .models import (
    LoopProgress,
    TaskSpec,
    WorkflowProgress,
    WorkflowState,
    WorkflowStatus,
    WorkflowStep,
    WorkflowTemplate,
)

logger = logging.getLogger(__name__)

MAX_SUMMARY_LENGTH = 100
_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_TASK_ID_PLACEHOLDER = "{task.id}"


class WorkflowStateError(RuntimeError):
    """Raised when the automaton is driven in a way its state does not allow."""


def sanitize_summary(text: str) -> str:
    """Trim, drop control characters and cap the length of a summary."""

    return _CONTROL_CHARS.sub("", text.strip())[:MAX_SUMMARY_LENGTH]


class WorkflowStateMachine:
    """Runs a :class:`WorkflowTemplate`.

    States move ``not-started -> running -> {waiting, complete, error}``;
    ``waiting`` returns to ``running`` through :meth:`resume`. ``complete``
    and ``error`` are terminal.
    """

    def __init__(self, template: WorkflowTemplate) -> None:
        self._template = template
        self._state: WorkflowState | None = None

    @classmethod
    def from_state(
        cls,
        template: WorkflowTemplate,
        state: WorkflowState | Mapping[str, Any],
    ) -> "WorkflowStateMachine":
        """Rebuild a machine positioned where a persisted snapshot left off."""

        snapshot = (
            state.model_copy(deep=True)
            if isinstance(state, WorkflowState)
            else WorkflowState.model_validate(dict(state))
        )
        if snapshot.workflow is not None and snapshot.workflow != template.name:
            raise WorkflowStateError(
                f"State belongs to workflow '{snapshot.workflow}', not '{template.name}'"
            )
        index = template.step_index(snapshot.step)
        if index < 0:
            raise WorkflowStateError(f"Step '{snapshot.step}' not found in template")
        if template.steps[index].type != snapshot.step_type:
            raise WorkflowStateError(
                f"Step '{snapshot.step}' is a {template.steps[index].type} step, "
                f"not {snapshot.step_type}"
            )

        machine = cls(template)
        machine._state = snapshot
        return machine

    @property
    def template(self) -> WorkflowTemplate:
        return self._template

    @property
    def started(self) -> bool:
        return self._state is not None

    def _require_state(self) -> WorkflowState:
        if self._state is None:
            raise WorkflowStateError("Workflow has not been started")
        return self._state

    def _current_step(self) -> WorkflowStep:
        state = self._require_state()
        return self._template.step(state.step)

    def _loop_tasks(self, loop_id: str) -> list[TaskSpec]:
        state = self._require_state()
        progress = state.tasks.get(loop_id)
        if progress is not None and progress.items is not None:
            return progress.items
        return self._template.loops.get(loop_id, [])

    def _current_task(self) -> TaskSpec | None:
        state = self._require_state()
        if state.step_type != "loop":
            return None
        progress = state.tasks.get(state.step)
        tasks = self._loop_tasks(state.step)
        index = progress.index if progress is not None else 0
        if index >= len(tasks):
            return None
        return tasks[index]

    def _enter(self, index: int) -> None:
        """Position the machine at ``steps[index]``, skipping empty loops."""

        state = self._require_state()
        steps = self._template.steps
        while index < len(steps):
            step = steps[index]
            state.step = step.id
            state.step_type = step.type
            state.status = "running"
            if step.type == "action":
                return
            progress = state.tasks.setdefault(step.id, LoopProgress())
            if progress.index < len(self._loop_tasks(step.id)):
                return
            logger.debug("Skipping exhausted loop", extra={"loop": step.id})
            index += 1
        state.status = "complete"

    def _enter_next(self) -> None:
        state = self._require_state()
        self._enter(self._template.step_index(state.step) + 1)

    def start(self) -> WorkflowStatus:
        """Reset to the first step with status ``running``."""

        first = self._template.steps[0]
        self._state = WorkflowState(
            status="running",
            step=first.id,
            step_type=first.type,
            workflow=self._template.name,
        )
        self._enter(0)
        return self.status()

    def advance(self, output: str = "") -> WorkflowStatus:
        """Record ``output`` for the current position and move forward.

        Outside ``running`` this is a no-op that re-reports the status.
        """

        state = self._require_state()
        if state.status != "running":
            return self.status()

        step = self._current_step()
        if step.type == "action":
            state.outputs[step.id] = output
            if step.confirm:
                state.status = "waiting"
            else:
                self._enter_next()
            return self.status()

        task = self._current_task()
        if task is None:
            self._enter_next()
            return self.status()
        progress = state.tasks.setdefault(step.id, LoopProgress())
        progress.outputs[task.id] = output
        state.outputs[f"{step.id}.{task.id}"] = output
        progress.index += 1
        if progress.index >= len(self._loop_tasks(step.id)):
            self._enter_next()
        return self.status()

    def resume(self) -> WorkflowStatus:
        """Clear a ``waiting`` status and continue with the next step."""

        state = self._require_state()
        if state.status == "waiting":
            self._enter_next()
        return self.status()

    def fail(self, reason: str) -> WorkflowStatus:
        state = self._require_state()
        if state.status not in ("complete", "error"):
            state.status = "error"
            state.error = reason.strip() or "Workflow failed"
        return self.status()

    def set_summary(self, text: str) -> None:
        """Set the free-text summary; an empty result after sanitizing is ignored."""

        state = self._require_state()
        sanitized = sanitize_summary(text)
        if sanitized:
            state.summary = sanitized

    def set_tasks(
        self,
        loop_id: str,
        tasks: Iterable[TaskSpec | Mapping[str, Any]],
    ) -> WorkflowStatus:
        """Replace the task list of ``loop_id`` before it has consumed any task."""

        state = self._require_state()
        if loop_id not in self._template.loops:
            raise WorkflowStateError(f"Loop '{loop_id}' not found in template")
        progress = state.tasks.setdefault(loop_id, LoopProgress())
        if progress.index > 0:
            raise WorkflowStateError(f"Loop '{loop_id}' has already started consuming tasks")

        items = [
            task if isinstance(task, TaskSpec) else TaskSpec.model_validate(dict(task))
            for task in tasks
        ]
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                raise WorkflowStateError(f"Duplicate task id '{item.id}' in loop '{loop_id}'")
            if item.agent and item.agent not in self._template.agents:
                raise WorkflowStateError(
                    f"Task '{item.id}' references unknown agent '{item.agent}'"
                )
            seen.add(item.id)
        progress.items = items

        if state.status == "running" and state.step == loop_id and not items:
            self._enter_next()
        return self.status()

    def get_state(self) -> WorkflowState | None:
        """Return a deep copy of the snapshot, or ``None`` before :meth:`start`."""

        if self._state is None:
            return None
        return self._state.model_copy(deep=True)

    def context(self) -> dict[str, str]:
        """Outputs recorded so far, keyed ``step`` or ``step.task``."""

        return dict(self._require_state().outputs)

    def _progress(self) -> WorkflowProgress:
        state = self._require_state()
        total = len(self._template.steps)
        if state.status == "complete":
            return WorkflowProgress(current_step=total, total_steps=total)
        return WorkflowProgress(
            current_step=self._template.step_index(state.step) + 1,
            total_steps=total,
        )

    def status(self) -> WorkflowStatus:
        """Describe what the agent should do at the current position."""

        state = self._require_state()
        base: dict[str, Any] = {
            "status": state.status,
            "step": state.step,
            "step_type": state.step_type,
            "progress": self._progress(),
            "summary": state.summary,
        }

        if state.status == "complete":
            return WorkflowStatus(instructions="Workflow complete.", **base)
        if state.status == "error":
            return WorkflowStatus(
                instructions=f"Workflow failed: {state.error or 'unknown error'}", **base
            )
        if state.status == "waiting":
            return WorkflowStatus(
                instructions=(
                    f"Step '{state.step}' is waiting for confirmation. "
                    "Resume the workflow to continue."
                ),
                **base,
            )

        step = self._current_step()
        if step.type == "action":
            return WorkflowStatus(agent=step.agent, instructions=step.instructions or "", **base)

        task = self._current_task()
        tasks = self._loop_tasks(step.id)
        progress = state.tasks.get(step.id)
        if task is None:
            return WorkflowStatus(agent=step.agent, task_total=len(tasks), **base)
        return WorkflowStatus(
            agent=task.agent or step.agent,
            instructions=task.instructions.replace(_TASK_ID_PLACEHOLDER, task.id),
            task_id=task.id,
            task_index=progress.index if progress is not None else 0,
            task_total=len(tasks),
            **base,
        )


__all__ = [
    "MAX_SUMMARY_LENGTH",
    "WorkflowStateError",
    "WorkflowStateMachine",
    "sanitize_summary",
]
