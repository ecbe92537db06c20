"""Workflow template and state models."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

StepType = Literal["action", "loop"]
WorkflowStatusValue = Literal["running", "waiting", "complete", "error"]


def _require_id(value: str, what: str) -> str:
    normalized = value.strip()
    if not normalized:
        raise ValueError(f"{what} id must not be empty")
    return normalized


class AgentSpec(BaseModel):
    """Capability declaration for a named sub-agent."""

    model_config = ConfigDict(extra="forbid")

    description: str = Field(..., description="Human-readable description of the agent's role.")
    tools: list[str] = Field(
        default_factory=list,
        description="Tools the agent may use. Empty means no restriction.",
    )
    cannot: list[str] = Field(
        default_factory=list,
        description="Explicit denials, e.g. 'commit' or 'edit tests'.",
    )

    @field_validator("tools", "cannot", mode="before")
    @classmethod
    def _ensure_list(cls, value: Any):
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        raise TypeError("tools and cannot must be sequences of strings")


class TaskSpec(BaseModel):
    """One task entry of a bounded loop."""

    id: str = Field(..., description="Stable identifier for the task within its loop.")
    instructions: str = Field(..., description="What the agent should do for this task.")
    agent: str | None = Field(default=None, description="Agent bound to this task.")

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        return _require_id(value, "Task")


class WorkflowStep(BaseModel):
    """A step of the main sequence."""

    id: str
    type: StepType
    instructions: str | None = None
    agent: str | None = None
    confirm: bool = Field(
        default=False,
        description="Action steps only: wait for an external resume before moving on.",
    )

    @field_validator("id")
    @classmethod
    def _normalize_id(cls, value: str) -> str:
        return _require_id(value, "Step")

    @model_validator(mode="after")
    def _check_kind(self) -> "WorkflowStep":
        if self.type == "action" and self.instructions is None:
            raise ValueError(f"Action step '{self.id}' must have an 'instructions' string")
        if self.type == "loop" and self.confirm:
            raise ValueError(f"Loop step '{self.id}' cannot require confirmation")
        return self


class WorkflowTemplate(BaseModel):
    """A declarative workflow: agents, bounded loops and an ordered list of steps."""

    name: str
    description: str
    agents: dict[str, AgentSpec] = Field(default_factory=dict)
    loops: dict[str, list[TaskSpec]] = Field(default_factory=dict)
    steps: list[WorkflowStep]

    @field_validator("agents", "loops", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any):
        return {} if value is None else value

    @field_validator("steps")
    @classmethod
    def _check_steps(cls, value: list[WorkflowStep]) -> list[WorkflowStep]:
        if not value:
            raise ValueError("Template must have at least one step")
        seen: set[str] = set()
        for step in value:
            if step.id in seen:
                raise ValueError(f"Duplicate step id '{step.id}'")
            seen.add(step.id)
        return value

    def step(self, step_id: str) -> WorkflowStep:
        for step in self.steps:
            if step.id == step_id:
                return step
        raise KeyError(step_id)

    def step_index(self, step_id: str) -> int:
        for index, step in enumerate(self.steps):
            if step.id == step_id:
                return index
        return -1


class LoopProgress(BaseModel):
    """Progress through one loop: next task index and per-task outputs."""

    index: int = 0
    outputs: dict[str, str] = Field(default_factory=dict)
    items: list[TaskSpec] | None = Field(
        default=None,
        description="Runtime override of the loop's declared tasks.",
    )


class WorkflowState(BaseModel):
    """Serializable snapshot of a workflow run."""

    model_config = ConfigDict(populate_by_name=True)

    status: WorkflowStatusValue
    step: str
    step_type: StepType = Field(alias="stepType")
    workflow: str | None = None
    tasks: dict[str, LoopProgress] = Field(default_factory=dict)
    outputs: dict[str, str] = Field(default_factory=dict)
    summary: str | None = None
    error: str | None = None

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class WorkflowProgress(BaseModel):
    current_step: int
    total_steps: int


class WorkflowStatus(BaseModel):
    """What the agent needs to act on the current position."""

    status: WorkflowStatusValue
    step: str
    step_type: StepType
    agent: str | None = None
    instructions: str = ""
    task_id: str | None = None
    task_index: int | None = None
    task_total: int | None = None
    progress: WorkflowProgress
    summary: str | None = None


__all__ = [
    "AgentSpec",
    "LoopProgress",
    "StepType",
    "TaskSpec",
    "WorkflowProgress",
    "WorkflowState",
    "WorkflowStatus",
    "WorkflowStatusValue",
    "WorkflowStep",
    "WorkflowTemplate",
]
