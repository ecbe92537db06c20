"""Workflow templates, discovery and the step automaton."""

from .loader import (
    WorkflowLoader,
    WorkflowMetadata,
    WorkflowValidationError,
    load_workflow_template,
    load_workflow_template_from_string,
    workflow_search_paths,
)
from .machine import WorkflowStateError, WorkflowStateMachine
from .models import (
    AgentSpec,
    LoopProgress,
    TaskSpec,
    WorkflowProgress,
    WorkflowState,
    WorkflowStatus,
    WorkflowStep,
    WorkflowTemplate,
)

__all__ = [
    "AgentSpec",
    "LoopProgress",
    "TaskSpec",
    "WorkflowLoader",
    "WorkflowMetadata",
    "WorkflowProgress",
    "WorkflowState",
    "WorkflowStateError",
    "WorkflowStateMachine",
    "WorkflowStatus",
    "WorkflowStep",
    "WorkflowTemplate",
    "WorkflowValidationError",
    "load_workflow_template",
    "load_workflow_template_from_string",
    "workflow_search_paths",
]
