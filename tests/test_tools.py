from __future__ import annotations

import json
import textwrap
from pathlib import Path

import pytest

from lanes_core.config import LanesSettings
from lanes_core.session.service import SessionDataService
from lanes_core.storage import StorageContext
from lanes_core.tools import ADVANCE_REMINDER, register_tools


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class StubLogger:
    def __init__(self) -> None:
        self.records: list[tuple[str, str, dict]] = []

    def info(self, message, extra=None):
        self.records.append(("info", message, extra or {}))

    def debug(self, message, extra=None):
        self.records.append(("debug", message, extra or {}))


class StubContext:
    def __init__(self) -> None:
        self.logger = StubLogger()


WORKFLOW = textwrap.dedent(
    """
    name: feature
    description: Feature workflow
    agents:
      coder:
        description: Writes code
    loops:
      implement:
        - id: t1
          instructions: Implement {task.id}
          agent: coder
    steps:
      - id: plan
        type: action
        instructions: Plan the change
        confirm: true
      - id: implement
        type: loop
      - id: review
        type: action
        instructions: Review the change
    """
)


@pytest.fixture
def setup(tmp_path: Path):
    repo = tmp_path / "repo"
    worktree = repo / ".worktrees" / "feat"
    worktree.mkdir(parents=True)
    workflow_path = tmp_path / "feature.yaml"
    workflow_path.write_text(WORKFLOW, encoding="utf-8")
    settings = LanesSettings(_env_file=None, shared_storage_root=tmp_path / "shared")
    sessions = SessionDataService(settings, StorageContext.from_settings(settings, repo))
    server = StubServer()
    handles = register_tools(server, sessions=sessions, worktree_path=worktree, workflow_path=workflow_path)
    return server, handles, sessions, worktree, workflow_path


def test_registers_all_workflow_tools(setup) -> None:
    server, *_ = setup

    assert sorted(server._tools) == [
        "workflow_advance",
        "workflow_context",
        "workflow_resume",
        "workflow_set_summary",
        "workflow_set_tasks",
        "workflow_start",
        "workflow_status",
    ]
    assert all(tool.fn.__doc__ for tool in server._tools.values())


def test_tools_require_start(setup) -> None:
    _, handles, *_ = setup

    with pytest.raises(ValueError, match="workflow_start"):
        handles.workflow_status.fn()


def test_full_run_persists_every_transition(setup) -> None:
    _, handles, sessions, worktree, workflow_path = setup
    context = StubContext()

    started = handles.workflow_start.fn(summary="Add login", context=context)
    assert started["step"] == "plan"
    assert started["instructions"] == "Plan the change" + ADVANCE_REMINDER
    assert sessions.get_workflow_state(worktree).summary == "Add login"
    assert sessions.get_workflow(worktree) == str(workflow_path)
    assert context.logger.records[-1][1] == "Workflow started"

    waiting = handles.workflow_advance.fn("plan written", context=context)
    assert waiting["status"] == "waiting"
    assert ADVANCE_REMINDER not in waiting["instructions"]
    assert sessions.get_workflow_state(worktree).status == "waiting"

    resumed = handles.workflow_resume.fn()
    assert resumed["step"] == "implement"
    assert resumed["instructions"].startswith("Implement t1")
    assert resumed["agent"] == "coder"

    handles.workflow_advance.fn("t1 done")
    finished = handles.workflow_advance.fn("reviewed")
    assert finished["status"] == "complete"

    assert handles.workflow_context.fn() == {
        "plan": "plan written",
        "implement.t1": "t1 done",
        "review": "reviewed",
    }
    persisted = json.loads(sessions.workflow_state_file(worktree).read_text(encoding="utf-8"))
    assert persisted["status"] == "complete"
    assert persisted["outputs"]["review"] == "reviewed"


def test_start_twice_returns_current_status(setup) -> None:
    _, handles, *_ = setup

    handles.workflow_start.fn()
    handles.workflow_advance.fn("plan")
    again = handles.workflow_start.fn()

    assert again["status"] == "waiting"
    assert again["step"] == "plan"


def test_set_tasks_and_summary(setup) -> None:
    _, handles, sessions, worktree, _ = setup
    handles.workflow_start.fn()

    result = handles.workflow_set_tasks.fn(
        "implement",
        [{"id": "login", "instructions": "Build {task.id}"}, {"id": "logout", "instructions": "Build {task.id}"}],
    )
    assert result["task_count"] == 2

    summary = handles.workflow_set_summary.fn("  Auth pages\x00  ")
    assert summary == {"summary": "Auth pages"}
    assert sessions.get_summary(worktree) == "Auth pages"

    handles.workflow_advance.fn("plan")
    status = handles.workflow_resume.fn()
    assert status["task_id"] == "login"
    assert status["task_total"] == 2
    assert sessions.get_workflow_state(worktree).tasks["implement"].items[1].id == "logout"


def test_register_requires_template_or_machine(tmp_path: Path) -> None:
    settings = LanesSettings(_env_file=None, use_shared_storage=False)

    with pytest.raises(ValueError):
        register_tools(StubServer(), sessions=SessionDataService(settings), worktree_path=tmp_path)
