"""Registry of supported coding agents."""

from __future__ import annotations

from .base import CodeAgent, PermissionMode
from .claude import ClaudeAgent
from .codex import CodexAgent

_AGENTS: dict[str, type[CodeAgent]] = {
    ClaudeAgent.name: ClaudeAgent,
    CodexAgent.name: CodexAgent,
}


def available_agents() -> list[str]:
    """Names of all registered agents."""

    return list(_AGENTS)


def get_agent(name: str) -> CodeAgent:
    """Return a new agent instance, raising ``KeyError`` for unknown names."""

    key = name.strip().lower()
    agent_cls = _AGENTS.get(key)
    if agent_cls is None:
        available = ", ".join(_AGENTS)
        raise KeyError(f"Agent '{name}' not found. Available: {available}")
    return agent_cls()


__all__ = [
    "ClaudeAgent",
    "CodeAgent",
    "CodexAgent",
    "PermissionMode",
    "available_agents",
    "get_agent",
]
