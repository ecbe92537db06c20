"""Workflow template loading and discovery."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import ValidationError

from .models import WorkflowTemplate

logger = logging.getLogger(__name__)


class WorkflowValidationError(ValueError):
    """Raised when a workflow template cannot be read, parsed or validated."""


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()))
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return "; ".join(parts)


def _check_references(template: WorkflowTemplate) -> None:
    for step in template.steps:
        if step.type == "loop" and step.id not in template.loops:
            raise WorkflowValidationError(
                f"Loop step '{step.id}' references unknown loop definition '{step.id}'"
            )
        if step.agent and step.agent not in template.agents:
            raise WorkflowValidationError(
                f"Step '{step.id}' references unknown agent '{step.agent}'"
            )

    for loop_id, tasks in template.loops.items():
        for task in tasks:
            if task.agent and task.agent not in template.agents:
                raise WorkflowValidationError(
                    f"Loop '{loop_id}' task '{task.id}' references unknown agent '{task.agent}'"
                )


def validate_template(document: Any) -> WorkflowTemplate:
    """Build a template from a parsed document, checking cross references."""

    if not isinstance(document, dict):
        raise WorkflowValidationError("Template must be a mapping")
    try:
        template = WorkflowTemplate.model_validate(document)
    except ValidationError as exc:
        raise WorkflowValidationError(
            f"Template validation error: {_format_validation_error(exc)}"
        ) from exc
    _check_references(template)
    return template


def load_workflow_template_from_string(content: str) -> WorkflowTemplate:
    try:
        document = yaml.safe_load(content)
    except yaml.YAMLError as exc:
        raise WorkflowValidationError(f"Invalid YAML syntax: {exc}") from exc
    return validate_template(document)


def load_workflow_template(path: Path | str) -> WorkflowTemplate:
    """Load and validate the template at ``path``."""

    template_path = Path(path)
    try:
        content = template_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise WorkflowValidationError(f"Cannot read workflow template {template_path}: {exc}") from exc
    try:
        return load_workflow_template_from_string(content)
    except WorkflowValidationError as exc:
        raise WorkflowValidationError(f"{template_path}: {exc}") from exc


@dataclass(frozen=True, slots=True)
class WorkflowMetadata:
    name: str
    description: str
    path: Path
    is_builtin: bool


class WorkflowLoader:
    """Discovers workflow templates in a list of directories."""

    def __init__(
        self,
        search_paths: Iterable[Path] | None = None,
        *,
        builtin_paths: Iterable[Path] | None = None,
    ) -> None:
        self._builtin_paths = [Path(path) for path in (builtin_paths or [])]
        self._search_paths = [Path(path) for path in (search_paths or [])]

    @property
    def search_paths(self) -> list[Path]:
        """Return built-in directories followed by custom ones."""

        return [*self._builtin_paths, *self._search_paths]

    @staticmethod
    def _read_metadata(path: Path) -> tuple[str, str] | None:
        try:
            document = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, yaml.YAMLError):
            return None
        if not isinstance(document, dict):
            return None
        name = document.get("name")
        description = document.get("description")
        if isinstance(name, str) and isinstance(description, str):
            return name, description
        return None

    def _scan(self, base: Path, is_builtin: bool) -> list[WorkflowMetadata]:
        if not base.is_dir():
            return []
        found: list[WorkflowMetadata] = []
        for path in sorted(base.glob("*.yaml")) + sorted(base.glob("*.yml")):
            if not path.is_file():
                continue
            metadata = self._read_metadata(path)
            if metadata is None:
                logger.warning("Skipping invalid workflow file", extra={"path": str(path)})
                continue
            name, description = metadata
            found.append(
                WorkflowMetadata(name=name, description=description, path=path, is_builtin=is_builtin)
            )
        return found

    def discover(self) -> list[WorkflowMetadata]:
        """Return metadata for every readable template, built-ins first."""

        results: list[WorkflowMetadata] = []
        for base in self._builtin_paths:
            results.extend(self._scan(base, True))
        for base in self._search_paths:
            results.extend(self._scan(base, False))
        return results

    def find(self, name: str) -> WorkflowMetadata | None:
        """Find a template by its declared name or file stem. Later paths win."""

        match: WorkflowMetadata | None = None
        for metadata in self.discover():
            if metadata.name == name or metadata.path.stem == name:
                match = metadata
        return match

    def load(self, name: str) -> WorkflowTemplate:
        metadata = self.find(name)
        if metadata is None:
            raise WorkflowValidationError(f"Workflow '{name}' not found in search paths")
        return load_workflow_template(metadata.path)


def workflow_search_paths(repo_root: Path | str, workflows_folder: str) -> list[Path]:
    """Return the custom workflow directory for a repository, if it is safe.

    A folder containing ``..`` or resolving outside the repository is ignored.
    """

    if ".." in workflows_folder:
        logger.warning(
            "Parent directory traversal not allowed in workflows folder",
            extra={"workflows_folder": workflows_folder},
        )
        return []
    root = Path(repo_root).resolve()
    candidate = (root / workflows_folder).resolve()
    if candidate != root and root not in candidate.parents:
        logger.warning(
            "Workflows folder resolves outside the repository",
            extra={"workflows_folder": workflows_folder},
        )
        return []
    return [candidate]


__all__ = [
    "WorkflowLoader",
    "WorkflowMetadata",
    "WorkflowValidationError",
    "load_workflow_template",
    "load_workflow_template_from_string",
    "validate_template",
    "workflow_search_paths",
]
