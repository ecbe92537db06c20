"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from .utils import sanitize_environment


class GitError(RuntimeError):
    """Raised when a git command exits non-zero."""

    def __init__(
        self,
        args: Sequence[str],
        returncode: int | None,
        stderr: str,
    ) -> None:
        self.command = tuple(args)
        self.returncode = returncode
        self.stderr = stderr
        code = f" (exit code: {returncode})" if returncode is not None else ""
        detail = stderr.strip() or "no error output"
        super().__init__(f"git {' '.join(self.command)} failed{code}: {detail}")


class GitNotFoundError(GitError):
    """Raised when the git executable cannot be located."""

    def __init__(self, message: str) -> None:
        RuntimeError.__init__(self, message)
        self.command = ()
        self.returncode = None
        self.stderr = message


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitRunner:
    """Execute git commands asynchronously."""

    def __init__(self, executable: Path | str | None = None) -> None:
        self._executable_path = self._resolve_executable(executable)

    @staticmethod
    def _resolve_executable(explicit: Path | str | None) -> Path:
        if explicit is not None and str(explicit) != "git":
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            located = shutil.which(str(explicit))
            if located is not None:
                return Path(located)
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def exec(
        self,
        args: Sequence[str],
        cwd: Path | str,
        *,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Run ``git <args>`` in ``cwd`` and return stdout, raising on failure."""

        result = await self.run(args, cwd, env=env)
        if not result.ok:
            raise GitError(args, result.returncode, result.stderr)
        return result.stdout

    async def run(
        self,
        args: Sequence[str],
        cwd: Path | str,
        *,
        env: Mapping[str, str] | None = None,
    ) -> GitExecutionResult:
        """Run ``git <args>`` in ``cwd`` without raising on a non-zero exit."""

        return await self._invoke(tuple(args), Path(cwd), env)

    async def _invoke(
        self,
        args: tuple[str, ...],
        cwd: Path,
        env: Mapping[str, str] | None,
    ) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                cwd=str(cwd),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=sanitize_environment(env),
            )
        except OSError as exc:
            raise GitError(args, None, f"Failed to spawn git process: {exc}") from exc
        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitExecutionResult(args=args, returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeGitRunner(GitRunner):
    """Test double that simulates git responses."""

    def __init__(self, responses: Iterable[GitExecutionResult] | None = None) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-git")

    async def _invoke(  # type: ignore[override]
        self,
        args: tuple[str, ...],
        cwd: Path,
        env: Mapping[str, str] | None,
    ) -> GitExecutionResult:
        self._invocations.append(tuple(args))
        if self._responses:
            return self._responses.pop(0)
        return GitExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "FakeGitRunner",
    "GitError",
    "GitExecutionResult",
    "GitNotFoundError",
    "GitRunner",
]
