"""Worker clients: subprocess-backed and in-process callables."""

from __future__ import annotations

import asyncio
import inspect
import logging
import os
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from src.foundry_orchestrator.exceptions import ConfigurationError
from src.foundry_shared.models import InvocationStatus, WorkerKind, WorkerOutcome

logger = logging.getLogger(__name__)

# Environment variables never forwarded to worker subprocesses.
_FILTERED_ENV_KEYS = frozenset(
    {"ANTHROPIC_API_KEY", "OPENAI_API_KEY", "AWS_SECRET_ACCESS_KEY", "GITHUB_TOKEN", "GH_TOKEN"}
)


def _filtered_env() -> dict[str, str]:
    """Return ``os.environ`` minus secret keys."""
    return {k: v for k, v in os.environ.items() if k not in _FILTERED_ENV_KEYS}


@dataclass
class CommandResult:
    """Captured result of one subprocess run."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False


async def run_command(
    args: list[str],
    timeout_s: float,
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run *args* with a hard timeout; the process is killed if still alive."""
    proc: asyncio.subprocess.Process | None = None
    stdout_bytes = b""
    stderr_bytes = b""
    exit_code = -1
    timed_out = False

    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
            env=env if env is not None else _filtered_env(),
        )
        stdout_bytes, stderr_bytes = await asyncio.wait_for(
            proc.communicate(), timeout=timeout_s
        )
        exit_code = proc.returncode if proc.returncode is not None else -1
    except asyncio.TimeoutError:
        timed_out = True
        logger.warning("Subprocess %s timed out after %ss", args[0], timeout_s)
    finally:
        if proc is not None and proc.returncode is None:
            proc.kill()
            await proc.wait()

    return CommandResult(
        exit_code=exit_code,
        stdout=stdout_bytes.decode(errors="replace") if stdout_bytes else "",
        stderr=stderr_bytes.decode(errors="replace") if stderr_bytes else "",
        timed_out=timed_out,
    )


class SubprocessWorkerClient:
    """Runs each worker kind as a configured command.

    Command templates are argument lists whose items may reference
    ``{input_ref}`` and ``{output_ref}``.  The worker is expected to write
    its document to ``output_ref``; a zero exit code without that file is
    a failure.
    """

    def __init__(self, commands: dict[str, list[str]], output_dir: Path | str) -> None:
        self._commands = dict(commands)
        self._output_dir = Path(output_dir)

    async def invoke(
        self, kind: WorkerKind, input_ref: str, timeout_seconds: int
    ) -> WorkerOutcome:
        template = self._commands.get(kind.value)
        if not template:
            raise ConfigurationError(f"No worker command configured for '{kind.value}'")

        self._output_dir.mkdir(parents=True, exist_ok=True)
        output_ref = self._output_dir / f"{kind.value}-{uuid.uuid4().hex[:8]}.json"
        args = [part.format(input_ref=input_ref, output_ref=str(output_ref)) for part in template]

        logger.info("Starting %s worker: %s", kind.value, args[0])
        result = await run_command(args, timeout_s=timeout_seconds)

        if result.timed_out:
            return WorkerOutcome(
                InvocationStatus.TIMED_OUT, error_reason=f"exceeded {timeout_seconds}s"
            )
        if result.exit_code != 0:
            return WorkerOutcome(
                InvocationStatus.FAILED,
                error_reason=f"exit {result.exit_code}: {result.stderr[-500:].strip()}",
            )
        if not output_ref.exists():
            return WorkerOutcome(
                InvocationStatus.FAILED, error_reason="worker produced no output document"
            )
        return WorkerOutcome(InvocationStatus.SUCCEEDED, artifact_ref=str(output_ref))


WorkerHandler = Callable[[str, int], Any]


class CallableWorkerClient:
    """Dispatches each worker kind to an in-process callable.

    A handler receives ``(input_ref, timeout_seconds)`` and returns either
    a ``WorkerOutcome`` or the path of the document it wrote.  Handlers
    may be plain functions or coroutines.
    """

    def __init__(self, handlers: dict[WorkerKind, WorkerHandler]) -> None:
        self._handlers = dict(handlers)
        self.calls: list[tuple[WorkerKind, str]] = []

    async def invoke(
        self, kind: WorkerKind, input_ref: str, timeout_seconds: int
    ) -> WorkerOutcome:
        self.calls.append((kind, input_ref))
        handler = self._handlers.get(kind)
        if handler is None:
            return WorkerOutcome(
                InvocationStatus.FAILED, error_reason=f"no handler for '{kind.value}'"
            )
        result = handler(input_ref, timeout_seconds)
        if inspect.isawaitable(result):
            result = await result
        if isinstance(result, WorkerOutcome):
            return result
        return WorkerOutcome(InvocationStatus.SUCCEEDED, artifact_ref=str(result))
