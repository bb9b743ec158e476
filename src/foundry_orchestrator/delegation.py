"""Delegation engine -- dispatch, timeout enforcement and artifact intake.

``dispatch`` starts the worker as an asyncio task and returns the
invocation record immediately; ``await_invocation`` suspends until the
task reaches a terminal status.  Timeouts are terminal: the engine never
retries on its own.  A worker that reports success but leaves behind a
document that does not parse is marked failed (``StructurallyInvalid``).
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from src.foundry_orchestrator.artifact import load_build_report, load_synthesis_artifact
from src.foundry_orchestrator.config import WorkerConfig
from src.foundry_orchestrator.exceptions import (
    PipelineError,
    StructurallyInvalidError,
    WorkerFailedError,
    WorkerTimedOutError,
)
from src.foundry_shared.documents import BuildReportDocument
from src.foundry_shared.models import (
    InvocationStatus,
    Provenance,
    SynthesisArtifact,
    WorkerInvocation,
    WorkerKind,
    WorkerOutcome,
)
from src.foundry_shared.protocols import WorkerClient

logger = logging.getLogger(__name__)

SCHEMA_SYNTHESIS_ARTIFACT = "synthesis_artifact"
SCHEMA_BUILD_REPORT = "build_report"

EXPECTED_SCHEMAS: dict[WorkerKind, str] = {
    WorkerKind.WEB_RESEARCH: SCHEMA_SYNTHESIS_ARTIFACT,
    WorkerKind.REPO_ANALYSIS: SCHEMA_SYNTHESIS_ARTIFACT,
    WorkerKind.BUILD: SCHEMA_BUILD_REPORT,
}

_DEFAULT_PROVENANCE = {
    WorkerKind.WEB_RESEARCH: Provenance.WEB,
    WorkerKind.REPO_ANALYSIS: Provenance.REPO,
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class InvocationResult:
    """Terminal view of one invocation plus its parsed document."""

    invocation: WorkerInvocation
    artifact: SynthesisArtifact | None = None
    build_report: BuildReportDocument | None = None
    failure_kind: str = ""

    @property
    def succeeded(self) -> bool:
        return self.invocation.status == InvocationStatus.SUCCEEDED


def raise_for_failure(result: InvocationResult) -> None:
    """Raise the taxonomy error matching a failed invocation."""
    if result.succeeded:
        return
    inv = result.invocation
    if inv.status == InvocationStatus.TIMED_OUT:
        raise WorkerTimedOutError(inv.worker_kind.value, inv.timeout_seconds)
    if result.failure_kind == StructurallyInvalidError.kind:
        raise StructurallyInvalidError(inv.error_reason)
    raise WorkerFailedError(
        inv.worker_kind.value,
        f"Worker '{inv.worker_kind.value}' failed: {inv.error_reason or 'no reason given'}",
    )


class DelegationEngine:
    """Owns every ``WorkerInvocation`` of a run.

    Invocation records are mutated only here and retained in
    ``invocations`` for the completion report.
    """

    def __init__(self, client: WorkerClient, config: WorkerConfig | None = None) -> None:
        self._client = client
        self._config = config or WorkerConfig()
        self._tasks: dict[str, asyncio.Task[WorkerOutcome]] = {}
        self.invocations: list[WorkerInvocation] = []

    def dispatch(
        self, kind: WorkerKind, input_ref: str, timeout: int | None = None
    ) -> WorkerInvocation:
        """Start a worker job.  Must be called from a running event loop."""
        timeout = timeout if timeout is not None else self._config.timeout_for(kind)
        started = _now()
        invocation = WorkerInvocation(
            invocation_id=uuid.uuid4().hex[:12],
            worker_kind=kind,
            input_ref=str(input_ref),
            expected_artifact_schema=EXPECTED_SCHEMAS[kind],
            timeout_seconds=timeout,
            timeout_deadline=(started + timedelta(seconds=timeout)).isoformat(),
            status=InvocationStatus.RUNNING,
            started_at=started.isoformat(),
        )
        self.invocations.append(invocation)
        self._tasks[invocation.invocation_id] = asyncio.create_task(
            self._run(invocation), name=f"worker-{kind.value}-{invocation.invocation_id}"
        )
        logger.info(
            "Dispatched %s worker %s (timeout %ss)", kind.value, invocation.invocation_id, timeout
        )
        return invocation

    async def _run(self, invocation: WorkerInvocation) -> WorkerOutcome:
        try:
            return await asyncio.wait_for(
                self._client.invoke(
                    invocation.worker_kind, invocation.input_ref, invocation.timeout_seconds
                ),
                timeout=invocation.timeout_seconds,
            )
        except asyncio.TimeoutError:
            return WorkerOutcome(
                InvocationStatus.TIMED_OUT,
                error_reason=f"exceeded {invocation.timeout_seconds}s",
            )
        except PipelineError as exc:
            return WorkerOutcome(InvocationStatus.FAILED, error_reason=str(exc))
        except Exception as exc:
            logger.exception("Worker client raised for %s", invocation.invocation_id)
            return WorkerOutcome(InvocationStatus.FAILED, error_reason=f"{type(exc).__name__}: {exc}")

    async def await_invocation(self, invocation: WorkerInvocation) -> InvocationResult:
        """Suspend until *invocation* is terminal and take in its document."""
        task = self._tasks.pop(invocation.invocation_id, None)
        if task is None:
            raise ValueError(f"Invocation {invocation.invocation_id} is not pending")
        outcome = await task

        invocation.ended_at = _now().isoformat()
        invocation.status = outcome.status
        invocation.error_reason = outcome.error_reason
        result = InvocationResult(invocation=invocation)

        if outcome.status == InvocationStatus.SUCCEEDED:
            invocation.result_artifact_ref = outcome.artifact_ref or None
            try:
                if invocation.expected_artifact_schema == SCHEMA_BUILD_REPORT:
                    result.build_report = load_build_report(outcome.artifact_ref)
                else:
                    result.artifact = load_synthesis_artifact(
                        outcome.artifact_ref, _DEFAULT_PROVENANCE[invocation.worker_kind]
                    )
            except StructurallyInvalidError as exc:
                invocation.status = InvocationStatus.FAILED
                invocation.error_reason = str(exc)
                result.failure_kind = StructurallyInvalidError.kind
        elif outcome.status == InvocationStatus.TIMED_OUT:
            result.failure_kind = WorkerTimedOutError.kind
        else:
            if outcome.status != InvocationStatus.FAILED:
                invocation.status = InvocationStatus.FAILED
                invocation.error_reason = (
                    outcome.error_reason or f"non-terminal status '{outcome.status.value}'"
                )
            result.failure_kind = WorkerFailedError.kind

        log = logger.info if result.succeeded else logger.error
        log(
            "Worker %s (%s) finished: %s%s",
            invocation.invocation_id,
            invocation.worker_kind.value,
            invocation.status.value,
            f" ({invocation.error_reason})" if invocation.error_reason else "",
        )
        return result

    async def await_all(self, invocations: list[WorkerInvocation]) -> list[InvocationResult]:
        """Join: wait for every invocation to become terminal, in order."""
        return list(await asyncio.gather(*(self.await_invocation(i) for i in invocations)))

    async def cancel_pending(self) -> None:
        """Cancel any task still running (used on shutdown)."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
