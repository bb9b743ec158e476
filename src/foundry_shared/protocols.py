"""Runtime-checkable protocols for the pipeline's external collaborators."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from src.foundry_shared.models import (
    DuplicateDecision,
    DuplicateResolution,
    RegistryEntry,
    ValidationResult,
    WorkerKind,
    WorkerOutcome,
    WorkOrderDisposition,
)


@runtime_checkable
class WorkerClient(Protocol):
    """Invokes an opaque worker and reports its terminal outcome."""

    async def invoke(
        self, kind: WorkerKind, input_ref: str, timeout_seconds: int
    ) -> WorkerOutcome:
        """Run one worker job.

        Args:
            kind: Which worker to run.
            input_ref: Filesystem path or URI handed to the worker.
            timeout_seconds: Upper bound the worker is expected to honour.

        Returns:
            Terminal outcome with an artifact reference on success.
        """
        ...


@runtime_checkable
class RegistryStore(Protocol):
    """Persisted index of previously created resources, keyed by name."""

    def query(self, name_or_keywords: str | list[str]) -> list[RegistryEntry]:
        """Return entries whose name or keywords share a token with the query."""
        ...

    def get(self, name: str) -> RegistryEntry | None:
        """Return the entry named *name*, if any."""
        ...

    def upsert(self, entry: RegistryEntry) -> None:
        """Insert or replace the entry keyed by ``entry.name``."""
        ...


@runtime_checkable
class FormatValidator(Protocol):
    """Synchronous, side-effect-free check of a built resource."""

    def validate(self, resource_ref: str) -> ValidationResult:
        ...


@runtime_checkable
class DispositionResolver(Protocol):
    """Supplies typed answers when the pipeline suspends on a question."""

    async def resolve_duplicate(self, decision: DuplicateDecision) -> DuplicateResolution:
        ...

    async def resolve_work_order(self, path: str) -> WorkOrderDisposition:
        ...
