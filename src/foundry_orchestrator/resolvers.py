"""Disposition resolvers that answer the pipeline's suspension questions."""

from __future__ import annotations

from src.foundry_orchestrator.config import DispositionConfig
from src.foundry_orchestrator.exceptions import (
    ConfigurationError,
    DispositionUnresolvedError,
    DuplicateUnresolvedError,
)
from src.foundry_shared.models import (
    Disposition,
    DuplicateDecision,
    DuplicateResolution,
    WorkOrderDisposition,
)


class PresetResolver:
    """Answers every question from fixed values; ``None`` means no answer."""

    def __init__(
        self,
        duplicate: DuplicateResolution | None = None,
        work_order: WorkOrderDisposition | None = None,
    ) -> None:
        self.duplicate = duplicate
        self.work_order = work_order
        self.questions: list[str] = []

    async def resolve_duplicate(self, decision: DuplicateDecision) -> DuplicateResolution:
        self.questions.append(f"duplicate:{decision.target_name}")
        if self.duplicate is None:
            raise DuplicateUnresolvedError(decision.target_name)
        return self.duplicate

    async def resolve_work_order(self, path: str) -> WorkOrderDisposition:
        self.questions.append(f"work_order:{path}")
        if self.work_order is None:
            raise DispositionUnresolvedError(f"No preset answer for existing work order {path}")
        return self.work_order


def parse_duplicate_answer(text: str) -> DuplicateResolution | None:
    """``rebuild`` | ``abort`` | ``narrow:<suffix>`` | empty."""
    text = (text or "").strip()
    if not text:
        return None
    head, _, tail = text.partition(":")
    head = head.strip().lower()
    if head == Disposition.REBUILD.value:
        return DuplicateResolution.rebuild()
    if head == Disposition.ABORT.value:
        return DuplicateResolution.abort()
    if head == Disposition.NARROW.value and tail.strip():
        return DuplicateResolution.narrow(tail.strip())
    raise ConfigurationError(f"Invalid duplicate disposition '{text}'")


def resolver_from_config(config: DispositionConfig) -> PresetResolver | None:
    """Build a ``PresetResolver`` from config, or ``None`` when nothing is preset."""
    duplicate = parse_duplicate_answer(config.duplicate)
    work_order = None
    if config.work_order.strip():
        try:
            work_order = WorkOrderDisposition(config.work_order.strip().lower())
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid work-order disposition '{config.work_order}'"
            ) from exc
    if duplicate is None and work_order is None:
        return None
    return PresetResolver(duplicate=duplicate, work_order=work_order)
