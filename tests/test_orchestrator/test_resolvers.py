"""Tests for disposition resolvers."""

from __future__ import annotations

import pytest

from src.foundry_orchestrator.config import DispositionConfig
from src.foundry_orchestrator.exceptions import (
    ConfigurationError,
    DispositionUnresolvedError,
    DuplicateUnresolvedError,
)
from src.foundry_orchestrator.resolvers import (
    PresetResolver,
    parse_duplicate_answer,
    resolver_from_config,
)
from src.foundry_shared.models import (
    Disposition,
    DuplicateDecision,
    DuplicateResolution,
    WorkOrderDisposition,
)

DECISION = DuplicateDecision(Disposition.CONFLICT, "security-expert", 0.7)


class TestParseDuplicateAnswer:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("", None),
            ("rebuild", DuplicateResolution.rebuild()),
            ("ABORT", DuplicateResolution.abort()),
            ("narrow: appsec", DuplicateResolution.narrow("appsec")),
        ],
    )
    def test_valid(self, text, expected) -> None:
        assert parse_duplicate_answer(text) == expected

    @pytest.mark.parametrize("text", ["narrow", "narrow:", "keep"])
    def test_invalid(self, text) -> None:
        with pytest.raises(ConfigurationError):
            parse_duplicate_answer(text)


class TestResolverFromConfig:
    def test_nothing_preset(self) -> None:
        assert resolver_from_config(DispositionConfig()) is None

    def test_presets(self) -> None:
        resolver = resolver_from_config(DispositionConfig(duplicate="rebuild", work_order="Reuse"))
        assert resolver.duplicate == DuplicateResolution.rebuild()
        assert resolver.work_order == WorkOrderDisposition.REUSE

    def test_invalid_work_order_answer(self) -> None:
        with pytest.raises(ConfigurationError):
            resolver_from_config(DispositionConfig(work_order="keep"))


class TestPresetResolver:
    @pytest.mark.asyncio
    async def test_answers_and_records_questions(self) -> None:
        resolver = PresetResolver(DuplicateResolution.narrow("appsec"), WorkOrderDisposition.REGENERATE)
        assert await resolver.resolve_duplicate(DECISION) == DuplicateResolution.narrow("appsec")
        assert await resolver.resolve_work_order("wo.md") == WorkOrderDisposition.REGENERATE
        assert resolver.questions == ["duplicate:security-expert", "work_order:wo.md"]

    @pytest.mark.asyncio
    async def test_missing_duplicate_answer(self) -> None:
        with pytest.raises(DuplicateUnresolvedError):
            await PresetResolver().resolve_duplicate(DECISION)

    @pytest.mark.asyncio
    async def test_missing_work_order_answer(self) -> None:
        with pytest.raises(DispositionUnresolvedError):
            await PresetResolver().resolve_work_order("wo.md")
