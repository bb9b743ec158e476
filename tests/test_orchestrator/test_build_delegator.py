"""Tests for the build delegator and quality gate."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from src.foundry_orchestrator.build_delegator import (
    BuildDelegator,
    check_quality,
    count_placeholders,
)
from src.foundry_orchestrator.config import QualityConfig
from src.foundry_orchestrator.delegation import DelegationEngine
from src.foundry_orchestrator.exceptions import (
    ConfigurationError,
    QualityThresholdUnmetError,
    StructurallyInvalidError,
    WorkerFailedError,
)
from src.foundry_orchestrator.workers import CallableWorkerClient
from src.foundry_shared.constants import ARTIFACT_CATEGORIES
from src.foundry_shared.documents import SynthesisArtifactDocument
from src.foundry_shared.models import BuiltResource, Provenance, QualityReport, WorkerKind
from tests.fixtures.documents import artifact_document, build_report_document, failed, write_json

TARGET = "kubernetes-security"


@pytest.fixture
def artifact():
    return SynthesisArtifactDocument.model_validate(artifact_document()).to_artifact(Provenance.WEB)


def _built(**quality) -> BuiltResource:
    report = QualityReport(
        specificity_score=42.0,
        decision_framework_count=6,
        placeholder_count=0,
        section_coverage=list(ARTIFACT_CATEGORIES),
    )
    for key, value in quality.items():
        setattr(report, key, value)
    return BuiltResource(resource_ref="r.md", target_name=TARGET, archetype="specialist", quality_report=report)


class TestPlaceholders:
    def test_counts_markers(self) -> None:
        text = "TODO: fill in {{name}} and [insert example] plus <placeholder>"
        assert count_placeholders(text) == 4

    def test_clean_text(self) -> None:
        assert count_placeholders("Scale out when CPU exceeds 70% for 5 minutes.") == 0

    def test_lowercase_todo_is_prose(self) -> None:
        assert count_placeholders("a todo list app") == 0


class TestCheckQuality:
    def test_all_thresholds_met(self) -> None:
        assert check_quality(_built(), QualityConfig()) == []

    def test_each_threshold_reported(self) -> None:
        built = _built(
            specificity_score=12.0,
            decision_framework_count=2,
            placeholder_count=1,
            section_coverage=["core_knowledge"],
        )
        unmet = check_quality(built, QualityConfig())
        assert len(unmet) == 4
        assert unmet[0] == "specificityScore 12 < 30"
        assert unmet[1] == "decisionFrameworkCount 2 < 5"
        assert "tool_map" in unmet[3]

    def test_thresholds_come_from_config(self) -> None:
        config = QualityConfig(min_specificity_score=50.0)
        assert check_quality(_built(), config) == ["specificityScore 42 < 50"]

    def test_unknown_archetype(self) -> None:
        built = _built()
        built.archetype = "poet"
        with pytest.raises(ConfigurationError):
            check_quality(built, QualityConfig())


class TestBuildDelegator:
    @pytest.mark.asyncio
    async def test_successful_build(self, fake_workers, artifact, tmp_path: Path) -> None:
        engine = DelegationEngine(fake_workers.client())
        built = await BuildDelegator(engine, QualityConfig(), tmp_path / "run").build(
            artifact, "specialist", TARGET
        )
        assert Path(built.resource_ref).name == f"{TARGET}.md"
        assert built.quality_report.placeholder_count == 0
        request = json.loads((tmp_path / "run" / "build_request.json").read_text())
        assert request["target_name"] == TARGET
        assert request["required_sections"] == list(ARTIFACT_CATEGORIES)
        assert Path(request["artifact_ref"]).is_file()
        assert [i.worker_kind for i in engine.invocations] == [WorkerKind.BUILD]

    @pytest.mark.asyncio
    async def test_unmet_threshold_carries_resource(self, fake_workers, artifact, tmp_path: Path) -> None:
        fake_workers.quality = {"specificity_score": 10.0}
        engine = DelegationEngine(fake_workers.client())
        with pytest.raises(QualityThresholdUnmetError) as exc_info:
            await BuildDelegator(engine, QualityConfig(), tmp_path).build(artifact, "specialist", TARGET)
        assert exc_info.value.unmet == ["specificityScore 10 < 30"]
        assert exc_info.value.resource.target_name == TARGET

    @pytest.mark.asyncio
    async def test_placeholders_recounted_from_resource(self, fake_workers, artifact, tmp_path: Path) -> None:
        fake_workers.resource_body = "# Core Knowledge\n\nTODO write this section\n"
        engine = DelegationEngine(fake_workers.client())
        with pytest.raises(QualityThresholdUnmetError) as exc_info:
            await BuildDelegator(engine, QualityConfig(), tmp_path).build(artifact, "specialist", TARGET)
        assert "placeholderCount 1 != 0" in exc_info.value.unmet

    @pytest.mark.asyncio
    async def test_missing_resource(self, artifact, tmp_path: Path) -> None:
        report = write_json(tmp_path / "report.json", build_report_document(str(tmp_path / "gone.md")))
        engine = DelegationEngine(CallableWorkerClient({WorkerKind.BUILD: lambda ref, t: str(report)}))
        with pytest.raises(StructurallyInvalidError):
            await BuildDelegator(engine, QualityConfig(), tmp_path).build(artifact, "specialist", TARGET)

    @pytest.mark.asyncio
    async def test_worker_failure(self, artifact, tmp_path: Path) -> None:
        engine = DelegationEngine(CallableWorkerClient({WorkerKind.BUILD: lambda ref, t: failed()}))
        with pytest.raises(WorkerFailedError):
            await BuildDelegator(engine, QualityConfig(), tmp_path).build(artifact, "specialist", TARGET)

    @pytest.mark.asyncio
    async def test_unknown_archetype_dispatches_nothing(self, fake_workers, artifact, tmp_path: Path) -> None:
        engine = DelegationEngine(fake_workers.client())
        with pytest.raises(ConfigurationError):
            await BuildDelegator(engine, QualityConfig(), tmp_path).build(artifact, "poet", TARGET)
        assert engine.invocations == []
