"""Build delegator -- single build dispatch plus the quality gate."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from src.foundry_orchestrator.artifact import save_artifact
from src.foundry_orchestrator.config import QualityConfig
from src.foundry_orchestrator.delegation import DelegationEngine, raise_for_failure
from src.foundry_orchestrator.exceptions import (
    ConfigurationError,
    QualityThresholdUnmetError,
    StructurallyInvalidError,
)
from src.foundry_shared.models import BuiltResource, SynthesisArtifact, WorkerKind
from src.foundry_shared.utils import atomic_write_json

logger = logging.getLogger(__name__)

PLACEHOLDER_PATTERNS = [
    re.compile(r"\bTODO\b"),
    re.compile(r"\bTBD\b"),
    re.compile(r"\bFIXME\b"),
    re.compile(r"\{\{[^}]*\}\}"),
    re.compile(r"\[(?:placeholder|insert[^\]]*)\]", re.IGNORECASE),
    re.compile(r"<(?:placeholder|insert)[^>]*>", re.IGNORECASE),
    re.compile(r"lorem ipsum", re.IGNORECASE),
]


def count_placeholders(text: str) -> int:
    """Count unresolved template markers in *text*."""
    return sum(len(p.findall(text)) for p in PLACEHOLDER_PATTERNS)


def check_quality(built: BuiltResource, config: QualityConfig) -> list[str]:
    """Return one line per unmet threshold (empty when all hold)."""
    if built.archetype not in config.archetype_sections:
        raise ConfigurationError(f"Unknown archetype '{built.archetype}'")

    q = built.quality_report
    unmet: list[str] = []
    if q.specificity_score < config.min_specificity_score:
        unmet.append(
            f"specificityScore {q.specificity_score:g} < {config.min_specificity_score:g}"
        )
    if q.decision_framework_count < config.min_decision_frameworks:
        unmet.append(
            f"decisionFrameworkCount {q.decision_framework_count} < {config.min_decision_frameworks}"
        )
    if q.placeholder_count != 0:
        unmet.append(f"placeholderCount {q.placeholder_count} != 0")
    missing = [s for s in config.archetype_sections[built.archetype] if s not in q.section_coverage]
    if missing:
        unmet.append("missing archetype sections: " + ", ".join(missing))
    return unmet


def _resolve_resource_path(resource_ref: str, report_ref: str | None) -> Path:
    path = Path(resource_ref)
    if not path.is_absolute() and report_ref:
        candidate = Path(report_ref).parent / path
        if candidate.exists():
            return candidate
    return path


class BuildDelegator:
    """Hands the accepted artifact to the build worker and gates the result.

    Args:
        engine: Delegation engine shared with Phase 4, so the build
            invocation lands in the same audit list.
        config: Quality thresholds and archetype sections.
        work_dir: Run directory for the build request files.
    """

    def __init__(self, engine: DelegationEngine, config: QualityConfig, work_dir: Path | str) -> None:
        self._engine = engine
        self._config = config
        self._work_dir = Path(work_dir)

    def write_request(self, artifact: SynthesisArtifact, archetype: str, target_name: str) -> Path:
        artifact_path = Path(artifact.artifact_ref) if artifact.artifact_ref else None
        if artifact_path is None or not artifact_path.exists():
            artifact_path = save_artifact(artifact, self._work_dir / "build_input_artifact.json")
        request_path = self._work_dir / "build_request.json"
        atomic_write_json(
            request_path,
            {
                "target_name": target_name,
                "archetype": archetype,
                "artifact_ref": str(artifact_path),
                "expected_resource_name": f"{target_name}.md",
                "required_sections": list(self._config.archetype_sections.get(archetype, [])),
            },
        )
        return request_path

    async def build(
        self, artifact: SynthesisArtifact, archetype: str, target_name: str
    ) -> BuiltResource:
        """Dispatch the build worker once and enforce the quality thresholds.

        Raises:
            WorkerFailedError / WorkerTimedOutError / StructurallyInvalidError:
                the build invocation did not produce a usable report.
            QualityThresholdUnmetError: one or more thresholds missed; the
                exception carries the built resource for reporting.
        """
        if archetype not in self._config.archetype_sections:
            raise ConfigurationError(f"Unknown archetype '{archetype}'")

        request_path = self.write_request(artifact, archetype, target_name)
        invocation = self._engine.dispatch(WorkerKind.BUILD, str(request_path))
        result = await self._engine.await_invocation(invocation)
        raise_for_failure(result)

        built = result.build_report.to_built_resource(target_name, archetype)
        resource_path = _resolve_resource_path(built.resource_ref, invocation.result_artifact_ref)
        if not resource_path.is_file():
            raise StructurallyInvalidError(f"Built resource {built.resource_ref} does not exist")
        built.resource_ref = str(resource_path)

        observed = count_placeholders(resource_path.read_text(encoding="utf-8", errors="replace"))
        if observed > built.quality_report.placeholder_count:
            logger.warning(
                "Build report claims %d placeholders, resource contains %d",
                built.quality_report.placeholder_count,
                observed,
            )
            built.quality_report.placeholder_count = observed

        unmet = check_quality(built, self._config)
        if unmet:
            logger.error("Quality gate failed for %s: %s", target_name, "; ".join(unmet))
            raise QualityThresholdUnmetError(unmet, resource=built)
        logger.info(
            "Quality gate passed for %s (specificity %.1f, frameworks %d)",
            target_name,
            built.quality_report.specificity_score,
            built.quality_report.decision_framework_count,
        )
        return built
