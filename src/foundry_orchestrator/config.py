"""Configuration dataclasses and loader for the foundry orchestrator."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from src.foundry_shared.constants import (
    DEFAULT_BUILD_TIMEOUT,
    DEFAULT_MIN_DECISION_FRAMEWORKS,
    DEFAULT_MIN_SPECIFICITY_SCORE,
    DEFAULT_OVERLAP_THRESHOLD,
    DEFAULT_PROBE_RETRY_BACKOFF,
    DEFAULT_REPO_ANALYSIS_TIMEOUT,
    DEFAULT_WEB_RESEARCH_TIMEOUT,
    REGISTRY_FILE,
    STATE_DIR,
)
from src.foundry_shared.models import WorkerKind
from src.foundry_shared.settings import FoundrySettings


@dataclass
class ClassifierConfig:
    """Pattern inputs for the request classifier and router."""

    repo_hosts: list[str] = field(
        default_factory=lambda: ["github.com", "gitlab.com", "bitbucket.org", "codeberg.org"]
    )
    hybrid_signals: list[str] = field(
        default_factory=lambda: [
            "industry",
            "standard",
            "standards",
            "best practice",
            "best practices",
            "best-practice",
            "best-practices",
            "state of the art",
        ]
    )


@dataclass
class RegistryConfig:
    """Registry store location and duplicate policy."""

    path: str = f"{STATE_DIR}/{REGISTRY_FILE}"
    overlap_threshold: float = DEFAULT_OVERLAP_THRESHOLD


@dataclass
class AcquisitionConfig:
    """Remote repository acquisition."""

    probe_timeout: float = 10.0
    retry_backoff: float = DEFAULT_PROBE_RETRY_BACKOFF
    clone_timeout: int = 300
    workspace_root: str = ""


@dataclass
class WorkOrderConfig:
    """Work-order synthesis."""

    directory: str = f"{STATE_DIR}/work-orders"
    template_path: str = ""
    on_existing: str = "ask"  # "ask", "reuse", or "regenerate"
    min_sections: int = 6
    min_sub_items: int = 3


@dataclass
class WorkerConfig:
    """Worker timeouts and subprocess command templates.

    Command templates may reference ``{input_ref}`` and ``{output_ref}``.
    """

    web_research_timeout: int = DEFAULT_WEB_RESEARCH_TIMEOUT
    repo_analysis_timeout: int = DEFAULT_REPO_ANALYSIS_TIMEOUT
    build_timeout: int = DEFAULT_BUILD_TIMEOUT
    commands: dict[str, list[str]] = field(default_factory=dict)

    def timeout_for(self, kind: WorkerKind) -> int:
        return {
            WorkerKind.WEB_RESEARCH: self.web_research_timeout,
            WorkerKind.REPO_ANALYSIS: self.repo_analysis_timeout,
            WorkerKind.BUILD: self.build_timeout,
        }[kind]


@dataclass
class QualityConfig:
    """Build quality thresholds and archetype section requirements."""

    min_specificity_score: float = DEFAULT_MIN_SPECIFICITY_SCORE
    min_decision_frameworks: int = DEFAULT_MIN_DECISION_FRAMEWORKS
    archetype: str = "specialist"
    archetype_sections: dict[str, list[str]] = field(
        default_factory=lambda: {
            "specialist": [
                "core_knowledge",
                "decision_frameworks",
                "anti_patterns",
                "tool_map",
                "interaction_scripts",
            ],
            "reviewer": [
                "core_knowledge",
                "decision_frameworks",
                "anti_patterns",
                "review_checklist",
            ],
        }
    )


@dataclass
class DeployConfig:
    """Publication target and format validation."""

    runtime_dir: str = ".agents"
    validator_command: list[str] = field(default_factory=list)


@dataclass
class DispositionConfig:
    """Preset answers for unattended runs (empty = no preset)."""

    duplicate: str = ""  # "rebuild", "abort", or "narrow:<suffix>"
    work_order: str = ""  # "reuse" or "regenerate"


@dataclass
class FoundryConfig:
    """Top-level configuration composing all sub-configs."""

    classifier: ClassifierConfig = field(default_factory=ClassifierConfig)
    registry: RegistryConfig = field(default_factory=RegistryConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    work_order: WorkOrderConfig = field(default_factory=WorkOrderConfig)
    workers: WorkerConfig = field(default_factory=WorkerConfig)
    quality: QualityConfig = field(default_factory=QualityConfig)
    deploy: DeployConfig = field(default_factory=DeployConfig)
    dispositions: DispositionConfig = field(default_factory=DispositionConfig)
    output_dir: str = STATE_DIR
    archive_runs: bool = True


_SECTIONS: dict[str, type] = {
    "classifier": ClassifierConfig,
    "registry": RegistryConfig,
    "acquisition": AcquisitionConfig,
    "work_order": WorkOrderConfig,
    "workers": WorkerConfig,
    "quality": QualityConfig,
    "deploy": DeployConfig,
    "dispositions": DispositionConfig,
}


def _pick(data: dict[str, Any], cls: type) -> dict[str, Any]:
    """Filter *data* to only keys accepted by *cls*."""
    valid = {f.name for f in cls.__dataclass_fields__.values()}
    return {k: v for k, v in data.items() if k in valid}


def load_foundry_config(path: Path | str | None = None) -> FoundryConfig:
    """Load configuration from a YAML file.

    Missing sections fall back to defaults.  Unknown keys are silently
    ignored so that forward-compatible config files work.  When *path*
    is ``None`` the ``FOUNDRY_CONFIG`` environment variable is consulted;
    ``FOUNDRY_OUTPUT_DIR`` overrides ``output_dir`` either way.

    Args:
        path: Path to config YAML.  If the file does not exist, returns
              full defaults.

    Returns:
        Populated configuration dataclass.
    """
    settings = FoundrySettings()
    if path is None and settings.config_path:
        path = settings.config_path

    raw: dict[str, Any] = {}
    if path is not None and Path(path).exists():
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}

    sections = {
        name: cls(**_pick(raw.get(name) or {}, cls)) for name, cls in _SECTIONS.items()
    }
    top_level = {k: v for k, v in _pick(raw, FoundryConfig).items() if k not in _SECTIONS}

    cfg = FoundryConfig(**sections, **top_level)
    if settings.output_dir:
        cfg.output_dir = settings.output_dir
    return cfg
