"""Shared data models for the Agent Foundry pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


class Route(str, Enum):
    """Execution route chosen by the router."""
    UNRESOLVED = "unresolved"
    WEB_RESEARCH = "web_research"
    INTERNAL_REPO = "internal_repo"
    HYBRID = "hybrid"


class RunStatus(str, Enum):
    """Lifecycle status of a pipeline run."""
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"


class WorkerKind(str, Enum):
    """Kinds of delegated workers."""
    WEB_RESEARCH = "web_research"
    REPO_ANALYSIS = "repo_analysis"
    BUILD = "build"


class InvocationStatus(str, Enum):
    """Status of a single worker invocation."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


TERMINAL_INVOCATION_STATUSES = (
    InvocationStatus.SUCCEEDED,
    InvocationStatus.FAILED,
    InvocationStatus.TIMED_OUT,
)


class Provenance(str, Enum):
    """Origin marker on a synthesis artifact entry."""
    WEB = "web"
    REPO = "repo"
    MERGED = "merged"


class Disposition(str, Enum):
    """Registry gate dispositions."""
    PROCEED = "proceed"
    CONFLICT = "conflict"
    REBUILD = "rebuild"
    NARROW = "narrow"
    ABORT = "abort"


class WorkOrderDisposition(str, Enum):
    """Answer to an existing-work-order question."""
    REUSE = "reuse"
    REGENERATE = "regenerate"


class PhaseStatus(str, Enum):
    """Per-phase outcome shown in the completion report."""
    PASS = "PASS"
    FAIL = "FAIL"
    SKIPPED = "SKIPPED"
    NOT_RUN = "NOT RUN"


# ---------------------------------------------------------------------------
# Phase 1 -- classification and registry gate
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SourceSignals:
    """Input-source signals detected in a raw request."""
    has_local_path: bool = False
    has_remote_url: bool = False
    has_existing_prompt_file: bool = False
    has_free_text_domain: bool = False
    explicit_mode_override: Route | None = None

    @property
    def has_repository_source(self) -> bool:
        return self.has_local_path or self.has_remote_url

    def active(self) -> list[str]:
        """Names of the signals that are set."""
        names = [
            name
            for name in (
                "has_local_path",
                "has_remote_url",
                "has_existing_prompt_file",
                "has_free_text_domain",
            )
            if getattr(self, name)
        ]
        if self.explicit_mode_override is not None:
            names.append("explicit_mode_override")
        return names


@dataclass(frozen=True)
class InputDescriptor:
    """Immutable result of classifying a raw request."""
    raw_request: str
    target_name: str
    target_purpose: str
    source_signals: SourceSignals
    domain_text: str = ""
    local_paths: tuple[str, ...] = ()
    remote_urls: tuple[str, ...] = ()
    prompt_files: tuple[str, ...] = ()
    classifier_version: str = ""


@dataclass
class RegistryEntry:
    """A persisted record of a previously created resource."""
    name: str
    keywords: list[str] = field(default_factory=list)
    category: str = ""
    version: int = 1
    resource_ref: str = ""
    updated_at: str = field(default_factory=_utcnow)


@dataclass(frozen=True)
class DuplicateMatch:
    """An existing registry entry that overlaps the proposed target."""
    entry: RegistryEntry
    overlap: float
    matched_tokens: tuple[str, ...] = ()


@dataclass(frozen=True)
class DuplicateDecision:
    """Result of the registry duplicate check.

    ``disposition`` is ``PROCEED`` when nothing overlaps and ``CONFLICT``
    when an external answer (rebuild / narrow / abort) is required.
    """
    disposition: Disposition
    target_name: str
    threshold: float
    matches: tuple[DuplicateMatch, ...] = ()

    @property
    def requires_resolution(self) -> bool:
        return self.disposition == Disposition.CONFLICT


@dataclass(frozen=True)
class DuplicateResolution:
    """External answer to a duplicate conflict."""
    disposition: Disposition
    suffix: str = ""

    @classmethod
    def rebuild(cls) -> DuplicateResolution:
        return cls(Disposition.REBUILD)

    @classmethod
    def narrow(cls, suffix: str) -> DuplicateResolution:
        return cls(Disposition.NARROW, suffix=suffix)

    @classmethod
    def abort(cls) -> DuplicateResolution:
        return cls(Disposition.ABORT)


@dataclass(frozen=True)
class GateOutcome:
    """Final, immutable registry gate result for a run."""
    disposition: Disposition
    original_name: str
    target_name: str
    matched_names: tuple[str, ...] = ()


# ---------------------------------------------------------------------------
# Phase 2 / 3 -- routing and work orders
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RouteDecision:
    """Route chosen by the decision table and the rule that matched."""
    route: Route
    rule: int
    reason: str = ""


@dataclass
class PromptRef:
    """Reference to a work-order document handed to a research worker."""
    path: str
    reused: bool = False
    section_count: int = 0
    sub_item_counts: list[int] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Phase 4 -- delegation and synthesis artifacts
# ---------------------------------------------------------------------------


@dataclass
class WorkerOutcome:
    """Terminal report from a worker client."""
    status: InvocationStatus
    artifact_ref: str = ""
    error_reason: str = ""


@dataclass
class WorkerInvocation:
    """One delegated unit of work."""
    invocation_id: str
    worker_kind: WorkerKind
    input_ref: str
    expected_artifact_schema: str
    timeout_seconds: int
    timeout_deadline: str = ""
    status: InvocationStatus = InvocationStatus.PENDING
    result_artifact_ref: str | None = None
    error_reason: str = ""
    started_at: str = ""
    ended_at: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_INVOCATION_STATUSES


@dataclass
class ArtifactEntry:
    """A single piece of synthesised guidance."""
    key: str
    content: str
    provenance: Provenance
    specificity: int = 0
    subject: str = ""
    contradiction: str = ""
    sources: list[str] = field(default_factory=list)


@dataclass
class GapMarker:
    """Explicit marker for a category the worker could not populate."""
    searched: list[str] = field(default_factory=list)
    note: str = ""


@dataclass
class CategoryBlock:
    """Entries (or an explicit gap) for one artifact category."""
    entries: list[ArtifactEntry] = field(default_factory=list)
    gap: GapMarker | None = None

    @property
    def is_populated(self) -> bool:
        return bool(self.entries)

    @property
    def is_gapped(self) -> bool:
        return not self.entries and self.gap is not None and bool(self.gap.searched)


@dataclass
class SynthesisArtifact:
    """Fixed-schema research output with five categories."""
    categories: dict[str, CategoryBlock] = field(default_factory=dict)
    source: Provenance = Provenance.WEB
    artifact_ref: str = ""

    @property
    def specificity_count(self) -> int:
        return sum(e.specificity for block in self.categories.values() for e in block.entries)

    @property
    def contradiction_count(self) -> int:
        return sum(
            1 for block in self.categories.values() for e in block.entries if e.contradiction
        )

    def gapped_categories(self) -> list[str]:
        return [name for name, block in self.categories.items() if block.is_gapped]


# ---------------------------------------------------------------------------
# Phase 5 / 6 -- build and deployment
# ---------------------------------------------------------------------------


@dataclass
class QualityReport:
    """Structured quality report produced by the build worker."""
    specificity_score: float = 0.0
    decision_framework_count: int = 0
    placeholder_count: int = 0
    section_coverage: list[str] = field(default_factory=list)


@dataclass
class BuiltResource:
    """Output of the build worker."""
    resource_ref: str
    target_name: str
    archetype: str
    quality_report: QualityReport = field(default_factory=QualityReport)


@dataclass
class ValidationResult:
    """Result of the format validator."""
    passed: bool
    diagnostics: list[str] = field(default_factory=list)


@dataclass
class DeploymentRecord:
    """Result of a successful deployment."""
    deployed_path: str
    registry_entry: RegistryEntry
    replaced_existing: bool = False
