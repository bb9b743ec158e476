"""Pydantic v2 models for documents exchanged with workers.

Workers are opaque; the only thing the pipeline trusts is the document
they leave behind.  These models are the structural gate for those
documents: anything that does not parse is ``StructurallyInvalid``.
"""
from __future__ import annotations

from pydantic import BaseModel, Field, model_validator

from src.foundry_shared.constants import ARTIFACT_CATEGORIES, GAP_MARKER
from src.foundry_shared.models import (
    ArtifactEntry,
    BuiltResource,
    CategoryBlock,
    GapMarker,
    Provenance,
    QualityReport,
    SynthesisArtifact,
)
from src.foundry_shared.utils import count_specifics


class EntryDocument(BaseModel):
    """One entry inside an artifact category."""
    key: str = Field(..., min_length=1)
    content: str = Field(..., min_length=1)
    provenance: Provenance | None = None
    specificity: int | None = Field(default=None, ge=0)
    subject: str = ""
    contradiction: str = ""
    sources: list[str] = Field(default_factory=list)


class GapDocument(BaseModel):
    """Explicit gap marker listing the locations that were searched."""
    marker: str = GAP_MARKER
    searched: list[str] = Field(..., min_length=1)
    note: str = ""

    @model_validator(mode="after")
    def check_marker(self) -> GapDocument:
        if self.marker != GAP_MARKER:
            raise ValueError(f"gap marker must be {GAP_MARKER!r}, got {self.marker!r}")
        return self


class CategoryDocument(BaseModel):
    """A category: populated, or explicitly gapped -- never silently empty."""
    entries: list[EntryDocument] = Field(default_factory=list)
    gap: GapDocument | None = None

    @model_validator(mode="after")
    def check_populated_or_gapped(self) -> CategoryDocument:
        if not self.entries and self.gap is None:
            raise ValueError("category has no entries and no GAP marker")
        return self


class SynthesisArtifactDocument(BaseModel):
    """Research worker output."""
    schema_version: int = 1
    source: Provenance | None = None
    categories: dict[str, CategoryDocument]

    @model_validator(mode="after")
    def check_categories(self) -> SynthesisArtifactDocument:
        missing = [c for c in ARTIFACT_CATEGORIES if c not in self.categories]
        unknown = sorted(set(self.categories) - set(ARTIFACT_CATEGORIES))
        if missing:
            raise ValueError(f"missing categories: {', '.join(missing)}")
        if unknown:
            raise ValueError(f"unknown categories: {', '.join(unknown)}")
        return self

    def to_artifact(self, default_source: Provenance, artifact_ref: str = "") -> SynthesisArtifact:
        """Convert to the internal dataclass, computing missing specificity counts."""
        source = self.source or default_source
        categories: dict[str, CategoryBlock] = {}
        for name in ARTIFACT_CATEGORIES:
            doc = self.categories[name]
            entries = [
                ArtifactEntry(
                    key=e.key,
                    content=e.content,
                    provenance=e.provenance or source,
                    specificity=(
                        e.specificity if e.specificity is not None else count_specifics(e.content)
                    ),
                    subject=e.subject,
                    contradiction=e.contradiction,
                    sources=list(e.sources),
                )
                for e in doc.entries
            ]
            gap = None
            if doc.gap is not None:
                gap = GapMarker(searched=list(doc.gap.searched), note=doc.gap.note)
            categories[name] = CategoryBlock(entries=entries, gap=gap)
        return SynthesisArtifact(categories=categories, source=source, artifact_ref=artifact_ref)


class QualityReportDocument(BaseModel):
    """Quality metrics reported by the build worker."""
    specificity_score: float = Field(..., ge=0)
    decision_framework_count: int = Field(..., ge=0)
    placeholder_count: int = Field(..., ge=0)
    section_coverage: list[str] = Field(default_factory=list)


class BuildReportDocument(BaseModel):
    """Build worker output."""
    resource_ref: str = Field(..., min_length=1)
    quality_report: QualityReportDocument

    def to_built_resource(self, target_name: str, archetype: str) -> BuiltResource:
        q = self.quality_report
        return BuiltResource(
            resource_ref=self.resource_ref,
            target_name=target_name,
            archetype=archetype,
            quality_report=QualityReport(
                specificity_score=q.specificity_score,
                decision_framework_count=q.decision_framework_count,
                placeholder_count=q.placeholder_count,
                section_coverage=list(q.section_coverage),
            ),
        )


def artifact_to_document(artifact: SynthesisArtifact) -> dict:
    """Serialise an internal artifact back to its wire form."""
    categories: dict[str, dict] = {}
    for name, block in artifact.categories.items():
        categories[name] = {
            "entries": [
                {
                    "key": e.key,
                    "content": e.content,
                    "provenance": e.provenance.value,
                    "specificity": e.specificity,
                    "subject": e.subject,
                    "contradiction": e.contradiction,
                    "sources": list(e.sources),
                }
                for e in block.entries
            ],
            "gap": (
                {"marker": GAP_MARKER, "searched": list(block.gap.searched), "note": block.gap.note}
                if block.gap is not None
                else None
            ),
        }
    return {
        "schema_version": 1,
        "source": artifact.source.value,
        "categories": categories,
    }
