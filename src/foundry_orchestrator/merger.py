"""Artifact merger -- combine web and repository artifacts (hybrid route).

Per category:
  - Entries are grouped by normalised key (``subject`` when given, else
    ``key``).
  - Near-identical entries in a group collapse into one, tagged
    ``merged`` when the sources differ.
  - Entries in a group whose recommendations point in opposite directions
    ("use X" vs "avoid X") are both kept, each annotated with the other.
  - A category populated on either side stays populated; two gaps merge
    into one gap listing every searched location.

Pure function, no I/O.  Output order depends only on the content, so
merging the same inputs always yields the same artifact.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace

from src.foundry_shared.constants import ARTIFACT_CATEGORIES
from src.foundry_shared.models import (
    ArtifactEntry,
    CategoryBlock,
    GapMarker,
    Provenance,
    SynthesisArtifact,
)
from src.foundry_shared.utils import normalize_key, tokenize

logger = logging.getLogger(__name__)

NEAR_IDENTICAL_THRESHOLD = 0.8

# Checked before the positive markers: "should not" also contains "should".
_NEGATIVE_MARKERS = (
    "avoid", "never", "disable", "forbid", "discouraged", "deprecated",
    "should not", "must not", "do not", "don't", "shouldn't", "mustn't", "not recommended",
)
_POSITIVE_MARKERS = (
    "use", "prefer", "always", "enable", "allow", "recommended", "should", "must", "adopt",
)

_NEGATIVE_RE = re.compile(r"\b(?:" + "|".join(re.escape(m) for m in _NEGATIVE_MARKERS) + r")\b")
_POSITIVE_RE = re.compile(r"\b(?:" + "|".join(re.escape(m) for m in _POSITIVE_MARKERS) + r")\b")

_PROVENANCE_ORDER = {Provenance.WEB: 0, Provenance.REPO: 1, Provenance.MERGED: 2}


@dataclass
class MergeStats:
    """Counts describing one merge."""

    duplicates_collapsed: int = 0
    contradictions: int = 0
    entries_by_category: dict[str, int] = field(default_factory=dict)
    gapped_categories: list[str] = field(default_factory=list)


def polarity(text: str) -> int:
    """+1 for a recommendation, -1 for a warning, 0 when neither."""
    lowered = text.lower().replace("’", "'")
    if _NEGATIVE_RE.search(lowered):
        return -1
    if _POSITIVE_RE.search(lowered):
        return 1
    return 0


def jaccard(a: set[str], b: set[str]) -> float:
    if not a and not b:
        return 1.0
    return len(a & b) / len(a | b)


def near_identical(a: ArtifactEntry, b: ArtifactEntry) -> bool:
    if normalize_key(a.content) == normalize_key(b.content):
        return True
    if polarity(a.content) * polarity(b.content) < 0:
        return False
    return jaccard(tokenize(a.content), tokenize(b.content)) >= NEAR_IDENTICAL_THRESHOLD


def contradicts(a: ArtifactEntry, b: ArtifactEntry) -> bool:
    return polarity(a.content) * polarity(b.content) < 0


def _group_key(entry: ArtifactEntry) -> str:
    return normalize_key(entry.subject or entry.key) or entry.key.strip().lower()


def _sort_key(entry: ArtifactEntry) -> tuple:
    return (_PROVENANCE_ORDER[entry.provenance], normalize_key(entry.content), entry.content)


def _collapse(survivor: ArtifactEntry, other: ArtifactEntry) -> ArtifactEntry:
    provenance = survivor.provenance if survivor.provenance == other.provenance else Provenance.MERGED
    # Keep the more specific wording.
    keep = survivor if (survivor.specificity, survivor.content) >= (other.specificity, other.content) else other
    return replace(
        keep,
        provenance=provenance,
        specificity=max(survivor.specificity, other.specificity),
        sources=sorted(set(survivor.sources) | set(other.sources)),
        contradiction="",
    )


def _annotation(other: ArtifactEntry) -> str:
    content = other.content if len(other.content) <= 120 else other.content[:117] + "..."
    return f"conflicts with {other.provenance.value} guidance: {content}"


def _merge_entries(entries: list[ArtifactEntry], stats: MergeStats) -> list[ArtifactEntry]:
    groups: dict[str, list[ArtifactEntry]] = {}
    for entry in entries:
        groups.setdefault(_group_key(entry), []).append(entry)

    merged: list[ArtifactEntry] = []
    for key in sorted(groups):
        survivors: list[ArtifactEntry] = []
        for entry in sorted(groups[key], key=_sort_key):
            for idx, survivor in enumerate(survivors):
                if near_identical(survivor, entry):
                    survivors[idx] = _collapse(survivor, entry)
                    stats.duplicates_collapsed += 1
                    break
            else:
                survivors.append(replace(entry, sources=list(entry.sources)))

        notes: dict[int, list[str]] = {}
        for i, a in enumerate(survivors):
            for j in range(i + 1, len(survivors)):
                b = survivors[j]
                if contradicts(a, b):
                    notes.setdefault(i, []).append(_annotation(b))
                    notes.setdefault(j, []).append(_annotation(a))
                    stats.contradictions += 1
        for idx, lines in notes.items():
            existing = [survivors[idx].contradiction] if survivors[idx].contradiction else []
            survivors[idx] = replace(survivors[idx], contradiction=" | ".join(existing + lines))

        merged.extend(sorted(survivors, key=_sort_key))
    return merged


def _merge_gaps(*gaps: GapMarker | None) -> GapMarker:
    present = [g for g in gaps if g is not None]
    searched = sorted({loc for g in present for loc in g.searched})
    notes = [g.note for g in present if g.note]
    return GapMarker(searched=searched, note=" / ".join(dict.fromkeys(notes)))


def merge_with_stats(
    artifact_a: SynthesisArtifact, artifact_b: SynthesisArtifact
) -> tuple[SynthesisArtifact, MergeStats]:
    """Merge two artifacts and report what happened."""
    stats = MergeStats()
    categories: dict[str, CategoryBlock] = {}
    for name in ARTIFACT_CATEGORIES:
        block_a = artifact_a.categories.get(name) or CategoryBlock()
        block_b = artifact_b.categories.get(name) or CategoryBlock()
        entries = _merge_entries(list(block_a.entries) + list(block_b.entries), stats)
        if entries:
            categories[name] = CategoryBlock(entries=entries)
        else:
            categories[name] = CategoryBlock(gap=_merge_gaps(block_a.gap, block_b.gap))
            stats.gapped_categories.append(name)
        stats.entries_by_category[name] = len(entries)

    logger.info(
        "Merged artifacts: %d duplicates collapsed, %d contradictions preserved, gaps=%s",
        stats.duplicates_collapsed,
        stats.contradictions,
        stats.gapped_categories or "none",
    )
    return SynthesisArtifact(categories=categories, source=Provenance.MERGED), stats


def merge(artifact_a: SynthesisArtifact, artifact_b: SynthesisArtifact) -> SynthesisArtifact:
    """Merge two structurally identical artifacts into one."""
    return merge_with_stats(artifact_a, artifact_b)[0]
