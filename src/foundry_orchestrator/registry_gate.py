"""Registry gate -- duplicate detection and resolution for Phase 1."""

from __future__ import annotations

import logging

from src.foundry_orchestrator.exceptions import DuplicateUnresolvedError, RunAborted
from src.foundry_shared.constants import DEFAULT_OVERLAP_THRESHOLD
from src.foundry_shared.models import (
    Disposition,
    DuplicateDecision,
    DuplicateMatch,
    DuplicateResolution,
    GateOutcome,
    RegistryEntry,
)
from src.foundry_shared.protocols import RegistryStore
from src.foundry_shared.utils import is_valid_target_name, tokenize

logger = logging.getLogger(__name__)


def name_tokens(name: str) -> set[str]:
    return tokenize(name.replace("-", " "))


def entry_tokens(entry: RegistryEntry) -> set[str]:
    tokens = name_tokens(entry.name)
    for keyword in entry.keywords:
        tokens |= tokenize(keyword.replace("-", " "))
    return tokens


def overlap_ratio(target: set[str], existing: set[str]) -> float:
    """Fraction of *target* tokens also present in *existing*.

    Callers score both directions, so a small existing entry swallowed by
    a long new purpose still counts.
    """
    if not target:
        return 0.0
    return len(target & existing) / len(target)


class RegistryGate:
    """Checks a proposed target against the registry and applies the answer.

    A match is any entry whose token overlap with the proposed target
    (name tokens and purpose keywords) reaches the threshold, measured
    from either side.  An exact name match always counts as full overlap
    and is listed first.
    """

    def __init__(self, store: RegistryStore, threshold: float = DEFAULT_OVERLAP_THRESHOLD) -> None:
        self._store = store
        self._threshold = threshold

    @property
    def threshold(self) -> float:
        return self._threshold

    def check_duplicate(self, target_name: str, target_purpose: str = "") -> DuplicateDecision:
        target_name_tokens = name_tokens(target_name)
        keywords = target_name_tokens | tokenize(target_purpose)

        candidates = self._store.query(sorted(keywords) + [target_name])
        exact = self._store.get(target_name)
        if exact is not None and all(c.name != exact.name for c in candidates):
            candidates = [exact, *candidates]

        matches: list[DuplicateMatch] = []
        for entry in candidates:
            existing = entry_tokens(entry)
            if entry.name == target_name:
                score = 1.0
            else:
                score = max(
                    overlap_ratio(target_name_tokens, name_tokens(entry.name)),
                    overlap_ratio(keywords, existing),
                    overlap_ratio(existing, keywords),
                )
            if score >= self._threshold:
                matches.append(
                    DuplicateMatch(
                        entry=entry,
                        overlap=round(score, 4),
                        matched_tokens=tuple(sorted(keywords & existing)),
                    )
                )

        matches.sort(key=lambda m: (m.entry.name != target_name, -m.overlap, m.entry.name))
        if matches:
            logger.info(
                "Registry conflict for '%s': %s",
                target_name,
                ", ".join(f"{m.entry.name} ({m.overlap:.2f})" for m in matches),
            )
            return DuplicateDecision(
                Disposition.CONFLICT, target_name, self._threshold, tuple(matches)
            )
        return DuplicateDecision(Disposition.PROCEED, target_name, self._threshold)

    def narrowed_name(self, target_name: str, suffix: str) -> str:
        """Build and validate the name produced by a Narrow answer."""
        suffix = suffix.strip()
        candidate = suffix if suffix.startswith(f"{target_name}-") else f"{target_name}-{suffix}"
        if not suffix or not is_valid_target_name(candidate):
            raise DuplicateUnresolvedError(
                target_name,
                f"Narrowed name '{candidate}' is not lowercase-hyphenated 3-50 characters",
            )
        if self._store.get(candidate) is not None:
            raise DuplicateUnresolvedError(
                target_name, f"Narrowed name '{candidate}' is already registered"
            )
        return candidate

    def resolve(
        self, decision: DuplicateDecision, resolution: DuplicateResolution | None
    ) -> GateOutcome:
        """Apply an external answer to *decision* and freeze the outcome.

        Raises:
            DuplicateUnresolvedError: no answer, or an unacceptable one.
            RunAborted: the answer was Abort.
        """
        matched = tuple(m.entry.name for m in decision.matches)
        if not decision.requires_resolution:
            return GateOutcome(Disposition.PROCEED, decision.target_name, decision.target_name)

        if resolution is None:
            raise DuplicateUnresolvedError(
                decision.target_name,
                f"'{decision.target_name}' overlaps {', '.join(matched)}; "
                "answer rebuild, narrow, or abort",
            )

        if resolution.disposition == Disposition.ABORT:
            raise RunAborted(f"Operator aborted on registry conflict with {', '.join(matched)}")

        if resolution.disposition == Disposition.REBUILD:
            logger.info("Rebuilding '%s' over existing entry", decision.target_name)
            return GateOutcome(
                Disposition.REBUILD, decision.target_name, decision.target_name, matched
            )

        if resolution.disposition == Disposition.NARROW:
            new_name = self.narrowed_name(decision.target_name, resolution.suffix)
            logger.info("Narrowed '%s' to '%s'", decision.target_name, new_name)
            return GateOutcome(Disposition.NARROW, decision.target_name, new_name, matched)

        raise DuplicateUnresolvedError(
            decision.target_name,
            f"'{resolution.disposition.value}' is not a valid answer to a registry conflict",
        )
