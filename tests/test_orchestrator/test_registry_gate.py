"""Tests for the registry gate (duplicate detection and resolution)."""

from __future__ import annotations

import pytest

from src.foundry_orchestrator.exceptions import DuplicateUnresolvedError, RunAborted
from src.foundry_orchestrator.registry_gate import RegistryGate, overlap_ratio
from src.foundry_shared.models import Disposition, DuplicateResolution, RegistryEntry


class TestCheckDuplicate:
    def test_no_overlap_proceeds(self, seeded_registry) -> None:
        gate = RegistryGate(seeded_registry, 0.7)
        decision = gate.check_duplicate("terraform-modules", "terraform module authoring")
        assert decision.disposition == Disposition.PROCEED
        assert decision.matches == ()

    def test_exact_name_conflicts(self, seeded_registry) -> None:
        decision = RegistryGate(seeded_registry).check_duplicate("kubernetes-troubleshooting")
        assert decision.requires_resolution
        assert decision.matches[0].entry.name == "kubernetes-troubleshooting"
        assert decision.matches[0].overlap == 1.0

    def test_keyword_overlap_conflicts(self, seeded_registry) -> None:
        decision = RegistryGate(seeded_registry, 0.7).check_duplicate(
            "cluster-troubleshooting", "kubernetes cluster troubleshooting"
        )
        assert decision.disposition == Disposition.CONFLICT
        assert set(decision.matches[0].matched_tokens) >= {"cluster", "troubleshooting"}

    def test_below_threshold_proceeds(self, seeded_registry) -> None:
        decision = RegistryGate(seeded_registry, 0.7).check_duplicate(
            "kubernetes-networking", "kubernetes networking"
        )
        assert decision.disposition == Disposition.PROCEED

    def test_threshold_is_configurable(self, seeded_registry) -> None:
        decision = RegistryGate(seeded_registry, 0.5).check_duplicate(
            "kubernetes-networking", "kubernetes networking"
        )
        assert decision.disposition == Disposition.CONFLICT

    def test_matches_sorted_by_overlap(self, seeded_registry) -> None:
        seeded_registry.upsert(RegistryEntry(name="kubernetes-pods", keywords=["pods"]))
        decision = RegistryGate(seeded_registry, 0.5).check_duplicate(
            "kubernetes-troubleshooting", "kubernetes troubleshooting pods"
        )
        overlaps = [m.overlap for m in decision.matches]
        assert overlaps == sorted(overlaps, reverse=True)
        assert decision.matches[0].entry.name == "kubernetes-troubleshooting"

    def test_existing_entry_covered_by_long_purpose_conflicts(self, registry_store) -> None:
        registry_store.upsert(
            RegistryEntry(
                name="security-architect",
                keywords=["security", "threat", "modeling", "architecture", "review"],
            )
        )
        decision = RegistryGate(registry_store, 0.7).check_duplicate(
            "security-expert",
            "security expert covering threat modeling architecture review "
            "for cloud platforms and identity",
        )
        assert decision.disposition == Disposition.CONFLICT
        assert decision.matches[0].entry.name == "security-architect"
        assert decision.matches[0].overlap >= 0.7
        assert set(decision.matches[0].matched_tokens) == {
            "security", "threat", "modeling", "architecture", "review",
        }

    def test_small_entry_overlap_is_measured_against_entry(self, seeded_registry) -> None:
        decision = RegistryGate(seeded_registry, 0.7).check_duplicate(
            "platform-support",
            "platform support for kubernetes cluster troubleshooting of failing pods "
            "across regions and tenants",
        )
        assert decision.disposition == Disposition.CONFLICT
        assert decision.matches[0].entry.name == "kubernetes-troubleshooting"


class TestResolve:
    @pytest.fixture
    def conflict(self, seeded_registry):
        gate = RegistryGate(seeded_registry)
        return gate, gate.check_duplicate("kubernetes-troubleshooting")

    def test_proceed_needs_no_answer(self, seeded_registry) -> None:
        gate = RegistryGate(seeded_registry)
        outcome = gate.resolve(gate.check_duplicate("terraform-modules"), None)
        assert outcome.disposition == Disposition.PROCEED
        assert outcome.target_name == "terraform-modules"

    def test_missing_answer_is_unresolved(self, conflict) -> None:
        gate, decision = conflict
        with pytest.raises(DuplicateUnresolvedError):
            gate.resolve(decision, None)

    def test_abort(self, conflict) -> None:
        gate, decision = conflict
        with pytest.raises(RunAborted):
            gate.resolve(decision, DuplicateResolution.abort())

    def test_rebuild_keeps_name(self, conflict) -> None:
        gate, decision = conflict
        outcome = gate.resolve(decision, DuplicateResolution.rebuild())
        assert outcome.disposition == Disposition.REBUILD
        assert outcome.target_name == "kubernetes-troubleshooting"
        assert outcome.matched_names == ("kubernetes-troubleshooting",)

    def test_narrow_appends_suffix(self, conflict) -> None:
        gate, decision = conflict
        outcome = gate.resolve(decision, DuplicateResolution.narrow("networking"))
        assert outcome.disposition == Disposition.NARROW
        assert outcome.original_name == "kubernetes-troubleshooting"
        assert outcome.target_name == "kubernetes-troubleshooting-networking"

    @pytest.mark.parametrize("suffix", ["", "Bad Suffix", "x" * 60])
    def test_narrow_rejects_invalid_name(self, conflict, suffix: str) -> None:
        gate, decision = conflict
        with pytest.raises(DuplicateUnresolvedError):
            gate.resolve(decision, DuplicateResolution.narrow(suffix))

    def test_narrow_rejects_registered_name(self, conflict, seeded_registry) -> None:
        seeded_registry.upsert(RegistryEntry(name="kubernetes-troubleshooting-dns"))
        gate, decision = conflict
        with pytest.raises(DuplicateUnresolvedError):
            gate.resolve(decision, DuplicateResolution.narrow("dns"))


class TestOverlapRatio:
    def test_empty_target(self) -> None:
        assert overlap_ratio(set(), {"a"}) == 0.0

    def test_fraction_of_target(self) -> None:
        assert overlap_ratio({"a", "b", "c", "d"}, {"a", "b", "c", "x"}) == 0.75
