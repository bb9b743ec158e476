"""Tests for the phase state machine."""

from __future__ import annotations

import pytest
from transitions import State

from src.foundry_orchestrator.state_machine import (
    STATES,
    TRANSITIONS,
    create_pipeline_machine,
    transition_for,
    unmet_conditions,
)
from src.foundry_shared.constants import (
    ALL_PHASES,
    PHASE_BUILD,
    PHASE_DELEGATION,
    PHASE_DEPLOY,
    PHASE_INPUT_ANALYSIS,
    PHASE_NUMBERS,
    PHASE_PROMPT_PREP,
    PHASE_ROUTE_SELECTION,
)


# ---------------------------------------------------------------------------
# State Machine Model stub -- provides all guard methods
# ---------------------------------------------------------------------------
class PipelineModel:
    """Stub model implementing all guard conditions."""

    def __init__(self) -> None:
        self.state: str = PHASE_INPUT_ANALYSIS
        self._input_analysis_complete = True
        self._route_resolved = True
        self._requires_prompt_prep = True
        self._is_internal_repo = False
        self._work_order_ready = True
        self._artifact_accepted = True
        self._quality_gate_passed = True
        self._deployed = True

    def input_analysis_complete(self, *args, **kwargs) -> bool:
        return self._input_analysis_complete

    def route_resolved(self, *args, **kwargs) -> bool:
        return self._route_resolved

    def requires_prompt_prep(self, *args, **kwargs) -> bool:
        return self._requires_prompt_prep

    def is_internal_repo(self, *args, **kwargs) -> bool:
        return self._is_internal_repo

    def work_order_ready(self, *args, **kwargs) -> bool:
        return self._work_order_ready

    def artifact_accepted(self, *args, **kwargs) -> bool:
        return self._artifact_accepted

    def quality_gate_passed(self, *args, **kwargs) -> bool:
        return self._quality_gate_passed

    def deployed(self, *args, **kwargs) -> bool:
        return self._deployed


def _model_at(state: str) -> PipelineModel:
    model = PipelineModel()
    create_pipeline_machine(model, initial_state=state)
    return model


class TestStateMachineConstants:
    def test_states_count(self) -> None:
        assert len(STATES) == 9

    def test_transitions_count(self) -> None:
        assert len(TRANSITIONS) == 9

    def test_all_states_are_state_objects(self) -> None:
        for s in STATES:
            assert isinstance(s, State)

    def test_no_backward_transitions(self) -> None:
        for t in TRANSITIONS:
            sources = t["source"] if isinstance(t["source"], list) else [t["source"]]
            for source in sources:
                if t["dest"] in PHASE_NUMBERS:
                    assert PHASE_NUMBERS[t["dest"]] > PHASE_NUMBERS[source]

    def test_only_prompt_prep_can_be_skipped(self) -> None:
        for t in TRANSITIONS:
            if t["dest"] in PHASE_NUMBERS and t["source"] in PHASE_NUMBERS:
                jump = PHASE_NUMBERS[t["dest"]] - PHASE_NUMBERS[t["source"]]
                assert jump == 1 or t["trigger"] == "skip_prompt_prep"


class TestForwardTransitions:
    @pytest.mark.asyncio
    async def test_full_web_path(self) -> None:
        model = _model_at(PHASE_INPUT_ANALYSIS)
        for trigger in [
            "analysis_done",
            "route_selected",
            "prompt_ready",
            "delegation_done",
            "build_done",
            "deploy_done",
        ]:
            await getattr(model, trigger)()
        assert model.state == "succeeded"

    @pytest.mark.asyncio
    async def test_internal_repo_skips_prompt_prep(self) -> None:
        model = _model_at(PHASE_ROUTE_SELECTION)
        model._requires_prompt_prep = False
        model._is_internal_repo = True
        await model.route_selected()
        assert model.state == PHASE_ROUTE_SELECTION
        await model.skip_prompt_prep()
        assert model.state == PHASE_DELEGATION

    @pytest.mark.asyncio
    async def test_skip_refused_for_web_route(self) -> None:
        model = _model_at(PHASE_ROUTE_SELECTION)
        await model.skip_prompt_prep()
        assert model.state == PHASE_ROUTE_SELECTION

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "state, trigger, guard",
        [
            (PHASE_INPUT_ANALYSIS, "analysis_done", "_input_analysis_complete"),
            (PHASE_ROUTE_SELECTION, "route_selected", "_route_resolved"),
            (PHASE_PROMPT_PREP, "prompt_ready", "_work_order_ready"),
            (PHASE_DELEGATION, "delegation_done", "_artifact_accepted"),
            (PHASE_BUILD, "build_done", "_quality_gate_passed"),
            (PHASE_DEPLOY, "deploy_done", "_deployed"),
        ],
    )
    async def test_guard_blocks_transition(self, state, trigger, guard) -> None:
        model = _model_at(state)
        setattr(model, guard, False)
        await getattr(model, trigger)()
        assert model.state == state

    @pytest.mark.asyncio
    async def test_trigger_from_wrong_phase_ignored(self) -> None:
        model = _model_at(PHASE_INPUT_ANALYSIS)
        await model.build_done()
        assert model.state == PHASE_INPUT_ANALYSIS


class TestTerminalTransitions:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("phase", ALL_PHASES)
    async def test_fail_from_every_phase(self, phase) -> None:
        model = _model_at(phase)
        await model.fail()
        assert model.state == "failed"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("phase", ALL_PHASES)
    async def test_abort_from_every_phase(self, phase) -> None:
        model = _model_at(phase)
        await model.abort()
        assert model.state == "aborted"

    @pytest.mark.asyncio
    async def test_terminal_states_are_final(self) -> None:
        model = _model_at(PHASE_DEPLOY)
        await model.deploy_done()
        await model.fail()
        assert model.state == "succeeded"


class TestHelpers:
    def test_transition_for(self) -> None:
        assert transition_for("prompt_ready", PHASE_PROMPT_PREP)["dest"] == PHASE_DELEGATION
        assert transition_for("prompt_ready", PHASE_BUILD) is None

    def test_unmet_conditions(self) -> None:
        model = PipelineModel()
        model._route_resolved = False
        model._requires_prompt_prep = False
        assert unmet_conditions(model, "route_selected", PHASE_ROUTE_SELECTION) == [
            "route_resolved",
            "requires_prompt_prep",
        ]
        assert unmet_conditions(model, "analysis_done", PHASE_INPUT_ANALYSIS) == []

    def test_unmet_conditions_unknown_transition(self) -> None:
        assert unmet_conditions(PipelineModel(), "deploy_done", PHASE_INPUT_ANALYSIS) == [
            "no transition 'deploy_done' from 'phase1_input_analysis'"
        ]

    def test_machines_do_not_share_state(self) -> None:
        a = _model_at(PHASE_INPUT_ANALYSIS)
        b = _model_at(PHASE_BUILD)
        assert a.state == PHASE_INPUT_ANALYSIS
        assert b.state == PHASE_BUILD
