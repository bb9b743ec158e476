"""Phase state machine using the ``transitions`` library.

Six phase states and three terminal states.  Every forward transition is
guarded by the exit predicate of the phase it leaves; the only skip is
Phase 3, allowed when the route is ``internal_repo``.  No transition
leads back to an earlier phase.
"""

from __future__ import annotations

import logging
from typing import Any

from transitions.extensions.asyncio import AsyncMachine, AsyncState

from src.foundry_shared.constants import (
    ALL_PHASES,
    PHASE_BUILD,
    PHASE_DELEGATION,
    PHASE_DEPLOY,
    PHASE_INPUT_ANALYSIS,
    PHASE_PROMPT_PREP,
    PHASE_ROUTE_SELECTION,
    STATE_ABORTED,
    STATE_FAILED,
    STATE_SUCCEEDED,
)

logger = logging.getLogger(__name__)

STATES: list[AsyncState] = [AsyncState(name) for name in ALL_PHASES] + [
    AsyncState(STATE_SUCCEEDED),
    AsyncState(STATE_FAILED),
    AsyncState(STATE_ABORTED),
]

TRANSITIONS: list[dict[str, Any]] = [
    {
        "trigger": "analysis_done",
        "source": PHASE_INPUT_ANALYSIS,
        "dest": PHASE_ROUTE_SELECTION,
        "conditions": ["input_analysis_complete"],
    },
    {
        "trigger": "route_selected",
        "source": PHASE_ROUTE_SELECTION,
        "dest": PHASE_PROMPT_PREP,
        "conditions": ["route_resolved", "requires_prompt_prep"],
    },
    {
        "trigger": "skip_prompt_prep",
        "source": PHASE_ROUTE_SELECTION,
        "dest": PHASE_DELEGATION,
        "conditions": ["route_resolved", "is_internal_repo"],
    },
    {
        "trigger": "prompt_ready",
        "source": PHASE_PROMPT_PREP,
        "dest": PHASE_DELEGATION,
        "conditions": ["work_order_ready"],
    },
    {
        "trigger": "delegation_done",
        "source": PHASE_DELEGATION,
        "dest": PHASE_BUILD,
        "conditions": ["artifact_accepted"],
    },
    {
        "trigger": "build_done",
        "source": PHASE_BUILD,
        "dest": PHASE_DEPLOY,
        "conditions": ["quality_gate_passed"],
    },
    {
        "trigger": "deploy_done",
        "source": PHASE_DEPLOY,
        "dest": STATE_SUCCEEDED,
        "conditions": ["deployed"],
    },
    {
        "trigger": "fail",
        "source": list(ALL_PHASES),
        "dest": STATE_FAILED,
    },
    {
        "trigger": "abort",
        "source": list(ALL_PHASES),
        "dest": STATE_ABORTED,
    },
]


def transition_for(trigger: str, source: str) -> dict[str, Any] | None:
    """Return the transition definition for *trigger* leaving *source*."""
    for t in TRANSITIONS:
        sources = t["source"] if isinstance(t["source"], list) else [t["source"]]
        if t["trigger"] == trigger and source in sources:
            return t
    return None


def unmet_conditions(model: Any, trigger: str, source: str) -> list[str]:
    """Names of the guards on *trigger* that currently evaluate false."""
    t = transition_for(trigger, source)
    if t is None:
        return [f"no transition '{trigger}' from '{source}'"]
    return [name for name in t.get("conditions", []) if not getattr(model, name)()]


def create_pipeline_machine(
    model: Any, initial_state: str = PHASE_INPUT_ANALYSIS
) -> AsyncMachine:
    """Create and return an ``AsyncMachine`` bound to *model*.

    The model must implement the guard methods referenced in
    ``TRANSITIONS`` (``input_analysis_complete``, ``route_resolved``, ...)
    as simple boolean-returning methods accepting ``*args, **kwargs``.
    Each machine gets its own state objects so callbacks never leak
    between runs.

    Args:
        model: The object whose state the machine manages.
        initial_state: The initial state for the machine.

    Returns:
        Configured ``AsyncMachine`` instance.
    """
    machine = AsyncMachine(
        model=model,
        states=[AsyncState(s.name) for s in STATES],
        transitions=TRANSITIONS,
        initial=initial_state,
        auto_transitions=False,
        send_event=True,
        queued=True,
        ignore_invalid_triggers=True,
    )
    return machine
