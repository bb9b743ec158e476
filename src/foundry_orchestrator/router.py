"""Route selection -- ordered, first-match decision table.

The table is total: the final rule matches every descriptor, so
``route`` always returns a concrete route and never ``UNRESOLVED``.

    1. explicit mode override            -> that route
    2. repository source + hybrid signal -> HYBRID
    3. repository source                 -> INTERNAL_REPO
    4. existing work-order file          -> WEB_RESEARCH
    5. anything else                     -> WEB_RESEARCH
"""

from __future__ import annotations

import re
from collections.abc import Iterable

from src.foundry_shared.models import InputDescriptor, Route, RouteDecision

DEFAULT_HYBRID_SIGNALS = ("industry", "standard", "standards", "best practice", "best practices")


def has_hybrid_signal(text: str, signals: Iterable[str] = DEFAULT_HYBRID_SIGNALS) -> bool:
    """True when *text* mentions any hybrid keyword as a whole word or phrase."""
    lowered = text.lower()
    for signal in signals:
        words = [re.escape(w) for w in re.split(r"[\s-]+", signal.lower().strip()) if w]
        if not words:
            continue
        if re.search(r"\b" + r"[\s-]+".join(words) + r"\b", lowered):
            return True
    return False


def route(
    descriptor: InputDescriptor,
    hybrid_signals: Iterable[str] = DEFAULT_HYBRID_SIGNALS,
) -> RouteDecision:
    """Select the execution route for *descriptor*."""
    signals = descriptor.source_signals

    if signals.explicit_mode_override is not None and signals.explicit_mode_override != Route.UNRESOLVED:
        return RouteDecision(
            signals.explicit_mode_override, 1, "explicit mode override in request"
        )

    if signals.has_repository_source and has_hybrid_signal(descriptor.domain_text, hybrid_signals):
        return RouteDecision(Route.HYBRID, 2, "repository source with industry/standards signal")

    if signals.has_repository_source:
        return RouteDecision(Route.INTERNAL_REPO, 3, "repository source")

    if signals.has_existing_prompt_file:
        return RouteDecision(Route.WEB_RESEARCH, 4, "existing work-order file")

    return RouteDecision(Route.WEB_RESEARCH, 5, "default web research")
