"""Work-order synthesis and structural checks for Phase 3.

A work order is a Markdown document: ``## `` headings for sections and
``- `` bullets for sub-questions.  Structure is checked mechanically
(section count and per-section bullet count); content is free text.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from src.foundry_orchestrator.config import WorkOrderConfig
from src.foundry_orchestrator.exceptions import (
    ConfigurationError,
    DispositionUnresolvedError,
    WorkOrderInvalidError,
)
from src.foundry_shared.models import InputDescriptor, PromptRef, Route, WorkOrderDisposition
from src.foundry_shared.protocols import DispositionResolver

logger = logging.getLogger(__name__)

MAX_SECTIONS = 10
MAX_SUB_ITEMS = 5

DEFAULT_TEMPLATE: list[tuple[str, list[str]]] = [
    (
        "Domain Foundations",
        [
            "What are the core concepts a practitioner of {purpose} must know?",
            "Which terms are commonly confused, and how do they differ?",
            "What are the current stable versions of the main tools involved?",
        ],
    ),
    (
        "Decision Frameworks",
        [
            "What are the recurring decisions in {purpose}?",
            "For each decision, which criteria tip the choice one way or the other?",
            "Which trade-offs are irreversible once made?",
            "What thresholds or numbers do experienced practitioners use?",
        ],
    ),
    (
        "Anti-Patterns",
        [
            "Which mistakes are most common among newcomers?",
            "Which practices look correct but fail at scale?",
            "How is each anti-pattern detected early?",
        ],
    ),
    (
        "Tooling Map",
        [
            "Which tools cover each stage of the work?",
            "Which commands and flags matter most day to day?",
            "Which integrations are fragile or deprecated?",
        ],
    ),
    (
        "Interaction Scripts",
        [
            "What questions should be asked before starting a task?",
            "How should findings be reported back?",
            "When should work be escalated rather than continued?",
        ],
    ),
    (
        "Standards and References",
        [
            "Which published standards or specifications apply?",
            "Which references are authoritative and current?",
            "Where do the standards disagree with common practice?",
        ],
    ),
    (
        "Failure Modes",
        [
            "What are the typical incident patterns?",
            "How is each failure diagnosed?",
            "What is the recovery procedure and its expected duration?",
        ],
    ),
    (
        "Scope Boundaries",
        [
            "What falls outside the remit of {name}?",
            "Which adjacent specialists should be consulted instead?",
            "Which questions should be declined outright?",
        ],
    ),
]


@dataclass
class WorkOrderStructure:
    """Result of the structural completeness check."""

    section_titles: list[str] = field(default_factory=list)
    sub_item_counts: list[int] = field(default_factory=list)
    min_sections: int = 6
    min_sub_items: int = 3

    @property
    def section_count(self) -> int:
        return len(self.section_titles)

    @property
    def conforming(self) -> bool:
        return self.section_count >= self.min_sections and all(
            count >= self.min_sub_items for count in self.sub_item_counts
        )

    def problems(self) -> list[str]:
        issues: list[str] = []
        if self.section_count < self.min_sections:
            issues.append(f"{self.section_count} sections (need >= {self.min_sections})")
        for title, count in zip(self.section_titles, self.sub_item_counts):
            if count < self.min_sub_items:
                issues.append(f"section '{title}' has {count} sub-items (need >= {self.min_sub_items})")
        return issues


def check_work_order_structure(
    text: str, min_sections: int = 6, min_sub_items: int = 3
) -> WorkOrderStructure:
    structure = WorkOrderStructure(min_sections=min_sections, min_sub_items=min_sub_items)
    for line in text.splitlines():
        stripped = line.strip()
        if stripped.startswith("## "):
            structure.section_titles.append(stripped[3:].strip())
            structure.sub_item_counts.append(0)
        elif stripped.startswith(("- ", "* ")) and structure.sub_item_counts:
            structure.sub_item_counts[-1] += 1
    return structure


def load_template(path: Path | str) -> list[tuple[str, list[str]]]:
    """Load a work-order template from YAML.

    Expected shape::

        sections:
          - title: Domain Foundations
            questions: [..., ..., ...]

    Raises:
        ConfigurationError: the file is missing or outside 6-10 sections
            of 3-5 questions each.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(f"Cannot read work-order template {path}: {exc}") from exc

    sections = [
        (str(s.get("title", "")).strip(), [str(q) for q in s.get("questions") or []])
        for s in raw.get("sections") or []
        if isinstance(s, dict)
    ]
    if not 6 <= len(sections) <= MAX_SECTIONS:
        raise ConfigurationError(f"Template {path} has {len(sections)} sections (need 6-10)")
    for title, questions in sections:
        if not title or not 3 <= len(questions) <= MAX_SUB_ITEMS:
            raise ConfigurationError(
                f"Template section '{title}' needs a title and 3-5 questions"
            )
    return sections


def render_work_order(
    descriptor: InputDescriptor,
    route: Route,
    template: list[tuple[str, list[str]]] | None = None,
) -> str:
    template = template or DEFAULT_TEMPLATE
    fields = {"name": descriptor.target_name, "purpose": descriptor.target_purpose}
    lines = [
        f"# Work Order: {descriptor.target_name}",
        "",
        f"Target: `{descriptor.target_name}`",
        f"Purpose: {descriptor.target_purpose}",
        f"Route: {route.value}",
        "",
    ]
    if route == Route.HYBRID:
        lines += [
            "Findings are merged with a repository analysis; tag every entry with its source.",
            "",
        ]
    for index, (title, questions) in enumerate(template, start=1):
        lines.append(f"## {index}. {title}")
        lines.append("")
        for question in questions:
            lines.append(f"- {question.format(**fields)}")
        lines.append("")
    return "\n".join(lines)


class WorkOrderSynthesizer:
    """Produces, or reuses, the work order handed to a research worker.

    An existing work order for the target is never silently overwritten:
    the ``on_existing`` policy decides, and ``ask`` defers to the
    disposition resolver.
    """

    def __init__(
        self,
        config: WorkOrderConfig,
        resolver: DispositionResolver | None = None,
        on_suspend: Callable[[str], None] | None = None,
    ) -> None:
        self._config = config
        self._resolver = resolver
        self._on_suspend = on_suspend
        self._template = load_template(config.template_path) if config.template_path else None

    def work_order_path(self, target_name: str) -> Path:
        return Path(self._config.directory) / f"{target_name}.work-order.md"

    def check(self, text: str) -> WorkOrderStructure:
        return check_work_order_structure(
            text, self._config.min_sections, self._config.min_sub_items
        )

    def use_existing(self, path: Path | str) -> PromptRef:
        """Accept an existing work-order file after checking its structure."""
        path = Path(path).expanduser()
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise WorkOrderInvalidError(f"Work order {path} is not readable: {exc}") from exc
        structure = self.check(text)
        if not structure.conforming:
            raise WorkOrderInvalidError(
                f"Work order {path} is incomplete: " + "; ".join(structure.problems())
            )
        return PromptRef(
            path=str(path),
            reused=True,
            section_count=structure.section_count,
            sub_item_counts=list(structure.sub_item_counts),
        )

    async def _existing_disposition(self, path: Path) -> WorkOrderDisposition:
        policy = self._config.on_existing.strip().lower()
        if policy in (WorkOrderDisposition.REUSE.value, WorkOrderDisposition.REGENERATE.value):
            return WorkOrderDisposition(policy)
        if self._resolver is None:
            raise DispositionUnresolvedError(
                f"Work order {path} already exists; answer reuse or regenerate"
            )
        if self._on_suspend is not None:
            self._on_suspend("work_order_disposition")
        return await self._resolver.resolve_work_order(str(path))

    async def synthesize(self, descriptor: InputDescriptor, route: Route) -> PromptRef:
        """Write the work order for *descriptor*, or reuse an existing one.

        Raises:
            DispositionUnresolvedError: a work order exists and no answer
                is available.
            WorkOrderInvalidError: the work order (reused or generated)
                fails the structural check.
        """
        if route not in (Route.WEB_RESEARCH, Route.HYBRID):
            raise ValueError(f"Work orders are not used on route '{route.value}'")

        path = self.work_order_path(descriptor.target_name)
        if path.exists():
            disposition = await self._existing_disposition(path)
            logger.info("Existing work order %s: %s", path, disposition.value)
            if disposition == WorkOrderDisposition.REUSE:
                return self.use_existing(path)

        text = render_work_order(descriptor, route, self._template)
        structure = self.check(text)
        if not structure.conforming:
            raise WorkOrderInvalidError(
                "Generated work order is incomplete: " + "; ".join(structure.problems())
            )
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        logger.info(
            "Wrote work order %s (%d sections)", path, structure.section_count
        )
        return PromptRef(
            path=str(path),
            reused=False,
            section_count=structure.section_count,
            sub_item_counts=list(structure.sub_item_counts),
        )
