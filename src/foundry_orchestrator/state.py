"""Run state persistence with atomic writes."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from src.foundry_shared.constants import (
    PHASE_INPUT_ANALYSIS,
    RUNS_DIR,
    STATE_DIR,
    STATE_FILE,
)
from src.foundry_shared.models import Route, RunStatus
from src.foundry_shared.utils import atomic_write_json, load_json


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class PipelineRun:
    """The full record of one pipeline run.

    Persisted to ``RUN_STATE.json`` in the run directory after every
    transition and whenever the run suspends on a question.
    """

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    raw_request: str = ""
    target_name: str = ""
    route: str = Route.UNRESOLVED.value
    route_rule: int = 0
    current_state: str = PHASE_INPUT_ANALYSIS
    current_phase: int = 1
    status: str = RunStatus.RUNNING.value
    run_dir: str = ""
    awaiting: str = ""
    descriptor: dict[str, Any] = field(default_factory=dict)
    gate_outcome: dict[str, Any] = field(default_factory=dict)
    repo_input_ref: str = ""
    workspace_path: str = ""
    workspace_released: bool = False
    prompt_ref: dict[str, Any] = field(default_factory=dict)
    invocations: list[dict[str, Any]] = field(default_factory=list)
    artifact_path: str = ""
    artifact_metrics: dict[str, Any] = field(default_factory=dict)
    built_resource: dict[str, Any] = field(default_factory=dict)
    quality_unmet: list[str] = field(default_factory=list)
    deployed_path: str = ""
    registry_written: bool = False
    failed_phase: int | None = None
    failure_kind: str = ""
    failure_message: str = ""
    resources_created: list[str] = field(default_factory=list)
    resources_modified: list[str] = field(default_factory=list)
    resources_removed: list[str] = field(default_factory=list)
    cleanup_actions: list[str] = field(default_factory=list)
    transitions: list[dict[str, Any]] = field(default_factory=list)
    phase_telemetry: dict[str, Any] = field(default_factory=dict)
    started_at: str = field(default_factory=_utcnow)
    ended_at: str = ""
    updated_at: str = field(default_factory=_utcnow)
    interrupted: bool = False
    interrupt_reason: str = ""
    schema_version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status != RunStatus.RUNNING.value

    def record_transition(
        self, trigger: str, from_state: str, to_state: str, from_phase: int, to_phase: int
    ) -> None:
        self.transitions.append(
            {
                "trigger": trigger,
                "from_state": from_state,
                "to_state": to_state,
                "from_phase": from_phase,
                "to_phase": to_phase,
                "at": _utcnow(),
            }
        )

    # ------------------------------------------------------------------
    # Persistence helpers
    # ------------------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @staticmethod
    def directory_for(run_id: str, output_dir: Path | str | None = None) -> Path:
        return Path(output_dir or STATE_DIR) / RUNS_DIR / run_id

    def save(self, directory: Path | str | None = None) -> Path:
        """Persist the run to ``RUN_STATE.json``.

        Args:
            directory: Target directory.  Defaults to ``run_dir``, then to
                       the standard run directory under the state dir.

        Returns:
            The path the state was written to.
        """
        directory = Path(directory or self.run_dir or self.directory_for(self.run_id))
        directory.mkdir(parents=True, exist_ok=True)
        target = directory / STATE_FILE
        self.updated_at = _utcnow()
        atomic_write_json(target, self.to_dict())
        return target

    @classmethod
    def load(cls, directory: Path | str) -> PipelineRun | None:
        """Load a run from *directory*, or ``None`` if missing or invalid."""
        data = load_json(Path(directory) / STATE_FILE)
        if not isinstance(data, dict):
            return None
        known = {f.name for f in cls.__dataclass_fields__.values()}
        return cls(**{k: v for k, v in data.items() if k in known})
