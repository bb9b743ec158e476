"""Per-phase telemetry: status, timing and a one-line detail per phase."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from src.foundry_shared.constants import ALL_PHASES
from src.foundry_shared.models import PhaseStatus


@dataclass
class PhaseRecord:
    """Telemetry record for a single pipeline phase."""

    phase_name: str = ""
    status: PhaseStatus = PhaseStatus.NOT_RUN
    start_time: str = ""
    end_time: str = ""
    duration_seconds: float = 0.0
    detail: str = ""


@dataclass
class PhaseTelemetry:
    """Tracks every phase of a run; phases never started stay ``NOT RUN``."""

    phases: dict[str, PhaseRecord] = field(
        default_factory=lambda: {name: PhaseRecord(phase_name=name) for name in ALL_PHASES}
    )

    _current_phase: str | None = field(default=None, repr=False)
    _current_started: float = field(default=0.0, repr=False)

    @property
    def current_phase(self) -> str | None:
        return self._current_phase

    def start_phase(self, phase: str) -> None:
        """Mark the start of *phase*.

        Args:
            phase: The phase name to start tracking.
        """
        self._current_phase = phase
        self._current_started = time.monotonic()
        record = self.phases.setdefault(phase, PhaseRecord(phase_name=phase))
        record.start_time = datetime.now(timezone.utc).isoformat()

    def end_phase(self, status: PhaseStatus, detail: str = "") -> None:
        """Close the current phase with *status*.

        Args:
            status: ``PASS`` or ``FAIL``.
            detail: Short human-readable summary or failure reason.
        """
        phase = self._current_phase
        if phase is None:
            return
        record = self.phases[phase]
        record.status = status
        record.detail = detail
        record.end_time = datetime.now(timezone.utc).isoformat()
        record.duration_seconds = round(time.monotonic() - self._current_started, 3)
        self._current_phase = None

    def skip_phase(self, phase: str, detail: str = "") -> None:
        now = datetime.now(timezone.utc).isoformat()
        record = self.phases.setdefault(phase, PhaseRecord(phase_name=phase))
        record.status = PhaseStatus.SKIPPED
        record.detail = detail
        record.start_time = record.end_time = now

    def statuses(self) -> dict[str, str]:
        return {name: record.status.value for name, record in self.phases.items()}

    def to_dict(self) -> dict[str, Any]:
        """Serialise tracker state."""
        return {
            name: {
                "phase_name": r.phase_name,
                "status": r.status.value,
                "start_time": r.start_time,
                "end_time": r.end_time,
                "duration_seconds": r.duration_seconds,
                "detail": r.detail,
            }
            for name, r in self.phases.items()
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PhaseTelemetry:
        telemetry = cls()
        for name, raw in (data or {}).items():
            telemetry.phases[name] = PhaseRecord(
                phase_name=raw.get("phase_name", name),
                status=PhaseStatus(raw.get("status", PhaseStatus.NOT_RUN.value)),
                start_time=raw.get("start_time", ""),
                end_time=raw.get("end_time", ""),
                duration_seconds=float(raw.get("duration_seconds", 0.0)),
                detail=raw.get("detail", ""),
            )
        return telemetry
