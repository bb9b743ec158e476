"""Run archive -- records finished pipeline runs to SQLite."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from src.persistence.connection import ConnectionPool
from src.persistence.schema import init_archive_db

if TYPE_CHECKING:
    from src.foundry_orchestrator.report import CompletionReport

logger = logging.getLogger(__name__)


class RunArchive:
    """Archives completion reports (run, phases, invocations) in SQLite.

    Every public method is independently try/excepted so that an archive
    failure **never** raises into the pipeline.

    Args:
        db_path: Path to the archive SQLite database.
    """

    def __init__(self, db_path: str | Path) -> None:
        self._pool = ConnectionPool(db_path)
        init_archive_db(self._pool)

    def record(self, report: CompletionReport, report_path: str | Path = "") -> bool:
        """Archive one finished run.  Returns ``False`` if the write failed."""
        try:
            with self._pool.transaction() as conn:
                self._write(conn, report, report_path)
            return True
        except Exception as exc:
            logger.warning("RunArchive.record failed (non-blocking): %s", exc)
            return False

    @staticmethod
    def _write(conn: Any, report: CompletionReport, report_path: str | Path) -> None:
        conn.execute(
            """INSERT OR REPLACE INTO runs
               (run_id, target_name, route, status, failed_phase, failure_kind,
                failure_message, deployed_path, report_path, started_at, ended_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                report.run_id,
                report.target_name,
                report.route,
                report.status,
                report.failed_phase,
                report.failure_kind,
                report.failure_message,
                report.deployed_path,
                str(report_path),
                report.started_at,
                report.ended_at,
            ),
        )
        conn.execute("DELETE FROM run_phases WHERE run_id = ?", (report.run_id,))
        conn.executemany(
            """INSERT INTO run_phases
               (run_id, phase_number, phase_name, status, duration_seconds, detail)
               VALUES (?, ?, ?, ?, ?, ?)""",
            [
                (report.run_id, row.number, row.name, row.status, row.duration_seconds, row.detail)
                for row in report.phases
            ],
        )
        conn.executemany(
            """INSERT OR REPLACE INTO run_invocations
               (invocation_id, run_id, worker_kind, status, input_ref,
                result_artifact_ref, error_reason)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            [
                (
                    inv.get("invocation_id", ""),
                    report.run_id,
                    str(inv.get("worker_kind", "")),
                    str(inv.get("status", "")),
                    inv.get("input_ref", ""),
                    inv.get("result_artifact_ref"),
                    inv.get("error_reason", ""),
                )
                for inv in report.invocations
            ],
        )

    def get_run(self, run_id: str) -> dict[str, Any] | None:
        """Return the archived run with its phases, or ``None``."""
        try:
            conn = self._pool.get()
            row = conn.execute("SELECT * FROM runs WHERE run_id = ?", (run_id,)).fetchone()
            if row is None:
                return None
            run = dict(row)
            run["phases"] = [
                dict(r)
                for r in conn.execute(
                    "SELECT * FROM run_phases WHERE run_id = ? ORDER BY phase_number", (run_id,)
                ).fetchall()
            ]
            run["invocations"] = [
                dict(r)
                for r in conn.execute(
                    "SELECT * FROM run_invocations WHERE run_id = ?", (run_id,)
                ).fetchall()
            ]
            return run
        except Exception as exc:
            logger.warning("RunArchive.get_run failed (non-blocking): %s", exc)
            return None

    def list_runs(self, target_name: str | None = None, limit: int = 50) -> list[dict[str, Any]]:
        """Most recent archived runs, optionally for one target."""
        try:
            conn = self._pool.get()
            if target_name:
                rows = conn.execute(
                    "SELECT * FROM runs WHERE target_name = ? ORDER BY archived_at DESC, rowid DESC LIMIT ?",
                    (target_name, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM runs ORDER BY archived_at DESC, rowid DESC LIMIT ?", (limit,)
                ).fetchall()
            return [dict(r) for r in rows]
        except Exception as exc:
            logger.warning("RunArchive.list_runs failed (non-blocking): %s", exc)
            return []

    def close(self) -> None:
        self._pool.close()
