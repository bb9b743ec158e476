"""Tests for the SQLite run archive, its schema and connection pool."""
from __future__ import annotations

import sqlite3
import threading
from pathlib import Path

import pytest

from src.foundry_orchestrator.report import generate_completion_report
from src.foundry_orchestrator.state import PipelineRun
from src.foundry_orchestrator.telemetry import PhaseTelemetry
from src.persistence.connection import ConnectionPool
from src.persistence.run_archive import RunArchive
from src.persistence.schema import SCHEMA_VERSION, init_archive_db


@pytest.fixture
def archive(tmp_path: Path):
    archive = RunArchive(tmp_path / "archive.db")
    yield archive
    archive.close()


def _report(run_id: str = "run1", target: str = "dns-expert", **kwargs):
    run = PipelineRun(run_id=run_id, target_name=target, route="web", **kwargs)
    run.invocations = [
        {"invocation_id": f"{run_id}-web", "worker_kind": "web_research", "status": "succeeded",
         "input_ref": "wo.md", "result_artifact_ref": "web.json", "error_reason": ""},
    ]
    return generate_completion_report(run, PhaseTelemetry())


class TestConnectionPool:
    def test_pragmas(self, tmp_path: Path):
        pool = ConnectionPool(tmp_path / "test.db")
        conn = pool.get()
        assert conn.execute("PRAGMA journal_mode").fetchone()[0] == "wal"
        assert conn.execute("PRAGMA foreign_keys").fetchone()[0] == 1
        assert conn.row_factory == sqlite3.Row
        pool.close()

    def test_thread_local_connections(self, tmp_path: Path):
        pool = ConnectionPool(tmp_path / "test.db")
        main_conn = pool.get()
        assert pool.get() is main_conn
        other = [None]

        def get_conn():
            other[0] = pool.get()

        t = threading.Thread(target=get_conn)
        t.start()
        t.join()
        assert other[0] is not None and other[0] is not main_conn
        pool.close()
        assert pool._open == []

    def test_transaction_commits(self, tmp_path: Path):
        pool = ConnectionPool(tmp_path / "test.db")
        with pool.transaction() as conn:
            conn.execute("CREATE TABLE t (x INTEGER)")
            conn.execute("INSERT INTO t VALUES (1)")
        assert not pool.get().in_transaction
        assert pool.get().execute("SELECT COUNT(*) FROM t").fetchone()[0] == 1
        pool.close()

    def test_transaction_rolls_back_on_error(self, tmp_path: Path):
        pool = ConnectionPool(tmp_path / "test.db")
        with pool.transaction() as conn:
            conn.execute("CREATE TABLE t (x INTEGER)")
        with pytest.raises(RuntimeError):
            with pool.transaction() as conn:
                conn.execute("INSERT INTO t VALUES (1)")
                raise RuntimeError("boom")
        assert pool.get().execute("SELECT COUNT(*) FROM t").fetchone()[0] == 0
        pool.close()


class TestSchema:
    def test_init_is_idempotent(self, tmp_path: Path):
        pool = ConnectionPool(tmp_path / "archive.db")
        init_archive_db(pool)
        init_archive_db(pool)
        conn = pool.get()
        rows = conn.execute("SELECT version FROM schema_version").fetchall()
        assert [r[0] for r in rows] == [SCHEMA_VERSION]
        tables = {
            r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")
        }
        assert {"runs", "run_phases", "run_invocations"} <= tables
        pool.close()


class TestRunArchive:
    def test_record_and_get(self, archive):
        assert archive.record(_report(status="succeeded"), "/runs/run1/COMPLETION_REPORT.md")
        run = archive.get_run("run1")
        assert run["status"] == "succeeded"
        assert run["report_path"] == "/runs/run1/COMPLETION_REPORT.md"
        assert [p["phase_number"] for p in run["phases"]] == [1, 2, 3, 4, 5, 6]
        assert run["invocations"][0]["worker_kind"] == "web_research"

    def test_failed_run_phases(self, archive):
        report = _report(status="failed", failed_phase=4, failure_kind="WorkerTimedOut",
                         failure_message="too slow")
        archive.record(report)
        run = archive.get_run("run1")
        assert run["failure_kind"] == "WorkerTimedOut"
        assert [p["status"] for p in run["phases"]] == [
            "NOT RUN", "NOT RUN", "NOT RUN", "FAIL", "NOT RUN", "NOT RUN",
        ]

    def test_rerecord_replaces(self, archive):
        archive.record(_report(status="running"))
        archive.record(_report(status="succeeded"))
        run = archive.get_run("run1")
        assert run["status"] == "succeeded"
        assert len(run["phases"]) == 6
        assert len(run["invocations"]) == 1

    def test_get_missing(self, archive):
        assert archive.get_run("nope") is None

    def test_list_runs_by_target(self, archive):
        archive.record(_report("run1", "dns-expert", status="succeeded"))
        archive.record(_report("run2", "k8s-expert", status="failed"))
        archive.record(_report("run3", "dns-expert", status="failed"))
        assert [r["run_id"] for r in archive.list_runs("dns-expert")] == ["run3", "run1"]
        assert len(archive.list_runs(limit=2)) == 2

    def test_failures_never_raise(self, archive):
        archive.close()
        archive._pool.get().close()
        assert archive.record(_report()) is False
        assert archive.get_run("run1") is None
        assert archive.list_runs() == []
