"""Run archive database schema."""
from __future__ import annotations

from src.persistence.connection import ConnectionPool

SCHEMA_VERSION = 1


def init_archive_db(pool: ConnectionPool) -> None:
    """Create the archive tables if needed.

    ``CREATE TABLE IF NOT EXISTS`` plus explicit indexes, then seed
    ``schema_version`` on first use.

    Args:
        pool: Connection pool pointing at the archive database.
    """
    conn = pool.get()
    conn.executescript("""
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER NOT NULL
        );

        CREATE TABLE IF NOT EXISTS runs (
            run_id TEXT PRIMARY KEY,
            target_name TEXT NOT NULL DEFAULT '',
            route TEXT NOT NULL DEFAULT '',
            status TEXT NOT NULL,
            failed_phase INTEGER,
            failure_kind TEXT NOT NULL DEFAULT '',
            failure_message TEXT NOT NULL DEFAULT '',
            deployed_path TEXT NOT NULL DEFAULT '',
            report_path TEXT NOT NULL DEFAULT '',
            started_at TEXT NOT NULL DEFAULT '',
            ended_at TEXT NOT NULL DEFAULT '',
            archived_at TEXT NOT NULL DEFAULT (datetime('now'))
        );
        CREATE INDEX IF NOT EXISTS idx_runs_target
            ON runs(target_name);

        CREATE TABLE IF NOT EXISTS run_phases (
            run_id TEXT NOT NULL REFERENCES runs(run_id) ON DELETE CASCADE,
            phase_number INTEGER NOT NULL,
            phase_name TEXT NOT NULL,
            status TEXT NOT NULL,
            duration_seconds REAL NOT NULL DEFAULT 0.0,
            detail TEXT NOT NULL DEFAULT '',
            PRIMARY KEY (run_id, phase_number)
        );

        CREATE TABLE IF NOT EXISTS run_invocations (
            invocation_id TEXT PRIMARY KEY,
            run_id TEXT NOT NULL REFERENCES runs(run_id) ON DELETE CASCADE,
            worker_kind TEXT NOT NULL,
            status TEXT NOT NULL,
            input_ref TEXT NOT NULL DEFAULT '',
            result_artifact_ref TEXT,
            error_reason TEXT NOT NULL DEFAULT ''
        );
        CREATE INDEX IF NOT EXISTS idx_inv_run
            ON run_invocations(run_id);
    """)
    conn.commit()

    with pool.transaction() as tx:
        row = tx.execute("SELECT COUNT(*) FROM schema_version").fetchone()
        if row[0] == 0:
            tx.execute(
                "INSERT INTO schema_version (version) VALUES (?)",
                (SCHEMA_VERSION,),
            )
