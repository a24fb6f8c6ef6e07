import json
import logging
import sqlite3
from datetime import datetime, UTC
from typing import Any, Dict, List, Optional

from .. import config
from ..exceptions import SchedulerFatal
from ..models import FileOutcome, ProcessingCheckpoint, RunSummary


class StateOperations:
    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    # --- Key-value state ---

    def get_state(self, key: str) -> Optional[Any]:
        cur = self.conn.cursor()
        cur.execute("SELECT value FROM state WHERE key = ?", (key,))
        row = cur.fetchone()
        return json.loads(row[0]) if row else None

    def set_state(self, key: str, value: Any):
        now_iso = datetime.now(UTC).isoformat()
        with self.conn:
            self.conn.execute("""
                INSERT INTO state (key, value, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at
            """, (key, json.dumps(value), now_iso))

    def delete_state(self, key: str):
        with self.conn:
            self.conn.execute("DELETE FROM state WHERE key = ?", (key,))

    # --- Run history ---

    def record_run(self, summary: RunSummary, keep: int = config.RUN_HISTORY_LIMIT):
        """Stores a run summary and trims history to the newest `keep` runs."""
        with self.conn:
            self.conn.execute("""
                INSERT INTO run_stats
                (started_at, elapsed_seconds, processed, skipped, failed, budget_exhausted, cycle_complete)
                VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                summary.started_at, summary.elapsed_seconds, summary.processed, summary.skipped,
                summary.failed, int(summary.budget_exhausted), int(summary.cycle_complete),
            ))
            self.conn.execute("""
                DELETE FROM run_stats WHERE id NOT IN (
                    SELECT id FROM run_stats ORDER BY id DESC LIMIT ?
                )
            """, (keep,))

    def fetch_run_history(self) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("""
            SELECT started_at, elapsed_seconds, processed, skipped, failed, budget_exhausted, cycle_complete
            FROM run_stats ORDER BY id DESC
        """)
        cols = [d[0] for d in cur.description]
        return [dict(zip(cols, row)) for row in cur.fetchall()]

    # --- Failures ---

    def record_failure(self, outcome: FileOutcome):
        now_iso = datetime.now(UTC).isoformat()
        with self.conn:
            self.conn.execute("""
                INSERT INTO failures (file_id, stage, message, failed_at) VALUES (?, ?, ?, ?)
                ON CONFLICT(file_id) DO UPDATE SET
                    stage = excluded.stage,
                    message = excluded.message,
                    failed_at = excluded.failed_at,
                    attempts = failures.attempts + 1
            """, (outcome.file_id, outcome.stage, outcome.message, now_iso))

    def clear_failure(self, file_id: str):
        with self.conn:
            self.conn.execute("DELETE FROM failures WHERE file_id = ?", (file_id,))

    def fetch_failures(self) -> List[Dict[str, Any]]:
        cur = self.conn.cursor()
        cur.execute("SELECT file_id, stage, message, failed_at, attempts FROM failures ORDER BY failed_at DESC")
        cols = [d[0] for d in cur.description]
        return [dict(zip(cols, row)) for row in cur.fetchall()]


class CheckpointStore:
    """
    Loads and saves the scheduler checkpoint. Any storage error is fatal for
    the current run.
    """

    def __init__(self, ops: StateOperations, key: str = config.CHECKPOINT_KEY):
        self.ops = ops
        self.key = key

    def load(self, version: str) -> ProcessingCheckpoint:
        """Stored checkpoint, or a fresh one when absent or written by another version."""
        try:
            data = self.ops.get_state(self.key)
        except (sqlite3.Error, ValueError) as e:
            raise SchedulerFatal(f"Cannot read checkpoint: {e}") from e

        if not data:
            return ProcessingCheckpoint(version=version)
        checkpoint = ProcessingCheckpoint.from_dict(data)
        if checkpoint.version != version:
            logging.info(f"Processing version changed ({checkpoint.version} -> {version}); resetting checkpoint.")
            return ProcessingCheckpoint(version=version)
        return checkpoint

    def save(self, checkpoint: ProcessingCheckpoint):
        try:
            self.ops.set_state(self.key, checkpoint.to_dict())
        except sqlite3.Error as e:
            raise SchedulerFatal(f"Cannot write checkpoint: {e}") from e

    def reset(self):
        try:
            self.ops.delete_state(self.key)
        except sqlite3.Error as e:
            raise SchedulerFatal(f"Cannot reset checkpoint: {e}") from e
