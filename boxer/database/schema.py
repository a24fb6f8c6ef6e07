"""
State database schema definitions.
"""
import sqlite3
import logging

CURRENT_SCHEMA_VERSION = 1

def init_schema(conn: sqlite3.Connection):
    """
    Applies the state schema to the database.
    Idempotent: safe to run on every startup.
    """
    with conn:
        # 1. Version Tracking
        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY
            );
        """)

        cur = conn.cursor()
        cur.execute("SELECT version FROM schema_version")
        if not cur.fetchone():
            conn.execute("INSERT INTO schema_version (version) VALUES (?)", (CURRENT_SCHEMA_VERSION,))

        # 2. Key-value state (checkpoint blob lives here)
        conn.execute("""
        CREATE TABLE IF NOT EXISTS state (
            key         TEXT PRIMARY KEY,
            value       TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        );
        """)

        # 3. Run history
        conn.execute("""
        CREATE TABLE IF NOT EXISTS run_stats (
            id               INTEGER PRIMARY KEY AUTOINCREMENT,
            started_at       TEXT NOT NULL,
            elapsed_seconds  REAL NOT NULL,
            processed        INTEGER NOT NULL DEFAULT 0,
            skipped          INTEGER NOT NULL DEFAULT 0,
            failed           INTEGER NOT NULL DEFAULT 0,
            budget_exhausted INTEGER NOT NULL DEFAULT 0,
            cycle_complete   INTEGER NOT NULL DEFAULT 0
        );
        """)

        # 4. Per-file failures, kept for manual retry
        conn.execute("""
        CREATE TABLE IF NOT EXISTS failures (
            file_id     TEXT PRIMARY KEY,
            stage       TEXT NOT NULL,
            message     TEXT,
            failed_at   TEXT NOT NULL,
            attempts    INTEGER NOT NULL DEFAULT 1
        );
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_run_stats_started ON run_stats(started_at);")

    logging.debug("State schema initialized.")
