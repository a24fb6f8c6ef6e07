"""
State database connection management.
"""
import sqlite3
import logging
from pathlib import Path
from typing import Optional

from ..exceptions import SchedulerFatal
from .schema import init_schema

class DBManager:
    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        """
        Opens the state database and configures pragmas.
        Raises SchedulerFatal when the file cannot be opened or initialized.
        """
        if self._conn:
            return self._conn

        logging.info(f"Opening state database: {self.db_path}")
        try:
            self._conn = sqlite3.connect(self.db_path)

            # Single writer; invocations never overlap
            self._conn.execute("PRAGMA journal_mode=WAL;")
            self._conn.execute("PRAGMA synchronous=NORMAL;")

            init_schema(self._conn)
        except sqlite3.Error as e:
            raise SchedulerFatal(f"Cannot open state database {self.db_path}: {e}") from e

        return self._conn

    def close(self):
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        return self.connect()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
