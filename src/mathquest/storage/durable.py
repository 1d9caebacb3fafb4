"""Durable progress store on SQLite, awaited from asyncio.

The store is advisory: every operation logs and swallows its own errors,
and an unavailable database turns all operations into no-ops.
"""

import asyncio
import json
import sqlite3
import threading
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from typing import Any, TypeVar

import structlog
from pydantic import BaseModel

from mathquest.models.progress import ProgressRecord
from mathquest.models.session import ProblemRef

logger = structlog.get_logger()

T = TypeVar("T")

PROGRESS_TABLE = "progress"
PROBLEM_TABLE = "problem_progress"
PROGRESS_KEY = "singleton"

_SCHEMA = f"""
CREATE TABLE IF NOT EXISTS {PROGRESS_TABLE} (
    id TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS {PROBLEM_TABLE} (
    id TEXT PRIMARY KEY,
    category TEXT NOT NULL,
    asked_count INTEGER NOT NULL DEFAULT 0,
    correct_count INTEGER NOT NULL DEFAULT 0,
    incorrect_count INTEGER NOT NULL DEFAULT 0,
    last_asked_at TEXT,
    last_answered_at TEXT
);
CREATE INDEX IF NOT EXISTS by_category ON {PROBLEM_TABLE} (category);
"""


class ProblemProgressRecord(BaseModel):
    """Asked/answered counters for one exercise."""

    id: str
    category: str
    asked_count: int = 0
    correct_count: int = 0
    incorrect_count: int = 0
    last_asked_at: datetime | None = None
    last_answered_at: datetime | None = None


class DurableStore:
    """Key-indexed store with a singleton progress table and a per-exercise table.

    The database is opened lazily on first use. Table creation runs only
    when the stored schema version (``PRAGMA user_version``) is lower than
    ``version``.

    Args:
        db_path: SQLite file path. ``None`` disables the store.
        version: Schema version of this store.
        clock: Returns the timestamp used for ``last_*_at`` stamps.
    """

    def __init__(
        self,
        db_path: Path | None,
        version: int = 1,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db_path = db_path
        self.version = version
        self._clock = clock
        self._conn: sqlite3.Connection | None = None
        self._available = db_path is not None
        self._open_lock = asyncio.Lock()
        # FIFO: background writes land in the order they were scheduled
        self._write_lock = asyncio.Lock()
        # sqlite3 connections are shared across worker threads
        self._db_lock = threading.Lock()

    @property
    def available(self) -> bool:
        return self._available

    def _connect(self) -> sqlite3.Connection:
        assert self.db_path is not None
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        conn.row_factory = sqlite3.Row
        try:
            current = conn.execute("PRAGMA user_version").fetchone()[0]
            if current < self.version:
                with conn:
                    conn.executescript(_SCHEMA)
                    conn.execute(f"PRAGMA user_version = {int(self.version)}")
                logger.info(
                    "durable_store_upgraded",
                    path=str(self.db_path),
                    old_version=current,
                    new_version=self.version,
                )
        except sqlite3.Error:
            conn.close()
            raise
        return conn

    async def _ensure_open(self) -> sqlite3.Connection | None:
        if not self._available:
            return None
        if self._conn is not None:
            return self._conn
        async with self._open_lock:
            if self._conn is None and self._available:
                try:
                    self._conn = await asyncio.to_thread(self._connect)
                except (sqlite3.Error, OSError) as e:
                    self._available = False
                    logger.warning(
                        "durable_store_unavailable", path=str(self.db_path), error=str(e)
                    )
        return self._conn

    async def _run(self, operation: str, fn: Callable[[sqlite3.Connection], T], default: T) -> T:
        conn = await self._ensure_open()
        if conn is None:
            return default

        def locked() -> T:
            with self._db_lock:
                return fn(conn)

        try:
            return await asyncio.to_thread(locked)
        except (sqlite3.Error, OSError, ValueError) as e:
            logger.warning(f"durable_store_{operation}_failed", error=str(e))
            return default

    # ── Progress snapshot ──

    async def get_progress(self) -> dict[str, Any] | None:
        """Return the stored snapshot as decoded JSON, or None."""

        def fetch(conn: sqlite3.Connection) -> dict[str, Any] | None:
            row = conn.execute(
                f"SELECT value FROM {PROGRESS_TABLE} WHERE id = ?", (PROGRESS_KEY,)
            ).fetchone()
            return json.loads(row["value"]) if row else None

        return await self._run("get_progress", fetch, None)

    async def put_progress(self, progress: ProgressRecord) -> None:
        """Overwrite the snapshot (last write wins)."""
        value = json.dumps(progress.to_blob())

        def write(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO {PROGRESS_TABLE} (id, value) VALUES (?, ?)",
                    (PROGRESS_KEY, value),
                )

        async with self._write_lock:
            await self._run("put_progress", write, None)

    # ── Per-exercise tracking ──

    async def mark_asked(self, problems: Iterable[ProblemRef]) -> None:
        """Bump ``asked_count`` for every exercise in one transaction."""
        batch = list(problems)
        if not batch:
            return
        now = self._clock().isoformat()

        def write(conn: sqlite3.Connection) -> None:
            with conn:
                conn.executemany(
                    f"""
                    INSERT INTO {PROBLEM_TABLE} (id, category, asked_count, last_asked_at)
                    VALUES (?, ?, 1, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        asked_count = asked_count + 1,
                        last_asked_at = excluded.last_asked_at
                    """,
                    [(p.id, p.category, now) for p in batch],
                )

        async with self._write_lock:
            await self._run("mark_asked", write, None)

    async def mark_answered(self, problem: ProblemRef, is_correct: bool) -> None:
        """Bump exactly one of ``correct_count``/``incorrect_count``."""
        now = self._clock().isoformat()
        correct, incorrect = (1, 0) if is_correct else (0, 1)

        def write(conn: sqlite3.Connection) -> None:
            with conn:
                conn.execute(
                    f"""
                    INSERT INTO {PROBLEM_TABLE}
                        (id, category, correct_count, incorrect_count, last_answered_at)
                    VALUES (?, ?, ?, ?, ?)
                    ON CONFLICT(id) DO UPDATE SET
                        correct_count = correct_count + excluded.correct_count,
                        incorrect_count = incorrect_count + excluded.incorrect_count,
                        last_answered_at = excluded.last_answered_at
                    """,
                    (problem.id, problem.category, correct, incorrect, now),
                )

        async with self._write_lock:
            await self._run("mark_answered", write, None)

    async def get_problem_progress(self, problem_id: str) -> ProblemProgressRecord | None:
        def fetch(conn: sqlite3.Connection) -> ProblemProgressRecord | None:
            row = conn.execute(
                f"SELECT * FROM {PROBLEM_TABLE} WHERE id = ?", (problem_id,)
            ).fetchone()
            return ProblemProgressRecord(**dict(row)) if row else None

        return await self._run("get_problem_progress", fetch, None)

    async def get_category_problem_progress(self, category: str) -> list[ProblemProgressRecord]:
        def fetch(conn: sqlite3.Connection) -> list[ProblemProgressRecord]:
            rows = conn.execute(
                f"SELECT * FROM {PROBLEM_TABLE} WHERE category = ? ORDER BY id", (category,)
            ).fetchall()
            return [ProblemProgressRecord(**dict(row)) for row in rows]

        return await self._run("get_category_problem_progress", fetch, [])

    async def close(self) -> None:
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await asyncio.to_thread(conn.close)
