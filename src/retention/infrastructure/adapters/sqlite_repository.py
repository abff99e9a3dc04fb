"""
SQLite Retention Repository: Infrastructure adapter for a single-file database.

Implements RetentionRepository with one row per (learner_id, topic_id).
"""

import logging
import sqlite3
from datetime import datetime, timezone
from pathlib import Path

from ulid import ULID

from retention.domain.constants import SQLITE_TIMEOUT
from retention.domain.models import RetentionState, XpStatus
from retention.domain.ports import RetentionRepository, StateMutation

logger = logging.getLogger(__name__)

_COLUMNS = (
    "topic_id, ease_factor, interval_days, repetitions, failure_count, "
    "consecutive_successes, xp_status, last_reviewed_at, next_review_at"
)


def _to_db_time(value: datetime | None) -> str | None:
    # Fixed-width UTC strings so that text comparison orders by time.
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _from_db_time(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.fromisoformat(value)


def _row_to_state(row: sqlite3.Row) -> RetentionState:
    return RetentionState(
        topic_id=row["topic_id"],
        ease_factor=float(row["ease_factor"]),
        interval_days=int(row["interval_days"]),
        repetitions=int(row["repetitions"]),
        failure_count=int(row["failure_count"]),
        consecutive_successes=int(row["consecutive_successes"]),
        xp_status=XpStatus(row["xp_status"]),
        last_reviewed_at=_from_db_time(row["last_reviewed_at"]),
        next_review_at=_from_db_time(row["next_review_at"]),
    )


class SqliteRetentionRepository(RetentionRepository):
    """
    Stores retention state in a `retention_cards` table.

    apply() runs inside BEGIN IMMEDIATE, which takes the database write lock
    before reading, so concurrent writers (threads or processes) on the same
    file serialize their read-modify-write cycles.
    """

    def __init__(self, db_path: Path | str):
        self.db_path = Path(db_path)
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path, timeout=SQLITE_TIMEOUT, isolation_level=None, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _ensure_dirs(self) -> None:
        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def _init_db(self) -> None:
        conn = self._connect()
        try:
            # Journal mode is persisted in the file.
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS retention_cards (
                    id TEXT PRIMARY KEY,
                    learner_id TEXT NOT NULL,
                    topic_id TEXT NOT NULL,
                    ease_factor REAL NOT NULL DEFAULT 2.5,
                    interval_days INTEGER NOT NULL DEFAULT 1,
                    repetitions INTEGER NOT NULL DEFAULT 0,
                    failure_count INTEGER NOT NULL DEFAULT 0,
                    consecutive_successes INTEGER NOT NULL DEFAULT 0,
                    xp_status TEXT NOT NULL DEFAULT 'pending',
                    last_reviewed_at TEXT,
                    next_review_at TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE(learner_id, topic_id)
                );
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_retention_cards_review "
                "ON retention_cards(learner_id, next_review_at);"
            )
        finally:
            conn.close()

    # --- public API ---
    async def get_state(self, learner_id: str, topic_id: str) -> RetentionState | None:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM retention_cards WHERE learner_id = ? AND topic_id = ?;",
                (learner_id, topic_id),
            ).fetchone()
            return _row_to_state(row) if row else None
        finally:
            conn.close()

    async def list_states(self, learner_id: str) -> list[RetentionState]:
        conn = self._connect()
        try:
            cur = conn.execute(
                f"SELECT {_COLUMNS} FROM retention_cards WHERE learner_id = ? ORDER BY topic_id;",
                (learner_id,),
            )
            return [_row_to_state(row) for row in cur.fetchall()]
        finally:
            conn.close()

    async def list_due(self, learner_id: str, now: datetime) -> list[RetentionState]:
        conn = self._connect()
        try:
            cur = conn.execute(
                f"""
                SELECT {_COLUMNS} FROM retention_cards
                WHERE learner_id = ? AND next_review_at IS NOT NULL AND next_review_at <= ?
                ORDER BY next_review_at ASC, topic_id ASC;
                """,
                (learner_id, _to_db_time(now)),
            )
            return [_row_to_state(row) for row in cur.fetchall()]
        finally:
            conn.close()

    async def apply(
        self, learner_id: str, topic_id: str, mutate: StateMutation
    ) -> RetentionState:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE;")
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM retention_cards WHERE learner_id = ? AND topic_id = ?;",
                (learner_id, topic_id),
            ).fetchone()
            current = _row_to_state(row) if row else None

            new_state = mutate(current)

            now = _to_db_time(datetime.now(timezone.utc))
            conn.execute(
                """
                INSERT INTO retention_cards(
                    id, learner_id, topic_id, ease_factor, interval_days, repetitions,
                    failure_count, consecutive_successes, xp_status,
                    last_reviewed_at, next_review_at, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(learner_id, topic_id) DO UPDATE SET
                    ease_factor = excluded.ease_factor,
                    interval_days = excluded.interval_days,
                    repetitions = excluded.repetitions,
                    failure_count = excluded.failure_count,
                    consecutive_successes = excluded.consecutive_successes,
                    xp_status = excluded.xp_status,
                    last_reviewed_at = excluded.last_reviewed_at,
                    next_review_at = excluded.next_review_at,
                    updated_at = excluded.updated_at;
                """,
                (
                    str(ULID()),
                    learner_id,
                    topic_id,
                    new_state.ease_factor,
                    new_state.interval_days,
                    new_state.repetitions,
                    new_state.failure_count,
                    new_state.consecutive_successes,
                    new_state.xp_status.value,
                    _to_db_time(new_state.last_reviewed_at),
                    _to_db_time(new_state.next_review_at),
                    now,
                    now,
                ),
            )
            conn.execute("COMMIT;")
            return new_state
        except Exception:
            logger.warning(f"Rolling back update of {learner_id}/{topic_id}")
            if conn.in_transaction:
                conn.execute("ROLLBACK;")
            raise
        finally:
            conn.close()
