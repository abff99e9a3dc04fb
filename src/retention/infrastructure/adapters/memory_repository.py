"""
In-memory Retention Repository: process-local adapter for tests and demos.
"""

import threading
from datetime import datetime, timezone

from retention.domain.models import RetentionState
from retention.domain.ports import RetentionRepository, StateMutation


class InMemoryRetentionRepository(RetentionRepository):
    """
    Keeps retention state in a dict keyed by (learner_id, topic_id).

    A single lock serializes every apply(), so reviews from different
    threads never lose an update.
    """

    def __init__(self) -> None:
        self._states: dict[tuple[str, str], RetentionState] = {}
        self._lock = threading.Lock()

    async def get_state(self, learner_id: str, topic_id: str) -> RetentionState | None:
        return self._states.get((learner_id, topic_id))

    async def list_states(self, learner_id: str) -> list[RetentionState]:
        return [s for (lid, _), s in self._states.items() if lid == learner_id]

    async def list_due(self, learner_id: str, now: datetime) -> list[RetentionState]:
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        due = [
            s
            for s in await self.list_states(learner_id)
            if s.next_review_at is not None and s.next_review_at <= now
        ]
        return sorted(due, key=lambda s: (s.next_review_at, s.topic_id))

    async def apply(
        self, learner_id: str, topic_id: str, mutate: StateMutation
    ) -> RetentionState:
        with self._lock:
            new_state = mutate(self._states.get((learner_id, topic_id)))
            self._states[(learner_id, topic_id)] = new_state
            return new_state
