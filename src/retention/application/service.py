"""
Retention Service: Application layer orchestrator.

Coordinates loading retention state from the repository, running recall
results through the scheduler and persisting the replacement state.
"""

import asyncio
import logging
import weakref
from collections import Counter
from datetime import datetime, timezone

from retention.domain.constants import RETEST_COOLDOWN_HOURS
from retention.domain.models import (
    RecallTestResult,
    RetentionState,
    RetentionStatus,
    RetentionSummary,
)
from retention.domain.ports import RetentionRepository

from .recall import (
    can_retest_topic,
    create_initial_state,
    get_retention_status,
    process_recall_result,
    quality_from_answer,
)

logger = logging.getLogger(__name__)


def _current_time(now: datetime | None) -> datetime:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current


class RetentionService:
    """
    Application service for reviewing topics and querying due work.

    Follows Dependency Inversion: depends on RetentionRepository abstraction,
    not concrete adapter implementations.
    """

    def __init__(
        self,
        repo: RetentionRepository,
        retest_cooldown_hours: float = RETEST_COOLDOWN_HOURS,
    ):
        """
        Args:
            repo: The repository (port) for retention state.
            retest_cooldown_hours: Minimum gap between recall tests of a topic.
        """
        self._repo = repo
        self._cooldown_hours = retest_cooldown_hours
        # Entries vanish once no review of that card holds the lock.
        self._locks: weakref.WeakValueDictionary[tuple[str, str], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, learner_id: str, topic_id: str) -> asyncio.Lock:
        key = (learner_id, topic_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def _record(
        self,
        learner_id: str,
        topic_id: str,
        quality: object,
        reviewed_at: datetime,
        enforce_cooldown: bool,
    ) -> RecallTestResult | None:
        results: list[RecallTestResult] = []

        def mutate(current: RetentionState | None) -> RetentionState:
            if enforce_cooldown and current is not None:
                if not can_retest_topic(
                    current.last_reviewed_at, now=reviewed_at, cooldown_hours=self._cooldown_hours
                ):
                    return current
            state = current or create_initial_state(topic_id)
            result = process_recall_result(state, quality, now=reviewed_at)
            results.append(result)
            return result.new_state

        async with self._lock_for(learner_id, topic_id):
            await self._repo.apply(learner_id, topic_id, mutate)

        if not results:
            logger.info(f"Recall test of {learner_id}/{topic_id} refused: cooldown active")
            return None

        result = results[-1]
        logger.info(
            f"Reviewed {learner_id}/{topic_id}: passed={result.passed} "
            f"interval={result.new_state.interval_days}d "
            f"ease={result.new_state.ease_factor}"
        )
        return result

    async def review(
        self,
        learner_id: str,
        topic_id: str,
        quality: object,
        now: datetime | None = None,
    ) -> RecallTestResult:
        """
        Record a review and persist the rescheduled state.

        The first review of a topic creates its state. Concurrent reviews of
        the same card are serialized, so neither update is lost.
        """
        return await self._record(
            learner_id, topic_id, quality, _current_time(now), enforce_cooldown=False
        )

    async def recall_test(
        self,
        learner_id: str,
        topic_id: str,
        answer: str,
        now: datetime | None = None,
    ) -> RecallTestResult | None:
        """
        Grade a free-text answer and record it as a review.

        Returns None, leaving the card untouched, while the retest cooldown
        is active. The cooldown is checked inside the repository's atomic
        update, so concurrent tests of one card cannot both get through.
        """
        quality = quality_from_answer(answer)
        logger.debug(f"Graded answer for {learner_id}/{topic_id} as quality {quality}")
        return await self._record(
            learner_id, topic_id, quality, _current_time(now), enforce_cooldown=True
        )

    async def can_retest(
        self, learner_id: str, topic_id: str, now: datetime | None = None
    ) -> bool:
        state = await self._repo.get_state(learner_id, topic_id)
        last_test_at = state.last_reviewed_at if state else None
        return can_retest_topic(last_test_at, now=now, cooldown_hours=self._cooldown_hours)

    async def get_topic(self, learner_id: str, topic_id: str) -> RetentionState | None:
        return await self._repo.get_state(learner_id, topic_id)

    async def list_due(
        self, learner_id: str, now: datetime | None = None
    ) -> list[RetentionState]:
        return await self._repo.list_due(learner_id, _current_time(now))

    async def summary(
        self, learner_id: str, now: datetime | None = None
    ) -> RetentionSummary:
        """
        Summarize a learner's cards: how many exist, how many are due and
        how many fall into each retention status.
        """
        current = _current_time(now)
        states = await self._repo.list_states(learner_id)
        due = await self._repo.list_due(learner_id, current)

        counts = Counter(get_retention_status(s, now=current) for s in states)
        by_status = {status: counts.get(status, 0) for status in RetentionStatus}

        return RetentionSummary(
            learner_id=learner_id,
            total=len(states),
            due=len(due),
            by_status=by_status,
        )
