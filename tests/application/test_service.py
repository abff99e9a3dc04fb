import asyncio
import threading
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from retention.application.service import RetentionService
from retention.domain.models import RetentionStatus, XpChange, XpStatus
from retention.infrastructure.adapters import (
    InMemoryRetentionRepository,
    SqliteRetentionRepository,
)

NOW = datetime(2024, 9, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def service():
    return RetentionService(InMemoryRetentionRepository())


@pytest.mark.asyncio
async def test_first_review_creates_state(service):
    result = await service.review("alice", "algebra", 4, now=NOW)

    assert result.passed is True
    stored = await service.get_topic("alice", "algebra")
    assert stored == result.new_state
    assert stored.repetitions == 1
    assert stored.next_review_at == NOW + timedelta(days=1)


@pytest.mark.asyncio
async def test_reviews_progress_stored_state(service):
    await service.review("alice", "algebra", 5, now=NOW)
    second = await service.review("alice", "algebra", 5, now=NOW + timedelta(days=1))

    assert second.xp_change is XpChange.VERIFIED
    stored = await service.get_topic("alice", "algebra")
    assert stored.repetitions == 2
    assert stored.interval_days == 6
    assert stored.xp_status is XpStatus.VERIFIED


@pytest.mark.asyncio
async def test_learners_are_isolated(service):
    await service.review("alice", "algebra", 5, now=NOW)
    assert await service.get_topic("bob", "algebra") is None


@pytest.mark.asyncio
async def test_concurrent_reviews_are_not_lost(service):
    await asyncio.gather(*(service.review("alice", "algebra", 5, now=NOW) for _ in range(8)))

    stored = await service.get_topic("alice", "algebra")
    assert stored.repetitions == 8
    assert stored.consecutive_successes == 8


@pytest.mark.asyncio
async def test_recall_test_grades_answer(service):
    long_answer = "A derivative is the limit of the difference quotient as h goes to zero."
    passed = await service.recall_test("alice", "calculus", long_answer, now=NOW)
    failed = await service.recall_test("alice", "physics", "idk", now=NOW)

    assert passed.passed is True
    assert failed.passed is False
    assert failed.new_state.failure_count == 1


@pytest.mark.asyncio
async def test_list_due(service):
    await service.review("alice", "a", 5, now=NOW - timedelta(days=3))  # due NOW - 2d
    await service.review("alice", "b", 5, now=NOW - timedelta(days=2))  # due NOW - 1d
    await service.review("alice", "c", 5, now=NOW)  # due NOW + 1d

    due = await service.list_due("alice", now=NOW)
    assert [s.topic_id for s in due] == ["a", "b"]


@pytest.mark.asyncio
async def test_can_retest(service):
    assert await service.can_retest("alice", "algebra", now=NOW) is True

    await service.review("alice", "algebra", 4, now=NOW)
    assert await service.can_retest("alice", "algebra", now=NOW + timedelta(hours=1)) is False
    assert await service.can_retest("alice", "algebra", now=NOW + timedelta(hours=25)) is True


@pytest.mark.asyncio
async def test_custom_cooldown():
    service = RetentionService(InMemoryRetentionRepository(), retest_cooldown_hours=0)
    await service.review("alice", "algebra", 4, now=NOW)
    assert await service.can_retest("alice", "algebra", now=NOW) is True


@pytest.mark.asyncio
async def test_summary(service):
    await service.review("alice", "fresh", 5, now=NOW)  # interval 1, reviewed now
    await service.review("alice", "stale", 5, now=NOW - timedelta(days=30))

    summary = await service.summary("alice", now=NOW)

    assert summary.learner_id == "alice"
    assert summary.total == 2
    assert summary.due == 1
    assert summary.by_status[RetentionStatus.STRONG] == 1
    assert summary.by_status[RetentionStatus.FORGOTTEN] == 1
    assert summary.by_status[RetentionStatus.FADING] == 0
    assert set(summary.by_status) == set(RetentionStatus)


@pytest.mark.asyncio
async def test_repository_errors_propagate():
    repo = AsyncMock()
    repo.apply.side_effect = RuntimeError("disk full")
    service = RetentionService(repo)

    with pytest.raises(RuntimeError, match="disk full"):
        await service.review("alice", "algebra", 4, now=NOW)


@pytest.fixture(params=["memory", "sqlite"])
def backed_service(request, tmp_path):
    if request.param == "memory":
        return RetentionService(InMemoryRetentionRepository())
    return RetentionService(SqliteRetentionRepository(tmp_path / "retention.db"))


@pytest.mark.asyncio
async def test_naive_now_is_treated_as_utc(backed_service):
    await backed_service.review("alice", "a", 5, now=datetime(2024, 9, 1, 12, 0))

    later = datetime(2024, 9, 3, 12, 0)
    due = await backed_service.list_due("alice", now=later)
    assert [s.topic_id for s in due] == ["a"]

    summary = await backed_service.summary("alice", now=later)
    assert summary.due == 1


@pytest.mark.asyncio
async def test_locks_are_released_after_reviews(service):
    await service.review("alice", "algebra", 5, now=NOW)
    await asyncio.gather(*(service.review("alice", f"t{i}", 4, now=NOW) for i in range(5)))

    assert len(service._locks) == 0


@pytest.mark.asyncio
async def test_recall_test_refused_during_cooldown(backed_service):
    answer = "x" * 60
    first = await backed_service.recall_test("alice", "algebra", answer, now=NOW)
    assert first is not None

    blocked = await backed_service.recall_test(
        "alice", "algebra", answer, now=NOW + timedelta(hours=1)
    )
    assert blocked is None
    stored = await backed_service.get_topic("alice", "algebra")
    assert stored == first.new_state

    later = await backed_service.recall_test(
        "alice", "algebra", answer, now=NOW + timedelta(hours=24)
    )
    assert later.new_state.repetitions == 2


@pytest.mark.asyncio
async def test_concurrent_recall_tests_pass_cooldown_once(service):
    answer = "x" * 60
    results = await asyncio.gather(
        *(service.recall_test("alice", "algebra", answer, now=NOW) for _ in range(5))
    )

    assert sum(r is not None for r in results) == 1
    stored = await service.get_topic("alice", "algebra")
    assert stored.repetitions == 1
    assert stored.consecutive_successes == 1


def test_recall_tests_from_separate_services_share_cooldown(tmp_path):
    # Separate services on one database file behave like separate server processes.
    path = tmp_path / "retention.db"
    services = [RetentionService(SqliteRetentionRepository(path)) for _ in range(4)]
    results = []

    def worker(svc):
        results.append(asyncio.run(svc.recall_test("alice", "algebra", "x" * 60, now=NOW)))

    threads = [threading.Thread(target=worker, args=(svc,)) for svc in services]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(r is not None for r in results) == 1
