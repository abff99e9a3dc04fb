import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from retention.application.service import RetentionService
from retention.consts import VERSION
from retention.domain.models import RetentionState
from retention.infrastructure.adapters import InMemoryRetentionRepository
from retention.server import app, get_service


@pytest.fixture
def repo():
    return InMemoryRetentionRepository()


@pytest.fixture
def service(repo):
    return RetentionService(repo)


@pytest.fixture
def client(service):
    app.dependency_overrides[get_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def parse(ts: str) -> datetime:
    return datetime.fromisoformat(ts.replace("Z", "+00:00"))


def test_health_check(client):
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["version"] == VERSION


def test_get_version(client):
    response = client.get("/version")
    assert response.status_code == 200
    assert response.json() == {"version": VERSION}


class TestSchedule:
    def test_new_card(self, client):
        response = client.post(
            "/schedule", json={"quality": 4, "now": "2024-01-31T08:00:00+00:00"}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["was_successful"] is True
        assert data["case"] == "first_success"
        assert data["stage"] == "learning"
        assert data["card"]["repetitions"] == 1
        assert data["card"]["interval_days"] == 1
        assert data["card"]["ease_factor"] == pytest.approx(2.5)
        assert parse(data["card"]["next_review_at"]) == datetime(
            2024, 2, 1, 8, 0, tzinfo=timezone.utc
        )

    def test_existing_card(self, client):
        card = {
            "ease_factor": 2.6,
            "interval_days": 1,
            "repetitions": 1,
            "last_reviewed_at": "2024-01-01T08:00:00+00:00",
            "next_review_at": "2024-01-02T08:00:00+00:00",
        }
        response = client.post(
            "/schedule",
            json={"card": card, "quality": 5, "now": "2024-01-02T08:00:00+00:00"},
        )
        data = response.json()
        assert data["card"]["repetitions"] == 2
        assert data["card"]["interval_days"] == 6
        assert data["stage"] == "young"

    def test_out_of_range_quality_is_clamped(self, client):
        response = client.post("/schedule", json={"quality": 99})
        assert response.status_code == 200
        assert response.json()["was_successful"] is True

    def test_missing_quality_is_a_failure(self, client):
        response = client.post("/schedule", json={})
        assert response.status_code == 200
        data = response.json()
        assert data["was_successful"] is False
        assert data["case"] == "failure"


class TestReviews:
    def test_review_persists(self, client):
        url = "/learners/alice/topics/algebra"

        assert client.get(url).status_code == 404

        first = client.post(f"{url}/reviews", json={"quality": 5})
        assert first.status_code == 200
        assert first.json()["passed"] is True
        assert first.json()["xp_change"] == "none"

        second = client.post(f"{url}/reviews", json={"quality": 5}).json()
        assert second["xp_change"] == "verified"
        assert second["state"]["repetitions"] == 2

        stored = client.get(url).json()
        assert stored["repetitions"] == 2
        assert stored["interval_days"] == 6
        assert stored["xp_status"] == "verified"

    def test_failure_reports_action(self, client):
        data = client.post("/learners/alice/topics/algebra/reviews", json={"quality": 1}).json()
        assert data["passed"] is False
        assert data["xp_change"] == "decayed"
        assert data["failure_action"] == "feedback_only"
        assert data["state"]["failure_count"] == 1

    def test_review_error_is_500(self, client, service):
        with patch.object(service, "review", new_callable=AsyncMock) as mock_review:
            mock_review.side_effect = Exception("Boom")
            response = client.post("/learners/alice/topics/t/reviews", json={"quality": 4})

        assert response.status_code == 500
        assert "Boom" in response.json()["detail"]


class TestRecallTest:
    def test_grades_and_enforces_cooldown(self, client):
        url = "/learners/alice/topics/calculus/recall-test"
        answer = "The derivative is the limit of the difference quotient as h tends to zero."

        first = client.post(url, json={"answer": answer})
        assert first.status_code == 200
        assert first.json()["passed"] is True

        again = client.post(url, json={"answer": answer})
        assert again.status_code == 429

    def test_short_answer_fails(self, client):
        data = client.post("/learners/alice/topics/t/recall-test", json={"answer": "no idea"}).json()
        assert data["passed"] is False


def test_due_and_summary(client, repo):
    now = datetime.now(timezone.utc)

    def seed(topic, due):
        return repo.apply(
            "alice",
            topic,
            lambda _: RetentionState(
                topic_id=topic,
                interval_days=1,
                repetitions=1,
                last_reviewed_at=due - timedelta(days=1),
                next_review_at=due,
            ),
        )

    asyncio.run(seed("overdue", now - timedelta(days=2)))
    asyncio.run(seed("yesterday", now - timedelta(days=1)))
    asyncio.run(seed("tomorrow", now + timedelta(days=1)))

    due = client.get("/learners/alice/due").json()
    assert due["count"] == 2
    assert [t["topic_id"] for t in due["topics"]] == ["overdue", "yesterday"]

    summary = client.get("/learners/alice/summary").json()
    assert summary["total"] == 3
    assert summary["due"] == 2
    assert summary["by_status"]["strong"] == 1
    assert sum(summary["by_status"].values()) == 3


def test_recall_test_cooldown_leaves_card_untouched(client):
    url = "/learners/alice/topics/calculus"
    client.post(f"{url}/recall-test", json={"answer": "short"})
    before = client.get(url).json()

    assert client.post(f"{url}/recall-test", json={"answer": "x" * 60}).status_code == 429
    assert client.get(url).json() == before
