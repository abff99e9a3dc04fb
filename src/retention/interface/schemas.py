"""Request and response models shared by the HTTP API and the CLI's --json output."""

from datetime import datetime

from pydantic import BaseModel

from retention.domain.models import (
    RecallTestResult,
    RetentionCard,
    RetentionState,
    RetentionSummary,
    ReviewOutcome,
)


class CardModel(BaseModel):
    ease_factor: float
    interval_days: int
    repetitions: int
    last_reviewed_at: datetime
    next_review_at: datetime

    @classmethod
    def from_card(cls, card: RetentionCard) -> "CardModel":
        return cls(
            ease_factor=card.ease_factor,
            interval_days=card.interval_days,
            repetitions=card.repetitions,
            last_reviewed_at=card.last_reviewed_at,
            next_review_at=card.next_review_at,
        )

    def to_card(self) -> RetentionCard:
        return RetentionCard(**self.model_dump())


class ScheduleRequest(BaseModel):
    card: CardModel | None = None
    quality: float | None = None
    now: datetime | None = None


class ScheduleResponse(BaseModel):
    card: CardModel
    was_successful: bool
    case: str
    stage: str

    @classmethod
    def from_outcome(cls, outcome: ReviewOutcome) -> "ScheduleResponse":
        return cls(
            card=CardModel.from_card(outcome.card),
            was_successful=outcome.was_successful,
            case=outcome.case.value,
            stage=outcome.card.stage.value,
        )


class StateModel(BaseModel):
    topic_id: str
    ease_factor: float
    interval_days: int
    repetitions: int
    failure_count: int
    consecutive_successes: int
    xp_status: str
    last_reviewed_at: datetime | None
    next_review_at: datetime | None

    @classmethod
    def from_state(cls, state: RetentionState) -> "StateModel":
        return cls(
            topic_id=state.topic_id,
            ease_factor=state.ease_factor,
            interval_days=state.interval_days,
            repetitions=state.repetitions,
            failure_count=state.failure_count,
            consecutive_successes=state.consecutive_successes,
            xp_status=state.xp_status.value,
            last_reviewed_at=state.last_reviewed_at,
            next_review_at=state.next_review_at,
        )


class ReviewRequest(BaseModel):
    quality: float | None = None


class RecallTestRequest(BaseModel):
    answer: str


class RecallResultResponse(BaseModel):
    passed: bool
    xp_change: str
    failure_action: str | None
    state: StateModel

    @classmethod
    def from_result(cls, result: RecallTestResult) -> "RecallResultResponse":
        return cls(
            passed=result.passed,
            xp_change=result.xp_change.value,
            failure_action=result.failure_action.value if result.failure_action else None,
            state=StateModel.from_state(result.new_state),
        )


class DueResponse(BaseModel):
    learner_id: str
    count: int
    topics: list[StateModel]


class SummaryResponse(BaseModel):
    learner_id: str
    total: int
    due: int
    by_status: dict[str, int]

    @classmethod
    def from_summary(cls, summary: RetentionSummary) -> "SummaryResponse":
        return cls(
            learner_id=summary.learner_id,
            total=summary.total,
            due=summary.due,
            by_status={k.value: v for k, v in summary.by_status.items()},
        )

