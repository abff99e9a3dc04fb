"""
Domain models for spaced-repetition scheduling.

These are pure data structures with no I/O or external dependencies.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .constants import DEFAULT_EASE, FIRST_INTERVAL_DAYS


class ReviewCase(str, Enum):
    """Which branch of the SM-2 update a review falls into."""

    FAILURE = "failure"
    FIRST_SUCCESS = "first_success"
    SECOND_SUCCESS = "second_success"
    MATURE_SUCCESS = "mature_success"


class CardStage(str, Enum):
    """
    Learning stage of a card, derived from its repetition count.

    NEW -> LEARNING (reps=1) -> YOUNG (reps=2) -> MATURE (reps>=3).
    Any failure drops the card to RELAPSED, which schedules like NEW
    but keeps the adjusted ease factor.
    """

    NEW = "new"
    LEARNING = "learning"
    YOUNG = "young"
    MATURE = "mature"
    RELAPSED = "relapsed"


class XpStatus(str, Enum):
    PENDING = "pending"
    VERIFIED = "verified"
    DECAYED = "decayed"


class XpChange(str, Enum):
    VERIFIED = "verified"
    DECAYED = "decayed"
    NONE = "none"


class FailureAction(str, Enum):
    FEEDBACK_ONLY = "feedback_only"
    REDIRECT_TO_LEARNING_BOOK = "redirect_to_learning_book"


class RetentionStatus(str, Enum):
    STRONG = "strong"
    FADING = "fading"
    WEAK = "weak"
    FORGOTTEN = "forgotten"


@dataclass(frozen=True)
class RetentionCard:
    """
    Scheduling state for one (learner, topic) pair.

    Attributes:
        ease_factor: Retention easiness multiplier, always >= 1.3.
        interval_days: Days until the next review.
        repetitions: Consecutive successful recalls since the last failure.
        last_reviewed_at: When the review that produced this state happened.
        next_review_at: last_reviewed_at plus interval_days calendar days.
    """

    ease_factor: float
    interval_days: int
    repetitions: int
    last_reviewed_at: datetime
    next_review_at: datetime

    @property
    def stage(self) -> CardStage:
        if self.repetitions <= 0:
            return CardStage.RELAPSED
        if self.repetitions == 1:
            return CardStage.LEARNING
        if self.repetitions == 2:
            return CardStage.YOUNG
        return CardStage.MATURE


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of scheduling a single review."""

    card: RetentionCard
    was_successful: bool
    case: ReviewCase


@dataclass(frozen=True)
class RetentionState:
    """
    Persisted retention record for a topic, including recall-test bookkeeping.

    Timestamps are None until the topic has been reviewed at least once.
    """

    topic_id: str
    ease_factor: float = DEFAULT_EASE
    interval_days: int = FIRST_INTERVAL_DAYS
    repetitions: int = 0
    failure_count: int = 0
    consecutive_successes: int = 0
    xp_status: XpStatus = XpStatus.PENDING
    next_review_at: datetime | None = None
    last_reviewed_at: datetime | None = None

    def to_card(self, fallback_time: datetime) -> RetentionCard:
        """View this state as a RetentionCard, filling missing timestamps."""
        return RetentionCard(
            ease_factor=self.ease_factor,
            interval_days=self.interval_days,
            repetitions=self.repetitions,
            last_reviewed_at=self.last_reviewed_at or fallback_time,
            next_review_at=self.next_review_at or fallback_time,
        )


@dataclass(frozen=True)
class RecallTestResult:
    passed: bool
    new_state: RetentionState
    xp_change: XpChange
    failure_action: FailureAction | None = None


@dataclass
class RetentionSummary:
    """Per-learner overview used by dashboards."""

    learner_id: str
    total: int
    due: int
    by_status: dict[RetentionStatus, int]
