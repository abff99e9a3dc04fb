"""
Recall-test bookkeeping on top of the SM-2 scheduler.

Pure functions over RetentionState: XP verification and decay, failure
escalation, due checks, the anti-cramming cooldown and retention status.
"""

from dataclasses import replace
from datetime import datetime, timedelta, timezone

from retention.domain.constants import (
    ANSWER_LENGTH_THRESHOLD,
    FADING_RATIO,
    LONG_ANSWER_QUALITY,
    REDIRECT_FAILURE_THRESHOLD,
    RETEST_COOLDOWN_HOURS,
    SHORT_ANSWER_QUALITY,
    STRONG_RATIO,
    WEAK_RATIO,
)
from retention.domain.models import (
    FailureAction,
    RecallTestResult,
    RetentionState,
    RetentionStatus,
    XpChange,
    XpStatus,
)

from .scheduler import normalize_quality, update


def _now(now: datetime | None) -> datetime:
    current = now or datetime.now(timezone.utc)
    if current.tzinfo is None:
        current = current.replace(tzinfo=timezone.utc)
    return current


def create_initial_state(topic_id: str) -> RetentionState:
    """Create the retention state for a topic that has never been reviewed."""
    return RetentionState(topic_id=topic_id)


def process_recall_result(
    state: RetentionState, quality: object, now: datetime | None = None
) -> RecallTestResult:
    """
    Run a recall result through SM-2 and update the XP bookkeeping.

    Success: consecutive_successes grows. A success that follows an earlier
    one is a delayed recall and verifies XP; the first success leaves XP as is.

    Failure: failure_count grows and the success streak resets. XP decays.
    The first two failures get feedback only, from the third on the learner
    is sent back to the learning book.
    """
    current = _now(now)
    q = normalize_quality(quality)

    outcome = update(state.to_card(current), q, now=current)
    card = outcome.card

    scheduled = replace(
        state,
        ease_factor=card.ease_factor,
        interval_days=card.interval_days,
        repetitions=card.repetitions,
        next_review_at=card.next_review_at,
        last_reviewed_at=card.last_reviewed_at,
    )

    if outcome.was_successful:
        delayed_recall = state.consecutive_successes > 0
        new_state = replace(
            scheduled,
            consecutive_successes=state.consecutive_successes + 1,
            xp_status=XpStatus.VERIFIED if delayed_recall else state.xp_status,
        )
        return RecallTestResult(
            passed=True,
            new_state=new_state,
            xp_change=XpChange.VERIFIED if delayed_recall else XpChange.NONE,
        )

    failure_count = state.failure_count + 1
    new_state = replace(
        scheduled,
        failure_count=failure_count,
        consecutive_successes=0,
        xp_status=XpStatus.DECAYED,
    )
    if failure_count >= REDIRECT_FAILURE_THRESHOLD:
        action = FailureAction.REDIRECT_TO_LEARNING_BOOK
    else:
        action = FailureAction.FEEDBACK_ONLY
    return RecallTestResult(
        passed=False,
        new_state=new_state,
        xp_change=XpChange.DECAYED,
        failure_action=action,
    )


def is_review_due(state: RetentionState, now: datetime | None = None) -> bool:
    if state.next_review_at is None:
        return False
    return state.next_review_at <= _now(now)


def can_retest_topic(
    last_test_at: datetime | None,
    now: datetime | None = None,
    cooldown_hours: float = RETEST_COOLDOWN_HOURS,
) -> bool:
    """True if never tested or the anti-cramming cooldown has elapsed."""
    if last_test_at is None:
        return True
    if last_test_at.tzinfo is None:
        last_test_at = last_test_at.replace(tzinfo=timezone.utc)
    return _now(now) - last_test_at >= timedelta(hours=cooldown_hours)


def get_retention_status(
    state: RetentionState, now: datetime | None = None
) -> RetentionStatus:
    """
    Classify how well a topic is retained from time since the last review.

    The elapsed days are compared against the scheduled interval:
    within it is strong, up to 2x fading, up to 4x weak, beyond that (or
    never reviewed) forgotten.
    """
    if state.last_reviewed_at is None:
        return RetentionStatus.FORGOTTEN

    elapsed = _now(now) - state.last_reviewed_at
    days_since = elapsed.total_seconds() / 86400.0
    ratio = days_since / max(state.interval_days, 1)

    if ratio <= STRONG_RATIO:
        return RetentionStatus.STRONG
    if ratio <= FADING_RATIO:
        return RetentionStatus.FADING
    if ratio <= WEAK_RATIO:
        return RetentionStatus.WEAK
    return RetentionStatus.FORGOTTEN


def quality_from_answer(answer: str) -> int:
    # Length-based proxy until answers are graded semantically.
    if len(answer) > ANSWER_LENGTH_THRESHOLD:
        return LONG_ANSWER_QUALITY
    return SHORT_ANSWER_QUALITY
