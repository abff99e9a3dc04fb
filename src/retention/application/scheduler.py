"""
SM-2 scheduler for a single retention card.

This is a pure computation module with no I/O. Given the previous card (or
None for a topic that was never reviewed) and a 0-5 quality score, it
produces the replacement card and whether the recall counted as a success.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any

from retention.domain.constants import (
    DEFAULT_EASE,
    EASE_DECIMALS,
    FAILURE_INTERVAL_DAYS,
    FIRST_INTERVAL_DAYS,
    MAX_QUALITY,
    MIN_EASE,
    MIN_QUALITY,
    PASSING_QUALITY,
    SECOND_INTERVAL_DAYS,
)
from retention.domain.models import CardStage, RetentionCard, ReviewCase, ReviewOutcome

logger = logging.getLogger(__name__)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round with halves going up, e.g. 2.5 -> 3 (Python's round() gives 2)."""
    factor = 10**digits
    return math.floor(value * factor + 0.5) / factor


def normalize_quality(quality: Any) -> int:
    """
    Coerce an arbitrary quality value into an integer in [0, 5].

    The value is rounded first and clamped second, so 5.6 becomes 5 and
    -0.4 becomes 0. Anything that is not a finite number (None, NaN,
    infinities, unparseable strings) counts as a complete blackout.
    """
    try:
        q = float(quality)
    except (TypeError, ValueError):
        logger.debug(f"Non-numeric quality {quality!r} treated as {MIN_QUALITY}")
        return MIN_QUALITY

    if not math.isfinite(q):
        logger.debug(f"Non-finite quality {quality!r} treated as {MIN_QUALITY}")
        return MIN_QUALITY

    rounded = int(round_half_up(q))
    return max(MIN_QUALITY, min(MAX_QUALITY, rounded))


def compute_ease(previous_ease: float, quality: int) -> float:
    """
    Classic SM-2 ease update, floored at MIN_EASE. Returns the unrounded value.

    EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02))
    """
    miss = MAX_QUALITY - quality
    ease = previous_ease + (0.1 - miss * (0.08 + miss * 0.02))
    return max(MIN_EASE, ease)


def classify_review(previous: RetentionCard | None, was_successful: bool) -> ReviewCase:
    """Pick the update branch. Order matters: failure wins over every success case."""
    if not was_successful:
        return ReviewCase.FAILURE
    if previous is None or previous.repetitions <= 0:
        return ReviewCase.FIRST_SUCCESS
    if previous.repetitions == 1:
        return ReviewCase.SECOND_SUCCESS
    return ReviewCase.MATURE_SUCCESS


def card_stage(card: RetentionCard | None) -> CardStage:
    if card is None:
        return CardStage.NEW
    return card.stage


def add_calendar_days(moment: datetime, days: int) -> datetime:
    """
    Advance by whole calendar days, keeping the local time of day.

    Arithmetic on an aware datetime keeps its tzinfo and works on the wall
    clock, so a span crossing a DST change is still exactly ``days`` dates
    apart even though the elapsed seconds differ.
    """
    return moment + timedelta(days=days)


def update(
    previous_card: RetentionCard | None,
    quality: Any,
    now: datetime | None = None,
) -> ReviewOutcome:
    """
    Schedule the next review of a card.

    Args:
        previous_card: Current card, or None if the topic was never reviewed.
        quality: Recall quality, nominally 0 (blackout) to 5 (perfect).
            Out-of-range or malformed values are coerced, never rejected.
        now: Review time. Defaults to the current UTC time; naive datetimes
            are taken to be UTC.

    Returns:
        ReviewOutcome with the replacement card. The previous card is untouched.
    """
    q = normalize_quality(quality)
    was_successful = q >= PASSING_QUALITY

    previous_ease = previous_card.ease_factor if previous_card else DEFAULT_EASE
    ease = compute_ease(previous_ease, q)

    case = classify_review(previous_card, was_successful)
    if case is ReviewCase.FAILURE:
        repetitions = 0
        interval = FAILURE_INTERVAL_DAYS
    elif case is ReviewCase.FIRST_SUCCESS:
        repetitions = 1
        interval = FIRST_INTERVAL_DAYS
    elif case is ReviewCase.SECOND_SUCCESS:
        repetitions = 2
        interval = SECOND_INTERVAL_DAYS
    else:
        previous_interval = previous_card.interval_days if previous_card else SECOND_INTERVAL_DAYS
        repetitions = (previous_card.repetitions if previous_card else 2) + 1
        # Interval grows with the unrounded ease; only the stored ease is rounded.
        interval = max(1, int(round_half_up(previous_interval * ease)))

    reviewed_at = now or datetime.now(timezone.utc)
    if reviewed_at.tzinfo is None:
        reviewed_at = reviewed_at.replace(tzinfo=timezone.utc)

    card = RetentionCard(
        ease_factor=round_half_up(ease, EASE_DECIMALS),
        interval_days=interval,
        repetitions=repetitions,
        last_reviewed_at=reviewed_at,
        next_review_at=add_calendar_days(reviewed_at, interval),
    )
    return ReviewOutcome(card=card, was_successful=was_successful, case=case)
