"""SM-2 spaced-repetition scheduling for per-learner topic cards."""

from retention.application.scheduler import update
from retention.consts import VERSION
from retention.domain.models import RetentionCard, ReviewOutcome

__version__ = VERSION

__all__ = ["RetentionCard", "ReviewOutcome", "update", "__version__"]
