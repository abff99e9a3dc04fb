# Domain Package
from .models import (
    CardStage,
    FailureAction,
    RecallTestResult,
    RetentionCard,
    RetentionState,
    RetentionStatus,
    RetentionSummary,
    ReviewCase,
    ReviewOutcome,
    XpChange,
    XpStatus,
)
from .ports import RetentionRepository, StateMutation

__all__ = [
    "CardStage",
    "FailureAction",
    "RecallTestResult",
    "RetentionCard",
    "RetentionRepository",
    "RetentionState",
    "RetentionStatus",
    "RetentionSummary",
    "ReviewCase",
    "ReviewOutcome",
    "StateMutation",
    "XpChange",
    "XpStatus",
]
