"""
Ports (interfaces) for retention persistence.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from .models import RetentionState

StateMutation = Callable[[RetentionState | None], RetentionState]


class RetentionRepository(ABC):
    """
    Port for loading and storing retention state keyed by (learner_id, topic_id).

    Implementations:
        - InMemoryRetentionRepository: Process-local dict, for tests and demos.
        - SqliteRetentionRepository: Single-file SQLite database.

    Two reviews of the same card must never interleave their read and write.
    Adapters guarantee this for ``apply``; callers that use ``get_state`` and
    persist through some other path are responsible for their own locking.
    """

    @abstractmethod
    async def get_state(self, learner_id: str, topic_id: str) -> RetentionState | None:
        """Return the stored state, or None if the topic was never reviewed."""
        pass

    @abstractmethod
    async def list_states(self, learner_id: str) -> list[RetentionState]:
        """Return every stored state for a learner."""
        pass

    @abstractmethod
    async def list_due(self, learner_id: str, now: datetime) -> list[RetentionState]:
        """
        Return states whose next_review_at is at or before ``now``.

        Args:
            learner_id: Owner of the cards.
            now: Reference time (timezone-aware).

        Returns:
            States ordered by next_review_at ascending.
        """
        pass

    @abstractmethod
    async def apply(
        self, learner_id: str, topic_id: str, mutate: StateMutation
    ) -> RetentionState:
        """
        Atomically read, transform and replace a state.

        ``mutate`` receives the current state (None if absent) and returns the
        replacement, which is persisted and returned.
        """
        pass
