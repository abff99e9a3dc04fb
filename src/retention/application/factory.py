"""
Repository Factory
Centralizes the logic for selecting the storage adapter.
"""

import logging

from retention.application.config import AppConfig
from retention.application.service import RetentionService
from retention.domain.ports import RetentionRepository
from retention.infrastructure.adapters import (
    InMemoryRetentionRepository,
    SqliteRetentionRepository,
)

logger = logging.getLogger(__name__)


def get_repository(config: AppConfig) -> RetentionRepository:
    """
    Returns the RetentionRepository implementation selected by config.
    """
    if config.backend == "memory":
        logger.debug("Backend: memory")
        return InMemoryRetentionRepository()

    logger.debug(f"Backend: sqlite ({config.db_path})")
    return SqliteRetentionRepository(config.db_path)


def get_retention_service(config: AppConfig) -> RetentionService:
    return RetentionService(
        get_repository(config),
        retest_cooldown_hours=config.retest_cooldown_hours,
    )
