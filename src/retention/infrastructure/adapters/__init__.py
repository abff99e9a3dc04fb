# Infrastructure Adapters Package
from .memory_repository import InMemoryRetentionRepository
from .sqlite_repository import SqliteRetentionRepository

__all__ = ["InMemoryRetentionRepository", "SqliteRetentionRepository"]
