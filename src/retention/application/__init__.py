# Application Package
from .scheduler import normalize_quality, update
from .service import RetentionService

__all__ = ["normalize_quality", "update", "RetentionService"]
