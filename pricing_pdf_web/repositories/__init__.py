from .analytics_repository import AnalyticsLog
from .run_repository import InMemoryRunStore

__all__ = [
    "AnalyticsLog",
    "InMemoryRunStore",
]
