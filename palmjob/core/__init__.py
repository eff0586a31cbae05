from .config import Settings, settings
from .store import ResultStore, StatusTransitionError, build_redis

__all__ = ["settings", "Settings", "ResultStore", "StatusTransitionError", "build_redis"]
