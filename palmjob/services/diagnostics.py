"""Prompt logs: raw prompt/response pairs per provider call, kept for debugging and prompt tuning."""
import logging

from palmjob.core.store import ResultStore, utcnow
from palmjob.core.tasks import TaskRegistry

logger = logging.getLogger(__name__)


class PromptLogRecorder:
    """Fire-and-forget writer: a failed log write is logged and dropped, never raised."""

    def __init__(self, store: ResultStore, tasks: TaskRegistry, enabled: bool = True) -> None:
        self._store = store
        self._tasks = tasks
        self._enabled = enabled

    def record(self, analysis_id: str | None, kind: str, payload: dict) -> None:
        if not self._enabled or not analysis_id:
            return
        now = utcnow()
        entry = {
            "id": f"{analysis_id}:{kind}:{int(now.timestamp() * 1000)}",
            "analysisId": analysis_id,
            "type": kind,
            **payload,
            "timestamp": now.isoformat(),
        }
        self._tasks.spawn(self._write(analysis_id, kind, entry), name=f"prompt-log:{analysis_id}:{kind}")

    async def _write(self, analysis_id: str, kind: str, entry: dict) -> None:
        try:
            await self._store.append_log(analysis_id, kind, entry)
        except Exception as e:
            logger.warning("Failed to save %s prompt log for %s: %s", kind, analysis_id, e)
