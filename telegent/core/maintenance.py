"""
Telegent — Retention Sweeper

Background hygiene on a fixed interval:
    1. Message purge: drop messages older than the message retention window
    2. Context eviction: drop contexts idle longer than the context window

Each pass runs independently, so a failing purge still lets eviction run.
A sweep never raises; failures are logged and reported in the summary.
"""
import asyncio
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

from ..storage.context_store import ConversationContextStore
from ..storage.message_log import MessageLog

logger = logging.getLogger(__name__)


class RetentionSweeper:

    def __init__(
        self,
        message_log: MessageLog,
        context_store: ConversationContextStore,
        interval: float = 86_400,
        message_retention: timedelta = timedelta(days=30),
        context_retention: timedelta = timedelta(days=3),
    ):
        if interval <= 0:
            raise ValueError(f"Sweep interval must be positive, got {interval}")
        self.message_log = message_log
        self.context_store = context_store
        self.interval = interval
        self.message_retention = message_retention
        self.context_retention = context_retention
        self._task: Optional[asyncio.Task] = None
        self.last_result: Optional[Dict[str, Any]] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> Dict[str, Any]:
        """One full sweep. Returns counts plus any per-pass error text."""
        result: Dict[str, Any] = {
            "messages_purged": 0,
            "contexts_evicted": 0,
            "errors": [],
        }
        try:
            result["messages_purged"] = await self.message_log.purge(self.message_retention)
        except Exception as e:
            logger.error("Message purge failed: %s", e, exc_info=e)
            result["errors"].append(f"messages: {e}")
        try:
            result["contexts_evicted"] = await self.context_store.evict(self.context_retention)
        except Exception as e:
            logger.error("Context eviction failed: %s", e, exc_info=e)
            result["errors"].append(f"contexts: {e}")

        if result["messages_purged"] or result["contexts_evicted"]:
            logger.info(
                "Retention sweep: purged %d message(s), evicted %d context(s)",
                result["messages_purged"], result["contexts_evicted"],
            )
        self.last_result = result
        return result

    def start(self) -> None:
        """Schedule sweeps on the running loop; the first runs after one interval."""
        if self.is_running:
            return
        self._task = asyncio.get_running_loop().create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            await self.run_once()
