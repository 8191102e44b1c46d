"""
Poller in-process opcional (POLL_SCHEDULER_ENABLED).
Production triggers /pix/batch-check from an external cron; this only fires the
same independent batch run on an interval and keeps the last result for inspection.
"""
import asyncio
import logging

from app.config import Settings
from app.db.supabase import get_db
from app.models.transactions import utc_now
from app.services.status_poller import run_batch_check

logger = logging.getLogger(__name__)


class PendingPoller:
    def __init__(self, settings: Settings):
        self.settings = settings
        self.interval = settings.poll_interval_minutes
        self._task: asyncio.Task | None = None
        self._last_run: str | None = None
        self._last_summary: dict | None = None

    async def start(self):
        self._task = asyncio.create_task(self._scheduler())
        logger.info("PendingPoller started (interval=%dm)", self.interval)

    async def stop(self):
        if self._task:
            self._task.cancel()
            logger.info("PendingPoller stopped")

    @property
    def last_run(self) -> str | None:
        return self._last_run

    @property
    def last_summary(self) -> dict | None:
        return self._last_summary

    async def _scheduler(self):
        while True:
            try:
                await self.run_once()
            except Exception:
                logger.exception("PendingPoller scheduler error")
            await asyncio.sleep(self.interval * 60)

    async def run_once(self) -> dict:
        result = await run_batch_check(get_db(self.settings), self.settings)
        self._last_run = utc_now().isoformat()
        self._last_summary = {k: v for k, v in result.items() if k != "results"}
        return result
