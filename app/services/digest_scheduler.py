import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

from app.core.database import SessionLocal
from app.services.digest import run_digest
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


def parse_send_time(value: str) -> time:
    hour, minute = value.split(":")
    return time(int(hour), int(minute), tzinfo=timezone.utc)


class DigestScheduler:
    """Runs the daily digest once a day at a fixed UTC time."""

    def __init__(self, send_time: str, session_factory=SessionLocal):
        self.send_time = parse_send_time(send_time)
        self.session_factory = session_factory
        self._task: Optional[asyncio.Task] = None

    def next_run(self, now: datetime) -> datetime:
        candidate = datetime.combine(now.date(), self.send_time)
        if candidate <= now:
            candidate += timedelta(days=1)
        return candidate

    def run_once(self, day: date) -> int:
        # Own session, independent of any request
        db = self.session_factory()
        try:
            return run_digest(db, day=day)
        finally:
            db.close()

    async def _loop(self):
        while True:
            now = utcnow()
            run_at = self.next_run(now)
            await asyncio.sleep((run_at - now).total_seconds())
            try:
                sent = await asyncio.to_thread(self.run_once, run_at.date())
                logger.info(f"Scheduled digest for {run_at.date()} sent {sent} email(s)")
            except Exception:
                logger.exception("Scheduled digest run failed")

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info(f"Digest scheduler started, daily at {self.send_time.strftime('%H:%M')} UTC")
        return self._task

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Digest scheduler stopped")
