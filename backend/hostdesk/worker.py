"""
Background worker driving the scheduled email processor.

Runs the processor on an interval and a daily reconciliation sweep with
APScheduler. Each job runs at most once at a time (max_instances=1), and
missed runs are coalesced into one.

Usage:
    python -m hostdesk.worker
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hostdesk.core.config import get_settings
from hostdesk.core.database import build_engine, build_session_factory
from hostdesk.core.env_validation import validate_environment
from hostdesk.schemas.email import ProcessEmailsResponse
from hostdesk.services.engine import BookingEngine
from hostdesk.services.reconciliation import ReconciliationReport

logger = logging.getLogger(__name__)

PROCESS_EMAILS_JOB = "process_emails"
RECONCILE_JOB = "reconcile_bookings"


class EngineWorker:
    """Owns the scheduler and the jobs it runs against the engine."""

    def __init__(
        self,
        engine: BookingEngine,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.engine = engine
        self.session_factory = session_factory
        self.scheduler = AsyncIOScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 300,
            }
        )
        self.scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)

    def _on_job_executed(self, event):
        logger.debug(f"[WORKER] Job {event.job_id} finished")

    def _on_job_error(self, event):
        logger.error(
            f"[WORKER] Job {event.job_id} raised {event.exception.__class__.__name__}: "
            f"{event.exception}",
            exc_info=event.exception,
        )

    async def process_emails(self) -> ProcessEmailsResponse:
        async with self.session_factory() as db:
            return await self.engine.emails(db).process_pending_emails()

    async def reconcile(self) -> ReconciliationReport:
        async with self.session_factory() as db:
            return await self.engine.reconciliation(db).sweep()

    def schedule_jobs(self) -> None:
        settings = self.engine.settings
        self.scheduler.add_job(
            self.process_emails,
            trigger=IntervalTrigger(minutes=settings.email_process_interval_minutes),
            id=PROCESS_EMAILS_JOB,
            replace_existing=True,
            next_run_time=datetime.now(),
        )
        self.scheduler.add_job(
            self.reconcile,
            trigger=IntervalTrigger(hours=settings.reconcile_interval_hours),
            id=RECONCILE_JOB,
            replace_existing=True,
        )
        logger.info(
            f"[WORKER] Emails every {settings.email_process_interval_minutes} min, "
            f"reconciliation every {settings.reconcile_interval_hours} h"
        )

    def start(self) -> None:
        if not self.scheduler.running:
            self.schedule_jobs()
            self.scheduler.start()
            logger.info("[WORKER] Scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)
            logger.info("[WORKER] Scheduler shutdown")


async def run(stop: Optional[asyncio.Event] = None) -> None:
    """Run the worker until ``stop`` is set (forever by default)."""
    validate_environment()
    settings = get_settings()

    db_engine = build_engine(settings)
    worker = EngineWorker(BookingEngine(settings), build_session_factory(db_engine))
    worker.start()
    try:
        await (stop or asyncio.Event()).wait()
    finally:
        worker.shutdown()
        await db_engine.dispose()


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    asyncio.run(run())


if __name__ == "__main__":
    main()
