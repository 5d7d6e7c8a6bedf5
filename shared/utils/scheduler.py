from apscheduler.schedulers.asyncio import AsyncIOScheduler
import logging

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler(timezone="UTC")


def start_scheduler(sched: AsyncIOScheduler = scheduler):
    if not sched.running:
        sched.start()
        logger.info("Background scheduler started")


def stop_scheduler(sched: AsyncIOScheduler = scheduler):
    if sched.running:
        sched.shutdown(wait=False)
        logger.info("Background scheduler stopped")
