"""Background task scheduler using APScheduler."""

import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from controle_api.config import get_settings

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: AsyncIOScheduler | None = None


async def auto_backup_job() -> None:
    """Background job exporting a backup when the configured frequency is due."""
    from controle_api.dependencies import (
        get_auto_backup_service,
        get_backup_service,
        get_data_store,
        get_folder_persistence,
        get_local_state,
        get_table_repository,
    )

    state = get_local_state()
    service = get_auto_backup_service(
        state=state,
        backup_service=get_backup_service(get_table_repository(get_data_store())),
        folder=get_folder_persistence(state),
    )

    if await service.run_auto_backup():
        logger.info("Scheduled auto-backup completed")
    else:
        logger.debug("Scheduled auto-backup skipped or failed")


async def start_scheduler() -> None:
    """Start the background task scheduler."""
    global _scheduler

    settings = get_settings()
    _scheduler = AsyncIOScheduler()

    # Due-check for the automatic backup; also runs once on startup
    _scheduler.add_job(
        auto_backup_job,
        trigger=IntervalTrigger(minutes=settings.auto_backup_check_minutes),
        id="auto_backup",
        name="Automatic backup",
        replace_existing=True,
        next_run_time=datetime.now(),
    )

    _scheduler.start()
    logger.info("Background scheduler started")


async def stop_scheduler() -> None:
    """Stop the background task scheduler."""
    global _scheduler

    if _scheduler:
        _scheduler.shutdown(wait=False)
        _scheduler = None
        logger.info("Background scheduler stopped")
