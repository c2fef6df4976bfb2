from datetime import datetime, timedelta
from typing import Optional
import asyncio
import logging

from ..core.config import settings
from ..core.database import get_session_factory
from .appointment_service import advance_appointment_statuses

logger = logging.getLogger(__name__)

def seconds_until_next_run(now: datetime, hour: int, minute: int) -> float:
    """Seconds from ``now`` (UTC) to the next hour:minute, strictly in the future."""
    next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()

async def run_daily_status_job():
    """Run the appointment status update once a day until cancelled."""
    while True:
        delay = seconds_until_next_run(
            datetime.utcnow(), settings.STATUS_JOB_HOUR, settings.STATUS_JOB_MINUTE
        )
        logger.info(f"Next appointment status update in {delay:.0f}s")
        await asyncio.sleep(delay)

        try:
            await asyncio.to_thread(advance_appointment_statuses, get_session_factory())
        except Exception as e:
            # Keep the schedule alive; the next run re-derives everything
            logger.error(f"Scheduled appointment status update failed: {e}", exc_info=True)

_job: Optional[asyncio.Task] = None

def start_status_job() -> asyncio.Task:
    global _job
    if _job is None or _job.done():
        _job = asyncio.create_task(run_daily_status_job())
        logger.info(
            f"Appointment status job scheduled daily at "
            f"{settings.STATUS_JOB_HOUR:02d}:{settings.STATUS_JOB_MINUTE:02d} UTC"
        )
    return _job

async def stop_status_job():
    global _job
    if _job is not None:
        _job.cancel()
        try:
            await _job
        except asyncio.CancelledError:
            pass
        _job = None
