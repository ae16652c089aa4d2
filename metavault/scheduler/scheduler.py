# metavault/scheduler/scheduler.py
"""
SchedulerEngine for the Metavault backend.
Configures APScheduler and manages job lifecycle.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from metavault.config import settings
from metavault.scheduler.jobs import purge_expired_oauth_states
from metavault.monitoring.logger import log

scheduler: AsyncIOScheduler = None

async def start_scheduler(app):
    global scheduler
    scheduler = AsyncIOScheduler()
    scheduler.add_job(purge_expired_oauth_states, "interval", minutes=settings.OAUTH_STATE_PURGE_MINUTES)
    scheduler.start()
    app.state.scheduler = scheduler
    log("INFO", "Scheduler started.", module="scheduler")

async def shutdown_scheduler(app):
    global scheduler
    if scheduler:
        scheduler.shutdown(wait=False)
        scheduler = None
        log("INFO", "Scheduler shutdown.", module="scheduler")
