"""Scheduler process: cron triggers plus a manual trigger endpoint."""

import asyncio
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi import FastAPI, HTTPException

from marketpay.common.context import SettlementContext
from marketpay.common.logging import logger
from marketpay.common.metrics import metrics_response
from marketpay.services.scheduler.jobs import CLEANUP_JOB, PAYOUT_JOB, WARNING_JOB, job_table, run_job


class JobRunner:
    """Guards each job with a lock so at most one run is in flight."""

    def __init__(self, context: SettlementContext) -> None:
        self.context = context
        self.jobs = job_table(context)
        self.locks = {name: asyncio.Lock() for name in self.jobs}

    def is_running(self, name: str) -> bool:
        return self.locks[name].locked()

    async def run(self, name: str):
        lock = self.locks[name]
        if lock.locked():
            logger.warning("job skipped job=%s reason=already_running", name)
            return None
        async with lock:
            return await run_job(name, self.context.session_factory, self.jobs[name])


def build_scheduler(context: SettlementContext, runner: JobRunner) -> AsyncIOScheduler:
    """Register the hourly cleanup, hourly warnings and weekly payout triggers."""

    settings = context.settings
    scheduler = AsyncIOScheduler(timezone=settings.scheduler_timezone)
    schedule = {
        CLEANUP_JOB: settings.cleanup_cron,
        WARNING_JOB: settings.expiration_warning_cron,
        PAYOUT_JOB: settings.payout_cron,
    }
    for name, cron in schedule.items():
        scheduler.add_job(
            runner.run,
            trigger=CronTrigger.from_crontab(cron, timezone=settings.scheduler_timezone),
            args=[name],
            id=name,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
    return scheduler


def create_app(context: SettlementContext, start_scheduler: bool = True) -> FastAPI:
    runner = JobRunner(context)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Start cron triggers with the app lifecycle."""

        scheduler = None
        if start_scheduler:
            scheduler = build_scheduler(context, runner)
            scheduler.start()
            logger.info("scheduler started jobs=%s", [job.id for job in scheduler.get_jobs()])
        yield
        if scheduler is not None:
            scheduler.shutdown(wait=False)

    app = FastAPI(title="Marketpay Scheduler", lifespan=lifespan)

    @app.post("/jobs/{name}/run")
    async def trigger_job(name: str):
        """Run a job now and wait for it to finish."""

        if name not in runner.jobs:
            raise HTTPException(status_code=404, detail="unknown job")
        if runner.is_running(name):
            raise HTTPException(status_code=409, detail="job already running")
        result = await runner.run(name)
        return {"job": name, "ok": result is not None}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
