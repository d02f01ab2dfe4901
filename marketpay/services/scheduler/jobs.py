"""Scheduled job registry and the top-level guard every run goes through."""

import time
import traceback
from collections.abc import Awaitable, Callable

from sqlalchemy.orm import sessionmaker

from marketpay.common.context import SettlementContext
from marketpay.common.logging import job_name_ctx, logger
from marketpay.common.metrics import job_duration_seconds, job_runs_total
from marketpay.common.tracing import tracer
from marketpay.services.lifecycle.service import ExpirationNotifier, ExpirationSweeper
from marketpay.services.payouts.service import PayoutBatchProcessor
from marketpay.services.scheduler.models import SystemErrorLog

CLEANUP_JOB = "cleanup_expired_products"
WARNING_JOB = "expiration_warnings"
PAYOUT_JOB = "weekly_payouts"


async def run_job(name: str, session_factory: sessionmaker, job: Callable[[], Awaitable]):
    """Run one job to completion; failures are logged and persisted, never raised.

    Returns the job result, or None when it failed.
    """

    token = job_name_ctx.set(name)
    started = time.perf_counter()
    try:
        with tracer.start_as_current_span(f"job.{name}"):
            logger.info("job started job=%s", name)
            result = await job()
        job_runs_total.labels(job=name, result="success").inc()
        logger.info("job finished job=%s seconds=%.3f", name, time.perf_counter() - started)
        return result
    except Exception as exc:
        job_runs_total.labels(job=name, result="error").inc()
        logger.exception("job failed job=%s error=%s", name, exc)
        try:
            with session_factory() as db:
                db.add(
                    SystemErrorLog(
                        job_name=name,
                        message=str(exc)[:1000] or type(exc).__name__,
                        stack=traceback.format_exc(),
                    )
                )
                db.commit()
        except Exception as log_exc:
            logger.error("system error log write failed job=%s error=%s", name, log_exc)
        return None
    finally:
        job_duration_seconds.labels(job=name).observe(time.perf_counter() - started)
        job_name_ctx.reset(token)


def job_table(context: SettlementContext) -> dict[str, Callable[[], Awaitable]]:
    """Zero-argument coroutine factories for each scheduled job."""

    return {
        CLEANUP_JOB: lambda: ExpirationSweeper(context).run(),
        WARNING_JOB: lambda: ExpirationNotifier(context).run(),
        PAYOUT_JOB: lambda: PayoutBatchProcessor(context).run(),
    }
