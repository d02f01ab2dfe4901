"""Notification process: drains the outbox for the lifetime of the app."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from marketpay.common.context import SettlementContext
from marketpay.common.metrics import metrics_response
from marketpay.services.notification.service import NotificationService


def create_app(context: SettlementContext, run_drainer: bool = True) -> FastAPI:
    settings = context.settings
    service = NotificationService(
        context.session_factory,
        context.mailer,
        batch_size=settings.outbox_batch_size,
        max_attempts=settings.outbox_max_attempts,
        poll_seconds=settings.outbox_poll_seconds,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Run the outbox drainer with app lifecycle."""

        task = asyncio.create_task(service.run_forever()) if run_drainer else None
        yield
        if task is not None:
            task.cancel()

    app = FastAPI(title="Marketpay Notification", lifespan=lifespan)

    @app.post("/outbox/drain")
    async def drain():
        """Deliver one batch immediately."""

        return {"sent": await service.drain_once()}

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
