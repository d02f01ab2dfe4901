"""Notification outbox: intents are appended in business transactions and
drained here, best-effort, so delivery failures never touch settlement."""

import asyncio

from sqlalchemy.orm import sessionmaker

from marketpay.common.logging import logger
from marketpay.common.metrics import emails_total
from marketpay.common.outbox import (
    claim_outbox_batch,
    mark_outbox_sent,
    requeue_outbox_event,
    update_outbox_backlog_metrics,
)
from marketpay.services.notification.mailer import EmailMessage, Mailer
from marketpay.services.notification.models import NotificationOutbox
from marketpay.services.notification.templates import render


def enqueue_notification(db, kind: str, recipient: str, payload: dict) -> NotificationOutbox:
    """Stage one email intent on the caller's session."""

    intent = NotificationOutbox(kind=kind, recipient=recipient, payload=payload)
    db.add(intent)
    return intent


class NotificationService:
    """Claims pending intents, renders them, and hands them to the mailer."""

    def __init__(
        self,
        session_factory: sessionmaker,
        mailer: Mailer,
        batch_size: int = 50,
        max_attempts: int = 5,
        poll_seconds: float = 2.0,
        service_name: str = "notification",
    ) -> None:
        self.session_factory = session_factory
        self.mailer = mailer
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.poll_seconds = poll_seconds
        self.service_name = service_name

    async def drain_once(self) -> int:
        """Deliver one claimed batch; return how many were sent."""

        with self.session_factory() as db:
            rows = claim_outbox_batch(db, NotificationOutbox, limit=self.batch_size)
            update_outbox_backlog_metrics(db, NotificationOutbox, self.service_name)
            db.commit()
        sent = 0
        for row in rows:
            try:
                subject, body = render(row["kind"], row["payload"] or {})
                await self.mailer.send(EmailMessage(to=row["recipient"], subject=subject, html=body))
            except Exception as exc:
                logger.warning("notification delivery failed id=%s kind=%s error=%s", row["id"], row["kind"], exc)
                emails_total.labels(kind=row["kind"], result="failed").inc()
                with self.session_factory() as db:
                    status = requeue_outbox_event(
                        db,
                        NotificationOutbox,
                        row["id"],
                        attempts=row["attempts"] + 1,
                        error=str(exc),
                        max_attempts=self.max_attempts,
                    )
                    db.commit()
                if status == "FAILED":
                    logger.error("notification parked id=%s kind=%s", row["id"], row["kind"])
                continue
            with self.session_factory() as db:
                mark_outbox_sent(db, NotificationOutbox, row["id"])
                db.commit()
            emails_total.labels(kind=row["kind"], result="sent").inc()
            sent += 1
        if rows:
            with self.session_factory() as db:
                update_outbox_backlog_metrics(db, NotificationOutbox, self.service_name)
        return sent

    async def run_forever(self) -> None:
        """Continuously drain the outbox."""

        while True:
            try:
                await self.drain_once()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("notification drain loop error: %s", exc)
            await asyncio.sleep(self.poll_seconds)
