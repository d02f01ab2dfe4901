"""Reusable helpers for the notification outbox.

These utilities are model-agnostic so any `*_outbox` table with the standard
columns (`status`, `attempts`, `claimed_at`, `created_at`) can reuse the same
claim/requeue/mark logic.
"""

from datetime import timedelta

from sqlalchemy import func, or_, select, update

from marketpay.common.clock import as_utc, utcnow
from marketpay.common.metrics import outbox_oldest_pending_age_seconds, outbox_pending_total


def claim_outbox_batch(db, outbox_model, limit: int = 100, processing_timeout_seconds: int = 60) -> list[dict]:
    """Claim a batch of pending/stale rows for delivery.

    On Postgres the selection takes row locks with `SKIP LOCKED` so two
    drainers never claim the same intent.
    """

    table = outbox_model.__table__
    now = utcnow()
    stale_before = now - timedelta(seconds=processing_timeout_seconds)
    claim_ids = (
        db.execute(
            select(table.c.id)
            .where(
                or_(
                    table.c.status == "PENDING",
                    (table.c.status == "PROCESSING")
                    & (table.c.claimed_at.is_not(None))
                    & (table.c.claimed_at < stale_before),
                )
            )
            .order_by(table.c.created_at)
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        .scalars()
        .all()
    )
    if not claim_ids:
        return []
    db.execute(update(table).where(table.c.id.in_(claim_ids)).values(status="PROCESSING", claimed_at=now))
    rows = db.execute(
        select(table.c.id, table.c.kind, table.c.recipient, table.c.payload, table.c.attempts)
        .where(table.c.id.in_(claim_ids))
        .order_by(table.c.created_at)
    ).all()
    return [
        {
            "id": row.id,
            "kind": row.kind,
            "recipient": row.recipient,
            "payload": row.payload,
            "attempts": row.attempts,
        }
        for row in rows
    ]


def mark_outbox_sent(db, outbox_model, event_id: str) -> None:
    """Mark one claimed row as delivered."""

    table = outbox_model.__table__
    db.execute(
        update(table)
        .where(table.c.id == event_id, table.c.status == "PROCESSING")
        .values(status="SENT", sent_at=utcnow())
    )


def requeue_outbox_event(db, outbox_model, event_id: str, attempts: int, error: str, max_attempts: int) -> str:
    """Return a claimed row to `PENDING`, or park it as `FAILED` once attempts run out."""

    table = outbox_model.__table__
    status = "FAILED" if attempts >= max_attempts else "PENDING"
    db.execute(
        update(table)
        .where(table.c.id == event_id, table.c.status == "PROCESSING")
        .values(status=status, attempts=attempts, last_error=error[:500], claimed_at=None)
    )
    return status


def update_outbox_backlog_metrics(db, outbox_model, service_name: str) -> None:
    """Update service-level gauges for pending outbox depth and oldest age."""

    table = outbox_model.__table__
    now = utcnow()
    pending_statuses = ("PENDING", "PROCESSING")
    pending_count = (
        db.execute(select(func.count()).select_from(table).where(table.c.status.in_(pending_statuses))).scalar_one()
    )
    oldest_pending = db.execute(
        select(func.min(table.c.created_at)).where(table.c.status.in_(pending_statuses))
    ).scalar_one()
    age_seconds = 0.0
    if oldest_pending is not None:
        age_seconds = max(0.0, (now - as_utc(oldest_pending)).total_seconds())
    outbox_pending_total.labels(service=service_name).set(float(pending_count))
    outbox_oldest_pending_age_seconds.labels(service=service_name).set(age_seconds)
