"""Order, access audit, and inbox dedupe models."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from marketpay.common.clock import utcnow
from marketpay.common.db import Base


class Order(Base):
    """A completed purchase. Survives listing purges only via its ledger lines."""

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    product_id: Mapped[str] = mapped_column(String, index=True)
    product_title: Mapped[str] = mapped_column(String)
    seller_id: Mapped[str] = mapped_column(String, index=True)
    buyer_email: Mapped[str] = mapped_column(String)
    payment_session_id: Mapped[str] = mapped_column(String, unique=True)
    external_session_id: Mapped[str | None] = mapped_column(String, nullable=True)
    payment_intent_id: Mapped[str | None] = mapped_column(String, nullable=True)
    channel: Mapped[str] = mapped_column(String)
    gross_cents: Mapped[int] = mapped_column(Integer)
    channel_fee_cents: Mapped[int] = mapped_column(Integer)
    commission_cents: Mapped[int] = mapped_column(Integer)
    net_cents: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String, default="completed", index=True)
    access_token: Mapped[str] = mapped_column(String, unique=True, index=True)
    device_browser: Mapped[str | None] = mapped_column(String, nullable=True)
    device_os: Mapped[str | None] = mapped_column(String, nullable=True)
    device_bound_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    delivered_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class AccessLog(Base):
    """Successful content access."""

    __tablename__ = "access_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[str] = mapped_column(String, index=True)
    product_id: Mapped[str] = mapped_column(String)
    buyer_email: Mapped[str] = mapped_column(String)
    browser: Mapped[str] = mapped_column(String)
    os: Mapped[str] = mapped_column(String)
    device: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class AccessAttempt(Base):
    """Refused access from a device other than the bound one."""

    __tablename__ = "access_attempts"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    order_id: Mapped[str] = mapped_column(String, index=True)
    bound_browser: Mapped[str | None] = mapped_column(String, nullable=True)
    bound_os: Mapped[str | None] = mapped_column(String, nullable=True)
    attempt_browser: Mapped[str] = mapped_column(String)
    attempt_os: Mapped[str] = mapped_column(String)
    allowed: Mapped[bool] = mapped_column(Boolean, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class InboxEvent(Base):
    """Deduplication rows for consumed payment-provider events."""

    __tablename__ = "inbox_events"
    __table_args__ = (UniqueConstraint("event_id", "consumed_by_service", name="uq_inbox_consumer"),)

    event_id: Mapped[str] = mapped_column(String, primary_key=True)
    consumed_by_service: Mapped[str] = mapped_column(String, primary_key=True)
    consumed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
