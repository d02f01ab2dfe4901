"""Payout run bookkeeping: per-run summary and per-user failures."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from marketpay.common.clock import utcnow
from marketpay.common.db import Base


class PayoutSession(Base):
    """One weekly payout run."""

    __tablename__ = "payout_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    status: Mapped[str] = mapped_column(String, default="started")
    processed_users: Mapped[int] = mapped_column(Integer, default=0)
    successful_payouts: Mapped[int] = mapped_column(Integer, default=0)
    failed_payouts: Mapped[int] = mapped_column(Integer, default=0)
    below_minimum_notices: Mapped[int] = mapped_column(Integer, default=0)
    total_amount_cents: Mapped[int] = mapped_column(Integer, default=0)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class PayoutError(Base):
    __tablename__ = "payout_errors"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id: Mapped[str] = mapped_column(String, index=True)
    session_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    amount_cents: Mapped[int] = mapped_column(Integer)
    destination: Mapped[str | None] = mapped_column(String, nullable=True)
    error_type: Mapped[str] = mapped_column(String)
    error_message: Mapped[str] = mapped_column(String)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
