"""Top-level job failure log."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from marketpay.common.clock import utcnow
from marketpay.common.db import Base


class SystemErrorLog(Base):
    """One row per scheduled job run that raised."""

    __tablename__ = "system_errors"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    job_name: Mapped[str] = mapped_column(String, index=True)
    message: Mapped[str] = mapped_column(String)
    stack: Mapped[str] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
