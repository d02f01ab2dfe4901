"""Cleanup audit rows."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from marketpay.common.clock import utcnow
from marketpay.common.db import Base, JSONType


class CleanupLog(Base):
    __tablename__ = "cleanup_logs"

    id: Mapped[str] = mapped_column(String, primary_key=True, default=lambda: str(uuid4()))
    product_ids: Mapped[list] = mapped_column(JSONType)
    count: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
