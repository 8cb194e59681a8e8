from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import JSON, BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from blogdata.database import Base


# ---------------------------------------------------------------------------
# RateLimitRecord
# ---------------------------------------------------------------------------
class RateLimitRecord(Base):
    """Persisted sliding-window state, one row per ``rate_limit_<name>`` key."""

    __tablename__ = "rate_limit_state"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    requests: Mapped[List[int]] = mapped_column(JSON, nullable=False, default=list)
    blocked_until: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=True
    )
