"""Server-side web sessions backing the session cookie."""

from datetime import datetime
from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from curio_market.db.base import Base, JSONB, UTCDateTime, utcnow


class WebSession(Base):
    __tablename__ = "sessions"

    sid: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    data: Mapped[dict] = mapped_column(JSONB, default=dict)
    # OIDC "state" parameter between login and callback
    auth_state: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    expire: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=utcnow)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expire <= (now or utcnow())
