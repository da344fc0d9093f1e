from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, TIMESTAMP
from clinic_queue.core.base import Base, TimestampedMixin

class GuestSession(Base, TimestampedMixin):
    __tablename__ = "guest_session"

    name: Mapped[str] = mapped_column(String(200))
    student_id: Mapped[str] = mapped_column(String(64), index=True)
    mobile: Mapped[str | None] = mapped_column(String(64), nullable=True)
    session_token: Mapped[str] = mapped_column(String(128), unique=True)
    expires_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), index=True)
