from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Text, Integer, Boolean, JSON, Index, text
from clinic_queue.core.base import Base, TimestampedMixin

WAITING = "waiting"
IN_PROGRESS = "in-progress"
COMPLETED = "completed"
ABANDONED = "abandoned"  # stale active visit superseded by a re-check-in

ACTIVE_STATUSES = (WAITING, IN_PROGRESS)
QUEUE_STATUSES = (WAITING, IN_PROGRESS, COMPLETED, ABANDONED)

PRIORITIES = ("low", "medium", "high", "emergency")

_ACTIVE_PREDICATE = text("queue_status IN ('waiting', 'in-progress')")

class Visit(Base, TimestampedMixin):
    # Identity
    user_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    student_id: Mapped[str] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(200))
    mobile: Mapped[str | None] = mapped_column(String(64), nullable=True)
    class_name: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # Clinical
    symptoms: Mapped[list] = mapped_column(JSON)
    emergency_flag: Mapped[bool] = mapped_column(Boolean, default=False)

    # Queue
    priority: Mapped[str] = mapped_column(String(16), default="low")  # low, medium, high, emergency
    queue_status: Mapped[str] = mapped_column(String(16), default=WAITING)  # waiting, in-progress, completed, abandoned
    estimated_wait_time: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_nurse: Mapped[str | None] = mapped_column(String(64), nullable=True)
    assigned_nurse_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_visit_status_created", "queue_status", "created_at"),
        Index("ix_visit_student_created", "student_id", "created_at"),
        Index("ix_visit_nurse_status", "assigned_nurse", "queue_status"),
        # one active visit per identity; closes the double-submit race at check-in
        Index(
            "uq_visit_active_student",
            "student_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
    )
