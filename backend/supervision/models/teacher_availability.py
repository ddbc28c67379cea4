from datetime import datetime

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from supervision.db.base import Base


class TeacherAvailability(Base):
    """Capacity ledger row: remaining supervision slots per teacher and semester."""

    __tablename__ = "teacher_availability"
    __table_args__ = (
        UniqueConstraint("teacher_id", "semester_id", name="uq_teacher_availability_teacher_semester"),
        CheckConstraint("max_pre_thesis >= 0", name="ck_teacher_availability_pre_thesis_non_negative"),
        CheckConstraint("max_thesis >= 0", name="ck_teacher_availability_thesis_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    semester_id: Mapped[int] = mapped_column(ForeignKey("semesters.id"), nullable=False, index=True)
    max_pre_thesis: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_thesis: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_open: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
