from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from supervision.db.base import Base


class ThesisStatus(str, Enum):
    draft = "draft"
    in_progress = "in_progress"
    defense_scheduled = "defense_scheduled"
    defense_completed = "defense_completed"
    completed = "completed"
    cancelled = "cancelled"


class Thesis(Base):
    __tablename__ = "theses"
    __table_args__ = (
        UniqueConstraint("student_id", "semester_id", name="uq_theses_student_semester"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    semester_id: Mapped[int] = mapped_column(ForeignKey("semesters.id"), nullable=False, index=True)
    registration_id: Mapped[int | None] = mapped_column(
        ForeignKey("thesis_registrations.id"),
        unique=True,
        nullable=True,
    )
    supervisor_teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    title: Mapped[str | None] = mapped_column(String(255), nullable=True)
    abstract: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ThesisStatus] = mapped_column(
        SAEnum(ThesisStatus, name="thesis_status"),
        nullable=False,
        default=ThesisStatus.in_progress,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
