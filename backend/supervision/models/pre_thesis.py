from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, Float, ForeignKey, Index, Integer, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from supervision.db.base import Base


class PreThesisStatus(str, Enum):
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class PreThesis(Base):
    __tablename__ = "pre_theses"
    __table_args__ = (
        # A cancelled pre-thesis stays as history and does not block a new one.
        Index(
            "uq_pre_theses_live_student_semester",
            "student_id",
            "semester_id",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    semester_id: Mapped[int] = mapped_column(ForeignKey("semesters.id"), nullable=False, index=True)
    topic_application_id: Mapped[int | None] = mapped_column(
        ForeignKey("topic_applications.id"),
        unique=True,
        nullable=True,
    )
    supervisor_teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    status: Mapped[PreThesisStatus] = mapped_column(
        SAEnum(PreThesisStatus, name="pre_thesis_status"),
        nullable=False,
        default=PreThesisStatus.in_progress,
        index=True,
    )
    final_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    feedback: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
