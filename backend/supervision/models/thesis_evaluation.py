from datetime import datetime

from sqlalchemy import DateTime, Enum as SAEnum, Float, ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from supervision.db.base import Base
from supervision.models.thesis_assignment import AssignmentRole


class ThesisEvaluation(Base):
    __tablename__ = "thesis_evaluations"
    __table_args__ = (
        UniqueConstraint(
            "thesis_id",
            "evaluator_teacher_id",
            "role",
            name="uq_thesis_evaluations_thesis_evaluator_role",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thesis_id: Mapped[int] = mapped_column(ForeignKey("theses.id"), nullable=False, index=True)
    evaluator_teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False)
    role: Mapped[AssignmentRole] = mapped_column(SAEnum(AssignmentRole, name="thesis_assignment_role"), nullable=False)
    score: Mapped[float] = mapped_column(Float, nullable=False)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())


class ThesisFinalGrade(Base):
    __tablename__ = "thesis_final_grades"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thesis_id: Mapped[int] = mapped_column(ForeignKey("theses.id"), unique=True, nullable=False)
    final_score: Mapped[float] = mapped_column(Float, nullable=False)
    computed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
