from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, ForeignKey, Integer, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from supervision.db.base import Base


class AssignmentRole(str, Enum):
    supervisor = "supervisor"
    reviewer = "reviewer"
    committee_member = "committee_member"
    chair = "chair"
    secretary = "secretary"
    member = "member"


class ThesisAssignment(Base):
    __tablename__ = "thesis_assignments"
    __table_args__ = (
        UniqueConstraint("thesis_id", "teacher_id", "role", name="uq_thesis_assignments_thesis_teacher_role"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    thesis_id: Mapped[int] = mapped_column(ForeignKey("theses.id"), nullable=False, index=True)
    teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False, index=True)
    role: Mapped[AssignmentRole] = mapped_column(SAEnum(AssignmentRole, name="thesis_assignment_role"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    assigned_by_user_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    removed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
