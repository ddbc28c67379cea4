from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from supervision.db.base import Base


class ProposalStatus(str, Enum):
    submitted = "submitted"
    accepted = "accepted"
    rejected = "rejected"
    cancelled = "cancelled"


class ThesisProposal(Base):
    __tablename__ = "thesis_proposals"
    __table_args__ = (
        Index(
            "uq_thesis_proposals_one_active",
            "student_id",
            "semester_id",
            unique=True,
            sqlite_where=text("status IN ('submitted', 'accepted')"),
            postgresql_where=text("status IN ('submitted', 'accepted')"),
        ),
        Index(
            "uq_thesis_proposals_one_accepted",
            "student_id",
            "semester_id",
            unique=True,
            sqlite_where=text("status = 'accepted'"),
            postgresql_where=text("status = 'accepted'"),
        ),
        Index("ix_thesis_proposals_teacher_semester", "target_teacher_id", "semester_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    target_teacher_id: Mapped[int] = mapped_column(ForeignKey("teachers.id"), nullable=False)
    semester_id: Mapped[int] = mapped_column(ForeignKey("semesters.id"), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    abstract: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[ProposalStatus] = mapped_column(
        SAEnum(ProposalStatus, name="thesis_proposal_status"),
        nullable=False,
        default=ProposalStatus.submitted,
        index=True,
    )
    note: Mapped[str | None] = mapped_column(String(255), nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())
