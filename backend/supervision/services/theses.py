from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.db.transaction import transaction
from supervision.models.defense_session import DefenseSession, DefenseSessionStatus
from supervision.models.thesis import Thesis, ThesisStatus
from supervision.models.thesis_assignment import ThesisAssignment
from supervision.models.thesis_evaluation import ThesisEvaluation, ThesisFinalGrade
from supervision.services import capacity
from supervision.services.capacity import CapacityTrack
from supervision.services.lookup import get_or_404, require_participant, require_supervisor
from supervision.services.notifications import ThesisRef, student_user_id, teacher_user_id
from supervision.services.state_machine import DEFENSE_SESSION, THESIS


@dataclass
class ThesisDetail:
    thesis: Thesis
    assignments: list[ThesisAssignment] = field(default_factory=list)
    defense_session: DefenseSession | None = None
    evaluations: list[ThesisEvaluation] = field(default_factory=list)
    final_grade: ThesisFinalGrade | None = None


def get_thesis(db: Session, thesis_id: int) -> Thesis:
    return get_or_404(db, Thesis, thesis_id, "Thesis")


def list_theses(
    db: Session,
    *,
    semester_id: int | None = None,
    student_id: int | None = None,
    supervisor_teacher_id: int | None = None,
    status: ThesisStatus | None = None,
) -> list[Thesis]:
    query = select(Thesis)
    if semester_id is not None:
        query = query.where(Thesis.semester_id == semester_id)
    if student_id is not None:
        query = query.where(Thesis.student_id == student_id)
    if supervisor_teacher_id is not None:
        query = query.where(Thesis.supervisor_teacher_id == supervisor_teacher_id)
    if status is not None:
        query = query.where(Thesis.status == status)
    return list(db.execute(query.order_by(Thesis.id)).scalars())


def get_thesis_detail(db: Session, thesis_id: int, *, include_inactive: bool = False) -> ThesisDetail:
    thesis = get_thesis(db, thesis_id)
    assignments = select(ThesisAssignment).where(ThesisAssignment.thesis_id == thesis_id)
    if not include_inactive:
        assignments = assignments.where(ThesisAssignment.active.is_(True))
    return ThesisDetail(
        thesis=thesis,
        assignments=list(db.execute(assignments.order_by(ThesisAssignment.id)).scalars()),
        defense_session=db.execute(
            select(DefenseSession).where(DefenseSession.thesis_id == thesis_id)
        ).scalar_one_or_none(),
        evaluations=list(
            db.execute(
                select(ThesisEvaluation)
                .where(ThesisEvaluation.thesis_id == thesis_id)
                .order_by(ThesisEvaluation.id)
            ).scalars()
        ),
        final_grade=db.execute(
            select(ThesisFinalGrade).where(ThesisFinalGrade.thesis_id == thesis_id)
        ).scalar_one_or_none(),
    )


def start_thesis(db: Session, thesis_id: int, *, teacher_id: int) -> Thesis:
    with transaction(db, "thesis.start") as unit:
        thesis = get_or_404(db, Thesis, thesis_id, "Thesis", for_update=True)
        require_supervisor(thesis, teacher_id, "Thesis")
        THESIS.ensure(thesis.status, ThesisStatus.in_progress)
        thesis.status = ThesisStatus.in_progress
        db.flush()
        unit.notify(
            student_user_id(db, thesis.student_id),
            "THESIS_STARTED",
            "Thesis Started",
            f'Your thesis "{thesis.title}" is now in progress.',
            ThesisRef(thesis.id),
        )
    return thesis


def cancel_thesis(
    db: Session,
    thesis_id: int,
    *,
    student_id: int | None = None,
    teacher_id: int | None = None,
    reason: str | None = None,
) -> Thesis:
    """Cancel a thesis that has not finished.

    A scheduled defense session is cancelled with it and the supervisor's
    thesis slot is given back.
    """
    with transaction(db, "thesis.cancel") as unit:
        thesis = get_or_404(db, Thesis, thesis_id, "Thesis", for_update=True)
        require_participant(thesis, "Thesis", student_id=student_id, teacher_id=teacher_id)
        THESIS.ensure(thesis.status, ThesisStatus.cancelled)

        session = db.execute(
            unit.locked(select(DefenseSession).where(DefenseSession.thesis_id == thesis.id))
        ).scalar_one_or_none()
        if session is not None and session.status == DefenseSessionStatus.scheduled:
            DEFENSE_SESSION.ensure(session.status, DefenseSessionStatus.cancelled)
            session.status = DefenseSessionStatus.cancelled

        thesis.status = ThesisStatus.cancelled
        capacity.release(db, thesis.supervisor_teacher_id, thesis.semester_id, CapacityTrack.thesis)
        db.flush()

        content = f'The thesis "{thesis.title}" has been cancelled.'
        if reason:
            content += f" Reason: {reason}"
        unit.notify(
            student_user_id(db, thesis.student_id),
            "THESIS_CANCELLED",
            "Thesis Cancelled",
            content,
            ThesisRef(thesis.id),
        )
        teacher_ids = db.execute(
            select(ThesisAssignment.teacher_id)
            .where(ThesisAssignment.thesis_id == thesis.id, ThesisAssignment.active.is_(True))
            .distinct()
        ).scalars().all()
        for teacher_id in teacher_ids:
            unit.notify(
                teacher_user_id(db, teacher_id),
                "THESIS_CANCELLED",
                "Thesis Cancelled",
                content,
                ThesisRef(thesis.id),
            )
    return thesis
