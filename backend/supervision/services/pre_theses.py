from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.clock import utc_now
from supervision.core.config import get_settings
from supervision.core.exceptions import ExclusivityViolationError, UnauthorizedActionError
from supervision.db.transaction import UnitOfWork, transaction
from supervision.models.pre_thesis import PreThesis, PreThesisStatus
from supervision.models.topic import ApplicationStatus, TopicApplication
from supervision.services import capacity
from supervision.services.capacity import CapacityTrack
from supervision.services.lookup import get_or_404, require_participant
from supervision.services.notifications import PreThesisRef, student_user_id, teacher_user_id
from supervision.services.scoring import is_passing, validate_score
from supervision.services.state_machine import PRE_THESIS, TOPIC_APPLICATION


def open_pre_thesis(
    unit: UnitOfWork,
    *,
    student_id: int,
    semester_id: int,
    supervisor_teacher_id: int,
    topic_application_id: int | None,
) -> PreThesis:
    db = unit.db
    existing = db.execute(
        unit.locked(
            select(PreThesis).where(
                PreThesis.student_id == student_id,
                PreThesis.semester_id == semester_id,
                PreThesis.status != PreThesisStatus.cancelled,
            )
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ExclusivityViolationError(
            "Student already has a pre-thesis for this semester",
            code="PRE_THESIS_EXISTS",
            details={"student_id": student_id, "semester_id": semester_id, "pre_thesis_id": existing.id},
        )

    record = PreThesis(
        student_id=student_id,
        semester_id=semester_id,
        supervisor_teacher_id=supervisor_teacher_id,
        topic_application_id=topic_application_id,
        status=PreThesisStatus.in_progress,
    )
    db.add(record)
    db.flush()

    ref = PreThesisRef(record.id)
    unit.notify(
        teacher_user_id(db, supervisor_teacher_id),
        "PRE_THESIS_CREATED",
        "New Pre-Thesis Assigned",
        "A new pre-thesis has been assigned to you for supervision.",
        ref,
    )
    unit.notify(
        student_user_id(db, student_id),
        "PRE_THESIS_CREATED",
        "Pre-Thesis Created",
        "Your pre-thesis has been created and assigned to your supervisor.",
        ref,
    )
    return record


def withdraw_pre_thesis(unit: UnitOfWork, pre_thesis: PreThesis, *, reason: str | None) -> None:
    """Cancel an in-progress pre-thesis together with its accepted application.

    The supervisor's pre-thesis slot is restored exactly once here.
    """
    db = unit.db
    PRE_THESIS.ensure(pre_thesis.status, PreThesisStatus.cancelled)
    pre_thesis.status = PreThesisStatus.cancelled
    if reason:
        pre_thesis.feedback = reason

    if pre_thesis.topic_application_id is not None:
        application = db.get(TopicApplication, pre_thesis.topic_application_id)
        if application is not None and application.status == ApplicationStatus.accepted:
            TOPIC_APPLICATION.ensure(application.status, ApplicationStatus.cancelled)
            application.status = ApplicationStatus.cancelled
            application.note = reason
            application.decided_at = utc_now()

    capacity.release(db, pre_thesis.supervisor_teacher_id, pre_thesis.semester_id, CapacityTrack.pre_thesis)
    db.flush()

    unit.notify(
        student_user_id(db, pre_thesis.student_id),
        "PRE_THESIS_CANCELLED",
        "Pre-Thesis Cancelled",
        f"Your pre-thesis has been cancelled.{f' Reason: {reason}' if reason else ''}",
        PreThesisRef(pre_thesis.id),
    )


def get_pre_thesis(db: Session, pre_thesis_id: int) -> PreThesis:
    return get_or_404(db, PreThesis, pre_thesis_id, "Pre-thesis")


def list_pre_theses(
    db: Session,
    *,
    semester_id: int | None = None,
    student_id: int | None = None,
    supervisor_teacher_id: int | None = None,
    status: PreThesisStatus | None = None,
) -> list[PreThesis]:
    query = select(PreThesis)
    if semester_id is not None:
        query = query.where(PreThesis.semester_id == semester_id)
    if student_id is not None:
        query = query.where(PreThesis.student_id == student_id)
    if supervisor_teacher_id is not None:
        query = query.where(PreThesis.supervisor_teacher_id == supervisor_teacher_id)
    if status is not None:
        query = query.where(PreThesis.status == status)
    return list(db.execute(query.order_by(PreThesis.id)).scalars())


def list_completed_pre_theses(
    db: Session,
    *,
    semester_id: int | None = None,
    minimum_score: float | None = None,
) -> list[PreThesis]:
    """Completed pre-theses scoring at least ``minimum_score``.

    The threshold defaults to the configured passing score.
    """
    threshold = get_settings().passing_score if minimum_score is None else float(minimum_score)
    query = select(PreThesis).where(
        PreThesis.status == PreThesisStatus.completed,
        PreThesis.final_score.is_not(None),
        PreThesis.final_score >= threshold,
    )
    if semester_id is not None:
        query = query.where(PreThesis.semester_id == semester_id)
    return list(db.execute(query.order_by(PreThesis.id)).scalars())


def grade_pre_thesis(
    db: Session,
    pre_thesis_id: int,
    *,
    teacher_id: int,
    score,
    feedback: str | None = None,
) -> PreThesis:
    """Record the supervisor's score; a passing score completes the pre-thesis.

    A failing score keeps the record in progress so that it can be graded
    again after resubmission.
    """
    value = validate_score(score)
    with transaction(db, "pre_thesis.grade") as unit:
        pre_thesis = get_or_404(db, PreThesis, pre_thesis_id, "Pre-thesis", for_update=True)
        if pre_thesis.supervisor_teacher_id != teacher_id:
            raise UnauthorizedActionError(
                "Only the supervisor can grade this pre-thesis",
                code="NOT_SUPERVISOR",
                details={"pre_thesis_id": pre_thesis_id, "teacher_id": teacher_id},
            )
        PRE_THESIS.ensure(pre_thesis.status, PreThesisStatus.completed)

        pre_thesis.final_score = value
        if feedback is not None:
            pre_thesis.feedback = feedback
        passed = is_passing(value)
        if passed:
            pre_thesis.status = PreThesisStatus.completed
        db.flush()

        unit.notify(
            student_user_id(db, pre_thesis.student_id),
            "PRE_THESIS_GRADED",
            "Pre-Thesis Graded",
            f"Your pre-thesis has been graded with a final score of {value:g}."
            + ("" if passed else " The score is below the passing threshold; please resubmit."),
            PreThesisRef(pre_thesis.id),
        )
    return pre_thesis


def cancel_pre_thesis(
    db: Session,
    pre_thesis_id: int,
    *,
    student_id: int | None = None,
    teacher_id: int | None = None,
    reason: str | None = None,
) -> PreThesis:
    with transaction(db, "pre_thesis.cancel") as unit:
        pre_thesis = get_or_404(db, PreThesis, pre_thesis_id, "Pre-thesis", for_update=True)
        require_participant(pre_thesis, "Pre-thesis", student_id=student_id, teacher_id=teacher_id)
        withdraw_pre_thesis(unit, pre_thesis, reason=reason)
    return pre_thesis
