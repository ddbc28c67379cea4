from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.clock import as_utc, utc_now
from supervision.core.exceptions import ConflictError, InvalidTransitionError, WorkflowValidationError
from supervision.db.transaction import UnitOfWork, transaction
from supervision.models.defense_session import DefenseSession, DefenseSessionStatus
from supervision.models.thesis import Thesis, ThesisStatus
from supervision.models.thesis_assignment import ThesisAssignment
from supervision.services.lookup import get_or_404, require_supervisor
from supervision.services.notifications import DefenseSessionRef, student_user_id, teacher_user_id
from supervision.services.state_machine import DEFENSE_SESSION, THESIS


def parse_scheduled_at(value: datetime | str | None) -> datetime:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str) and value.strip():
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        try:
            return as_utc(datetime.fromisoformat(raw))
        except ValueError:
            pass
    raise WorkflowValidationError(
        "Defense date must be an ISO 8601 date and time",
        code="INVALID_DATE_FORMAT",
        details={"scheduled_at": None if value is None else str(value)},
    )


def _require_future(scheduled_at: datetime) -> None:
    if scheduled_at <= utc_now():
        raise WorkflowValidationError(
            "Defense date must be in the future",
            code="PAST_DATE",
            details={"scheduled_at": scheduled_at.isoformat()},
        )


def _format_slot(session: DefenseSession) -> str:
    when = as_utc(session.scheduled_at).strftime("%Y-%m-%d %H:%M UTC")
    return f"{when} in room {session.room}" if session.room else when


def _notify_participants(
    unit: UnitOfWork,
    thesis: Thesis,
    session: DefenseSession,
    notification_type: str,
    title: str,
    content: str,
    *,
    include_student: bool = True,
) -> None:
    db = unit.db
    ref = DefenseSessionRef(session.id)
    if include_student:
        unit.notify(student_user_id(db, thesis.student_id), notification_type, title, content, ref)
    teacher_ids = db.execute(
        select(ThesisAssignment.teacher_id)
        .where(ThesisAssignment.thesis_id == thesis.id, ThesisAssignment.active.is_(True))
        .distinct()
    ).scalars().all()
    for teacher_id in teacher_ids:
        unit.notify(teacher_user_id(db, teacher_id), notification_type, title, content, ref)


def schedule_defense_session(
    db: Session,
    thesis_id: int,
    *,
    teacher_id: int | None,
    scheduled_at: datetime | str,
    room: str | None = None,
    notes: str | None = None,
) -> DefenseSession:
    when = parse_scheduled_at(scheduled_at)
    _require_future(when)
    with transaction(db, "defense_session.schedule") as unit:
        thesis = get_or_404(db, Thesis, thesis_id, "Thesis", for_update=True)
        require_supervisor(thesis, teacher_id, "Thesis")
        existing = db.execute(
            select(DefenseSession).where(DefenseSession.thesis_id == thesis_id)
        ).scalar_one_or_none()
        if existing is not None:
            raise ConflictError(
                "A defense session already exists for this thesis",
                code="SESSION_EXISTS",
                details={"thesis_id": thesis_id, "session_id": existing.id, "status": existing.status.value},
                retryable=False,
            )
        if thesis.status != ThesisStatus.in_progress:
            raise InvalidTransitionError(
                "Defense can only be scheduled for a thesis in progress",
                code="INVALID_THESIS_STATUS",
                details={"thesis_id": thesis_id, "status": thesis.status.value},
            )

        session = DefenseSession(
            thesis_id=thesis_id,
            scheduled_at=when,
            room=room,
            notes=notes,
            status=DefenseSessionStatus.scheduled,
        )
        db.add(session)
        THESIS.ensure(thesis.status, ThesisStatus.defense_scheduled)
        thesis.status = ThesisStatus.defense_scheduled
        db.flush()

        _notify_participants(
            unit,
            thesis,
            session,
            "DEFENSE_SCHEDULED",
            "Defense Scheduled",
            f'The defense of "{thesis.title}" is scheduled for {_format_slot(session)}.',
        )
    return session


def reschedule_defense_session(
    db: Session,
    session_id: int,
    *,
    teacher_id: int | None,
    scheduled_at: datetime | str,
    room: str | None = None,
    notes: str | None = None,
) -> DefenseSession:
    when = parse_scheduled_at(scheduled_at)
    _require_future(when)
    with transaction(db, "defense_session.reschedule") as unit:
        session = get_or_404(db, DefenseSession, session_id, "Defense session", for_update=True)
        thesis = get_or_404(db, Thesis, session.thesis_id, "Thesis")
        require_supervisor(thesis, teacher_id, "Defense session")
        if session.status != DefenseSessionStatus.scheduled:
            raise InvalidTransitionError(
                f"Defense session is {session.status.value} and cannot be rescheduled",
                code="SESSION_NOT_SCHEDULED",
                details={"session_id": session_id, "status": session.status.value},
            )
        session.scheduled_at = when
        if room is not None:
            session.room = room
        if notes is not None:
            session.notes = notes
        db.flush()

        _notify_participants(
            unit,
            thesis,
            session,
            "DEFENSE_RESCHEDULED",
            "Defense Rescheduled",
            f'The defense of "{thesis.title}" has been moved to {_format_slot(session)}.',
        )
    return session


def complete_defense_session(db: Session, session_id: int, *, teacher_id: int | None) -> DefenseSession:
    with transaction(db, "defense_session.complete") as unit:
        session = get_or_404(db, DefenseSession, session_id, "Defense session", for_update=True)
        thesis = get_or_404(db, Thesis, session.thesis_id, "Thesis", for_update=True)
        require_supervisor(thesis, teacher_id, "Defense session")
        DEFENSE_SESSION.ensure(session.status, DefenseSessionStatus.completed)
        THESIS.ensure(thesis.status, ThesisStatus.defense_completed, code="INVALID_THESIS_STATUS")
        session.status = DefenseSessionStatus.completed
        thesis.status = ThesisStatus.defense_completed
        db.flush()

        _notify_participants(
            unit,
            thesis,
            session,
            "DEFENSE_COMPLETED",
            "Evaluation Open",
            f'The defense of "{thesis.title}" is complete; please submit your evaluation.',
            include_student=False,
        )
    return session


def get_defense_session(db: Session, session_id: int) -> DefenseSession:
    return get_or_404(db, DefenseSession, session_id, "Defense session")


def list_upcoming_sessions(
    db: Session,
    *,
    semester_id: int | None = None,
    now: datetime | None = None,
) -> list[DefenseSession]:
    query = select(DefenseSession).where(
        DefenseSession.status == DefenseSessionStatus.scheduled,
        DefenseSession.scheduled_at >= (as_utc(now) if now else utc_now()),
    )
    if semester_id is not None:
        query = query.join(Thesis, Thesis.id == DefenseSession.thesis_id).where(Thesis.semester_id == semester_id)
    return list(db.execute(query.order_by(DefenseSession.scheduled_at, DefenseSession.id)).scalars())
