from __future__ import annotations

from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.exceptions import InvalidTransitionError, ResourceNotFoundError, UnauthorizedActionError
from supervision.models.semester import Semester

ModelT = TypeVar("ModelT")


def get_or_404(
    db: Session,
    model: type[ModelT],
    record_id: int,
    label: str,
    *,
    for_update: bool = False,
) -> ModelT:
    if for_update:
        record = db.execute(
            select(model).where(model.id == record_id).with_for_update()
        ).scalar_one_or_none()
    else:
        record = db.get(model, record_id)
    if record is None:
        raise ResourceNotFoundError(label, record_id)
    return record


def require_active_semester(db: Session, semester_id: int) -> Semester:
    semester = get_or_404(db, Semester, semester_id, "Semester")
    if not semester.is_active:
        raise InvalidTransitionError(
            f"Semester {semester.code} is not open for new requests",
            code="SEMESTER_INACTIVE",
            details={"semester_id": semester_id},
        )
    return semester


def require_supervisor(record, teacher_id: int | None, label: str) -> None:
    if teacher_id is None or record.supervisor_teacher_id != teacher_id:
        raise UnauthorizedActionError(
            f"Only the supervising teacher can change this {label.lower()}",
            code="NOT_SUPERVISOR",
            details={"record_id": record.id, "teacher_id": teacher_id},
        )


def require_participant(record, label: str, *, student_id: int | None, teacher_id: int | None) -> None:
    """Allow the record's own student or its supervising teacher."""
    if student_id is not None and record.student_id == student_id:
        return
    if teacher_id is not None and record.supervisor_teacher_id == teacher_id:
        return
    raise UnauthorizedActionError(
        f"Only the student or the supervising teacher can change this {label.lower()}",
        code="NOT_PARTICIPANT",
        details={"record_id": record.id, "student_id": student_id, "teacher_id": teacher_id},
    )
