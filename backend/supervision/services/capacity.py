"""Capacity ledger: remaining supervision slots per teacher and semester.

Reservations are a single conditional UPDATE, so two requests racing for
the last slot serialize on the ledger row and only one of them matches.
"""
from __future__ import annotations

from enum import Enum
import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from supervision.core.exceptions import CapacityExhaustedError
from supervision.models.pre_thesis import PreThesis, PreThesisStatus
from supervision.models.teacher_availability import TeacherAvailability
from supervision.models.thesis_proposal import ProposalStatus, ThesisProposal

logger = logging.getLogger(__name__)


class CapacityTrack(str, Enum):
    pre_thesis = "pre_thesis"
    thesis = "thesis"


def _counter(track: CapacityTrack):
    if track == CapacityTrack.pre_thesis:
        return TeacherAvailability.max_pre_thesis
    return TeacherAvailability.max_thesis


def _expire_cached(db: Session, teacher_id: int, semester_id: int, attribute: str) -> None:
    # Bulk UPDATE bypasses the identity map; drop stale counters held by the session.
    for instance in list(db.identity_map.values()):
        if not isinstance(instance, TeacherAvailability):
            continue
        if instance.teacher_id == teacher_id and instance.semester_id == semester_id:
            db.expire(instance, [attribute])


def get_availability(
    db: Session,
    teacher_id: int,
    semester_id: int,
    *,
    for_update: bool = False,
) -> TeacherAvailability | None:
    query = select(TeacherAvailability).where(
        TeacherAvailability.teacher_id == teacher_id,
        TeacherAvailability.semester_id == semester_id,
    )
    if for_update:
        query = query.with_for_update()
    return db.execute(query).scalar_one_or_none()


def remaining(db: Session, teacher_id: int, semester_id: int, track: CapacityTrack) -> int:
    value = db.execute(
        select(_counter(track)).where(
            TeacherAvailability.teacher_id == teacher_id,
            TeacherAvailability.semester_id == semester_id,
        )
    ).scalar_one_or_none()
    return int(value or 0)


def reserve(db: Session, teacher_id: int, semester_id: int, track: CapacityTrack) -> bool:
    counter = _counter(track)
    result = db.execute(
        update(TeacherAvailability)
        .where(
            TeacherAvailability.teacher_id == teacher_id,
            TeacherAvailability.semester_id == semester_id,
            TeacherAvailability.is_open.is_(True),
            counter > 0,
        )
        .values({counter: counter - 1})
        .execution_options(synchronize_session=False)
    )
    _expire_cached(db, teacher_id, semester_id, counter.key)
    return result.rowcount == 1


def reserve_or_raise(db: Session, teacher_id: int, semester_id: int, track: CapacityTrack) -> None:
    if reserve(db, teacher_id, semester_id, track):
        return
    availability = get_availability(db, teacher_id, semester_id)
    if availability is None or not availability.is_open:
        raise CapacityExhaustedError(
            "Teacher is not accepting supervision requests this semester",
            code="LEDGER_CLOSED",
            details={"teacher_id": teacher_id, "semester_id": semester_id, "track": track.value},
        )
    raise CapacityExhaustedError(
        "Teacher has no remaining supervision slots this semester",
        code="CAPACITY_EXHAUSTED",
        details={"teacher_id": teacher_id, "semester_id": semester_id, "track": track.value},
    )


def release(db: Session, teacher_id: int, semester_id: int, track: CapacityTrack) -> None:
    counter = _counter(track)
    result = db.execute(
        update(TeacherAvailability)
        .where(
            TeacherAvailability.teacher_id == teacher_id,
            TeacherAvailability.semester_id == semester_id,
        )
        .values({counter: counter + 1})
        .execution_options(synchronize_session=False)
    )
    _expire_cached(db, teacher_id, semester_id, counter.key)
    if result.rowcount == 0:
        logger.warning(
            "No capacity ledger row for teacher %s in semester %s; %s slot not restored",
            teacher_id,
            semester_id,
            track.value,
        )


def require_open(db: Session, teacher_id: int, semester_id: int) -> TeacherAvailability:
    availability = get_availability(db, teacher_id, semester_id)
    if availability is None or not availability.is_open:
        raise CapacityExhaustedError(
            "Teacher is not available for supervision duties this semester",
            code="LEDGER_CLOSED",
            details={"teacher_id": teacher_id, "semester_id": semester_id},
        )
    return availability


def list_capacity(db: Session, semester_id: int, *, open_only: bool = False) -> list[dict]:
    query = select(TeacherAvailability).where(TeacherAvailability.semester_id == semester_id)
    if open_only:
        query = query.where(TeacherAvailability.is_open.is_(True))
    rows = list(db.execute(query.order_by(TeacherAvailability.teacher_id)).scalars())
    if not rows:
        return []

    teacher_ids = [row.teacher_id for row in rows]
    pre_thesis_counts = dict(
        db.execute(
            select(PreThesis.supervisor_teacher_id, func.count(PreThesis.id))
            .where(
                PreThesis.semester_id == semester_id,
                PreThesis.supervisor_teacher_id.in_(teacher_ids),
                PreThesis.status != PreThesisStatus.cancelled,
            )
            .group_by(PreThesis.supervisor_teacher_id)
        ).all()
    )
    proposal_counts = dict(
        db.execute(
            select(ThesisProposal.target_teacher_id, func.count(ThesisProposal.id))
            .where(
                ThesisProposal.semester_id == semester_id,
                ThesisProposal.target_teacher_id.in_(teacher_ids),
                ThesisProposal.status == ProposalStatus.accepted,
            )
            .group_by(ThesisProposal.target_teacher_id)
        ).all()
    )
    return [
        {
            "teacher_id": row.teacher_id,
            "semester_id": row.semester_id,
            "is_open": row.is_open,
            "remaining_pre_thesis": row.max_pre_thesis,
            "remaining_thesis": row.max_thesis,
            "active_pre_theses": int(pre_thesis_counts.get(row.teacher_id, 0)),
            "accepted_proposals": int(proposal_counts.get(row.teacher_id, 0)),
        }
        for row in rows
    ]
