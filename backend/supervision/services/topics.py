from __future__ import annotations

import logging

from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.orm import Session

from supervision.core.clock import utc_now
from supervision.core.exceptions import (
    CapacityExhaustedError,
    ExclusivityViolationError,
    InvalidTransitionError,
    UnauthorizedActionError,
    WorkflowValidationError,
)
from supervision.db.transaction import UnitOfWork, transaction
from supervision.models.pre_thesis import PreThesis, PreThesisStatus
from supervision.models.semester import Semester
from supervision.models.topic import ApplicationStatus, Topic, TopicApplication, TopicStatus
from supervision.services import capacity
from supervision.services.capacity import CapacityTrack
from supervision.services.lookup import get_or_404, require_active_semester
from supervision.services.notifications import (
    TopicApplicationRef,
    TopicRef,
    student_user_id,
    teacher_user_id,
)
from supervision.services.pre_theses import open_pre_thesis, withdraw_pre_thesis
from supervision.services.state_machine import TOPIC_APPLICATION, Decision

logger = logging.getLogger(__name__)

SUPERSEDED_NOTE = "superseded"


def _require_topic_owner(topic: Topic, teacher_id: int) -> None:
    if topic.teacher_id != teacher_id:
        raise UnauthorizedActionError(
            "Only the teacher who owns this topic can do that",
            code="NOT_TOPIC_OWNER",
            details={"topic_id": topic.id, "teacher_id": teacher_id},
        )


def _validate_max_slots(max_slots: int) -> None:
    if max_slots is None or int(max_slots) < 1:
        raise WorkflowValidationError(
            "Topic must offer at least one slot",
            code="INVALID_MAX_SLOTS",
            details={"max_slots": max_slots},
        )


def _normalize_tags(tags) -> list[str]:
    normalized: list[str] = []
    for tag in tags or []:
        value = (tag or "").strip().lower()
        if value and value not in normalized:
            normalized.append(value)
    return normalized


def accepted_count(db: Session, topic_id: int) -> int:
    return int(
        db.execute(
            select(func.count(TopicApplication.id)).where(
                TopicApplication.topic_id == topic_id,
                TopicApplication.status == ApplicationStatus.accepted,
            )
        ).scalar_one()
    )


def create_topic(
    db: Session,
    *,
    teacher_id: int,
    semester_id: int,
    title: str,
    description: str | None = None,
    requirements: str | None = None,
    max_slots: int = 1,
    tags: list[str] | None = None,
) -> Topic:
    if not title or not title.strip():
        raise WorkflowValidationError("Topic title is required", code="MISSING_TITLE")
    _validate_max_slots(max_slots)
    with transaction(db, "topic.create"):
        get_or_404(db, Semester, semester_id, "Semester")
        topic = Topic(
            teacher_id=teacher_id,
            semester_id=semester_id,
            title=title.strip(),
            description=description,
            requirements=requirements,
            max_slots=int(max_slots),
            tags=_normalize_tags(tags),
            status=TopicStatus.open,
        )
        db.add(topic)
        db.flush()
    return topic


def update_topic(
    db: Session,
    topic_id: int,
    *,
    teacher_id: int,
    title: str | None = None,
    description: str | None = None,
    requirements: str | None = None,
    max_slots: int | None = None,
    tags: list[str] | None = None,
) -> Topic:
    with transaction(db, "topic.update"):
        topic = get_or_404(db, Topic, topic_id, "Topic", for_update=True)
        _require_topic_owner(topic, teacher_id)
        if title is not None:
            if not title.strip():
                raise WorkflowValidationError("Topic title is required", code="MISSING_TITLE")
            topic.title = title.strip()
        if description is not None:
            topic.description = description
        if requirements is not None:
            topic.requirements = requirements
        if max_slots is not None:
            _validate_max_slots(max_slots)
            taken = accepted_count(db, topic.id)
            if int(max_slots) < taken:
                raise WorkflowValidationError(
                    "Topic cannot offer fewer slots than it has accepted students",
                    code="INVALID_MAX_SLOTS",
                    details={"max_slots": max_slots, "accepted": taken},
                )
            topic.max_slots = int(max_slots)
        if tags is not None:
            topic.tags = _normalize_tags(tags)
        db.flush()
    return topic


def set_topic_status(db: Session, topic_id: int, *, teacher_id: int, status: TopicStatus) -> Topic:
    with transaction(db, "topic.status"):
        topic = get_or_404(db, Topic, topic_id, "Topic", for_update=True)
        _require_topic_owner(topic, teacher_id)
        topic.status = TopicStatus(status)
        db.flush()
    return topic


def get_topic(db: Session, topic_id: int) -> Topic:
    return get_or_404(db, Topic, topic_id, "Topic")


def list_topics(
    db: Session,
    *,
    semester_id: int | None = None,
    status: TopicStatus | None = None,
    teacher_id: int | None = None,
) -> list[Topic]:
    query = select(Topic)
    if semester_id is not None:
        query = query.where(Topic.semester_id == semester_id)
    if status is not None:
        query = query.where(Topic.status == status)
    if teacher_id is not None:
        query = query.where(Topic.teacher_id == teacher_id)
    return list(db.execute(query.order_by(Topic.id)).scalars())


def search_topics(
    db: Session,
    text: str | None = None,
    *,
    semester_id: int | None = None,
    tags: list[str] | None = None,
) -> list[Topic]:
    """Case-insensitive match on title, description or tags.

    When ``tags`` is given a topic must carry every one of them.
    """
    query = select(Topic)
    term = (text or "").strip().lower()
    if term:
        query = query.where(
            or_(
                func.lower(Topic.title).contains(term, autoescape=True),
                func.lower(func.coalesce(Topic.description, "")).contains(term, autoescape=True),
                func.lower(cast(Topic.tags, String)).contains(term, autoescape=True),
            )
        )
    if semester_id is not None:
        query = query.where(Topic.semester_id == semester_id)
    topics = list(db.execute(query.order_by(Topic.id)).scalars())
    wanted = _normalize_tags(tags)
    if wanted:
        topics = [topic for topic in topics if set(wanted) <= set(topic.tags or [])]
    return topics


def delete_topic(db: Session, topic_id: int, *, teacher_id: int) -> None:
    with transaction(db, "topic.delete"):
        topic = get_or_404(db, Topic, topic_id, "Topic", for_update=True)
        _require_topic_owner(topic, teacher_id)
        applications = int(
            db.execute(
                select(func.count(TopicApplication.id)).where(TopicApplication.topic_id == topic_id)
            ).scalar_one()
        )
        if applications:
            raise InvalidTransitionError(
                "Topic has applications and cannot be deleted",
                code="TOPIC_HAS_APPLICATIONS",
                details={"topic_id": topic_id, "applications": applications},
            )
        db.delete(topic)
        db.flush()
    logger.info("Topic %s deleted by teacher %s", topic_id, teacher_id)


def _student_applications(unit: UnitOfWork, student_id: int) -> list[TopicApplication]:
    return list(
        unit.db.execute(
            unit.locked(
                select(TopicApplication)
                .where(TopicApplication.student_id == student_id)
                .order_by(TopicApplication.id)
            )
        ).scalars()
    )


def apply_to_topic(
    db: Session,
    topic_id: int,
    *,
    student_id: int,
    semester_id: int,
    proposal_title: str | None = None,
    proposal_abstract: str | None = None,
) -> TopicApplication:
    with transaction(db, "topic_application.apply") as unit:
        require_active_semester(db, semester_id)
        topic = get_or_404(db, Topic, topic_id, "Topic")
        if topic.semester_id != semester_id:
            raise WorkflowValidationError(
                "Topic is not offered in this semester",
                code="TOPIC_SEMESTER_MISMATCH",
                details={"topic_id": topic_id, "semester_id": semester_id},
            )
        if topic.status != TopicStatus.open:
            raise InvalidTransitionError(
                "Topic is not accepting applications",
                code="TOPIC_CLOSED",
                details={"topic_id": topic_id},
            )

        applications = _student_applications(unit, student_id)
        accepted = next((row for row in applications if row.status == ApplicationStatus.accepted), None)
        if accepted is not None:
            raise ExclusivityViolationError(
                "Student already holds an accepted topic application",
                code="APPLICATION_ALREADY_ACCEPTED",
                details={"student_id": student_id, "application_id": accepted.id},
            )
        for row in applications:
            if row.topic_id != topic_id or row.status == ApplicationStatus.cancelled:
                continue
            if row.status == ApplicationStatus.rejected:
                raise InvalidTransitionError(
                    "Application to this topic was already rejected",
                    code="APPLICATION_REJECTED",
                    details={"application_id": row.id},
                )
            raise ExclusivityViolationError(
                "Student already applied to this topic",
                code="APPLICATION_EXISTS",
                details={"application_id": row.id},
            )

        if accepted_count(db, topic.id) >= topic.max_slots:
            raise CapacityExhaustedError(
                "Topic has no free slots",
                code="TOPIC_FULL",
                details={"topic_id": topic.id, "max_slots": topic.max_slots},
            )

        application = TopicApplication(
            topic_id=topic.id,
            student_id=student_id,
            proposal_title=proposal_title,
            proposal_abstract=proposal_abstract,
            status=ApplicationStatus.pending,
        )
        db.add(application)
        db.flush()

        unit.notify(
            teacher_user_id(db, topic.teacher_id),
            "TOPIC_APPLICATION_SUBMITTED",
            "New Topic Application",
            f'A student applied to your topic "{topic.title}".',
            TopicApplicationRef(application.id),
        )
    return application


def _accept_application(unit: UnitOfWork, application: TopicApplication, topic: Topic, note: str | None) -> None:
    db = unit.db
    others = _student_applications(unit, application.student_id)
    holder = next(
        (row for row in others if row.status == ApplicationStatus.accepted and row.id != application.id),
        None,
    )
    if holder is not None:
        raise ExclusivityViolationError(
            "Student already holds an accepted topic application",
            code="APPLICATION_ALREADY_ACCEPTED",
            details={"student_id": application.student_id, "application_id": holder.id},
        )
    if accepted_count(db, topic.id) >= topic.max_slots:
        raise CapacityExhaustedError(
            "Topic has no free slots",
            code="TOPIC_FULL",
            details={"topic_id": topic.id, "max_slots": topic.max_slots},
        )
    existing = db.execute(
        select(PreThesis.id).where(
            PreThesis.student_id == application.student_id,
            PreThesis.semester_id == topic.semester_id,
            PreThesis.status != PreThesisStatus.cancelled,
        )
    ).scalar_one_or_none()
    if existing is not None:
        raise ExclusivityViolationError(
            "Student already has a pre-thesis for this semester",
            code="PRE_THESIS_EXISTS",
            details={"student_id": application.student_id, "pre_thesis_id": existing},
        )

    capacity.reserve_or_raise(db, topic.teacher_id, topic.semester_id, CapacityTrack.pre_thesis)

    now = utc_now()
    application.status = ApplicationStatus.accepted
    application.decided_at = now
    application.note = note
    db.flush()

    open_pre_thesis(
        unit,
        student_id=application.student_id,
        semester_id=topic.semester_id,
        supervisor_teacher_id=topic.teacher_id,
        topic_application_id=application.id,
    )

    superseded = 0
    for row in others:
        if row.id == application.id or row.status != ApplicationStatus.pending:
            continue
        row.status = ApplicationStatus.rejected
        row.decided_at = now
        row.note = SUPERSEDED_NOTE
        superseded += 1
    if superseded:
        logger.info(
            "Application %s accepted; %d pending application(s) of student %s superseded",
            application.id,
            superseded,
            application.student_id,
        )
    db.flush()


def decide_application(
    db: Session,
    application_id: int,
    *,
    teacher_id: int,
    decision: Decision,
    note: str | None = None,
) -> TopicApplication:
    decision = Decision(decision)
    with transaction(db, f"topic_application.{decision.value}") as unit:
        application = get_or_404(db, TopicApplication, application_id, "Topic application", for_update=True)
        topic = get_or_404(db, Topic, application.topic_id, "Topic", for_update=True)
        _require_topic_owner(topic, teacher_id)
        TOPIC_APPLICATION.ensure(application.status, ApplicationStatus(decision.value))

        if decision == Decision.accepted:
            _accept_application(unit, application, topic, note)
            title = "Topic Application Accepted"
            content = f'Your application to "{topic.title}" has been accepted.'
        else:
            application.status = ApplicationStatus.rejected
            application.decided_at = utc_now()
            application.note = note
            db.flush()
            title = "Topic Application Rejected"
            content = f'Your application to "{topic.title}" has been rejected.'
            if note:
                content += f" Reason: {note}"

        unit.notify(
            student_user_id(db, application.student_id),
            f"TOPIC_APPLICATION_{decision.value.upper()}",
            title,
            content,
            TopicApplicationRef(application.id),
        )
    return application


def cancel_application(
    db: Session,
    application_id: int,
    *,
    student_id: int,
    note: str | None = None,
) -> TopicApplication:
    """Withdraw an application; an accepted one also cancels its pre-thesis."""
    with transaction(db, "topic_application.cancel") as unit:
        application = get_or_404(db, TopicApplication, application_id, "Topic application", for_update=True)
        if application.student_id != student_id:
            raise UnauthorizedActionError(
                "Only the applying student can cancel this application",
                code="NOT_APPLICATION_OWNER",
                details={"application_id": application_id, "student_id": student_id},
            )
        TOPIC_APPLICATION.ensure(application.status, ApplicationStatus.cancelled)
        topic = get_or_404(db, Topic, application.topic_id, "Topic")

        if application.status == ApplicationStatus.accepted:
            pre_thesis = db.execute(
                unit.locked(select(PreThesis).where(PreThesis.topic_application_id == application.id))
            ).scalar_one_or_none()
            if pre_thesis is not None and pre_thesis.status == PreThesisStatus.completed:
                raise InvalidTransitionError(
                    "Pre-thesis derived from this application is already completed",
                    code="PRE_THESIS_COMPLETED",
                    details={"application_id": application_id, "pre_thesis_id": pre_thesis.id},
                )
            if pre_thesis is not None and pre_thesis.status == PreThesisStatus.in_progress:
                withdraw_pre_thesis(unit, pre_thesis, reason=note)
            else:
                application.status = ApplicationStatus.cancelled
                application.decided_at = utc_now()
                application.note = note
                capacity.release(db, topic.teacher_id, topic.semester_id, CapacityTrack.pre_thesis)
        else:
            application.status = ApplicationStatus.cancelled
            application.decided_at = utc_now()
            application.note = note
        db.flush()

        unit.notify(
            teacher_user_id(db, topic.teacher_id),
            "TOPIC_APPLICATION_CANCELLED",
            "Topic Application Withdrawn",
            f'A student withdrew their application to "{topic.title}".',
            TopicRef(topic.id),
        )
    return application


def list_applications(
    db: Session,
    *,
    student_id: int | None = None,
    teacher_id: int | None = None,
    topic_id: int | None = None,
    semester_id: int | None = None,
    status: ApplicationStatus | None = None,
) -> list[TopicApplication]:
    query = select(TopicApplication)
    if teacher_id is not None or semester_id is not None:
        query = query.join(Topic, Topic.id == TopicApplication.topic_id)
    if teacher_id is not None:
        query = query.where(Topic.teacher_id == teacher_id)
    if semester_id is not None:
        query = query.where(Topic.semester_id == semester_id)
    if student_id is not None:
        query = query.where(TopicApplication.student_id == student_id)
    if topic_id is not None:
        query = query.where(TopicApplication.topic_id == topic_id)
    if status is not None:
        query = query.where(TopicApplication.status == status)
    return list(db.execute(query.order_by(TopicApplication.id)).scalars())
