from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
import logging
from typing import ClassVar, Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.config import get_settings
from supervision.core.exceptions import ResourceNotFoundError
from supervision.models.notification import EntityKind, Notification
from supervision.models.reference import Student, Teacher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TopicRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.topic


@dataclass(frozen=True)
class TopicApplicationRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.topic_application


@dataclass(frozen=True)
class PreThesisRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.pre_thesis


@dataclass(frozen=True)
class ProposalRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.thesis_proposal


@dataclass(frozen=True)
class RegistrationRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.thesis_registration


@dataclass(frozen=True)
class ThesisRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.thesis


@dataclass(frozen=True)
class DefenseSessionRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.defense_session


@dataclass(frozen=True)
class EvaluationRef:
    id: int
    kind: ClassVar[EntityKind] = EntityKind.thesis_evaluation


EntityRef = (
    TopicRef
    | TopicApplicationRef
    | PreThesisRef
    | ProposalRef
    | RegistrationRef
    | ThesisRef
    | DefenseSessionRef
    | EvaluationRef
)

REF_TYPES: dict[EntityKind, type] = {
    ref_type.kind: ref_type
    for ref_type in (
        TopicRef,
        TopicApplicationRef,
        PreThesisRef,
        ProposalRef,
        RegistrationRef,
        ThesisRef,
        DefenseSessionRef,
        EvaluationRef,
    )
}


def entity_columns(ref: EntityRef | None) -> tuple[EntityKind | None, int | None]:
    if ref is None:
        return None, None
    if type(ref) not in REF_TYPES.values():
        raise TypeError(f"Unsupported entity reference {ref!r}")
    return ref.kind, ref.id


def entity_ref(kind: EntityKind | str | None, entity_id: int | None) -> EntityRef | None:
    """Rebuild a typed reference from stored notification columns."""
    if kind is None or entity_id is None:
        return None
    return REF_TYPES[EntityKind(kind)](entity_id)


@dataclass(frozen=True)
class Notice:
    user_id: int
    notification_type: str
    title: str
    content: str
    entity_ref: EntityRef | None = None


class Notifier(Protocol):
    def notify(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        content: str,
        entity_ref: EntityRef | None,
    ) -> None: ...


def create_notification(
    db: Session,
    *,
    user_id: int,
    notification_type: str,
    title: str,
    content: str,
    entity_ref: EntityRef | None = None,
) -> Notification:
    entity_type, entity_id = entity_columns(entity_ref)
    record = Notification(
        user_id=user_id,
        notification_type=notification_type,
        title=title,
        content=content,
        entity_type=entity_type,
        entity_id=entity_id,
    )
    db.add(record)
    db.flush()
    return record


class PersistentNotifier:
    """Stores notifications as rows; each one commits on its own."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def notify(
        self,
        user_id: int,
        notification_type: str,
        title: str,
        content: str,
        entity_ref: EntityRef | None,
    ) -> None:
        try:
            create_notification(
                self.db,
                user_id=user_id,
                notification_type=notification_type,
                title=title,
                content=content,
                entity_ref=entity_ref,
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise


NotifierFactory = Callable[[Session], Notifier]

_notifier_factory: NotifierFactory = PersistentNotifier


def set_notifier_factory(factory: NotifierFactory | None) -> None:
    global _notifier_factory
    _notifier_factory = factory or PersistentNotifier


def deliver_notices(db: Session, notices: list[Notice]) -> int:
    """Fire-and-forget delivery after commit. Returns the number delivered."""
    if not notices or not get_settings().notifications_enabled:
        return 0
    try:
        notifier = _notifier_factory(db)
    except Exception:
        logger.warning("Unable to build notifier; dropping %d notice(s)", len(notices), exc_info=True)
        return 0

    delivered = 0
    for notice in notices:
        try:
            notifier.notify(
                notice.user_id,
                notice.notification_type,
                notice.title,
                notice.content,
                notice.entity_ref,
            )
            delivered += 1
        except Exception:
            logger.warning(
                "Notification %s delivery failed for user %s",
                notice.notification_type,
                notice.user_id,
                exc_info=True,
            )
    return delivered


def teacher_user_id(db: Session, teacher_id: int | None) -> int | None:
    if teacher_id is None:
        return None
    return db.execute(select(Teacher.user_id).where(Teacher.id == teacher_id)).scalar_one_or_none()


def student_user_id(db: Session, student_id: int | None) -> int | None:
    if student_id is None:
        return None
    return db.execute(select(Student.user_id).where(Student.id == student_id)).scalar_one_or_none()


def list_notifications(
    db: Session,
    *,
    user_id: int,
    unread_only: bool = False,
    limit: int = 100,
) -> list[Notification]:
    query = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
    )
    if unread_only:
        query = query.where(Notification.is_read.is_(False))
    return list(db.execute(query.limit(limit)).scalars())


def mark_read(db: Session, notification_id: int, *, user_id: int) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise ResourceNotFoundError("Notification", notification_id)
    notification.is_read = True
    db.commit()
    db.refresh(notification)
    return notification
