from datetime import datetime
from enum import Enum

from sqlalchemy import Boolean, DateTime, Enum as SAEnum, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from supervision.db.base import Base


class EntityKind(str, Enum):
    topic = "topic"
    topic_application = "topic_application"
    pre_thesis = "pre_thesis"
    thesis_proposal = "thesis_proposal"
    thesis_registration = "thesis_registration"
    thesis = "thesis"
    defense_session = "defense_session"
    thesis_evaluation = "thesis_evaluation"


class Notification(Base):
    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    notification_type: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    entity_type: Mapped[EntityKind | None] = mapped_column(SAEnum(EntityKind, name="notification_entity_kind"), nullable=True)
    entity_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
