from datetime import datetime

from pydantic import BaseModel

from supervision.models.notification import EntityKind


class NotificationOut(BaseModel):
    id: int
    user_id: int
    notification_type: str
    title: str
    content: str
    entity_type: EntityKind | None = None
    entity_id: int | None = None
    is_read: bool
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
