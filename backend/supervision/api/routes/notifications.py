from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from supervision.api.deps import Actor, get_actor, get_db
from supervision.schemas.notification import NotificationOut
from supervision.services import notifications

router = APIRouter()


@router.get("/notifications", response_model=list[NotificationOut])
def list_notifications(
    unread_only: bool = Query(default=False),
    limit: int = Query(default=100, ge=1, le=500),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[NotificationOut]:
    return notifications.list_notifications(db, user_id=actor.user_id, unread_only=unread_only, limit=limit)


@router.post("/notifications/{notification_id}/read", response_model=NotificationOut)
def mark_notification_read(
    notification_id: int,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> NotificationOut:
    return notifications.mark_read(db, notification_id, user_id=actor.user_id)
