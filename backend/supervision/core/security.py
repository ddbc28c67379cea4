from datetime import datetime, timedelta, timezone

from jose import jwt

from supervision.core.config import get_settings


def decode_token(token: str) -> dict:
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def create_access_token(
    subject: str,
    *,
    teacher_id: int | None = None,
    student_id: int | None = None,
    expires_minutes: int = 60,
) -> str:
    """Sign an actor token. Tokens are normally issued by the identity service."""
    settings = get_settings()
    payload: dict = {
        "sub": subject,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    if teacher_id is not None:
        payload["teacher_id"] = teacher_id
    if student_id is not None:
        payload["student_id"] = student_id
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)
