from collections.abc import Generator
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from supervision.core.security import decode_token
from supervision.db.session import SessionLocal

security = HTTPBearer()


@dataclass(frozen=True)
class Actor:
    user_id: int
    teacher_id: int | None = None
    student_id: int | None = None


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def _optional_int(payload: dict, key: str) -> int | None:
    value = payload.get(key)
    if value is None:
        return None
    return int(value)


def get_actor(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Actor:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = decode_token(credentials.credentials)
        subject = payload.get("sub")
        if subject is None:
            raise credentials_exception
        return Actor(
            user_id=int(subject),
            teacher_id=_optional_int(payload, "teacher_id"),
            student_id=_optional_int(payload, "student_id"),
        )
    except (JWTError, TypeError, ValueError) as exc:
        raise credentials_exception from exc


def require_teacher(actor: Actor = Depends(get_actor)) -> int:
    if actor.teacher_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Teacher identity required")
    return actor.teacher_id


def require_student(actor: Actor = Depends(get_actor)) -> int:
    if actor.student_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Student identity required")
    return actor.student_id
