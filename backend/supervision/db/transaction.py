"""Atomic units of work for workflow mutations.

Every workflow operation that reads an invariant across several rows or
writes more than one row runs inside :func:`transaction`. Notices queued on
the unit are delivered only after the commit succeeded.
"""
from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
import logging

from sqlalchemy import Select, text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from supervision.core.config import get_settings
from supervision.core.exceptions import AppError, ConflictError
from supervision.services.notifications import EntityRef, Notice, deliver_notices

logger = logging.getLogger(__name__)

_UNIT_KEY = "supervision.unit_of_work"
_LOCK_MARKERS = ("lock", "deadlock", "could not serialize", "55p03", "40001", "40p01")


class UnitOfWork:
    def __init__(self, db: Session, label: str) -> None:
        self.db = db
        self.label = label
        self._notices: list[Notice] = []

    @property
    def notices(self) -> list[Notice]:
        return list(self._notices)

    def notify(
        self,
        user_id: int | None,
        notification_type: str,
        title: str,
        content: str,
        entity_ref: EntityRef | None = None,
    ) -> None:
        if user_id is None:
            return
        self._notices.append(
            Notice(
                user_id=user_id,
                notification_type=notification_type,
                title=title,
                content=content,
                entity_ref=entity_ref,
            )
        )

    def locked(self, statement: Select) -> Select:
        return statement.with_for_update()


def current_unit(db: Session) -> UnitOfWork | None:
    return db.info.get(_UNIT_KEY)


def _apply_lock_timeout(db: Session) -> None:
    bind = db.get_bind()
    if bind.dialect.name != "postgresql":
        return
    timeout = int(get_settings().lock_timeout_ms)
    db.execute(text(f"SET LOCAL lock_timeout = {timeout}"))


def _is_lock_failure(exc: OperationalError) -> bool:
    origin = exc.orig
    state = str(getattr(origin, "sqlstate", "") or getattr(origin, "pgcode", "") or "").lower()
    message = f"{state} {origin}".lower()
    return any(marker in message for marker in _LOCK_MARKERS)


@contextmanager
def transaction(db: Session, label: str = "workflow") -> Iterator[UnitOfWork]:
    """Run the enclosed block atomically; nested calls join the outer unit."""
    outer = current_unit(db)
    if outer is not None:
        yield outer
        return

    unit = UnitOfWork(db, label)
    db.info[_UNIT_KEY] = unit
    try:
        _apply_lock_timeout(db)
        yield unit
        db.commit()
    except AppError:
        db.rollback()
        raise
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Transaction %s lost a uniqueness race: %s", label, exc.orig)
        raise ConflictError(
            "A concurrent request changed the same records; retry the operation",
            code="CONCURRENT_MUTATION",
            details={"operation": label},
        ) from exc
    except OperationalError as exc:
        db.rollback()
        if _is_lock_failure(exc):
            logger.warning("Transaction %s could not acquire row locks: %s", label, exc.orig)
            raise ConflictError(
                "Records are locked by another request; retry the operation",
                code="LOCK_TIMEOUT",
                details={"operation": label},
            ) from exc
        logger.exception("Transaction %s failed on the store", label)
        raise ConflictError(
            "The data store is unavailable; retry the operation",
            code="STORE_UNAVAILABLE",
            details={"operation": label},
        ) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Transaction %s failed on the store", label)
        raise ConflictError(
            "The data store is unavailable; retry the operation",
            code="STORE_UNAVAILABLE",
            details={"operation": label},
        ) from exc
    except Exception:
        db.rollback()
        raise
    finally:
        db.info.pop(_UNIT_KEY, None)

    deliver_notices(db, unit.notices)
