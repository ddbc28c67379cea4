import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite://")

from datetime import date, timedelta  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from supervision.api.deps import get_db  # noqa: E402
from supervision.core.clock import utc_now  # noqa: E402
from supervision.core.security import create_access_token  # noqa: E402
from supervision.db.base import Base  # noqa: E402
from supervision.main import app  # noqa: E402
from supervision.models import Semester, Student, Teacher, TeacherAvailability  # noqa: E402
from supervision.services import defense, proposals, registrations, topics  # noqa: E402
from supervision.services.notifications import Notice, set_notifier_factory  # noqa: E402
from supervision.services.state_machine import Decision  # noqa: E402


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Notice] = []

    def notify(self, user_id, notification_type, title, content, entity_ref) -> None:
        self.sent.append(Notice(user_id, notification_type, title, content, entity_ref))


class Seed:
    """Builds reference rows and walks records through the workflow."""

    def __init__(self, db) -> None:
        self.db = db
        self._ids = count(1)

    def _save(self, record):
        self.db.add(record)
        self.db.commit()
        self.db.refresh(record)
        return record

    def semester(self, *, active: bool = True, code: str | None = None) -> Semester:
        number = next(self._ids)
        return self._save(
            Semester(
                code=code or f"S{number}",
                name=f"Semester {number}",
                start_date=date(2026, 9, 1),
                end_date=date(2027, 1, 31),
                is_active=active,
                is_current=active,
            )
        )

    def teacher(self, name: str = "Teacher") -> Teacher:
        number = next(self._ids)
        return self._save(Teacher(user_id=1000 + number, full_name=f"{name} {number}"))

    def student(self, name: str = "Student") -> Student:
        number = next(self._ids)
        return self._save(Student(user_id=2000 + number, full_name=f"{name} {number}"))

    def availability(
        self,
        teacher: Teacher,
        semester: Semester,
        *,
        pre_thesis: int = 2,
        thesis: int = 2,
        is_open: bool = True,
    ) -> TeacherAvailability:
        return self._save(
            TeacherAvailability(
                teacher_id=teacher.id,
                semester_id=semester.id,
                max_pre_thesis=pre_thesis,
                max_thesis=thesis,
                is_open=is_open,
            )
        )

    def topic(self, teacher: Teacher, semester: Semester, *, max_slots: int = 1, title: str = "Topic"):
        return topics.create_topic(
            self.db,
            teacher_id=teacher.id,
            semester_id=semester.id,
            title=title,
            max_slots=max_slots,
        )

    def accepted_proposal(self, teacher: Teacher, student: Student, semester: Semester, *, title: str = "Thesis"):
        proposal = proposals.submit_proposal(
            self.db,
            student_id=student.id,
            teacher_id=teacher.id,
            semester_id=semester.id,
            title=title,
        )
        return proposals.decide_proposal(self.db, proposal.id, teacher_id=teacher.id, decision=Decision.accepted)

    def thesis(self, teacher: Teacher, student: Student, semester: Semester, *, title: str = "Thesis"):
        proposal = self.accepted_proposal(teacher, student, semester, title=title)
        registration = registrations.create_registration(self.db, proposal.id, teacher_id=teacher.id)
        return registrations.approve_registration(self.db, registration.id, approved_by_user_id=1)

    def defended_thesis(self, teacher: Teacher, student: Student, semester: Semester):
        return self.defend(self.thesis(teacher, student, semester))

    def defend(self, thesis):
        session = defense.schedule_defense_session(
            self.db,
            thesis.id,
            teacher_id=thesis.supervisor_teacher_id,
            scheduled_at=utc_now() + timedelta(days=7),
            room="B-101",
        )
        defense.complete_defense_session(self.db, session.id, teacher_id=thesis.supervisor_teacher_id)
        self.db.refresh(thesis)
        return thesis


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def seed(db):
    return Seed(db)


@pytest.fixture()
def notices():
    recorder = RecordingNotifier()
    set_notifier_factory(lambda _db: recorder)
    yield recorder.sent
    set_notifier_factory(None)


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture()
def auth_headers():
    def build(user_id: int, *, teacher_id: int | None = None, student_id: int | None = None) -> dict:
        token = create_access_token(str(user_id), teacher_id=teacher_id, student_id=student_id)
        return {"Authorization": f"Bearer {token}"}

    return build


@pytest.fixture()
def seed_factory():
    return Seed


@pytest.fixture()
def settings_override(monkeypatch):
    from supervision.core.config import get_settings

    def apply(**values) -> None:
        for key, value in values.items():
            monkeypatch.setenv(key.upper(), str(value))
        get_settings.cache_clear()

    yield apply
    monkeypatch.undo()
    get_settings.cache_clear()


@pytest.fixture()
def file_session_factory(tmp_path):
    # Threads need real locking, which an in-memory StaticPool cannot provide.
    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'race.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()
