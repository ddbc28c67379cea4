from datetime import date

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from supervision.core.exceptions import ConflictError, InvalidTransitionError
from supervision.db.transaction import current_unit, transaction
from supervision.models import (
    ApplicationStatus,
    DefenseSessionStatus,
    PreThesisStatus,
    ProposalStatus,
    RegistrationStatus,
    Semester,
    ThesisProposal,
    ThesisStatus,
)
from supervision.services.notifications import ThesisRef
from supervision.services.state_machine import (
    DEFENSE_SESSION,
    PRE_THESIS,
    THESIS,
    THESIS_PROPOSAL,
    THESIS_REGISTRATION,
    TOPIC_APPLICATION,
)


def semester(code):
    return Semester(code=code, name=code.title(), start_date=date(2027, 2, 1), end_date=date(2027, 6, 30))


def semester_codes(db):
    return list(db.execute(select(Semester.code).order_by(Semester.id)).scalars())


def test_commit_delivers_queued_notices(db, notices):
    with transaction(db, "test.commit") as unit:
        unit.notify(10, "THESIS_STARTED", "Thesis Started", "Go", ThesisRef(1))
        unit.notify(None, "THESIS_STARTED", "Thesis Started", "Nobody")
        assert notices == []

    assert [(notice.user_id, notice.entity_ref) for notice in notices] == [(10, ThesisRef(1))]
    assert current_unit(db) is None


def test_app_error_rolls_back_and_drops_notices(db, seed, notices):
    seed.semester(code="KEEP")

    with pytest.raises(InvalidTransitionError):
        with transaction(db, "test.rollback") as unit:
            db.add(semester("GONE"))
            db.flush()
            unit.notify(10, "THESIS_STARTED", "Thesis Started", "Go")
            raise InvalidTransitionError("nope")

    assert semester_codes(db) == ["KEEP"]
    assert notices == []


def test_nested_transaction_joins_outer_unit(db, notices):
    with pytest.raises(RuntimeError):
        with transaction(db, "outer") as outer:
            with transaction(db, "inner") as inner:
                assert inner is outer
                db.add(semester("INNER"))
                inner.notify(1, "X", "X", "X")
            assert current_unit(db) is outer
            raise RuntimeError("boom")

    assert semester_codes(db) == []
    assert notices == []


def test_uniqueness_race_becomes_retryable_conflict(db, seed):
    semester = seed.semester()
    teacher = seed.teacher()
    student = seed.student()

    with pytest.raises(ConflictError) as exc:
        with transaction(db, "test.duplicate"):
            for title in ("One", "Two"):
                db.add(
                    ThesisProposal(
                        student_id=student.id,
                        target_teacher_id=teacher.id,
                        semester_id=semester.id,
                        title=title,
                        status=ProposalStatus.accepted,
                    )
                )
            db.flush()

    assert exc.value.code == "CONCURRENT_MUTATION"
    assert exc.value.retryable is True
    assert db.execute(select(ThesisProposal)).scalars().all() == []


def test_lock_failures_map_to_lock_timeout(db):
    with pytest.raises(ConflictError) as exc:
        with transaction(db, "test.lock"):
            raise OperationalError("UPDATE teacher_availability", {}, Exception("database is locked"))
    assert exc.value.code == "LOCK_TIMEOUT"
    assert exc.value.details == {"operation": "test.lock"}


def test_store_failures_map_to_unavailable(db):
    with pytest.raises(ConflictError) as operational:
        with transaction(db, "test.io"):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))
    assert operational.value.code == "STORE_UNAVAILABLE"

    with pytest.raises(ConflictError) as generic:
        with transaction(db, "test.generic"):
            raise SQLAlchemyError("connection reset")
    assert generic.value.code == "STORE_UNAVAILABLE"
    assert generic.value.to_payload()["retryable"] is True


@pytest.mark.parametrize(
    "machine, terminal",
    [
        (TOPIC_APPLICATION, [ApplicationStatus.rejected, ApplicationStatus.cancelled]),
        (THESIS_PROPOSAL, [ProposalStatus.rejected, ProposalStatus.cancelled]),
        (
            THESIS_REGISTRATION,
            [RegistrationStatus.approved, RegistrationStatus.rejected, RegistrationStatus.cancelled],
        ),
        (PRE_THESIS, [PreThesisStatus.completed, PreThesisStatus.cancelled]),
        (THESIS, [ThesisStatus.completed, ThesisStatus.cancelled]),
        (DEFENSE_SESSION, [DefenseSessionStatus.completed, DefenseSessionStatus.cancelled]),
    ],
)
def test_terminal_states_have_no_exits(machine, terminal):
    for status in terminal:
        assert machine.is_terminal(status)
        assert machine.targets(status) == frozenset()


def test_ensure_reports_current_and_requested():
    THESIS.ensure(ThesisStatus.in_progress, ThesisStatus.defense_scheduled)

    with pytest.raises(InvalidTransitionError) as skip:
        THESIS.ensure(ThesisStatus.in_progress, ThesisStatus.completed)
    assert skip.value.details == {"record": "Thesis", "current": "in_progress", "requested": "completed"}

    with pytest.raises(InvalidTransitionError) as custom:
        TOPIC_APPLICATION.ensure(ApplicationStatus.rejected, ApplicationStatus.accepted, code="ALREADY_DECIDED")
    assert custom.value.code == "ALREADY_DECIDED"
