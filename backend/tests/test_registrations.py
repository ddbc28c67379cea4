import threading

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from supervision.core.exceptions import (
    AppError,
    ExclusivityViolationError,
    InvalidTransitionError,
    UnauthorizedActionError,
    WorkflowValidationError,
)
from supervision.models import (
    AssignmentRole,
    ProposalStatus,
    RegistrationStatus,
    Thesis,
    ThesisAssignment,
    ThesisProposal,
    ThesisRegistration,
    ThesisStatus,
)
from supervision.services import capacity, proposals, registrations
from supervision.services.capacity import CapacityTrack
from supervision.services.registrations import CASCADE_REASON


def sibling(db, registration, teacher):
    row = ThesisRegistration(
        student_id=registration.student_id,
        semester_id=registration.semester_id,
        supervisor_teacher_id=teacher.id,
        submitted_by_teacher_id=teacher.id,
        title="Alternative",
        status=RegistrationStatus.pending_approval,
    )
    db.add(row)
    db.commit()
    return row


def registered(db, seed):
    semester = seed.semester()
    teacher = seed.teacher()
    student = seed.student()
    seed.availability(teacher, semester)
    proposal = seed.accepted_proposal(teacher, student, semester, title="Stream joins")
    registration = registrations.create_registration(db, proposal.id, teacher_id=teacher.id)
    return semester, teacher, student, proposal, registration


def test_create_registration_copies_proposal(db, seed, notices):
    _, teacher, student, proposal, registration = registered(db, seed)

    assert registration.status == RegistrationStatus.pending_approval
    assert registration.title == "Stream joins"
    assert registration.proposal_id == proposal.id
    assert registration.submitted_by_teacher_id == teacher.id
    assert notices[-1].notification_type == "THESIS_REGISTRATION_SUBMITTED"
    assert notices[-1].user_id == student.user_id


def test_create_registration_requires_accepted_proposal(db, seed):
    semester = seed.semester()
    teacher = seed.teacher()
    seed.availability(teacher, semester)
    proposal = proposals.submit_proposal(
        db, student_id=seed.student().id, teacher_id=teacher.id, semester_id=semester.id, title="Draft"
    )

    with pytest.raises(InvalidTransitionError) as exc:
        registrations.create_registration(db, proposal.id, teacher_id=teacher.id)
    assert exc.value.code == "PROPOSAL_NOT_ACCEPTED"

    with pytest.raises(UnauthorizedActionError):
        registrations.create_registration(db, proposal.id, teacher_id=seed.teacher().id)


def test_second_live_registration_is_refused(db, seed, notices):
    _, teacher, _, proposal, _ = registered(db, seed)

    with pytest.raises(ExclusivityViolationError) as exc:
        registrations.create_registration(db, proposal.id, teacher_id=teacher.id)
    assert exc.value.code == "REGISTRATION_EXISTS"


def test_approval_opens_thesis_and_cancels_siblings(db, seed, notices, caplog):
    semester, teacher, student, _, registration = registered(db, seed)
    other = seed.teacher()
    first_sibling = sibling(db, registration, other)
    second_sibling = sibling(db, registration, other)
    notices.clear()

    with caplog.at_level("INFO", logger="supervision.services.registrations"):
        thesis = registrations.approve_registration(db, registration.id, approved_by_user_id=7, reason="OK")

    assert thesis.status == ThesisStatus.in_progress
    assert thesis.registration_id == registration.id
    assert thesis.supervisor_teacher_id == teacher.id

    db.refresh(registration)
    assert registration.status == RegistrationStatus.approved
    assert registration.approved_by_user_id == 7
    for row in (first_sibling, second_sibling):
        db.refresh(row)
        assert row.status == RegistrationStatus.cancelled
        assert row.decision_reason == CASCADE_REASON
    assert "cancelled sibling registration" in caplog.text

    theses = db.execute(
        select(func.count(Thesis.id)).where(Thesis.student_id == student.id, Thesis.semester_id == semester.id)
    ).scalar_one()
    assert theses == 1
    [assignment] = db.execute(select(ThesisAssignment).where(ThesisAssignment.thesis_id == thesis.id)).scalars()
    assert assignment.role == AssignmentRole.supervisor
    assert assignment.teacher_id == teacher.id
    assert assignment.active is True

    assert sorted(notice.user_id for notice in notices) == sorted([student.user_id, teacher.user_id])


def test_cancelled_sibling_cannot_be_approved_later(db, seed, notices):
    _, _, _, _, registration = registered(db, seed)
    stray = sibling(db, registration, seed.teacher())
    registrations.approve_registration(db, registration.id, approved_by_user_id=1)

    with pytest.raises(InvalidTransitionError):
        registrations.approve_registration(db, stray.id, approved_by_user_id=1)

    with pytest.raises(InvalidTransitionError):
        registrations.approve_registration(db, registration.id, approved_by_user_id=1)


def test_failed_approval_leaves_everything_pending(db, seed, notices):
    semester, teacher, student, _, registration = registered(db, seed)
    stray = sibling(db, registration, seed.teacher())
    db.add(
        Thesis(
            student_id=student.id,
            semester_id=semester.id,
            supervisor_teacher_id=teacher.id,
            title="Imported",
            status=ThesisStatus.in_progress,
        )
    )
    db.commit()
    notices.clear()

    with pytest.raises(ExclusivityViolationError) as exc:
        registrations.approve_registration(db, registration.id, approved_by_user_id=1)
    assert exc.value.code == "THESIS_EXISTS"

    db.refresh(registration)
    db.refresh(stray)
    assert registration.status == RegistrationStatus.pending_approval
    assert stray.status == RegistrationStatus.pending_approval
    assert notices == []


def test_reject_keeps_thesis_slot_reserved(db, seed, notices):
    semester, teacher, _, _, registration = registered(db, seed)
    before = capacity.remaining(db, teacher.id, semester.id, CapacityTrack.thesis)

    rejected = registrations.reject_registration(
        db, registration.id, decided_by_user_id=3, reason="Missing signature"
    )

    assert rejected.status == RegistrationStatus.rejected
    assert rejected.decision_reason == "Missing signature"
    assert rejected.decided_at is not None
    assert rejected.decided_by_user_id == 3
    assert rejected.approved_by_user_id is None
    assert capacity.remaining(db, teacher.id, semester.id, CapacityTrack.thesis) == before
    assert "Missing signature" in notices[-1].content


def test_cancel_registration_allows_resubmission(db, seed, notices):
    _, teacher, student, proposal, registration = registered(db, seed)

    cancelled = registrations.cancel_registration(
        db, registration.id, student_id=student.id, decided_by_user_id=student.user_id, reason="Wrong title"
    )
    assert cancelled.status == RegistrationStatus.cancelled
    assert cancelled.decided_by_user_id == student.user_id
    assert cancelled.approved_by_user_id is None

    again = registrations.create_registration(db, proposal.id, teacher_id=teacher.id, title="Stream joins v2")
    assert again.title == "Stream joins v2"
    assert [row.id for row in registrations.list_registrations(db, student_id=student.id)] == [
        registration.id,
        again.id,
    ]
    assert registrations.list_registrations(db, status=RegistrationStatus.approved) == []


def test_concurrent_approvals_open_exactly_one_thesis(file_session_factory, seed_factory, notices):
    factory = file_session_factory

    with factory() as setup:
        seed = seed_factory(setup)
        semester, teacher, student, _, registration = registered(setup, seed)
        registration_ids = [registration.id, sibling(setup, registration, seed.teacher()).id]
        student_id = student.id
        semester_id = semester.id

    barrier = threading.Barrier(len(registration_ids))
    outcomes: list[str] = []
    lock = threading.Lock()

    def approve(registration_id: int) -> None:
        with factory() as session:
            barrier.wait()
            try:
                registrations.approve_registration(session, registration_id, approved_by_user_id=1)
                result = "approved"
            except AppError as exc:
                result = exc.code
            with lock:
                outcomes.append(result)

    threads = [threading.Thread(target=approve, args=(registration_id,)) for registration_id in registration_ids]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("approved") == 1

    with factory() as check:
        theses = check.execute(
            select(func.count(Thesis.id)).where(Thesis.student_id == student_id, Thesis.semester_id == semester_id)
        ).scalar_one()
        assert theses == 1
        statuses = sorted(row.status.value for row in registrations.list_registrations(check, student_id=student_id))
        assert statuses == ["approved", "cancelled"]


def test_outsiders_cannot_cancel_registration(db, seed, notices):
    _, teacher, _, _, registration = registered(db, seed)
    notices.clear()

    with pytest.raises(UnauthorizedActionError) as exc:
        registrations.cancel_registration(db, registration.id, student_id=seed.student().id)
    assert exc.value.code == "NOT_PARTICIPANT"
    assert exc.value.status_code == 403
    with pytest.raises(UnauthorizedActionError):
        registrations.cancel_registration(db, registration.id, teacher_id=seed.teacher().id)

    db.refresh(registration)
    assert registration.status == RegistrationStatus.pending_approval
    assert notices == []

    withdrawn = registrations.cancel_registration(db, registration.id, teacher_id=teacher.id)
    assert withdrawn.status == RegistrationStatus.cancelled


def test_supervisor_edits_pending_registration(db, seed, notices):
    _, teacher, _, proposal, registration = registered(db, seed)

    edited = registrations.update_registration(
        db, registration.id, teacher_id=teacher.id, title="  Stream joins at scale ", abstract="Revised"
    )
    assert edited.title == "Stream joins at scale"
    assert edited.abstract == "Revised"
    assert edited.status == RegistrationStatus.pending_approval

    with pytest.raises(UnauthorizedActionError) as stranger:
        registrations.update_registration(db, registration.id, teacher_id=seed.teacher().id, title="Hijack")
    assert stranger.value.code == "NOT_SUPERVISOR"

    with pytest.raises(WorkflowValidationError) as blank:
        registrations.update_registration(db, registration.id, teacher_id=teacher.id, title="   ")
    assert blank.value.code == "MISSING_TITLE"

    db.refresh(registration)
    assert registration.title == "Stream joins at scale"


def test_decided_registration_is_not_editable(db, seed, notices):
    _, teacher, _, _, registration = registered(db, seed)
    registrations.reject_registration(db, registration.id, decided_by_user_id=1)

    with pytest.raises(InvalidTransitionError) as exc:
        registrations.update_registration(db, registration.id, teacher_id=teacher.id, title="Late fix")
    assert exc.value.code == "REGISTRATION_NOT_EDITABLE"


def test_registered_student_cannot_hold_another_live_proposal(db, seed, notices):
    semester, _, student, proposal, _ = registered(db, seed)

    db.add(
        ThesisProposal(
            student_id=student.id,
            target_teacher_id=seed.teacher().id,
            semester_id=semester.id,
            title="Second idea",
            status=ProposalStatus.submitted,
        )
    )
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()

    live = proposals.list_proposals(db, student_id=student.id, semester_id=semester.id)
    assert [row.id for row in live] == [proposal.id]
