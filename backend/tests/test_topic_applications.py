import pytest

from supervision.core.exceptions import (
    CapacityExhaustedError,
    ExclusivityViolationError,
    InvalidTransitionError,
    ResourceNotFoundError,
    UnauthorizedActionError,
    WorkflowValidationError,
)
from supervision.models import ApplicationStatus, PreThesisStatus, TopicApplication, TopicStatus
from supervision.services import capacity, pre_theses, topics
from supervision.services.capacity import CapacityTrack
from supervision.services.state_machine import Decision
from supervision.services.topics import SUPERSEDED_NOTE


def apply(db, topic, student):
    return topics.apply_to_topic(
        db,
        topic.id,
        student_id=student.id,
        semester_id=topic.semester_id,
        proposal_title="Plan",
    )


def accept(db, application, teacher):
    return topics.decide_application(db, application.id, teacher_id=teacher.id, decision=Decision.accepted)


def test_create_topic_validates_input(db, seed):
    semester = seed.semester()
    teacher = seed.teacher()

    with pytest.raises(WorkflowValidationError) as missing:
        topics.create_topic(db, teacher_id=teacher.id, semester_id=semester.id, title="  ")
    assert missing.value.code == "MISSING_TITLE"

    with pytest.raises(WorkflowValidationError) as slots:
        topics.create_topic(db, teacher_id=teacher.id, semester_id=semester.id, title="Graphs", max_slots=0)
    assert slots.value.code == "INVALID_MAX_SLOTS"

    with pytest.raises(ResourceNotFoundError):
        topics.create_topic(db, teacher_id=teacher.id, semester_id=9999, title="Graphs")


def test_topic_updates_are_owner_only(db, seed):
    semester = seed.semester()
    owner = seed.teacher()
    other = seed.teacher()
    topic = seed.topic(owner, semester)

    with pytest.raises(UnauthorizedActionError) as exc:
        topics.update_topic(db, topic.id, teacher_id=other.id, title="Taken over")
    assert exc.value.code == "NOT_TOPIC_OWNER"

    updated = topics.update_topic(db, topic.id, teacher_id=owner.id, title="Compilers", max_slots=3)
    assert updated.title == "Compilers"
    assert updated.max_slots == 3

    closed = topics.set_topic_status(db, topic.id, teacher_id=owner.id, status=TopicStatus.closed)
    assert closed.status == TopicStatus.closed
    assert [row.id for row in topics.list_topics(db, semester_id=semester.id, status=TopicStatus.open)] == []


def test_tags_are_normalized_and_searchable(db, seed):
    semester = seed.semester()
    teacher = seed.teacher()
    graphs = topics.create_topic(
        db,
        teacher_id=teacher.id,
        semester_id=semester.id,
        title="Graph databases",
        description="Property graphs at 100% scale",
        tags=[" Storage", "graphs", "storage", ""],
    )
    compilers = topics.create_topic(
        db, teacher_id=teacher.id, semester_id=semester.id, title="Compilers", tags=["languages"]
    )
    elsewhere = topics.create_topic(
        db, teacher_id=teacher.id, semester_id=seed.semester().id, title="Storage engines", tags=["storage"]
    )
    assert graphs.tags == ["storage", "graphs"]

    assert [row.id for row in topics.search_topics(db, "GRAPH")] == [graphs.id]
    assert [row.id for row in topics.search_topics(db, "100%")] == [graphs.id]
    assert [row.id for row in topics.search_topics(db, "storage")] == [graphs.id, elsewhere.id]
    assert [row.id for row in topics.search_topics(db, "storage", semester_id=semester.id)] == [graphs.id]
    assert [row.id for row in topics.search_topics(db, tags=["Graphs", "storage"])] == [graphs.id]
    assert [row.id for row in topics.search_topics(db, "languages")] == [compilers.id]
    assert len(topics.search_topics(db, "  ")) == 3

    retagged = topics.update_topic(db, compilers.id, teacher_id=teacher.id, tags=["Parsing"])
    assert retagged.tags == ["parsing"]
    assert topics.search_topics(db, "languages") == []


def test_delete_topic_only_without_applications(db, seed):
    semester = seed.semester()
    owner = seed.teacher()
    busy = seed.topic(owner, semester, title="Busy")
    idle = seed.topic(owner, semester, title="Idle")
    application = apply(db, busy, seed.student())
    topics.cancel_application(db, application.id, student_id=application.student_id)

    with pytest.raises(InvalidTransitionError) as exc:
        topics.delete_topic(db, busy.id, teacher_id=owner.id)
    assert exc.value.code == "TOPIC_HAS_APPLICATIONS"
    with pytest.raises(UnauthorizedActionError):
        topics.delete_topic(db, idle.id, teacher_id=seed.teacher().id)

    topics.delete_topic(db, idle.id, teacher_id=owner.id)

    with pytest.raises(ResourceNotFoundError):
        topics.get_topic(db, idle.id)
    assert [row.id for row in topics.list_topics(db, semester_id=semester.id)] == [busy.id]


def test_max_slots_cannot_drop_below_accepted(db, seed, notices):
    semester = seed.semester()
    teacher = seed.teacher()
    seed.availability(teacher, semester, pre_thesis=3)
    topic = seed.topic(teacher, semester, max_slots=2)
    for _ in range(2):
        accept(db, apply(db, topic, seed.student()), teacher)

    with pytest.raises(WorkflowValidationError) as exc:
        topics.update_topic(db, topic.id, teacher_id=teacher.id, max_slots=1)
    assert exc.value.details["accepted"] == 2


def test_apply_creates_pending_application_and_notifies_teacher(db, seed, notices):
    semester = seed.semester()
    teacher = seed.teacher()
    student = seed.student()
    topic = seed.topic(teacher, semester)

    application = apply(db, topic, student)

    assert application.status == ApplicationStatus.pending
    assert [notice.notification_type for notice in notices] == ["TOPIC_APPLICATION_SUBMITTED"]
    assert notices[0].user_id == teacher.user_id
    assert notices[0].entity_ref.id == application.id


def test_apply_rejects_inactive_semester_and_closed_topic(db, seed):
    teacher = seed.teacher()
    student = seed.student()
    inactive = seed.semester(active=False)
    topic = seed.topic(teacher, inactive)

    with pytest.raises(InvalidTransitionError) as semester_exc:
        apply(db, topic, student)
    assert semester_exc.value.code == "SEMESTER_INACTIVE"

    active = seed.semester()
    open_topic = seed.topic(teacher, active)
    with pytest.raises(WorkflowValidationError) as mismatch:
        topics.apply_to_topic(db, topic.id, student_id=student.id, semester_id=active.id)
    assert mismatch.value.code == "TOPIC_SEMESTER_MISMATCH"

    topics.set_topic_status(db, open_topic.id, teacher_id=teacher.id, status=TopicStatus.closed)
    with pytest.raises(InvalidTransitionError) as closed:
        apply(db, open_topic, student)
    assert closed.value.code == "TOPIC_CLOSED"


def test_duplicate_application_is_rejected(db, seed):
    semester = seed.semester()
    teacher = seed.teacher()
    student = seed.student()
    topic = seed.topic(teacher, semester)
    apply(db, topic, student)

    with pytest.raises(ExclusivityViolationError) as exc:
        apply(db, topic, student)
    assert exc.value.code == "APPLICATION_EXISTS"


def test_accept_opens_pre_thesis_and_supersedes_other_pending(db, seed, notices):
    semester = seed.semester()
    first_teacher = seed.teacher()
    second_teacher = seed.teacher()
    seed.availability(first_teacher, semester, pre_thesis=2)
    student = seed.student()
    first = apply(db, seed.topic(first_teacher, semester), student)
    second = apply(db, seed.topic(second_teacher, semester), student)
    notices.clear()

    accepted = accept(db, first, first_teacher)

    assert accepted.status == ApplicationStatus.accepted
    assert accepted.decided_at is not None
    db.refresh(second)
    assert second.status == ApplicationStatus.rejected
    assert second.note == SUPERSEDED_NOTE

    [record] = pre_theses.list_pre_theses(db, student_id=student.id)
    assert record.status == PreThesisStatus.in_progress
    assert record.supervisor_teacher_id == first_teacher.id
    assert record.topic_application_id == first.id
    assert capacity.remaining(db, first_teacher.id, semester.id, CapacityTrack.pre_thesis) == 1

    types = sorted(notice.notification_type for notice in notices)
    assert types == ["PRE_THESIS_CREATED", "PRE_THESIS_CREATED", "TOPIC_APPLICATION_ACCEPTED"]


def test_student_with_accepted_application_cannot_apply_again(db, seed, notices):
    semester = seed.semester()
    teacher_a = seed.teacher()
    teacher_b = seed.teacher()
    seed.availability(teacher_a, semester)
    seed.availability(teacher_b, semester)
    student = seed.student()
    topic_a = seed.topic(teacher_a, semester)
    topic_b = seed.topic(teacher_b, semester)

    first = accept(db, apply(db, topic_a, student), teacher_a)

    with pytest.raises(ExclusivityViolationError) as exc:
        apply(db, topic_b, student)
    assert exc.value.code == "APPLICATION_ALREADY_ACCEPTED"

    # Withdrawing frees the student to be accepted elsewhere.
    topics.cancel_application(db, first.id, student_id=student.id, note="changed my mind")
    assert capacity.remaining(db, teacher_a.id, semester.id, CapacityTrack.pre_thesis) == 2

    second = accept(db, apply(db, topic_b, student), teacher_b)
    assert second.status == ApplicationStatus.accepted

    statuses = sorted(record.status.value for record in pre_theses.list_pre_theses(db, student_id=student.id))
    assert statuses == ["cancelled", "in_progress"]


def test_accept_refuses_second_accepted_application(db, seed, notices):
    semester = seed.semester()
    teacher_a = seed.teacher()
    teacher_b = seed.teacher()
    seed.availability(teacher_a, semester)
    seed.availability(teacher_b, semester)
    student = seed.student()
    accept(db, apply(db, seed.topic(teacher_a, semester), student), teacher_a)

    # A pending row that slipped past the apply-time check.
    topic_b = seed.topic(teacher_b, semester)
    stray = TopicApplication(topic_id=topic_b.id, student_id=student.id, status=ApplicationStatus.pending)
    db.add(stray)
    db.commit()

    with pytest.raises(ExclusivityViolationError) as exc:
        accept(db, stray, teacher_b)
    assert exc.value.code == "APPLICATION_ALREADY_ACCEPTED"
    db.refresh(stray)
    assert stray.status == ApplicationStatus.pending
    assert capacity.remaining(db, teacher_b.id, semester.id, CapacityTrack.pre_thesis) == 2


def test_topic_full_blocks_apply_and_accept(db, seed, notices):
    semester = seed.semester()
    teacher = seed.teacher()
    seed.availability(teacher, semester, pre_thesis=5)
    topic = seed.topic(teacher, semester, max_slots=1)
    first = apply(db, topic, seed.student())
    second = apply(db, topic, seed.student())
    accept(db, first, teacher)

    with pytest.raises(CapacityExhaustedError) as on_accept:
        accept(db, second, teacher)
    assert on_accept.value.code == "TOPIC_FULL"

    with pytest.raises(CapacityExhaustedError) as on_apply:
        apply(db, topic, seed.student())
    assert on_apply.value.code == "TOPIC_FULL"


def test_teacher_capacity_exhausted_leaves_application_pending(db, seed, notices):
    semester = seed.semester()
    teacher = seed.teacher()
    seed.availability(teacher, semester, pre_thesis=1)
    topic = seed.topic(teacher, semester, max_slots=3)
    first = apply(db, topic, seed.student())
    second = apply(db, topic, seed.student())
    accept(db, first, teacher)

    with pytest.raises(CapacityExhaustedError) as exc:
        accept(db, second, teacher)
    assert exc.value.code == "CAPACITY_EXHAUSTED"

    db.refresh(second)
    assert second.status == ApplicationStatus.pending
    assert len(pre_theses.list_pre_theses(db, supervisor_teacher_id=teacher.id)) == 1


def test_only_topic_owner_decides(db, seed):
    semester = seed.semester()
    owner = seed.teacher()
    other = seed.teacher()
    application = apply(db, seed.topic(owner, semester), seed.student())

    with pytest.raises(UnauthorizedActionError):
        topics.decide_application(db, application.id, teacher_id=other.id, decision=Decision.rejected)


def test_rejected_application_is_final(db, seed, notices):
    semester = seed.semester()
    teacher = seed.teacher()
    seed.availability(teacher, semester)
    student = seed.student()
    topic = seed.topic(teacher, semester)
    application = apply(db, topic, student)

    rejected = topics.decide_application(
        db, application.id, teacher_id=teacher.id, decision=Decision.rejected, note="Out of scope"
    )
    assert rejected.status == ApplicationStatus.rejected
    assert "Out of scope" in notices[-1].content

    with pytest.raises(InvalidTransitionError) as transition:
        accept(db, application, teacher)
    assert transition.value.code == "INVALID_TRANSITION"

    with pytest.raises(InvalidTransitionError) as reapply:
        apply(db, topic, student)
    assert reapply.value.code == "APPLICATION_REJECTED"


def test_cancel_pending_then_reapply(db, seed, notices):
    semester = seed.semester()
    teacher = seed.teacher()
    student = seed.student()
    intruder = seed.student()
    topic = seed.topic(teacher, semester)
    application = apply(db, topic, student)

    with pytest.raises(UnauthorizedActionError) as exc:
        topics.cancel_application(db, application.id, student_id=intruder.id)
    assert exc.value.code == "NOT_APPLICATION_OWNER"

    cancelled = topics.cancel_application(db, application.id, student_id=student.id)
    assert cancelled.status == ApplicationStatus.cancelled
    assert notices[-1].notification_type == "TOPIC_APPLICATION_CANCELLED"

    again = apply(db, topic, student)
    assert again.id != application.id
    assert again.status == ApplicationStatus.pending

    with pytest.raises(InvalidTransitionError):
        topics.cancel_application(db, application.id, student_id=student.id)


def test_cancel_refused_once_pre_thesis_completed(db, seed, notices):
    semester = seed.semester()
    teacher = seed.teacher()
    seed.availability(teacher, semester)
    student = seed.student()
    application = accept(db, apply(db, seed.topic(teacher, semester), student), teacher)
    [record] = pre_theses.list_pre_theses(db, student_id=student.id)
    pre_theses.grade_pre_thesis(db, record.id, teacher_id=teacher.id, score=8)

    with pytest.raises(InvalidTransitionError) as exc:
        topics.cancel_application(db, application.id, student_id=student.id)
    assert exc.value.code == "PRE_THESIS_COMPLETED"


def test_list_applications_filters(db, seed):
    semester = seed.semester()
    teacher_a = seed.teacher()
    teacher_b = seed.teacher()
    student = seed.student()
    first = apply(db, seed.topic(teacher_a, semester), student)
    apply(db, seed.topic(teacher_b, semester), student)

    assert [row.id for row in topics.list_applications(db, teacher_id=teacher_a.id)] == [first.id]
    assert len(topics.list_applications(db, student_id=student.id, semester_id=semester.id)) == 2
    assert topics.list_applications(db, status=ApplicationStatus.accepted) == []
