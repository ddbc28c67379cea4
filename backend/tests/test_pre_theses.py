import pytest

from supervision.core.exceptions import (
    InvalidTransitionError,
    ResourceNotFoundError,
    UnauthorizedActionError,
    WorkflowValidationError,
)
from supervision.models import ApplicationStatus, PreThesisStatus
from supervision.services import capacity, pre_theses, topics
from supervision.services.capacity import CapacityTrack
from supervision.services.state_machine import Decision


def start_pre_thesis(db, seed, *, pre_thesis_slots=2):
    semester = seed.semester()
    teacher = seed.teacher()
    student = seed.student()
    seed.availability(teacher, semester, pre_thesis=pre_thesis_slots)
    topic = seed.topic(teacher, semester)
    application = topics.apply_to_topic(db, topic.id, student_id=student.id, semester_id=semester.id)
    topics.decide_application(db, application.id, teacher_id=teacher.id, decision=Decision.accepted)
    [record] = pre_theses.list_pre_theses(db, student_id=student.id)
    return semester, teacher, student, application, record


def test_passing_grade_completes_pre_thesis(db, seed, notices):
    _, teacher, student, _, record = start_pre_thesis(db, seed)
    notices.clear()

    graded = pre_theses.grade_pre_thesis(db, record.id, teacher_id=teacher.id, score=7.5, feedback="Solid work")

    assert graded.status == PreThesisStatus.completed
    assert graded.final_score == 7.5
    assert graded.feedback == "Solid work"
    [notice] = notices
    assert notice.notification_type == "PRE_THESIS_GRADED"
    assert notice.user_id == student.user_id
    assert "7.5" in notice.content

    with pytest.raises(InvalidTransitionError):
        pre_theses.grade_pre_thesis(db, record.id, teacher_id=teacher.id, score=9)


def test_failing_grade_keeps_pre_thesis_open_for_regrade(db, seed, notices):
    _, teacher, _, _, record = start_pre_thesis(db, seed)

    failed = pre_theses.grade_pre_thesis(db, record.id, teacher_id=teacher.id, score=3)
    assert failed.status == PreThesisStatus.in_progress
    assert failed.final_score == 3
    assert "below the passing threshold" in notices[-1].content

    passed = pre_theses.grade_pre_thesis(db, record.id, teacher_id=teacher.id, score=6)
    assert passed.status == PreThesisStatus.completed


def test_passing_threshold_follows_settings(db, seed, notices, settings_override):
    settings_override(passing_score=8)
    _, teacher, _, _, record = start_pre_thesis(db, seed)

    graded = pre_theses.grade_pre_thesis(db, record.id, teacher_id=teacher.id, score=7)

    assert graded.status == PreThesisStatus.in_progress


def test_only_supervisor_grades(db, seed, notices):
    _, _, _, _, record = start_pre_thesis(db, seed)
    stranger = seed.teacher()

    with pytest.raises(UnauthorizedActionError) as exc:
        pre_theses.grade_pre_thesis(db, record.id, teacher_id=stranger.id, score=8)
    assert exc.value.code == "NOT_SUPERVISOR"


@pytest.mark.parametrize("score", [-0.5, 10.01, float("nan"), "eight", None])
def test_grade_rejects_invalid_scores(db, seed, notices, score):
    _, teacher, _, _, record = start_pre_thesis(db, seed)

    with pytest.raises(WorkflowValidationError) as exc:
        pre_theses.grade_pre_thesis(db, record.id, teacher_id=teacher.id, score=score)
    assert exc.value.code == "INVALID_SCORE"

    db.refresh(record)
    assert record.final_score is None


def test_cancel_pre_thesis_releases_slot_once(db, seed, notices):
    semester, teacher, student, application, record = start_pre_thesis(db, seed, pre_thesis_slots=1)
    assert capacity.remaining(db, teacher.id, semester.id, CapacityTrack.pre_thesis) == 0

    cancelled = pre_theses.cancel_pre_thesis(db, record.id, student_id=student.id, reason="Student left")

    assert cancelled.status == PreThesisStatus.cancelled
    db.refresh(application)
    assert application.status == ApplicationStatus.cancelled
    assert capacity.remaining(db, teacher.id, semester.id, CapacityTrack.pre_thesis) == 1
    assert notices[-1].notification_type == "PRE_THESIS_CANCELLED"

    with pytest.raises(InvalidTransitionError):
        pre_theses.cancel_pre_thesis(db, record.id, teacher_id=teacher.id)
    assert capacity.remaining(db, teacher.id, semester.id, CapacityTrack.pre_thesis) == 1


def test_outsiders_cannot_cancel_pre_thesis(db, seed, notices):
    semester, teacher, _, _, record = start_pre_thesis(db, seed)

    with pytest.raises(UnauthorizedActionError) as exc:
        pre_theses.cancel_pre_thesis(db, record.id, student_id=seed.student().id)
    assert exc.value.code == "NOT_PARTICIPANT"
    with pytest.raises(UnauthorizedActionError):
        pre_theses.cancel_pre_thesis(db, record.id, teacher_id=seed.teacher().id)

    db.refresh(record)
    assert record.status == PreThesisStatus.in_progress
    assert capacity.remaining(db, teacher.id, semester.id, CapacityTrack.pre_thesis) == 1

    supervised = pre_theses.cancel_pre_thesis(db, record.id, teacher_id=teacher.id)
    assert supervised.status == PreThesisStatus.cancelled


def test_completed_pre_theses_with_passing_scores(db, seed, notices):
    first_semester, first_teacher, _, _, strong = start_pre_thesis(db, seed)
    _, second_teacher, _, _, borderline = start_pre_thesis(db, seed)
    _, third_teacher, _, _, failing = start_pre_thesis(db, seed)
    pre_theses.grade_pre_thesis(db, strong.id, teacher_id=first_teacher.id, score=8.5)
    pre_theses.grade_pre_thesis(db, borderline.id, teacher_id=second_teacher.id, score=5)
    pre_theses.grade_pre_thesis(db, failing.id, teacher_id=third_teacher.id, score=4)

    assert [row.id for row in pre_theses.list_completed_pre_theses(db)] == [strong.id, borderline.id]
    assert [row.id for row in pre_theses.list_completed_pre_theses(db, minimum_score=6)] == [strong.id]
    assert [row.id for row in pre_theses.list_completed_pre_theses(db, semester_id=first_semester.id)] == [strong.id]


def test_lookup_and_filters(db, seed, notices):
    semester, teacher, student, _, record = start_pre_thesis(db, seed)

    assert pre_theses.get_pre_thesis(db, record.id).id == record.id
    with pytest.raises(ResourceNotFoundError) as exc:
        pre_theses.get_pre_thesis(db, 4242)
    assert exc.value.code == "PRE_THESIS_NOT_FOUND"

    assert len(pre_theses.list_pre_theses(db, semester_id=semester.id, supervisor_teacher_id=teacher.id)) == 1
    assert pre_theses.list_pre_theses(db, student_id=student.id, status=PreThesisStatus.completed) == []
