from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from supervision.api.deps import Actor, get_actor, get_db, require_student, require_teacher
from supervision.models.pre_thesis import PreThesisStatus
from supervision.models.topic import ApplicationStatus, TopicStatus
from supervision.schemas.pre_thesis import (
    PreThesisCancel,
    PreThesisGrade,
    PreThesisOut,
    TeacherCapacityOut,
    TopicApplicationCancel,
    TopicApplicationCreate,
    TopicApplicationDecision,
    TopicApplicationOut,
    TopicCreate,
    TopicOut,
    TopicStatusUpdate,
    TopicUpdate,
)
from supervision.services import capacity, pre_theses, topics

router = APIRouter()


@router.get("/topics", response_model=list[TopicOut])
def list_topics(
    semester_id: int | None = Query(default=None),
    topic_status: TopicStatus | None = Query(default=None, alias="status"),
    teacher_id: int | None = Query(default=None),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[TopicOut]:
    return topics.list_topics(db, semester_id=semester_id, status=topic_status, teacher_id=teacher_id)


@router.post("/topics", response_model=TopicOut, status_code=status.HTTP_201_CREATED)
def create_topic(
    payload: TopicCreate,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> TopicOut:
    return topics.create_topic(db, teacher_id=teacher_id, **payload.model_dump())


@router.get("/topics/search", response_model=list[TopicOut])
def search_topics(
    q: str | None = Query(default=None, max_length=255),
    semester_id: int | None = Query(default=None),
    tags: list[str] | None = Query(default=None),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[TopicOut]:
    return topics.search_topics(db, q, semester_id=semester_id, tags=tags)


@router.get("/topics/{topic_id}", response_model=TopicOut)
def get_topic(topic_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> TopicOut:
    return topics.get_topic(db, topic_id)


@router.patch("/topics/{topic_id}", response_model=TopicOut)
def update_topic(
    topic_id: int,
    payload: TopicUpdate,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> TopicOut:
    return topics.update_topic(db, topic_id, teacher_id=teacher_id, **payload.model_dump(exclude_unset=True))


@router.delete("/topics/{topic_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_topic(
    topic_id: int,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> None:
    topics.delete_topic(db, topic_id, teacher_id=teacher_id)


@router.put("/topics/{topic_id}/status", response_model=TopicOut)
def set_topic_status(
    topic_id: int,
    payload: TopicStatusUpdate,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> TopicOut:
    return topics.set_topic_status(db, topic_id, teacher_id=teacher_id, status=payload.status)


@router.post(
    "/topics/{topic_id}/applications",
    response_model=TopicApplicationOut,
    status_code=status.HTTP_201_CREATED,
)
def apply_to_topic(
    topic_id: int,
    payload: TopicApplicationCreate,
    student_id: int = Depends(require_student),
    db: Session = Depends(get_db),
) -> TopicApplicationOut:
    return topics.apply_to_topic(
        db,
        topic_id,
        student_id=student_id,
        semester_id=payload.semester_id,
        proposal_title=payload.proposal_title,
        proposal_abstract=payload.proposal_abstract,
    )


@router.get("/topic-applications", response_model=list[TopicApplicationOut])
def list_applications(
    student_id: int | None = Query(default=None),
    teacher_id: int | None = Query(default=None),
    topic_id: int | None = Query(default=None),
    semester_id: int | None = Query(default=None),
    application_status: ApplicationStatus | None = Query(default=None, alias="status"),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[TopicApplicationOut]:
    return topics.list_applications(
        db,
        student_id=student_id,
        teacher_id=teacher_id,
        topic_id=topic_id,
        semester_id=semester_id,
        status=application_status,
    )


@router.post("/topic-applications/{application_id}/decision", response_model=TopicApplicationOut)
def decide_application(
    application_id: int,
    payload: TopicApplicationDecision,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> TopicApplicationOut:
    return topics.decide_application(
        db,
        application_id,
        teacher_id=teacher_id,
        decision=payload.decision,
        note=payload.note,
    )


@router.post("/topic-applications/{application_id}/cancel", response_model=TopicApplicationOut)
def cancel_application(
    application_id: int,
    payload: TopicApplicationCancel,
    student_id: int = Depends(require_student),
    db: Session = Depends(get_db),
) -> TopicApplicationOut:
    return topics.cancel_application(db, application_id, student_id=student_id, note=payload.note)


@router.get("/pre-theses", response_model=list[PreThesisOut])
def list_pre_theses(
    semester_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    supervisor_teacher_id: int | None = Query(default=None),
    pre_thesis_status: PreThesisStatus | None = Query(default=None, alias="status"),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[PreThesisOut]:
    return pre_theses.list_pre_theses(
        db,
        semester_id=semester_id,
        student_id=student_id,
        supervisor_teacher_id=supervisor_teacher_id,
        status=pre_thesis_status,
    )


@router.get("/pre-theses/completed", response_model=list[PreThesisOut])
def list_completed_pre_theses(
    semester_id: int | None = Query(default=None),
    minimum_score: float | None = Query(default=None, ge=0, le=10),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[PreThesisOut]:
    return pre_theses.list_completed_pre_theses(db, semester_id=semester_id, minimum_score=minimum_score)


@router.get("/pre-theses/{pre_thesis_id}", response_model=PreThesisOut)
def get_pre_thesis(pre_thesis_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> PreThesisOut:
    return pre_theses.get_pre_thesis(db, pre_thesis_id)


@router.post("/pre-theses/{pre_thesis_id}/grade", response_model=PreThesisOut)
def grade_pre_thesis(
    pre_thesis_id: int,
    payload: PreThesisGrade,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> PreThesisOut:
    return pre_theses.grade_pre_thesis(
        db,
        pre_thesis_id,
        teacher_id=teacher_id,
        score=payload.score,
        feedback=payload.feedback,
    )


@router.post("/pre-theses/{pre_thesis_id}/cancel", response_model=PreThesisOut)
def cancel_pre_thesis(
    pre_thesis_id: int,
    payload: PreThesisCancel,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> PreThesisOut:
    return pre_theses.cancel_pre_thesis(
        db,
        pre_thesis_id,
        student_id=actor.student_id,
        teacher_id=actor.teacher_id,
        reason=payload.reason,
    )


@router.get("/semesters/{semester_id}/capacity", response_model=list[TeacherCapacityOut])
def list_capacity(
    semester_id: int,
    open_only: bool = Query(default=False),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[TeacherCapacityOut]:
    return capacity.list_capacity(db, semester_id, open_only=open_only)
