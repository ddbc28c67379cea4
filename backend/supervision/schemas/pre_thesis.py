from datetime import datetime

from pydantic import BaseModel, Field

from supervision.models.pre_thesis import PreThesisStatus
from supervision.models.topic import ApplicationStatus, TopicStatus
from supervision.services.state_machine import Decision


class TopicCreate(BaseModel):
    semester_id: int
    title: str = Field(min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    requirements: str | None = Field(default=None, max_length=5000)
    max_slots: int = Field(default=1, ge=1, le=100)
    tags: list[str] = Field(default_factory=list, max_length=20)


class TopicUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = Field(default=None, max_length=5000)
    requirements: str | None = Field(default=None, max_length=5000)
    max_slots: int | None = Field(default=None, ge=1, le=100)
    tags: list[str] | None = Field(default=None, max_length=20)


class TopicStatusUpdate(BaseModel):
    status: TopicStatus


class TopicOut(BaseModel):
    id: int
    teacher_id: int
    semester_id: int
    title: str
    description: str | None = None
    requirements: str | None = None
    max_slots: int
    tags: list[str] = []
    status: TopicStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TopicApplicationCreate(BaseModel):
    semester_id: int
    proposal_title: str | None = Field(default=None, max_length=255)
    proposal_abstract: str | None = Field(default=None, max_length=5000)


class TopicApplicationDecision(BaseModel):
    decision: Decision
    note: str | None = Field(default=None, max_length=255)


class TopicApplicationCancel(BaseModel):
    note: str | None = Field(default=None, max_length=255)


class TopicApplicationOut(BaseModel):
    id: int
    topic_id: int
    student_id: int
    proposal_title: str | None = None
    proposal_abstract: str | None = None
    status: ApplicationStatus
    note: str | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class PreThesisGrade(BaseModel):
    score: float
    feedback: str | None = Field(default=None, max_length=5000)


class PreThesisCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class PreThesisOut(BaseModel):
    id: int
    student_id: int
    semester_id: int
    topic_application_id: int | None = None
    supervisor_teacher_id: int
    status: PreThesisStatus
    final_score: float | None = None
    feedback: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class TeacherCapacityOut(BaseModel):
    teacher_id: int
    semester_id: int
    is_open: bool
    remaining_pre_thesis: int
    remaining_thesis: int
    active_pre_theses: int
    accepted_proposals: int
