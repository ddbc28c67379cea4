from datetime import datetime

from pydantic import BaseModel, Field

from supervision.models.defense_session import DefenseSessionStatus
from supervision.models.thesis import ThesisStatus
from supervision.models.thesis_assignment import AssignmentRole
from supervision.models.thesis_proposal import ProposalStatus
from supervision.models.thesis_registration import RegistrationStatus
from supervision.services.state_machine import Decision


class ProposalCreate(BaseModel):
    teacher_id: int
    semester_id: int
    title: str = Field(min_length=1, max_length=255)
    abstract: str | None = Field(default=None, max_length=5000)
    note: str | None = Field(default=None, max_length=255)


class ProposalUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    abstract: str | None = Field(default=None, max_length=5000)
    note: str | None = Field(default=None, max_length=255)


class ProposalDecision(BaseModel):
    decision: Decision
    note: str | None = Field(default=None, max_length=255)


class ProposalCancel(BaseModel):
    note: str | None = Field(default=None, max_length=255)


class ProposalOut(BaseModel):
    id: int
    student_id: int
    target_teacher_id: int
    semester_id: int
    title: str
    abstract: str | None = None
    status: ProposalStatus
    note: str | None = None
    decided_at: datetime | None = None
    created_at: datetime | None = None

    model_config = {"from_attributes": True}


class RegistrationCreate(BaseModel):
    proposal_id: int
    title: str | None = Field(default=None, max_length=255)
    abstract: str | None = Field(default=None, max_length=5000)


class RegistrationDecision(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class RegistrationUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=255)
    abstract: str | None = Field(default=None, max_length=5000)


class RegistrationOut(BaseModel):
    id: int
    proposal_id: int | None = None
    student_id: int
    supervisor_teacher_id: int
    semester_id: int
    title: str | None = None
    abstract: str | None = None
    status: RegistrationStatus
    submitted_by_teacher_id: int
    approved_by_user_id: int | None = None
    decided_by_user_id: int | None = None
    decision_reason: str | None = None
    submitted_at: datetime | None = None
    decided_at: datetime | None = None

    model_config = {"from_attributes": True}


class ThesisOut(BaseModel):
    id: int
    student_id: int
    semester_id: int
    registration_id: int | None = None
    supervisor_teacher_id: int
    title: str | None = None
    abstract: str | None = None
    status: ThesisStatus
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class ThesisCancel(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class AssignmentCreate(BaseModel):
    teacher_id: int
    role: AssignmentRole


class AssignmentOut(BaseModel):
    id: int
    thesis_id: int
    teacher_id: int
    role: AssignmentRole
    active: bool
    assigned_by_user_id: int | None = None
    assigned_at: datetime
    removed_at: datetime | None = None

    model_config = {"from_attributes": True}


class DefenseSessionCreate(BaseModel):
    # Kept as text so malformed dates surface as INVALID_DATE_FORMAT.
    scheduled_at: str = Field(min_length=1, max_length=64)
    room: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=255)


class DefenseSessionReschedule(BaseModel):
    scheduled_at: str = Field(min_length=1, max_length=64)
    room: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=255)


class DefenseSessionOut(BaseModel):
    id: int
    thesis_id: int
    scheduled_at: datetime
    room: str | None = None
    notes: str | None = None
    status: DefenseSessionStatus

    model_config = {"from_attributes": True}


class EvaluationCreate(BaseModel):
    role: AssignmentRole
    score: float
    comments: str | None = Field(default=None, max_length=5000)


class EvaluationOut(BaseModel):
    id: int
    thesis_id: int
    evaluator_teacher_id: int
    role: AssignmentRole
    score: float
    comments: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class FinalGradeOut(BaseModel):
    id: int
    thesis_id: int
    final_score: float
    computed_at: datetime

    model_config = {"from_attributes": True}


class ThesisDetailOut(BaseModel):
    thesis: ThesisOut
    assignments: list[AssignmentOut] = []
    defense_session: DefenseSessionOut | None = None
    evaluations: list[EvaluationOut] = []
    final_grade: FinalGradeOut | None = None

    model_config = {"from_attributes": True}
