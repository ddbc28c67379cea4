from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from supervision.api.deps import Actor, get_actor, get_db, require_student, require_teacher
from supervision.models.thesis import ThesisStatus
from supervision.models.thesis_assignment import AssignmentRole
from supervision.models.thesis_proposal import ProposalStatus
from supervision.models.thesis_registration import RegistrationStatus
from supervision.schemas.thesis import (
    AssignmentCreate,
    AssignmentOut,
    DefenseSessionCreate,
    DefenseSessionOut,
    DefenseSessionReschedule,
    EvaluationCreate,
    EvaluationOut,
    FinalGradeOut,
    ProposalCancel,
    ProposalCreate,
    ProposalDecision,
    ProposalOut,
    ProposalUpdate,
    RegistrationCreate,
    RegistrationDecision,
    RegistrationOut,
    RegistrationUpdate,
    ThesisCancel,
    ThesisDetailOut,
    ThesisOut,
)
from supervision.services import assignments, defense, evaluations, proposals, registrations, theses

router = APIRouter()


@router.post("/thesis-proposals", response_model=ProposalOut, status_code=status.HTTP_201_CREATED)
def submit_proposal(
    payload: ProposalCreate,
    student_id: int = Depends(require_student),
    db: Session = Depends(get_db),
) -> ProposalOut:
    return proposals.submit_proposal(db, student_id=student_id, **payload.model_dump())


@router.get("/thesis-proposals", response_model=list[ProposalOut])
def list_proposals(
    student_id: int | None = Query(default=None),
    teacher_id: int | None = Query(default=None),
    semester_id: int | None = Query(default=None),
    proposal_status: ProposalStatus | None = Query(default=None, alias="status"),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[ProposalOut]:
    return proposals.list_proposals(
        db,
        student_id=student_id,
        teacher_id=teacher_id,
        semester_id=semester_id,
        status=proposal_status,
    )


@router.get("/thesis-proposals/{proposal_id}", response_model=ProposalOut)
def get_proposal(proposal_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> ProposalOut:
    return proposals.get_proposal(db, proposal_id)


@router.patch("/thesis-proposals/{proposal_id}", response_model=ProposalOut)
def update_proposal(
    proposal_id: int,
    payload: ProposalUpdate,
    student_id: int = Depends(require_student),
    db: Session = Depends(get_db),
) -> ProposalOut:
    return proposals.update_proposal(db, proposal_id, student_id=student_id, **payload.model_dump(exclude_unset=True))


@router.post("/thesis-proposals/{proposal_id}/decision", response_model=ProposalOut)
def decide_proposal(
    proposal_id: int,
    payload: ProposalDecision,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> ProposalOut:
    return proposals.decide_proposal(
        db,
        proposal_id,
        teacher_id=teacher_id,
        decision=payload.decision,
        note=payload.note,
    )


@router.post("/thesis-proposals/{proposal_id}/cancel", response_model=ProposalOut)
def cancel_proposal(
    proposal_id: int,
    payload: ProposalCancel,
    student_id: int = Depends(require_student),
    db: Session = Depends(get_db),
) -> ProposalOut:
    return proposals.cancel_proposal(db, proposal_id, student_id=student_id, note=payload.note)


@router.post("/thesis-registrations", response_model=RegistrationOut, status_code=status.HTTP_201_CREATED)
def create_registration(
    payload: RegistrationCreate,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> RegistrationOut:
    return registrations.create_registration(
        db,
        payload.proposal_id,
        teacher_id=teacher_id,
        title=payload.title,
        abstract=payload.abstract,
    )


@router.get("/thesis-registrations", response_model=list[RegistrationOut])
def list_registrations(
    student_id: int | None = Query(default=None),
    supervisor_teacher_id: int | None = Query(default=None),
    semester_id: int | None = Query(default=None),
    registration_status: RegistrationStatus | None = Query(default=None, alias="status"),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[RegistrationOut]:
    return registrations.list_registrations(
        db,
        student_id=student_id,
        supervisor_teacher_id=supervisor_teacher_id,
        semester_id=semester_id,
        status=registration_status,
    )


@router.post("/thesis-registrations/{registration_id}/approve", response_model=ThesisOut)
def approve_registration(
    registration_id: int,
    payload: RegistrationDecision,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ThesisOut:
    return registrations.approve_registration(
        db,
        registration_id,
        approved_by_user_id=actor.user_id,
        reason=payload.reason,
    )


@router.post("/thesis-registrations/{registration_id}/reject", response_model=RegistrationOut)
def reject_registration(
    registration_id: int,
    payload: RegistrationDecision,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> RegistrationOut:
    return registrations.reject_registration(
        db,
        registration_id,
        decided_by_user_id=actor.user_id,
        reason=payload.reason,
    )


@router.post("/thesis-registrations/{registration_id}/cancel", response_model=RegistrationOut)
def cancel_registration(
    registration_id: int,
    payload: RegistrationDecision,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> RegistrationOut:
    return registrations.cancel_registration(
        db,
        registration_id,
        student_id=actor.student_id,
        teacher_id=actor.teacher_id,
        decided_by_user_id=actor.user_id,
        reason=payload.reason,
    )


@router.patch("/thesis-registrations/{registration_id}", response_model=RegistrationOut)
def update_registration(
    registration_id: int,
    payload: RegistrationUpdate,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> RegistrationOut:
    return registrations.update_registration(
        db,
        registration_id,
        teacher_id=teacher_id,
        **payload.model_dump(exclude_unset=True),
    )


@router.get("/theses", response_model=list[ThesisOut])
def list_theses(
    semester_id: int | None = Query(default=None),
    student_id: int | None = Query(default=None),
    supervisor_teacher_id: int | None = Query(default=None),
    thesis_status: ThesisStatus | None = Query(default=None, alias="status"),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[ThesisOut]:
    return theses.list_theses(
        db,
        semester_id=semester_id,
        student_id=student_id,
        supervisor_teacher_id=supervisor_teacher_id,
        status=thesis_status,
    )


@router.get("/theses/assigned", response_model=list[ThesisOut])
def list_my_theses(
    role: AssignmentRole | None = Query(default=None),
    semester_id: int | None = Query(default=None),
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> list[ThesisOut]:
    return assignments.list_theses_for_teacher(db, teacher_id, role=role, semester_id=semester_id)


@router.get("/theses/{thesis_id}", response_model=ThesisDetailOut)
def get_thesis_detail(thesis_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> ThesisDetailOut:
    return ThesisDetailOut.model_validate(theses.get_thesis_detail(db, thesis_id))


@router.post("/theses/{thesis_id}/start", response_model=ThesisOut)
def start_thesis(thesis_id: int, teacher_id: int = Depends(require_teacher), db: Session = Depends(get_db)) -> ThesisOut:
    return theses.start_thesis(db, thesis_id, teacher_id=teacher_id)


@router.post("/theses/{thesis_id}/cancel", response_model=ThesisOut)
def cancel_thesis(
    thesis_id: int,
    payload: ThesisCancel,
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> ThesisOut:
    return theses.cancel_thesis(
        db,
        thesis_id,
        student_id=actor.student_id,
        teacher_id=actor.teacher_id,
        reason=payload.reason,
    )


@router.get("/theses/{thesis_id}/assignments", response_model=list[AssignmentOut])
def list_assignments(
    thesis_id: int,
    include_inactive: bool = Query(default=False),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[AssignmentOut]:
    return assignments.list_assignments(db, thesis_id, include_inactive=include_inactive)


@router.post("/theses/{thesis_id}/assignments", response_model=AssignmentOut)
def assign_teacher(
    thesis_id: int,
    payload: AssignmentCreate,
    acting_teacher_id: int = Depends(require_teacher),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> AssignmentOut:
    return assignments.assign_teacher(
        db,
        thesis_id,
        teacher_id=payload.teacher_id,
        role=payload.role,
        acting_teacher_id=acting_teacher_id,
        assigned_by_user_id=actor.user_id,
    )


@router.delete("/theses/{thesis_id}/assignments/{teacher_id}/{role}", response_model=AssignmentOut)
def remove_assignment(
    thesis_id: int,
    teacher_id: int,
    role: AssignmentRole,
    acting_teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> AssignmentOut:
    return assignments.remove_assignment(
        db,
        thesis_id,
        teacher_id=teacher_id,
        role=role,
        acting_teacher_id=acting_teacher_id,
    )


@router.post("/thesis-assignments/{assignment_id}/reactivate", response_model=AssignmentOut)
def reactivate_assignment(
    assignment_id: int,
    acting_teacher_id: int = Depends(require_teacher),
    actor: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> AssignmentOut:
    return assignments.reactivate_assignment(
        db,
        assignment_id,
        acting_teacher_id=acting_teacher_id,
        assigned_by_user_id=actor.user_id,
    )


@router.post(
    "/theses/{thesis_id}/defense-session",
    response_model=DefenseSessionOut,
    status_code=status.HTTP_201_CREATED,
)
def schedule_defense_session(
    thesis_id: int,
    payload: DefenseSessionCreate,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> DefenseSessionOut:
    return defense.schedule_defense_session(db, thesis_id, teacher_id=teacher_id, **payload.model_dump())


@router.get("/defense-sessions/upcoming", response_model=list[DefenseSessionOut])
def list_upcoming_sessions(
    semester_id: int | None = Query(default=None),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> list[DefenseSessionOut]:
    return defense.list_upcoming_sessions(db, semester_id=semester_id)


@router.put("/defense-sessions/{session_id}", response_model=DefenseSessionOut)
def reschedule_defense_session(
    session_id: int,
    payload: DefenseSessionReschedule,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> DefenseSessionOut:
    return defense.reschedule_defense_session(db, session_id, teacher_id=teacher_id, **payload.model_dump())


@router.post("/defense-sessions/{session_id}/complete", response_model=DefenseSessionOut)
def complete_defense_session(
    session_id: int,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> DefenseSessionOut:
    return defense.complete_defense_session(db, session_id, teacher_id=teacher_id)


@router.post(
    "/theses/{thesis_id}/evaluations",
    response_model=EvaluationOut,
    status_code=status.HTTP_201_CREATED,
)
def submit_evaluation(
    thesis_id: int,
    payload: EvaluationCreate,
    teacher_id: int = Depends(require_teacher),
    db: Session = Depends(get_db),
) -> EvaluationOut:
    return evaluations.submit_thesis_evaluation(
        db,
        thesis_id,
        evaluator_teacher_id=teacher_id,
        role=payload.role,
        score=payload.score,
        comments=payload.comments,
    )


@router.get("/theses/{thesis_id}/evaluations", response_model=list[EvaluationOut])
def list_evaluations(thesis_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> list[EvaluationOut]:
    return evaluations.list_evaluations(db, thesis_id)


@router.get("/theses/{thesis_id}/final-grade", response_model=FinalGradeOut)
def get_final_grade(thesis_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> FinalGradeOut:
    return evaluations.get_final_grade(db, thesis_id)
