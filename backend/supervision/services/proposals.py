from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.clock import utc_now
from supervision.core.exceptions import (
    CapacityExhaustedError,
    ExclusivityViolationError,
    InvalidTransitionError,
    UnauthorizedActionError,
    WorkflowValidationError,
)
from supervision.db.transaction import UnitOfWork, transaction
from supervision.models.thesis import Thesis
from supervision.models.thesis_proposal import ProposalStatus, ThesisProposal
from supervision.models.thesis_registration import RegistrationStatus, ThesisRegistration
from supervision.services import capacity
from supervision.services.capacity import CapacityTrack
from supervision.services.lookup import get_or_404, require_active_semester
from supervision.services.notifications import ProposalRef, student_user_id, teacher_user_id
from supervision.services.state_machine import THESIS_PROPOSAL, Decision

ACTIVE_PROPOSAL_STATUSES = (ProposalStatus.submitted, ProposalStatus.accepted)
LIVE_REGISTRATION_STATUSES = (RegistrationStatus.pending_approval, RegistrationStatus.approved)

PROPOSAL_CANCELLED_REASON = "proposal was cancelled"


def _require_student(proposal: ThesisProposal, student_id: int) -> None:
    if proposal.student_id != student_id:
        raise UnauthorizedActionError(
            "Only the proposing student can change this proposal",
            code="NOT_PROPOSAL_OWNER",
            details={"proposal_id": proposal.id, "student_id": student_id},
        )


def _require_target_teacher(proposal: ThesisProposal, teacher_id: int) -> None:
    if proposal.target_teacher_id != teacher_id:
        raise UnauthorizedActionError(
            "Only the teacher this proposal targets can decide it",
            code="NOT_TARGET_TEACHER",
            details={"proposal_id": proposal.id, "teacher_id": teacher_id},
        )


def _student_proposals(unit: UnitOfWork, student_id: int, semester_id: int) -> list[ThesisProposal]:
    return list(
        unit.db.execute(
            unit.locked(
                select(ThesisProposal)
                .where(
                    ThesisProposal.student_id == student_id,
                    ThesisProposal.semester_id == semester_id,
                )
                .order_by(ThesisProposal.id)
            )
        ).scalars()
    )


def submit_proposal(
    db: Session,
    *,
    student_id: int,
    teacher_id: int,
    semester_id: int,
    title: str,
    abstract: str | None = None,
    note: str | None = None,
) -> ThesisProposal:
    if not title or not title.strip():
        raise WorkflowValidationError("Proposal title is required", code="MISSING_TITLE")

    with transaction(db, "thesis_proposal.submit") as unit:
        require_active_semester(db, semester_id)
        capacity.require_open(db, teacher_id, semester_id)
        if capacity.remaining(db, teacher_id, semester_id, CapacityTrack.thesis) < 1:
            raise CapacityExhaustedError(
                "Teacher has no remaining thesis slots this semester",
                code="CAPACITY_EXHAUSTED",
                details={"teacher_id": teacher_id, "semester_id": semester_id, "track": CapacityTrack.thesis.value},
            )

        active = next(
            (row for row in _student_proposals(unit, student_id, semester_id) if row.status in ACTIVE_PROPOSAL_STATUSES),
            None,
        )
        if active is not None:
            raise ExclusivityViolationError(
                "Student already has an active thesis proposal this semester",
                code="PROPOSAL_EXISTS",
                details={"proposal_id": active.id, "status": active.status.value},
            )
        registration_id = db.execute(
            select(ThesisRegistration.id).where(
                ThesisRegistration.student_id == student_id,
                ThesisRegistration.semester_id == semester_id,
                ThesisRegistration.status.in_(LIVE_REGISTRATION_STATUSES),
            )
        ).scalars().first()
        if registration_id is not None:
            raise ExclusivityViolationError(
                "Student already has a thesis registration this semester",
                code="REGISTRATION_EXISTS",
                details={"registration_id": registration_id},
            )
        thesis_id = db.execute(
            select(Thesis.id).where(
                Thesis.student_id == student_id,
                Thesis.semester_id == semester_id,
            )
        ).scalars().first()
        if thesis_id is not None:
            raise ExclusivityViolationError(
                "Student already has a thesis this semester",
                code="THESIS_EXISTS",
                details={"thesis_id": thesis_id},
            )

        proposal = ThesisProposal(
            student_id=student_id,
            target_teacher_id=teacher_id,
            semester_id=semester_id,
            title=title.strip(),
            abstract=abstract,
            note=note,
            status=ProposalStatus.submitted,
        )
        db.add(proposal)
        db.flush()

        unit.notify(
            teacher_user_id(db, teacher_id),
            "THESIS_PROPOSAL_SUBMITTED",
            "New Thesis Proposal",
            f'A student proposed the thesis "{proposal.title}" to you.',
            ProposalRef(proposal.id),
        )
    return proposal


def update_proposal(
    db: Session,
    proposal_id: int,
    *,
    student_id: int,
    title: str | None = None,
    abstract: str | None = None,
    note: str | None = None,
) -> ThesisProposal:
    with transaction(db, "thesis_proposal.update"):
        proposal = get_or_404(db, ThesisProposal, proposal_id, "Thesis proposal", for_update=True)
        _require_student(proposal, student_id)
        if proposal.status != ProposalStatus.submitted:
            raise InvalidTransitionError(
                f"Proposal is {proposal.status.value} and can no longer be edited",
                code="PROPOSAL_NOT_EDITABLE",
                details={"proposal_id": proposal_id, "status": proposal.status.value},
            )
        if title is not None:
            if not title.strip():
                raise WorkflowValidationError("Proposal title is required", code="MISSING_TITLE")
            proposal.title = title.strip()
        if abstract is not None:
            proposal.abstract = abstract
        if note is not None:
            proposal.note = note
        db.flush()
    return proposal


def decide_proposal(
    db: Session,
    proposal_id: int,
    *,
    teacher_id: int,
    decision: Decision,
    note: str | None = None,
) -> ThesisProposal:
    decision = Decision(decision)
    with transaction(db, f"thesis_proposal.{decision.value}") as unit:
        proposal = get_or_404(db, ThesisProposal, proposal_id, "Thesis proposal", for_update=True)
        _require_target_teacher(proposal, teacher_id)
        THESIS_PROPOSAL.ensure(proposal.status, ProposalStatus(decision.value))

        if decision == Decision.accepted:
            holder = next(
                (
                    row
                    for row in _student_proposals(unit, proposal.student_id, proposal.semester_id)
                    if row.status == ProposalStatus.accepted and row.id != proposal.id
                ),
                None,
            )
            if holder is not None:
                raise ExclusivityViolationError(
                    "Student already has an accepted proposal this semester",
                    code="PROPOSAL_ALREADY_ACCEPTED",
                    details={"proposal_id": holder.id},
                )
            capacity.reserve_or_raise(db, teacher_id, proposal.semester_id, CapacityTrack.thesis)
            proposal.status = ProposalStatus.accepted
        else:
            proposal.status = ProposalStatus.rejected
        proposal.decided_at = utc_now()
        proposal.note = note
        db.flush()

        content = f'Your thesis proposal "{proposal.title}" has been {decision.value}.'
        if note:
            content += f" Note: {note}"
        unit.notify(
            student_user_id(db, proposal.student_id),
            f"THESIS_PROPOSAL_{decision.value.upper()}",
            f"Thesis Proposal {decision.value.capitalize()}",
            content,
            ProposalRef(proposal.id),
        )
    return proposal


def cancel_proposal(
    db: Session,
    proposal_id: int,
    *,
    student_id: int,
    note: str | None = None,
) -> ThesisProposal:
    """Withdraw a proposal.

    Withdrawing an accepted proposal gives the thesis slot back to the
    teacher and cancels registrations still waiting on it. Once one of its
    registrations was approved the proposal can no longer be withdrawn; the
    thesis has to be cancelled instead.
    """
    with transaction(db, "thesis_proposal.cancel") as unit:
        proposal = get_or_404(db, ThesisProposal, proposal_id, "Thesis proposal", for_update=True)
        _require_student(proposal, student_id)
        THESIS_PROPOSAL.ensure(proposal.status, ProposalStatus.cancelled)
        now = utc_now()

        if proposal.status == ProposalStatus.accepted:
            registrations = list(
                db.execute(
                    unit.locked(
                        select(ThesisRegistration).where(ThesisRegistration.proposal_id == proposal.id)
                    )
                ).scalars()
            )
            approved = next((row for row in registrations if row.status == RegistrationStatus.approved), None)
            if approved is not None:
                raise InvalidTransitionError(
                    "A registration for this proposal was already approved",
                    code="REGISTRATION_APPROVED",
                    details={"proposal_id": proposal_id, "registration_id": approved.id},
                )
            for row in registrations:
                if row.status == RegistrationStatus.pending_approval:
                    row.status = RegistrationStatus.cancelled
                    row.decision_reason = PROPOSAL_CANCELLED_REASON
                    row.decided_at = now
            capacity.release(db, proposal.target_teacher_id, proposal.semester_id, CapacityTrack.thesis)

        proposal.status = ProposalStatus.cancelled
        proposal.decided_at = now
        if note is not None:
            proposal.note = note
        db.flush()

        unit.notify(
            teacher_user_id(db, proposal.target_teacher_id),
            "THESIS_PROPOSAL_CANCELLED",
            "Thesis Proposal Withdrawn",
            f'The thesis proposal "{proposal.title}" has been withdrawn by the student.',
            ProposalRef(proposal.id),
        )
    return proposal


def get_proposal(db: Session, proposal_id: int) -> ThesisProposal:
    return get_or_404(db, ThesisProposal, proposal_id, "Thesis proposal")


def list_proposals(
    db: Session,
    *,
    student_id: int | None = None,
    teacher_id: int | None = None,
    semester_id: int | None = None,
    status: ProposalStatus | None = None,
) -> list[ThesisProposal]:
    query = select(ThesisProposal)
    if student_id is not None:
        query = query.where(ThesisProposal.student_id == student_id)
    if teacher_id is not None:
        query = query.where(ThesisProposal.target_teacher_id == teacher_id)
    if semester_id is not None:
        query = query.where(ThesisProposal.semester_id == semester_id)
    if status is not None:
        query = query.where(ThesisProposal.status == status)
    return list(db.execute(query.order_by(ThesisProposal.id)).scalars())
