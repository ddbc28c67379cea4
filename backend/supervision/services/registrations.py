from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.clock import utc_now
from supervision.core.exceptions import (
    ExclusivityViolationError,
    InvalidTransitionError,
    UnauthorizedActionError,
    WorkflowValidationError,
)
from supervision.db.transaction import UnitOfWork, transaction
from supervision.models.thesis import Thesis, ThesisStatus
from supervision.models.thesis_assignment import AssignmentRole, ThesisAssignment
from supervision.models.thesis_proposal import ProposalStatus, ThesisProposal
from supervision.models.thesis_registration import RegistrationStatus, ThesisRegistration
from supervision.services.lookup import get_or_404, require_participant, require_supervisor
from supervision.services.notifications import RegistrationRef, ThesisRef, student_user_id, teacher_user_id
from supervision.services.state_machine import THESIS_REGISTRATION

logger = logging.getLogger(__name__)

CASCADE_REASON = "another registration was approved"


def _student_registrations(unit: UnitOfWork, student_id: int, semester_id: int) -> list[ThesisRegistration]:
    return list(
        unit.db.execute(
            unit.locked(
                select(ThesisRegistration)
                .where(
                    ThesisRegistration.student_id == student_id,
                    ThesisRegistration.semester_id == semester_id,
                )
                .order_by(ThesisRegistration.id)
            )
        ).scalars()
    )


def create_registration(
    db: Session,
    proposal_id: int,
    *,
    teacher_id: int,
    title: str | None = None,
    abstract: str | None = None,
) -> ThesisRegistration:
    with transaction(db, "thesis_registration.create") as unit:
        proposal = get_or_404(db, ThesisProposal, proposal_id, "Thesis proposal", for_update=True)
        if proposal.target_teacher_id != teacher_id:
            raise UnauthorizedActionError(
                "Only the supervising teacher can register this thesis",
                code="NOT_TARGET_TEACHER",
                details={"proposal_id": proposal_id, "teacher_id": teacher_id},
            )
        if proposal.status != ProposalStatus.accepted:
            raise InvalidTransitionError(
                "Only an accepted proposal can be registered",
                code="PROPOSAL_NOT_ACCEPTED",
                details={"proposal_id": proposal_id, "status": proposal.status.value},
            )

        live = next(
            (
                row
                for row in _student_registrations(unit, proposal.student_id, proposal.semester_id)
                if row.status in (RegistrationStatus.pending_approval, RegistrationStatus.approved)
            ),
            None,
        )
        if live is not None:
            raise ExclusivityViolationError(
                "Student already has a thesis registration this semester",
                code="REGISTRATION_EXISTS",
                details={"registration_id": live.id, "status": live.status.value},
            )

        registration = ThesisRegistration(
            proposal_id=proposal.id,
            student_id=proposal.student_id,
            supervisor_teacher_id=proposal.target_teacher_id,
            semester_id=proposal.semester_id,
            title=title or proposal.title,
            abstract=abstract if abstract is not None else proposal.abstract,
            status=RegistrationStatus.pending_approval,
            submitted_by_teacher_id=teacher_id,
            submitted_at=utc_now(),
        )
        db.add(registration)
        db.flush()

        unit.notify(
            student_user_id(db, registration.student_id),
            "THESIS_REGISTRATION_SUBMITTED",
            "Thesis Registration Submitted",
            f'Your thesis "{registration.title}" has been submitted for approval.',
            RegistrationRef(registration.id),
        )
    return registration


def approve_registration(
    db: Session,
    registration_id: int,
    *,
    approved_by_user_id: int,
    reason: str | None = None,
) -> Thesis:
    """Approve a registration and open the thesis it describes.

    Every other registration still pending for the same student and
    semester is cancelled in the same transaction. Returns the new thesis.
    """
    with transaction(db, "thesis_registration.approve") as unit:
        registration = get_or_404(db, ThesisRegistration, registration_id, "Thesis registration", for_update=True)
        THESIS_REGISTRATION.ensure(registration.status, RegistrationStatus.approved)

        now = utc_now()
        siblings = [
            row
            for row in _student_registrations(unit, registration.student_id, registration.semester_id)
            if row.id != registration.id
        ]
        approved = next((row for row in siblings if row.status == RegistrationStatus.approved), None)
        if approved is not None:
            raise ExclusivityViolationError(
                "Student already has an approved registration this semester",
                code="REGISTRATION_EXISTS",
                details={"registration_id": approved.id},
            )

        cancelled = []
        for row in siblings:
            if row.status != RegistrationStatus.pending_approval:
                continue
            row.status = RegistrationStatus.cancelled
            row.decision_reason = CASCADE_REASON
            row.decided_at = now
            cancelled.append(row)

        registration.status = RegistrationStatus.approved
        registration.approved_by_user_id = approved_by_user_id
        registration.decision_reason = reason
        registration.decided_at = now
        db.flush()
        if cancelled:
            logger.info(
                "Registration %s approved; cancelled sibling registration(s) %s",
                registration.id,
                ", ".join(str(row.id) for row in cancelled),
            )

        existing = db.execute(
            select(Thesis.id).where(
                Thesis.student_id == registration.student_id,
                Thesis.semester_id == registration.semester_id,
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise ExclusivityViolationError(
                "Student already has a thesis this semester",
                code="THESIS_EXISTS",
                details={"thesis_id": existing},
            )

        thesis = Thesis(
            student_id=registration.student_id,
            semester_id=registration.semester_id,
            registration_id=registration.id,
            supervisor_teacher_id=registration.supervisor_teacher_id,
            title=registration.title,
            abstract=registration.abstract,
            status=ThesisStatus.in_progress,
        )
        db.add(thesis)
        db.flush()
        db.add(
            ThesisAssignment(
                thesis_id=thesis.id,
                teacher_id=registration.supervisor_teacher_id,
                role=AssignmentRole.supervisor,
                active=True,
                assigned_by_user_id=approved_by_user_id,
                assigned_at=now,
            )
        )
        db.flush()

        unit.notify(
            student_user_id(db, registration.student_id),
            "THESIS_REGISTRATION_APPROVED",
            "Thesis Registration Approved",
            f'Your thesis "{thesis.title}" has been approved and is now in progress.',
            ThesisRef(thesis.id),
        )
        unit.notify(
            teacher_user_id(db, registration.supervisor_teacher_id),
            "THESIS_REGISTRATION_APPROVED",
            "Thesis Registration Approved",
            f'The thesis "{thesis.title}" you supervise has been approved.',
            ThesisRef(thesis.id),
        )
    return thesis


def _close_registration(
    db: Session,
    registration_id: int,
    *,
    target: RegistrationStatus,
    reason: str | None,
    decided_by_user_id: int | None = None,
    actor: dict[str, int | None] | None = None,
) -> ThesisRegistration:
    with transaction(db, f"thesis_registration.{target.value}") as unit:
        registration = get_or_404(db, ThesisRegistration, registration_id, "Thesis registration", for_update=True)
        if actor is not None:
            require_participant(registration, "Thesis registration", **actor)
        THESIS_REGISTRATION.ensure(registration.status, target)
        registration.status = target
        registration.decision_reason = reason
        registration.decided_at = utc_now()
        registration.decided_by_user_id = decided_by_user_id
        db.flush()

        content = f'Your thesis registration "{registration.title}" has been {target.value}.'
        if reason:
            content += f" Reason: {reason}"
        unit.notify(
            student_user_id(db, registration.student_id),
            f"THESIS_REGISTRATION_{target.value.upper()}",
            f"Thesis Registration {target.value.capitalize()}",
            content,
            RegistrationRef(registration.id),
        )
    return registration


def reject_registration(
    db: Session,
    registration_id: int,
    *,
    decided_by_user_id: int | None = None,
    reason: str | None = None,
) -> ThesisRegistration:
    return _close_registration(
        db,
        registration_id,
        target=RegistrationStatus.rejected,
        reason=reason,
        decided_by_user_id=decided_by_user_id,
    )


def cancel_registration(
    db: Session,
    registration_id: int,
    *,
    student_id: int | None = None,
    teacher_id: int | None = None,
    decided_by_user_id: int | None = None,
    reason: str | None = None,
) -> ThesisRegistration:
    """Withdraw a registration on behalf of its student or supervisor."""
    return _close_registration(
        db,
        registration_id,
        target=RegistrationStatus.cancelled,
        reason=reason,
        decided_by_user_id=decided_by_user_id,
        actor={"student_id": student_id, "teacher_id": teacher_id},
    )


def update_registration(
    db: Session,
    registration_id: int,
    *,
    teacher_id: int | None,
    title: str | None = None,
    abstract: str | None = None,
) -> ThesisRegistration:
    with transaction(db, "thesis_registration.update"):
        registration = get_or_404(db, ThesisRegistration, registration_id, "Thesis registration", for_update=True)
        require_supervisor(registration, teacher_id, "Thesis registration")
        if registration.status != RegistrationStatus.pending_approval:
            raise InvalidTransitionError(
                "Only a registration awaiting approval can be edited",
                code="REGISTRATION_NOT_EDITABLE",
                details={"registration_id": registration_id, "status": registration.status.value},
            )
        if title is not None:
            if not title.strip():
                raise WorkflowValidationError(
                    "Registration title must not be blank",
                    code="MISSING_TITLE",
                    details={"registration_id": registration_id},
                )
            registration.title = title.strip()
        if abstract is not None:
            registration.abstract = abstract
        db.flush()
    return registration


def get_registration(db: Session, registration_id: int) -> ThesisRegistration:
    return get_or_404(db, ThesisRegistration, registration_id, "Thesis registration")


def list_registrations(
    db: Session,
    *,
    student_id: int | None = None,
    supervisor_teacher_id: int | None = None,
    semester_id: int | None = None,
    status: RegistrationStatus | None = None,
) -> list[ThesisRegistration]:
    query = select(ThesisRegistration)
    if student_id is not None:
        query = query.where(ThesisRegistration.student_id == student_id)
    if supervisor_teacher_id is not None:
        query = query.where(ThesisRegistration.supervisor_teacher_id == supervisor_teacher_id)
    if semester_id is not None:
        query = query.where(ThesisRegistration.semester_id == semester_id)
    if status is not None:
        query = query.where(ThesisRegistration.status == status)
    return list(db.execute(query.order_by(ThesisRegistration.id)).scalars())
