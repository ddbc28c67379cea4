from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.clock import utc_now
from supervision.core.exceptions import InvalidTransitionError, ResourceNotFoundError
from supervision.db.transaction import UnitOfWork, transaction
from supervision.models.thesis import Thesis
from supervision.models.thesis_assignment import AssignmentRole, ThesisAssignment
from supervision.models.thesis_evaluation import ThesisEvaluation
from supervision.services import capacity
from supervision.services.evaluations import finalize_if_complete
from supervision.services.lookup import get_or_404, require_supervisor
from supervision.services.notifications import ThesisRef, teacher_user_id
from supervision.services.state_machine import ASSIGNABLE_THESIS_STATUSES


def _require_assignable(thesis: Thesis) -> None:
    if thesis.status not in ASSIGNABLE_THESIS_STATUSES:
        raise InvalidTransitionError(
            f"Thesis is {thesis.status.value} and does not accept assignments",
            code="INVALID_THESIS_STATUS",
            details={"thesis_id": thesis.id, "status": thesis.status.value},
        )


def _activate(
    unit: UnitOfWork,
    thesis: Thesis,
    assignment: ThesisAssignment,
    assigned_by_user_id: int | None,
) -> None:
    assignment.active = True
    assignment.assigned_at = utc_now()
    assignment.assigned_by_user_id = assigned_by_user_id
    assignment.removed_at = None
    unit.db.flush()
    unit.notify(
        teacher_user_id(unit.db, assignment.teacher_id),
        "THESIS_ASSIGNMENT",
        "Thesis Assignment",
        f'You have been assigned as {assignment.role.value.replace("_", " ")} for the thesis "{thesis.title}".',
        ThesisRef(thesis.id),
    )


def assign_teacher(
    db: Session,
    thesis_id: int,
    *,
    teacher_id: int,
    role: AssignmentRole,
    acting_teacher_id: int | None,
    assigned_by_user_id: int | None = None,
) -> ThesisAssignment:
    """Assign a teacher to a thesis in a role.

    Only the thesis supervisor builds the committee. Assigning the same
    teacher and role again refreshes the existing row, reactivating it if it
    had been removed.
    """
    role = AssignmentRole(role)
    with transaction(db, "thesis_assignment.assign") as unit:
        thesis = get_or_404(db, Thesis, thesis_id, "Thesis", for_update=True)
        require_supervisor(thesis, acting_teacher_id, "Thesis")
        _require_assignable(thesis)
        capacity.require_open(db, teacher_id, thesis.semester_id)

        assignment = db.execute(
            unit.locked(
                select(ThesisAssignment).where(
                    ThesisAssignment.thesis_id == thesis_id,
                    ThesisAssignment.teacher_id == teacher_id,
                    ThesisAssignment.role == role,
                )
            )
        ).scalar_one_or_none()
        if assignment is None:
            assignment = ThesisAssignment(thesis_id=thesis_id, teacher_id=teacher_id, role=role)
            db.add(assignment)
        _activate(unit, thesis, assignment, assigned_by_user_id)
    return assignment


def remove_assignment(
    db: Session,
    thesis_id: int,
    *,
    teacher_id: int,
    role: AssignmentRole,
    acting_teacher_id: int | None,
) -> ThesisAssignment:
    role = AssignmentRole(role)
    with transaction(db, "thesis_assignment.remove") as unit:
        thesis = get_or_404(db, Thesis, thesis_id, "Thesis", for_update=True)
        require_supervisor(thesis, acting_teacher_id, "Thesis")
        _require_assignable(thesis)
        assignment = db.execute(
            unit.locked(
                select(ThesisAssignment).where(
                    ThesisAssignment.thesis_id == thesis_id,
                    ThesisAssignment.teacher_id == teacher_id,
                    ThesisAssignment.role == role,
                    ThesisAssignment.active.is_(True),
                )
            )
        ).scalar_one_or_none()
        if assignment is None:
            raise ResourceNotFoundError("Thesis assignment", f"{thesis_id}/{teacher_id}/{role.value}")

        evaluated = db.execute(
            select(ThesisEvaluation.id).where(
                ThesisEvaluation.thesis_id == thesis_id,
                ThesisEvaluation.evaluator_teacher_id == teacher_id,
                ThesisEvaluation.role == role,
            )
        ).scalar_one_or_none()
        if evaluated is not None:
            raise InvalidTransitionError(
                "Teacher already evaluated this thesis in that role",
                code="TEACHER_HAS_EVALUATED",
                details={"thesis_id": thesis_id, "teacher_id": teacher_id, "role": role.value},
            )

        assignment.active = False
        assignment.removed_at = utc_now()
        db.flush()

        unit.notify(
            teacher_user_id(db, teacher_id),
            "THESIS_ASSIGNMENT_REMOVED",
            "Thesis Assignment Removed",
            f'You are no longer assigned as {role.value.replace("_", " ")} for the thesis "{thesis.title}".',
            ThesisRef(thesis.id),
        )
        # The remaining evaluators may now form a complete set.
        finalize_if_complete(unit, thesis)
    return assignment


def reactivate_assignment(
    db: Session,
    assignment_id: int,
    *,
    acting_teacher_id: int | None,
    assigned_by_user_id: int | None = None,
) -> ThesisAssignment:
    with transaction(db, "thesis_assignment.reactivate") as unit:
        assignment = get_or_404(db, ThesisAssignment, assignment_id, "Thesis assignment", for_update=True)
        thesis = get_or_404(db, Thesis, assignment.thesis_id, "Thesis", for_update=True)
        require_supervisor(thesis, acting_teacher_id, "Thesis")
        if assignment.active:
            raise InvalidTransitionError(
                "Assignment is already active",
                code="ASSIGNMENT_ACTIVE",
                details={"assignment_id": assignment_id},
            )
        _require_assignable(thesis)
        capacity.require_open(db, assignment.teacher_id, thesis.semester_id)
        _activate(unit, thesis, assignment, assigned_by_user_id)
    return assignment


def list_assignments(db: Session, thesis_id: int, *, include_inactive: bool = False) -> list[ThesisAssignment]:
    get_or_404(db, Thesis, thesis_id, "Thesis")
    query = select(ThesisAssignment).where(ThesisAssignment.thesis_id == thesis_id)
    if not include_inactive:
        query = query.where(ThesisAssignment.active.is_(True))
    return list(db.execute(query.order_by(ThesisAssignment.id)).scalars())


def list_theses_for_teacher(
    db: Session,
    teacher_id: int,
    *,
    role: AssignmentRole | None = None,
    semester_id: int | None = None,
) -> list[Thesis]:
    query = (
        select(Thesis)
        .join(ThesisAssignment, ThesisAssignment.thesis_id == Thesis.id)
        .where(ThesisAssignment.teacher_id == teacher_id, ThesisAssignment.active.is_(True))
    )
    if role is not None:
        query = query.where(ThesisAssignment.role == role)
    if semester_id is not None:
        query = query.where(Thesis.semester_id == semester_id)
    return list(db.execute(query.distinct().order_by(Thesis.id)).scalars())
