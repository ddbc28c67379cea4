"""Evaluation collection and final grade computation.

A thesis is graded once every active assignment on it, identified by
teacher and role, has a matching evaluation. The final score is the
arithmetic mean of those evaluations, and it is written in the same
transaction as the evaluation that completed the set.
"""
from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from supervision.core.clock import utc_now
from supervision.core.exceptions import InvalidTransitionError, ResourceNotFoundError, UnauthorizedActionError
from supervision.db.transaction import UnitOfWork, transaction
from supervision.models.thesis import Thesis, ThesisStatus
from supervision.models.thesis_assignment import AssignmentRole, ThesisAssignment
from supervision.models.thesis_evaluation import ThesisEvaluation, ThesisFinalGrade
from supervision.services.lookup import get_or_404
from supervision.services.notifications import EvaluationRef, ThesisRef, student_user_id, teacher_user_id
from supervision.services.scoring import mean_score, validate_score
from supervision.services.state_machine import THESIS

logger = logging.getLogger(__name__)


def _active_assignments(db: Session, thesis_id: int) -> list[ThesisAssignment]:
    return list(
        db.execute(
            select(ThesisAssignment)
            .where(ThesisAssignment.thesis_id == thesis_id, ThesisAssignment.active.is_(True))
            .order_by(ThesisAssignment.id)
        ).scalars()
    )


def _scores_by_slot(db: Session, thesis_id: int) -> dict[tuple[int, AssignmentRole], float]:
    rows = db.execute(select(ThesisEvaluation).where(ThesisEvaluation.thesis_id == thesis_id)).scalars()
    return {(row.evaluator_teacher_id, row.role): row.score for row in rows}


def _required_scores(db: Session, thesis_id: int) -> list[float] | None:
    required = {(row.teacher_id, row.role) for row in _active_assignments(db, thesis_id)}
    if not required:
        return None
    submitted = _scores_by_slot(db, thesis_id)
    if not required.issubset(submitted):
        return None
    return [submitted[slot] for slot in sorted(required, key=lambda slot: (slot[0], slot[1].value))]


def is_fully_evaluated(db: Session, thesis_id: int) -> bool:
    get_or_404(db, Thesis, thesis_id, "Thesis")
    return _required_scores(db, thesis_id) is not None


def finalize_if_complete(unit: UnitOfWork, thesis: Thesis) -> ThesisFinalGrade | None:
    """Write the final grade and complete the thesis when all evaluations are in."""
    db = unit.db
    if thesis.status != ThesisStatus.defense_completed:
        return None
    scores = _required_scores(db, thesis.id)
    if scores is None:
        return None

    final_score = mean_score(scores)
    grade = db.execute(
        unit.locked(select(ThesisFinalGrade).where(ThesisFinalGrade.thesis_id == thesis.id))
    ).scalar_one_or_none()
    now = utc_now()
    if grade is None:
        grade = ThesisFinalGrade(thesis_id=thesis.id, final_score=final_score, computed_at=now)
        db.add(grade)
    else:
        grade.final_score = final_score
        grade.computed_at = now

    THESIS.ensure(thesis.status, ThesisStatus.completed)
    thesis.status = ThesisStatus.completed
    db.flush()
    logger.info("Thesis %s completed with final score %s from %d evaluation(s)", thesis.id, final_score, len(scores))

    unit.notify(
        student_user_id(db, thesis.student_id),
        "THESIS_GRADED",
        "Thesis Graded",
        f"Your thesis has been graded with a final score of {final_score:g}.",
        ThesisRef(thesis.id),
    )
    unit.notify(
        teacher_user_id(db, thesis.supervisor_teacher_id),
        "THESIS_GRADED",
        "Thesis Graded",
        f'The thesis "{thesis.title}" has received its final grade.',
        ThesisRef(thesis.id),
    )
    return grade


def submit_thesis_evaluation(
    db: Session,
    thesis_id: int,
    *,
    evaluator_teacher_id: int,
    role: AssignmentRole,
    score,
    comments: str | None = None,
) -> ThesisEvaluation:
    role = AssignmentRole(role)
    value = validate_score(score)
    with transaction(db, "thesis_evaluation.submit") as unit:
        thesis = get_or_404(db, Thesis, thesis_id, "Thesis", for_update=True)
        if thesis.status != ThesisStatus.defense_completed:
            raise InvalidTransitionError(
                "Evaluations are accepted only after the defense is completed",
                code="INVALID_THESIS_STATUS",
                details={"thesis_id": thesis_id, "status": thesis.status.value},
            )
        assignment = db.execute(
            select(ThesisAssignment).where(
                ThesisAssignment.thesis_id == thesis_id,
                ThesisAssignment.teacher_id == evaluator_teacher_id,
                ThesisAssignment.role == role,
                ThesisAssignment.active.is_(True),
            )
        ).scalar_one_or_none()
        if assignment is None:
            raise UnauthorizedActionError(
                "Teacher is not assigned to evaluate this thesis in that role",
                code="UNAUTHORIZED_EVALUATION",
                details={"thesis_id": thesis_id, "teacher_id": evaluator_teacher_id, "role": role.value},
            )

        evaluation = db.execute(
            unit.locked(
                select(ThesisEvaluation).where(
                    ThesisEvaluation.thesis_id == thesis_id,
                    ThesisEvaluation.evaluator_teacher_id == evaluator_teacher_id,
                    ThesisEvaluation.role == role,
                )
            )
        ).scalar_one_or_none()
        if evaluation is None:
            evaluation = ThesisEvaluation(
                thesis_id=thesis_id,
                evaluator_teacher_id=evaluator_teacher_id,
                role=role,
                score=value,
                comments=comments,
            )
            db.add(evaluation)
        else:
            evaluation.score = value
            evaluation.comments = comments
        db.flush()

        unit.notify(
            teacher_user_id(db, thesis.supervisor_teacher_id),
            "THESIS_EVALUATION_SUBMITTED",
            "Thesis Evaluation Submitted",
            f'A {role.value.replace("_", " ")} evaluation was submitted for "{thesis.title}".',
            EvaluationRef(evaluation.id),
        )
        finalize_if_complete(unit, thesis)
    return evaluation


def get_final_grade(db: Session, thesis_id: int) -> ThesisFinalGrade:
    get_or_404(db, Thesis, thesis_id, "Thesis")
    grade = db.execute(
        select(ThesisFinalGrade).where(ThesisFinalGrade.thesis_id == thesis_id)
    ).scalar_one_or_none()
    if grade is None:
        raise ResourceNotFoundError("Thesis final grade", thesis_id)
    return grade


def list_evaluations(db: Session, thesis_id: int) -> list[ThesisEvaluation]:
    return list(
        db.execute(
            select(ThesisEvaluation)
            .where(ThesisEvaluation.thesis_id == thesis_id)
            .order_by(ThesisEvaluation.id)
        ).scalars()
    )
