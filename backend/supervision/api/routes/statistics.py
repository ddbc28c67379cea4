from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from supervision.api.deps import Actor, get_actor, get_db
from supervision.services import statistics

router = APIRouter()


@router.get("/statistics/semesters/{semester_id}/pre-theses")
def pre_thesis_counts(semester_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> dict:
    return statistics.pre_thesis_counts(db, semester_id)


@router.get("/statistics/semesters/{semester_id}/applications")
def application_stats(semester_id: int, _: Actor = Depends(get_actor), db: Session = Depends(get_db)) -> dict:
    return statistics.application_stats(db, semester_id)


@router.get("/statistics/theses")
def thesis_outcomes(
    semester_id: int | None = Query(default=None),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    return statistics.thesis_outcomes(db, semester_id)


@router.get("/statistics/grades")
def grade_distribution(
    semester_id: int | None = Query(default=None),
    _: Actor = Depends(get_actor),
    db: Session = Depends(get_db),
) -> dict:
    return statistics.grade_distribution(db, semester_id)
