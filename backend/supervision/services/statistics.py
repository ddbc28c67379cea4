"""Read-only reporting over workflow records.

These queries are not linearizable with concurrent writes; they read
whatever is committed at the time.
"""
from __future__ import annotations

from collections.abc import Iterable
import math

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from supervision.core.config import get_settings
from supervision.models.pre_thesis import PreThesis, PreThesisStatus
from supervision.models.thesis import Thesis, ThesisStatus
from supervision.models.thesis_evaluation import ThesisFinalGrade
from supervision.models.topic import ApplicationStatus, Topic, TopicApplication
from supervision.services.scoring import is_passing, mean_score


def _status_counts(rows: Iterable[tuple], statuses) -> dict[str, int]:
    counts = {status.value: 0 for status in statuses}
    for status, count in rows:
        key = status.value if hasattr(status, "value") else str(status)
        counts[key] = int(count)
    return counts


def pre_thesis_counts(db: Session, semester_id: int) -> dict[str, int]:
    rows = db.execute(
        select(PreThesis.status, func.count(PreThesis.id))
        .where(PreThesis.semester_id == semester_id)
        .group_by(PreThesis.status)
    ).all()
    counts = _status_counts(rows, PreThesisStatus)
    counts["total"] = sum(counts.values())
    return counts


def application_stats(db: Session, semester_id: int) -> dict[str, int]:
    rows = db.execute(
        select(TopicApplication.status, func.count(TopicApplication.id))
        .join(Topic, Topic.id == TopicApplication.topic_id)
        .where(Topic.semester_id == semester_id)
        .group_by(TopicApplication.status)
    ).all()
    counts = _status_counts(rows, ApplicationStatus)
    counts["total"] = sum(counts.values())
    return counts


def thesis_outcomes(db: Session, semester_id: int | None = None) -> dict:
    status_query = select(Thesis.status, func.count(Thesis.id)).group_by(Thesis.status)
    grade_query = select(ThesisFinalGrade.final_score).join(Thesis, Thesis.id == ThesisFinalGrade.thesis_id)
    if semester_id is not None:
        status_query = status_query.where(Thesis.semester_id == semester_id)
        grade_query = grade_query.where(Thesis.semester_id == semester_id)

    by_status = _status_counts(db.execute(status_query).all(), ThesisStatus)
    scores = list(db.execute(grade_query).scalars())
    passed = sum(1 for score in scores if is_passing(score))
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "graded": len(scores),
        "passed": passed,
        "failed": len(scores) - passed,
        "average_score": mean_score(scores) if scores else None,
    }


def _bucket(scores: Iterable[float]) -> dict[str, int]:
    settings = get_settings()
    low = int(math.floor(settings.score_min))
    high = int(math.ceil(settings.score_max))
    buckets = {f"{start}-{start + 1}": 0 for start in range(low, high)}
    for score in scores:
        # The top of the scale belongs to the last bucket.
        start = min(int(math.floor(score)), high - 1)
        buckets[f"{start}-{start + 1}"] += 1
    return buckets


def grade_distribution(db: Session, semester_id: int | None = None) -> dict[str, dict[str, int]]:
    thesis_query = select(ThesisFinalGrade.final_score).join(Thesis, Thesis.id == ThesisFinalGrade.thesis_id)
    pre_thesis_query = select(PreThesis.final_score).where(PreThesis.final_score.is_not(None))
    if semester_id is not None:
        thesis_query = thesis_query.where(Thesis.semester_id == semester_id)
        pre_thesis_query = pre_thesis_query.where(PreThesis.semester_id == semester_id)
    return {
        "thesis": _bucket(db.execute(thesis_query).scalars()),
        "pre_thesis": _bucket(db.execute(pre_thesis_query).scalars()),
    }
