from __future__ import annotations

from collections.abc import Iterable
from decimal import ROUND_HALF_UP, Decimal
import math

from supervision.core.config import get_settings
from supervision.core.exceptions import WorkflowValidationError


def validate_score(score) -> float:
    settings = get_settings()
    try:
        value = float(score)
    except (TypeError, ValueError) as exc:
        raise WorkflowValidationError("Score must be a number", code="INVALID_SCORE") from exc
    if math.isnan(value) or not settings.score_min <= value <= settings.score_max:
        raise WorkflowValidationError(
            f"Score must be between {settings.score_min:g} and {settings.score_max:g}",
            code="INVALID_SCORE",
            details={"score": score},
        )
    return value


def round_score(value: float | Decimal) -> float:
    places = Decimal(1).scaleb(-get_settings().final_score_decimals)
    return float(Decimal(str(value)).quantize(places, rounding=ROUND_HALF_UP))


def mean_score(scores: Iterable[float]) -> float:
    values = [Decimal(str(item)) for item in scores]
    if not values:
        raise ValueError("mean_score() needs at least one score")
    return round_score(sum(values) / len(values))


def is_passing(score: float | None) -> bool:
    return score is not None and score >= get_settings().passing_score
