"""Grade calculation for partials and academic levels.

Every consumer that shows a partial total or a final level grade (the grade
table, the partial grades report, certificates and the performance summary)
goes through the functions in this module. None of them touch the database
and none of them raise for missing data: an incomplete record yields ``None``.

A level document looks like::

    {
        "partial1": {
            "accumulated_activities": [{"name": "Quiz", "score": 8}, ...],
            "exam": {"name": "Examen", "score": 42},
        },
        "partial2": {...},
        "certificate_code": "CERT-001",
    }
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal, localcontext
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Sequence, Tuple

MIN_PARTIALS = 1
MAX_PARTIALS = 4
MAX_ACTIVITY_COLUMNS = 5
GRADING_CONFIG_ID = "currentGradingConfig"

SCORE_FIELDS: Tuple[str, ...] = (
    "passing_grade",
    "max_individual_activity_score",
    "max_total_accumulated_score",
    "max_exam_score",
)


@dataclass(frozen=True)
class GradingConfig:
    number_of_partials: int = 3
    passing_grade: float = 70.0
    max_individual_activity_score: float = 10.0
    max_total_accumulated_score: float = 50.0
    max_exam_score: float = 50.0

    @property
    def max_partial_score(self) -> float:
        return self.max_total_accumulated_score + self.max_exam_score

    def partial_keys(self) -> List[str]:
        return [partial_key(number) for number in range(1, self.number_of_partials + 1)]

    def to_document(self) -> Dict[str, Any]:
        return {
            "number_of_partials": self.number_of_partials,
            "passing_grade": self.passing_grade,
            "max_individual_activity_score": self.max_individual_activity_score,
            "max_total_accumulated_score": self.max_total_accumulated_score,
            "max_exam_score": self.max_exam_score,
        }

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            key: format_numeric(value) for key, value in self.to_document().items()
        }
        payload["max_partial_score"] = format_numeric(self.max_partial_score)
        return payload


DEFAULT_GRADING_CONFIG = GradingConfig()


@dataclass
class LevelGradeSummary:
    accumulated_totals: List[float | None] = field(default_factory=list)
    partial_totals: List[float | None] = field(default_factory=list)
    final_grade: float | None = None
    passed: bool | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "accumulated_totals": [format_numeric(v) for v in self.accumulated_totals],
            "partial_totals": [format_numeric(v) for v in self.partial_totals],
            "final_grade": format_numeric(self.final_grade),
            "passed": self.passed,
        }


def partial_key(number: int) -> str:
    return f"partial{number}"


def is_number(value: Any) -> bool:
    """Return True for real, finite numbers. Booleans are not scores."""

    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(float(value))
    except OverflowError:
        return False


def format_numeric(value: float | int | None) -> float | int | None:
    if value is None:
        return None
    number = float(value)
    if abs(number - round(number)) < 1e-9:
        return int(round(number))
    return round(number, 2)


def _score_of(entry: Any) -> float | None:
    if not isinstance(entry, Mapping):
        return None
    score = entry.get("score")
    return float(score) if is_number(score) else None


def normalize_grading_config(raw: Mapping[str, Any] | None) -> GradingConfig:
    """Build a config from a stored document, falling back per field to defaults."""

    if not raw:
        return DEFAULT_GRADING_CONFIG

    partials = raw.get("number_of_partials")
    if (
        is_number(partials)
        and float(partials).is_integer()
        and MIN_PARTIALS <= int(partials) <= MAX_PARTIALS
    ):
        number_of_partials = int(partials)
    else:
        number_of_partials = DEFAULT_GRADING_CONFIG.number_of_partials

    values: Dict[str, float] = {}
    for name in SCORE_FIELDS:
        value = raw.get(name)
        values[name] = float(value) if is_number(value) else getattr(DEFAULT_GRADING_CONFIG, name)

    return GradingConfig(number_of_partials=number_of_partials, **values)


def _parse_number(value: Any) -> float:
    if isinstance(value, bool):
        raise ValueError("booleans are not numbers")
    try:
        number = float(value)
    except OverflowError:
        raise ValueError("number is out of range") from None
    if not math.isfinite(number):
        raise ValueError("number must be finite")
    return number


def validate_grading_config_payload(
    payload: Mapping[str, Any] | None, *, current: GradingConfig = DEFAULT_GRADING_CONFIG
) -> Tuple[GradingConfig | None, Dict[str, str]]:
    """Merge an update request onto ``current``.

    Fields missing from the payload keep their current value. Returns the new
    config, or ``None`` together with per-field error messages.
    """

    if payload is None:
        return None, {"_global": "Request body must be JSON."}
    if not isinstance(payload, Mapping):
        return None, {"_global": "Request body must be a JSON object."}

    errors: Dict[str, str] = {}
    merged = current.to_document()

    if "number_of_partials" in payload:
        raw = payload.get("number_of_partials")
        try:
            number = _parse_number(raw)
            if not number.is_integer():
                raise ValueError
            number_int = int(number)
        except (TypeError, ValueError):
            errors["number_of_partials"] = "Number of partials must be an integer."
        else:
            if not MIN_PARTIALS <= number_int <= MAX_PARTIALS:
                errors["number_of_partials"] = (
                    f"Number of partials must be between {MIN_PARTIALS} and {MAX_PARTIALS}."
                )
            else:
                merged["number_of_partials"] = number_int

    for name in SCORE_FIELDS:
        if name not in payload:
            continue
        try:
            number = _parse_number(payload.get(name))
        except (TypeError, ValueError):
            errors[name] = "Value must be numeric."
            continue
        if number < 0:
            errors[name] = "Value must not be negative."
            continue
        merged[name] = number

    if errors:
        return None, errors

    config = GradingConfig(**merged)
    if config.passing_grade > config.max_partial_score:
        errors["passing_grade"] = (
            "Passing grade cannot exceed the maximum partial score "
            f"({config.max_partial_score:g})."
        )
    if config.max_total_accumulated_score < config.max_individual_activity_score:
        errors["max_total_accumulated_score"] = (
            "Accumulated maximum cannot be lower than the maximum of a single activity."
        )

    if errors:
        return None, errors
    return config, {}


def accumulated_total(
    activities: Sequence[Mapping[str, Any]] | None, config: GradingConfig
) -> float | None:
    """Sum the scored activities of a partial, capped at the accumulated maximum."""

    if not activities:
        return None

    scores = [score for score in (_score_of(act) for act in activities) if score is not None]
    if not scores:
        return None

    return min(sum(scores), config.max_total_accumulated_score)


def partial_total(partial: Mapping[str, Any] | None, config: GradingConfig) -> float | None:
    """Accumulated total plus exam, each capped at its own maximum.

    A partial with neither a scored activity nor a scored exam has no total.
    """

    if not isinstance(partial, Mapping):
        return None

    accumulated = accumulated_total(partial.get("accumulated_activities"), config)
    exam = _score_of(partial.get("exam"))

    if accumulated is None and exam is None:
        return None

    exam_value = min(exam, config.max_exam_score) if exam is not None else 0.0
    return (accumulated or 0.0) + exam_value


def partial_totals(level: Mapping[str, Any] | None, config: GradingConfig) -> List[float | None]:
    level = level or {}
    return [partial_total(level.get(key), config) for key in config.partial_keys()]


def level_final_grade(level: Mapping[str, Any] | None, config: GradingConfig) -> float | None:
    """Average of partials 1..N, or None while any of them is still missing."""

    totals = partial_totals(level, config)
    if any(total is None for total in totals):
        return None
    return sum(totals) / config.number_of_partials


def is_passing(score: float | None, config: GradingConfig) -> bool | None:
    if score is None:
        return None
    return score >= config.passing_grade


def summarize_level(level: Mapping[str, Any] | None, config: GradingConfig) -> LevelGradeSummary:
    level = level or {}
    accumulated: List[float | None] = []
    for key in config.partial_keys():
        partial = level.get(key)
        activities = partial.get("accumulated_activities") if isinstance(partial, Mapping) else None
        accumulated.append(accumulated_total(activities, config))

    final_grade = level_final_grade(level, config)
    return LevelGradeSummary(
        accumulated_totals=accumulated,
        partial_totals=partial_totals(level, config),
        final_grade=final_grade,
        passed=is_passing(final_grade, config),
    )


def empty_partial() -> Dict[str, Any]:
    return {"accumulated_activities": [], "exam": {"name": None, "score": None}}


def default_level_grades(config: GradingConfig) -> Dict[str, Any]:
    """Grade structure given to a student starting a new level."""

    level: Dict[str, Any] = {key: empty_partial() for key in config.partial_keys()}
    level["certificate_code"] = None
    return level


def _clean_name(value: Any) -> str | None:
    if value is None:
        return None
    cleaned = str(value).strip()
    return cleaned or None


def _parse_optional_score(value: Any, maximum: float) -> float | None:
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    try:
        number = _parse_number(value)
    except (TypeError, ValueError):
        raise ValueError("Scores must be numeric.") from None
    if number < 0 or number > maximum:
        raise ValueError(f"Score must be between 0 and {maximum:g}.")
    return round(number, 2)


def validate_partial_payload(
    payload: Mapping[str, Any] | None, config: GradingConfig
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Validate the scores of one partial as entered by a teacher."""

    if payload is None:
        return {}, {"_global": "Request body must be JSON."}
    if not isinstance(payload, Mapping):
        return {}, {"_global": "Request body must be a JSON object."}

    errors: Dict[str, str] = {}
    activities: List[Dict[str, Any]] = []

    raw_activities = payload.get("accumulated_activities")
    if raw_activities is None:
        raw_activities = []

    if not isinstance(raw_activities, list):
        errors["accumulated_activities"] = "Accumulated activities must be an array."
    elif len(raw_activities) > MAX_ACTIVITY_COLUMNS:
        errors["accumulated_activities"] = (
            f"At most {MAX_ACTIVITY_COLUMNS} accumulated activities are allowed."
        )
    else:
        for index, entry in enumerate(raw_activities):
            if not isinstance(entry, Mapping):
                errors[f"accumulated_activities[{index}]"] = "Activities must be objects."
                continue
            try:
                score = _parse_optional_score(
                    entry.get("score"), config.max_individual_activity_score
                )
            except ValueError as exc:
                errors[f"accumulated_activities[{index}]"] = str(exc)
                continue
            activities.append({"name": _clean_name(entry.get("name")), "score": score})

    exam: Dict[str, Any] = {"name": None, "score": None}
    raw_exam = payload.get("exam")
    if raw_exam is not None:
        if not isinstance(raw_exam, Mapping):
            errors["exam"] = "Exam must be an object."
        else:
            try:
                exam["score"] = _parse_optional_score(raw_exam.get("score"), config.max_exam_score)
            except ValueError as exc:
                errors["exam"] = str(exc)
            exam["name"] = _clean_name(raw_exam.get("name"))

    return {"accumulated_activities": activities, "exam": exam}, errors


def _fixed_decimal(value: float | int, places: int) -> str:
    """Render with a fixed number of decimals, rounding ties away from zero."""

    with localcontext() as ctx:
        ctx.prec = 400
        quantum = Decimal(1).scaleb(-places)
        return str(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


_SCORE_PLACES = {"activity": 0, "percent": 0, "summary": 1, "total": 1, "final": 2}


def format_score(value: Any, kind: str = "activity") -> str:
    """Render a score the way grade tables print it.

    ``total`` drops the decimal for whole numbers; ``summary`` always keeps one.
    """

    if not is_number(value):
        return "N/A"
    if kind == "total" and float(value).is_integer():
        return _fixed_decimal(value, 0)
    return _fixed_decimal(value, _SCORE_PLACES.get(kind, 0))


__all__ = [
    "DEFAULT_GRADING_CONFIG",
    "GRADING_CONFIG_ID",
    "GradingConfig",
    "LevelGradeSummary",
    "MAX_ACTIVITY_COLUMNS",
    "MAX_PARTIALS",
    "MIN_PARTIALS",
    "accumulated_total",
    "default_level_grades",
    "empty_partial",
    "format_numeric",
    "format_score",
    "is_number",
    "is_passing",
    "level_final_grade",
    "normalize_grading_config",
    "partial_key",
    "partial_total",
    "partial_totals",
    "summarize_level",
    "validate_grading_config_payload",
    "validate_partial_payload",
]
