"""Attendance summaries and validation of attendance taken per class session."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Sequence, Tuple

from .grading import format_score

ATTENDANCE_STATUSES = ("present", "absent", "late")
MAX_OBSERVATION_LENGTH = 500
DATE_FORMAT = "%Y-%m-%d"

_SESSION_TIME_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


@dataclass
class AttendanceSummary:
    present: int = 0
    absent: int = 0
    late: int = 0

    @property
    def total(self) -> int:
        return self.present + self.absent + self.late

    @property
    def rate(self) -> float:
        """Share of sessions attended, late arrivals included. 100 with no records."""

        if self.total == 0:
            return 100.0
        return (self.present + self.late) / self.total * 100

    def describe(self) -> str:
        return (
            f"Presente: {self.present}, Ausente: {self.absent}, Tarde: {self.late}. "
            f"Tasa de Asistencia: {format_score(self.rate, 'percent')}%."
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "present": self.present,
            "absent": self.absent,
            "late": self.late,
            "total": self.total,
            "rate": round(self.rate, 2),
        }


def summarize_attendance(records: Iterable[Mapping[str, Any]]) -> AttendanceSummary:
    summary = AttendanceSummary()
    for record in records:
        status = record.get("status")
        if status in ATTENDANCE_STATUSES:
            setattr(summary, status, getattr(summary, status) + 1)
    return summary


def absence_observations(records: Iterable[Mapping[str, Any]]) -> List[str]:
    """Observations teachers left on absences, in record order."""

    observations = []
    for record in records:
        if record.get("status") != "absent":
            continue
        text = str(record.get("observation") or "").strip()
        if text:
            observations.append(text)
    return observations


def validate_session_payload(
    payload: Mapping[str, Any] | None, roster: Sequence[str]
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    """Validate one class session of attendance taken for a group.

    Every entry must name a student on ``roster``, at most once. Observations
    are optional and kept only when non-blank.
    """

    if payload is None:
        return {}, {"_global": "Request body must be JSON."}
    if not isinstance(payload, Mapping):
        return {}, {"_global": "Request body must be a JSON object."}

    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    raw_date = str(payload.get("date") or "").strip()
    try:
        cleaned["date"] = datetime.strptime(raw_date, DATE_FORMAT).date().isoformat()
    except ValueError:
        errors["date"] = "Session date must use the YYYY-MM-DD format."

    raw_time = str(payload.get("time") or "").strip()
    if _SESSION_TIME_RE.match(raw_time):
        cleaned["time"] = raw_time
    else:
        errors["time"] = "Invalid time format. Use HH:MM."

    raw_records = payload.get("records")
    records: List[Dict[str, Any]] = []
    if not isinstance(raw_records, list) or not raw_records:
        errors["records"] = "At least one attendance record is required."
        raw_records = []

    seen = set()
    for index, entry in enumerate(raw_records):
        key = f"records[{index}]"
        if not isinstance(entry, Mapping):
            errors[key] = "Records must be objects."
            continue

        student_id = str(entry.get("student_id") or "").strip()
        status = entry.get("status")
        observation = str(entry.get("observation") or "").strip()

        if student_id not in roster:
            errors[key] = "Student is not part of this group."
        elif student_id in seen:
            errors[key] = "Student is listed more than once."
        elif status not in ATTENDANCE_STATUSES:
            errors[key] = "Status must be one of: " + ", ".join(ATTENDANCE_STATUSES) + "."
        elif len(observation) > MAX_OBSERVATION_LENGTH:
            errors[key] = f"Observation must be at most {MAX_OBSERVATION_LENGTH} characters."
        else:
            seen.add(student_id)
            record = {"user_id": student_id, "status": status}
            if observation:
                record["observation"] = observation
            records.append(record)

    cleaned["records"] = records
    return cleaned, errors


__all__ = [
    "ATTENDANCE_STATUSES",
    "AttendanceSummary",
    "absence_observations",
    "summarize_attendance",
    "validate_session_payload",
]
