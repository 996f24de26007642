"""Reports and analytics endpoints."""

from __future__ import annotations

import csv
import io
import logging
from datetime import date
from typing import Any, Dict, List, Mapping, Tuple

from flask import Blueprint, Response, jsonify, request
from pymongo.errors import PyMongoError

from ..attendance import absence_observations, summarize_attendance
from ..config import ConfigError
from ..db import (
    get_attendance_collection,
    get_groups_collection,
    get_students_collection,
    load_grading_config,
)
from ..grading import (
    MAX_ACTIVITY_COLUMNS,
    GradingConfig,
    accumulated_total,
    format_numeric,
    format_score,
    is_number,
    partial_key,
    partial_total,
    summarize_level,
)
from ..utils.http import clean_string, handle_config_error, handle_db_error, json_error
from ..utils.params import ParamError, parse_id_filter, parse_level_name

reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")

logger = logging.getLogger(__name__)

SPANISH_ORDINALS = {1: "1er", 2: "2do", 3: "3er", 4: "4to"}
ENGLISH_ORDINALS = {1: "1st", 2: "2nd", 3: "3rd", 4: "4th"}


def _score_or_none(entry: Any) -> float | None:
    if isinstance(entry, Mapping) and is_number(entry.get("score")):
        return entry["score"]
    return None


def build_partial_report_row(
    student: Mapping[str, Any], level_name: str | None, config: GradingConfig
) -> Dict[str, Any]:
    """Flatten one student's level into the columns of the partial grades report."""

    levels = student.get("grades_by_level") or {}
    level = levels.get(level_name) if level_name else None
    level = level if isinstance(level, Mapping) else {}

    partials = []
    for number in range(1, config.number_of_partials + 1):
        partial = level.get(partial_key(number))
        partial = partial if isinstance(partial, Mapping) else {}
        activities = partial.get("accumulated_activities")
        activities = activities if isinstance(activities, list) else []

        columns = []
        for index in range(MAX_ACTIVITY_COLUMNS):
            activity = activities[index] if index < len(activities) else None
            name = activity.get("name") if isinstance(activity, Mapping) else None
            columns.append(
                {
                    "name": name or f"Act. {index + 1}",
                    "score": _score_or_none(activity),
                }
            )

        partials.append(
            {
                "number": number,
                "activities": columns,
                "exam": _score_or_none(partial.get("exam")),
                "accumulated_total": format_numeric(accumulated_total(activities, config)),
                "total": format_numeric(partial_total(partial, config)),
            }
        )

    summary = summarize_level(level, config)
    return {
        "student_id": str(student.get("_id", "")),
        "name": student.get("name"),
        "phone": student.get("phone"),
        "level": level_name,
        "partials": partials,
        "final_grade": format_numeric(summary.final_grade),
        "passed": summary.passed,
    }


def partial_report_table(rows: List[Dict[str, Any]], config: GradingConfig) -> List[List[Any]]:
    """Lay report rows out under the academy's four-row spreadsheet header."""

    columns_per_partial = MAX_ACTIVITY_COLUMNS + 2
    partial_numbers = range(1, config.number_of_partials + 1)

    header_partials: List[Any] = ["", ""]
    header_groups: List[Any] = ["Nombres", "Teléfono"]
    header_labels: List[Any] = ["Evaluación", ""]
    header_max: List[Any] = ["Puntuación", ""]

    for number in partial_numbers:
        header_partials.append(f"{SPANISH_ORDINALS[number]} Parcial")
        header_partials.extend([""] * (columns_per_partial - 1))

        header_groups.append("Acumulado")
        header_groups.extend([""] * (MAX_ACTIVITY_COLUMNS - 1))
        header_groups.extend(["Examen", "Nota Parcial"])

        header_labels.extend(f"Act. {index}" for index in range(1, MAX_ACTIVITY_COLUMNS + 1))
        header_labels.extend(["", ENGLISH_ORDINALS[number]])

        header_max.extend(
            [format_numeric(config.max_individual_activity_score)] * MAX_ACTIVITY_COLUMNS
        )
        header_max.append(format_numeric(config.max_exam_score))
        header_max.append(format_numeric(config.max_partial_score))

    header_partials.append("Nota Final")
    header_groups.append("NF")
    header_labels.append("")
    header_max.append(format_numeric(config.max_partial_score))

    table = [header_partials, header_groups, header_labels, header_max]
    for row in rows:
        line: List[Any] = [row.get("name") or "", row.get("phone") or ""]
        for partial in row["partials"]:
            line.extend(format_numeric(column["score"]) for column in partial["activities"])
            line.append(format_numeric(partial["exam"]))
            line.append(partial["total"])
        line.append(row["final_grade"])
        table.append(["" if value is None else value for value in line])
    return table


def grades_summary_text(level_name: str, level: Mapping[str, Any], config: GradingConfig) -> str:
    """Sentence-style grade summary for a level, skipping partials with no total."""

    maximum = f"{config.max_partial_score:g}"
    summary = summarize_level(level, config)

    parts = [f"Nivel: {level_name}."]
    for number, total in enumerate(summary.partial_totals, start=1):
        if total is not None:
            parts.append(f"Total Parcial {number}: {format_score(total, 'summary')}/{maximum}.")
    if summary.final_grade is not None:
        parts.append(f"Calificación Final: {format_score(summary.final_grade, 'final')}/{maximum}.")
    return " ".join(parts)


def _load_report_rows(args: Mapping[str, str]) -> Tuple[List[Dict[str, Any]], GradingConfig] | None:
    """Fetch and flatten the students selected by the report filters.

    Returns ``None`` when the requested group does not exist.
    """

    group_id = parse_id_filter(args.get("group_id"))
    student_id = parse_id_filter(args.get("student_id"))
    raw_level = clean_string(args.get("level"))
    level_override = parse_level_name(raw_level) if raw_level else None

    filters: Dict[str, Any] = {}
    institution_id = clean_string(args.get("institution_id"))
    if institution_id:
        filters["institution_id"] = institution_id

    if group_id:
        group = get_groups_collection().find_one({"_id": group_id}, {"student_ids": 1})
        if not group:
            return None
        student_ids = group.get("student_ids")
        filters["_id"] = {"$in": student_ids if isinstance(student_ids, list) else []}

    if student_id:
        if "_id" in filters and student_id not in filters["_id"]["$in"]:
            filters["_id"] = {"$in": []}
        else:
            filters["_id"] = student_id

    config = load_grading_config()
    cursor = get_students_collection().find(filters).sort([("name", 1)])
    rows = [
        build_partial_report_row(document, level_override or document.get("level"), config)
        for document in cursor
    ]
    return rows, config


@reports_bp.get("/partial-grades")
def partial_grades_report():
    try:
        loaded = _load_report_rows(request.args)
        if loaded is None:
            return json_error("Group not found.", 404)
        rows, config = loaded
        return jsonify({"grading_config": config.to_dict(), "rows": rows})
    except ParamError as exc:
        return json_error(str(exc), 400)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to build partial grades report", exc)


@reports_bp.get("/partial-grades.csv")
def export_partial_grades_csv():
    try:
        loaded = _load_report_rows(request.args)
        if loaded is None:
            return json_error("Group not found.", 404)
        rows, config = loaded
    except ParamError as exc:
        return json_error(str(exc), 400)
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to export partial grades", exc)

    if not rows:
        return json_error("No data to export.", 404)

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerows(partial_report_table(rows, config))
    logger.info("Exported partial grades report with %d row(s)", len(rows))

    filename = f"Reporte_Notas_Parciales_{date.today().isoformat()}.csv"
    response = Response(output.getvalue(), mimetype="text/csv")
    response.headers["Content-Disposition"] = f"attachment; filename={filename}"
    return response


@reports_bp.get("/performance/<student_id>")
def student_performance(student_id: str):
    raw_level = clean_string(request.args.get("level"))
    try:
        level_override = parse_level_name(raw_level) if raw_level else None
    except ParamError as exc:
        return json_error(str(exc), 400)

    try:
        student = get_students_collection().find_one(
            {"_id": student_id}, {"name": 1, "level": 1, "grades_by_level": 1}
        )
        if not student:
            return json_error("Student not found.", 404)

        levels = student.get("grades_by_level") or {}
        level_name = level_override or student.get("level")
        if not level_name and levels:
            level_name = sorted(levels)[0]
        level = levels.get(level_name) if level_name else None
        if not isinstance(level, Mapping):
            return json_error("No grade data for this level.", 404)

        config = load_grading_config()
        records = list(
            get_attendance_collection().find({"user_id": student_id}).sort([("timestamp", 1)])
        )
        attendance = summarize_attendance(records)

        return jsonify(
            {
                "student_id": student_id,
                "name": student.get("name"),
                "level": level_name,
                "grades_summary": grades_summary_text(level_name, level, config),
                "summary": summarize_level(level, config).to_dict(),
                "attendance": attendance.to_dict(),
                "attendance_summary": attendance.describe(),
                "observations": absence_observations(records),
            }
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to build performance summary", exc)


__all__ = [
    "build_partial_report_row",
    "grades_summary_text",
    "partial_report_table",
    "reports_bp",
]
