"""Certificate management endpoints."""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import Blueprint, jsonify, request
from pymongo.errors import PyMongoError

from .. import config as app_config
from ..certificates import build_level_records, find_student_group, render_certificate_text
from ..config import ConfigError
from ..db import (
    get_groups_collection,
    get_sedes_collection,
    get_students_collection,
    get_teachers_collection,
    load_certificate_template,
    load_grading_config,
    save_certificate_template,
)
from ..utils.http import clean_string, handle_config_error, handle_db_error, json_error
from ..utils.params import ParamError, parse_id_filter, parse_level_name

certificates_bp = Blueprint("certificates", __name__, url_prefix="/api/certificates")

logger = logging.getLogger(__name__)

MAX_TEMPLATE_LENGTH = 5000
MAX_CODE_LENGTH = 64


@certificates_bp.get("")
def list_certificate_records():
    group_id = parse_id_filter(request.args.get("group_id"))
    institution_id = clean_string(request.args.get("institution_id"))

    scope: Dict[str, Any] = {}
    if institution_id:
        scope["institution_id"] = institution_id

    try:
        groups = list(get_groups_collection().find(scope))
        student_filter: Dict[str, Any] = dict(scope)

        if group_id:
            group = next((g for g in groups if str(g.get("_id")) == group_id), None)
            if group is None:
                return json_error("Group not found.", 404)
            student_ids = group.get("student_ids")
            student_filter["_id"] = {"$in": student_ids if isinstance(student_ids, list) else []}

        students = get_students_collection().find(
            student_filter, {"name": 1, "grades_by_level": 1}
        )
        teachers = {
            str(teacher["_id"]): teacher
            for teacher in get_teachers_collection().find(scope, {"name": 1})
        }

        records = build_level_records(students, groups, teachers, load_grading_config())
        return jsonify({"items": [record.to_dict() for record in records]})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to list certificate records", exc)


@certificates_bp.get("/template")
def get_template():
    try:
        return jsonify({"template": load_certificate_template()})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to load certificate template", exc)


@certificates_bp.put("/template")
def update_template():
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return json_error("Request body must be a JSON object.", 400)

    template = payload.get("template")

    if not isinstance(template, str) or not template.strip():
        return json_error("Validation failed.", 400, {"template": "Template is required."})
    if len(template) > MAX_TEMPLATE_LENGTH:
        return json_error(
            "Validation failed.",
            400,
            {"template": f"Template must be at most {MAX_TEMPLATE_LENGTH} characters."},
        )

    try:
        save_certificate_template(template)
        return jsonify({"template": template})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to save certificate template", exc)


@certificates_bp.put("/<student_id>/<level_name>/code")
def save_certificate_code(student_id: str, level_name: str):
    try:
        level_name = parse_level_name(level_name)
    except ParamError as exc:
        return json_error(str(exc), 400)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return json_error("Request body must be a JSON object.", 400)

    code = clean_string(payload.get("certificate_code"))
    if len(code) > MAX_CODE_LENGTH:
        return json_error(
            "Validation failed.",
            400,
            {"certificate_code": f"Code must be at most {MAX_CODE_LENGTH} characters."},
        )

    try:
        result = get_students_collection().update_one(
            {"_id": student_id},
            {"$set": {f"grades_by_level.{level_name}.certificate_code": code}},
        )
        if result.matched_count == 0:
            return json_error("Student not found.", 404)
        logger.info("Certificate code saved for %s / %s", student_id, level_name)
        return jsonify(
            {"student_id": student_id, "level_name": level_name, "certificate_code": code}
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to save certificate code", exc)


@certificates_bp.get("/<student_id>/<level_name>/text")
def certificate_text(student_id: str, level_name: str):
    try:
        level_name = parse_level_name(level_name)
    except ParamError as exc:
        return json_error(str(exc), 400)

    try:
        student = get_students_collection().find_one(
            {"_id": student_id}, {"name": 1, "grades_by_level": 1}
        )
        if not student:
            return json_error("Student not found.", 404)

        level = (student.get("grades_by_level") or {}).get(level_name)
        if not isinstance(level, dict):
            return json_error(f'No grade data for level "{level_name}".', 404)

        group = find_student_group(
            student_id, get_groups_collection().find({"student_ids": student_id}).limit(1)
        )
        teacher = sede = None
        if group is not None:
            if group.get("teacher_id"):
                teacher = get_teachers_collection().find_one({"_id": group["teacher_id"]})
            if group.get("sede_id"):
                sede = get_sedes_collection().find_one({"_id": group["sede_id"]})

        text = render_certificate_text(
            load_certificate_template(),
            institution_name=app_config.get_institution_name(),
            student_name=str(student.get("name") or ""),
            level_name=level_name,
            group_type=(group or {}).get("type"),
            teacher_name=(teacher or {}).get("name"),
            sede_name=(sede or {}).get("name"),
            certificate_code=level.get("certificate_code"),
        )
        return jsonify({"student_id": student_id, "level_name": level_name, "text": text})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to render certificate", exc)


__all__ = ["certificates_bp"]
