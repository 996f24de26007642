"""Grading configuration, student listing and grade entry endpoints."""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

from flask import Blueprint, jsonify, request
from pymongo.errors import PyMongoError

from ..config import ConfigError
from ..db import (
    get_groups_collection,
    get_students_collection,
    load_grading_config,
    save_grading_config,
    serialize_level,
    serialize_student,
)
from ..grading import (
    default_level_grades,
    partial_key,
    summarize_level,
    validate_grading_config_payload,
    validate_partial_payload,
)
from ..utils.http import clean_string, handle_config_error, handle_db_error, json_error
from ..utils.params import (
    ParamError,
    parse_id_filter,
    parse_int_arg,
    parse_level_name,
    parse_paging_params,
)

grades_bp = Blueprint("grades", __name__, url_prefix="/api")

logger = logging.getLogger(__name__)

STUDENT_SORT_FIELDS = {"name": "name", "level": "level"}


@grades_bp.get("/grading-config")
def get_grading_config():
    try:
        return jsonify(load_grading_config().to_dict())
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to load grading config", exc)


@grades_bp.put("/grading-config")
def update_grading_config():
    payload = request.get_json(silent=True)

    try:
        current = load_grading_config()
        config, errors = validate_grading_config_payload(payload, current=current)
        if errors:
            message = errors.pop("_global", "Validation failed.")
            return json_error(message, 400, errors or None)

        save_grading_config(config)
        logger.info("Grading config updated: %s", config.to_document())
        return jsonify(config.to_dict())
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to save grading config", exc)


@grades_bp.get("/students")
def list_students():
    try:
        paging = parse_paging_params(
            request.args,
            allowed_sort_fields=STUDENT_SORT_FIELDS,
            default_sort="name",
        )
    except ParamError as exc:
        return json_error(str(exc), 400)

    filters: Dict[str, Any] = {}
    query = clean_string(request.args.get("q"))
    institution_id = clean_string(request.args.get("institution_id"))
    group_id = parse_id_filter(request.args.get("group_id"))

    if query:
        filters["name"] = {"$regex": re.escape(query), "$options": "i"}
    if institution_id:
        filters["institution_id"] = institution_id

    try:
        if group_id:
            group = get_groups_collection().find_one({"_id": group_id}, {"student_ids": 1})
            if not group:
                return json_error("Group not found.", 404)
            student_ids = group.get("student_ids")
            filters["_id"] = {"$in": student_ids if isinstance(student_ids, list) else []}

        collection = get_students_collection()
        config = load_grading_config()
        total = collection.count_documents(filters)

        cursor = (
            collection.find(filters)
            .sort([paging.sort])
            .skip(paging.skip)
            .limit(paging.page_size)
        )

        items: List[Dict[str, Any]] = []
        for document in cursor:
            student = serialize_student(document)
            level_name = document.get("level")
            levels = document.get("grades_by_level") or {}
            if level_name and level_name in levels:
                student["current_level"] = summarize_level(levels[level_name], config).to_dict()
            else:
                student["current_level"] = None
            items.append(student)

        return jsonify(
            {
                "items": items,
                "page": paging.page,
                "page_size": paging.page_size,
                "total": total,
                "sort": paging.normalized_sort,
                "has_next": paging.page * paging.page_size < total,
                "has_prev": paging.page > 1,
            }
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to list students", exc)


@grades_bp.get("/students/<student_id>/grades")
def student_grades(student_id: str):
    try:
        document = get_students_collection().find_one(
            {"_id": student_id}, {"name": 1, "level": 1, "grades_by_level": 1}
        )
        if not document:
            return json_error("Student not found.", 404)

        config = load_grading_config()
        levels = document.get("grades_by_level") or {}
        payload_levels = []
        for level_name in sorted(levels):
            level = levels[level_name]
            entry = {"level": level_name, **serialize_level(level, config)}
            entry["summary"] = summarize_level(level, config).to_dict()
            payload_levels.append(entry)

        return jsonify(
            {
                "student_id": student_id,
                "name": document.get("name"),
                "current_level": document.get("level"),
                "grading_config": config.to_dict(),
                "levels": payload_levels,
            }
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to load student grades", exc)


@grades_bp.post("/students/<student_id>/grades/<level_name>")
def start_level(student_id: str, level_name: str):
    try:
        level_name = parse_level_name(level_name)
    except ParamError as exc:
        return json_error(str(exc), 400)

    try:
        collection = get_students_collection()
        config = load_grading_config()
        level = default_level_grades(config)
        result = collection.update_one(
            {"_id": student_id, f"grades_by_level.{level_name}": {"$exists": False}},
            {"$set": {f"grades_by_level.{level_name}": level, "level": level_name}},
        )
        if result.matched_count == 0:
            if collection.find_one({"_id": student_id}, {"_id": 1}) is None:
                return json_error("Student not found.", 404)
            return json_error("Level already started for this student.", 409)

        return (
            jsonify({"level": level_name, **serialize_level(level, config)}),
            201,
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to start level", exc)


@grades_bp.put("/students/<student_id>/grades/<level_name>/partials/<partial_number>")
def update_partial(student_id: str, level_name: str, partial_number: str):
    try:
        level_name = parse_level_name(level_name)
    except ParamError as exc:
        return json_error(str(exc), 400)

    payload = request.get_json(silent=True)

    try:
        config = load_grading_config()
        try:
            number = parse_int_arg(
                partial_number,
                name="partial",
                minimum=1,
                maximum=config.number_of_partials,
            )
        except ParamError as exc:
            return json_error(str(exc), 400)

        cleaned, errors = validate_partial_payload(payload, config)
        if errors:
            message = errors.pop("_global", "Validation failed.")
            return json_error(message, 400, errors or None)

        collection = get_students_collection()
        field = f"grades_by_level.{level_name}.{partial_key(number)}"
        result = collection.update_one(
            {"_id": student_id, f"grades_by_level.{level_name}": {"$exists": True}},
            {"$set": {field: cleaned}},
        )
        if result.matched_count == 0:
            if collection.find_one({"_id": student_id}, {"_id": 1}) is None:
                return json_error("Student not found.", 404)
            return json_error("Level not found for this student.", 404)

        document = collection.find_one({"_id": student_id}, {"grades_by_level": 1}) or {}
        level = (document.get("grades_by_level") or {}).get(level_name)
        return jsonify(
            {
                "student_id": student_id,
                "level": level_name,
                **serialize_level(level, config),
                "summary": summarize_level(level, config).to_dict(),
            }
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to save grades", exc)


__all__ = ["grades_bp"]
