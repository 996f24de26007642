"""Group, roster and session attendance endpoints."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from flask import Blueprint, jsonify, request
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from ..attendance import DATE_FORMAT, summarize_attendance, validate_session_payload
from ..certificates import GROUP_TYPES
from ..config import ConfigError
from ..db import (
    get_attendance_collection,
    get_groups_collection,
    get_sessions_collection,
    get_students_collection,
    serialize_group,
)
from ..utils.http import clean_string, handle_config_error, handle_db_error, json_error

groups_bp = Blueprint("groups", __name__, url_prefix="/api/groups")

logger = logging.getLogger(__name__)


def _clean_string_or_none(value: Any) -> str | None:
    cleaned = clean_string(value)
    return cleaned or None


def _parse_date(value: Any) -> str:
    return datetime.strptime(clean_string(value), DATE_FORMAT).date().isoformat()


def _validate_group_payload(
    payload: Dict[str, Any] | None, *, require_all: bool
) -> Tuple[Dict[str, Any], Dict[str, str]]:
    if payload is None:
        return {}, {"_global": "Request body must be JSON."}
    if not isinstance(payload, dict):
        return {}, {"_global": "Request body must be a JSON object."}

    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}

    def require_field(field: str, message: str) -> bool:
        if field not in payload or clean_string(payload.get(field)) == "":
            errors[field] = message
            return False
        return True

    if require_all or "_id" in payload:
        if require_field("_id", "Group ID is required."):
            cleaned["_id"] = clean_string(payload.get("_id"))

    if require_all or "name" in payload:
        if require_field("name", "Group name is required."):
            name = clean_string(payload.get("name"))
            if len(name) < 2:
                errors["name"] = "Group name must be at least 2 characters."
            else:
                cleaned["name"] = name

    if require_all or "type" in payload:
        if require_field("type", "Group type is required."):
            group_type = clean_string(payload.get("type"))
            if group_type not in GROUP_TYPES:
                errors["type"] = "Group type must be one of: " + ", ".join(GROUP_TYPES) + "."
            else:
                cleaned["type"] = group_type

    if require_all or "start_date" in payload:
        if require_field("start_date", "Start date is required."):
            try:
                cleaned["start_date"] = _parse_date(payload.get("start_date"))
            except ValueError:
                errors["start_date"] = "Start date must use the YYYY-MM-DD format."

    if "end_date" in payload:
        if clean_string(payload.get("end_date")) == "":
            cleaned["end_date"] = None
        else:
            try:
                cleaned["end_date"] = _parse_date(payload.get("end_date"))
            except ValueError:
                errors["end_date"] = "End date must use the YYYY-MM-DD format."

    if cleaned.get("start_date") and cleaned.get("end_date"):
        if cleaned["end_date"] < cleaned["start_date"]:
            errors["end_date"] = "End date cannot be before the start date."

    for field in ("teacher_id", "sede_id", "institution_id"):
        if field in payload:
            cleaned[field] = _clean_string_or_none(payload.get(field))

    return cleaned, errors


def _validation_error(errors: Dict[str, str]):
    details = {k: v for k, v in errors.items() if k != "_global"}
    message = errors.get("_global", "Validation failed.")
    return json_error(message, 400, details if details else None)


@groups_bp.get("")
def list_groups():
    filters: Dict[str, Any] = {}
    institution_id = clean_string(request.args.get("institution_id"))
    if institution_id:
        filters["institution_id"] = institution_id

    try:
        cursor = get_groups_collection().find(filters).sort([("name", 1)])
        return jsonify({"items": [serialize_group(doc) for doc in cursor]})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to list groups", exc)


@groups_bp.post("")
def create_group():
    cleaned, errors = _validate_group_payload(request.get_json(silent=True), require_all=True)
    if errors:
        return _validation_error(errors)

    cleaned["student_ids"] = []
    try:
        get_groups_collection().insert_one(cleaned)
        logger.info("Group %s created", cleaned["_id"])
        return jsonify(serialize_group(cleaned)), 201
    except ConfigError as exc:
        return handle_config_error(exc)
    except DuplicateKeyError:
        return json_error(
            "Group with this ID already exists.", 409, {"_id": "Choose a different group ID."}
        )
    except PyMongoError as exc:
        return handle_db_error("Failed to create group", exc)


@groups_bp.put("/<group_id>")
def update_group(group_id: str):
    cleaned, errors = _validate_group_payload(request.get_json(silent=True), require_all=False)

    if "_id" in cleaned and cleaned["_id"] != group_id:
        errors["_id"] = "Group ID cannot be changed."

    if errors:
        return _validation_error(errors)

    cleaned.pop("_id", None)
    if not cleaned:
        return json_error("No changes supplied.", 400)

    try:
        collection = get_groups_collection()
        result = collection.update_one({"_id": group_id}, {"$set": cleaned})
        if result.matched_count == 0:
            return json_error("Group not found.", 404)
        document = collection.find_one({"_id": group_id}) or {"_id": group_id, **cleaned}
        return jsonify(serialize_group(document))
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to update group", exc)


@groups_bp.delete("/<group_id>")
def delete_group(group_id: str):
    try:
        result = get_groups_collection().delete_one({"_id": group_id})
        if result.deleted_count == 0:
            return json_error("Group not found.", 404)
        return jsonify({"ok": True})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to delete group", exc)


@groups_bp.put("/<group_id>/students")
def update_roster(group_id: str):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return json_error("Request body must be a JSON object.", 400)

    raw_ids = payload.get("student_ids")
    if not isinstance(raw_ids, list) or not all(isinstance(value, str) for value in raw_ids):
        return json_error(
            "Validation failed.", 400, {"student_ids": "Student IDs must be a list of strings."}
        )

    student_ids: List[str] = []
    for value in raw_ids:
        cleaned = value.strip()
        if cleaned and cleaned not in student_ids:
            student_ids.append(cleaned)

    try:
        if student_ids:
            found = {
                str(doc["_id"])
                for doc in get_students_collection().find(
                    {"_id": {"$in": student_ids}}, {"_id": 1}
                )
            }
            unknown = [value for value in student_ids if value not in found]
            if unknown:
                return json_error(
                    "Validation failed.",
                    400,
                    {"student_ids": "Unknown students: " + ", ".join(unknown) + "."},
                )

        collection = get_groups_collection()
        result = collection.update_one({"_id": group_id}, {"$set": {"student_ids": student_ids}})
        if result.matched_count == 0:
            return json_error("Group not found.", 404)
        logger.info("Roster of group %s set to %d student(s)", group_id, len(student_ids))
        return jsonify({"_id": group_id, "student_ids": student_ids})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to update group roster", exc)


@groups_bp.post("/<group_id>/attendance")
def record_session_attendance(group_id: str):
    payload = request.get_json(silent=True)

    try:
        group = get_groups_collection().find_one({"_id": group_id})
        if not group:
            return json_error("Group not found.", 404)

        roster = group.get("student_ids")
        cleaned, errors = validate_session_payload(
            payload, roster if isinstance(roster, list) else []
        )
        if errors:
            return _validation_error(errors)

        session = get_sessions_collection().find_one_and_update(
            {"group_id": group_id, "date": cleaned["date"], "time": cleaned["time"]},
            {
                "$setOnInsert": {
                    "_id": uuid.uuid4().hex,
                    "institution_id": group.get("institution_id"),
                    "sede_id": group.get("sede_id"),
                }
            },
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

        timestamp = datetime.now(timezone.utc).isoformat()
        records = [
            {
                **record,
                "session_id": session["_id"],
                "timestamp": timestamp,
                "institution_id": group.get("institution_id"),
            }
            for record in cleaned["records"]
        ]
        get_attendance_collection().insert_many(records)
        logger.info(
            "Recorded attendance for %d student(s) in session %s", len(records), session["_id"]
        )

        return (
            jsonify(
                {
                    "session_id": session["_id"],
                    "group_id": group_id,
                    "date": cleaned["date"],
                    "time": cleaned["time"],
                    "recorded": len(records),
                    "attendance": summarize_attendance(records).to_dict(),
                }
            ),
            201,
        )
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Failed to record attendance", exc)


__all__ = ["groups_bp"]
