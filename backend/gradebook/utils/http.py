"""JSON error helpers shared by the route blueprints."""

from __future__ import annotations

import logging
from typing import Any, Dict

from flask import jsonify
from pymongo.errors import PyMongoError

from ..config import ConfigError

logger = logging.getLogger(__name__)


def json_error(message: str, status: int, details: Dict[str, Any] | None = None):
    payload: Dict[str, Any] = {"error": message}
    if details:
        payload["details"] = details
    return jsonify(payload), status


def clean_string(value: Any) -> str:
    return str(value).strip() if value is not None else ""


def handle_config_error(exc: ConfigError):
    logger.exception("Missing configuration for MongoDB")
    return json_error(str(exc), 500)


def handle_db_error(action: str, exc: PyMongoError):
    logger.exception("%s due to MongoDB error", action)
    return json_error("Database unavailable. Please try again later.", 503)
