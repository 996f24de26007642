from __future__ import annotations

import logging

from flask import Flask, jsonify
from pymongo.errors import PyMongoError

from gradebook.config import ConfigError
from gradebook.db import get_db
from gradebook.routes import certificates_bp, grades_bp, groups_bp, reports_bp
from gradebook.utils.http import handle_config_error, handle_db_error

app = Flask(__name__)
app.json.ensure_ascii = False
app.json.sort_keys = False

app.register_blueprint(grades_bp)
app.register_blueprint(groups_bp)
app.register_blueprint(reports_bp)
app.register_blueprint(certificates_bp)


@app.get("/api/health")
def health():
    return jsonify({"ok": True})


@app.get("/api/health/db")
def health_db():
    try:
        get_db().command("ping")
        return jsonify({"ok": True})
    except ConfigError as exc:
        return handle_config_error(exc)
    except PyMongoError as exc:
        return handle_db_error("Database ping failed", exc)


@app.errorhandler(404)
def not_found(_error):
    return jsonify({"error": "Not found."}), 404


@app.errorhandler(405)
def method_not_allowed(_error):
    return jsonify({"error": "Method not allowed."}), 405


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    app.run(debug=True)
