"""Environment-driven settings and the health endpoints."""

from __future__ import annotations

import os
import sys
import unittest
from pathlib import Path
from unittest import mock

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from pymongo.errors import ServerSelectionTimeoutError

from app import app
from gradebook import config


class ConfigTestCase(unittest.TestCase):
    def setUp(self) -> None:
        config.reset_cache()
        self.addCleanup(config.reset_cache)

    def test_db_name_from_uri(self) -> None:
        env = {"MONGODB_URI": "mongodb://localhost:27017/academy?retryWrites=true"}
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual("academy", config.get_db_name())

    def test_explicit_db_name_wins(self) -> None:
        env = {"MONGODB_URI": "mongodb://localhost:27017/academy", "MONGODB_DB": "other"}
        with mock.patch.dict(os.environ, env, clear=True):
            self.assertEqual("other", config.get_db_name())

    def test_missing_uri(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(config.ConfigError):
                config.get_mongo_uri()

    def test_uri_without_database(self) -> None:
        with mock.patch.dict(os.environ, {"MONGODB_URI": "mongodb://localhost:27017"}, clear=True):
            with self.assertRaises(config.ConfigError):
                config.get_db_name()

    def test_institution_name_default(self) -> None:
        with mock.patch.dict(os.environ, {"INSTITUTION_NAME": "  "}):
            self.assertEqual(config.DEFAULT_INSTITUTION_NAME, config.get_institution_name())


class HealthTestCase(unittest.TestCase):
    def setUp(self) -> None:
        app.config["TESTING"] = True
        self.client = app.test_client()

    def test_health(self) -> None:
        self.assertEqual({"ok": True}, self.client.get("/api/health").get_json())

    def test_db_unavailable(self) -> None:
        database = mock.MagicMock()
        database.command.side_effect = ServerSelectionTimeoutError("down")
        with mock.patch("app.get_db", return_value=database):
            response = self.client.get("/api/health/db")
        self.assertEqual(503, response.status_code)

    def test_missing_configuration(self) -> None:
        with mock.patch("app.get_db", side_effect=config.ConfigError("MONGODB_URI is not set.")):
            response = self.client.get("/api/health/db")
        self.assertEqual(500, response.status_code)

    def test_unknown_route(self) -> None:
        response = self.client.get("/api/nope")
        self.assertEqual(404, response.status_code)
        self.assertEqual({"error": "Not found."}, response.get_json())


if __name__ == "__main__":
    unittest.main()
