"""MongoDB helpers for the application."""

from pymongo import ASCENDING, IndexModel, MongoClient
from pymongo.collection import Collection

from .certificates import CERTIFICATE_TEMPLATE_ID, DEFAULT_CERTIFICATE_TEMPLATE
from .config import get_db_name, get_mongo_uri
from .grading import GRADING_CONFIG_ID, GradingConfig, normalize_grading_config, partial_key

_MONGO_CLIENT = None
_MONGO_DB = None


def _get_client():
    """Create (or reuse) a MongoDB client using the configured URI."""

    global _MONGO_CLIENT

    if _MONGO_CLIENT is None:
        _MONGO_CLIENT = MongoClient(get_mongo_uri(), serverSelectionTimeoutMS=5000)
    return _MONGO_CLIENT


def get_db():
    """Return the application's MongoDB database instance."""

    global _MONGO_DB

    if _MONGO_DB is None:
        _MONGO_DB = _get_client()[get_db_name()]
    return _MONGO_DB


_students_indexes_created = False
_groups_indexes_created = False
_attendance_indexes_created = False
_sessions_indexes_created = False


def _ensure_students_indexes(collection: Collection) -> None:
    global _students_indexes_created
    if _students_indexes_created:
        return

    collection.create_indexes(
        [
            IndexModel([("name", ASCENDING)], name="name_asc", background=True),
            IndexModel(
                [("institution_id", ASCENDING), ("level", ASCENDING)],
                name="institution_level",
                background=True,
            ),
        ]
    )
    _students_indexes_created = True


def get_students_collection() -> Collection:
    """Return the collection that stores student documents."""

    collection = get_db()["students"]
    _ensure_students_indexes(collection)
    return collection


def _ensure_groups_indexes(collection: Collection) -> None:
    global _groups_indexes_created
    if _groups_indexes_created:
        return

    collection.create_indexes(
        [
            IndexModel([("student_ids", ASCENDING)], name="student_ids_idx", background=True),
            IndexModel(
                [("institution_id", ASCENDING), ("name", ASCENDING)],
                name="institution_name",
                background=True,
            ),
        ]
    )
    _groups_indexes_created = True


def get_groups_collection() -> Collection:
    """Return the groups collection with indexes ensured."""

    collection = get_db()["groups"]
    _ensure_groups_indexes(collection)
    return collection


def get_teachers_collection() -> Collection:
    return get_db()["teachers"]


def get_sedes_collection() -> Collection:
    return get_db()["sedes"]


def _ensure_attendance_indexes(collection: Collection) -> None:
    global _attendance_indexes_created
    if _attendance_indexes_created:
        return

    collection.create_index(
        [("user_id", ASCENDING), ("timestamp", ASCENDING)],
        name="user_timestamp",
        background=True,
    )
    _attendance_indexes_created = True


def get_attendance_collection() -> Collection:
    """Return the attendance records collection ensuring indexes exist."""

    collection = get_db()["attendance_records"]
    _ensure_attendance_indexes(collection)
    return collection


def _ensure_sessions_indexes(collection: Collection) -> None:
    global _sessions_indexes_created
    if _sessions_indexes_created:
        return

    collection.create_index(
        [("group_id", ASCENDING), ("date", ASCENDING), ("time", ASCENDING)],
        name="group_date_time",
        unique=True,
        background=True,
    )
    _sessions_indexes_created = True


def get_sessions_collection() -> Collection:
    """Return the class sessions collection; one session per group, date and time."""

    collection = get_db()["sessions"]
    _ensure_sessions_indexes(collection)
    return collection


def get_app_configuration_collection() -> Collection:
    return get_db()["app_configuration"]


def load_grading_config() -> GradingConfig:
    """Read the institution's grading scheme, falling back to defaults."""

    document = get_app_configuration_collection().find_one({"_id": GRADING_CONFIG_ID})
    return normalize_grading_config(document)


def save_grading_config(config: GradingConfig) -> None:
    get_app_configuration_collection().update_one(
        {"_id": GRADING_CONFIG_ID}, {"$set": config.to_document()}, upsert=True
    )


def load_certificate_template() -> str:
    document = get_app_configuration_collection().find_one({"_id": CERTIFICATE_TEMPLATE_ID})
    template = (document or {}).get("template")
    if isinstance(template, str) and template.strip():
        return template
    return DEFAULT_CERTIFICATE_TEMPLATE


def save_certificate_template(template: str) -> None:
    get_app_configuration_collection().update_one(
        {"_id": CERTIFICATE_TEMPLATE_ID}, {"$set": {"template": template}}, upsert=True
    )


def serialize_student(document):
    """Convert a MongoDB student document into a JSON-serialisable dict."""

    levels = document.get("grades_by_level")
    if not isinstance(levels, dict):
        levels = {}

    return {
        "_id": str(document.get("_id", "")),
        "name": document.get("name"),
        "phone": document.get("phone"),
        "level": document.get("level"),
        "institution_id": document.get("institution_id"),
        "levels": sorted(levels.keys()),
    }


def serialize_partial(document):
    """Normalise a stored partial so that clients always get the same shape."""

    if not isinstance(document, dict):
        document = {}

    activities = document.get("accumulated_activities", [])
    if not isinstance(activities, list):
        activities = []

    normalized_activities = []
    for entry in activities:
        if isinstance(entry, dict):
            normalized_activities.append(
                {"name": entry.get("name"), "score": entry.get("score")}
            )

    exam = document.get("exam")
    if not isinstance(exam, dict):
        exam = {}

    return {
        "accumulated_activities": normalized_activities,
        "exam": {"name": exam.get("name"), "score": exam.get("score")},
    }


def serialize_level(document, config: GradingConfig):
    """Serialize one level of a student's grades up to the configured partials."""

    if not isinstance(document, dict):
        document = {}

    partials = {}
    for number in range(1, config.number_of_partials + 1):
        key = partial_key(number)
        partials[key] = serialize_partial(document.get(key))

    return {
        "partials": partials,
        "certificate_code": document.get("certificate_code"),
    }


def serialize_group(document):
    student_ids = document.get("student_ids", [])
    if not isinstance(student_ids, list):
        student_ids = []

    return {
        "_id": str(document.get("_id", "")),
        "name": document.get("name"),
        "type": document.get("type"),
        "teacher_id": document.get("teacher_id"),
        "sede_id": document.get("sede_id"),
        "start_date": document.get("start_date"),
        "end_date": document.get("end_date"),
        "institution_id": document.get("institution_id"),
        "student_ids": student_ids,
    }


__all__ = [
    "get_db",
    "get_students_collection",
    "get_groups_collection",
    "get_teachers_collection",
    "get_sedes_collection",
    "get_attendance_collection",
    "get_sessions_collection",
    "get_app_configuration_collection",
    "load_grading_config",
    "save_grading_config",
    "load_certificate_template",
    "save_certificate_template",
    "serialize_student",
    "serialize_partial",
    "serialize_level",
    "serialize_group",
]
