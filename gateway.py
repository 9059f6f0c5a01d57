"""
Generic entity gateway: CRUD over a closed registry of collections.

New entity types are added by registering a member on ``EntityKind``; no
handler code is needed. Students and staff are principals, so their bodies go
through ``normalize_principal`` before storage.
"""

import logging
from enum import Enum
from typing import Dict, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError
from pydantic import ValidationError as PydanticValidationError

from accounts import CREDENTIAL_FIELDS, IDENTIFIER_FIELDS, PrincipalKind, default_password
from database import create_document, get_documents, now_utc, serialize_doc, to_object_id
from errors import DuplicateKeyError, NotFoundEntity, NotFoundRecord, ValidationError
from schemas import Staff, Student
from security import get_password_hash

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    students = "schoolPortalStudents"
    staff = "schoolPortalStaff"
    subjects = "schoolPortalSubjects"
    results = "schoolPortalResults"
    pending_results = "schoolPortalPendingResults"
    fee_records = "schoolPortalFeeRecords"
    attendance = "schoolPortalAttendance"
    timetables = "schoolPortalTimetables"
    digital_library = "schoolPortalDigitalLibrary"
    admin_messages = "schoolPortalAdminMessages"
    promotions = "schoolPortalPromotions"
    calendar_events = "schoolPortalCalendarEvents"
    certification_results = "schoolPortalCertificationResults"
    syllabus = "schoolPortalSyllabus"

    @property
    def collection(self) -> str:
        return COLLECTIONS[self]

    @property
    def principal_kind(self) -> Optional[PrincipalKind]:
        return PRINCIPAL_ENTITIES.get(self)


COLLECTIONS: Dict[EntityKind, str] = {
    EntityKind.students: "student",
    EntityKind.staff: "staff",
    EntityKind.subjects: "subject",
    EntityKind.results: "result",
    EntityKind.pending_results: "pendingresult",
    EntityKind.fee_records: "feerecord",
    EntityKind.attendance: "attendance",
    EntityKind.timetables: "timetable",
    EntityKind.digital_library: "digitallibrary",
    EntityKind.admin_messages: "adminmessage",
    EntityKind.promotions: "promotion",
    EntityKind.calendar_events: "calendarevent",
    EntityKind.certification_results: "certification",
    EntityKind.syllabus: "syllabusentry",
}

PRINCIPAL_ENTITIES = {
    EntityKind.students: PrincipalKind.student,
    EntityKind.staff: PrincipalKind.staff,
}

PRINCIPAL_SCHEMAS = {
    PrincipalKind.student: Student,
    PrincipalKind.staff: Staff,
}

ATTENDANCE_KEY_FIELDS = ("date", "studentClass", "admissionNo", "session", "term")

IDENTITY_FIELDS = ("_id", "id")

# alternate name -> stored name
STUDENT_ALIASES = {
    "classLevel": "studentClass",
    "class": "studentClass",
    "guardianPhone": "parentPhone",
    "guardianName": "parentName",
}

STAFF_ALIASES = {
    "firstName": "firstname",
    "lastName": "surname",
    "staffID": "staffId",
}

ALIASES = {
    PrincipalKind.student: STUDENT_ALIASES,
    PrincipalKind.staff: STAFF_ALIASES,
}

ATTENDANCE_ALIASES = {
    "classLevel": "studentClass",
    "class": "studentClass",
}

# (first-name field, surname field) for splitting a combined "name"
NAME_FIELDS = {
    PrincipalKind.student: ("firstName", "lastName"),
    PrincipalKind.staff: ("firstname", "surname"),
}


def _check_registry() -> None:
    missing = [kind for kind in EntityKind if kind not in COLLECTIONS]
    if missing:
        raise RuntimeError(f"No collection registered for {missing}")
    names = list(COLLECTIONS.values())
    if len(names) != len(set(names)):
        raise RuntimeError("Entity registry maps two entities to one collection")
    if PrincipalKind.user.collection in names:
        raise RuntimeError("Admin users are not exposed through the entity gateway")


_check_registry()


def resolve_entity(name: str) -> EntityKind:
    try:
        return EntityKind(name)
    except ValueError:
        raise NotFoundEntity()


def ensure_indexes(db: Database) -> None:
    for kind, field in IDENTIFIER_FIELDS.items():
        db[kind.collection].create_index([(field, ASCENDING)], unique=True)
    db[COLLECTIONS[EntityKind.attendance]].create_index([("naturalKey", ASCENDING)], unique=True, sparse=True)
    logger.info("Datastore indexes ensured")


# ----------------------- Normalization -----------------------

def _strip_identity(body: dict) -> dict:
    return {k: v for k, v in body.items() if k not in IDENTITY_FIELDS}


def _apply_aliases(body: dict, aliases: dict) -> dict:
    out = dict(body)
    for alias, field in aliases.items():
        if alias in out:
            value = out.pop(alias)
            out.setdefault(field, value)
    return out


def split_name(name: str):
    """Split "Ada Grace Chukwuma" into ("Ada Grace", "Chukwuma"); the last token is the surname."""
    parts = (name or "").split()
    if not parts:
        return None, None
    if len(parts) == 1:
        return parts[0], None
    return " ".join(parts[:-1]), parts[-1]


def _hash_supplied_password(body: dict) -> dict:
    out = dict(body)
    password = out.pop("password", None)
    out.pop("password_hash", None)
    if password:
        out["password_hash"] = get_password_hash(str(password))
    return out


def normalize_principal(kind: PrincipalKind, body: dict) -> dict:
    doc = _apply_aliases(_strip_identity(body), ALIASES[kind])

    if "name" in doc:
        first_field, last_field = NAME_FIELDS[kind]
        first, last = split_name(str(doc.pop("name") or ""))
        if first and not doc.get(first_field):
            doc[first_field] = first
        if last and not doc.get(last_field):
            doc[last_field] = last

    identifier = doc.get(kind.identifier_field)
    if not identifier or not str(identifier).strip():
        raise ValidationError(f"{kind.identifier_field} is required")
    doc[kind.identifier_field] = str(identifier).strip()

    if not doc.get("password"):
        doc["password"] = default_password()
    doc = _hash_supplied_password(doc)

    # type follows the collection, never the request body
    doc["type"] = kind.value
    doc["isActivated"] = False
    doc["activatedAt"] = None
    try:
        return PRINCIPAL_SCHEMAS[kind].model_validate(doc).model_dump()
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(p) for p in first["loc"])
        raise ValidationError(f"{field}: {first['msg']}")


def _attendance_key(body: dict) -> Optional[str]:
    values = [body.get(field) for field in ATTENDANCE_KEY_FIELDS]
    if any(v in (None, "") for v in values):
        return None
    return "|".join(str(v) for v in values)


def _prepare_create(kind: EntityKind, body: dict) -> dict:
    if kind.principal_kind is not None:
        return normalize_principal(kind.principal_kind, body)
    doc = _strip_identity(body)
    if kind is EntityKind.attendance:
        doc = _apply_aliases(doc, ATTENDANCE_ALIASES)
        doc.pop("naturalKey", None)
        key = _attendance_key(doc)
        if key is not None:
            doc["naturalKey"] = key
    return doc


def _prepare_update(kind: EntityKind, body: dict) -> dict:
    doc = _strip_identity(body)
    doc.pop("created_at", None)
    if kind.principal_kind is not None:
        doc = _apply_aliases(doc, ALIASES[kind.principal_kind])
        # type and activation are set only at create and by the account endpoints
        for field in ("type", "isActivated", "activatedAt"):
            doc.pop(field, None)
        if "password" in doc or "password_hash" in doc:
            doc = _hash_supplied_password(doc)
    if kind is EntityKind.attendance:
        doc = _apply_aliases(doc, ATTENDANCE_ALIASES)
        doc.pop("naturalKey", None)
    return doc


def _public(doc: dict) -> dict:
    return serialize_doc(doc, hidden=CREDENTIAL_FIELDS + ("naturalKey",))


# ----------------------- CRUD -----------------------

def list_records(db: Database, kind: EntityKind, limit: Optional[int] = None) -> list:
    return [_public(d) for d in get_documents(db, kind.collection, limit=limit)]


def get_record(db: Database, kind: EntityKind, record_id: str) -> dict:
    doc = db[kind.collection].find_one({"_id": to_object_id(record_id)})
    if not doc:
        raise NotFoundRecord()
    return _public(doc)


def create_record(db: Database, kind: EntityKind, body: dict) -> dict:
    doc = _prepare_create(kind, body)
    if kind is EntityKind.attendance and doc.get("naturalKey"):
        if db[kind.collection].find_one({"naturalKey": doc["naturalKey"]}):
            raise DuplicateKeyError("Attendance already marked for this student")
    try:
        stored = create_document(db, kind.collection, doc)
    except MongoDuplicateKeyError:
        raise DuplicateKeyError(_duplicate_message(kind))
    logger.info("Created %s record %s", kind.collection, stored["_id"])
    return _public(stored)


def update_record(db: Database, kind: EntityKind, record_id: str, body: dict) -> dict:
    oid = to_object_id(record_id)
    changes = _prepare_update(kind, body)
    changes["updated_at"] = now_utc()
    update = {"$set": changes}
    if kind is EntityKind.attendance:
        update = _attendance_update(db, oid, changes)
    try:
        doc = db[kind.collection].find_one_and_update(
            {"_id": oid}, update, return_document=ReturnDocument.AFTER
        )
    except MongoDuplicateKeyError:
        raise DuplicateKeyError(_duplicate_message(kind))
    if doc is None:
        raise NotFoundRecord()
    logger.info("Updated %s record %s", kind.collection, record_id)
    return _public(doc)


def delete_record(db: Database, kind: EntityKind, record_id: str) -> None:
    res = db[kind.collection].delete_one({"_id": to_object_id(record_id)})
    if res.deleted_count == 0:
        raise NotFoundRecord()
    logger.info("Deleted %s record %s", kind.collection, record_id)


def _attendance_update(db: Database, oid, changes: dict) -> dict:
    collection = db[COLLECTIONS[EntityKind.attendance]]
    current = collection.find_one({"_id": oid})
    if current is None:
        raise NotFoundRecord()
    key = _attendance_key({**current, **changes})
    if key is None:
        return {"$set": changes, "$unset": {"naturalKey": ""}}
    if collection.find_one({"naturalKey": key, "_id": {"$ne": oid}}):
        raise DuplicateKeyError("Attendance already marked for this student")
    return {"$set": {**changes, "naturalKey": key}}


def _duplicate_message(kind: EntityKind) -> str:
    principal = kind.principal_kind
    if principal is not None:
        return f"{principal.identifier_field} already exists"
    return "Record already exists"
