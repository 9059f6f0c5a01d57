"""
Credential & activation management.

A principal is one of three disjoint document kinds (student, staff, admin
user). Login identifiers are resolved by ``find_principal`` in the fixed order
of ``PRINCIPAL_LOOKUP_ORDER``; the first collection with a match wins.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from bson import ObjectId
from bson.errors import InvalidId
from pymongo import ReturnDocument
from pymongo.database import Database

import settings
from database import now_utc, serialize_doc
from errors import IncorrectOldPassword, InvalidCredentials, NotFoundRecord
from security import create_access_token, get_password_hash, verify_password

logger = logging.getLogger(__name__)

CREDENTIAL_FIELDS = ("password_hash", "password")


class PrincipalKind(str, Enum):
    student = "student"
    staff = "staff"
    user = "user"

    @property
    def collection(self) -> str:
        return self.value

    @property
    def identifier_field(self) -> str:
        return IDENTIFIER_FIELDS[self]

    @property
    def requires_activation(self) -> bool:
        return self is not PrincipalKind.user


IDENTIFIER_FIELDS = {
    PrincipalKind.student: "admissionNo",
    PrincipalKind.staff: "staffId",
    PrincipalKind.user: "username",
}

PRINCIPAL_LOOKUP_ORDER = (PrincipalKind.student, PrincipalKind.staff, PrincipalKind.user)
ACTIVATABLE_KINDS = (PrincipalKind.student, PrincipalKind.staff)


@dataclass
class Principal:
    kind: PrincipalKind
    doc: dict

    @property
    def id(self) -> str:
        return str(self.doc["_id"])

    @property
    def identifier(self) -> str:
        return self.doc.get(self.kind.identifier_field)

    @property
    def type(self) -> str:
        return self.doc.get("type") or self.kind.value

    @property
    def role(self) -> Optional[str]:
        return self.doc.get("role")

    @property
    def is_activated(self) -> bool:
        if not self.kind.requires_activation:
            return True
        return bool(self.doc.get("isActivated", False))

    def public(self) -> dict:
        return serialize_doc(self.doc, hidden=CREDENTIAL_FIELDS)


@dataclass
class LoginResult:
    principal: Principal
    token: Optional[str] = None

    @property
    def needs_activation(self) -> bool:
        return self.token is None

    def to_response(self) -> dict:
        if self.needs_activation:
            return {
                "needsActivation": True,
                "username": self.principal.identifier,
                "userType": self.principal.type,
            }
        return {"token": self.token, "user": self.principal.public(), "needsActivation": False}


def default_password() -> str:
    return settings.DEFAULT_ACCOUNT_PASSWORD


def issue_token(principal: Principal) -> str:
    return create_access_token({
        "sub": principal.id,
        "role": principal.role,
        "type": principal.type,
        "kind": principal.kind.value,
    })


def find_principal(db: Database, identifier: str, kinds=PRINCIPAL_LOOKUP_ORDER) -> Optional[Principal]:
    if not identifier:
        return None
    for kind in kinds:
        doc = db[kind.collection].find_one({kind.identifier_field: identifier})
        if doc:
            return Principal(kind, doc)
    return None


def find_principal_by_id(db: Database, principal_id: str) -> Optional[Principal]:
    try:
        oid = ObjectId(principal_id)
    except (InvalidId, TypeError):
        return None
    for kind in PRINCIPAL_LOOKUP_ORDER:
        doc = db[kind.collection].find_one({"_id": oid})
        if doc:
            return Principal(kind, doc)
    return None


def authenticate(db: Database, identifier: str, password: str) -> LoginResult:
    principal = find_principal(db, identifier)
    stored_hash = principal.doc.get("password_hash") if principal else None
    if not verify_password(password, stored_hash) or principal is None:
        logger.info("Failed login attempt")
        raise InvalidCredentials()

    if not principal.is_activated:
        logger.info("Login for %s %s requires activation", principal.kind.value, principal.id)
        return LoginResult(principal)

    logger.info("Login succeeded for %s %s", principal.kind.value, principal.id)
    return LoginResult(principal, issue_token(principal))


def activate(db: Database, identifier: str, new_password: str) -> LoginResult:
    """Set the chosen password on a pre-provisioned student/staff and log them in.

    Calling it again on an already-activated account succeeds and overwrites
    the password.
    """
    principal = find_principal(db, identifier, kinds=ACTIVATABLE_KINDS)
    if principal is None:
        raise NotFoundRecord("User not found")

    doc = db[principal.kind.collection].find_one_and_update(
        {"_id": principal.doc["_id"]},
        {"$set": {
            "password_hash": get_password_hash(new_password),
            "isActivated": True,
            "activatedAt": now_utc(),
            "updated_at": now_utc(),
        }},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFoundRecord("User not found")
    activated = Principal(principal.kind, doc)
    logger.info("Activated %s %s", activated.kind.value, activated.id)
    return LoginResult(activated, issue_token(activated))


def change_password(db: Database, principal_id: str, old_password: str, new_password: str) -> None:
    principal = find_principal_by_id(db, principal_id)
    if principal is None:
        raise NotFoundRecord("User not found")
    if not verify_password(old_password, principal.doc.get("password_hash")):
        raise IncorrectOldPassword()

    db[principal.kind.collection].update_one(
        {"_id": principal.doc["_id"]},
        {"$set": {"password_hash": get_password_hash(new_password), "updated_at": now_utc()}},
    )
    logger.info("Password changed for %s %s", principal.kind.value, principal.id)
