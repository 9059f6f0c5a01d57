import pytest

import accounts
import gateway
from accounts import PrincipalKind
from database import create_document
from errors import IncorrectOldPassword, InvalidCredentials, NotFoundRecord
from security import decode_access_token, get_password_hash, verify_password

STUDENT_ADMISSION_NO = "BAC/STD/2025/0001"


def make_admin(db, username="admin", password="pw1234"):
    return create_document(db, "user", {
        "username": username,
        "password_hash": get_password_hash(password),
        "role": "admin",
        "type": "admin",
    })


def test_default_password_requires_activation(mongo_db, seeded_student):
    stored = mongo_db["student"].find_one({"admissionNo": STUDENT_ADMISSION_NO})
    assert verify_password("123", stored["password_hash"])

    result = accounts.authenticate(mongo_db, STUDENT_ADMISSION_NO, "123")

    assert result.needs_activation
    assert result.to_response() == {
        "needsActivation": True,
        "username": STUDENT_ADMISSION_NO,
        "userType": "student",
    }


def test_wrong_password_and_unknown_identifier_fail_alike(mongo_db, seeded_student):
    with pytest.raises(InvalidCredentials) as wrong:
        accounts.authenticate(mongo_db, STUDENT_ADMISSION_NO, "nope")
    with pytest.raises(InvalidCredentials) as unknown:
        accounts.authenticate(mongo_db, "BAC/STD/2025/9999", "nope")
    assert wrong.value.to_dict() == unknown.value.to_dict()


def test_activation_sets_password_and_logs_in(mongo_db, seeded_student):
    result = accounts.activate(mongo_db, STUDENT_ADMISSION_NO, "newpw1")

    assert result.token
    claims = decode_access_token(result.token)
    assert claims.sub == seeded_student["id"]
    assert claims.type == "student"
    stored = mongo_db["student"].find_one({"admissionNo": STUDENT_ADMISSION_NO})
    assert stored["isActivated"] is True
    assert stored["activatedAt"] is not None

    login = accounts.authenticate(mongo_db, STUDENT_ADMISSION_NO, "newpw1")
    assert not login.needs_activation
    response = login.to_response()
    assert response["needsActivation"] is False
    assert "password_hash" not in response["user"]
    with pytest.raises(InvalidCredentials):
        accounts.authenticate(mongo_db, STUDENT_ADMISSION_NO, "123")


def test_second_activation_overwrites_password(mongo_db, seeded_student):
    accounts.activate(mongo_db, STUDENT_ADMISSION_NO, "first1")
    accounts.activate(mongo_db, STUDENT_ADMISSION_NO, "second2")

    assert accounts.authenticate(mongo_db, STUDENT_ADMISSION_NO, "second2").token
    with pytest.raises(InvalidCredentials):
        accounts.authenticate(mongo_db, STUDENT_ADMISSION_NO, "first1")


def test_activation_never_targets_admin_users(mongo_db):
    make_admin(mongo_db)
    with pytest.raises(NotFoundRecord):
        accounts.activate(mongo_db, "admin", "hijack")


def test_admin_user_logs_in_without_activation(mongo_db):
    make_admin(mongo_db)
    result = accounts.authenticate(mongo_db, "admin", "pw1234")
    assert result.principal.kind is PrincipalKind.user
    assert decode_access_token(result.token).type == "admin"


def test_staff_requires_activation(mongo_db):
    gateway.create_record(mongo_db, gateway.EntityKind.staff, {"staffId": "STAFF/2025/0001", "name": "David Smith"})
    result = accounts.authenticate(mongo_db, "STAFF/2025/0001", "123")
    assert result.to_response()["userType"] == "staff"


def test_lookup_prefers_student_over_staff_and_user(mongo_db, seeded_student):
    make_admin(mongo_db, username=STUDENT_ADMISSION_NO, password="123")
    principal = accounts.find_principal(mongo_db, STUDENT_ADMISSION_NO)
    assert principal.kind is PrincipalKind.student


def test_change_password(mongo_db):
    admin = make_admin(mongo_db)
    accounts.change_password(mongo_db, str(admin["_id"]), "pw1234", "pw5678")
    assert accounts.authenticate(mongo_db, "admin", "pw5678").token


def test_change_password_checks_old_password(mongo_db):
    admin = make_admin(mongo_db)
    with pytest.raises(IncorrectOldPassword):
        accounts.change_password(mongo_db, str(admin["_id"]), "wrong", "pw5678")
    assert accounts.authenticate(mongo_db, "admin", "pw1234").token


@pytest.mark.parametrize("principal_id", ["not-an-id", "0123456789abcdef01234567"])
def test_change_password_unknown_user(mongo_db, principal_id):
    with pytest.raises(NotFoundRecord):
        accounts.change_password(mongo_db, principal_id, "a", "b")
