from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

import main
from errors import TokenExpired, TokenMalformed
from security import (
    create_access_token,
    decode_access_token,
    get_password_hash,
    verify_password,
)


def test_password_hash_is_salted_and_verifies():
    first = get_password_hash("secret")
    second = get_password_hash("secret")
    assert first != second
    assert first.startswith("$2")
    assert verify_password("secret", first)
    assert not verify_password("wrong", first)


def test_verify_password_rejects_missing_or_plaintext_hash():
    assert not verify_password("123", None)
    assert not verify_password("123", "123")


def test_token_round_trip_carries_identity_claims():
    token = create_access_token({"sub": "abc", "role": "admin", "type": "admin", "kind": "user"})
    claims = decode_access_token(token)
    assert claims.sub == "abc"
    assert claims.role == "admin"
    assert claims.type == "admin"
    assert claims.kind == "user"


def test_expired_token_is_rejected():
    token = create_access_token({"sub": "abc"}, expires_delta=timedelta(seconds=-5))
    with pytest.raises(TokenExpired):
        decode_access_token(token)


def test_tampered_token_is_rejected():
    token = create_access_token({"sub": "abc"})
    with pytest.raises(TokenMalformed):
        decode_access_token(token[:-2] + ("aa" if token[-2:] != "aa" else "bb"))


def test_token_without_subject_is_rejected():
    with pytest.raises(TokenMalformed):
        decode_access_token(create_access_token({"role": "admin"}))


def test_protected_route_without_token_is_forbidden(client):
    res = client.get("/api/schoolPortalSubjects")
    assert res.status_code == 403
    assert res.json()["code"] == "TOKEN_MISSING"


def test_protected_route_with_garbage_token_is_unauthorized(client):
    res = client.get("/api/schoolPortalSubjects", headers={"Authorization": "Bearer not-a-jwt"})
    assert res.status_code == 401
    assert res.json()["code"] == "TOKEN_INVALID"


def test_protected_route_with_expired_token_is_unauthorized(client):
    token = create_access_token({"sub": "abc", "type": "admin"}, expires_delta=timedelta(minutes=-1))
    res = client.get("/api/schoolPortalSubjects", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 401
    assert res.json()["code"] == "TOKEN_EXPIRED"


def test_database_not_configured_is_internal_error():
    main.app.dependency_overrides.clear()
    token = create_access_token({"sub": "abc", "type": "admin"})
    res = TestClient(main.app).get("/api/schoolPortalSubjects", headers={"Authorization": f"Bearer {token}"})
    assert res.status_code == 500
    assert res.json()["message"] == "Database not configured"
