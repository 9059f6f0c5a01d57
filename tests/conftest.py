import os

os.environ["SECRET_KEY"] = "x" * 40
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["DATABASE_URL"] = ""
os.environ["DEFAULT_ACCOUNT_PASSWORD"] = "123"
os.environ["PRODUCT_KEY_PREFIX"] = "BC-"

import mongomock
import pytest
from fastapi.testclient import TestClient

import gateway
import main
from config_store import JSONFileConfigStore
from database import get_db

STUDENT_ADMISSION_NO = "BAC/STD/2025/0001"


@pytest.fixture
def mongo_db():
    db = mongomock.MongoClient()["schoolportal_test"]
    gateway.ensure_indexes(db)
    return db


@pytest.fixture
def store(tmp_path):
    s = JSONFileConfigStore(str(tmp_path / "systemConfig.json"))
    s.ensure()
    return s


@pytest.fixture
def client(mongo_db, store):
    main.app.dependency_overrides[get_db] = lambda: mongo_db
    main.app.dependency_overrides[main.get_config_store] = lambda: store
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def installed(client):
    res = client.post("/api/setup", json={
        "schoolName": "Demo",
        "adminUsername": "admin",
        "adminPassword": "pw1234",
        "productKey": "BC-001",
    })
    assert res.status_code == 200
    return res


@pytest.fixture
def admin_headers(client, installed):
    res = client.post("/api/login", json={"username": "admin", "password": "pw1234"})
    assert res.status_code == 200
    return {"Authorization": f"Bearer {res.json()['token']}"}


@pytest.fixture
def seeded_student(mongo_db):
    return gateway.create_record(mongo_db, gateway.EntityKind.students, {
        "admissionNo": STUDENT_ADMISSION_NO,
        "name": "John Doe",
        "classLevel": "JSS1",
        "guardianPhone": "08012345678",
        "gender": "Male",
    })
