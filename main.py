import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import Body, Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.database import Database

import accounts
import database
import gateway
import licensing
import settings
from config_store import ConfigStore, JSONFileConfigStore
from database import get_db
from errors import AppError
from schemas import (
    ActivateAccountRequest,
    ChangePasswordRequest,
    LicenseActivateRequest,
    LicenseView,
    LoginRequest,
    SetupRequest,
    SetupStatus,
)
from security import TokenClaims, get_current_claims

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

config_store: ConfigStore = JSONFileConfigStore(settings.SYSTEM_CONFIG_PATH)


def get_config_store() -> ConfigStore:
    return config_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    config_store.ensure()
    if database.db is not None:
        gateway.ensure_indexes(database.db)
    logger.info("School portal backend started")
    yield


app = FastAPI(title="School Portal API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ----------------------- Error handlers -----------------------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        first = errors[0]
        field = ".".join(str(p) for p in first.get("loc", ()) if p != "body")
        message = f"{field}: {first.get('msg')}" if field else str(first.get("msg"))
    return JSONResponse(status_code=400, content={"message": message, "code": "VALIDATION_ERROR"})


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"message": str(exc) or "Internal server error",
                                                  "code": "INTERNAL_ERROR"})


# ----------------------- Dependencies -----------------------
def license_gate(request: Request, claims: TokenClaims = Depends(get_current_claims),
                 store: ConfigStore = Depends(get_config_store)) -> TokenClaims:
    licensing.enforce(store.read(), request.method)
    return claims


# ----------------------- Health -----------------------
@app.get("/")
def read_root():
    return {"message": "school portal backend is running"}


@app.get("/health")
def health():
    return {"ok": True, "time": datetime.now(timezone.utc).isoformat()}


@app.get("/test")
def test_database():
    response = {"backend": "✅ Running", "database": "❌ Not Available"}
    if database.db is not None:
        try:
            database.db.command("ping")
            response["database"] = "✅ Connected & Working"
        except Exception as e:
            logger.warning("Database ping failed: %s", e)
            response["database"] = "⚠️ Connected but Error"
    return response


# ----------------------- Setup -----------------------
@app.get("/api/setup/status", response_model=SetupStatus)
def get_setup_status(store: ConfigStore = Depends(get_config_store)):
    return SetupStatus(installed=licensing.setup_status(store))


@app.post("/api/setup")
def setup(payload: SetupRequest, db: Database = Depends(get_db),
          store: ConfigStore = Depends(get_config_store)):
    licensing.run_setup(
        db,
        store,
        school_name=payload.schoolName.strip(),
        admin_username=payload.adminUsername.strip(),
        admin_password=payload.adminPassword,
        product_key=payload.productKey.strip(),
    )
    return {"message": "System setup completed", "installed": True}


# ----------------------- Auth Endpoints -----------------------
@app.post("/api/login")
def login(payload: LoginRequest, db: Database = Depends(get_db)):
    result = accounts.authenticate(db, payload.username.strip(), payload.password)
    return result.to_response()


@app.post("/api/activate-account")
def activate_account(payload: ActivateAccountRequest, db: Database = Depends(get_db)):
    result = accounts.activate(db, payload.username.strip(), payload.password)
    return {"message": "Account activated", **result.to_response()}


@app.post("/api/change-password")
def change_password(payload: ChangePasswordRequest, db: Database = Depends(get_db)):
    accounts.change_password(db, payload.userId, payload.oldPassword, payload.newPassword)
    return {"message": "Password changed successfully"}


# ----------------------- License (admin only) -----------------------
@app.post("/api/license/activate")
def activate_license(payload: LicenseActivateRequest, claims: TokenClaims = Depends(get_current_claims),
                     store: ConfigStore = Depends(get_config_store)):
    config = licensing.activate_license(store, claims, payload.productKey.strip(), payload.durationInDays)
    return {
        "message": "License activated successfully",
        "licenseExpiry": config.licenseExpiry.isoformat(),
    }


@app.get("/api/license/status", response_model=LicenseView)
def get_license_status(claims: TokenClaims = Depends(get_current_claims),
                       store: ConfigStore = Depends(get_config_store)):
    config = licensing.license_status(store, claims)
    return LicenseView(
        licenseStatus=config.licenseStatus,
        licenseExpiry=config.licenseExpiry,
        productKey=config.productKey,
    )


# ----------------------- Generic Entity CRUD -----------------------
@app.get("/api/{entity}")
def list_entity(entity: str, limit: Optional[int] = Query(None, ge=1, le=1000),
                _: TokenClaims = Depends(license_gate), db: Database = Depends(get_db)):
    return gateway.list_records(db, gateway.resolve_entity(entity), limit=limit)


@app.post("/api/{entity}", status_code=201)
def create_entity(entity: str, payload: dict = Body(...),
                  _: TokenClaims = Depends(license_gate), db: Database = Depends(get_db)):
    return gateway.create_record(db, gateway.resolve_entity(entity), payload)


@app.get("/api/{entity}/{record_id}")
def get_entity(entity: str, record_id: str,
               _: TokenClaims = Depends(license_gate), db: Database = Depends(get_db)):
    return gateway.get_record(db, gateway.resolve_entity(entity), record_id)


@app.put("/api/{entity}/{record_id}")
def update_entity(entity: str, record_id: str, payload: dict = Body(...),
                  _: TokenClaims = Depends(license_gate), db: Database = Depends(get_db)):
    return gateway.update_record(db, gateway.resolve_entity(entity), record_id, payload)


@app.delete("/api/{entity}/{record_id}", status_code=204)
def delete_entity(entity: str, record_id: str,
                  _: TokenClaims = Depends(license_gate), db: Database = Depends(get_db)):
    gateway.delete_record(db, gateway.resolve_entity(entity), record_id)
    return Response(status_code=204)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
