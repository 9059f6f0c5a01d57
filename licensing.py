"""
First-run setup and the license gate.

Reads are never blocked by license state, so a school can always view its
own data; writes are refused while the license is locked or past expiry.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError as MongoDuplicateKeyError

import settings
from config_store import ConfigStore
from database import create_document
from errors import (
    AlreadyInstalled,
    DuplicateKeyError,
    Forbidden,
    InvalidProductKey,
    LicenseDenied,
    ValidationError,
)
from schemas import LicenseStatus, SystemConfig, User
from security import TokenClaims, get_password_hash

logger = logging.getLogger(__name__)

READ_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})

LICENSE_LOCKED = "LICENSE_LOCKED"
LICENSE_EXPIRED = "LICENSE_EXPIRED"

# one hundred years; far below timedelta and datetime limits
MAX_LICENSE_DAYS = 36500


@dataclass(frozen=True)
class GateDecision:
    allowed: bool
    code: Optional[str] = None
    message: Optional[str] = None


ALLOW = GateDecision(True)


def is_valid_product_key(product_key: Optional[str]) -> bool:
    return bool(product_key) and product_key.startswith(settings.PRODUCT_KEY_PREFIX)


def evaluate(config: SystemConfig, method: str, now: Optional[datetime] = None) -> GateDecision:
    if method.upper() in READ_METHODS:
        return ALLOW
    if config.licenseStatus == LicenseStatus.locked:
        return GateDecision(False, LICENSE_LOCKED, "System locked. Please contact the vendor.")
    now = now or datetime.now(timezone.utc)
    if config.licenseExpiry is not None and now > config.licenseExpiry:
        return GateDecision(False, LICENSE_EXPIRED, "License expired. Please renew.")
    return ALLOW


def enforce(config: SystemConfig, method: str) -> None:
    decision = evaluate(config, method)
    if not decision.allowed:
        logger.warning("License gate denied %s request: %s", method, decision.code)
        raise LicenseDenied(decision.message, code=decision.code)


def require_admin(claims: TokenClaims) -> None:
    if claims.type != "admin":
        raise Forbidden()


def activate_license(store: ConfigStore, claims: TokenClaims, product_key: str,
                     duration_days: Optional[int]) -> SystemConfig:
    require_admin(claims)
    if not product_key or not duration_days:
        raise ValidationError("Missing fields")
    if duration_days < 0:
        raise ValidationError("durationInDays must be positive")
    if duration_days > MAX_LICENSE_DAYS:
        raise ValidationError(f"durationInDays must be at most {MAX_LICENSE_DAYS}")
    if not is_valid_product_key(product_key):
        raise InvalidProductKey()

    def apply(config: SystemConfig) -> SystemConfig:
        config.productKey = product_key
        config.licenseStatus = LicenseStatus.active
        config.licenseExpiry = datetime.now(timezone.utc) + timedelta(days=duration_days)
        return config

    config = store.update(apply)
    logger.info("License activated until %s", config.licenseExpiry.isoformat())
    return config


def license_status(store: ConfigStore, claims: TokenClaims) -> SystemConfig:
    require_admin(claims)
    return store.read()


def setup_status(store: ConfigStore) -> bool:
    return store.read().installed


def run_setup(db: Database, store: ConfigStore, school_name: str, admin_username: str,
              admin_password: str, product_key: str) -> SystemConfig:
    """Install the system: create the first admin user and mark the config installed."""
    if not (school_name and admin_username and admin_password and product_key):
        raise ValidationError("All fields required")
    created = {}

    def apply(config: SystemConfig) -> SystemConfig:
        if config.installed:
            raise AlreadyInstalled()
        if not is_valid_product_key(product_key):
            raise InvalidProductKey()
        try:
            admin = User(username=admin_username, password_hash=get_password_hash(admin_password))
            created["admin"] = create_document(db, "user", admin.model_dump())
        except MongoDuplicateKeyError:
            raise DuplicateKeyError("Username already exists")
        config.installed = True
        config.schoolName = school_name
        config.productKey = product_key
        config.installedAt = datetime.now(timezone.utc)
        return config

    try:
        config = store.update(apply)
    except Exception:
        # the admin only exists if the config was saved as installed
        if "admin" in created:
            db["user"].delete_one({"_id": created["admin"]["_id"]})
            logger.warning("Setup failed after creating admin %s; removed it", admin_username)
        raise
    logger.info("System setup completed for %s", school_name)
    return config
