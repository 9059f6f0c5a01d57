"""
Database Schemas for the School Portal (MongoDB via Pydantic models)

Principal documents (Student, Staff, User) are validated here; every other
entity is stored as an open document. Collection name is the lowercase of the
class name. Request bodies and the file-backed SystemConfig also live here.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ----------------------- Principals -----------------------
class Student(BaseModel):
    model_config = ConfigDict(extra="allow")

    admissionNo: str = Field(..., min_length=1, description="e.g. BAC/STD/2025/0001")
    firstName: Optional[str] = None
    lastName: Optional[str] = None
    studentClass: Optional[str] = None
    gender: Optional[str] = None
    parentName: Optional[str] = None
    parentPhone: Optional[str] = None
    password_hash: str
    role: str = "student"
    type: str = "student"
    isActivated: bool = False
    activatedAt: Optional[datetime] = None


class Staff(BaseModel):
    model_config = ConfigDict(extra="allow")

    staffId: str = Field(..., min_length=1, description="e.g. STAFF/2025/0001")
    firstname: Optional[str] = None
    surname: Optional[str] = None
    role: str = "staff"
    assignedClasses: List[str] = []
    assignedSubjects: List[str] = []
    password_hash: str
    type: str = "staff"
    isActivated: bool = False
    activatedAt: Optional[datetime] = None


class User(BaseModel):
    username: str = Field(..., min_length=1)
    password_hash: str = Field(..., description="bcrypt hash")
    role: str = "admin"
    type: str = "admin"
    isActivated: bool = True


# ----------------------- System config -----------------------
class LicenseStatus(str, Enum):
    inactive = "inactive"
    active = "active"
    locked = "locked"


class SystemConfig(BaseModel):
    installed: bool = False
    schoolName: str = ""
    installedAt: Optional[datetime] = None
    productKey: str = ""
    licenseStatus: LicenseStatus = LicenseStatus.inactive
    licenseExpiry: Optional[datetime] = None

    @field_validator("installedAt", "licenseExpiry")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


# ----------------------- Requests -----------------------
class SetupRequest(BaseModel):
    schoolName: str = ""
    adminUsername: str = ""
    adminPassword: str = ""
    productKey: str = ""


class LoginRequest(BaseModel):
    username: str
    password: str


class ActivateAccountRequest(BaseModel):
    username: str
    password: str = Field(min_length=1)


class ChangePasswordRequest(BaseModel):
    userId: str
    oldPassword: str
    newPassword: str = Field(min_length=1)


class LicenseActivateRequest(BaseModel):
    productKey: str = ""
    durationInDays: Optional[int] = None


# ----------------------- Responses -----------------------
class SetupStatus(BaseModel):
    installed: bool


class LicenseView(BaseModel):
    licenseStatus: LicenseStatus
    licenseExpiry: Optional[datetime] = None
    productKey: str = ""
