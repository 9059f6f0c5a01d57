from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import BaseModel

import settings
from errors import TokenExpired, TokenMalformed, TokenMissing

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=settings.BCRYPT_ROUNDS)
bearer_scheme = HTTPBearer(auto_error=False)

# Verified against when a login identifier matches nothing, so unknown and
# known identifiers cost the same.
DUMMY_PASSWORD_HASH = pwd_context.hash("not-a-real-password")


class TokenClaims(BaseModel):
    sub: str
    role: Optional[str] = None
    type: Optional[str] = None
    kind: Optional[str] = None


# ----------------------- Password hashing -----------------------

def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    if not hashed_password:
        pwd_context.verify(plain_password, DUMMY_PASSWORD_HASH)
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        # stored value is not a recognised hash
        return False


# ----------------------- Tokens -----------------------

def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    to_encode = data.copy()
    issued = datetime.now(timezone.utc)
    expire = issued + (expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES))
    to_encode.update({"iat": issued, "exp": expire})
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> TokenClaims:
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpired()
    except JWTError:
        raise TokenMalformed()
    if not payload.get("sub"):
        raise TokenMalformed()
    return TokenClaims(
        sub=payload["sub"],
        role=payload.get("role"),
        type=payload.get("type"),
        kind=payload.get("kind"),
    )


def get_current_claims(creds: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> TokenClaims:
    if creds is None or not creds.credentials:
        raise TokenMissing()
    return decode_access_token(creds.credentials)
