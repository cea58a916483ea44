"""Bearer token decoding for owner-scoped routes.

Token issuance and credential storage live in the account service; this
module only resolves the owner a request acts for.
"""

import os
import uuid
from datetime import datetime, timedelta, timezone

from fastapi import Depends, HTTPException
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from .database import get_db
from . import models

SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 5)))

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")


def create_access_token(data: dict, expires_delta: timedelta | None = None) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


def get_current_owner(
    token: str = Depends(oauth2_scheme), db: Session = Depends(get_db)
) -> models.Owner:
    credentials_exception = HTTPException(
        status_code=401,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM])
        owner_id = uuid.UUID(str(payload.get("sub")))
    except (JWTError, ValueError):
        raise credentials_exception
    owner = db.get(models.Owner, owner_id)
    if owner is None:
        raise credentials_exception
    return owner


def operator_emails() -> set[str]:
    raw = os.getenv("SWEEP_OPERATOR_EMAILS", "")
    return {email.strip().lower() for email in raw.split(",") if email.strip()}


def is_operator(owner: models.Owner) -> bool:
    """Owners listed in ``SWEEP_OPERATOR_EMAILS`` may run cross-owner jobs."""

    return (owner.email or "").lower() in operator_emails()
