# app/auth.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from .settings import settings

# Merchant passwords only; customers are identified by phone number or guest cookie.
pwd = CryptContext(schemes=["argon2"], deprecated="auto")


def hash_password(p: str) -> str:
    return pwd.hash(p)


def verify_password(p: str, h: str) -> bool:
    return pwd.verify(p, h)


def create_token(business_id: str, expires_in: Optional[timedelta] = None) -> str:
    """Bearer token for a merchant; `sub` is the business slug."""
    exp = datetime.now(timezone.utc) + (expires_in or timedelta(minutes=settings.jwt_expire_min))
    claims = {"sub": business_id, "exp": exp, "scope": "merchant"}
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_alg)


def decode_token(token: str) -> Optional[str]:
    """Business id the token was issued to, or None if it is invalid, expired or not a merchant token."""
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_alg])
    except JWTError:
        return None
    if claims.get("scope") != "merchant":
        return None
    business_id = claims.get("sub")
    return str(business_id) if business_id else None
