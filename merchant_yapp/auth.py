from typing import Optional

from fastapi import Header, HTTPException
from jose import JWTError, jwt

from merchant_yapp.config import settings


def _unauthorized():
    return HTTPException(status_code=401, detail="Invalid or missing token")


def verify_token(authorization: Optional[str] = Header(None)):
    """Bearer-JWT guard for the shop admin endpoints."""
    try:
        scheme, token = (authorization or "").split()
    except ValueError:
        raise _unauthorized()
    if scheme.lower() != "bearer" or not settings.jwt_secret:
        raise _unauthorized()
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=["HS256"])
    except JWTError:
        raise _unauthorized()
