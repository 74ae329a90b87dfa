"""
Caller identity for the order routes.

A signed JWT (``id`` claim = user id) comes from the ``token`` cookie or an
``Authorization: Bearer`` header and is resolved to a user document.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, HTTPException, Request

from database import USERS, to_object_id, utcnow

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"
LOGIN_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def create_token(user_id: str, secret: str, expires_in: timedelta = timedelta(days=5)) -> str:
    payload = {"id": str(user_id), "exp": utcnow() + expires_in}
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def _read_token(request: Request) -> Optional[str]:
    token = request.cookies.get("token")
    if token:
        return token
    header = request.headers.get("Authorization", "")
    if header.startswith("Bearer "):
        return header[len("Bearer "):].strip() or None
    return None


def get_current_user(request: Request) -> Dict[str, Any]:
    token = _read_token(request)
    if not token:
        raise HTTPException(status_code=401, detail="Please Login to Access", headers=LOGIN_CHALLENGE)
    try:
        claims = jwt.decode(token, request.app.state.settings.jwt_secret, algorithms=[ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.info("Rejected token: %s", exc)
        raise HTTPException(status_code=401, detail="Please Login to Access", headers=LOGIN_CHALLENGE)

    db = request.app.state.db
    if db is None:
        raise HTTPException(status_code=503, detail="Database not available")
    user_id = to_object_id(claims.get("id"))
    user = db[USERS].find_one({"_id": user_id}) if user_id else None
    if not user:
        raise HTTPException(status_code=401, detail="Please Login to Access", headers=LOGIN_CHALLENGE)
    return user


def authorize_roles(*roles: str):
    def check(user: Dict[str, Any] = Depends(get_current_user)) -> Dict[str, Any]:
        role = user.get("role", "user")
        if role not in roles:
            raise HTTPException(status_code=403, detail=f"Role: {role} is not allowed")
        return user

    return check
