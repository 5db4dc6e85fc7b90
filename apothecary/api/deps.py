from dataclasses import dataclass
from typing import Optional

import jwt
from fastapi import Depends, HTTPException, Request

from apothecary.core_settings import get_settings
from shared.core import set_request_context

BEARER_PREFIX = "Bearer "
ROLES = ("customer", "practitioner", "admin")


@dataclass
class CurrentUser:
    id: str
    email: Optional[str] = None
    role: str = "customer"

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def is_practitioner(self) -> bool:
        return self.role in ("practitioner", "admin")


def decode_access_token(token: str) -> Optional[dict]:
    settings = get_settings()
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except jwt.PyJWTError:
        return None


async def get_current_user(request: Request) -> CurrentUser:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith(BEARER_PREFIX):
        raise HTTPException(status_code=401, detail="Missing token")
    claims = decode_access_token(auth_header[len(BEARER_PREFIX):])
    if not claims or not claims.get("sub"):
        raise HTTPException(status_code=401, detail="Invalid token")
    role = claims.get("role") if claims.get("role") in ROLES else "customer"
    user = CurrentUser(id=str(claims["sub"]), email=claims.get("email"), role=role)
    set_request_context(user_id=user.id)
    return user


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Admin access required")
    return user


def require_practitioner(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    if not user.is_practitioner:
        raise HTTPException(status_code=403, detail="Practitioner access required")
    return user
