import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException
from firebase_admin import exceptions as firebase_exceptions

from app.core.firebase import verify_id_token

logger = logging.getLogger(__name__)

ADMIN_ROLE = "Admin"
DEFAULT_PLAN = "Free"


@dataclass
class AuthUser:
    """Verified caller: Firebase uid and the optional role and plan custom claims."""

    uid: str
    role: Optional[str] = None
    plan: str = DEFAULT_PLAN

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def get_current_user(authorization: Optional[str] = Header(default=None)) -> AuthUser:
    """FastAPI dependency: verify 'Authorization: Bearer <Firebase ID token>' and return the caller, or 401.
    Why available: Job endpoints need the uid as job owner; tests override this dependency."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing or invalid Authorization header")

    token = authorization.split(" ", 1)[1].strip()
    try:
        claims = verify_id_token(token)
    except (firebase_exceptions.FirebaseError, ValueError) as e:
        logger.warning("token verification failed: %s", e)
        raise HTTPException(status_code=401, detail="Unauthorized") from e

    return AuthUser(uid=claims["uid"], role=claims.get("role"), plan=claims.get("plan") or DEFAULT_PLAN)
