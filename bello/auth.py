from typing import Optional

from fastapi import Depends, Header
from sqlalchemy.orm import Session

from .db import get_session
from .errors import Unauthenticated
from .store import ensure_user


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    x_user_name: Optional[str] = Header(default=None),
    x_user_email: Optional[str] = Header(default=None),
    x_user_image: Optional[str] = Header(default=None),
    session: Session = Depends(get_session),
) -> str:
    """Resolve the caller from the identity provider's trusted headers.

    The bearer token is the already-verified user identifier; the optional
    ``X-User-*`` headers carry profile fields that are mirrored locally so
    rosters and add-by-email can see them.
    """
    prefix = "Bearer "
    if not authorization or not authorization.startswith(prefix):
        raise Unauthenticated("Unauthorized")
    user_id = authorization[len(prefix) :].strip()
    if not user_id:
        raise Unauthenticated("Unauthorized")
    ensure_user(session, user_id, name=x_user_name, email=x_user_email, image=x_user_image)
    return user_id
