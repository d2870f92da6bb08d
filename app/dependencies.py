from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import User
from app.utils.permissions import Action, is_allowed
from app.utils.security import verify_access_token
from app.utils.exceptions import (
    UnauthorizedException,
    ForbiddenException,
    AccountInactiveException,
)

# Bearer token extractor
bearer_scheme = HTTPBearer(auto_error=False)


# ─── Get Current User ─────────────────────────────────────────────────────────
def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    db: Session = Depends(get_db),
) -> User:
    """
    Validate JWT Bearer token and return the acting User.

    The returned user is the session context for the whole request: services
    receive it explicitly and scope every query to ``user.companyId``.
    Raises 401 if token is missing, invalid, expired, or names an unknown user.
    Raises 403 if account is inactive.
    """
    if not credentials:
        raise UnauthorizedException("No authentication token provided")

    payload = verify_access_token(credentials.credentials)
    user_id = payload.get("sub")

    if user_id is None:
        raise UnauthorizedException("Invalid token payload")

    user = db.query(User).filter(User.id == int(user_id)).first()
    if not user:
        raise UnauthorizedException("User no longer exists")

    if not user.isActive:
        raise AccountInactiveException()

    return user


# ─── Permission Guards ────────────────────────────────────────────────────────
def require_permission(action: Action):
    """
    Factory that returns a FastAPI dependency requiring ``action`` to be
    allowed for the current user's role (see app/utils/permissions.py).

    Usage:
        @router.post("/{equipment_id}/scrap")
        def scrap(current_user: User = Depends(require_permission(Action.EQUIPMENT_SCRAP))):
            ...
    """
    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not is_allowed(current_user.role, action):
            raise ForbiddenException(
                f"Role {current_user.role.value} is not allowed to perform '{action.value}'"
            )
        return current_user
    return dependency


def get_any_authenticated(current_user: User = Depends(get_current_user)) -> User:
    """Any authenticated user regardless of role."""
    return current_user
