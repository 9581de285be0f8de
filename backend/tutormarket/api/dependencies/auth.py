# backend/tutormarket/api/dependencies/auth.py
"""
Authentication and authorization dependencies.

The user is loaded through the request's own session, so services that
receive it can lock and mutate the same row.
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from ...auth import get_current_user_id
from ...core.config import settings
from ...models.user import User
from ...repositories import RepositoryFactory
from .database import get_db

logger = logging.getLogger(__name__)


def get_current_user(
    user_id: str = Depends(get_current_user_id),
    db: Session = Depends(get_db),
) -> User:
    """
    Get the current authenticated user from the database.

    Raises:
        HTTPException: 401 if the token's user does not exist or is inactive
    """
    user = RepositoryFactory.create_user_repository(db).get_by_id(user_id)
    if user is None or not user.is_active:
        logger.warning("Token for unknown or inactive user %s", user_id)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def verify_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Require ``Authorization: Bearer <CRON_SECRET>`` on scheduler-only endpoints."""
    expected = settings.cron_secret.get_secret_value()
    if not expected:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Scheduled jobs are disabled"
        )
    provided = ""
    if authorization and authorization.lower().startswith("bearer "):
        provided = authorization[7:].strip()
    if not hmac.compare_digest(provided, expected):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid cron secret")
