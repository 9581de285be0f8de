# backend/tutormarket/repositories/user_repository.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models.user import User
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def lock_user(self, user_id: str) -> Optional[User]:
        """Row-lock a user; penalty reads and writes happen under this lock."""
        return self.get_by_id_for_update(user_id)
