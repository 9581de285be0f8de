# backend/tutormarket/repositories/appeal_repository.py
import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from ..models.appeal import AppealStatus, CancellationAppeal
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AppealRepository(BaseRepository[CancellationAppeal]):
    def __init__(self, db: Session):
        super().__init__(db, CancellationAppeal)

    def get_pending_for_user(self, user_id: str) -> Optional[CancellationAppeal]:
        return self.find_one_by(user_id=user_id, status=AppealStatus.PENDING.value)

    def list_appeals(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> List[CancellationAppeal]:
        """Newest first. ``user_id=None`` lists every user's appeals."""
        query = self._build_query()
        if user_id is not None:
            query = query.filter(CancellationAppeal.user_id == user_id)
        if status:
            query = query.filter(CancellationAppeal.status == status)
        query = query.order_by(CancellationAppeal.created_at.desc()).offset(offset).limit(limit)
        return self._execute_query(query)
