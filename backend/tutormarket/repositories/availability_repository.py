# backend/tutormarket/repositories/availability_repository.py
"""Read access to tutor profiles and their weekly availability windows."""

import logging
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.tutor import TutorAvailability, TutorProfile
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class AvailabilityRepository(BaseRepository[TutorAvailability]):
    def __init__(self, db: Session):
        super().__init__(db, TutorAvailability)

    def get_tutor(self, tutor_id: str) -> Optional[TutorProfile]:
        try:
            return self.db.query(TutorProfile).filter(TutorProfile.id == tutor_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting tutor {tutor_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve tutor: {str(e)}")

    def get_tutor_by_user(self, user_id: str) -> Optional[TutorProfile]:
        try:
            return self.db.query(TutorProfile).filter(TutorProfile.user_id == user_id).first()
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting tutor profile for user {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to retrieve tutor profile: {str(e)}")

    def get_active_windows(
        self, tutor_id: str, day_of_week: Optional[int] = None
    ) -> List[TutorAvailability]:
        """Active windows for a tutor, optionally restricted to one weekday (0=Sunday)."""
        query = self._build_query().filter(
            TutorAvailability.tutor_id == tutor_id,
            TutorAvailability.is_active.is_(True),
        )
        if day_of_week is not None:
            query = query.filter(TutorAvailability.day_of_week == day_of_week)
        return self._execute_query(query.order_by(TutorAvailability.start_time))
