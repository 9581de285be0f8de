# backend/tutormarket/schemas/user.py
from datetime import datetime
from typing import Optional

from ._strict_base import StrictModel


class PenaltyStatusResponse(StrictModel):
    penalty_until: Optional[datetime] = None
    is_penalized: bool
