"""
Daily request quota: count and record chat requests per user per UTC day.
"""

import logging
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from deepsearch.core.database import utcnow
from deepsearch.models.user import UserRequest

logger = logging.getLogger(__name__)


def start_of_utc_day(now: datetime | None = None) -> datetime:
    """Midnight (naive UTC) of the day containing now."""
    now = now or utcnow()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def count_requests_today(db: Session, user_id: str, now: datetime | None = None) -> int:
    """Number of request rows recorded for the user since midnight UTC."""
    now = now or utcnow()
    stmt = (
        select(func.count(UserRequest.id))
        .where(UserRequest.user_id == user_id)
        .where(UserRequest.created_at >= start_of_utc_day(now))
        .where(UserRequest.created_at <= now)
    )
    count = db.scalar(stmt) or 0
    logger.info("[rate_limit:count_requests_today] user_id=%s count=%d", user_id, count)
    return count


def record_request(db: Session, user_id: str, now: datetime | None = None) -> UserRequest:
    """Insert one request row for the user and commit."""
    row = UserRequest(user_id=user_id, created_at=now or utcnow())
    db.add(row)
    db.commit()
    return row


def is_over_limit(count: int, limit: int) -> bool:
    """True when the user has already used the whole daily allowance."""
    return count >= limit
