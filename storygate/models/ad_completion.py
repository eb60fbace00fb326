from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from storygate.db.base import Base


class AdCompletion(Base):
    """Analytics row written after a verified rewarded-ad view."""

    __tablename__ = "ad_completions"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    content_id = Column(String, nullable=False, index=True)
    user_id = Column(String, nullable=False)
    platform = Column(String, nullable=False)
    ad_type = Column(String, nullable=False)
    duration_ms = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
