"""
Entitlements: coin balance per user and the set of unlocked story nodes.
Rows are created lazily; unlocks only grow until an explicit reset.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import CheckConstraint, Column, DateTime, Integer, String, UniqueConstraint

from storygate.db.base import Base


class UserEntitlement(Base):
    __tablename__ = "user_entitlements"
    __table_args__ = (CheckConstraint("coins >= 0", name="ck_entitlement_coins_non_negative"),)

    user_id = Column(String, primary_key=True)
    coins = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )


class UnlockedContent(Base):
    __tablename__ = "unlocked_content"
    __table_args__ = (UniqueConstraint("user_id", "content_id", name="uq_unlocked_user_content"),)

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    user_id = Column(String, nullable=False, index=True)
    content_id = Column(String, nullable=False)
    method = Column(String, nullable=False)  # coins / ad / grant
    coins_spent = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
