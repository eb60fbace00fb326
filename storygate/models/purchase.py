"""
PurchaseRecord: append-only ledger of verified store transactions.
transaction_id is the provider's canonical id and is unique: the insert itself is the replay check.
"""
from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import Column, DateTime, Integer, String

from storygate.db.base import Base

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_RECONCILIATION_PENDING = "reconciliation_pending"


class PurchaseRecord(Base):
    __tablename__ = "purchase_records"

    id = Column(String, primary_key=True, default=lambda: str(uuid4()))
    transaction_id = Column(String, unique=True, nullable=False)
    user_id = Column(String, nullable=False, index=True)
    package_id = Column(String, nullable=False)
    coins_granted = Column(Integer, nullable=False)
    platform = Column(String, nullable=False)
    status = Column(String, nullable=False, default=STATUS_PENDING)  # pending / completed / reconciliation_pending
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        index=True,
        default=lambda: datetime.now(timezone.utc),
    )
    settled_at = Column(DateTime(timezone=True), nullable=True)
