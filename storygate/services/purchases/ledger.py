"""
PurchaseLedger: durable, append-only record of verified store transactions.

The unique index on transaction_id is the replay guard: a racing duplicate insert
fails inside the database, so lookup and insert cannot both succeed for one id.
Compaction drops settled records older than the retention window only.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterator

from pydantic import BaseModel, ConfigDict
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storygate.core.config import settings
from storygate.db.session import SessionLocal
from storygate.models.purchase import (
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_RECONCILIATION_PENDING,
    PurchaseRecord,
)
from storygate.services.errors import StorageError

logger = logging.getLogger(__name__)


class LedgerEntry(BaseModel):
    transaction_id: str
    user_id: str
    package_id: str
    coins_granted: int
    platform: str
    status: str
    created_at: datetime
    settled_at: datetime | None = None

    model_config = ConfigDict(frozen=True, from_attributes=True)


class PurchaseLedger:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        retention_days: int | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.retention_days = settings.purchase_retention_days if retention_days is None else retention_days

    def get(self, transaction_id: str) -> LedgerEntry | None:
        with self._session("get") as db:
            record = db.scalar(select(PurchaseRecord).where(PurchaseRecord.transaction_id == transaction_id))
            return LedgerEntry.model_validate(record) if record else None

    def contains(self, transaction_id: str) -> bool:
        with self._session("contains") as db:
            found = db.scalar(
                select(PurchaseRecord.id).where(PurchaseRecord.transaction_id == transaction_id)
            )
            return found is not None

    def append(
        self,
        transaction_id: str,
        user_id: str,
        package_id: str,
        coins_granted: int,
        platform: str,
    ) -> LedgerEntry | None:
        """
        Insert a pending record. Returns None when transaction_id is already recorded.
        """
        with self._session("append") as db:
            record = PurchaseRecord(
                transaction_id=transaction_id,
                user_id=user_id,
                package_id=package_id,
                coins_granted=coins_granted,
                platform=platform,
                status=STATUS_PENDING,
            )
            db.add(record)
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                logger.warning(
                    "purchase_duplicate",
                    extra={"transaction_id": transaction_id, "user_id": user_id},
                )
                return None
            db.refresh(record)
            logger.info(
                "purchase_recorded",
                extra={
                    "transaction_id": transaction_id,
                    "user_id": user_id,
                    "package_id": package_id,
                    "coins": coins_granted,
                    "platform": platform,
                },
            )
            return LedgerEntry.model_validate(record)

    def mark_reconciliation_pending(self, transaction_id: str) -> bool:
        with self._session("mark_reconciliation_pending") as db:
            result = db.execute(
                update(PurchaseRecord)
                .where(
                    PurchaseRecord.transaction_id == transaction_id,
                    PurchaseRecord.status == STATUS_PENDING,
                )
                .values(status=STATUS_RECONCILIATION_PENDING)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            marked = bool(result.rowcount)
        if marked:
            logger.error("purchase_reconciliation_pending", extra={"transaction_id": transaction_id})
        return marked

    def list_unsettled(self, older_than_seconds: int = 0) -> list[LedgerEntry]:
        threshold = datetime.now(timezone.utc) - timedelta(seconds=older_than_seconds)
        with self._session("list_unsettled") as db:
            rows = db.scalars(
                select(PurchaseRecord)
                .where(
                    PurchaseRecord.status.in_([STATUS_PENDING, STATUS_RECONCILIATION_PENDING]),
                    PurchaseRecord.created_at <= threshold,
                )
                .order_by(PurchaseRecord.created_at)
            )
            return [LedgerEntry.model_validate(r) for r in rows]

    def compact(self, retention_days: int | None = None) -> int:
        """
        Delete completed records older than the retention window. 0 days disables compaction.
        Unsettled records are kept regardless of age.
        """
        days = self.retention_days if retention_days is None else retention_days
        if days <= 0:
            return 0
        threshold = datetime.now(timezone.utc) - timedelta(days=days)
        with self._session("compact") as db:
            result = db.execute(
                delete(PurchaseRecord)
                .where(
                    PurchaseRecord.created_at < threshold,
                    PurchaseRecord.status == STATUS_COMPLETED,
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            removed = result.rowcount
        if removed:
            logger.info("purchase_ledger_compacted", extra={"removed": removed})
        return removed

    def stats(self) -> dict:
        """Totals for the admin dashboard (completed records only)."""
        with self._session("stats") as db:
            rows = db.execute(
                select(
                    PurchaseRecord.package_id,
                    func.count(PurchaseRecord.id),
                    func.coalesce(func.sum(PurchaseRecord.coins_granted), 0),
                )
                .where(PurchaseRecord.status == STATUS_COMPLETED)
                .group_by(PurchaseRecord.package_id)
            ).all()
            unsettled = db.scalar(
                select(func.count(PurchaseRecord.id)).where(
                    PurchaseRecord.status.in_([STATUS_PENDING, STATUS_RECONCILIATION_PENDING])
                )
            )
        by_package = {package_id: count for package_id, count, _ in rows}
        return {
            "total_purchases": sum(by_package.values()),
            "total_coins": sum(int(coins) for _, _, coins in rows),
            "by_package": by_package,
            "unsettled": unsettled or 0,
        }

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("purchase_ledger_storage_failure", extra={"method": operation})
            raise StorageError(operation, e) from e
        finally:
            db.close()
