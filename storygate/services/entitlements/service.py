"""
EntitlementStore: durable per-user coin balance and unlocked content set.

Responsibilities:
- lazy creation of the user row with the starting balance
- atomic debit-and-unlock (conditional UPDATE + unlock row in one transaction)
- idempotent unlocks: an existing unlock is a no-op success
- coin credit, optionally settling a ledger record in the same transaction

Mutations for one user are serialized through a KeyedLock; the database guards
(coins >= price in the UPDATE, unique (user_id, content_id)) hold across processes.
Every mutation commits before it returns.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Iterator

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storygate.core.config import settings
from storygate.db.session import SessionLocal
from storygate.models.entitlement import UnlockedContent, UserEntitlement
from storygate.models.purchase import (
    STATUS_COMPLETED,
    STATUS_PENDING,
    STATUS_RECONCILIATION_PENDING,
    PurchaseRecord,
)
from storygate.services.errors import ErrorCode, StorageError
from storygate.services.locks import KeyedLock
from storygate.services.results import UnlockResult, failure
from storygate.utils.metrics import coins_credited_total, unlock_rejected_total, unlocks_total

logger = logging.getLogger(__name__)


class EntitlementStore:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        starting_coins: int | None = None,
        locks: KeyedLock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.starting_coins = settings.default_starting_coins if starting_coins is None else starting_coins
        self._locks = locks if locks is not None else KeyedLock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_balance(self, user_id: str) -> int:
        with self._session("get_balance") as db:
            self._ensure(db, user_id)
            return self._coins(db, user_id)

    def get_unlocked(self, user_id: str) -> set[str]:
        with self._session("get_unlocked") as db:
            return self._unlocked(db, user_id)

    def is_unlocked(self, user_id: str, content_id: str) -> bool:
        with self._session("is_unlocked") as db:
            return self._has_unlock(db, user_id, content_id)

    def get_user_info(self, user_id: str) -> dict:
        with self._session("get_user_info") as db:
            self._ensure(db, user_id)
            return {
                "user_id": user_id,
                "coins": self._coins(db, user_id),
                "unlocked_content_ids": sorted(self._unlocked(db, user_id)),
            }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def debit_and_unlock(self, user_id: str, content_id: str, price: int) -> UnlockResult:
        """
        Spend `price` coins and unlock `content_id` atomically.
        Already unlocked -> success, nothing spent. Balance below price -> InsufficientFunds.
        """
        if price < 0:
            raise ValueError("price must be >= 0")
        with self._locks.hold(user_id), self._session("debit_and_unlock") as db:
            self._ensure(db, user_id)
            if self._has_unlock(db, user_id, content_id):
                return self._already_unlocked(db, user_id, content_id)

            debited = db.execute(
                update(UserEntitlement)
                .where(UserEntitlement.user_id == user_id, UserEntitlement.coins >= price)
                .values(coins=UserEntitlement.coins - price, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if debited.rowcount == 0:
                db.rollback()
                balance = self._coins(db, user_id)
                unlock_rejected_total.labels(reason=ErrorCode.INSUFFICIENT_FUNDS.value).inc()
                logger.info(
                    "unlock_insufficient_funds",
                    extra={"user_id": user_id, "content_id": content_id, "price": price, "balance": balance},
                )
                return failure(
                    UnlockResult,
                    ErrorCode.INSUFFICIENT_FUNDS,
                    f"insufficient coins, balance {balance}, price {price}",
                    balance=balance,
                )

            db.add(UnlockedContent(user_id=user_id, content_id=content_id, method="coins", coins_spent=price))
            try:
                db.commit()
            except IntegrityError:
                # Unlocked by another process between our check and insert; the debit is rolled back with it.
                db.rollback()
                return self._already_unlocked(db, user_id, content_id)

            balance = self._coins(db, user_id)
            unlocks_total.labels(method="coins").inc()
            logger.info(
                "content_unlocked",
                extra={
                    "user_id": user_id,
                    "content_id": content_id,
                    "method": "coins",
                    "price": price,
                    "new_balance": balance,
                },
            )
            return UnlockResult(success=True, message=f"unlocked for {price} coins", balance=balance)

    def grant_unlock(self, user_id: str, content_id: str, method: str = "ad") -> UnlockResult:
        """Unlock without spending coins (verified ad view, admin grant). Idempotent."""
        with self._locks.hold(user_id), self._session("grant_unlock") as db:
            self._ensure(db, user_id)
            if self._has_unlock(db, user_id, content_id):
                return self._already_unlocked(db, user_id, content_id)
            db.add(UnlockedContent(user_id=user_id, content_id=content_id, method=method, coins_spent=0))
            try:
                db.commit()
            except IntegrityError:
                db.rollback()
                return self._already_unlocked(db, user_id, content_id)
            unlocks_total.labels(method=method).inc()
            logger.info(
                "content_unlocked",
                extra={"user_id": user_id, "content_id": content_id, "method": method},
            )
            return UnlockResult(success=True, message="unlocked", balance=self._coins(db, user_id))

    def credit(self, user_id: str, amount: int, source: str = "admin") -> int:
        """Add coins; returns the new balance."""
        if amount <= 0:
            raise ValueError("amount must be positive")
        with self._locks.hold(user_id), self._session("credit") as db:
            self._ensure(db, user_id)
            self._add_coins(db, user_id, amount)
            db.commit()
            balance = self._coins(db, user_id)
        coins_credited_total.labels(source=source).inc(amount)
        logger.info("coins_credited", extra={"user_id": user_id, "coins": amount, "new_balance": balance})
        return balance

    def settle_purchase(
        self,
        user_id: str,
        transaction_id: str,
        amount: int,
        source: str = "purchase",
    ) -> int | None:
        """
        Credit a purchase and mark its ledger record completed in one transaction.
        Returns the new balance, or None if the record is unknown or already settled.
        """
        if amount <= 0:
            raise ValueError("amount must be positive")
        with self._locks.hold(user_id), self._session("settle_purchase") as db:
            self._ensure(db, user_id)
            settled = db.execute(
                update(PurchaseRecord)
                .where(
                    PurchaseRecord.transaction_id == transaction_id,
                    PurchaseRecord.user_id == user_id,
                    PurchaseRecord.status.in_([STATUS_PENDING, STATUS_RECONCILIATION_PENDING]),
                )
                .values(status=STATUS_COMPLETED, settled_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if settled.rowcount == 0:
                db.rollback()
                logger.warning(
                    "purchase_already_settled",
                    extra={"user_id": user_id, "transaction_id": transaction_id},
                )
                return None
            self._add_coins(db, user_id, amount)
            db.commit()
            balance = self._coins(db, user_id)
        coins_credited_total.labels(source=source).inc(amount)
        logger.info(
            "purchase_settled",
            extra={"user_id": user_id, "transaction_id": transaction_id, "coins": amount, "new_balance": balance},
        )
        return balance

    def reset(self, user_id: str) -> None:
        """Test/admin: back to the starting balance with nothing unlocked."""
        with self._locks.hold(user_id), self._session("reset") as db:
            self._ensure(db, user_id)
            db.execute(delete(UnlockedContent).where(UnlockedContent.user_id == user_id))
            db.execute(
                update(UserEntitlement)
                .where(UserEntitlement.user_id == user_id)
                .values(coins=self.starting_coins, updated_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            db.commit()
        logger.info("entitlement_reset", extra={"user_id": user_id})

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _session(self, operation: str) -> Iterator[Session]:
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("entitlement_storage_failure", extra={"method": operation})
            raise StorageError(operation, e) from e
        finally:
            db.close()

    def _ensure(self, db: Session, user_id: str) -> None:
        if db.get(UserEntitlement, user_id) is not None:
            return
        db.add(UserEntitlement(user_id=user_id, coins=self.starting_coins))
        try:
            db.commit()
            logger.info("entitlement_created", extra={"user_id": user_id, "balance": self.starting_coins})
        except IntegrityError:
            # Created concurrently by another request
            db.rollback()

    @staticmethod
    def _coins(db: Session, user_id: str) -> int:
        coins = db.scalar(select(UserEntitlement.coins).where(UserEntitlement.user_id == user_id))
        return coins or 0

    @staticmethod
    def _unlocked(db: Session, user_id: str) -> set[str]:
        rows = db.scalars(select(UnlockedContent.content_id).where(UnlockedContent.user_id == user_id))
        return set(rows)

    @staticmethod
    def _has_unlock(db: Session, user_id: str, content_id: str) -> bool:
        found = db.scalar(
            select(UnlockedContent.id).where(
                UnlockedContent.user_id == user_id,
                UnlockedContent.content_id == content_id,
            )
        )
        return found is not None

    @staticmethod
    def _add_coins(db: Session, user_id: str, amount: int) -> None:
        db.execute(
            update(UserEntitlement)
            .where(UserEntitlement.user_id == user_id)
            .values(coins=UserEntitlement.coins + amount, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )

    def _already_unlocked(self, db: Session, user_id: str, content_id: str) -> UnlockResult:
        logger.info("unlock_already_present", extra={"user_id": user_id, "content_id": content_id})
        return UnlockResult(
            success=True,
            error=None,
            message="already unlocked",
            balance=self._coins(db, user_id),
            already_unlocked=True,
        )
