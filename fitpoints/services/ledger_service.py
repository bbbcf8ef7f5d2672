"""
Points Ledger for FitPoints.

The ledger is the single source of truth for how many points a member has:
- Every balance change is an immutable PointsTransaction (earn or spend)
- PointsAccount.balance is the running total, kept in the same database
  transaction as the entry that changed it
- Spending is only reachable from the redemption confirm path

ARCHITECTURE:
- Mutations for one member are serialized by `member_locks` inside a worker
- Balance changes are SQL expressions (`balance = balance + :n`), and spends
  are conditional (`WHERE balance >= :n`) so concurrent workers cannot
  overdraw an account
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from flask import current_app
from sqlalchemy import case, func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db, member_locks
from ..models import PointsAccount, PointsTransaction, TransactionType, PointsSource
from ..utils.exceptions import (
    AccountNotFoundError,
    InsufficientPointsError,
    InvalidAmountError,
    StorageError,
)
from . import events


def validate_amount(amount: Any) -> int:
    """Return `amount` if it is a positive integer, else raise InvalidAmountError."""
    if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
        raise InvalidAmountError(amount)
    return amount


class LedgerService:
    """
    Per-member balances plus the append-only transaction list.

    Usage:
        ledger = LedgerService(event_bus)

        ledger.earn('user-1', 10, 'Attendance check-in', source='attendance')
        ledger.get_balance('user-1')
        ledger.get_transactions('user-1')
    """

    def __init__(self, event_bus: events.EventBus = None, clock: Callable[[], datetime] = None):
        self.event_bus = event_bus if event_bus is not None else events.EventBus()
        self.clock = clock or datetime.utcnow

    # ==================== Accounts ====================

    def create_account(self, member_id: str, member_name: str = None) -> PointsAccount:
        """
        Create the member's account, or return the existing one.

        A missing display name is filled in on an existing account.
        """
        with member_locks.hold(member_id):
            account = db.session.get(PointsAccount, member_id)
            if account:
                if member_name and not account.member_name:
                    account.member_name = member_name
                    self._commit(f"Failed to update account {member_id}")
                return account

            now = self.clock()
            account = PointsAccount(
                member_id=member_id,
                member_name=member_name,
                balance=0,
                lifetime_earned=0,
                lifetime_spent=0,
                created_at=now,
                updated_at=now,
            )
            db.session.add(account)
            try:
                db.session.commit()
            except IntegrityError:
                # Created concurrently by another worker
                db.session.rollback()
                account = db.session.get(PointsAccount, member_id)
            except SQLAlchemyError as e:
                db.session.rollback()
                raise StorageError(f"Failed to create account {member_id}", e) from e

            current_app.logger.info(f"Points account created: member {member_id}")
            return account

    def get_account(self, member_id: str) -> Optional[PointsAccount]:
        return db.session.get(PointsAccount, member_id)

    # ==================== Mutations ====================

    def earn(
        self,
        member_id: str,
        amount: int,
        description: str,
        source: str = PointsSource.MANUAL.value,
        created_by: str = 'system'
    ) -> PointsTransaction:
        """
        Award points to a member, creating the account if needed.

        Raises:
            InvalidAmountError: amount is not a positive integer
            StorageError: the commit failed, nothing was applied
        """
        validate_amount(amount)

        with member_locks.hold(member_id):
            if db.session.get(PointsAccount, member_id) is None:
                self.create_account(member_id)

            now = self.clock()
            db.session.execute(
                update(PointsAccount)
                .where(PointsAccount.member_id == member_id)
                .values(
                    balance=PointsAccount.balance + amount,
                    lifetime_earned=PointsAccount.lifetime_earned + amount,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            transaction = self._append(
                member_id, TransactionType.EARN, amount, description, source, created_by, now
            )
            self._commit(f"Points earn failed for member {member_id}")

        current_app.logger.info(
            f"Points earned: member {member_id} +{amount} pts from {source}. "
            f"New balance: {transaction.balance_after}"
        )
        self.event_bus.notify(events.POINTS_EARNED, {
            'member_id': member_id,
            'amount': amount,
            'balance': transaction.balance_after,
            'transaction_id': transaction.id,
        })
        return transaction

    def spend(
        self,
        member_id: str,
        amount: int,
        description: str,
        related_request_id: int = None,
        created_by: str = 'system',
        commit: bool = True
    ) -> PointsTransaction:
        """
        Debit points from a member.

        Only the redemption confirm path calls this. With commit=False the
        debit joins the caller's database transaction, which must commit or
        roll back the whole unit.

        Raises:
            InvalidAmountError: amount is not a positive integer
            AccountNotFoundError: member has no account
            InsufficientPointsError: amount exceeds the current balance
            StorageError: the commit failed, nothing was applied
        """
        validate_amount(amount)

        with member_locks.hold(member_id):
            now = self.clock()
            result = db.session.execute(
                update(PointsAccount)
                .where(
                    PointsAccount.member_id == member_id,
                    PointsAccount.balance >= amount,
                )
                .values(
                    balance=PointsAccount.balance - amount,
                    lifetime_spent=PointsAccount.lifetime_spent + amount,
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )

            if result.rowcount != 1:
                current = db.session.execute(
                    select(PointsAccount.balance).where(PointsAccount.member_id == member_id)
                ).scalar()
                if commit:
                    db.session.rollback()
                if current is None:
                    raise AccountNotFoundError(member_id)
                raise InsufficientPointsError(current, amount)

            transaction = self._append(
                member_id, TransactionType.SPEND, amount, description,
                PointsSource.REDEMPTION.value, created_by, now,
                related_request_id=related_request_id,
            )

            if not commit:
                return transaction

            self._commit(f"Points spend failed for member {member_id}")

        self.announce_spend(transaction)
        return transaction

    def announce_spend(self, transaction: PointsTransaction) -> None:
        """Log and notify a committed spend."""
        current_app.logger.info(
            f"Points spent: member {transaction.member_id} -{transaction.amount} pts "
            f"(request {transaction.related_request_id}). New balance: {transaction.balance_after}"
        )
        self.event_bus.notify(events.POINTS_SPENT, {
            'member_id': transaction.member_id,
            'amount': transaction.amount,
            'balance': transaction.balance_after,
            'transaction_id': transaction.id,
            'related_request_id': transaction.related_request_id,
        })

    # ==================== Queries ====================

    def get_balance(self, member_id: str) -> int:
        """Current balance; 0 for members without an account."""
        balance = db.session.execute(
            select(PointsAccount.balance).where(PointsAccount.member_id == member_id)
        ).scalar()
        return int(balance or 0)

    def get_transactions(
        self,
        member_id: str,
        limit: int = None,
        offset: int = 0,
        transaction_type: str = None
    ) -> List[PointsTransaction]:
        """Member's transactions, newest first."""
        query = PointsTransaction.query.filter_by(member_id=member_id)
        if transaction_type:
            query = query.filter_by(transaction_type=transaction_type)

        query = query.order_by(PointsTransaction.created_at.desc(), PointsTransaction.id.desc())
        if offset:
            query = query.offset(offset)
        if limit:
            query = query.limit(limit)
        return query.all()

    def count_transactions(self, member_id: str, transaction_type: str = None) -> int:
        query = PointsTransaction.query.filter_by(member_id=member_id)
        if transaction_type:
            query = query.filter_by(transaction_type=transaction_type)
        return query.count()

    def has_transaction_from(self, member_id: str, source: str) -> bool:
        return db.session.query(
            PointsTransaction.query.filter_by(member_id=member_id, source=source).exists()
        ).scalar()

    def verify_balance(self, member_id: str) -> Dict[str, Any]:
        """
        Recompute the balance from the ledger and compare with the account.

        Read-only; a mismatch is reported, never repaired here.
        """
        signed = case(
            (PointsTransaction.transaction_type == TransactionType.EARN.value, PointsTransaction.amount),
            else_=-PointsTransaction.amount,
        )
        ledger_balance = db.session.query(
            func.coalesce(func.sum(signed), 0)
        ).filter(PointsTransaction.member_id == member_id).scalar()

        balance = self.get_balance(member_id)
        ledger_balance = int(ledger_balance or 0)
        if balance != ledger_balance:
            current_app.logger.error(
                f"Ledger drift for member {member_id}: account={balance} ledger={ledger_balance}"
            )

        return {
            'member_id': member_id,
            'balance': balance,
            'ledger_balance': ledger_balance,
            'consistent': balance == ledger_balance,
        }

    # ==================== Helpers ====================

    def _append(
        self,
        member_id: str,
        transaction_type: TransactionType,
        amount: int,
        description: str,
        source: str,
        created_by: str,
        now: datetime,
        related_request_id: int = None
    ) -> PointsTransaction:
        balance_after = db.session.execute(
            select(PointsAccount.balance).where(PointsAccount.member_id == member_id)
        ).scalar()

        transaction = PointsTransaction(
            member_id=member_id,
            transaction_type=transaction_type.value,
            amount=amount,
            balance_after=balance_after,
            source=source,
            description=description,
            related_request_id=related_request_id,
            created_by=created_by,
            created_at=now,
        )
        db.session.add(transaction)
        db.session.flush()
        return transaction

    def _commit(self, failure_message: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            current_app.logger.error(f"{failure_message}: {e}")
            raise StorageError(failure_message, e) from e
